from .domains import slugify_domain
from .email import EmailAddress, parse_email
from .urls import is_base64_url

__all__ = [
    "EmailAddress",
    "is_base64_url",
    "parse_email",
    "slugify_domain",
]
