from .logging import mask_email, sanitize_for_log

__all__ = ["mask_email", "sanitize_for_log"]
