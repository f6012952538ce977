from .base import Base, GUID
from .teams import Team
from .users import User, UserRole
from .authentication import AuthenticationProvider, UserAuthentication

__all__ = [
    "AuthenticationProvider",
    "Base",
    "GUID",
    "Team",
    "User",
    "UserAuthentication",
    "UserRole",
]
