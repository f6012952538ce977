from __future__ import annotations

from typing import Optional


class OIDCAuthenticationError(Exception):
    """Base class for failures that end an OIDC login attempt."""

    pass


class IdentityIncompleteError(OIDCAuthenticationError):
    """A required claim could not be derived from the userinfo or ID token."""

    def __init__(self, field: str, detail: Optional[str] = None):
        self.field = field
        super().__init__(detail or f"Required claim missing: {field}")


class MalformedIdentityError(OIDCAuthenticationError):
    """The email claim is present but has no usable domain."""

    pass


class UpstreamFetchError(OIDCAuthenticationError):
    """The userinfo request failed or returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class StateMismatchError(OIDCAuthenticationError):
    """The callback state does not match the state issued with the redirect."""

    pass


class TokenExchangeError(OIDCAuthenticationError):
    """The authorization code could not be exchanged for tokens."""

    pass


class ProvisioningError(Exception):
    """The account provisioner refused or failed to store the login."""

    pass
