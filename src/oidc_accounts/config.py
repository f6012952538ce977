"""Environment configuration for the OIDC login flow.

Environment Variables:
    URL: Public base URL of the application (used for the callback URL)
    APP_NAME: Name given to teams created on first login
    OIDC_CLIENT_ID / OIDC_CLIENT_SECRET: OAuth client credentials
    OIDC_AUTH_URI / OIDC_TOKEN_URI / OIDC_USERINFO_URI: IdP endpoints
    OIDC_LOGOUT_URI: Optional IdP logout endpoint
    OIDC_SCOPES: Space-delimited scopes (default "openid profile email")
    OIDC_USERNAME_CLAIM: Claim path holding the username (default "preferred_username")
    OIDC_DISPLAY_NAME: Label for the login button
    OIDC_PKCE: Enable PKCE on the authorization request
    OIDC_MULTI_TENANT: Resolve the team from the request host
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_SCOPES = "openid profile email"
DEFAULT_USERNAME_CLAIM = "preferred_username"


class ConfigurationError(Exception):
    pass


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


@dataclass(frozen=True)
class OIDCSettings:
    client_id: str
    client_secret: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    base_url: str = "http://localhost:3000"
    app_name: str = "Wiki"
    logout_url: Optional[str] = None
    scopes: str = DEFAULT_SCOPES
    username_claim: str = DEFAULT_USERNAME_CLAIM
    display_name: str = "OpenID Connect"
    pkce: bool = False
    multi_tenant: bool = False

    @property
    def scope_list(self) -> list[str]:
        return self.scopes.split()

    @property
    def callback_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/auth/oidc.callback"

    @property
    def base_host(self) -> str:
        return (urlparse(self.base_url).hostname or "").lower()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OIDCSettings":
        env = os.environ if environ is None else environ

        required = {
            "OIDC_CLIENT_ID": env.get("OIDC_CLIENT_ID"),
            "OIDC_CLIENT_SECRET": env.get("OIDC_CLIENT_SECRET"),
            "OIDC_AUTH_URI": env.get("OIDC_AUTH_URI"),
            "OIDC_TOKEN_URI": env.get("OIDC_TOKEN_URI"),
            "OIDC_USERINFO_URI": env.get("OIDC_USERINFO_URI"),
        }
        missing = sorted(name for name, value in required.items() if not value)
        if missing:
            raise ConfigurationError(
                f"OIDC is not configured. Missing: {', '.join(missing)}"
            )

        for name in ("OIDC_AUTH_URI", "OIDC_TOKEN_URI", "OIDC_USERINFO_URI"):
            parsed = urlparse(required[name] or "")
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ConfigurationError(f"{name} must be an absolute http(s) URL")

        return cls(
            client_id=required["OIDC_CLIENT_ID"] or "",
            client_secret=required["OIDC_CLIENT_SECRET"] or "",
            authorization_url=required["OIDC_AUTH_URI"] or "",
            token_url=required["OIDC_TOKEN_URI"] or "",
            userinfo_url=required["OIDC_USERINFO_URI"] or "",
            base_url=env.get("URL", "http://localhost:3000"),
            app_name=env.get("APP_NAME", "Wiki"),
            logout_url=env.get("OIDC_LOGOUT_URI") or None,
            scopes=env.get("OIDC_SCOPES") or DEFAULT_SCOPES,
            username_claim=env.get("OIDC_USERNAME_CLAIM") or DEFAULT_USERNAME_CLAIM,
            display_name=env.get("OIDC_DISPLAY_NAME") or "OpenID Connect",
            pkce=_flag(env.get("OIDC_PKCE")),
            multi_tenant=_flag(env.get("OIDC_MULTI_TENANT")),
        )
