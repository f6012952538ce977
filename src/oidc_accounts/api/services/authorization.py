"""Authorization-code leg of the OIDC login.

Builds the redirect to the IdP, keeps the CSRF state (and the PKCE
verifier) in a short-lived cookie, and exchanges the returned code for
tokens. Everything after the exchange happens in ``oidc.py``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from oidc_accounts.api.services.errors import StateMismatchError, TokenExchangeError
from oidc_accounts.api.services.tenants import Client, parse_client
from oidc_accounts.api.utils.logging import sanitize_for_log
from oidc_accounts.config import OIDCSettings

logger = logging.getLogger(__name__)

STATE_COOKIE = "oidc-state"
STATE_COOKIE_MAX_AGE = 10 * 60
HTTP_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class OIDCTokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationState:
    state: str
    client: Client = Client.WEB
    code_verifier: Optional[str] = None

    def to_cookie(self) -> str:
        return "|".join([self.state, self.client.value, self.code_verifier or ""])

    @classmethod
    def from_cookie(cls, value: Optional[str]) -> Optional["AuthorizationState"]:
        if not value:
            return None
        parts = value.split("|")
        if len(parts) != 3 or not parts[0]:
            return None
        state, client, verifier = parts
        return cls(state=state, client=parse_client(client), code_verifier=verifier or None)


@dataclass(frozen=True)
class OIDCAuthorizationRequest:
    authorization_url: str
    state: AuthorizationState


def _code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode()).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def build_authorization_request(
    settings: OIDCSettings, client: Client = Client.WEB
) -> OIDCAuthorizationRequest:
    state = AuthorizationState(
        state=secrets.token_urlsafe(32),
        client=client,
        code_verifier=secrets.token_urlsafe(64) if settings.pkce else None,
    )

    params: dict[str, str] = {
        "response_type": "code",
        "client_id": settings.client_id,
        "redirect_uri": settings.callback_url,
        "scope": settings.scopes,
        "state": state.state,
    }
    if state.code_verifier:
        params["code_challenge"] = _code_challenge(state.code_verifier)
        params["code_challenge_method"] = "S256"

    separator = "&" if "?" in settings.authorization_url else "?"
    return OIDCAuthorizationRequest(
        authorization_url=f"{settings.authorization_url}{separator}{urlencode(params)}",
        state=state,
    )


def verify_state(
    expected: Optional[AuthorizationState], returned: Optional[str]
) -> AuthorizationState:
    if expected is None:
        raise StateMismatchError("Missing OIDC state cookie")
    if not returned:
        raise StateMismatchError("Missing OIDC state")
    if not hmac.compare_digest(expected.state, returned):
        raise StateMismatchError("OIDC state mismatch")
    return expected


async def exchange_code(
    settings: OIDCSettings, code: str, code_verifier: Optional[str] = None
) -> OIDCTokenSet:
    if not code:
        raise TokenExchangeError("Missing authorization code")

    payload = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.callback_url,
        "client_id": settings.client_id,
        "client_secret": settings.client_secret,
    }
    if code_verifier:
        payload["code_verifier"] = code_verifier

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(
                settings.token_url,
                data=payload,
                headers={"Accept": "application/json"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Token exchange failed: %s - %s",
                exc.response.status_code,
                sanitize_for_log(exc.response.text),
            )
            raise TokenExchangeError(
                f"Token exchange failed: {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Token exchange request failed: %s", sanitize_for_log(str(exc)))
            raise TokenExchangeError(f"Token exchange request failed: {exc}") from exc

    return parse_token_response(response)


def parse_token_response(response: httpx.Response) -> OIDCTokenSet:
    try:
        data: Any = response.json()
    except ValueError as exc:
        raise TokenExchangeError("Token response is not valid JSON") from exc

    if not isinstance(data, dict) or not data.get("access_token"):
        raise TokenExchangeError("Token response missing required field 'access_token'")

    expires_in = data.get("expires_in")
    try:
        expires_in = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None

    return OIDCTokenSet(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=expires_in,
        id_token=data.get("id_token"),
        scope=data.get("scope"),
    )
