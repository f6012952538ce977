"""Claim reconciliation for OIDC logins.

Identity providers disagree on where claims live. Some return everything
from the userinfo endpoint, others (ADFS among them) return little more
than ``sub`` there and put the rest in the ID token. This module merges
both sources into one ``CanonicalIdentity``.

OpenID Connect standard claims:
https://openid.net/specs/openid-connect-core-1_0.html#StandardClaims
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import jwt

from oidc_accounts.api.services.errors import IdentityIncompleteError
from oidc_accounts.api.utils.logging import mask_email, sanitize_for_log
from oidc_accounts.utils.urls import is_base64_url

logger = logging.getLogger(__name__)

Claims = Mapping[str, Any]
PathSegment = Union[str, int]

_PATH_TOKEN = re.compile(r"""\[(\d+)\]|\[["']([^"']*)["']\]|([^.\[\]]+)""")


@dataclass(frozen=True)
class ClaimPath:
    """Location of a claim inside a (possibly nested) claim set.

    Parsed once from configuration so lookups never reinterpret dots.
    ``profile.names[0]`` becomes ``("profile", "names", 0)``.
    """

    segments: tuple[PathSegment, ...]

    @classmethod
    def parse(cls, path: str) -> "ClaimPath":
        segments: list[PathSegment] = []
        for index, quoted, name in _PATH_TOKEN.findall(path.strip()):
            if index:
                segments.append(int(index))
            elif quoted:
                segments.append(quoted)
            elif name:
                segments.append(name)
        if not segments:
            raise ValueError(f"Invalid claim path: {path!r}")
        return cls(tuple(segments))

    def lookup(self, claims: Claims) -> Any:
        current: Any = claims
        for segment in self.segments:
            if isinstance(segment, int):
                if not isinstance(current, list) or segment >= len(current):
                    return None
                current = current[segment]
            else:
                if not isinstance(current, Mapping):
                    return None
                current = current.get(segment)
            if current is None:
                return None
        return current

    def __str__(self) -> str:
        out = ""
        for segment in self.segments:
            if isinstance(segment, int):
                out += f"[{segment}]"
            else:
                out += f".{segment}" if out else segment
        return out


def claim_text(claims: Claims, key: str | ClaimPath) -> Optional[str]:
    """Non-empty string value of a claim, or None.

    Numbers are accepted and converted, since several providers send
    numeric user ids. Booleans, objects and blank strings count as absent.
    """
    path = key if isinstance(key, ClaimPath) else ClaimPath((key,))
    value = path.lookup(claims)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class DecodedToken:
    """Claims read from an ID token, or an empty set with the reason why not."""

    claims: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def decode_id_token(id_token: Optional[str]) -> DecodedToken:
    """Read the ID token payload without verifying its signature.

    The token arrived directly from the token endpoint over TLS, so it is
    only used as a second claim source. Any problem yields empty claims.
    """
    if not id_token:
        return DecodedToken(error="id_token not present")

    try:
        payload = jwt.decode(
            id_token,
            options={"verify_signature": False},
        )
    except jwt.PyJWTError as exc:
        logger.error("id_token decode failed: %s", sanitize_for_log(str(exc)))
        return DecodedToken(error=f"decode failed: {exc}")

    if not isinstance(payload, Mapping):
        logger.warning("Decoded id_token is not a valid object")
        return DecodedToken(error="payload is not an object")

    return DecodedToken(claims=dict(payload))


@dataclass(frozen=True)
class CanonicalIdentity:
    email: str
    external_user_id: str
    display_name: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None


def _avatar_from(profile: Claims, email: str) -> Optional[str]:
    picture = claim_text(profile, "picture")
    if picture is None:
        return None
    if is_base64_url(picture):
        # Only fetchable URLs are stored.
        logger.debug(
            "Filtering out Base64 data URL from avatar for %s", mask_email(email)
        )
        return None
    return picture


def normalize(
    profile: Claims,
    token: Claims,
    username_claim: str | ClaimPath = "preferred_username",
) -> CanonicalIdentity:
    """Build the canonical identity from userinfo and ID token claims.

    Raises:
        IdentityIncompleteError: If email, name or subject cannot be derived.
    """
    username_path = (
        username_claim
        if isinstance(username_claim, ClaimPath)
        else ClaimPath.parse(username_claim)
    )

    email = claim_text(profile, "email") or claim_text(token, "email")
    if not email:
        raise IdentityIncompleteError(
            "email",
            "An email field was not returned in the profile or id_token, "
            "but is required.",
        )

    username = claim_text(profile, username_path) or claim_text(token, username_path)
    name = claim_text(profile, "name") or username or claim_text(profile, "username")
    if not name:
        raise IdentityIncompleteError(
            "name",
            f'Neither a {username_path}, "name" or "username" was returned '
            "in the profile, but at least one is required.",
        )

    subject = claim_text(profile, "sub") or claim_text(profile, "id")
    if not subject:
        raise IdentityIncompleteError(
            "subject",
            'A user id was not returned in the profile, searched in "sub" and "id".',
        )

    return CanonicalIdentity(
        email=email,
        external_user_id=subject,
        display_name=name,
        username=username,
        avatar_url=_avatar_from(profile, email),
    )
