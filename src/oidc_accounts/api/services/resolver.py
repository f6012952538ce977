"""Tenant and authentication-provider resolution for OIDC logins.

Only one OIDC provider per team is supported. When a team is known, the
provider whose ``provider_id`` equals the email domain wins; otherwise any
OIDC provider of the team is used. With two different IdPs configured on
one team the fallback picks one of them, so logins from the other IdP
attach to it. This matches how existing teams were matched historically
and must not change without migrating those teams.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from oidc_accounts.api.services.errors import MalformedIdentityError
from oidc_accounts.api.utils.logging import sanitize_for_log
from oidc_accounts.models.authentication import AuthenticationProvider
from oidc_accounts.utils.domains import slugify_domain
from oidc_accounts.utils.email import parse_email

logger = logging.getLogger(__name__)

OIDC_PROVIDER_NAME = "oidc"


@dataclass(frozen=True)
class AuthenticationProviderRef:
    provider_name: str
    provider_id: str
    team_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class ResolvedTenant:
    domain: str
    subdomain: str
    provider_ref: AuthenticationProviderRef


class ProviderLookup(Protocol):
    async def find(
        self,
        team_id: uuid.UUID,
        name: str,
        provider_id: Optional[str] = None,
    ) -> Optional[AuthenticationProvider]: ...


class SQLProviderLookup:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(
        self,
        team_id: uuid.UUID,
        name: str,
        provider_id: Optional[str] = None,
    ) -> Optional[AuthenticationProvider]:
        conditions = [
            AuthenticationProvider.team_id == team_id,
            AuthenticationProvider.name == name,
        ]
        if provider_id is not None:
            conditions.append(AuthenticationProvider.provider_id == provider_id)

        stmt = (
            select(AuthenticationProvider)
            .where(and_(*conditions))
            .order_by(AuthenticationProvider.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()


def provider_id_from_url(authorization_url: str) -> str:
    """Hostname of the IdP authorization endpoint."""
    hostname = urlparse(authorization_url).hostname
    if not hostname:
        raise ValueError(f"Authorization URL has no hostname: {authorization_url!r}")
    return hostname


class TenantResolver:
    def __init__(self, lookup: ProviderLookup, provider_name: str = OIDC_PROVIDER_NAME):
        self.lookup = lookup
        self.provider_name = provider_name

    async def find_existing_provider(
        self, team_id: uuid.UUID, domain: str
    ) -> Optional[AuthenticationProvider]:
        provider = await self.lookup.find(team_id, self.provider_name, domain)
        if provider is not None:
            return provider
        return await self.lookup.find(team_id, self.provider_name)

    async def resolve(
        self,
        email: str,
        team_id: Optional[uuid.UUID],
        authorization_url: str,
    ) -> ResolvedTenant:
        try:
            domain = parse_email(email).domain
        except ValueError as exc:
            raise MalformedIdentityError(
                "Email returned by the identity provider has no domain"
            ) from exc

        existing = (
            await self.find_existing_provider(team_id, domain)
            if team_id is not None
            else None
        )

        if existing is not None:
            provider_id = str(existing.provider_id)
            logger.debug(
                "Matched existing %s provider %s for team=%s",
                self.provider_name,
                sanitize_for_log(provider_id),
                team_id,
            )
        else:
            # Anchored to the IdP that redirected here, never to claim data.
            provider_id = provider_id_from_url(authorization_url)

        return ResolvedTenant(
            domain=domain,
            subdomain=slugify_domain(domain),
            provider_ref=AuthenticationProviderRef(
                provider_name=self.provider_name,
                provider_id=provider_id,
                team_id=team_id,
            ),
        )
