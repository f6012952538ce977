"""Request-scoped tenant context.

A login either lands on an existing team (its custom domain or its
subdomain of the app host, or the only team of a single-tenant install)
or on no team at all, in which case a team is created on first login.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oidc_accounts.config import OIDCSettings
from oidc_accounts.models.teams import Team


class Client(str, Enum):
    WEB = "web"
    DESKTOP = "desktop"


@dataclass(frozen=True)
class TenantContext:
    team: Optional[Team] = None
    client: Client = Client.WEB

    @property
    def team_id(self):
        return self.team.id if self.team is not None else None


def parse_client(value: Optional[str]) -> Client:
    if value == Client.DESKTOP.value:
        return Client.DESKTOP
    return Client.WEB


async def get_team_from_request(
    session: AsyncSession, host: Optional[str], settings: OIDCSettings
) -> Optional[Team]:
    if not settings.multi_tenant:
        stmt = select(Team).order_by(Team.created_at).limit(1)
        result = await session.execute(stmt)
        return result.scalars().first()

    hostname = (host or "").split(":", 1)[0].strip().lower()
    if not hostname:
        return None

    result = await session.execute(select(Team).where(func.lower(Team.domain) == hostname))
    team = result.scalar_one_or_none()
    if team is not None:
        return team

    base_host = settings.base_host
    if base_host and hostname.endswith(f".{base_host}"):
        subdomain = hostname[: -len(base_host) - 1]
        if subdomain and "." not in subdomain:
            result = await session.execute(select(Team).where(Team.subdomain == subdomain))
            return result.scalar_one_or_none()

    return None
