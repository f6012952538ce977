"""Account provisioning for external-IdP logins.

Turns a resolved login into Team, AuthenticationProvider, User and
UserAuthentication rows. Repeating the same login is a no-op apart from
refreshing tokens: rows are keyed by ``(provider name, provider id)`` and
``(authentication provider, subject)``, both backed by unique constraints.
Inserts run inside savepoints so a concurrent login that wins the race
surfaces as an ``IntegrityError`` and the winner's row is read back.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from oidc_accounts.api.services.errors import ProvisioningError
from oidc_accounts.api.utils.logging import mask_email, sanitize_for_log
from oidc_accounts.models.authentication import (
    AuthenticationProvider,
    UserAuthentication,
)
from oidc_accounts.models.teams import Team
from oidc_accounts.models.users import User, UserRole

logger = logging.getLogger(__name__)

MAX_INSERT_ATTEMPTS = 3


@dataclass(frozen=True)
class TeamDescriptor:
    team_id: Optional[uuid.UUID]
    name: str
    domain: str
    subdomain: str


@dataclass(frozen=True)
class UserDescriptor:
    name: str
    email: str
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class AuthenticationProviderDescriptor:
    name: str
    provider_id: str


@dataclass(frozen=True)
class AuthenticationDescriptor:
    provider_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scopes: list[str] = field(default_factory=list)


@dataclass
class ProvisionedAccount:
    user: User
    team: Team
    authentication_provider: AuthenticationProvider
    is_new_team: bool = False
    is_new_user: bool = False
    is_new_provider: bool = False


class AccountProvisioner:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def provision(
        self,
        *,
        team: TeamDescriptor,
        user: UserDescriptor,
        authentication_provider: AuthenticationProviderDescriptor,
        authentication: AuthenticationDescriptor,
    ) -> ProvisionedAccount:
        (
            team_record,
            provider,
            is_new_team,
            is_new_provider,
        ) = await self._provision_team(team, authentication_provider)

        user_record, is_new_user = await self._provision_user(
            team_record,
            provider,
            user,
            authentication,
            first_user=is_new_team,
        )

        logger.info(
            "Provisioned %s login for %s team=%s new_team=%s new_user=%s",
            sanitize_for_log(authentication_provider.name),
            mask_email(user.email),
            team_record.id,
            is_new_team,
            is_new_user,
        )

        return ProvisionedAccount(
            user=user_record,
            team=team_record,
            authentication_provider=provider,
            is_new_team=is_new_team,
            is_new_user=is_new_user,
            is_new_provider=is_new_provider,
        )

    # --- Team and provider ---

    async def _provision_team(
        self,
        team: TeamDescriptor,
        descriptor: AuthenticationProviderDescriptor,
    ) -> tuple[Team, AuthenticationProvider, bool, bool]:
        for _ in range(MAX_INSERT_ATTEMPTS):
            provider = await self.get_provider(descriptor.name, descriptor.provider_id)
            if provider is not None:
                team_record = await self._team_for_provider(provider, team.team_id)
                return team_record, provider, False, False

            try:
                if team.team_id is not None:
                    team_record = await self.session.get(Team, team.team_id)
                    if team_record is None:
                        raise ProvisioningError("Team not found")
                    provider = await self._insert_provider(team_record, descriptor)
                    return team_record, provider, False, True

                async with self.session.begin_nested():
                    team_record = Team(
                        id=uuid.uuid4(),
                        name=team.name,
                        subdomain=await self._available_subdomain(team.subdomain),
                    )
                    self.session.add(team_record)
                    await self.session.flush()
                    provider = AuthenticationProvider(
                        id=uuid.uuid4(),
                        name=descriptor.name,
                        provider_id=descriptor.provider_id,
                        team_id=team_record.id,
                        enabled=True,
                    )
                    self.session.add(provider)
                    await self.session.flush()

                logger.info(
                    "Created team %s for %s provider %s",
                    sanitize_for_log(team_record.subdomain),
                    sanitize_for_log(descriptor.name),
                    sanitize_for_log(descriptor.provider_id),
                )
                return team_record, provider, True, True
            except IntegrityError:
                logger.info(
                    "Concurrent provisioning of %s provider %s, re-reading",
                    sanitize_for_log(descriptor.name),
                    sanitize_for_log(descriptor.provider_id),
                )

        raise ProvisioningError("Could not provision team after repeated conflicts")

    async def get_provider(
        self, name: str, provider_id: str
    ) -> Optional[AuthenticationProvider]:
        stmt = select(AuthenticationProvider).where(
            and_(
                AuthenticationProvider.name == name,
                AuthenticationProvider.provider_id == provider_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _team_for_provider(
        self, provider: AuthenticationProvider, requested_team_id: Optional[uuid.UUID]
    ) -> Team:
        if requested_team_id is not None and provider.team_id != requested_team_id:
            raise ProvisioningError(
                "Authentication provider is registered to a different team"
            )
        if not provider.enabled:
            raise ProvisioningError("Authentication provider is disabled")

        team_record = await self.session.get(Team, provider.team_id)
        if team_record is None:
            raise ProvisioningError("Team not found")
        return team_record

    async def _insert_provider(
        self, team_record: Team, descriptor: AuthenticationProviderDescriptor
    ) -> AuthenticationProvider:
        async with self.session.begin_nested():
            provider = AuthenticationProvider(
                id=uuid.uuid4(),
                name=descriptor.name,
                provider_id=descriptor.provider_id,
                team_id=team_record.id,
                enabled=True,
            )
            self.session.add(provider)
            await self.session.flush()
        logger.info(
            "Attached %s provider %s to team=%s",
            sanitize_for_log(descriptor.name),
            sanitize_for_log(descriptor.provider_id),
            team_record.id,
        )
        return provider

    async def _available_subdomain(self, candidate: str) -> Optional[str]:
        if not candidate:
            return None

        stmt = select(Team.subdomain).where(
            (Team.subdomain == candidate) | Team.subdomain.like(f"{candidate}-%")
        )
        result = await self.session.execute(stmt)
        taken = {row for row in result.scalars().all()}
        if candidate not in taken:
            return candidate

        suffix = 1
        while f"{candidate}-{suffix}" in taken:
            suffix += 1
        return f"{candidate}-{suffix}"

    # --- User and authentication ---

    async def _provision_user(
        self,
        team_record: Team,
        provider: AuthenticationProvider,
        descriptor: UserDescriptor,
        authentication: AuthenticationDescriptor,
        first_user: bool,
    ) -> tuple[User, bool]:
        now = datetime.now(timezone.utc)
        expires_at = (
            now + timedelta(seconds=authentication.expires_in)
            if authentication.expires_in
            else None
        )

        for _ in range(MAX_INSERT_ATTEMPTS):
            auth_record = await self._get_authentication(
                provider.id, authentication.provider_id
            )
            if auth_record is not None:
                user_record = await self.session.get(User, auth_record.user_id)
                if user_record is None:
                    raise ProvisioningError("User for authentication not found")
                self._apply_tokens(auth_record, authentication, expires_at)
                await self._refresh_profile(user_record, descriptor, now)
                await self.session.flush()
                return user_record, False

            try:
                async with self.session.begin_nested():
                    user_record = await self._get_user_by_email(
                        team_record.id, descriptor.email
                    )
                    is_new_user = user_record is None
                    if user_record is None:
                        user_record = User(
                            id=uuid.uuid4(),
                            team_id=team_record.id,
                            email=descriptor.email.strip().lower(),
                            name=descriptor.name,
                            avatar_url=descriptor.avatar_url,
                            role=(
                                UserRole.ADMIN.value
                                if first_user
                                else UserRole.MEMBER.value
                            ),
                        )
                        self.session.add(user_record)
                        await self.session.flush()

                    auth_record = UserAuthentication(
                        id=uuid.uuid4(),
                        user_id=user_record.id,
                        authentication_provider_id=provider.id,
                        provider_id=authentication.provider_id,
                    )
                    self._apply_tokens(auth_record, authentication, expires_at)
                    self.session.add(auth_record)
                    user_record.last_active_at = now
                    await self.session.flush()
                return user_record, is_new_user
            except IntegrityError:
                logger.info(
                    "Concurrent provisioning of user %s, re-reading",
                    mask_email(descriptor.email),
                )

        raise ProvisioningError("Could not provision user after repeated conflicts")

    async def _get_authentication(
        self, authentication_provider_id: uuid.UUID, subject: str
    ) -> Optional[UserAuthentication]:
        stmt = select(UserAuthentication).where(
            and_(
                UserAuthentication.authentication_provider_id
                == authentication_provider_id,
                UserAuthentication.provider_id == subject,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_user_by_email(self, team_id: uuid.UUID, email: str) -> Optional[User]:
        stmt = select(User).where(
            and_(User.team_id == team_id, func.lower(User.email) == email.lower())
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _apply_tokens(
        record: UserAuthentication,
        authentication: AuthenticationDescriptor,
        expires_at: Optional[datetime],
    ) -> None:
        record.access_token = authentication.access_token
        if authentication.refresh_token:
            record.refresh_token = authentication.refresh_token
        record.expires_at = expires_at
        record.scopes = list(authentication.scopes)

    async def _refresh_profile(
        self, user_record: User, descriptor: UserDescriptor, now: datetime
    ) -> None:
        email = descriptor.email.strip().lower()
        if email != user_record.email:
            clash = await self._get_user_by_email(user_record.team_id, email)
            if clash is None:
                user_record.email = email
            else:
                logger.warning(
                    "Not updating email of user=%s, %s is taken in team=%s",
                    user_record.id,
                    mask_email(email),
                    user_record.team_id,
                )
        if descriptor.avatar_url and descriptor.avatar_url != user_record.avatar_url:
            user_record.avatar_url = descriptor.avatar_url
        user_record.last_active_at = now
