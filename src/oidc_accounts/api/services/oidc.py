"""OIDC callback handling after the authorization code exchange.

``OIDCCallbackHandler.handle_callback`` loads the userinfo profile, reads the
ID token, reconciles both into one identity, resolves the team and the
authentication provider the login belongs to, and hands the result to the
account provisioner. Every check runs before the provisioner, so a
rejected login writes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from oidc_accounts.api.services.authorization import OIDCTokenSet
from oidc_accounts.api.services.claims import (
    CanonicalIdentity,
    ClaimPath,
    decode_id_token,
    normalize,
)
from oidc_accounts.api.services.provisioner import (
    AccountProvisioner,
    AuthenticationDescriptor,
    AuthenticationProviderDescriptor,
    ProvisionedAccount,
    TeamDescriptor,
    UserDescriptor,
)
from oidc_accounts.api.services.resolver import ResolvedTenant, TenantResolver
from oidc_accounts.api.services.tenants import Client, TenantContext
from oidc_accounts.api.services.userinfo import UserInfoFetcher
from oidc_accounts.api.utils.logging import mask_email
from oidc_accounts.config import OIDCSettings

logger = logging.getLogger(__name__)


@dataclass
class AuthenticationResult:
    account: ProvisionedAccount
    identity: CanonicalIdentity
    tenant: ResolvedTenant
    client: Client

    @property
    def user(self):
        return self.account.user

    @property
    def team(self):
        return self.account.team

    @property
    def is_new_user(self) -> bool:
        return self.account.is_new_user

    @property
    def is_new_team(self) -> bool:
        return self.account.is_new_team


class OIDCCallbackHandler:
    def __init__(
        self,
        settings: OIDCSettings,
        resolver: TenantResolver,
        provisioner: AccountProvisioner,
    ):
        self.settings = settings
        self.resolver = resolver
        self.provisioner = provisioner
        self.username_claim = ClaimPath.parse(settings.username_claim)

    async def handle_callback(
        self,
        context: TenantContext,
        tokens: OIDCTokenSet,
        fetcher: UserInfoFetcher,
    ) -> AuthenticationResult:
        """Reconcile one login.

        Raises:
            UpstreamFetchError: If the userinfo request fails.
            IdentityIncompleteError: If email, name or subject is missing.
            MalformedIdentityError: If the email has no domain.
            ProvisioningError: Passed through from the provisioner.
        """
        profile = await fetcher.fetch(self.settings.userinfo_url, tokens.access_token)

        decoded = decode_id_token(tokens.id_token)
        if not decoded.ok:
            logger.debug("Continuing without id_token claims: %s", decoded.error)

        identity = normalize(profile, decoded.claims, self.username_claim)

        tenant = await self.resolver.resolve(
            identity.email,
            context.team_id,
            self.settings.authorization_url,
        )

        account = await self.provisioner.provision(
            team=TeamDescriptor(
                team_id=context.team_id,
                name=self.settings.app_name,
                domain=tenant.domain,
                subdomain=tenant.subdomain,
            ),
            user=UserDescriptor(
                name=identity.display_name,
                email=identity.email,
                avatar_url=identity.avatar_url,
            ),
            authentication_provider=AuthenticationProviderDescriptor(
                name=tenant.provider_ref.provider_name,
                provider_id=tenant.provider_ref.provider_id,
            ),
            authentication=AuthenticationDescriptor(
                provider_id=identity.external_user_id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_in=tokens.expires_in,
                scopes=self.settings.scope_list,
            ),
        )

        logger.info(
            "OIDC login reconciled for %s provider=%s team=%s",
            mask_email(identity.email),
            tenant.provider_ref.provider_id,
            account.team.id,
        )

        return AuthenticationResult(
            account=account,
            identity=identity,
            tenant=tenant,
            client=context.client,
        )

