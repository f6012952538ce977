from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from oidc_accounts.api.services.errors import MalformedIdentityError
from oidc_accounts.api.services.resolver import (
    SQLProviderLookup,
    TenantResolver,
    provider_id_from_url,
)

AUTHORIZE_URL = "https://idp.example.com/authorize"


def _lookup(*results):
    lookup = SimpleNamespace()
    lookup.find = AsyncMock(side_effect=list(results))
    return lookup


class TestTenantResolver:
    @pytest.mark.asyncio
    async def test_domain_and_subdomain(self):
        resolver = TenantResolver(_lookup())
        tenant = await resolver.resolve("user@acme.io", None, AUTHORIZE_URL)

        assert tenant.domain == "acme.io"
        assert tenant.subdomain == "acme"

    @pytest.mark.asyncio
    async def test_new_tenant_uses_authorization_host(self):
        lookup = _lookup()
        resolver = TenantResolver(lookup)
        tenant = await resolver.resolve("user@acme.io", None, AUTHORIZE_URL)

        assert tenant.provider_ref.provider_id == "idp.example.com"
        assert tenant.provider_ref.provider_name == "oidc"
        assert tenant.provider_ref.team_id is None
        lookup.find.assert_not_called()

    @pytest.mark.asyncio
    async def test_exact_domain_match_skips_fallback(self):
        team_id = uuid.uuid4()
        lookup = _lookup(SimpleNamespace(provider_id="acme.io"))
        resolver = TenantResolver(lookup)

        tenant = await resolver.resolve("user@acme.io", team_id, AUTHORIZE_URL)

        assert tenant.provider_ref.provider_id == "acme.io"
        assert tenant.provider_ref.team_id == team_id
        lookup.find.assert_awaited_once_with(team_id, "oidc", "acme.io")

    @pytest.mark.asyncio
    async def test_falls_back_to_any_team_provider(self):
        team_id = uuid.uuid4()
        lookup = _lookup(None, SimpleNamespace(provider_id="login.acme.net"))
        resolver = TenantResolver(lookup)

        tenant = await resolver.resolve("user@acme.io", team_id, AUTHORIZE_URL)

        assert tenant.provider_ref.provider_id == "login.acme.net"
        assert lookup.find.await_count == 2
        lookup.find.assert_awaited_with(team_id, "oidc")

    @pytest.mark.asyncio
    async def test_known_team_without_provider_uses_authorization_host(self):
        lookup = _lookup(None, None)
        resolver = TenantResolver(lookup)

        tenant = await resolver.resolve("user@acme.io", uuid.uuid4(), AUTHORIZE_URL)

        assert tenant.provider_ref.provider_id == "idp.example.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["no-at-sign", "user@", "@acme.io"])
    async def test_malformed_email(self, email):
        resolver = TenantResolver(_lookup())
        with pytest.raises(MalformedIdentityError):
            await resolver.resolve(email, None, AUTHORIZE_URL)


class TestSQLProviderLookup:
    @pytest.mark.asyncio
    async def test_scoped_and_unscoped_lookup(self, session, make_team, make_provider):
        team = await make_team()
        other = await make_team(subdomain="other")
        await make_provider(other, "acme.io")
        stored = await make_provider(team, "login.acme.net")

        lookup = SQLProviderLookup(session)

        assert await lookup.find(team.id, "oidc", "acme.io") is None
        found = await lookup.find(team.id, "oidc")
        assert found.id == stored.id

    @pytest.mark.asyncio
    async def test_ignores_other_provider_names(self, session, make_team, make_provider):
        team = await make_team()
        await make_provider(team, "acme.io", name="saml")

        lookup = SQLProviderLookup(session)
        assert await lookup.find(team.id, "oidc") is None

    @pytest.mark.asyncio
    async def test_resolver_against_database(self, session, make_team, make_provider):
        team = await make_team()
        await make_provider(team, "login.acme.net")

        resolver = TenantResolver(SQLProviderLookup(session))
        tenant = await resolver.resolve("User@Acme.io", team.id, AUTHORIZE_URL)

        assert tenant.domain == "acme.io"
        assert tenant.provider_ref.provider_id == "login.acme.net"


def test_provider_id_from_url():
    assert provider_id_from_url("https://login.example.org:8443/oauth2/auth") == (
        "login.example.org"
    )
    with pytest.raises(ValueError):
        provider_id_from_url("/relative/authorize")
