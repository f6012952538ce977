from __future__ import annotations

import uuid
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from oidc_accounts.config import OIDCSettings
from oidc_accounts.models import AuthenticationProvider, Base, Team


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}")

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the transaction.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def settings() -> OIDCSettings:
    return OIDCSettings(
        client_id="client-123",
        client_secret="secret-456",
        authorization_url="https://idp.example.com/authorize",
        token_url="https://idp.example.com/token",
        userinfo_url="https://idp.example.com/userinfo",
        base_url="https://app.example.com",
        app_name="Acme Wiki",
    )


@pytest.fixture
def make_team(session):
    async def _make_team(subdomain: str = "acme", domain: str | None = None) -> Team:
        team = Team(id=uuid.uuid4(), name="Acme", subdomain=subdomain, domain=domain)
        session.add(team)
        await session.commit()
        return team

    return _make_team


@pytest.fixture
def make_provider(session):
    async def _make_provider(team: Team, provider_id: str, name: str = "oidc"):
        provider = AuthenticationProvider(
            id=uuid.uuid4(), name=name, provider_id=provider_id, team_id=team.id
        )
        session.add(provider)
        await session.commit()
        return provider

    return _make_provider
