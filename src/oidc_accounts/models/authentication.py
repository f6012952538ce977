"""Authentication provider configuration and per-user IdP links.

An AuthenticationProvider binds a team to one external IdP instance
(``name`` is the protocol, e.g. ``oidc``; ``provider_id`` identifies the
instance). A UserAuthentication links a user to their subject at that IdP
and keeps the tokens issued at login.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from oidc_accounts.models.base import Base, GUID


class AuthenticationProvider(Base):
    __tablename__ = "authentication_providers"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    provider_id = Column(Text, nullable=False)
    team_id = Column(
        GUID(),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    team = relationship("Team", back_populates="authentication_providers")

    __table_args__ = (
        UniqueConstraint("name", "provider_id", name="uq_auth_provider_name_id"),
        Index("ix_auth_providers_team_name", "team_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<AuthenticationProvider {self.name}:{self.provider_id} team={self.team_id}>"


class UserAuthentication(Base):
    __tablename__ = "user_authentications"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    authentication_provider_id = Column(
        GUID(),
        ForeignKey("authentication_providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Subject identifier at the IdP
    provider_id = Column(Text, nullable=False)

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    scopes = Column(JSON, nullable=False, default=list)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user = relationship("User", back_populates="authentications")
    authentication_provider = relationship("AuthenticationProvider")

    __table_args__ = (
        UniqueConstraint(
            "authentication_provider_id",
            "provider_id",
            name="uq_user_auth_provider_subject",
        ),
    )

    def __repr__(self) -> str:
        return f"<UserAuthentication user={self.user_id} subject={self.provider_id}>"
