"""Team (tenant) model.

Teams are the multi-tenancy boundary. Users and authentication providers
always belong to exactly one team.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Text
from sqlalchemy.orm import relationship

from oidc_accounts.models.base import Base, GUID


class Team(Base):
    __tablename__ = "teams"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    subdomain = Column(Text, nullable=True, unique=True, index=True)
    # Custom domain the team is served from (e.g. wiki.acme.io)
    domain = Column(Text, nullable=True, unique=True)

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

    users = relationship(
        "User",
        back_populates="team",
        cascade="all, delete-orphan",
    )
    authentication_providers = relationship(
        "AuthenticationProvider",
        back_populates="team",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Team {self.subdomain or self.id}>"
