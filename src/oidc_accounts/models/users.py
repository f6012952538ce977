"""User accounts scoped to a team."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from oidc_accounts.models.base import Base, GUID


class UserRole(str, Enum):
    ADMIN = "admin"  # First user of a team
    MEMBER = "member"
    VIEWER = "viewer"


class User(Base):
    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    team_id = Column(
        GUID(),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    avatar_url = Column(Text, nullable=True)
    role = Column(Text, default=UserRole.MEMBER.value, nullable=False)

    last_active_at = Column(DateTime(timezone=True), nullable=True)
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

    team = relationship("Team", back_populates="users")
    authentications = relationship(
        "UserAuthentication",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("team_id", "email", name="uq_users_team_email"),
    )

    def __repr__(self) -> str:
        return f"<User {self.email} team={self.team_id}>"
