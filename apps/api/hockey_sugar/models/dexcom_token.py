"""Dexcom OAuth token model.

Tokens are stored Fernet-encrypted. Each athlete has at most one Dexcom
connection, owned by the parent (or coach) who authorized it.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hockey_sugar.models.base import Base, TimestampMixin


class DexcomToken(Base, TimestampMixin):
    """Encrypted Dexcom access/refresh token pair for one athlete."""

    __tablename__ = "dexcom_tokens"
    __table_args__ = (UniqueConstraint("athlete_id", name="uq_dexcom_token_athlete"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    parent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    encrypted_access_token: Mapped[str] = mapped_column(Text, nullable=False)
    encrypted_refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Set when a refresh is rejected; automatic polling skips the athlete
    # until the account is reconnected.
    needs_reauth: Mapped[bool] = mapped_column(default=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_poll_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    parent = relationship("User", foreign_keys=[parent_id])
    athlete = relationship("User", foreign_keys=[athlete_id])

    def __repr__(self) -> str:
        return (
            f"<DexcomToken(athlete_id={self.athlete_id}, parent_id={self.parent_id}, "
            f"expires_at={self.expires_at}, needs_reauth={self.needs_reauth})>"
        )
