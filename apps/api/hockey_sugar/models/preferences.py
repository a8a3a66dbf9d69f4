"""Per-user glucose threshold preferences."""

import uuid

from sqlalchemy import Float, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hockey_sugar.models.base import Base, TimestampMixin

DEFAULT_LOW_THRESHOLD = 70.0
DEFAULT_HIGH_THRESHOLD = 180.0


class UserPreferences(Base, TimestampMixin):
    """Low/high thresholds in mg/dL. One row per user, created lazily."""

    __tablename__ = "user_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    low_threshold: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_LOW_THRESHOLD
    )
    high_threshold: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_HIGH_THRESHOLD
    )

    def __repr__(self) -> str:
        return (
            f"<UserPreferences(user_id={self.user_id}, "
            f"low={self.low_threshold}, high={self.high_threshold})>"
        )
