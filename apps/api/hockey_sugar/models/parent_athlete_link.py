"""Parent-to-athlete link model.

Many-to-many: an athlete may have several parents or coaches, and a
parent may look after several athletes.
"""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hockey_sugar.models.base import Base, TimestampMixin


class ParentAthleteLink(Base, TimestampMixin):
    """Links a parent or coach user to an athlete user."""

    __tablename__ = "parent_athlete_links"
    __table_args__ = (
        UniqueConstraint("parent_id", "athlete_id", name="uq_parent_athlete"),
        CheckConstraint("parent_id != athlete_id", name="ck_no_self_link"),
    )

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
        index=True,
    )

    parent = relationship("User", foreign_keys=[parent_id])
    athlete = relationship("User", foreign_keys=[athlete_id])

    def __repr__(self) -> str:
        return (
            f"<ParentAthleteLink(parent={self.parent_id}, "
            f"athlete={self.athlete_id})>"
        )
