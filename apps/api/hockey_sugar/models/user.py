"""User model with role-based access control."""

import enum
import uuid

from sqlalchemy import Enum, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hockey_sugar.models.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    """User roles.

    - ADMIN: Full system access
    - PARENT: Links athletes, connects Dexcom, sets thresholds, sends messages
    - COACH: Same capabilities as a parent for the athletes they are linked to
    - ATHLETE: The person wearing the CGM; sees their own status and messages
    """

    ADMIN = "admin"
    PARENT = "parent"
    COACH = "coach"
    ATHLETE = "athlete"


class User(Base, TimestampMixin):
    """User account model.

    Attributes:
        id: Unique user identifier (UUID)
        email: Login email (unique)
        name: Display name
        hashed_password: Password hash, managed by the login service
        role: User role
        is_admin: Grants admin rights regardless of role
        is_athlete: Marks the athlete in single-athlete deployments
        is_active: Whether the account is active
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="userrole",
            create_type=False,  # Created in migration
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=UserRole.PARENT,
    )
    is_admin: Mapped[bool] = mapped_column(default=False)
    is_athlete: Mapped[bool] = mapped_column(default=False)
    is_active: Mapped[bool] = mapped_column(default=True)

    @property
    def is_pollable_athlete(self) -> bool:
        """Athletes are the users whose CGM data is polled."""
        return self.role == UserRole.ATHLETE or self.is_athlete

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
