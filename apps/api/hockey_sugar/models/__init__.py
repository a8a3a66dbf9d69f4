# Database Models
from hockey_sugar.models.base import Base, TimestampMixin
from hockey_sugar.models.dexcom_token import DexcomToken
from hockey_sugar.models.glucose import (
    GlucoseReading,
    GlucoseStatus,
    ReadingSource,
    StatusType,
)
from hockey_sugar.models.message import Message
from hockey_sugar.models.parent_athlete_link import ParentAthleteLink
from hockey_sugar.models.preferences import UserPreferences
from hockey_sugar.models.user import User, UserRole

__all__ = [
    "Base",
    "DexcomToken",
    "GlucoseReading",
    "GlucoseStatus",
    "Message",
    "ParentAthleteLink",
    "ReadingSource",
    "StatusType",
    "TimestampMixin",
    "User",
    "UserPreferences",
    "UserRole",
]
