import enum
from typing import List
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class PreferredLength(str, enum.Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class ActivityLevel(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class UserProfile(BaseModel):
    """Derived reading preferences of one user. Rebuilt on demand, never mutated."""
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    favorite_genres: List[str] = Field(default_factory=list)
    favorite_creators: List[str] = Field(default_factory=list)
    favorite_publishers: List[str] = Field(default_factory=list)
    favorite_tags: List[str] = Field(default_factory=list)
    avg_rating: float = 3.5
    avg_reading_time: float = 1800.0
    preferred_length: PreferredLength = PreferredLength.LONG
    activity_level: ActivityLevel = ActivityLevel.LOW
    total_items_read: int = 0
    total_items_held: int = 0
    reading_recency: float = Field(0.0, ge=0.0, le=1.0)
    genre_diversity: int = 0
    completion_rate: float = Field(0.5, ge=0.0, le=1.0)
