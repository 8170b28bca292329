from datetime import datetime
import enum
from typing import Optional, List, FrozenSet
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class CatalogItem(BaseModel):
    """Read-only snapshot of a catalog item as seen by the scorers."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    title: str = ""
    genre: Optional[str] = None
    creator: Optional[str] = None
    publisher: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    rating: float = 0.0
    total_readers: int = 0
    recent_acquisitions: int = 0
    recent_avg_rating: Optional[float] = None
    published_at: Optional[datetime] = None
    visible: bool = True
    is_free: bool = False
    page_count: Optional[int] = None


class HeldItem(BaseModel):
    """One entry of a user's library together with the user's own rating and progress."""
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    rating: Optional[float] = None
    progress_percent: float = 0.0
    added_at: datetime
    is_completed: bool = False
    last_read_at: Optional[datetime] = None
    reading_seconds: float = 0.0


class CatalogOrder(str, enum.Enum):
    RATING = "rating"  # rating desc
    TRENDING = "trending"  # recent acquisitions desc, recent avg rating desc
    NEWEST = "newest"  # published_at desc, rating desc


class CatalogFilter(BaseModel):
    """
    Immutable filter criteria for catalog queries.

    Every field is optional and combined with AND. The repository adapter
    translates this into its own query language.
    """
    model_config = ConfigDict(frozen=True)

    genres: Optional[FrozenSet[str]] = None
    creator: Optional[str] = None
    exclude_item_ids: FrozenSet[UUID] = frozenset()
    min_rating: Optional[float] = None
    min_recent_acquisitions: Optional[int] = None
    published_after: Optional[datetime] = None
    visible_only: bool = True


class OverlapStats(BaseModel):
    """How another user's library overlaps the requester's."""
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    shared_items: int
    held_items: int
    avg_rating_diff: Optional[float] = None  # None when no shared item was rated by both
