from datetime import datetime
import enum
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator
from readnext.schemas.catalog import CatalogItem


class SourceType(str, enum.Enum):
    """Signal sources, declared in producer order (earlier members win score ties)."""
    COLLABORATIVE = "collaborative"
    CONTENT_BASED = "content_based"
    TRENDING = "trending"
    NEW_RELEASE = "new_release"


class InteractionAction(str, enum.Enum):
    CLICKED = "clicked"
    DISMISSED = "dismissed"
    ADDED_TO_LIBRARY = "added_to_library"
    STARTED_READING = "started_reading"


class GenerationStatus(str, enum.Enum):
    OK = "ok"
    EMPTY = "empty"  # every scorer ran, nothing qualified
    UNAVAILABLE = "unavailable"  # every scorer failed


REASON_LABELS = {
    "similar_genre": "Similar to genres you enjoy",
    "same_creator": "From a creator you've read",
    "highly_rated": "Highly rated by other readers",
    "popular_now": "Trending among readers",
    "collaborative_filtering": "Readers like you also enjoyed",
    "new_release": "New release in your favorite genre",
    "similar_readers": "Popular with similar readers",
}


def describe_reason(code: str) -> str:
    """Human-readable label for a reason code."""
    return REASON_LABELS.get(code) or code.replace("_", " ").capitalize()


def confidence_level(score: float) -> str:
    if score >= 0.9:
        return "very_high"
    if score >= 0.8:
        return "high"
    if score >= 0.6:
        return "medium"
    return "low"


class SimilarUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    similarity: float = Field(ge=0.0, le=1.0)
    shared_items: int


class RecommendationCandidate(BaseModel):
    """A scored item produced by one signal source."""
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    score: float
    source: SourceType
    reasons: List[str] = Field(default_factory=list)
    item: Optional[CatalogItem] = None

    @field_validator("score")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        return min(max(float(value), 0.0), 1.0)

    @property
    def confidence(self) -> str:
        return confidence_level(self.score)

    @property
    def reason_labels(self) -> List[str]:
        return [describe_reason(code) for code in self.reasons]


class RecommendationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[RecommendationCandidate] = Field(default_factory=list)
    status: GenerationStatus = GenerationStatus.OK
    generated_at: datetime


class StoredRecommendationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    item_id: UUID
    source: SourceType
    score: float
    reasons: List[str] = Field(default_factory=list)
    generated_at: datetime
    expires_at: datetime
    clicked_at: Optional[datetime] = None
    dismissed: bool = False

    @field_validator("reasons", mode="before")
    @classmethod
    def reasons_default(cls, value):
        return value or []


# ----------------------------
# HTTP facade payloads
# ----------------------------
class RecommendationItem(BaseModel):
    item_id: str
    title: Optional[str] = None
    genre: Optional[str] = None
    creator: Optional[str] = None
    average_rating: Optional[float] = None
    page_count: Optional[int] = None
    is_free: Optional[bool] = None
    published_at: Optional[datetime] = None
    tags: Optional[List[str]] = None
    score: float
    source: SourceType
    reasons: List[str]
    reason_labels: List[str]
    confidence: str


class RecommendationsResponse(BaseModel):
    items: List[RecommendationItem]
    total: int
    status: GenerationStatus
    generated_at: datetime


class InteractionRequest(BaseModel):
    item_id: UUID
    action: str  # One of: clicked, dismissed, added_to_library, started_reading


class InteractionResponse(BaseModel):
    success: bool
    updated: bool
