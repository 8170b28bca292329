"""
Signal scorers.

One scorer per SourceType member. Each reads the shared profile and
similarity results from a ScoringContext, issues its own read-only catalog
queries and returns candidates sorted by score descending.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Type
from uuid import UUID

from readnext.core.config import settings
from readnext.repositories.base import ReadingDataRepository
from readnext.schemas.catalog import CatalogFilter, CatalogItem, CatalogOrder
from readnext.schemas.profile import UserProfile
from readnext.schemas.recommendation import RecommendationCandidate, SimilarUser, SourceType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringContext:
    """Inputs shared by every scorer within one generation."""
    profile: UserProfile
    excluded_item_ids: FrozenSet[UUID]
    now: datetime
    similar_users: List[SimilarUser] = field(default_factory=list)


def _rank_by_score(candidates: List[RecommendationCandidate]) -> List[RecommendationCandidate]:
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def genre_rank_score(genre, favorite_genres: List[str], decay: float) -> float:
    """1.0 for the top favorite genre, minus ``decay`` per rank; 0 when not a favorite."""
    if not genre or genre not in favorite_genres:
        return 0.0
    return max(0.0, 1 - favorite_genres.index(genre) * decay)


class Scorer(ABC):
    source: SourceType

    def __init__(self, repository: ReadingDataRepository):
        self.repository = repository

    @abstractmethod
    def score(self, context: ScoringContext) -> List[RecommendationCandidate]:
        raise NotImplementedError

    def _candidate(self, item: CatalogItem, score: float, reasons: List[str]) -> RecommendationCandidate:
        return RecommendationCandidate(
            item_id=item.id,
            score=score,
            source=self.source,
            reasons=reasons,
            item=item,
        )


class CollaborativeScorer(Scorer):
    """Items that similar readers rated highly and mostly finished."""
    source = SourceType.COLLABORATIVE
    reasons = ["collaborative_filtering", "similar_readers"]

    def score(self, context: ScoringContext) -> List[RecommendationCandidate]:
        if not context.similar_users:
            return []

        liked = []
        for similar in context.similar_users:
            for held in self.repository.get_held_items(similar.user_id):
                if held.item_id in context.excluded_item_ids:
                    continue
                if held.rating is None or held.rating < settings.COLLAB_MIN_RATING:
                    continue
                if held.progress_percent <= settings.COLLAB_MIN_PROGRESS:
                    continue
                liked.append((similar, held))

        if not liked:
            return []

        attributes = self.repository.get_item_attributes({held.item_id for _, held in liked})
        favorite_genres = context.profile.favorite_genres
        candidates = []
        for similar, held in liked:
            item = attributes.get(held.item_id)
            if item is None or not item.visible:
                continue
            score = (held.rating / 5) * similar.similarity
            if item.genre and item.genre in favorite_genres:
                score *= settings.COLLAB_GENRE_BOOST
            if held.rating >= settings.COLLAB_HIGH_RATING:
                score *= settings.COLLAB_HIGH_RATING_BOOST
            candidates.append(self._candidate(item, min(score, 1.0), list(self.reasons)))

        return _rank_by_score(candidates)


def content_score(item: CatalogItem, profile: UserProfile, weight: float) -> float:
    """Attribute similarity of ``item`` to the profile, scaled by the pass weight."""
    score = settings.CONTENT_RATING_WEIGHT * (item.rating / 5)
    score += settings.CONTENT_GENRE_WEIGHT * genre_rank_score(
        item.genre, profile.favorite_genres, settings.CONTENT_GENRE_DECAY
    )
    if item.creator and item.creator in profile.favorite_creators:
        score += settings.CONTENT_CREATOR_WEIGHT
    score += settings.CONTENT_POPULARITY_WEIGHT * min(
        item.total_readers / settings.CONTENT_POPULARITY_READERS, 1
    )
    return min(score * weight, 1.0)


class ContentBasedScorer(Scorer):
    """
    Well-rated unread items from the user's favorite genres and creators.

    The genre and creator passes are independent; an item found by both is
    emitted twice and resolved by the blender.
    """
    source = SourceType.CONTENT_BASED

    def score(self, context: ScoringContext) -> List[RecommendationCandidate]:
        profile = context.profile
        candidates = []

        for index, genre in enumerate(profile.favorite_genres[: settings.TOP_GENRES]):
            weight = 1 - index * settings.CONTENT_GENRE_DECAY
            items = self.repository.query_catalog(
                CatalogFilter(
                    genres=frozenset({genre}),
                    exclude_item_ids=context.excluded_item_ids,
                    min_rating=profile.avg_rating - settings.CONTENT_RATING_SLACK,
                ),
                CatalogOrder.RATING,
                settings.CONTENT_ITEMS_PER_GENRE,
            )
            for item in items:
                candidates.append(
                    self._candidate(item, content_score(item, profile, weight), ["similar_genre", "highly_rated"])
                )

        for index, creator in enumerate(profile.favorite_creators[: settings.TOP_CREATORS]):
            weight = 1 - index * settings.CONTENT_CREATOR_DECAY
            items = self.repository.query_catalog(
                CatalogFilter(creator=creator, exclude_item_ids=context.excluded_item_ids),
                CatalogOrder.RATING,
                settings.CONTENT_ITEMS_PER_CREATOR,
            )
            for item in items:
                candidates.append(
                    self._candidate(item, content_score(item, profile, weight), ["same_creator", "highly_rated"])
                )

        return _rank_by_score(candidates)


class TrendingScorer(Scorer):
    source = SourceType.TRENDING

    def score(self, context: ScoringContext) -> List[RecommendationCandidate]:
        items = self.repository.query_catalog(
            CatalogFilter(
                exclude_item_ids=context.excluded_item_ids,
                min_recent_acquisitions=settings.TRENDING_MIN_ACQUISITIONS,
            ),
            CatalogOrder.TRENDING,
            settings.TRENDING_LIMIT,
        )
        favorite_genres = context.profile.favorite_genres
        candidates = []
        for item in items:
            score = settings.TRENDING_POPULARITY_WEIGHT * min(
                item.recent_acquisitions / settings.TRENDING_SATURATION, 1
            )
            score += settings.TRENDING_RATING_WEIGHT * (item.rating / 5)
            if item.genre and item.genre in favorite_genres:
                score += settings.TRENDING_GENRE_WEIGHT
            candidates.append(self._candidate(item, score, ["popular_now", "highly_rated"]))
        return _rank_by_score(candidates)


class NewReleaseScorer(Scorer):
    source = SourceType.NEW_RELEASE

    def score(self, context: ScoringContext) -> List[RecommendationCandidate]:
        favorite_genres = context.profile.favorite_genres
        if not favorite_genres:
            return []

        window = settings.NEW_RELEASE_WINDOW_DAYS
        items = self.repository.query_catalog(
            CatalogFilter(
                genres=frozenset(favorite_genres),
                exclude_item_ids=context.excluded_item_ids,
                published_after=context.now - timedelta(days=window),
            ),
            CatalogOrder.NEWEST,
            settings.NEW_RELEASE_LIMIT,
        )
        candidates = []
        for item in items:
            if item.published_at is None:
                continue
            days_since = (context.now - item.published_at).days
            recency = max(0.0, 1 - days_since / window)
            score = settings.NEW_RELEASE_RECENCY_WEIGHT * min(recency, 1.0)
            score += settings.NEW_RELEASE_RATING_WEIGHT * (item.rating / 5)
            score += settings.NEW_RELEASE_GENRE_WEIGHT * genre_rank_score(
                item.genre, favorite_genres, settings.NEW_RELEASE_GENRE_DECAY
            )
            candidates.append(self._candidate(item, score, ["new_release", "similar_genre"]))
        return _rank_by_score(candidates)


SCORER_CLASSES: Dict[SourceType, Type[Scorer]] = {
    SourceType.COLLABORATIVE: CollaborativeScorer,
    SourceType.CONTENT_BASED: ContentBasedScorer,
    SourceType.TRENDING: TrendingScorer,
    SourceType.NEW_RELEASE: NewReleaseScorer,
}


def build_scorers(repository: ReadingDataRepository) -> Dict[SourceType, Scorer]:
    """One scorer instance per source, in SourceType order."""
    return {source: SCORER_CLASSES[source](repository) for source in SourceType}
