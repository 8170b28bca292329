import logging
from typing import Collection, List, Optional
from uuid import UUID

from readnext.core.config import settings
from readnext.repositories.base import InteractionRepository
from readnext.schemas.recommendation import SimilarUser

logger = logging.getLogger(__name__)


def jaccard(shared: int, held_a: int, held_b: int) -> float:
    """Jaccard index of two libraries from their sizes and overlap."""
    union = held_a + held_b - shared
    if union <= 0:
        return 0.0
    return shared / union


def min_shared_items(held_count: int) -> int:
    """Overlap a candidate needs before it counts as similar."""
    return max(settings.MIN_SHARED_ITEMS, int(held_count * settings.MIN_SHARED_FRACTION))


def user_similarity(
    shared: int,
    held_a: int,
    held_b: int,
    avg_rating_diff: Optional[float],
) -> float:
    """
    Weighted blend of library overlap and rating agreement.

    ``avg_rating_diff`` is None when no shared item was rated by both users;
    the rating term then uses the neutral compatibility.
    """
    if avg_rating_diff is None:
        compatibility = settings.NEUTRAL_RATING_COMPATIBILITY
    else:
        compatibility = 1 - min(avg_rating_diff / 5, 1)
    return (
        settings.SIMILARITY_JACCARD_WEIGHT * jaccard(shared, held_a, held_b)
        + settings.SIMILARITY_RATING_WEIGHT * compatibility
    )


def find_similar_users(
    repository: InteractionRepository,
    user_id: UUID,
    held_item_ids: Collection[UUID],
) -> List[SimilarUser]:
    """
    Rank other users by similarity to ``user_id``, most similar first.

    Returns an empty list when the user holds fewer than MIN_INTERACTIONS
    items: the collaborative signal is too noisy below that.
    """
    held = set(held_item_ids)
    if len(held) < settings.MIN_INTERACTIONS:
        logger.debug(
            "Skipping similarity for user %s: %s held items (< %s)",
            user_id, len(held), settings.MIN_INTERACTIONS,
        )
        return []

    threshold = min_shared_items(len(held))
    similar: List[SimilarUser] = []
    for stats in repository.get_overlap_stats(user_id, held, min_shared=threshold):
        if stats.user_id == user_id or stats.shared_items < threshold:
            continue
        similarity = user_similarity(stats.shared_items, len(held), stats.held_items, stats.avg_rating_diff)
        similar.append(
            SimilarUser(
                user_id=stats.user_id,
                similarity=min(max(similarity, 0.0), 1.0),
                shared_items=stats.shared_items,
            )
        )

    similar.sort(key=lambda s: (s.similarity, s.shared_items), reverse=True)
    similar = similar[: settings.MAX_SIMILAR_USERS]
    logger.debug("Found %s similar users for user %s (min shared=%s)", len(similar), user_id, threshold)
    return similar
