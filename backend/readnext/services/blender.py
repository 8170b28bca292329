import logging
import math
from typing import Dict, List, Mapping, Tuple
from uuid import UUID

from readnext.core.config import settings
from readnext.schemas.recommendation import RecommendationCandidate, SourceType

logger = logging.getLogger(__name__)


def source_shares() -> Dict[SourceType, float]:
    return {
        SourceType.COLLABORATIVE: settings.SHARE_COLLABORATIVE,
        SourceType.CONTENT_BASED: settings.SHARE_CONTENT_BASED,
        SourceType.TRENDING: settings.SHARE_TRENDING,
        SourceType.NEW_RELEASE: settings.SHARE_NEW_RELEASE,
    }


def source_quota(source: SourceType, limit: int) -> int:
    """Slots reserved for ``source`` before merging (rounded up so small limits still mix sources)."""
    return math.ceil(round(limit * source_shares()[source], 9))


def blend(
    candidate_lists: Mapping[SourceType, List[RecommendationCandidate]],
    limit: int,
) -> List[RecommendationCandidate]:
    """
    Merge per-source candidates into one ranking of at most ``limit`` items.

    Each source is cut to its quota, candidates are collected per item id in
    SourceType order, the highest score per item survives (earliest wins a
    tie), and the survivors are stably sorted by score descending.
    """
    if limit <= 0:
        return []

    # item_id -> (arrival index, best candidate)
    arena: Dict[UUID, Tuple[int, RecommendationCandidate]] = {}
    arrivals = 0
    for source in SourceType:
        ranked = sorted(candidate_lists.get(source) or [], key=lambda c: c.score, reverse=True)
        for candidate in ranked[: source_quota(source, limit)]:
            current = arena.get(candidate.item_id)
            if current is None:
                arena[candidate.item_id] = (arrivals, candidate)
            elif candidate.score > current[1].score:
                arena[candidate.item_id] = (current[0], candidate)
            arrivals += 1

    survivors = sorted(arena.values(), key=lambda entry: (-entry[1].score, entry[0]))
    blended = [candidate for _, candidate in survivors[:limit]]
    logger.debug("Blended %s candidates into %s (limit=%s)", arrivals, len(blended), limit)
    return blended
