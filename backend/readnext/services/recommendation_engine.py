"""
Recommendation generation pipeline.

profile -> similar users -> four scorers (concurrently, under their own deadline)
-> blend -> persist. The pipeline knows nothing about the result cache; see
recommendation_service for the cache-aside wrapper.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple
from uuid import UUID

from readnext.core.config import settings
from readnext.core.exceptions import InvalidRequestError
from readnext.repositories.base import ReadingDataRepository
from readnext.schemas.profile import UserProfile
from readnext.schemas.recommendation import (
    GenerationStatus,
    RecommendationCandidate,
    RecommendationResult,
    SimilarUser,
    SourceType,
)
from readnext.services.blender import blend
from readnext.services.profile_builder import build_profile
from readnext.services.recommendation_store import RecommendationStore
from readnext.services.scorers import Scorer, ScoringContext, build_scorers
from readnext.services.similarity import find_similar_users
from readnext.utils.instrumentation import EventRecorder
from readnext.utils.timing import Deadline, log_elapsed, now_ms, utcnow

logger = logging.getLogger(__name__)


def validate_limit(limit) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidRequestError(f"limit must be a positive integer (got {limit!r})")
    return limit


class RecommendationEngine:
    def __init__(
        self,
        repository: ReadingDataRepository,
        store: RecommendationStore,
        scorers: Optional[Dict[SourceType, Scorer]] = None,
        events: Optional[EventRecorder] = None,
        clock: Callable[[], datetime] = utcnow,
        max_workers: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.repository = repository
        self.store = store
        self.scorers = scorers if scorers is not None else build_scorers(repository)
        self.events = events
        self.clock = clock
        self.max_workers = max_workers or settings.SCORER_MAX_WORKERS
        self.timeout_seconds = timeout_seconds or settings.SCORER_TIMEOUT_SECONDS

    def build_profile(self, user_id: UUID) -> UserProfile:
        return build_profile(self.repository, user_id, now=self.clock())

    def generate(
        self,
        user_id: UUID,
        limit: int,
        profile: Optional[UserProfile] = None,
    ) -> RecommendationResult:
        """
        Produce, persist and return the ranked recommendations for ``user_id``.

        Profile-building and store failures propagate. Scorer failures are
        logged and skipped; if every scorer fails the result has status
        UNAVAILABLE and nothing is persisted.
        """
        validate_limit(limit)
        now = self.clock()
        t = now_ms()
        logger.info("Generating recommendations for user %s (limit=%s)", user_id, limit)

        if profile is None:
            profile = build_profile(self.repository, user_id, now=now)
        held_ids = frozenset(h.item_id for h in self.repository.get_held_items(user_id))
        excluded = held_ids | self.store.get_dismissed_item_ids(user_id, now=now)
        if settings.DEBUG:
            t = log_elapsed(t, f"user={user_id} phase=profile")

        similar_users, similarity_failed = self._find_similar_users(user_id, held_ids)
        if settings.DEBUG:
            t = log_elapsed(t, f"user={user_id} phase=similarity")

        context = ScoringContext(
            profile=profile,
            excluded_item_ids=frozenset(excluded),
            now=now,
            similar_users=similar_users,
        )
        candidate_lists, failed = self._run_scorers(user_id, context)
        if similarity_failed:
            failed.add(SourceType.COLLABORATIVE)
        if settings.DEBUG:
            t = log_elapsed(t, f"user={user_id} phase=scorers")

        if self.scorers and set(self.scorers) <= failed:
            logger.error("All scorers failed for user %s; no recommendations available", user_id)
            return RecommendationResult(items=[], status=GenerationStatus.UNAVAILABLE, generated_at=now)

        items = blend(candidate_lists, limit)
        self.store.persist(user_id, items, now=now)
        if settings.DEBUG:
            log_elapsed(t, f"user={user_id} phase=blend_persist")

        status = GenerationStatus.OK if items else GenerationStatus.EMPTY
        logger.info(
            "Generated %s recommendations for user %s (status=%s, failed_sources=%s)",
            len(items), user_id, status.value, sorted(s.value for s in failed),
        )
        if self.events is not None:
            self.events.record(
                "recommendations_generated",
                user_id=user_id,
                properties={
                    "limit": limit,
                    "count": len(items),
                    "status": status.value,
                    "item_ids": [str(c.item_id) for c in items],
                    "sources": {s.value: sum(1 for c in items if c.source == s) for s in SourceType},
                    "failed_sources": sorted(s.value for s in failed),
                },
            )
        return RecommendationResult(items=items, status=status, generated_at=now)

    def _find_similar_users(self, user_id: UUID, held_ids) -> Tuple[List[SimilarUser], bool]:
        try:
            return find_similar_users(self.repository, user_id, held_ids), False
        except Exception:
            logger.warning("Similarity lookup failed for user %s; skipping collaborative signal", user_id, exc_info=True)
            return [], True

    def _run_scorers(
        self,
        user_id: UUID,
        context: ScoringContext,
    ) -> Tuple[Dict[SourceType, List[RecommendationCandidate]], Set[SourceType]]:
        results: Dict[SourceType, List[RecommendationCandidate]] = {source: [] for source in self.scorers}
        failed: Set[SourceType] = set()
        if not self.scorers:
            return results, failed

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(self.scorers)),
            thread_name_prefix="readnext-scorer",
        )
        # Budget covers the scorers only
        deadline = Deadline(self.timeout_seconds)
        try:
            futures = {
                executor.submit(scorer.score, context): source
                for source, scorer in self.scorers.items()
            }
            done, not_done = wait(futures, timeout=deadline.remaining())

            for future in not_done:
                source = futures[future]
                future.cancel()
                failed.add(source)
                logger.warning(
                    "Scorer %s timed out after %.2fs for user %s; contributing no candidates",
                    source.value, deadline.seconds, user_id,
                )

            for future in done:
                source = futures[future]
                try:
                    results[source] = future.result()
                except Exception:
                    failed.add(source)
                    logger.warning("Scorer %s failed for user %s; skipping", source.value, user_id, exc_info=True)
        finally:
            # Don't block on a scorer stuck past the deadline
            executor.shutdown(wait=False, cancel_futures=True)

        return results, failed
