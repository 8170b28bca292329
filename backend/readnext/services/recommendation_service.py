"""
Entry points other subsystems call.

Wraps the generation pipeline in a cache-aside layer: results are cached per
(user, limit) and profiles per user, concurrent misses for the same key are
coalesced, and feedback invalidates everything cached for the user.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import sessionmaker

from readnext.core.config import settings
from readnext.repositories.sql import SqlCatalogRepository
from readnext.schemas.profile import UserProfile
from readnext.schemas.recommendation import (
    GenerationStatus,
    RecommendationResult,
    StoredRecommendationOut,
)
from readnext.services.cache import CacheBackend, MemoryCache, SingleFlight
from readnext.services.recommendation_engine import RecommendationEngine, validate_limit
from readnext.services.recommendation_store import RecommendationStore, parse_action
from readnext.utils.instrumentation import EventRecorder
from readnext.utils.timing import utcnow

logger = logging.getLogger(__name__)


class RecommendationService:
    def __init__(
        self,
        engine: RecommendationEngine,
        store: RecommendationStore,
        cache: Optional[CacheBackend] = None,
        events: Optional[EventRecorder] = None,
        result_ttl: Optional[float] = None,
        profile_ttl: Optional[float] = None,
    ):
        self.engine = engine
        self.store = store
        self.cache = cache if cache is not None else MemoryCache()
        self.events = events
        self.result_ttl = result_ttl or settings.RECOMMENDATION_CACHE_TTL_SECONDS
        self.profile_ttl = profile_ttl or settings.PROFILE_CACHE_TTL_SECONDS
        self._flights = SingleFlight()
        self._version_lock = threading.Lock()

    # ----------------------------
    # Cache keys
    # ----------------------------
    def _version(self, user_id: UUID) -> str:
        # Fresh token on a miss, so entries cached under an evicted token are unreachable
        key = f"recommendations.user.{user_id}.version"
        version = self.cache.get(key)
        if version is None:
            with self._version_lock:
                version = self.cache.get(key)
                if version is None:
                    version = uuid4().hex
                    self.cache.set(key, version, ttl=0)
        return version

    def _result_key(self, user_id: UUID, limit: int) -> str:
        return f"recommendations.user.{user_id}.v{self._version(user_id)}.limit.{limit}"

    def _profile_key(self, user_id: UUID) -> str:
        return f"user.profile.{user_id}.v{self._version(user_id)}"

    # ----------------------------
    # Entry points
    # ----------------------------
    def generate_recommendations(
        self,
        user_id: UUID,
        limit: int = 10,
        refresh: bool = False,
    ) -> RecommendationResult:
        """
        Ranked recommendations for ``user_id``, at most ``limit`` items.

        Served from cache when possible. ``refresh`` drops the user's cached
        results and profile first. Raises InvalidRequestError for a
        non-positive limit.
        """
        validate_limit(limit)
        if refresh:
            self.invalidate_user_cache(user_id)

        key = self._result_key(user_id, limit)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        return self._flights.do(key, lambda: self._generate_and_cache(user_id, limit, key))

    def _generate_and_cache(self, user_id: UUID, limit: int, key: str) -> RecommendationResult:
        # A previous flight may have filled the key between our miss and our turn
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        result = self.engine.generate(user_id, limit, profile=self._get_profile(user_id))
        if result.status != GenerationStatus.UNAVAILABLE:
            self.cache.set(key, result, ttl=self.result_ttl)
        return result

    def _get_profile(self, user_id: UUID) -> UserProfile:
        key = self._profile_key(user_id)
        profile = self.cache.get(key)
        if profile is None:
            profile = self.engine.build_profile(user_id)
            self.cache.set(key, profile, ttl=self.profile_ttl)
        return profile

    def get_stored_recommendations(self, user_id: UUID, limit: int = 10) -> List[StoredRecommendationOut]:
        validate_limit(limit)
        return self.store.get_active(user_id, limit)

    def track_interaction(self, user_id: UUID, item_id: UUID, action) -> bool:
        """
        Record feedback on a recommendation and drop the user's cached results.

        Returns True when a stored recommendation row was updated. Raises
        InvalidRequestError for an unknown action before touching anything.
        """
        action = parse_action(action)
        try:
            updated = self.store.track_interaction(user_id, item_id, action)
        finally:
            self.invalidate_user_cache(user_id)

        if self.events is not None:
            self.events.record(
                "recommendation_interaction",
                user_id=user_id,
                properties={"item_id": str(item_id), "action": action.value, "updated": updated},
            )
        return updated

    def invalidate_user_cache(self, user_id: UUID) -> None:
        """Drop every cached result list and the cached profile for ``user_id``."""
        with self._version_lock:
            key = f"recommendations.user.{user_id}.version"
            previous = self.cache.get(key)
            if previous is not None:
                self.cache.delete(f"user.profile.{user_id}.v{previous}")
            version = uuid4().hex
            self.cache.set(key, version, ttl=0)
        logger.debug("Invalidated cached recommendations for user %s (version %s)", user_id, version)


def build_recommendation_service(
    session_factory: sessionmaker,
    cache: Optional[CacheBackend] = None,
    clock: Callable[[], datetime] = utcnow,
) -> RecommendationService:
    """Wire the SQL-backed repository, store and event recorder into a service."""
    repository = SqlCatalogRepository(session_factory, clock=clock)
    store = RecommendationStore(session_factory, clock=clock)
    events = EventRecorder(session_factory)
    engine = RecommendationEngine(repository, store, events=events, clock=clock)
    return RecommendationService(engine, store, cache=cache, events=events)
