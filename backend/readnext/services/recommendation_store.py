"""
Recommendation store.

Persists the blended ranking per (user, item) pair with a validity window and
records click/dismiss feedback against stored rows. Concurrent generations for
the same user resolve by last write wins.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from readnext.core.config import settings
from readnext.core.exceptions import InvalidRequestError, RecommendationStoreError
from readnext.models import UserRecommendation
from readnext.schemas.recommendation import (
    InteractionAction,
    RecommendationCandidate,
    StoredRecommendationOut,
)
from readnext.utils.timing import utcnow

logger = logging.getLogger(__name__)


def parse_action(action) -> InteractionAction:
    """Validate a feedback action, raising InvalidRequestError for unknown values."""
    try:
        return InteractionAction(action)
    except ValueError:
        valid = ", ".join(a.value for a in InteractionAction)
        raise InvalidRequestError(f"Unknown interaction action {action!r}; expected one of: {valid}")


class RecommendationStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = utcnow,
        ttl_days: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self.ttl = timedelta(days=ttl_days or settings.RECOMMENDATION_TTL_DAYS)

    def persist(
        self,
        user_id: UUID,
        candidates: Iterable[RecommendationCandidate],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Upsert one row per candidate and prune this user's stale rows.

        Returns the number of rows written. Raises RecommendationStoreError if
        the write fails; nothing is committed in that case.
        """
        now = now or self._clock()
        candidates = list(candidates)
        try:
            return self._write(user_id, candidates, now)
        except IntegrityError:
            # A concurrent generation inserted one of our pairs first; the
            # retry finds those rows and overwrites them (last write wins).
            logger.debug("Concurrent insert for user_id=%s; retrying as update", user_id)
            try:
                return self._write(user_id, candidates, now)
            except SQLAlchemyError as e:
                raise RecommendationStoreError(f"Could not persist recommendations for user {user_id}") from e
        except SQLAlchemyError as e:
            raise RecommendationStoreError(f"Could not persist recommendations for user {user_id}") from e

    def _write(self, user_id: UUID, candidates: List[RecommendationCandidate], now: datetime) -> int:
        db: Session = self._session_factory()
        try:
            pruned = (
                db.query(UserRecommendation)
                .filter(
                    UserRecommendation.user_id == user_id,
                    UserRecommendation.generated_at < now - self.ttl,
                )
                .delete(synchronize_session=False)
            )

            existing = {}
            if candidates:
                rows = (
                    db.query(UserRecommendation)
                    .filter(
                        UserRecommendation.user_id == user_id,
                        UserRecommendation.item_id.in_([c.item_id for c in candidates]),
                    )
                    .all()
                )
                existing = {row.item_id: row for row in rows}

            for candidate in candidates:
                values = {
                    "source": candidate.source.value,
                    "score": candidate.score,
                    "reasons": list(candidate.reasons),
                    "generated_at": now,
                    "expires_at": now + self.ttl,
                }
                row = existing.get(candidate.item_id)
                if row is None:
                    row = UserRecommendation(user_id=user_id, item_id=candidate.item_id, **values)
                    db.add(row)
                    existing[candidate.item_id] = row
                else:
                    for key, value in values.items():
                        setattr(row, key, value)

            db.commit()
            logger.debug(
                "Persisted %s recommendations for user %s (pruned %s stale rows)",
                len(candidates), user_id, pruned,
            )
            return len(candidates)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Failed to persist recommendations for user %s: %s", user_id, e, exc_info=True)
            raise
        finally:
            db.close()

    def track_interaction(
        self,
        user_id: UUID,
        item_id: UUID,
        action,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Record feedback against the stored recommendation for (user, item).

        - clicked → clicked_at = now
        - dismissed → dismissed = true
        - added_to_library / started_reading → logged only

        Returns True when a stored row was updated.
        """
        action = parse_action(action)
        now = now or self._clock()

        if action not in (InteractionAction.CLICKED, InteractionAction.DISMISSED):
            logger.info("Recommendation interaction: user_id=%s, item_id=%s, action=%s", user_id, item_id, action.value)
            return False

        db: Session = self._session_factory()
        try:
            recommendation = (
                db.query(UserRecommendation)
                .filter(
                    UserRecommendation.user_id == user_id,
                    UserRecommendation.item_id == item_id,
                )
                .first()
            )
            if recommendation is None:
                logger.debug("No stored recommendation for user_id=%s, item_id=%s; %s ignored", user_id, item_id, action.value)
                return False

            if action == InteractionAction.CLICKED:
                recommendation.clicked_at = now
            else:
                recommendation.dismissed = True
            db.commit()
            logger.info("Recommendation interaction: user_id=%s, item_id=%s, action=%s", user_id, item_id, action.value)
            return True
        except SQLAlchemyError as e:
            db.rollback()
            raise RecommendationStoreError(
                f"Could not record {action.value} for user {user_id}, item {item_id}"
            ) from e
        finally:
            db.close()

    def get_active(
        self,
        user_id: UUID,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[StoredRecommendationOut]:
        """Non-expired, non-dismissed rows, best score first."""
        now = now or self._clock()
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(UserRecommendation)
                    .filter(
                        UserRecommendation.user_id == user_id,
                        UserRecommendation.dismissed.is_(False),
                        UserRecommendation.expires_at > now,
                    )
                    .order_by(
                        UserRecommendation.score.desc(),
                        UserRecommendation.generated_at.desc(),
                        UserRecommendation.id,
                    )
                    .limit(limit)
                    .all()
                )
                return [StoredRecommendationOut.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise RecommendationStoreError(f"Could not load recommendations for user {user_id}") from e

    def get_dismissed_item_ids(self, user_id: UUID, now: Optional[datetime] = None) -> Set[UUID]:
        """Items the user dismissed while the stored recommendation was still valid."""
        now = now or self._clock()
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(UserRecommendation.item_id)
                    .filter(
                        UserRecommendation.user_id == user_id,
                        UserRecommendation.dismissed.is_(True),
                        UserRecommendation.expires_at > now,
                    )
                    .all()
                )
                return {row.item_id for row in rows}
        except SQLAlchemyError as e:
            raise RecommendationStoreError(f"Could not load dismissals for user {user_id}") from e

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every row whose validity window has passed. Returns the number removed."""
        now = now or self._clock()
        db: Session = self._session_factory()
        try:
            removed = (
                db.query(UserRecommendation)
                .filter(UserRecommendation.expires_at <= now)
                .delete(synchronize_session=False)
            )
            db.commit()
            logger.info("Purged %s expired recommendations", removed)
            return removed
        except SQLAlchemyError as e:
            db.rollback()
            raise RecommendationStoreError("Could not purge expired recommendations") from e
        finally:
            db.close()
