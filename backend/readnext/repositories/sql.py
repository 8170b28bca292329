"""
SQLAlchemy adapter for the interaction and catalog collaborators.

Each call opens its own short-lived session, so scorer threads never share
one. Recent acquisition counters are aggregated from ``user_library`` over
the trailing trending window.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session, aliased, sessionmaker

from readnext.core.config import settings
from readnext.models import Item, LibraryEntry
from readnext.repositories.base import ReadingDataRepository
from readnext.schemas.catalog import CatalogFilter, CatalogItem, CatalogOrder, HeldItem, OverlapStats
from readnext.utils.timing import utcnow

logger = logging.getLogger(__name__)


class SqlCatalogRepository(ReadingDataRepository):
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = utcnow,
        recent_window_days: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._recent_window_days = recent_window_days or settings.TRENDING_WINDOW_DAYS

    # ----------------------------
    # Interactions
    # ----------------------------
    def get_held_items(self, user_id: UUID) -> List[HeldItem]:
        with self._session_factory() as db:
            entries = (
                db.query(LibraryEntry)
                .filter(LibraryEntry.user_id == user_id)
                .order_by(LibraryEntry.added_at, LibraryEntry.id)
                .all()
            )
            return [
                HeldItem(
                    item_id=entry.item_id,
                    rating=entry.rating,
                    progress_percent=entry.progress_percent or 0.0,
                    added_at=entry.added_at,
                    is_completed=bool(entry.is_completed),
                    last_read_at=entry.last_read_at,
                    reading_seconds=entry.total_reading_seconds or 0.0,
                )
                for entry in entries
            ]

    def find_overlapping_users(self, user_id: UUID, item_ids: Iterable[UUID]) -> List[UUID]:
        item_ids = list(item_ids)
        if not item_ids:
            return []
        with self._session_factory() as db:
            rows = (
                db.query(LibraryEntry.user_id)
                .filter(
                    LibraryEntry.item_id.in_(item_ids),
                    LibraryEntry.user_id != user_id,
                )
                .distinct()
                .all()
            )
            return [row.user_id for row in rows]

    def get_overlap_stats(self, user_id: UUID, item_ids: Iterable[UUID], min_shared: int = 1) -> List[OverlapStats]:
        item_ids = list(item_ids)
        if not item_ids:
            return []
        mine = aliased(LibraryEntry)
        theirs = aliased(LibraryEntry)
        rating_diff = case(
            (and_(mine.rating.isnot(None), theirs.rating.isnot(None)), func.abs(mine.rating - theirs.rating)),
            else_=None,
        )
        with self._session_factory() as db:
            overlap = (
                db.query(
                    theirs.user_id.label("user_id"),
                    func.count(theirs.id).label("shared_items"),
                    func.avg(rating_diff).label("avg_rating_diff"),
                )
                .join(mine, and_(mine.item_id == theirs.item_id, mine.user_id == user_id))
                .filter(theirs.user_id != user_id, theirs.item_id.in_(item_ids))
                .group_by(theirs.user_id)
                .having(func.count(theirs.id) >= min_shared)
                .subquery()
            )
            held = (
                db.query(LibraryEntry.user_id.label("user_id"), func.count(LibraryEntry.id).label("held_items"))
                .filter(LibraryEntry.user_id.in_(select(overlap.c.user_id)))
                .group_by(LibraryEntry.user_id)
                .subquery()
            )
            rows = (
                db.query(overlap.c.user_id, overlap.c.shared_items, held.c.held_items, overlap.c.avg_rating_diff)
                .join(held, held.c.user_id == overlap.c.user_id)
                .order_by(overlap.c.user_id)
                .all()
            )
            logger.debug("get_overlap_stats user=%s candidates=%s", user_id, len(rows))
            return [
                OverlapStats(
                    user_id=row.user_id,
                    shared_items=row.shared_items,
                    held_items=row.held_items,
                    avg_rating_diff=float(row.avg_rating_diff) if row.avg_rating_diff is not None else None,
                )
                for row in rows
            ]

    # ----------------------------
    # Catalog
    # ----------------------------
    def get_item_attributes(self, item_ids: Iterable[UUID]) -> Dict[UUID, CatalogItem]:
        item_ids = list(item_ids)
        if not item_ids:
            return {}
        with self._session_factory() as db:
            query, _, _ = self._base_query(db)
            rows = query.filter(Item.id.in_(item_ids)).all()
            return {row[0].id: self._to_catalog_item(*row) for row in rows}

    def query_catalog(
        self, criteria: CatalogFilter, order: CatalogOrder, limit: int
    ) -> List[CatalogItem]:
        if limit <= 0:
            return []
        with self._session_factory() as db:
            query, recent_count, recent_avg = self._base_query(db)

            if criteria.visible_only:
                query = query.filter(Item.is_visible.is_(True))
            if criteria.genres is not None:
                if not criteria.genres:
                    return []
                query = query.filter(Item.genre.in_(sorted(criteria.genres)))
            if criteria.creator is not None:
                query = query.filter(Item.creator == criteria.creator)
            if criteria.exclude_item_ids:
                query = query.filter(~Item.id.in_(list(criteria.exclude_item_ids)))
            if criteria.min_rating is not None:
                query = query.filter(Item.average_rating >= criteria.min_rating)
            if criteria.min_recent_acquisitions is not None:
                query = query.filter(recent_count >= criteria.min_recent_acquisitions)
            if criteria.published_after is not None:
                query = query.filter(Item.published_at >= criteria.published_after)

            if order == CatalogOrder.TRENDING:
                query = query.order_by(
                    recent_count.desc(),
                    recent_avg.desc().nulls_last(),
                    Item.average_rating.desc(),
                )
            elif order == CatalogOrder.NEWEST:
                query = query.order_by(
                    Item.published_at.desc().nulls_last(),
                    Item.average_rating.desc(),
                )
            else:
                query = query.order_by(Item.average_rating.desc())

            # Stable order for equal sort keys
            query = query.order_by(Item.title, Item.id)

            rows = query.limit(limit).all()
            logger.debug(
                "query_catalog order=%s limit=%s returned=%s", order.value, limit, len(rows)
            )
            return [self._to_catalog_item(*row) for row in rows]

    def _base_query(self, db: Session):
        since = self._clock() - timedelta(days=self._recent_window_days)
        recent = (
            db.query(
                LibraryEntry.item_id.label("item_id"),
                func.count(LibraryEntry.id).label("recent_acquisitions"),
                func.avg(LibraryEntry.rating).label("recent_avg_rating"),
            )
            .filter(LibraryEntry.added_at >= since)
            .group_by(LibraryEntry.item_id)
            .subquery()
        )
        recent_count = func.coalesce(recent.c.recent_acquisitions, 0)
        recent_avg = recent.c.recent_avg_rating
        query = (
            db.query(Item, recent_count.label("recent_acquisitions"), recent_avg.label("recent_avg_rating"))
            .outerjoin(recent, recent.c.item_id == Item.id)
        )
        return query, recent_count, recent_avg

    @staticmethod
    def _to_catalog_item(item: Item, recent_acquisitions, recent_avg_rating) -> CatalogItem:
        return CatalogItem(
            id=item.id,
            title=item.title,
            genre=item.genre,
            creator=item.creator,
            publisher=item.publisher,
            tags=list(item.tags or []),
            rating=item.average_rating or 0.0,
            total_readers=item.total_readers or 0,
            recent_acquisitions=int(recent_acquisitions or 0),
            recent_avg_rating=float(recent_avg_rating) if recent_avg_rating is not None else None,
            published_at=item.published_at,
            visible=bool(item.is_visible),
            is_free=bool(item.is_free),
            page_count=item.page_count,
        )
