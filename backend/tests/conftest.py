"""Pytest configuration for backend tests."""
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from readnext.database import Base, init_db
from readnext.repositories.base import ReadingDataRepository
from readnext.schemas.catalog import CatalogFilter, CatalogItem, CatalogOrder, HeldItem
from readnext.services.recommendation_store import RecommendationStore

# Fixed clock for every test so windows and TTLs are deterministic
NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """
    File-backed SQLite engine, one database per test.

    A file (rather than :memory:) lets scorer threads open their own
    connections against the same data.
    """
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'readnext_test.db'}",
        connect_args={"check_same_thread": False},
        echo=False,
    )
    init_db(bind=test_engine)

    # Debug assertion: verify tables are registered
    if not Base.metadata.tables:
        raise RuntimeError("No tables registered in Base.metadata. Did init_db() import readnext.models?")

    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    """Session for arranging rows and asserting on them directly."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(session_factory, clock) -> RecommendationStore:
    return RecommendationStore(session_factory, clock=clock)


class FakeReadingData(ReadingDataRepository):
    """
    In-memory collaborator for pipeline tests.

    Items carry their own ``recent_acquisitions``; query_catalog applies the
    same filter and ordering rules as the SQL adapter.
    """

    def __init__(self):
        self.items: Dict[UUID, CatalogItem] = {}
        self.libraries: Dict[UUID, List[HeldItem]] = {}
        self.catalog_queries: List[CatalogFilter] = []

    def add_item(self, **fields) -> CatalogItem:
        fields.setdefault("id", uuid4())
        fields.setdefault("title", f"Item {len(self.items) + 1}")
        item = CatalogItem(**fields)
        self.items[item.id] = item
        return item

    def hold(
        self,
        user_id: UUID,
        item: CatalogItem,
        rating: Optional[float] = None,
        progress: float = 100.0,
        added_at: Optional[datetime] = None,
        completed: bool = False,
        last_read_at: Optional[datetime] = None,
        reading_seconds: float = 0.0,
    ) -> HeldItem:
        held = HeldItem(
            item_id=item.id,
            rating=rating,
            progress_percent=progress,
            added_at=added_at or NOW - timedelta(days=90),
            is_completed=completed,
            last_read_at=last_read_at,
            reading_seconds=reading_seconds,
        )
        self.libraries.setdefault(user_id, []).append(held)
        return held

    def get_held_items(self, user_id: UUID) -> List[HeldItem]:
        return list(self.libraries.get(user_id, []))

    def find_overlapping_users(self, user_id: UUID, item_ids: Iterable[UUID]) -> List[UUID]:
        wanted = set(item_ids)
        return [
            other
            for other, held in self.libraries.items()
            if other != user_id and any(h.item_id in wanted for h in held)
        ]

    def get_item_attributes(self, item_ids: Iterable[UUID]) -> Dict[UUID, CatalogItem]:
        return {i: self.items[i] for i in item_ids if i in self.items}

    def query_catalog(self, criteria: CatalogFilter, order: CatalogOrder, limit: int) -> List[CatalogItem]:
        self.catalog_queries.append(criteria)
        matches = []
        for item in self.items.values():
            if criteria.visible_only and not item.visible:
                continue
            if criteria.genres is not None and item.genre not in criteria.genres:
                continue
            if criteria.creator is not None and item.creator != criteria.creator:
                continue
            if item.id in criteria.exclude_item_ids:
                continue
            if criteria.min_rating is not None and item.rating < criteria.min_rating:
                continue
            if criteria.min_recent_acquisitions is not None and item.recent_acquisitions < criteria.min_recent_acquisitions:
                continue
            if criteria.published_after is not None and (
                item.published_at is None or item.published_at < criteria.published_after
            ):
                continue
            matches.append(item)

        if order == CatalogOrder.TRENDING:
            matches.sort(key=lambda i: (-i.recent_acquisitions, -(i.recent_avg_rating or 0), -i.rating))
        elif order == CatalogOrder.NEWEST:
            matches.sort(key=lambda i: -i.rating)
            matches.sort(key=lambda i: i.published_at or datetime.min, reverse=True)
        else:
            matches.sort(key=lambda i: -i.rating)
        return matches[:limit]


@pytest.fixture
def repo() -> FakeReadingData:
    return FakeReadingData()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()
