"""Tests for the generation pipeline: profile, similarity, scorers, blend, persist."""
import time
from datetime import timedelta
from uuid import uuid4

import pytest

from readnext.core.exceptions import InvalidRequestError
from readnext.models import EventLog
from readnext.schemas.recommendation import GenerationStatus, RecommendationCandidate, SourceType
from readnext.services.recommendation_engine import RecommendationEngine
from readnext.services.scorers import Scorer
from readnext.utils.instrumentation import EventRecorder


class StaticScorer(Scorer):
    def __init__(self, source, candidates=(), delay=0.0, error=None):
        self.source = source
        self.candidates = list(candidates)
        self.delay = delay
        self.error = error

    def score(self, context):
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [c for c in self.candidates if c.item_id not in context.excluded_item_ids]


def static(source, *scores):
    return [RecommendationCandidate(item_id=uuid4(), score=s, source=source, reasons=[source.value]) for s in scores]


@pytest.fixture
def library(repo, user_id, now):
    """A reader with three finished fantasy books, a like-minded neighbour and a populated catalog."""
    held = [repo.add_item(genre="fantasy", creator="Le Guin", rating=4.5) for _ in range(3)]
    for item in held:
        repo.hold(user_id, item, rating=5, completed=True, last_read_at=now - timedelta(days=2))

    neighbour = uuid4()
    for item in held:
        repo.hold(neighbour, item, rating=5)
    for _ in range(2):
        repo.hold(neighbour, repo.add_item(genre="fantasy", rating=4.8), rating=5)

    for i in range(6):
        repo.add_item(genre="fantasy", creator="Le Guin", rating=4.0 + i / 10, total_readers=100 * i)
    for i in range(4):
        repo.add_item(genre="mystery", rating=4.2, recent_acquisitions=10 + i)
    for days in (1, 3):
        repo.add_item(genre="fantasy", rating=3.9, published_at=now - timedelta(days=days))
    return held


def test_generate_returns_ranked_unique_unheld_items(repo, store, user_id, clock, library):
    engine = RecommendationEngine(repo, store, clock=clock)

    result = engine.generate(user_id, 8)

    ids = [c.item_id for c in result.items]
    scores = [c.score for c in result.items]
    assert result.status == GenerationStatus.OK
    assert 0 < len(result.items) <= 8
    assert len(ids) == len(set(ids))
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert not set(ids) & {item.id for item in library}
    assert {c.source for c in result.items} >= {SourceType.COLLABORATIVE, SourceType.CONTENT_BASED}


def test_generate_persists_the_blended_list(repo, store, user_id, clock, library):
    engine = RecommendationEngine(repo, store, clock=clock)

    result = engine.generate(user_id, 5)
    stored = store.get_active(user_id, 50)

    assert {(s.item_id, s.score, s.source) for s in stored} == {
        (c.item_id, c.score, c.source) for c in result.items
    }
    assert [s.score for s in stored] == [c.score for c in result.items]


def test_identical_inputs_give_identical_output(repo, store, user_id, clock, library):
    engine = RecommendationEngine(repo, store, clock=clock)

    first = engine.generate(user_id, 10)
    second = engine.generate(user_id, 10)

    assert [(c.item_id, c.score) for c in first.items] == [(c.item_id, c.score) for c in second.items]


def test_new_user_with_empty_catalog_gets_empty_status(repo, store, user_id, clock):
    engine = RecommendationEngine(repo, store, clock=clock)

    result = engine.generate(user_id, 10)

    assert result.items == []
    assert result.status == GenerationStatus.EMPTY


def test_dismissed_items_are_not_regenerated(repo, store, user_id, clock, library):
    engine = RecommendationEngine(repo, store, clock=clock)
    first = engine.generate(user_id, 5)
    dismissed = first.items[0].item_id

    store.track_interaction(user_id, dismissed, "dismissed")
    second = engine.generate(user_id, 5)

    assert dismissed not in {c.item_id for c in second.items}


@pytest.mark.parametrize("limit", [0, -3, True, "5", 2.5])
def test_invalid_limit_rejected(repo, store, user_id, clock, limit):
    engine = RecommendationEngine(repo, store, clock=clock)
    with pytest.raises(InvalidRequestError):
        engine.generate(user_id, limit)


def test_failing_scorer_is_skipped(repo, store, user_id, clock):
    trending = static(SourceType.TRENDING, 0.6, 0.3)
    scorers = {
        SourceType.COLLABORATIVE: StaticScorer(SourceType.COLLABORATIVE, error=RuntimeError("boom")),
        SourceType.TRENDING: StaticScorer(SourceType.TRENDING, trending),
    }
    engine = RecommendationEngine(repo, store, scorers=scorers, clock=clock)

    result = engine.generate(user_id, 10)

    assert result.status == GenerationStatus.OK
    assert [c.item_id for c in result.items] == [c.item_id for c in trending]


def test_slow_scorer_misses_deadline(repo, store, user_id, clock):
    fast = static(SourceType.CONTENT_BASED, 0.5)
    scorers = {
        SourceType.CONTENT_BASED: StaticScorer(SourceType.CONTENT_BASED, fast),
        SourceType.NEW_RELEASE: StaticScorer(SourceType.NEW_RELEASE, static(SourceType.NEW_RELEASE, 0.9), delay=1.0),
    }
    engine = RecommendationEngine(repo, store, scorers=scorers, clock=clock, timeout_seconds=0.2)

    started = time.monotonic()
    result = engine.generate(user_id, 10)

    assert time.monotonic() - started < 1.0
    assert [c.item_id for c in result.items] == [fast[0].item_id]


def test_all_scorers_failing_is_unavailable_and_not_persisted(repo, store, user_id, clock):
    scorers = {
        source: StaticScorer(source, error=ConnectionError("catalog down"))
        for source in SourceType
    }
    engine = RecommendationEngine(repo, store, scorers=scorers, clock=clock)

    result = engine.generate(user_id, 10)

    assert result.status == GenerationStatus.UNAVAILABLE
    assert result.items == []
    assert store.get_active(user_id, 10) == []


def test_similarity_failure_drops_only_collaborative(repo, store, user_id, clock, monkeypatch):
    def broken(*args, **kwargs):
        raise ConnectionError("library unavailable")

    monkeypatch.setattr("readnext.services.recommendation_engine.find_similar_users", broken)
    trending = static(SourceType.TRENDING, 0.4)
    scorers = {
        SourceType.COLLABORATIVE: StaticScorer(SourceType.COLLABORATIVE),
        SourceType.TRENDING: StaticScorer(SourceType.TRENDING, trending),
    }
    engine = RecommendationEngine(repo, store, scorers=scorers, clock=clock)

    result = engine.generate(user_id, 10)

    assert result.status == GenerationStatus.OK
    assert [c.item_id for c in result.items] == [trending[0].item_id]


def test_generation_is_recorded_as_event(repo, store, session_factory, db, user_id, clock, library):
    engine = RecommendationEngine(repo, store, events=EventRecorder(session_factory), clock=clock)

    result = engine.generate(user_id, 4)

    event = db.query(EventLog).filter(EventLog.event_name == "recommendations_generated").one()
    assert event.user_id == user_id
    assert event.properties["count"] == len(result.items)
    assert event.properties["status"] == "ok"
    assert event.properties["failed_sources"] == []


def test_scorer_deadline_starts_after_similarity(repo, store, user_id, clock, library, monkeypatch):
    lookup = repo.find_overlapping_users

    def slow_lookup(*args, **kwargs):
        time.sleep(0.3)
        return lookup(*args, **kwargs)

    monkeypatch.setattr(repo, "find_overlapping_users", slow_lookup)
    scorers = {
        source: StaticScorer(source, static(source, 0.5), delay=0.01)
        for source in SourceType
    }
    engine = RecommendationEngine(repo, store, scorers=scorers, clock=clock, timeout_seconds=0.2)

    result = engine.generate(user_id, 8)

    assert result.status == GenerationStatus.OK
    assert {c.source for c in result.items} == set(SourceType)
