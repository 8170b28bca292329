"""
Builds a reading-preference profile from a user's library.

Read items (progress above the read threshold) drive preference extraction;
the full held set drives the rating baseline, activity, completion and
recency metrics.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from statistics import mean
from typing import Iterable, List, Optional
from uuid import UUID

from readnext.core.config import settings
from readnext.repositories.base import ReadingDataRepository
from readnext.schemas.catalog import HeldItem
from readnext.schemas.profile import ActivityLevel, PreferredLength, UserProfile
from readnext.utils.timing import utcnow

logger = logging.getLogger(__name__)


def top_by_frequency(values: Iterable[Optional[str]], n: int) -> List[str]:
    """
    Most frequent values, count descending; equal counts keep first-seen order.

    Empty and None values are ignored.
    """
    tally: Counter = Counter()
    first_seen = {}
    for value in values:
        if not value:
            continue
        if value not in first_seen:
            first_seen[value] = len(first_seen)
        tally[value] += 1
    ranked = sorted(tally, key=lambda value: (-tally[value], first_seen[value]))
    return ranked[:n]


def classify_length(avg_pages: float) -> PreferredLength:
    if avg_pages < settings.SHORT_LENGTH_PAGES:
        return PreferredLength.SHORT
    if avg_pages < settings.MEDIUM_LENGTH_PAGES:
        return PreferredLength.MEDIUM
    return PreferredLength.LONG


def classify_activity(recent_additions: int) -> ActivityLevel:
    if recent_additions >= settings.HIGH_ACTIVITY_ITEMS:
        return ActivityLevel.HIGH
    if recent_additions >= settings.MEDIUM_ACTIVITY_ITEMS:
        return ActivityLevel.MEDIUM
    return ActivityLevel.LOW


def _reading_recency(held: List[HeldItem], now: datetime) -> float:
    last_reads = [h.last_read_at for h in held if h.last_read_at is not None]
    if not last_reads:
        return 0.0
    days_since = (now - max(last_reads)).days
    return min(1.0, max(0.0, 1 - days_since / settings.RECENCY_WINDOW_DAYS))


def _completion_rate(held: List[HeldItem]) -> float:
    if not held:
        return settings.DEFAULT_COMPLETION_RATE
    completed = sum(1 for h in held if h.is_completed)
    return completed / len(held)


def build_profile(
    repository: ReadingDataRepository,
    user_id: UUID,
    now: Optional[datetime] = None,
) -> UserProfile:
    """
    Derive the preference profile for ``user_id``.

    A user without history gets empty preference lists and default
    baselines; that is a valid profile, not an error. Repository failures
    propagate to the caller.
    """
    now = now or utcnow()
    held = repository.get_held_items(user_id)
    attributes = repository.get_item_attributes([h.item_id for h in held]) if held else {}

    read = [h for h in held if h.progress_percent > settings.READ_PROGRESS_THRESHOLD]
    read_items = [attributes[h.item_id] for h in read if h.item_id in attributes]

    ratings = [h.rating for h in held if h.rating is not None]
    page_counts = [item.page_count for item in read_items if item.page_count]
    activity_since = now - timedelta(days=settings.ACTIVITY_WINDOW_DAYS)
    recent_additions = sum(1 for h in held if h.added_at >= activity_since)

    profile = UserProfile(
        user_id=user_id,
        favorite_genres=top_by_frequency((i.genre for i in read_items), settings.TOP_GENRES),
        favorite_creators=top_by_frequency((i.creator for i in read_items), settings.TOP_CREATORS),
        favorite_publishers=top_by_frequency((i.publisher for i in read_items), settings.TOP_PUBLISHERS),
        favorite_tags=top_by_frequency(
            (tag for i in read_items for tag in i.tags), settings.TOP_TAGS
        ),
        avg_rating=mean(ratings) if ratings else settings.DEFAULT_AVG_RATING,
        avg_reading_time=(
            mean(h.reading_seconds for h in read) if read else settings.DEFAULT_READING_TIME_SECONDS
        ),
        preferred_length=classify_length(mean(page_counts) if page_counts else settings.DEFAULT_PAGE_COUNT),
        activity_level=classify_activity(recent_additions),
        total_items_read=len(read),
        total_items_held=len(held),
        reading_recency=_reading_recency(held, now),
        genre_diversity=len({i.genre for i in read_items if i.genre}),
        completion_rate=_completion_rate(held),
    )

    logger.debug(
        "Built profile for user %s: held=%s read=%s genres=%s activity=%s",
        user_id,
        profile.total_items_held,
        profile.total_items_read,
        profile.favorite_genres,
        profile.activity_level.value,
    )
    return profile
