"""Interfaces of the collaborators the recommendation core reads from."""
from abc import ABC, abstractmethod
from statistics import mean
from typing import Dict, Iterable, List
from uuid import UUID

from readnext.schemas.catalog import CatalogFilter, CatalogItem, CatalogOrder, HeldItem, OverlapStats


class InteractionRepository(ABC):
    """User libraries: which items each user holds, rated and read."""

    @abstractmethod
    def get_held_items(self, user_id: UUID) -> List[HeldItem]:
        raise NotImplementedError

    @abstractmethod
    def find_overlapping_users(self, user_id: UUID, item_ids: Iterable[UUID]) -> List[UUID]:
        """Other users holding at least one of ``item_ids``."""
        raise NotImplementedError

    def get_overlap_stats(self, user_id: UUID, item_ids: Iterable[UUID], min_shared: int = 1) -> List[OverlapStats]:
        """
        Overlap of every other user sharing at least ``min_shared`` of ``item_ids``.

        Built from get_held_items per candidate; storage-backed adapters
        should override it with a single aggregate query.
        """
        wanted = set(item_ids)
        own_ratings = {h.item_id: h.rating for h in self.get_held_items(user_id) if h.rating is not None}
        stats = []
        for other_id in self.find_overlapping_users(user_id, wanted):
            if other_id == user_id:
                continue
            other_items = self.get_held_items(other_id)
            shared = [h for h in other_items if h.item_id in wanted]
            if len(shared) < min_shared:
                continue
            diffs = [
                abs(own_ratings[h.item_id] - h.rating)
                for h in shared
                if h.rating is not None and h.item_id in own_ratings
            ]
            stats.append(
                OverlapStats(
                    user_id=other_id,
                    shared_items=len(shared),
                    held_items=len(other_items),
                    avg_rating_diff=mean(diffs) if diffs else None,
                )
            )
        return stats


class CatalogRepository(ABC):
    """Read-only catalog of candidate items."""

    @abstractmethod
    def get_item_attributes(self, item_ids: Iterable[UUID]) -> Dict[UUID, CatalogItem]:
        raise NotImplementedError

    @abstractmethod
    def query_catalog(
        self, criteria: CatalogFilter, order: CatalogOrder, limit: int
    ) -> List[CatalogItem]:
        raise NotImplementedError


class ReadingDataRepository(InteractionRepository, CatalogRepository):
    """Both collaborator surfaces, as supplied by a single backing store."""
    pass
