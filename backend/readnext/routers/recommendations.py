"""
Thin HTTP facade over RecommendationService.

No business logic lives here: validation errors map to 422, an unavailable
generation to 503.
"""
from functools import lru_cache
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from readnext.core.exceptions import InvalidRequestError, RecommendationStoreError
from readnext.database import SessionLocal
from readnext.schemas.recommendation import (
    GenerationStatus,
    InteractionRequest,
    InteractionResponse,
    RecommendationCandidate,
    RecommendationItem,
    RecommendationsResponse,
    SourceType,
    StoredRecommendationOut,
)
from readnext.services.recommendation_service import RecommendationService, build_recommendation_service
from readnext.utils.timing import now_ms, log_elapsed
from readnext.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


@lru_cache(maxsize=None)
def get_recommendation_service() -> RecommendationService:
    return build_recommendation_service(SessionLocal)


def _to_item(candidate: RecommendationCandidate) -> RecommendationItem:
    item = candidate.item
    return RecommendationItem(
        item_id=str(candidate.item_id),
        title=item.title if item else None,
        genre=item.genre if item else None,
        creator=item.creator if item else None,
        average_rating=round(item.rating, 1) if item else None,
        page_count=item.page_count if item else None,
        is_free=item.is_free if item else None,
        published_at=item.published_at if item else None,
        tags=item.tags if item else None,
        score=round(candidate.score, 3),
        source=candidate.source,
        reasons=candidate.reasons,
        reason_labels=candidate.reason_labels,
        confidence=candidate.confidence,
    )


@router.get("/users/{user_id}/recommendations", response_model=RecommendationsResponse)
def get_recommendations(
    user_id: UUID,
    limit: int = Query(12, ge=1, le=50),
    source: Optional[SourceType] = Query(None, description="Only return candidates from this source"),
    refresh: bool = Query(False, description="Drop cached results before generating"),
    service: RecommendationService = Depends(get_recommendation_service),
):
    t0 = now_ms()
    try:
        # Over-generate so a source filter still has enough to choose from
        result = service.generate_recommendations(user_id, limit * 2, refresh=refresh)
    except InvalidRequestError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RecommendationStoreError as e:
        logger.exception("Recommendation store failure for user %s", user_id)
        raise HTTPException(status_code=503, detail={"detail": "store_unavailable", "error": str(e)})

    if result.status == GenerationStatus.UNAVAILABLE:
        raise HTTPException(status_code=503, detail={"detail": "no_recommendations_available"})

    candidates = result.items
    if source is not None:
        candidates = [c for c in candidates if c.source == source]
    items = [_to_item(c) for c in candidates[:limit]]

    if settings.DEBUG:
        log_elapsed(t0, f"user={user_id} GET /recommendations", logger.debug)

    return RecommendationsResponse(
        items=items,
        total=len(items),
        status=result.status,
        generated_at=result.generated_at,
    )


@router.get("/users/{user_id}/recommendations/stored", response_model=List[StoredRecommendationOut])
def get_stored_recommendations(
    user_id: UUID,
    limit: int = Query(10, ge=1, le=50),
    service: RecommendationService = Depends(get_recommendation_service),
):
    try:
        return service.get_stored_recommendations(user_id, limit)
    except RecommendationStoreError as e:
        logger.exception("Failed to load stored recommendations for user %s", user_id)
        raise HTTPException(status_code=503, detail={"detail": "store_unavailable", "error": str(e)})


@router.post("/users/{user_id}/recommendations/interactions", response_model=InteractionResponse)
def post_interaction(
    user_id: UUID,
    request: InteractionRequest,
    service: RecommendationService = Depends(get_recommendation_service),
):
    try:
        updated = service.track_interaction(user_id, request.item_id, request.action)
    except InvalidRequestError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RecommendationStoreError as e:
        logger.exception("Failed to record interaction for user %s", user_id)
        raise HTTPException(status_code=503, detail={"detail": "store_unavailable", "error": str(e)})
    return InteractionResponse(success=True, updated=updated)


@router.post("/users/{user_id}/recommendations/invalidate")
def invalidate_recommendations(
    user_id: UUID,
    service: RecommendationService = Depends(get_recommendation_service),
):
    service.invalidate_user_cache(user_id)
    return {"success": True}
