# components/labels.py
from typing import Optional

from fastapi import APIRouter, Depends, Request

from core.cache import SimpleCache
from core.clock import Clock
from core.database import get_clock, get_label_cache, get_store
from core.labels import LabelService
from core.rate_limiter_slowapi import claim_limiter
from core.security import get_current_user_id
from core.storage import DocumentStore

router = APIRouter(prefix="/api/labels", tags=["Labels"])


def get_label_service(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    cache: Optional[SimpleCache] = Depends(get_label_cache),
) -> LabelService:
    return LabelService(store, clock, cache)


@router.get("", response_model=list)
async def get_active_labels(
    user_id: str = Depends(get_current_user_id),
    labels: LabelService = Depends(get_label_service),
):
    """Labels the caller currently qualifies for, claimed or not."""
    return await labels.active_labels(user_id)


@router.get("/achievements", response_model=dict)
async def get_achievements(
    user_id: str = Depends(get_current_user_id),
    labels: LabelService = Depends(get_label_service),
):
    return await labels.achievements_summary(user_id)


@router.get("/{label_id}", response_model=dict)
async def get_label_details(
    label_id: str,
    user_id: str = Depends(get_current_user_id),
    labels: LabelService = Depends(get_label_service),
):
    return await labels.label_details(user_id, label_id)


@router.post("/{label_id}/claim", response_model=dict)
@claim_limiter.limit("10/minute")
async def claim_label(
    request: Request,
    label_id: str,
    user_id: str = Depends(get_current_user_id),
    labels: LabelService = Depends(get_label_service),
):
    return await labels.claim(user_id, label_id)
