# components/earnings.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from core.clock import Clock
from core.config import EngineConfig
from core.database import get_clock, get_engine_config, get_store
from core.earnings import EarningsService
from core.levels import LevelService
from core.rate_limiter_slowapi import claim_limiter
from core.security import get_current_user_id
from core.storage import DocumentStore

router = APIRouter(prefix="/api/earnings", tags=["Earnings"])


def get_earnings(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    config: EngineConfig = Depends(get_engine_config),
) -> EarningsService:
    return EarningsService(store, clock, config)


def get_levels(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    config: EngineConfig = Depends(get_engine_config),
) -> LevelService:
    return LevelService(store, clock, config)


@router.post("/daily-login", response_model=dict)
@claim_limiter.limit("10/minute")
async def claim_daily_login(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    earnings: EarningsService = Depends(get_earnings),
):
    """Claim today's login reward. Answers 409 when it was already claimed."""
    return await earnings.claim_daily_login(user_id)


@router.get("/today", response_model=dict)
async def get_today_earnings(
    user_id: str = Depends(get_current_user_id),
    earnings: EarningsService = Depends(get_earnings),
):
    return await earnings.today_total(user_id)


@router.get("/stats", response_model=dict)
async def get_earnings_stats(
    user_id: str = Depends(get_current_user_id),
    earnings: EarningsService = Depends(get_earnings),
):
    return await earnings.stats(user_id)


@router.get("/history", response_model=dict)
async def get_earnings_history(
    source: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    earnings: EarningsService = Depends(get_earnings),
):
    return await earnings.history(user_id, source, page, limit)


# --- Level endpoints live here: experience is only earned through rewards ---

@router.get("/level", response_model=dict)
async def get_level(
    user_id: str = Depends(get_current_user_id),
    levels: LevelService = Depends(get_levels),
):
    user_level = await levels.get_user_level(user_id)
    return levels.summarize(user_level)


@router.get("/level/rewards", response_model=dict)
async def get_level_rewards(
    user_id: str = Depends(get_current_user_id),
    levels: LevelService = Depends(get_levels),
):
    return await levels.level_rewards(user_id)
