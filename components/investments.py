# components/investments.py
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from core.clock import Clock
from core.config import EngineConfig
from core.database import get_clock, get_engine_config, get_store
from core.investments import InvestmentScheduler
from core.rate_limiter_slowapi import claim_limiter
from core.security import get_current_user_id
from core.storage import DocumentStore

router = APIRouter(prefix="/api/investments", tags=["Investments"])


class PurchaseIn(BaseModel):
    plan_id: str = Field(..., min_length=1)


def get_scheduler(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    config: EngineConfig = Depends(get_engine_config),
) -> InvestmentScheduler:
    return InvestmentScheduler(store, clock, config)


@router.get("/plans", response_model=list)
async def get_plans(scheduler: InvestmentScheduler = Depends(get_scheduler)):
    """Public plan catalog, cheapest first."""
    return scheduler.list_plans()


@router.get("/levels", response_model=list)
async def get_level_structure(scheduler: InvestmentScheduler = Depends(get_scheduler)):
    return scheduler.level_structure()


@router.post("/purchase", response_model=dict, status_code=status.HTTP_201_CREATED)
@claim_limiter.limit("5/minute")
async def purchase_plan(
    request: Request,
    body: PurchaseIn,
    user_id: str = Depends(get_current_user_id),
    scheduler: InvestmentScheduler = Depends(get_scheduler),
):
    return await scheduler.purchase(user_id, body.plan_id)


@router.get("/active", response_model=dict)
async def get_active_investment(
    user_id: str = Depends(get_current_user_id),
    scheduler: InvestmentScheduler = Depends(get_scheduler),
):
    active = await scheduler.get_active_investment(user_id)
    return {"hasActiveInvestment": active is not None, "data": active}


@router.get("/history", response_model=list)
async def get_investment_history(
    user_id: str = Depends(get_current_user_id),
    scheduler: InvestmentScheduler = Depends(get_scheduler),
):
    return await scheduler.history(user_id)


@router.post("/{investment_id}/claim", response_model=dict)
@claim_limiter.limit("10/minute")
async def claim_daily_earning(
    request: Request,
    investment_id: str,
    user_id: str = Depends(get_current_user_id),
    scheduler: InvestmentScheduler = Depends(get_scheduler),
):
    return await scheduler.claim_daily_earning(user_id, investment_id)


@router.post("/{investment_id}/cancel", response_model=dict)
async def cancel_investment(
    investment_id: str,
    user_id: str = Depends(get_current_user_id),
    scheduler: InvestmentScheduler = Depends(get_scheduler),
):
    return await scheduler.cancel(user_id, investment_id)
