# admin/routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.cache import SimpleCache
from core.clock import Clock
from core.config import EngineConfig
from core.database import get_clock, get_engine_config, get_label_cache, get_store
from core.investments import InvestmentScheduler
from core.labels import LabelService
from core.levels import LevelService
from core.storage import DocumentStore
from core.withdrawals import WithdrawalService
from data.models import UnlockCondition

from .auth import get_current_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/api", tags=["Admin"])


# --- DTOs ---

class AdminModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessWithdrawalIn(AdminModel):
    status: str = Field(..., pattern="^(approved|rejected|processing|completed)$")
    admin_notes: str = ""
    rejection_reason: str = ""


class LabelIn(AdminModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    icon: str = ""
    color: str = "#000000"
    reward: int = Field(0, ge=0)
    unlock_conditions: List[UnlockCondition] = Field(default_factory=list)
    category: str = "general"
    is_active: bool = True


class LabelUpdate(AdminModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    reward: Optional[int] = Field(None, ge=0)
    unlock_conditions: Optional[List[UnlockCondition]] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class ExperienceIn(AdminModel):
    amount: int = Field(..., gt=0)
    source: str = "admin"


# --- Withdrawals ---

@router.get("/withdrawals", response_model=dict)
async def admin_list_withdrawals(
    status_filter: Optional[str] = Query("pending", alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin_id: str = Depends(get_current_admin),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    return await WithdrawalService(store, clock).all_requests(status_filter or None, page, limit)


@router.post("/withdrawals/{withdrawal_id}/process", response_model=dict)
async def admin_process_withdrawal(
    withdrawal_id: str,
    body: ProcessWithdrawalIn,
    admin_id: str = Depends(get_current_admin),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    logger.info(f"[ADMIN] {admin_id} sets withdrawal {withdrawal_id} to {body.status}")
    return await WithdrawalService(store, clock).process(
        withdrawal_id, body.status, body.admin_notes.strip(), body.rejection_reason.strip()
    )


# --- Labels ---

def get_label_service(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    cache: Optional[SimpleCache] = Depends(get_label_cache),
) -> LabelService:
    return LabelService(store, clock, cache)


@router.get("/labels", response_model=dict)
async def admin_list_labels(
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin_id: str = Depends(get_current_admin),
    labels: LabelService = Depends(get_label_service),
):
    return await labels.list_labels(page, limit, category)


@router.post("/labels", response_model=dict, status_code=status.HTTP_201_CREATED)
async def admin_create_label(
    body: LabelIn,
    admin_id: str = Depends(get_current_admin),
    labels: LabelService = Depends(get_label_service),
):
    label = await labels.create_label(body.model_dump())
    return label.summary()


@router.put("/labels/{label_id}", response_model=dict)
async def admin_update_label(
    label_id: str,
    body: LabelUpdate,
    admin_id: str = Depends(get_current_admin),
    labels: LabelService = Depends(get_label_service),
):
    label = await labels.update_label(label_id, body.model_dump(exclude_unset=True))
    return label.summary()


# --- Users ---

@router.post("/users/{user_id}/referrals", response_model=dict)
async def admin_register_referral(
    user_id: str,
    admin_id: str = Depends(get_current_admin),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    config: EngineConfig = Depends(get_engine_config),
):
    """Called by the referral flow when someone joins with this user's code."""
    return await InvestmentScheduler(store, clock, config).register_referral(user_id)


@router.post("/users/{user_id}/experience", response_model=dict)
async def admin_grant_experience(
    user_id: str,
    body: ExperienceIn,
    admin_id: str = Depends(get_current_admin),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    config: EngineConfig = Depends(get_engine_config),
):
    return await LevelService(store, clock, config).add_experience(user_id, body.amount, body.source)
