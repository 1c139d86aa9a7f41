# components/dashboard.py
from typing import Optional

from fastapi import APIRouter, Depends

from core.cache import SimpleCache
from core.clock import Clock
from core.config import EngineConfig
from core.dashboard import DashboardService
from core.database import get_clock, get_engine_config, get_label_cache, get_store
from core.security import get_current_user_id
from core.storage import DocumentStore

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("", response_model=dict)
async def get_dashboard(
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    config: EngineConfig = Depends(get_engine_config),
    cache: Optional[SimpleCache] = Depends(get_label_cache),
):
    return await DashboardService(store, clock, config, cache).overview(user_id)
