# core/database.py
import logging
from functools import lru_cache
from typing import Optional

import motor.motor_asyncio
from beanie import init_beanie

from .cache import SimpleCache
from .clock import Clock
from .config import EngineConfig, load_engine_config, settings
from .errors import StorageError
from .labels import label_catalog_cache
from .storage import DocumentStore, MemoryDocumentStore, MongoDocumentStore

logger = logging.getLogger(__name__)

_store: Optional[DocumentStore] = None
_clock = Clock()


async def init_db() -> DocumentStore:
    """Open the configured document store (MongoDB or in-memory)."""
    global _store

    backend = settings.STORAGE_BACKEND.lower()
    if backend == "memory":
        _store = MemoryDocumentStore()
    elif backend == "mongo":
        from data.models.documents import DOCUMENT_MODELS

        # Stored timestamps come back timezone-aware
        client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_DETAILS, tz_aware=True)
        await init_beanie(
            database=client.get_database(settings.MONGO_DB_NAME),
            document_models=list(DOCUMENT_MODELS.values()),
        )
        _store = MongoDocumentStore(client, DOCUMENT_MODELS)
    else:
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")

    logger.info(f"[DB] {backend} document store ready")
    return _store


async def close_db() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


async def ping_db() -> None:
    store = get_store()
    await store.query("wallets", limit=1)


# --- FastAPI dependencies ---

def get_store() -> DocumentStore:
    if _store is None:
        raise StorageError("Database not initialized")
    return _store


def get_clock() -> Clock:
    return _clock


@lru_cache
def get_engine_config() -> EngineConfig:
    return load_engine_config()


def get_label_cache() -> Optional[SimpleCache]:
    return label_catalog_cache
