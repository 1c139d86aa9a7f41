# core/storage.py
"""
Document storage used by the rewards engine.

The engine only talks to the `DocumentStore` interface: single-document
get/query/add/update/delete plus an all-or-nothing `commit` of a `WriteBatch`.
Updates may carry the version the caller read; a mismatch raises
`VersionConflict`, which is how concurrent claims on the same wallet,
user level or investment are serialized.
"""

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from beanie import Document
from beanie.exceptions import RevisionIdWasChanged
from beanie.odm.enums import SortDirection
from beanie.operators import GT, GTE, In, Inc, LT, LTE, NE, Eq, Set
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from .config import settings
from .errors import DocumentExists, NotFound, StorageError, VersionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (field, operator, value); operators: == != < <= > >= in
Filter = Tuple[str, str, Any]
# (field, "asc" | "desc")
Order = Tuple[str, str]


def new_document_id() -> str:
    return uuid.uuid4().hex


@dataclass
class WriteOp:
    kind: str  # "add" | "update" | "delete"
    collection: str
    doc_id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    expected_version: Optional[int] = None


class WriteBatch:
    """An ordered set of writes committed atomically by `DocumentStore.commit`."""

    def __init__(self):
        self.ops: List[WriteOp] = []

    def add(self, collection: str, doc: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or new_document_id()
        self.ops.append(WriteOp("add", collection, doc_id, dict(doc)))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any],
               expected_version: Optional[int] = None) -> None:
        self.ops.append(WriteOp("update", collection, doc_id, dict(fields), expected_version))

    def delete(self, collection: str, doc_id: str) -> None:
        self.ops.append(WriteOp("delete", collection, doc_id))

    def __len__(self) -> int:
        return len(self.ops)


class DocumentStore(ABC):
    """Documents are plain dicts carrying their `id` and integer `version`."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[List[Order]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def add(self, collection: str, doc: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any],
                     expected_version: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        ...

    async def count(self, collection: str, filters: Optional[List[Filter]] = None) -> int:
        return len(await self.query(collection, filters))

    async def close(self) -> None:
        return None


# ===== IN-MEMORY STORE =====

def _matches(doc: Dict[str, Any], filters: List[Filter]) -> bool:
    for field_name, op, value in filters:
        current = doc.get(field_name)
        if op == "==":
            ok = current == value
        elif op == "!=":
            ok = current != value
        elif op == "in":
            ok = current in value
        elif current is None:
            ok = False
        elif op == "<":
            ok = current < value
        elif op == "<=":
            ok = current <= value
        elif op == ">":
            ok = current > value
        elif op == ">=":
            ok = current >= value
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
        if not ok:
            return False
    return True


class MemoryDocumentStore(DocumentStore):
    """
    In-process store with the same semantics as the Mongo store.
    Every read yields to the event loop so concurrent tasks interleave the
    way they would against a real database.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    def _export(self, doc_id: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        exported = copy.deepcopy(doc)
        exported["id"] = doc_id
        return exported

    async def get(self, collection, doc_id):
        await asyncio.sleep(0)
        doc = self._collections[collection].get(doc_id)
        return self._export(doc_id, doc) if doc is not None else None

    async def query(self, collection, filters=None, order_by=None, offset=0, limit=None):
        await asyncio.sleep(0)
        docs = [
            self._export(doc_id, doc)
            for doc_id, doc in self._collections[collection].items()
            if _matches(doc, filters or [])
        ]
        # Stable sorts applied from the last key to the first
        for field_name, direction in reversed(order_by or []):
            docs.sort(
                key=lambda d: (d.get(field_name) is not None, d.get(field_name)),
                reverse=(direction == "desc"),
            )
        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def add(self, collection, doc, doc_id=None):
        batch = WriteBatch()
        doc_id = batch.add(collection, doc, doc_id)
        await self.commit(batch)
        return doc_id

    async def update(self, collection, doc_id, fields, expected_version=None):
        batch = WriteBatch()
        batch.update(collection, doc_id, fields, expected_version)
        await self.commit(batch)

    async def delete(self, collection, doc_id):
        batch = WriteBatch()
        batch.delete(collection, doc_id)
        await self.commit(batch)

    def _check(self, op: WriteOp, staged: Dict[Tuple[str, str], Optional[int]]) -> None:
        key = (op.collection, op.doc_id)
        if key in staged:
            version = staged[key]
        else:
            existing = self._collections[op.collection].get(op.doc_id)
            version = existing["version"] if existing is not None else None

        if op.kind == "add":
            if version is not None:
                raise DocumentExists(f"{op.collection}/{op.doc_id} already exists")
            staged[key] = 1
        elif op.kind == "update":
            if version is None:
                raise NotFound(f"{op.collection}/{op.doc_id} not found")
            if op.expected_version is not None and op.expected_version != version:
                raise VersionConflict(
                    f"{op.collection}/{op.doc_id} is at version {version}, expected {op.expected_version}"
                )
            staged[key] = version + 1
        elif op.kind == "delete":
            staged[key] = None

    async def commit(self, batch):
        async with self._lock:
            # Validate every op before touching anything: all or nothing
            staged: Dict[Tuple[str, str], Optional[int]] = {}
            for op in batch.ops:
                self._check(op, staged)

            for op in batch.ops:
                docs = self._collections[op.collection]
                if op.kind == "add":
                    doc = copy.deepcopy(op.fields)
                    doc.pop("id", None)
                    doc["version"] = 1
                    docs[op.doc_id] = doc
                elif op.kind == "update":
                    doc = docs[op.doc_id]
                    for key, value in op.fields.items():
                        if key not in ("id", "version"):
                            doc[key] = copy.deepcopy(value)
                    doc["version"] += 1
                else:
                    docs.pop(op.doc_id, None)


# ===== MONGODB STORE =====

_OPERATORS = {
    "==": Eq,
    "!=": NE,
    "<": LT,
    "<=": LTE,
    ">": GT,
    ">=": GTE,
    "in": In,
}


def to_conditions(filters: Optional[List[Filter]]) -> list:
    """Filter tuples as Beanie find operators (ANDed by `find`)."""
    conditions = []
    for field_name, op, value in filters or []:
        operator = _OPERATORS.get(op)
        if operator is None:
            raise ValueError(f"Unsupported filter operator: {op}")
        conditions.append(operator(field_name, value))
    return conditions


def to_sort(order_by: Optional[List[Order]]) -> List[Tuple[str, SortDirection]]:
    return [
        (field_name, SortDirection.DESCENDING if direction == "desc" else SortDirection.ASCENDING)
        for field_name, direction in order_by or []
    ]


class MongoDocumentStore(DocumentStore):
    """
    Beanie-backed store. Every collection is a `Document` model with
    `use_revision` on, so an update racing another writer between its read
    and its write fails with RevisionIdWasChanged. Batches run inside a
    client-session transaction, which needs MongoDB running as a replica set.
    `init_beanie` must have run for `document_models` first.
    """

    def __init__(self, client, document_models: Dict[str, Type[Document]],
                 timeout_seconds: float | None = None):
        self._client = client
        self._models = document_models
        self.timeout_seconds = timeout_seconds or settings.STORAGE_TIMEOUT_SECONDS

    def _model(self, collection: str) -> Type[Document]:
        model = self._models.get(collection)
        if model is None:
            raise StorageError(f"No document model registered for '{collection}'")
        return model

    async def _run(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise StorageError(f"Storage call exceeded {self.timeout_seconds}s")
        except RevisionIdWasChanged as e:
            raise VersionConflict(f"Document changed while being updated: {e}")
        except DuplicateKeyError as e:
            raise DocumentExists(str(e))
        except OperationFailure as e:
            if e.has_error_label("TransientTransactionError"):
                raise VersionConflict(str(e))
            raise StorageError(str(e))
        except PyMongoError as e:
            raise StorageError(str(e))

    @staticmethod
    def _export(document: Document) -> Dict[str, Any]:
        return document.model_dump(exclude={"revision_id"})

    async def get(self, collection, doc_id):
        document = await self._run(self._model(collection).get(doc_id))
        return self._export(document) if document is not None else None

    async def query(self, collection, filters=None, order_by=None, offset=0, limit=None):
        found = self._model(collection).find(*to_conditions(filters))
        if order_by:
            found = found.sort(to_sort(order_by))
        if offset:
            found = found.skip(offset)
        if limit is not None:
            found = found.limit(limit)
        documents = await self._run(found.to_list())
        return [self._export(document) for document in documents]

    async def count(self, collection, filters=None):
        return await self._run(self._model(collection).find(*to_conditions(filters)).count())

    async def add(self, collection, doc, doc_id=None):
        batch = WriteBatch()
        doc_id = batch.add(collection, doc, doc_id)
        await self._run(self._apply(batch.ops[0]))
        return doc_id

    async def update(self, collection, doc_id, fields, expected_version=None):
        await self._run(self._apply(WriteOp("update", collection, doc_id, dict(fields), expected_version)))

    async def delete(self, collection, doc_id):
        await self._run(self._apply(WriteOp("delete", collection, doc_id)))

    async def _apply(self, op: WriteOp, session=None) -> None:
        model = self._model(op.collection)
        if op.kind == "add":
            fields = {k: v for k, v in op.fields.items() if k not in ("id", "version")}
            await model(id=op.doc_id, version=1, **fields).insert(session=session)
            return

        document = await model.get(op.doc_id, session=session)
        if op.kind == "delete":
            if document is not None:
                await document.delete(session=session)
            return

        if document is None:
            raise NotFound(f"{op.collection}/{op.doc_id} not found")
        if op.expected_version is not None and document.version != op.expected_version:
            raise VersionConflict(
                f"{op.collection}/{op.doc_id} is at version {document.version}, expected {op.expected_version}"
            )
        fields = {k: v for k, v in op.fields.items() if k not in ("id", "version")}
        operators = [Set(fields)] if fields else []
        await document.update(*operators, Inc({model.version: 1}), session=session)

    async def _commit_in_session(self, batch: WriteBatch) -> None:
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                for op in batch.ops:
                    await self._apply(op, session=session)

    async def commit(self, batch):
        if not batch.ops:
            return
        await self._run(self._commit_in_session(batch))

    async def close(self) -> None:
        self._client.close()


# ===== OPTIMISTIC RETRY =====

async def run_atomic(operation: Callable[[], Awaitable[T]], tag: str = "STORAGE",
                     retries: int | None = None) -> T:
    """
    Run a read-validate-commit operation, re-running it from scratch when the
    commit loses an optimistic version check. The re-run re-reads state, so
    guards like "already claimed today" are evaluated again.
    """
    attempts = retries or settings.MAX_WRITE_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except VersionConflict as e:
            if attempt == attempts:
                logger.error(f"[{tag}] Giving up after {attempts} conflicting attempts: {e}")
                raise
            logger.warning(f"[{tag}] Version conflict on attempt {attempt}, retrying: {e}")
    raise StorageError(f"[{tag}] no attempts were made")
