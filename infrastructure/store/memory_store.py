"""
In-memory real-time document store.

Implements the DocumentStore contract on plain dicts so the chat can run
locally and in tests without a hosted backend. Listener callbacks are always
delivered through the event loop, never inline with the write that caused
them, matching how hosted real-time stores behave.
"""

import asyncio
import itertools
import operator
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from config.app_config import get_config
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.store.base import (
    SERVER_TIMESTAMP,
    ChangeType,
    DocumentChange,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    Direction,
    ErrorCallback,
    FieldFilter,
    Query,
    QuerySnapshot,
    SnapshotCallback,
    StoreError,
    StoreUnavailableError,
    Unsubscribe,
    WriteBatch,
    document_path,
    split_document_path,
)

logger = get_logger(__name__)

_COMPARATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Listener:
    query: Query
    on_snapshot: SnapshotCallback
    on_error: Optional[ErrorCallback]
    loop: asyncio.AbstractEventLoop
    last: Dict[str, DocumentSnapshot] = field(default_factory=dict)


class MemoryWriteBatch(WriteBatch):
    """Write batch applied in a single step by MemoryDocumentStore"""

    def __init__(self, store: 'MemoryDocumentStore'):
        super().__init__()
        self._store = store
        self._committed = False

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._committed = True
        await self._store._io()
        self._store._apply(self._operations)


class MemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store with live queries.

    Args:
        clock: Source of server timestamps (timezone-aware datetimes)
        latency: Simulated network latency in seconds for every call
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None, latency: float = 0.0):
        self._clock = clock or utc_now
        self._latency = latency
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._last_timestamp: Optional[datetime] = None
        self._available = True

    # ------------------------------------------------------------------
    # Availability

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def disconnect(self, error: Optional[Exception] = None) -> None:
        """Simulate losing the backend: writes fail and listeners get an error callback"""
        self._available = False
        error = error or StoreUnavailableError("Document store is unreachable")
        for listener_id, listener in list(self._listeners.items()):
            if listener.on_error is not None:
                listener.loop.call_soon(self._deliver_error, listener_id, error)

    def reconnect(self) -> None:
        self._available = True

    async def _io(self) -> None:
        await asyncio.sleep(self._latency)
        if not self._available:
            raise StoreUnavailableError("Document store is unreachable")

    # ------------------------------------------------------------------
    # Reads

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        await self._io()
        collection_path, document_id = split_document_path(path)
        data = self._collections.get(collection_path, {}).get(document_id)
        if data is None:
            return None
        return DocumentSnapshot(document_id, path, dict(data))

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        await self._io()
        return self._run_query(query)

    # ------------------------------------------------------------------
    # Writes

    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        await self._io()
        document_id = uuid.uuid4().hex[:20]
        self._apply([("set", document_path(collection_path, document_id), dict(data), False)])
        return document_id

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await self._io()
        self._apply([("set", path, dict(data), merge)])

    async def update(self, path: str, data: Dict[str, Any]) -> None:
        await self._io()
        self._apply([("update", path, dict(data), False)])

    async def delete(self, path: str) -> None:
        await self._io()
        self._apply([("delete", path, None, False)])

    def batch(self) -> MemoryWriteBatch:
        return MemoryWriteBatch(self)

    def _server_now(self) -> datetime:
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, data: Dict[str, Any]) -> Dict[str, Any]:
        timestamp = None
        resolved = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                if timestamp is None:
                    timestamp = self._server_now()
                value = timestamp
            resolved[key] = value
        return resolved

    def _apply(self, operations: List[Tuple[str, str, Optional[Dict[str, Any]], bool]]) -> None:
        """Apply operations all-or-nothing, then notify affected listeners"""
        staged: Dict[str, Dict[str, Dict[str, Any]]] = {}
        touched: Set[str] = set()

        for kind, path, data, merge in operations:
            collection_path, document_id = split_document_path(path)
            if collection_path not in staged:
                staged[collection_path] = dict(self._collections.get(collection_path, {}))
            documents = staged[collection_path]
            touched.add(collection_path)

            if kind == "delete":
                documents.pop(document_id, None)
            elif kind == "update":
                if document_id not in documents:
                    raise DocumentNotFoundError(f"No document at {path}")
                documents[document_id] = {**documents[document_id], **self._resolve(data)}
            elif merge and document_id in documents:
                documents[document_id] = {**documents[document_id], **self._resolve(data)}
            else:
                documents[document_id] = self._resolve(data)

        for collection_path, documents in staged.items():
            if documents:
                self._collections[collection_path] = documents
            else:
                self._collections.pop(collection_path, None)

        self._notify(touched)

    # ------------------------------------------------------------------
    # Queries and subscriptions

    @staticmethod
    def _matches(data: Dict[str, Any], field_filter: FieldFilter) -> bool:
        if field_filter.field_name not in data:
            return False
        try:
            return bool(_COMPARATORS[field_filter.operator](data[field_filter.field_name], field_filter.value))
        except TypeError:
            return False

    def _run_query(self, query: Query) -> List[DocumentSnapshot]:
        documents = self._collections.get(query.collection_path, {})
        rows = [
            (document_id, data) for document_id, data in sorted(documents.items())
            if all(self._matches(data, f) for f in query.filters)
            and all(order.field_name in data for order in query.order)
        ]
        for order in reversed(query.order):
            rows.sort(key=lambda row: row[1][order.field_name],
                      reverse=order.direction is Direction.DESCENDING)
        if query.limit is not None:
            rows = rows[:query.limit]
        return [
            DocumentSnapshot(document_id, document_path(query.collection_path, document_id), dict(data))
            for document_id, data in rows
        ]

    async def subscribe(self, query: Query, on_snapshot: SnapshotCallback,
                        on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        await self._io()
        loop = asyncio.get_running_loop()
        listener_id = next(self._listener_ids)
        listener = _Listener(query, on_snapshot, on_error, loop)
        self._listeners[listener_id] = listener

        documents = self._run_query(query)
        listener.last = {doc.document_id: doc for doc in documents}
        initial = QuerySnapshot(
            documents=documents,
            changes=[DocumentChange(ChangeType.ADDED, doc) for doc in documents],
        )
        loop.call_soon(self._deliver, listener_id, initial)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self, touched: Set[str]) -> None:
        for listener_id, listener in list(self._listeners.items()):
            if listener.query.collection_path not in touched:
                continue
            documents = self._run_query(listener.query)
            current = {doc.document_id: doc for doc in documents}

            changes = [
                DocumentChange(ChangeType.REMOVED, doc)
                for document_id, doc in listener.last.items() if document_id not in current
            ]
            for doc in documents:
                previous = listener.last.get(doc.document_id)
                if previous is None:
                    changes.append(DocumentChange(ChangeType.ADDED, doc))
                elif previous.data != doc.data:
                    changes.append(DocumentChange(ChangeType.MODIFIED, doc))

            if not changes:
                continue
            listener.last = current
            listener.loop.call_soon(self._deliver, listener_id, QuerySnapshot(documents, changes))

    def _deliver(self, listener_id: int, snapshot: QuerySnapshot) -> None:
        listener = self._listeners.get(listener_id)
        if listener is None:
            return
        try:
            listener.on_snapshot(snapshot)
        except Exception:
            logger.exception(f"Snapshot listener {listener_id} raised; keeping subscription")

    def _deliver_error(self, listener_id: int, error: Exception) -> None:
        listener = self._listeners.get(listener_id)
        if listener is None or listener.on_error is None:
            return
        try:
            listener.on_error(error)
        except Exception:
            logger.exception(f"Error listener {listener_id} raised; keeping subscription")


# Global store instance
_document_store: Optional[MemoryDocumentStore] = None


def get_document_store() -> MemoryDocumentStore:
    """Get the process-wide in-memory store shared by every widget and console"""
    global _document_store
    if _document_store is None:
        _document_store = MemoryDocumentStore(latency=get_config().store.latency_seconds)
    return _document_store
