"""
Document store contract used by the support chat.

The chat core only depends on this interface: collection-scoped real-time
subscriptions with filters and ordering, durable writes with server-assigned
timestamps, and an all-or-nothing write batch.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a write is applied"""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


class StoreError(Exception):
    """Base error raised by document stores"""
    pass


class StoreUnavailableError(StoreError):
    """Transient failure: network loss, quota, backend restart"""
    pass


class DocumentNotFoundError(StoreError):
    """Update targeted a document that does not exist"""
    pass


class Direction(Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class ChangeType(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class FieldFilter:
    field_name: str
    operator: str
    value: Any

    def __post_init__(self):
        if self.operator not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.operator}")


@dataclass(frozen=True)
class OrderBy:
    field_name: str
    direction: Direction = Direction.ASCENDING


@dataclass(frozen=True)
class Query:
    """
    Immutable description of a collection query.

    Two queries compare equal when they would select the same documents, which
    lets subscription owners detect whether a re-subscription is needed.
    """
    collection_path: str
    filters: Tuple[FieldFilter, ...] = ()
    order: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None

    def where(self, field_name: str, operator: str, value: Any) -> 'Query':
        return Query(self.collection_path, self.filters + (FieldFilter(field_name, operator, value),),
                     self.order, self.limit)

    def order_by(self, field_name: str, direction: Direction = Direction.ASCENDING) -> 'Query':
        return Query(self.collection_path, self.filters, self.order + (OrderBy(field_name, direction),),
                     self.limit)

    def limit_to(self, count: int) -> 'Query':
        return Query(self.collection_path, self.filters, self.order, count)


@dataclass(frozen=True)
class DocumentSnapshot:
    document_id: str
    path: str
    data: Dict[str, Any]

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.data.get(field_name, default)


@dataclass(frozen=True)
class DocumentChange:
    change_type: ChangeType
    document: DocumentSnapshot


@dataclass
class QuerySnapshot:
    documents: List[DocumentSnapshot] = field(default_factory=list)
    changes: List[DocumentChange] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.documents

    @property
    def size(self) -> int:
        return len(self.documents)


SnapshotCallback = Callable[[QuerySnapshot], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


def document_path(collection_path: str, document_id: str) -> str:
    return f"{collection_path}/{document_id}"


def split_document_path(path: str) -> Tuple[str, str]:
    """Split 'a/b/c/d' into ('a/b/c', 'd')"""
    collection_path, _, document_id = path.rpartition("/")
    if not collection_path or not document_id:
        raise ValueError(f"Not a document path: {path}")
    return collection_path, document_id


class WriteBatch(ABC):
    """Accumulates writes and applies them all-or-nothing on commit"""

    def __init__(self):
        self._operations: List[Tuple[str, str, Optional[Dict[str, Any]], bool]] = []

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> 'WriteBatch':
        self._operations.append(("set", path, dict(data), merge))
        return self

    def update(self, path: str, data: Dict[str, Any]) -> 'WriteBatch':
        self._operations.append(("update", path, dict(data), False))
        return self

    def delete(self, path: str) -> 'WriteBatch':
        self._operations.append(("delete", path, None, False))
        return self

    def __len__(self) -> int:
        return len(self._operations)

    @abstractmethod
    async def commit(self) -> None:
        ...


class DocumentStore(ABC):
    """Real-time document store collaborator"""

    supports_atomic_batch: bool = True
    max_batch_size: int = 500

    @abstractmethod
    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        ...

    @abstractmethod
    async def query(self, query: Query) -> List[DocumentSnapshot]:
        ...

    @abstractmethod
    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        """Create a document with a store-generated id and return the id"""
        ...

    @abstractmethod
    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    async def update(self, path: str, data: Dict[str, Any]) -> None:
        """Update fields of an existing document; raises DocumentNotFoundError otherwise"""
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document; deleting a missing document is a no-op"""
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        ...

    @abstractmethod
    async def subscribe(self, query: Query, on_snapshot: SnapshotCallback,
                        on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        """
        Start a live subscription.

        The initial snapshot and every later change are delivered as callbacks
        on the event loop. The returned callable stops delivery.
        """
        ...
