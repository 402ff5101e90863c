"""
Document store infrastructure - the real-time store contract and its in-memory implementation.
"""

from .base import (
    SERVER_TIMESTAMP,
    ChangeType,
    DocumentChange,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    Direction,
    FieldFilter,
    OrderBy,
    Query,
    QuerySnapshot,
    StoreError,
    StoreUnavailableError,
    WriteBatch,
    document_path,
    split_document_path
)
from .memory_store import MemoryDocumentStore, get_document_store, utc_now

__all__ = [
    'SERVER_TIMESTAMP',
    'ChangeType',
    'DocumentChange',
    'DocumentNotFoundError',
    'DocumentSnapshot',
    'DocumentStore',
    'Direction',
    'FieldFilter',
    'OrderBy',
    'Query',
    'QuerySnapshot',
    'StoreError',
    'StoreUnavailableError',
    'WriteBatch',
    'document_path',
    'split_document_path',
    'MemoryDocumentStore',
    'get_document_store',
    'utc_now'
]
