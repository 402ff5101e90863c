"""
Ownership of one live store subscription.

A ManagedSubscription bundles the activation predicate (a query factory that
returns None while the subscription should be inactive), the teardown handle
of the current store subscription, and `reconcile()`, the trigger callers
invoke whenever an input of the predicate (identity, visibility, resolved
conversation, selection) may have changed.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from infrastructure.monitoring.logging_service import get_logger, get_error_tracker
from infrastructure.store.base import DocumentStore, Query, QuerySnapshot, Unsubscribe


class SubscriptionState(Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


class ManagedSubscription:
    """
    Two-state machine around a store subscription.

    Each activation gets a new generation number. Snapshots and errors from an
    older generation are dropped, and a store handle that arrives after its
    generation was torn down is released immediately.
    """

    def __init__(
        self,
        name: str,
        store: DocumentStore,
        query_factory: Callable[[], Optional[Query]],
        on_snapshot: Callable[[QuerySnapshot], None],
        on_error: Optional[Callable[[Exception], None]] = None
    ):
        self.name = name
        self.logger = get_logger(__name__)
        self._store = store
        self._query_factory = query_factory
        self._on_snapshot = on_snapshot
        self._on_error = on_error

        self.state = SubscriptionState.INACTIVE
        self._query: Optional[Query] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._generation = 0
        self._opening: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.state is SubscriptionState.ACTIVE

    @property
    def query(self) -> Optional[Query]:
        return self._query

    def reconcile(self) -> None:
        """Bring the subscription in line with the current predicate inputs"""
        desired = self._query_factory()
        if desired == self._query:
            return

        self._teardown()
        if desired is not None:
            self._activate(desired)

    def close(self) -> None:
        self._teardown()

    async def wait_until_open(self) -> None:
        """Wait for the pending store subscription call, if any, to finish"""
        if self._opening is not None:
            await asyncio.shield(self._opening)

    def _activate(self, query: Query) -> None:
        self._generation += 1
        generation = self._generation
        self._query = query
        self.state = SubscriptionState.ACTIVE
        self.logger.debug(f"Subscription '{self.name}' activating (generation {generation})")
        self._opening = asyncio.ensure_future(self._open(generation, query))

    async def _open(self, generation: int, query: Query) -> None:
        try:
            unsubscribe = await self._store.subscribe(
                query,
                lambda snapshot: self._deliver(generation, snapshot),
                lambda error: self._fail(generation, error),
            )
        except Exception as e:
            if generation == self._generation:
                get_error_tracker().track_error(e, context=f"subscribe:{self.name}")
                # Inactive again, so the next reconcile() retries
                self._query = None
                self.state = SubscriptionState.INACTIVE
            return

        if generation != self._generation:
            # Torn down while the store call was in flight
            unsubscribe()
            return
        self._unsubscribe = unsubscribe

    def _deliver(self, generation: int, snapshot: QuerySnapshot) -> None:
        if generation != self._generation:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception as e:
            get_error_tracker().track_error(e, context=f"snapshot:{self.name}")

    def _fail(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        get_error_tracker().track_error(error, context=f"listen:{self.name}")
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                get_error_tracker().track_error(e, context=f"error-handler:{self.name}")

    def _teardown(self) -> None:
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.state is SubscriptionState.ACTIVE:
            self.logger.debug(f"Subscription '{self.name}' torn down")
        self._query = None
        self.state = SubscriptionState.INACTIVE
