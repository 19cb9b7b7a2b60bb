"""Transaction executor - one engine transaction, one awaitable outcome.

The engine reports a transaction's end through callbacks: oncomplete on
commit, onerror when a failed request aborts it, onabort after any abort.
The executor bridges these to a single future that settles exactly once:
with ``options.result`` on commit, or with the hook-transformed error on
abort. ``options.result`` is read when the commit event fires, so request
callbacks inside the routine may replace it or fill it in place.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from recordstore.application.connection_manager import ConnectionManager
from recordstore.application.error_hook import reject, transform_error
from recordstore.domain.value_objects import TransactionMode
from recordstore.infrastructure.logging import get_logger
from recordstore.infrastructure.metrics import MetricsRegistry
from recordstore.infrastructure.tracing import trace_span
from recordstore.ports.inbound.database import TransactionStats
from recordstore.ports.outbound.kv_engine import EngineError, EngineEvent, ObjectStore

if TYPE_CHECKING:
    from recordstore.application.database import Database


@dataclass
class TransactionOptions:
    """Scope, mode and result value of one transaction."""

    name: str
    mode: TransactionMode = TransactionMode.READ_ONLY
    result: Any = None


class TransactionExecutor:
    """Runs a routine inside a single-store transaction."""

    def __init__(
        self,
        owner: Database,
        connections: ConnectionManager,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._owner = owner
        self._connections = connections
        self._metrics = metrics
        self._logger = get_logger(__name__, database=owner.name)

        self._committed_total = 0
        self._aborted_total = 0
        self._active_count = 0

    async def transact(
        self,
        options: TransactionOptions,
        execute: Callable[[ObjectStore], Any],
    ) -> Any:
        """Run ``execute`` against the store named in ``options``.

        ``execute`` is called synchronously with the store handle and must
        issue all of its requests before returning (or from request
        callbacks).

        Returns:
            ``options.result`` as it stands when the transaction commits.

        Raises:
            EngineError: The hook-transformed error of an aborted transaction.
        """
        connection = await self._connections.wait_until_open()
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        try:
            txn = connection.transaction(options.name, options.mode)
            store = txn.object_store(options.name)
        except EngineError as e:
            raise transform_error(self._owner.onerror, e)

        def on_complete(event: EngineEvent) -> None:
            if not future.done():
                future.set_result(options.result)

        def on_error(event: EngineEvent) -> None:
            reject(future, self._owner.onerror, event.error)

        def on_abort(event: EngineEvent) -> None:
            reject(future, self._owner.onerror, txn.error or event.error)

        txn.oncomplete = on_complete
        txn.onerror = on_error
        txn.onabort = on_abort

        started = time.perf_counter()
        self._track_start()
        with trace_span(
            "recordstore.transaction",
            {"store": options.name, "mode": options.mode.value},
        ):
            try:
                execute(store)
            except Exception as e:
                if isinstance(e, EngineError):
                    reject(future, self._owner.onerror, e)
                elif not future.done():
                    future.set_exception(e)
                txn.abort()

            try:
                result = await future
            except BaseException as e:
                self._track_end(options, "abort", started)
                self._logger.info(
                    "transaction_aborted",
                    store=options.name,
                    mode=options.mode.value,
                    error=repr(e),
                )
                raise

        self._track_end(options, "commit", started)
        self._logger.debug(
            "transaction_committed",
            store=options.name,
            mode=options.mode.value,
        )
        return result

    def get_stats(self) -> TransactionStats:
        """Return transaction statistics for monitoring."""
        return TransactionStats(
            committed_total=self._committed_total,
            aborted_total=self._aborted_total,
            active_count=self._active_count,
        )

    def _track_start(self) -> None:
        self._active_count += 1
        if self._metrics is not None:
            self._metrics.transactions_active.inc()

    def _track_end(self, options: TransactionOptions, status: str, started: float) -> None:
        self._active_count -= 1
        if status == "commit":
            self._committed_total += 1
        else:
            self._aborted_total += 1

        if self._metrics is not None:
            self._metrics.transactions_active.dec()
            self._metrics.transactions_total.labels(
                store=options.name, mode=options.mode.value, status=status
            ).inc()
            self._metrics.transaction_latency_seconds.labels(
                mode=options.mode.value
            ).observe(time.perf_counter() - started)
