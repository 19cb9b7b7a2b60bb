"""Connection manager - owns the single live engine connection of a handle.

Opening always closes the held connection before a new one is requested,
so a handle never holds two connections to the same database. Opening at
a higher version runs the caller's upgrade callback against the schema
handle before the new connection is ready; this is the only path through
which stores are created or deleted.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable

from recordstore.application.error_hook import reject
from recordstore.domain.value_objects import DatabaseVersion
from recordstore.infrastructure.logging import get_logger
from recordstore.infrastructure.metrics import MetricsRegistry
from recordstore.infrastructure.tracing import trace_span
from recordstore.ports.inbound.database import UpgradeError
from recordstore.ports.outbound.kv_engine import Connection, EngineEvent, KVEngine

if TYPE_CHECKING:
    from recordstore.application.database import Database

UpgradeCallback = Callable[[Connection], Any]


class ConnectionManager:
    """Opens, upgrades and closes the connection of one database handle."""

    def __init__(
        self,
        owner: Database,
        engine: KVEngine,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the connection manager.

        Args:
            owner: Handle resolved by open() and consulted for its error hook.
            engine: The host engine.
            metrics: Optional metrics registry.
        """
        self._owner = owner
        self._engine = engine
        self._metrics = metrics
        self._connection: Connection | None = None
        self._opening: asyncio.Future[Database] | None = None
        self._logger = get_logger(__name__, database=owner.name)

    @property
    def connection(self) -> Connection | None:
        """Return the live connection, if any."""
        return self._connection

    @property
    def version(self) -> DatabaseVersion | None:
        """Return the version of the live connection."""
        if self._connection is None:
            return None
        return self._connection.version

    def require_connection(self) -> Connection:
        """Return the live connection.

        Raises:
            RuntimeError: If the handle has not been opened.
        """
        if self._connection is None:
            raise RuntimeError(f'Database "{self._owner.name}" is not open')
        return self._connection

    async def wait_until_open(self) -> Connection:
        """Wait for any open or upgrade in flight, then return the connection.

        Raises:
            RuntimeError: If the handle is not open once no open is pending.
        """
        while self._opening is not None:
            await asyncio.wait([self._opening])
        return self.require_connection()

    async def open(
        self,
        version: int | None = None,
        upgrade: UpgradeCallback | None = None,
    ) -> Database:
        """Open the database at ``version``, replacing the held connection.

        Args:
            version: Requested version; None opens at the stored version.
            upgrade: Called with the schema handle when the stored version
                is lower than ``version``.

        Returns:
            The owning handle.

        Raises:
            UpgradeError: If the upgrade callback or version change failed.
            EngineError: If the engine refused the open.
        """
        self.close()

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Database] = loop.create_future()
        upgrade_state: dict[str, Any] = {}

        with trace_span(
            "recordstore.open",
            {"database": self._owner.name, "version": version or 0},
        ):
            request = self._engine.open(self._owner.name, version)
            self._opening = future

            def on_upgrade_needed(event: EngineEvent) -> None:
                upgrade_state["old_version"] = event.old_version
                upgrade_state["new_version"] = event.new_version
                self._logger.info(
                    "upgrade_started",
                    old_version=event.old_version,
                    new_version=event.new_version,
                )
                if upgrade is None:
                    return
                try:
                    upgrade(request.result)
                except Exception as e:
                    upgrade_state["failure"] = e
                    request.transaction.abort()

            def on_error(event: EngineEvent) -> None:
                error: BaseException = request.error
                if upgrade_state:
                    cause = upgrade_state.get("failure", error)
                    error = UpgradeError(
                        f'Upgrade of "{self._owner.name}" to version '
                        f'{upgrade_state["new_version"]} failed: {cause}',
                        old_version=upgrade_state["old_version"],
                        new_version=upgrade_state["new_version"],
                    )
                    error.__cause__ = cause
                    self._count_upgrade("error")
                self._logger.warning("open_failed", version=version, error=repr(error))
                reject(future, self._owner.onerror, error)

            def on_success(event: EngineEvent) -> None:
                connection = request.result
                connection.onversionchange = self._on_version_change
                if self._connection is not None and self._connection is not connection:
                    self._connection.close()
                self._connection = connection
                if upgrade_state:
                    self._count_upgrade("success")
                if self._metrics is not None:
                    self._metrics.schema_version.labels(database=self._owner.name).set(
                        connection.version
                    )
                self._logger.info(
                    "connection_opened",
                    version=connection.version,
                    stores=connection.store_names,
                )
                if not future.done():
                    future.set_result(self._owner)

            def on_blocked(event: EngineEvent) -> None:
                self._logger.warning(
                    "open_blocked",
                    old_version=event.old_version,
                    new_version=event.new_version,
                )

            request.onupgradeneeded = on_upgrade_needed
            request.onerror = on_error
            request.onsuccess = on_success
            request.onblocked = on_blocked

            try:
                return await future
            finally:
                if self._opening is future:
                    self._opening = None

    async def upgrade(self, mutator: UpgradeCallback) -> Database:
        """Reopen at the next version, running ``mutator`` as the upgrade."""
        current = (await self.wait_until_open()).version
        return await self.open(current + 1, mutator)

    def close(self) -> None:
        """Close the held connection, if any."""
        if self._connection is None:
            return
        self._connection.close()
        self._logger.debug("connection_closed", version=self._connection.version)
        self._connection = None

    def _on_version_change(self, event: EngineEvent) -> None:
        # Another handle is upgrading the database; release it so the upgrade can proceed.
        if self._connection is not None and event.target is self._connection:
            self._logger.info(
                "connection_superseded",
                old_version=event.old_version,
                new_version=event.new_version,
            )
            self.close()

    def _count_upgrade(self, status: str) -> None:
        if self._metrics is not None:
            self._metrics.upgrades_total.labels(status=status).inc()
