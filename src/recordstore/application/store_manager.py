"""Store manager - schema queries and idempotent store creation/removal.

Every structural change is an upgrade: the connection is reopened at the
next version and the change runs inside the version-change callback.
"""

from __future__ import annotations

from recordstore.application.connection_manager import ConnectionManager
from recordstore.domain.entities import StoreOptions
from recordstore.infrastructure.logging import get_logger
from recordstore.ports.outbound.kv_engine import Connection


class StoreManager:
    """Lists, creates and deletes the stores of one database handle."""

    def __init__(
        self,
        connections: ConnectionManager,
        default_options: StoreOptions | None = None,
        database: str | None = None,
    ) -> None:
        """Initialize the store manager.

        Args:
            connections: Connection manager performing the upgrades.
            default_options: Options of stores created without explicit ones.
            database: Database name bound to log events.
        """
        self._connections = connections
        self._default_options = default_options or StoreOptions()
        self._logger = get_logger(__name__, database=database)

    @property
    def default_options(self) -> StoreOptions:
        """Return the options applied when none are given."""
        return self._default_options

    @property
    def stores(self) -> list[str]:
        """Return the store names of the live connection."""
        return self._connections.require_connection().store_names

    def has_store(self, name: str) -> bool:
        """Check if ``name`` exists in the live schema."""
        return name in self._connections.require_connection().store_names

    async def exists(self, name: str) -> bool:
        """Check if ``name`` exists once any open or upgrade in flight settles."""
        connection = await self._connections.wait_until_open()
        return name in connection.store_names

    async def add_store(self, name: str, options: StoreOptions | None = None) -> None:
        """Create ``name`` unless it already exists."""
        if await self.exists(name):
            return
        options = options or self._default_options
        created = False

        def create(schema: Connection) -> None:
            nonlocal created
            # A concurrent caller may have created it in an earlier upgrade.
            if name not in schema.store_names:
                schema.create_store(name, options)
                created = True

        await self._connections.upgrade(create)
        if not created:
            return
        self._logger.info(
            "store_created",
            store=name,
            key_path=options.key_path,
            auto_increment=options.auto_increment,
        )

    async def delete_store(self, name: str) -> None:
        """Delete ``name`` if it exists."""
        if not await self.exists(name):
            return

        deleted = False

        def remove(schema: Connection) -> None:
            nonlocal deleted
            if name in schema.store_names:
                schema.delete_store(name)
                deleted = True

        await self._connections.upgrade(remove)
        if deleted:
            self._logger.info("store_deleted", store=name)
