"""Persistence of ledger aggregates with best-effort writes.

The in-memory ledger is authoritative. Writes to Redis happen after the local
mutation; a failed write is logged and, when enabled, queued so a later save
or an explicit sync can catch the remote copy up.
"""

from collections import OrderedDict
from typing import Iterable

from pydantic import BaseModel

from iot_oracle.config import Settings, get_settings
from iot_oracle.exceptions import PersistenceError
from iot_oracle.models.inventory import InventoryItem
from iot_oracle.models.project import Project
from iot_oracle.state.manager import StateManager
from iot_oracle.utils.logging import ActionLogger, get_logger

logger = get_logger(__name__)

INVENTORY_KEY = "inventory"
PROJECTS_KEY = "projects"
AUTO_POPULATE_KEY = "preferences:auto_populate"


class LedgerRepository:
    """Loads and saves inventory items, projects and the auto-apply preference."""

    def __init__(self, state_manager: StateManager, settings: Settings | None = None):
        self.state = state_manager
        self.settings = settings or get_settings()
        self.action_logger = ActionLogger("ledger_repository")
        # (collection, id) -> encoded document, or None for a pending delete
        self.pending: OrderedDict[tuple[str, str], str | None] = OrderedDict()

    async def load(self) -> tuple[list[InventoryItem], list[Project]]:
        """Read every stored item and project."""
        raw_items = await self.state.hgetall(INVENTORY_KEY)
        raw_projects = await self.state.hgetall(PROJECTS_KEY)

        items = [InventoryItem.model_validate(data) for data in raw_items.values()]
        projects = [Project.model_validate(data) for data in raw_projects.values()]

        logger.info("ledger_loaded", items=len(items), projects=len(projects))
        return items, projects

    async def save_item(self, item: InventoryItem) -> bool:
        return await self._write(INVENTORY_KEY, item.id, self._encode(item))

    async def save_items(self, items: Iterable[InventoryItem]) -> bool:
        return await self._write_many(INVENTORY_KEY, items)

    async def delete_item(self, item_id: str) -> bool:
        return await self._write(INVENTORY_KEY, item_id, None)

    async def save_project(self, project: Project) -> bool:
        return await self._write(PROJECTS_KEY, project.id, self._encode(project))

    async def save_projects(self, projects: Iterable[Project]) -> bool:
        return await self._write_many(PROJECTS_KEY, projects)

    async def delete_project(self, project_id: str) -> bool:
        return await self._write(PROJECTS_KEY, project_id, None)

    async def get_auto_populate(self) -> bool:
        """Stored auto-apply preference, falling back to the configured default."""
        try:
            value = await self.state.get(AUTO_POPULATE_KEY)
        except Exception as e:
            logger.warning("preference_read_failed", error=str(e))
            return self.settings.auto_populate_default

        if value is None:
            return self.settings.auto_populate_default
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)

    async def set_auto_populate(self, enabled: bool) -> None:
        """Persist the auto-apply preference; unlike ledger writes this raises."""
        try:
            await self.state.set(AUTO_POPULATE_KEY, enabled)
        except Exception as e:
            raise PersistenceError(f"Could not save auto-populate preference: {e}") from e
        logger.info("auto_populate_changed", enabled=enabled)

    async def retry_pending(self) -> int:
        """
        Replay queued writes in the order they failed.

        Stops at the first write that fails again so ordering is preserved.

        Returns:
            Number of writes that went through
        """
        flushed = 0
        for key in list(self.pending):
            collection, entity_id = key
            document = self.pending[key]
            try:
                await self._apply(collection, entity_id, document)
            except Exception as e:
                logger.warning(
                    "persistence_retry_failed",
                    collection=collection,
                    entity_id=entity_id,
                    remaining=len(self.pending),
                    error=str(e),
                )
                break
            del self.pending[key]
            flushed += 1

        if flushed:
            logger.info("persistence_retry_flushed", flushed=flushed, remaining=len(self.pending))
        return flushed

    @staticmethod
    def _encode(entity: BaseModel) -> str:
        return entity.model_dump_json()

    async def _apply(self, collection: str, entity_id: str, document: str | None) -> None:
        if document is None:
            await self.state.hdel(collection, entity_id)
        else:
            await self.state.hset(collection, entity_id, document)

    async def _write(self, collection: str, entity_id: str, document: str | None) -> bool:
        try:
            await self._apply(collection, entity_id, document)
        except Exception as e:
            self._record_failure(collection, entity_id, document, e)
            return False

        # A newer successful write supersedes anything queued for this entity.
        self.pending.pop((collection, entity_id), None)
        return True

    async def _write_many(self, collection: str, entities: Iterable[BaseModel]) -> bool:
        mapping = {entity.id: self._encode(entity) for entity in entities}
        if not mapping:
            return True
        try:
            await self.state.hset_many(collection, mapping)
        except Exception as e:
            for entity_id, document in mapping.items():
                self._record_failure(collection, entity_id, document, e)
            return False

        for entity_id in mapping:
            self.pending.pop((collection, entity_id), None)
        return True

    def _record_failure(
        self,
        collection: str,
        entity_id: str,
        document: str | None,
        error: Exception,
    ) -> None:
        queued = self.settings.persistence_retry_enabled
        if queued:
            key = (collection, entity_id)
            self.pending.pop(key, None)
            self.pending[key] = document
            while len(self.pending) > self.settings.persistence_retry_limit:
                dropped, _ = self.pending.popitem(last=False)
                logger.error("persistence_retry_dropped", collection=dropped[0], entity_id=dropped[1])

        self.action_logger.log_persistence_failure(
            operation="delete" if document is None else "save",
            collection=collection,
            entity_id=entity_id,
            error=str(error),
            queued=queued,
        )
