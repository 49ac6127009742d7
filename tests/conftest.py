"""Pytest configuration and fixtures."""

import json
import os
from typing import Any, AsyncGenerator

os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from iot_oracle.api.routes import get_conversation_manager
from iot_oracle.config import Settings
from iot_oracle.ledger.allocation import AllocationLedger
from iot_oracle.ledger.composer import ProjectComposer
from iot_oracle.main import app
from iot_oracle.models.analysis import ComplexityAnalysis
from iot_oracle.models.inventory import InventoryItem, ItemStatus, MarketDataItem
from iot_oracle.models.project import Project
from iot_oracle.state.conversation import ConversationManager
from iot_oracle.state.manager import StateManager
from iot_oracle.state.workspace import Workspace, get_workspace


class InMemoryStateManager(StateManager):
    """StateManager that keeps everything in dictionaries.

    Set ``fail_writes`` to make every write raise like an unreachable Redis.
    """

    def __init__(self) -> None:
        super().__init__(redis_url="redis://unused")
        self.values: dict[str, Any] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.fail_writes = False
        self.write_count = 0

    def _check(self) -> None:
        if self.fail_writes:
            raise RedisConnectionError("Connection refused")
        self.write_count += 1

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._check()
        if isinstance(value, (dict, list, bool)):
            value = json.dumps(value)
        self.values[key] = value

    async def get(self, key: str) -> Any:
        value = self.values.get(key)
        if value:
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value
        return None

    async def delete(self, key: str) -> None:
        self._check()
        self.values.pop(key, None)

    async def hset(self, key: str, field: str, value: Any) -> None:
        self._check()
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        self.hashes.setdefault(key, {})[field] = value

    async def hset_many(self, key: str, mapping: dict[str, str]) -> None:
        if not mapping:
            return
        self._check()
        self.hashes.setdefault(key, {}).update(mapping)

    async def hget(self, key: str, field: str) -> Any:
        value = self.hashes.get(key, {}).get(field)
        return json.loads(value) if value else None

    async def hgetall(self, key: str) -> dict[str, Any]:
        return {field: json.loads(value) for field, value in self.hashes.get(key, {}).items()}

    async def hdel(self, key: str, *fields: str) -> None:
        self._check()
        for field in fields:
            self.hashes.get(key, {}).pop(field, None)

    async def flush(self) -> None:
        self.values.clear()
        self.hashes.clear()


class StubAnalyst:
    """Analyst double returning canned answers."""

    def __init__(
        self,
        analysis: ComplexityAnalysis | None = None,
        quotes: list[MarketDataItem] | None = None,
        fail: bool = False,
    ):
        self.analysis = analysis or ComplexityAnalysis(is_complex=False)
        self.quotes = quotes or []
        self.fail = fail
        self.complexity_calls: list[str] = []
        self.lookups: list[str] = []

    async def analyze_complexity(
        self, project_name: str, description: str, components: list[str]
    ) -> ComplexityAnalysis:
        self.complexity_calls.append(project_name)
        if self.fail:
            raise RuntimeError("analysis unavailable")
        return self.analysis

    async def lookup_market_data(
        self, item_name: str, search_query: str | None = None
    ) -> list[MarketDataItem]:
        self.lookups.append(item_name)
        return self.quotes


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, anthropic_api_key="test-key")


@pytest.fixture
def state_manager() -> InMemoryStateManager:
    return InMemoryStateManager()


@pytest.fixture
def esp32() -> InventoryItem:
    return InventoryItem(name="ESP32", quantity=10, status=ItemStatus.HAVE)


@pytest.fixture
def led() -> InventoryItem:
    return InventoryItem(name="LED", quantity=50, status=ItemStatus.HAVE)


@pytest.fixture
def ledger(esp32: InventoryItem, led: InventoryItem) -> AllocationLedger:
    """Ledger with two owned items and two empty projects, P1 and P2."""
    ledger = AllocationLedger()
    ledger.add_item(esp32)
    ledger.add_item(led)
    ledger.add_project(Project(id="p1", name="Night Light"))
    ledger.add_project(Project(id="p2", name="Door Sensor"))
    return ledger


@pytest.fixture
def composer(ledger: AllocationLedger) -> ProjectComposer:
    return ProjectComposer(ledger)


@pytest.fixture
def analyst() -> StubAnalyst:
    return StubAnalyst()


@pytest_asyncio.fixture
async def workspace(
    state_manager: InMemoryStateManager,
    settings: Settings,
    analyst: StubAnalyst,
) -> Workspace:
    """Workspace over in-memory storage, seeded with ESP32 and LED stock."""
    workspace = Workspace(state_manager, analyst=analyst, settings=settings)
    workspace.ledger.add_item(InventoryItem(id="esp32", name="ESP32", quantity=10))
    workspace.ledger.add_item(InventoryItem(id="led", name="LED", quantity=50))
    workspace.ledger.add_project(Project(id="p1", name="Night Light"))
    workspace.ledger.add_project(Project(id="p2", name="Door Sensor"))
    await workspace.repository.save_items(workspace.ledger.list_items())
    await workspace.repository.save_projects(workspace.ledger.list_projects())
    return workspace


@pytest.fixture
def conversation_manager(state_manager: InMemoryStateManager) -> ConversationManager:
    return ConversationManager(state_manager)


@pytest_asyncio.fixture
async def test_client(
    workspace: Workspace,
    conversation_manager: ConversationManager,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the in-memory workspace."""
    app.dependency_overrides[get_workspace] = lambda: workspace
    app.dependency_overrides[get_conversation_manager] = lambda: conversation_manager
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()

