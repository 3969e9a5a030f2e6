from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from voiden_scripting.api.deps import get_log_store, get_script_host
from voiden_scripting.core.log_store import ScriptLogStore
from voiden_scripting.main import app


class FakeHost:
    """Script host with canned env / variables and mockable bridges."""

    def __init__(
        self,
        *,
        env: dict[str, Any] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> None:
        self.env = env or {"activeEnv": "dev", "data": {"dev": {"BASE_URL": "https://api.dev"}}}
        self.variables = dict(variables or {})
        self.persisted: dict[str, Any] = {}
        self.execute_node = AsyncMock()
        self.execute_python = AsyncMock()

    def load_env(self) -> dict[str, Any]:
        return self.env

    def read_variables(self) -> dict[str, Any]:
        return dict(self.variables)

    def persist_project_variables(self, updates: dict[str, Any]) -> None:
        self.persisted.update(updates)
        self.variables.update(updates)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def log_store() -> ScriptLogStore:
    return ScriptLogStore()


@pytest.fixture
def client(fake_host: FakeHost, log_store: ScriptLogStore) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_script_host] = lambda: fake_host
    app.dependency_overrides[get_log_store] = lambda: log_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def host_factory() -> type[FakeHost]:
    return FakeHost
