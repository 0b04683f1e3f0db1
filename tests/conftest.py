# tests/conftest.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import pytest
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from headerapp.engine import HeaderResolutionEngine  # noqa: E402
from headerapp.events import EventBus  # noqa: E402
from headerapp.main import create_app  # noqa: E402
from headerapp.secrets_store import InMemorySecretStore  # noqa: E402
from headerapp.settings import APP_KEY, HeaderAppSettings, reset_settings  # noqa: E402


class CountingStore:
    """Secret store fake that records every lookup."""

    def __init__(self, data: Optional[Dict[str, Mapping[str, str]]] = None) -> None:
        self.data: Dict[str, Mapping[str, str]] = dict(data or {})
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_with: Optional[Exception] = None

    def get_secrets(
        self, app_key: str, site: str, acting_user: str
    ) -> Optional[Mapping[str, str]]:
        self.calls.append((app_key, site, acting_user))
        if self.fail_with is not None:
            raise self.fail_with
        return self.data.get(site)

    def fetches_for(self, site: str) -> int:
        return sum(1 for _, s, _ in self.calls if s == site)


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    for name in ("HEADERAPP_ADMIN_API_KEY", "HEADERAPP_SECRETS_BACKEND", "HEADERAPP_EXCLUDE_PATHS"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture()
def counting_store() -> CountingStore:
    return CountingStore()


@pytest.fixture()
def engine(counting_store: CountingStore) -> HeaderResolutionEngine:
    return HeaderResolutionEngine(counting_store)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def memory_store(bus: EventBus) -> InMemorySecretStore:
    return InMemorySecretStore(bus=bus)


@pytest.fixture()
def settings() -> HeaderAppSettings:
    return HeaderAppSettings()


@pytest.fixture()
def app(settings: HeaderAppSettings, memory_store: InMemorySecretStore, bus: EventBus):
    # Function scope: new app per test so state never leaks between tests.
    return create_app(settings, store=memory_store, bus=bus)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def site_a(memory_store: InMemorySecretStore) -> str:
    memory_store.save_secrets(
        APP_KEY,
        "siteA",
        {"name": "My Config", "/api/*": "x-frame-options: DENY"},
    )
    return "siteA"
