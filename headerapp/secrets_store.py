from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

import yaml

from headerapp.events import AppSecretSavedEvent, EventBus, get_bus
from headerapp.settings import HeaderAppSettings

_log = logging.getLogger(__name__)


class SecretStore(Protocol):
    def get_secrets(
        self, app_key: str, site: str, acting_user: str
    ) -> Optional[Mapping[str, str]]: ...


class _PublishingStore:
    """Shared event publishing for the concrete stores."""

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        self._bus = bus

    @property
    def bus(self) -> EventBus:
        return self._bus if self._bus is not None else get_bus()

    def _saved(self, app_key: str, site: str) -> None:
        delivered = self.bus.publish(AppSecretSavedEvent(key=app_key, site=site))
        _log.debug("secret saved event for %s/%s delivered to %d", app_key, site, delivered)


def _clean_fields(fields: Mapping[str, object]) -> Dict[str, str]:
    return {str(k): "" if v is None else str(v) for k, v in fields.items()}


class InMemorySecretStore(_PublishingStore):
    """Process-local store keyed by ``(app_key, site)``; insertion order is kept."""

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        super().__init__(bus)
        self._lock = RLock()
        self._data: Dict[Tuple[str, str], Dict[str, str]] = {}

    def get_secrets(
        self, app_key: str, site: str, acting_user: str
    ) -> Optional[Mapping[str, str]]:
        with self._lock:
            fields = self._data.get((app_key, site))
            return dict(fields) if fields else None

    def save_secrets(self, app_key: str, site: str, fields: Mapping[str, object]) -> None:
        with self._lock:
            self._data[(app_key, site)] = _clean_fields(fields)
        self._saved(app_key, site)

    def delete_secrets(self, app_key: str, site: str) -> bool:
        with self._lock:
            existed = self._data.pop((app_key, site), None) is not None
        if existed:
            self._saved(app_key, site)
        return existed

    def list_sites(self, app_key: str) -> List[str]:
        with self._lock:
            return [site for (key, site) in self._data if key == app_key]


class YamlSecretStore(_PublishingStore):
    """
    File-backed store. Layout::

        headerapp:
          <site-id>:
            name: My Config
            "/api/*": "x-frame-options: DENY"

    The file is re-read on every lookup so out-of-band edits are visible once
    the engine cache is invalidated.
    """

    def __init__(self, path: str | Path, bus: Optional[EventBus] = None) -> None:
        super().__init__(bus)
        self._path = Path(path)
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        if not self._path.exists():
            return {}
        data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self._path}: top level must be a mapping")
        return data

    def _dump(self, data: Mapping[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(yaml.safe_dump(dict(data), sort_keys=False), encoding="utf-8")

    def get_secrets(
        self, app_key: str, site: str, acting_user: str
    ) -> Optional[Mapping[str, str]]:
        with self._lock:
            sites = self._load().get(app_key) or {}
        fields = sites.get(site) if isinstance(sites, dict) else None
        if not isinstance(fields, dict) or not fields:
            return None
        return _clean_fields(fields)

    def save_secrets(self, app_key: str, site: str, fields: Mapping[str, object]) -> None:
        with self._lock:
            data = self._load()
            sites = data.get(app_key)
            if not isinstance(sites, dict):
                sites = {}
            sites[site] = _clean_fields(fields)
            data[app_key] = sites
            self._dump(data)
        self._saved(app_key, site)

    def delete_secrets(self, app_key: str, site: str) -> bool:
        with self._lock:
            data = self._load()
            sites = data.get(app_key)
            if not isinstance(sites, dict) or site not in sites:
                return False
            del sites[site]
            self._dump(data)
        self._saved(app_key, site)
        return True

    def list_sites(self, app_key: str) -> List[str]:
        with self._lock:
            sites = self._load().get(app_key) or {}
        return [str(s) for s in sites] if isinstance(sites, dict) else []


def build_secret_store(
    settings: HeaderAppSettings, bus: Optional[EventBus] = None
) -> InMemorySecretStore | YamlSecretStore:
    if settings.secrets_backend == "yaml":
        return YamlSecretStore(settings.secrets_path, bus=bus)
    return InMemorySecretStore(bus=bus)
