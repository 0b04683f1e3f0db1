# tests/middleware/test_header_inject.py
# Per-site configured headers applied to responses through the full app.

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from headerapp.engine import HeaderResolutionEngine
from headerapp.middleware.header_inject import install_header_injection
from headerapp.settings import APP_KEY


def test_matching_rule_headers_are_applied(client, site_a) -> None:
    r = client.get("/health", headers={"X-Site-ID": "siteA"})
    assert r.status_code == 200
    assert "x-frame-options" not in r.headers

    r = client.get("/api/users", headers={"X-Site-ID": "siteA"})
    assert r.status_code == 404
    assert r.headers.get("x-frame-options") == "DENY"


def test_site_falls_back_to_host_name(client, memory_store) -> None:
    memory_store.save_secrets(APP_KEY, "shop.example.com", {"/health": "x-shop: 1"})
    r = client.get("/health", headers={"Host": "Shop.Example.com"})
    assert r.headers.get("x-shop") == "1"

    r = client.get("/health", headers={"Host": "other.example.com"})
    assert "x-shop" not in r.headers


def test_configured_header_overwrites_existing_value(client, memory_store) -> None:
    memory_store.save_secrets(APP_KEY, "s", {"/health": "content-type: text/x-custom"})
    r = client.get("/health", headers={"X-Site-ID": "s"})
    assert r.headers["content-type"] == "text/x-custom"


def test_percent_encoded_path_matches_decoded_pattern(client, memory_store) -> None:
    memory_store.save_secrets(APP_KEY, "s", {"/my docs/": "x-docs: yes"})
    r = client.get("/my%20docs/readme", headers={"X-Site-ID": "s"})
    assert r.headers.get("x-docs") == "yes"


def test_excluded_paths_are_untouched(client, memory_store) -> None:
    memory_store.save_secrets(APP_KEY, "s", {"/": "x-everywhere: 1"})
    assert client.get("/metrics", headers={"X-Site-ID": "s"}).headers.get("x-everywhere") is None
    assert client.get("/health", headers={"X-Site-ID": "s"}).headers.get("x-everywhere") == "1"


def test_saving_config_takes_effect_on_next_request(client, memory_store) -> None:
    assert client.get("/health", headers={"X-Site-ID": "s"}).headers.get("x-v") is None
    memory_store.save_secrets(APP_KEY, "s", {"/health": "x-v: 1"})
    assert client.get("/health", headers={"X-Site-ID": "s"}).headers.get("x-v") == "1"
    memory_store.save_secrets(APP_KEY, "s", {"/health": "x-v: 2"})
    assert client.get("/health", headers={"X-Site-ID": "s"}).headers.get("x-v") == "2"


class _FailingEngine(HeaderResolutionEngine):
    def resolve_headers(self, url, site):
        raise RuntimeError("engine down")


def test_engine_failure_leaves_response_intact(memory_store) -> None:
    app = FastAPI()

    @app.get("/ping")
    def ping() -> dict:
        return {"pong": True}

    install_header_injection(app, lambda: _FailingEngine(memory_store))
    with TestClient(app) as c:
        r = c.get("/ping", headers={"X-Site-ID": "s"})
    assert r.status_code == 200
    assert r.json() == {"pong": True}
