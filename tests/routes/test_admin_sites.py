from __future__ import annotations

from fastapi.testclient import TestClient

from headerapp.events import AppSecretSavedEvent
from headerapp.main import create_app
from headerapp.secrets_store import InMemorySecretStore
from headerapp.settings import HeaderAppSettings


def test_put_get_list_delete_site(client) -> None:
    fields = {"name": "My Config", "/api/*": "x-frame-options: DENY"}
    r = client.put("/admin/sites/siteA", json={"fields": fields})
    assert r.status_code == 200
    assert r.json() == {"site": "siteA", "fields": fields}

    r = client.get("/admin/sites/siteA")
    assert r.status_code == 200
    assert r.json()["fields"] == fields

    assert client.get("/admin/sites").json() == {"sites": ["siteA"]}

    assert client.delete("/admin/sites/siteA").status_code == 204
    assert client.get("/admin/sites/siteA").status_code == 404
    assert client.delete("/admin/sites/siteA").status_code == 404


def test_put_rejects_empty_fields(client) -> None:
    assert client.put("/admin/sites/s", json={"fields": {}}).status_code == 422


def test_resolve_preview_tracks_saves(client) -> None:
    r = client.get("/admin/sites/siteA/resolve", params={"url": "/api/users"})
    assert r.json() == {"site": "siteA", "url": "/api/users", "matched": False, "headers": None}

    client.put("/admin/sites/siteA", json={"fields": {"/api/*": "x-frame-options: DENY"}})
    r = client.get("/admin/sites/siteA/resolve", params={"url": "/api/users"})
    assert r.json()["matched"] is True
    assert r.json()["headers"] == {"x-frame-options": "DENY"}

    r = client.get("/admin/sites/siteA/resolve", params={"url": "/static/app.js"})
    assert r.json()["matched"] is False


def test_admin_key_required_when_configured(bus) -> None:
    settings = HeaderAppSettings(admin_api_key="s3cret")
    app = create_app(settings, store=InMemorySecretStore(bus=bus), bus=bus)
    with TestClient(app) as c:
        assert c.get("/admin/sites").status_code == 401
        assert c.get("/admin/sites", headers={"X-Admin-Key": "wrong"}).status_code == 401
        assert c.get("/admin/sites", headers={"X-Admin-Key": "s3cret"}).status_code == 200


def test_health_reports_cached_sites(client, site_a) -> None:
    client.get("/health", headers={"X-Site-ID": "siteA"})
    body = client.get("/health", headers={"X-Site-ID": "siteA"}).json()
    assert body["ok"] is True
    assert body["cached_sites"] == ["siteA"]
    assert body["subscribed"] is True


def test_metrics_exposes_resolution_counters(client, site_a) -> None:
    client.get("/api/users", headers={"X-Site-ID": "siteA"})
    text = client.get("/metrics").text
    assert "headerapp_resolutions_total" in text
    assert "headerapp_cache_events_total" in text


def test_lifespan_subscribes_engine_and_unsubscribes_on_shutdown(bus) -> None:
    app = create_app(HeaderAppSettings(), store=InMemorySecretStore(bus=bus), bus=bus)
    assert bus.subscribers(AppSecretSavedEvent) == ()
    with TestClient(app):
        assert bus.subscribers(AppSecretSavedEvent) == (app.state.engine,)
    assert bus.subscribers(AppSecretSavedEvent) == ()
