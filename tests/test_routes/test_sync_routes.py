# tests/test_routes/test_sync_routes.py
import pytest

from tests.conftest import make_product
from tests.mocks.mock_destination import MockDestination


@pytest.fixture
def client(test_client):
    """The running app with one product and two mock storefronts."""
    state = test_client.app.state
    state.catalog.add_product(make_product("p1"))
    for destination_id in ("d1", "d2"):
        state.registry.register(
            destination_id,
            MockDestination(destination_id),
            default_location_id=f"gid://{destination_id}/Location/1",
        )
    return test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "StoreSync"

    response = client.get("/health/db")
    assert response.json()["database"] == "in-memory"


def test_sync_health_lists_connected_destinations(client):
    data = client.get("/health/sync").json()
    assert sorted(data["connected_destinations"]) == ["d1", "d2"]
    assert data["active_runs"] == []


def test_single_sync_creates_product(client):
    response = client.post(
        "/api/sync/products/p1/destinations/d1",
        json={"inventory": {"p1-v1": 3}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["outcome"] == "success"
    assert body["operation"] == "create"
    assert body["inventory"] == {"p1-v1": 3}
    assert body["remote_ref"]["remote_id"].startswith("gid://d1/Product/")


def test_single_sync_unknown_product_is_404(client):
    response = client.post("/api/sync/products/missing/destinations/d1", json={})
    assert response.status_code == 404


def test_single_sync_unknown_destination_is_404(client):
    response = client.post("/api/sync/products/p1/destinations/nowhere", json={})
    assert response.status_code == 404


def test_single_sync_bad_variant_is_400(client):
    response = client.post(
        "/api/sync/products/p1/destinations/d1",
        json={"inventory": {"other-variant": 1}},
    )
    assert response.status_code == 400
    assert "other-variant" in response.json()["detail"]


def test_bulk_sync_reports_per_destination(client):
    client.app.state.registry.resolve("d2").should_fail = True

    response = client.post(
        "/api/sync/products/p1/bulk",
        json={
            "destination_ids": ["d1", "d2"],
            "config": {"default": {"inventory": {"p1-v1": 2}}},
            "run_id": "run-http",
        },
    )

    assert response.status_code == 200
    report = response.json()
    assert report["run_id"] == "run-http"
    assert report["keyed_by"] == "destination"
    assert report["results"]["d1"]["outcome"] == "success"
    assert report["results"]["d2"]["outcome"] == "failure"
    assert report["results"]["d2"]["error_kind"] == "remote"


def test_bulk_sync_requires_destinations(client):
    response = client.post("/api/sync/products/p1/bulk", json={"destination_ids": []})
    assert response.status_code == 422


def test_bulk_sync_by_destination(client):
    client.app.state.catalog.add_product(make_product("p2", pools=(1, 1)))

    response = client.post(
        "/api/sync/destinations/d1/bulk",
        json={"product_ids": ["p1", "p2", "ghost"]},
    )

    report = response.json()
    assert report["keyed_by"] == "product"
    assert report["results"]["p1"]["outcome"] == "success"
    assert report["results"]["p2"]["outcome"] == "success"
    assert report["results"]["ghost"]["outcome"] == "failure"


def test_status_and_history_after_sync(client):
    client.post("/api/sync/products/p1/destinations/d1", json={})

    status = client.get("/api/sync/products/p1/status").json()
    assert status["connected"] is True
    assert status["destinations"]["d1"]["status"] == "synced"
    assert status["destinations"]["d1"]["effective_status"] == "synced"
    assert status["stats"]["successful_syncs"] == 1

    history = client.get("/api/sync/products/p1/destinations/d1/history").json()
    assert len(history) == 1
    assert history[0]["success"] is True


def test_status_for_unsynced_product(client):
    status = client.get("/api/sync/products/p1/status").json()
    assert status["connected"] is False
    assert status["destinations"] == {}


def test_unsync_releases_inventory(client):
    client.post("/api/sync/products/p1/destinations/d1", json={"inventory": {"p1-v1": 4}})
    assert client.get("/api/inventory/variants/p1-v1").json()["available"] == 6

    response = client.delete("/api/sync/products/p1/destinations/d1")

    assert response.status_code == 200
    assert response.json()["operation"] == "delete"
    summary = client.get("/api/inventory/variants/p1-v1").json()
    assert summary["available"] == 10
    assert summary["committed"] == {}


def test_inventory_summary_unknown_variant_is_404(client):
    assert client.get("/api/inventory/variants/nope").status_code == 404


def test_cancel_unknown_run_is_404(client):
    assert client.post("/api/sync/runs/not-running/cancel").status_code == 404


def test_disconnect_destination(client):
    client.post("/api/sync/products/p1/destinations/d1", json={"inventory": {"p1-v1": 3, "p1-v2": 1}})

    response = client.post("/api/destinations/d1/disconnect")

    assert response.status_code == 200
    assert response.json() == {"destination_id": "d1", "invalidated_records": 1, "released_units": 4}
    assert client.get("/health/sync").json()["connected_destinations"] == ["d2"]
    status = client.get("/api/sync/products/p1/status").json()
    assert status["connected"] is False
    assert status["destinations"]["d1"]["status"] == "synced"
    assert status["destinations"]["d1"]["effective_status"] == "never_synced"


def test_notification_created_for_completed_sync(client):
    client.post("/api/sync/products/p1/destinations/d1", json={})

    assert client.get("/api/notifications/unread-count").json() == {"count": 1}
    items = client.get("/api/notifications").json()
    assert items[0]["type"] == "success"
    assert items[0]["message"] == "1 of 1 destinations synced"
    assert items[0]["link"] == "/api/sync/products/p1/status"

    notification_id = items[0]["id"]
    assert client.post(f"/api/notifications/{notification_id}/read").status_code == 200
    assert client.get("/api/notifications", params={"unread_only": True}).json() == []

    assert client.delete(f"/api/notifications/{notification_id}").status_code == 200
    assert client.delete(f"/api/notifications/{notification_id}").status_code == 404


def test_mark_all_notifications_read(client):
    client.post("/api/sync/products/p1/destinations/d1", json={})
    client.post("/api/sync/products/p1/destinations/d2", json={})

    assert client.post("/api/notifications/read-all").json() == {"updated": 2}
    assert client.get("/api/notifications/unread-count").json() == {"count": 0}


def test_websocket_receives_sync_events(client):
    with client.websocket_connect("/ws") as websocket:
        client.post("/api/sync/products/p1/destinations/d1", json={})

        names = [websocket.receive_json()["name"] for _ in range(3)]

    assert names == ["sync.started", "sync.progress", "sync.completed"]


def test_live_inventory_for_synced_product(client):
    client.post("/api/sync/products/p1/destinations/d1", json={"inventory": {"p1-v1": 3}})

    response = client.get("/api/inventory/products/p1/destinations/d1")

    assert response.status_code == 200
    body = response.json()
    assert body["location_id"] == "gid://d1/Location/1"
    by_variant = {v["variant_id"]: v for v in body["variants"]}
    assert by_variant["p1-v1"]["remote_quantity"] == 3
    assert by_variant["p1-v1"]["drift"] == 0


def test_live_inventory_before_sync_is_400(client):
    assert client.get("/api/inventory/products/p1/destinations/d1").status_code == 400


def test_live_inventory_remote_failure_is_502(client):
    client.post("/api/sync/products/p1/destinations/d1", json={})
    client.app.state.registry.resolve("d1").should_fail = True

    assert client.get("/api/inventory/products/p1/destinations/d1").status_code == 502


def test_rejected_sync_still_notifies(client):
    response = client.post("/api/sync/products/p1/destinations/d1", json={"inventory": {"nope": 1}})
    assert response.status_code == 400

    items = client.get("/api/notifications").json()
    assert len(items) == 1
    assert items[0]["type"] == "error"
    assert items[0]["details"]["failed"] == ["d1"]
