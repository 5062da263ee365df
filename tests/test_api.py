import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.background_processor import VENUE_BACKGROUND_LOCATION_TASK
from app.services.container import build_container
from app.services.notification_bridge import NotificationBridge

from fakes import PUSH_TOKEN

T0_MS = 1_700_000_000_000

SESSION = {
    "venueId": "venue-1",
    "eventName": "Hooked Night",
    "venueName": "The Anchor",
    "joinedAt": "2026-10-16T20:00:00+00:00",
}


@pytest.fixture
def container(session_factory, ping_client, device, kv, reporter, sender):
    notifications = NotificationBridge(kv, reporter, sender=sender, push_token=PUSH_TOKEN)
    return build_container(session_factory, client=ping_client, notifications=notifications, device=device)


@pytest.fixture
def client(container):
    app.state.container = container
    with TestClient(app) as c:
        yield c
    del app.state.container


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_device_state_round_trip(client):
    r = client.post("/v1/device/state", json={"battery_level": 35, "background_permission": "denied"})
    assert r.status_code == 200

    state = client.get("/v1/device/state").json()
    assert state["battery_level"] == 35
    assert state["background_permission"] == "denied"
    assert state["foreground_permission"] == "granted"


def test_battery_level_is_validated(client):
    r = client.post("/v1/device/state", json={"battery_level": 140})
    assert r.status_code == 422


def test_session_lifecycle(client, ping_client):
    r = client.post("/v1/venues/sessions", json=SESSION)
    assert r.status_code == 201
    assert r.json()["active_venues"] == 1
    assert len(ping_client.requests) == 1

    sessions = client.get("/v1/venues/sessions").json()
    assert sessions[0]["venueId"] == "venue-1"
    assert sessions[0]["isActive"] is True

    status = client.get("/v1/venues/status").json()
    assert status["foreground"]["is_pinging"] is True
    assert status["background"]["active_venues"] == 1

    assert client.delete("/v1/venues/sessions/venue-1").status_code == 200
    assert client.delete("/v1/venues/sessions/venue-1").status_code == 404
    assert client.get("/v1/venues/status").json()["foreground"]["is_pinging"] is False


def test_invalid_session_is_rejected(client):
    r = client.post("/v1/venues/sessions", json={**SESSION, "venueId": ""})
    assert r.status_code == 422


def test_forced_ping(client, ping_client):
    client.post("/v1/venues/sessions", json=SESSION)

    r = client.post("/v1/venues/ping")
    assert r.status_code == 200
    body = r.json()
    assert body["results"][0]["venueId"] == "venue-1"
    assert body["next_ping_interval"] == 78
    assert len(ping_client.requests) == 2

    stats = client.get("/v1/venues/ping/stats").json()
    assert stats["total_pings"] == 2
    assert stats["success_rate"] == 100


def test_background_task_callback(client, ping_client):
    client.post("/v1/venues/sessions", json=SESSION)
    assert VENUE_BACKGROUND_LOCATION_TASK in client.get("/v1/device/tasks").json()

    r = client.post(
        f"/v1/device/tasks/{VENUE_BACKGROUND_LOCATION_TASK}",
        json={
            "data": {
                "locations": [
                    {"coords": {"latitude": 40.7128, "longitude": -74.006, "accuracy": 25}, "timestamp": T0_MS}
                ]
            }
        },
    )
    assert r.status_code == 200
    assert ping_client.requests[-1].session_id == "background_task"

    status = client.get("/v1/device/background/status").json()
    assert status["last_ping"] is not None


def test_unknown_task_is_404(client):
    r = client.post("/v1/device/tasks/unknown-task", json={})
    assert r.status_code == 404


def test_entry_and_exit(client):
    r = client.post(
        "/v1/venues/entry",
        json={
            "venueId": "venue-1",
            "venueName": "The Anchor",
            "eventName": "Hooked Night",
            "nonce": "n-1",
            "joinedAt": "2026-10-16T20:00:00+00:00",
            "sessionId": "s-1",
        },
    )
    assert r.status_code == 201
    assert r.json()["current_venue_id"] == "venue-1"
    assert client.get("/v1/venues/current").json()["in_venue"] is True

    assert client.post("/v1/venues/exit", json={"reason": "manual"}).status_code == 200
    assert client.post("/v1/venues/exit", json={}).status_code == 404

    history = client.get("/v1/venues/history").json()
    assert history[0]["venueId"] == "venue-1"
    assert "leftAt" in history[0]


def test_monitored_venues(client):
    venue = {
        "id": "venue-1",
        "name": "The Anchor",
        "coordinates": [-74.006, 40.7128],
        "hookedHours": {"friday": {"open": "22:00", "close": "23:30"}},
    }
    assert client.post("/v1/venues/monitored", json=venue).status_code == 201

    monitored = client.get("/v1/venues/monitored").json()
    assert monitored[0]["venue"]["id"] == "venue-1"
    assert monitored[0]["status"] is not None

    client.post(
        "/v1/device/location",
        json={"coords": {"latitude": 40.7128, "longitude": -74.006, "accuracy": 10}, "timestamp": T0_MS},
    )
    verify = client.get("/v1/venues/monitored/venue-1/verify", params={"radius_m": 50}).json()
    assert verify["within_radius"] is True

    assert client.delete("/v1/venues/monitored/venue-1").status_code == 200
    assert client.delete("/v1/venues/monitored/venue-1").status_code == 404


def test_push_registration_and_settings(client, kv):
    assert client.post("/v1/notifications/register", json={"token": "bogus"}).status_code == 400
    assert client.post("/v1/notifications/register", json={"token": PUSH_TOKEN}).status_code == 200

    stats = client.get("/v1/notifications/stats").json()
    assert stats["scheduled"] == 0

    settings = client.patch("/v1/notifications/settings", json={"proximity_alerts": False}).json()
    assert settings == {"venueTransitions": True, "proximityAlerts": False, "statusChanges": True}


def test_notification_action_selects_venue(client, container):
    container.notifications.set_view_venue_handler(container.event_store.set_selected_venue_id)

    r = client.post("/v1/notifications/actions", json={"action": "view_venue", "data": {"venueId": "venue-9"}})
    assert r.json()["selected_venue_id"] == "venue-9"


def test_monitored_venue_lists_next_change(client):
    venue = {
        "id": "venue-1",
        "name": "The Anchor",
        "coordinates": [-74.006, 40.7128],
        "hookedHours": {"monday": {"open": "22:00", "close": "23:30"}},
    }
    client.post("/v1/venues/monitored", json=venue)

    next_change = client.get("/v1/venues/monitored").json()[0]["next_change"]
    assert next_change["at"] is not None
    assert next_change["time_until"] != "Now"


def test_diagnostics_lists_breadcrumbs(client):
    client.post("/v1/venues/sessions", json=SESSION)

    crumbs = client.get("/v1/device/diagnostics").json()["breadcrumbs"]
    assert "Venue session added" in [c["message"] for c in crumbs]
