from datetime import datetime, timedelta

import pytest

from app.schemas.enums import EntryStatus, QrScanOutcome
from app.schemas.venue import HoursWindow, QrScanResult, Venue, VenueEventEntry
from app.services.venue_event_store import STORE_KEY, VenueEventStore
from app.services.venue_hours import DAYS

NOW = datetime(2026, 10, 16, 22, 30)


def make_venue(venue_id="venue-1") -> Venue:
    return Venue(
        id=venue_id,
        name="The Anchor",
        coordinates=(-74.0060, 40.7128),
        hooked_hours={day: HoursWindow(open="22:00", close="23:30") for day in DAYS},
    )


def make_entry(venue_id="venue-1", joined_at=NOW) -> VenueEventEntry:
    return VenueEventEntry(
        venue_id=venue_id,
        venue_name="The Anchor",
        event_name="Hooked Night",
        nonce="n-123",
        joined_at=joined_at,
        session_id="s-1",
    )


def scan(venue_id="venue-1", at=NOW, result=QrScanOutcome.success) -> QrScanResult:
    return QrScanResult(venue_id=venue_id, result=result, timestamp=at)


@pytest.fixture
def store(kv):
    return VenueEventStore(kv)


def test_monitored_venue_gets_status(store):
    assert store.add_monitored_venue(make_venue(), NOW) is True
    assert store.add_monitored_venue(make_venue(), NOW) is False

    status = store.venue_statuses["venue-1"]
    assert status.is_active is True
    assert status.status_text == "Hooked Hours Active"

    store.remove_monitored_venue("venue-1")
    assert store.monitored_venues == []
    assert "venue-1" not in store.venue_statuses


def test_entry_lifecycle_tracks_history(store):
    store.set_current_venue_entry(make_entry())
    store.record_venue_ping(NOW + timedelta(minutes=5))

    assert store.is_currently_in_venue() is True
    assert store.get_current_venue_id() == "venue-1"
    assert store.current_venue_entry.last_ping_at == NOW + timedelta(minutes=5)

    store.update_venue_entry_status(EntryStatus.left)
    assert store.get_current_venue_id() is None

    store.set_current_venue_entry(None, now=NOW + timedelta(minutes=42))
    history = store.get_venue_history()
    assert history[0].left_at == NOW + timedelta(minutes=42)
    assert history[0].duration == 42
    assert store.current_venue_entry is None


def test_history_has_no_duplicate_open_entries(store):
    assert store.add_venue_to_history("venue-1", "The Anchor", NOW) is True
    assert store.add_venue_to_history("venue-1", "The Anchor", NOW) is False
    store.complete_venue_history("venue-1", NOW + timedelta(hours=1))
    assert store.add_venue_to_history("venue-1", "The Anchor", NOW + timedelta(hours=2)) is True
    assert len(store.get_venue_history()) == 2


def test_proximity_alert_rules(store):
    store.add_monitored_venue(make_venue(), NOW)
    assert store.should_show_proximity_alert("venue-1", NOW) is True

    store.add_qr_scan_result(scan(result=QrScanOutcome.error, at=NOW - timedelta(minutes=5)))
    assert store.should_show_proximity_alert("venue-1", NOW) is True

    store.add_qr_scan_result(scan(at=NOW - timedelta(minutes=10)))
    assert store.should_show_proximity_alert("venue-1", NOW) is False
    assert store.should_show_proximity_alert("venue-1", NOW + timedelta(minutes=25)) is True

    store.update_notification_settings(proximity_alerts=False)
    assert store.should_show_proximity_alert("venue-1", NOW + timedelta(minutes=25)) is False


def test_inactive_venue_gets_no_proximity_alert(store):
    store.add_monitored_venue(make_venue(), NOW)
    store.update_venue_status("venue-1", False, "Closed", NOW)
    assert store.should_show_proximity_alert("venue-1", NOW) is False


def test_qr_scan_history_is_bounded(store):
    for i in range(60):
        store.add_qr_scan_result(scan(venue_id=f"venue-{i}"))

    assert len(store.qr_scan_results) == 50
    assert store.qr_scan_results[0].venue_id == "venue-59"


def test_clear_expired_data(store):
    store.add_qr_scan_result(scan(at=NOW - timedelta(days=8)))
    store.add_qr_scan_result(scan(at=NOW - timedelta(days=1)))
    store.add_venue_to_history("old", "Old Bar", NOW - timedelta(days=10))
    store.add_venue_to_history("new", "New Bar", NOW - timedelta(hours=3))

    store.clear_expired_data(NOW)

    assert len(store.qr_scan_results) == 1
    assert [h.venue_id for h in store.venue_history] == ["new"]


def test_persists_only_durable_state(store, kv):
    store.add_monitored_venue(make_venue(), NOW)
    store.set_current_venue_entry(make_entry())
    store.set_background_task_id("venue-background-location")
    store.update_notification_settings(status_changes=False)

    assert "currentVenueEntry" not in kv.get_json(STORE_KEY)

    reloaded = VenueEventStore(kv)
    reloaded.load()

    assert [v.id for v in reloaded.monitored_venues] == ["venue-1"]
    assert reloaded.venue_statuses["venue-1"].is_active is True
    assert reloaded.notification_settings.status_changes is False
    assert reloaded.venue_history[0].venue_id == "venue-1"
    assert reloaded.current_venue_entry is None
    assert reloaded.background_task_id is None


def test_unreadable_store_is_discarded(store, kv):
    kv.set_json(STORE_KEY, {"monitoredVenues": [{"id": "broken"}]})
    store.load()
    assert store.monitored_venues == []


def test_reset(store, kv):
    store.add_monitored_venue(make_venue(), NOW)
    store.set_current_venue_entry(make_entry())

    store.reset()

    assert store.monitored_venues == []
    assert store.venue_history == []
    assert kv.get_json(STORE_KEY)["monitoredVenues"] == []
