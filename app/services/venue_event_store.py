from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from app.core.ping_config import (
    QR_SCAN_HISTORY_LIMIT,
    RECENT_SCAN_WINDOW_SECONDS,
    STORE_RETENTION_SECONDS,
    VENUE_HISTORY_LIMIT,
)
from app.schemas.enums import EntryStatus, QrScanOutcome
from app.schemas.venue import (
    NotificationSettings,
    QrScanResult,
    UserLocation,
    Venue,
    VenueEventEntry,
    VenueHistoryItem,
    VenueStatus,
)
from app.services.kv_store import KeyValueStore
from app.services.venue_hours import get_venue_active_status

STORE_KEY = "venue-event-store"
STORE_VERSION = 1


class VenueEventStore:
    """
    Foreground venue event state.

    Only monitored venues, their statuses, notification settings, history and
    QR scan results are persisted. The current entry, the live location and
    the background task id live in memory only.
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        self._reset_state()

    def _reset_state(self) -> None:
        self.current_venue_entry: Optional[VenueEventEntry] = None
        self.user_location: Optional[UserLocation] = None
        self.is_location_tracking = False
        self.monitored_venues: List[Venue] = []
        self.venue_statuses: Dict[str, VenueStatus] = {}
        self.selected_venue_id: Optional[str] = None
        self.qr_scan_results: List[QrScanResult] = []
        self.background_task_id: Optional[str] = None
        self.is_background_location_enabled = False
        self.notification_settings = NotificationSettings()
        self.venue_history: List[VenueHistoryItem] = []

    # ---------------------------
    # Location
    # ---------------------------

    def set_user_location(self, location: UserLocation, now: Optional[datetime] = None) -> None:
        self.user_location = location
        now = now or datetime.now()
        for venue in self.monitored_venues:
            self._refresh_status(venue, now)
        self._persist()

    def set_location_tracking(self, enabled: bool) -> None:
        self.is_location_tracking = enabled

    def get_last_known_location(self) -> Optional[UserLocation]:
        return self.user_location

    # ---------------------------
    # Venue entry
    # ---------------------------

    def set_current_venue_entry(self, entry: Optional[VenueEventEntry], now: Optional[datetime] = None) -> None:
        previous = self.current_venue_entry
        self.current_venue_entry = entry

        if entry is not None:
            self.add_venue_to_history(entry.venue_id, entry.venue_name, entry.joined_at)
        elif previous is not None:
            self.complete_venue_history(previous.venue_id, now or datetime.now())

    def update_venue_entry_status(self, status: EntryStatus) -> None:
        if self.current_venue_entry is not None:
            self.current_venue_entry = self.current_venue_entry.model_copy(update={"status": status})

    def record_venue_ping(self, timestamp: Optional[datetime] = None) -> None:
        if self.current_venue_entry is not None:
            self.current_venue_entry = self.current_venue_entry.model_copy(
                update={"last_ping_at": timestamp or datetime.now()}
            )

    def is_currently_in_venue(self) -> bool:
        entry = self.current_venue_entry
        return entry is not None and entry.status == EntryStatus.active

    def get_current_venue_id(self) -> Optional[str]:
        return self.current_venue_entry.venue_id if self.is_currently_in_venue() else None

    # ---------------------------
    # Monitoring
    # ---------------------------

    def get_monitored_venue(self, venue_id: str) -> Optional[Venue]:
        for venue in self.monitored_venues:
            if venue.id == venue_id:
                return venue
        return None

    def add_monitored_venue(self, venue: Venue, now: Optional[datetime] = None) -> bool:
        if self.get_monitored_venue(venue.id) is not None:
            return False
        self.monitored_venues.append(venue)
        self._refresh_status(venue, now or datetime.now())
        self._persist()
        return True

    def remove_monitored_venue(self, venue_id: str) -> None:
        self.monitored_venues = [v for v in self.monitored_venues if v.id != venue_id]
        self.venue_statuses.pop(venue_id, None)
        self._persist()

    def update_venue_status(self, venue_id: str, is_active: bool, status_text: str, now: Optional[datetime] = None) -> None:
        self.venue_statuses[venue_id] = VenueStatus(
            is_active=is_active,
            last_checked=now or datetime.now(),
            status_text=status_text,
        )
        self._persist()

    def _refresh_status(self, venue: Venue, now: datetime) -> None:
        status = get_venue_active_status(venue, now)
        self.venue_statuses[venue.id] = VenueStatus(
            is_active=status.should_glow,
            last_checked=now,
            status_text=status.status_text,
        )

    def set_selected_venue_id(self, venue_id: Optional[str]) -> None:
        self.selected_venue_id = venue_id

    # ---------------------------
    # QR scans
    # ---------------------------

    def add_qr_scan_result(self, result: QrScanResult) -> None:
        self.qr_scan_results = [result, *self.qr_scan_results][:QR_SCAN_HISTORY_LIMIT]
        self._persist()

    def clear_qr_scan_history(self) -> None:
        self.qr_scan_results = []
        self._persist()

    # ---------------------------
    # Background / settings
    # ---------------------------

    def set_background_task_id(self, task_id: Optional[str]) -> None:
        self.background_task_id = task_id

    def set_background_location_enabled(self, enabled: bool) -> None:
        self.is_background_location_enabled = enabled

    def update_notification_settings(self, **changes: bool) -> NotificationSettings:
        self.notification_settings = self.notification_settings.model_copy(update=changes)
        self._persist()
        return self.notification_settings

    # ---------------------------
    # History
    # ---------------------------

    def add_venue_to_history(self, venue_id: str, venue_name: str, joined_at: datetime) -> bool:
        if any(h.venue_id == venue_id and h.left_at is None for h in self.venue_history):
            return False
        item = VenueHistoryItem(venue_id=venue_id, venue_name=venue_name, joined_at=joined_at)
        self.venue_history = [item, *self.venue_history][:VENUE_HISTORY_LIMIT]
        self._persist()
        return True

    def complete_venue_history(self, venue_id: str, left_at: datetime) -> None:
        completed = []
        for item in self.venue_history:
            if item.venue_id == venue_id and item.left_at is None:
                minutes = round((left_at.timestamp() - item.joined_at.timestamp()) / 60)
                item = item.model_copy(update={"left_at": left_at, "duration": minutes})
            completed.append(item)
        self.venue_history = completed
        self._persist()

    def get_venue_history(self) -> List[VenueHistoryItem]:
        return list(self.venue_history)

    # ---------------------------
    # Queries / cleanup
    # ---------------------------

    def should_show_proximity_alert(self, venue_id: str, now: Optional[datetime] = None) -> bool:
        if not self.notification_settings.proximity_alerts:
            return False
        status = self.venue_statuses.get(venue_id)
        if status is None or not status.is_active:
            return False

        now_ts = (now or datetime.now()).timestamp()
        for scan in self.qr_scan_results:
            if (
                scan.venue_id == venue_id
                and scan.result == QrScanOutcome.success
                and now_ts - scan.timestamp.timestamp() < RECENT_SCAN_WINDOW_SECONDS
            ):
                return False
        return True

    def clear_expired_data(self, now: Optional[datetime] = None) -> None:
        cutoff = (now or datetime.now()).timestamp() - STORE_RETENTION_SECONDS
        self.qr_scan_results = [r for r in self.qr_scan_results if r.timestamp.timestamp() > cutoff]
        self.venue_history = [h for h in self.venue_history if h.joined_at.timestamp() > cutoff]
        self._persist()

    def reset(self) -> None:
        self._reset_state()
        self._persist()

    # ---------------------------
    # Persistence
    # ---------------------------

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "version": STORE_VERSION,
            "monitoredVenues": [v.to_wire() for v in self.monitored_venues],
            "venueStatuses": {k: s.to_wire() for k, s in self.venue_statuses.items()},
            "notificationSettings": self.notification_settings.to_wire(),
            "venueHistory": [h.to_wire() for h in self.venue_history],
            "qrScanResults": [r.to_wire() for r in self.qr_scan_results],
        }

    def _persist(self) -> None:
        try:
            self._kv.set_json(STORE_KEY, self._snapshot())
        except Exception as e:
            logger.error(f"Error persisting venue event store: {e}")

    def load(self) -> None:
        stored = self._kv.get_json(STORE_KEY)
        if not stored:
            return
        try:
            self.monitored_venues = [Venue.model_validate(v) for v in stored.get("monitoredVenues", [])]
            self.venue_statuses = {
                k: VenueStatus.model_validate(s) for k, s in stored.get("venueStatuses", {}).items()
            }
            self.notification_settings = NotificationSettings.model_validate(stored.get("notificationSettings", {}))
            self.venue_history = [VenueHistoryItem.model_validate(h) for h in stored.get("venueHistory", [])]
            self.qr_scan_results = [QrScanResult.model_validate(r) for r in stored.get("qrScanResults", [])]
        except (ValidationError, AttributeError) as e:
            logger.warning(f"Discarding unreadable venue event store: {e}")
            self._reset_state()
            return
        logger.info(f"Loaded venue event store | monitored={len(self.monitored_venues)}")
