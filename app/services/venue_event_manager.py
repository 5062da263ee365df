from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from app.core.ping_config import STATUS_MONITOR_INTERVAL_SECONDS
from app.schemas.enums import AppStateStatus, EntryStatus, ExitReason, QrScanOutcome
from app.schemas.venue import QrScanResult, UserLocation, Venue, VenueEventEntry, VenueEventSession
from app.services.background_processor import VENUE_BACKGROUND_LOCATION_TASK, BackgroundLocationProcessor
from app.services.error_reporting import ErrorReporter
from app.services.location_sampler import LocationSampler
from app.services.notification_bridge import NotificationBridge
from app.services.ping_scheduler import PingScheduler
from app.services.venue_event_store import VenueEventStore
from app.services.venue_hours import get_venue_active_status
from app.services.venue_presence import VenuePresenceService


class VenueEventManager:
    """
    Ties venue entry/exit, Hooked Hours status monitoring and app lifecycle
    transitions to the presence, notification and background services.
    """

    def __init__(
        self,
        store: VenueEventStore,
        presence: VenuePresenceService,
        scheduler: PingScheduler,
        background: BackgroundLocationProcessor,
        sampler: LocationSampler,
        notifications: NotificationBridge,
        reporter: ErrorReporter,
        status_interval_seconds: float = STATUS_MONITOR_INTERVAL_SECONDS,
    ):
        self.store = store
        self._presence = presence
        self._scheduler = scheduler
        self._background = background
        self._sampler = sampler
        self._notifications = notifications
        self._reporter = reporter
        self._status_interval = status_interval_seconds
        self._status_task: Optional[asyncio.Task] = None
        self._previous_statuses: Dict[str, bool] = {}
        self.is_initialized = False

    async def initialize(self) -> None:
        if self.is_initialized:
            return
        try:
            self._notifications.initialize()
            self._notifications.set_view_venue_handler(self.store.set_selected_venue_id)
            self._background.initialize_background_tasks()
            await self.update_all_venue_statuses()
            self._status_task = asyncio.create_task(self._status_loop())
            self.is_initialized = True
            logger.info("VenueEventManager initialized")
        except Exception as e:
            logger.error(f"Failed to initialize VenueEventManager: {e}")
            self._reporter.capture_exception(e, where="venue_event_manager.initialize")

    async def _status_loop(self) -> None:
        while True:
            await asyncio.sleep(self._status_interval)
            try:
                await self.update_all_venue_statuses()
            except Exception as e:
                logger.error(f"Venue status refresh failed: {e}")
                self._reporter.capture_exception(e, where="update_all_venue_statuses")

    # ---------------------------
    # App lifecycle
    # ---------------------------

    async def handle_app_state_change(self, state: AppStateStatus) -> None:
        if state == AppStateStatus.active:
            logger.info("App became active - refreshing venue statuses")
            self._notifications.clear_proximity_flags()
            await self.update_all_venue_statuses()
            if self.store.is_location_tracking:
                await self.update_user_location()
            if self._presence.has_active_venues():
                await self._scheduler.force_immediate_ping()
        elif state == AppStateStatus.background:
            logger.info("App went to background")
            if self.store.is_currently_in_venue() and self.store.is_background_location_enabled:
                await self._start_background_tracking()

    async def _start_background_tracking(self) -> None:
        started = await self._background.start_background_location_monitoring(self._presence.get_active_venues())
        if started:
            self.store.set_background_task_id(VENUE_BACKGROUND_LOCATION_TASK)

    async def _stop_background_tracking(self) -> None:
        if self.store.background_task_id:
            await self._background.stop_background_location_monitoring()
            self.store.set_background_task_id(None)

    # ---------------------------
    # Hooked Hours status
    # ---------------------------

    async def update_all_venue_statuses(self, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        venues = list(self.store.monitored_venues)

        for venue in venues:
            status = get_venue_active_status(venue, now)
            previous = self._previous_statuses.get(venue.id)
            self.store.update_venue_status(venue.id, status.should_glow, status.status_text, now)

            if (
                previous is not None
                and previous != status.should_glow
                and self.store.notification_settings.status_changes
            ):
                await self._notifications.send_venue_status_notification(venue, previous, status.should_glow)

            self._previous_statuses[venue.id] = status.should_glow

        if self.store.notification_settings.venue_transitions:
            await self._notifications.schedule_venue_transition_notifications(venues, now)

    async def add_venue_to_monitoring(self, venue: Venue, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        self.store.add_monitored_venue(venue, now)
        self._previous_statuses[venue.id] = get_venue_active_status(venue, now).should_glow
        logger.info(f"Added venue {venue.name} to monitoring")

    async def remove_venue_from_monitoring(self, venue_id: str) -> None:
        self.store.remove_monitored_venue(venue_id)
        self._previous_statuses.pop(venue_id, None)
        logger.info(f"Removed venue {venue_id} from monitoring")

    # ---------------------------
    # Entry / exit
    # ---------------------------

    async def handle_venue_entry(self, entry: VenueEventEntry) -> None:
        current = self.store.current_venue_entry
        if current is not None and current.venue_id != entry.venue_id:
            await self.handle_venue_exit(ExitReason.manual)

        self.store.set_current_venue_entry(entry)
        self.store.set_location_tracking(True)

        venue = self.store.get_monitored_venue(entry.venue_id)
        if venue is not None:
            self._previous_statuses[venue.id] = get_venue_active_status(venue).should_glow

        await self._presence.add_venue_session(
            VenueEventSession(
                venue_id=entry.venue_id,
                event_name=entry.event_name,
                venue_name=entry.venue_name,
                joined_at=entry.joined_at,
                session_nonce=entry.nonce,
            )
        )

        self.store.add_qr_scan_result(
            QrScanResult(
                venue_id=entry.venue_id,
                result=QrScanOutcome.success,
                timestamp=datetime.now(),
                message=f"Successfully joined {entry.venue_name}",
            )
        )
        logger.info(f"User entered venue: {entry.venue_name}")

    async def handle_venue_exit(self, reason: ExitReason = ExitReason.manual) -> bool:
        current = self.store.current_venue_entry
        if current is None:
            return False

        await self._presence.remove_venue_session(current.venue_id)
        self.store.update_venue_entry_status(EntryStatus.left)
        await self._stop_background_tracking()
        self.store.set_current_venue_entry(None)
        self.store.set_location_tracking(False)

        logger.info(f"User exited venue: {current.venue_name} ({reason.value})")
        return True

    # ---------------------------
    # Location
    # ---------------------------

    async def update_user_location(self, location: Optional[UserLocation] = None) -> Optional[UserLocation]:
        try:
            if location is None:
                fix = await self._sampler.get_current_location(high_accuracy=True)
                if fix is None:
                    return None
                location = UserLocation(
                    latitude=fix.lat,
                    longitude=fix.lng,
                    accuracy=fix.accuracy or 10,
                    timestamp=datetime.now(),
                )

            self.store.set_user_location(location)
            venues = [v for v in self.store.monitored_venues if self.store.should_show_proximity_alert(v.id)]
            await self._notifications.update_venue_monitoring(location, venues)

            if self.store.is_currently_in_venue():
                self.store.record_venue_ping()
            return location
        except Exception as e:
            logger.error(f"Failed to update user location: {e}")
            self._reporter.capture_exception(e, where="update_user_location")
            return None

    # ---------------------------
    # Teardown / stats
    # ---------------------------

    async def cleanup(self) -> None:
        self.store.clear_expired_data()
        monitored = {v.id for v in self.store.monitored_venues}
        for venue_id in list(self._previous_statuses):
            if venue_id not in monitored:
                del self._previous_statuses[venue_id]
        logger.info("VenueEventManager cleanup completed")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_initialized": self.is_initialized,
            "monitored_venues": len(self.store.monitored_venues),
            "current_venue_entry": self.store.get_current_venue_id(),
            "is_location_tracking": self.store.is_location_tracking,
            "background_task_active": bool(self.store.background_task_id),
            "notifications": self._notifications.get_notification_stats(),
        }

    async def shutdown(self) -> None:
        task, self._status_task = self._status_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        self._notifications.clear_all_scheduled_notifications()
        await self._stop_background_tracking()
        await self._scheduler.stop()
        self.is_initialized = False
        logger.info("VenueEventManager shutdown completed")
