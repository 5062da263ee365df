from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from app.core.config import BATTERY_OPTIMIZATION, DEVICE_PLATFORM
from app.core.ping_config import (
    BACKGROUND_DISTANCE_INTERVAL_METERS,
    BACKGROUND_MAX_BATCH_SIZE,
    BACKGROUND_MAX_PING_INTERVAL_SECONDS,
    BACKGROUND_MIN_ACCURACY_METERS,
    BACKGROUND_PING_GAP_OPTIMIZED_SECONDS,
    BACKGROUND_PING_GAP_SECONDS,
    BATCHED_LOCATIONS_LIMIT,
    DEFAULT_BATTERY_LEVEL,
)
from app.schemas.device import BackgroundTaskBody
from app.schemas.enums import PermissionStatus, VenueState
from app.schemas.venue import (
    LocationCoordinates,
    PingLocation,
    PingVenue,
    VenueEventSession,
    VenuePingRequest,
    VenuePingResult,
)
from app.services.device import BatteryMonitor, TaskScheduler, location_from_object
from app.services.error_reporting import ErrorReporter
from app.services.kv_store import KeyValueStore
from app.services.location_sampler import LocationSampler, is_accurate_enough
from app.services.notification_bridge import NotificationBridge
from app.services.ping_policy import background_location_interval_ms
from app.services.venue_ping_client import VenuePingClient

VENUE_BACKGROUND_LOCATION_TASK = "venue-background-location"
VENUE_BACKGROUND_PING_TASK = "venue-background-ping"

BACKGROUND_STATE_KEY = "venue_background_state"
LAST_BACKGROUND_PING_KEY = "last_background_ping"
BATCHED_LOCATIONS_KEY = "batched_locations"

BACKGROUND_SESSION_ID = "background_task"


class BackgroundLocationProcessor:
    """
    Handles the OS background task callbacks.

    ``is_processing`` keeps overlapping location callbacks from running at
    the same time; a callback that arrives mid-run is dropped.
    """

    def __init__(
        self,
        tasks: TaskScheduler,
        sampler: LocationSampler,
        battery: BatteryMonitor,
        client: VenuePingClient,
        notifications: NotificationBridge,
        kv: KeyValueStore,
        reporter: ErrorReporter,
        battery_optimization: bool = BATTERY_OPTIMIZATION,
        platform: str = DEVICE_PLATFORM,
        clock=time.time,
    ):
        self._tasks = tasks
        self._sampler = sampler
        self._battery = battery
        self._client = client
        self._notifications = notifications
        self._kv = kv
        self._reporter = reporter
        self._battery_optimization = battery_optimization
        self._platform = platform
        self._clock = clock
        self.is_processing = False

    def initialize_background_tasks(self) -> None:
        if not self._tasks.is_task_defined(VENUE_BACKGROUND_LOCATION_TASK):
            self._tasks.define_task(VENUE_BACKGROUND_LOCATION_TASK, self.handle_background_location_update)
        if not self._tasks.is_task_defined(VENUE_BACKGROUND_PING_TASK):
            self._tasks.define_task(VENUE_BACKGROUND_PING_TASK, self.handle_background_ping)
        logger.info("Background location processor tasks initialized")

    # ---------------------------
    # Start / stop
    # ---------------------------

    async def start_background_location_monitoring(self, active_venues: List[VenueEventSession]) -> bool:
        try:
            if not active_venues:
                logger.info("No active venues, skipping background location monitoring")
                return False

            permissions = await self._sampler.get_location_permission_status()
            if permissions["background"] != PermissionStatus.granted:
                logger.info("Background location permission not granted")
                return False

            battery_level = await self._get_battery_level()
            self._store_background_state(
                {
                    "activeVenues": [v.to_wire() for v in active_venues],
                    "startedAt": datetime.now(timezone.utc).isoformat(),
                    "batteryLevel": battery_level,
                    "platform": self._platform,
                }
            )

            count = len(active_venues)
            options: Dict[str, Any] = {
                "accuracy": "balanced",
                "timeInterval": background_location_interval_ms(battery_level, self._battery_optimization),
                "distanceInterval": BACKGROUND_DISTANCE_INTERVAL_METERS,
                "deferredUpdatesInterval": BACKGROUND_MAX_PING_INTERVAL_SECONDS * 1000,
                "showsBackgroundLocationIndicator": self._platform == "ios",
            }
            if self._platform == "android":
                options["foregroundService"] = {
                    "notificationTitle": f"Active at {count} venue{'s' if count > 1 else ''}",
                    "notificationBody": "Hooked is monitoring your venue presence for dating events",
                    "notificationColor": "#6366f1",
                }

            await self._tasks.start_location_updates(VENUE_BACKGROUND_LOCATION_TASK, options)

            logger.info(f"Started background location monitoring for {count} venues")
            self._reporter.add_breadcrumb(
                "Background location monitoring started",
                {"venueCount": count, "platform": self._platform, "batteryOptimized": self._battery_optimization},
            )
            return True

        except Exception as e:
            logger.error(f"Failed to start background location monitoring: {e}")
            self._reporter.capture_exception(e, where="start_background_location_monitoring")
            return False

    async def stop_background_location_monitoring(self) -> None:
        try:
            if await self._tasks.is_task_registered(VENUE_BACKGROUND_LOCATION_TASK):
                await self._tasks.stop_location_updates(VENUE_BACKGROUND_LOCATION_TASK)
            self._kv.remove_item(BACKGROUND_STATE_KEY)
            logger.info("Background location monitoring stopped")
            self._reporter.add_breadcrumb("Background location monitoring stopped")
        except Exception as e:
            logger.error(f"Error stopping background location monitoring: {e}")
            self._reporter.capture_exception(e, where="stop_background_location_monitoring")

    # ---------------------------
    # Task callbacks
    # ---------------------------

    async def handle_background_location_update(self, body: BackgroundTaskBody) -> None:
        if self.is_processing:
            logger.info("Already processing location update, skipping")
            return

        self.is_processing = True
        try:
            if body.error is not None:
                logger.error(f"Background location task error: {body.error.message}")
                self._reporter.capture_exception(RuntimeError(f"Background location error: {body.error.message}"))
                return

            if body.data is None or not body.data.locations:
                logger.warning("No location data received in background task")
                return

            locations = body.data.locations
            logger.info(f"Processing {len(locations)} background location updates")
            recent = locations[-min(BACKGROUND_MAX_BATCH_SIZE, len(locations)):]

            active_venues = self.get_background_venues()
            if not active_venues:
                logger.info("No active venues in background state, stopping location processing")
                await self.stop_background_location_monitoring()
                return

            for obj in recent:
                await self._process_location_update(location_from_object(obj), active_venues)

        except Exception as e:
            logger.error(f"Error processing background location update: {e}")
            self._reporter.capture_exception(e, where="handle_background_location_update")
        finally:
            self.is_processing = False

    async def _process_location_update(self, location: LocationCoordinates, active_venues: List[VenueEventSession]) -> None:
        if not is_accurate_enough(location, BACKGROUND_MIN_ACCURACY_METERS):
            logger.info(f"Skipping location update with poor accuracy: {location.accuracy}m")
            return

        self._sampler.record_accuracy(location.accuracy)
        if self.should_perform_background_ping():
            await self.perform_background_venue_ping(location, active_venues)
        else:
            self._store_location_for_batch(location)

    async def handle_background_ping(self, body: BackgroundTaskBody) -> None:
        """Timer-driven ping for when location updates are sparse: uses the newest buffered fix."""
        logger.info("Background ping task triggered")
        try:
            active_venues = self.get_background_venues()
            if not active_venues:
                return

            batched = self.get_batched_locations()
            if not batched:
                logger.debug("No buffered locations for background ping")
                return

            if self.should_perform_background_ping():
                await self.perform_background_venue_ping(batched[-1], active_venues)
                self._kv.remove_item(BATCHED_LOCATIONS_KEY)
        except Exception as e:
            logger.error(f"Error handling background ping task: {e}")
            self._reporter.capture_exception(e, where="handle_background_ping")

    async def perform_background_venue_ping(
        self,
        location: LocationCoordinates,
        active_venues: List[VenueEventSession],
    ) -> List[VenuePingResult]:
        try:
            request = VenuePingRequest(
                venues=[
                    PingVenue(
                        venue_id=v.venue_id,
                        location=PingLocation(lat=location.lat, lng=location.lng, accuracy=location.accuracy),
                    )
                    for v in active_venues
                ],
                battery_level=await self._get_battery_level(),
                movement_speed=0,
                session_id=BACKGROUND_SESSION_ID,
            )
            response = await self._client.ping(request)

            if not response.success:
                logger.warning("Background venue ping failed")
                return []

            self._kv.set_item(LAST_BACKGROUND_PING_KEY, str(int(self._clock() * 1000)))
            logger.info(f"Background venue ping successful for {len(active_venues)} venues")
            await self._handle_background_ping_results(response.results, active_venues)
            return response.results

        except Exception as e:
            # never crash the background task
            logger.error(f"Error performing background venue ping: {e}")
            self._reporter.capture_exception(e, where="perform_background_venue_ping")
            return []

    async def _handle_background_ping_results(
        self,
        results: List[VenuePingResult],
        active_venues: List[VenueEventSession],
    ) -> None:
        by_id = {v.venue_id: v for v in active_venues}
        changed = False
        for result in results:
            if result.state_changed:
                changed = True
                venue = by_id.get(result.venue_id)
                if venue is not None and result.user_message:
                    await self._notifications.send_venue_state_message(venue.venue_id, venue.venue_name, result.user_message)
            if result.current_state == VenueState.inactive:
                logger.info(f"Venue {result.venue_id} became inactive in background")
        if changed:
            logger.info("State changes detected in background ping")

    # ---------------------------
    # Helpers
    # ---------------------------

    def should_perform_background_ping(self) -> bool:
        raw = self._kv.get_item(LAST_BACKGROUND_PING_KEY)
        if not raw:
            return True
        try:
            last = int(raw) / 1000
        except ValueError:
            return True
        min_gap = BACKGROUND_PING_GAP_OPTIMIZED_SECONDS if self._battery_optimization else BACKGROUND_PING_GAP_SECONDS
        return self._clock() - last >= min_gap

    async def _get_battery_level(self) -> float:
        try:
            return round(await self._battery.get_battery_level())
        except Exception as e:
            logger.warning(f"Battery level unavailable, assuming {DEFAULT_BATTERY_LEVEL}: {e}")
            return DEFAULT_BATTERY_LEVEL

    def _store_background_state(self, state: Dict[str, Any]) -> None:
        try:
            self._kv.set_json(BACKGROUND_STATE_KEY, state)
        except Exception as e:
            logger.error(f"Error storing background state: {e}")

    def get_background_state(self) -> Optional[Dict[str, Any]]:
        return self._kv.get_json(BACKGROUND_STATE_KEY)

    def get_background_venues(self) -> List[VenueEventSession]:
        state = self.get_background_state() or {}
        venues = []
        for raw in state.get("activeVenues") or []:
            try:
                venues.append(VenueEventSession.model_validate(raw))
            except ValueError:
                continue
        return venues

    def _store_location_for_batch(self, location: LocationCoordinates) -> None:
        try:
            stored = self._kv.get_json(BATCHED_LOCATIONS_KEY, default=[]) or []
            stored.append(location.to_wire())
            self._kv.set_json(BATCHED_LOCATIONS_KEY, stored[-BATCHED_LOCATIONS_LIMIT:])
        except Exception as e:
            logger.error(f"Error storing batched location: {e}")

    def get_batched_locations(self) -> List[LocationCoordinates]:
        stored = self._kv.get_json(BATCHED_LOCATIONS_KEY, default=[]) or []
        return [LocationCoordinates.model_validate(raw) for raw in stored]

    async def get_background_monitoring_status(self) -> Dict[str, Any]:
        try:
            venues = self.get_background_venues()
            raw = self._kv.get_item(LAST_BACKGROUND_PING_KEY)
            last_ping = datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc).isoformat() if raw else None
            return {
                "is_active": len(venues) > 0,
                "active_venues": len(venues),
                "last_ping": last_ping,
                "battery_level": await self._get_battery_level(),
            }
        except Exception as e:
            logger.error(f"Error getting background monitoring status: {e}")
            return {"is_active": False, "active_venues": 0, "last_ping": None, "battery_level": DEFAULT_BATTERY_LEVEL}

    async def cleanup(self) -> None:
        await self.stop_background_location_monitoring()
        self._kv.remove_item(BACKGROUND_STATE_KEY)
        self._kv.remove_item(LAST_BACKGROUND_PING_KEY)
        self._kv.remove_item(BATCHED_LOCATIONS_KEY)
        logger.info("Background location processor cleaned up")
