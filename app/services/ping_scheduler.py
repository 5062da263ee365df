from __future__ import annotations

import asyncio
import secrets
import time
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from app.core.ping_config import (
    FALLBACK_PING_INTERVAL_SECONDS,
    INITIAL_PING_INTERVAL_SECONDS,
    PING_STATS_RESET_SECONDS,
)
from app.schemas.venue import (
    LocationCoordinates,
    PingLocation,
    PingStats,
    PingVenue,
    VenuePingRequest,
    VenuePingResult,
)
from app.services.device import AppStateSource, BatteryMonitor
from app.services.error_reporting import ErrorReporter
from app.services.kv_store import KeyValueStore
from app.services.location_sampler import LocationSampler
from app.services.ping_policy import (
    PingContext,
    calculate_next_ping_interval,
    default_ping_context,
    is_moving,
    should_perform_ping,
)
from app.services.session_store import VenueSessionStore
from app.services.venue_ping_client import VenuePingClient, VenuePingError

LAST_PING_KEY = "last_venue_ping"
PING_STATS_KEY = "venue_ping_stats"
SESSION_ID_KEY = "venue_ping_session_id"

ResultHandler = Callable[[List[VenuePingResult]], Awaitable[None]]


class PingScheduler:
    """
    Periodic presence pings for every active venue, batched into one call.

    The interval is recomputed after each ping; failures fall back to a fixed
    interval and never escape ``perform_venue_ping``.
    """

    def __init__(
        self,
        sessions: VenueSessionStore,
        sampler: LocationSampler,
        battery: BatteryMonitor,
        app_state: AppStateSource,
        client: VenuePingClient,
        kv: KeyValueStore,
        reporter: ErrorReporter,
        clock=time.time,
    ):
        self._sessions = sessions
        self._sampler = sampler
        self._battery = battery
        self._app_state = app_state
        self._client = client
        self._kv = kv
        self._reporter = reporter
        self._clock = clock
        self._on_results: Optional[ResultHandler] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

        self.current_interval: int = INITIAL_PING_INTERVAL_SECONDS
        self.last_ping_time: float = self._load_last_ping_time()
        self.stats: PingStats = self._load_stats()

    def set_result_handler(self, handler: ResultHandler) -> None:
        self._on_results = handler

    @property
    def is_running(self) -> bool:
        return self._running

    # ---------------------------
    # Lifecycle
    # ---------------------------

    async def start(self) -> None:
        await self.stop()

        if len(self._sessions) == 0:
            logger.info("No active venues to ping")
            return

        logger.info(f"Starting venue ping service for {len(self._sessions)} venues")
        self._running = True
        self.current_interval = INITIAL_PING_INTERVAL_SECONDS
        await self.perform_venue_ping()
        if self._running:
            self._task = asyncio.create_task(self._run())
        self._reporter.add_breadcrumb("Venue ping service started", {"activeVenues": len(self._sessions)})

    async def stop(self) -> None:
        task, self._task = self._task, None
        was_running, self._running = self._running, False
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if was_running:
            logger.info("Venue ping service stopped")
            self._reporter.add_breadcrumb("Venue ping service stopped")

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.current_interval)
            if not self._running:
                break
            await self.perform_venue_ping()

    async def force_immediate_ping(self) -> List[VenuePingResult]:
        logger.info("Forcing immediate venue ping")
        return await self.perform_venue_ping()

    # ---------------------------
    # Ping
    # ---------------------------

    async def perform_venue_ping(self) -> List[VenuePingResult]:
        sessions = self._sessions.all()
        if not sessions:
            return []

        try:
            current = await self._sampler.get_current_location(high_accuracy=False)
            context = await self.get_ping_context(current)

            if not should_perform_ping(context, self.last_ping_time, self._clock()):
                logger.debug(
                    f"Skipping ping | battery={context.battery_level} moving={context.is_moving} "
                    f"app={context.app_state.value} accuracy={context.average_accuracy:.0f}"
                )
                return []

            if current is None:
                logger.warning("Unable to get location for venue ping")
                return []

            request = VenuePingRequest(
                venues=[
                    PingVenue(
                        venue_id=s.venue_id,
                        location=PingLocation(lat=current.lat, lng=current.lng, accuracy=current.accuracy),
                    )
                    for s in sessions
                ],
                battery_level=context.battery_level,
                movement_speed=context.movement_speed,
                session_id=self.get_session_id(),
            )
            response = await self._client.ping(request)
            if not response.success:
                raise VenuePingError("Venue ping failed")

            if self._on_results is not None:
                await self._on_results(response.results)

            self.last_ping_time = self._clock()
            self._kv.set_item(LAST_PING_KEY, str(int(self.last_ping_time * 1000)))
            self._sampler.remember_location(current)

            next_interval = calculate_next_ping_interval(response.results, context)
            self._update_stats(True, next_interval)
            self._adjust_interval(next_interval)

            logger.info(f"Venue ping completed: {len(response.results)} venues, next in {next_interval}s")
            return response.results

        except Exception as e:
            logger.error(f"Error performing venue ping: {e}")
            self._update_stats(False, FALLBACK_PING_INTERVAL_SECONDS)
            self._adjust_interval(FALLBACK_PING_INTERVAL_SECONDS)
            self._reporter.capture_exception(e, where="perform_venue_ping")
            return []

    async def get_ping_context(self, current: Optional[LocationCoordinates] = None) -> PingContext:
        try:
            battery_level = await self._battery.get_battery_level()
            movement_speed = self._sampler.movement_speed(current)
            return PingContext(
                battery_level=battery_level,
                is_moving=is_moving(movement_speed),
                app_state=self._app_state.current_state(),
                last_location=self._sampler.get_last_known_location(),
                movement_speed=movement_speed,
                average_accuracy=self._sampler.average_accuracy(),
            )
        except Exception as e:
            logger.warning(f"Error getting ping context, using defaults: {e}")
            return default_ping_context()

    def _adjust_interval(self, seconds: int) -> None:
        if seconds != self.current_interval:
            logger.info(f"Adjusted ping interval to {seconds} seconds")
        self.current_interval = seconds

    # ---------------------------
    # Stats
    # ---------------------------

    def _update_stats(self, success: bool, interval: int) -> None:
        now = self._clock()
        if now - self.stats.last_reset_time > PING_STATS_RESET_SECONDS:
            self.stats = PingStats(
                total_pings=0,
                successful_pings=0,
                average_ping_interval=self.stats.average_ping_interval,
                last_reset_time=now,
            )

        self.stats.total_pings += 1
        if success:
            self.stats.successful_pings += 1
        avg = self.stats.average_ping_interval
        self.stats.average_ping_interval = round(avg + (interval - avg) / self.stats.total_pings, 2)
        self._save_stats()

    def get_ping_stats(self) -> Dict[str, Any]:
        total = self.stats.total_pings
        success_rate = (self.stats.successful_pings / total) * 100 if total > 0 else 0
        return {
            **self.stats.model_dump(),
            "current_ping_interval": self.current_interval,
            "success_rate": round(success_rate),
        }

    def _save_stats(self) -> None:
        try:
            self._kv.set_json(PING_STATS_KEY, self.stats.to_wire())
        except Exception as e:
            logger.error(f"Error saving ping stats: {e}")

    def _load_stats(self) -> PingStats:
        stored = self._kv.get_json(PING_STATS_KEY)
        if stored:
            try:
                return PingStats.model_validate(stored)
            except ValueError as e:
                logger.warning(f"Error loading ping stats: {e}")
        return PingStats(last_reset_time=self._clock())

    def _load_last_ping_time(self) -> float:
        raw = self._kv.get_item(LAST_PING_KEY)
        try:
            return int(raw) / 1000 if raw else 0.0
        except ValueError:
            return 0.0

    def get_session_id(self) -> str:
        session_id = self._kv.get_item(SESSION_ID_KEY)
        if not session_id:
            session_id = f"{int(self._clock() * 1000)}{secrets.token_hex(5)[:9]}"
            self._kv.set_item(SESSION_ID_KEY, session_id)
        return session_id
