from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Set

from loguru import logger

from app.core.ping_config import VENUE_REMOVAL_GRACE_SECONDS
from app.schemas.enums import VenueState
from app.schemas.venue import VenueEventSession, VenuePingResult
from app.services.background_processor import BackgroundLocationProcessor
from app.services.error_reporting import ErrorReporter
from app.services.location_sampler import LocationSampler
from app.services.notification_bridge import NotificationBridge
from app.services.ping_scheduler import PingScheduler
from app.services.session_store import VenueSessionStore


class VenuePresenceService:
    """
    Venue check-in lifecycle.

    The first session starts pinging and background monitoring, the last
    removal stops both. Ping results flow back through
    ``process_ping_results``.
    """

    def __init__(
        self,
        sessions: VenueSessionStore,
        scheduler: PingScheduler,
        background: BackgroundLocationProcessor,
        sampler: LocationSampler,
        notifications: NotificationBridge,
        reporter: ErrorReporter,
        grace_period_seconds: float = VENUE_REMOVAL_GRACE_SECONDS,
    ):
        self._sessions = sessions
        self._scheduler = scheduler
        self._background = background
        self._sampler = sampler
        self._notifications = notifications
        self._reporter = reporter
        self._grace_period = grace_period_seconds
        self._pending_removals: Dict[str, asyncio.TimerHandle] = {}
        self._removal_tasks: Set[asyncio.Task] = set()

        scheduler.set_result_handler(self.process_ping_results)

    # ---------------------------
    # Sessions
    # ---------------------------

    async def add_venue_session(self, session: VenueEventSession) -> None:
        try:
            self._sessions.add(session)
            self._cancel_pending_removal(session.venue_id)
            logger.info(f"Added venue session: {session.venue_name} ({session.venue_id})")

            active = self._sessions.all()
            if not self._scheduler.is_running:
                await self._scheduler.start()
                await self._background.start_background_location_monitoring(active)
            else:
                await self._background.stop_background_location_monitoring()
                await self._background.start_background_location_monitoring(active)

            self._reporter.add_breadcrumb(
                "Venue session added",
                {"venueId": session.venue_id, "eventName": session.event_name, "totalActiveVenues": len(active)},
            )
        except Exception as e:
            logger.error(f"Error adding venue session: {e}")
            self._reporter.capture_exception(e, where="add_venue_session")
            raise

    async def remove_venue_session(self, venue_id: str) -> bool:
        try:
            self._cancel_pending_removal(venue_id)
            session = self._sessions.remove(venue_id)
            if session is None:
                return False

            logger.info(f"Removed venue session: {venue_id}")
            if len(self._sessions) == 0:
                await self._scheduler.stop()
                self._sampler.stop_monitoring()
                await self._background.stop_background_location_monitoring()
            else:
                await self._background.stop_background_location_monitoring()
                await self._background.start_background_location_monitoring(self._sessions.all())

            self._reporter.add_breadcrumb(
                "Venue session removed",
                {"venueId": venue_id, "remainingActiveVenues": len(self._sessions)},
            )
            return True
        except Exception as e:
            logger.error(f"Error removing venue session: {e}")
            self._reporter.capture_exception(e, where="remove_venue_session")
            return False

    def get_active_venues(self) -> List[VenueEventSession]:
        return self._sessions.all()

    def has_active_venues(self) -> bool:
        return len(self._sessions) > 0

    async def resume(self) -> None:
        """Re-arm pinging for sessions persisted by a previous process."""
        if self._sessions.load() and not self._scheduler.is_running:
            await self._scheduler.start()
            await self._background.start_background_location_monitoring(self._sessions.all())

    # ---------------------------
    # Ping results
    # ---------------------------

    async def process_ping_results(self, results: List[VenuePingResult]) -> None:
        for result in results:
            session = self._sessions.get(result.venue_id)
            if session is None:
                continue

            if result.state_changed:
                await self.handle_venue_state_change(session, result)

            self._sessions.set_active(result.venue_id, result.profile_visible)

        self._sessions.save()

    async def handle_venue_state_change(self, session: VenueEventSession, result: VenuePingResult) -> None:
        logger.info(f"Venue state changed: {session.venue_name} -> {result.current_state.value}")

        if result.user_message:
            await self._notifications.send_venue_state_message(session.venue_id, session.venue_name, result.user_message)

        if result.current_state == VenueState.inactive and not result.profile_visible:
            self._schedule_removal(session.venue_id)
        elif result.current_state in (VenueState.active, VenueState.paused):
            self._cancel_pending_removal(session.venue_id)

        self._reporter.add_breadcrumb(
            "Venue state changed",
            {
                "venueId": session.venue_id,
                "venueName": session.venue_name,
                "newState": result.current_state.value,
                "profileVisible": result.profile_visible,
                "distance": result.distance,
            },
        )

    def _schedule_removal(self, venue_id: str) -> None:
        if venue_id in self._pending_removals:
            return
        loop = asyncio.get_running_loop()
        self._pending_removals[venue_id] = loop.call_later(self._grace_period, self._fire_removal, venue_id)
        logger.info(f"Venue {venue_id} inactive, removing in {self._grace_period}s")

    def _fire_removal(self, venue_id: str) -> None:
        self._pending_removals.pop(venue_id, None)
        task = asyncio.ensure_future(self.remove_venue_session(venue_id))
        self._removal_tasks.add(task)
        task.add_done_callback(self._removal_tasks.discard)

    def _cancel_pending_removal(self, venue_id: str) -> None:
        handle = self._pending_removals.pop(venue_id, None)
        if handle is not None:
            handle.cancel()

    def pending_removals(self) -> List[str]:
        return list(self._pending_removals)

    # ---------------------------
    # Status / teardown
    # ---------------------------

    async def get_comprehensive_monitoring_status(self) -> Dict[str, Any]:
        return {
            "foreground": {
                "has_active_venues": self.has_active_venues(),
                "active_venues": [s.to_wire() for s in self.get_active_venues()],
                "ping_stats": self._scheduler.get_ping_stats(),
                "is_pinging": self._scheduler.is_running,
            },
            "background": await self._background.get_background_monitoring_status(),
        }

    async def suspend(self) -> None:
        """Stop pinging but keep persisted sessions for the next ``resume``."""
        for venue_id in list(self._pending_removals):
            self._cancel_pending_removal(venue_id)
        await self._scheduler.stop()

    async def cleanup(self) -> None:
        await self.suspend()
        await self._background.cleanup()
        self._sessions.clear()
        logger.info("VenuePresenceService cleaned up")
