from __future__ import annotations

import asyncio
import time
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, Optional, Set, Tuple

from loguru import logger

from app.core.config import EXPO_PUSH_TOKEN
from app.core.ping_config import PROXIMITY_ALERT_METERS, TRANSITION_NOTICE_MINUTES
from app.schemas.enums import NotificationType
from app.schemas.venue import UserLocation, Venue
from app.services.error_reporting import ErrorReporter
from app.services.expo_push import is_expo_token, send_expo_push
from app.services.geo import format_distance, haversine_m
from app.services.kv_store import KeyValueStore
from app.services.venue_hours import HookedHoursChange, get_next_hooked_hours_change, get_venue_active_status

PUSH_TOKEN_KEY = "expo_push_token"
VENUE_EVENT_CATEGORY = "venue_event"
HISTORY_LIMIT = 50

PushSender = Callable[..., Awaitable[Dict[str, Any]]]


class NotificationBridge:
    """
    Turns venue transitions into user notifications.

    Proximity alerts go out once per venue until ``clear_proximity_flags``;
    status notifications only when the active flag flips; transition
    notifications are armed a few minutes before each Hooked Hours change.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        reporter: ErrorReporter,
        sender: PushSender = send_expo_push,
        push_token: Optional[str] = EXPO_PUSH_TOKEN,
        on_view_venue: Optional[Callable[[str], None]] = None,
    ):
        self._kv = kv
        self._reporter = reporter
        self._sender = sender
        self._push_token = push_token
        self._on_view_venue = on_view_venue
        self._proximity_sent: Set[str] = set()
        self._scheduled: Dict[str, Tuple[asyncio.TimerHandle, datetime]] = {}
        self._pending: Set[asyncio.Task] = set()
        self.history: Deque[Dict[str, Any]] = deque(maxlen=HISTORY_LIMIT)
        self.is_initialized = False

    # ---------------------------
    # Setup
    # ---------------------------

    def initialize(self) -> None:
        if self.is_initialized:
            return
        if not self.push_token():
            logger.warning("No push token registered; venue notifications will not be delivered")
        self.is_initialized = True
        logger.info("NotificationBridge initialized")

    def set_view_venue_handler(self, handler: Callable[[str], None]) -> None:
        self._on_view_venue = handler

    def register_push_token(self, token: str) -> None:
        if not is_expo_token(token):
            raise ValueError("Invalid Expo push token")
        self._push_token = token
        self._kv.set_item(PUSH_TOKEN_KEY, token)
        logger.info("Registered push token")

    def push_token(self) -> Optional[str]:
        return self._push_token or self._kv.get_item(PUSH_TOKEN_KEY)

    # ---------------------------
    # Delivery
    # ---------------------------

    async def _present(self, kind: NotificationType, title: str, body: str, data: Dict[str, Any]) -> bool:
        payload = {"type": kind.value, **data}
        entry = {"ts": time.time(), "type": kind.value, "title": title, "body": body, "data": payload, "delivered": False}
        self.history.append(entry)

        token = self.push_token()
        if not token:
            logger.debug(f"Notification not delivered (no token) | {title}")
            return False

        try:
            await self._sender(token, title=title, body=body, data=payload, category=VENUE_EVENT_CATEGORY)
        except Exception as e:
            logger.error(f"Failed to send {kind.value} notification: {e}")
            self._reporter.capture_exception(e, notification=kind.value)
            return False

        entry["delivered"] = True
        return True

    # ---------------------------
    # Status / proximity
    # ---------------------------

    async def send_venue_status_notification(self, venue: Venue, old_status: bool, new_status: bool) -> bool:
        if old_status == new_status:
            return False

        if new_status:
            title = f"🔥 {venue.name} - Hooked Hours Now Active!"
            body = f"Start connecting with people at {venue.name}!"
        else:
            title = f"⏰ {venue.name} - Hooked Hours Ended"
            body = f"Thanks for participating in Hooked Hours at {venue.name}"

        await self._present(
            NotificationType.venue_status_change,
            title,
            body,
            {"venueId": venue.id, "venueName": venue.name, "isActive": new_status},
        )
        logger.info(f"Sent venue status notification for {venue.name}: {'active' if new_status else 'inactive'}")
        return True

    async def send_proximity_alert(self, venue: Venue, distance_m: float, now: Optional[datetime] = None) -> bool:
        if venue.id in self._proximity_sent:
            return False

        if not get_venue_active_status(venue, now).should_glow:
            return False

        distance_text = format_distance(distance_m)
        await self._present(
            NotificationType.proximity_alert,
            f"🎯 You're Near {venue.name}!",
            f"Hooked Hours are active! You're {distance_text} away. Perfect time to connect!",
            {"venueId": venue.id, "venueName": venue.name, "distance": distance_m},
        )
        self._proximity_sent.add(venue.id)
        logger.info(f"Sent proximity alert for {venue.name} at {distance_text}")
        return True

    async def update_venue_monitoring(
        self,
        user_location: UserLocation,
        venues: Iterable[Venue],
        now: Optional[datetime] = None,
    ) -> None:
        for venue in venues:
            venue_lng, venue_lat = venue.coordinates
            distance = haversine_m(user_location.latitude, user_location.longitude, venue_lat, venue_lng)
            if distance <= PROXIMITY_ALERT_METERS:
                await self.send_proximity_alert(venue, distance, now)

    def clear_proximity_flags(self) -> None:
        self._proximity_sent.clear()

    async def send_venue_state_message(self, venue_id: str, venue_name: str, message: str) -> bool:
        return await self._present(
            NotificationType.venue_state_message,
            venue_name,
            message,
            {"venueId": venue_id, "venueName": venue_name},
        )

    # ---------------------------
    # Scheduled transitions
    # ---------------------------

    async def schedule_venue_transition_notifications(
        self,
        venues: Iterable[Venue],
        now: Optional[datetime] = None,
    ) -> int:
        now = now or datetime.now()
        self.clear_all_scheduled_notifications()

        for venue in venues:
            if not venue.hooked_hours:
                continue
            change = get_next_hooked_hours_change(venue, now)
            if change.next_change_time is None:
                continue
            self._schedule_transition(venue, change, now)

        logger.debug(f"Scheduled {len(self._scheduled)} venue transition notifications")
        return len(self._scheduled)

    def _schedule_transition(self, venue: Venue, change: HookedHoursChange, now: datetime) -> None:
        notify_at = change.next_change_time - timedelta(minutes=TRANSITION_NOTICE_MINUTES)
        if notify_at <= now:
            return

        if change.will_be_active:
            kind = NotificationType.venue_opening
            title = f"🔥 {venue.name} - Hooked Hours Starting Soon!"
            body = "Hooked Hours start in 5 minutes. Get ready to connect!"
        else:
            kind = NotificationType.venue_closing
            title = f"⏰ {venue.name} - Hooked Hours Ending Soon"
            body = "Hooked Hours end in 5 minutes. Last chance to make connections!"

        data = {
            "venueId": venue.id,
            "venueName": venue.name,
            "transitionTime": change.next_change_time.isoformat(),
        }
        loop = asyncio.get_running_loop()
        delay = (notify_at - now).total_seconds()
        handle = loop.call_later(delay, self._fire, venue.id, kind, title, body, data)
        self._scheduled[venue.id] = (handle, notify_at)

    def _fire(self, venue_id: str, kind: NotificationType, title: str, body: str, data: Dict[str, Any]) -> None:
        self._scheduled.pop(venue_id, None)
        task = asyncio.ensure_future(self._present(kind, title, body, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def scheduled_notifications(self) -> Dict[str, datetime]:
        return {venue_id: at for venue_id, (_, at) in self._scheduled.items()}

    def clear_all_scheduled_notifications(self) -> None:
        for handle, _ in self._scheduled.values():
            handle.cancel()
        self._scheduled.clear()

    # ---------------------------
    # Actions / stats
    # ---------------------------

    def handle_notification_action(self, action: str, data: Dict[str, Any]) -> None:
        if action == "view_venue":
            venue_id = data.get("venueId")
            if venue_id and self._on_view_venue:
                self._on_view_venue(venue_id)
        elif action == "dismiss":
            return
        else:
            logger.info(f"Unknown notification action: {action}")

    def get_notification_stats(self) -> Dict[str, Any]:
        return {
            "scheduled": len(self._scheduled),
            "proximity_alerts": len(self._proximity_sent),
            "is_initialized": self.is_initialized,
        }
