"""
Host runtime collaborators.

The mobile host owns GPS, battery, app lifecycle and OS background tasks. The
agent only sees them through the protocols below. ``DeviceState`` and
``HostTaskBridge`` are the default implementations, fed by the host over the
local HTTP API.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from loguru import logger

from app.core.ping_config import DEFAULT_BATTERY_LEVEL, LOCATION_MAX_AGE_SECONDS
from app.schemas.device import BackgroundTaskBody, LocationObject
from app.schemas.enums import AppStateStatus, PermissionStatus
from app.schemas.venue import LocationCoordinates

TaskHandler = Callable[[BackgroundTaskBody], Awaitable[None]]


class LocationPermissionError(RuntimeError):
    pass


class LocationProvider(Protocol):
    async def get_current_position(self, high_accuracy: bool = True) -> Optional[LocationCoordinates]: ...

    async def get_foreground_permission(self) -> PermissionStatus: ...

    async def get_background_permission(self) -> PermissionStatus: ...


class BatteryMonitor(Protocol):
    async def get_battery_level(self) -> float: ...


class AppStateSource(Protocol):
    def current_state(self) -> AppStateStatus: ...


class TaskScheduler(Protocol):
    def define_task(self, task_name: str, handler: TaskHandler) -> None: ...

    def is_task_defined(self, task_name: str) -> bool: ...

    async def start_location_updates(self, task_name: str, options: Dict[str, Any]) -> None: ...

    async def stop_location_updates(self, task_name: str) -> None: ...

    async def is_task_registered(self, task_name: str) -> bool: ...


def location_from_object(obj: LocationObject) -> LocationCoordinates:
    return LocationCoordinates(
        lat=obj.coords.latitude,
        lng=obj.coords.longitude,
        accuracy=obj.coords.accuracy or 0.0,
        timestamp=datetime.fromtimestamp(obj.timestamp / 1000, tz=timezone.utc),
    )


class DeviceState:
    """Latest device facts pushed by the host runtime."""

    def __init__(self, max_fix_age_seconds: float = LOCATION_MAX_AGE_SECONDS, clock=time.time):
        self.battery_level: Optional[float] = None
        self.app_state = AppStateStatus.active
        self.foreground_permission = PermissionStatus.undetermined
        self.background_permission = PermissionStatus.undetermined
        self._last_fix: Optional[LocationCoordinates] = None
        self._max_fix_age = max_fix_age_seconds
        self._clock = clock

    def update(
        self,
        battery_level: Optional[float] = None,
        app_state: Optional[AppStateStatus] = None,
        foreground_permission: Optional[PermissionStatus] = None,
        background_permission: Optional[PermissionStatus] = None,
    ) -> None:
        if battery_level is not None:
            self.battery_level = battery_level
        if app_state is not None:
            self.app_state = app_state
        if foreground_permission is not None:
            self.foreground_permission = foreground_permission
        if background_permission is not None:
            self.background_permission = background_permission

    def record_fix(self, fix: LocationCoordinates) -> None:
        self._last_fix = fix

    # LocationProvider
    async def get_current_position(self, high_accuracy: bool = True) -> Optional[LocationCoordinates]:
        if self.foreground_permission != PermissionStatus.granted:
            raise LocationPermissionError("Location permissions not granted")
        if self._last_fix is None:
            return None
        age = self._clock() - self._last_fix.timestamp.timestamp()
        if age > self._max_fix_age:
            logger.debug(f"Latest fix is stale | age={age:.0f}s")
            return None
        return self._last_fix

    async def get_foreground_permission(self) -> PermissionStatus:
        return self.foreground_permission

    async def get_background_permission(self) -> PermissionStatus:
        return self.background_permission

    # BatteryMonitor
    async def get_battery_level(self) -> float:
        if self.battery_level is None:
            return float(DEFAULT_BATTERY_LEVEL)
        return self.battery_level

    # AppStateSource
    def current_state(self) -> AppStateStatus:
        return self.app_state


class HostTaskBridge:
    """
    OS background task registry as seen from the agent.

    The host polls ``registrations()`` to mirror start/stop requests onto the
    real OS scheduler and posts task callbacks back through ``dispatch``.
    """

    def __init__(self):
        self._handlers: Dict[str, TaskHandler] = {}
        self._registered: Dict[str, Dict[str, Any]] = {}

    def define_task(self, task_name: str, handler: TaskHandler) -> None:
        self._handlers[task_name] = handler

    def is_task_defined(self, task_name: str) -> bool:
        return task_name in self._handlers

    async def start_location_updates(self, task_name: str, options: Dict[str, Any]) -> None:
        if task_name not in self._handlers:
            raise KeyError(f"Task not defined: {task_name}")
        self._registered[task_name] = options
        logger.info(f"Location updates requested | task={task_name}")

    async def stop_location_updates(self, task_name: str) -> None:
        self._registered.pop(task_name, None)
        logger.info(f"Location updates stopped | task={task_name}")

    async def is_task_registered(self, task_name: str) -> bool:
        return task_name in self._registered

    def registrations(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._registered)

    async def dispatch(self, task_name: str, body: BackgroundTaskBody) -> None:
        handler = self._handlers.get(task_name)
        if handler is None:
            raise KeyError(f"Task not defined: {task_name}")
        await handler(body)
