"""
Ping decisions as pure functions of the ping context.

Nothing here touches timers, storage or the network.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core.ping_config import (
    BACKGROUND_LOCATION_BASE_INTERVAL_MS,
    BACKGROUND_MULTIPLIER,
    BACKGROUND_STATIONARY_MIN_GAP_SECONDS,
    BASE_PING_INTERVAL_SECONDS,
    CRITICAL_BATTERY_LEVEL,
    DEFAULT_AVERAGE_ACCURACY_METERS,
    DEFAULT_BATTERY_LEVEL,
    FAR_VENUE_DISTANCE_METERS,
    FAR_VENUE_MULTIPLIER,
    LOW_BATTERY_LEVEL,
    LOW_BATTERY_MULTIPLIER,
    MAX_AVERAGE_ACCURACY_METERS,
    MAX_PING_INTERVAL_SECONDS,
    MEDIUM_BATTERY_LEVEL,
    MEDIUM_BATTERY_MULTIPLIER,
    MIN_PING_INTERVAL_SECONDS,
    MOVING_MULTIPLIER,
    MOVING_SPEED_KMH,
    POOR_ACCURACY_METERS,
    POOR_ACCURACY_MULTIPLIER,
    STATIONARY_MULTIPLIER,
)
from app.schemas.enums import AppStateStatus
from app.schemas.venue import LocationCoordinates, VenuePingResult


@dataclass
class PingContext:
    battery_level: float
    is_moving: bool
    app_state: AppStateStatus
    last_location: Optional[LocationCoordinates]
    movement_speed: float  # km/h
    average_accuracy: float


def default_ping_context() -> PingContext:
    return PingContext(
        battery_level=DEFAULT_BATTERY_LEVEL,
        is_moving=False,
        app_state=AppStateStatus.active,
        last_location=None,
        movement_speed=0.0,
        average_accuracy=DEFAULT_AVERAGE_ACCURACY_METERS,
    )


def is_moving(movement_speed_kmh: float) -> bool:
    return movement_speed_kmh > MOVING_SPEED_KMH


def should_perform_ping(context: PingContext, last_ping_at: float, now: float) -> bool:
    if context.battery_level < CRITICAL_BATTERY_LEVEL:
        return False

    # backgrounded and stationary: only every few minutes
    if context.app_state == AppStateStatus.background and not context.is_moving:
        if now - last_ping_at < BACKGROUND_STATIONARY_MIN_GAP_SECONDS:
            return False

    if context.average_accuracy > MAX_AVERAGE_ACCURACY_METERS:
        return False

    return True


def nearest_venue_distance(results: Iterable[VenuePingResult]) -> Optional[float]:
    distances = [r.distance for r in results if r.distance is not None]
    return min(distances) if distances else None


def base_ping_interval(context: PingContext, results: Iterable[VenuePingResult] = ()) -> float:
    """Multiplicative interval before rounding and clamping."""
    interval = float(BASE_PING_INTERVAL_SECONDS)

    if context.battery_level < LOW_BATTERY_LEVEL:
        interval *= LOW_BATTERY_MULTIPLIER
    elif context.battery_level < MEDIUM_BATTERY_LEVEL:
        interval *= MEDIUM_BATTERY_MULTIPLIER

    interval *= MOVING_MULTIPLIER if context.is_moving else STATIONARY_MULTIPLIER

    if context.app_state == AppStateStatus.background:
        interval *= BACKGROUND_MULTIPLIER

    nearest = nearest_venue_distance(results)
    if nearest is not None and nearest > FAR_VENUE_DISTANCE_METERS:
        interval *= FAR_VENUE_MULTIPLIER

    if context.average_accuracy > POOR_ACCURACY_METERS:
        interval *= POOR_ACCURACY_MULTIPLIER

    return interval


def clamp_interval(seconds: float) -> int:
    rounded = int(math.floor(seconds + 0.5))
    return max(MIN_PING_INTERVAL_SECONDS, min(MAX_PING_INTERVAL_SECONDS, rounded))


def calculate_next_ping_interval(results: Iterable[VenuePingResult], context: PingContext) -> int:
    return clamp_interval(base_ping_interval(context, list(results)))


def background_location_interval_ms(battery_level: float, battery_optimization: bool = True) -> int:
    interval = float(BACKGROUND_LOCATION_BASE_INTERVAL_MS)
    if battery_optimization:
        if battery_level < LOW_BATTERY_LEVEL:
            interval *= 3
        elif battery_level < MEDIUM_BATTERY_LEVEL:
            interval *= 1.5
    return int(interval)
