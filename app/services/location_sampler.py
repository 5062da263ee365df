from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from loguru import logger

from app.core.ping_config import (
    ACCURACY_WINDOW_SIZE,
    DEFAULT_AVERAGE_ACCURACY_METERS,
    DISTANCE_HISTORY_SECONDS,
    JITTER_ACCURACY_DELTA_METERS,
    JITTER_CACHE_SECONDS,
    MIN_SPEED_SAMPLE_SECONDS,
    REFIX_ACCURACY_METERS,
    VENUE_RADIUS_K_FACTOR,
)
from app.schemas.enums import PermissionStatus
from app.schemas.venue import LocationCoordinates
from app.services.device import LocationProvider
from app.services.error_reporting import ErrorReporter
from app.services.geo import haversine_m
from app.services.kv_store import KeyValueStore

LAST_KNOWN_LOCATION_KEY = "last_known_location"


@dataclass
class VenueLocationVerification:
    within_radius: bool
    distance: float
    accuracy: float
    needs_refix: bool


def is_accurate_enough(fix: LocationCoordinates, max_accuracy_m: float) -> bool:
    return fix.accuracy <= max_accuracy_m


def filter_by_accuracy(fixes: List[LocationCoordinates], max_accuracy_m: float) -> List[LocationCoordinates]:
    kept = [f for f in fixes if is_accurate_enough(f, max_accuracy_m)]
    dropped = len(fixes) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} fixes above {max_accuracy_m}m accuracy")
    return kept


def speed_kmh(previous: LocationCoordinates, current: LocationCoordinates) -> float:
    """Speed between two fixes; 0 when they are less than a minute apart."""
    elapsed = current.timestamp.timestamp() - previous.timestamp.timestamp()
    if elapsed < MIN_SPEED_SAMPLE_SECONDS:
        return 0.0
    distance = haversine_m(previous.lat, previous.lng, current.lat, current.lng)
    return max(0.0, (distance / 1000) / (elapsed / 3600))


class LocationSampler:
    def __init__(
        self,
        provider: LocationProvider,
        kv: KeyValueStore,
        reporter: ErrorReporter,
        clock=time.time,
    ):
        self._provider = provider
        self._kv = kv
        self._reporter = reporter
        self._clock = clock
        self._accuracies: Deque[float] = deque(maxlen=ACCURACY_WINDOW_SIZE)
        self._jitter_cache: Optional[Tuple[LocationCoordinates, float]] = None
        self._recent_distances: List[Tuple[float, float]] = []

    async def get_current_location(self, high_accuracy: bool = True) -> Optional[LocationCoordinates]:
        try:
            fix = await self._provider.get_current_position(high_accuracy)
        except Exception as e:
            logger.error(f"Error getting current location: {e}")
            self._reporter.capture_exception(e, where="get_current_location")
            return None

        if fix is not None:
            self.record_accuracy(fix.accuracy)
        return fix

    # ---------------------------
    # Accuracy tracking
    # ---------------------------

    def record_accuracy(self, accuracy: float) -> None:
        if accuracy and accuracy > 0:
            self._accuracies.append(float(accuracy))

    def average_accuracy(self) -> float:
        if not self._accuracies:
            return float(DEFAULT_AVERAGE_ACCURACY_METERS)
        return sum(self._accuracies) / len(self._accuracies)

    # ---------------------------
    # Movement
    # ---------------------------

    def get_last_known_location(self) -> Optional[LocationCoordinates]:
        stored = self._kv.get_json(LAST_KNOWN_LOCATION_KEY)
        if not stored:
            return None
        try:
            return LocationCoordinates.model_validate(stored)
        except ValueError:
            return None

    def remember_location(self, fix: LocationCoordinates) -> None:
        """
        Persist ``fix`` as the speed reference point.

        The reference only advances once the new fix is a full sample window
        newer, so speed is always measured over at least a minute.
        """
        previous = self.get_last_known_location()
        if previous is not None:
            elapsed = fix.timestamp.timestamp() - previous.timestamp.timestamp()
            if elapsed < MIN_SPEED_SAMPLE_SECONDS:
                return
        self._kv.set_json(LAST_KNOWN_LOCATION_KEY, fix.to_wire())

    def movement_speed(self, current: Optional[LocationCoordinates]) -> float:
        previous = self.get_last_known_location()
        if previous is None or current is None:
            return 0.0
        return speed_kmh(previous, current)

    # ---------------------------
    # Venue verification
    # ---------------------------

    def verify_user_at_venue(
        self,
        user_location: LocationCoordinates,
        venue_lat: float,
        venue_lng: float,
        radius_m: float,
        k_factor: float = VENUE_RADIUS_K_FACTOR,
    ) -> VenueLocationVerification:
        smoothed = self._smooth_with_cache(user_location)
        distance = haversine_m(smoothed.lat, smoothed.lng, venue_lat, venue_lng)
        median = self._add_distance_and_get_median(distance)

        effective_radius = radius_m * k_factor
        needs_refix = smoothed.accuracy > REFIX_ACCURACY_METERS
        result = VenueLocationVerification(
            within_radius=False if needs_refix else median <= effective_radius,
            distance=median,
            accuracy=smoothed.accuracy,
            needs_refix=needs_refix,
        )
        logger.debug(
            f"Venue verification | raw={distance:.0f}m median={median:.0f}m "
            f"radius={effective_radius:.0f}m accuracy={smoothed.accuracy:.0f}m within={result.within_radius}"
        )
        return result

    def _smooth_with_cache(self, current: LocationCoordinates) -> LocationCoordinates:
        now = self._clock()
        if self._jitter_cache is not None:
            cached, cached_at = self._jitter_cache
            if (
                now - cached_at < JITTER_CACHE_SECONDS
                and abs(cached.accuracy - current.accuracy) < JITTER_ACCURACY_DELTA_METERS
            ):
                return cached
        self._jitter_cache = (current, now)
        return current

    def _add_distance_and_get_median(self, distance: float) -> float:
        now = self._clock()
        self._recent_distances.append((distance, now))
        self._recent_distances = [
            (d, ts) for d, ts in self._recent_distances if now - ts < DISTANCE_HISTORY_SECONDS
        ]
        last = sorted(d for d, _ in self._recent_distances[-3:])
        if not last:
            return distance
        if len(last) == 2:
            return (last[0] + last[1]) / 2
        return last[len(last) // 2]

    # ---------------------------
    # Permissions / lifecycle
    # ---------------------------

    async def get_location_permission_status(self) -> Dict[str, PermissionStatus]:
        try:
            return {
                "foreground": await self._provider.get_foreground_permission(),
                "background": await self._provider.get_background_permission(),
            }
        except Exception as e:
            logger.error(f"Error getting location permission status: {e}")
            return {
                "foreground": PermissionStatus.undetermined,
                "background": PermissionStatus.undetermined,
            }

    def stop_monitoring(self) -> None:
        """Drop jitter and distance caches once no venue is monitored."""
        self._jitter_cache = None
        self._recent_distances = []
        logger.info("Stopped venue location monitoring")
