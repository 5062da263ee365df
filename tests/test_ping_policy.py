import pytest

from app.core.ping_config import MAX_PING_INTERVAL_SECONDS, MIN_PING_INTERVAL_SECONDS
from app.schemas.enums import AppStateStatus, VenueState
from app.schemas.venue import VenuePingResult
from app.services.ping_policy import (
    PingContext,
    background_location_interval_ms,
    base_ping_interval,
    calculate_next_ping_interval,
    clamp_interval,
    is_moving,
    nearest_venue_distance,
    should_perform_ping,
)

NOW = 1_700_000_000.0


def ctx(**overrides) -> PingContext:
    values = dict(
        battery_level=80,
        is_moving=False,
        app_state=AppStateStatus.active,
        last_location=None,
        movement_speed=0.0,
        average_accuracy=20,
    )
    values.update(overrides)
    return PingContext(**values)


def result(distance=None, venue_id="venue-1") -> VenuePingResult:
    return VenuePingResult(venue_id=venue_id, success=True, current_state=VenueState.active, distance=distance)


# ------------------------------------------------------------------
# should_perform_ping
# ------------------------------------------------------------------

@pytest.mark.parametrize("battery", [0, 5, 9.9])
def test_critical_battery_never_pings(battery):
    assert should_perform_ping(ctx(battery_level=battery, is_moving=True), 0, NOW) is False


def test_background_stationary_waits_five_minutes():
    context = ctx(app_state=AppStateStatus.background)
    assert should_perform_ping(context, NOW - 120, NOW) is False
    assert should_perform_ping(context, NOW - 300, NOW) is True


def test_background_moving_is_not_throttled():
    context = ctx(app_state=AppStateStatus.background, is_moving=True)
    assert should_perform_ping(context, NOW - 10, NOW) is True


def test_poor_average_accuracy_skips():
    assert should_perform_ping(ctx(average_accuracy=250), 0, NOW) is False
    assert should_perform_ping(ctx(average_accuracy=200), 0, NOW) is True


# ------------------------------------------------------------------
# interval
# ------------------------------------------------------------------

def test_base_interval_stationary_foreground():
    assert base_ping_interval(ctx()) == pytest.approx(78.0)


def test_interval_grows_as_battery_drops():
    levels = [100, 60, 50, 49, 30, 20, 19, 10]
    intervals = [base_ping_interval(ctx(battery_level=b)) for b in levels]
    assert intervals == sorted(intervals)
    assert intervals[-1] > intervals[0]


def test_moving_shortens_interval():
    assert base_ping_interval(ctx(is_moving=True)) < base_ping_interval(ctx(is_moving=False))


def test_far_venue_multiplier_only_with_known_distance():
    no_distance = base_ping_interval(ctx(), [result(distance=None)])
    near = base_ping_interval(ctx(), [result(distance=150)])
    far = base_ping_interval(ctx(), [result(distance=500), result(distance=350, venue_id="venue-2")])

    assert no_distance == near
    assert far == pytest.approx(near * 1.4)


def test_nearest_venue_distance_ignores_unknown():
    assert nearest_venue_distance([result(None), result(320), result(210)]) == 210
    assert nearest_venue_distance([result(None)]) is None


@pytest.mark.parametrize(
    "context",
    [
        ctx(battery_level=12, app_state=AppStateStatus.background, average_accuracy=150),
        ctx(battery_level=100, is_moving=True),
        ctx(battery_level=15, is_moving=False, app_state=AppStateStatus.background),
    ],
)
def test_next_interval_is_clamped(context):
    interval = calculate_next_ping_interval([result(distance=5000)], context)
    assert MIN_PING_INTERVAL_SECONDS <= interval <= MAX_PING_INTERVAL_SECONDS


def test_clamp_interval_rounds_and_bounds():
    assert clamp_interval(5) == MIN_PING_INTERVAL_SECONDS
    assert clamp_interval(10_000) == MAX_PING_INTERVAL_SECONDS
    assert clamp_interval(41.5) == 42
    assert clamp_interval(41.4) == 41


def test_is_moving_threshold():
    assert is_moving(1.0) is False
    assert is_moving(1.1) is True


def test_background_location_interval_by_battery():
    assert background_location_interval_ms(80) == 60000
    assert background_location_interval_ms(40) == 90000
    assert background_location_interval_ms(10) == 180000
    assert background_location_interval_ms(10, battery_optimization=False) == 60000
