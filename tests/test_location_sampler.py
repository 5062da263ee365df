import asyncio

import pytest

from app.core.ping_config import DEFAULT_AVERAGE_ACCURACY_METERS
from app.schemas.enums import PermissionStatus
from app.services.location_sampler import (
    LAST_KNOWN_LOCATION_KEY,
    LocationSampler,
    filter_by_accuracy,
    speed_kmh,
)

from fakes import make_fix

T0 = 1_700_000_000.0


@pytest.fixture
def sampler(device, kv, reporter, clock):
    return LocationSampler(device, kv, reporter, clock=clock)


def test_speed_needs_a_full_minute():
    a = make_fix(ts=T0)
    b = make_fix(lat=40.7228, ts=T0 + 30)
    assert speed_kmh(a, b) == 0.0


def test_speed_over_a_minute():
    a = make_fix(ts=T0)
    b = make_fix(lat=40.7218, ts=T0 + 360)  # ~1 km in 6 min
    assert speed_kmh(a, b) == pytest.approx(10.0, rel=0.01)


def test_filter_by_accuracy():
    fixes = [make_fix(accuracy=20), make_fix(accuracy=250), make_fix(accuracy=200)]
    assert [f.accuracy for f in filter_by_accuracy(fixes, 200)] == [20, 200]


def test_current_location_records_accuracy(sampler):
    assert sampler.average_accuracy() == DEFAULT_AVERAGE_ACCURACY_METERS

    fix = asyncio.run(sampler.get_current_location())
    sampler.record_accuracy(45)

    assert fix is not None
    assert sampler.average_accuracy() == pytest.approx(30)


def test_permission_denied_returns_none(sampler, device, reporter):
    device.update(foreground_permission=PermissionStatus.denied)

    assert asyncio.run(sampler.get_current_location()) is None
    assert reporter.captured[-1]["context"] == {"where": "get_current_location"}


def test_reference_point_advances_after_a_minute(sampler, kv):
    first = make_fix(ts=T0)
    sampler.remember_location(first)
    sampler.remember_location(make_fix(lat=40.72, ts=T0 + 20))
    assert sampler.get_last_known_location() == first

    later = make_fix(lat=40.72, ts=T0 + 90)
    sampler.remember_location(later)
    assert sampler.get_last_known_location() == later
    assert kv.get_json(LAST_KNOWN_LOCATION_KEY)["lat"] == 40.72


def test_movement_speed_uses_reference_point(sampler):
    sampler.remember_location(make_fix(ts=T0))
    assert sampler.movement_speed(make_fix(lat=40.7218, ts=T0 + 360)) > 1
    assert sampler.movement_speed(None) == 0.0


def test_verify_user_at_venue_within_radius(sampler):
    result = sampler.verify_user_at_venue(make_fix(accuracy=20), 40.7129, -74.0061, radius_m=50)

    assert result.within_radius is True
    assert result.needs_refix is False
    assert result.distance < 50


def test_verify_user_at_venue_needs_refix(sampler):
    result = sampler.verify_user_at_venue(make_fix(accuracy=180), 40.7128, -74.0060, radius_m=50)

    assert result.needs_refix is True
    assert result.within_radius is False


def test_verify_uses_median_of_recent_distances(sampler, clock):
    venue = (40.7128, -74.0060)
    sampler.verify_user_at_venue(make_fix(accuracy=10), *venue, radius_m=50)
    clock.advance(25)
    # single outlier far outside the radius
    sampler.verify_user_at_venue(make_fix(lat=40.7228, accuracy=70), *venue, radius_m=50)
    clock.advance(25)
    result = sampler.verify_user_at_venue(make_fix(lat=40.7129, accuracy=130), *venue, radius_m=50)

    assert result.within_radius is True


def test_stop_monitoring_clears_caches(sampler):
    sampler.verify_user_at_venue(make_fix(), 40.7128, -74.0060, radius_m=50)
    sampler.stop_monitoring()

    result = sampler.verify_user_at_venue(make_fix(lat=40.7228), 40.7128, -74.0060, radius_m=50)
    assert result.within_radius is False


def test_permission_status(sampler):
    status = asyncio.run(sampler.get_location_permission_status())
    assert status == {"foreground": PermissionStatus.granted, "background": PermissionStatus.granted}
