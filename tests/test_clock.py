import math

import pytest

from chronowave.clock import BroadcastClock, drift, duration_known

from doubles import EPOCH_MS, make_track


@pytest.fixture
def station_clock():
    return BroadcastClock(EPOCH_MS)


def test_epoch_is_fixed_at_construction():
    clock = BroadcastClock(1234.0)
    assert clock.epoch_ms == 1234.0
    assert BroadcastClock().epoch_ms > EPOCH_MS


def test_position_is_elapsed_plus_seed(station_clock):
    track = make_track("a", seed=30)
    # 100s on air + 30s seed = 130s, in a 60s loop
    assert station_clock.position(track, 60, EPOCH_MS + 100_000) == pytest.approx(10.0)


@pytest.mark.parametrize("duration", [0, 0.0, -5, None, float("nan"), float("inf")])
def test_unknown_duration_means_no_position(station_clock, duration):
    assert station_clock.position(make_track("a", seed=99), duration, EPOCH_MS + 5_000) == 0.0


def test_position_stays_inside_loop(station_clock):
    for seed in (0, 1, 3599, 7199):
        for duration in (0.5, 1, 59.9, 180, 3600.25):
            for now in (EPOCH_MS - 90_000, EPOCH_MS, EPOCH_MS + 1, EPOCH_MS + 86_400_000):
                pos = station_clock.position(make_track("a", seed=seed), duration, now)
                assert 0 <= pos < duration


def test_position_before_epoch_is_never_negative(station_clock):
    assert station_clock.position(make_track("a"), 60, EPOCH_MS - 5_000) == pytest.approx(55.0)


@pytest.mark.parametrize("k", [1, 2, 7, 1000])
def test_position_is_periodic(station_clock, k):
    track = make_track("a", seed=421)
    now = EPOCH_MS + 12_345
    duration = 180
    assert station_clock.position(track, duration, now + k * duration * 1000) == pytest.approx(
        station_clock.position(track, duration, now), abs=1e-6
    )


def test_position_wraps_many_loops(station_clock):
    # a week on air on a 3 minute loop
    now = EPOCH_MS + 7 * 86_400_000 + 42_000
    assert station_clock.position(make_track("a"), 180, now) == pytest.approx(42.0)


def test_position_is_idempotent(station_clock):
    track = make_track("a", seed=17)
    now = EPOCH_MS + 987_654
    assert station_clock.position(track, 97.3, now) == station_clock.position(track, 97.3, now)


def test_sessions_with_same_epoch_agree():
    track = make_track("a", seed=1800)
    now = EPOCH_MS + 3_600_000
    a, b = BroadcastClock(EPOCH_MS), BroadcastClock(EPOCH_MS)
    assert a.position(track, 245.0, now) == b.position(track, 245.0, now)


def test_duration_known():
    assert duration_known(12.5)
    assert not duration_known(None)
    assert not duration_known(0)
    assert not duration_known(math.nan)
    assert not duration_known("soon")


def test_drift_measured_around_the_loop():
    assert drift(59.0, 1.0, 60) == pytest.approx(2.0)
    assert drift(10.0, 4.0, 60) == pytest.approx(6.0)
    assert drift(10.0, 4.0, None) == pytest.approx(6.0)
