import pytest

from tourist_sentinel.config import SessionConfig
from tourist_sentinel.ingest import FixHistory, TelemetryIngest
from tourist_sentinel.profiling import ProfileBuilder
from tourist_sentinel.schemas import MovementPattern

from testkit.builders import fix_at, walk


def _builder(**kwargs) -> ProfileBuilder:
    return ProfileBuilder(SessionConfig(**kwargs))


def _two_places():
    # 8 fixes around home, 4 fixes at a cafe 2 km north
    fixes = [fix_at(i * 600, north_m=(i % 3) * 10.0, speed=1.0) for i in range(8)]
    fixes += [fix_at(4800 + i * 600, north_m=2000.0 + i * 5.0, speed=1.0) for i in range(4)]
    return fixes


def test_requires_minimum_history():
    assert _builder().build(walk(9)) is None
    assert _builder().build(walk(10)) is not None


def test_common_locations_and_commuter_tag():
    profile = _builder().build(_two_places())
    assert len(profile.common_locations) == 2
    home, cafe = profile.common_locations
    assert home.frequency == pytest.approx(8 / 12)
    assert cafe.frequency == pytest.approx(4 / 12)
    assert MovementPattern.REGULAR_COMMUTER in profile.movement_patterns
    assert MovementPattern.TOURIST_EXPLORER not in profile.movement_patterns
    assert profile.fix_count == 12
    assert profile.built_at == _two_places()[-1].timestamp


def test_top_five_clusters_and_explorer_tag():
    fixes = [fix_at(i * 600, north_m=i * 1000.0) for i in range(12)]
    profile = _builder().build(fixes)
    assert len(profile.common_locations) == 5
    assert MovementPattern.TOURIST_EXPLORER in profile.movement_patterns
    assert MovementPattern.REGULAR_COMMUTER not in profile.movement_patterns


def test_typical_hours():
    # 6 fixes at 10:xx and 6 at 11:xx
    fixes = [fix_at(i * 600) for i in range(12)]
    profile = _builder().build(fixes)
    assert profile.typical_hours == frozenset({10, 11})


def test_typical_hours_use_local_timezone():
    fixes = [fix_at(i * 600) for i in range(12)]
    profile = _builder(local_timezone="Europe/Paris").build(fixes)
    # May is UTC+2 in Paris
    assert profile.typical_hours == frozenset({12, 13})


def test_average_speed_ignores_missing_speeds():
    fixes = [fix_at(0)] + [fix_at(i * 60, speed=1.0 if i % 2 else 3.0) for i in range(1, 11)]
    profile = _builder().build(fixes)
    assert profile.average_speed == pytest.approx(2.0 * 3.6)


def test_stationary_periods_tag():
    fixes = [fix_at(i * 60, speed=0.0 if i < 4 else 1.5) for i in range(10)]
    assert MovementPattern.STATIONARY_PERIODS in _builder().build(fixes).movement_patterns

    fixes = [fix_at(i * 60, speed=0.0 if i < 3 else 1.5) for i in range(10)]
    assert MovementPattern.STATIONARY_PERIODS not in _builder().build(fixes).movement_patterns


def test_profile_is_deterministic():
    fixes = _two_places() + walk(10, start_s=9000)
    builder = _builder()
    first = builder.build(fixes)
    second = builder.build(list(fixes))
    assert first.common_locations == second.common_locations
    assert first.typical_hours == second.typical_hours
    assert first.movement_patterns == second.movement_patterns
    assert first == second


def test_duplicate_fixes_do_not_change_clusters():
    fixes = _two_places()
    clean = TelemetryIngest(FixHistory())
    noisy = TelemetryIngest(FixHistory())
    for fix in fixes:
        clean.accept(fix)
        noisy.accept(fix)
        noisy.accept(fix)

    builder = _builder()
    assert [c.count for c in builder.cluster(clean.history.to_list())] == [c.count for c in builder.cluster(noisy.history.to_list())]
    assert builder.build(clean.history.to_list()) == builder.build(noisy.history.to_list())
