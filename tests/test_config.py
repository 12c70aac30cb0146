import pytest
from pydantic import ValidationError

from tourist_sentinel.config import DEFAULT_FACTOR_WEIGHTS, SessionConfig, Settings, load_session_config
from tourist_sentinel.exceptions import ConfigurationError


def test_defaults():
    config = SessionConfig()
    assert config.cluster_radius_meters == 200.0
    assert config.recent_radius_meters == 500.0
    assert config.speed_critical_multiplier == 3.0
    assert config.speed_critical_floor_kmh == 50.0
    assert config.rebuild_profile_every_n_fixes == 50
    assert config.escalation_score_threshold == 40.0
    assert config.factor_weights == DEFAULT_FACTOR_WEIGHTS
    assert sum(config.factor_weights.values()) == pytest.approx(1.0)


def test_config_is_immutable():
    config = SessionConfig()
    with pytest.raises(ValidationError):
        config.cluster_radius_meters = 10.0


def test_unknown_timezone_rejected():
    with pytest.raises(ValidationError):
        SessionConfig(local_timezone="Mars/Olympus_Mons")


def test_load_camel_case_options():
    config = load_session_config({
        "clusterRadiusMeters": 150,
        "recentRadiusMeters": 400,
        "speedCriticalMultiplier": 4,
        "speedCriticalFloorKmh": 60,
        "rebuildProfileEveryNFixes": 20,
        "escalationScoreThreshold": 35,
        "factorWeights": {
            "timeOfDay": 0.2, "location": 0.3, "crowdDensity": 0.2,
            "incidentHistory": 0.15, "routeDeviation": 0.1, "weather": 0.05,
        },
    })
    assert config.cluster_radius_meters == 150
    assert config.recent_radius_meters == 400
    assert config.speed_critical_multiplier == 4
    assert config.speed_critical_floor_kmh == 60
    assert config.rebuild_profile_every_n_fixes == 20
    assert config.escalation_score_threshold == 35
    assert config.factor_weights["route_deviation"] == 0.1


def test_load_on_top_of_base():
    base = SessionConfig(queue_capacity=7)
    config = load_session_config({"cluster_radius_meters": 300}, base=base)
    assert config.queue_capacity == 7
    assert config.cluster_radius_meters == 300
    assert load_session_config() == SessionConfig()


def test_load_invalid_options():
    with pytest.raises(ConfigurationError):
        load_session_config({"factorWeights": {"timeOfDay": 1.0}})
    with pytest.raises(ConfigurationError):
        load_session_config({"clusterRadiusMeters": -5})


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SENTINEL_CLUSTER_RADIUS_METERS", "300")
    monkeypatch.setenv("SENTINEL_LOCAL_TIMEZONE", "Europe/Rome")
    monkeypatch.setenv("SENTINEL_EMERGENCY_URL", "http://emergency.local")
    settings = Settings(_env_file=None)
    assert settings.emergency_url == "http://emergency.local"
    config = settings.session_config(queue_capacity=10)
    assert config.cluster_radius_meters == 300.0
    assert config.local_timezone == "Europe/Rome"
    assert config.queue_capacity == 10


def test_settings_carry_every_session_default(monkeypatch):
    monkeypatch.setenv("SENTINEL_MIN_PROFILE_FIXES", "20")
    monkeypatch.setenv("SENTINEL_INACTIVITY_THRESHOLD_SECONDS", "600")
    monkeypatch.setenv("SENTINEL_ROUTE_SCALE_METERS", "500")
    monkeypatch.setenv("SENTINEL_DEFAULT_WEATHER_SCORE", "70")
    monkeypatch.setenv("SENTINEL_STORAGE_TIMEOUT_SECONDS", "2")
    config = Settings(_env_file=None).session_config()
    assert config.min_profile_fixes == 20
    assert config.inactivity_threshold_seconds == 600.0
    assert config.route_scale_meters == 500.0
    assert config.default_weather_score == 70.0
    assert config.storage_timeout_seconds == 2.0
