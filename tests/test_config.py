"""Tests for engine configuration and its environment overrides."""

import logging

import pytest

from earthspace.config import (
    Config,
    configure_logging,
    get_default_config,
    reset_default_config,
    set_default_config,
)
from earthspace.errors import EarthSpaceError, ValidationError


def test_defaults():
    config = Config()

    assert config.orbit_altitude_km == 550.0
    assert config.orbit_inclination_deg == 51.6
    assert config.isl_range_km == 5000.0
    assert config.ground_compute_tflops == 100.0
    assert config.orbital_compute_tflops == 10.0
    assert config.uplink_bandwidth_mbps == 100.0
    assert config.downlink_bandwidth_mbps == 200.0
    assert config.debug is False
    assert config.log_level == logging.INFO


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("EARTHSPACE_ORBIT_ALTITUDE_KM", "600")
    monkeypatch.setenv("EARTHSPACE_ISL_RANGE_KM", "4200.5")
    monkeypatch.setenv("EARTHSPACE_UPLINK_MBPS", "50")
    monkeypatch.setenv("EARTHSPACE_DEBUG", "true")

    config = Config()

    assert config.orbit_altitude_km == 600.0
    assert config.isl_range_km == 4200.5
    assert config.uplink_bandwidth_mbps == 50.0
    assert config.debug is True
    assert config.log_level == logging.DEBUG


def test_env_override_beats_argument(monkeypatch):
    monkeypatch.setenv("EARTHSPACE_ORBITAL_TFLOPS", "25")
    assert Config(orbital_compute_tflops=5.0).orbital_compute_tflops == 25.0


def test_bad_env_number(monkeypatch):
    monkeypatch.setenv("EARTHSPACE_GROUND_TFLOPS", "lots")

    with pytest.raises(ValidationError) as exc:
        Config()
    assert exc.value.field == "EARTHSPACE_GROUND_TFLOPS"


@pytest.mark.parametrize("kwargs,field", [
    ({"orbit_altitude_km": 0}, "orbit_altitude_km"),
    ({"orbit_inclination_deg": 181}, "orbit_inclination_deg"),
    ({"isl_range_km": -1}, "isl_range_km"),
    ({"uplink_bandwidth_mbps": 0}, "uplink_bandwidth_mbps"),
])
def test_validation(kwargs, field):
    with pytest.raises(ValidationError) as exc:
        Config(**kwargs)
    assert exc.value.field == field
    assert isinstance(exc.value, EarthSpaceError)


def test_default_config_is_cached_and_replaceable(monkeypatch):
    first = get_default_config()
    assert get_default_config() is first

    custom = Config(isl_range_km=1000.0)
    set_default_config(custom)
    assert get_default_config() is custom


def test_reset_rereads_environment(monkeypatch):
    assert get_default_config().orbit_altitude_km == 550.0

    monkeypatch.setenv("EARTHSPACE_ORBIT_ALTITUDE_KM", "700")
    assert get_default_config().orbit_altitude_km == 550.0

    reset_default_config()
    assert get_default_config().orbit_altitude_km == 700.0


def test_configure_logging_uses_debug_flag(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging(Config(debug=True))

    assert calls[0]["level"] == logging.DEBUG
