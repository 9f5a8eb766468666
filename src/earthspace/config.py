"""
earthspace - Configuration

Engine-wide defaults for orbit geometry, compute pools and link budgets.

Every component accepts explicit arguments; anything left as ``None`` falls
back to the process-wide default config, which in turn can be overridden from
``EARTHSPACE_*`` environment variables.
"""

from dataclasses import dataclass
from typing import Optional
import logging
import os

from .errors import ValidationError


# Maps Config field -> environment variable
_ENV_OVERRIDES = {
    "orbit_altitude_km": "EARTHSPACE_ORBIT_ALTITUDE_KM",
    "orbit_inclination_deg": "EARTHSPACE_ORBIT_INCLINATION_DEG",
    "isl_range_km": "EARTHSPACE_ISL_RANGE_KM",
    "ground_compute_tflops": "EARTHSPACE_GROUND_TFLOPS",
    "orbital_compute_tflops": "EARTHSPACE_ORBITAL_TFLOPS",
    "uplink_bandwidth_mbps": "EARTHSPACE_UPLINK_MBPS",
    "downlink_bandwidth_mbps": "EARTHSPACE_DOWNLINK_MBPS",
}


@dataclass
class Config:
    """Engine configuration settings.

    Attributes:
        orbit_altitude_km: Assumed circular orbit altitude
        orbit_inclination_deg: Assumed orbit inclination
        isl_range_km: Default inter-satellite link range
        ground_compute_tflops: Ground compute pool capacity
        orbital_compute_tflops: Orbital compute pool capacity
        uplink_bandwidth_mbps: Ground-to-orbit bandwidth
        downlink_bandwidth_mbps: Orbit-to-ground bandwidth
        debug: Enable debug logging

    Example:
        >>> config = Config(orbit_altitude_km=600.0)
        >>> print(config.orbit_altitude_km)
        600.0
    """

    orbit_altitude_km: float = 550.0
    orbit_inclination_deg: float = 51.6
    isl_range_km: float = 5000.0
    ground_compute_tflops: float = 100.0
    orbital_compute_tflops: float = 10.0
    uplink_bandwidth_mbps: float = 100.0
    downlink_bandwidth_mbps: float = 200.0
    debug: bool = False

    def __post_init__(self):
        for attr, env_var in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_var)
            if raw:
                try:
                    setattr(self, attr, float(raw))
                except ValueError:
                    raise ValidationError(env_var, f"Expected a number, got {raw!r}")

        if os.environ.get("EARTHSPACE_DEBUG", "").lower() in ("1", "true", "yes"):
            self.debug = True

        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.orbit_altitude_km <= 0:
            raise ValidationError("orbit_altitude_km", "Must be positive")
        if not 0 <= self.orbit_inclination_deg <= 180:
            raise ValidationError("orbit_inclination_deg", "Must be between 0 and 180 degrees")
        for attr in ("isl_range_km", "ground_compute_tflops", "orbital_compute_tflops",
                     "uplink_bandwidth_mbps", "downlink_bandwidth_mbps"):
            if getattr(self, attr) <= 0:
                raise ValidationError(attr, "Must be positive")

    @property
    def log_level(self) -> int:
        """Logging level implied by the debug flag."""
        return logging.DEBUG if self.debug else logging.INFO


# Default configuration
_default_config: Optional[Config] = None


def get_default_config() -> Config:
    """Get the default engine configuration."""
    global _default_config
    if _default_config is None:
        _default_config = Config()
    return _default_config


def set_default_config(config: Config) -> None:
    """Set the default engine configuration."""
    global _default_config
    _default_config = config


def reset_default_config() -> None:
    """Drop the cached default so the next lookup re-reads the environment."""
    global _default_config
    _default_config = None


def configure_logging(config: Optional[Config] = None) -> None:
    """Install a basic root handler for applications embedding the engine.

    The library itself never adds handlers; call this from an entry point.
    """
    config = config or get_default_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
