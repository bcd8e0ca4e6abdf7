"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
All modules read thresholds through this; none are hardcoded.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_pattern_detection_config() -> Dict[str, Any]:
    """Returns the pattern_detection block."""
    return load_config()["pattern_detection"]


def get_alert_detection_config() -> Dict[str, Any]:
    """Returns the alert_detection block."""
    return load_config()["alert_detection"]


def get_alert_defaults() -> Dict[str, Any]:
    """Returns the default AlertSettings values."""
    return load_config()["alert_defaults"]


def get_expected_payments_config() -> Dict[str, Any]:
    """Returns the expected_payments block."""
    return load_config()["expected_payments"]


def get_frequency_band(frequency: str) -> Dict[str, float] | None:
    """
    Returns the interval band for a frequency, or None for frequencies
    without a band (irregular, unknown).
    """
    key = getattr(frequency, "value", frequency)
    return get_pattern_detection_config()["frequency_bands"].get(key)


def get_canonical_interval(frequency: str) -> int:
    """
    Returns the canonical interval in days for a frequency.

    Raises:
        KeyError: If the frequency has no configured interval.
    """
    key = getattr(frequency, "value", frequency)
    intervals = get_alert_detection_config()["canonical_intervals"]
    if key not in intervals:
        raise KeyError(
            f"No canonical interval for '{key}'. "
            f"Available: {list(intervals.keys())}"
        )
    return intervals[key]


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
