"""
Centralized configuration manager.
Loads YAML configs and provides typed access with defaults.

    - Schema validation for critical config fields (warnings, never fatal)
    - Dot-path access: config.get("detection.cooldown_ms")
    - Reset support for testing
"""

import os
import yaml
import logging

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

# Schema: required sections and their expected types
_CONFIG_SCHEMA = {
    "camera": {
        "device_id": int,
        "width": int,
        "height": int,
        "fps": int,
    },
    "detection": {
        "confidence_threshold": float,
        "cooldown_ms": int,
        "sampling_interval_ms": int,
        "rearm_after_ms": int,
        "backoff_multiplier": float,
        "max_interval_ms": int,
    },
    "classifier": {
        "backend": str,
    },
    "storage": {
        "path": str,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path=None, gestures_path=None, overrides=None):
        """Load configuration from YAML files.

        Args:
            config_path: Main config file (defaults to the bundled config.yaml)
            gestures_path: Default gesture mapping file
            overrides: Optional dict merged on top (e.g. from CLI flags)
        """
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")
        gestures_path = gestures_path or os.path.join(_CONFIG_DIR, "gestures.yaml")

        try:
            with open(config_path, "r") as f:
                self._data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            self._data = {}

        try:
            with open(gestures_path, "r") as f:
                gesture_data = yaml.safe_load(f) or {}
            self._data["gestures"] = gesture_data
            logger.info("Loaded gestures from %s", gestures_path)
        except FileNotFoundError:
            logger.warning("Gestures file not found: %s", gestures_path)

        if overrides:
            self._data = _deep_merge(self._data, overrides)

        self._validate()

        return self

    def _validate(self):
        """Validate critical config fields against schema."""
        warnings = []
        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if section is None:
                warnings.append(f"Missing config section: '{section_name}'")
                continue
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                continue
            for field_name, expected_type in fields.items():
                if field_name in section:
                    value = section[field_name]
                    # Allow int where float is expected
                    if expected_type is float and isinstance(value, (int, float)):
                        continue
                    if not isinstance(value, expected_type):
                        warnings.append(
                            f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                            f"got {type(value).__name__} ({value!r})"
                        )

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")
        return warnings

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'camera.width'."""
        keys = key_path.split(".")
        value = self._data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_section(self, section: str) -> dict:
        """Get an entire config section."""
        return self._data.get(section, {})

    @property
    def camera(self) -> dict:
        return self._data.get("camera", {})

    @property
    def detection(self) -> dict:
        return self._data.get("detection", {})

    @property
    def classifier(self) -> dict:
        return self._data.get("classifier", {})

    @property
    def storage(self) -> dict:
        return self._data.get("storage", {})

    @property
    def visualization(self) -> dict:
        return self._data.get("visualization", {})

    @property
    def player(self) -> dict:
        return self._data.get("player", {})

    @property
    def logging(self) -> dict:
        return self._data.get("logging", {})

    @property
    def gestures(self) -> dict:
        return self._data.get("gestures", {})

    @property
    def default_mapping(self) -> dict:
        return self.gestures.get("default_mapping", {})

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._data = {}
