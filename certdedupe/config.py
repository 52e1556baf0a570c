"""Configuration management for duplicate detection."""

import copy
import os
import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .models import DetectionConfig


DEFAULT_CONFIG: Dict[str, Any] = {
    "enabled": True,
    "defaultAction": "warn",
    "allowOverride": True,
    "requireAdminApproval": False,
    "logDuplicates": True,
    "rules": [
        {
            "id": "exact_match",
            "name": "Exact Match Detection",
            "description": "Detect exact matches on recipient email, name, title, and issuer",
            "enabled": True,
            "action": "block",
            "threshold": 1.0,
            "checkFields": ["recipientEmail", "recipientName", "title", "issuerId"],
            "fuzzyMatching": False,
            "priority": 100,
        },
        {
            "id": "email_fuzzy",
            "name": "Email Fuzzy Match",
            "description": "Detect similar email addresses with typos or variations",
            "enabled": True,
            "action": "warn",
            "threshold": 0.85,
            "checkFields": ["recipientEmail", "title", "issuerId"],
            "fuzzyMatching": True,
            "timeWindowDays": 30,
            "priority": 80,
        },
        {
            "id": "name_fuzzy",
            "name": "Name Fuzzy Match",
            "description": "Detect similar recipient names with possible typos",
            "enabled": True,
            "action": "warn",
            "threshold": 0.8,
            "checkFields": ["recipientName", "title", "issuerId"],
            "fuzzyMatching": True,
            "timeWindowDays": 90,
            "priority": 70,
        },
        {
            "id": "title_fuzzy",
            "name": "Title Fuzzy Match",
            "description": "Detect similar certificate titles",
            "enabled": True,
            "action": "warn",
            "threshold": 0.75,
            "checkFields": ["recipientEmail", "title", "issuerId"],
            "fuzzyMatching": True,
            "timeWindowDays": 60,
            "priority": 60,
        },
        {
            "id": "same_recipient_different_issuer",
            "name": "Same Recipient Different Issuer",
            "description": "Detect when same recipient gets certificates from different issuers",
            "enabled": True,
            "action": "warn",
            "threshold": 0.9,
            "checkFields": ["recipientEmail", "recipientName", "title"],
            "fuzzyMatching": True,
            "timeWindowDays": 180,
            "priority": 50,
        },
        {
            "id": "high_frequency_recipient",
            "name": "High Frequency Recipient",
            "description": "Detect recipients receiving many certificates in short time",
            "enabled": True,
            "action": "warn",
            "threshold": 0.7,
            "checkFields": ["recipientEmail"],
            "fuzzyMatching": False,
            "timeWindowDays": 7,
            "priority": 40,
        },
    ],
}


def _strict_dict() -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["defaultAction"] = "block"
    config["allowOverride"] = False
    for rule in config["rules"]:
        rule["action"] = "block"
        rule["threshold"] = max(rule["threshold"], 0.8)
    return config


def _lenient_dict() -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["defaultAction"] = "allow"
    config["allowOverride"] = True
    config["requireAdminApproval"] = False
    for rule in config["rules"]:
        rule["action"] = "warn"
        rule["threshold"] = min(rule["threshold"], 0.6)
    return config


PRESETS = {
    "default": lambda: copy.deepcopy(DEFAULT_CONFIG),
    "strict": _strict_dict,
    "lenient": _lenient_dict,
}


def load_detection_config(data: Union[DetectionConfig, Mapping[str, Any]]) -> DetectionConfig:
    """Validate a configuration value.

    Raises:
        ConfigurationError: If the data does not describe a valid configuration
    """
    if isinstance(data, DetectionConfig):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Detection config must be a mapping, got {type(data).__name__}"
        )

    try:
        return DetectionConfig.model_validate(dict(data))
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(
            f"{location}: {first['msg']}",
            field=location or None,
            value=first.get("input"),
            cause=e,
        ) from e


def default_config() -> DetectionConfig:
    return load_detection_config(PRESETS["default"]())


def strict_config() -> DetectionConfig:
    """Every rule blocks, thresholds raised to at least 0.8, no overrides."""
    return load_detection_config(PRESETS["strict"]())


def lenient_config() -> DetectionConfig:
    """Every rule warns, thresholds lowered to at most 0.6."""
    return load_detection_config(PRESETS["lenient"]())


_TRUE_VALUES = ("true", "1", "yes")
_FALSE_VALUES = ("false", "0", "no")


class ConfigManager:
    """Manages configuration loading and validation."""

    ENV_FLAGS = {
        "CERTDEDUPE_ENABLED": "enabled",
        "CERTDEDUPE_ALLOW_OVERRIDE": "allowOverride",
        "CERTDEDUPE_REQUIRE_ADMIN_APPROVAL": "requireAdminApproval",
        "CERTDEDUPE_LOG_DUPLICATES": "logDuplicates",
    }

    def __init__(self, config_path: Optional[str] = None, preset: str = "default"):
        """Initialize config manager.

        Args:
            config_path: Path to a JSON config file merged over the preset
            preset: Starting point, one of "default", "strict", "lenient"
        """
        if preset not in PRESETS:
            raise ConfigurationError(
                f"Unknown preset '{preset}'", field="preset", value=preset
            )
        self.config_path = Path(config_path) if config_path else None
        self.preset = preset
        self._config: Optional[DetectionConfig] = None

    def load(self) -> DetectionConfig:
        """Load configuration from preset, file and environment."""
        if self._config is not None:
            return self._config

        config_dict = PRESETS[self.preset]()

        if self.config_path:
            if not self.config_path.exists():
                raise ConfigurationError(
                    f"Config file not found: {self.config_path}",
                    field="config_path",
                    value=str(self.config_path),
                )
            try:
                with open(self.config_path, "r") as f:
                    file_config = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    f"Config file {self.config_path} is not valid JSON: {e}", cause=e
                ) from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f"Config file {self.config_path} must contain a JSON object",
                    field="config_path",
                    value=str(self.config_path),
                )
            config_dict = self._deep_merge(config_dict, file_config)

        config_dict = self._apply_env_overrides(config_dict)

        self._config = load_detection_config(config_dict)
        return self._config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries; lists such as ``rules`` are replaced."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        for env_key, config_key in self.ENV_FLAGS.items():
            raw = os.getenv(env_key)
            if raw is None or raw == "":
                continue
            lowered = raw.strip().lower()
            if lowered in _TRUE_VALUES:
                config[config_key] = True
            elif lowered in _FALSE_VALUES:
                config[config_key] = False
            else:
                raise ConfigurationError(
                    f"{env_key} must be a boolean, got '{raw}'", field=env_key, value=raw
                )

        default_action = os.getenv("CERTDEDUPE_DEFAULT_ACTION")
        if default_action:
            config["defaultAction"] = default_action.strip().lower()

        return config

    def save_template(self, path: str):
        """Save a configuration template file."""
        with open(path, "w") as f:
            json.dump(PRESETS[self.preset](), f, indent=2)

    @property
    def config(self) -> DetectionConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load()
        return self._config
