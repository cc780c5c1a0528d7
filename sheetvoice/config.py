"""
Configuration management with three-tier precedence system:
1. Default values from codebase
2. Environment variables from .env
3. Explicit overrides (passed by the caller, e.g. create_app or tests)

Precedence: Overrides > Environment Variables > Defaults
"""

import os
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class ConfigManager:
    """Manages configuration with three-tier precedence."""

    # Default values (Tier 1 - Codebase defaults)
    DEFAULTS = {
        "API_BASE_URL": "http://localhost:5001",
        "OPENAI_API_KEY": "",
        "TTS_MODEL": "tts-1",
        "DEFAULT_VOICE": "alloy",
        "STORAGE_DIR": "uploads",
        "JOB_RETENTION_SECONDS": "3600",
        "SWEEP_INTERVAL_SECONDS": "60",
        "MAX_WORKERS": "2",
        "MAX_FILE_SIZE": str(10 * 1024 * 1024),
        "FRONTEND_URL": "http://localhost:3000",
        "LOG_LEVEL": "INFO",
    }

    def __init__(self, overrides: Optional[Mapping[str, Any]] = None):
        """
        Initialize a config view.

        Args:
            overrides: Values that win over both environment and defaults
        """
        self.overrides: Dict[str, Any] = dict(overrides or {})

    def __getitem__(self, key: str) -> Any:
        return self.get(key, self.overrides.get(key))

    def as_int(self, key: str) -> int:
        return ConfigManager.get_int(key, self.overrides.get(key))

    def as_float(self, key: str) -> float:
        return ConfigManager.get_float(key, self.overrides.get(key))

    def source(self, key: str) -> str:
        """Which tier supplies a key: "override", "env" or "default"."""
        return ConfigManager.get_display_value(key, self.overrides.get(key))[1]

    @staticmethod
    def get(key: str, override: Optional[Any] = None) -> Any:
        """Resolve a key: non-empty override, then environment, then codebase default."""
        return ConfigManager.get_display_value(key, override)[0]

    @staticmethod
    def get_int(key: str, override: Optional[Any] = None) -> int:
        """Get a configuration value as int, falling back to the default when malformed."""
        try:
            return int(ConfigManager.get(key, override))
        except (TypeError, ValueError):
            return int(ConfigManager.DEFAULTS[key])

    @staticmethod
    def get_float(key: str, override: Optional[Any] = None) -> float:
        """Get a configuration value as float, falling back to the default when malformed."""
        try:
            return float(ConfigManager.get(key, override))
        except (TypeError, ValueError):
            return float(ConfigManager.DEFAULTS[key])

    @staticmethod
    def get_display_value(key: str, override: Optional[Any] = None) -> tuple[Any, str]:
        """
        Resolve a key and report which tier supplied it.

        Used by the status endpoint and startup logging.

        Returns:
            (value, source) with source one of "override", "env", "default"
        """
        # Empty strings count as unset in both upper tiers
        if override is not None and override != "":
            return override, "override"

        env_value = os.getenv(key)
        if env_value:
            return env_value, "env"

        return ConfigManager.DEFAULTS.get(key, ""), "default"

    @staticmethod
    def is_using_default(key: str, override: Optional[Any] = None) -> bool:
        """True when no override or environment variable sets the key."""
        return ConfigManager.get_display_value(key, override)[1] == "default"
