"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: get_config(), ConfigModule.get(), ConfigModule.get_config_schema()
Hidden: Config sources, validation logic, environment parsing

Can be replaced with different config systems without touching other modules.
"""

import os
from pathlib import Path
from typing import Any, Dict, Tuple


# Configuration Contract: Required and Optional Keys
# This defines the black box interface - what the config module guarantees to provide

REQUIRED_CONFIG_KEYS = {
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "session_dir": "Directory holding the session's credential files",
    "session_name": "Session identifier used by non-file credential backends",
    "reconnect_delay_ms": "Delay before reconnecting after a non-logout close",
    "credential_backend": "Credential store backend (file or redis)",
    "adapter_class": "Dotted path of the protocol adapter class",
    "browser": "Browser triple announced to the protocol (name, engine, version)",
    "observer_queue_size": "Per-observer realtime event buffer",
}

OPTIONAL_CONFIG_KEYS = {
    "static_dir": {
        "description": "Directory with the web client served at /",
        "default": None,
    },
    "redis_host": {
        "description": "Redis server hostname (redis credential backend / event mirror)",
        "default": "localhost",
    },
    "redis_port": {
        "description": "Redis server port number",
        "default": 6379,
    },
    "redis_db": {
        "description": "Redis database number",
        "default": 0,
    },
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "event_mirror": {
        "description": "Mirror session events to Redis pub/sub for monitoring",
        "default": False,
    },
}

DEFAULT_ADAPTER = "sessiongate.modules.session.mock_adapter.MockProtocolAdapter"


def _parse_browser(value: str) -> Tuple[str, str, str]:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"BROWSER_NAME must be 'name,engine,version', got '{value}'")
    return parts[0], parts[1], parts[2]


class ConfigModule:
    """Configuration management module."""

    def __init__(self):
        """Initialize with environment variables."""
        self._config = self._load_from_env()
        self._validate_required_keys()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing
        """
        missing_keys = []
        for key in REQUIRED_CONFIG_KEYS:
            if key not in self._config or self._config[key] in (None, ""):
                missing_keys.append(key)

        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Check environment variables and deployment configuration."
            )

        if self._config["credential_backend"] not in ("file", "redis"):
            raise ValueError(
                f"CREDENTIAL_BACKEND must be 'file' or 'redis', got '{self._config['credential_backend']}'"
            )

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment."""
        # Parse Redis port (might be in tcp://host:port format from K8s)
        redis_port_env = os.getenv("REDIS_PORT", "6379")
        if redis_port_env.startswith("tcp://"):
            redis_port = int(redis_port_env.split(":")[-1])
        else:
            redis_port = int(redis_port_env)

        session_dir = os.getenv("SESSION_DIR", "./session")

        return {
            # API settings
            "host": os.getenv("API_HOST", "0.0.0.0"),
            "port": int(os.getenv("PORT") or os.getenv("API_PORT", "3000")),
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
            "static_dir": os.getenv("STATIC_DIR"),
            # Session settings
            "session_dir": session_dir,
            "session_name": os.getenv("SESSION_NAME") or Path(session_dir).name or "default",
            "reconnect_delay_ms": int(os.getenv("RECONNECT_DELAY_MS", "3000")),
            "credential_backend": os.getenv("CREDENTIAL_BACKEND", "file").lower(),
            "adapter_class": os.getenv("ADAPTER_CLASS", DEFAULT_ADAPTER),
            "browser": _parse_browser(os.getenv("BROWSER_NAME", "SessionGate,Chrome,120.0.0")),
            "observer_queue_size": int(os.getenv("OBSERVER_QUEUE_SIZE", "100")),
            # Redis settings (optional)
            "redis_host": os.getenv("REDIS_HOST", "localhost"),
            "redis_port": redis_port,
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD"),
            "event_mirror": os.getenv("EVENT_MIRROR", "false").lower() == "true",
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self._config.copy()

    @property
    def redis_required(self) -> bool:
        """True when any enabled feature needs a Redis connection."""
        return self._config["credential_backend"] == "redis" or self._config["event_mirror"]

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


# Singleton instance
_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule"]
