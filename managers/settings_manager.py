"""Settings management for the sequencer server"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("MCP_Server")

# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "mixed-content-sequencer"
CONFIG_FILE = CONFIG_DIR / "config.json"

ENV_VARS = {
    "generation_url": "MIXED_CONTENT_GENERATION_URL",
    "request_timeout_seconds": "MIXED_CONTENT_REQUEST_TIMEOUT",
    "store_path": "MIXED_CONTENT_STORE_PATH",
}

SETTING_TYPES: Dict[str, Callable[[Any], Any]] = {
    "generation_url": str,
    "request_timeout_seconds": float,
    "store_path": str,
}


class SettingsManager:
    """Resolves settings with precedence: per-call > runtime > config > env > hardcoded"""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self._runtime_settings: Dict[str, Any] = {}
        self._config_settings = self._load_config_settings()
        self._hardcoded_settings = {
            "generation_url": "http://localhost:3000/api/generate-animation",
            "request_timeout_seconds": 300.0,
            "store_path": str(CONFIG_DIR / "store.json"),
        }

    def _load_config_settings(self) -> Dict[str, Any]:
        """Load settings from config file"""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
            settings = config.get("settings", {}) if isinstance(config, dict) else {}
            return settings if isinstance(settings, dict) else {}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config file {self.config_file}: {e}")
            return {}

    def _get_env_settings(self) -> Dict[str, Any]:
        """Load settings from environment variables"""
        settings = {}
        for key, env_var in ENV_VARS.items():
            value = os.getenv(env_var)
            if value:
                settings[key] = value
        return settings

    def _coerce(self, key: str, value: Any) -> Any:
        converter = SETTING_TYPES.get(key)
        if converter is None or value is None:
            return value
        try:
            return converter(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid value for {key}: {value!r}")
            return None

    def get(self, key: str, provided_value: Any = None) -> Any:
        """Get a setting with precedence: provided > runtime > config > env > hardcoded"""
        if provided_value is not None:
            return self._coerce(key, provided_value)

        sources = (
            self._runtime_settings,
            self._config_settings,
            self._get_env_settings(),
            self._hardcoded_settings,
        )
        for source in sources:
            if key in source:
                value = self._coerce(key, source[key])
                if value is not None:
                    return value
        return None

    def get_all(self) -> Dict[str, Any]:
        """Get all effective settings (merged from all sources)"""
        return {key: self.get(key) for key in self._hardcoded_settings}

    def set_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Set runtime settings. Returns validation errors if any."""
        errors = []
        for key, value in settings.items():
            if key not in SETTING_TYPES:
                errors.append(f"Unknown setting '{key}'. Valid settings: {sorted(SETTING_TYPES)}")
            elif self._coerce(key, value) is None:
                errors.append(f"Invalid value for '{key}': {value!r}")
        if errors:
            return {"errors": errors}

        self._runtime_settings.update({key: self._coerce(key, value) for key, value in settings.items()})
        return {"success": True, "updated": settings}

    def persist_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Persist settings to config file"""
        config: Dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except (json.JSONDecodeError, IOError):
                config = {}
        if not isinstance(config, dict):
            config = {}

        config.setdefault("settings", {}).update(settings)

        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            self._config_settings = self._load_config_settings()
            return {"success": True, "persisted": settings}
        except IOError as e:
            return {"error": f"Failed to write config file: {e}"}
