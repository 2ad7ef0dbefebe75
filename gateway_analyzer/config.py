"""Configuration loaded from YAML, merged over defaults, then env overrides."""

import copy
import logging
import os

import yaml

logger = logging.getLogger(__name__)

# (env var, section, key, cast)
ENV_OVERRIDES = (
    ("WORKERS_AI_ACCOUNT_ID", "narrative", "account_id", str),
    ("WORKERS_AI_API_TOKEN", "narrative", "api_token", str),
    ("NARRATIVE_TIMEOUT_SECONDS", "narrative", "timeout_seconds", float),
    ("JOB_TTL_SECONDS", "storage", "ttl_seconds", int),
)


class Config:
    """Configuration manager that loads from YAML and merges with defaults."""

    DEFAULTS = {
        "server": {
            "host": "0.0.0.0",
            "port": 8787,
            "debug": False,
        },
        "upload": {
            "max_bytes": 10 * 1024 * 1024,
        },
        "detection": {
            "burst_window_seconds": 60,
            "max_findings": 100,
        },
        "narrative": {
            "enabled": True,
            "base_url": "https://api.cloudflare.com/client/v4",
            "account_id": "",
            "api_token": "",
            "model": "@cf/meta/llama-2-7b-chat-int8",
            "timeout_seconds": 15.0,
            "timeline_max_tokens": 500,
            "summary_max_tokens": 150,
            "temperature": 0.3,
        },
        "storage": {
            "ttl_seconds": 3600,
            "max_jobs": 500,
            "purge_interval_seconds": 60,
        },
    }

    def __init__(self, config_path=None, environ=None):
        self._config = copy.deepcopy(self.DEFAULTS)

        if config_path is not None:
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    user_config = yaml.safe_load(f)

                if user_config and isinstance(user_config, dict):
                    self._config = self._deep_merge(self._config, user_config)
                logger.info("Loaded YAML config from %s", config_path)
            except FileNotFoundError:
                logger.warning("Config file %s not found, using defaults", config_path)
            except yaml.YAMLError:
                logger.warning("Invalid YAML in %s, using defaults", config_path)

        self._apply_env(os.environ if environ is None else environ)

    @staticmethod
    def _deep_merge(base, override):
        """Recursively merge override dict into base dict."""
        result = copy.deepcopy(base)
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = Config._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)
        return result

    def _apply_env(self, environ):
        for var, section, key, cast in ENV_OVERRIDES:
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                self._config.setdefault(section, {})[key] = cast(raw)
            except ValueError:
                logger.warning("Ignoring %s=%r: expected %s", var, raw, cast.__name__)

    def get(self, key, default=None):
        """Get a top-level config key."""
        return self._config.get(key, default)

    def __getitem__(self, key):
        return self._config[key]

    def __contains__(self, key):
        return key in self._config

    def as_dict(self):
        return copy.deepcopy(self._config)
