"""
Configuration - paths, cache, rate limiting, retry and matching settings.
Values come from data/settings.json, overridden by HLTB_* environment
variables (a .env file is loaded if present).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger("hltbresolver.config")


__all__ = ["Config", "config"]


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# Settings key -> (attribute, type). Environment variables use HLTB_<KEY upper>.
_SETTINGS: dict[str, tuple[str, type]] = {
    "cache_enabled": ("CACHE_ENABLED", bool),
    "cache_duration_hours": ("CACHE_DURATION_HOURS", float),
    "cache_max_entries": ("CACHE_MAX_ENTRIES", int),
    "cache_max_bytes": ("CACHE_MAX_BYTES", int),
    "rate_limit_max_requests": ("RATE_LIMIT_MAX_REQUESTS", int),
    "rate_limit_window_seconds": ("RATE_LIMIT_WINDOW_SECONDS", float),
    "max_attempts": ("MAX_ATTEMPTS", int),
    "retry_base_delay": ("RETRY_BASE_DELAY", float),
    "retry_transient_delay": ("RETRY_TRANSIENT_DELAY", float),
    "retry_max_delay": ("RETRY_MAX_DELAY", float),
    "request_timeout": ("REQUEST_TIMEOUT", float),
    "http_timeout": ("HTTP_TIMEOUT", float),
    "batch_concurrency": ("BATCH_CONCURRENCY", int),
    "fuzzy_threshold": ("FUZZY_THRESHOLD", float),
    "word_threshold": ("WORD_THRESHOLD", float),
    "aggressive_threshold": ("AGGRESSIVE_THRESHOLD", float),
    "aggressive_penalty": ("AGGRESSIVE_PENALTY", float),
    "api_enabled": ("API_ENABLED", bool),
    "scraper_enabled": ("SCRAPER_ENABLED", bool),
    "curated_enabled": ("CURATED_ENABLED", bool),
}


@dataclass
class Config:
    """
    Central configuration handling for the resolver.
    Manages paths, cache settings, source limits and matching thresholds.
    """

    APP_DIR: Path = Path(__file__).parent.parent
    DATA_DIR: Path = APP_DIR / "data"
    CACHE_DIR: Path = DATA_DIR / "cache"
    RESOURCES_DIR: Path = Path(__file__).parent / "resources"
    CURATED_DB_FILE: Path = RESOURCES_DIR / "curated_games.json"
    # Optional community additions merged into the curated dataset
    COMMUNITY_DB_FILE: Path = DATA_DIR / "community_games.json"

    SETTINGS_FILE: Path = DATA_DIR / "settings.json"
    LOG_FILE: Path | None = None

    # Record cache
    CACHE_ENABLED: bool = True
    CACHE_DURATION_HOURS: float = 168.0
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_MAX_BYTES: int = 5 * 1024 * 1024

    # Remote sources: 10 requests per 60s window each
    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    # Retry policy
    MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 0.25
    RETRY_TRANSIENT_DELAY: float = 0.1
    RETRY_MAX_DELAY: float = 30.0

    # Timeouts (seconds): whole resolution, single HTTP request
    REQUEST_TIMEOUT: float = 2.0
    HTTP_TIMEOUT: float = 10.0
    BATCH_CONCURRENCY: int = 4

    # Matching thresholds
    FUZZY_THRESHOLD: float = 0.8
    WORD_THRESHOLD: float = 0.75
    AGGRESSIVE_THRESHOLD: float = 0.7
    AGGRESSIVE_PENALTY: float = 0.9

    # Source switches
    API_ENABLED: bool = True
    SCRAPER_ENABLED: bool = True
    CURATED_ENABLED: bool = True

    def __post_init__(self):
        """Load settings and environment overrides after instantiation."""
        load_dotenv()

        data_dir = os.getenv("HLTB_DATA_DIR")
        if data_dir:
            self.DATA_DIR = Path(data_dir)
            self.CACHE_DIR = self.DATA_DIR / "cache"
            self.SETTINGS_FILE = self.DATA_DIR / "settings.json"
            self.COMMUNITY_DB_FILE = self.DATA_DIR / "community_games.json"

        log_file = os.getenv("HLTB_LOG_FILE")
        if log_file:
            self.LOG_FILE = Path(log_file)

        self._load_settings()
        self._load_env()

    @property
    def cache_ttl_seconds(self) -> float:
        return self.CACHE_DURATION_HOURS * 3600

    def _apply(self, key: str, value: object, origin: str) -> None:
        attr, kind = _SETTINGS[key]
        try:
            if kind is bool and isinstance(value, str):
                converted: object = _env_bool(value)
            else:
                converted = kind(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid %s value for %s: %r", origin, key, value)
            return
        setattr(self, attr, converted)

    def _load_settings(self) -> None:
        """Load settings from JSON file."""
        if not self.SETTINGS_FILE.exists():
            return

        try:
            with open(self.SETTINGS_FILE, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load settings from %s: %s", self.SETTINGS_FILE, e)
            return

        if not isinstance(data, dict):
            logger.error("Settings file %s does not contain an object", self.SETTINGS_FILE)
            return

        for key, value in data.items():
            if key in _SETTINGS:
                self._apply(key, value, "settings")

    def _load_env(self) -> None:
        """Apply HLTB_* environment variables on top of the settings file."""
        for key in _SETTINGS:
            value = os.getenv(f"HLTB_{key.upper()}")
            if value is not None:
                self._apply(key, value, "environment")

    def to_dict(self) -> dict[str, object]:
        return {key: getattr(self, attr) for key, (attr, _kind) in _SETTINGS.items()}

    def save(self) -> None:
        """Save current configuration to JSON file."""
        try:
            self.SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
            with open(self.SETTINGS_FILE, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            logger.error("Failed to save settings to %s: %s", self.SETTINGS_FILE, e)


# Global Instance
config = Config()
