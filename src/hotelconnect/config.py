"""
Settings for the HotelConnect services.

Values are layered, later layers winning:

    built-in defaults < config/server.ini (or server.example.ini) < environment

The merged result is computed once on import and exposed as ``config``.
Tests build their own ``AppConfig`` rather than touching the singleton.

Environment overrides:
    HOTEL_HOST               -> server.host
    HOTEL_PORT               -> server.port
    HOTEL_STORE_BACKEND      -> store.backend
    HOTEL_DB_PATH            -> store.path
    HOTEL_APP_ID             -> store.app_id
    HOTEL_TRANSLATE_URL      -> translation.gateway_url
    HOTEL_TRANSLATE_TIMEOUT  -> translation.timeout_seconds
    DEEPL_API_KEY            -> translation.deepl_api_key
    HOTEL_LOG_LEVEL          -> logging.level
"""

import configparser
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

# Repository checkout root; relative store paths resolve against it.
PROJECT_ROOT = Path(__file__).resolve().parents[2]

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


@dataclass
class ServerSettings:
    """Bind address of the translate API."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8000


@dataclass
class StoreSettings:
    """Document store configuration."""

    backend: Literal["memory", "sqlite"] = "memory"
    path: str = "data/hotelconnect.db"
    app_id: str = "default-app-id"

    @property
    def absolute_path(self) -> Path:
        """SQLite file location, anchored at PROJECT_ROOT when relative."""
        db = Path(self.path)
        return db if db.is_absolute() else PROJECT_ROOT / db


@dataclass
class TranslationSettings:
    """Translation gateway (client side) and provider (server side) settings."""

    gateway_url: str = "http://localhost:8000/api/translate"
    timeout_seconds: float = 10.0
    max_retries: int = 1
    deepl_api_key: str = ""
    deepl_url: str = "https://api-free.deepl.com/v2/translate"


@dataclass
class ChatSettings:
    """Conversation limits."""

    preview_length: int = 120
    archive_batch_ops: int = 400
    feed_room_limit: int = 20
    feed_limit: int = 100


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: Literal["simple", "detailed"] = "detailed"


@dataclass
class AppConfig:
    """All settings sections, one attribute per INI section."""

    server: ServerSettings = field(default_factory=ServerSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    translation: TranslationSettings = field(default_factory=TranslationSettings)
    chat: ChatSettings = field(default_factory=ChatSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# (section, option, converter) for every INI option.  The attribute on the
# settings dataclass has the same name as the option.
_INI_OPTIONS: tuple[tuple[str, str, Callable[[str], Any]], ...] = (
    ("server", "host", str),
    ("server", "port", int),
    ("store", "backend", str.lower),
    ("store", "path", str),
    ("store", "app_id", str),
    ("translation", "gateway_url", str),
    ("translation", "timeout_seconds", float),
    ("translation", "max_retries", int),
    ("translation", "deepl_api_key", str),
    ("translation", "deepl_url", str),
    ("chat", "preview_length", int),
    ("chat", "archive_batch_ops", int),
    ("chat", "feed_room_limit", int),
    ("chat", "feed_limit", int),
    ("logging", "level", str.upper),
    ("logging", "format", str.lower),
)

# env var -> (section, option); converted like the INI option.
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "HOTEL_HOST": ("server", "host"),
    "HOTEL_PORT": ("server", "port"),
    "HOTEL_STORE_BACKEND": ("store", "backend"),
    "HOTEL_DB_PATH": ("store", "path"),
    "HOTEL_APP_ID": ("store", "app_id"),
    "HOTEL_TRANSLATE_URL": ("translation", "gateway_url"),
    "HOTEL_TRANSLATE_TIMEOUT": ("translation", "timeout_seconds"),
    "DEEPL_API_KEY": ("translation", "deepl_api_key"),
    "HOTEL_LOG_LEVEL": ("logging", "level"),
}

_CONVERTERS = {(section, option): conv for section, option, conv in _INI_OPTIONS}

_LOG_FORMAT_NAMES = ("simple", "detailed")


def _assign(cfg: AppConfig, section: str, option: str, raw: str) -> None:
    value = _CONVERTERS[(section, option)](raw)
    if (section, option) == ("logging", "format") and value not in _LOG_FORMAT_NAMES:
        return
    setattr(getattr(cfg, section), option, value)


def _load_from_ini(parser: configparser.ConfigParser, cfg: AppConfig) -> None:
    """Copy every known option present in ``parser`` onto ``cfg``."""
    for section, option, _ in _INI_OPTIONS:
        if parser.has_option(section, option):
            _assign(cfg, section, option, parser.get(section, option))


def _apply_env_overrides(cfg: AppConfig) -> None:
    """Apply environment variable overrides to configuration."""
    for name, (section, option) in _ENV_OVERRIDES.items():
        if raw := os.getenv(name):
            _assign(cfg, section, option, raw)


def _config_source() -> Path | None:
    for candidate in (CONFIG_FILE, CONFIG_EXAMPLE):
        if candidate.exists():
            return candidate
    return None


def load_config() -> AppConfig:
    """Build an ``AppConfig`` from defaults, the INI file and the environment."""
    cfg = AppConfig()
    source = _config_source()
    if source is not None:
        parser = configparser.ConfigParser()
        parser.read(source)
        _load_from_ini(parser, cfg)
    _apply_env_overrides(cfg)
    return cfg


def reload_config() -> AppConfig:
    """Re-read settings into the ``config`` singleton.

    Contexts that were already built keep the settings they were given.
    """
    global config
    config = load_config()
    return config


config = load_config()


def get_config_status() -> dict:
    """Diagnostic view of where settings came from.

    Reports whether a DeepL key is set, never the key.
    """
    source = _config_source()
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": source == CONFIG_EXAMPLE,
        "store_backend": config.store.backend,
        "app_id": config.store.app_id,
        "deepl_configured": bool(config.translation.deepl_api_key),
    }


def print_config_summary() -> None:
    status = get_config_status()
    rule = "=" * 60
    lines = [
        "",
        rule,
        "HOTELCONNECT CONFIGURATION",
        rule,
        f"Config file: {status['config_file_path']}",
        f"File exists: {status['config_file_exists']}",
    ]
    if status["using_example"]:
        lines.append("WARNING: Using example config (copy to server.ini for production)")
    lines.append("-" * 60)
    lines.append(f"Server:      {config.server.host}:{config.server.port}")
    lines.append(f"Store:       {config.store.backend} (app_id={config.store.app_id})")
    if config.store.backend == "sqlite":
        lines.append(f"Database:    {config.store.absolute_path}")
    lines.append(f"Gateway:     {config.translation.gateway_url}")
    deepl = "configured" if status["deepl_configured"] else "mock provider"
    lines.append(f"DeepL:       {deepl}")
    lines.append(f"Log level:   {config.logging.level}")
    lines.append(rule)
    print("\n".join(lines) + "\n")
