"""
Configuration loading for SoundChat.

Everything comes from environment variables (optionally seeded from a .env
file). The unprefixed names (SPOTIFY_CLIENT_ID, REDIRECT_URI, PORT, ...)
are honoured as fallbacks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from platformdirs import user_config_dir
from dotenv import load_dotenv
import os
import logging
from logging.handlers import RotatingFileHandler


APP_NAME = "soundchat"
APP_AUTHOR = "SoundChat"

DEFAULT_REDIRECT_URI = "http://localhost:3000/callback"
DEFAULT_PORT = 3001


@dataclass
class SpotifyConfig:
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class AppConfig:
    spotify: SpotifyConfig
    server: ServerConfig = field(default_factory=ServerConfig)


def get_default_config_dir() -> Path:
    """
    Returns the platform-appropriate directory for SoundChat config and logs.
    """
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def _getenv(*names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _parse_origins(raw: str) -> List[str]:
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def load_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    """
    load_dotenv()

    client_id = _getenv("SOUNDCHAT_SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_ID", default="")
    client_secret = _getenv("SOUNDCHAT_SPOTIFY_CLIENT_SECRET", "SPOTIFY_CLIENT_SECRET", default="")
    redirect_uri = _getenv("SOUNDCHAT_REDIRECT_URI", "REDIRECT_URI", default=DEFAULT_REDIRECT_URI)

    # Missing credentials are not fatal here: the store endpoints work without
    # them and the catalog/auth endpoints report the problem per request.
    spotify_cfg = SpotifyConfig(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
    )

    port_raw = _getenv("SOUNDCHAT_PORT", "PORT", default=str(DEFAULT_PORT))
    try:
        port = int(port_raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"Invalid port {port_raw!r}, using {DEFAULT_PORT}")
        port = DEFAULT_PORT

    server_cfg = ServerConfig(
        host=_getenv("SOUNDCHAT_HOST", default="0.0.0.0"),
        port=port,
        cors_origins=_parse_origins(os.getenv("SOUNDCHAT_CORS_ORIGINS", "*")),
    )
    return AppConfig(spotify=spotify_cfg, server=server_cfg)


def setup_logging() -> None:
    """
    Configure centralized logging for SoundChat using Python's built-in logging module.

    - Logs to <config dir>/logs/soundchat.log
    - Uses RotatingFileHandler with 10MB max size and 5 backup files
    - Logs to both file and console
    - Default level: INFO (can be overridden via SOUNDCHAT_LOG_LEVEL env var)
    """
    log_level_str = os.getenv("SOUNDCHAT_LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_dir = get_default_config_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    log_format = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    file_handler = RotatingFileHandler(
        str(log_dir / "soundchat.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(console_handler)


# Initialize logging when module is imported (after get_default_config_dir is defined)
setup_logging()

__all__ = [
    "AppConfig",
    "ServerConfig",
    "SpotifyConfig",
    "get_default_config_dir",
    "load_config",
    "setup_logging",
]
