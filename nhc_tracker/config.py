"""
Configuration module for the NHC Cyclone Tracker.

Settings come from environment variables, optionally seeded from a .env
file in the working directory.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

from .fetcher import Basin
from .store import DEFAULT_STATE_PATH

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

REQUIRED_VARS = [
    "DISCORD_BOT_TOKEN",
    "DISCORD_ADMIN_ID",
    "DISCORD_GUILD_CHANNEL_ID",
]

DEFAULT_POLL_INTERVAL_MINUTES = 10


class ConfigError(Exception):
    """Raised when required settings are missing or invalid."""
    pass


@dataclass
class Settings:
    discord_bot_token: str
    discord_admin_id: str
    discord_guild_channel_id: str
    basin: Basin = Basin.ATLANTIC
    state_path: str = str(DEFAULT_STATE_PATH)
    log_level: str = "INFO"
    log_file: Optional[str] = None
    poll_interval_minutes: int = DEFAULT_POLL_INTERVAL_MINUTES
    host: str = "0.0.0.0"
    port: int = 8000


def load_env_file(env_file: Optional[str] = ".env") -> None:
    """Load a dotenv file into os.environ. Variables already set win."""
    if env_file:
        load_dotenv(env_file, override=False)


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """Build Settings from the environment. Variables already set win over .env."""
    load_env_file(env_file)

    missing: List[str] = [name for name in REQUIRED_VARS if not os.getenv(name)]
    if missing:
        raise ConfigError(f"Please set the environment variable(s): {', '.join(missing)}")

    try:
        basin = Basin.from_name(os.getenv("NHC_BASIN", "atlantic"))
        poll_interval = int(os.getenv("POLL_INTERVAL_MINUTES", str(DEFAULT_POLL_INTERVAL_MINUTES)))
        port = int(os.getenv("PORT", "8000"))
    except ValueError as e:
        raise ConfigError(str(e))

    return Settings(
        discord_bot_token=os.environ["DISCORD_BOT_TOKEN"],
        discord_admin_id=os.environ["DISCORD_ADMIN_ID"],
        discord_guild_channel_id=os.environ["DISCORD_GUILD_CHANNEL_ID"],
        basin=basin,
        state_path=os.getenv("STATE_PATH", str(DEFAULT_STATE_PATH)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE") or None,
        poll_interval_minutes=poll_interval,
        host=os.getenv("HOST", "0.0.0.0"),
        port=port,
    )


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Console logging, plus a log file when one is configured."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
