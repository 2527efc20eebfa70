"""Configuration settings for the file share server."""
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("file_share")

# Server
PORT = 8080
HOST = "0.0.0.0"

# Directory paths
UPLOAD_DIR = "./files"
TEMP_DIR = "./temp"
METADATA_FILE = "./metadata.json"
LOG_DIR = "./logs"
LOG_DIR_ENV = "FILESHARE_LOG_DIR"
LOG_LEVEL_ENV = "FILESHARE_LOG_LEVEL"

# Upload limits
DEFAULT_TTL = 60 * 60  # 1 hour, in seconds
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB
DEFAULT_MAX_DOWNLOADS = 0  # unlimited
ALLOWED_TYPES: List[str] = []  # content-type prefixes, empty allows everything

# Background tasks (seconds)
CLEANUP_INTERVAL = 5 * 60
SAVE_INTERVAL = 30

# Listing
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000

CONFIG_FILE_ENV = "FILESHARE_CONFIG"
DEFAULT_CONFIG_FILE = "config.json"


class Settings(BaseSettings):
    """Server settings. Fields can also be set from FILESHARE_* environment variables."""

    port: int = Field(default=PORT, ge=1, le=65535)
    host: str = HOST
    upload_dir: str = UPLOAD_DIR
    temp_dir: str = TEMP_DIR
    metadata_file: str = METADATA_FILE
    default_ttl: int = Field(default=DEFAULT_TTL, gt=0)
    max_file_size: int = Field(default=MAX_FILE_SIZE, gt=0)
    max_downloads: int = Field(default=DEFAULT_MAX_DOWNLOADS, ge=0)
    allowed_types: List[str] = Field(default_factory=lambda: list(ALLOWED_TYPES))
    cleanup_interval: float = Field(default=CLEANUP_INTERVAL, gt=0)
    save_interval: float = Field(default=SAVE_INTERVAL, gt=0)
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    max_page_size: int = Field(default=MAX_PAGE_SIZE, gt=0)

    model_config = SettingsConfigDict(env_prefix="FILESHARE_", extra="ignore")

    @field_validator("allowed_types")
    @classmethod
    def strip_prefixes(cls, value: List[str]) -> List[str]:
        # An empty prefix would match every content type
        return [prefix.strip() for prefix in value if prefix.strip()]

    @property
    def upload_path(self) -> Path:
        return Path(self.upload_dir)

    @property
    def temp_path(self) -> Path:
        return Path(self.temp_dir)

    @property
    def metadata_path(self) -> Path:
        return Path(self.metadata_file)

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> 'Settings':
        """Create Settings from the defaults overlaid with a JSON config file.

        The path falls back to $FILESHARE_CONFIG, then ./config.json. A missing
        file is not an error; an unreadable one is logged and ignored. Values of
        the wrong type raise pydantic.ValidationError so the server refuses to
        start with them.
        """
        path = path or os.getenv(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        config_path = Path(path)
        if not config_path.is_file():
            return cls()

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read config file {config_path}: {str(e)}")
            return cls()

        if not isinstance(overrides, dict):
            logger.error(f"Config file {config_path} must contain a JSON object")
            return cls()

        known = {}
        for key, value in overrides.items():
            if key not in cls.model_fields:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            known[key] = value
        return cls(**known)
