"""scansync configuration settings using pydantic-settings."""

import logging
from functools import cached_property
from pathlib import Path

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Configuration settings for the scansync agent.

    Settings are loaded from environment variables with the SCANSYNC_ prefix.
    For example, SCANSYNC_SERVER_URL=http://10.0.0.5:3000 sets server_url.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCANSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    server_url: str = "http://localhost:3000"
    request_timeout: float = 10.0  # seconds per remote call

    # Capture settings
    dedup_window: float = 2.0  # seconds an identical scan is ignored
    default_symbology: str = "qr"

    # Sync settings
    sync_interval: int = 60  # seconds between background full syncs

    # File paths
    data_dir: Path = Path("~/.local/share/scansync")
    symbologies_file: Path = Path("~/.config/scansync/symbologies.yaml")

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None
    device_id: str | None = None  # tags every log line

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Ensure the server URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        """Ensure remote calls are bounded."""
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v

    @field_validator("dedup_window")
    @classmethod
    def validate_dedup_window(cls, v: float) -> float:
        if v < 0:
            raise ValueError("dedup_window cannot be negative")
        return v

    @field_validator("sync_interval")
    @classmethod
    def validate_sync_interval(cls, v: int) -> int:
        """Ensure sync interval is positive."""
        if v < 1:
            raise ValueError("sync_interval must be at least 1 second")
        return v

    @field_validator("default_symbology")
    @classmethod
    def validate_default_symbology(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("default_symbology cannot be empty")
        return v.strip().lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def symbologies_path(self) -> Path:
        """Return expanded symbology alias file path."""
        return self.symbologies_file.expanduser()

    @property
    def db_path(self) -> Path:
        """Location of the local record database."""
        return self.data_path / "records.db"

    def load_symbology_aliases(self) -> dict[str, str]:
        """Load scanner symbology aliases from YAML.

        The file maps names reported by scanners to canonical tags, e.g.::

            aliases:
              org.iso.QRCode: qr
              ean13: ean-13

        User entries override the bundled defaults. If the file doesn't
        exist or can't be read, the defaults are returned.
        """
        aliases = self._get_default_aliases()

        if not self.symbologies_path.exists():
            return aliases

        try:
            with open(self.symbologies_path) as f:
                user_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Failed to load symbologies from {self.symbologies_path}: {e}")
            return aliases

        user_aliases = user_config.get("aliases", {}) if isinstance(user_config, dict) else {}
        if not isinstance(user_aliases, dict):
            logger.warning(f"Ignoring malformed aliases in {self.symbologies_path}")
            return aliases

        for name, tag in user_aliases.items():
            aliases[str(name).lower()] = str(tag).lower()
        return aliases

    def _get_default_aliases(self) -> dict[str, str]:
        """Return bundled aliases for common scanner type names."""
        return {
            "org.iso.qrcode": "qr",
            "qrcode": "qr",
            "qr_code": "qr",
            "org.iso.code128": "code128",
            "code_128": "code128",
            "org.iso.datamatrix": "datamatrix",
            "data_matrix": "datamatrix",
            "org.iso.aztec": "aztec",
        }
