"""Application settings loader from YAML configuration."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from spendtracker.exceptions import ConfigError

CONFIG_ENV_VAR = "SPENDTRACKER_CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"


@dataclass
class AppSettings:
    """Application-wide settings loaded from config.yaml."""

    app_name: str = "Spend Tracker"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_max_file_size_mb: int = 1
    log_backup_count: int = 3

    # Storage
    saves_dir: str = "saves"
    preferences_file: str = "preferences.json"

    # Display
    currency_symbol: str = "₹"
    recent_limit: int = 5

    # Transactions
    receipt_max_bytes: int = 2 * 1024 * 1024

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AppSettings":
        """Load settings from YAML, falling back to defaults when no file is configured."""
        if config_path is None:
            config_path = Path(os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))
            if not config_path.exists():
                return cls()
        elif not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid configuration file {config_path}: {e}")

        if not isinstance(config, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_path}")

        return cls.from_dict(config)

    @classmethod
    def from_dict(cls, config: dict) -> "AppSettings":
        defaults = cls()
        app = config.get("app") or {}
        logging_cfg = config.get("logging") or {}
        storage = config.get("storage") or {}
        display = config.get("display") or {}
        txn = config.get("transactions") or {}

        try:
            return cls(
                app_name=app.get("name", defaults.app_name),
                log_level=str(logging_cfg.get("level", defaults.log_level)),
                log_file=logging_cfg.get("file", defaults.log_file),
                log_max_file_size_mb=int(logging_cfg.get("max_file_size_mb", defaults.log_max_file_size_mb)),
                log_backup_count=int(logging_cfg.get("backup_count", defaults.log_backup_count)),
                saves_dir=str(storage.get("saves_dir", defaults.saves_dir)),
                preferences_file=str(storage.get("preferences_file", defaults.preferences_file)),
                currency_symbol=str(display.get("currency_symbol", defaults.currency_symbol)),
                recent_limit=int(display.get("recent_limit", defaults.recent_limit)),
                receipt_max_bytes=int(txn.get("receipt_max_bytes", defaults.receipt_max_bytes)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid configuration value: {e}")
