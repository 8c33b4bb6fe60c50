"""
Configuration management for camsort.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import yaml

from .constants import (DEFAULT_MAX_POLL_ERRORS, DEFAULT_OTHER_FOLDER, DEFAULT_PHONE_MODELS,
                        DEFAULT_POLL_INTERVAL, DEFAULT_ROOT, PROGRAM)
from .errors import ConfigError

TOKEN_ENV_VARS = ("CAMSORT_AUTH_TOKEN", "AUTH_TOKEN")


class Config:
    """Manages configuration file for storing user preferences."""

    def __init__(self, config_path: Optional[Path] = None):
        # Default config location: ~/.<PROGRAM>/config.yml
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = Path.home() / f".{PROGRAM}" / "config.yml"
        self.program_root = self.config_path.parent
        self.data = self._load_config()

    def _load_config(self) -> Dict:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger = logging.getLogger(PROGRAM)
            logger.warning(f"Could not load config: {e}")
            return {}

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        return data

    def save_config(self) -> None:
        """Save current configuration to file."""
        self.program_root.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.config_path, 'w') as f:
                yaml.safe_dump(self.data, f, default_flow_style=False)
        except OSError as e:
            logger = logging.getLogger(PROGRAM)
            logger.error(f"Could not save config: {e}")

    def get_access_token(self) -> Optional[str]:
        return self.data.get('access_token')

    def get_root(self) -> str:
        """Get the remote Camera Uploads directory."""
        return self.data.get('root', DEFAULT_ROOT)

    def get_download_root(self) -> Optional[str]:
        return self.data.get('download_root')

    def get_poll_interval(self) -> float:
        return float(self.data.get('poll_interval', DEFAULT_POLL_INTERVAL))

    def get_max_poll_rounds(self) -> Optional[int]:
        return self.data.get('max_poll_rounds')

    def get_poll_timeout(self) -> Optional[float]:
        return self.data.get('poll_timeout')

    def get_workers(self) -> int:
        return int(self.data.get('workers', 1))

    def get_phone_models(self) -> List[str]:
        return list(self.data.get('phone_models', DEFAULT_PHONE_MODELS))

    def get_other_folder(self) -> str:
        return self.data.get('other_folder', DEFAULT_OTHER_FOLDER)

    def get_video_folder(self) -> Optional[str]:
        """Folder for movies in device mode; unset leaves movies in place."""
        return self.data.get('video_folder')

    def get_processed_log(self) -> Path:
        path = self.data.get('processed_log')
        return Path(path).expanduser() if path else self.program_root / "processed"

    def update_root(self, root: str) -> None:
        """Update and save the remote root directory."""
        self.data['root'] = root
        self.save_config()

    def update_download_root(self, download_root: str) -> None:
        """Update and save the local mirror directory."""
        self.data['download_root'] = download_root
        self.save_config()


@dataclass(frozen=True)
class Settings:
    """Resolved run settings passed explicitly into each collaborator."""
    access_token: str
    root: str = DEFAULT_ROOT
    download_root: Optional[Path] = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_poll_rounds: Optional[int] = None
    poll_timeout: Optional[float] = None
    max_poll_errors: int = DEFAULT_MAX_POLL_ERRORS
    workers: int = 1
    phone_models: Tuple[str, ...] = DEFAULT_PHONE_MODELS
    other_folder: str = DEFAULT_OTHER_FOLDER
    video_folder: Optional[str] = None
    processed_log: Optional[Path] = None
    program_root: Path = field(default_factory=lambda: Path.home() / f".{PROGRAM}")

    @classmethod
    def from_config(cls, config: Config, environ: Optional[Mapping[str, str]] = None,
                    **overrides) -> "Settings":
        """Resolve settings from environment, config file and explicit overrides.

        Overrides whose value is None are ignored, so argparse namespaces can be
        passed through directly.
        """
        environ = os.environ if environ is None else environ
        token = next((environ[name] for name in TOKEN_ENV_VARS if environ.get(name)), None)
        token = token or config.get_access_token()
        if not token:
            raise ConfigError(
                f"No access token: set {TOKEN_ENV_VARS[0]} or 'access_token' in {config.config_path}"
            )

        download_root = config.get_download_root()
        values = {
            'access_token': token,
            'root': config.get_root(),
            'download_root': Path(download_root).expanduser() if download_root else None,
            'poll_interval': config.get_poll_interval(),
            'max_poll_rounds': config.get_max_poll_rounds(),
            'poll_timeout': config.get_poll_timeout(),
            'workers': config.get_workers(),
            'phone_models': tuple(config.get_phone_models()),
            'other_folder': config.get_other_folder(),
            'video_folder': config.get_video_folder(),
            'processed_log': config.get_processed_log(),
            'program_root': config.program_root,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        if values['poll_interval'] < 0:
            raise ConfigError(f"poll_interval must not be negative: {values['poll_interval']}")
        if values['max_poll_rounds'] is not None and values['max_poll_rounds'] < 1:
            raise ConfigError(f"max_poll_rounds must be at least 1: {values['max_poll_rounds']}")
        if values['workers'] < 1:
            raise ConfigError(f"workers must be at least 1: {values['workers']}")
        return cls(**values)
