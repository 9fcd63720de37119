#!/usr/bin/env python3

import os
import yaml
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, fields

from ..errors import ConfigurationError

REPOMD_PATH = "repodata/repomd.xml"

@dataclass
class MirrorConfig:
    repo_url: str = None
    destination: str = None
    # Metadata and packages may live under different roots
    metadata_path: str = None
    data_path: str = None
    metadata_only: bool = False
    data_only: bool = False
    concurrent_downloads: int = 10
    size_check: bool = False
    verbose: int = 1
    log_file: str = None
    # TLS client configuration
    cert_file: str = None
    key_file: str = None
    insecure_tls: bool = False
    # Transport timeouts in seconds
    connect_timeout: float = 10.0
    read_timeout: float = 300.0
    continue_on_error: bool = False
    check_disk_space: bool = True

    def __post_init__(self):
        if self.repo_url and not self.repo_url.endswith("/"):
            self.repo_url = self.repo_url + "/"

        if self.destination:
            self.destination = os.path.expanduser(self.destination)

        if self.metadata_path is None:
            self.metadata_path = self.destination
        else:
            self.metadata_path = os.path.expanduser(self.metadata_path)

        if self.data_path is None:
            self.data_path = self.destination
        else:
            self.data_path = os.path.expanduser(self.data_path)

    def validate(self) -> List[str]:
        """Return a list of configuration problems, empty when the config is usable"""
        errors = []

        if not self.repo_url:
            errors.append("repo_url is required")
        if not self.metadata_path or not self.data_path:
            errors.append("destination is required")
        if self.concurrent_downloads < 1:
            errors.append(f"concurrent_downloads must be at least 1, got {self.concurrent_downloads}")
        if self.metadata_only and self.data_only:
            errors.append("metadata_only and data_only are mutually exclusive")

        if bool(self.cert_file) != bool(self.key_file):
            errors.append("cert_file and key_file must be given together")
        for name in ("cert_file", "key_file"):
            path = getattr(self, name)
            if path and not os.path.isfile(path):
                errors.append(f"{name} not found: {path}")

        return errors

class ConfigManager:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config: Optional[MirrorConfig] = None

    def _get_default_config_path(self) -> str:
        xdg_config = os.environ.get('XDG_CONFIG_HOME', '~/.config')
        return os.path.expanduser(f"{xdg_config}/rpm-mirror/config.yaml")

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> MirrorConfig:
        """Load the YAML config file and apply command-line overrides on top.

        Overrides whose value is None are ignored so that unset flags never
        mask values from the file.
        """
        data = self._read_file()

        if overrides:
            data.update({k: v for k, v in overrides.items() if v is not None})

        known = {f.name for f in fields(MirrorConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config keys in {self.config_path}: {', '.join(unknown)}")

        self._config = MirrorConfig(**data)
        return self._config

    def _read_file(self) -> Dict[str, Any]:
        if not os.path.exists(self.config_path):
            return {}

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, OSError) as e:
            raise ConfigurationError(f"Error loading config from {self.config_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")
        return data

    def get_config(self) -> MirrorConfig:
        if self._config is None:
            return self.load_config()
        return self._config
