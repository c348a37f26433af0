"""
Configuration file support for MacSafe.

Loads settings from ``~/.config/macsafe/config.yaml`` (or
``$XDG_CONFIG_HOME/macsafe/config.yaml``) and exposes them as a typed
dataclass that the CLI can merge with command-line flags.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger("macsafe.config")

MAS_INSTALL_MODES = ("batched", "terminal")
DEFAULT_MAS_INSTALL_TIMEOUT = 3600


def default_config_path() -> Path:
    """Return the default configuration file path.

    Uses ``$XDG_CONFIG_HOME/macsafe/config.yaml`` when set, otherwise
    falls back to ``~/.config/macsafe/config.yaml``.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "macsafe" / "config.yaml"
    return Path.home() / ".config" / "macsafe" / "config.yaml"


def default_directories() -> List[str]:
    return ["~/Documents", "~/Desktop"]


@dataclass
class MacsafeConfig:
    """Top-level configuration loaded from the YAML file."""

    target: Optional[str] = None
    directories: List[str] = field(default_factory=default_directories)
    backup_homebrew_cache: bool = False
    backup_safari_settings: bool = False
    parallel_verify: bool = True
    mas_install_mode: str = "batched"
    mas_install_timeout: int = DEFAULT_MAS_INSTALL_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MacsafeConfig":
        """Construct a ``MacsafeConfig`` from a parsed YAML dictionary."""
        if not isinstance(data, dict):
            return cls()

        directories: List[str] = []
        raw_dirs = data.get("directories")
        if raw_dirs is None:
            directories = default_directories()
        else:
            for entry in raw_dirs:
                if not isinstance(entry, str) or not entry.strip():
                    logger.warning("Skipping invalid directories entry: %s", entry)
                    continue
                directories.append(entry)

        mode = data.get("mas_install_mode", "batched")
        if mode not in MAS_INSTALL_MODES:
            logger.warning("Unknown mas_install_mode %r, using 'batched'", mode)
            mode = "batched"

        return cls(
            target=data.get("target"),
            directories=directories,
            backup_homebrew_cache=bool(data.get("backup_homebrew_cache", False)),
            backup_safari_settings=bool(data.get("backup_safari_settings", False)),
            parallel_verify=bool(data.get("parallel_verify", True)),
            mas_install_mode=mode,
            mas_install_timeout=int(
                data.get("mas_install_timeout", DEFAULT_MAS_INSTALL_TIMEOUT)
            ),
        )

    @classmethod
    def from_file(cls, path: Path) -> "MacsafeConfig":
        """Read a YAML file and return a ``MacsafeConfig``.

        Returns a default config on any error.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f.read())
            if data is None:
                return cls()
            return cls.from_dict(data)
        except (IOError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return cls()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "MacsafeConfig":
        """Main entry point: load config from *config_path* or the default location.

        Returns a default config if the file does not exist.
        """
        path = config_path or default_config_path()
        if not path.exists():
            return cls()
        return cls.from_file(path)
