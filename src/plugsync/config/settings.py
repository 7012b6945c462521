"""Runtime settings.

Environment variables:
- PLUGSYNC_DATA_DIR: State, logs and audit trail (default: $XDG_DATA_HOME/plugsync)
- PLUGSYNC_PLUGIN_DIR: Materialized plugins (default: <data_dir>/plugins)
- PLUGSYNC_CONFIG_FILE: File holding the plugins=( ... ) array (default: $ZDOTDIR/.zshrc)
- PLUGSYNC_FETCH_RETRIES: Attempts per plugin for transient fetch errors (default: 3)
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..state_store.store import STATE_FILE_NAME
from ..utils.audit_log import AUDIT_FILE_NAME

logger = logging.getLogger(__name__)

DEFAULT_FETCH_RETRIES = 3


def default_data_dir() -> Path:
    """Data directory from PLUGSYNC_DATA_DIR or the XDG default."""
    explicit = os.environ.get("PLUGSYNC_DATA_DIR")
    if explicit:
        return Path(explicit).expanduser()

    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / "plugsync"


def default_config_file() -> Path:
    """The shell rc file that declares plugins."""
    explicit = os.environ.get("PLUGSYNC_CONFIG_FILE")
    if explicit:
        return Path(explicit).expanduser()

    zdotdir = os.environ.get("ZDOTDIR")
    base = Path(zdotdir).expanduser() if zdotdir else Path.home()
    return base / ".zshrc"


@dataclass
class Settings:
    """Paths and tunables for one plugsync invocation."""
    data_dir: Path
    plugin_dir: Path
    config_file: Path
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    fetch_retry_min_wait: float = 1.0
    fetch_retry_max_wait: float = 10.0

    @property
    def state_file(self) -> Path:
        return self.data_dir / STATE_FILE_NAME

    @property
    def audit_file(self) -> Path:
        return self.data_dir / AUDIT_FILE_NAME

    @classmethod
    def from_env(
        cls,
        data_dir: Optional[Path] = None,
        config_file: Optional[Path] = None,
    ) -> "Settings":
        """Load settings from the environment; explicit arguments win."""
        resolved_data_dir = Path(data_dir) if data_dir else default_data_dir()

        plugin_dir_str = os.environ.get("PLUGSYNC_PLUGIN_DIR")
        plugin_dir = (
            Path(plugin_dir_str).expanduser() if plugin_dir_str
            else resolved_data_dir / "plugins"
        )

        retries_str = os.environ.get("PLUGSYNC_FETCH_RETRIES", str(DEFAULT_FETCH_RETRIES))
        try:
            fetch_retries = max(1, int(retries_str))
        except ValueError:
            logger.warning(
                f"Ignoring invalid PLUGSYNC_FETCH_RETRIES={retries_str!r}, "
                f"using {DEFAULT_FETCH_RETRIES}"
            )
            fetch_retries = DEFAULT_FETCH_RETRIES

        return cls(
            data_dir=resolved_data_dir,
            plugin_dir=plugin_dir,
            config_file=Path(config_file) if config_file else default_config_file(),
            fetch_retries=fetch_retries,
        )
