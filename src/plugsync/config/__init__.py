"""Settings and the declared plugin list."""
from .declared import DeclaredConfig, ConfigFileError, ConfigWriteError
from .settings import Settings, default_data_dir, default_config_file

__all__ = [
    "DeclaredConfig",
    "ConfigFileError",
    "ConfigWriteError",
    "Settings",
    "default_data_dir",
    "default_config_file",
]
