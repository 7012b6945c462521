"""Durable plugin state.

This package provides:
- StateStore: In-memory mapping of plugin name to PluginStateEntry
- StateFile: Atomic load/save of the YAML state document
- PluginState / PluginOrigin: Typed state and origin values

File managed:
    <data_dir>/
    ├── state.yaml                    # Current state document
    ├── state.yaml.corrupted.<epoch>  # Archived unreadable documents
    └── .state.yaml.*.tmp             # In-flight saves (never authoritative)
"""

from .store import (
    StateStore,
    StateFile,
    PluginStateEntry,
    PluginState,
    PluginOrigin,
    CorruptionError,
    StateWriteError,
    STATE_FILE_NAME,
    now_epoch,
)

__all__ = [
    "StateStore",
    "StateFile",
    "PluginStateEntry",
    "PluginState",
    "PluginOrigin",
    "CorruptionError",
    "StateWriteError",
    "STATE_FILE_NAME",
    "now_epoch",
]
