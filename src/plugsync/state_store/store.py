"""Plugin state store.

Handles:
- Typed state records (declared vs experimental, and where they came from)
- The in-memory StateStore each command loads, mutates and saves once
- The on-disk YAML document, replaced atomically on every save
- Corruption recovery: unreadable documents are archived, not discarded
"""
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from ..utils.fileio import atomic_write_text, temp_prefix, TMP_SUFFIX

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "state.yaml"
DOCUMENT_FORMAT = "plugsync-state"
DOCUMENT_VERSION = 1

# Temp files older than this are leftovers from an interrupted save
STALE_TEMP_SECONDS = 600


class PluginState(str, Enum):
    """Why a plugin is active."""
    DECLARED = "declared"           # Listed in the plugins array
    EXPERIMENTAL = "experimental"   # Loaded ad hoc with `try`


class PluginOrigin(str, Enum):
    """How a plugin entered the store."""
    ARRAY = "array"                 # plugins=( ... ) declaration
    TRY_COMMAND = "try_command"     # `plugsync try`
    LEGACY_LOAD = "legacy_load"     # old per-line load directive; recorded by the shell loader, never by sync


class CorruptionError(Exception):
    """The state document exists but cannot be decoded."""
    pass


class StateWriteError(OSError):
    """The state document could not be written; the previous one is intact."""
    pass


@dataclass
class PluginStateEntry:
    """One row of durable state, keyed by ``owner/name``."""
    name: str
    state: PluginState
    specification: str
    installed_at: int
    path: str
    resolved_version: str = "unknown"
    origin: PluginOrigin = PluginOrigin.ARRAY

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the state document (name is the mapping key)."""
        return {
            "state": self.state.value,
            "specification": self.specification,
            "installed_at": self.installed_at,
            "path": self.path,
            "resolved_version": self.resolved_version,
            "origin": self.origin.value,
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "PluginStateEntry":
        """
        Parse one row of the state document.

        Raises:
            KeyError, TypeError, ValueError: If the row is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"entry for {name} is not a mapping")

        installed_at = data["installed_at"]
        if isinstance(installed_at, bool) or not isinstance(installed_at, int):
            raise TypeError(f"installed_at for {name} is not an integer")

        for key in ("specification", "path", "resolved_version"):
            if not isinstance(data[key], str):
                raise TypeError(f"{key} for {name} is not a string")

        return cls(
            name=name,
            state=PluginState(data["state"]),
            specification=data["specification"],
            installed_at=installed_at,
            path=data["path"],
            resolved_version=data["resolved_version"],
            origin=PluginOrigin(data["origin"]),
        )


@dataclass
class StateStore:
    """
    Mapping ``name -> PluginStateEntry`` for one command invocation.

    Commands load a store, mutate it in memory and save it once.
    ``generation`` and ``recovered_from`` are bookkeeping and are not
    part of equality.
    """
    entries: dict[str, PluginStateEntry] = field(default_factory=dict)
    generation: int = field(default=0, compare=False)
    recovered_from: Optional[Path] = field(default=None, compare=False)

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[PluginStateEntry]:
        return iter(self.entries.values())

    def get(self, name: str) -> Optional[PluginStateEntry]:
        return self.entries.get(name)

    def add(self, entry: PluginStateEntry) -> None:
        """Insert an entry, replacing any existing entry with the same name."""
        if entry.name in self.entries:
            logger.debug(f"Replacing state entry for {entry.name}")
        self.entries[entry.name] = entry

    def remove(self, name: str) -> bool:
        """Remove an entry. Returns False if it was not present."""
        return self.entries.pop(name, None) is not None

    def update(self, name: str, new_state: PluginState, new_origin: PluginOrigin) -> PluginStateEntry:
        """
        Change an entry's state and origin in place.

        Timestamps, paths and versions are preserved.

        Raises:
            KeyError: If the plugin is not in the store
        """
        entry = self.entries.get(name)
        if entry is None:
            raise KeyError(f"Plugin not found in state: {name}")
        entry.state = new_state
        entry.origin = new_origin
        return entry

    def reresolve(
        self,
        name: str,
        specification: str,
        path: str,
        resolved_version: str,
        installed_at: Optional[int] = None,
    ) -> PluginStateEntry:
        """
        Point an existing entry at a newly materialized version.

        Raises:
            KeyError: If the plugin is not in the store
        """
        entry = self.entries.get(name)
        if entry is None:
            raise KeyError(f"Plugin not found in state: {name}")
        entry.specification = specification
        entry.path = path
        entry.resolved_version = resolved_version
        entry.installed_at = installed_at if installed_at is not None else now_epoch()
        return entry

    def list_by_state(self, state: PluginState) -> set[str]:
        return {name for name, entry in self.entries.items() if entry.state == state}

    def sorted_entries(self, state: Optional[PluginState] = None) -> list[PluginStateEntry]:
        """Entries ordered by name, optionally filtered by state."""
        return [
            self.entries[name] for name in sorted(self.entries)
            if state is None or self.entries[name].state == state
        ]

    def to_document(self) -> dict[str, Any]:
        """Build the serializable document for this store."""
        return {
            "format": DOCUMENT_FORMAT,
            "version": DOCUMENT_VERSION,
            "generation": self.generation,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "plugins": {
                name: self.entries[name].to_dict() for name in sorted(self.entries)
            },
        }

    @classmethod
    def from_document(cls, document: Any) -> "StateStore":
        """
        Build a store from a decoded document.

        Raises:
            CorruptionError: If the document does not have the expected shape
        """
        if not isinstance(document, dict) or document.get("format") != DOCUMENT_FORMAT:
            raise CorruptionError("not a plugsync state document")

        version = document.get("version")
        if version != DOCUMENT_VERSION:
            raise CorruptionError(f"unsupported state document version: {version!r}")

        if "plugins" not in document:
            raise CorruptionError("'plugins' section is missing")
        plugins = document["plugins"]
        if plugins is None:
            plugins = {}
        if not isinstance(plugins, dict):
            raise CorruptionError("'plugins' is not a mapping")

        entries = {}
        for name, data in plugins.items():
            if not isinstance(name, str):
                raise CorruptionError(f"invalid plugin key: {name!r}")
            try:
                entries[name] = PluginStateEntry.from_dict(name, data)
            except (KeyError, TypeError, ValueError) as e:
                raise CorruptionError(f"invalid entry for {name}: {e}") from e

        generation = document.get("generation", 0)
        if isinstance(generation, bool) or not isinstance(generation, int):
            generation = 0

        return cls(entries=entries, generation=generation)


def now_epoch() -> int:
    """Current time as integer epoch seconds."""
    return int(time.time())


class StateFile:
    """
    The persisted state document.

    The canonical file is only ever replaced with ``os.replace``; a reader
    sees the previous document or the new one, never a partial write.
    There is no lock: concurrent writers race and the last rename wins.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> StateStore:
        """
        Load the state document.

        Returns:
            Empty store if the file is absent. If it is unreadable, the file
            is archived as ``<name>.corrupted.<epoch>`` and an empty store is
            returned with ``recovered_from`` set to the archive path.
        """
        self._discard_stale_temp_files()

        if not self.path.exists():
            logger.debug(f"No state file at {self.path}, starting empty")
            return StateStore()

        try:
            store = StateStore.from_document(self._decode(self.path.read_bytes()))
        except CorruptionError as e:
            archive = self._archive_corrupt()
            logger.warning(
                f"State file {self.path} is corrupted ({e}); "
                f"moved to {archive} and reinitialized"
            )
            return StateStore(recovered_from=archive)

        logger.debug(f"Loaded {len(store)} plugin(s) from {self.path} (generation {store.generation})")
        return store

    def save(self, store: StateStore) -> None:
        """
        Write the store atomically and bump its generation.

        Raises:
            StateWriteError: If the temp file cannot be created or renamed.
                The canonical document is untouched.
        """
        next_generation = store.generation + 1
        document = store.to_document()
        document["generation"] = next_generation

        content = (
            "# plugsync plugin state - auto-generated, do not edit\n"
            + yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
        )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self.path, content)
        except OSError as e:
            raise StateWriteError(f"Cannot write state file {self.path}: {e}") from e

        store.generation = next_generation
        logger.info(f"Saved {len(store)} plugin(s) to {self.path} (generation {next_generation})")

    @staticmethod
    def _decode(data: bytes) -> Any:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptionError("state file is not valid UTF-8") from e

        if not text.strip():
            raise CorruptionError("state file is empty")

        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CorruptionError(f"invalid YAML: {e}") from e

    def _archive_corrupt(self) -> Optional[Path]:
        """Rename the corrupt document aside; returns the archive path."""
        base = self.path.with_name(f"{self.path.name}.corrupted.{now_epoch()}")
        archive = base
        counter = 1
        while archive.exists():
            archive = base.with_name(f"{base.name}.{counter}")
            counter += 1

        try:
            os.replace(self.path, archive)
        except OSError as e:
            logger.error(f"Could not archive corrupted state file {self.path}: {e}")
            return None
        return archive

    def _discard_stale_temp_files(self) -> None:
        """Remove temp files left behind by saves that never completed."""
        directory = self.path.parent
        if not directory.is_dir():
            return

        cutoff = time.time() - STALE_TEMP_SECONDS
        for tmp in directory.glob(f"{temp_prefix(self.path)}*{TMP_SUFFIX}"):
            try:
                if tmp.stat().st_mtime < cutoff:
                    tmp.unlink()
                    logger.debug(f"Removed stale temp file {tmp}")
            except OSError:
                continue  # Another process may have renamed or removed it
