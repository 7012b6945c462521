"""Result types for the reconciliation engine.

Nothing here is persisted; these are derived reports handed back to
callers (the CLI, tests, or an embedding shell integration).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..state_store.store import PluginStateEntry


# --- Drift ---

@dataclass
class DriftReport:
    """Difference between the declared list and the state store."""
    to_install: set[str] = field(default_factory=set)
    to_remove: set[str] = field(default_factory=set)
    to_update: set[str] = field(default_factory=set)
    # Store entries as they were before the change, for to_remove and to_update
    previous: dict[str, PluginStateEntry] = field(default_factory=dict, compare=False, repr=False)

    @property
    def in_sync(self) -> bool:
        return not (self.to_install or self.to_remove or self.to_update)

    @property
    def total_changes(self) -> int:
        return len(self.to_install) + len(self.to_remove) + len(self.to_update)

    def to_dict(self) -> dict[str, Any]:
        return {
            "to_install": sorted(self.to_install),
            "to_remove": sorted(self.to_remove),
            "to_update": sorted(self.to_update),
            "in_sync": self.in_sync,
        }


# --- Per-unit outcomes ---

class UnitAction(str, Enum):
    """What a batch operation did to one plugin."""
    INSTALL = "install"
    REMOVE = "remove"
    UPDATE = "update"
    ADOPT = "adopt"


@dataclass
class UnitResult:
    """Outcome for a single plugin inside a batch operation."""
    name: str
    action: UnitAction
    success: bool
    error: Optional[str] = None


# --- sync ---

@dataclass
class SyncResult:
    """Result of reconciling the store to the declared list."""
    drift: DriftReport = field(default_factory=DriftReport)
    dry_run: bool = False
    units: list[UnitResult] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)  # validation messages

    @property
    def already_in_sync(self) -> bool:
        return self.drift.in_sync

    def _names(self, action: UnitAction, success: bool) -> set[str]:
        return {u.name for u in self.units if u.action == action and u.success == success}

    @property
    def installed(self) -> set[str]:
        return self._names(UnitAction.INSTALL, True)

    @property
    def removed(self) -> set[str]:
        return self._names(UnitAction.REMOVE, True)

    @property
    def updated(self) -> set[str]:
        return self._names(UnitAction.UPDATE, True)

    @property
    def failed(self) -> dict[str, str]:
        return {u.name: u.error or "unknown error" for u in self.units if not u.success}

    @property
    def changed(self) -> bool:
        """True if the in-memory store was mutated and must be saved."""
        return not self.dry_run and bool(self.installed or self.removed or self.updated)

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "already_in_sync": self.already_in_sync,
            "dry_run": self.dry_run,
            "drift": self.drift.to_dict(),
            "installed": sorted(self.installed),
            "removed": sorted(self.removed),
            "updated": sorted(self.updated),
            "failed": dict(sorted(self.failed.items())),
            "invalid": list(self.invalid),
        }


# --- adopt ---

@dataclass
class AdoptResult:
    """A plugin promoted from experimental to declared."""
    name: str
    specification: str
    config_file: Optional[str] = None
    backup_file: Optional[str] = None  # None when the config already had it


@dataclass
class AdoptSummary:
    """Result of adopting every experimental plugin."""
    candidates: list[str] = field(default_factory=list)
    cancelled: bool = False
    units: list[UnitResult] = field(default_factory=list)
    adopted: list[AdoptResult] = field(default_factory=list)

    @property
    def adopted_names(self) -> set[str]:
        return {u.name for u in self.units if u.success}

    @property
    def failed(self) -> dict[str, str]:
        return {u.name: u.error or "unknown error" for u in self.units if not u.success}

    @property
    def changed(self) -> bool:
        return bool(self.adopted_names)


# --- try ---

class TryStatus(str, Enum):
    """Outcome of an experimental load."""
    LOADED = "loaded"
    ALREADY_DECLARED = "already_declared"
    ALREADY_EXPERIMENTAL = "already_experimental"


@dataclass
class TryResult:
    """Result of trying a plugin outside the declared list."""
    name: str
    status: TryStatus
    entry: Optional[PluginStateEntry] = None

    @property
    def changed(self) -> bool:
        return self.status == TryStatus.LOADED


# --- status / diff ---

@dataclass
class StatusReport:
    """Read-only view of current state."""
    declared: list[PluginStateEntry] = field(default_factory=list)
    experimental: list[PluginStateEntry] = field(default_factory=list)
    drift: DriftReport = field(default_factory=DriftReport)

    @property
    def in_sync(self) -> bool:
        return self.drift.in_sync

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable form."""
        def row(entry: PluginStateEntry) -> dict[str, Any]:
            return {
                "name": entry.name,
                "spec": entry.specification,
                "version": entry.resolved_version,
                "path": entry.path,
                "installed_at": entry.installed_at,
                "origin": entry.origin.value,
            }

        return {
            "declared": [row(e) for e in self.declared],
            "experimental": [row(e) for e in self.experimental],
            "in_sync": self.in_sync,
            "drift": self.drift.to_dict(),
        }


# Exit codes used by `diff` so it can gate scripts
DIFF_EXIT_DRIFT = 0
DIFF_EXIT_IN_SYNC = 1
DIFF_EXIT_INVALID = 2
DIFF_EXIT_ERROR = 3  # config or state unreadable; 1 stays reserved for "in sync"


@dataclass
class DiffReport:
    """Pending drift, phrased as what `sync` would do."""
    drift: DriftReport = field(default_factory=DriftReport)
    unchanged: list[str] = field(default_factory=list)  # declared names that stay

    @property
    def has_drift(self) -> bool:
        return not self.drift.in_sync

    @property
    def exit_code(self) -> int:
        return DIFF_EXIT_DRIFT if self.has_drift else DIFF_EXIT_IN_SYNC
