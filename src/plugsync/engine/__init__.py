"""Reconciliation engine for declared plugins."""
from .diff import compute_drift, summarize_drift
from .engine import PluginEngine
from .previewer import Previewer
from .promoter import Promoter, NotLoadedError, AlreadyDeclaredError
from .reconciler import Reconciler
from .schema import (
    DriftReport,
    UnitAction,
    UnitResult,
    SyncResult,
    AdoptResult,
    AdoptSummary,
    TryStatus,
    TryResult,
    StatusReport,
    DiffReport,
    DIFF_EXIT_DRIFT,
    DIFF_EXIT_IN_SYNC,
    DIFF_EXIT_ERROR,
    DIFF_EXIT_INVALID,
)

__all__ = [
    "PluginEngine",
    "Reconciler",
    "Promoter",
    "Previewer",
    "NotLoadedError",
    "AlreadyDeclaredError",
    "compute_drift",
    "summarize_drift",
    "DriftReport",
    "UnitAction",
    "UnitResult",
    "SyncResult",
    "AdoptResult",
    "AdoptSummary",
    "TryStatus",
    "TryResult",
    "StatusReport",
    "DiffReport",
    "DIFF_EXIT_DRIFT",
    "DIFF_EXIT_IN_SYNC",
    "DIFF_EXIT_ERROR",
    "DIFF_EXIT_INVALID",
]
