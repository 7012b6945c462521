"""Drift calculator.

Computes the changes needed to bring the state store in line with the
declared plugin list.
"""
from dataclasses import replace
from typing import Iterable

from ..spec.schema import PluginSpecification
from ..state_store.store import PluginState, StateStore
from .schema import DriftReport


def compute_drift(declared: Iterable[PluginSpecification], store: StateStore) -> DriftReport:
    """
    Calculate drift between the declared list and the store.

    Every experimental entry is scheduled for removal, including one whose
    name is also declared: the declared entry replaces it.

    Args:
        declared: Validated, de-duplicated specifications
        store: Current state

    Returns:
        DriftReport with install/remove/update sets
    """
    declared_by_name = {spec.plugin_name: spec for spec in declared}
    declared_names = set(declared_by_name)
    current_declared = store.list_by_state(PluginState.DECLARED)

    to_update = set()
    for name in declared_names & current_declared:
        if store.get(name).specification != declared_by_name[name].raw:
            to_update.add(name)

    to_remove = (current_declared - declared_names) | store.list_by_state(PluginState.EXPERIMENTAL)

    return DriftReport(
        to_install=declared_names - current_declared,
        to_remove=to_remove,
        to_update=to_update,
        previous={name: replace(store.get(name)) for name in to_remove | to_update},
    )


def summarize_drift(report: DriftReport) -> str:
    """
    Create a human-readable summary of a drift report.

    Useful for dry-run output and ``diff``. Removals and updates are
    annotated from the entries captured when the drift was computed, so the
    text stays accurate after ``sync`` has changed the store.
    """
    if report.in_sync:
        return "No changes needed - plugins match the declared list"

    lines = [f"Changes to apply ({report.total_changes} total):", ""]

    for name in sorted(report.to_remove):
        entry = report.previous.get(name)
        if entry is not None and entry.state == PluginState.EXPERIMENTAL:
            lines.append(f"  [-] Remove {name} (experimental)")
        else:
            lines.append(f"  [-] Remove {name}")

    for name in sorted(report.to_install):
        lines.append(f"  [+] Install {name}")

    for name in sorted(report.to_update):
        lines.append(f"  [~] Update {name}")
        entry = report.previous.get(name)
        if entry is not None:
            lines.append(f"      (was: {entry.specification} @ {entry.resolved_version})")

    return "\n".join(lines)
