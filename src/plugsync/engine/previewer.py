"""Read-only views of the state store: status and diff."""
from typing import Iterable

from ..spec.schema import PluginSpecification
from ..state_store.store import PluginState, StateStore
from .diff import compute_drift
from .schema import DiffReport, StatusReport


class Previewer:
    """Report on state without mutating or saving it."""

    def status(self, declared: Iterable[PluginSpecification], store: StateStore) -> StatusReport:
        return StatusReport(
            declared=store.sorted_entries(PluginState.DECLARED),
            experimental=store.sorted_entries(PluginState.EXPERIMENTAL),
            drift=compute_drift(declared, store),
        )

    def diff(self, declared: Iterable[PluginSpecification], store: StateStore) -> DiffReport:
        """What ``sync`` would change; ``exit_code`` is 0 on drift, 1 when in sync."""
        specs = list(declared)
        drift = compute_drift(specs, store)
        unchanged = sorted(
            {spec.plugin_name for spec in specs}
            - drift.to_install - drift.to_remove - drift.to_update
        )
        return DiffReport(drift=drift, unchanged=unchanged)
