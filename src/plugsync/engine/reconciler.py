"""Reconciler - converges the state store to the declared plugin list.

Handles:
- Deactivating and dropping entries no longer declared (and all experimental ones)
- Materializing and activating newly declared plugins
- Re-resolving plugins whose declared specification changed
- Partial failure: one broken plugin never blocks the rest
"""
import logging
from typing import Iterable

from ..collaborators.base import ActivationError, FetchError, Fetcher, Loader, MaterializedPlugin
from ..spec.schema import PluginSpecification
from ..state_store.store import (
    PluginOrigin,
    PluginState,
    PluginStateEntry,
    StateStore,
    now_epoch,
)
from ..utils.logging_config import timed_section
from ..utils.retry import call_with_retry
from .diff import compute_drift
from .schema import SyncResult, UnitAction, UnitResult

logger = logging.getLogger(__name__)

# Per-unit failures that are reported instead of aborting the batch
UNIT_ERRORS = (FetchError, ActivationError, ConnectionError, TimeoutError, OSError)


class Reconciler:
    """
    Apply drift to an in-memory store.

    The caller owns persistence: it loads the store, calls ``sync`` and
    saves once if ``SyncResult.changed`` is set.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        loader: Loader,
        fetch_attempts: int = 3,
        retry_min_wait: float = 1.0,
        retry_max_wait: float = 10.0,
    ):
        self.fetcher = fetcher
        self.loader = loader
        self.fetch_attempts = fetch_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait

    def sync(
        self,
        declared: Iterable[PluginSpecification],
        store: StateStore,
        dry_run: bool = False,
    ) -> SyncResult:
        """
        Reconcile ``store`` to ``declared``.

        Removals run before installs. A plugin that is experimental and
        also declared is fetched first; its experimental entry is only
        dropped once the declared version has been materialized, so a
        failed fetch leaves it loaded.

        Args:
            declared: Validated, de-duplicated specifications in declaration order
            store: Loaded state; mutated in place unless ``dry_run``
            dry_run: Report the plan without touching collaborators or the store

        Returns:
            SyncResult with per-plugin outcomes
        """
        specs = list(declared)
        drift = compute_drift(specs, store)
        result = SyncResult(drift=drift, dry_run=dry_run)

        if drift.in_sync:
            logger.info("Plugins already in sync")
            return result

        logger.info(
            f"{'DRY RUN: ' if dry_run else ''}Drift: {len(drift.to_install)} to install, "
            f"{len(drift.to_remove)} to remove, {len(drift.to_update)} to update"
        )
        if dry_run:
            return result

        for name in sorted(drift.to_remove - drift.to_install):
            result.units.append(self._remove(name, store))

        by_name = {spec.plugin_name: spec for spec in specs}
        for spec in specs:
            if spec.plugin_name not in drift.to_install:
                continue
            if spec.plugin_name in drift.to_remove:
                result.units.extend(self._replace(spec, store))
            else:
                result.units.append(self._install(spec, store))

        for name in sorted(drift.to_update):
            result.units.append(self._update(by_name[name], store))

        if result.failed:
            logger.warning(
                f"Sync finished with {len(result.failed)} failure(s): "
                f"{', '.join(sorted(result.failed))}"
            )
        return result

    def materialize(self, spec: PluginSpecification) -> MaterializedPlugin:
        """Fetch a plugin, retrying transient connection failures."""
        return call_with_retry(
            self.fetcher.materialize,
            spec,
            max_attempts=self.fetch_attempts,
            min_wait=self.retry_min_wait,
            max_wait=self.retry_max_wait,
        )

    def _remove(self, name: str, store: StateStore) -> UnitResult:
        # Deactivation is best effort; the entry goes either way
        warning = None
        try:
            self.loader.deactivate(name)
        except UNIT_ERRORS as e:
            warning = str(e)
            logger.warning(f"Could not deactivate {name}, removing it from state anyway: {e}")

        store.remove(name)
        logger.info(f"Removed {name}")
        return UnitResult(name=name, action=UnitAction.REMOVE, success=True, error=warning)

    def _install(self, spec: PluginSpecification, store: StateStore) -> UnitResult:
        name = spec.plugin_name
        try:
            with timed_section("install", plugin=name):
                plugin = self.materialize(spec)
        except UNIT_ERRORS as e:
            logger.error(f"Skipping {name}: {e}")
            return UnitResult(name=name, action=UnitAction.INSTALL, success=False, error=str(e))
        return self._activate(spec, plugin, store)

    def _replace(self, spec: PluginSpecification, store: StateStore) -> list[UnitResult]:
        """Swap an experimental entry for its declared version."""
        name = spec.plugin_name
        try:
            with timed_section("install", plugin=name, replaces="experimental"):
                plugin = self.materialize(spec)
        except UNIT_ERRORS as e:
            logger.error(f"Keeping experimental {name}, fetch of declared version failed: {e}")
            return [UnitResult(name=name, action=UnitAction.INSTALL, success=False, error=str(e))]
        return [self._remove(name, store), self._activate(spec, plugin, store)]

    def _activate(
        self,
        spec: PluginSpecification,
        plugin: MaterializedPlugin,
        store: StateStore,
    ) -> UnitResult:
        name = spec.plugin_name
        try:
            self.loader.activate(name, plugin.path, spec.subpath)
        except UNIT_ERRORS as e:
            logger.error(f"Skipping {name}: {e}")
            return UnitResult(name=name, action=UnitAction.INSTALL, success=False, error=str(e))

        store.add(PluginStateEntry(
            name=name,
            state=PluginState.DECLARED,
            specification=spec.raw,
            installed_at=now_epoch(),
            path=str(plugin.path),
            resolved_version=plugin.resolved_version,
            origin=PluginOrigin.ARRAY,
        ))
        logger.info(f"Installed {name} ({plugin.resolved_version})")
        return UnitResult(name=name, action=UnitAction.INSTALL, success=True)

    def _update(self, spec: PluginSpecification, store: StateStore) -> UnitResult:
        name = spec.plugin_name
        previous = store.get(name).specification
        try:
            with timed_section("update", plugin=name):
                plugin = self.materialize(spec)
                self.loader.activate(name, plugin.path, spec.subpath)
        except UNIT_ERRORS as e:
            logger.error(f"Keeping {previous} for {name}, update failed: {e}")
            return UnitResult(name=name, action=UnitAction.UPDATE, success=False, error=str(e))

        store.reresolve(
            name,
            specification=spec.raw,
            path=str(plugin.path),
            resolved_version=plugin.resolved_version,
        )
        logger.info(f"Updated {name}: {previous} -> {spec.raw}")
        return UnitResult(name=name, action=UnitAction.UPDATE, success=True)
