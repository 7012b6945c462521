"""Promoter - turns experimental plugins into declared ones."""
import logging
from typing import Callable, Optional

from ..config.declared import ConfigFileError, DeclaredConfig
from ..spec.parser import plugin_key
from ..state_store.store import PluginOrigin, PluginState, StateStore
from .schema import AdoptResult, AdoptSummary, UnitAction, UnitResult

logger = logging.getLogger(__name__)


class NotLoadedError(Exception):
    """The plugin is not in the state store."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"{name} is not loaded. Try it first with: plugsync try {name}"
        )


class AlreadyDeclaredError(Exception):
    """The plugin is already part of the declared list."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} is already declared, nothing to adopt")


class Promoter:
    """
    Adopt experimental plugins into the config file.

    The config file is written first; the store entry is only promoted
    once that write succeeded. The caller saves the store.
    """

    def __init__(self, config_writer: DeclaredConfig):
        self.config_writer = config_writer

    def adopt(self, name: str, store: StateStore) -> AdoptResult:
        """
        Promote one experimental plugin.

        Args:
            name: ``owner/name`` or a full specification string
            store: Loaded state; the entry is updated in place

        Returns:
            AdoptResult describing the promotion

        Raises:
            ValidationError: If ``name`` is not a valid plugin name
            NotLoadedError: If the plugin is not in the store
            AlreadyDeclaredError: If the plugin is already declared
            ConfigFileError, ConfigWriteError: If the config file cannot be
                updated. The store is left unchanged.
        """
        key = plugin_key(name)
        entry = store.get(key)
        if entry is None:
            raise NotLoadedError(key)
        if entry.state == PluginState.DECLARED:
            raise AlreadyDeclaredError(key)

        backup = self.config_writer.append_declared(entry.specification)

        store.update(key, PluginState.DECLARED, PluginOrigin.ARRAY)
        logger.info(f"Adopted {key} ({entry.specification})")

        return AdoptResult(
            name=key,
            specification=entry.specification,
            config_file=str(self.config_writer.path),
            backup_file=str(backup) if backup is not None else None,
        )

    def adopt_all(
        self,
        store: StateStore,
        confirm: Optional[Callable[[list[str]], bool]] = None,
        assume_yes: bool = False,
    ) -> AdoptSummary:
        """
        Promote every experimental plugin.

        Args:
            store: Loaded state
            confirm: Called with the candidate names; returning False cancels.
                None adopts without asking
            assume_yes: Skip confirmation

        Returns:
            AdoptSummary with per-plugin outcomes
        """
        candidates = sorted(store.list_by_state(PluginState.EXPERIMENTAL))
        summary = AdoptSummary(candidates=candidates)

        if not candidates:
            logger.info("No experimental plugins to adopt")
            return summary

        if not assume_yes and confirm is not None and not confirm(candidates):
            logger.info("Adopt cancelled")
            summary.cancelled = True
            return summary

        for name in candidates:
            try:
                summary.adopted.append(self.adopt(name, store))
            except (NotLoadedError, AlreadyDeclaredError, ConfigFileError, OSError, ValueError) as e:
                logger.error(f"Failed to adopt {name}: {e}")
                summary.units.append(
                    UnitResult(name=name, action=UnitAction.ADOPT, success=False, error=str(e))
                )
                continue
            summary.units.append(UnitResult(name=name, action=UnitAction.ADOPT, success=True))

        return summary
