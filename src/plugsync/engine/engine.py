"""Plugin Engine - orchestrates every command against the state store.

Provides a single entry point for:
1. Reading and validating the declared list
2. Loading the state store once per command
3. Reconciling, trying, adopting or previewing
4. Saving once, only when something changed
5. Recording the change in the audit log
"""
import logging
from typing import Callable, Optional

from ..collaborators.base import Fetcher, Loader
from ..config.declared import DeclaredConfig
from ..config.settings import Settings
from ..spec.parser import SpecParser
from ..spec.schema import PluginSpecification
from ..state_store.store import (
    PluginOrigin,
    PluginState,
    PluginStateEntry,
    StateFile,
    StateWriteError,
    now_epoch,
)
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed, timed_section
from .previewer import Previewer
from .promoter import Promoter
from .reconciler import Reconciler
from .schema import (
    AdoptResult,
    AdoptSummary,
    DiffReport,
    StatusReport,
    SyncResult,
    TryResult,
    TryStatus,
)

logger = logging.getLogger(__name__)


class PluginEngine:
    """
    Main engine for managing plugins against a declared list.

    Usage:
        engine = PluginEngine(Settings.from_env(), fetcher, loader)
        result = engine.sync(dry_run=True)
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Fetcher,
        loader: Loader,
        config: Optional[DeclaredConfig] = None,
        state_file: Optional[StateFile] = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Paths and retry tunables
            fetcher: Materializes plugin content
            loader: Activates plugins in the host session
            config: Declared list reader/writer (default: settings.config_file)
            state_file: Persisted store (default: settings.state_file)
        """
        self.settings = settings
        self.loader = loader
        self.config = config or DeclaredConfig(settings.config_file)
        self.state_file = state_file or StateFile(settings.state_file)
        self.parser = SpecParser()
        self.reconciler = Reconciler(
            fetcher,
            loader,
            fetch_attempts=settings.fetch_retries,
            retry_min_wait=settings.fetch_retry_min_wait,
            retry_max_wait=settings.fetch_retry_max_wait,
        )
        self.promoter = Promoter(self.config)
        self.previewer = Previewer()
        self.tracker = ChangeTracker()

    @timed("sync")
    def sync(
        self,
        declared_raw: Optional[list[str]] = None,
        dry_run: bool = False,
    ) -> SyncResult:
        """
        Reconcile the store to the declared list.

        Invalid declared strings are skipped and reported in
        ``SyncResult.invalid``; they never block the other plugins.

        Args:
            declared_raw: Raw specification strings (default: read from the config file)
            dry_run: Preview without touching plugins or state

        Returns:
            SyncResult with per-plugin outcomes

        Raises:
            ConfigFileError: If the declared list cannot be read
            StateWriteError: If the updated store cannot be saved
        """
        raws = self._read_declared(declared_raw)
        specs, errors = self.parser.parse_many(raws)
        for error in errors:
            logger.error(f"Skipping declared entry: {error}")

        with timed_section("load_state"):
            store = self.state_file.load()

        result = self.reconciler.sync(specs, store, dry_run=dry_run)
        result.invalid = [str(e) for e in errors]

        if result.already_in_sync and not errors:
            return result

        try:
            if result.changed:
                self.state_file.save(store)
        except StateWriteError as e:
            self._audit_sync(result, success=False, detail=str(e))
            raise

        self._audit_sync(result, success=result.success and not errors)
        return result

    @timed("try")
    def try_plugin(self, raw: str) -> TryResult:
        """
        Load a plugin for this session without declaring it.

        Args:
            raw: Specification string

        Returns:
            TryResult; a plugin already in the store is left alone

        Raises:
            ValidationError: If ``raw`` is invalid
            FetchError, ActivationError: If the plugin cannot be loaded
            StateWriteError: If the store cannot be saved
        """
        spec = self.parser.parse(raw)
        name = spec.plugin_name
        store = self.state_file.load()

        existing = store.get(name)
        if existing is not None:
            if existing.state == PluginState.DECLARED:
                logger.info(f"{name} is already declared, nothing to try")
                return TryResult(name=name, status=TryStatus.ALREADY_DECLARED, entry=existing)
            logger.info(f"{name} is already loaded experimentally")
            return TryResult(name=name, status=TryStatus.ALREADY_EXPERIMENTAL, entry=existing)

        entry = self._load_experimental(spec)
        store.add(entry)
        self.state_file.save(store)

        self.tracker.log_change(
            operation="try",
            success=True,
            installed=[name],
            detail=f"{spec.raw} -> {entry.path} ({entry.resolved_version})",
        )
        return TryResult(name=name, status=TryStatus.LOADED, entry=entry)

    @timed("adopt")
    def adopt(self, name: str) -> AdoptResult:
        """
        Promote an experimental plugin to the declared list.

        Raises:
            ValidationError: If ``name`` is not a valid plugin name
            NotLoadedError, AlreadyDeclaredError: Precondition failures;
                nothing is written
            ConfigFileError, ConfigWriteError: If the config file cannot
                be updated; the store is left unchanged
            StateWriteError: If the store cannot be saved
        """
        store = self.state_file.load()
        result = self.promoter.adopt(name, store)
        self.state_file.save(store)

        self.tracker.log_change(
            operation="adopt",
            success=True,
            adopted=[result.name],
            detail=f"backup: {result.backup_file}" if result.backup_file else "",
        )
        return result

    @timed("adopt_all")
    def adopt_all(
        self,
        confirm: Optional[Callable[[list[str]], bool]] = None,
        assume_yes: bool = False,
    ) -> AdoptSummary:
        """Promote every experimental plugin, continuing past failures."""
        store = self.state_file.load()
        summary = self.promoter.adopt_all(store, confirm=confirm, assume_yes=assume_yes)

        if summary.cancelled or not summary.candidates:
            return summary

        if summary.changed:
            self.state_file.save(store)

        self.tracker.log_change(
            operation="adopt_all",
            success=not summary.failed,
            adopted=sorted(summary.adopted_names),
            failed=summary.failed,
        )
        return summary

    def status(self, declared_raw: Optional[list[str]] = None) -> StatusReport:
        """
        Report declared and experimental plugins and whether they match.

        Raises:
            ValidationError: For the first invalid declared string
            ConfigFileError: If the declared list cannot be read
        """
        specs = self._parse_strict(self._read_declared(declared_raw))
        return self.previewer.status(specs, self.state_file.load())

    def diff(self, declared_raw: Optional[list[str]] = None) -> DiffReport:
        """
        Report what ``sync`` would change.

        Raises:
            ValidationError: For the first invalid declared string
            ConfigFileError: If the declared list cannot be read
        """
        specs = self._parse_strict(self._read_declared(declared_raw))
        return self.previewer.diff(specs, self.state_file.load())

    def _read_declared(self, declared_raw: Optional[list[str]]) -> list[str]:
        if declared_raw is not None:
            return list(declared_raw)
        return self.config.read_declared()

    def _parse_strict(self, raws: list[str]) -> list[PluginSpecification]:
        specs, errors = self.parser.parse_many(raws)
        if errors:
            raise errors[0]
        return specs

    def _load_experimental(self, spec: PluginSpecification) -> PluginStateEntry:
        name = spec.plugin_name
        with timed_section("try", plugin=name):
            plugin = self.reconciler.materialize(spec)
            self.loader.activate(name, plugin.path, spec.subpath)

        logger.info(f"Loaded {name} experimentally ({plugin.resolved_version})")
        return PluginStateEntry(
            name=name,
            state=PluginState.EXPERIMENTAL,
            specification=spec.raw,
            installed_at=now_epoch(),
            path=str(plugin.path),
            resolved_version=plugin.resolved_version,
            origin=PluginOrigin.TRY_COMMAND,
        )

    def _audit_sync(self, result: SyncResult, success: bool, detail: str = "") -> None:
        if result.invalid and not detail:
            detail = "; ".join(result.invalid)
        self.tracker.log_change(
            operation="sync",
            success=success,
            dry_run=result.dry_run,
            installed=sorted(result.installed),
            removed=sorted(result.removed),
            updated=sorted(result.updated),
            failed=result.failed,
            detail=detail,
        )
