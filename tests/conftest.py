"""Shared fixtures: recording collaborators and an isolated data directory."""
from pathlib import Path
from typing import Optional

import pytest

from plugsync.collaborators import (
    ActivationError,
    FetchError,
    Fetcher,
    Loader,
    MaterializedPlugin,
)
from plugsync.config import Settings
from plugsync.spec import PluginSpecification
from plugsync.state_store import (
    PluginOrigin,
    PluginState,
    PluginStateEntry,
    StateFile,
)


class FakeFetcher(Fetcher):
    """Records materialize calls; fails for names in ``failures``."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}

    def materialize(self, spec: PluginSpecification) -> MaterializedPlugin:
        self.calls.append(spec.raw)
        error = self.failures.get(spec.plugin_name)
        if error is not None:
            raise error
        path = self.root / spec.cache_dir_name
        path.mkdir(parents=True, exist_ok=True)
        return MaterializedPlugin(path=path, resolved_version=spec.version or "abc1234")


class FakeLoader(Loader):
    """Records activate/deactivate calls; fails for configured names."""

    def __init__(self):
        self.activated: list[tuple[str, Optional[str]]] = []
        self.deactivated: list[str] = []
        self.fail_activate: set[str] = set()
        self.fail_deactivate: set[str] = set()

    def activate(self, name: str, path: Path, subpath: Optional[str] = None) -> None:
        if name in self.fail_activate:
            raise ActivationError(name, "init file not found")
        self.activated.append((name, subpath))

    def deactivate(self, name: str) -> None:
        if name in self.fail_deactivate:
            raise ActivationError(name, "still in use")
        self.deactivated.append(name)


def build_entry(
    name: str,
    state: PluginState = PluginState.DECLARED,
    specification: Optional[str] = None,
    origin: Optional[PluginOrigin] = None,
    installed_at: int = 1700000000,
) -> PluginStateEntry:
    """Build a state entry with sensible defaults."""
    if origin is None:
        origin = PluginOrigin.ARRAY if state == PluginState.DECLARED else PluginOrigin.TRY_COMMAND
    return PluginStateEntry(
        name=name,
        state=state,
        specification=specification or name,
        installed_at=installed_at,
        path=f"/plugins/{name.replace('/', '__')}",
        resolved_version="abc1234",
        origin=origin,
    )


@pytest.fixture
def make_entry():
    return build_entry


@pytest.fixture
def fetcher(tmp_path):
    return FakeFetcher(tmp_path / "plugins")


@pytest.fixture
def loader():
    return FakeLoader()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path / "data",
        plugin_dir=tmp_path / "plugins",
        config_file=tmp_path / ".zshrc",
        fetch_retries=3,
        fetch_retry_min_wait=0,
        fetch_retry_max_wait=0,
    )


@pytest.fixture
def state_file(settings):
    return StateFile(settings.state_file)


@pytest.fixture
def zshrc(settings):
    """Write a config file and return its path."""
    def _write(content: str) -> Path:
        settings.config_file.write_text(content, encoding="utf-8")
        return settings.config_file
    return _write


@pytest.fixture
def fetch_error():
    def _make(name: str, reason: str = "repository not found") -> FetchError:
        return FetchError(name, reason)
    return _make
