"""Local collaborators used by the command line.

LocalFetcher only resolves plugins that are already on disk under the
plugin directory (``<plugin_dir>/<owner>__<name>``); it never downloads.
DeferredLoader checks that the activation target exists. The host shell
picks the state up on its next startup.
"""
import logging
import subprocess
from pathlib import Path
from typing import Optional

from ..spec.schema import PluginSpecification
from .base import (
    ActivationError,
    FetchError,
    Fetcher,
    Loader,
    MaterializedPlugin,
)

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 10


class GitRevisionReader:
    """Reads the checked-out revision of a plugin directory."""

    def _run_git(self, repo_path: Path, *args: str) -> subprocess.CompletedProcess:
        """Run a git command in the plugin directory."""
        cmd = ["git", "-C", str(repo_path)] + list(args)
        logger.debug(f"Running: {' '.join(cmd)}")

        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,  # We'll handle errors ourselves
            timeout=GIT_TIMEOUT_SECONDS,
        )

    def short_head(self, repo_path: Path) -> Optional[str]:
        """Short commit hash of HEAD, or None if unavailable."""
        if not (repo_path / ".git").exists():
            return None

        try:
            result = self._run_git(repo_path, "rev-parse", "--short", "HEAD")
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"git unavailable for {repo_path}: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"git rev-parse failed in {repo_path}: {result.stderr.strip()}")
            return None

        return result.stdout.strip() or None


class LocalFetcher(Fetcher):
    """Resolve plugins already present in the plugin directory."""

    def __init__(self, plugin_dir: Path, git: Optional[GitRevisionReader] = None):
        self.plugin_dir = Path(plugin_dir)
        self.git = git or GitRevisionReader()

    def materialize(self, spec: PluginSpecification) -> MaterializedPlugin:
        path = (self.plugin_dir / spec.cache_dir_name).resolve()

        if not path.is_dir():
            raise FetchError(
                spec.plugin_name,
                f"not present in {self.plugin_dir} (download it first)",
            )

        # A pinned version is reported as requested; otherwise use the checkout
        version = spec.version or self.git.short_head(path) or "unknown"

        logger.debug(f"Resolved {spec.plugin_name} -> {path} ({version})")
        return MaterializedPlugin(path=path, resolved_version=version)


class DeferredLoader(Loader):
    """Validate activation targets; the shell sources them on next start."""

    def activate(self, name: str, path: Path, subpath: Optional[str] = None) -> None:
        target = Path(path) / subpath if subpath else Path(path)
        if not target.is_dir():
            raise ActivationError(name, f"{target} is not a directory")
        logger.info(f"{name} will be activated from {target} on next shell start")

    def deactivate(self, name: str) -> None:
        logger.info(f"{name} will not be loaded on next shell start")
