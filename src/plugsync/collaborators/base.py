"""Collaborator interfaces used by the reconciliation core.

The core never downloads or runs plugin code itself. It asks a Fetcher to
materialize a plugin on disk and a Loader to activate or deactivate it in
the host session. Both are fallible per plugin.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..spec.schema import PluginSpecification

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A plugin could not be materialized."""

    def __init__(self, plugin: str, reason: str):
        self.plugin = plugin
        self.reason = reason
        super().__init__(f"Failed to fetch {plugin}: {reason}")


class ActivationError(Exception):
    """A plugin could not be activated or deactivated."""

    def __init__(self, plugin: str, reason: str):
        self.plugin = plugin
        self.reason = reason
        super().__init__(f"Failed to activate {plugin}: {reason}")


@dataclass
class MaterializedPlugin:
    """Where a plugin's content lives and which version it resolved to."""
    path: Path
    resolved_version: str = "unknown"


class Fetcher(ABC):
    """Puts plugin content on disk."""

    @abstractmethod
    def materialize(self, spec: PluginSpecification) -> MaterializedPlugin:
        """
        Make the plugin's content available locally.

        Raises:
            FetchError: If the content cannot be obtained
            ConnectionError, TimeoutError: Transient failures (retried)
        """
        pass


class Loader(ABC):
    """Activates plugin content inside the host session."""

    @abstractmethod
    def activate(self, name: str, path: Path, subpath: Optional[str] = None) -> None:
        """
        Activate a materialized plugin.

        Raises:
            ActivationError: If activation fails
        """
        pass

    @abstractmethod
    def deactivate(self, name: str) -> None:
        """
        Deactivate a plugin (best effort).

        Raises:
            ActivationError: If deactivation fails
        """
        pass
