"""Fetcher and Loader collaborators."""
from .base import (
    Fetcher,
    Loader,
    MaterializedPlugin,
    FetchError,
    ActivationError,
)
from .local import LocalFetcher, DeferredLoader, GitRevisionReader

__all__ = [
    "Fetcher",
    "Loader",
    "MaterializedPlugin",
    "FetchError",
    "ActivationError",
    "LocalFetcher",
    "DeferredLoader",
    "GitRevisionReader",
]
