"""Utility modules for logging, auditing, retries and atomic writes."""
from .audit_log import ChangeRecord, ChangeTracker, get_recent_changes, setup_audit_logging
from .fileio import atomic_write_text
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)
from .retry import with_retry, call_with_retry

__all__ = [
    "ChangeRecord",
    "ChangeTracker",
    "get_recent_changes",
    "setup_audit_logging",
    "atomic_write_text",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "with_retry",
    "call_with_retry",
]
