"""Audit logging for plugin state changes.

Every mutating command (sync, adopt, try) appends one JSON line describing
what it did, so the history of a state file can be reconstructed without
reading debug logs.
"""
import json
import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Dedicated audit logger
audit_logger = logging.getLogger("plugsync.audit")

AUDIT_FILE_NAME = "audit.log"


def setup_audit_logging(log_dir: Path) -> Path:
    """Configure audit logging to ``<log_dir>/audit.log``.

    Returns:
        Path of the audit file
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    audit_file = log_dir / AUDIT_FILE_NAME

    audit_logger.setLevel(logging.INFO)

    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )

    # One JSON document per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    # Keep audit lines out of the console and debug log
    audit_logger.propagate = False
    return audit_file


@dataclass
class ChangeRecord:
    """Record of one command's effect on plugin state."""
    timestamp: str
    operation: str  # sync, adopt, adopt_all, try
    success: bool
    dry_run: bool = False
    installed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    detail: str = ""

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None, sort_keys=True)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Log state changes made by engine commands."""

    def log_change(
        self,
        operation: str,
        success: bool,
        dry_run: bool = False,
        installed: Optional[list[str]] = None,
        removed: Optional[list[str]] = None,
        updated: Optional[list[str]] = None,
        adopted: Optional[list[str]] = None,
        failed: Optional[dict[str, str]] = None,
        detail: str = "",
    ) -> ChangeRecord:
        """Log a state change.

        Args:
            operation: The command performed (e.g., "sync")
            success: Whether every unit in the command succeeded
            dry_run: Whether this was a preview (no state written)
            installed: Names added to the store
            removed: Names dropped from the store
            updated: Names re-resolved in place
            adopted: Names promoted to declared
            failed: Name -> error message for per-unit failures
            detail: Free-form note (truncated to 1000 chars)

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            operation=operation,
            success=success,
            dry_run=dry_run,
            installed=sorted(installed or []),
            removed=sorted(removed or []),
            updated=sorted(updated or []),
            adopted=sorted(adopted or []),
            failed=dict(failed or {}),
            detail=detail[:1000],
        )

        audit_logger.info(record.to_json())

        return record


def get_recent_changes(
    log_file: Path,
    operation: Optional[str] = None,
    plugin: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log.

    Args:
        log_file: Path to audit log
        operation: Filter by command name
        plugin: Filter to records that touched this plugin name
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    log_file = Path(log_file)
    if not log_file.exists():
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if operation and record.operation != operation:
                continue
            if plugin and plugin not in (
                record.installed + record.removed + record.updated
                + record.adopted + list(record.failed)
            ):
                continue

            records.append(record)

    return list(reversed(records[-limit:]))
