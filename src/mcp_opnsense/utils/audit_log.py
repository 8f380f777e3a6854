"""Audit logging for configuration changes.

Every create/update/delete the engine issues (or previews in dry-run)
is written as one JSON line to a dedicated audit log, so operators can
see what a run touched after the fact.
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

audit_logger = logging.getLogger("opncraft.audit")

DEFAULT_AUDIT_DIR = os.path.join("~", ".opncraft")


def setup_audit_logging(log_dir: Optional[str] = None) -> None:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.opncraft/
    """
    log_dir = os.path.expanduser(log_dir or DEFAULT_AUDIT_DIR)
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        os.path.join(log_dir, "audit.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    # One JSON document per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False


@dataclass
class ChangeRecord:
    """Record of a single resource mutation."""
    timestamp: str
    kind: str
    device: str
    name: str
    operation: str  # create, update, delete
    user: str
    dry_run: bool
    success: bool
    parameters: dict
    identifier: Optional[str] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Write ChangeRecords for one reconciliation run."""

    def __init__(self, user: str = "system"):
        self.user = user
        self.records: list[ChangeRecord] = []

    def log_change(
        self,
        kind: str,
        device: str,
        name: str,
        operation: str,
        parameters: dict,
        success: bool,
        identifier: Optional[str] = None,
        error: Optional[str] = None,
        dry_run: bool = False,
    ) -> ChangeRecord:
        """Log a resource mutation.

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            kind=kind,
            device=device,
            name=name,
            operation=operation,
            user=self.user,
            dry_run=dry_run,
            success=success,
            parameters=parameters,
            identifier=identifier,
            error=error,
        )
        self.records.append(record)
        audit_logger.info(record.to_json())
        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    device: Optional[str] = None,
    kind: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.opncraft/audit.log
        device: Filter by device name
        kind: Filter by resource kind
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

    if not os.path.exists(log_file):
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

            if device and record.device != device:
                continue
            if kind and record.kind != kind:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
