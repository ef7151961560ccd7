"""Audit logging for chain lifecycle operations.

Provides:
- JSON-lines audit log of init/uninit/reconcile runs
- Session and correlation IDs
- File locking and size-based rotation
"""

import fcntl
import json
import os
import pwd
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Optional

from aznpm.core.config import DEFAULT_AUDIT_LOG_PATH
from aznpm.core.output import console


DEFAULT_MAX_SIZE_MB = 50
DEFAULT_BACKUP_COUNT = 5


class AuditEventType(Enum):
    """Types of auditable events."""
    CHAINS_INIT = "chains.init"
    CHAINS_UNINIT = "chains.uninit"
    FORWARD_LINK_RECONCILE = "forward_link.reconcile"


class AuditResult(Enum):
    """Result of an audited operation."""
    SUCCESS = "success"
    FAILURE = "failure"
    DRY_RUN = "dry_run"
    PARTIAL = "partial"


def _current_username() -> str:
    try:
        return pwd.getpwuid(os.getuid()).pw_name
    except KeyError:
        return str(os.getuid())


@dataclass
class AuditEvent:
    """Represents a single audit event."""
    event_type: AuditEventType
    result: AuditResult
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    actor_uid: int = field(default_factory=os.getuid)
    actor_username: str = field(default_factory=_current_username)

    target_chain: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)

    message: Optional[str] = None
    error: Optional[str] = None

    session_id: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "result": self.result.value,
            "timestamp": self.timestamp.isoformat(),
            "actor": {
                "uid": self.actor_uid,
                "username": self.actor_username,
            },
            "target_chain": self.target_chain,
            "parameters": self.parameters,
            "message": self.message,
            "error": self.error,
            "session_id": self.session_id,
            "correlation_id": self.correlation_id,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class AuditLogger:
    """Append-only JSON audit log.

    A failure to write the audit log never fails the chain operation
    being audited; it is reported at debug level instead.
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        max_size_mb: int = DEFAULT_MAX_SIZE_MB,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
    ) -> None:
        """Initialize audit logger.

        Args:
            log_path: Path to audit log file
            max_size_mb: Maximum log file size before rotation
            backup_count: Number of backup files to keep
            enabled: Whether logging is enabled
        """
        self.log_path = log_path or DEFAULT_AUDIT_LOG_PATH
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.enabled = enabled

        self.session_id = str(uuid.uuid4())
        self._correlation_stack: list[str] = []

    def _ensure_log_directory(self) -> bool:
        try:
            self.log_path.parent.mkdir(mode=0o750, parents=True, exist_ok=True)
            if not self.log_path.exists():
                self.log_path.touch(mode=0o640)
            return True
        except OSError as e:
            console.debug(f"Cannot create audit log directory: {e}")
            return False

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        if not self.enabled:
            return

        event.session_id = self.session_id
        if self._correlation_stack:
            event.correlation_id = self._correlation_stack[-1]

        if not self._ensure_log_directory():
            return

        try:
            with self._atomic_append() as f:
                f.write(event.to_json() + "\n")
        except OSError as e:
            console.debug(f"Failed to write audit log: {e}")
            return

        self._rotate_if_needed()

    @contextmanager
    def _atomic_append(self) -> Generator:
        """Append under an exclusive flock so concurrent agents don't interleave."""
        fd = os.open(self.log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o640)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError:
            os.close(fd)
            raise
        with os.fdopen(fd, "a") as f:
            yield f
            f.flush()
            os.fsync(fd)

    def _rotate_if_needed(self) -> None:
        try:
            if self.log_path.stat().st_size > self.max_size_bytes:
                self._rotate_logs()
        except OSError as e:
            console.debug(f"Audit log rotation failed: {e}")

    def _rotate_logs(self) -> None:
        oldest = self.log_path.with_suffix(f".{self.backup_count}")
        if oldest.exists():
            oldest.unlink()

        for i in range(self.backup_count - 1, 0, -1):
            src = self.log_path.with_suffix(f".{i}")
            if src.exists():
                src.rename(self.log_path.with_suffix(f".{i + 1}"))

        self.log_path.rename(self.log_path.with_suffix(".1"))
        self.log_path.touch(mode=0o640)

    @contextmanager
    def correlation(self, operation: str) -> Generator[str, None, None]:
        """Tag every event logged inside the block with one correlation id.

        Usage:
            with audit.correlation("init") as corr_id:
                audit.log(event1)
                audit.log(event2)
        """
        correlation_id = f"{operation}_{uuid.uuid4().hex[:8]}"
        self._correlation_stack.append(correlation_id)
        try:
            yield correlation_id
        finally:
            self._correlation_stack.pop()

    def log_success(
        self,
        event_type: AuditEventType,
        target_chain: str,
        message: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a successful operation."""
        self.log(AuditEvent(
            event_type=event_type,
            result=AuditResult.SUCCESS,
            target_chain=target_chain,
            message=message,
            parameters=parameters or {},
        ))

    def log_failure(
        self,
        event_type: AuditEventType,
        target_chain: str,
        error: str,
    ) -> None:
        """Log a failed operation."""
        self.log(AuditEvent(
            event_type=event_type,
            result=AuditResult.FAILURE,
            target_chain=target_chain,
            error=error,
        ))

    def log_partial(
        self,
        event_type: AuditEventType,
        target_chain: str,
        message: str,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an operation that completed with reported failures."""
        self.log(AuditEvent(
            event_type=event_type,
            result=AuditResult.PARTIAL,
            target_chain=target_chain,
            message=message,
            parameters=parameters or {},
        ))

    def log_dry_run(
        self,
        event_type: AuditEventType,
        target_chain: str,
        message: Optional[str] = None,
    ) -> None:
        """Log a dry-run operation."""
        self.log(AuditEvent(
            event_type=event_type,
            result=AuditResult.DRY_RUN,
            target_chain=target_chain,
            message=message,
        ))


def configure_audit_logger(
    log_path: Optional[Path] = None,
    enabled: bool = True,
) -> AuditLogger:
    """Build the audit logger for one CLI run."""
    return AuditLogger(log_path=log_path, enabled=enabled)
