"""Core framework components for aznpm."""

from aznpm.core.exceptions import (
    NPMError,
    ConfigurationError,
    ValidationError,
    ExecutionError,
    IptablesError,
)

from aznpm.core.context import ExecutionContext, create_context
from aznpm.core.output import console, Console, Verbosity
from aznpm.core.config import AppConfig, NpmConfig, IptablesConfig
from aznpm.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult, configure_audit_logger
from aznpm.core.executor import CommandExecutor, CommandResult, ExitStatus

__all__ = [
    # Exceptions
    "NPMError",
    "ConfigurationError",
    "ValidationError",
    "ExecutionError",
    "IptablesError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "NpmConfig",
    "IptablesConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "configure_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
    "ExitStatus",
]
