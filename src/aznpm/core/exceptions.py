"""Custom exceptions for the Azure NPM iptables layer.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration

A target that does not exist (missing rule, missing chain) is never raised
as an exception here; the iptables service turns it into a boolean or no-op.
"""

from typing import Optional


class NPMError(Exception):
    """Base exception for all aznpm errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(NPMError):
    """Configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class ValidationError(NPMError):
    """Input validation errors.

    Raised when:
    - Empty or malformed chain names
    - Invalid rule positions
    """
    exit_code = 3


class ExecutionError(NPMError):
    """Command execution failures.

    Raised when:
    - The filtering tool cannot be spawned
    - The filtering tool times out
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        output: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if output:
            details.append(f"Output: {output}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.output = output


class IptablesError(ExecutionError):
    """iptables operation failures.

    Raised when:
    - iptables returns a non-zero code other than "does not exist"
    - A chain survives flush and cannot be destroyed
    - A default rule cannot be installed
    """
    exit_code = 15

    def __init__(
        self,
        message: str,
        *,
        chain: Optional[str] = None,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        output: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(
            message,
            command=command,
            return_code=return_code,
            output=output,
            hint=hint,
            details=details,
        )
        self.chain = chain
