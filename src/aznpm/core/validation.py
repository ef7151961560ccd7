"""Input validation utilities.

Provides validation for:
- iptables chain names
- Rule insert positions
- Lock wait budgets

All validators return the validated value or raise ValidationError.
"""

import re

from aznpm.core.exceptions import ValidationError


# iptables keeps chain names in a 29 byte buffer including the terminator
MAX_CHAIN_NAME_LENGTH = 28

# Chain names are passed verbatim as argv tokens
CHAIN_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


def validate_chain_name(value: str, chain_type: str = "chain") -> str:
    """Validate an iptables chain name.

    Rules:
    - Cannot be empty
    - Letters, digits, '-', '_' and '.' only
    - Max 28 characters

    Args:
        value: Chain name to validate
        chain_type: Label for error messages (e.g., "peer chain")

    Returns:
        The validated chain name

    Raises:
        ValidationError: If validation fails
    """
    if not value:
        raise ValidationError(
            f"{chain_type.capitalize()} name cannot be empty",
            hint="Provide a chain name such as FORWARD or KUBE-SERVICES",
        )

    if len(value) > MAX_CHAIN_NAME_LENGTH:
        raise ValidationError(
            f"{chain_type.capitalize()} name exceeds maximum length "
            f"({len(value)} > {MAX_CHAIN_NAME_LENGTH})",
            hint=f"Use a name with {MAX_CHAIN_NAME_LENGTH} or fewer characters",
        )

    if not CHAIN_NAME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid {chain_type} name: '{value}'",
            hint="Use letters, digits, '-', '_' or '.' only",
        )

    return value


def validate_position(value: int) -> int:
    """Validate a 1-based rule position for an insert.

    Raises:
        ValidationError: If position is zero or negative
    """
    if value < 1:
        raise ValidationError(
            f"Invalid rule position: {value}",
            hint="Rule positions start at 1",
        )
    return value


def validate_lock_wait(value: int) -> int:
    """Validate the xtables lock wait budget in seconds."""
    if value < 1:
        raise ValidationError(
            f"Invalid lock wait: {value}",
            hint="Lock wait must be at least 1 second",
        )
    return value
