"""
Input Validation - Sanitization of values entering the auction.

Caller identities and amounts pass through one of these checks before
they touch auction state.
"""

import re
from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_IDENTITY_LENGTH = 128
MAX_LOT_NAME_LENGTH = 1024

# Field bounds
MIN_AMOUNT = 0
MAX_AMOUNT = 2**64 - 1
MAX_TIMESTAMP = 2**63 - 1

IDENTITY_PATTERN = r"^[A-Za-z0-9_.:@\-]+$"


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass but never a meaningful amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_positive_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a token amount that must be strictly positive."""
    return validate_integer(amount, name, 1, MAX_AMOUNT)


def validate_string(
    value: Any,
    name: str,
    max_length: int = MAX_LOT_NAME_LENGTH,
    pattern: Optional[str] = None,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for errors
        max_length: Maximum string length
        pattern: Optional regex pattern

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not value.strip():
        return False, f"{name} must not be empty"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    if pattern and not re.match(pattern, value):
        return False, f"{name} does not match required pattern"

    return True, ""


def validate_identity(value: Any, name: str = "identity") -> Tuple[bool, str]:
    """Validate an authenticated caller identity."""
    return validate_string(value, name, MAX_IDENTITY_LENGTH, IDENTITY_PATTERN)
