"""
Input Validation - Sanitization of values coming from callers.

Every check returns (is_valid, error_message) so callers decide
which domain error to raise.
"""

from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_IDENTIFIER_LENGTH = 128
MAX_INVITEES = 256

# Amounts are minor currency units
MIN_AMOUNT = 1
MAX_AMOUNT = 2**63 - 1


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
    # bool is an int subclass; a JSON `true` is never an amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a positive monetary amount."""
    return validate_integer(amount, name, MIN_AMOUNT, MAX_AMOUNT)


def validate_identifier(
    value: Any,
    name: str,
    max_length: int = MAX_IDENTIFIER_LENGTH,
) -> Tuple[bool, str]:
    """Validate an opaque identifier (user, auction, deal room)."""
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not value.strip():
        return False, f"{name} must not be empty"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    return True, ""


def validate_invitees(
    invitee_ids: Any,
    max_length: Optional[int] = MAX_INVITEES,
) -> Tuple[bool, str]:
    """Validate a list of invitee identifiers."""
    if not isinstance(invitee_ids, (list, tuple, set, frozenset)):
        return False, f"inviteeIds must be a list, got {type(invitee_ids).__name__}"

    if max_length is not None and len(invitee_ids) > max_length:
        return False, f"inviteeIds exceeds max length {max_length}, got {len(invitee_ids)}"

    for invitee_id in invitee_ids:
        valid, err = validate_identifier(invitee_id, "inviteeId")
        if not valid:
            return False, err

    return True, ""
