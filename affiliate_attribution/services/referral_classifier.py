"""Referral classification.

WHAT: Decides whether a referral string is already a short code or needs
      backend conversion, and validates manually entered short codes.
WHY: The same shape rule gates three decisions: skipping the conversion
     call, triggering offer-code enrichment, and accepting manual entry.
"""

import logging
from typing import Optional

from ..errors import ShortCodeValidationError

logger = logging.getLogger(__name__)

SHORT_CODE_MIN_LENGTH = 3
SHORT_CODE_MAX_LENGTH = 25


def is_letter_or_digit(char: str) -> bool:
    """Unicode letter or decimal digit. Excludes superscripts and fractions."""
    return char.isalpha() or char.isdecimal()


def _is_alphanumeric(value: str) -> bool:
    return all(is_letter_or_digit(char) for char in value)


def is_short_code_shaped(value: Optional[str]) -> bool:
    """True iff value is 3-25 characters, all letters or digits."""
    if not value:
        return False
    if not SHORT_CODE_MIN_LENGTH <= len(value) <= SHORT_CODE_MAX_LENGTH:
        return False
    return _is_alphanumeric(value)


def validate_short_code(value: Optional[str]) -> str:
    """Uppercase a manually entered short code and check its shape.

    Returns:
        The normalized (uppercased) code

    Raises:
        ShortCodeValidationError: empty, wrong length, or non-alphanumeric
    """
    if not value:
        raise ShortCodeValidationError(
            code="short_code_empty",
            message="Short code cannot be empty",
            value=value,
        )

    normalized = value.upper()

    if not SHORT_CODE_MIN_LENGTH <= len(normalized) <= SHORT_CODE_MAX_LENGTH:
        raise ShortCodeValidationError(
            code="short_code_length",
            message=f"Short code must be between {SHORT_CODE_MIN_LENGTH} and {SHORT_CODE_MAX_LENGTH} characters",
            value=value,
        )

    if not _is_alphanumeric(normalized):
        raise ShortCodeValidationError(
            code="short_code_charset",
            message="Short code must contain only letters and numbers",
            value=value,
        )

    return normalized
