"""Unit tests for short code classification and validation.

WHAT: Shape rules shared by conversion skipping, enrichment and manual entry
WHY: One rule gates three decisions, so its edges must not drift
"""

import pytest

from affiliate_attribution.errors import ShortCodeValidationError
from affiliate_attribution.services.referral_classifier import (
    is_short_code_shaped,
    validate_short_code,
)


@pytest.mark.parametrize(
    "value",
    ["ABC", "XYZ9Z", "abc123", "A" * 25, "PROMO99"],
)
def test_short_code_shaped_values(value):
    assert is_short_code_shaped(value) is True


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "AB",
        "A" * 26,
        "abc-123",
        "PROMO 99",
        "https://example.com/x",
        "ia-acme://PROMO",
    ],
)
def test_not_short_code_shaped_values(value):
    assert is_short_code_shaped(value) is False


def test_validate_short_code_uppercases():
    assert validate_short_code("abc123") == "ABC123"


def test_validate_accepts_25_characters():
    code = "Z9" * 12 + "Q"
    assert len(code) == 25
    assert validate_short_code(code) == code


@pytest.mark.parametrize(
    "value,reason",
    [
        ("", "short_code_empty"),
        (None, "short_code_empty"),
        ("AB", "short_code_length"),
        ("A" * 26, "short_code_length"),
        ("abc-123", "short_code_charset"),
        ("abc_123", "short_code_charset"),
    ],
)
def test_validate_rejects_with_reason(value, reason):
    with pytest.raises(ShortCodeValidationError) as exc_info:
        validate_short_code(value)
    assert exc_info.value.code == reason


@pytest.mark.parametrize("value", ["AB²CD", "½ABC", "PROMO⅕", "ABC①"])
def test_numeric_symbols_are_not_short_code_characters(value):
    """Superscripts, fractions and circled digits are numeric but not decimal."""
    assert is_short_code_shaped(value) is False
    with pytest.raises(ShortCodeValidationError) as exc_info:
        validate_short_code(value)
    assert exc_info.value.code == "short_code_charset"


@pytest.mark.parametrize("value", ["ÉCOLE1", "código7", "PROMO٣"])
def test_unicode_letters_and_decimal_digits_are_accepted(value):
    assert is_short_code_shaped(value) is True
