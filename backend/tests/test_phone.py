import pytest

from afritok.core.phone import is_valid_phone, mask_phone, normalize_phone


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+1 555 123 4567", "+15551234567"),
        ("(+225) 07-08-09-10-11", "+2250708091011"),
        ("00221771234567", "+221771234567"),
        ("  +15551234567 ", "+15551234567"),
    ],
)
def test_normalize_phone_strips_separators(raw, expected):
    assert normalize_phone(raw) == expected


def test_is_valid_phone_requires_e164():
    assert is_valid_phone("+15551234567") is True
    assert is_valid_phone("15551234567") is False
    assert is_valid_phone("+0551234567") is False
    assert is_valid_phone("+1234") is False
    assert is_valid_phone("") is False


def test_mask_phone_keeps_last_digits():
    assert mask_phone("+15551234567") == "********4567"
    assert mask_phone("123") == "123"
    assert mask_phone("") == ""
