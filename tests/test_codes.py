"""Tests for code generation, hashing, masking, phone parsing and templates."""

import pytest

from phone_verification.models.verification import VerificationPurpose
from phone_verification.services.codes import generate_secure_code, hash_code, verify_code
from phone_verification.services.masking import mask_phone_number
from phone_verification.services.message_templates import verification_message
from phone_verification.services.phone import normalize_phone_number, to_national_digits


def test_generated_codes_are_numeric_with_requested_length():
    for length in (4, 6, 8):
        code = generate_secure_code(length)
        assert len(code) == length
        assert code.isdigit()


def test_generated_codes_vary():
    assert len({generate_secure_code() for _ in range(50)}) > 1


def test_hash_is_salted_and_verifiable():
    first = hash_code("123456")
    second = hash_code("123456")

    assert "123456" not in first
    assert first != second
    assert verify_code("123456", first)
    assert verify_code("123456", second)
    assert not verify_code("654321", first)


def test_verify_code_rejects_empty_values():
    assert not verify_code("", hash_code("123456"))
    assert not verify_code("123456", "")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+905551234567", "**********567"),
        ("5551234567", "*******567"),
        ("1234", "*234"),
        ("123", "***"),
        ("", ""),
        (None, ""),
    ],
)
def test_mask_phone_number(raw, expected):
    assert mask_phone_number(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["+905551234567", "+90 555 123 45 67", "+90 (555) 123-4567", " +905551234567 "],
)
def test_normalize_phone_number_to_e164(raw):
    assert normalize_phone_number(raw) == "+905551234567"


def test_normalize_phone_number_with_default_region():
    assert normalize_phone_number("0555 123 45 67", "TR") == "+905551234567"
    assert normalize_phone_number("0555 123 45 67") is None


@pytest.mark.parametrize("raw", ["", "   ", "abc", "12345", "+90555"])
def test_normalize_phone_number_rejects_invalid(raw):
    assert normalize_phone_number(raw) is None


def test_to_national_digits():
    assert to_national_digits("+905551234567") == "5551234567"
    assert to_national_digits("garbage") is None


@pytest.mark.parametrize("purpose", list(VerificationPurpose))
def test_every_purpose_has_a_message(purpose):
    message = verification_message("482913", purpose, 10)
    assert "482913" in message
    assert "10 minutes" in message
