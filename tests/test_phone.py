import pytest

from sessiongate.modules.session.phone import (
    LibPhoneNumberValidator,
    apply_region_corrections,
    digits_only,
    normalize_phone_number,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("5215512345678", "+5215512345678"),
        ("+44 20 8366 1177", "+442083661177"),
        ("(52) 1-55-1234-5678", "+5215512345678"),
        ("  +1 (415) 555-2671 ", "+14155552671"),
    ],
)
def test_normalize_phone_number(raw, expected):
    assert normalize_phone_number(raw) == expected


def test_mexican_mobile_prefix_is_collapsed_before_validation():
    normalized = normalize_phone_number("5215512345678")
    assert apply_region_corrections(normalized) == "+525512345678"


def test_other_numbers_are_not_corrected():
    assert apply_region_corrections("+525512345678") == "+525512345678"
    assert apply_region_corrections("+442083661177") == "+442083661177"


def test_digits_only():
    assert digits_only("+5215512345678") == "5215512345678"


class TestLibPhoneNumberValidator:
    def setup_method(self):
        self.validator = LibPhoneNumberValidator()

    def test_valid_number(self):
        assert self.validator.is_valid("+442083661177") is True

    def test_too_short_number(self):
        assert self.validator.is_valid("+4420") is False

    def test_unparseable_number(self):
        assert self.validator.is_valid("+") is False
