"""
Input helper tests: sanitizing, strict numeric parsing, slugs, phones, money.
"""

from decimal import Decimal

import pytest

from prismatech.money import as_float, quantize
from prismatech.validation import (
    FieldErrors,
    is_valid_email,
    is_valid_mexican_phone,
    optional_text,
    parse_bool,
    parse_decimal,
    parse_int,
    require_text,
    sanitize,
    slugify,
)


class TestSanitize:
    def test_trims_and_strips_control_characters(self):
        assert sanitize("  hola\x00 mundo\x07 ") == "hola mundo"

    def test_recurses_into_containers(self):
        payload = {"name": " A ", "items": [{"notes": "\x1bx "}], "qty": 3}
        assert sanitize(payload) == {"name": "A", "items": [{"notes": "x"}], "qty": 3}

    def test_keeps_newlines_and_tabs(self):
        assert sanitize("line1\n\tline2") == "line1\n\tline2"


class TestParseInt:
    @pytest.mark.parametrize("value,expected", [(5, 5), ("12", 12), (" 7 ", 7), (3.0, 3), ("-2", -2)])
    def test_accepts(self, value, expected):
        assert parse_int(value, "n", FieldErrors()) == expected

    @pytest.mark.parametrize("value", [True, "1.5", "1e3", 2.5, "abc", None, ""])
    def test_rejects(self, value):
        errors = FieldErrors()
        assert parse_int(value, "n", errors) is None
        assert errors.messages() == ["n must be an integer"]

    def test_bounds(self):
        errors = FieldErrors()
        assert parse_int(0, "quantity", errors, minimum=1) is None
        assert parse_int(500, "months", errors, maximum=240) is None
        assert [e["field"] for e in errors.errors] == ["quantity", "months"]


class TestParseDecimal:
    def test_exclusive_minimum(self):
        errors = FieldErrors()
        assert parse_decimal(0, "price", errors, minimum=0, exclusive_minimum=True) is None
        assert parse_decimal("0.01", "price", errors, minimum=0, exclusive_minimum=True) == Decimal("0.01")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "abc", False])
    def test_rejects_non_numbers(self, value):
        assert parse_decimal(value, "price", FieldErrors()) is None


class TestParseBool:
    @pytest.mark.parametrize("value", [True, 1, "1", "true", "YES", "on"])
    def test_truthy(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", [False, 0, None, "", "0", "no", "off"])
    def test_falsy(self, value):
        assert parse_bool(value) is False


class TestTextFields:
    def test_require_text_trims(self):
        errors = FieldErrors()
        assert require_text({"name": "  Teclado  "}, "name", errors) == "Teclado"
        assert not errors

    @pytest.mark.parametrize("value", [["x"], {"a": 1}, True])
    def test_rejects_containers_and_booleans(self, value):
        errors = FieldErrors()
        assert require_text({"name": value}, "name", errors) is None
        assert optional_text(value, "notes", errors) is None
        assert errors.messages() == ["name must be a string", "notes must be a string"]

    def test_numbers_are_stringified(self):
        assert optional_text(42, "notes", FieldErrors()) == "42"


class TestSlugify:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Batería Dell Latitude", "bateria-dell-latitude"),
            ("  Teclado  ÑANDÚ ", "teclado-nandu"),
            ("Display 15.6\" / LED", "display-15-6-led"),
            ("--ya--con--guiones--", "ya-con-guiones"),
            ("!!!", ""),
        ],
    )
    def test_slugify(self, text, expected):
        assert slugify(text) == expected


class TestContactFormats:
    @pytest.mark.parametrize("phone", ["5512345678", "+52 55 1234 5678", "52-55-1234-5678", "(55) 1234-5678"])
    def test_valid_phone(self, phone):
        assert is_valid_mexican_phone(phone)

    @pytest.mark.parametrize("phone", ["12345", "+1 555 123 4567", "55123456789", "telefono"])
    def test_invalid_phone(self, phone):
        assert not is_valid_mexican_phone(phone)

    def test_email(self):
        assert is_valid_email("ventas@prismatech.mx")
        assert not is_valid_email("ventas@prismatech")
        assert not is_valid_email("sin arroba.com")


class TestMoney:
    @pytest.mark.parametrize("value,expected", [("1.005", "1.01"), ("2.675", "2.68"), (Decimal("0.125"), "0.13"), (3, "3.00")])
    def test_quantize_half_up(self, value, expected):
        assert quantize(value) == Decimal(expected)

    def test_as_float(self):
        assert as_float(None) is None
        assert as_float(Decimal("1299.999")) == 1300.0
