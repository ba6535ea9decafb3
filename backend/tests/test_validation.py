from datetime import datetime

import pytest

from bizmanager.errors import ValidationError
from bizmanager.validation import (
    INVOICE_POLICY,
    PAYMENT_POLICY,
    PRODUCT_POLICY,
    enforce_rules_stock_movement,
    parse_window,
    validate_payload,
)


class TestIntegerCoercion:
    @pytest.mark.parametrize("raw,expected", [(1250, 1250), ("1250", 1250), (" 42 ", 42)])
    def test_accepts_plain_integers(self, raw, expected):
        patch = validate_payload(payload={"price_cents": raw}, policy=PRODUCT_POLICY, partial=True)
        assert patch["price_cents"] == expected

    @pytest.mark.parametrize("raw", [12.5, "12.5", "1e3", "", True, "abc"])
    def test_rejects_everything_else(self, raw):
        with pytest.raises(ValidationError):
            validate_payload(payload={"price_cents": raw}, policy=PRODUCT_POLICY, partial=True)

    def test_money_bounds(self):
        with pytest.raises(ValidationError, match=">= 0"):
            validate_payload(payload={"price_cents": -1}, policy=PRODUCT_POLICY, partial=True)
        with pytest.raises(ValidationError, match="cannot exceed"):
            validate_payload(payload={"price_cents": 1_000_000_000}, policy=PRODUCT_POLICY, partial=True)

    def test_rate_bounds(self):
        with pytest.raises(ValidationError):
            validate_payload(payload={"tax_rate_bps": 10_001}, policy=PRODUCT_POLICY, partial=True)

    @pytest.mark.parametrize("raw", ["nan", "inf", float("nan"), "-inf"])
    def test_numbers_must_be_finite(self, raw):
        with pytest.raises(ValidationError):
            validate_payload(payload={"area_per_piece": raw}, policy=PRODUCT_POLICY, partial=True)

    def test_number_accepts_decimals(self):
        patch = validate_payload(payload={"area_per_piece": "1.44"}, policy=PRODUCT_POLICY, partial=True)
        assert patch["area_per_piece"] == 1.44


class TestPayloadShape:
    def test_unknown_field(self):
        with pytest.raises(ValidationError, match="Field not allowed: colour"):
            validate_payload(payload={"colour": "red"}, policy=PRODUCT_POLICY, partial=True)

    def test_blank_required_string(self):
        with pytest.raises(ValidationError, match="cannot be blank"):
            validate_payload(payload={"name": "   "}, policy=PRODUCT_POLICY, partial=True)

    def test_null_on_non_nullable(self):
        with pytest.raises(ValidationError, match="cannot be null"):
            validate_payload(payload={"sku": None}, policy=PRODUCT_POLICY, partial=True)

    def test_choices(self):
        with pytest.raises(ValidationError, match="must be one of"):
            validate_payload(payload={"invoice_id": "i", "amount_cents": 1, "method": "barter"},
                             policy=PAYMENT_POLICY, partial=False)

    def test_strings_are_trimmed_and_datetimes_parsed(self):
        patch = validate_payload(
            payload={"customer_id": " c1 ", "items": [{}], "due_date": "2024-06-15T10:00:00+05:30"},
            policy=INVOICE_POLICY,
            partial=False,
        )
        assert patch["customer_id"] == "c1"
        assert patch["due_date"] == datetime(2024, 6, 15, 4, 30)

    def test_non_dict_payload(self):
        with pytest.raises(ValidationError):
            validate_payload(payload=["x"], policy=PRODUCT_POLICY, partial=True)


class TestRules:
    def test_stock_movement_rules(self):
        enforce_rules_stock_movement({"movement_type": "adjustment", "quantity": -3})
        with pytest.raises(ValidationError):
            enforce_rules_stock_movement({"movement_type": "out", "quantity": -3})

    def test_parse_window(self):
        start, end = parse_window({"start": "2024-06-01", "end": "2024-07-01T00:00:00Z"})
        assert start == datetime(2024, 6, 1)
        assert end == datetime(2024, 7, 1)
        assert parse_window({}) == (None, None)
        with pytest.raises(ValidationError):
            parse_window({"start": "2024-07-01", "end": "2024-06-01"})
        with pytest.raises(ValidationError):
            parse_window({"start": "yesterday"})
