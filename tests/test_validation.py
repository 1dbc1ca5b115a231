"""
Tests for lot-size validation and price resolution.

Tests cover:
- Quantity rules (positive, lot-size multiple, whole number)
- Request-level checks (symbol present)
- Execution price fallback order
"""

from decimal import Decimal

import pytest

from execution_engine.errors import PricingError, ValidationError
from execution_engine.pricing import current_price, resolve_execution_price
from execution_engine.types import BuyOrderRequest, InstrumentSnapshot
from execution_engine.validation import validate_order, validate_quantity


def snapshot(closing_price=None, share_price=None, symbol="ACME"):
    return InstrumentSnapshot(
        id="c-1",
        symbol=symbol,
        name="Acme",
        share_price=Decimal(share_price) if share_price is not None else None,
        closing_price=Decimal(closing_price) if closing_price is not None else None,
        previous_closing_price=None,
        available_shares=1000,
        total_shares=1000,
    )


# =============================================================
# TEST: Quantity
# =============================================================

class TestValidateQuantity:
    """Lot-size rule: quantity > 0 and quantity % lot_size == 0."""

    @pytest.mark.parametrize("quantity", [100, 200, 1000, 100_000])
    def test_accepts_lot_multiples(self, quantity):
        assert validate_quantity(quantity, 100) == quantity

    def test_rejects_odd_lot(self):
        with pytest.raises(ValidationError) as exc:
            validate_quantity(150, 100)
        assert "multiple of 100" in exc.value.message
        assert exc.value.code == "VAL_INVALID_QUANTITY"
        assert exc.value.http_status == 400

    @pytest.mark.parametrize("quantity", [0, -100])
    def test_rejects_non_positive(self, quantity):
        with pytest.raises(ValidationError, match="positive"):
            validate_quantity(quantity, 100)

    def test_rejects_bool(self):
        with pytest.raises(ValidationError):
            validate_quantity(True, 1)

    def test_custom_lot_size(self):
        assert validate_quantity(30, 10) == 30
        with pytest.raises(ValidationError, match="multiple of 10"):
            validate_quantity(35, 10)


class TestValidateOrder:
    """Request-level validation before any storage access."""

    def test_blank_symbol(self):
        request = BuyOrderRequest(user_id="u-1", symbol="  ", quantity=100)
        with pytest.raises(ValidationError) as exc:
            validate_order(request)
        assert exc.value.code == "VAL_INVALID_REQUEST"

    def test_valid_order_passes(self):
        validate_order(BuyOrderRequest(user_id="u-1", symbol="ACME", quantity=300))

    def test_overlong_idempotency_key(self):
        request = BuyOrderRequest(user_id="u-1", symbol="ACME", quantity=100, idempotency_key="k" * 200)
        with pytest.raises(ValidationError) as exc:
            validate_order(request)
        assert exc.value.code == "VAL_INVALID_REQUEST"
        assert "at most 100 characters" in exc.value.message

    def test_idempotency_key_at_limit_passes(self):
        validate_order(BuyOrderRequest(user_id="u-1", symbol="ACME", quantity=100, idempotency_key="k" * 100))


# =============================================================
# TEST: Pricing
# =============================================================

class TestResolveExecutionPrice:
    """closing_price wins when positive, then share_price."""

    def test_closing_price_preferred(self):
        assert resolve_execution_price(snapshot("50", "48")) == Decimal("50")

    def test_falls_back_to_share_price(self):
        assert resolve_execution_price(snapshot(None, "48")) == Decimal("48")

    def test_zero_closing_price_falls_back(self):
        assert resolve_execution_price(snapshot("0", "48")) == Decimal("48")

    def test_no_positive_price_rejected(self):
        with pytest.raises(PricingError, match="Invalid share price for ACME") as exc:
            resolve_execution_price(snapshot("0", None))
        assert exc.value.code == "BRL_INVALID_PRICE"

    def test_current_price_is_zero_without_price(self):
        assert current_price(snapshot(None, None)) == Decimal("0")
