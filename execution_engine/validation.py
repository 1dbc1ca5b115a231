"""
Execution Engine - Pre-Execution Validation.

============================================================
PURPOSE
============================================================
Checks an order against exchange trading rules before any
transaction is opened.

RULES:
    quantity > 0 AND quantity % lot_size == 0
    idempotency key at most MAX_IDEMPOTENCY_KEY_LENGTH characters

A failure here means NOTHING is written.

============================================================
"""

import logging
from typing import Optional

from .errors import ValidationError
from .types import BuyOrderRequest


logger = logging.getLogger(__name__)


DEFAULT_LOT_SIZE = 100
MAX_IDEMPOTENCY_KEY_LENGTH = 100


def validate_quantity(quantity: int, lot_size: int = DEFAULT_LOT_SIZE) -> int:
    """
    Validate a requested share quantity.

    Args:
        quantity: Requested shares (signed)
        lot_size: Exchange lot size

    Returns:
        The quantity, unchanged

    Raises:
        ValidationError: not positive, or not a multiple of lot_size
    """
    # bool is an int subclass; True is not a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be a whole number, got {quantity!r}")

    if quantity <= 0:
        raise ValidationError("Quantity must be positive")

    if quantity % lot_size != 0:
        raise ValidationError(f"Quantity must be a multiple of {lot_size}")

    return quantity


def validate_order(request: BuyOrderRequest, lot_size: int = DEFAULT_LOT_SIZE) -> None:
    """
    Validate everything about a buy request that needs no storage.

    Raises:
        ValidationError
    """
    symbol: Optional[str] = request.symbol
    if not symbol or not symbol.strip():
        raise ValidationError(
            "Company symbol and quantity are required",
            code="VAL_INVALID_REQUEST",
        )

    validate_quantity(request.quantity, lot_size)

    key = request.idempotency_key
    if key is not None and len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(
            f"Idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters",
            code="VAL_INVALID_REQUEST",
        )
