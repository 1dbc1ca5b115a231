"""
Execution Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
Classification of every way a trade order can fail.

ERROR CATEGORIES:
1. Validation - malformed or out-of-policy input (pre-transaction)
2. Not found - unknown instrument or wallet
3. Business rule - pricing, funds, inventory (mid-transaction)
4. Submission - duplicate idempotency key misuse
5. Internal - anything else (HTTP 500)

NO RETRIES:
    Every order is a single attempt. Nothing in this module
    marks an error retryable; a rejected user resubmits.

============================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    VALIDATION = "VALIDATION"
    """Request failed input validation."""

    NOT_FOUND = "NOT_FOUND"
    """Referenced entity does not exist."""

    BUSINESS_RULE = "BUSINESS_RULE"
    """Order violates a trading rule."""

    SUBMISSION = "SUBMISSION"
    """Order submission conflict."""

    INTERNAL = "INTERNAL"
    """Internal system error."""


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass(frozen=True)
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    http_status: int
    """Status returned by the HTTP layer."""

    description: str
    """Human-readable description."""

    recommended_action: str
    """Recommended action to take."""


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== VALIDATION ERRORS ==========
    "VAL_INVALID_QUANTITY": ErrorCodeInfo(
        code="VAL_INVALID_QUANTITY",
        category=ErrorCategory.VALIDATION,
        http_status=400,
        description="Order quantity is not a positive multiple of the lot size",
        recommended_action="Adjust quantity to a whole number of lots",
    ),
    "VAL_INVALID_REQUEST": ErrorCodeInfo(
        code="VAL_INVALID_REQUEST",
        category=ErrorCategory.VALIDATION,
        http_status=400,
        description="Order request is malformed",
        recommended_action="Provide instrument symbol and quantity",
    ),
    "VAL_INVALID_STATE": ErrorCodeInfo(
        code="VAL_INVALID_STATE",
        category=ErrorCategory.INTERNAL,
        http_status=500,
        description="Order moved through an invalid execution state",
        recommended_action="Investigate execution service",
    ),

    # ========== NOT FOUND ERRORS ==========
    "NFD_INSTRUMENT": ErrorCodeInfo(
        code="NFD_INSTRUMENT",
        category=ErrorCategory.NOT_FOUND,
        http_status=400,
        description="Instrument not found or not verified",
        recommended_action="Verify the instrument symbol",
    ),
    "NFD_WALLET": ErrorCodeInfo(
        code="NFD_WALLET",
        category=ErrorCategory.NOT_FOUND,
        http_status=400,
        description="User has no wallet",
        recommended_action="Contact support to provision a wallet",
    ),

    # ========== BUSINESS RULE ERRORS ==========
    "BRL_INVALID_PRICE": ErrorCodeInfo(
        code="BRL_INVALID_PRICE",
        category=ErrorCategory.BUSINESS_RULE,
        http_status=400,
        description="Instrument has no positive price",
        recommended_action="Wait for market data",
    ),
    "BRL_INSUFFICIENT_FUNDS": ErrorCodeInfo(
        code="BRL_INSUFFICIENT_FUNDS",
        category=ErrorCategory.BUSINESS_RULE,
        http_status=400,
        description="Wallet balance below order total",
        recommended_action="Reduce order size or deposit funds",
    ),
    "BRL_INSUFFICIENT_INVENTORY": ErrorCodeInfo(
        code="BRL_INSUFFICIENT_INVENTORY",
        category=ErrorCategory.BUSINESS_RULE,
        http_status=400,
        description="Not enough shares available",
        recommended_action="Reduce order size",
    ),

    # ========== SUBMISSION ERRORS ==========
    "SUB_DUPLICATE_ORDER": ErrorCodeInfo(
        code="SUB_DUPLICATE_ORDER",
        category=ErrorCategory.SUBMISSION,
        http_status=400,
        description="Idempotency key reused for a different order",
        recommended_action="Use a fresh idempotency key",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Unknown codes are reported as internal errors.
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INTERNAL,
        http_status=500,
        description=f"Unknown error: {code}",
        recommended_action="Investigate error",
    ))


# ============================================================
# EXCEPTIONS
# ============================================================

class TradingError(Exception):
    """
    Base exception for order rejections.

    The message is user-facing.
    """

    default_code = "VAL_INVALID_REQUEST"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @property
    def info(self) -> ErrorCodeInfo:
        return get_error_info(self.code)

    @property
    def http_status(self) -> int:
        return self.info.http_status

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(TradingError):
    """Malformed or out-of-policy input. Raised before any transaction opens."""

    default_code = "VAL_INVALID_QUANTITY"


class NotFoundError(TradingError):
    """Unknown instrument or wallet."""

    default_code = "NFD_INSTRUMENT"


class PricingError(TradingError):
    """Instrument has no usable price."""

    default_code = "BRL_INVALID_PRICE"


class InsufficientFundsError(TradingError):
    """Wallet balance does not cover the order total."""

    default_code = "BRL_INSUFFICIENT_FUNDS"

    def __init__(self, required: Decimal, available: Decimal, currency: str = "Rwf"):
        self.required = Decimal(required)
        self.available = Decimal(available)
        super().__init__(
            f"Insufficient balance. Required: {currency} {self.required:.2f}, "
            f"Available: {currency} {self.available:.2f}",
            details={"required": str(self.required), "available": str(self.available)},
        )


class InsufficientInventoryError(TradingError):
    """Not enough available shares to fill the order."""

    default_code = "BRL_INSUFFICIENT_INVENTORY"

    def __init__(self, requested: int, available: int):
        self.requested = int(requested)
        self.available = int(available)
        self.shortfall = self.requested - self.available
        super().__init__(
            f"Insufficient shares available. Requested {self.requested}, "
            f"only {self.available} available (short by {self.shortfall})",
            details={
                "requested": self.requested,
                "available": self.available,
                "shortfall": self.shortfall,
            },
        )


class DuplicateOrderError(TradingError):
    """Idempotency key already used for a different order."""

    default_code = "SUB_DUPLICATE_ORDER"


class InvalidStateTransitionError(TradingError):
    """Execution state machine was driven out of order."""

    default_code = "VAL_INVALID_STATE"
