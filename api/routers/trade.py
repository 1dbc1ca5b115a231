import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse

from api.auth import AuthenticatedUser, get_current_user
from api.dependencies import get_execution_service, get_query_service
from api.schemas import BuyOrderBody, BuyOrderResponse, ErrorResponse, TradeHistoryResponse
from api.services import AccountQueryService, MAX_HISTORY_LIMIT
from execution_engine.errors import TradingError, ValidationError
from execution_engine.execution_service import TradeExecutionService
from execution_engine.types import BuyOrderRequest, PriceType
from execution_engine.validation import MAX_IDEMPOTENCY_KEY_LENGTH

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trade", tags=["Trading"])


@router.post(
    "/buy",
    response_model=BuyOrderResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def buy(
    body: BuyOrderBody,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=MAX_IDEMPOTENCY_KEY_LENGTH),
    user: AuthenticatedUser = Depends(get_current_user),
    service: TradeExecutionService = Depends(get_execution_service),
):
    """
    Execute a market buy for the authenticated user.

    Business-rule rejections surface as 400 with {"error", "code"}.
    """
    symbol = body.resolved_symbol()
    if not symbol or body.quantity is None:
        raise ValidationError("Company symbol and quantity are required", code="VAL_INVALID_REQUEST")

    request = BuyOrderRequest(
        user_id=user.user_id,
        symbol=symbol,
        quantity=body.quantity,
        price_type=PriceType(body.price_type),
        idempotency_key=idempotency_key or body.idempotency_key,
    )

    try:
        result = service.execute_buy(request)
    except TradingError:
        raise
    except Exception:
        logger.exception(f"Trade error: user={user.user_id} symbol={symbol}")
        return JSONResponse(status_code=500, content={"error": "Failed to execute trade"})

    return BuyOrderResponse(success=True, message=result.message, data=result.to_dict())


@router.get("/history", response_model=TradeHistoryResponse)
def trade_history(
    limit: int = Query(100, ge=1, le=MAX_HISTORY_LIMIT),
    user: AuthenticatedUser = Depends(get_current_user),
    service: AccountQueryService = Depends(get_query_service),
):
    """The caller's trades, newest first."""
    return TradeHistoryResponse(trades=service.get_trade_history(user.user_id, limit))
