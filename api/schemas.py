"""
Pydantic schemas for the brokerage API.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from execution_engine.validation import MAX_IDEMPOTENCY_KEY_LENGTH

# =======================
# COMMON
# =======================

class BaseResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None

# =======================
# 1. TRADE SUBMISSION
# =======================

class BuyOrderBody(BaseModel):
    """
    POST /api/trade/buy body.

    instrumentSymbol and companySymbol are accepted as the same field.
    """
    model_config = ConfigDict(populate_by_name=True)

    symbol: Optional[str] = Field(None, alias="instrumentSymbol")
    company_symbol: Optional[str] = Field(None, alias="companySymbol")
    quantity: Optional[int] = None
    price_type: Literal["MARKET"] = Field("MARKET", alias="priceType")
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey", max_length=MAX_IDEMPOTENCY_KEY_LENGTH)

    def resolved_symbol(self) -> Optional[str]:
        return self.symbol or self.company_symbol


class CompanyRef(BaseModel):
    id: str
    symbol: str
    name: str


class TransactionSummary(BaseModel):
    quantity: int
    pricePerShare: float
    totalAmount: float


class TradeData(BaseModel):
    trade: Dict[str, Any]
    company: CompanyRef
    transaction: TransactionSummary
    newBalance: str


class BuyOrderResponse(BaseResponse):
    data: TradeData

# =======================
# 2. TRADE HISTORY
# =======================

class TradeHistoryItem(BaseModel):
    id: str
    type: str
    status: str
    priceType: str
    quantity: int
    executedPrice: Optional[str] = None
    totalAmount: str
    fees: Optional[str] = None
    executedAt: Optional[str] = None
    createdAt: Optional[str] = None
    company: Dict[str, str]


class TradeHistoryResponse(BaseModel):
    trades: List[TradeHistoryItem]

# =======================
# 3. WALLET
# =======================

class WalletBalance(BaseModel):
    balance: str
    lockedBalance: str
    availableBalance: str


class TransactionItem(BaseModel):
    id: str
    type: str
    amount: str
    status: str
    reference: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    createdAt: Optional[str] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class WalletResponse(BaseModel):
    wallet: WalletBalance
    transactions: List[TransactionItem]
    pagination: Pagination

# =======================
# 4. PORTFOLIO
# =======================

class PositionView(BaseModel):
    id: str
    companyId: str
    companySymbol: str
    companyName: str
    sector: Optional[str] = None
    quantity: int
    averageBuyPrice: float
    currentPrice: float
    totalInvested: float
    currentValue: float
    profitLoss: float
    profitLossPercentage: float
    priceChange: str


class PortfolioSummary(BaseModel):
    totalInvested: float
    totalCurrentValue: float
    totalProfitLoss: float
    totalProfitLossPercentage: float
    totalHoldings: int


class SectorAllocation(BaseModel):
    sector: str
    value: float
    percentage: float


class PortfolioResponse(BaseModel):
    portfolio: List[PositionView]
    summary: PortfolioSummary
    sectorAllocation: List[SectorAllocation]

# =======================
# 5. NOTIFICATIONS
# =======================

class NotificationItem(BaseModel):
    id: str
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    isRead: bool
    createdAt: Optional[str] = None


class NotificationsResponse(BaseModel):
    notifications: List[NotificationItem]
    unreadCount: int


class MarkReadBody(BaseModel):
    notificationId: Optional[str] = None


class MarkReadResponse(BaseModel):
    success: bool

# =======================
# 6. HEALTH
# =======================

class HealthResponse(BaseModel):
    status: str
    database: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
