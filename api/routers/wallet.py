from fastapi import APIRouter, Depends, Query

from api.auth import AuthenticatedUser, get_current_user
from api.dependencies import get_query_service
from api.schemas import WalletResponse
from api.services import AccountQueryService

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


@router.get("", response_model=WalletResponse)
def get_wallet(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    service: AccountQueryService = Depends(get_query_service),
):
    """
    Wallet balances and recent cash movements.
    """
    return WalletResponse(**service.get_wallet_summary(user.user_id, limit, offset))
