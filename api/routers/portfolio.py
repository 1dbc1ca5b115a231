from fastapi import APIRouter, Depends

from api.auth import AuthenticatedUser, get_current_user
from api.dependencies import get_query_service
from api.schemas import PortfolioResponse
from api.services import AccountQueryService

router = APIRouter(prefix="/api/portfolio", tags=["Portfolio"])


@router.get("", response_model=PortfolioResponse)
def get_portfolio(
    user: AuthenticatedUser = Depends(get_current_user),
    service: AccountQueryService = Depends(get_query_service),
):
    """
    Positions valued at the current price, with P&L and sector allocation.
    """
    return PortfolioResponse(**service.get_portfolio(user.user_id))
