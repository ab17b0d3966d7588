"""
Credit consumption endpoint.
"""

from fastapi import APIRouter, Depends

from ..dependencies import get_credit_service, get_current_user
from ..rate_limiter import check_api_rate_limit
from ..responses import success_response
from ..schemas import CreditConsumptionRequest
from ..services.credit_service import CreditService

router = APIRouter(
    prefix="/api/credits",
    tags=["Credits"],
    dependencies=[Depends(check_api_rate_limit), Depends(get_current_user)],
)


@router.post("/consumption", summary="Credit usage for the current billing cycle")
async def get_credit_consumption(
    body: CreditConsumptionRequest,
    credit_service: CreditService = Depends(get_credit_service),
):
    """
    Daily and per-model credit usage for the account behind ``auth_session``.

    Returns:
        ``stats_data`` and ``chart_data`` series
    """
    data = await credit_service.get_consumption(body.auth_session)
    return success_response(data, "Credit consumption data fetched successfully")
