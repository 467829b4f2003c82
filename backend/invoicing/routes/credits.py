"""Credit Routes

Endpoints:
- GET /api/user/credits - Credit balance (created with the free allowance on first read)
"""

from fastapi import APIRouter, HTTPException, Depends
import logging

from invoicing.errors import GENERIC_ERROR
from invoicing.models.credits import CreditsResponse
from invoicing.services.credit_service import credit_service
from middleware import require_auth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Credits"])


@router.get("/credits", response_model=CreditsResponse)
async def get_credits(user: dict = Depends(require_auth)):
    try:
        return await credit_service.get_balance(user["user_id"])
    except Exception as e:
        logger.error(f"Credit balance failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
