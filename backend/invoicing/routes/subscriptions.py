"""Subscription Routes

Endpoints:
- GET /api/subscriptions/plans - Available plans
- GET /api/subscriptions/current - Current subscription (FREE assigned on first read)
- POST /api/subscriptions/upgrade - Change plan with prorated payment
- POST /api/subscriptions/cancel - Cancel now or at period end
- POST /api/subscriptions/reactivate - Undo a pending cancellation
- GET /api/subscriptions/usage - Usage statistics for a period
- GET /api/subscriptions/payments - Payment history
- GET /api/subscriptions/features/{feature} - Feature access check
"""

from fastapi import APIRouter, HTTPException, Depends, Query
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.models.subscriptions import (
    UpgradeRequest,
    CancelRequest,
    UsagePeriod,
    UsageStats,
    PlanListResponse,
    CurrentSubscriptionResponse,
)
from invoicing.services.company_service import company_service
from invoicing.services.subscription_service import subscription_service
from middleware import require_auth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


@router.get("/plans", response_model=PlanListResponse)
async def get_plans():
    """Plan catalogue. No auth required - shown on the pricing page."""
    return {"plans": subscription_service.get_plans()}


@router.get("/current", response_model=CurrentSubscriptionResponse)
async def get_current(user: dict = Depends(require_auth)):
    try:
        return await subscription_service.get_current_response(user["user_id"])
    except Exception as e:
        logger.error(f"Subscription lookup failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("/upgrade")
async def upgrade(data: UpgradeRequest, user: dict = Depends(require_auth)):
    try:
        result = await subscription_service.upgrade(user["user_id"], data)
        return {**result, "message": "გეგმა წარმატებით განახლდა"}
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Upgrade failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("/cancel")
async def cancel(data: CancelRequest, user: dict = Depends(require_auth)):
    try:
        subscription = await subscription_service.cancel(user["user_id"], data)
        return {"subscription": subscription, "message": "გამოწერა გაუქმდა"}
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Cancel failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("/reactivate")
async def reactivate(user: dict = Depends(require_auth)):
    try:
        subscription = await subscription_service.reactivate(user["user_id"])
        return {"subscription": subscription, "message": "გამოწერა აღდგენილია"}
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Reactivate failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/usage", response_model=UsageStats)
async def get_usage(
    period: UsagePeriod = UsagePeriod.MONTH,
    user: dict = Depends(require_auth),
):
    try:
        try:
            company = await company_service.get_for_user(user["user_id"])
            company_id = company["company_id"]
        except ValueError:
            company_id = None
        return await subscription_service.usage_stats(user["user_id"], company_id, period)
    except Exception as e:
        logger.error(f"Usage stats failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/payments")
async def get_payments(
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(require_auth),
):
    try:
        payments = await subscription_service.get_payments(user["user_id"], limit)
        return {"payments": payments}
    except Exception as e:
        logger.error(f"Payment history failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/features/{feature}")
async def check_feature(feature: str, user: dict = Depends(require_auth)):
    try:
        return await subscription_service.check_feature(user["user_id"], feature)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Feature check failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
