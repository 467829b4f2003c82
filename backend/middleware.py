from fastapi import Request, HTTPException, status, Depends
from typing import Optional
import logging

from invoicing.errors import UNAUTHORIZED, GENERIC_ERROR, RateLimitError, http_error
from invoicing.services.auth_service import auth_service
from invoicing.services.company_service import company_service
from invoicing.services.subscription_service import subscription_service
from utils.rate_limiter import rate_limiter

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


async def get_current_user(request: Request) -> Optional[dict]:
    """Resolve the user behind the bearer token, or None."""
    token = _bearer_token(request)
    if not token:
        return None
    return await auth_service.get_user_from_token(token)


async def require_auth(request: Request) -> dict:
    """Require valid authentication."""
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHORIZED
        )
    return user


async def get_current_company(user: dict = Depends(require_auth)) -> dict:
    """The tenant of the authenticated user; 404 when the user has none."""
    try:
        return await company_service.get_for_user(user["user_id"])
    except ValueError as e:
        raise http_error(e)


async def enforce_plan_rate_limit(request: Request, user: dict = Depends(require_auth)) -> dict:
    """Per-minute request budget from the user's plan (FREE/BASIC/PRO)."""
    try:
        limit = await subscription_service.rate_limit_for(user["user_id"])
    except Exception as e:
        logger.error(f"Rate limit lookup failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)

    allowed, message = await rate_limiter.check_rate_limit(
        f"plan:{user['user_id']}:{request.url.path}", limit, window_minutes=1
    )
    if not allowed:
        raise http_error(RateLimitError(message))
    return user
