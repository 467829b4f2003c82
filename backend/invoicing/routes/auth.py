"""Authentication Routes

Endpoints:
- POST /api/auth/register - Create account, company, free credits and plan
- POST /api/auth/login - Exchange email/password for a bearer token
- GET /api/auth/me - Current user
- POST /api/auth/change-password - Change password
"""

from fastapi import APIRouter, HTTPException, Depends
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.models.user import (
    UserCreate,
    UserLogin,
    UserResponse,
    TokenResponse,
    ChangePasswordRequest,
)
from invoicing.services.auth_service import auth_service
from middleware import require_auth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(data: UserCreate):
    try:
        return await auth_service.register(data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Registration failed for {data.email}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin):
    try:
        return await auth_service.login(data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Login failed: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/me", response_model=UserResponse)
async def me(user: dict = Depends(require_auth)):
    return await auth_service.me(user)


@router.post("/change-password")
async def change_password(data: ChangePasswordRequest, user: dict = Depends(require_auth)):
    try:
        await auth_service.change_password(user["user_id"], data)
        return {"message": "პაროლი წარმატებით შეიცვალა"}
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Password change failed for {user['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
