"""Authentication Service

Email/password accounts. Registration creates the user, company and free
credits in one unit of work, then assigns the FREE subscription.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import logging

from database import database
from auth import hash_password, verify_password, create_access_token, decode_access_token
from invoicing.errors import AuthenticationError, ConflictError, NotFoundError
from invoicing.models.credits import UserCredits
from invoicing.models.user import (
    User,
    UserCreate,
    UserLogin,
    UserResponse,
    TokenResponse,
    ChangePasswordRequest,
)
from invoicing.services.company_service import company_service
from invoicing.services.subscription_service import subscription_service
from invoicing.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

EMAIL_TAKEN = "ეს ელ.ფოსტა უკვე რეგისტრირებულია"
INVALID_CREDENTIALS = "არასწორი ელ.ფოსტა ან პაროლი"
WRONG_CURRENT_PASSWORD = "მიმდინარე პაროლი არასწორია"
USER_NOT_FOUND = "მომხმარებელი ვერ მოიძებნა"


class AuthService:

    def _get_db(self):
        return database.get_db()

    async def _response(self, user: Dict[str, Any]) -> UserResponse:
        db = self._get_db()
        company = await db.companies.find_one({"user_id": user["user_id"]}, {"_id": 0, "company_id": 1})
        return UserResponse(
            user_id=user["user_id"],
            email=user["email"],
            full_name=user.get("full_name"),
            company_id=(company or {}).get("company_id"),
            created_at=user.get("created_at"),
            last_login_at=user.get("last_login_at"),
        )

    def _token(self, user: Dict[str, Any]) -> str:
        return create_access_token({"sub": user["user_id"], "email": user["email"]})

    async def register(self, data: UserCreate) -> TokenResponse:
        db = self._get_db()
        if await db.users.find_one({"email": data.email}, {"_id": 0, "user_id": 1}):
            raise ConflictError(EMAIL_TAKEN)

        user = User(
            email=data.email,
            full_name=data.full_name,
            password_hash=hash_password(data.password),
        )
        company_name = (data.company_name or data.full_name or data.email).strip()

        async with UnitOfWork("register") as uow:
            uow.on_rollback("delete user", lambda: db.users.delete_one({"user_id": user.user_id}))
            await db.users.insert_one(user.model_dump(), session=uow.session)

            uow.on_rollback("delete company", lambda: db.companies.delete_one({"user_id": user.user_id}))
            company = await company_service.create(user.user_id, company_name, data.email, session=uow.session)

            uow.on_rollback("delete credits", lambda: db.user_credits.delete_one({"user_id": user.user_id}))
            await db.user_credits.insert_one(UserCredits(user_id=user.user_id).model_dump(), session=uow.session)

        # Subscriptions self-heal on first read, so this runs outside the unit
        await subscription_service.assign_free_plan(user.user_id)

        logger.info(f"New user registered: {user.user_id} (company {company['company_id']})")
        doc = user.model_dump()
        return TokenResponse(access_token=self._token(doc), user=await self._response(doc))

    async def login(self, data: UserLogin) -> TokenResponse:
        db = self._get_db()
        user = await db.users.find_one({"email": data.email.lower()}, {"_id": 0})
        if not user or not verify_password(data.password, user["password_hash"]):
            raise AuthenticationError(INVALID_CREDENTIALS)

        now = datetime.now(timezone.utc)
        await db.users.update_one({"user_id": user["user_id"]}, {"$set": {"last_login_at": now}})
        user["last_login_at"] = now

        return TokenResponse(access_token=self._token(user), user=await self._response(user))

    async def get_user_from_token(self, token: str) -> Optional[Dict[str, Any]]:
        payload = decode_access_token(token)
        if not payload or not payload.get("sub"):
            return None
        db = self._get_db()
        return await db.users.find_one({"user_id": payload["sub"]}, {"_id": 0, "password_hash": 0})

    async def me(self, user: Dict[str, Any]) -> UserResponse:
        return await self._response(user)

    async def change_password(self, user_id: str, data: ChangePasswordRequest) -> None:
        db = self._get_db()
        user = await db.users.find_one({"user_id": user_id}, {"_id": 0})
        if not user:
            raise NotFoundError(USER_NOT_FOUND)
        if not verify_password(data.current_password, user["password_hash"]):
            raise AuthenticationError(WRONG_CURRENT_PASSWORD)

        await db.users.update_one(
            {"user_id": user_id},
            {"$set": {"password_hash": hash_password(data.password), "updated_at": datetime.now(timezone.utc)}},
        )
        logger.info(f"Password changed for user {user_id}")


auth_service = AuthService()
