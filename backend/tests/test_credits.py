"""Credit wallet: lazy creation, non-negative balance, atomic reservation, refunds."""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from invoicing.errors import NotFoundError, InsufficientCreditsError
from invoicing.models.credits import remaining_credits, FREE_CREDITS
from invoicing.services.credit_service import credit_service, INSUFFICIENT_CREDITS
from invoicing.routes.credits import router as credits_router
from tests.conftest import make_client, TEST_USER


def test_remaining_credits_never_negative():
    assert remaining_credits(5, 2) == 3
    assert remaining_credits(5, 9) == 0
    assert remaining_credits(None, None) == 0


@pytest.mark.asyncio
async def test_get_balance_creates_free_allowance():
    db = MagicMock()
    db.user_credits.find_one = AsyncMock(side_effect=[None, None])
    db.user_credits.update_one = AsyncMock()

    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        balance = await credit_service.get_balance("USR-1")

    assert balance.total_credits == FREE_CREDITS
    assert balance.used_credits == 0
    assert balance.remaining_credits == FREE_CREDITS
    assert balance.plan_type == "free"
    args, kwargs = db.user_credits.update_one.call_args
    assert "$setOnInsert" in args[1]
    assert kwargs["upsert"] is True


@pytest.mark.asyncio
async def test_get_balance_clamps_overdrawn_record():
    db = MagicMock()
    db.user_credits.find_one = AsyncMock(return_value={
        "user_id": "USR-1", "total_credits": 5, "used_credits": 7, "plan_type": "free",
    })
    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        balance = await credit_service.get_balance("USR-1")
    assert balance.remaining_credits == 0


@pytest.mark.asyncio
async def test_reserve_uses_conditional_update():
    db = MagicMock()
    db.user_credits.find_one_and_update = AsyncMock(return_value={"user_id": "USR-1", "used_credits": 1})

    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        result = await credit_service.reserve("USR-1")

    assert result["used_credits"] == 1
    query, update = db.user_credits.find_one_and_update.call_args[0]
    assert query["$expr"] == {"$lt": ["$used_credits", "$total_credits"]}
    assert update["$inc"] == {"used_credits": 1}


@pytest.mark.asyncio
async def test_reserve_without_record_is_not_found():
    db = MagicMock()
    db.user_credits.find_one_and_update = AsyncMock(return_value=None)
    db.user_credits.find_one = AsyncMock(return_value=None)

    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        with pytest.raises(NotFoundError):
            await credit_service.reserve("USR-1")


@pytest.mark.asyncio
async def test_reserve_exhausted_is_forbidden():
    db = MagicMock()
    db.user_credits.find_one_and_update = AsyncMock(return_value=None)
    db.user_credits.find_one = AsyncMock(return_value={"user_id": "USR-1", "total_credits": 5, "used_credits": 5})

    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        with pytest.raises(InsufficientCreditsError) as exc:
            await credit_service.reserve("USR-1")

    assert exc.value.status_code == 403
    assert str(exc.value) == INSUFFICIENT_CREDITS


@pytest.mark.asyncio
async def test_refund_never_goes_below_zero():
    db = MagicMock()
    db.user_credits.update_one = AsyncMock(return_value=MagicMock(modified_count=0))

    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        refunded = await credit_service.refund("USR-1")

    assert refunded is False
    query = db.user_credits.update_one.call_args[0][0]
    assert query["used_credits"] == {"$gt": 0}


def test_credits_endpoint_returns_balance():
    client = make_client(credits_router)
    db = MagicMock()
    db.user_credits.find_one = AsyncMock(return_value={
        "user_id": TEST_USER["user_id"], "total_credits": 5, "used_credits": 2, "plan_type": "free",
    })
    with patch("invoicing.services.credit_service.database.get_db", return_value=db):
        response = client.get("/api/user/credits")

    assert response.status_code == 200
    data = response.json()
    assert data["remaining_credits"] == 3
    assert data["used_credits"] == 2
