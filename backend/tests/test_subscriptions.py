"""Plans, upgrades with proration, cancellation and scheduled period processing."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from invoicing.errors import InvoicingError
from invoicing.models.subscriptions import (
    CancelRequest,
    CancellationReason,
    UpgradeRequest,
)
from invoicing.routes.subscriptions import router as subscriptions_router
from invoicing.services.subscription_service import (
    subscription_service,
    calculate_proration,
    feature_allowed,
    ALREADY_CANCELLED,
    SAME_PLAN,
    UNKNOWN_FEATURE,
)
from tests.conftest import make_client, cursor, TEST_USER

DB_PATH = "invoicing.services.subscription_service.database.get_db"

START = datetime(2026, 3, 1, tzinfo=timezone.utc)
END = START + timedelta(days=30)


def _subscription(**overrides):
    now = datetime.now(timezone.utc)
    doc = {
        "subscription_id": "SUB-1",
        "user_id": TEST_USER["user_id"],
        "plan_id": "plan_basic",
        "status": "active",
        "billing_cycle": "monthly",
        "current_period_start": now - timedelta(days=15),
        "current_period_end": now + timedelta(days=15),
        "cancel_at_period_end": False,
        "auto_renew": True,
    }
    doc.update(overrides)
    return doc


class TestProration:
    def test_upgrade_halfway_through_period(self):
        now = START + timedelta(days=15)
        assert calculate_proration(29, 79, START, END, now) == 25.0

    def test_downgrade_is_never_negative(self):
        now = START + timedelta(days=15)
        assert calculate_proration(79, 29, START, END, now) == 0

    def test_start_of_period_charges_full_difference(self):
        assert calculate_proration(29, 79, START, END, START) == 50.0

    def test_after_period_end_charges_nothing(self):
        assert calculate_proration(29, 79, START, END, END + timedelta(days=3)) == 0

    def test_empty_period_charges_new_price(self):
        assert calculate_proration(29, 79, START, START, START) == 79


@pytest.mark.parametrize("value,expected", [
    (True, True),
    (False, False),
    (5, True),
    (0, False),
    (None, True),
])
def test_feature_allowed(value, expected):
    assert feature_allowed(value) is expected


@pytest.mark.asyncio
async def test_current_assigns_free_plan_when_missing():
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=None)
    db.user_subscriptions.insert_one = AsyncMock()

    with patch(DB_PATH, return_value=db):
        subscription = await subscription_service.get_current("USR-1")

    assert subscription["plan_id"] == "plan_free"
    assert subscription["status"] == "active"
    db.user_subscriptions.insert_one.assert_awaited_once()


@pytest.mark.asyncio
async def test_upgrade_records_prorated_payment_and_plan_type():
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=_subscription())
    db.user_subscriptions.find_one_and_update = AsyncMock(return_value=_subscription(plan_id="plan_pro"))
    db.payment_records.insert_one = AsyncMock()
    db.user_credits.update_one = AsyncMock()
    db.usage_logs.insert_one = AsyncMock()

    with patch(DB_PATH, return_value=db):
        result = await subscription_service.upgrade("USR-1", UpgradeRequest(plan_id="plan_pro"))

    assert result["prorated_amount"] == pytest.approx(25.0, abs=0.01)
    assert result["payment"]["status"] == "completed"
    assert result["payment"]["metadata"]["to_plan"] == "plan_pro"
    update = db.user_credits.update_one.call_args[0][1]
    assert update["$set"]["plan_type"] == "pro"
    set_fields = db.user_subscriptions.find_one_and_update.call_args[0][1]["$set"]
    assert set_fields["plan_id"] == "plan_pro"
    assert "current_period_start" not in set_fields


@pytest.mark.asyncio
async def test_upgrade_to_same_plan_is_rejected():
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=_subscription())

    with patch(DB_PATH, return_value=db):
        with pytest.raises(InvoicingError) as exc:
            await subscription_service.upgrade("USR-1", UpgradeRequest(plan_id="plan_basic"))

    assert str(exc.value) == SAME_PLAN


@pytest.mark.asyncio
async def test_cancel_at_period_end_keeps_subscription_active():
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=_subscription())
    db.user_subscriptions.find_one_and_update = AsyncMock(
        return_value=_subscription(cancel_at_period_end=True)
    )
    db.usage_logs.insert_one = AsyncMock()

    with patch(DB_PATH, return_value=db):
        await subscription_service.cancel(
            "USR-1", CancelRequest(reason=CancellationReason.TOO_EXPENSIVE)
        )

    set_fields = db.user_subscriptions.find_one_and_update.call_args[0][1]["$set"]
    assert set_fields["cancel_at_period_end"] is True
    assert "status" not in set_fields
    assert set_fields["cancellation_reason"] == "too_expensive"


def test_cancel_twice_is_400():
    client = make_client(subscriptions_router)
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=_subscription(cancel_at_period_end=True))

    with patch(DB_PATH, return_value=db):
        response = client.post("/api/subscriptions/cancel", json={"reason": "not_using"})

    assert response.status_code == 400
    assert response.json()["detail"] == ALREADY_CANCELLED


def test_reactivate_without_pending_cancellation_is_404():
    client = make_client(subscriptions_router)
    db = MagicMock()
    db.user_subscriptions.find_one_and_update = AsyncMock(return_value=None)

    with patch(DB_PATH, return_value=db):
        response = client.post("/api/subscriptions/reactivate")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_process_period_ends_expires_and_renews():
    now = datetime(2026, 5, 1, 12, tzinfo=timezone.utc)
    lapsed = _subscription(
        subscription_id="SUB-FREE",
        plan_id="plan_free",
        auto_renew=False,
        current_period_start=now - timedelta(days=70),
        current_period_end=now - timedelta(days=40),
    )
    db = MagicMock()
    db.user_subscriptions.update_many = AsyncMock(return_value=MagicMock(modified_count=2))
    db.user_subscriptions.find = MagicMock(return_value=cursor([lapsed]))
    db.user_subscriptions.update_one = AsyncMock()

    with patch(DB_PATH, return_value=db):
        result = await subscription_service.process_period_ends(now)

    assert result == {"expired": 2, "renewed": 1}
    query, update = db.user_subscriptions.update_one.call_args[0]
    assert query == {"subscription_id": "SUB-FREE"}
    new_start = update["$set"]["current_period_start"]
    new_end = update["$set"]["current_period_end"]
    assert new_start <= now < new_end
    assert new_end - new_start == timedelta(days=30)


def test_plans_endpoint_needs_no_auth_and_is_sorted():
    client = make_client(subscriptions_router)
    response = client.get("/api/subscriptions/plans")

    assert response.status_code == 200
    names = [plan["name"] for plan in response.json()["plans"]]
    assert names == ["FREE", "BASIC", "PRO"]


def test_feature_check_for_free_plan():
    client = make_client(subscriptions_router)
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=_subscription(plan_id="plan_free"))

    with patch(DB_PATH, return_value=db):
        allowed = client.get("/api/subscriptions/features/can_export_pdf")
        denied = client.get("/api/subscriptions/features/can_use_api")
        unknown = client.get("/api/subscriptions/features/teleport")

    assert allowed.json() == {"feature": "can_export_pdf", "allowed": True}
    assert denied.json() == {"feature": "can_use_api", "allowed": False}
    assert unknown.status_code == 400
    assert unknown.json()["detail"] == UNKNOWN_FEATURE


@pytest.mark.asyncio
async def test_immediate_cancel_resets_credit_plan_type():
    db = MagicMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=_subscription(plan_id="plan_pro"))
    db.user_subscriptions.find_one_and_update = AsyncMock(
        return_value=_subscription(plan_id="plan_pro", status="cancelled")
    )
    db.user_credits.update_one = AsyncMock()
    db.usage_logs.insert_one = AsyncMock()

    with patch(DB_PATH, return_value=db):
        await subscription_service.cancel(
            "USR-1", CancelRequest(reason=CancellationReason.NOT_USING, cancel_immediately=True)
        )

    set_fields = db.user_subscriptions.find_one_and_update.call_args[0][1]["$set"]
    assert set_fields["status"] == "cancelled"
    query, update = db.user_credits.update_one.call_args[0]
    assert query == {"user_id": "USR-1"}
    assert update["$set"]["plan_type"] == "free"
