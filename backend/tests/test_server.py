"""App wiring: health endpoints, headers, validation shape and the scheduled job."""
from unittest.mock import AsyncMock, patch

import pytest

from invoicing import __version__
from job_runner import run_subscription_period_check


def test_root_and_health(client):
    root = client.get("/api")
    assert root.status_code == 200
    assert root.json()["version"] == __version__
    assert root.headers["cache-control"] == "no-cache"

    health = client.get("/api/health")
    assert health.json()["status"] == "healthy"


def test_protected_route_without_token_is_401(client):
    response = client.get("/api/invoices")
    assert response.status_code == 401


def test_plans_are_public(client):
    response = client.get("/api/subscriptions/plans")
    assert response.status_code == 200
    assert len(response.json()["plans"]) == 3


def test_validation_errors_are_400_with_details(client):
    response = client.post("/api/auth/login", json={"email": "not-an-email"})
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "არასწორი მონაცემები"
    assert body["errors"]


@pytest.mark.asyncio
async def test_subscription_period_job_reports_counts():
    with patch(
        "invoicing.services.subscription_service.subscription_service.process_period_ends",
        AsyncMock(return_value={"expired": 1, "renewed": 3}),
    ):
        result = await run_subscription_period_check()

    assert result["expired"] == 1
    assert result["renewed"] == 3
    assert "renewed: 3" in result["message"]


@pytest.mark.asyncio
async def test_subscription_period_job_reraises():
    with patch(
        "invoicing.services.subscription_service.subscription_service.process_period_ends",
        AsyncMock(side_effect=RuntimeError("db down")),
    ):
        with pytest.raises(RuntimeError):
            await run_subscription_period_check()
