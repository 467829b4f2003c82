"""Service catalogue routes: partial updates and name uniqueness."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from invoicing.routes.services import router as services_router
from invoicing.services.catalog_service import DUPLICATE_SERVICE
from tests.conftest import make_client, TEST_COMPANY

DB_PATH = "invoicing.services.catalog_service.database.get_db"


def _service_doc(**overrides):
    doc = {
        "service_id": "SRV-A",
        "company_id": TEST_COMPANY["company_id"],
        "name": "კონსულტაცია",
        "default_price": 50.0,
        "unit": "საათი",
        "is_active": True,
    }
    doc.update(overrides)
    return doc


@pytest.mark.parametrize("body", [
    {"name": None},
    {"unit": None},
    {"default_price": None},
    {"is_active": None},
])
def test_update_rejects_null_for_required_fields(body):
    client = make_client(services_router)
    db = MagicMock()
    db.services.find_one = AsyncMock(return_value=_service_doc())
    db.services.find_one_and_update = AsyncMock()
    with patch(DB_PATH, return_value=db):
        response = client.put("/api/services/SRV-A", json=body)

    assert response.status_code == 400
    db.services.find_one_and_update.assert_not_called()


def test_update_applies_only_sent_fields():
    client = make_client(services_router)
    db = MagicMock()
    db.services.find_one = AsyncMock(return_value=_service_doc())
    db.services.find_one_and_update = AsyncMock(return_value=_service_doc(default_price=75.0, description=None))
    with patch(DB_PATH, return_value=db):
        response = client.put("/api/services/SRV-A", json={"default_price": 75, "description": None})

    assert response.status_code == 200
    query, update = db.services.find_one_and_update.call_args[0]
    assert query == {"service_id": "SRV-A", "company_id": TEST_COMPANY["company_id"]}
    assert set(update["$set"]) == {"default_price", "description", "updated_at"}


def test_rename_to_existing_name_conflicts():
    client = make_client(services_router)
    db = MagicMock()
    db.services.find_one = AsyncMock(side_effect=[_service_doc(), {"service_id": "SRV-B"}])
    db.services.find_one_and_update = AsyncMock()
    with patch(DB_PATH, return_value=db):
        response = client.put("/api/services/SRV-A", json={"name": "დიზაინი"})

    assert response.status_code == 409
    assert response.json()["detail"] == DUPLICATE_SERVICE
    db.services.find_one_and_update.assert_not_called()
