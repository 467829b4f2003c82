"""Service Catalogue Routes

Endpoints:
- GET /api/services - Paginated catalogue with usage statistics
- POST /api/services - Create a service
- GET /api/services/search - Search services for invoice lines
- GET /api/services/stats - Usage and revenue per service
- GET /api/services/{service_id} - Service detail with recent usage
- PUT /api/services/{service_id} - Update a service
- DELETE /api/services/{service_id} - Delete (or deactivate) a service
- PATCH /api/services/{service_id}/toggle-status - Activate/deactivate
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.models.service import ServiceCreate, ServiceUpdate
from invoicing.models.subscriptions import UsageAction, UsageResource
from invoicing.services.catalog_service import catalog_service
from invoicing.services.subscription_service import subscription_service
from middleware import require_auth, get_current_company

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/services", tags=["Services"])


@router.get("")
async def list_services(
    search: Optional[str] = Query(None, max_length=100),
    status: str = Query("all", pattern="^(all|active|inactive)$"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: str = Query("name", pattern="^(name|default_price|created_at)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    company: dict = Depends(get_current_company),
):
    try:
        return await catalog_service.list_services(
            company["company_id"],
            search=search,
            status=status,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except Exception as e:
        logger.error(f"Service list failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("", status_code=201)
async def create_service(
    data: ServiceCreate,
    user: dict = Depends(require_auth),
    company: dict = Depends(get_current_company),
):
    try:
        service = await catalog_service.create(company["company_id"], data)
        await subscription_service.log_usage(
            user["user_id"], UsageAction.CREATE, UsageResource.PRODUCT, service["service_id"]
        )
        return service
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Service create failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/search")
async def search_services(
    q: Optional[str] = Query(None, max_length=100),
    limit: int = Query(10, ge=1, le=50),
    active_only: bool = False,
    company: dict = Depends(get_current_company),
):
    try:
        return await catalog_service.search(company["company_id"], q, limit, active_only)
    except Exception as e:
        logger.error(f"Service search failed: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/stats")
async def services_stats(
    limit: int = Query(10, ge=1, le=100),
    company: dict = Depends(get_current_company),
):
    try:
        return await catalog_service.stats(company["company_id"], limit)
    except Exception as e:
        logger.error(f"Service stats failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{service_id}")
async def get_service(service_id: str, company: dict = Depends(get_current_company)):
    try:
        return await catalog_service.get_detail(company["company_id"], service_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Service detail failed for {service_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.put("/{service_id}")
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    company: dict = Depends(get_current_company),
):
    try:
        return await catalog_service.update(company["company_id"], service_id, data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Service update failed for {service_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.delete("/{service_id}")
async def delete_service(service_id: str, company: dict = Depends(get_current_company)):
    try:
        return await catalog_service.delete(company["company_id"], service_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Service delete failed for {service_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.patch("/{service_id}/toggle-status")
async def toggle_service_status(service_id: str, company: dict = Depends(get_current_company)):
    try:
        return await catalog_service.toggle_status(company["company_id"], service_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Service status toggle failed for {service_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
