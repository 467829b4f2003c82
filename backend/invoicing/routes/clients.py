"""Client Routes

Endpoints:
- GET /api/clients - Paginated client list with invoice statistics
- POST /api/clients - Create a client
- GET /api/clients/search - Autocomplete over active clients
- GET /api/clients/stats - Company-wide client statistics
- GET /api/clients/{client_id} - Client detail with recent invoices
- PUT /api/clients/{client_id} - Update a client
- DELETE /api/clients/{client_id} - Delete (or deactivate) a client
- PATCH /api/clients/{client_id}/toggle-status - Activate/deactivate
- GET /api/clients/{client_id}/stats - Detailed client analytics
- GET /api/clients/{client_id}/invoices - A client's invoices
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from datetime import date
from typing import Optional
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.models.client import ClientCreate, ClientUpdate, ClientType
from invoicing.models.invoice import InvoiceStatus
from invoicing.models.subscriptions import UsageAction, UsageResource
from invoicing.services.client_service import client_service
from invoicing.services.subscription_service import subscription_service
from middleware import require_auth, get_current_company

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["Clients"])


@router.get("")
async def list_clients(
    search: Optional[str] = Query(None, max_length=100),
    type: Optional[ClientType] = None,
    status: str = Query("all", pattern="^(all|active|inactive)$"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: str = Query("name", pattern="^(name|created_at|last_invoice_date)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    company: dict = Depends(get_current_company),
):
    try:
        return await client_service.list_clients(
            company["company_id"],
            search=search,
            client_type=type.value if type else None,
            status=status,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except Exception as e:
        logger.error(f"Client list failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("", status_code=201)
async def create_client(
    data: ClientCreate,
    user: dict = Depends(require_auth),
    company: dict = Depends(get_current_company),
):
    try:
        client = await client_service.create(company["company_id"], data)
        await subscription_service.log_usage(
            user["user_id"], UsageAction.CREATE, UsageResource.CLIENT, client["client_id"]
        )
        return client
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client create failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


# Static paths must be declared before /{client_id}

@router.get("/search")
async def search_clients(
    q: str = Query(..., min_length=1, max_length=50),
    limit: int = Query(10, ge=1, le=20),
    company: dict = Depends(get_current_company),
):
    try:
        return await client_service.search(company["company_id"], q, limit)
    except Exception as e:
        logger.error(f"Client search failed: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/stats")
async def clients_stats(company: dict = Depends(get_current_company)):
    try:
        return await client_service.stats(company["company_id"])
    except Exception as e:
        logger.error(f"Client stats failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{client_id}")
async def get_client(client_id: str, company: dict = Depends(get_current_company)):
    try:
        return await client_service.get_detail(company["company_id"], client_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client detail failed for {client_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.put("/{client_id}")
async def update_client(
    client_id: str,
    data: ClientUpdate,
    company: dict = Depends(get_current_company),
):
    try:
        return await client_service.update(company["company_id"], client_id, data)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client update failed for {client_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.delete("/{client_id}")
async def delete_client(client_id: str, company: dict = Depends(get_current_company)):
    try:
        return await client_service.delete(company["company_id"], client_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client delete failed for {client_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.patch("/{client_id}/toggle-status")
async def toggle_client_status(client_id: str, company: dict = Depends(get_current_company)):
    try:
        return await client_service.toggle_status(company["company_id"], client_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client status toggle failed for {client_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{client_id}/stats")
async def client_stats(client_id: str, company: dict = Depends(get_current_company)):
    try:
        return await client_service.client_stats(company["company_id"], client_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client analytics failed for {client_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{client_id}/invoices")
async def client_invoices(
    client_id: str,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    company: dict = Depends(get_current_company),
):
    if status and status != "all" and status not in {s.value for s in InvoiceStatus}:
        raise HTTPException(status_code=400, detail="არასწორი სტატუსი")
    try:
        return await client_service.client_invoices(
            company["company_id"],
            client_id,
            status=status,
            date_from=str(date_from) if date_from else None,
            date_to=str(date_to) if date_to else None,
            limit=limit,
            offset=offset,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Client invoices failed for {client_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
