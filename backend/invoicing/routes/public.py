"""Public Invoice Routes

Endpoints:
- GET /api/public/invoices/{token} - Read-only invoice for link holders (no auth)
"""

from fastapi import APIRouter, HTTPException
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.services.invoice_service import invoice_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public", tags=["Public"])


@router.get("/invoices/{token}")
async def get_public_invoice(token: str):
    try:
        return await invoice_service.get_public_invoice(token)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Public invoice lookup failed: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
