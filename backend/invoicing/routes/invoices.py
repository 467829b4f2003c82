"""Invoice Routes

Endpoints:
- GET /api/invoices - Filtered, paginated invoice list
- POST /api/invoices - Create an invoice (consumes one credit)
- GET /api/invoices/export - CSV/XLSX export of the filtered list
- GET /api/invoices/stats - Dashboard totals
- GET /api/invoices/revenue-trends - Monthly revenue for 1/3/6/12 months
- GET /api/invoices/{invoice_id} - Invoice detail
- PUT /api/invoices/{invoice_id} - Update a draft or sent invoice
- DELETE /api/invoices/{invoice_id} - Cancel a draft and refund its credit
- PATCH /api/invoices/{invoice_id}/status - Change status
- POST /api/invoices/{invoice_id}/duplicate - Copy as a new draft (consumes one credit)
- POST /api/invoices/{invoice_id}/send - Email the invoice
- GET /api/invoices/{invoice_id}/pdf - Authenticated PDF download
- GET /api/invoices/{invoice_id}/pdf-url - Shareable PDF link
- GET /api/invoices/{invoice_id}/pdf/public - Token-protected PDF (no auth)
- POST /api/invoices/{invoice_id}/public-link - Enable/rotate the public link
- DELETE /api/invoices/{invoice_id}/public-link - Disable the public link
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import Response, StreamingResponse
from datetime import date, datetime, timezone
from typing import Optional
import logging

from invoicing.errors import GENERIC_ERROR, http_error
from invoicing.models.invoice import (
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceStatusUpdate,
    SendInvoiceRequest,
    PublicLinkRequest,
)
from invoicing.models.subscriptions import UsageAction, UsageResource
from invoicing.services.email_service import email_service, sanitize_recipients
from invoicing.services.export_service import export_invoices
from invoicing.services.invoice_service import invoice_service
from invoicing.services.pdf_service import pdf_renderer, pdf_filename
from invoicing.services.subscription_service import subscription_service
from middleware import require_auth, get_current_company, enforce_plan_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invoices", tags=["Invoices"])

NO_RECIPIENT = "მიმღების ელ.ფოსტა მითითებული არ არის"
SEND_OK = "ინვოისი წარმატებით გაიგზავნა"
SEND_FAILED = "ინვოისის გაგზავნა ვერ მოხერხდა"

STATUS_FILTER = "^(all|draft|sent|paid|overdue|cancelled)$"

PUBLIC_PDF_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Robots-Tag": "noindex, nofollow",
}


@router.get("")
async def list_invoices(
    status: str = Query("all", pattern=STATUS_FILTER),
    client_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: str = Query("issue_date", pattern="^(issue_date|due_date|total|status|client)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    company: dict = Depends(get_current_company),
):
    try:
        return await invoice_service.list_invoices(
            company["company_id"],
            status=status,
            client_id=client_id,
            date_from=date_from,
            date_to=date_to,
            search=search,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except Exception as e:
        logger.error(f"Invoice list failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("", status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    user: dict = Depends(enforce_plan_rate_limit),
    company: dict = Depends(get_current_company),
):
    try:
        invoice = await invoice_service.create(user["user_id"], company, data)
        await subscription_service.log_usage(
            user["user_id"],
            UsageAction.CREATE,
            UsageResource.INVOICE,
            invoice["invoice_id"],
            {"total": invoice.get("total"), "currency": invoice.get("currency")},
        )
        return invoice
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice create failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/export")
async def export_invoice_list(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    status: str = Query("all", pattern=STATUS_FILTER),
    client_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=100),
    user: dict = Depends(require_auth),
    company: dict = Depends(get_current_company),
):
    try:
        rows = await invoice_service.export_rows(
            company["company_id"],
            status=status,
            client_id=client_id,
            date_from=date_from,
            date_to=date_to,
            search=search,
        )
        content, media_type, filename = export_invoices(rows, format)
        await subscription_service.log_usage(
            user["user_id"], UsageAction.EXPORT, UsageResource.INVOICE,
            metadata={"format": format, "rows": len(rows)},
        )
    except Exception as e:
        logger.error(f"Invoice export failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)

    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/stats")
async def invoice_stats(company: dict = Depends(get_current_company)):
    try:
        return await invoice_service.stats(company["company_id"])
    except Exception as e:
        logger.error(f"Invoice stats failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/revenue-trends")
async def revenue_trends(
    period: int = 6,
    company: dict = Depends(get_current_company),
):
    try:
        return await invoice_service.revenue_trends(company["company_id"], period)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Revenue trends failed for {company['company_id']}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: str, company: dict = Depends(get_current_company)):
    try:
        return await invoice_service.get_detail(company, invoice_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice detail failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.put("/{invoice_id}")
async def update_invoice(
    invoice_id: str,
    data: InvoiceUpdate,
    user: dict = Depends(require_auth),
    company: dict = Depends(get_current_company),
):
    try:
        invoice = await invoice_service.update(company, invoice_id, data)
        await subscription_service.log_usage(
            user["user_id"], UsageAction.UPDATE, UsageResource.INVOICE, invoice_id
        )
        return invoice
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice update failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: str,
    user: dict = Depends(require_auth),
    company: dict = Depends(get_current_company),
):
    try:
        result = await invoice_service.delete(user["user_id"], company["company_id"], invoice_id)
        await subscription_service.log_usage(
            user["user_id"], UsageAction.DELETE, UsageResource.INVOICE, invoice_id
        )
        return result
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice delete failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.patch("/{invoice_id}/status")
async def change_invoice_status(
    invoice_id: str,
    data: InvoiceStatusUpdate,
    company: dict = Depends(get_current_company),
):
    try:
        return await invoice_service.change_status(company["company_id"], invoice_id, data.status)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice status change failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("/{invoice_id}/duplicate", status_code=201)
async def duplicate_invoice(
    invoice_id: str,
    user: dict = Depends(enforce_plan_rate_limit),
    company: dict = Depends(get_current_company),
):
    try:
        result = await invoice_service.duplicate(user["user_id"], company, invoice_id)
        await subscription_service.log_usage(
            user["user_id"],
            UsageAction.CREATE,
            UsageResource.INVOICE,
            result["invoice"]["invoice_id"],
            {"duplicated_from": invoice_id},
        )
        return result
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice duplicate failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.post("/{invoice_id}/send")
async def send_invoice(
    invoice_id: str,
    data: SendInvoiceRequest,
    user: dict = Depends(enforce_plan_rate_limit),
    company: dict = Depends(get_current_company),
):
    try:
        detail = await invoice_service.get_detail(company, invoice_id)

        to = sanitize_recipients(data.to)
        if not to:
            to = sanitize_recipients([(detail.get("client") or {}).get("email")])
        if not to:
            raise HTTPException(status_code=400, detail=NO_RECIPIENT)
        cc, bcc = sanitize_recipients(data.cc), sanitize_recipients(data.bcc)

        await email_service.check_hourly_limit(user["user_id"], len(to) + len(cc) + len(bcc))

        pdf_bytes = pdf_renderer.render(detail) if data.attach_pdf else None
        result = await email_service.send_invoice(
            user["user_id"],
            detail,
            to=to,
            cc=cc,
            bcc=bcc,
            subject=data.subject,
            message=data.message,
            pdf_bytes=pdf_bytes,
            pdf_name=pdf_filename(detail),
        )

        if result["success"]:
            await invoice_service.mark_sent(company["company_id"], invoice_id)
            await subscription_service.log_usage(
                user["user_id"], UsageAction.SEND, UsageResource.INVOICE, invoice_id,
                {"recipients": len(to) + len(cc) + len(bcc)},
            )

        return {
            "success": result["success"],
            "messageId": result["message_id"],
            "message": SEND_OK if result["success"] else SEND_FAILED,
            "recipients": result["recipients"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Invoice send failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{invoice_id}/pdf")
async def download_pdf(invoice_id: str, company: dict = Depends(get_current_company)):
    try:
        detail = await invoice_service.get_detail(company, invoice_id)
        content = pdf_renderer.render(detail)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"PDF generation failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)

    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{pdf_filename(detail)}"'},
    )


@router.get("/{invoice_id}/pdf-url")
async def get_pdf_url(
    invoice_id: str,
    user: dict = Depends(require_auth),
    company: dict = Depends(get_current_company),
):
    try:
        await invoice_service.get(company["company_id"], invoice_id)
        return invoice_service.pdf_url(invoice_id, user["user_id"])
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"PDF url failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.get("/{invoice_id}/pdf/public")
async def public_pdf(invoice_id: str, token: Optional[str] = None):
    """PDF for link holders. No auth; the token is the credential."""
    try:
        detail = await invoice_service.resolve_public_pdf(invoice_id, token)
        content = pdf_renderer.render(detail)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Public PDF failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)

    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            **PUBLIC_PDF_HEADERS,
            "Content-Disposition": f'inline; filename="{pdf_filename(detail)}"',
        },
    )


@router.post("/{invoice_id}/public-link")
async def enable_public_link(
    invoice_id: str,
    data: Optional[PublicLinkRequest] = None,
    company: dict = Depends(get_current_company),
):
    try:
        return await invoice_service.enable_public_link(
            company["company_id"], invoice_id, data or PublicLinkRequest()
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Public link enable failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


@router.delete("/{invoice_id}/public-link")
async def disable_public_link(invoice_id: str, company: dict = Depends(get_current_company)):
    try:
        return await invoice_service.disable_public_link(company["company_id"], invoice_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Public link disable failed for {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
