"""Invoice export formats and the Cache-Control middleware."""
import io

from fastapi import FastAPI, Response
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from invoicing.services.export_service import (
    EXPORT_COLUMNS,
    CSV_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    export_invoices,
    format_csv,
    format_xlsx,
)
from utils.cache_policy import (
    CACHE_FIRST,
    NETWORK_FIRST,
    CachePolicyMiddleware,
    cache_control_for,
)

ROWS = [
    {"invoice_number": "INV-2026-0001", "client_name": "შპს კლიენტი", "status": "paid", "total": 118.0},
    {"invoice_number": "INV-2026-0002", "client_name": "ნინო", "status": "sent", "total": 59.0},
]


def test_csv_has_bom_and_georgian_headers():
    content = format_csv(ROWS)
    assert content.startswith(b"\xef\xbb\xbf")
    lines = content.decode("utf-8-sig").splitlines()
    assert lines[0].split(",")[0] == EXPORT_COLUMNS[0][1]
    assert lines[1].startswith("INV-2026-0001")
    assert len(lines) == 3


def test_xlsx_is_a_workbook_with_header_row():
    content = format_xlsx(ROWS)
    assert content[:2] == b"PK"
    ws = load_workbook(io.BytesIO(content)).active
    assert ws.cell(row=1, column=1).value == "ნომერი"
    assert ws.cell(row=3, column=1).value == "INV-2026-0002"
    assert ws.freeze_panes == "A2"


def test_export_invoices_picks_format():
    _, media_type, filename = export_invoices(ROWS, "xlsx")
    assert media_type == XLSX_MEDIA_TYPE
    assert filename.endswith(".xlsx")

    _, media_type, filename = export_invoices(ROWS, "csv")
    assert media_type == CSV_MEDIA_TYPE
    assert filename.startswith("invoices_") and filename.endswith(".csv")


def test_cache_control_by_path():
    assert cache_control_for("/api/invoices") == NETWORK_FIRST
    assert cache_control_for("/api") == NETWORK_FIRST
    assert cache_control_for("/dashboard/clients") == NETWORK_FIRST
    assert cache_control_for("/_next/static/chunk.js") == CACHE_FIRST
    assert cache_control_for("/logo.PNG") == CACHE_FIRST
    assert cache_control_for("/invoice/abc") is None


def _middleware_client():
    app = FastAPI()
    app.add_middleware(CachePolicyMiddleware)

    @app.get("/api/plain")
    async def plain():
        return {"ok": True}

    @app.get("/api/explicit")
    async def explicit():
        return Response(content=b"pdf", headers={"Cache-Control": "no-store"})

    @app.get("/static/app.css")
    async def stylesheet():
        return Response(content=b"body{}", media_type="text/css")

    return TestClient(app)


def test_middleware_stamps_missing_header():
    client = _middleware_client()
    assert client.get("/api/plain").headers["cache-control"] == NETWORK_FIRST
    assert client.get("/static/app.css").headers["cache-control"] == CACHE_FIRST


def test_middleware_keeps_explicit_header():
    client = _middleware_client()
    assert client.get("/api/explicit").headers["cache-control"] == "no-store"
