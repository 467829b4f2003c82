"""Invoice arithmetic and reporting helpers.

Pure functions over plain invoice dicts; no database access. Money is rounded
half-up to two decimals.
"""

from datetime import datetime, date, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, List, Iterable, Optional, Tuple
import math

from invoicing.models.invoice import InvoiceStatus

GEORGIAN_MONTHS = [
    "იანვარი", "თებერვალი", "მარტი", "აპრილი", "მაისი", "ივნისი",
    "ივლისი", "აგვისტო", "სექტემბერი", "ოქტომბერი", "ნოემბერი", "დეკემბერი",
]

PENDING_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value)


def round_money(value: float) -> float:
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_line_total(quantity: float, unit_price: float) -> float:
    return round_money(quantity * unit_price)


def calculate_invoice_totals(items: Iterable[Dict[str, Any]], vat_rate: float = 0) -> Dict[str, float]:
    """Return subtotal, vat_amount and total for a list of line dicts.

    A line's explicit line_total wins over quantity * unit_price.
    """
    subtotal = 0.0
    for item in items:
        line_total = item.get("line_total") or calculate_line_total(item["quantity"], item["unit_price"])
        subtotal += line_total

    vat_amount = subtotal * ((vat_rate or 0) / 100)
    total = subtotal + vat_amount

    return {
        "subtotal": round_money(subtotal),
        "vat_amount": round_money(vat_amount),
        "total": round_money(total),
    }


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def parse_day(value) -> Optional[date]:
    """Accept date, datetime or an ISO string and return a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_overdue(invoice: Dict[str, Any], today: Optional[str] = None) -> bool:
    """Overdue is stored explicitly or derived: sent and past its due date."""
    status = invoice.get("status")
    if status == InvoiceStatus.OVERDUE.value:
        return True
    due_date = invoice.get("due_date")
    return status == InvoiceStatus.SENT.value and bool(due_date) and str(due_date)[:10] < (today or today_iso())


def days_overdue(invoice: Dict[str, Any], today: Optional[str] = None) -> int:
    if not is_overdue(invoice, today):
        return 0
    due = parse_day(invoice.get("due_date"))
    if due is None:
        return 0
    return max(0, (parse_day(today or today_iso()) - due).days)


def sum_totals(invoices: Iterable[Dict[str, Any]]) -> float:
    return sum(float(inv.get("total") or 0) for inv in invoices)


def build_pagination(total: int, limit: int, offset: int) -> Dict[str, int]:
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "page": offset // limit + 1 if limit else 1,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def payment_rating(on_time: int, paid_count: int) -> str:
    if paid_count == 0:
        return "new"
    on_time_percentage = on_time / paid_count * 100
    if on_time_percentage >= 90:
        return "excellent"
    if on_time_percentage >= 70:
        return "good"
    if on_time_percentage >= 50:
        return "fair"
    return "poor"


def _paid_delay_days(invoice: Dict[str, Any], since_field: str) -> int:
    paid = parse_day(invoice.get("paid_at"))
    since = parse_day(invoice.get(since_field))
    return (paid - since).days


def calculate_payment_behavior(invoices: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Summarise how promptly a client pays.

    average_payment_days counts only days paid after the due date.
    """
    paid = [inv for inv in invoices if inv.get("status") == InvoiceStatus.PAID.value and inv.get("paid_at")]
    if not paid:
        return {
            "average_payment_days": 0,
            "on_time_payments": 0,
            "late_payments": 0,
            "payment_rating": "new",
        }

    total_days = 0
    on_time = 0
    late = 0
    for invoice in paid:
        days_after_due = _paid_delay_days(invoice, "due_date")
        total_days += max(0, days_after_due)
        if days_after_due <= 0:
            on_time += 1
        else:
            late += 1

    return {
        "average_payment_days": round(total_days / len(paid)),
        "on_time_payments": on_time,
        "late_payments": late,
        "payment_rating": payment_rating(on_time, len(paid)),
    }


def calculate_detailed_payment_behavior(invoices: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Payment behaviour for the per-client statistics page.

    Here average_payment_days is measured from the issue date, and payments
    more than 30 days past due are also counted as very late.
    """
    total_invoices = len(invoices)
    paid = [inv for inv in invoices if inv.get("status") == InvoiceStatus.PAID.value]
    paid_with_dates = [inv for inv in paid if inv.get("paid_at")]

    total_days = 0
    on_time = late = very_late = 0
    for invoice in paid_with_dates:
        total_days += max(0, _paid_delay_days(invoice, "issue_date"))
        days_after_due = _paid_delay_days(invoice, "due_date")
        if days_after_due <= 0:
            on_time += 1
        else:
            late += 1
            if days_after_due > 30:
                very_late += 1

    return {
        "average_payment_days": round(total_days / len(paid_with_dates)) if paid_with_dates else 0,
        "on_time_payments": on_time,
        "late_payments": late,
        "very_late_payments": very_late,
        "payment_rate": f"{len(paid) / total_invoices * 100:.1f}%" if total_invoices else "0%",
        "on_time_rate": f"{on_time / len(paid_with_dates) * 100:.1f}%" if paid_with_dates else "0%",
    }


def last_months(count: int, now: Optional[datetime] = None) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last ``count`` months, oldest first, current month last."""
    now = now or datetime.now(timezone.utc)
    year, month = now.year, now.month
    months = []
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def month_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def client_monthly_breakdown(invoices: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Twelve-month invoice breakdown for one client, keyed by issue month."""
    today = (now or datetime.now(timezone.utc)).date().isoformat()
    breakdown = {}
    for year, month in last_months(12, now):
        key = month_key(year, month)
        breakdown[key] = {
            "month": key,
            "invoice_count": 0,
            "total_amount": 0.0,
            "paid_amount": 0.0,
            "pending_amount": 0.0,
            "overdue_amount": 0.0,
            "invoices": [],
        }

    for invoice in invoices:
        key = str(invoice.get("issue_date") or "")[:7]
        bucket = breakdown.get(key)
        if bucket is None:
            continue
        amount = float(invoice.get("total") or 0)
        bucket["invoice_count"] += 1
        bucket["total_amount"] += amount
        if invoice.get("status") == InvoiceStatus.PAID.value:
            bucket["paid_amount"] += amount
        elif is_overdue(invoice, today):
            bucket["overdue_amount"] += amount
        elif invoice.get("status") in PENDING_STATUSES:
            bucket["pending_amount"] += amount
        bucket["invoices"].append({
            "invoice_id": invoice.get("invoice_id"),
            "invoice_number": invoice.get("invoice_number"),
            "amount": invoice.get("total"),
            "status": invoice.get("status"),
        })

    return list(breakdown.values())


def revenue_trends(invoices: List[Dict[str, Any]], period: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Monthly revenue series plus summary for the last ``period`` months."""
    monthly_data = []
    for year, month in last_months(period, now):
        key = month_key(year, month)
        month_invoices = [inv for inv in invoices if str(inv.get("issue_date") or "")[:7] == key]
        paid = [inv for inv in month_invoices if inv.get("status") == InvoiceStatus.PAID.value]
        pending = [
            inv for inv in month_invoices
            if inv.get("status") in (InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value)
        ]
        monthly_data.append({
            "month": GEORGIAN_MONTHS[month - 1],
            "fullMonth": f"{GEORGIAN_MONTHS[month - 1]} {year}",
            "date": date(year, month, 1).isoformat(),
            "totalRevenue": round_money(sum_totals(month_invoices)),
            "paidRevenue": round_money(sum_totals(paid)),
            "pendingRevenue": round_money(sum_totals(pending)),
            "invoiceCount": len(month_invoices),
            "paidCount": len(paid),
        })

    period_revenue = sum(m["totalRevenue"] for m in monthly_data)
    first, last = monthly_data[0], monthly_data[-1]
    if first["totalRevenue"] > 0:
        growth = (last["totalRevenue"] - first["totalRevenue"]) / first["totalRevenue"] * 100
    else:
        growth = 100 if last["totalRevenue"] > 0 else 0

    return {
        "period": period,
        "monthlyData": monthly_data,
        "summary": {
            "totalRevenue": round_money(period_revenue),
            "averageMonthlyRevenue": round_money(period_revenue / len(monthly_data)),
            "growthPercentage": round_money(growth),
            "totalInvoices": sum(m["invoiceCount"] for m in monthly_data),
            "bestMonth": max(monthly_data, key=lambda m: m["totalRevenue"]),
            "worstMonth": min(monthly_data, key=lambda m: m["totalRevenue"]),
        },
    }
