"""Invoice arithmetic, overdue derivation and reporting helpers."""
from datetime import datetime, timezone

import pytest

from invoicing.services.calculations import (
    round_money,
    calculate_line_total,
    calculate_invoice_totals,
    is_overdue,
    days_overdue,
    build_pagination,
    payment_rating,
    calculate_payment_behavior,
    calculate_detailed_payment_behavior,
    last_months,
    revenue_trends,
    client_monthly_breakdown,
)


class TestTotals:
    def test_round_money_half_up(self):
        assert round_money(2.675) == 2.68
        assert round_money(1.005) == 1.01
        assert round_money(None) == 0

    def test_line_total(self):
        assert calculate_line_total(3, 33.333) == 100.0
        assert calculate_line_total(0.5, 10.01) == 5.01

    def test_invoice_totals_with_vat(self):
        items = [
            {"quantity": 2, "unit_price": 50},
            {"quantity": 1, "unit_price": 19.99},
        ]
        totals = calculate_invoice_totals(items, 18)
        assert totals == {"subtotal": 119.99, "vat_amount": 21.6, "total": 141.59}

    def test_invoice_totals_zero_vat(self):
        totals = calculate_invoice_totals([{"quantity": 1, "unit_price": 100}], 0)
        assert totals["vat_amount"] == 0
        assert totals["total"] == totals["subtotal"] == 100


class TestOverdue:
    TODAY = "2026-03-15"

    def test_sent_past_due_is_overdue(self):
        assert is_overdue({"status": "sent", "due_date": "2026-03-14"}, self.TODAY)

    def test_sent_due_today_is_not_overdue(self):
        assert not is_overdue({"status": "sent", "due_date": "2026-03-15"}, self.TODAY)

    @pytest.mark.parametrize("status", ["draft", "paid", "cancelled"])
    def test_other_statuses_never_derived_overdue(self, status):
        assert not is_overdue({"status": status, "due_date": "2020-01-01"}, self.TODAY)

    def test_explicit_overdue_status(self):
        assert is_overdue({"status": "overdue", "due_date": "2030-01-01"}, self.TODAY)

    def test_days_overdue(self):
        assert days_overdue({"status": "sent", "due_date": "2026-03-05"}, self.TODAY) == 10
        assert days_overdue({"status": "paid", "due_date": "2026-03-05"}, self.TODAY) == 0


def test_pagination():
    assert build_pagination(25, 10, 20) == {
        "total": 25, "limit": 10, "offset": 20, "page": 3, "totalPages": 3,
    }
    assert build_pagination(0, 10, 0)["totalPages"] == 0


@pytest.mark.parametrize("on_time,paid,expected", [
    (0, 0, "new"),
    (9, 10, "excellent"),
    (7, 10, "good"),
    (5, 10, "fair"),
    (4, 10, "poor"),
])
def test_payment_rating(on_time, paid, expected):
    assert payment_rating(on_time, paid) == expected


def test_payment_behavior_counts_late_days_only():
    invoices = [
        {"status": "paid", "due_date": "2026-01-10", "paid_at": "2026-01-08T10:00:00"},
        {"status": "paid", "due_date": "2026-01-10", "paid_at": "2026-01-20T10:00:00"},
        {"status": "sent", "due_date": "2026-01-10"},
    ]
    behavior = calculate_payment_behavior(invoices)
    assert behavior["on_time_payments"] == 1
    assert behavior["late_payments"] == 1
    assert behavior["average_payment_days"] == 5
    assert behavior["payment_rating"] == "fair"


def test_payment_behavior_without_paid_invoices_is_new():
    assert calculate_payment_behavior([{"status": "sent"}])["payment_rating"] == "new"


def test_detailed_behavior_counts_very_late():
    invoices = [
        {"status": "paid", "issue_date": "2026-01-01", "due_date": "2026-01-15",
         "paid_at": datetime(2026, 3, 1, tzinfo=timezone.utc)},
        {"status": "paid", "issue_date": "2026-01-01", "due_date": "2026-01-15",
         "paid_at": datetime(2026, 1, 10, tzinfo=timezone.utc)},
    ]
    behavior = calculate_detailed_payment_behavior(invoices)
    assert behavior["very_late_payments"] == 1
    assert behavior["late_payments"] == 1
    assert behavior["on_time_payments"] == 1
    assert behavior["payment_rate"] == "100.0%"


def test_last_months_wraps_year():
    now = datetime(2026, 2, 10, tzinfo=timezone.utc)
    assert last_months(3, now) == [(2025, 12), (2026, 1), (2026, 2)]


def test_revenue_trends_summary():
    now = datetime(2026, 3, 10, tzinfo=timezone.utc)
    invoices = [
        {"issue_date": "2026-01-05", "total": 100, "status": "paid"},
        {"issue_date": "2026-03-02", "total": 300, "status": "sent"},
    ]
    result = revenue_trends(invoices, 3, now)
    assert [m["totalRevenue"] for m in result["monthlyData"]] == [100, 0, 300]
    assert result["monthlyData"][0]["month"] == "იანვარი"
    assert result["summary"]["totalRevenue"] == 400
    assert result["summary"]["growthPercentage"] == 200
    assert result["summary"]["bestMonth"]["totalRevenue"] == 300
    assert result["summary"]["worstMonth"]["totalRevenue"] == 0
    assert result["monthlyData"][2]["pendingRevenue"] == 300


def test_client_monthly_breakdown_has_twelve_buckets():
    now = datetime(2026, 3, 10, tzinfo=timezone.utc)
    breakdown = client_monthly_breakdown(
        [{"issue_date": "2026-03-01", "total": 50, "status": "paid", "invoice_id": "IVC-1"}], now
    )
    assert len(breakdown) == 12
    assert breakdown[-1]["month"] == "2026-03"
    assert breakdown[-1]["paid_amount"] == 50
