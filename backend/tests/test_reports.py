"""
Session and sales reports over recorded transactions.
"""

import pytest

from retail_pos.errors import InvalidInputError, NotFoundError
from retail_pos.services.reporting_service import sales_report, session_report

from conftest import sell


@pytest.fixture
def shift(pos, cashier, open_session, apple, pear):
    """A cash sale, a refunded card sale and a voided sale."""
    cash = sell(
        pos, open_session, cashier,
        [{"product_id": apple.id, "quantity": 2}, {"product_id": pear.id, "quantity": 1}],
        payment_method="cash",
        payments=[{"method": "cash", "amount_cents": 3000}],
    )
    card = sell(pos, open_session, cashier, [{"product_id": apple.id, "quantity": 1}])
    voided = sell(pos, open_session, cashier, [{"product_id": pear.id, "quantity": 1}])
    pos.void_transaction(voided.id, "Keyed twice", actor=cashier)
    pos.refund_transaction(card.id, "Returned", actor=cashier)
    return cash, card


class TestSessionReport:
    def test_totals(self, open_session, shift):
        report = session_report(open_session.id)

        assert report["totals"] == {
            "gross_sales_cents": 3500,
            "total_refunds_cents": 1000,
            "total_discount_cents": 0,
            "total_tax_cents": 0,
            "net_sales_cents": 2500,
            "transaction_count": 2,
            "refund_count": 1,
        }
        assert report["session"]["id"] == open_session.id
        assert report["voided_count"] == 1
        assert len(report["refunds"]) == 1

    def test_payment_breakdown_and_change(self, open_session, shift):
        report = session_report(open_session.id)
        assert report["payment_breakdown"] == [
            {"method": "card", "count": 2, "amount_cents": 0},
            {"method": "cash", "count": 1, "amount_cents": 3000},
        ]
        assert report["change_given_cents"] == 500

    def test_top_products_skip_voided(self, open_session, shift, apple, pear):
        top = session_report(open_session.id)["top_products"]
        assert [(row["product_id"], row["quantity"]) for row in top] == [(apple.id, 3), (pear.id, 1)]
        assert top[0]["revenue_cents"] == 3000

    def test_hourly(self, open_session, shift):
        cash, _ = shift
        hourly = session_report(open_session.id)["hourly"]
        assert hourly == [{"hour": cash.created_at.strftime("%H:00"), "sales_count": 2, "sales_cents": 3500}]

    def test_empty_session(self, open_session):
        report = session_report(open_session.id)
        assert report["totals"]["net_sales_cents"] == 0
        assert report["payment_breakdown"] == []
        assert report["hourly"] == []

    def test_unknown_session(self, db_session):
        with pytest.raises(NotFoundError):
            session_report(8080)


class TestSalesReport:
    def test_daily_rows(self, register, shift):
        cash, _ = shift
        report = sales_report(register_id=register.id)

        assert report["group_by"] == "day"
        assert report["rows"] == [{
            "period": cash.created_at.strftime("%Y-%m-%d"),
            "sales_count": 2,
            "refund_count": 1,
            "gross_sales_cents": 3500,
            "refunds_cents": 1000,
            "net_sales_cents": 2500,
            "discount_cents": 0,
            "tax_cents": 0,
            "items_sold": 3,
        }]

    def test_monthly(self, shift):
        cash, _ = shift
        rows = sales_report(group_by="month")["rows"]
        assert [row["period"] for row in rows] == [cash.created_at.strftime("%Y-%m")]

    def test_register_filter(self, other_register, shift):
        assert sales_report(register_id=other_register.id)["rows"] == []

    def test_date_range_excludes_other_days(self, shift):
        assert sales_report(date_from="2001-01-01", date_to="2001-01-31")["rows"] == []

    def test_bad_group_by(self, db_session):
        with pytest.raises(InvalidInputError):
            sales_report(group_by="quarter")

    def test_bad_date(self, db_session):
        with pytest.raises(InvalidInputError):
            sales_report(date_from="last tuesday")

    def test_unknown_register(self, db_session):
        with pytest.raises(NotFoundError):
            sales_report(register_id=4040)
