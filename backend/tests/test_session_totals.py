"""
Session accumulator: incremental folding versus full recompute.
"""

from retail_pos.models import PosTransaction
from retail_pos.services.session_totals import SessionTotals, compute_session_totals

from conftest import sell


def test_add_skips_voided_and_counts_refunds_by_magnitude():
    totals = SessionTotals()
    totals.add(PosTransaction(type="sale", status="completed", total_cents=1200,
                              total_discount_cents=100, total_tax_cents=50))
    totals.add(PosTransaction(type="sale", status="voided", total_cents=9999,
                              total_discount_cents=0, total_tax_cents=0))
    totals.add(PosTransaction(type="refund", status="completed", total_cents=-400,
                              total_discount_cents=-20, total_tax_cents=-10))

    assert totals.gross_sales_cents == 1200
    assert totals.total_refunds_cents == 400
    assert totals.net_sales_cents == 800
    assert totals.total_discount_cents == 80
    assert totals.total_tax_cents == 40
    assert (totals.transaction_count, totals.refund_count) == (1, 1)


def test_recompute_is_idempotent(pos, cashier, open_session, apple, pear):
    sale = sell(pos, open_session, cashier, [{"product_id": apple.id, "quantity": 2}])
    sell(pos, open_session, cashier, [{"product_id": pear.id, "quantity": 1}])
    pos.refund_transaction(sale.id, "Return", actor=cashier, items=[{"line_number": 1, "quantity": 1}])

    first = compute_session_totals(open_session.id)
    second = compute_session_totals(open_session.id)

    assert first == second
    assert first.to_dict()["net_sales_cents"] == open_session.net_sales_cents == 1500


def test_incremental_matches_recompute(pos, cashier, open_session, apple):
    for qty in (1, 2, 3):
        sell(pos, open_session, cashier, [{"product_id": apple.id, "quantity": qty}])

    folded = SessionTotals()
    for txn in open_session.transactions:
        folded.add(txn)

    assert folded == compute_session_totals(open_session.id)
