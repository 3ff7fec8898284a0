# Overview: Derived session and sales reports over recorded POS transactions.

from __future__ import annotations

from sqlalchemy import case, func

from ..errors import InvalidInputError, NotFoundError
from ..extensions import db
from ..models import PosTransaction, Register, RegisterSession, TransactionLine
from ..models.transactions import (
    TRANSACTION_STATUS_VOIDED,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_SALE,
)
from ..time_utils import parse_iso_datetime, parse_range_end, to_utc_z
from .session_totals import compute_session_totals

TOP_PRODUCTS_LIMIT = 10


def _parse_range(start: str | None, end: str | None):
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_range_end(end) if end else None
    except ValueError:
        raise InvalidInputError("date_from/date_to must be ISO-8601 dates", details={"fields": ["date_from", "date_to"]})
    return start_dt, end_dt


def _period_expr(group_by: str, column):
    if group_by == "day":
        return func.strftime("%Y-%m-%d", column)
    if group_by == "week":
        return func.strftime("%Y-W%W", column)
    if group_by == "month":
        return func.strftime("%Y-%m", column)
    raise InvalidInputError("group_by must be day, week, or month", details={"field": "group_by"})


def session_report(session_id: int) -> dict:
    """
    End-of-shift view of one session.

    Totals are recomputed from the transactions rather than read from the
    stamped session columns, so the report is correct for open sessions too.
    """
    session = db.session.get(RegisterSession, session_id)
    if session is None:
        raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})

    totals = compute_session_totals(session.id)

    transactions = (
        db.session.query(PosTransaction)
        .filter(PosTransaction.session_id == session.id)
        .order_by(PosTransaction.created_at, PosTransaction.id)
        .all()
    )
    live = [t for t in transactions if t.status != TRANSACTION_STATUS_VOIDED]
    sales = [t for t in live if t.type == TRANSACTION_TYPE_SALE]
    refunds = [t for t in live if t.type == TRANSACTION_TYPE_REFUND]

    tenders: dict[str, dict] = {}
    change_given = 0
    for t in live:
        change_given += t.change_cents or 0
        for p in t.payments:
            row = tenders.setdefault(p.method, {"method": p.method, "count": 0, "amount_cents": 0})
            row["count"] += 1
            row["amount_cents"] += p.amount_cents

    products: dict[tuple, dict] = {}
    for t in sales:
        for line in t.lines:
            key = (line.product_id, line.variant_id)
            row = products.setdefault(key, {
                "product_id": line.product_id,
                "variant_id": line.variant_id,
                "sku": line.sku,
                "name": line.name,
                "quantity": 0,
                "revenue_cents": 0,
            })
            row["quantity"] += line.quantity
            row["revenue_cents"] += line.line_total_cents
    top_products = sorted(products.values(), key=lambda r: (-r["quantity"], -r["revenue_cents"], r["product_id"]))

    hourly: dict[str, dict] = {}
    for t in sales:
        hour = t.created_at.strftime("%H:00")
        bucket = hourly.setdefault(hour, {"hour": hour, "sales_count": 0, "sales_cents": 0})
        bucket["sales_count"] += 1
        bucket["sales_cents"] += t.total_cents

    return {
        "session": session.to_dict(),
        "totals": totals.to_dict(),
        "payment_breakdown": sorted(tenders.values(), key=lambda r: r["method"]),
        "change_given_cents": change_given,
        "top_products": top_products[:TOP_PRODUCTS_LIMIT],
        "hourly": [hourly[h] for h in sorted(hourly)],
        "refunds": [t.to_dict(include_lines=False) for t in refunds],
        "voided_count": len(transactions) - len(live),
    }


def sales_report(
    *,
    register_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    group_by: str = "day",
) -> dict:
    start_dt, end_dt = _parse_range(date_from, date_to)
    period_expr = _period_expr(group_by, PosTransaction.created_at)

    if register_id is not None and db.session.get(Register, register_id) is None:
        raise NotFoundError(f"Register {register_id} not found", details={"register_id": register_id})

    is_sale = PosTransaction.type == TRANSACTION_TYPE_SALE
    is_refund = PosTransaction.type == TRANSACTION_TYPE_REFUND

    query = db.session.query(
        period_expr.label("period"),
        func.coalesce(func.sum(case((is_sale, 1), else_=0)), 0).label("sales_count"),
        func.coalesce(func.sum(case((is_refund, 1), else_=0)), 0).label("refund_count"),
        func.coalesce(func.sum(case((is_sale, PosTransaction.total_cents), else_=0)), 0).label("gross_sales_cents"),
        func.coalesce(func.sum(case((is_refund, -PosTransaction.total_cents), else_=0)), 0).label("refunds_cents"),
        func.coalesce(func.sum(PosTransaction.total_discount_cents), 0).label("discount_cents"),
        func.coalesce(func.sum(PosTransaction.total_tax_cents), 0).label("tax_cents"),
    ).filter(PosTransaction.status != TRANSACTION_STATUS_VOIDED)

    items_query = db.session.query(
        period_expr.label("period"),
        func.coalesce(func.sum(TransactionLine.quantity), 0).label("items_sold"),
    ).join(TransactionLine, TransactionLine.transaction_id == PosTransaction.id).filter(
        PosTransaction.status != TRANSACTION_STATUS_VOIDED,
    )

    if register_id is not None:
        query = query.filter(PosTransaction.register_id == register_id)
        items_query = items_query.filter(PosTransaction.register_id == register_id)
    if start_dt:
        query = query.filter(PosTransaction.created_at >= start_dt)
        items_query = items_query.filter(PosTransaction.created_at >= start_dt)
    if end_dt:
        query = query.filter(PosTransaction.created_at <= end_dt)
        items_query = items_query.filter(PosTransaction.created_at <= end_dt)

    items_by_period = {row.period: int(row.items_sold or 0) for row in items_query.group_by("period").all()}
    rows = query.group_by("period").order_by("period").all()

    return {
        "register_id": register_id,
        "group_by": group_by,
        "date_from": to_utc_z(start_dt) if start_dt else None,
        "date_to": to_utc_z(end_dt) if end_dt else None,
        "rows": [
            {
                "period": row.period,
                "sales_count": int(row.sales_count or 0),
                "refund_count": int(row.refund_count or 0),
                "gross_sales_cents": int(row.gross_sales_cents or 0),
                "refunds_cents": int(row.refunds_cents or 0),
                "net_sales_cents": int(row.gross_sales_cents or 0) - int(row.refunds_cents or 0),
                "discount_cents": int(row.discount_cents or 0),
                "tax_cents": int(row.tax_cents or 0),
                "items_sold": items_by_period.get(row.period, 0),
            }
            for row in rows
        ],
    }
