# Overview: Running sales/refund totals for a register session.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import (
    PosTransaction,
    RegisterSession,
    TRANSACTION_STATUS_VOIDED,
)


@dataclass
class SessionTotals:
    """
    Accumulated money movement of one session.

    Refunds are stored negative on the transaction; here total_refunds_cents
    is the absolute value so net = gross - refunds.
    """
    gross_sales_cents: int = 0
    total_refunds_cents: int = 0
    total_discount_cents: int = 0
    total_tax_cents: int = 0
    transaction_count: int = 0
    refund_count: int = 0

    @property
    def net_sales_cents(self) -> int:
        return self.gross_sales_cents - self.total_refunds_cents

    def add(self, transaction: PosTransaction) -> "SessionTotals":
        if transaction.status == TRANSACTION_STATUS_VOIDED:
            return self

        if transaction.is_refund:
            self.total_refunds_cents += abs(transaction.total_cents)
            self.total_discount_cents -= abs(transaction.total_discount_cents)
            self.total_tax_cents -= abs(transaction.total_tax_cents)
            self.refund_count += 1
        else:
            self.gross_sales_cents += transaction.total_cents
            self.total_discount_cents += transaction.total_discount_cents
            self.total_tax_cents += transaction.total_tax_cents
            self.transaction_count += 1
        return self

    def apply_to(self, session: RegisterSession) -> None:
        session.gross_sales_cents = self.gross_sales_cents
        session.total_refunds_cents = self.total_refunds_cents
        session.total_discount_cents = self.total_discount_cents
        session.total_tax_cents = self.total_tax_cents
        session.net_sales_cents = self.net_sales_cents
        session.transaction_count = self.transaction_count
        session.refund_count = self.refund_count

    def to_dict(self) -> dict:
        return {
            "gross_sales_cents": self.gross_sales_cents,
            "total_refunds_cents": self.total_refunds_cents,
            "total_discount_cents": self.total_discount_cents,
            "total_tax_cents": self.total_tax_cents,
            "net_sales_cents": self.net_sales_cents,
            "transaction_count": self.transaction_count,
            "refund_count": self.refund_count,
        }


def compute_session_totals(session_id: int) -> SessionTotals:
    """Re-scan every non-voided transaction of the session. Idempotent."""
    db.session.flush()
    transactions = (
        db.session.query(PosTransaction)
        .filter(PosTransaction.session_id == session_id)
        .filter(PosTransaction.status != TRANSACTION_STATUS_VOIDED)
        .order_by(PosTransaction.id)
        .all()
    )

    totals = SessionTotals()
    for transaction in transactions:
        totals.add(transaction)
    return totals
