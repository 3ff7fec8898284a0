from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TRANSACTION_TYPE_SALE = "sale"
TRANSACTION_TYPE_REFUND = "refund"

TRANSACTION_STATUS_COMPLETED = "completed"
TRANSACTION_STATUS_VOIDED = "voided"
TRANSACTION_STATUS_REFUNDED = "refunded"

INVENTORY_STATUS_OK = "ok"
INVENTORY_STATUS_NEEDS_RECONCILIATION = "needs_reconciliation"


class PosTransaction(db.Model):
    """
    A recorded sale or refund.

    Lines and payments are immutable after creation. status moves
    completed -> refunded or completed -> voided, both terminal.
    Refunds carry negative totals and point at the sale they reverse.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.Index("ix_pos_transactions_session_created", "session_id", "created_at"),
        db.Index("ix_pos_transactions_register_created", "register_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, default=TRANSACTION_TYPE_SALE, index=True)
    status = db.Column(db.String(16), nullable=False, default=TRANSACTION_STATUS_COMPLETED, index=True)

    # All amounts in cents; refunds are negative
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    original_transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(128), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    voided_by_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    inventory_status = db.Column(db.String(32), nullable=False, default=INVENTORY_STATUS_OK, index=True)
    inventory_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("RegisterSession", backref=db.backref("transactions", lazy=True))
    register = db.relationship("Register")
    cashier = db.relationship("Operator", foreign_keys=[cashier_id])
    original_transaction = db.relationship("PosTransaction", remote_side=[id])
    lines = db.relationship(
        "TransactionLine",
        backref="transaction",
        order_by="TransactionLine.line_number",
        lazy=True,
    )
    payments = db.relationship(
        "TransactionPayment",
        backref="transaction",
        order_by="TransactionPayment.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_refund(self) -> bool:
        return self.type == TRANSACTION_TYPE_REFUND

    def to_dict(self, *, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "session_id": self.session_id,
            "register_id": self.register_id,
            "cashier_id": self.cashier_id,
            "type": self.type,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "total_discount_cents": self.total_discount_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "currency": self.currency,
            "original_transaction_id": self.original_transaction_id,
            "customer": {
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
            },
            "notes": self.notes,
            "voided_by_id": self.voided_by_id,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "inventory_status": self.inventory_status,
            "inventory_error": self.inventory_error,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class TransactionLine(db.Model):
    """Priced line item; sku and name are snapshotted at sale time."""
    __tablename__ = "transaction_lines"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_number", name="uq_transaction_lines_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_discount_cents": self.line_discount_cents,
            "line_tax_cents": self.line_tax_cents,
            "line_total_cents": self.line_total_cents,
        }


class TransactionPayment(db.Model):
    """One tender on a transaction (split payments produce several rows)."""
    __tablename__ = "transaction_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
        }
