from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SESSION_STATUS_OPEN = "open"
SESSION_STATUS_CLOSED = "closed"


class Register(db.Model):
    """
    Physical POS register/till.

    Each register has its own cash balance. current_balance_cents is moved
    only by session open (set to the opening float) and session close (set to
    the counted cash). Registers are never deleted; is_active=False blocks
    new sessions.
    """
    __tablename__ = "registers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    location = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    last_opened_by_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    last_opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_closed_by_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    last_closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Register id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "description": self.description,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "currency": self.currency,
            "is_active": self.is_active,
            "last_opened_by_id": self.last_opened_by_id,
            "last_opened_at": to_utc_z(self.last_opened_at),
            "last_closed_by_id": self.last_closed_by_id,
            "last_closed_at": to_utc_z(self.last_closed_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RegisterSession(db.Model):
    """
    One open/close cycle (shift) on a register.

    LIFECYCLE:
    - open: transactions may be recorded against it
    - closed: totals stamped, variance computed; terminal

    The partial unique index keeps at most one open session per register
    even when two opens race past the service-level check.
    """
    __tablename__ = "register_sessions"
    __table_args__ = (
        db.Index(
            "uq_register_sessions_one_open",
            "register_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)
    expected_closing_balance_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)

    # Running totals; recomputed from transactions on every append and at close
    gross_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_refunds_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    net_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)
    refund_count = db.Column(db.Integer, nullable=False, default=0)

    opened_by_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    closed_by_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_notes = db.Column(db.Text, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    register = db.relationship("Register", backref=db.backref("sessions", lazy=True))
    opened_by = db.relationship("Operator", foreign_keys=[opened_by_id])
    closed_by = db.relationship("Operator", foreign_keys=[closed_by_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_STATUS_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "status": self.status,
            "currency": self.currency,
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "expected_closing_balance_cents": self.expected_closing_balance_cents,
            "variance_cents": self.variance_cents,
            "gross_sales_cents": self.gross_sales_cents,
            "total_refunds_cents": self.total_refunds_cents,
            "total_discount_cents": self.total_discount_cents,
            "total_tax_cents": self.total_tax_cents,
            "net_sales_cents": self.net_sales_cents,
            "transaction_count": self.transaction_count,
            "refund_count": self.refund_count,
            "opened_by_id": self.opened_by_id,
            "closed_by_id": self.closed_by_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
            "version_id": self.version_id,
        }


class TransactionSequence(db.Model):
    """Per-register counter for human-readable transaction numbers."""
    __tablename__ = "transaction_sequences"
    __table_args__ = (
        db.UniqueConstraint("register_id", name="uq_transaction_sequences_register"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
