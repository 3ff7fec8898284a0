from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


operator_registers = db.Table(
    "operator_registers",
    db.Column("operator_id", db.Integer, db.ForeignKey("operators.id"), primary_key=True),
    db.Column("register_id", db.Integer, db.ForeignKey("registers.id"), primary_key=True),
)


class Operator(db.Model):
    """
    Cashier or admin who acts on registers.

    current_session_id is a weak pointer (no FK) to the session this
    operator opened and has not yet closed. Performance metrics are bumped
    on every completed sale.
    """
    __tablename__ = "operators"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(128), nullable=False)

    # bcrypt hash of the operator PIN
    pin_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    can_access_all_registers = db.Column(db.Boolean, nullable=False, default=False)

    current_session_id = db.Column(db.Integer, nullable=True, index=True)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    sales_count = db.Column(db.Integer, nullable=False, default=0)
    last_sale_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    registers = db.relationship(
        "Register",
        secondary=operator_registers,
        lazy="subquery",
        backref=db.backref("operators", lazy=True),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Operator id={self.id} username={self.username!r}>"

    def can_access_register(self, register_id: int) -> bool:
        if self.is_admin or self.can_access_all_registers:
            return True
        return any(r.id == register_id for r in self.registers)

    def update_performance_metrics(self, total_cents: int) -> None:
        self.total_sales_cents = (self.total_sales_cents or 0) + total_cents
        self.sales_count = (self.sales_count or 0) + 1
        self.last_sale_at = utcnow()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "is_admin": self.is_admin,
            "can_access_all_registers": self.can_access_all_registers,
            "register_ids": sorted(r.id for r in self.registers),
            "current_session_id": self.current_session_id,
            "total_sales_cents": self.total_sales_cents,
            "sales_count": self.sales_count,
            "last_sale_at": to_utc_z(self.last_sale_at),
            "last_login_at": to_utc_z(self.last_login_at),
            "created_at": to_utc_z(self.created_at),
        }


class AuthToken(db.Model):
    """
    Bearer token for an operator.

    Only the SHA-256 hash is stored; the plaintext is returned once at login.
    """
    __tablename__ = "auth_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    operator = db.relationship("Operator", backref=db.backref("tokens", lazy=True))
