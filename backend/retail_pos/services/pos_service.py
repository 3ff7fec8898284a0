# Overview: Register session and transaction orchestration (open/close, sale, refund, void).

from __future__ import annotations

from math import ceil
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..config import PosSettings
from ..errors import (
    ForbiddenError,
    InconsistencyError,
    InsufficientStockError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    PosError,
)
from ..extensions import db
from ..models import (
    Operator,
    PosTransaction,
    Product,
    ProductVariant,
    Register,
    RegisterSession,
    TransactionLine,
    TransactionPayment,
    SESSION_STATUS_CLOSED,
    SESSION_STATUS_OPEN,
)
from ..models.transactions import (
    INVENTORY_STATUS_NEEDS_RECONCILIATION,
    TRANSACTION_STATUS_COMPLETED,
    TRANSACTION_STATUS_REFUNDED,
    TRANSACTION_STATUS_VOIDED,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_SALE,
)
from ..time_utils import parse_iso_datetime, parse_range_end, utcnow
from ..validation import ModelValidationPolicy, coerce_cents, coerce_int, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import (
    REASON_POS_REFUND,
    REASON_POS_SALE,
    REASON_POS_VOID,
    InventoryLedger,
    MovementRequest,
    StockFailure,
    StockMeta,
)
from .sequence_service import next_transaction_number
from .session_totals import compute_session_totals
from .transaction_calculator import (
    CatalogEntry,
    QuotedLine,
    allocate_pro_rata,
    calculate_transaction,
    round_half_up,
)
"""
Register/session/transaction invariants (authoritative)

- A register has at most one open session (partial unique index backs the check).
- An operator has at most one current open session.
- Sessions move open -> closed; transactions move completed -> refunded | voided.
- A sale is all-or-nothing up to commit: pricing and availability are checked
  before anything is written.
- Session totals are recomputed from the stored transactions after every
  append, never incremented in place.
- Stock movement failures after the write do not undo the sale; the
  transaction is flagged needs_reconciliation and InconsistencyError is raised
  after commit.
"""

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"customer_name", "customer_email", "customer_phone"},
)

TRANSACTION_TYPES = (TRANSACTION_TYPE_SALE, TRANSACTION_TYPE_REFUND)
TRANSACTION_STATUSES = (TRANSACTION_STATUS_COMPLETED, TRANSACTION_STATUS_REFUNDED, TRANSACTION_STATUS_VOIDED)


def _require_reason(reason: Any, field: str = "reason") -> str:
    if reason is None or not str(reason).strip():
        raise InvalidInputError(f"{field} is required", details={"field": field})
    text = str(reason).strip()
    if len(text) > 255:
        raise InvalidInputError(f"{field} exceeds max length 255", details={"field": field})
    return text


def _clean_notes(notes: Any) -> str | None:
    if notes is None:
        return None
    text = str(notes).strip()
    return text or None


def _refund_weights(returned: list[tuple]) -> list[int]:
    # Line net value, or returned quantity when every returned line is free.
    weights = [max(entry[4], 0) for entry in returned]
    if not any(weights):
        weights = [entry[1] for entry in returned]
    return weights


class PosService:
    """
    Orchestrates registers, sessions and transactions.

    Settings are fixed at construction; the inventory ledger is injected so
    tests can substitute one with a different negative-stock policy.
    """

    def __init__(self, settings: PosSettings, inventory: InventoryLedger | None = None):
        self.settings = settings
        self.inventory = inventory or InventoryLedger(
            allow_negative_stock=settings.allow_negative_stock,
        )

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def open_session(
        self,
        register_id: int,
        opening_balance_cents: Any,
        opened_by: Operator,
        notes: str | None = None,
    ) -> RegisterSession:
        opening = coerce_cents("opening_balance_cents", opening_balance_cents)

        def _op():
            register = lock_for_update(db.session.query(Register).filter_by(id=register_id)).first()
            if register is None:
                raise NotFoundError(f"Register {register_id} not found", details={"register_id": register_id})
            if not register.is_active:
                raise InvalidStateError(
                    f"Register {register.name} is inactive",
                    details={"register_id": register_id},
                )

            existing = self._open_session_for(register_id)
            if existing is not None:
                raise InvalidStateError(
                    f"Register {register.name} already has an open session",
                    details={"register_id": register_id, "session_id": existing.id},
                )

            if not opened_by.can_access_register(register_id):
                raise ForbiddenError(
                    "Operator is not assigned to this register",
                    details={"register_id": register_id, "operator_id": opened_by.id},
                )

            if opened_by.current_session_id is not None:
                current = db.session.get(RegisterSession, opened_by.current_session_id)
                if current is not None and current.is_open:
                    raise InvalidStateError(
                        "Operator already has an open session",
                        details={"operator_id": opened_by.id, "session_id": current.id},
                    )

            now = utcnow()
            session = RegisterSession(
                register_id=register.id,
                status=SESSION_STATUS_OPEN,
                currency=register.currency,
                opening_balance_cents=opening,
                opened_by_id=opened_by.id,
                opened_at=now,
                opening_notes=_clean_notes(notes),
            )
            db.session.add(session)
            try:
                db.session.flush()
            except IntegrityError:
                db.session.rollback()
                raise InvalidStateError(
                    "Register already has an open session",
                    details={"register_id": register_id},
                )

            register.current_balance_cents = opening
            register.last_opened_by_id = opened_by.id
            register.last_opened_at = now
            opened_by.current_session_id = session.id

            db.session.commit()
            return session

        session = self._run(_op)
        current_app.logger.info(
            "Session opened session_id=%s register_id=%s operator_id=%s opening=%s",
            session.id, session.register_id, session.opened_by_id, session.opening_balance_cents,
        )
        return session

    def close_session(
        self,
        session_id: int,
        closing_balance_cents: Any,
        closed_by: Operator,
        notes: str | None = None,
    ) -> RegisterSession:
        closing = coerce_cents("closing_balance_cents", closing_balance_cents)

        def _op():
            session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
            if session is None:
                raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
            if not session.is_open:
                raise InvalidStateError(
                    f"Session {session_id} is already closed",
                    details={"session_id": session_id, "status": session.status},
                )
            if not closed_by.can_access_register(session.register_id):
                raise ForbiddenError(
                    "Operator is not assigned to this register",
                    details={"register_id": session.register_id, "operator_id": closed_by.id},
                )

            totals = compute_session_totals(session.id)
            totals.apply_to(session)

            now = utcnow()
            session.expected_closing_balance_cents = session.opening_balance_cents + totals.net_sales_cents
            session.closing_balance_cents = closing
            session.variance_cents = closing - session.expected_closing_balance_cents
            session.status = SESSION_STATUS_CLOSED
            session.closed_by_id = closed_by.id
            session.closed_at = now
            session.closing_notes = _clean_notes(notes)

            register = lock_for_update(db.session.query(Register).filter_by(id=session.register_id)).first()
            register.current_balance_cents = closing
            register.last_closed_by_id = closed_by.id
            register.last_closed_at = now

            for operator in db.session.query(Operator).filter_by(current_session_id=session.id).all():
                operator.current_session_id = None

            db.session.commit()
            return session

        session = self._run(_op)
        current_app.logger.info(
            "Session closed session_id=%s register_id=%s expected=%s counted=%s variance=%s",
            session.id, session.register_id, session.expected_closing_balance_cents,
            session.closing_balance_cents, session.variance_cents,
        )
        return session

    def get_session(self, session_id: int) -> RegisterSession:
        session = db.session.get(RegisterSession, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        return session

    def get_current_session(self, register_id: int) -> RegisterSession | None:
        if db.session.get(Register, register_id) is None:
            raise NotFoundError(f"Register {register_id} not found", details={"register_id": register_id})
        return self._open_session_for(register_id)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def create_transaction(
        self,
        session_id: int,
        items: Any,
        payment_method: Any,
        payments: Any = None,
        discounts: Any = None,
        *,
        actor: Operator,
        customer: dict | None = None,
        notes: str | None = None,
    ) -> PosTransaction:
        """
        Record a sale against an open session.

        Raises InconsistencyError (after commit) when some stock movements
        could not be written; the sale itself is kept.
        """
        customer_fields = self._customer_fields(customer)

        def _op():
            session = self._locked_open_session(session_id)
            if not actor.can_access_register(session.register_id):
                raise ForbiddenError(
                    "Operator is not assigned to this register",
                    details={"register_id": session.register_id, "operator_id": actor.id},
                )

            quote = calculate_transaction(
                items,
                payment_method,
                payments,
                discounts,
                currency=session.currency,
                lookup_price=self._lookup_price,
                tax_rate_bps=self.settings.tax_rate_bps,
                cash_methods=self.settings.cash_methods,
            )
            self._check_availability(quote.lines)

            number = next_transaction_number(register_id=session.register_id)
            transaction = PosTransaction(
                transaction_number=number,
                session_id=session.id,
                register_id=session.register_id,
                cashier_id=actor.id,
                type=TRANSACTION_TYPE_SALE,
                status=TRANSACTION_STATUS_COMPLETED,
                subtotal_cents=quote.subtotal_cents,
                total_discount_cents=quote.total_discount_cents,
                total_tax_cents=quote.total_tax_cents,
                total_cents=quote.total_cents,
                payment_method=quote.payment_method,
                amount_paid_cents=quote.amount_paid_cents,
                change_cents=quote.change_cents,
                currency=quote.currency,
                notes=_clean_notes(notes),
                created_at=utcnow(),
                **customer_fields,
            )
            db.session.add(transaction)

            for line in quote.lines:
                transaction.lines.append(TransactionLine(
                    line_number=line.line_number,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    sku=line.sku,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_discount_cents=line.line_discount_cents,
                    line_tax_cents=line.line_tax_cents,
                    line_total_cents=line.line_total_cents,
                ))
            for payment in quote.payments:
                transaction.payments.append(TransactionPayment(
                    method=payment.method,
                    amount_cents=payment.amount_cents,
                    reference=payment.reference,
                ))
            db.session.flush()

            meta = StockMeta(reason=REASON_POS_SALE, reference=number, notes=f"Sale {number}", actor_id=actor.id)
            batch = self.inventory.apply_batch([
                MovementRequest(line.product_id, line.variant_id, -line.quantity, meta)
                for line in quote.lines
            ])
            if not batch.ok:
                self._flag_reconciliation(transaction, batch.failures)

            self._refresh_session_totals(session)
            actor.update_performance_metrics(quote.total_cents)

            db.session.commit()
            return transaction, batch.failures

        transaction, failures = self._run(_op)
        current_app.logger.info(
            "Sale recorded transaction=%s session_id=%s total=%s method=%s",
            transaction.transaction_number, transaction.session_id,
            transaction.total_cents, transaction.payment_method,
        )
        if failures:
            self._raise_inconsistency(transaction, failures)
        return transaction

    def refund_transaction(
        self,
        original_transaction_id: int,
        reason: Any,
        refund_amount_cents: Any = None,
        *,
        actor: Operator,
        items: Any = None,
    ) -> PosTransaction:
        """
        Refund a completed sale into the register's current open session.

        With neither items nor an amount the whole sale is reversed. Given
        items, only those quantities go back to stock and the amount defaults
        to their pro-rated line totals.
        """
        reason_text = _require_reason(reason)
        amount = None
        if refund_amount_cents is not None:
            amount = abs(coerce_cents("refund_amount_cents", refund_amount_cents, allow_negative=True))

        def _op():
            original = lock_for_update(
                db.session.query(PosTransaction).filter_by(id=original_transaction_id)
            ).first()
            if original is None:
                raise NotFoundError(
                    f"Transaction {original_transaction_id} not found",
                    details={"transaction_id": original_transaction_id},
                )
            if original.is_refund:
                raise InvalidStateError(
                    "A refund cannot be refunded",
                    details={"transaction_id": original.id},
                )
            if original.status != TRANSACTION_STATUS_COMPLETED:
                raise InvalidStateError(
                    f"Transaction {original.transaction_number} is already {original.status}",
                    details={"transaction_id": original.id, "status": original.status},
                )

            session = self._open_session_for(original.register_id)
            if session is None:
                raise InvalidStateError(
                    "No open session on the register of the original transaction",
                    details={"register_id": original.register_id},
                )
            session = self._locked_open_session(session.id)
            if not actor.can_access_register(session.register_id):
                raise ForbiddenError(
                    "Operator is not assigned to this register",
                    details={"register_id": session.register_id, "operator_id": actor.id},
                )

            returned, totals = self._plan_refund(original, items, amount)

            number = next_transaction_number(register_id=session.register_id)
            refund = PosTransaction(
                transaction_number=number,
                session_id=session.id,
                register_id=session.register_id,
                cashier_id=actor.id,
                type=TRANSACTION_TYPE_REFUND,
                status=TRANSACTION_STATUS_COMPLETED,
                subtotal_cents=-totals["subtotal"],
                total_discount_cents=-totals["discount"],
                total_tax_cents=-totals["tax"],
                total_cents=-totals["total"],
                payment_method=original.payment_method,
                amount_paid_cents=-totals["total"],
                change_cents=0,
                currency=original.currency,
                original_transaction_id=original.id,
                customer_name=original.customer_name,
                customer_email=original.customer_email,
                customer_phone=original.customer_phone,
                notes=reason_text,
                created_at=utcnow(),
            )
            db.session.add(refund)

            for index, (line, qty, discount, tax, line_total) in enumerate(returned, start=1):
                refund.lines.append(TransactionLine(
                    line_number=index,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    sku=line.sku,
                    name=line.name,
                    quantity=-qty,
                    unit_price_cents=line.unit_price_cents,
                    line_discount_cents=-discount,
                    line_tax_cents=-tax,
                    line_total_cents=-line_total,
                ))
            for payment in self._refund_payments(original, totals["total"]):
                refund.payments.append(payment)
            db.session.flush()

            meta = StockMeta(
                reason=REASON_POS_REFUND,
                reference=number,
                notes=f"Refund {number} of {original.transaction_number}",
                actor_id=actor.id,
            )
            batch = self.inventory.apply_batch([
                MovementRequest(line.product_id, line.variant_id, qty, meta)
                for line, qty, _, _, _ in returned
            ])
            if not batch.ok:
                self._flag_reconciliation(refund, batch.failures)

            original.status = TRANSACTION_STATUS_REFUNDED
            self._refresh_session_totals(session)

            db.session.commit()
            return refund, batch.failures

        refund, failures = self._run(_op)
        current_app.logger.info(
            "Refund recorded transaction=%s original_id=%s session_id=%s total=%s",
            refund.transaction_number, refund.original_transaction_id, refund.session_id, refund.total_cents,
        )
        if failures:
            self._raise_inconsistency(refund, failures)
        return refund

    def void_transaction(self, transaction_id: int, reason: Any, *, actor: Operator) -> PosTransaction:
        """Cancel a sale while its session is still open; stock goes back in full."""
        reason_text = _require_reason(reason)

        def _op():
            transaction = lock_for_update(
                db.session.query(PosTransaction).filter_by(id=transaction_id)
            ).first()
            if transaction is None:
                raise NotFoundError(
                    f"Transaction {transaction_id} not found",
                    details={"transaction_id": transaction_id},
                )
            if transaction.is_refund:
                raise InvalidStateError("Refunds cannot be voided", details={"transaction_id": transaction.id})
            if transaction.status != TRANSACTION_STATUS_COMPLETED:
                raise InvalidStateError(
                    f"Transaction {transaction.transaction_number} is already {transaction.status}",
                    details={"transaction_id": transaction.id, "status": transaction.status},
                )

            session = lock_for_update(
                db.session.query(RegisterSession).filter_by(id=transaction.session_id)
            ).first()
            if not session.is_open:
                raise InvalidStateError(
                    "Only transactions of an open session can be voided; refund instead",
                    details={"transaction_id": transaction.id, "session_id": session.id},
                )
            if not actor.can_access_register(session.register_id):
                raise ForbiddenError(
                    "Operator is not assigned to this register",
                    details={"register_id": session.register_id, "operator_id": actor.id},
                )

            meta = StockMeta(
                reason=REASON_POS_VOID,
                reference=transaction.transaction_number,
                notes=f"Void {transaction.transaction_number}",
                actor_id=actor.id,
            )
            batch = self.inventory.apply_batch([
                MovementRequest(line.product_id, line.variant_id, line.quantity, meta)
                for line in transaction.lines
            ])
            if not batch.ok:
                self._flag_reconciliation(transaction, batch.failures)

            transaction.status = TRANSACTION_STATUS_VOIDED
            transaction.voided_by_id = actor.id
            transaction.voided_at = utcnow()
            transaction.void_reason = reason_text

            cashier = transaction.cashier
            cashier.total_sales_cents = (cashier.total_sales_cents or 0) - transaction.total_cents
            cashier.sales_count = max((cashier.sales_count or 0) - 1, 0)

            self._refresh_session_totals(session)

            db.session.commit()
            return transaction, batch.failures

        transaction, failures = self._run(_op)
        current_app.logger.info(
            "Transaction voided transaction=%s session_id=%s by operator_id=%s",
            transaction.transaction_number, transaction.session_id, transaction.voided_by_id,
        )
        if failures:
            self._raise_inconsistency(transaction, failures)
        return transaction

    def get_transaction(self, transaction_id: int) -> PosTransaction:
        transaction = db.session.get(PosTransaction, transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id},
            )
        return transaction

    def list_transactions(
        self,
        *,
        session_id: Any = None,
        register_id: Any = None,
        date_from: Any = None,
        date_to: Any = None,
        type: Any = None,
        status: Any = None,
        page: Any = 1,
        limit: Any = 50,
    ) -> dict:
        page = coerce_int("page", page if page is not None else 1, minimum=1)
        limit = coerce_int("limit", limit if limit is not None else 50, minimum=1)
        limit = min(limit, self.settings.max_page_size)

        query = db.session.query(PosTransaction)
        if session_id is not None:
            query = query.filter(PosTransaction.session_id == coerce_int("session_id", session_id))
        if register_id is not None:
            query = query.filter(PosTransaction.register_id == coerce_int("register_id", register_id))
        if type is not None:
            if type not in TRANSACTION_TYPES:
                raise InvalidInputError(f"Invalid type: {type}", details={"field": "type"})
            query = query.filter(PosTransaction.type == type)
        if status is not None:
            if status not in TRANSACTION_STATUSES:
                raise InvalidInputError(f"Invalid status: {status}", details={"field": "status"})
            query = query.filter(PosTransaction.status == status)

        start = self._parse_date("date_from", date_from)
        end = self._parse_date("date_to", date_to, end=True)
        if start is not None:
            query = query.filter(PosTransaction.created_at >= start)
        if end is not None:
            query = query.filter(PosTransaction.created_at <= end)

        total = query.count()
        rows = (
            query.order_by(PosTransaction.created_at.desc(), PosTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "transactions": [t.to_dict(include_lines=False) for t in rows],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": ceil(total / limit) if total else 0,
            },
        }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _run(self, op):
        try:
            return run_with_retry(op)
        except PosError:
            db.session.rollback()
            raise

    def _open_session_for(self, register_id: int) -> RegisterSession | None:
        return (
            db.session.query(RegisterSession)
            .filter_by(register_id=register_id, status=SESSION_STATUS_OPEN)
            .first()
        )

    def _locked_open_session(self, session_id: int) -> RegisterSession:
        session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
        if session is None:
            raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        if not session.is_open:
            raise InvalidStateError(
                f"Session {session_id} is not open",
                details={"session_id": session_id, "status": session.status},
            )
        return session

    def _lookup_price(self, product_id: int, variant_id: int | None) -> CatalogEntry | None:
        product = db.session.get(Product, product_id)
        if product is None:
            return None
        if variant_id is None:
            return CatalogEntry(
                product_id=product.id,
                variant_id=None,
                sku=product.sku,
                name=product.name,
                unit_price_cents=product.price_cents,
                is_active=product.is_active,
            )

        variant = db.session.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product.id:
            return None
        return CatalogEntry(
            product_id=product.id,
            variant_id=variant.id,
            sku=variant.sku or product.sku,
            name=f"{product.name} ({variant.name})",
            unit_price_cents=variant.price_cents if variant.price_cents is not None else product.price_cents,
            is_active=product.is_active and variant.is_active,
        )

    def _check_availability(self, lines: tuple[QuotedLine, ...]) -> None:
        wanted: dict[tuple[int, int | None], int] = {}
        for line in lines:
            key = (line.product_id, line.variant_id)
            wanted[key] = wanted.get(key, 0) + line.quantity

        for (product_id, variant_id), quantity in wanted.items():
            availability = self.inventory.check_availability(product_id, variant_id, quantity)
            if not availability.available:
                raise InsufficientStockError(
                    product_id=product_id,
                    variant_id=variant_id,
                    product_name=availability.product_name,
                    available_quantity=availability.available_quantity,
                    requested_quantity=quantity,
                )

    def _customer_fields(self, customer: Any) -> dict:
        if customer is None:
            return {}
        if not isinstance(customer, dict):
            raise InvalidInputError("customer must be an object", details={"field": "customer"})
        unknown = sorted(set(customer) - {"name", "email", "phone"})
        if unknown:
            raise InvalidInputError(
                f"customer has unknown fields: {', '.join(unknown)}",
                details={"field": "customer", "fields": unknown},
            )
        payload = {f"customer_{key}": value for key, value in customer.items()}
        return validate_payload(model=PosTransaction, payload=payload, policy=CUSTOMER_POLICY, partial=True)

    def _plan_refund(self, original: PosTransaction, items: Any, amount: int | None):
        """
        Work out returned quantities and positive refund amounts.

        Returns ([(line, qty, discount, tax, line_total), ...], {subtotal, discount, tax, total}).
        Line totals always sum to the refund total.
        """
        lines = list(original.lines)

        if items is None:
            if amount is not None and amount < original.total_cents:
                raise InvalidInputError(
                    "A partial refund amount requires the returned items",
                    details={"refund_amount_cents": amount, "total_cents": original.total_cents},
                )
            returned = [
                (line, line.quantity, line.line_discount_cents, line.line_tax_cents, line.line_total_cents)
                for line in lines
            ]
            return returned, {
                "subtotal": original.subtotal_cents,
                "discount": original.total_discount_cents,
                "tax": original.total_tax_cents,
                "total": original.total_cents,
            }

        quantities = self._returned_quantities(lines, items)
        returned = []
        for line in lines:
            qty = quantities.get(line.line_number)
            if not qty:
                continue
            if qty == line.quantity:
                discount, tax = line.line_discount_cents, line.line_tax_cents
            else:
                discount = round_half_up(line.line_discount_cents * qty, line.quantity)
                tax = round_half_up(line.line_tax_cents * qty, line.quantity)
            returned.append((line, qty, discount, tax, line.unit_price_cents * qty - discount + tax))

        subtotal = sum(line.unit_price_cents * qty for line, qty, _, _, _ in returned)
        discount = sum(r[2] for r in returned)
        tax = sum(r[3] for r in returned)
        totals = {"subtotal": subtotal, "discount": discount, "tax": tax, "total": subtotal - discount + tax}

        if amount is not None:
            clamped = min(amount, original.total_cents)
            shares = allocate_pro_rata(clamped, _refund_weights(returned))
            returned = [(line, qty, 0, 0, share) for (line, qty, _, _, _), share in zip(returned, shares)]
            return returned, {"subtotal": clamped, "discount": 0, "tax": 0, "total": clamped}

        if totals["total"] > original.total_cents:
            totals = {**totals, "total": original.total_cents}
            totals["subtotal"] = totals["total"] + totals["discount"] - totals["tax"]
            shares = allocate_pro_rata(totals["total"], _refund_weights(returned))
            returned = [(line, qty, d, t, share) for (line, qty, d, t, _), share in zip(returned, shares)]

        return returned, totals

    def _returned_quantities(self, lines: list[TransactionLine], items: Any) -> dict[int, int]:
        if not isinstance(items, list) or not items:
            raise InvalidInputError("items must be a non-empty list", details={"field": "items"})

        by_number = {line.line_number: line for line in lines}
        quantities: dict[int, int] = {}

        for index, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise InvalidInputError(f"items[{index}] must be an object", details={"item_index": index})
            unknown = sorted(set(raw) - {"line_number", "product_id", "variant_id", "quantity"})
            if unknown:
                raise InvalidInputError(
                    f"items[{index}] has unknown fields: {', '.join(unknown)}",
                    details={"item_index": index, "fields": unknown},
                )
            if raw.get("quantity") is None:
                raise InvalidInputError(f"items[{index}].quantity is required", details={"item_index": index})
            qty = coerce_int("quantity", raw["quantity"], minimum=1)

            line = None
            if raw.get("line_number") is not None:
                line = by_number.get(coerce_int("line_number", raw["line_number"]))
            elif raw.get("product_id") is not None:
                product_id = coerce_int("product_id", raw["product_id"])
                variant_id = raw.get("variant_id")
                variant_id = coerce_int("variant_id", variant_id) if variant_id is not None else None
                line = next(
                    (
                        candidate for candidate in lines
                        if candidate.product_id == product_id
                        and candidate.variant_id == variant_id
                        and quantities.get(candidate.line_number, 0) < candidate.quantity
                    ),
                    None,
                )
            else:
                raise InvalidInputError(
                    f"items[{index}] needs line_number or product_id",
                    details={"item_index": index},
                )

            if line is None:
                raise InvalidInputError(
                    f"items[{index}] does not match a line of the original transaction",
                    details={"item_index": index},
                )

            quantities[line.line_number] = quantities.get(line.line_number, 0) + qty
            if quantities[line.line_number] > line.quantity:
                raise InvalidInputError(
                    f"items[{index}]: cannot return more than {line.quantity} of {line.name}",
                    details={"item_index": index, "line_number": line.line_number, "sold_quantity": line.quantity},
                )

        return quantities

    def _refund_payments(self, original: PosTransaction, total: int) -> list[TransactionPayment]:
        """Spread the refund over the original tenders, change excluded."""
        tenders = list(original.payments)
        if not tenders:
            return [TransactionPayment(method=original.payment_method, amount_cents=-total)]

        change = original.change_cents or 0
        weights = []
        for p in tenders:
            weight = p.amount_cents
            if change and p.method in self.settings.cash_methods:
                taken = min(change, weight)
                weight -= taken
                change -= taken
            weights.append(weight)

        shares = allocate_pro_rata(total, weights)
        return [
            TransactionPayment(method=p.method, amount_cents=-share, reference=p.reference)
            for p, share in zip(tenders, shares)
            if share
        ] or [TransactionPayment(method=tenders[0].method, amount_cents=0)]

    def _refresh_session_totals(self, session: RegisterSession) -> None:
        compute_session_totals(session.id).apply_to(session)

    def _flag_reconciliation(self, transaction: PosTransaction, failures: list[StockFailure]) -> None:
        transaction.inventory_status = INVENTORY_STATUS_NEEDS_RECONCILIATION
        transaction.inventory_error = "; ".join(
            f"product {f.product_id}/{f.variant_id or '-'} delta {f.quantity_delta}: {f.error}"
            for f in failures
        )

    def _raise_inconsistency(self, transaction: PosTransaction, failures: list[StockFailure]) -> None:
        current_app.logger.error(
            "Inventory out of sync for transaction=%s failures=%s",
            transaction.transaction_number,
            [f.to_dict() for f in failures],
        )
        raise InconsistencyError(
            f"Transaction {transaction.transaction_number} recorded but inventory needs reconciliation",
            transaction=transaction,
            failures=failures,
        )

    def _parse_date(self, field: str, value: Any, *, end: bool = False):
        if value is None or value == "":
            return None
        try:
            if end:
                return parse_range_end(str(value))
            return parse_iso_datetime(str(value))
        except ValueError:
            raise InvalidInputError(f"{field} must be an ISO-8601 date", details={"field": field})
