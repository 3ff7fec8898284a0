# Overview: Inventory ledger adapter used by the POS core; ledger-derived stock with batched mutation.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InsufficientStockError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Product, ProductVariant, StockMovement
from ..time_utils import utcnow
from .concurrency import run_with_retry
"""
Inventory invariants (authoritative)

- Stock is ledger-derived from StockMovement rows; never stored as a mutable quantity field.
- Quantity on hand for (product, variant) is SUM(quantity_delta).
- On-hand may never go negative unless allow_negative_stock is configured.
- The availability check is advisory. The authoritative guard is the
  post-write on-hand check inside apply_batch(): a movement that drives
  stock negative is rolled back to its savepoint and reported as a failure.
"""

REASON_POS_SALE = "pos_sale"
REASON_POS_REFUND = "pos_refund"
REASON_POS_VOID = "pos_void"
REASON_RECEIVE = "receive"
REASON_ADJUST = "adjust"


@dataclass(frozen=True)
class StockMeta:
    """Audit metadata attached to every movement."""
    reason: str
    reference: str | None = None
    notes: str | None = None
    actor_id: int | None = None


@dataclass(frozen=True)
class Availability:
    available: bool
    available_quantity: int
    product_name: str


@dataclass(frozen=True)
class MovementRequest:
    product_id: int
    variant_id: int | None
    quantity_delta: int
    meta: StockMeta


@dataclass(frozen=True)
class StockFailure:
    product_id: int
    variant_id: int | None
    quantity_delta: int
    error: str
    available_quantity: int | None = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity_delta": self.quantity_delta,
            "error": self.error,
            "available_quantity": self.available_quantity,
        }


@dataclass
class BatchResult:
    applied: list[StockMovement] = field(default_factory=list)
    failures: list[StockFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class _NegativeStock(Exception):
    def __init__(self, on_hand: int):
        super().__init__(f"on-hand would become {on_hand}")
        self.on_hand = on_hand


class InventoryLedger:
    """
    Stock collaborator for the POS core.

    decrease_stock/increase_stock/apply_batch never commit: they run inside
    the caller's unit of work. receive_stock/adjust_stock are standalone
    operations and commit.
    """

    def __init__(self, *, allow_negative_stock: bool = False):
        self.allow_negative_stock = allow_negative_stock

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def quantity_on_hand(self, product_id: int, variant_id: int | None = None) -> int:
        q = db.session.query(
            func.coalesce(func.sum(StockMovement.quantity_delta), 0)
        ).filter(StockMovement.product_id == product_id)

        if variant_id is None:
            q = q.filter(StockMovement.variant_id.is_(None))
        else:
            q = q.filter(StockMovement.variant_id == variant_id)

        return int(q.scalar() or 0)

    def describe(self, product_id: int, variant_id: int | None = None) -> str:
        product, variant = self._resolve_item(product_id, variant_id)
        if variant is not None:
            return f"{product.name} ({variant.name})"
        return product.name

    def check_availability(self, product_id: int, variant_id: int | None, quantity: int) -> Availability:
        name = self.describe(product_id, variant_id)
        on_hand = self.quantity_on_hand(product_id, variant_id)
        available = self.allow_negative_stock or on_hand >= quantity
        return Availability(available=available, available_quantity=on_hand, product_name=name)

    def list_movements(self, product_id: int, variant_id: int | None = None, limit: int = 200) -> list[StockMovement]:
        self._resolve_item(product_id, variant_id)
        q = db.session.query(StockMovement).filter_by(product_id=product_id)
        if variant_id is not None:
            q = q.filter_by(variant_id=variant_id)
        return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()

    # -------------------------------------------------------------------------
    # Mutations inside the caller's transaction
    # -------------------------------------------------------------------------

    def decrease_stock(self, product_id: int, variant_id: int | None, quantity: int, meta: StockMeta) -> StockMovement:
        if quantity <= 0:
            raise InvalidInputError("quantity must be > 0", details={"field": "quantity"})
        result = self.apply_batch([MovementRequest(product_id, variant_id, -quantity, meta)])
        if not result.ok:
            failure = result.failures[0]
            if failure.available_quantity is not None:
                raise InsufficientStockError(
                    product_id=product_id,
                    variant_id=variant_id,
                    product_name=self.describe(product_id, variant_id),
                    available_quantity=failure.available_quantity,
                    requested_quantity=quantity,
                )
            raise InvalidInputError(failure.error, details=failure.to_dict())
        return result.applied[0]

    def increase_stock(self, product_id: int, variant_id: int | None, quantity: int, meta: StockMeta) -> StockMovement:
        if quantity <= 0:
            raise InvalidInputError("quantity must be > 0", details={"field": "quantity"})
        result = self.apply_batch([MovementRequest(product_id, variant_id, quantity, meta)])
        if not result.ok:
            raise InvalidInputError(result.failures[0].error, details=result.failures[0].to_dict())
        return result.applied[0]

    def apply_batch(self, movements: list[MovementRequest]) -> BatchResult:
        """
        Apply every movement, each in its own savepoint.

        A movement that fails (write error, or on-hand negative after the
        write) is rolled back individually and reported; the others stay
        applied. Callers decide whether partial success is acceptable.
        """
        result = BatchResult()
        occurred_at = utcnow()

        for movement in movements:
            try:
                with db.session.begin_nested():
                    row = StockMovement(
                        product_id=movement.product_id,
                        variant_id=movement.variant_id,
                        quantity_delta=movement.quantity_delta,
                        reason=movement.meta.reason,
                        reference=movement.meta.reference,
                        notes=movement.meta.notes,
                        actor_id=movement.meta.actor_id,
                        occurred_at=occurred_at,
                    )
                    db.session.add(row)
                    db.session.flush()

                    if movement.quantity_delta < 0 and not self.allow_negative_stock:
                        on_hand = self.quantity_on_hand(movement.product_id, movement.variant_id)
                        if on_hand < 0:
                            raise _NegativeStock(on_hand)
                result.applied.append(row)
            except _NegativeStock as exc:
                result.failures.append(StockFailure(
                    product_id=movement.product_id,
                    variant_id=movement.variant_id,
                    quantity_delta=movement.quantity_delta,
                    error="stock would become negative",
                    available_quantity=exc.on_hand - movement.quantity_delta,
                ))
            except SQLAlchemyError as exc:
                result.failures.append(StockFailure(
                    product_id=movement.product_id,
                    variant_id=movement.variant_id,
                    quantity_delta=movement.quantity_delta,
                    error=f"stock write failed: {exc.__class__.__name__}",
                ))

        for failure in result.failures:
            current_app.logger.warning(
                "Stock movement rejected product_id=%s variant_id=%s delta=%s: %s",
                failure.product_id, failure.variant_id, failure.quantity_delta, failure.error,
            )

        return result

    # -------------------------------------------------------------------------
    # Standalone operations
    # -------------------------------------------------------------------------

    def receive_stock(
        self,
        *,
        product_id: int,
        variant_id: int | None = None,
        quantity: int,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> StockMovement:
        """Book incoming stock (deliveries, opening counts)."""
        def _op():
            self._resolve_item(product_id, variant_id)
            movement = self.increase_stock(
                product_id, variant_id, quantity,
                StockMeta(reason=REASON_RECEIVE, notes=notes, actor_id=actor_id),
            )
            db.session.commit()
            return movement

        return run_with_retry(_op)

    def adjust_stock(
        self,
        *,
        product_id: int,
        variant_id: int | None = None,
        quantity_delta: int,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> StockMovement:
        """Manual correction; refuses to take on-hand below zero."""
        if quantity_delta == 0:
            raise InvalidInputError("quantity_delta must be non-zero", details={"field": "quantity_delta"})

        def _op():
            self._resolve_item(product_id, variant_id)
            meta = StockMeta(reason=REASON_ADJUST, notes=notes, actor_id=actor_id)
            if quantity_delta > 0:
                movement = self.increase_stock(product_id, variant_id, quantity_delta, meta)
            else:
                movement = self.decrease_stock(product_id, variant_id, -quantity_delta, meta)
            db.session.commit()
            return movement

        return run_with_retry(_op)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve_item(self, product_id: int, variant_id: int | None) -> tuple[Product, ProductVariant | None]:
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

        variant = None
        if variant_id is not None:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None or variant.product_id != product_id:
                raise NotFoundError(
                    f"Variant {variant_id} not found for product {product_id}",
                    details={"product_id": product_id, "variant_id": variant_id},
                )
        return product, variant
