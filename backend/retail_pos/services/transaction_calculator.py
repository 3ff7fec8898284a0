# Overview: Pure pricing of POS line items, discounts, tax and tender.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Iterable

from ..errors import InvalidInputError
from ..validation import coerce_cents, coerce_int

"""
Pricing rules (all amounts are integer cents):

- line gross     = unit_price * quantity
- line discount  = item discount_cents + its share of order-level discounts
- line tax       = item tax_cents if supplied, else round_half_up(net * tax_rate_bps / 10000)
- line total     = gross - discount + tax
- transaction totals are sums over lines, so
  total == subtotal - total_discount + total_tax holds exactly.
"""

PAYMENT_METHODS = ("cash", "card", "mobile", "gift_card", "split")

ITEM_FIELDS = {"product_id", "variant_id", "quantity", "discount_cents", "tax_cents"}
PAYMENT_FIELDS = {"method", "amount_cents", "reference"}
DISCOUNT_FIELDS = {"type", "value", "amount_cents", "reason"}


@dataclass(frozen=True)
class CatalogEntry:
    product_id: int
    variant_id: int | None
    sku: str | None
    name: str
    unit_price_cents: int | None
    is_active: bool = True


@dataclass(frozen=True)
class QuotedLine:
    line_number: int
    product_id: int
    variant_id: int | None
    sku: str | None
    name: str
    quantity: int
    unit_price_cents: int
    line_discount_cents: int
    line_tax_cents: int
    line_total_cents: int

    @property
    def gross_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class QuotedPayment:
    method: str
    amount_cents: int
    reference: str | None = None


@dataclass(frozen=True)
class TransactionQuote:
    lines: tuple[QuotedLine, ...]
    payments: tuple[QuotedPayment, ...]
    payment_method: str
    currency: str
    subtotal_cents: int
    total_discount_cents: int
    total_tax_cents: int
    total_cents: int
    amount_paid_cents: int
    change_cents: int


PriceLookup = Callable[[int, "int | None"], "CatalogEntry | None"]


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero (inputs non-negative)."""
    return (2 * numerator + denominator) // (2 * denominator)


def allocate_pro_rata(amount: int, weights: list[int]) -> list[int]:
    """
    Split amount across weights using largest remainder.

    The parts always sum to amount exactly; ties go to the earlier line.
    """
    total_weight = sum(weights)
    if amount == 0 or total_weight == 0:
        return [0] * len(weights)

    base = [amount * w // total_weight for w in weights]
    remainders = [amount * w % total_weight for w in weights]
    leftover = amount - sum(base)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        base[i] += 1
    return base


def _parse_item(index: int, raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise InvalidInputError(f"items[{index}] must be an object", details={"item_index": index})

    unknown = sorted(set(raw) - ITEM_FIELDS)
    if unknown:
        raise InvalidInputError(
            f"items[{index}] has unknown fields: {', '.join(unknown)}",
            details={"item_index": index, "fields": unknown},
        )
    if raw.get("product_id") is None:
        raise InvalidInputError(f"items[{index}].product_id is required", details={"item_index": index})
    if raw.get("quantity") is None:
        raise InvalidInputError(f"items[{index}].quantity is required", details={"item_index": index})

    try:
        quantity = coerce_int("quantity", raw["quantity"])
        if quantity <= 0:
            raise InvalidInputError("quantity must be > 0")
        parsed = {
            "product_id": coerce_int("product_id", raw["product_id"], minimum=1),
            "variant_id": coerce_int("variant_id", raw["variant_id"], minimum=1) if raw.get("variant_id") is not None else None,
            "quantity": quantity,
            "discount_cents": coerce_cents("discount_cents", raw.get("discount_cents") or 0),
            "tax_cents": coerce_cents("tax_cents", raw["tax_cents"]) if raw.get("tax_cents") is not None else None,
        }
    except InvalidInputError as exc:
        raise InvalidInputError(
            f"items[{index}]: {exc.message}",
            details={"item_index": index, **exc.details},
        )
    return parsed


def _order_discount_amount(index: int, raw: Any, base_cents: int) -> int:
    if not isinstance(raw, dict):
        raise InvalidInputError(f"discounts[{index}] must be an object", details={"discount_index": index})
    unknown = sorted(set(raw) - DISCOUNT_FIELDS)
    if unknown:
        raise InvalidInputError(
            f"discounts[{index}] has unknown fields: {', '.join(unknown)}",
            details={"discount_index": index, "fields": unknown},
        )

    kind = str(raw.get("type", "")).lower()
    if kind == "fixed":
        return coerce_cents("amount_cents", raw.get("amount_cents", 0))
    if kind == "percentage":
        try:
            pct = Decimal(str(raw.get("value")))
        except (InvalidOperation, ValueError):
            raise InvalidInputError(f"discounts[{index}].value must be a number", details={"discount_index": index})
        if not pct.is_finite():
            raise InvalidInputError(f"discounts[{index}].value must be a number", details={"discount_index": index})
        if pct < 0 or pct > 100:
            raise InvalidInputError(
                f"discounts[{index}].value must be between 0 and 100",
                details={"discount_index": index},
            )
        return int((Decimal(base_cents) * pct / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    raise InvalidInputError(
        f"discounts[{index}].type must be 'percentage' or 'fixed'",
        details={"discount_index": index},
    )


def _parse_payments(raw_payments: Iterable[Any] | None) -> list[QuotedPayment]:
    if raw_payments is None:
        return []
    if not isinstance(raw_payments, list):
        raise InvalidInputError("payments must be a list", details={"field": "payments"})

    payments = []
    for index, raw in enumerate(raw_payments):
        if not isinstance(raw, dict):
            raise InvalidInputError(f"payments[{index}] must be an object", details={"payment_index": index})
        unknown = sorted(set(raw) - PAYMENT_FIELDS)
        if unknown:
            raise InvalidInputError(
                f"payments[{index}] has unknown fields: {', '.join(unknown)}",
                details={"payment_index": index, "fields": unknown},
            )
        method = str(raw.get("method", "")).lower()
        if method not in PAYMENT_METHODS or method == "split":
            raise InvalidInputError(
                f"payments[{index}].method is not a valid tender",
                details={"payment_index": index, "method": method},
            )
        amount = coerce_cents("amount_cents", raw.get("amount_cents"))
        if amount <= 0:
            raise InvalidInputError(
                f"payments[{index}].amount_cents must be > 0",
                details={"payment_index": index},
            )
        reference = raw.get("reference")
        payments.append(QuotedPayment(method=method, amount_cents=amount, reference=str(reference) if reference else None))
    return payments


def _settle(
    payment_method: str,
    payments: list[QuotedPayment],
    total: int,
    cash_methods: tuple[str, ...],
) -> tuple[list[QuotedPayment], int, int]:
    """Return (payments, amount_paid, change) for the tender rules."""
    if not payments:
        if payment_method == "split":
            raise InvalidInputError("split payment requires a payments list", details={"field": "payments"})
        return [QuotedPayment(method=payment_method, amount_cents=total)], total, 0

    paid = sum(p.amount_cents for p in payments)
    cash_paid = sum(p.amount_cents for p in payments if p.method in cash_methods)
    cash_like = payment_method in cash_methods or (payment_method == "split" and cash_paid > 0)

    if cash_like:
        if paid < total:
            raise InvalidInputError(
                "Payment does not cover the transaction total",
                details={"amount_paid_cents": paid, "total_cents": total},
            )
        if paid - cash_paid > total:
            raise InvalidInputError(
                "Non-cash tenders exceed the transaction total",
                details={"non_cash_cents": paid - cash_paid, "total_cents": total},
            )
        return payments, paid, paid - total

    if paid != total:
        raise InvalidInputError(
            "Payments must equal the transaction total for non-cash tenders",
            details={"amount_paid_cents": paid, "total_cents": total},
        )
    return payments, paid, 0


def calculate_transaction(
    items: Any,
    payment_method: Any,
    payments: Any = None,
    discounts: Any = None,
    *,
    currency: str,
    lookup_price: PriceLookup,
    tax_rate_bps: int = 0,
    cash_methods: tuple[str, ...] = ("cash",),
) -> TransactionQuote:
    """
    Validate and price a sale request.

    lookup_price(product_id, variant_id) returns a CatalogEntry or None for
    unknown items. No database or session state is touched here.
    """
    if not isinstance(items, list) or not items:
        raise InvalidInputError("items must be a non-empty list", details={"field": "items"})

    method = str(payment_method or "").lower()
    if method not in PAYMENT_METHODS:
        raise InvalidInputError(
            f"Unsupported payment method: {payment_method}",
            details={"field": "payment_method", "allowed": list(PAYMENT_METHODS)},
        )

    parsed = [_parse_item(i, raw) for i, raw in enumerate(items)]

    entries: list[CatalogEntry] = []
    for index, item in enumerate(parsed):
        entry = lookup_price(item["product_id"], item["variant_id"])
        if entry is None:
            raise InvalidInputError(
                f"items[{index}]: unknown product",
                details={"item_index": index, "product_id": item["product_id"], "variant_id": item["variant_id"]},
            )
        if not entry.is_active:
            raise InvalidInputError(
                f"items[{index}]: {entry.name} is not available for sale",
                details={"item_index": index, "product_id": entry.product_id},
            )
        if entry.unit_price_cents is None:
            raise InvalidInputError(
                f"items[{index}]: {entry.name} has no price",
                details={"item_index": index, "product_id": entry.product_id},
            )
        gross = entry.unit_price_cents * item["quantity"]
        if item["discount_cents"] > gross:
            raise InvalidInputError(
                f"items[{index}]: discount exceeds line amount",
                details={"item_index": index, "discount_cents": item["discount_cents"], "gross_cents": gross},
            )
        entries.append(entry)

    nets = [e.unit_price_cents * it["quantity"] - it["discount_cents"] for e, it in zip(entries, parsed)]

    if discounts is None:
        discounts = []
    if not isinstance(discounts, list):
        raise InvalidInputError("discounts must be a list", details={"field": "discounts"})

    order_discount = 0
    for index, raw in enumerate(discounts):
        order_discount += _order_discount_amount(index, raw, sum(nets) - order_discount)
    if order_discount > sum(nets):
        raise InvalidInputError(
            "Discounts exceed the transaction subtotal",
            details={"discount_cents": order_discount, "subtotal_cents": sum(nets)},
        )
    shares = allocate_pro_rata(order_discount, nets)

    lines = []
    for index, (entry, item, share) in enumerate(zip(entries, parsed, shares)):
        gross = entry.unit_price_cents * item["quantity"]
        discount = item["discount_cents"] + share
        net = gross - discount
        if item["tax_cents"] is not None:
            tax = item["tax_cents"]
        else:
            tax = round_half_up(net * tax_rate_bps, 10_000) if tax_rate_bps else 0
        lines.append(QuotedLine(
            line_number=index + 1,
            product_id=entry.product_id,
            variant_id=entry.variant_id,
            sku=entry.sku,
            name=entry.name,
            quantity=item["quantity"],
            unit_price_cents=entry.unit_price_cents,
            line_discount_cents=discount,
            line_tax_cents=tax,
            line_total_cents=net + tax,
        ))

    subtotal = sum(line.gross_cents for line in lines)
    total_discount = sum(line.line_discount_cents for line in lines)
    total_tax = sum(line.line_tax_cents for line in lines)
    total = subtotal - total_discount + total_tax

    settled, paid, change = _settle(method, _parse_payments(payments), total, tuple(cash_methods))

    return TransactionQuote(
        lines=tuple(lines),
        payments=tuple(settled),
        payment_method=method,
        currency=currency,
        subtotal_cents=subtotal,
        total_discount_cents=total_discount,
        total_tax_cents=total_tax,
        total_cents=total,
        amount_paid_cents=paid,
        change_cents=change,
    )
