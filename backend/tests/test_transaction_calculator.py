"""
Pricing tests for the pure transaction calculator.

No app context needed: the catalog is a dict lookup.
"""

import pytest

from retail_pos.errors import InvalidInputError
from retail_pos.services.transaction_calculator import (
    CatalogEntry,
    allocate_pro_rata,
    calculate_transaction,
    round_half_up,
)

CATALOG = {
    (1, None): CatalogEntry(1, None, "APL", "Apple", 1000),
    (2, None): CatalogEntry(2, None, "PER", "Pear", 500),
    (2, 7): CatalogEntry(2, 7, "PER-L", "Pear (Large)", 650),
    (3, None): CatalogEntry(3, None, "OLD", "Discontinued", 100, is_active=False),
    (4, None): CatalogEntry(4, None, "FREE", "Unpriced", None),
}


def lookup(product_id, variant_id):
    return CATALOG.get((product_id, variant_id))


def quote(items, method="card", payments=None, discounts=None, **kwargs):
    kwargs.setdefault("currency", "USD")
    kwargs.setdefault("lookup_price", lookup)
    return calculate_transaction(items, method, payments, discounts, **kwargs)


class TestRounding:
    def test_round_half_up(self):
        assert round_half_up(1485000, 10000) == 149
        assert round_half_up(371250, 10000) == 37
        assert round_half_up(5, 10) == 1
        assert round_half_up(4, 10) == 0

    def test_allocation_sums_exactly(self):
        assert allocate_pro_rata(100, [1, 1, 1]) == [34, 33, 33]
        assert allocate_pro_rata(10, [3, 3, 4]) == [3, 3, 4]
        assert sum(allocate_pro_rata(997, [123, 456, 789, 1])) == 997

    def test_allocation_zero_weights(self):
        assert allocate_pro_rata(50, [0, 0]) == [0, 0]


class TestLinePricing:
    def test_simple_sale(self):
        q = quote([{"product_id": 1, "quantity": 2}])
        assert q.subtotal_cents == 2000
        assert q.total_cents == 2000
        assert q.amount_paid_cents == 2000
        assert q.change_cents == 0
        assert q.lines[0].name == "Apple"
        assert q.lines[0].line_number == 1

    def test_variant_price(self):
        q = quote([{"product_id": 2, "variant_id": 7, "quantity": 1}])
        assert q.lines[0].unit_price_cents == 650
        assert q.lines[0].variant_id == 7

    def test_percentage_discount_and_flat_tax(self):
        q = quote(
            [{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 1}],
            method="cash",
            payments=[{"method": "cash", "amount_cents": 3000}],
            discounts=[{"type": "percentage", "value": 10}],
            tax_rate_bps=825,
        )
        first, second = q.lines
        assert first.line_discount_cents == 200
        assert second.line_discount_cents == 50
        assert first.line_tax_cents == 149
        assert second.line_tax_cents == 37
        assert q.subtotal_cents == 2500
        assert q.total_discount_cents == 250
        assert q.total_tax_cents == 186
        assert q.total_cents == 2436
        assert q.change_cents == 564

    def test_fixed_discount_uses_largest_remainder(self):
        q = quote(
            [{"product_id": 1, "quantity": 1}] * 3,
            discounts=[{"type": "fixed", "amount_cents": 100}],
        )
        assert [line.line_discount_cents for line in q.lines] == [34, 33, 33]
        assert q.total_cents == 2900

    def test_supplied_line_tax_wins(self):
        q = quote([{"product_id": 1, "quantity": 1, "tax_cents": 77}], tax_rate_bps=1000)
        assert q.total_tax_cents == 77
        assert q.total_cents == 1077

    def test_line_discount(self):
        q = quote([{"product_id": 1, "quantity": 1, "discount_cents": 250}])
        assert q.lines[0].line_total_cents == 750

    @pytest.mark.parametrize("bps", [0, 500, 825, 1999])
    def test_total_identity(self, bps):
        q = quote(
            [
                {"product_id": 1, "quantity": 3, "discount_cents": 99},
                {"product_id": 2, "quantity": 2},
                {"product_id": 2, "variant_id": 7, "quantity": 1},
            ],
            discounts=[{"type": "percentage", "value": 12.5}],
            tax_rate_bps=bps,
        )
        assert q.total_cents == q.subtotal_cents - q.total_discount_cents + q.total_tax_cents
        assert q.total_cents == sum(line.line_total_cents for line in q.lines)


class TestItemValidation:
    def test_empty_items(self):
        with pytest.raises(InvalidInputError):
            quote([])

    def test_unknown_product(self):
        with pytest.raises(InvalidInputError) as exc:
            quote([{"product_id": 99, "quantity": 1}])
        assert exc.value.details["product_id"] == 99

    def test_unknown_variant(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "variant_id": 7, "quantity": 1}])

    def test_inactive_product(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 3, "quantity": 1}])

    def test_unpriced_product(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 4, "quantity": 1}])

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2.0", True, None])
    def test_bad_quantity(self, quantity):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "quantity": quantity}])

    def test_unknown_item_field(self):
        with pytest.raises(InvalidInputError) as exc:
            quote([{"product_id": 1, "quantity": 1, "unit_price_cents": 1}])
        assert exc.value.details["fields"] == ["unit_price_cents"]

    def test_line_discount_above_gross(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "quantity": 1, "discount_cents": 1001}])

    def test_discount_above_subtotal(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "quantity": 1}], discounts=[{"type": "fixed", "amount_cents": 1001}])

    @pytest.mark.parametrize("discount", [
        {"type": "percentage", "value": 101},
        {"type": "percentage", "value": "abc"},
        {"type": "percentage", "value": "NaN"},
        {"type": "percentage", "value": "Infinity"},
        {"type": "coupon", "value": 5},
        {"type": "fixed", "amount_cents": -5},
    ])
    def test_malformed_discount(self, discount):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "quantity": 1}], discounts=[discount])


class TestTender:
    def test_unknown_payment_method(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "quantity": 1}], method="cheque")

    def test_cash_without_payments_is_exact(self):
        q = quote([{"product_id": 1, "quantity": 1}], method="cash")
        assert q.amount_paid_cents == 1000
        assert q.change_cents == 0
        assert q.payments[0].method == "cash"

    def test_cash_short_payment(self):
        with pytest.raises(InvalidInputError):
            quote(
                [{"product_id": 1, "quantity": 1}],
                method="cash",
                payments=[{"method": "cash", "amount_cents": 900}],
            )

    def test_card_must_match_total(self):
        with pytest.raises(InvalidInputError):
            quote(
                [{"product_id": 1, "quantity": 1}],
                method="card",
                payments=[{"method": "card", "amount_cents": 1200}],
            )

    def test_configured_cash_like_method_gives_change(self):
        q = quote(
            [{"product_id": 1, "quantity": 1}],
            method="gift_card",
            payments=[{"method": "gift_card", "amount_cents": 1500}],
            cash_methods=("cash", "gift_card"),
        )
        assert q.change_cents == 500

    def test_split_with_cash(self):
        q = quote(
            [{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 1}],
            method="split",
            payments=[
                {"method": "card", "amount_cents": 1000, "reference": "AUTH-1"},
                {"method": "cash", "amount_cents": 2000},
            ],
        )
        assert q.amount_paid_cents == 3000
        assert q.change_cents == 500
        assert q.payments[0].reference == "AUTH-1"

    def test_split_requires_payments(self):
        with pytest.raises(InvalidInputError):
            quote([{"product_id": 1, "quantity": 1}], method="split")

    def test_split_non_cash_cannot_exceed_total(self):
        with pytest.raises(InvalidInputError):
            quote(
                [{"product_id": 1, "quantity": 1}],
                method="split",
                payments=[
                    {"method": "card", "amount_cents": 1200},
                    {"method": "cash", "amount_cents": 100},
                ],
            )

    def test_split_is_not_a_tender(self):
        with pytest.raises(InvalidInputError):
            quote(
                [{"product_id": 1, "quantity": 1}],
                method="split",
                payments=[{"method": "split", "amount_cents": 1000}],
            )
