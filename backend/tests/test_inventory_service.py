"""
Inventory ledger tests: ledger-derived on-hand, batched movements, receiving.
"""

import pytest

from retail_pos.errors import InsufficientStockError, InvalidInputError, NotFoundError
from retail_pos.extensions import db
from retail_pos.models import StockMovement
from retail_pos.services.inventory_service import (
    REASON_ADJUST,
    REASON_POS_SALE,
    InventoryLedger,
    MovementRequest,
    StockMeta,
)

from conftest import make_product, make_variant


SALE = StockMeta(reason=REASON_POS_SALE, reference="TEST")


@pytest.fixture
def ledger(db_session):
    return InventoryLedger()


class TestQuantityOnHand:
    def test_sum_of_movements(self, ledger, apple):
        assert ledger.quantity_on_hand(apple.id) == 10
        ledger.decrease_stock(apple.id, None, 3, SALE)
        assert ledger.quantity_on_hand(apple.id) == 7

    def test_variants_are_separate(self, ledger, db_session):
        shirt = make_product("SHIRT", "Shirt", 2000, stock=2)
        large = make_variant(shirt, "SHIRT-L", "Large", stock=5)
        assert ledger.quantity_on_hand(shirt.id) == 2
        assert ledger.quantity_on_hand(shirt.id, large.id) == 5
        assert ledger.describe(shirt.id, large.id) == "Shirt (Large)"

    def test_unknown_product(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.check_availability(12345, None, 1)


class TestAvailability:
    def test_available(self, ledger, apple):
        availability = ledger.check_availability(apple.id, None, 10)
        assert availability.available is True
        assert availability.available_quantity == 10
        assert availability.product_name == "Apple"

    def test_not_available(self, ledger, apple):
        assert ledger.check_availability(apple.id, None, 11).available is False

    def test_negative_policy(self, db_session, apple):
        lenient = InventoryLedger(allow_negative_stock=True)
        assert lenient.check_availability(apple.id, None, 50).available is True


class TestMovements:
    def test_decrease_beyond_stock(self, ledger, apple):
        with pytest.raises(InsufficientStockError) as exc:
            ledger.decrease_stock(apple.id, None, 11, SALE)
        assert exc.value.available_quantity == 10
        assert exc.value.requested_quantity == 11
        assert "Apple" in exc.value.message
        assert ledger.quantity_on_hand(apple.id) == 10

    def test_quantity_must_be_positive(self, ledger, apple):
        with pytest.raises(InvalidInputError):
            ledger.decrease_stock(apple.id, None, 0, SALE)
        with pytest.raises(InvalidInputError):
            ledger.increase_stock(apple.id, None, -1, SALE)

    def test_batch_reports_failures_and_keeps_successes(self, ledger, apple, pear):
        result = ledger.apply_batch([
            MovementRequest(apple.id, None, -4, SALE),
            MovementRequest(pear.id, None, -9, SALE),
            MovementRequest(pear.id, None, -2, SALE),
        ])

        assert not result.ok
        assert len(result.applied) == 2
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.product_id == pear.id
        assert failure.available_quantity == 5
        assert ledger.quantity_on_hand(apple.id) == 6
        assert ledger.quantity_on_hand(pear.id) == 3

    def test_batch_allows_negative_when_configured(self, db_session, apple):
        lenient = InventoryLedger(allow_negative_stock=True)
        result = lenient.apply_batch([MovementRequest(apple.id, None, -15, SALE)])
        assert result.ok
        assert lenient.quantity_on_hand(apple.id) == -5


class TestStandaloneOperations:
    def test_receive_commits(self, ledger, apple):
        movement = ledger.receive_stock(product_id=apple.id, quantity=6, notes="Delivery")
        db.session.rollback()
        assert ledger.quantity_on_hand(apple.id) == 16
        assert movement.reason == "receive"

    def test_receive_unknown_variant(self, ledger, apple):
        with pytest.raises(NotFoundError):
            ledger.receive_stock(product_id=apple.id, variant_id=999, quantity=1)

    def test_adjust_down(self, ledger, apple):
        ledger.adjust_stock(product_id=apple.id, quantity_delta=-4, notes="Shrinkage")
        assert ledger.quantity_on_hand(apple.id) == 6
        reasons = [m.reason for m in ledger.list_movements(apple.id)]
        assert reasons[0] == REASON_ADJUST

    def test_adjust_cannot_go_negative(self, ledger, apple):
        with pytest.raises(InsufficientStockError):
            ledger.adjust_stock(product_id=apple.id, quantity_delta=-11)
        db.session.rollback()
        assert ledger.quantity_on_hand(apple.id) == 10

    def test_adjust_zero(self, ledger, apple):
        with pytest.raises(InvalidInputError):
            ledger.adjust_stock(product_id=apple.id, quantity_delta=0)

    def test_movements_are_append_only_rows(self, ledger, apple):
        ledger.receive_stock(product_id=apple.id, quantity=1)
        count = db.session.query(StockMovement).filter_by(product_id=apple.id).count()
        assert count == 2
