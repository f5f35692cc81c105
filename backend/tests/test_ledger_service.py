"""
Inventory ledger primitive tests.

Every test checks the three views of stock that must stay in step:
InventoryItem rows, Product.stock_on_hand and the InventoryTransaction log.
"""

import pytest
from sqlalchemy import func

from millstock.models import InventoryItem, InventoryTransaction, Product
from millstock.models.inventory import KIND_ADJUSTMENT, KIND_STOCK_IN, KIND_STOCK_OUT
from millstock.services import inventory_service, ledger_service
from millstock.services.concurrency import run_atomic
from millstock.validation import ConflictError, InsufficientStockError, ValidationError


def item_qty(session, product, location):
    item = session.query(InventoryItem).filter_by(product_id=product.id, location_id=location.id).first()
    return None if item is None else item.quantity


def item_total(session, product):
    return session.query(func.coalesce(func.sum(InventoryItem.quantity), 0)).filter(
        InventoryItem.product_id == product.id
    ).scalar()


def tx_count(session, product):
    return session.query(InventoryTransaction).filter_by(product_id=product.id).count()


class TestStockIn:
    """stock_in creates rows lazily and keeps the cache in step."""

    def test_first_receipt_creates_item(self, db_session, palay, warehouse, put_stock):
        tx = put_stock(palay, warehouse, 50)

        db_session.expire_all()
        assert item_qty(db_session, palay, warehouse) == 50
        assert db_session.get(Product, palay.id).stock_on_hand == 50
        assert tx.kind == KIND_STOCK_IN
        assert tx.quantity == 50
        assert tx.location_id == warehouse.id
        assert tx.created_by == "fixture"

    def test_second_receipt_increments_same_row(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 50)
        put_stock(palay, warehouse, 25)

        db_session.expire_all()
        assert db_session.query(InventoryItem).filter_by(product_id=palay.id).count() == 1
        assert item_qty(db_session, palay, warehouse) == 75
        assert tx_count(db_session, palay) == 2

    def test_rejects_non_positive_quantity(self, db_session, palay, warehouse, put_stock):
        with pytest.raises(ValidationError):
            put_stock(palay, warehouse, 0)
        with pytest.raises(ValidationError):
            put_stock(palay, warehouse, -5)

    def test_inactive_location_rejected(self, db_session, palay, warehouse, put_stock):
        warehouse.is_active = False
        db_session.commit()

        with pytest.raises(ConflictError):
            put_stock(palay, warehouse, 10)
        assert tx_count(db_session, palay) == 0

    def test_unknown_product_is_not_found(self, db_session, warehouse):
        from millstock.validation import NotFoundError

        with pytest.raises(NotFoundError):
            inventory_service.assign_stock(product_id=9999, location_id=warehouse.id, quantity=1)

    def test_version_counter_bumps_on_write(self, db_session, palay, warehouse, put_stock):
        before = db_session.get(Product, palay.id).version_id

        put_stock(palay, warehouse, 5)

        db_session.expire_all()
        assert db_session.get(Product, palay.id).version_id > before


class TestStockOut:
    """Policy-ordered deduction across locations."""

    @pytest.fixture
    def two_lots(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 30)  # older lot
        put_stock(palay, annex, 20)      # newer lot
        return palay

    def test_fifo_drains_oldest_first(self, db_session, two_lots, warehouse, annex):
        rows = run_atomic(lambda uow: ledger_service.stock_out(
            uow, product_id=two_lots.id, quantity=40, policy=ledger_service.POLICY_FIFO,
        ))

        assert [(r.location_id, r.quantity) for r in rows] == [(warehouse.id, 30), (annex.id, 10)]
        assert all(r.kind == KIND_STOCK_OUT for r in rows)

        db_session.expire_all()
        assert item_qty(db_session, two_lots, warehouse) == 0
        assert item_qty(db_session, two_lots, annex) == 10
        assert db_session.get(Product, two_lots.id).stock_on_hand == 10

    def test_lifo_drains_newest_first(self, db_session, two_lots, warehouse, annex):
        rows = run_atomic(lambda uow: ledger_service.stock_out(
            uow, product_id=two_lots.id, quantity=25, policy=ledger_service.POLICY_LIFO,
        ))

        assert [(r.location_id, r.quantity) for r in rows] == [(annex.id, 20), (warehouse.id, 5)]

        db_session.expire_all()
        assert item_qty(db_session, two_lots, warehouse) == 25
        assert item_qty(db_session, two_lots, annex) == 0

    def test_single_location_scope(self, db_session, two_lots, warehouse, annex):
        rows = run_atomic(lambda uow: ledger_service.stock_out(
            uow, product_id=two_lots.id, quantity=5, location_id=annex.id,
        ))

        assert [(r.location_id, r.quantity) for r in rows] == [(annex.id, 5)]
        db_session.expire_all()
        assert item_qty(db_session, two_lots, warehouse) == 30

    def test_insufficient_stock_changes_nothing(self, db_session, two_lots, warehouse, annex):
        with pytest.raises(InsufficientStockError) as exc:
            run_atomic(lambda uow: ledger_service.stock_out(uow, product_id=two_lots.id, quantity=51))

        assert exc.value.available == 50
        assert exc.value.requested == 51

        db_session.expire_all()
        assert item_qty(db_session, two_lots, warehouse) == 30
        assert item_qty(db_session, two_lots, annex) == 20
        assert db_session.get(Product, two_lots.id).stock_on_hand == 50
        assert tx_count(db_session, two_lots) == 2

    def test_rejects_inbound_kind(self, db_session, two_lots):
        with pytest.raises(ValidationError):
            run_atomic(lambda uow: ledger_service.stock_out(
                uow, product_id=two_lots.id, quantity=1, kind=KIND_STOCK_IN,
            ))


class TestTransfer:

    def test_exact_drain_deletes_source_row(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 40)

        out_tx, in_tx = inventory_service.transfer_stock(
            product_id=palay.id,
            source_location_id=warehouse.id,
            target_location_id=annex.id,
            quantity=40,
        )

        db_session.expire_all()
        assert item_qty(db_session, palay, warehouse) is None
        assert item_qty(db_session, palay, annex) == 40
        assert db_session.get(Product, palay.id).stock_on_hand == 40
        assert (out_tx.kind, out_tx.location_id) == (KIND_STOCK_OUT, warehouse.id)
        assert (in_tx.kind, in_tx.location_id) == (KIND_STOCK_IN, annex.id)

    def test_partial_transfer_keeps_source_row(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 40)

        inventory_service.transfer_stock(
            product_id=palay.id, source_location_id=warehouse.id, target_location_id=annex.id, quantity=15,
        )

        db_session.expire_all()
        assert item_qty(db_session, palay, warehouse) == 25
        assert item_qty(db_session, palay, annex) == 15

    def test_same_location_rejected(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)
        with pytest.raises(ValidationError):
            inventory_service.transfer_stock(
                product_id=palay.id, source_location_id=warehouse.id, target_location_id=warehouse.id, quantity=1,
            )

    def test_transfer_more_than_source_holds(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 10)
        with pytest.raises(InsufficientStockError):
            inventory_service.transfer_stock(
                product_id=palay.id, source_location_id=warehouse.id, target_location_id=annex.id, quantity=11,
            )
        db_session.expire_all()
        assert item_qty(db_session, palay, warehouse) == 10
        assert item_qty(db_session, palay, annex) is None


class TestAdjust:

    def test_add_logs_stock_in(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)

        result = inventory_service.adjust_stock(
            product_id=palay.id, location_id=warehouse.id, adjustment_type="ADD", quantity=5, reason="Recount",
        )

        assert result["previous_quantity"] == 10
        assert result["new_quantity"] == 15
        assert result["quantity_change"] == 5
        assert result["transaction"].kind == KIND_STOCK_IN
        assert result["transaction"].note == "ADD: Recount (Before: 10, After: 15)"

    def test_remove_logs_stock_out(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)

        result = inventory_service.adjust_stock(
            product_id=palay.id, location_id=warehouse.id, adjustment_type="remove", quantity=4, reason="Spoiled",
        )

        assert result["transaction"].kind == KIND_STOCK_OUT
        assert result["transaction"].quantity == 4
        db_session.expire_all()
        assert db_session.get(Product, palay.id).stock_on_hand == 6

    def test_set_to_same_value_logs_adjustment(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)

        result = inventory_service.adjust_stock(
            product_id=palay.id, location_id=warehouse.id, adjustment_type="SET", quantity=10, reason="Audit",
        )

        assert result["transaction"].kind == KIND_ADJUSTMENT
        assert result["transaction"].quantity == 0

    def test_set_to_zero_allowed(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)

        result = inventory_service.adjust_stock(
            product_id=palay.id, location_id=warehouse.id, adjustment_type="SET", quantity=0, reason="Write-off",
        )

        assert result["new_quantity"] == 0
        db_session.expire_all()
        assert db_session.get(Product, palay.id).stock_on_hand == 0

    def test_remove_below_zero_rejected(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 3)

        with pytest.raises(InsufficientStockError):
            inventory_service.adjust_stock(
                product_id=palay.id, location_id=warehouse.id, adjustment_type="REMOVE", quantity=4, reason="x",
            )
        db_session.expire_all()
        assert item_qty(db_session, palay, warehouse) == 3

    def test_invalid_type_rejected(self, db_session, palay, warehouse):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(
                product_id=palay.id, location_id=warehouse.id, adjustment_type="MULTIPLY", quantity=2, reason="x",
            )

    def test_reason_required(self, db_session, palay, warehouse):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(
                product_id=palay.id, location_id=warehouse.id, adjustment_type="ADD", quantity=2, reason="  ",
            )


class TestRemoveEmptyItem:

    def test_removes_zero_row(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 5)
        inventory_service.adjust_stock(
            product_id=palay.id, location_id=warehouse.id, adjustment_type="SET", quantity=0, reason="Empty",
        )
        item = db_session.query(InventoryItem).filter_by(product_id=palay.id).one()

        inventory_service.remove_empty_item(item.id)

        assert db_session.query(InventoryItem).filter_by(product_id=palay.id).count() == 0

    def test_refuses_stocked_row(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 5)
        item = db_session.query(InventoryItem).filter_by(product_id=palay.id).one()

        with pytest.raises(ConflictError):
            inventory_service.remove_empty_item(item.id)


class TestConservation:

    def test_items_cache_and_log_agree_after_mixed_moves(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 60)
        put_stock(palay, annex, 15)
        inventory_service.transfer_stock(
            product_id=palay.id, source_location_id=warehouse.id, target_location_id=annex.id, quantity=20,
        )
        run_atomic(lambda uow: ledger_service.stock_out(uow, product_id=palay.id, quantity=30))
        inventory_service.adjust_stock(
            product_id=palay.id, location_id=annex.id, adjustment_type="ADD", quantity=7, reason="Found",
        )

        db_session.expire_all()
        replay = sum(
            tx.signed_quantity for tx in db_session.query(InventoryTransaction).filter_by(product_id=palay.id)
        )
        assert item_total(db_session, palay) == 52
        assert db_session.get(Product, palay.id).stock_on_hand == 52
        assert replay == 52
        assert db_session.query(InventoryItem).filter(InventoryItem.quantity < 0).count() == 0


class TestTransactionLogGuard:
    """The transaction log is append-only."""

    def test_update_rejected(self, db_session, palay, warehouse, put_stock):
        tx = put_stock(palay, warehouse, 5)
        tx = db_session.get(InventoryTransaction, tx.id)

        tx.note = "rewritten"
        with pytest.raises(ConflictError):
            db_session.flush()
        db_session.rollback()

    def test_delete_rejected(self, db_session, palay, warehouse, put_stock):
        tx = put_stock(palay, warehouse, 5)
        tx = db_session.get(InventoryTransaction, tx.id)

        db_session.delete(tx)
        with pytest.raises(ConflictError):
            db_session.flush()
        db_session.rollback()
