"""
Reconciliation and legacy return repair tests.
"""

from millstock.models import InventoryItem, InventoryTransaction, Product
from millstock.models.inventory import KIND_RETURN_OUT
from millstock.services import inventory_service, milling_service, reconciliation_service


def insert_legacy_return(session, product, quantity):
    """A RETURN_OUT written before returns were located: cache lowered, items untouched."""
    legacy = InventoryTransaction(
        product_id=product.id,
        location_id=None,
        kind=KIND_RETURN_OUT,
        quantity=quantity,
        note="Returned to supplier",
    )
    session.add(legacy)
    session.get(Product, product.id).stock_on_hand -= quantity
    session.commit()
    return legacy


class TestReconcile:

    def test_clean_ledger_has_no_drift(self, db_session, palay, rice, warehouse, put_stock):
        put_stock(palay, warehouse, 12)
        put_stock(rice, warehouse, 3)

        report = reconciliation_service.reconcile()

        assert report["checked"] == 2
        assert report["drifted"] == []
        assert report["fixed"] == 0

    def test_detects_and_fixes_cache_drift(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)
        db_session.get(Product, palay.id).stock_on_hand = 7
        db_session.commit()

        report = reconciliation_service.reconcile()
        assert [d["product_id"] for d in report["drifted"]] == [palay.id]
        entry = report["drifted"][0]
        assert (entry["stock_on_hand"], entry["item_total"], entry["ledger_total"]) == (7, 10, 10)

        report = reconciliation_service.reconcile(fix=True, actor="auditor")
        assert report["fixed"] == 1

        db_session.expire_all()
        assert db_session.get(Product, palay.id).stock_on_hand == 10
        assert reconciliation_service.reconcile()["drifted"] == []

    def test_detects_on_order_drift(self, db_session, palay):
        db_session.get(Product, palay.id).stock_on_order = 5
        db_session.commit()

        report = reconciliation_service.reconcile()
        assert report["drifted"][0]["expected_on_order"] == 0

        assert reconciliation_service.reconcile(include_on_order=False)["drifted"] == []

        reconciliation_service.reconcile(fix=True)
        db_session.expire_all()
        assert db_session.get(Product, palay.id).stock_on_order == 0


class TestRepairUnlocatedReturns:

    def test_repairs_lifo_and_links_legacy_row(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 20)
        put_stock(palay, annex, 6)
        legacy = insert_legacy_return(db_session, palay, 10)
        assert reconciliation_service.reconcile()["drifted"]

        result = reconciliation_service.repair_unlocated_returns(actor="auditor")

        assert result["found"] == 1
        assert result["skipped"] == []
        assert result["repaired"] == [{
            "transaction_id": legacy.id,
            "locations": [
                {"location_id": annex.id, "deducted": 6},
                {"location_id": warehouse.id, "deducted": 4},
            ],
        }]

        db_session.expire_all()
        repairs = db_session.query(InventoryTransaction).filter_by(repairs_transaction_id=legacy.id).all()
        assert sum(r.quantity for r in repairs) == 10
        assert all(r.note.endswith(f"[repair of transaction {legacy.id}]") for r in repairs)
        assert db_session.get(Product, palay.id).stock_on_hand == 16
        assert db_session.get(InventoryTransaction, legacy.id).location_id is None
        assert reconciliation_service.reconcile()["drifted"] == []

    def test_repair_runs_once(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 20)
        insert_legacy_return(db_session, palay, 5)

        reconciliation_service.repair_unlocated_returns()
        second = reconciliation_service.repair_unlocated_returns()

        assert second == {"found": 0, "repaired": [], "skipped": []}

    def test_short_stock_is_skipped(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 3)
        legacy = insert_legacy_return(db_session, palay, 8)

        result = reconciliation_service.repair_unlocated_returns()

        assert result["repaired"] == []
        assert result["skipped"] == [{
            "transaction_id": legacy.id, "product": "Dinorado", "available": 3, "requested": 8,
        }]
        db_session.expire_all()
        assert db_session.query(InventoryItem).filter_by(product_id=palay.id).one().quantity == 3
        assert [row.id for row in reconciliation_service.unlocated_returns()] == [legacy.id]

    def test_located_returns_are_not_legacy(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 5)
        db_session.add(InventoryTransaction(
            product_id=palay.id, location_id=warehouse.id, kind=KIND_RETURN_OUT, quantity=1,
        ))
        db_session.commit()

        assert reconciliation_service.unlocated_returns() == []


class TestReconcileWithLegacyReturns:

    def test_report_counts_unrepaired_returns(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 50)
        insert_legacy_return(db_session, palay, 20)

        entry = reconciliation_service.reconcile()["drifted"][0]

        assert entry["stock_on_hand"] == 30
        assert entry["item_total"] == 50
        assert entry["ledger_total"] == 50
        assert entry["unrepaired_returns"] == 20
        assert entry["expected_on_hand"] == 30

    def test_fix_before_repair_keeps_legacy_decrement(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 50)
        insert_legacy_return(db_session, palay, 20)

        reconciliation_service.reconcile(fix=True)
        db_session.expire_all()
        assert db_session.get(Product, palay.id).stock_on_hand == 30

        reconciliation_service.repair_unlocated_returns()

        db_session.expire_all()
        items = db_session.query(InventoryItem).filter_by(product_id=palay.id).all()
        assert db_session.get(Product, palay.id).stock_on_hand == sum(i.quantity for i in items) == 30
        assert reconciliation_service.reconcile()["drifted"] == []

    def test_fix_after_repair_is_a_no_op(self, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 50)
        insert_legacy_return(db_session, palay, 20)
        reconciliation_service.repair_unlocated_returns()

        report = reconciliation_service.reconcile(fix=True)

        assert report["drifted"] == []
        assert report["fixed"] == 0

    def test_ledger_total_nets_milling_and_transfers(self, db_session, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 100)
        inventory_service.transfer_stock(
            product_id=palay.id, source_location_id=warehouse.id, target_location_id=annex.id, quantity=40,
        )
        milling_service.mill(
            source_product_id=palay.id, source_location_id=annex.id, target_location_id=warehouse.id, quantity=30,
        )

        assert reconciliation_service.reconcile()["drifted"] == []
