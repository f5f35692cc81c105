"""
Flask CLI command tests.
"""

from decimal import Decimal

from millstock.models import FinanceAccount, InventoryItem, InventoryTransaction, Product, StorageLocation
from millstock.models.inventory import KIND_RETURN_OUT


class TestSystemInit:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=['system', 'init'])
        second = runner.invoke(args=['system', 'init'])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "Created default warehouse" in first.output
        assert "Using existing storage location" in second.output
        assert db_session.query(StorageLocation).filter_by(code="MAIN").count() == 1
        assert db_session.query(FinanceAccount).count() == 1


class TestReconcileCommand:

    def test_clean(self, app, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 5)

        result = app.test_cli_runner().invoke(args=['inventory', 'reconcile'])

        assert result.exit_code == 0
        assert "PASS No drift" in result.output

    def test_drift_fails_until_fixed(self, app, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 5)
        db_session.get(Product, palay.id).stock_on_hand = 9
        db_session.commit()
        runner = app.test_cli_runner()

        report = runner.invoke(args=['inventory', 'reconcile'])
        assert report.exit_code == 1
        assert "Dinorado" in report.output

        fixed = runner.invoke(args=['inventory', 'reconcile', '--fix'])
        assert fixed.exit_code == 0
        assert "FIXED" in fixed.output

        db_session.expire_all()
        assert db_session.get(Product, palay.id).stock_on_hand == 5


class TestRepairReturnsCommand:

    def test_nothing_to_repair(self, app, db_session):
        result = app.test_cli_runner().invoke(args=['inventory', 'repair-returns'])

        assert result.exit_code == 0
        assert "No repairs needed" in result.output

    def test_repairs_and_reports(self, app, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)
        db_session.add(InventoryTransaction(
            product_id=palay.id, location_id=None, kind=KIND_RETURN_OUT, quantity=4,
        ))
        db_session.get(Product, palay.id).stock_on_hand -= 4
        db_session.commit()

        result = app.test_cli_runner().invoke(args=['inventory', 'repair-returns'])

        assert result.exit_code == 0, result.output
        assert "Repaired 1, skipped 0" in result.output
        assert f"location {warehouse.id}: 4 units" in result.output

    def test_fix_then_repair_leaves_cache_matching_items(self, app, db_session, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 50)
        db_session.add(InventoryTransaction(
            product_id=palay.id, location_id=None, kind=KIND_RETURN_OUT, quantity=20,
        ))
        db_session.get(Product, palay.id).stock_on_hand -= 20
        db_session.commit()
        runner = app.test_cli_runner()

        fixed = runner.invoke(args=['inventory', 'reconcile', '--fix'])
        assert fixed.exit_code == 0, fixed.output
        assert "repair-returns" in fixed.output

        repaired = runner.invoke(args=['inventory', 'repair-returns'])
        assert repaired.exit_code == 0, repaired.output

        report = runner.invoke(args=['inventory', 'reconcile'])
        assert report.exit_code == 0, report.output
        assert "PASS No drift" in report.output

        db_session.expire_all()
        items = db_session.query(InventoryItem).filter_by(product_id=palay.id).all()
        assert db_session.get(Product, palay.id).stock_on_hand == sum(i.quantity for i in items) == 30


class TestMarkUnmilledCommand:

    def test_flags_matching_products(self, app, db_session, rice):
        result = app.test_cli_runner().invoke(
            args=['products', 'mark-unmilled', '--name-contains', 'jasmine', '--yield-rate', '70'],
        )

        assert result.exit_code == 0, result.output
        assert "Updated 1 product(s)" in result.output
        db_session.expire_all()
        product = db_session.get(Product, rice.id)
        assert product.is_milled_rice is False
        assert product.milling_yield_rate == Decimal("70")

    def test_rejects_bad_rate(self, app, db_session, rice):
        result = app.test_cli_runner().invoke(
            args=['products', 'mark-unmilled', '--name-contains', 'jasmine', '--yield-rate', 'lots'],
        )

        assert result.exit_code == 2
        assert "not a number" in result.output

    def test_rate_out_of_range(self, app, db_session, rice):
        result = app.test_cli_runner().invoke(
            args=['products', 'mark-unmilled', '--name-contains', 'jasmine', '--yield-rate', '150'],
        )

        assert result.exit_code == 1
