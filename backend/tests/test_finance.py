"""
Finance ledger tests: payables, deposits and purchase order payments.
"""

import pytest

from millstock.models import FinanceAccount, FinanceTransaction
from millstock.services import finance_service, receive_service
from millstock.validation import ConflictError, ValidationError


@pytest.fixture
def po(db_session, supplier, palay):
    """Purchase order worth 1,000.00."""
    return receive_service.create_purchase_order(
        supplier_id=supplier.id,
        items=[{"product_id": palay.id, "quantity": 10, "price_cents": 10_000}],
    )


def account(session):
    session.expire_all()
    return session.query(FinanceAccount).one()


class TestDeposit:

    def test_deposit_raises_balance(self, db_session):
        finance_service.deposit(amount_cents=50_000, actor="owner")

        assert account(db_session).account_balance_cents == 50_000
        tx = db_session.query(FinanceTransaction).one()
        assert tx.type == "DEPOSIT"
        assert tx.created_by == "owner"

    @pytest.mark.parametrize("amount", [0, -1, True, "100"])
    def test_rejects_bad_amounts(self, db_session, amount):
        with pytest.raises(ValidationError):
            finance_service.deposit(amount_cents=amount)


class TestPayPurchaseOrder:

    def test_needs_balance(self, db_session, po):
        with pytest.raises(ConflictError):
            finance_service.pay_purchase_order(purchase_order_id=po.id, amount_cents=1_000)

        assert finance_service.payment_status(po.id)["payment_status"] == "UNPAID"

    def test_partial_then_paid(self, db_session, po):
        finance_service.deposit(amount_cents=200_000)

        status = finance_service.pay_purchase_order(purchase_order_id=po.id, amount_cents=40_000)
        assert status["payment_status"] == "PARTIAL"
        assert status["remaining_cents"] == 60_000

        status = finance_service.pay_purchase_order(purchase_order_id=po.id, amount_cents=60_000)
        assert status["payment_status"] == "PAID"

        acct = account(db_session)
        assert acct.account_balance_cents == 100_000
        assert acct.total_payables_cents == 0

    def test_cannot_exceed_remaining(self, db_session, po):
        finance_service.deposit(amount_cents=500_000)

        with pytest.raises(ValidationError):
            finance_service.pay_purchase_order(purchase_order_id=po.id, amount_cents=100_001)

        assert account(db_session).account_balance_cents == 500_000

    def test_payables_listing(self, db_session, po):
        finance_service.deposit(amount_cents=10_000)
        finance_service.pay_purchase_order(purchase_order_id=po.id, amount_cents=10_000)

        rows = finance_service.list_payables()
        assert [r["purchase_order_id"] for r in rows] == [po.id]
        assert finance_service.list_payables(status="PAID") == []
        assert len(finance_service.list_payables(status="PARTIAL")) == 1

    def test_summary(self, db_session, po):
        finance_service.deposit(amount_cents=7_500)

        summary = finance_service.summary()
        assert summary["account_balance_cents"] == 7_500
        assert summary["total_payables_cents"] == 100_000
        assert {t["type"] for t in summary["recent_transactions"]} == {"PAYABLE", "DEPOSIT"}
