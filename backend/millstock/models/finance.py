from __future__ import annotations

from ..extensions import db
from millstock.time_utils import to_utc_z


TX_PAYABLE = "PAYABLE"
TX_PAYMENT = "PAYMENT"
TX_SALE = "SALE"
TX_DEPOSIT = "DEPOSIT"

FINANCE_TRANSACTION_TYPES = (TX_PAYABLE, TX_PAYMENT, TX_SALE, TX_DEPOSIT)


class FinanceAccount(db.Model):
    """
    Singleton business account.

    Always re-read inside the unit of work that changes it; version_id makes a
    concurrent writer fail with StaleDataError instead of overwriting.
    """
    __tablename__ = "finance_accounts"

    id = db.Column(db.Integer, primary_key=True)
    account_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_payables_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_balance_cents": self.account_balance_cents,
            "total_payables_cents": self.total_payables_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class FinanceTransaction(db.Model):
    __tablename__ = "finance_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_finance_tx_amount_nonnegative"),
        db.Index("ix_finance_tx_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # FULL / MONTHLY for payables and payments
    payment_type = db.Column(db.String(16), nullable=True)

    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(120), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "payment_type": self.payment_type,
            "purchase_order_id": self.purchase_order_id,
            "order_id": self.order_id,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
