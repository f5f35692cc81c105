# Overview: Service-layer operations for the finance ledger; payables, payments and sales.

"""
Finance Service (thin)

One FinanceAccount row holds the running balance and outstanding payables.
Every change goes through a unit of work that re-reads (and locks) the
account first; nothing holds an account object across requests or loop
iterations.

- PAYABLE: recorded when a purchase order is created (total_payables += amount)
- SALE:    recorded when a customer order is created (balance += amount)
- PAYMENT: paying a purchase order (balance -= amount, payables -= amount)
- DEPOSIT: manual top-up of the balance
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import FinanceAccount, FinanceTransaction, PurchaseOrder
from ..models.finance import TX_DEPOSIT, TX_PAYABLE, TX_PAYMENT, TX_SALE
from ..models.purchasing import PAYMENT_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError
from millstock.time_utils import to_utc_z
from .concurrency import lock_for_update, run_atomic

PAYMENT_UNPAID = "UNPAID"
PAYMENT_PARTIAL = "PARTIAL"
PAYMENT_PAID = "PAID"


def get_account(session, *, lock: bool = True) -> FinanceAccount:
    query = session.query(FinanceAccount).order_by(FinanceAccount.id.asc())
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if account is None:
        account = FinanceAccount(account_balance_cents=0, total_payables_cents=0)
        session.add(account)
        session.flush()
    return account


def _require_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")
    return amount_cents


def record_payable(uow, *, purchase_order_id: int, amount_cents: int,
                   payment_type: str | None = None, description: str | None = None) -> FinanceTransaction:
    account = get_account(uow.session)
    account.total_payables_cents += amount_cents
    return uow.add(FinanceTransaction(
        type=TX_PAYABLE,
        amount_cents=amount_cents,
        payment_type=payment_type,
        purchase_order_id=purchase_order_id,
        description=description,
        created_by=uow.actor,
    ))


def record_sale(uow, *, order_id: int, amount_cents: int, description: str | None = None) -> FinanceTransaction:
    account = get_account(uow.session)
    account.account_balance_cents += amount_cents
    return uow.add(FinanceTransaction(
        type=TX_SALE,
        amount_cents=amount_cents,
        order_id=order_id,
        description=description,
        created_by=uow.actor,
    ))


def _paid_cents(session, purchase_order_id: int) -> int:
    return int(
        session.query(func.coalesce(func.sum(FinanceTransaction.amount_cents), 0))
        .filter(
            FinanceTransaction.purchase_order_id == purchase_order_id,
            FinanceTransaction.type == TX_PAYMENT,
        )
        .scalar()
        or 0
    )


def _status_for(po: PurchaseOrder, paid: int) -> dict:
    total = po.total_cents
    remaining = max(0, total - paid)
    if paid <= 0 and total > 0:
        status = PAYMENT_UNPAID
    elif paid >= total:
        status = PAYMENT_PAID
    else:
        status = PAYMENT_PARTIAL
    return {
        "purchase_order_id": po.id,
        "supplier_name": po.supplier.name if po.supplier else None,
        "po_status": po.status,
        "payment_type": po.payment_type,
        "due_date": to_utc_z(po.due_date),
        "total_cents": total,
        "paid_cents": paid,
        "remaining_cents": remaining,
        "payment_status": status,
    }


def payment_status(purchase_order_id: int) -> dict:
    po = db.session.get(PurchaseOrder, purchase_order_id)
    if po is None:
        raise NotFoundError(f"Purchase order {purchase_order_id} not found")
    return _status_for(po, _paid_cents(db.session, po.id))


def pay_purchase_order(*, purchase_order_id: int, amount_cents: int,
                       payment_type: str | None = None, actor: str | None = None) -> dict:
    amount_cents = _require_amount(amount_cents)
    if payment_type is not None and payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")

    def _op(uow):
        po = uow.get(PurchaseOrder, purchase_order_id, label="Purchase order")
        account = get_account(uow.session)

        if account.account_balance_cents < amount_cents:
            raise ConflictError(
                f"Insufficient balance. Available: {account.account_balance_cents}, Requested: {amount_cents}"
            )

        remaining = po.total_cents - _paid_cents(uow.session, po.id)
        if amount_cents > remaining:
            raise ValidationError(
                f"Amount exceeds remaining balance. Remaining: {max(0, remaining)}, Requested: {amount_cents}"
            )

        kind = payment_type or po.payment_type
        supplier = po.supplier.name if po.supplier else f"supplier {po.supplier_id}"
        uow.add(FinanceTransaction(
            type=TX_PAYMENT,
            amount_cents=amount_cents,
            payment_type=kind,
            purchase_order_id=po.id,
            description=f"Payment for PO {po.id} from {supplier} ({kind})",
            created_by=uow.actor,
        ))
        account.account_balance_cents -= amount_cents
        account.total_payables_cents -= amount_cents
        uow.flush()

        return _status_for(po, _paid_cents(uow.session, po.id))

    return run_atomic(_op, actor=actor)


def deposit(*, amount_cents: int, description: str | None = None, actor: str | None = None) -> FinanceAccount:
    amount_cents = _require_amount(amount_cents)

    def _op(uow):
        account = get_account(uow.session)
        account.account_balance_cents += amount_cents
        uow.add(FinanceTransaction(
            type=TX_DEPOSIT,
            amount_cents=amount_cents,
            description=description or "Deposit",
            created_by=uow.actor,
        ))
        uow.flush()
        return account

    return run_atomic(_op, actor=actor)


def summary(*, recent: int = 20) -> dict:
    account = db.session.query(FinanceAccount).order_by(FinanceAccount.id.asc()).first()
    transactions = (
        db.session.query(FinanceTransaction)
        .order_by(FinanceTransaction.created_at.desc(), FinanceTransaction.id.desc())
        .limit(recent)
        .all()
    )
    return {
        "account_balance_cents": account.account_balance_cents if account else 0,
        "total_payables_cents": account.total_payables_cents if account else 0,
        "recent_transactions": [t.to_dict() for t in transactions],
    }


def list_payables(*, status: str | None = None) -> list[dict]:
    """Payment status of every purchase order that carries a payable."""
    po_ids = [
        row[0]
        for row in db.session.query(FinanceTransaction.purchase_order_id)
        .filter(FinanceTransaction.type == TX_PAYABLE, FinanceTransaction.purchase_order_id.isnot(None))
        .distinct()
        .order_by(FinanceTransaction.purchase_order_id.asc())
        .all()
    ]
    rows = []
    for po_id in po_ids:
        po = db.session.get(PurchaseOrder, po_id)
        row = _status_for(po, _paid_cents(db.session, po_id))
        if status is None or row["payment_status"] == status:
            rows.append(row)
    return rows
