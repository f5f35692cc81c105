# Overview: Service-layer operations for rice milling; converts unmilled stock into milled output.

"""
Milling Conversion

mill() moves `quantity` of an unmilled product out of one location and puts
floor(quantity * yield_rate / 100) of its milled counterpart into another,
as one DB transaction:

    MILLING_OUT  source product  @ source location   -quantity
    MILLING_IN   milled product  @ target location   +output

The sub-unit remainder lost to floor() is accepted milling loss.
The milled counterpart ("Milled {name}", is_milled_rice=True) is created on
first use with the source's category, price, supplier, reorder point and
yield rate.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from flask import current_app

from ..models import Product
from ..models.inventory import KIND_MILLING_IN, KIND_MILLING_OUT
from ..validation import ValidationError
from . import ledger_service
from .concurrency import run_atomic


MILLED_PREFIX = "Milled "


def milled_name(source_name: str) -> str:
    return f"{MILLED_PREFIX}{source_name}"


def compute_output(quantity: int, yield_rate: Decimal) -> int:
    """floor(quantity * rate / 100), in Decimal so 100 @ 66.67 is 66, never 67."""
    output = (Decimal(quantity) * Decimal(yield_rate) / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR)
    return int(output)


def _effective_yield_rate(product: Product) -> Decimal:
    if product.milling_yield_rate is not None:
        return Decimal(product.milling_yield_rate)
    return Decimal(str(current_app.config["MILLING_DEFAULT_YIELD_RATE"]))


def _get_or_create_milled(uow, source: Product) -> Product:
    name = milled_name(source.name)
    milled = (
        uow.session.query(Product)
        .filter(Product.name == name, Product.is_milled_rice.is_(True))
        .first()
    )
    if milled is not None:
        return milled

    milled = uow.add(Product(
        name=name,
        category=source.category,
        description=source.description,
        price_cents=source.price_cents,
        is_milled_rice=True,
        milling_yield_rate=source.milling_yield_rate,
        supplier_id=source.supplier_id,
        reorder_point=source.reorder_point,
        stock_on_hand=0,
        stock_allocated=0,
        stock_on_order=0,
    ))
    uow.flush()
    current_app.logger.info("Created milled product %s (%r) from %s", milled.id, name, source.id)
    return milled


def mill(
    *,
    source_product_id: int,
    source_location_id: int,
    target_location_id: int,
    quantity: int,
    actor: str | None = None,
) -> dict:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    def _op(uow):
        source = uow.product(source_product_id)
        if source.is_milled_rice:
            raise ValidationError(f"{source.name} is already milled rice")

        rate = _effective_yield_rate(source)
        output = compute_output(quantity, rate)
        if output == 0:
            raise ValidationError(
                f"Milling {quantity} at {rate}% yields nothing; increase the quantity"
            )

        uow.location(target_location_id, require_active=True)
        milled = _get_or_create_milled(uow, source)

        out_rows = ledger_service.stock_out(
            uow,
            product_id=source.id,
            quantity=quantity,
            kind=KIND_MILLING_OUT,
            location_id=source_location_id,
            note=f"Stock out for milling - Output product: {milled.name}",
        )
        in_row = ledger_service.stock_in(
            uow,
            product_id=milled.id,
            location_id=target_location_id,
            quantity=output,
            kind=KIND_MILLING_IN,
            note=f"Stock in from milling - Input product: {source.name}",
        )

        return {
            "source_product": source,
            "milled_product": milled,
            "input_quantity": quantity,
            "output_quantity": output,
            "yield_rate": rate,
            "transactions": out_rows + [in_row],
        }

    return run_atomic(_op, actor=actor)
