# Overview: Service-layer operations for sales; records sales and keeps product sale fields in step.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, Sale
from ..time_utils import utcnow
from ..validation import ValidationError, enforce_rules_sale


def resolve_sale_price(product: Product, sold_price: float | None = None) -> float:
    """Explicit price, else the product's recorded sold price, else its asking price."""
    for candidate in (sold_price, product.sold_price, product.selling_price):
        if candidate is not None:
            return enforce_rules_sale(candidate)
    raise ValidationError(f"Product {product.id} has no sale price; provide sold_price")


def record_sale(
    product: Product,
    *,
    amount: float,
    sold_by: str | None = None,
    sale_date: datetime | None = None,
    currency: str | None = None,
) -> Sale:
    """
    Append a Sale and mirror it onto the product (sold_at / sold_price).

    Does not commit; callers commit together with the status change.
    """
    amount = enforce_rules_sale(amount)
    sale_date = sale_date or utcnow()

    sale = Sale(
        product_id=product.id,
        sale_price=amount,
        currency=currency or current_app.config.get("DEFAULT_CURRENCY", "EUR"),
        sold_by=sold_by,
        sale_date=sale_date,
    )
    db.session.add(sale)

    product.sold_at = sale_date
    product.sold_price = amount
    return sale


def list_product_sales(product_id: str) -> list[dict]:
    sales = (
        db.session.query(Sale)
        .filter_by(product_id=product_id)
        .order_by(Sale.sale_date.asc())
        .all()
    )
    return [s.to_dict() for s in sales]
