from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .tenancy import new_id


class Sale(db.Model):
    """
    A recorded sale of a product.

    Sales reference products; they are never updated once written. A product
    may in principle carry several sales (re-sold after a return), so
    statistics that need "the" sale use the earliest one.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_product_date", "product_id", "sale_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(
        db.String(36),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sale_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    sold_by = db.Column(db.String(64), nullable=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship(
        "Product",
        backref=db.backref("sales", lazy=True, cascade="all, delete-orphan"),
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} product_id={self.product_id} sale_price={self.sale_price}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sale_price": self.sale_price,
            "currency": self.currency,
            "sold_by": self.sold_by,
            "sale_date": to_utc_z(self.sale_date),
            "created_at": to_utc_z(self.created_at),
        }
