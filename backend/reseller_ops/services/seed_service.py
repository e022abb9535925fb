# Overview: Demo data seeding for the demo environment (idempotent).

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Location, Product, ProductStatusHistory
from ..time_utils import utcnow
from .cache_service import CacheTags, invalidate_cache
from .sales_service import record_sale
from .tenant_service import get_or_create_demo_environment


DEMO_LOCATIONS = [
    {"name": "Main Warehouse", "description": "Primary storage location", "address": "123 Main St, Demo City"},
    {"name": "Repair Center", "description": "Product repair and maintenance", "address": "456 Repair Ave, Demo City"},
    {"name": "Showroom", "description": "Customer display area", "address": "789 Show St, Demo City"},
]

# (title, sku, status, location index, purchase, selling, days since created, days to sale)
DEMO_PRODUCTS = [
    ("iPhone 13 Pro", "IP13P-001", "taken", 0, 800.00, 1200.00, 2, None),
    ("Samsung Galaxy S21", "SGS21-002", "in_repair", 1, 600.00, 900.00, 10, None),
    ("MacBook Air M1", "MBA-M1-003", "selling", 2, 900.00, 1400.00, 20, None),
    ("iPad Pro 11", "IPP11-004", "sold", 2, 700.00, 1000.00, 25, 12),
    ("AirPods Pro", "APP-005", "sold", 2, 150.00, 250.00, 14, 3),
    ("Dell XPS 13", "DXPS13-006", "returned", 0, 850.00, 1150.00, 40, None),
    ("Nintendo Switch", "NSW-007", "discarded", 1, 200.00, 300.00, 60, None),
]


def seed_demo_data() -> dict:
    """
    Create demo locations and products unless the demo environment already has products.

    Returns:
        {"environment_id", "locations", "products", "skipped"}
    """
    env = get_or_create_demo_environment()
    existing = db.session.query(Product.id).filter_by(environment_id=env.id).count()
    if existing:
        return {"environment_id": env.id, "locations": 0, "products": 0, "skipped": True}

    locations = [Location(environment_id=env.id, **data) for data in DEMO_LOCATIONS]
    db.session.add_all(locations)
    db.session.flush()

    now = utcnow()
    for title, sku, status, loc_index, purchase, selling, age_days, days_to_sale in DEMO_PRODUCTS:
        created_at = now - timedelta(days=age_days)
        product = Product(
            environment_id=env.id,
            location_id=locations[loc_index].id,
            title=title,
            sku=sku,
            status=status,
            purchase_price=purchase,
            selling_price=selling,
            created_at=created_at,
            status_updated_at=created_at,
        )
        db.session.add(product)
        db.session.flush()
        db.session.add(ProductStatusHistory(
            product_id=product.id,
            from_status=None,
            to_status=status,
            notes="Demo data",
        ))
        if days_to_sale is not None:
            record_sale(product, amount=selling, sale_date=created_at + timedelta(days=days_to_sale))

    db.session.commit()
    invalidate_cache([CacheTags.DEMO_DATA, CacheTags.PRODUCTS, CacheTags.LOCATIONS, CacheTags.DASHBOARD_STATS])
    return {
        "environment_id": env.id,
        "locations": len(locations),
        "products": len(DEMO_PRODUCTS),
        "skipped": False,
    }
