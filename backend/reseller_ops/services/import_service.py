# Overview: Service-layer operations for product imports; validates CSV rows and inserts them in batches.

from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Location, Product, ProductStatusHistory, PRODUCT_STATUSES
from ..time_utils import utcnow
from ..validation import MAX_PRICE
from .cache_service import CacheTags, invalidate_cache
from .sales_service import record_sale
from .tenant_service import MANAGER_ROLES, MembershipError, require_environment_access


class ImportError(ValueError):
    """Raised when import operations fail."""


BATCH_SIZE_DEFAULT = 50

CSV_COLUMNS = (
    "title", "sku", "barcode", "description", "status",
    "purchase_price", "selling_price", "location_name",
)
OPTIONAL_TEXT_COLUMNS = ("sku", "barcode", "description")


@dataclass
class ImportRowError:
    row_number: int
    message: str

    def to_dict(self) -> dict:
        return {"row": self.row_number, "error": self.message}


@dataclass
class ImportResult:
    count: int
    unmatched_locations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "count": self.count,
            "unmatched_locations": self.unmatched_locations,
        }


def parse_csv(text: str) -> list[dict]:
    """Parse CSV text with a header row into row dicts (header names lower-cased)."""
    if not text or not text.strip():
        raise ImportError("No valid products to import")
    reader = csv.DictReader(io.StringIO(text.strip()))
    if not reader.fieldnames or "title" not in [h.strip().lower() for h in reader.fieldnames]:
        raise ImportError("CSV must have a header row with at least a 'title' column")
    rows = []
    for raw in reader:
        rows.append({
            (k or "").strip().lower(): (v.strip() if isinstance(v, str) else v)
            for k, v in raw.items()
        })
    return rows


def _parse_price(value: Any, column: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{column} must be a number")
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{column} must be a number")
    if not math.isfinite(price):
        raise ValueError(f"{column} must be a finite number")
    if price <= 0:
        raise ValueError(f"{column} must be positive")
    if price > MAX_PRICE:
        raise ValueError(f"{column} cannot exceed {MAX_PRICE:,.2f}")
    return price


def normalize_row(row: dict) -> dict:
    """
    Validate one import row and return the normalized product fields.

    Raises:
        ValueError with a human-readable message for the first problem found
    """
    if not isinstance(row, dict):
        raise ValueError("Row must be an object")

    title = str(row.get("title") or "").strip()
    if not title:
        raise ValueError("title is required")
    if len(title) > 255:
        raise ValueError("title exceeds max length 255")

    status = str(row.get("status") or "").strip().lower()
    if status not in PRODUCT_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")

    normalized = {
        "title": title,
        "status": status,
        "purchase_price": _parse_price(row.get("purchase_price"), "purchase_price"),
        "selling_price": _parse_price(row.get("selling_price"), "selling_price"),
        "location_name": str(row.get("location_name") or "").strip() or None,
    }
    if status == "sold" and normalized["selling_price"] is None:
        raise ValueError("selling_price is required for sold products")
    for column in OPTIONAL_TEXT_COLUMNS:
        value = str(row.get(column) or "").strip()
        normalized[column] = value or None
    return normalized


def validate_rows(rows: list[dict]) -> list[dict]:
    """
    Normalize all rows; any invalid row fails the whole import.

    Row numbers in errors are 1-based data rows (the header is not counted).
    """
    if not isinstance(rows, list) or not rows:
        raise ImportError("No valid products to import")

    normalized, errors = [], []
    for index, row in enumerate(rows, start=1):
        try:
            normalized.append(normalize_row(row))
        except ValueError as exc:
            errors.append(ImportRowError(index, str(exc)))

    if errors:
        summary = "; ".join(f"row {e.row_number}: {e.message}" for e in errors[:10])
        more = f" (and {len(errors) - 10} more)" if len(errors) > 10 else ""
        err = ImportError(f"Invalid rows: {summary}{more}")
        err.row_errors = [e.to_dict() for e in errors]
        raise err
    return normalized


def import_products(
    *,
    environment,
    user_id: str,
    rows: list[dict] | None = None,
    csv_text: str | None = None,
    batch_size: int | None = None,
) -> ImportResult:
    """
    Import products into an environment.

    - Caller must be reseller_manager, grady_staff or grady_admin
    - Location names are matched case-insensitively to the environment's locations;
      unmatched names leave the product without a location
    - Products are flushed once per batch, then their history and sale rows are added;
      everything commits once
    - Sold rows record their Sale at selling_price

    Raises:
        MembershipError: caller's role may not import
        ImportError: no rows, or any row invalid
    """
    try:
        require_environment_access(environment, user_id, roles=MANAGER_ROLES)
    except MembershipError:
        raise MembershipError("You do not have permission to import products")

    if csv_text is not None:
        rows = parse_csv(csv_text)
    products = validate_rows(rows)

    batch_size = batch_size or current_app.config.get("IMPORT_BATCH_SIZE", BATCH_SIZE_DEFAULT)

    locations = db.session.query(Location.id, Location.name).filter_by(environment_id=environment.id).all()
    location_map = {name.lower(): loc_id for loc_id, name in locations}

    now = utcnow()
    unmatched: set[str] = set()
    imported = 0
    for start in range(0, len(products), batch_size):
        batch = []
        for data in products[start:start + batch_size]:
            location_name = data.pop("location_name")
            location_id = None
            if location_name:
                location_id = location_map.get(location_name.lower())
                if location_id is None:
                    unmatched.add(location_name)

            batch.append(Product(
                environment_id=environment.id,
                location_id=location_id,
                created_at=now,
                status_updated_at=now,
                **data,
            ))
        db.session.add_all(batch)
        db.session.flush()

        for product in batch:
            db.session.add(ProductStatusHistory(
                product_id=product.id,
                from_status=None,
                to_status=product.status,
                changed_by=user_id,
                notes="Imported from CSV",
            ))
            if product.status == "sold":
                record_sale(product, amount=product.selling_price, sold_by=user_id, sale_date=now)
        imported += len(batch)

    db.session.commit()
    invalidate_cache([CacheTags.PRODUCTS, CacheTags.DASHBOARD_STATS])

    current_app.logger.info(
        "Products imported environment=%s count=%d imported_by=%s", environment.id, imported, user_id
    )
    return ImportResult(count=imported, unmatched_locations=sorted(unmatched))
