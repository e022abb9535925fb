# Overview: Dashboard statistics for an environment: status distribution, 30-day revenue, average time-to-sale.

"""
Dashboard Statistics Service

Three independent read-and-reduce operations over the persistence gateway:

- products_by_status:   count of products per lifecycle status (always all six keys)
- revenue_last_30_days: float sum of sale_price over sales in the trailing window
- average_time_to_sale: mean of ceil(days) between product creation and its earliest sale

FAILURE POLICY:
    Gateway failures never reach the caller. Each operation logs the error and
    returns a StatResult flagged degraded=True with a safe default (all-zero
    mapping, 0.0). Degraded values are not cached: the cache wraps the raw
    computation, which raises, and the default is produced outside it.

    Records that do not match the expected shape raise GatewayShapeError.

DATA ANOMALIES:
    A sale whose rounded day count is negative (dated at least a full day
    before its product's creation) is logged as a warning and excluded from
    the time-to-sale average. Sub-day skew rounds to 0 days and is counted.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, TypeVar

from flask import current_app

from ..models import PRODUCT_STATUSES
from ..time_utils import parse_iso_datetime, to_naive_utc, utcnow
from .cache_service import CacheDuration, CacheStore, CacheTags
from .gateway import GatewayError, GatewayShapeError


DEMO_ENVIRONMENT_ID = "demo"
SECONDS_PER_DAY = 86400
IN_FILTER_CHUNK = 500

T = TypeVar("T")


@dataclass(frozen=True)
class StatResult(Generic[T]):
    """A computed statistic, or a default returned because the store failed."""
    value: T
    degraded: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {"value": self.value, "degraded": self.degraded, "error": self.error}


def empty_status_counts() -> dict[str, int]:
    return {status: 0 for status in PRODUCT_STATUSES}


# --- record parsing ----------------------------------------------------------

def _require(record: dict, field: str) -> Any:
    if not isinstance(record, dict) or field not in record:
        raise GatewayShapeError(f"Record is missing field {field!r}: {record!r}")
    return record[field]


def _as_datetime(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise GatewayShapeError(f"{field} must be a datetime, got {value!r}")


def _as_number(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise GatewayShapeError(f"{field} must be a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class StatusRow:
    status: str

    @classmethod
    def from_record(cls, record: dict) -> "StatusRow":
        status = _require(record, "status")
        if status not in PRODUCT_STATUSES:
            raise GatewayShapeError(f"Unknown product status {status!r}")
        return cls(status=status)


@dataclass(frozen=True)
class SaleAmountRow:
    sale_price: float

    @classmethod
    def from_record(cls, record: dict) -> "SaleAmountRow":
        return cls(sale_price=_as_number(_require(record, "sale_price"), "sale_price"))


@dataclass(frozen=True)
class ProductCreatedRow:
    id: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: dict) -> "ProductCreatedRow":
        return cls(
            id=str(_require(record, "id")),
            created_at=_as_datetime(_require(record, "created_at"), "created_at"),
        )


@dataclass(frozen=True)
class SaleDateRow:
    product_id: str
    sale_date: datetime

    @classmethod
    def from_record(cls, record: dict) -> "SaleDateRow":
        return cls(
            product_id=str(_require(record, "product_id")),
            sale_date=_as_datetime(_require(record, "sale_date"), "sale_date"),
        )


@dataclass(frozen=True)
class DashboardStats:
    products_by_status: StatResult[dict]
    revenue_last_30_days: StatResult[float]
    average_time_to_sale: StatResult[float]

    @property
    def degraded(self) -> bool:
        return any(
            r.degraded
            for r in (self.products_by_status, self.revenue_last_30_days, self.average_time_to_sale)
        )

    def to_dict(self) -> dict:
        return {
            "products_by_status": self.products_by_status.to_dict(),
            "revenue_last_30_days": self.revenue_last_30_days.to_dict(),
            "average_time_to_sale": self.average_time_to_sale.to_dict(),
            "degraded": self.degraded,
        }


class DashboardService:
    """
    Environment-scoped dashboard statistics.

    Args:
        gateway: object exposing table(name) -> query builder (see gateway.py)
        cache: CacheStore holding computed statistics and their metrics
        clock: returns the current naive-UTC datetime (revenue window anchor)
        revenue_window_days: trailing window for revenue
        demo_slug: slug looked up when the "demo" sentinel is passed
    """

    STATS_TAGS = (CacheTags.PRODUCTS, CacheTags.DASHBOARD_STATS)

    def __init__(
        self,
        gateway,
        cache: CacheStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        revenue_window_days: int = 30,
        demo_slug: str = "demo",
    ):
        self.gateway = gateway
        self.cache = cache
        self._clock = clock
        self.revenue_window_days = revenue_window_days
        self.demo_slug = demo_slug

        self._cached_status_counts = cache.cached(
            self._compute_status_counts,
            key="dashboard:products-by-status",
            duration=CacheDuration.SHORT,
            tags=self.STATS_TAGS,
        )
        self._cached_revenue = cache.cached(
            self._compute_revenue,
            key="dashboard:revenue-last-30-days",
            duration=CacheDuration.SHORT,
            tags=(*self.STATS_TAGS, CacheTags.DEMO_DATA),
        )
        self._cached_time_to_sale = cache.cached(
            self._compute_average_time_to_sale,
            key="dashboard:average-time-to-sale",
            duration=CacheDuration.MEDIUM,
            tags=(*self.STATS_TAGS, CacheTags.DEMO_DATA),
        )

    # --- environment resolution ---------------------------------------------

    async def resolve_environment_id(self, environment_id: str) -> str:
        """Replace the "demo" sentinel with the demo environment's id (creating it if needed)."""
        if environment_id != DEMO_ENVIRONMENT_ID:
            return environment_id

        rows = await self.gateway.table("environments").select("id").eq("slug", self.demo_slug).limit(1).execute()
        if rows:
            return str(_require(rows[0], "id"))

        try:
            created = await self.gateway.table("environments").insert({
                "name": "Demo Environment",
                "slug": self.demo_slug,
                "description": "Demo environment for testing and development",
                "created_by": None,
            }).execute()
        except GatewayError as exc:
            current_app.logger.error("Error creating demo environment: %s", exc)
            raise GatewayError(f"Demo environment unavailable: {exc}") from exc
        return str(_require(created[0], "id"))

    # --- raw computations (cached; raise on gateway failure) ----------------

    async def _compute_status_counts(self, environment_id: str) -> dict[str, int]:
        rows = await self.gateway.table("products").select("status").eq("environment_id", environment_id).execute()
        counts = empty_status_counts()
        for record in rows:
            counts[StatusRow.from_record(record).status] += 1
        return counts

    async def _compute_revenue(self, environment_id: str) -> float:
        since = self._clock() - timedelta(days=self.revenue_window_days)
        rows = await (
            self.gateway.table("sales")
            .select("sale_price")
            .eq("products.environment_id", environment_id)
            .gte("sale_date", since)
            .execute()
        )
        total = 0.0
        for record in rows:
            total += SaleAmountRow.from_record(record).sale_price
        return total

    async def _compute_average_time_to_sale(self, environment_id: str) -> float:
        product_rows = await (
            self.gateway.table("products")
            .select("id", "created_at")
            .eq("environment_id", environment_id)
            .execute()
        )
        created_at = {}
        for record in product_rows:
            row = ProductCreatedRow.from_record(record)
            created_at[row.id] = row.created_at
        if not created_at:
            return 0.0

        product_ids = list(created_at)
        first_sale: dict[str, datetime] = {}
        for start in range(0, len(product_ids), IN_FILTER_CHUNK):
            chunk = product_ids[start:start + IN_FILTER_CHUNK]
            sale_rows = await (
                self.gateway.table("sales")
                .select("product_id", "sale_date")
                .in_("product_id", chunk)
                .execute()
            )
            for record in sale_rows:
                sale = SaleDateRow.from_record(record)
                if sale.product_id not in created_at:
                    continue
                current = first_sale.get(sale.product_id)
                if current is None or sale.sale_date < current:
                    first_sale[sale.product_id] = sale.sale_date

        durations = []
        for product_id, sale_date in first_sale.items():
            elapsed = (sale_date - created_at[product_id]).total_seconds()
            days = math.ceil(elapsed / SECONDS_PER_DAY)
            if days < 0:
                current_app.logger.warning(
                    "Sale recorded before product creation; excluding from time-to-sale "
                    "(product_id=%s created_at=%s sale_date=%s days=%s)",
                    product_id,
                    created_at[product_id].isoformat(),
                    sale_date.isoformat(),
                    days,
                )
                continue
            durations.append(days)

        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    # --- public operations (never raise GatewayError) -----------------------

    async def products_by_status(self, environment_id: str) -> StatResult[dict]:
        try:
            resolved = await self.resolve_environment_id(environment_id)
            return StatResult(await self._cached_status_counts(resolved))
        except GatewayError as exc:
            current_app.logger.error("Error fetching products by status for %s: %s", environment_id, exc)
            return StatResult(empty_status_counts(), degraded=True, error=str(exc))

    async def revenue_last_30_days(self, environment_id: str) -> StatResult[float]:
        try:
            resolved = await self.resolve_environment_id(environment_id)
            return StatResult(await self._cached_revenue(resolved))
        except GatewayError as exc:
            current_app.logger.error("Error fetching revenue for %s: %s", environment_id, exc)
            return StatResult(0.0, degraded=True, error=str(exc))

    async def average_time_to_sale(self, environment_id: str) -> StatResult[float]:
        try:
            resolved = await self.resolve_environment_id(environment_id)
            return StatResult(await self._cached_time_to_sale(resolved))
        except GatewayError as exc:
            current_app.logger.error("Error fetching average time to sale for %s: %s", environment_id, exc)
            return StatResult(0.0, degraded=True, error=str(exc))

    async def get_dashboard_stats(self, environment_id: str) -> DashboardStats:
        """Dispatch all three statistics concurrently and wait for all of them."""
        # Resolve the demo sentinel once so the three fetches cannot race to create it.
        try:
            environment_id = await self.resolve_environment_id(environment_id)
        except GatewayError as exc:
            current_app.logger.error("Error resolving environment %s: %s", environment_id, exc)
            return DashboardStats(
                products_by_status=StatResult(empty_status_counts(), degraded=True, error=str(exc)),
                revenue_last_30_days=StatResult(0.0, degraded=True, error=str(exc)),
                average_time_to_sale=StatResult(0.0, degraded=True, error=str(exc)),
            )

        status_counts, revenue, time_to_sale = await asyncio.gather(
            self.products_by_status(environment_id),
            self.revenue_last_30_days(environment_id),
            self.average_time_to_sale(environment_id),
        )
        return DashboardStats(
            products_by_status=status_counts,
            revenue_last_30_days=revenue,
            average_time_to_sale=time_to_sale,
        )


def build_dashboard_service(gateway=None) -> DashboardService:
    """DashboardService wired to the current app's config, session and cache store."""
    from ..extensions import get_cache_store
    from .gateway import SqlAlchemyGateway

    return DashboardService(
        gateway if gateway is not None else SqlAlchemyGateway(),
        get_cache_store(),
        revenue_window_days=current_app.config.get("REVENUE_WINDOW_DAYS", 30),
        demo_slug=current_app.config.get("DEMO_ENVIRONMENT_SLUG", "demo"),
    )
