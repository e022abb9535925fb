# Overview: Pytest coverage for dashboard statistics: status counts, revenue window, time-to-sale, degradation.

"""
Dashboard Statistics Tests

Verifies:
- Status distribution always carries all six statuses
- Revenue sums sales in the trailing window only
- Time-to-sale uses the earliest sale and excludes sales before creation
- Gateway failures degrade to defaults and are not cached
- The "demo" sentinel resolves to the demo environment
"""

import asyncio
import logging
from datetime import datetime

import pytest

from reseller_ops.models import Environment, PRODUCT_STATUSES
from reseller_ops.services.cache_service import CacheStore, CacheTags
from reseller_ops.services.dashboard_service import DashboardService, StatResult
from reseller_ops.services.gateway import GatewayError, GatewayShapeError, SqlAlchemyGateway


JAN_15 = datetime(2024, 1, 15)


class FailingQuery:
    """Query builder whose execute() always fails."""

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    async def execute(self):
        raise GatewayError("connection refused", table="products", operation="select")


class FailingGateway:
    def __init__(self):
        self.calls = 0

    def table(self, name):
        self.calls += 1
        return FailingQuery()


class StaticQuery:
    def __init__(self, rows):
        self.rows = rows

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    async def execute(self):
        return self.rows


class StaticGateway:
    def __init__(self, rows):
        self.rows = rows

    def table(self, name):
        return StaticQuery(self.rows)


class DemoInsertFailingQuery(StaticQuery):
    """Finds no demo environment and fails to create one."""

    def __init__(self):
        super().__init__([])
        self.inserting = False

    def insert(self, records):
        self.inserting = True
        return self

    async def execute(self):
        if self.inserting:
            raise GatewayError("read-only replica", table="environments", operation="insert")
        return self.rows


class DemoInsertFailingGateway:
    def table(self, name):
        return DemoInsertFailingQuery()


def make_service(gateway=None, *, now=JAN_15, cache=None):
    return DashboardService(
        gateway if gateway is not None else SqlAlchemyGateway(),
        cache if cache is not None else CacheStore(),
        clock=lambda: now,
    )


@pytest.fixture
def scenario(env_a, make_product):
    """P1 sold after 9 days, P2 unsold, P3 with a sale dated before its creation."""
    p1 = make_product(env_a, title="P1", status="sold", created_at=datetime(2024, 1, 1),
                      sales=[(datetime(2024, 1, 10), 100.0)])
    p2 = make_product(env_a, title="P2", status="selling", created_at=datetime(2024, 1, 2))
    p3 = make_product(env_a, title="P3", status="sold", created_at=datetime(2024, 1, 5),
                      sales=[(datetime(2024, 1, 3), 50.0)])
    return p1, p2, p3


class TestProductsByStatus:

    def test_empty_environment_has_all_statuses(self, env_a):
        result = asyncio.run(make_service().products_by_status(env_a.id))

        assert result.degraded is False
        assert set(result.value) == set(PRODUCT_STATUSES)
        assert all(count == 0 for count in result.value.values())

    def test_counts_only_this_environment(self, env_a, env_b, make_product):
        make_product(env_a, status="taken")
        make_product(env_a, status="taken")
        make_product(env_a, status="in_repair")
        make_product(env_b, status="taken")

        result = asyncio.run(make_service().products_by_status(env_a.id))

        assert result.value["taken"] == 2
        assert result.value["in_repair"] == 1
        assert result.value["sold"] == 0
        assert len(result.value) == 6

    def test_gateway_failure_is_degraded(self, db_session):
        result = asyncio.run(make_service(FailingGateway()).products_by_status("env-1"))

        assert result.degraded is True
        assert "connection refused" in result.error
        assert result.value == {status: 0 for status in PRODUCT_STATUSES}

    def test_unknown_status_raises_shape_error(self, db_session):
        service = make_service(StaticGateway([{"status": "lost"}]))
        with pytest.raises(GatewayShapeError):
            asyncio.run(service.products_by_status("env-1"))


class TestRevenue:

    def test_sums_sales_in_window(self, env_a, scenario):
        result = asyncio.run(make_service(now=JAN_15).revenue_last_30_days(env_a.id))
        assert result == StatResult(150.0)

    def test_excludes_sales_before_window(self, env_a, scenario):
        # Window starts 2024-01-06: P1's sale is inside, P3's is not.
        result = asyncio.run(make_service(now=datetime(2024, 2, 5)).revenue_last_30_days(env_a.id))
        assert result.value == 100.0

    def test_no_sales_is_zero(self, env_a, make_product):
        make_product(env_a)
        result = asyncio.run(make_service().revenue_last_30_days(env_a.id))
        assert result.value == 0.0
        assert result.degraded is False

    def test_other_environment_sales_not_counted(self, env_a, env_b, make_product):
        make_product(env_b, status="sold", sales=[(datetime(2024, 1, 10), 75.0)])
        result = asyncio.run(make_service().revenue_last_30_days(env_a.id))
        assert result.value == 0.0

    def test_gateway_failure_is_degraded(self, db_session):
        result = asyncio.run(make_service(FailingGateway()).revenue_last_30_days("env-1"))
        assert result.value == 0.0
        assert result.degraded is True


class TestAverageTimeToSale:

    def test_sale_before_creation_is_excluded(self, app, env_a, scenario, caplog):
        with caplog.at_level(logging.WARNING):
            result = asyncio.run(make_service().average_time_to_sale(env_a.id))

        assert result.value == 9.0
        assert "Sale recorded before product creation" in caplog.text

    def test_sub_day_skew_counts_as_zero_days(self, env_a, make_product, caplog):
        make_product(env_a, created_at=datetime(2024, 1, 1), sales=[(datetime(2024, 1, 10), 10.0)])
        make_product(env_a, created_at=datetime(2024, 1, 10, 12, 0, 2),
                     sales=[(datetime(2024, 1, 10, 12, 0, 0), 10.0)])

        with caplog.at_level(logging.WARNING):
            result = asyncio.run(make_service().average_time_to_sale(env_a.id))

        assert result.value == 4.5
        assert "Sale recorded before product creation" not in caplog.text

    def test_only_earliest_sale_counts(self, env_a, make_product):
        make_product(env_a, status="sold", created_at=datetime(2024, 1, 1), sales=[
            (datetime(2024, 1, 20), 20.0),
            (datetime(2024, 1, 5), 10.0),
        ])
        result = asyncio.run(make_service().average_time_to_sale(env_a.id))
        assert result.value == 4.0

    def test_partial_days_round_up(self, env_a, make_product):
        make_product(env_a, status="sold", created_at=datetime(2024, 1, 1),
                     sales=[(datetime(2024, 1, 3, 12, 0), 10.0)])
        result = asyncio.run(make_service().average_time_to_sale(env_a.id))
        assert result.value == 3.0

    def test_averages_across_products(self, env_a, make_product):
        make_product(env_a, created_at=datetime(2024, 1, 1), sales=[(datetime(2024, 1, 3), 10.0)])
        make_product(env_a, created_at=datetime(2024, 1, 1), sales=[(datetime(2024, 1, 6), 10.0)])
        result = asyncio.run(make_service().average_time_to_sale(env_a.id))
        assert result.value == 3.5

    def test_no_products_or_sales_is_zero(self, env_a, make_product):
        assert asyncio.run(make_service().average_time_to_sale(env_a.id)).value == 0.0
        make_product(env_a)
        assert asyncio.run(make_service().average_time_to_sale(env_a.id)).value == 0.0

    def test_gateway_failure_is_degraded(self, db_session):
        result = asyncio.run(make_service(FailingGateway()).average_time_to_sale("env-1"))
        assert result.value == 0.0
        assert result.degraded is True


class TestCaching:

    def test_second_call_hits_cache(self, env_a, make_product):
        cache = CacheStore()
        service = make_service(cache=cache)
        make_product(env_a, status="taken")

        asyncio.run(service.products_by_status(env_a.id))
        misses = cache.monitor.get_metrics("dashboard:products-by-status").misses
        make_product(env_a, status="taken")
        result = asyncio.run(service.products_by_status(env_a.id))

        assert result.value["taken"] == 1
        assert cache.monitor.get_metrics("dashboard:products-by-status").misses == misses

    def test_invalidation_recomputes(self, env_a, make_product):
        cache = CacheStore()
        service = make_service(cache=cache)
        make_product(env_a, status="taken")

        asyncio.run(service.products_by_status(env_a.id))
        make_product(env_a, status="taken")
        cache.invalidate_tags([CacheTags.PRODUCTS])
        result = asyncio.run(service.products_by_status(env_a.id))

        assert result.value["taken"] == 2
        assert cache.monitor.get_metrics("dashboard:products-by-status").misses == 2

    def test_degraded_result_is_not_cached(self, db_session):
        cache = CacheStore()
        gateway = FailingGateway()
        service = make_service(gateway, cache=cache)

        asyncio.run(service.products_by_status("env-1"))
        asyncio.run(service.products_by_status("env-1"))

        assert gateway.calls == 2
        assert cache.monitor.get_metrics("dashboard:products-by-status") is None


class TestDashboardStats:

    def test_end_to_end_scenario(self, env_a, scenario):
        stats = asyncio.run(make_service(now=JAN_15).get_dashboard_stats(env_a.id))

        assert stats.degraded is False
        assert stats.products_by_status.value["sold"] == 2
        assert stats.products_by_status.value["selling"] == 1
        assert stats.revenue_last_30_days.value == 150.0
        assert stats.average_time_to_sale.value == 9.0

        payload = stats.to_dict()
        assert payload["revenue_last_30_days"] == {"value": 150.0, "degraded": False, "error": None}

    def test_partial_failure_keeps_other_stats(self, db_session):
        stats = asyncio.run(make_service(FailingGateway()).get_dashboard_stats("env-1"))

        assert stats.degraded is True
        assert stats.products_by_status.degraded is True
        assert stats.revenue_last_30_days.degraded is True
        assert stats.average_time_to_sale.degraded is True

    def test_demo_sentinel_creates_demo_environment(self, db_session):
        stats = asyncio.run(make_service().get_dashboard_stats("demo"))

        assert stats.degraded is False
        demo = db_session.query(Environment).filter_by(slug="demo").one()
        assert demo.name == "Demo Environment"

    def test_demo_creation_failure_is_degraded(self, db_session):
        stats = asyncio.run(make_service(DemoInsertFailingGateway()).get_dashboard_stats("demo"))

        assert stats.degraded is True
        assert stats.products_by_status.value == {status: 0 for status in PRODUCT_STATUSES}
        assert stats.revenue_last_30_days.degraded is True
        assert "Demo environment unavailable" in stats.average_time_to_sale.error

        result = asyncio.run(make_service(DemoInsertFailingGateway()).revenue_last_30_days("demo"))
        assert result.degraded is True

    def test_demo_sentinel_uses_existing_environment(self, db_session, make_product):
        demo = Environment(name="Demo", slug="demo")
        db_session.add(demo)
        db_session.commit()
        make_product(demo, status="in_repair")

        result = asyncio.run(make_service().products_by_status("demo"))

        assert result.value["in_repair"] == 1
        assert db_session.query(Environment).filter_by(slug="demo").count() == 1
