"""
Test fixtures for storefront checkout tests.

Provides:
- In-memory SQLite database (fresh engine per test) for repository and flow tests
- Mock cache service standing in for Redis
- In-memory repository fakes for the pure service tests
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

# DB settings required by Settings validation (tests use SQLite in-memory, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SHIPPING_SUPPORTED_COUNTRIES", "us")

import itertools
from datetime import datetime
from typing import AsyncGenerator, Dict, Iterable, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from storefront.app.core.constants import ORDERABLE_PRODUCT_STATUSES
from storefront.app.core.database import create_session_factory, init_models
from storefront.app.core.exceptions import StockCommitError
from storefront.app.repositories.coupons import normalize_code
from storefront.app.repositories.records import (
    CatalogItem,
    CouponRecord,
    CouponUsageRecord,
    OrderRecord,
    ShippingMethodRecord,
    ShippingZoneRecord,
)
from storefront.app.services import CartPricingService, CheckoutService, CouponService, ShippingService


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FIXED_NOW = datetime(2026, 3, 15, 12, 0, 0)


class MockCacheService:
    """Mock Redis cache for testing without actual Redis."""

    def __init__(self):
        self._cache = {}

    async def get(self, key: str):
        return self._cache.get(key)

    async def set(self, key: str, value, ttl: int = 300):
        self._cache[key] = value

    async def delete(self, key: str):
        self._cache.pop(key, None)

    async def get_shipping_zones(self):
        return self._cache.get("shipping:zones")

    async def set_shipping_zones(self, zones, ttl: Optional[int] = None):
        self._cache["shipping:zones"] = zones

    async def get_shipping_methods(self):
        return self._cache.get("shipping:methods:active")

    async def set_shipping_methods(self, methods, ttl: Optional[int] = None):
        self._cache["shipping:methods:active"] = methods

    async def invalidate_shipping_config(self):
        self._cache.pop("shipping:zones", None)
        self._cache.pop("shipping:methods:active", None)


# --- In-memory repositories ---

class InMemoryProductRepository:
    def __init__(self):
        self.items: Dict[int, CatalogItem] = {}
        self.sales: Dict[int, int] = {}

    def add(self, *items: CatalogItem) -> None:
        for item in items:
            self.items[item.id] = item
            self.sales.setdefault(item.id, 0)

    async def get_orderable(self, product_ids: Iterable[int]) -> Dict[int, CatalogItem]:
        return {
            pid: self.items[pid]
            for pid in set(product_ids)
            if pid in self.items and self.items[pid].status in ORDERABLE_PRODUCT_STATUSES
        }

    async def decrement_stock(self, product_id: int, quantity: int, increment_sales: int) -> None:
        item = self.items[product_id]
        if item.stock < quantity:
            raise StockCommitError(product_id, quantity)
        self.items[product_id] = item.model_copy(update={"stock": item.stock - quantity})
        self.sales[product_id] += increment_sales

    async def increment_sales(self, product_id: int, quantity: int) -> None:
        self.sales[product_id] = self.sales.get(product_id, 0) + quantity


class InMemoryShippingConfigRepository:
    def __init__(self):
        self.zones: List[ShippingZoneRecord] = []
        self.methods: List[ShippingMethodRecord] = []
        self.reads = 0

    async def list_zones(self) -> List[ShippingZoneRecord]:
        self.reads += 1
        return list(self.zones)

    async def list_active_methods(self) -> List[ShippingMethodRecord]:
        self.reads += 1
        return [m for m in self.methods if m.status == "active"]


class InMemoryCouponRepository:
    def __init__(self):
        self.coupons: Dict[str, CouponRecord] = {}

    def add(self, coupon: CouponRecord) -> None:
        self.coupons[normalize_code(coupon.code)] = coupon

    async def get_active_by_code(self, code: str) -> Optional[CouponRecord]:
        coupon = self.coupons.get(normalize_code(code))
        if coupon is None or not coupon.is_active:
            return None
        return coupon

    async def record_usage(self, code, user_id, order_id, used_at) -> bool:
        coupon = self.coupons.get(normalize_code(code))
        if coupon is None:
            return False
        counted = coupon.usage_limit is None or coupon.usage_count < coupon.usage_limit
        usage = CouponUsageRecord(user_id=user_id, order_id=order_id, used_at=used_at)
        self.coupons[normalize_code(code)] = coupon.model_copy(update={
            "usage_count": coupon.usage_count + (1 if counted else 0),
            "used_by": [*coupon.used_by, usage],
        })
        return counted


class InMemoryOrderRepository:
    def __init__(self):
        self.orders: Dict[int, OrderRecord] = {}
        self._ids = itertools.count(1)

    async def create(self, data: dict) -> OrderRecord:
        order = OrderRecord(id=next(self._ids), **data)
        self.orders[order.id] = order
        return order

    async def get(self, order_id: int) -> Optional[OrderRecord]:
        return self.orders.get(order_id)

    async def attach_payment_session(self, order_id: int, session_id: str) -> bool:
        if order_id not in self.orders:
            return False
        self._update(order_id, payment_session_id=session_id)
        return True

    async def mark_paid_if_awaiting(self, order_id, payment_reference, paid_at) -> bool:
        order = self.orders.get(order_id)
        if order is None or order.payment_status != "awaiting_payment":
            return False
        self._update(
            order_id,
            payment_status="paid",
            fulfillment_status="processing",
            payment_reference=payment_reference,
            paid_at=paid_at,
        )
        return True

    async def mark_expired_if_awaiting(self, order_id) -> bool:
        order = self.orders.get(order_id)
        if order is None or order.payment_status != "awaiting_payment":
            return False
        self._update(order_id, payment_status="failed", fulfillment_status="cancelled")
        return True

    async def update_fulfillment(
        self, order_id, fulfillment_status, timeline_entry=None, oversold_product_ids=None, stock_committed=None
    ) -> None:
        order = self.orders[order_id]
        changes = {"fulfillment_status": fulfillment_status}
        if timeline_entry is not None:
            changes["shipping_timeline"] = [*order.shipping_timeline, timeline_entry]
        if oversold_product_ids is not None:
            changes["oversold_product_ids"] = list(oversold_product_ids)
        if stock_committed is not None:
            changes["stock_committed"] = stock_committed
        self._update(order_id, **changes)

    def _update(self, order_id: int, **changes) -> None:
        self.orders[order_id] = self.orders[order_id].model_copy(update=changes)


# --- Database fixtures ---

@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.
    Each test gets its own in-memory engine with all tables created.
    """
    engine, session_factory = create_session_factory(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    await init_models(engine)

    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def mock_cache() -> MockCacheService:
    """Provide mock cache service for testing."""
    return MockCacheService()


# --- Service fixtures over in-memory repositories ---

@pytest.fixture
def product_repo() -> InMemoryProductRepository:
    return InMemoryProductRepository()


@pytest.fixture
def shipping_config() -> InMemoryShippingConfigRepository:
    return InMemoryShippingConfigRepository()


@pytest.fixture
def coupon_repo() -> InMemoryCouponRepository:
    return InMemoryCouponRepository()


@pytest.fixture
def order_repo() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def cart_pricing(product_repo) -> CartPricingService:
    return CartPricingService(product_repo)


@pytest.fixture
def shipping_service(shipping_config) -> ShippingService:
    return ShippingService(shipping_config)


@pytest.fixture
def coupon_service(coupon_repo) -> CouponService:
    return CouponService(coupon_repo, now=lambda: FIXED_NOW)


@pytest.fixture
def checkout_service(cart_pricing, shipping_service, coupon_service, product_repo, order_repo) -> CheckoutService:
    return CheckoutService(
        cart_pricing=cart_pricing,
        shipping=shipping_service,
        coupons=coupon_service,
        products=product_repo,
        orders=order_repo,
        now=lambda: FIXED_NOW,
    )
