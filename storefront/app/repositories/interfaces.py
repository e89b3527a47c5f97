"""
Repository interfaces injected into the checkout services.

The SQLAlchemy implementations live next to this module; tests substitute
in-memory fakes with the same methods.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from storefront.app.repositories.records import (
    CatalogItem,
    CouponRecord,
    OrderRecord,
    ShippingMethodRecord,
    ShippingZoneRecord,
)


class ProductRepositoryProtocol(Protocol):
    async def get_orderable(self, product_ids: Iterable[int]) -> Dict[int, CatalogItem]: ...

    async def decrement_stock(self, product_id: int, quantity: int, increment_sales: int) -> None: ...

    async def increment_sales(self, product_id: int, quantity: int) -> None: ...


class ShippingConfigRepositoryProtocol(Protocol):
    async def list_zones(self) -> List[ShippingZoneRecord]: ...

    async def list_active_methods(self) -> List[ShippingMethodRecord]: ...


class CouponRepositoryProtocol(Protocol):
    async def get_active_by_code(self, code: str) -> Optional[CouponRecord]: ...

    async def record_usage(
        self, code: str, user_id: Optional[int], order_id: Optional[int], used_at: datetime
    ) -> bool: ...


class OrderRepositoryProtocol(Protocol):
    async def create(self, data: dict) -> OrderRecord: ...

    async def get(self, order_id: int) -> Optional[OrderRecord]: ...

    async def attach_payment_session(self, order_id: int, session_id: str) -> bool: ...

    async def mark_paid_if_awaiting(
        self, order_id: int, payment_reference: Optional[str], paid_at: datetime
    ) -> bool: ...

    async def mark_expired_if_awaiting(self, order_id: int) -> bool: ...

    async def update_fulfillment(
        self,
        order_id: int,
        fulfillment_status: str,
        timeline_entry: Optional[dict] = None,
        oversold_product_ids: Optional[List[int]] = None,
        stock_committed: Optional[bool] = None,
    ) -> None: ...
