"""Order persistence for checkout outcomes."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.app.core.constants import (
    PAYMENT_AWAITING,
    PAYMENT_PAID,
    PAYMENT_FAILED,
    FULFILLMENT_PROCESSING,
    FULFILLMENT_CANCELLED,
)
from storefront.app.core.money import to_decimal
from storefront.app.models.order import Order
from storefront.app.repositories.records import OrderRecord


def order_to_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        user_id=order.user_id,
        items=order.items or [],
        items_total=to_decimal(order.items_total),
        shipping_cost=to_decimal(order.shipping_cost),
        product_discount=to_decimal(order.product_discount),
        shipping_discount=to_decimal(order.shipping_discount),
        discount_total=to_decimal(order.discount_total),
        grand_total=to_decimal(order.grand_total),
        currency=order.currency,
        coupon_code=order.coupon_code,
        contact_email=order.contact_email,
        payment_status=order.payment_status,
        fulfillment_status=order.fulfillment_status,
        shipping_status=order.shipping_status,
        shipping_method=order.shipping_method,
        shipping_method_id=order.shipping_method_id,
        shipping_rate_id=order.shipping_rate_id,
        shipping_option_label=order.shipping_option_label,
        shipping_quote=order.shipping_quote,
        shipping_address=order.shipping_address,
        shipping_timeline=order.shipping_timeline or [],
        payment_session_id=order.payment_session_id,
        payment_reference=order.payment_reference,
        paid_at=order.paid_at,
        stock_committed=bool(order.stock_committed),
        oversold_product_ids=order.oversold_product_ids or [],
        created_at=order.created_at,
    )


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, data: dict) -> OrderRecord:
        order = Order(**data)
        self.session.add(order)
        await self.session.flush()
        return order_to_record(order)

    async def get(self, order_id: int) -> Optional[OrderRecord]:
        order = await self._load(order_id)
        return order_to_record(order) if order else None

    async def attach_payment_session(self, order_id: int, session_id: str) -> bool:
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(payment_session_id=session_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_paid_if_awaiting(
        self, order_id: int, payment_reference: Optional[str], paid_at: datetime
    ) -> bool:
        """
        Transition awaiting_payment -> paid in a single conditional UPDATE.
        Returns False if another delivery of the same payment event got there first.
        """
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PAYMENT_AWAITING)
            .values(
                payment_status=PAYMENT_PAID,
                fulfillment_status=FULFILLMENT_PROCESSING,
                payment_reference=payment_reference,
                paid_at=paid_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_expired_if_awaiting(self, order_id: int) -> bool:
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PAYMENT_AWAITING)
            .values(payment_status=PAYMENT_FAILED, fulfillment_status=FULFILLMENT_CANCELLED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def update_fulfillment(
        self,
        order_id: int,
        fulfillment_status: str,
        timeline_entry: Optional[dict] = None,
        oversold_product_ids: Optional[List[int]] = None,
        stock_committed: Optional[bool] = None,
    ) -> None:
        order = await self._load(order_id)
        if order is None:
            return
        order.fulfillment_status = fulfillment_status
        if timeline_entry is not None:
            # Reassign so the JSON column is flagged dirty
            order.shipping_timeline = [*(order.shipping_timeline or []), timeline_entry]
        if oversold_product_ids is not None:
            order.oversold_product_ids = list(oversold_product_ids)
        if stock_committed is not None:
            order.stock_committed = stock_committed
        await self.session.flush()

    async def _load(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
