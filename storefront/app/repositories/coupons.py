from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.app.core.money import to_decimal, optional_decimal
from storefront.app.models.coupon import Coupon, CouponUsage
from storefront.app.repositories.records import CouponRecord, CouponUsageRecord


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def coupon_to_record(coupon: Coupon) -> CouponRecord:
    return CouponRecord(
        id=coupon.id,
        code=coupon.code,
        description=coupon.description or "",
        discount_type=coupon.discount_type,
        discount_value=to_decimal(coupon.discount_value),
        minimum_order_amount=to_decimal(coupon.minimum_order_amount),
        maximum_discount=optional_decimal(coupon.maximum_discount),
        usage_limit=coupon.usage_limit,
        usage_count=coupon.usage_count or 0,
        usage_limit_per_user=coupon.usage_limit_per_user,
        used_by=[
            CouponUsageRecord(user_id=u.user_id, used_at=u.used_at, order_id=u.order_id)
            for u in coupon.usages
        ],
        start_date=coupon.start_date,
        end_date=coupon.end_date,
        product_scope=coupon.product_scope or "all",
        scoped_products=[int(pid) for pid in coupon.scoped_products or []],
        apply_to_shipping=bool(coupon.apply_to_shipping),
        store_only=bool(coupon.store_only),
        is_active=bool(coupon.is_active),
    )


class CouponRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_by_code(self, code: str) -> Optional[CouponRecord]:
        result = await self.session.execute(
            select(Coupon)
            .where(Coupon.code == normalize_code(code), Coupon.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        coupon = result.scalar_one_or_none()
        return coupon_to_record(coupon) if coupon else None

    async def record_usage(
        self,
        code: str,
        user_id: Optional[int],
        order_id: Optional[int],
        used_at: datetime,
    ) -> bool:
        """
        Count one redemption and append it to the usage log.

        The counter only moves while it is below usage_limit (single conditional
        UPDATE); returns False when that condition failed. The log entry is
        appended either way, since the order was already paid with the discount.
        """
        normalized = normalize_code(code)
        result = await self.session.execute(
            update(Coupon)
            .where(
                Coupon.code == normalized,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
            )
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        counted = result.rowcount > 0

        coupon_id = await self.session.scalar(select(Coupon.id).where(Coupon.code == normalized))
        if coupon_id is None:
            return False
        self.session.add(CouponUsage(coupon_id=coupon_id, user_id=user_id, order_id=order_id, used_at=used_at))
        await self.session.flush()
        return counted
