"""
Coupon validation and discount calculation.

evaluate() is side-effect free and reports every rejection as an invalid
DiscountResult. Usage is only counted by commit_usage(), which checkout
calls once the order is paid.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence

from storefront.app.core.constants import PERCENT_BASE, STORE_PRODUCT_SOURCE, ZERO
from storefront.app.core.logging import get_logger
from storefront.app.core.metrics import coupon_evaluations_total, coupon_over_redemptions_total
from storefront.app.core.money import round_money
from storefront.app.repositories.interfaces import CouponRepositoryProtocol
from storefront.app.repositories.records import CouponRecord
from storefront.app.schemas import DiscountResult, NormalizedCartLine

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def applicable_subtotal(coupon: CouponRecord, lines: Sequence[NormalizedCartLine], cart_subtotal: Decimal) -> Decimal:
    """Portion of the cart the coupon's product scope covers."""
    scoped = set(coupon.scoped_products)
    if coupon.product_scope == "include":
        return sum((line.line_subtotal for line in lines if line.product_id in scoped), ZERO)
    if coupon.product_scope == "exclude":
        return sum((line.line_subtotal for line in lines if line.product_id not in scoped), ZERO)
    return cart_subtotal


def product_discount(coupon: CouponRecord, applicable: Decimal) -> Decimal:
    if coupon.discount_type == "percentage":
        discount = applicable * coupon.discount_value / PERCENT_BASE
        if coupon.maximum_discount is not None and coupon.maximum_discount > ZERO:
            discount = min(discount, coupon.maximum_discount)
    else:
        discount = coupon.discount_value
    return round_money(max(min(discount, applicable), ZERO))


def shipping_discount(coupon: CouponRecord, shipping_cost: Decimal, product_amount: Decimal) -> Decimal:
    if not coupon.apply_to_shipping or shipping_cost <= ZERO:
        return ZERO
    if coupon.discount_type == "percentage":
        discount = shipping_cost * coupon.discount_value / PERCENT_BASE
    else:
        # Whatever the product discount did not use of the fixed amount
        discount = max(coupon.discount_value - product_amount, ZERO)
    return round_money(max(min(discount, shipping_cost), ZERO))


def cap_to_order_total(product_amount: Decimal, shipping_amount: Decimal, order_total: Decimal):
    """Scale both discounts down proportionally so they never exceed the order total."""
    total = product_amount + shipping_amount
    if total <= order_total:
        return product_amount, shipping_amount
    order_total = max(order_total, ZERO)
    scaled_product = round_money(product_amount * order_total / total)
    return scaled_product, order_total - scaled_product


class CouponService:
    def __init__(self, coupons: CouponRepositoryProtocol, now: Callable[[], datetime] = utcnow):
        self.coupons = coupons
        self.now = now

    def _reject(self, code: str, message: str) -> DiscountResult:
        coupon_evaluations_total.labels(result="rejected").inc()
        logger.info("Coupon rejected", code=code, reason=message)
        return DiscountResult.rejected(message)

    async def evaluate(
        self,
        code: str,
        cart_subtotal: Decimal,
        cart_lines: Sequence[NormalizedCartLine],
        shipping_cost: Decimal = ZERO,
        user_id: Optional[int] = None,
    ) -> DiscountResult:
        """Validate a coupon against the cart and compute the discount it grants."""
        coupon = await self.coupons.get_active_by_code(code)
        if coupon is None:
            return self._reject(code, "Invalid coupon code")

        now = self.now()
        if coupon.start_date and now < _as_naive_utc(coupon.start_date):
            return self._reject(coupon.code, "This coupon is not yet active")
        if coupon.end_date and now > _as_naive_utc(coupon.end_date):
            return self._reject(coupon.code, "This coupon has expired")

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            return self._reject(coupon.code, "This coupon has reached its usage limit")

        if cart_subtotal < coupon.minimum_order_amount:
            return self._reject(
                coupon.code, f"Minimum order amount of ${coupon.minimum_order_amount:.2f} required"
            )

        if coupon.usage_limit_per_user and user_id is not None:
            if coupon.usages_by(user_id) >= coupon.usage_limit_per_user:
                return self._reject(coupon.code, "You have already used this coupon")

        if coupon.store_only and any(line.product_source != STORE_PRODUCT_SOURCE for line in cart_lines):
            return self._reject(coupon.code, "This coupon only applies to store products")

        applicable = applicable_subtotal(coupon, cart_lines, cart_subtotal)
        if applicable <= ZERO:
            return self._reject(coupon.code, "This coupon does not apply to any items in your cart")

        product_amount = product_discount(coupon, applicable)
        shipping_amount = shipping_discount(coupon, shipping_cost, product_amount)
        product_amount, shipping_amount = cap_to_order_total(
            product_amount, shipping_amount, cart_subtotal + shipping_cost
        )

        coupon_evaluations_total.labels(result="valid").inc()
        return DiscountResult(
            valid=True,
            product_discount=product_amount,
            shipping_discount=shipping_amount,
            applicable_subtotal=applicable,
            coupon_code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            description=coupon.description or None,
        )

    async def commit_usage(self, code: str, user_id: Optional[int], order_id: Optional[int]) -> bool:
        """
        Count one redemption for a paid order.

        Returns False when the usage limit was already reached by a concurrent
        redemption; the usage is still logged against the order.
        """
        counted = await self.coupons.record_usage(code, user_id, order_id, self.now())
        if not counted:
            coupon_over_redemptions_total.inc()
            logger.warning("Coupon redeemed past its usage limit", code=code, order_id=order_id)
        return counted
