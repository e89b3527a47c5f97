"""
Checkout orchestration: quoting, coupon preview, order placement and payment commit.

Quote and preview only read. place_order writes a pending order; stock and
coupon usage move exclusively in complete_payment, which runs at most once
per order thanks to the conditional awaiting_payment -> paid transition.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from storefront.app.core.constants import (
    FULFILLMENT_ON_HOLD,
    FULFILLMENT_PENDING,
    FULFILLMENT_PROCESSING,
    PAYMENT_AWAITING,
    SHIPPING_NOT_REQUIRED,
    SHIPPING_PENDING,
    ZERO,
)
from storefront.app.core.exceptions import (
    CouponRejectedError,
    OrderNotFoundError,
    ShippingAddressRequiredError,
    ShippingSelectionRequiredError,
    StockCommitError,
)
from storefront.app.core.logging import get_logger
from storefront.app.core.metrics import (
    orders_placed_total,
    payments_committed_total,
    stock_oversell_total,
)
from storefront.app.core.money import round_money
from storefront.app.repositories.interfaces import OrderRepositoryProtocol, ProductRepositoryProtocol
from storefront.app.repositories.records import OrderRecord
from storefront.app.schemas import (
    CartLineRequest,
    CheckoutQuote,
    CheckoutRequest,
    Coordinates,
    CouponPreview,
    CouponPreviewRequest,
    DiscountResult,
    OrderTotals,
    PaymentCommitResult,
    ShippingAddress,
    ShippingOption,
)
from storefront.app.services.cart_pricing import CartPricingService
from storefront.app.services.coupons import CouponService, utcnow
from storefront.app.services.shipping import ShippingService

logger = get_logger(__name__)


def compute_order_totals(items_total: Decimal, shipping_cost: Decimal, discount_total: Decimal) -> OrderTotals:
    """Final totals; the grand total is floored at zero."""
    grand_total = round_money(max(items_total + shipping_cost - discount_total, ZERO))
    return OrderTotals(
        items_total=round_money(items_total),
        shipping_cost=round_money(shipping_cost),
        discount_total=round_money(discount_total),
        grand_total=grand_total,
    )


def _timeline_entry(status: str, note: str, at: datetime) -> dict:
    return {"status": status, "note": note, "at": at.isoformat()}


class CheckoutService:
    def __init__(
        self,
        cart_pricing: CartPricingService,
        shipping: ShippingService,
        coupons: CouponService,
        products: ProductRepositoryProtocol,
        orders: OrderRepositoryProtocol,
        now: Callable[[], datetime] = utcnow,
    ):
        self.cart_pricing = cart_pricing
        self.shipping = shipping
        self.coupons = coupons
        self.products = products
        self.orders = orders
        self.now = now

    async def quote(
        self,
        items: Sequence[CartLineRequest],
        address: Optional[ShippingAddress] = None,
        coordinates: Optional[Coordinates] = None,
    ) -> CheckoutQuote:
        cart = await self.cart_pricing.normalize(items)
        options = await self.shipping.calculate_options(cart, address, coordinates)
        return CheckoutQuote(cart=cart, shipping_options=options)

    async def preview_coupon(self, request: CouponPreviewRequest, user_id: Optional[int] = None) -> CouponPreview:
        """
        Show what a coupon would take off the cart, without recording any usage.

        The shipping cost is only included when the request carries a
        destination and a selection for a physical cart.
        """
        cart = await self.cart_pricing.normalize(request.items)
        shipping_cost = ZERO
        if cart.requires_shipping and request.shipping_address and request.shipping_selection:
            option = await self.shipping.quote_and_select(
                cart, request.shipping_address, request.shipping_coordinates, request.shipping_selection
            )
            shipping_cost = option.cost

        discount = await self.coupons.evaluate(
            request.coupon_code, cart.subtotal, cart.lines, shipping_cost, user_id
        )
        totals = compute_order_totals(cart.subtotal, shipping_cost, discount.total_discount)
        return CouponPreview(
            discount=discount,
            totals=totals,
            new_subtotal=round_money(max(cart.subtotal - discount.product_discount, ZERO)),
        )

    async def place_order(self, request: CheckoutRequest, user_id: Optional[int]) -> OrderRecord:
        """
        Price the cart, resolve shipping and coupon, and persist a pending order.

        Raises:
            InvalidCartError: the cart cannot be priced
            ShippingAddressRequiredError: physical cart without a complete address
            ShippingSelectionRequiredError: physical cart without a shipping selection
            ShippingOptionExpiredError: the selection no longer matches a fresh quote
            CouponRejectedError: the coupon code is not valid for this cart
        """
        cart = await self.cart_pricing.normalize(request.items)
        now = self.now()

        option: Optional[ShippingOption] = None
        shipping_cost = ZERO
        if cart.requires_shipping:
            address = request.shipping_address
            if address is None or not address.is_complete():
                raise ShippingAddressRequiredError("Shipping address is required for physical items")
            if request.shipping_selection is None:
                raise ShippingSelectionRequiredError()
            option = await self.shipping.quote_and_select(
                cart, address, request.shipping_coordinates, request.shipping_selection
            )
            shipping_cost = option.cost

        discount = DiscountResult(valid=False)
        if request.coupon_code:
            discount = await self.coupons.evaluate(
                request.coupon_code, cart.subtotal, cart.lines, shipping_cost, user_id
            )
            if not discount.valid:
                raise CouponRejectedError(discount.message or "Invalid coupon code")

        totals = compute_order_totals(cart.subtotal, shipping_cost, discount.total_discount)

        order = await self.orders.create({
            "user_id": user_id,
            "items": [line.model_dump(mode="json") for line in cart.lines],
            "items_total": totals.items_total,
            "shipping_cost": totals.shipping_cost,
            "tax_total": ZERO,
            "product_discount": discount.product_discount,
            "shipping_discount": discount.shipping_discount,
            "discount_total": totals.discount_total,
            "grand_total": totals.grand_total,
            "currency": self.shipping.currency,
            "coupon_code": discount.coupon_code,
            "contact_email": request.contact_email,
            "contact_phone": request.contact_phone,
            "notes": request.notes,
            "payment_status": PAYMENT_AWAITING,
            "fulfillment_status": FULFILLMENT_PENDING,
            "shipping_status": SHIPPING_PENDING if cart.requires_shipping else SHIPPING_NOT_REQUIRED,
            "shipping_method": option.method_name if option else SHIPPING_NOT_REQUIRED,
            "shipping_method_id": option.method_id if option else None,
            "shipping_rate_id": option.rate_id if option else None,
            "shipping_option_label": option.label if option else None,
            "shipping_quote": option.model_dump(mode="json") if option else None,
            "shipping_address": request.shipping_address.model_dump() if option else None,
            "shipping_timeline": (
                [_timeline_entry(SHIPPING_PENDING, "Awaiting payment", now)] if cart.requires_shipping else []
            ),
        })

        orders_placed_total.labels(requires_shipping=str(cart.requires_shipping).lower()).inc()
        logger.info(
            "Order placed",
            order_id=order.id,
            user_id=user_id,
            grand_total=str(totals.grand_total),
            coupon=discount.coupon_code,
        )
        return order

    async def attach_payment_session(self, order_id: int, session_id: str) -> None:
        """Remember the payment-gateway session created for this order."""
        if not await self.orders.attach_payment_session(order_id, session_id):
            raise OrderNotFoundError(order_id)

    async def complete_payment(
        self, order_id: int, payment_reference: Optional[str] = None
    ) -> PaymentCommitResult:
        """
        Commit a confirmed payment: stock, sales, coupon usage and fulfillment status.

        Safe to call for every delivery of the same payment event; only the
        first one that moves the order out of awaiting_payment applies effects.
        Lines whose stock can no longer be decremented put the order on hold;
        the payment itself is kept for a manual refund or backorder decision.
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        now = self.now()
        if not await self.orders.mark_paid_if_awaiting(order_id, payment_reference, now):
            logger.info("Payment already committed", order_id=order_id, payment_status=order.payment_status)
            return PaymentCommitResult(
                order_id=order_id,
                already_committed=True,
                oversold_product_ids=order.oversold_product_ids,
            )

        oversold: List[int] = []
        for item in order.items:
            adjustment = item["stock_adjustment"]
            product_id = adjustment["product_id"]
            if adjustment["decrement_stock"] > 0:
                try:
                    await self.products.decrement_stock(
                        product_id, adjustment["decrement_stock"], adjustment["increment_sales"]
                    )
                except StockCommitError as e:
                    oversold.append(e.product_id)
                    stock_oversell_total.inc()
                    logger.warning(
                        "Order line oversold", order_id=order_id, product_id=e.product_id, requested=e.requested
                    )
            else:
                await self.products.increment_sales(product_id, adjustment["increment_sales"])

        coupon_over_limit = False
        if order.coupon_code:
            counted = await self.coupons.commit_usage(order.coupon_code, order.user_id, order.id)
            coupon_over_limit = not counted

        timeline_entry = None
        if oversold:
            fulfillment_status = FULFILLMENT_ON_HOLD
            timeline_entry = _timeline_entry(
                FULFILLMENT_ON_HOLD, "Insufficient stock for some items, awaiting refund or backorder", now
            )
        else:
            fulfillment_status = FULFILLMENT_PROCESSING
            if order.shipping_status != SHIPPING_NOT_REQUIRED:
                timeline_entry = _timeline_entry(
                    FULFILLMENT_PROCESSING, "Payment received, preparing for shipment", now
                )

        await self.orders.update_fulfillment(
            order_id,
            fulfillment_status,
            timeline_entry=timeline_entry,
            oversold_product_ids=oversold,
            stock_committed=True,
        )

        result = PaymentCommitResult(
            order_id=order_id,
            oversold_product_ids=oversold,
            coupon_over_limit=coupon_over_limit,
        )
        payments_committed_total.inc()
        logger.info(
            "Payment committed",
            order_id=order_id,
            payment_reference=payment_reference,
            fulfillment_blocked=result.fulfillment_blocked,
            coupon_over_limit=coupon_over_limit,
        )
        return result

    async def expire_payment(self, order_id: int) -> bool:
        """Cancel an order whose payment session expired. Returns False if it was no longer awaiting payment."""
        if await self.orders.get(order_id) is None:
            raise OrderNotFoundError(order_id)
        expired = await self.orders.mark_expired_if_awaiting(order_id)
        if expired:
            logger.info("Order payment expired", order_id=order_id)
        return expired
