# storefront/app/services/__init__.py
"""
Services layer for checkout business logic.
Services receive repositories by injection so they can run over SQL or in-memory fakes.
"""

from storefront.app.services.cart_pricing import (
    CartPricingService,
    effective_price,
    price_bundle,
    price_grouped,
)
from storefront.app.services.shipping_zones import (
    ZoneMatch,
    match_zones,
    normalize_country,
    normalize_state,
)
from storefront.app.services.shipping import ShippingService
from storefront.app.services.coupons import CouponService
from storefront.app.services.checkout import CheckoutService, compute_order_totals
from storefront.app.services.cache import CacheService

__all__ = [
    # Cart
    "CartPricingService",
    "effective_price",
    "price_bundle",
    "price_grouped",
    # Shipping
    "ZoneMatch",
    "match_zones",
    "normalize_country",
    "normalize_state",
    "ShippingService",
    # Coupons
    "CouponService",
    # Checkout
    "CheckoutService",
    "compute_order_totals",
    # Cache
    "CacheService",
]
