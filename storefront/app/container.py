"""Wire the checkout services over SQL repositories for one session."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.app.core.settings import Settings, get_settings
from storefront.app.repositories.coupons import CouponRepository
from storefront.app.repositories.orders import OrderRepository
from storefront.app.repositories.products import ProductRepository
from storefront.app.repositories.shipping import CachedShippingConfigRepository, ShippingConfigRepository
from storefront.app.services import (
    CacheService,
    CartPricingService,
    CheckoutService,
    CouponService,
    ShippingService,
)


def build_checkout_service(
    session: AsyncSession,
    cache: Optional[CacheService] = None,
    settings: Optional[Settings] = None,
) -> CheckoutService:
    """
    Build a CheckoutService bound to `session`. The caller owns the
    transaction and commits (or rolls back) after each operation.

    When `cache` is given, shipping zones and methods are read through it.
    """
    settings = settings or get_settings()
    products = ProductRepository(session)

    shipping_config = ShippingConfigRepository(session)
    if cache is not None:
        shipping_config = CachedShippingConfigRepository(
            shipping_config, cache, ttl=settings.SHIPPING_CONFIG_CACHE_TTL
        )

    return CheckoutService(
        cart_pricing=CartPricingService(products),
        shipping=ShippingService(
            shipping_config,
            currency=settings.CURRENCY,
            supported_countries=settings.supported_countries_list,
            fallback_cost=settings.FALLBACK_SHIPPING_COST,
        ),
        coupons=CouponService(CouponRepository(session)),
        products=products,
        orders=OrderRepository(session),
    )
