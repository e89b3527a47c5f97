# storefront/app/models/__init__.py
"""ORM models. Importing this package registers every table on Base.metadata."""

from storefront.app.models.product import Product
from storefront.app.models.shipping import ShippingZone, ShippingMethod, ShippingRate
from storefront.app.models.coupon import Coupon, CouponUsage
from storefront.app.models.order import Order

__all__ = [
    "Product",
    "ShippingZone",
    "ShippingMethod",
    "ShippingRate",
    "Coupon",
    "CouponUsage",
    "Order",
]
