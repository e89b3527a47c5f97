"""
Normalized read models consumed by the checkout pipeline.

Repositories translate persisted rows into these records so the pricing,
shipping and coupon services never touch ORM objects.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from storefront.app.core.constants import PRODUCT_FORMAT_PHYSICAL


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Catalog ---

class VariationOption(_Record):
    id: Optional[str] = None
    name: str
    price_adjustment: Decimal = Decimal("0")
    stock: int = 0


class Variation(_Record):
    label: str
    options: List[VariationOption] = Field(default_factory=list)


class GroupedComponent(_Record):
    product_id: int
    quantity: int = Field(default=1, ge=1)


class BundleItem(_Record):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    discount_percent: Decimal = Decimal("0")
    optional: bool = False


class BundleGroup(_Record):
    name: str
    pricing_mode: Literal["calculated", "discounted"] = "calculated"
    discount_percent: Decimal = Decimal("0")
    items: List[BundleItem] = Field(default_factory=list)


class CatalogItem(_Record):
    id: int
    name: str
    slug: Optional[str] = None
    sku: Optional[str] = None
    owner_id: Optional[int] = None
    image: Optional[str] = None
    product_type: Optional[str] = None
    download_url: Optional[str] = None
    status: str = "published"
    product_source: str = "store"
    price: Decimal
    sale_price: Optional[Decimal] = None
    stock: int = 0
    product_format: Literal["physical", "digital"] = PRODUCT_FORMAT_PHYSICAL
    weight_grams: Decimal = Decimal("0")
    variations: List[Variation] = Field(default_factory=list)
    grouped_products: List[GroupedComponent] = Field(default_factory=list)
    bundle_groups: List[BundleGroup] = Field(default_factory=list)
    bundle_pricing_mode: Literal["calculated", "discounted", "fixed"] = "calculated"
    bundle_discount_percent: Decimal = Decimal("0")

    @model_validator(mode="after")
    def _single_structure(self) -> "CatalogItem":
        if self.grouped_products and self.bundle_groups:
            raise ValueError(f"Product {self.id} declares both grouped products and bundle groups")
        return self

    @property
    def structure(self) -> Literal["simple", "grouped", "bundle"]:
        if self.bundle_groups:
            return "bundle"
        if self.grouped_products:
            return "grouped"
        return "simple"

    @property
    def effective_price(self) -> Decimal:
        if self.sale_price is not None and self.sale_price < self.price:
            return self.sale_price
        return self.price

    @property
    def is_physical(self) -> bool:
        return self.product_format == PRODUCT_FORMAT_PHYSICAL


# --- Shipping ---

class GeoPoint(_Record):
    lat: float
    lng: float


class GeoFence(_Record):
    center: GeoPoint
    radius_km: float


class ShippingZoneRecord(_Record):
    id: int
    name: str
    priority: int = 0
    is_default: bool = False
    countries: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    cities: List[str] = Field(default_factory=list)
    postal_codes: List[str] = Field(default_factory=list)
    zip_prefixes: List[str] = Field(default_factory=list)
    geo_fence: Optional[GeoFence] = None
    created_at: Optional[datetime] = None


class ShippingRateRecord(_Record):
    id: Optional[int] = None
    label: str
    code: Optional[str] = None
    zone_id: Optional[int] = None
    type: str = "flat"
    base_cost: Optional[Decimal] = None
    per_item_cost: Optional[Decimal] = None
    per_weight_kg_cost: Optional[Decimal] = None
    handling_fee: Optional[Decimal] = None
    min_subtotal: Optional[Decimal] = None
    max_subtotal: Optional[Decimal] = None
    free_above: Optional[Decimal] = None
    min_distance_km: Optional[float] = None
    max_distance_km: Optional[float] = None
    inherit_method_default_cost: Optional[bool] = None


class ShippingMethodRecord(_Record):
    id: int
    name: str
    description: Optional[str] = None
    type: str = "flat_rate"
    status: str = "active"
    currency: str = "USD"
    default_cost: Optional[Decimal] = None
    handling_fee: Optional[Decimal] = None
    allow_physical_products: bool = True
    allow_digital_products: bool = False
    estimated_days_min: Optional[int] = None
    estimated_days_max: Optional[int] = None
    display_order: int = 0
    rates: List[ShippingRateRecord] = Field(default_factory=list)
    created_at: Optional[datetime] = None


# --- Coupons ---

class CouponUsageRecord(_Record):
    user_id: Optional[int] = None
    used_at: Optional[datetime] = None
    order_id: Optional[int] = None


class CouponRecord(_Record):
    id: int
    code: str
    description: str = ""
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: Decimal
    minimum_order_amount: Decimal = Decimal("0")
    maximum_discount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    usage_limit_per_user: Optional[int] = None
    used_by: List[CouponUsageRecord] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    product_scope: Literal["all", "include", "exclude"] = "all"
    scoped_products: List[int] = Field(default_factory=list)
    apply_to_shipping: bool = False
    store_only: bool = False
    is_active: bool = True

    def usages_by(self, user_id: int) -> int:
        return sum(1 for usage in self.used_by if usage.user_id == user_id)


# --- Orders ---

class OrderRecord(_Record):
    id: int
    user_id: Optional[int] = None
    items: List[dict] = Field(default_factory=list)
    items_total: Decimal
    shipping_cost: Decimal = Decimal("0")
    product_discount: Decimal = Decimal("0")
    shipping_discount: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    grand_total: Decimal
    currency: str = "USD"
    coupon_code: Optional[str] = None
    contact_email: str
    payment_status: str
    fulfillment_status: str
    shipping_status: str
    shipping_method: Optional[str] = None
    shipping_method_id: Optional[str] = None
    shipping_rate_id: Optional[str] = None
    shipping_option_label: Optional[str] = None
    shipping_quote: Optional[dict] = None
    shipping_address: Optional[dict] = None
    shipping_timeline: List[dict] = Field(default_factory=list)
    payment_session_id: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    stock_committed: bool = False
    oversold_product_ids: List[int] = Field(default_factory=list)
    created_at: Optional[datetime] = None
