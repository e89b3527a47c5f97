from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, List, Literal, Optional
from decimal import Decimal

from storefront.app.core.constants import MIN_LINE_QUANTITY, MAX_LINE_QUANTITY, ZERO


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class _Result(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Checkout input ---

class SelectedOption(_Request):
    label: str
    option_id: Optional[str] = None
    option_name: Optional[str] = None

    @model_validator(mode="after")
    def _option_reference(self) -> "SelectedOption":
        if not self.option_id and not self.option_name:
            raise ValueError("option_id or option_name is required")
        return self


class CartLineRequest(_Request):
    product_id: int
    quantity: int = 1
    selected_options: List[SelectedOption] = Field(default_factory=list)
    # Optional bundle members the buyer opted into
    optional_items: List[int] = Field(default_factory=list)

    @field_validator("quantity", mode="before")
    @classmethod
    def clamp_quantity(cls, v: Any) -> int:
        """Quantity is clamped into [1, 99]; unusable values count as 1."""
        try:
            qty = int(v)
        except (TypeError, ValueError):
            qty = MIN_LINE_QUANTITY
        return max(MIN_LINE_QUANTITY, min(qty, MAX_LINE_QUANTITY))


class ShippingAddress(_Request):
    full_name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def is_complete(self) -> bool:
        """Full name, first line, city and country are required to ship physical goods."""
        return bool(self.full_name and self.line1 and self.city and self.country)


class Coordinates(_Request):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ShippingSelection(_Request):
    option_id: Optional[str] = None
    method_id: Optional[str] = None
    rate_id: Optional[str] = None

    @model_validator(mode="after")
    def _selection_reference(self) -> "ShippingSelection":
        if not self.option_id and not self.method_id:
            raise ValueError("option_id or method_id is required")
        return self


class CheckoutRequest(_Request):
    items: List[CartLineRequest] = Field(..., min_length=1)
    shipping_address: Optional[ShippingAddress] = None
    shipping_selection: Optional[ShippingSelection] = None
    shipping_coordinates: Optional[Coordinates] = None
    contact_email: str = Field(..., min_length=3, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=2000)
    coupon_code: Optional[str] = Field(None, max_length=64)

    @field_validator("contact_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("contact_email must be an email address")
        return v


class CouponPreviewRequest(_Request):
    coupon_code: str = Field(..., min_length=1, max_length=64)
    items: List[CartLineRequest] = Field(..., min_length=1)
    shipping_address: Optional[ShippingAddress] = None
    shipping_selection: Optional[ShippingSelection] = None
    shipping_coordinates: Optional[Coordinates] = None


# --- Cart pricing ---

class SelectedVariation(_Result):
    label: str
    option_name: str
    price_adjustment: Decimal


class GroupedComponentSnapshot(_Result):
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    product_format: str


class BundleItemSnapshot(_Result):
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    optional: bool


class BundleGroupSnapshot(_Result):
    name: str
    pricing_mode: str
    discount_percent: Decimal
    group_total: Decimal
    items: List[BundleItemSnapshot]


class BundleComposition(_Result):
    pricing_mode: str
    discount_percent: Decimal
    aggregate_price: Decimal
    groups: List[BundleGroupSnapshot]


class StockAdjustment(_Result):
    product_id: int
    decrement_stock: int
    increment_sales: int


class NormalizedCartLine(_Result):
    product_id: int
    owner_id: Optional[int] = None
    name: str
    slug: Optional[str] = None
    sku: Optional[str] = None
    image: Optional[str] = None
    product_type: Optional[str] = None
    product_source: str
    product_format: Literal["physical", "digital"]
    structure: Literal["simple", "grouped", "bundle"]
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    weight_kg: Decimal
    selected_variations: List[SelectedVariation] = Field(default_factory=list)
    grouped_components: List[GroupedComponentSnapshot] = Field(default_factory=list)
    bundle_composition: Optional[BundleComposition] = None
    download_url: Optional[str] = None
    stock_adjustment: StockAdjustment


class CartPricingSummary(_Result):
    lines: List[NormalizedCartLine]
    subtotal: Decimal
    requires_shipping: bool
    total_physical_items: int
    total_weight_kg: Decimal
    stock_adjustments: List[StockAdjustment]


# --- Shipping ---

class EstimatedDays(_Result):
    min: Optional[int] = None
    max: Optional[int] = None


class ZoneRef(_Result):
    id: int
    name: str


class ShippingOption(_Result):
    option_id: str
    method_id: str
    rate_id: Optional[str] = None
    label: str
    description: Optional[str] = None
    method_name: str
    cost: Decimal = Field(..., ge=0)
    currency: str
    type: str
    estimated_days: Optional[EstimatedDays] = None
    zone: Optional[ZoneRef] = None
    distance_km: Optional[float] = None


# --- Coupons ---

class DiscountResult(_Result):
    valid: bool
    product_discount: Decimal = ZERO
    shipping_discount: Decimal = ZERO
    applicable_subtotal: Decimal = ZERO
    coupon_code: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    description: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def rejected(cls, message: str) -> "DiscountResult":
        return cls(valid=False, message=message)

    @property
    def total_discount(self) -> Decimal:
        return self.product_discount + self.shipping_discount


# --- Checkout results ---

class OrderTotals(_Result):
    items_total: Decimal
    shipping_cost: Decimal
    discount_total: Decimal
    grand_total: Decimal


class CheckoutQuote(_Result):
    cart: CartPricingSummary
    shipping_options: List[ShippingOption]


class CouponPreview(_Result):
    discount: DiscountResult
    totals: OrderTotals
    new_subtotal: Decimal


class PaymentCommitResult(_Result):
    order_id: int
    already_committed: bool = False
    oversold_product_ids: List[int] = Field(default_factory=list)
    coupon_over_limit: bool = False

    @property
    def fulfillment_blocked(self) -> bool:
        return bool(self.oversold_product_ids)
