"""
Shared constants for the checkout pipeline.
"""
from decimal import Decimal

# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
ORDERABLE_PRODUCT_STATUSES = ("approved", "published")

PRODUCT_FORMAT_PHYSICAL = "physical"

STORE_PRODUCT_SOURCE = "store"

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 99

# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
PAYMENT_AWAITING = "awaiting_payment"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"

FULFILLMENT_PENDING = "pending"
FULFILLMENT_PROCESSING = "processing"
FULFILLMENT_ON_HOLD = "on_hold"
FULFILLMENT_CANCELLED = "cancelled"

SHIPPING_PENDING = "pending"
SHIPPING_NOT_REQUIRED = "not_required"

# ---------------------------------------------------------------------------
# Shipping
# ---------------------------------------------------------------------------
EARTH_RADIUS_KM = 6371.0
DIGITAL_OPTION_ID = "digital:auto"
FALLBACK_OPTION_ID = "fallback:standard"

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")
ONE_GRAM_KG = Decimal("0.001")
PERCENT_BASE = Decimal("100")
GRAMS_PER_KG = Decimal("1000")
