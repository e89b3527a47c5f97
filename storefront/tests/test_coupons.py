"""
Tests for the coupon engine (services.coupons).

Every rejection comes back as an invalid DiscountResult; usage is only
counted by commit_usage.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from storefront.app.repositories.records import CouponRecord, CouponUsageRecord
from storefront.app.schemas import NormalizedCartLine, StockAdjustment
from storefront.app.services.coupons import cap_to_order_total

from conftest import FIXED_NOW


def _line(product_id: int, subtotal: str, source: str = "store") -> NormalizedCartLine:
    return NormalizedCartLine(
        product_id=product_id,
        name=f"Product {product_id}",
        product_source=source,
        product_format="physical",
        structure="simple",
        quantity=1,
        unit_price=Decimal(subtotal),
        line_subtotal=Decimal(subtotal),
        weight_kg=Decimal("0"),
        stock_adjustment=StockAdjustment(product_id=product_id, decrement_stock=1, increment_sales=1),
    )


def _coupon(code: str = "CODE10", **kwargs) -> CouponRecord:
    kwargs.setdefault("discount_value", Decimal("10"))
    return CouponRecord(id=1, code=code, **kwargs)


# ============================================
# DISCOUNT CALCULATION
# ============================================

@pytest.mark.asyncio
async def test_percentage_coupon_with_shipping(coupon_service, coupon_repo):
    """10% on an 80.00 cart with 7.00 shipping: 8.00 off items, 0.70 off shipping."""
    coupon_repo.add(_coupon(apply_to_shipping=True))

    result = await coupon_service.evaluate("code10", Decimal("80.00"), [_line(1, "80.00")], Decimal("7.00"))

    assert result.valid is True
    assert result.product_discount == Decimal("8.00")
    assert result.shipping_discount == Decimal("0.70")
    assert result.total_discount == Decimal("8.70")
    assert result.coupon_code == "CODE10"


@pytest.mark.asyncio
async def test_shipping_not_discounted_unless_enabled(coupon_service, coupon_repo):
    coupon_repo.add(_coupon())

    result = await coupon_service.evaluate("CODE10", Decimal("80.00"), [_line(1, "80.00")], Decimal("7.00"))

    assert result.shipping_discount == Decimal("0")


@pytest.mark.asyncio
async def test_percentage_capped_by_maximum_discount(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(discount_value=Decimal("50"), maximum_discount=Decimal("15")))

    result = await coupon_service.evaluate("CODE10", Decimal("100.00"), [_line(1, "100.00")])

    assert result.product_discount == Decimal("15.00")


@pytest.mark.asyncio
async def test_fixed_coupon_limited_to_applicable_subtotal(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(discount_type="fixed", discount_value=Decimal("30")))

    result = await coupon_service.evaluate("CODE10", Decimal("20.00"), [_line(1, "20.00")])

    assert result.product_discount == Decimal("20.00")


@pytest.mark.asyncio
async def test_fixed_coupon_remainder_goes_to_shipping(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(discount_type="fixed", discount_value=Decimal("25"), apply_to_shipping=True))

    result = await coupon_service.evaluate("CODE10", Decimal("20.00"), [_line(1, "20.00")], Decimal("8.00"))

    assert result.product_discount == Decimal("20.00")
    assert result.shipping_discount == Decimal("5.00")


@pytest.mark.asyncio
async def test_discount_never_exceeds_order_total(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(discount_value=Decimal("150"), apply_to_shipping=True))

    result = await coupon_service.evaluate("CODE10", Decimal("40.00"), [_line(1, "40.00")], Decimal("10.00"))

    assert result.product_discount + result.shipping_discount <= Decimal("50.00")
    assert result.product_discount <= result.applicable_subtotal


def test_cap_scales_discounts_proportionally():
    """60 + 20 off a 50.00 order: both shares shrink by 50/80 and sum to the order total."""
    product_amount, shipping_amount = cap_to_order_total(Decimal("60"), Decimal("20"), Decimal("50"))

    assert product_amount == Decimal("37.50")
    assert shipping_amount == Decimal("12.50")
    assert product_amount + shipping_amount == Decimal("50")


def test_cap_remainder_goes_to_shipping():
    product_amount, shipping_amount = cap_to_order_total(Decimal("10"), Decimal("10"), Decimal("10.01"))

    assert product_amount == Decimal("5.01")
    assert shipping_amount == Decimal("5.00")


def test_cap_with_zero_order_total():
    assert cap_to_order_total(Decimal("10"), Decimal("5"), Decimal("0")) == (Decimal("0"), Decimal("0"))


def test_cap_leaves_discounts_within_total_untouched():
    assert cap_to_order_total(Decimal("8.00"), Decimal("0.70"), Decimal("87.00")) == (Decimal("8.00"), Decimal("0.70"))


# ============================================
# PRODUCT SCOPE
# ============================================

@pytest.mark.asyncio
async def test_include_scope_narrows_subtotal(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(product_scope="include", scoped_products=[2]))

    result = await coupon_service.evaluate(
        "CODE10", Decimal("100.00"), [_line(1, "60.00"), _line(2, "40.00")]
    )

    assert result.applicable_subtotal == Decimal("40.00")
    assert result.product_discount == Decimal("4.00")


@pytest.mark.asyncio
async def test_exclude_scope_covering_whole_cart_is_rejected(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(product_scope="exclude", scoped_products=[1]))

    result = await coupon_service.evaluate("CODE10", Decimal("60.00"), [_line(1, "60.00")])

    assert result.valid is False
    assert result.product_discount == Decimal("0")


@pytest.mark.asyncio
async def test_store_only_coupon_rejects_listing_products(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(store_only=True))

    result = await coupon_service.evaluate(
        "CODE10", Decimal("60.00"), [_line(1, "30.00"), _line(2, "30.00", source="listing")]
    )

    assert result.valid is False
    assert result.message == "This coupon only applies to store products"


# ============================================
# REJECTIONS
# ============================================

@pytest.mark.asyncio
async def test_unknown_and_inactive_codes(coupon_service, coupon_repo):
    coupon_repo.add(_coupon("OFF", is_active=False))

    unknown = await coupon_service.evaluate("NOPE", Decimal("10"), [_line(1, "10")])
    inactive = await coupon_service.evaluate("OFF", Decimal("10"), [_line(1, "10")])

    assert unknown.message == "Invalid coupon code"
    assert inactive.message == "Invalid coupon code"


@pytest.mark.asyncio
async def test_time_window(coupon_service, coupon_repo):
    coupon_repo.add(_coupon("SOON", start_date=FIXED_NOW + timedelta(days=1)))
    coupon_repo.add(_coupon("GONE", start_date=datetime(2025, 1, 1), end_date=FIXED_NOW - timedelta(seconds=1)))
    coupon_repo.add(_coupon("OPEN", start_date=datetime(2025, 1, 1)))

    soon = await coupon_service.evaluate("SOON", Decimal("10"), [_line(1, "10")])
    gone = await coupon_service.evaluate("GONE", Decimal("10"), [_line(1, "10")])
    open_ended = await coupon_service.evaluate("OPEN", Decimal("10"), [_line(1, "10")])

    assert soon.message == "This coupon is not yet active"
    assert gone.message == "This coupon has expired"
    assert open_ended.valid is True


@pytest.mark.asyncio
async def test_usage_limit_reached(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(usage_limit=1, usage_count=1))

    result = await coupon_service.evaluate("CODE10", Decimal("80.00"), [_line(1, "80.00")])

    assert result.valid is False
    assert "usage limit" in result.message


@pytest.mark.asyncio
async def test_minimum_order_amount(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(minimum_order_amount=Decimal("50")))

    result = await coupon_service.evaluate("CODE10", Decimal("49.99"), [_line(1, "49.99")])

    assert result.valid is False
    assert result.message == "Minimum order amount of $50.00 required"


@pytest.mark.asyncio
async def test_per_user_limit(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(
        usage_limit_per_user=1,
        used_by=[CouponUsageRecord(user_id=42, used_at=datetime(2026, 1, 1), order_id=7)],
    ))

    repeat = await coupon_service.evaluate("CODE10", Decimal("80"), [_line(1, "80")], user_id=42)
    other = await coupon_service.evaluate("CODE10", Decimal("80"), [_line(1, "80")], user_id=43)

    assert repeat.message == "You have already used this coupon"
    assert other.valid is True


# ============================================
# USAGE COMMIT
# ============================================

@pytest.mark.asyncio
async def test_evaluate_does_not_count_usage(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(usage_limit=5))

    await coupon_service.evaluate("CODE10", Decimal("80"), [_line(1, "80")], user_id=1)

    assert coupon_repo.coupons["CODE10"].usage_count == 0
    assert coupon_repo.coupons["CODE10"].used_by == []


@pytest.mark.asyncio
async def test_commit_usage_counts_until_limit(coupon_service, coupon_repo):
    coupon_repo.add(_coupon(usage_limit=1))

    first = await coupon_service.commit_usage("CODE10", 1, 100)
    second = await coupon_service.commit_usage("CODE10", 2, 101)

    assert first is True
    assert second is False
    coupon = coupon_repo.coupons["CODE10"]
    assert coupon.usage_count == 1
    assert [u.order_id for u in coupon.used_by] == [100, 101]
    assert coupon.used_by[0].used_at == FIXED_NOW
