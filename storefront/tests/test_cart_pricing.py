"""
Tests for cart normalization (services.cart_pricing).

Tests cover:
- Effective price and variation adjustments
- Grouped and bundle pricing modes
- Cart aggregates (subtotal, weight, physical items, stock plan)
- Rejection of invalid carts
"""
import pytest
from decimal import Decimal

from storefront.app.core.exceptions import InvalidCartError
from storefront.app.repositories.records import (
    BundleGroup,
    BundleItem,
    CatalogItem,
    GroupedComponent,
    Variation,
    VariationOption,
)
from storefront.app.schemas import CartLineRequest, SelectedOption


def _product(pid: int, price: str, **kwargs) -> CatalogItem:
    kwargs.setdefault("name", f"Product {pid}")
    kwargs.setdefault("stock", 10)
    return CatalogItem(id=pid, price=Decimal(price), **kwargs)


# ============================================
# SIMPLE PRODUCTS
# ============================================

def test_effective_price_prefers_lower_sale_price():
    assert _product(1, "100", sale_price=Decimal("80")).effective_price == Decimal("80")
    assert _product(1, "100", sale_price=Decimal("120")).effective_price == Decimal("100")
    assert _product(1, "100").effective_price == Decimal("100")


def test_catalog_item_rejects_grouped_and_bundle_together():
    with pytest.raises(ValueError):
        _product(
            1, "10",
            grouped_products=[GroupedComponent(product_id=2)],
            bundle_groups=[BundleGroup(name="G", items=[BundleItem(product_id=3)])],
        )


@pytest.mark.asyncio
async def test_digital_cart_scenario(cart_pricing, product_repo):
    """Two digital units at 10.00: subtotal 20.00 and no shipping required."""
    product_repo.add(_product(1, "10.00", product_format="digital", stock=0, download_url="https://dl/1"))

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1, quantity=2)])

    assert summary.subtotal == Decimal("20.00")
    assert summary.requires_shipping is False
    assert summary.total_physical_items == 0
    line = summary.lines[0]
    assert line.download_url == "https://dl/1"
    assert line.stock_adjustment.decrement_stock == 0
    assert line.stock_adjustment.increment_sales == 2


@pytest.mark.asyncio
async def test_physical_cart_aggregates(cart_pricing, product_repo):
    product_repo.add(
        _product(1, "100", sale_price=Decimal("80"), weight_grams=Decimal("2000")),
        _product(2, "5.55", weight_grams=Decimal("250"), stock=5),
    )

    summary = await cart_pricing.normalize([
        CartLineRequest(product_id=1, quantity=1),
        CartLineRequest(product_id=2, quantity=3),
    ])

    assert summary.subtotal == Decimal("96.65")
    assert summary.requires_shipping is True
    assert summary.total_physical_items == 4
    assert summary.total_weight_kg == Decimal("2.750")
    assert [a.decrement_stock for a in summary.stock_adjustments] == [1, 3]
    assert summary.lines[0].download_url is None


@pytest.mark.asyncio
async def test_variation_adjustments_added_to_unit_price(cart_pricing, product_repo):
    product_repo.add(_product(
        1, "20",
        variations=[
            Variation(label="Size", options=[
                VariationOption(id="s", name="Small"),
                VariationOption(id="l", name="Large", price_adjustment=Decimal("5.50")),
            ]),
            Variation(label="Color", options=[VariationOption(name="Red", price_adjustment=Decimal("1"))]),
        ],
    ))

    summary = await cart_pricing.normalize([
        CartLineRequest(
            product_id=1,
            quantity=2,
            selected_options=[
                SelectedOption(label="Size", option_id="l"),
                SelectedOption(label="Color", option_name="Red"),
            ],
        )
    ])

    line = summary.lines[0]
    assert line.unit_price == Decimal("26.50")
    assert line.line_subtotal == Decimal("53.00")
    assert [v.option_name for v in line.selected_variations] == ["Large", "Red"]


@pytest.mark.asyncio
async def test_unknown_variation_rejected(cart_pricing, product_repo):
    product_repo.add(_product(1, "20", variations=[Variation(label="Size", options=[VariationOption(name="S")])]))

    with pytest.raises(InvalidCartError):
        await cart_pricing.normalize([
            CartLineRequest(product_id=1, selected_options=[SelectedOption(label="Material", option_name="Wool")])
        ])
    with pytest.raises(InvalidCartError):
        await cart_pricing.normalize([
            CartLineRequest(product_id=1, selected_options=[SelectedOption(label="Size", option_name="XL")])
        ])


@pytest.mark.asyncio
async def test_rounding_happens_at_line_subtotal(cart_pricing, product_repo):
    """Unit price keeps full precision; only the line subtotal is rounded."""
    product_repo.add(_product(
        1, "0.333",
        variations=[Variation(label="Pack", options=[VariationOption(name="One", price_adjustment=Decimal("0.001"))])],
    ))

    summary = await cart_pricing.normalize([
        CartLineRequest(product_id=1, quantity=3, selected_options=[SelectedOption(label="Pack", option_name="One")])
    ])

    assert summary.lines[0].unit_price == Decimal("0.334")
    assert summary.lines[0].line_subtotal == Decimal("1.00")


# ============================================
# GROUPED AND BUNDLE PRODUCTS
# ============================================

@pytest.mark.asyncio
async def test_grouped_product_sums_children(cart_pricing, product_repo):
    product_repo.add(
        _product(1, "0", name="Starter kit", grouped_products=[
            GroupedComponent(product_id=2, quantity=2),
            GroupedComponent(product_id=3, quantity=1),
        ]),
        _product(2, "10", sale_price=Decimal("8")),
        _product(3, "15", product_format="digital"),
    )

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1)])

    line = summary.lines[0]
    assert line.structure == "grouped"
    assert line.unit_price == Decimal("31")
    assert [(c.product_id, c.quantity, c.unit_price) for c in line.grouped_components] == [
        (2, 2, Decimal("8")),
        (3, 1, Decimal("15")),
    ]
    assert line.grouped_components[1].product_format == "digital"


def _bundle(mode: str = "calculated", **kwargs) -> CatalogItem:
    return _product(
        1, kwargs.pop("price", "0"),
        name="Bundle",
        bundle_pricing_mode=mode,
        bundle_groups=[
            BundleGroup(name="Core", items=[
                BundleItem(product_id=2, quantity=2, discount_percent=Decimal("10")),
                BundleItem(product_id=3, optional=True),
            ]),
            BundleGroup(name="Extras", pricing_mode="discounted", discount_percent=Decimal("50"), items=[
                BundleItem(product_id=4),
            ]),
        ],
        **kwargs,
    )


def _bundle_members():
    return [_product(2, "10"), _product(3, "7"), _product(4, "20")]


@pytest.mark.asyncio
async def test_bundle_calculated_mode(cart_pricing, product_repo):
    product_repo.add(_bundle(), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1)])

    line = summary.lines[0]
    # Core: 10 * 0.9 * 2 = 18; Extras: 20 * 0.5 = 10
    assert line.unit_price == Decimal("28")
    assert line.bundle_composition.aggregate_price == Decimal("28")
    assert [g.group_total for g in line.bundle_composition.groups] == [Decimal("18"), Decimal("10")]
    # Optional member not selected
    assert [i.product_id for i in line.bundle_composition.groups[0].items] == [2]
    assert line.stock_adjustment.decrement_stock == 0


@pytest.mark.asyncio
async def test_bundle_optional_member_opt_in(cart_pricing, product_repo):
    product_repo.add(_bundle(), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1, optional_items=[3])])

    assert summary.lines[0].unit_price == Decimal("35")


@pytest.mark.asyncio
async def test_bundle_rejects_non_optional_opt_in(cart_pricing, product_repo):
    product_repo.add(_bundle(), *_bundle_members())

    with pytest.raises(InvalidCartError):
        await cart_pricing.normalize([CartLineRequest(product_id=1, optional_items=[4])])


@pytest.mark.asyncio
async def test_bundle_discounted_mode(cart_pricing, product_repo):
    product_repo.add(_bundle("discounted", bundle_discount_percent=Decimal("25")), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1)])

    assert summary.lines[0].unit_price == Decimal("21")


@pytest.mark.asyncio
async def test_bundle_fixed_mode_uses_listed_price(cart_pricing, product_repo):
    product_repo.add(_bundle("fixed", price="19.99"), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1, quantity=2)])

    assert summary.lines[0].unit_price == Decimal("19.99")
    assert summary.lines[0].line_subtotal == Decimal("39.98")
    assert summary.lines[0].bundle_composition.aggregate_price == Decimal("28")


@pytest.mark.asyncio
async def test_bundle_fixed_mode_ignores_sale_price(cart_pricing, product_repo):
    product_repo.add(_bundle("fixed", price="19.99", sale_price=Decimal("15")), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1)])

    assert summary.lines[0].unit_price == Decimal("19.99")


@pytest.mark.asyncio
async def test_bundle_fixed_mode_without_price_falls_back_to_aggregate(cart_pricing, product_repo):
    product_repo.add(_bundle("fixed", price="0"), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1)])

    assert summary.lines[0].unit_price == Decimal("28")


@pytest.mark.asyncio
async def test_bundle_ignores_own_stock(cart_pricing, product_repo):
    product_repo.add(_bundle(stock=0), *_bundle_members())

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1, quantity=5)])

    assert summary.total_physical_items == 5


@pytest.mark.asyncio
async def test_missing_bundle_member_rejected(cart_pricing, product_repo):
    product_repo.add(_bundle(), _product(2, "10"))

    with pytest.raises(InvalidCartError):
        await cart_pricing.normalize([CartLineRequest(product_id=1)])


# ============================================
# INVALID CARTS
# ============================================

@pytest.mark.asyncio
async def test_empty_cart_rejected(cart_pricing):
    with pytest.raises(InvalidCartError):
        await cart_pricing.normalize([])


@pytest.mark.asyncio
async def test_unpublished_product_rejected(cart_pricing, product_repo):
    product_repo.add(_product(1, "10", status="draft"))

    with pytest.raises(InvalidCartError) as exc_info:
        await cart_pricing.normalize([CartLineRequest(product_id=1)])
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_insufficient_stock_rejected(cart_pricing, product_repo):
    product_repo.add(_product(1, "10", name="Lamp", stock=2))

    with pytest.raises(InvalidCartError, match="Insufficient stock for Lamp"):
        await cart_pricing.normalize([CartLineRequest(product_id=1, quantity=3)])


@pytest.mark.asyncio
async def test_stock_check_sums_lines_of_same_product(cart_pricing, product_repo):
    product_repo.add(_product(1, "10", name="Lamp", stock=1))

    with pytest.raises(InvalidCartError, match="Insufficient stock for Lamp"):
        await cart_pricing.normalize([
            CartLineRequest(product_id=1, quantity=1),
            CartLineRequest(product_id=1, quantity=1),
        ])


@pytest.mark.asyncio
async def test_stock_check_allows_split_lines_within_stock(cart_pricing, product_repo):
    product_repo.add(_product(1, "10", name="Lamp", stock=3))

    summary = await cart_pricing.normalize([
        CartLineRequest(product_id=1, quantity=1),
        CartLineRequest(product_id=1, quantity=2),
    ])

    assert summary.total_physical_items == 3


@pytest.mark.asyncio
async def test_digital_product_ignores_stock(cart_pricing, product_repo):
    product_repo.add(_product(1, "10", product_format="digital", stock=0))

    summary = await cart_pricing.normalize([CartLineRequest(product_id=1, quantity=3)])

    assert summary.subtotal == Decimal("30.00")


def test_quantity_is_clamped():
    assert CartLineRequest(product_id=1, quantity=0).quantity == 1
    assert CartLineRequest(product_id=1, quantity=500).quantity == 99
    assert CartLineRequest(product_id=1, quantity="abc").quantity == 1
    assert CartLineRequest(product_id=1, quantity="3").quantity == 3
