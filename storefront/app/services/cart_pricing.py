"""
Cart normalization: turns raw cart line requests into priced, snapshotted lines.

Pricing is pure over a catalog snapshot. Stock is only checked here (advisory);
the decrement happens at payment commit.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set, Tuple

from storefront.app.core.constants import GRAMS_PER_KG, ZERO
from storefront.app.core.exceptions import InvalidCartError
from storefront.app.core.logging import get_logger
from storefront.app.core.money import discount_factor, round_money, round_weight
from storefront.app.repositories.interfaces import ProductRepositoryProtocol
from storefront.app.repositories.records import CatalogItem
from storefront.app.schemas import (
    BundleComposition,
    BundleGroupSnapshot,
    BundleItemSnapshot,
    CartLineRequest,
    CartPricingSummary,
    GroupedComponentSnapshot,
    NormalizedCartLine,
    SelectedOption,
    SelectedVariation,
    StockAdjustment,
)

logger = get_logger(__name__)

Catalog = Dict[int, CatalogItem]


def effective_price(item: CatalogItem) -> Decimal:
    """Sale price when set and lower than the list price, else the list price."""
    return item.effective_price


def resolve_variations(
    product: CatalogItem, selected: Sequence[SelectedOption]
) -> Tuple[Decimal, List[SelectedVariation]]:
    """Match selected options against the product's variations; returns (total adjustment, snapshots)."""
    extra = ZERO
    snapshots: List[SelectedVariation] = []
    for selection in selected:
        variation = next((v for v in product.variations if v.label == selection.label), None)
        if variation is None:
            raise InvalidCartError(f"Invalid variation selection for {product.name}")
        if selection.option_id:
            option = next((o for o in variation.options if o.id == selection.option_id), None)
        else:
            option = next((o for o in variation.options if o.name == selection.option_name), None)
        if option is None:
            raise InvalidCartError(f"Invalid option for {variation.label}")
        extra += option.price_adjustment
        snapshots.append(
            SelectedVariation(
                label=variation.label,
                option_name=option.name,
                price_adjustment=option.price_adjustment,
            )
        )
    return extra, snapshots


def _component(catalog: Catalog, product_id: int, parent: CatalogItem) -> CatalogItem:
    component = catalog.get(product_id)
    if component is None:
        raise InvalidCartError(f"A product included in {parent.name} is no longer available")
    return component


def price_grouped(
    product: CatalogItem, catalog: Catalog
) -> Tuple[Decimal, List[GroupedComponentSnapshot]]:
    total = ZERO
    snapshots = []
    for entry in product.grouped_products:
        child = _component(catalog, entry.product_id, product)
        total += effective_price(child) * entry.quantity
        snapshots.append(
            GroupedComponentSnapshot(
                product_id=child.id,
                name=child.name,
                quantity=entry.quantity,
                unit_price=effective_price(child),
                product_format=child.product_format,
            )
        )
    return total, snapshots


def price_bundle(
    product: CatalogItem, catalog: Catalog, opted_in: Set[int]
) -> Tuple[Decimal, BundleComposition]:
    """
    Price a configurable bundle.

    Each group sums its required members plus the optional members the buyer
    opted into, with per-item discounts; a "discounted" group applies its own
    percentage on top. The top-level mode then decides the bundle price:
    fixed uses the bundle's listed price (not its sale price) when positive,
    discounted applies the bundle percentage to the aggregate, and calculated
    uses the aggregate as is.
    """
    aggregate = ZERO
    groups = []
    for group in product.bundle_groups:
        group_total = ZERO
        items = []
        for member in group.items:
            if member.optional and member.product_id not in opted_in:
                continue
            child = _component(catalog, member.product_id, product)
            price = effective_price(child)
            group_total += price * discount_factor(member.discount_percent) * member.quantity
            items.append(
                BundleItemSnapshot(
                    product_id=child.id,
                    name=child.name,
                    quantity=member.quantity,
                    unit_price=price,
                    discount_percent=member.discount_percent,
                    optional=member.optional,
                )
            )
        if group.pricing_mode == "discounted":
            group_total *= discount_factor(group.discount_percent)
        aggregate += group_total
        groups.append(
            BundleGroupSnapshot(
                name=group.name,
                pricing_mode=group.pricing_mode,
                discount_percent=group.discount_percent,
                group_total=group_total,
                items=items,
            )
        )

    mode = product.bundle_pricing_mode
    if mode == "fixed" and product.price > ZERO:
        price = product.price
    elif mode == "discounted":
        price = aggregate * discount_factor(product.bundle_discount_percent)
    else:
        price = aggregate

    composition = BundleComposition(
        pricing_mode=mode,
        discount_percent=product.bundle_discount_percent,
        aggregate_price=aggregate,
        groups=groups,
    )
    return price, composition


def _optional_members(product: CatalogItem) -> Set[int]:
    return {
        member.product_id
        for group in product.bundle_groups
        for member in group.items
        if member.optional
    }


def _component_ids(products: Sequence[CatalogItem]) -> Set[int]:
    ids: Set[int] = set()
    for product in products:
        ids.update(entry.product_id for entry in product.grouped_products)
        for group in product.bundle_groups:
            ids.update(member.product_id for member in group.items)
    return ids


class CartPricingService:
    def __init__(self, products: ProductRepositoryProtocol):
        self.products = products

    async def _load_catalog(self, lines: Sequence[CartLineRequest]) -> Catalog:
        catalog = await self.products.get_orderable(line.product_id for line in lines)
        for line in lines:
            if line.product_id not in catalog:
                raise InvalidCartError("One or more products are no longer available")

        missing = _component_ids(list(catalog.values())) - set(catalog)
        if missing:
            catalog.update(await self.products.get_orderable(missing))
        return catalog

    def _normalize_line(
        self, line: CartLineRequest, catalog: Catalog, requested: Dict[int, int]
    ) -> NormalizedCartLine:
        product = catalog[line.product_id]
        quantity = line.quantity
        structure = product.structure

        # Several lines may draw on the same product
        if product.is_physical and structure != "bundle" and product.stock < requested[product.id]:
            raise InvalidCartError(f"Insufficient stock for {product.name}")

        opted_in = set(line.optional_items)
        if opted_in:
            unknown = opted_in - _optional_members(product)
            if unknown:
                raise InvalidCartError(f"Invalid optional item selection for {product.name}")

        variation_extra, selected_variations = resolve_variations(product, line.selected_options)

        grouped_components: List[GroupedComponentSnapshot] = []
        bundle_composition: Optional[BundleComposition] = None
        if structure == "grouped":
            base_price, grouped_components = price_grouped(product, catalog)
        elif structure == "bundle":
            base_price, bundle_composition = price_bundle(product, catalog, opted_in)
        else:
            base_price = effective_price(product)

        unit_price = base_price + variation_extra
        # Bundle stock lives on the member products, not the bundle itself
        decrement = 0 if not product.is_physical or structure == "bundle" else quantity

        return NormalizedCartLine(
            product_id=product.id,
            owner_id=product.owner_id,
            name=product.name,
            slug=product.slug,
            sku=product.sku,
            image=product.image,
            product_type=product.product_type,
            product_source=product.product_source,
            product_format=product.product_format,
            structure=structure,
            quantity=quantity,
            unit_price=unit_price,
            line_subtotal=round_money(unit_price * quantity),
            weight_kg=product.weight_grams / GRAMS_PER_KG,
            selected_variations=selected_variations,
            grouped_components=grouped_components,
            bundle_composition=bundle_composition,
            download_url=None if product.is_physical else product.download_url,
            stock_adjustment=StockAdjustment(
                product_id=product.id,
                decrement_stock=decrement,
                increment_sales=quantity,
            ),
        )

    async def normalize(self, lines: Sequence[CartLineRequest]) -> CartPricingSummary:
        """
        Price every cart line and aggregate cart-level totals.

        Raises:
            InvalidCartError: empty cart, unavailable product or component,
                bad variation or optional item, or insufficient stock
        """
        if not lines:
            raise InvalidCartError("Cart items are required")

        catalog = await self._load_catalog(lines)
        requested: Dict[int, int] = defaultdict(int)
        for line in lines:
            requested[line.product_id] += line.quantity
        normalized = [self._normalize_line(line, catalog, requested) for line in lines]

        subtotal = sum((line.line_subtotal for line in normalized), ZERO)
        physical = [line for line in normalized if line.product_format == "physical"]
        total_physical_items = sum(line.quantity for line in physical)
        total_weight = sum((line.weight_kg * line.quantity for line in physical), ZERO)

        summary = CartPricingSummary(
            lines=normalized,
            subtotal=max(round_money(subtotal), ZERO),
            requires_shipping=total_physical_items > 0,
            total_physical_items=total_physical_items,
            total_weight_kg=round_weight(total_weight),
            stock_adjustments=[line.stock_adjustment for line in normalized],
        )
        logger.debug(
            "Cart normalized",
            lines=len(normalized),
            subtotal=str(summary.subtotal),
            requires_shipping=summary.requires_shipping,
        )
        return summary
