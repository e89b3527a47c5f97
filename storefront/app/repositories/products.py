"""Catalog snapshot reader and stock commit over the products table."""
from typing import Dict, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.app.core.constants import ORDERABLE_PRODUCT_STATUSES
from storefront.app.core.exceptions import StockCommitError
from storefront.app.core.logging import get_logger
from storefront.app.core.money import to_decimal
from storefront.app.models.product import Product
from storefront.app.repositories.records import (
    BundleGroup,
    BundleItem,
    CatalogItem,
    GroupedComponent,
    Variation,
    VariationOption,
)

logger = get_logger(__name__)


def _variation_from_json(raw: dict) -> Variation:
    options = []
    for opt in raw.get("options") or []:
        option_id = opt.get("id")
        options.append(
            VariationOption(
                id=str(option_id) if option_id is not None else None,
                name=opt["name"],
                # Legacy documents store the adjustment under "price"
                price_adjustment=to_decimal(opt.get("price_adjustment", opt.get("price"))),
                stock=int(opt.get("stock") or 0),
            )
        )
    return Variation(label=raw["label"], options=options)


def _bundle_group_from_json(raw: dict) -> BundleGroup:
    return BundleGroup(
        name=raw.get("name") or "",
        pricing_mode=raw.get("pricing_mode") or "calculated",
        discount_percent=to_decimal(raw.get("discount_percent")),
        items=[
            BundleItem(
                product_id=int(item["product_id"]),
                quantity=int(item.get("quantity") or 1),
                discount_percent=to_decimal(item.get("discount_percent")),
                optional=bool(item.get("optional", False)),
            )
            for item in raw.get("items") or []
        ],
    )


def product_to_catalog_item(product: Product) -> CatalogItem:
    """Translate a persisted product row into the checkout read model."""
    return CatalogItem(
        id=product.id,
        name=product.name,
        slug=product.slug,
        sku=product.sku,
        owner_id=product.owner_id,
        image=product.image_url,
        product_type=product.product_type,
        download_url=product.download_url,
        status=product.status,
        product_source=product.product_source or "store",
        price=to_decimal(product.price),
        sale_price=to_decimal(product.sale_price) if product.sale_price is not None else None,
        stock=product.stock or 0,
        product_format=product.product_format or "physical",
        weight_grams=to_decimal(product.weight_grams),
        variations=[_variation_from_json(v) for v in product.variations or []],
        grouped_products=[
            GroupedComponent(product_id=int(g["product_id"]), quantity=int(g.get("quantity") or 1))
            for g in product.grouped_products or []
        ],
        bundle_groups=[_bundle_group_from_json(g) for g in product.bundle_groups or []],
        bundle_pricing_mode=product.bundle_pricing_mode or "calculated",
        bundle_discount_percent=to_decimal(product.bundle_discount_percent),
    )


class ProductRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_orderable(self, product_ids: Iterable[int]) -> Dict[int, CatalogItem]:
        """Load orderable products by id. Missing or unpublished ids are absent from the result."""
        ids = list({int(pid) for pid in product_ids})
        if not ids:
            return {}
        result = await self.session.execute(
            select(Product).where(
                Product.id.in_(ids),
                Product.status.in_(ORDERABLE_PRODUCT_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return {p.id: product_to_catalog_item(p) for p in result.scalars().all()}

    async def decrement_stock(self, product_id: int, quantity: int, increment_sales: int) -> None:
        """
        Atomically decrement stock iff at least `quantity` units remain.
        Raises StockCommitError when the row did not qualify (oversold).
        """
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, sales=Product.sales + increment_sales)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("Conditional stock decrement failed", product_id=product_id, quantity=quantity)
            raise StockCommitError(product_id, quantity)

    async def increment_sales(self, product_id: int, quantity: int) -> None:
        await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(sales=Product.sales + quantity)
            .execution_options(synchronize_session=False)
        )
