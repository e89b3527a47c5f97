"""Shipping zone and method reads, with an optional Redis-backed cache layer."""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.app.core.logging import get_logger
from storefront.app.core.money import optional_decimal
from storefront.app.models.shipping import ShippingZone, ShippingMethod, ShippingRate
from storefront.app.repositories.interfaces import ShippingConfigRepositoryProtocol
from storefront.app.repositories.records import (
    GeoFence,
    GeoPoint,
    ShippingMethodRecord,
    ShippingRateRecord,
    ShippingZoneRecord,
)
from storefront.app.services.cache import CacheService

logger = get_logger(__name__)


def zone_to_record(zone: ShippingZone) -> ShippingZoneRecord:
    geo_fence = None
    # A fence needs a center and a positive radius
    if zone.geo_center_lat is not None and zone.geo_center_lng is not None and zone.geo_radius_km:
        geo_fence = GeoFence(
            center=GeoPoint(lat=zone.geo_center_lat, lng=zone.geo_center_lng),
            radius_km=zone.geo_radius_km,
        )
    return ShippingZoneRecord(
        id=zone.id,
        name=zone.name,
        priority=zone.priority or 0,
        is_default=bool(zone.is_default),
        countries=zone.countries or [],
        states=zone.states or [],
        cities=zone.cities or [],
        postal_codes=zone.postal_codes or [],
        zip_prefixes=zone.zip_prefixes or [],
        geo_fence=geo_fence,
        created_at=zone.created_at,
    )


def rate_to_record(rate: ShippingRate) -> ShippingRateRecord:
    return ShippingRateRecord(
        id=rate.id,
        label=rate.label,
        code=rate.code,
        zone_id=rate.zone_id,
        type=rate.type or "flat",
        base_cost=optional_decimal(rate.base_cost),
        per_item_cost=optional_decimal(rate.per_item_cost),
        per_weight_kg_cost=optional_decimal(rate.per_weight_kg_cost),
        handling_fee=optional_decimal(rate.handling_fee),
        min_subtotal=optional_decimal(rate.min_subtotal),
        max_subtotal=optional_decimal(rate.max_subtotal),
        free_above=optional_decimal(rate.free_above),
        min_distance_km=rate.min_distance_km,
        max_distance_km=rate.max_distance_km,
        inherit_method_default_cost=rate.inherit_method_default_cost,
    )


def method_to_record(method: ShippingMethod) -> ShippingMethodRecord:
    return ShippingMethodRecord(
        id=method.id,
        name=method.name,
        description=method.description,
        type=method.type or "flat_rate",
        status=method.status,
        currency=method.currency or "USD",
        default_cost=optional_decimal(method.default_cost),
        handling_fee=optional_decimal(method.handling_fee),
        allow_physical_products=bool(method.allow_physical_products),
        allow_digital_products=bool(method.allow_digital_products),
        estimated_days_min=method.estimated_days_min,
        estimated_days_max=method.estimated_days_max,
        display_order=method.display_order or 0,
        rates=[rate_to_record(r) for r in method.rates],
        created_at=method.created_at,
    )


class ShippingConfigRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_zones(self) -> List[ShippingZoneRecord]:
        """All zones, highest priority first, then oldest first."""
        result = await self.session.execute(
            select(ShippingZone).order_by(
                ShippingZone.priority.desc(), ShippingZone.created_at, ShippingZone.id
            )
        )
        return [zone_to_record(z) for z in result.scalars().all()]

    async def list_active_methods(self) -> List[ShippingMethodRecord]:
        """Active methods in display order (rates are loaded eagerly)."""
        result = await self.session.execute(
            select(ShippingMethod)
            .where(ShippingMethod.status == "active")
            .order_by(ShippingMethod.display_order, ShippingMethod.created_at, ShippingMethod.id)
        )
        return [method_to_record(m) for m in result.scalars().all()]


class CachedShippingConfigRepository:
    """Read-through cache over another shipping config repository."""

    def __init__(
        self,
        inner: ShippingConfigRepositoryProtocol,
        cache: CacheService,
        ttl: Optional[int] = None,
    ):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    async def list_zones(self) -> List[ShippingZoneRecord]:
        cached = await self.cache.get_shipping_zones()
        if cached is not None:
            return [ShippingZoneRecord.model_validate(z) for z in cached]
        zones = await self.inner.list_zones()
        await self.cache.set_shipping_zones([z.model_dump(mode="json") for z in zones], self.ttl)
        return zones

    async def list_active_methods(self) -> List[ShippingMethodRecord]:
        cached = await self.cache.get_shipping_methods()
        if cached is not None:
            return [ShippingMethodRecord.model_validate(m) for m in cached]
        methods = await self.inner.list_active_methods()
        await self.cache.set_shipping_methods([m.model_dump(mode="json") for m in methods], self.ttl)
        return methods

    async def invalidate(self) -> None:
        """Drop cached zones and methods (call after any shipping configuration write)."""
        await self.cache.invalidate_shipping_config()
        logger.info("Shipping configuration cache invalidated")
