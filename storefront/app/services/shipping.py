"""
Shipping rate calculation.

Quotes are pure reads over the zone/method configuration: the same cart,
destination and configuration always produce the same ordered options.
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from storefront.app.core.constants import DIGITAL_OPTION_ID, FALLBACK_OPTION_ID, ZERO
from storefront.app.core.exceptions import (
    ShippingAddressRequiredError,
    ShippingOptionExpiredError,
    ShippingUnavailableError,
)
from storefront.app.core.logging import get_logger
from storefront.app.core.metrics import shipping_quotes_total
from storefront.app.core.money import round_money
from storefront.app.repositories.interfaces import ShippingConfigRepositoryProtocol
from storefront.app.repositories.records import (
    ShippingMethodRecord,
    ShippingRateRecord,
    ShippingZoneRecord,
)
from storefront.app.schemas import (
    CartPricingSummary,
    Coordinates,
    EstimatedDays,
    ShippingAddress,
    ShippingOption,
    ShippingSelection,
    ZoneRef,
)
from storefront.app.services.shipping_zones import ZoneMatch, match_zones, normalize_country

logger = get_logger(__name__)


def _is_placeholder_rate(rate: ShippingRateRecord, method: ShippingMethodRecord) -> bool:
    """
    A legacy "blank" tier: default-looking label, no zone, no thresholds and
    no additive fees. Such tiers price at the method's default cost.
    """
    label = (rate.label or "").strip().lower()
    method_label = (method.name or "").strip().lower()
    default_label = not label or label == "default" or (method_label and label == method_label)
    no_thresholds = all(
        v is None
        for v in (rate.min_subtotal, rate.max_subtotal, rate.min_distance_km, rate.max_distance_km, rate.free_above)
    )
    no_adjustments = all(v is None for v in (rate.per_item_cost, rate.per_weight_kg_cost, rate.handling_fee))
    return bool(default_label) and rate.zone_id is None and no_thresholds and no_adjustments


def _inherits_method_cost(rate: ShippingRateRecord, method: ShippingMethodRecord) -> bool:
    if rate.inherit_method_default_cost is True:
        return True
    if rate.inherit_method_default_cost is not None:
        return False
    if method.type == "local_pickup" or rate.type == "local_pickup" or method.default_cost is None:
        return False
    return rate.base_cost is None or (rate.base_cost == ZERO and _is_placeholder_rate(rate, method))


def _synthesized_rate(method: ShippingMethodRecord) -> ShippingRateRecord:
    """Single tier built from the method defaults, for methods without explicit tiers."""
    return ShippingRateRecord(
        label=method.name,
        type="local_pickup" if method.type == "local_pickup" else "flat",
        base_cost=method.default_cost or ZERO,
        per_item_cost=ZERO,
        per_weight_kg_cost=ZERO,
        handling_fee=ZERO,
    )


def _estimated_days(method: ShippingMethodRecord) -> Optional[EstimatedDays]:
    if method.estimated_days_min is None and method.estimated_days_max is None:
        return None
    return EstimatedDays(min=method.estimated_days_min, max=method.estimated_days_max)


class ShippingService:
    def __init__(
        self,
        config: ShippingConfigRepositoryProtocol,
        currency: str = "USD",
        supported_countries: Iterable[str] = ("us",),
        fallback_cost: Decimal = Decimal("12.00"),
    ):
        self.config = config
        self.currency = currency
        self.supported_countries = {normalize_country(c) for c in supported_countries}
        self.fallback_cost = fallback_cost

    def _digital_option(self) -> ShippingOption:
        return ShippingOption(
            option_id=DIGITAL_OPTION_ID,
            method_id="digital",
            label="Instant Delivery",
            method_name="Digital Delivery",
            description="Digital items are delivered instantly after payment.",
            cost=ZERO,
            currency=self.currency,
            type="digital",
        )

    def _fallback_option(self) -> ShippingOption:
        return ShippingOption(
            option_id=FALLBACK_OPTION_ID,
            method_id="fallback",
            label="Standard Shipping",
            method_name="Standard Shipping",
            description="Default fallback rate",
            cost=round_money(self.fallback_cost),
            currency=self.currency,
            type="flat",
        )

    def _price_rate(
        self,
        cart: CartPricingSummary,
        method: ShippingMethodRecord,
        rate: ShippingRateRecord,
        matched: Dict[int, ZoneMatch],
        default_zones: Dict[int, ShippingZoneRecord],
    ) -> Optional[ShippingOption]:
        """Price one (method, tier) pair, or None when the tier does not apply to this cart."""
        zone_ref = None
        distance_km = None
        if rate.zone_id is not None:
            if rate.zone_id in matched:
                match = matched[rate.zone_id]
                distance_km = match.distance_km
                zone_ref = ZoneRef(id=match.zone.id, name=match.zone.name)
            elif rate.zone_id in default_zones:
                zone = default_zones[rate.zone_id]
                zone_ref = ZoneRef(id=zone.id, name=zone.name)
            else:
                return None

        subtotal = cart.subtotal
        if rate.min_subtotal is not None and subtotal < rate.min_subtotal:
            return None
        if rate.max_subtotal is not None and subtotal > rate.max_subtotal:
            return None

        if _inherits_method_cost(rate, method) or rate.base_cost is None:
            base_cost = method.default_cost or ZERO
        else:
            base_cost = rate.base_cost

        if rate.free_above is not None and subtotal >= rate.free_above:
            base_cost = ZERO

        # Distance bounds only apply when the matched zone produced a distance
        if distance_km is not None:
            if rate.min_distance_km is not None and distance_km < rate.min_distance_km:
                return None
            if rate.max_distance_km is not None and distance_km > rate.max_distance_km:
                return None

        cost = (
            base_cost
            + (rate.per_item_cost or ZERO) * cart.total_physical_items
            + (rate.per_weight_kg_cost or ZERO) * cart.total_weight_kg
            + (rate.handling_fee or ZERO)
            + (method.handling_fee or ZERO)
        )
        cost = round_money(max(cost, ZERO))

        method_id = str(method.id)
        rate_id = str(rate.id) if rate.id is not None else None
        return ShippingOption(
            option_id=f"{method_id}:{rate_id or 'base'}",
            method_id=method_id,
            rate_id=rate_id,
            label=rate.label or method.name,
            description=method.description,
            method_name=method.name,
            cost=cost,
            currency=method.currency or self.currency,
            type=rate.type or method.type,
            estimated_days=_estimated_days(method),
            zone=zone_ref,
            distance_km=distance_km,
        )

    async def calculate_options(
        self,
        cart: CartPricingSummary,
        address: Optional[ShippingAddress] = None,
        coordinates: Optional[Coordinates] = None,
    ) -> List[ShippingOption]:
        """
        Every shipping option available for the cart and destination, cheapest first.

        Raises:
            ShippingAddressRequiredError: physical cart without a destination country
            ShippingUnavailableError: destination outside the supported countries
        """
        if not cart.requires_shipping:
            shipping_quotes_total.labels(result="digital").inc()
            return [self._digital_option()]

        country = normalize_country(address.country if address else None)
        if not country:
            raise ShippingAddressRequiredError()
        if country not in self.supported_countries:
            shipping_quotes_total.labels(result="unsupported").inc()
            logger.info("Shipping destination not supported", country=country)
            raise ShippingUnavailableError(
                "We currently only ship within the United States."
                if self.supported_countries == {"us"}
                else "We do not ship to this destination yet."
            )

        zones = await self.config.list_zones()
        methods = [m for m in await self.config.list_active_methods() if m.status == "active"]

        matched = {}
        for match in match_zones(zones, address, coordinates):
            matched.setdefault(match.zone.id, match)
        default_zones = {zone.id: zone for zone in zones if zone.is_default}

        options: List[ShippingOption] = []
        for method in methods:
            if not method.allow_physical_products:
                continue
            for rate in method.rates or [_synthesized_rate(method)]:
                option = self._price_rate(cart, method, rate, matched, default_zones)
                if option is not None:
                    options.append(option)

        if not options:
            if not methods:
                shipping_quotes_total.labels(result="fallback").inc()
                logger.warning("No shipping methods configured, offering fallback rate")
                return [self._fallback_option()]
            shipping_quotes_total.labels(result="empty").inc()
            logger.info("No shipping option matched", country=country, zones_matched=len(matched))
            return []

        options.sort(key=lambda option: option.cost)
        shipping_quotes_total.labels(result="options").inc()
        logger.debug("Shipping options computed", count=len(options), zones_matched=len(matched))
        return options

    @staticmethod
    def resolve_selection(options: List[ShippingOption], selection: ShippingSelection) -> ShippingOption:
        """
        Pick the quoted option the buyer selected.

        Raises:
            ShippingOptionExpiredError: the selection no longer matches any option
        """
        for option in options:
            if selection.option_id:
                if option.option_id == selection.option_id:
                    return option
            elif selection.rate_id:
                if option.method_id == selection.method_id and option.rate_id == selection.rate_id:
                    return option
            elif option.method_id == selection.method_id:
                return option
        raise ShippingOptionExpiredError()

    async def quote_and_select(
        self,
        cart: CartPricingSummary,
        address: Optional[ShippingAddress],
        coordinates: Optional[Coordinates],
        selection: ShippingSelection,
    ) -> ShippingOption:
        """
        Re-quote against current configuration, then resolve the selection.

        Raises:
            ShippingUnavailableError: no option applies to this cart and destination
            ShippingOptionExpiredError: options exist but none matches the selection
        """
        options = await self.calculate_options(cart, address, coordinates)
        if not options:
            raise ShippingUnavailableError("No shipping option is available for this address")
        return self.resolve_selection(options, selection)
