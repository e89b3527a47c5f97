"""Match a destination address (and optional coordinates) against shipping zones."""
import math
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from storefront.app.core.constants import EARTH_RADIUS_KM
from storefront.app.repositories.records import GeoPoint, ShippingZoneRecord
from storefront.app.schemas import Coordinates, ShippingAddress

US_COUNTRY_VARIANTS = ("usa", "us", "united states", "united states of america", "america")

US_STATE_NAMES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma",
    "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington", "WV": "West Virginia",
    "WI": "Wisconsin", "WY": "Wyoming", "DC": "District of Columbia",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]", re.IGNORECASE)
_NON_ALPHA = re.compile(r"[^a-z]", re.IGNORECASE)


def normalize_alphanumeric(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _NON_ALNUM.sub("", value).lower() or None


_US_COUNTRY_TOKENS = {normalize_alphanumeric(v) for v in US_COUNTRY_VARIANTS}
_STATE_CODES_BY_NAME = {_NON_ALPHA.sub("", name).lower(): code for code, name in US_STATE_NAMES.items()}


def normalize_country(value: Optional[str]) -> Optional[str]:
    """Alphanumeric lowercase; every common spelling of the United States becomes "us"."""
    normalized = normalize_alphanumeric(value)
    if normalized in _US_COUNTRY_TOKENS:
        return "us"
    return normalized


def normalize_state(value: Optional[str]) -> Optional[str]:
    """Two-letter codes stay codes; full US state names map to their code."""
    if not value or not value.strip():
        return None
    alpha = _NON_ALPHA.sub("", value).lower()
    if not alpha:
        return None
    if len(alpha) == 2:
        return alpha.upper()
    code = _STATE_CODES_BY_NAME.get(alpha)
    if code:
        return code
    return value.strip().lower()


def haversine_km(a: GeoPoint, lat: float, lng: float) -> float:
    d_lat = math.radians(lat - a.lat)
    d_lng = math.radians(lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _match_list(
    entries: Sequence[str], value: Optional[str], normalizer: Callable[[Optional[str]], Optional[str]]
) -> bool:
    # Empty list is a wildcard
    if not entries:
        return True
    normalized = normalizer(value)
    if not normalized:
        return False
    return any(normalizer(entry) == normalized for entry in entries)


def _match_prefix(prefixes: Sequence[str], value: Optional[str]) -> bool:
    if not prefixes:
        return True
    normalized = normalize_alphanumeric(value)
    if not normalized:
        return False
    for prefix in prefixes:
        normalized_prefix = normalize_alphanumeric(prefix)
        if normalized_prefix and normalized.startswith(normalized_prefix):
            return True
    return False


@dataclass(frozen=True)
class ZoneMatch:
    zone: ShippingZoneRecord
    distance_km: Optional[float] = None


def zone_matches(
    zone: ShippingZoneRecord,
    address: Optional[ShippingAddress],
    coordinates: Optional[Coordinates] = None,
) -> Optional[ZoneMatch]:
    """Returns a ZoneMatch when every declared dimension of the zone accepts the destination."""
    address = address or ShippingAddress()

    if not _match_list(zone.countries, address.country, normalize_country):
        return None
    if not _match_list(zone.states, address.state, normalize_state):
        return None
    if not _match_list(zone.cities, address.city, normalize_alphanumeric):
        return None
    if not _match_list(zone.postal_codes, address.postal_code, normalize_alphanumeric):
        return None
    if not _match_prefix(zone.zip_prefixes, address.postal_code):
        return None

    if zone.geo_fence is None:
        return ZoneMatch(zone=zone)
    if coordinates is None:
        return None
    distance = haversine_km(zone.geo_fence.center, coordinates.lat, coordinates.lng)
    if distance > zone.geo_fence.radius_km:
        return None
    return ZoneMatch(zone=zone, distance_km=distance)


def match_zones(
    zones: Sequence[ShippingZoneRecord],
    address: Optional[ShippingAddress],
    coordinates: Optional[Coordinates] = None,
) -> List[ZoneMatch]:
    """
    All zones matching the destination, highest priority first.

    Equal priority falls back to creation time (oldest first), then to the
    order the zones were given in.
    """
    indexed = []
    for index, zone in enumerate(zones):
        match = zone_matches(zone, address, coordinates)
        if match is not None:
            indexed.append((index, match))

    def sort_key(entry):
        index, match = entry
        created = match.zone.created_at
        # Zones without a creation time sort after dated ones of the same priority
        return (-match.zone.priority, created is None, created.timestamp() if created else 0.0, index)

    return [match for _, match in sorted(indexed, key=sort_key)]
