"""
Delivery geocoster: great-circle distance and the delivery fee it implies.
"""
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from orderdesk.core.exceptions import OutOfServiceArea, ValidationError
from orderdesk.services.pricing import WHOLE_UNIT, to_decimal

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0 or not -180.0 <= self.lng <= 180.0:
            raise ValidationError("Coordinates out of range", lat=self.lat, lng=self.lng)


@dataclass(frozen=True)
class DeliveryFeeSchedule:
    base_fee: Decimal
    per_km_fee: Decimal
    free_threshold: Decimal
    max_radius_km: float


@dataclass(frozen=True)
class DeliveryQuote:
    distance_km: float
    fee: Optional[Decimal]
    free_delivery: bool
    within_radius: bool


def haversine_km(origin: GeoPoint, destination: GeoPoint) -> float:
    """Great-circle distance in kilometres."""
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(destination.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(destination.lng - origin.lng)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    # Floating error can push a a hair past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def quote_delivery(
    origin: GeoPoint,
    destination: GeoPoint,
    order_subtotal: Decimal,
    schedule: DeliveryFeeSchedule,
) -> DeliveryQuote:
    """
    Quote the delivery fee for a destination.

    Orders at or above the free threshold ship free and only report whether
    the destination is inside the radius. Otherwise a destination beyond the
    radius raises OutOfServiceArea; the radius itself is serviceable.
    """
    distance = haversine_km(origin, destination)
    within_radius = distance <= schedule.max_radius_km

    if to_decimal(order_subtotal) >= to_decimal(schedule.free_threshold):
        return DeliveryQuote(
            distance_km=distance,
            fee=Decimal("0"),
            free_delivery=True,
            within_radius=within_radius,
        )

    if not within_radius:
        raise OutOfServiceArea(distance, schedule.max_radius_km)

    raw_fee = to_decimal(schedule.base_fee) + Decimal(str(distance)) * to_decimal(schedule.per_km_fee)
    return DeliveryQuote(
        distance_km=distance,
        fee=raw_fee.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP),
        free_delivery=False,
        within_radius=True,
    )
