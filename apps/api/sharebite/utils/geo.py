"""Great-circle distance and map link helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, TypeVar
from urllib.parse import urlencode

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Ranked:
    item: object
    distance_km: float


def haversine_km(origin: Coordinate, destination: Coordinate) -> float:
    """Great-circle distance in kilometres."""
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(destination.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(destination.longitude - origin.longitude)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def nearest(
    origin: Coordinate,
    candidates: Iterable[tuple[T, Coordinate]],
    limit: int = 5,
) -> list[Ranked]:
    """
    Rank candidates by distance from origin, closest first, capped at limit.

    Ties keep their input order.
    """
    if limit <= 0:
        return []
    ranked = [
        Ranked(item=item, distance_km=haversine_km(origin, coordinate))
        for item, coordinate in candidates
    ]
    ranked.sort(key=lambda r: r.distance_km)
    return ranked[:limit]


def directions_url(origin: Coordinate, destination: Coordinate) -> str:
    """Google Maps driving-directions link between two points."""
    params = {
        "api": "1",
        "origin": f"{origin.latitude},{origin.longitude}",
        "destination": f"{destination.latitude},{destination.longitude}",
        "travelmode": "driving",
    }
    return f"https://www.google.com/maps/dir/?{urlencode(params, safe=',')}"
