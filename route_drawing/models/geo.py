# route_drawing/models/geo.py

import math
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class GeoPoint(BaseModel):
    """
    Immutable longitude/latitude point.

    Field order follows the providers' wire order (lng, lat).
    """
    model_config = ConfigDict(frozen=True)

    lon: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-90.0, le=90.0)

    @classmethod
    def from_lnglat(cls, pair: Sequence[float]) -> "GeoPoint":
        if len(pair) < 2:
            raise ValueError(f"Expected a [lng, lat] pair, got {pair!r}")
        return cls(lon=float(pair[0]), lat=float(pair[1]))

    def as_lnglat(self) -> List[float]:
        return [self.lon, self.lat]


class NamedPlace(BaseModel):
    """
    A geocoded place (taxi rank) used to seed a route's origin or destination.
    """
    name: str
    position: GeoPoint
    raw_provider_record: Optional[Any] = None


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """
    Compute great-circle distance between two points, in metres.
    """
    R = 6_371_000.0
    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lon)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    return R * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def as_lnglat_list(points: Sequence[GeoPoint]) -> List[List[float]]:
    return [p.as_lnglat() for p in points]
