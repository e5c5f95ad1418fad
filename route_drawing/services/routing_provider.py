# route_drawing/services/routing_provider.py

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, List, Optional, Sequence

import httpx

from route_drawing.core.config import settings
from route_drawing.core.errors import ProviderUnavailable
from route_drawing.core.logger import logger
from route_drawing.models.geo import GeoPoint


@dataclass
class RouteSegment:
    """
    Ordered road-following samples between two reference points.

    ``points[0]`` is always the requested start and ``points[-1]`` the
    requested end. ``fallback_reason`` is set when the provider could not be
    used and the segment is the straight line ``[start, end]``.
    """
    points: List[GeoPoint]
    fallback_reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    @property
    def tail(self) -> List[GeoPoint]:
        # Everything after the start point, which the buffer already holds
        return self.points[1:]


class RoutingProvider(ABC):
    """
    A point-to-point driving route backend.

    Implementations raise ``ProviderUnavailable`` for anything that is not a
    usable geometry; they never fall back themselves.
    """

    name: str = "provider"

    @abstractmethod
    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        ...

    async def aclose(self) -> None:
        return None


class MapboxDirectionsProvider(RoutingProvider):
    """
    Mapbox Directions API (``/directions/v5/mapbox/{profile}``) with GeoJSON
    geometries.
    """

    name = "mapbox"

    def __init__(
        self,
        access_token: Optional[str] = settings.MAPBOX_ACCESS_TOKEN,
        base_url: str = settings.MAPBOX_BASE_URL,
        profile: str = settings.MAPBOX_PROFILE,
        timeout_s: float = settings.ROUTING_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout_s = timeout_s
        self._client = client

    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        if not self.access_token:
            raise ProviderUnavailable("Mapbox access token not configured")

        coord_pair = f"{start.lon},{start.lat};{end.lon},{end.lat}"
        url = f"{self.base_url}/directions/v5/mapbox/{self.profile}/{coord_pair}"
        params = {
            "geometries": "geojson",
            "overview": "full",
            "access_token": self.access_token,
        }

        try:
            response = await self._get(url, params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable(f"Directions request failed: {exc}") from exc

        return self._parse_geometry(data)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _get(self, url: str, params: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, params=params)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            return await client.get(url, params=params)

    @staticmethod
    def _parse_geometry(data: Any) -> List[GeoPoint]:
        try:
            if data.get("code", "Ok") != "Ok":
                raise ProviderUnavailable(
                    f"Directions error: {data.get('message', data.get('code'))}"
                )
            coordinates = data["routes"][0]["geometry"]["coordinates"]
            return [GeoPoint.from_lnglat(pair) for pair in coordinates]
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderUnavailable(f"Malformed directions response: {exc}") from exc


def normalise_segment(
    points: Sequence[GeoPoint],
    start: GeoPoint,
    end: GeoPoint,
) -> List[GeoPoint]:
    """
    Pin a provider geometry to the exact requested endpoints and collapse
    consecutive duplicate samples.

    Providers snap endpoints to the nearest road, so the first/last samples
    are replaced by the requested points.
    """
    if len(points) < 2:
        raise ProviderUnavailable(f"Degenerate geometry with {len(points)} point(s)")

    pinned = [start, *points[1:-1], end]
    cleaned: List[GeoPoint] = [pinned[0]]
    for point in pinned[1:]:
        if point != cleaned[-1]:
            cleaned.append(point)
    return cleaned


class SegmentRouter:
    """
    The adapter the edit engine talks to.

    - never raises for provider trouble: network errors, timeouts and
      malformed geometries all degrade to the straight line ``[start, end]``
    - every segment it returns starts exactly at ``start`` and ends exactly
      at ``end`` with no repeated consecutive samples
    """

    def __init__(
        self,
        provider: RoutingProvider,
        timeout_s: float = settings.ROUTING_TIMEOUT_S,
    ) -> None:
        self.provider = provider
        self.timeout_s = timeout_s
        logger.info(
            f"SegmentRouter initialised with provider={provider.name}, "
            f"timeout={timeout_s:.1f} s"
        )

    async def request_segment(self, start: GeoPoint, end: GeoPoint) -> RouteSegment:
        if start == end:
            return RouteSegment(points=[start])

        t0 = perf_counter()
        try:
            raw = await asyncio.wait_for(
                self.provider.fetch_segment(start, end),
                timeout=self.timeout_s,
            )
            points = normalise_segment(raw, start, end)
        except asyncio.TimeoutError:
            return self._fallback(
                start, end, f"{self.provider.name} timed out after {self.timeout_s:.1f} s"
            )
        except ProviderUnavailable as exc:
            return self._fallback(start, end, exc.message)

        logger.info(
            f"Segment ({start.lon:.6f}, {start.lat:.6f}) -> ({end.lon:.6f}, {end.lat:.6f}): "
            f"{len(points)} points via {self.provider.name} in "
            f"{(perf_counter() - t0) * 1000.0:.2f} ms"
        )
        return RouteSegment(points=points)

    async def aclose(self) -> None:
        await self.provider.aclose()

    @staticmethod
    def _fallback(start: GeoPoint, end: GeoPoint, reason: str) -> RouteSegment:
        logger.warning(
            f"Routing provider unavailable ({reason}); using straight segment "
            f"({start.lon:.6f}, {start.lat:.6f}) -> ({end.lon:.6f}, {end.lat:.6f})"
        )
        return RouteSegment(points=[start, end], fallback_reason=reason)
