# tests/conftest.py
import asyncio
import os
import sys
from typing import List, Optional

import pytest

# Add the project root directory to sys.path so that "import route_drawing" works
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from route_drawing.core.errors import ProviderUnavailable  # noqa: E402
from route_drawing.models.geo import GeoPoint, NamedPlace  # noqa: E402
from route_drawing.services.map_surface import InMemoryMapSurface  # noqa: E402
from route_drawing.services.route_collection import RouteCollection  # noqa: E402
from route_drawing.services.routing_provider import (  # noqa: E402
    RoutingProvider,
    SegmentRouter,
)

ORIGIN = GeoPoint(lon=28.0, lat=-26.2)
DESTINATION = GeoPoint(lon=28.2, lat=-26.4)


class RoadStubProvider(RoutingProvider):
    """
    Deterministic provider: ``samples`` evenly spaced points between the
    endpoints, so every segment has ``samples + 2`` points.
    """

    name = "stub"

    def __init__(self, samples: int = 2) -> None:
        self.samples = samples
        self.calls: List[tuple] = []

    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        self.calls.append((start, end))
        n = self.samples + 1
        interior = [
            GeoPoint(
                lon=round(start.lon + (end.lon - start.lon) * k / n, 7),
                lat=round(start.lat + (end.lat - start.lat) * k / n, 7),
            )
            for k in range(1, n)
        ]
        return [start, *interior, end]


class FailingProvider(RoutingProvider):
    name = "failing"

    def __init__(self) -> None:
        self.calls = 0

    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        self.calls += 1
        raise ProviderUnavailable("service down")


class HangingProvider(RoutingProvider):
    name = "hanging"

    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        await asyncio.sleep(5)
        return [start, end]


class GatedProvider(RoadStubProvider):
    """Holds every request until ``release`` is set."""

    name = "gated"

    def __init__(self) -> None:
        super().__init__(samples=1)
        self.release: Optional[asyncio.Event] = None

    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        if self.release is None:
            self.release = asyncio.Event()
        await self.release.wait()
        return await super().fetch_segment(start, end)


def run(coro):
    return asyncio.run(coro)


def make_collection(
    provider: Optional[RoutingProvider] = None,
    loop: bool = False,
    **kwargs,
) -> RouteCollection:
    router = SegmentRouter(provider or RoadStubProvider(), timeout_s=kwargs.pop("timeout_s", 2.0))
    collection = RouteCollection(
        origin=NamedPlace(name="Bree Street Rank", position=ORIGIN),
        destination=None if loop else NamedPlace(name="Soweto Rank", position=DESTINATION),
        router=router,
        surface=InMemoryMapSurface(),
        **kwargs,
    )
    collection.create_route()
    return collection


@pytest.fixture
def stub_provider() -> RoadStubProvider:
    return RoadStubProvider()


@pytest.fixture
def collection(stub_provider) -> RouteCollection:
    return make_collection(stub_provider)


@pytest.fixture
def loop_collection(stub_provider) -> RouteCollection:
    return make_collection(stub_provider, loop=True)
