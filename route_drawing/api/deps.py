# route_drawing/api/deps.py
from route_drawing.core.config import settings
from route_drawing.core.logger import logger
from route_drawing.services.collection_store import CollectionStore
from route_drawing.services.graph_provider import GraphDirectionsProvider
from route_drawing.services.places import PlacesSuggestionAdapter
from route_drawing.services.routing_provider import (
    MapboxDirectionsProvider,
    RoutingProvider,
    SegmentRouter,
)


def build_routing_provider(name: str = settings.ROUTING_PROVIDER) -> RoutingProvider:
    if name == "osmnx":
        return GraphDirectionsProvider()
    if not settings.MAPBOX_ACCESS_TOKEN:
        logger.warning(
            "MAPBOX_ACCESS_TOKEN is not set: every segment will be a straight line."
        )
    return MapboxDirectionsProvider()


# Single shared instances
segment_router = SegmentRouter(build_routing_provider())
collection_store = CollectionStore(segment_router)
places_adapter = PlacesSuggestionAdapter()


def get_collection_store() -> CollectionStore:
    return collection_store


def get_places_adapter() -> PlacesSuggestionAdapter:
    return places_adapter
