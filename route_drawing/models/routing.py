# route_drawing/models/routing.py

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from route_drawing.models.geo import GeoPoint, NamedPlace
from route_drawing.services.route_buffer import RouteBuffer
from route_drawing.services.route_collection import RouteCollection


class PlaceIn(BaseModel):
    """
    A taxi rank as selected in the search box.
    """
    name: str
    position: GeoPoint

    def to_place(self) -> NamedPlace:
        return NamedPlace(name=self.name, position=self.position)


class CollectionCreateRequest(BaseModel):
    """
    Request body for opening a collection. No destination means a loop route.
    """
    origin: PlaceIn
    destination: Optional[PlaceIn] = None


class RouteCreateRequest(BaseModel):
    name: Optional[str] = None


class PriceRequest(BaseModel):
    price: float


class MessageRequest(BaseModel):
    message: Optional[str] = None


class AnchorView(BaseModel):
    order_index: int
    position: List[float]  # [lng, lat]
    buffer_index: int


class RouteView(BaseModel):
    name: str
    state: str
    colour: str
    active: bool
    pending: bool
    editing_waypoint: Optional[int] = None
    message: Optional[str] = None
    anchors: List[AnchorView]
    polyline: List[List[float]]  # [[lng, lat], ...]

    @classmethod
    def from_buffer(cls, buffer: RouteBuffer) -> "RouteView":
        return cls(
            name=buffer.name,
            state=buffer.state.value,
            colour=buffer.colour,
            active=buffer.active,
            pending=buffer.pending,
            editing_waypoint=None if buffer.edit is None else buffer.edit.order_index,
            message=buffer.message,
            anchors=[
                AnchorView(
                    order_index=a.order_index,
                    position=a.position.as_lnglat(),
                    buffer_index=a.buffer_index,
                )
                for a in buffer.anchors
            ],
            polyline=buffer.polyline(),
        )


class CollectionView(BaseModel):
    id: str
    route_type: str
    origin: NamedPlace
    destination: Optional[NamedPlace] = None
    active_route: Optional[str] = None
    shared_price: Optional[float] = None
    max_routes: int
    routes: List[RouteView]
    scene: Dict[str, Any]

    @classmethod
    def from_collection(cls, collection_id: str, collection: RouteCollection) -> "CollectionView":
        return cls(
            id=collection_id,
            route_type=collection.route_type,
            origin=collection.origin,
            destination=collection.destination,
            active_route=collection.active_route_name,
            shared_price=collection.shared_price,
            max_routes=collection.max_routes,
            routes=[RouteView.from_buffer(b) for b in collection.routes.values()],
            scene=collection.surface.scene(),
        )


class EditResponse(BaseModel):
    """
    Response for every drawing/editing call: the route, any approximation
    warnings, and the scene the map should show now.
    """
    route: RouteView
    warnings: List[str] = []
    scene: Dict[str, Any]


class SubmissionRecordOut(BaseModel):
    route_name: str = Field(serialization_alias="routeName")
    price: float
    message: str
    polyline: List[List[float]]


class SubmissionResponse(BaseModel):
    route_type: str = Field(serialization_alias="routeType")
    travel_method: str = Field(serialization_alias="travelMethod")
    price: float
    origin: Dict[str, Any]
    destination: Optional[Dict[str, Any]] = None
    routes: List[SubmissionRecordOut]
    warnings: List[str] = []


class PlaceOut(BaseModel):
    name: str
    position: GeoPoint
