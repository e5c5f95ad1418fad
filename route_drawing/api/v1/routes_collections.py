# route_drawing/api/v1/routes_collections.py
from fastapi import APIRouter, Depends, status

from route_drawing.api.deps import get_collection_store
from route_drawing.models.geo import GeoPoint
from route_drawing.models.routing import (
    CollectionCreateRequest,
    CollectionView,
    EditResponse,
    MessageRequest,
    PriceRequest,
    RouteCreateRequest,
    RouteView,
    SubmissionRecordOut,
    SubmissionResponse,
)
from route_drawing.services.collection_store import CollectionStore
from route_drawing.services.edit_engine import EditResult
from route_drawing.services.route_collection import RouteCollection

router = APIRouter(
    prefix="/collections",
    tags=["collections"],
)


def _edit_response(collection: RouteCollection, result: EditResult) -> EditResponse:
    return EditResponse(
        route=RouteView.from_buffer(result.route),
        warnings=result.warnings,
        scene=collection.surface.scene(),
    )


# ---------------------------------------------------------------------- #
# Collections
# ---------------------------------------------------------------------- #


@router.post(
    "",
    response_model=CollectionView,
    status_code=status.HTTP_201_CREATED,
    summary="Open a route collection for an origin/destination pair",
)
async def create_collection(
    request: CollectionCreateRequest,
    store: CollectionStore = Depends(get_collection_store),
) -> CollectionView:
    """
    Opens the collection with its first route ("1") active and idle.
    Leave ``destination`` out for a loop route.
    """
    destination = request.destination.to_place() if request.destination else None
    collection_id, collection = store.create(request.origin.to_place(), destination)
    collection.create_route()
    return CollectionView.from_collection(collection_id, collection)


@router.get("/{collection_id}", response_model=CollectionView)
async def get_collection(
    collection_id: str,
    store: CollectionStore = Depends(get_collection_store),
) -> CollectionView:
    return CollectionView.from_collection(collection_id, store.get(collection_id))


@router.delete("/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_collection(
    collection_id: str,
    store: CollectionStore = Depends(get_collection_store),
) -> None:
    store.discard(collection_id)


@router.put("/{collection_id}/price", response_model=CollectionView)
async def set_price(
    collection_id: str,
    request: PriceRequest,
    store: CollectionStore = Depends(get_collection_store),
) -> CollectionView:
    collection = store.get(collection_id)
    collection.set_shared_price(request.price)
    return CollectionView.from_collection(collection_id, collection)


@router.get("/{collection_id}/submission", response_model=SubmissionResponse)
async def get_submission(
    collection_id: str,
    store: CollectionStore = Depends(get_collection_store),
) -> SubmissionResponse:
    """
    The payload to hand to the booking backend: one record per finished
    route. Unfinished routes are listed in ``warnings``.
    """
    payload = store.get(collection_id).build_payload()
    return SubmissionResponse(
        route_type=payload["routeType"],
        travel_method=payload["travelMethod"],
        price=payload["price"],
        origin=payload["origin"],
        destination=payload["destination"],
        routes=[
            SubmissionRecordOut(
                route_name=r["routeName"],
                price=r["price"],
                message=r["message"],
                polyline=r["polyline"],
            )
            for r in payload["routes"]
        ],
        warnings=payload["warnings"],
    )


# ---------------------------------------------------------------------- #
# Routes within a collection
# ---------------------------------------------------------------------- #


@router.post(
    "/{collection_id}/routes",
    response_model=CollectionView,
    status_code=status.HTTP_201_CREATED,
)
async def create_route(
    collection_id: str,
    request: RouteCreateRequest,
    store: CollectionStore = Depends(get_collection_store),
) -> CollectionView:
    collection = store.get(collection_id)
    collection.create_route(request.name)
    return CollectionView.from_collection(collection_id, collection)


@router.post("/{collection_id}/routes/{name}/activate", response_model=CollectionView)
async def activate_route(
    collection_id: str,
    name: str,
    store: CollectionStore = Depends(get_collection_store),
) -> CollectionView:
    collection = store.get(collection_id)
    collection.switch_active(name)
    return CollectionView.from_collection(collection_id, collection)


@router.delete("/{collection_id}/routes/{name}", response_model=CollectionView)
async def delete_route(
    collection_id: str,
    name: str,
    store: CollectionStore = Depends(get_collection_store),
) -> CollectionView:
    collection = store.get(collection_id)
    collection.delete_route(name)
    return CollectionView.from_collection(collection_id, collection)


@router.put("/{collection_id}/routes/{name}/message", response_model=RouteView)
async def set_route_message(
    collection_id: str,
    name: str,
    request: MessageRequest,
    store: CollectionStore = Depends(get_collection_store),
) -> RouteView:
    collection = store.get(collection_id)
    collection.set_route_message(name, request.message)
    return RouteView.from_buffer(collection.route(name))


# ---------------------------------------------------------------------- #
# Drawing and editing
# ---------------------------------------------------------------------- #


@router.post("/{collection_id}/routes/{name}/start", response_model=EditResponse)
async def start_drawing(
    collection_id: str,
    name: str,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    collection = store.get(collection_id)
    result = collection.engine.start(collection.input_route(name))
    return _edit_response(collection, result)


@router.post("/{collection_id}/routes/{name}/points", response_model=EditResponse)
async def add_point(
    collection_id: str,
    name: str,
    point: GeoPoint,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    """
    Map click: append a waypoint and route the new segment.
    """
    collection = store.get(collection_id)
    result = await collection.engine.append(collection.input_route(name), point)
    return _edit_response(collection, result)


@router.post("/{collection_id}/routes/{name}/finish", response_model=EditResponse)
async def finish_route(
    collection_id: str,
    name: str,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    collection = store.get(collection_id)
    result = await collection.engine.finish(collection.input_route(name))
    return _edit_response(collection, result)


@router.post("/{collection_id}/routes/{name}/clear", response_model=EditResponse)
async def clear_route(
    collection_id: str,
    name: str,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    collection = store.get(collection_id)
    result = collection.engine.clear(collection.input_route(name))
    return _edit_response(collection, result)


@router.post(
    "/{collection_id}/routes/{name}/waypoints/{order_index}/remove",
    response_model=EditResponse,
)
async def remove_waypoint(
    collection_id: str,
    name: str,
    order_index: int,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    collection = store.get(collection_id)
    result = await collection.engine.remove_waypoint(collection.input_route(name), order_index)
    return _edit_response(collection, result)


@router.post(
    "/{collection_id}/routes/{name}/waypoints/{order_index}/edit",
    response_model=EditResponse,
)
async def begin_edit(
    collection_id: str,
    name: str,
    order_index: int,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    """
    Right-click "edit": the waypoint becomes draggable and the untouched
    parts of the route are shown as overlays until the drop.
    """
    collection = store.get(collection_id)
    result = collection.engine.begin_edit(collection.input_route(name), order_index)
    return _edit_response(collection, result)


@router.post(
    "/{collection_id}/routes/{name}/waypoints/{order_index}/move",
    response_model=EditResponse,
)
async def move_waypoint(
    collection_id: str,
    name: str,
    order_index: int,
    point: GeoPoint,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    collection = store.get(collection_id)
    result = await collection.engine.move_waypoint(
        collection.input_route(name), order_index, point
    )
    return _edit_response(collection, result)


@router.post("/{collection_id}/routes/{name}/edit/cancel", response_model=EditResponse)
async def cancel_edit(
    collection_id: str,
    name: str,
    store: CollectionStore = Depends(get_collection_store),
) -> EditResponse:
    collection = store.get(collection_id)
    result = collection.engine.cancel_edit(collection.input_route(name))
    return _edit_response(collection, result)
