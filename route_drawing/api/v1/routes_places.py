# route_drawing/api/v1/routes_places.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from route_drawing.api.deps import get_places_adapter
from route_drawing.models.geo import GeoPoint
from route_drawing.models.routing import PlaceOut
from route_drawing.services.places import BBox, PlacesSuggestionAdapter

router = APIRouter(
    prefix="/places",
    tags=["places"],
)


def _parse_floats(raw: str, count: int, label: str) -> List[float]:
    try:
        values = [float(v) for v in raw.split(",")]
    except ValueError:
        values = []
    if len(values) != count:
        raise HTTPException(
            status_code=422,
            detail=f"{label} must be {count} comma-separated numbers",
        )
    return values


@router.get("/search", response_model=List[PlaceOut], summary="Suggest taxi rank locations")
async def search_places(
    q: str = Query(..., min_length=1),
    bbox: Optional[str] = Query(None, description="min_lon,min_lat,max_lon,max_lat"),
    proximity: Optional[str] = Query(None, description="lon,lat to bias results towards"),
    places: PlacesSuggestionAdapter = Depends(get_places_adapter),
) -> List[PlaceOut]:
    """
    Free-text place search used to pick the origin/destination ranks.
    Provider failures come back as an empty list.
    """
    box: Optional[BBox] = None
    if bbox is not None:
        box = tuple(_parse_floats(bbox, 4, "bbox"))
    near: Optional[GeoPoint] = None
    if proximity is not None:
        try:
            near = GeoPoint.from_lnglat(_parse_floats(proximity, 2, "proximity"))
        except ValidationError:
            raise HTTPException(
                status_code=422,
                detail="proximity must be a valid lon,lat pair",
            ) from None

    results = await places.suggest(q, bbox=box, proximity=near)
    return [PlaceOut(name=p.name, position=p.position) for p in results]


@router.get("/reverse", response_model=Optional[PlaceOut], summary="Name a map position")
async def reverse_place(
    lon: float = Query(..., ge=-180.0, le=180.0),
    lat: float = Query(..., ge=-90.0, le=90.0),
    places: PlacesSuggestionAdapter = Depends(get_places_adapter),
) -> Optional[PlaceOut]:
    place = await places.reverse(GeoPoint(lon=lon, lat=lat))
    if place is None:
        return None
    return PlaceOut(name=place.name, position=place.position)
