# route_drawing/services/places.py

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from route_drawing.core.config import settings
from route_drawing.core.logger import logger
from route_drawing.models.geo import GeoPoint, NamedPlace

BBox = Tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)


class PlacesSuggestionAdapter:
    """
    Mapbox geocoding used to resolve taxi-rank origins and destinations.

    Any failure (network, HTTP status, malformed payload) yields an empty
    suggestion list: the user can still place points by clicking the map.
    """

    def __init__(
        self,
        access_token: Optional[str] = settings.MAPBOX_ACCESS_TOKEN,
        base_url: str = settings.MAPBOX_BASE_URL,
        country: Optional[str] = settings.PLACES_COUNTRY,
        limit: int = settings.PLACES_LIMIT,
        timeout_s: float = settings.ROUTING_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.country = country
        self.limit = limit
        self.timeout_s = timeout_s
        self._client = client

    async def suggest(
        self,
        query: str,
        bbox: Optional[BBox] = None,
        proximity: Optional[GeoPoint] = None,
    ) -> List[NamedPlace]:
        query = query.strip()
        if not query:
            return []

        params = self._base_params()
        if bbox is not None:
            params["bbox"] = ",".join(str(v) for v in bbox)
        if proximity is not None:
            params["proximity"] = f"{proximity.lon},{proximity.lat}"

        places = await self._geocode(quote(query, safe=""), params)
        logger.info(f"Places search {query!r}: {len(places)} suggestion(s)")
        return places

    async def reverse(self, point: GeoPoint) -> Optional[NamedPlace]:
        params = self._base_params()
        params["limit"] = "1"
        places = await self._geocode(f"{point.lon},{point.lat}", params)
        return places[0] if places else None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _base_params(self) -> Dict[str, str]:
        params = {"access_token": self.access_token or "", "limit": str(self.limit)}
        if self.country:
            params["country"] = self.country
        return params

    async def _geocode(self, search_text: str, params: Dict[str, str]) -> List[NamedPlace]:
        if not self.access_token:
            logger.warning("Mapbox access token not configured; no place suggestions.")
            return []

        url = f"{self.base_url}/geocoding/v5/mapbox.places/{search_text}.json"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Places lookup failed: {exc}")
            return []

        return self._parse_features(payload)

    @staticmethod
    def _parse_features(payload: Any) -> List[NamedPlace]:
        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list):
            logger.warning("Places response without a feature list; ignoring.")
            return []

        places: List[NamedPlace] = []
        for feature in features:
            try:
                places.append(
                    NamedPlace(
                        name=feature.get("place_name") or feature["text"],
                        position=GeoPoint.from_lnglat(feature["center"]),
                        raw_provider_record=feature,
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed place feature: {exc}")
        return places
