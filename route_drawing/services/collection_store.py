# route_drawing/services/collection_store.py

import uuid
from typing import Dict, Optional, Tuple

from route_drawing.core.errors import UnknownCollection
from route_drawing.core.logger import logger
from route_drawing.models.geo import NamedPlace
from route_drawing.services.route_collection import RouteCollection
from route_drawing.services.routing_provider import SegmentRouter


class CollectionStore:
    """
    In-memory registry of the route collections currently being drawn.

    One collection per operator session; a collection lives until it is
    submitted or the operator navigates away.
    """

    def __init__(self, router: SegmentRouter) -> None:
        self.router = router
        self._collections: Dict[str, RouteCollection] = {}

    def create(
        self,
        origin: NamedPlace,
        destination: Optional[NamedPlace] = None,
    ) -> Tuple[str, RouteCollection]:
        collection_id = uuid.uuid4().hex
        collection = RouteCollection(origin, destination, self.router)
        self._collections[collection_id] = collection
        logger.info(
            f"Collection {collection_id} opened: {collection.route_type} route from "
            f"{origin.name!r}" + ("" if destination is None else f" to {destination.name!r}")
        )
        return collection_id, collection

    def get(self, collection_id: str) -> RouteCollection:
        try:
            return self._collections[collection_id]
        except KeyError:
            raise UnknownCollection(f"No route collection {collection_id!r}") from None

    def discard(self, collection_id: str) -> None:
        self.get(collection_id).close()
        del self._collections[collection_id]
        logger.info(f"Collection {collection_id} discarded")

    def __len__(self) -> int:
        return len(self._collections)
