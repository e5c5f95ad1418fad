# route_drawing/services/route_collection.py

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from route_drawing.core.config import settings
from route_drawing.core.errors import (
    ActiveRouteDeletion,
    DuplicateRoute,
    InactiveRoute,
    InvalidPrice,
    RouteBusy,
    RouteLimitReached,
    UnknownRoute,
)
from route_drawing.core.logger import logger
from route_drawing.models.geo import NamedPlace
from route_drawing.services.edit_engine import EditEngine
from route_drawing.services.map_surface import InMemoryMapSurface, MapSurface
from route_drawing.services.route_buffer import RouteBuffer, RouteState
from route_drawing.services.routing_provider import SegmentRouter

TRAVEL_METHOD = "Taxi"


@dataclass
class SubmissionRecord:
    route_name: str
    price: float
    message: str
    polyline: List[List[float]]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "routeName": self.route_name,
            "price": self.price,
            "message": self.message,
            "polyline": self.polyline,
        }


@dataclass
class Submission:
    records: List[SubmissionRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class RouteCollection:
    """
    All routes suggested for one origin/destination pair.

    Routes share the origin, the destination (none for a loop) and a single
    price. Exactly one route is active, i.e. receives map input; the others
    stay on the map in their own colour.
    """

    def __init__(
        self,
        origin: NamedPlace,
        destination: Optional[NamedPlace],
        router: SegmentRouter,
        surface: Optional[MapSurface] = None,
        max_routes: int = settings.MAX_ROUTES_PER_COLLECTION,
        colours: Optional[List[str]] = None,
        tolerance_m: float = settings.ROUTING_TOLERANCE_M,
        removal_strategy: str = settings.REMOVAL_STRATEGY,
        reroute_forward: bool = settings.MOVE_REROUTE_FORWARD,
    ) -> None:
        self.origin = origin
        self.destination = destination
        self.surface = surface if surface is not None else InMemoryMapSurface()
        self.engine = EditEngine(
            router,
            self.surface,
            removal_strategy=removal_strategy,
            reroute_forward=reroute_forward,
        )
        self.max_routes = max_routes
        self.colours = colours or list(settings.ROUTE_COLOURS)
        self.tolerance_m = tolerance_m

        self.routes: Dict[str, RouteBuffer] = {}
        self.active_route_name: Optional[str] = None
        self.shared_price: Optional[float] = None
        self._created = 0

    @property
    def is_loop(self) -> bool:
        return self.destination is None

    @property
    def route_type(self) -> str:
        return "Loop" if self.is_loop else "Straight"

    @property
    def active(self) -> Optional[RouteBuffer]:
        if self.active_route_name is None:
            return None
        return self.routes[self.active_route_name]

    def route(self, name: str) -> RouteBuffer:
        try:
            return self.routes[name]
        except KeyError:
            raise UnknownRoute(f"No route named {name!r} in this collection") from None

    def input_route(self, name: str) -> RouteBuffer:
        """The route map clicks and drags go to; only the active one qualifies."""
        buffer = self.route(name)
        if name != self.active_route_name:
            raise InactiveRoute(
                f"Route {name!r} is not the active route; activate it before drawing"
            )
        return buffer

    # ------------------------------------------------------------------ #
    # Route management
    # ------------------------------------------------------------------ #

    def create_route(self, name: Optional[str] = None) -> RouteBuffer:
        if len(self.routes) >= self.max_routes:
            raise RouteLimitReached(
                f"Maximum of {self.max_routes} routes allowed per taxi rank pair"
            )
        if name is not None and name in self.routes:
            raise DuplicateRoute(f"Route {name!r} already exists")

        self._created += 1
        if name is None:
            # Numbers are never reused, even after a deletion
            number = self._created
            while str(number) in self.routes:
                number += 1
            name = str(number)

        buffer = RouteBuffer(
            name=name,
            origin=self.origin.position,
            destination=None if self.destination is None else self.destination.position,
            colour=self.colours[(self._created - 1) % len(self.colours)],
            tolerance_m=self.tolerance_m,
        )
        self.routes[name] = buffer
        logger.info(f"Route {name!r} created ({len(self.routes)}/{self.max_routes})")
        self.switch_active(name)
        return buffer

    def switch_active(self, name: str) -> RouteBuffer:
        target = self.route(name)
        previous = self.active
        if previous is not None and previous is not target:
            previous.active = False
            self.engine.redraw(previous)
        target.active = True
        self.active_route_name = name
        self.engine.redraw(target)
        return target

    def delete_route(self, name: str) -> None:
        buffer = self.route(name)
        if name == self.active_route_name:
            raise ActiveRouteDeletion("Cannot delete the current active route")
        if buffer.pending:
            raise RouteBusy(f"Route {name!r} is waiting for the routing provider")
        self.engine.discard(buffer)
        del self.routes[name]
        logger.info(f"Route {name!r} deleted ({len(self.routes)} left)")

    def set_shared_price(self, value: float) -> float:
        if value is None or not math.isfinite(value) or value <= 0:
            raise InvalidPrice(f"Price must be a positive amount, got {value!r}")
        self.shared_price = float(value)
        return self.shared_price

    def set_route_message(self, name: str, message: Optional[str]) -> None:
        self.route(name).message = message

    def close(self) -> None:
        """Drop every route and its visuals (navigating away unsubmitted)."""
        busy = [name for name, buffer in self.routes.items() if buffer.pending]
        if busy:
            raise RouteBusy(
                f"Route(s) {', '.join(busy)} waiting for the routing provider; "
                f"try again shortly"
            )
        for buffer in self.routes.values():
            self.engine.discard(buffer)
        self.routes.clear()
        self.active_route_name = None

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def default_message(self, name: str) -> str:
        return f"{self.route_type} route {name} - Price: R{self.shared_price:g}"

    def serialize_for_submission(self) -> Submission:
        if self.shared_price is None:
            raise InvalidPrice("Set a price before submitting the routes")

        submission = Submission()
        for name, buffer in self.routes.items():
            if buffer.state is RouteState.FINISHED:
                submission.records.append(
                    SubmissionRecord(
                        route_name=name,
                        price=self.shared_price,
                        message=buffer.message or self.default_message(name),
                        polyline=buffer.polyline(),
                    )
                )
                continue

            if buffer.state is RouteState.IDLE:
                warning = f"Route {name!r} has not been drawn and was left out"
            else:
                warning = f"Route {name!r} is still {buffer.state.value} and was left out"
            logger.warning(warning)
            submission.warnings.append(warning)

        return submission

    def build_payload(self) -> Dict[str, Any]:
        submission = self.serialize_for_submission()
        return {
            "routeType": self.route_type,
            "travelMethod": TRAVEL_METHOD,
            "price": self.shared_price,
            "origin": _place_payload(self.origin),
            "destination": None if self.destination is None else _place_payload(self.destination),
            "routes": [record.to_payload() for record in submission.records],
            "warnings": submission.warnings,
        }


def _place_payload(place: NamedPlace) -> Dict[str, Any]:
    return {"name": place.name, "coord": place.position.as_lnglat()}
