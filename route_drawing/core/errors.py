# route_drawing/core/errors.py
"""
Error taxonomy for the route drawing engine.

Every error carries the HTTP status the API answers with and a stable
``code`` string the frontend can switch on. ``ProviderUnavailable`` is the
odd one out: it never reaches a caller, the routing adapter turns it into a
straight-line segment plus a warning.
"""


class RouteEngineError(Exception):
    status_code: int = 400
    code: str = "route_engine_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProviderUnavailable(RouteEngineError):
    status_code = 502
    code = "provider_unavailable"


class InsufficientWaypoints(RouteEngineError):
    status_code = 422
    code = "insufficient_waypoints"


class InvalidPrice(RouteEngineError):
    status_code = 422
    code = "invalid_price"


class DuplicateWaypoint(RouteEngineError):
    status_code = 422
    code = "duplicate_waypoint"


class RouteBufferInvariantViolation(RouteEngineError):
    status_code = 500
    code = "route_buffer_invariant_violation"


class InvalidRouteState(RouteEngineError):
    status_code = 409
    code = "invalid_route_state"


class RouteBusy(RouteEngineError):
    status_code = 409
    code = "route_busy"


class UnknownWaypoint(RouteEngineError):
    status_code = 404
    code = "unknown_waypoint"


class UnknownRoute(RouteEngineError):
    status_code = 404
    code = "unknown_route"


class UnknownCollection(RouteEngineError):
    status_code = 404
    code = "unknown_collection"


class DuplicateRoute(RouteEngineError):
    status_code = 409
    code = "duplicate_route"


class RouteLimitReached(RouteEngineError):
    status_code = 409
    code = "route_limit_reached"


class ActiveRouteDeletion(RouteEngineError):
    status_code = 409
    code = "active_route_deletion"


class InactiveRoute(RouteEngineError):
    status_code = 409
    code = "inactive_route"
