# route_drawing/services/route_buffer.py
"""
One named route being drawn on the map.

A route is three correlated sequences kept in one object:

- ``dense``: every road-following sample, starting at the origin rank for a
  straight route or at the first placed point for a loop
- ``anchors``: the user-placed waypoints, each pointing at its sample in
  ``dense`` through ``buffer_index``
- the marker handle bound to each anchor

Only this module mutates those sequences. Provider calls and map drawing
live in the edit engine; everything here is synchronous bookkeeping.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional, Sequence

from route_drawing.core.config import settings
from route_drawing.core.errors import RouteBufferInvariantViolation, UnknownWaypoint
from route_drawing.core.logger import logger
from route_drawing.models.geo import GeoPoint, as_lnglat_list, haversine_m


class RouteState(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    EDITING = "editing"
    FINISHED = "finished"


@dataclass
class AnchorWaypoint:
    position: GeoPoint
    # Index in ``dense`` of the sample that ends the segment leading into this anchor
    buffer_index: int
    # Placement order on this route; never reused
    order_index: int
    marker: Optional[str] = None


@dataclass
class EditSession:
    order_index: int
    prior_state: RouteState
    handle: Optional[str] = None


class Reference(NamedTuple):
    """A point a segment starts or ends at, with its sample index."""
    point: GeoPoint
    buffer_index: int
    anchor: Optional[AnchorWaypoint] = None


class RouteBuffer:
    def __init__(
        self,
        name: str,
        origin: GeoPoint,
        destination: Optional[GeoPoint] = None,
        colour: str = settings.ROUTE_COLOURS[0],
        tolerance_m: float = settings.ROUTING_TOLERANCE_M,
    ) -> None:
        self.name = name
        self.origin = origin
        # None for a loop route
        self.destination = destination
        self.colour = colour
        self.tolerance_m = tolerance_m

        self.anchors: List[AnchorWaypoint] = []
        self.dense: List[GeoPoint] = []
        self.state = RouteState.IDLE
        self.active = True
        self.message: Optional[str] = None
        self.edit: Optional[EditSession] = None
        # Set while a provider call for this route is in flight
        self.pending = False
        self._next_order = 0

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def is_loop(self) -> bool:
        return self.destination is None

    @property
    def endpoint(self) -> GeoPoint:
        return self.origin if self.destination is None else self.destination

    @property
    def min_anchors_to_finish(self) -> int:
        return 1 if self.is_loop else 2

    @property
    def is_closed(self) -> bool:
        """True when the closing segment to the endpoint is part of ``dense``."""
        if self.state is RouteState.EDITING and self.edit is not None:
            return self.edit.prior_state is RouteState.FINISHED
        return self.state is RouteState.FINISHED

    @property
    def markers(self) -> List[str]:
        return [a.marker for a in self.anchors if a.marker is not None]

    def position_of(self, order_index: int) -> int:
        for i, anchor in enumerate(self.anchors):
            if anchor.order_index == order_index:
                return i
        raise UnknownWaypoint(f"Route {self.name!r} has no waypoint #{order_index}")

    def last_reference(self) -> Optional[Reference]:
        if self.anchors:
            last = self.anchors[-1]
            return Reference(last.position, last.buffer_index, last)
        return self.previous_reference(0)

    def previous_reference(self, i: int) -> Optional[Reference]:
        """None for the first anchor of a loop, which is itself the buffer head."""
        if i == 0:
            return None if self.is_loop else Reference(self.origin, 0)
        prev = self.anchors[i - 1]
        return Reference(prev.position, prev.buffer_index, prev)

    def next_reference(self, i: int) -> Optional[Reference]:
        if i + 1 < len(self.anchors):
            nxt = self.anchors[i + 1]
            return Reference(nxt.position, nxt.buffer_index, nxt)
        if self.is_closed:
            return Reference(self.endpoint, len(self.dense) - 1)
        return None

    def behind_portion(self, i: int) -> List[GeoPoint]:
        prev = self.previous_reference(i)
        if prev is None:
            return []
        return self.dense[: prev.buffer_index + 1]

    def forward_portion(self, i: int, from_next: bool = False) -> List[GeoPoint]:
        start = self.anchors[i].buffer_index
        if from_next:
            nxt = self.next_reference(i)
            if nxt is not None:
                start = nxt.buffer_index
        return self.dense[start:]

    def polyline(self) -> List[List[float]]:
        return as_lnglat_list(self.dense)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def begin(self) -> None:
        # A loop has no head until its first point is placed
        self.dense = [] if self.is_loop else [self.origin]
        self.state = RouteState.DRAWING

    def reset(self) -> List[AnchorWaypoint]:
        removed = self.anchors
        self.anchors = []
        self.dense = []
        self.edit = None
        self.state = RouteState.IDLE
        return removed

    def extend(self, segment: Sequence[GeoPoint], marker: Optional[str] = None) -> AnchorWaypoint:
        """
        Append a new anchor at ``segment[-1]``.

        ``segment[0]`` repeats the previous reference point, which is already
        the last sample in ``dense``, so it is dropped.
        """
        anchor = AnchorWaypoint(
            position=segment[-1],
            buffer_index=len(self.dense),
            order_index=self._next_order,
            marker=marker,
        )
        self.dense.extend(segment[1:])
        anchor.buffer_index = len(self.dense) - 1
        self.anchors.append(anchor)
        self._next_order += 1
        return anchor

    def seed(self, point: GeoPoint, marker: Optional[str] = None) -> AnchorWaypoint:
        """Place the first point of a loop: it becomes ``dense[0]``."""
        anchor = AnchorWaypoint(
            position=point,
            buffer_index=0,
            order_index=self._next_order,
            marker=marker,
        )
        self.dense = [point]
        self.anchors = [anchor]
        self._next_order += 1
        return anchor

    def close(self, segment: Sequence[GeoPoint]) -> None:
        self.dense.extend(segment[1:])
        self.state = RouteState.FINISHED

    def truncate_from(self, i: int) -> List[AnchorWaypoint]:
        """
        Drop anchor ``i`` and everything drawn after it.

        The dense buffer ends at the predecessor again (the origin when
        ``i == 0``). A finished route loses its closing segment and is
        drawable again. Truncating a loop from its first point empties it.
        """
        prev = self.previous_reference(i)
        removed = self.anchors[i:]
        self.anchors = self.anchors[:i]
        self.dense = [] if prev is None else self.dense[: prev.buffer_index + 1]
        if self.state is RouteState.FINISHED:
            self.state = RouteState.DRAWING
        return removed

    def splice(self, start_index: int, end_index: int, segment: Sequence[GeoPoint]) -> int:
        """
        Replace ``dense[start_index + 1 : end_index + 1]`` with ``segment[1:]``.

        Anchors pointing past ``end_index`` are shifted by the length change
        so they keep pointing at their own samples. Anchors pointing at
        ``end_index`` itself are the caller's to re-point. Returns the shift.
        """
        replacement = list(segment[1:])
        delta = len(replacement) - (end_index - start_index)
        self.dense[start_index + 1 : end_index + 1] = replacement
        if delta:
            for anchor in self.anchors:
                if anchor.buffer_index > end_index:
                    anchor.buffer_index += delta
        return delta

    def drop_anchor(self, i: int) -> AnchorWaypoint:
        return self.anchors.pop(i)

    def drop_head(self) -> AnchorWaypoint:
        """
        Remove the first point of a loop; the next anchor becomes the head
        and everything before it is discarded.
        """
        removed = self.anchors.pop(0)
        new_head = self.anchors[0].buffer_index
        self.dense = self.dense[new_head:]
        for anchor in self.anchors:
            anchor.buffer_index -= new_head
        return removed

    # ------------------------------------------------------------------ #
    # Invariants
    # ------------------------------------------------------------------ #

    def check_invariants(self) -> None:
        problems = self._invariant_problems()
        if problems:
            summary = "; ".join(problems)
            logger.error(f"Route {self.name!r} buffer corrupted: {summary}")
            raise RouteBufferInvariantViolation(f"Route {self.name!r}: {summary}")

    def _invariant_problems(self) -> List[str]:
        if self.state is RouteState.IDLE:
            if self.anchors or self.dense:
                return ["idle route still holds waypoints or samples"]
            return []

        if not self.dense:
            if self.is_loop and not self.anchors and not self.is_closed:
                # Loop waiting for its first point
                return []
            return ["dense buffer is empty"]

        problems: List[str] = []
        if self.is_loop:
            head = self.anchors[0] if self.anchors else None
            if head is None or head.buffer_index != 0 or self.dense[0] != head.position:
                problems.append("loop buffer does not start at its first waypoint")
            last_index = -1
        else:
            if self.dense[0] != self.origin:
                problems.append("dense buffer does not start at the origin")
            last_index = 0

        last_order = -1
        for anchor in self.anchors:
            idx = anchor.buffer_index
            if not last_index < idx < len(self.dense):
                problems.append(
                    f"waypoint #{anchor.order_index} index {idx} out of order or bounds"
                )
                continue
            if anchor.order_index <= last_order:
                problems.append(f"waypoint #{anchor.order_index} placed out of order")
            if haversine_m(self.dense[idx], anchor.position) > self.tolerance_m:
                problems.append(f"waypoint #{anchor.order_index} is off its buffer sample")
            if (idx > 0 and self.dense[idx - 1] == self.dense[idx]) or (
                idx + 1 < len(self.dense) and self.dense[idx + 1] == self.dense[idx]
            ):
                problems.append(f"duplicate join at waypoint #{anchor.order_index}")
            if anchor.marker is None:
                problems.append(f"waypoint #{anchor.order_index} has no marker")
            last_index = idx
            last_order = anchor.order_index

        handles = self.markers
        if len(set(handles)) != len(handles):
            problems.append("marker bound to more than one waypoint")

        if self.is_closed:
            if haversine_m(self.dense[-1], self.endpoint) > self.tolerance_m:
                problems.append("finished route does not end at its endpoint")
        elif last_index != len(self.dense) - 1:
            problems.append("samples trail past the last waypoint")

        return problems
