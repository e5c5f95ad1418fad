# route_drawing/services/edit_engine.py

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from route_drawing.core.config import settings
from route_drawing.core.errors import (
    DuplicateWaypoint,
    InsufficientWaypoints,
    InvalidRouteState,
    RouteBusy,
)
from route_drawing.core.logger import logger
from route_drawing.models.geo import GeoPoint
from route_drawing.services.map_surface import MapSurface, OverlayKind, StyleTag
from route_drawing.services.route_buffer import (
    AnchorWaypoint,
    EditSession,
    RouteBuffer,
    RouteState,
)
from route_drawing.services.routing_provider import RouteSegment, SegmentRouter


@dataclass
class EditResult:
    route: RouteBuffer
    warnings: List[str] = field(default_factory=list)
    anchor: Optional[AnchorWaypoint] = None


class EditEngine:
    """
    Drawing and editing operations on a RouteBuffer.

    Each operation that needs the routing provider marks the buffer as
    pending for the duration of the call; a second operation on the same
    buffer in the meantime is rejected with ``RouteBusy`` rather than
    reading a half-updated buffer. Buffers are independent, so operations
    on different routes may overlap freely.

    The buffer is only mutated after every provider call of an operation has
    returned, then its invariants are checked and the map is redrawn.
    """

    def __init__(
        self,
        router: SegmentRouter,
        surface: MapSurface,
        removal_strategy: str = settings.REMOVAL_STRATEGY,
        reroute_forward: bool = settings.MOVE_REROUTE_FORWARD,
    ) -> None:
        self.router = router
        self.surface = surface
        self.removal_strategy = removal_strategy
        self.reroute_forward = reroute_forward

    # ------------------------------------------------------------------ #
    # Drawing
    # ------------------------------------------------------------------ #

    def start(self, buffer: RouteBuffer) -> EditResult:
        self._ensure_idle_input(buffer)
        if buffer.state is not RouteState.IDLE:
            raise InvalidRouteState(
                f"Route {buffer.name!r} is already {buffer.state.value}; clear it to start over"
            )
        buffer.begin()
        self._commit(buffer)
        logger.info(f"Route {buffer.name!r}: drawing started")
        return EditResult(route=buffer)

    async def append(self, buffer: RouteBuffer, point: GeoPoint) -> EditResult:
        with self._operation(buffer):
            self._require_state(buffer, RouteState.DRAWING, "add waypoints to")

            previous = buffer.last_reference()
            if previous is None:
                # First point of a loop: nothing to route from yet
                marker = self.surface.add_marker(buffer.name, point, StyleTag.WAYPOINT)
                anchor = buffer.seed(point, marker=marker)
                self._commit(buffer)
                logger.info(f"Route {buffer.name!r}: loop starts at waypoint #{anchor.order_index}")
                return EditResult(route=buffer, anchor=anchor)

            if point == previous.point:
                raise DuplicateWaypoint(
                    f"Waypoint repeats the previous point of route {buffer.name!r}"
                )

            segment = await self.router.request_segment(previous.point, point)

            marker = self.surface.add_marker(buffer.name, point, StyleTag.WAYPOINT)
            anchor = buffer.extend(segment.points, marker=marker)
            self._commit(buffer)

            logger.info(
                f"Route {buffer.name!r}: waypoint #{anchor.order_index} added "
                f"({len(buffer.anchors)} waypoints, {len(buffer.dense)} samples)"
            )
            return EditResult(route=buffer, warnings=self._warnings([segment]), anchor=anchor)

    async def finish(self, buffer: RouteBuffer) -> EditResult:
        with self._operation(buffer):
            self._require_state(buffer, RouteState.DRAWING, "finish")
            if len(buffer.anchors) < buffer.min_anchors_to_finish:
                kind = "loop" if buffer.is_loop else "straight"
                raise InsufficientWaypoints(
                    f"A {kind} route needs at least {buffer.min_anchors_to_finish} "
                    f"waypoint(s) before it can be finished"
                )

            segment = await self.router.request_segment(
                buffer.last_reference().point, buffer.endpoint
            )
            buffer.close(segment.points)
            self._commit(buffer)

            logger.info(
                f"Route {buffer.name!r}: finished with {len(buffer.anchors)} waypoints, "
                f"{len(buffer.dense)} samples"
            )
            return EditResult(route=buffer, warnings=self._warnings([segment]))

    def clear(self, buffer: RouteBuffer) -> EditResult:
        self._ensure_idle_input(buffer)
        self.discard(buffer)
        logger.info(f"Route {buffer.name!r}: cleared")
        return EditResult(route=buffer)

    def discard(self, buffer: RouteBuffer) -> None:
        """Drop every waypoint, marker and line of the route."""
        if buffer.edit is not None and buffer.edit.handle is not None:
            self.surface.remove_marker(buffer.edit.handle)
        for anchor in buffer.reset():
            if anchor.marker is not None:
                self.surface.remove_marker(anchor.marker)
        self.surface.remove_route(buffer.name)

    # ------------------------------------------------------------------ #
    # Removal
    # ------------------------------------------------------------------ #

    async def remove_waypoint(self, buffer: RouteBuffer, order_index: int) -> EditResult:
        with self._operation(buffer):
            if buffer.state not in (RouteState.DRAWING, RouteState.FINISHED):
                raise InvalidRouteState(
                    f"Cannot remove waypoints while route {buffer.name!r} is {buffer.state.value}"
                )
            i = buffer.position_of(order_index)

            if self.removal_strategy == "reconnect" and buffer.next_reference(i) is not None:
                return await self._remove_reconnecting(buffer, i)

            removed = buffer.truncate_from(i)
            for anchor in removed:
                if anchor.marker is not None:
                    self.surface.remove_marker(anchor.marker)
            self._commit(buffer)

            logger.info(
                f"Route {buffer.name!r}: removed waypoint #{order_index} and "
                f"{len(removed) - 1} after it ({len(buffer.dense)} samples left)"
            )
            return EditResult(route=buffer)

    async def _remove_reconnecting(self, buffer: RouteBuffer, i: int) -> EditResult:
        prev = buffer.previous_reference(i)
        nxt = buffer.next_reference(i)

        if buffer.is_closed and len(buffer.anchors) - 1 < buffer.min_anchors_to_finish:
            raise InsufficientWaypoints(
                f"Route {buffer.name!r} is finished and needs at least "
                f"{buffer.min_anchors_to_finish} waypoint(s); clear it instead"
            )
        if prev is None:
            # First point of a loop: its successor becomes the new head
            removed = buffer.drop_head()
            if removed.marker is not None:
                self.surface.remove_marker(removed.marker)
            self._commit(buffer)
            logger.info(
                f"Route {buffer.name!r}: removed waypoint #{removed.order_index}, "
                f"loop now starts at waypoint #{buffer.anchors[0].order_index}"
            )
            return EditResult(route=buffer)

        if nxt.anchor is not None and nxt.point == prev.point:
            raise DuplicateWaypoint(
                "Removing this waypoint would join two waypoints at the same position"
            )

        segment = await self.router.request_segment(prev.point, nxt.point)

        buffer.splice(prev.buffer_index, nxt.buffer_index, segment.points)
        if nxt.anchor is not None:
            nxt.anchor.buffer_index = prev.buffer_index + len(segment.points) - 1
        removed = buffer.drop_anchor(i)
        if removed.marker is not None:
            self.surface.remove_marker(removed.marker)
        self._commit(buffer)

        logger.info(
            f"Route {buffer.name!r}: removed waypoint #{removed.order_index}, "
            f"reconnected with {len(segment.points)} samples"
        )
        return EditResult(route=buffer, warnings=self._warnings([segment]))

    # ------------------------------------------------------------------ #
    # Move
    # ------------------------------------------------------------------ #

    def begin_edit(self, buffer: RouteBuffer, order_index: int) -> EditResult:
        self._ensure_idle_input(buffer)
        self._open_edit(buffer, order_index)
        return EditResult(route=buffer, anchor=buffer.anchors[buffer.position_of(order_index)])

    def cancel_edit(self, buffer: RouteBuffer) -> EditResult:
        self._ensure_idle_input(buffer)
        if buffer.edit is None:
            raise InvalidRouteState(f"Route {buffer.name!r} has no waypoint being edited")
        self._close_edit(buffer)
        self._commit(buffer)
        return EditResult(route=buffer)

    async def move_waypoint(
        self, buffer: RouteBuffer, order_index: int, new_position: GeoPoint
    ) -> EditResult:
        """
        Drop an anchor at ``new_position``.

        Only the segment from the predecessor to the moved anchor is
        regenerated; samples after the anchor are kept verbatim (or, with
        ``reroute_forward``, the segment to the successor is regenerated as
        well). The first point of a loop has no predecessor, so its segment
        to the successor is regenerated instead. Downstream anchors are
        re-pointed by the length change.

        The drop is validated before an edit session is opened, so a rejected
        drop leaves the route as it was.
        """
        with self._operation(buffer):
            if buffer.edit is None:
                self._require_editable(buffer)
            elif buffer.edit.order_index != order_index:
                raise InvalidRouteState(
                    f"Waypoint #{buffer.edit.order_index} of route {buffer.name!r} "
                    f"is already being edited"
                )

            i = buffer.position_of(order_index)
            anchor = buffer.anchors[i]
            prev = buffer.previous_reference(i)
            nxt = buffer.next_reference(i) if self._reroutes_forward(buffer, i) else None

            if (prev is not None and new_position == prev.point) or (
                nxt is not None and nxt.anchor is not None and new_position == nxt.point
            ):
                raise DuplicateWaypoint("Waypoint cannot be dropped on a neighbouring waypoint")

            if buffer.edit is None:
                self._open_edit(buffer, order_index)

            segments: List[RouteSegment] = []
            if prev is not None:
                segments.append(await self.router.request_segment(prev.point, new_position))
            if nxt is not None:
                segments.append(await self.router.request_segment(new_position, nxt.point))

            old_index = anchor.buffer_index
            anchor.position = new_position
            delta = 0
            if prev is None:
                buffer.dense[0] = new_position
            else:
                behind_segment = segments[0]
                delta = buffer.splice(prev.buffer_index, old_index, behind_segment.points)
                anchor.buffer_index = prev.buffer_index + len(behind_segment.points) - 1

            if nxt is not None:
                forward_segment = segments[-1]
                # Re-read: the first splice may have shifted it
                nxt = buffer.next_reference(i)
                forward_delta = buffer.splice(
                    anchor.buffer_index, nxt.buffer_index, forward_segment.points
                )
                if nxt.anchor is not None:
                    nxt.anchor.buffer_index = (
                        anchor.buffer_index + len(forward_segment.points) - 1
                    )
                if prev is None:
                    delta = forward_delta

            self._close_edit(buffer)
            self._commit(buffer)

            logger.info(
                f"Route {buffer.name!r}: waypoint #{order_index} moved to "
                f"({new_position.lon:.6f}, {new_position.lat:.6f}); "
                f"index {old_index} -> {anchor.buffer_index}, downstream shift {delta:+d}"
            )
            return EditResult(route=buffer, warnings=self._warnings(segments), anchor=anchor)

    def _reroutes_forward(self, buffer: RouteBuffer, i: int) -> bool:
        # The head of a loop has no upstream segment to regenerate
        return self.reroute_forward or buffer.previous_reference(i) is None

    @staticmethod
    def _require_editable(buffer: RouteBuffer) -> None:
        if buffer.state not in (RouteState.DRAWING, RouteState.FINISHED):
            raise InvalidRouteState(
                f"Cannot edit route {buffer.name!r} while it is {buffer.state.value}"
            )

    def _open_edit(self, buffer: RouteBuffer, order_index: int) -> EditSession:
        self._require_editable(buffer)
        i = buffer.position_of(order_index)
        anchor = buffer.anchors[i]

        behind = buffer.behind_portion(i)
        forward = buffer.forward_portion(i, from_next=self._reroutes_forward(buffer, i))

        session = EditSession(order_index=order_index, prior_state=buffer.state)
        buffer.edit = session
        buffer.state = RouteState.EDITING

        # The committed line is replaced by the two untouched portions until the drop
        self.surface.remove_route(buffer.name)
        self.surface.draw_overlay(buffer.name, OverlayKind.BEHIND, behind, buffer.colour)
        self.surface.draw_overlay(buffer.name, OverlayKind.FORWARD, forward, buffer.colour)
        if anchor.marker is not None:
            self.surface.set_marker_visible(anchor.marker, False)
        session.handle = self.surface.add_marker(buffer.name, anchor.position, StyleTag.EDITING)

        logger.info(
            f"Route {buffer.name!r}: editing waypoint #{order_index} "
            f"(behind {len(behind)} samples, forward {len(forward)} samples)"
        )
        return session

    def _close_edit(self, buffer: RouteBuffer) -> None:
        session = buffer.edit
        buffer.state = session.prior_state
        buffer.edit = None

        if session.handle is not None:
            self.surface.remove_marker(session.handle)
        self.surface.clear_overlays(buffer.name)

        for anchor in buffer.anchors:
            if anchor.order_index == session.order_index and anchor.marker is not None:
                self.surface.move_marker(anchor.marker, anchor.position)
                self.surface.set_marker_visible(anchor.marker, True)

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def redraw(self, buffer: RouteBuffer) -> None:
        if buffer.state is RouteState.IDLE:
            self.surface.remove_route(buffer.name)
        elif buffer.state is not RouteState.EDITING:
            style = StyleTag.ACTIVE if buffer.active else StyleTag.INACTIVE
            self.surface.draw_route(buffer.name, buffer.dense, style, buffer.colour)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @contextmanager
    def _operation(self, buffer: RouteBuffer) -> Iterator[None]:
        self._ensure_idle_input(buffer)
        buffer.pending = True
        try:
            yield
        finally:
            buffer.pending = False

    @staticmethod
    def _ensure_idle_input(buffer: RouteBuffer) -> None:
        if buffer.pending:
            raise RouteBusy(
                f"Route {buffer.name!r} is waiting for the routing provider; try again shortly"
            )

    @staticmethod
    def _require_state(buffer: RouteBuffer, expected: RouteState, action: str) -> None:
        if buffer.state is expected:
            return
        if buffer.state is RouteState.FINISHED:
            detail = "it is already finished; clear it or edit a waypoint instead"
        elif buffer.state is RouteState.IDLE:
            detail = "drawing has not been started"
        else:
            detail = f"it is {buffer.state.value}"
        raise InvalidRouteState(f"Cannot {action} route {buffer.name!r}: {detail}")

    def _commit(self, buffer: RouteBuffer) -> None:
        buffer.check_invariants()
        self.redraw(buffer)

    @staticmethod
    def _warnings(segments: List[RouteSegment]) -> List[str]:
        return [
            (
                f"Segment ({s.points[0].lon:.6f}, {s.points[0].lat:.6f}) -> "
                f"({s.points[-1].lon:.6f}, {s.points[-1].lat:.6f}) is a straight-line "
                f"approximation: {s.fallback_reason}"
            )
            for s in segments
            if s.is_fallback
        ]
