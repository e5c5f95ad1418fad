# tests/test_edit_engine.py
import asyncio

import pytest

from conftest import (
    DESTINATION,
    ORIGIN,
    FailingProvider,
    GatedProvider,
    RoadStubProvider,
    make_collection,
    run,
)
from route_drawing.core.errors import (
    DuplicateWaypoint,
    InsufficientWaypoints,
    InvalidRouteState,
    RouteBusy,
    UnknownWaypoint,
)
from route_drawing.models.geo import GeoPoint, NamedPlace, haversine_m
from route_drawing.services.map_surface import InMemoryMapSurface, StyleTag
from route_drawing.services.route_buffer import RouteState
from route_drawing.services.route_collection import RouteCollection
from route_drawing.services.routing_provider import SegmentRouter

P1 = GeoPoint(lon=28.05, lat=-26.25)
P2 = GeoPoint(lon=28.1, lat=-26.3)
P3 = GeoPoint(lon=28.15, lat=-26.35)


def draw(collection, *points, finish=False):
    route = collection.active
    engine = collection.engine
    engine.start(route)
    for p in points:
        run(engine.append(route, p))
    if finish:
        run(engine.finish(route))
    return route


def assert_no_duplicate_joins(route):
    for anchor in route.anchors:
        i = anchor.buffer_index
        assert route.dense[i - 1] != route.dense[i]
        if i + 1 < len(route.dense):
            assert route.dense[i + 1] != route.dense[i]


def test_first_append_routes_from_origin(collection, stub_provider):
    route = draw(collection, P1)

    assert stub_provider.calls == [(ORIGIN, P1)]
    assert route.dense[0] == ORIGIN
    # origin + (2 interior + P1)
    assert len(route.dense) == 4
    assert route.anchors[0].buffer_index == 3
    assert route.dense[3] == P1


def test_appends_chain_from_previous_anchor(collection, stub_provider):
    route = draw(collection, P1, P2, P3)

    assert stub_provider.calls[1:] == [(P1, P2), (P2, P3)]
    assert [a.buffer_index for a in route.anchors] == [3, 6, 9]
    assert len(route.dense) == 10
    assert_no_duplicate_joins(route)


def test_markers_track_anchors_after_every_operation(collection):
    route = collection.active
    engine = collection.engine
    surface = collection.surface
    engine.start(route)

    for p in (P1, P2, P3):
        run(engine.append(route, p))
        assert len(surface.waypoint_markers(route.name)) == len(route.anchors)

    run(engine.remove_waypoint(route, route.anchors[1].order_index))
    assert len(surface.waypoint_markers(route.name)) == len(route.anchors) == 1

    run(engine.append(route, P3))
    run(engine.finish(route))
    assert len(surface.waypoint_markers(route.name)) == len(route.anchors) == 2

    engine.clear(route)
    assert surface.waypoint_markers(route.name) == []
    assert route.anchors == []


def test_buffer_head_stays_at_origin(collection):
    route = draw(collection, P1, P2)
    assert route.dense[0] == ORIGIN
    run(collection.engine.finish(route))
    assert route.dense[0] == ORIGIN
    run(collection.engine.move_waypoint(route, 0, GeoPoint(lon=28.03, lat=-26.28)))
    assert route.dense[0] == ORIGIN
    run(collection.engine.remove_waypoint(route, 0))
    assert route.dense == [ORIGIN]


def test_finish_straight_route_closes_on_destination(collection):
    route = draw(collection, P1, P2, finish=True)

    assert route.state is RouteState.FINISHED
    assert route.dense[-1] == DESTINATION
    assert len(route.dense) == 10


def test_finish_straight_route_needs_two_waypoints(collection):
    route = draw(collection, P1)
    before = list(route.dense)

    with pytest.raises(InsufficientWaypoints):
        run(collection.engine.finish(route))

    assert route.state is RouteState.DRAWING
    assert route.dense == before


def test_finish_loop_returns_to_origin(loop_collection):
    route = draw(loop_collection, P1, finish=True)

    assert route.state is RouteState.FINISHED
    assert haversine_m(route.dense[-1], ORIGIN) < 1.0
    # A loop starts at its first placed point, not at the rank
    assert route.dense[0] == P1
    assert route.anchors[0].buffer_index == 0


def test_finish_loop_needs_one_waypoint(loop_collection):
    route = draw(loop_collection)
    with pytest.raises(InsufficientWaypoints):
        run(loop_collection.engine.finish(route))
    assert route.state is RouteState.DRAWING


def test_append_after_finish_is_rejected(collection):
    route = draw(collection, P1, P2, finish=True)
    with pytest.raises(InvalidRouteState, match="already finished"):
        run(collection.engine.append(route, P3))
    assert len(route.anchors) == 2


def test_append_before_start_is_rejected(collection):
    with pytest.raises(InvalidRouteState, match="not been started"):
        run(collection.engine.append(collection.active, P1))


def test_start_twice_is_rejected(collection):
    route = draw(collection, P1)
    with pytest.raises(InvalidRouteState):
        collection.engine.start(route)


def test_append_of_repeated_point_is_rejected(collection):
    route = draw(collection, P1)
    with pytest.raises(DuplicateWaypoint):
        run(collection.engine.append(route, P1))
    assert len(route.anchors) == 1


def test_failing_provider_falls_back_to_straight_line():
    a = GeoPoint(lon=28.0, lat=-26.2)
    b = GeoPoint(lon=28.1, lat=-26.3)
    collection = make_collection(FailingProvider())
    route = collection.active
    collection.engine.start(route)
    assert route.dense == [a]

    result = run(collection.engine.append(route, b))

    assert route.dense == [a, b]
    assert route.anchors[0].buffer_index == 1
    assert len(result.warnings) == 1
    assert "straight-line approximation" in result.warnings[0]


def test_remove_interior_waypoint_truncates_tail(collection):
    route = draw(collection, P1, P2, P3)

    run(collection.engine.remove_waypoint(route, route.anchors[1].order_index))

    assert len(route.anchors) == 1
    assert len(route.dense) == route.anchors[0].buffer_index + 1
    assert route.dense[-1] == P1


def test_remove_from_finished_route_reopens_drawing(collection):
    route = draw(collection, P1, P2, P3, finish=True)

    run(collection.engine.remove_waypoint(route, route.anchors[2].order_index))

    assert route.state is RouteState.DRAWING
    assert len(route.anchors) == 2
    assert route.dense[-1] == P2
    # drawable again
    run(collection.engine.append(route, P3))
    assert len(route.anchors) == 3


def test_remove_unknown_waypoint(collection):
    route = draw(collection, P1)
    with pytest.raises(UnknownWaypoint):
        run(collection.engine.remove_waypoint(route, 7))


def test_reconnect_removal_keeps_later_waypoints(stub_provider):
    collection = make_collection(stub_provider, removal_strategy="reconnect")
    route = draw(collection, P1, P2, P3, finish=True)
    surface = collection.surface

    result = run(collection.engine.remove_waypoint(route, route.anchors[1].order_index))

    assert stub_provider.calls[-1] == (P1, P3)
    assert [a.position for a in route.anchors] == [P1, P3]
    assert route.state is RouteState.FINISHED
    assert route.dense[route.anchors[1].buffer_index] == P3
    assert route.dense[-1] == DESTINATION
    assert len(surface.waypoint_markers(route.name)) == 2
    assert result.warnings == []
    assert_no_duplicate_joins(route)


def test_reconnect_removal_keeps_straight_minimum(stub_provider):
    collection = make_collection(stub_provider, removal_strategy="reconnect")
    route = draw(collection, P1, P2, finish=True)

    with pytest.raises(InsufficientWaypoints):
        run(collection.engine.remove_waypoint(route, route.anchors[0].order_index))
    assert len(route.anchors) == 2


def test_reconnect_removal_of_last_drawing_waypoint_truncates(stub_provider):
    collection = make_collection(stub_provider, removal_strategy="reconnect")
    route = draw(collection, P1, P2)
    calls_before = len(stub_provider.calls)

    run(collection.engine.remove_waypoint(route, route.anchors[1].order_index))

    assert len(stub_provider.calls) == calls_before
    assert route.dense[-1] == P1


def test_clear_returns_route_to_idle(collection):
    route = draw(collection, P1, P2, finish=True)
    collection.engine.clear(route)

    assert route.state is RouteState.IDLE
    assert route.dense == []
    assert route.name not in collection.surface.lines
    collection.engine.start(route)
    assert route.dense == [ORIGIN]


def test_second_operation_while_provider_pending_is_rejected():
    provider = GatedProvider()
    collection = make_collection(provider)
    route = collection.active
    collection.engine.start(route)

    async def scenario():
        provider.release = asyncio.Event()
        first = asyncio.create_task(collection.engine.append(route, P1))
        for _ in range(3):
            await asyncio.sleep(0)
        assert route.pending

        with pytest.raises(RouteBusy):
            await collection.engine.append(route, P2)
        with pytest.raises(RouteBusy):
            collection.engine.clear(route)

        provider.release.set()
        await first

    run(scenario())

    assert not route.pending
    assert len(route.anchors) == 1
    assert route.dense[-1] == P1


def test_routes_in_one_collection_edit_concurrently():
    provider = RoadStubProvider(samples=1)
    collection = make_collection(provider)
    first = collection.active
    second = collection.create_route()
    collection.engine.start(first)
    collection.engine.start(second)

    async def scenario():
        await asyncio.gather(
            collection.engine.append(first, P1),
            collection.engine.append(second, P2),
        )

    run(scenario())

    assert first.dense[-1] == P1
    assert second.dense[-1] == P2


def test_redraw_pushes_committed_line(collection):
    route = draw(collection, P1)
    line = collection.surface.lines[route.name]
    assert line.points == route.dense
    assert line.style is StyleTag.ACTIVE
    assert line.colour == route.colour


def test_loop_with_failing_provider_is_exactly_the_clicked_points():
    a = GeoPoint(lon=28.0, lat=-26.2)
    b = GeoPoint(lon=28.1, lat=-26.3)
    rank = GeoPoint(lon=27.9, lat=-26.1)
    provider = FailingProvider()
    collection = RouteCollection(
        origin=NamedPlace(name="Noord Street Rank", position=rank),
        destination=None,
        router=SegmentRouter(provider),
        surface=InMemoryMapSurface(),
    )
    route = collection.create_route()
    collection.engine.start(route)
    assert route.dense == []

    run(collection.engine.append(route, a))
    result = run(collection.engine.append(route, b))

    assert route.dense == [a, b]
    # the first loop point needs no segment
    assert provider.calls == 1
    assert len(result.warnings) == 1

    run(collection.engine.finish(route))
    assert route.dense == [a, b, rank]


def test_removing_the_first_loop_point_empties_the_loop(loop_collection):
    route = draw(loop_collection, P1, P2, finish=True)

    run(loop_collection.engine.remove_waypoint(route, 0))

    assert route.state is RouteState.DRAWING
    assert route.anchors == []
    assert route.dense == []
    assert loop_collection.surface.waypoint_markers(route.name) == []

    run(loop_collection.engine.append(route, P3))
    assert route.dense == [P3]


def test_reconnect_removal_of_first_loop_point_promotes_successor(stub_provider):
    collection = make_collection(stub_provider, loop=True, removal_strategy="reconnect")
    route = draw(collection, P1, P2, P3, finish=True)
    calls_before = len(stub_provider.calls)
    length_before = len(route.dense)

    run(collection.engine.remove_waypoint(route, 0))

    assert len(stub_provider.calls) == calls_before
    assert [a.position for a in route.anchors] == [P2, P3]
    assert route.dense[0] == P2
    assert route.anchors[0].buffer_index == 0
    assert route.dense[route.anchors[1].buffer_index] == P3
    assert len(route.dense) == length_before - 3
    assert route.state is RouteState.FINISHED
