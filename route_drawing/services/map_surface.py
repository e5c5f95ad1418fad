# route_drawing/services/map_surface.py
"""
The map the operator draws on.

The engine only pushes coordinates and style tags here; how a browser turns
them into Mapbox/Leaflet layers is not our concern. ``InMemoryMapSurface``
keeps the current scene so the API can hand it back to the frontend after
every edit.
"""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from route_drawing.models.geo import GeoPoint, as_lnglat_list


class StyleTag(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OVERLAY_BEHIND = "overlay-behind"
    OVERLAY_FORWARD = "overlay-forward"
    WAYPOINT = "waypoint"
    EDITING = "editing"


class OverlayKind(str, Enum):
    BEHIND = "behind"
    FORWARD = "forward"


class MapSurface(ABC):
    @abstractmethod
    def add_marker(self, route: str, position: GeoPoint, style: StyleTag) -> str:
        """Create a marker and return its handle."""

    @abstractmethod
    def move_marker(self, handle: str, position: GeoPoint) -> None: ...

    @abstractmethod
    def set_marker_visible(self, handle: str, visible: bool) -> None: ...

    @abstractmethod
    def remove_marker(self, handle: str) -> None: ...

    @abstractmethod
    def draw_route(
        self, route: str, points: Sequence[GeoPoint], style: StyleTag, colour: str
    ) -> None: ...

    @abstractmethod
    def remove_route(self, route: str) -> None: ...

    @abstractmethod
    def draw_overlay(
        self, route: str, kind: OverlayKind, points: Sequence[GeoPoint], colour: str
    ) -> None: ...

    @abstractmethod
    def clear_overlays(self, route: str) -> None: ...


@dataclass
class MarkerState:
    route: str
    position: GeoPoint
    style: StyleTag
    visible: bool = True


@dataclass
class LineState:
    points: List[GeoPoint]
    style: StyleTag
    colour: str


@dataclass
class InMemoryMapSurface(MapSurface):
    markers: Dict[str, MarkerState] = field(default_factory=dict)
    lines: Dict[str, LineState] = field(default_factory=dict)
    overlays: Dict[str, Dict[OverlayKind, LineState]] = field(default_factory=dict)
    _ids: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    def add_marker(self, route: str, position: GeoPoint, style: StyleTag) -> str:
        handle = f"m{next(self._ids)}"
        self.markers[handle] = MarkerState(route=route, position=position, style=style)
        return handle

    def move_marker(self, handle: str, position: GeoPoint) -> None:
        self.markers[handle].position = position

    def set_marker_visible(self, handle: str, visible: bool) -> None:
        self.markers[handle].visible = visible

    def remove_marker(self, handle: str) -> None:
        self.markers.pop(handle, None)

    def draw_route(
        self, route: str, points: Sequence[GeoPoint], style: StyleTag, colour: str
    ) -> None:
        self.lines[route] = LineState(points=list(points), style=style, colour=colour)

    def remove_route(self, route: str) -> None:
        self.lines.pop(route, None)
        self.overlays.pop(route, None)

    def draw_overlay(
        self, route: str, kind: OverlayKind, points: Sequence[GeoPoint], colour: str
    ) -> None:
        style = StyleTag.OVERLAY_BEHIND if kind is OverlayKind.BEHIND else StyleTag.OVERLAY_FORWARD
        self.overlays.setdefault(route, {})[kind] = LineState(
            points=list(points), style=style, colour=colour
        )

    def clear_overlays(self, route: str) -> None:
        self.overlays.pop(route, None)

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #

    def waypoint_markers(self, route: str) -> List[str]:
        return [
            h for h, m in self.markers.items()
            if m.route == route and m.style is StyleTag.WAYPOINT
        ]

    def marker(self, handle: str) -> Optional[MarkerState]:
        return self.markers.get(handle)

    def scene(self) -> Dict[str, Any]:
        return {
            "lines": [
                {
                    "route": name,
                    "style": line.style.value,
                    "colour": line.colour,
                    "coordinates": as_lnglat_list(line.points),
                }
                for name, line in self.lines.items()
            ],
            "overlays": [
                {
                    "route": name,
                    "kind": kind.value,
                    "style": line.style.value,
                    "colour": line.colour,
                    "coordinates": as_lnglat_list(line.points),
                }
                for name, by_kind in self.overlays.items()
                for kind, line in by_kind.items()
            ],
            "markers": [
                {
                    "handle": handle,
                    "route": m.route,
                    "style": m.style.value,
                    "visible": m.visible,
                    "position": m.position.as_lnglat(),
                }
                for handle, m in self.markers.items()
            ],
        }
