# route_drawing/services/graph_provider.py

import asyncio
from time import perf_counter
from typing import Any, List

import networkx as nx

from route_drawing.core.errors import ProviderUnavailable
from route_drawing.core.logger import logger
from route_drawing.models.geo import GeoPoint
from route_drawing.services.graph_manager import GraphManager
from route_drawing.services.routing_provider import RoutingProvider


class GraphDirectionsProvider(RoutingProvider):
    """
    Offline routing over an OSMnx drivable graph:
    - ensures a graph covering both endpoints is available
    - snaps the endpoints to their nearest graph nodes
    - computes the shortest path by edge length
    - builds geometry using edge shapes where available
    """

    name = "osmnx"

    def __init__(self, graph_manager: GraphManager | None = None) -> None:
        self.graph_manager = graph_manager or GraphManager()

    async def fetch_segment(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        # Graph download and Dijkstra are blocking; keep them off the event loop.
        return await asyncio.to_thread(self.route_between, start, end)

    def route_between(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        t0 = perf_counter()
        try:
            G = self.graph_manager.ensure_graph_for_points(start, end)
            start_node = self.graph_manager.find_nearest_node(start)
            end_node = self.graph_manager.find_nearest_node(end)
            path: List[Any] = nx.shortest_path(
                G,
                source=start_node,
                target=end_node,
                weight="weight",
            )
        except (nx.NetworkXException, RuntimeError, ValueError, OSError) as exc:
            raise ProviderUnavailable(f"Road graph routing failed: {exc}") from exc

        points = [start, *self._build_points_from_path(G, path), end]

        logger.info(
            f"Shortest path with {len(path)} nodes -> {len(points)} samples in "
            f"{(perf_counter() - t0) * 1000.0:.2f} ms"
        )
        return points

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _build_points_from_path(G: nx.MultiDiGraph, path: List[Any]) -> List[GeoPoint]:
        """
        Build polyline samples for the path using **edge geometries**.

        - If an edge has a 'geometry' attribute (shapely LineString), we take all
          its points.
        - If not, we fall back to straight segments between node coordinates.
        """
        if not path:
            return []

        if len(path) == 1:
            nd = G.nodes[path[0]]
            return [GeoPoint(lon=nd["x"], lat=nd["y"])]

        points: List[GeoPoint] = []

        for i, (u, v) in enumerate(zip(path[:-1], path[1:])):
            edge_dict = G.get_edge_data(u, v, default=None)
            geom = None

            if edge_dict:
                # MultiDiGraph: pick the first edge key
                data = edge_dict[next(iter(edge_dict))]
                geom = data.get("geometry")

            if geom is not None:
                # shapely coords are (x, y) = (lon, lat)
                for j, (x, y) in enumerate(geom.coords):
                    # Avoid repeating the first point of each edge after the first
                    if i > 0 and j == 0:
                        continue
                    points.append(GeoPoint(lon=x, lat=y))
            else:
                node_u = G.nodes[u]
                node_v = G.nodes[v]
                if i == 0:
                    points.append(GeoPoint(lon=node_u["x"], lat=node_u["y"]))
                points.append(GeoPoint(lon=node_v["x"], lat=node_v["y"]))

        return points
