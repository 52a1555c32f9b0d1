"""ipyleaflet rendering surface for the cohort map.

This module wraps an ``ipyleaflet.Map`` behind the small
:class:`~ohdsi.cohortmap._surface.RenderingSurface` contract used by the
controller: a tile basemap, GeoJSON density layers and marker groups for
clusters. The map is placed into an optional ipywidgets container so it can be
embedded in a larger notebook layout.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Optional, Sequence

from ipyleaflet import DivIcon, GeoJSON, LayerGroup, Map, Marker, TileLayer
from ipywidgets import HTML, Layout

from .._exceptions import CohortMapError
from .._models import Corners


def _mercator_y(lat: float) -> float:
    return math.log(math.tan(math.pi / 4 + math.radians(lat) / 2))


def _mercator_lat(y: float) -> float:
    return math.degrees(2 * math.atan(math.exp(y)) - math.pi / 2)


def _zoomed_bounds(bounds: Corners, center: Sequence[float], zoom_delta: float) -> Corners:
    """Viewport corners after recentring on ``center`` and zooming by ``zoom_delta`` levels.

    The pixel size of the viewport is unchanged, so its span in Web Mercator
    units scales by ``2 ** -zoom_delta``.
    """
    (south, west), (north, east) = bounds
    scale = 2.0 ** -zoom_delta
    half_lng = (east - west) * scale / 2
    half_y = (_mercator_y(north) - _mercator_y(south)) * scale / 2
    center_y = _mercator_y(center[0])
    return (
        (_mercator_lat(center_y - half_y), center[1] - half_lng),
        (_mercator_lat(center_y + half_y), center[1] + half_lng),
    )


class LeafletSurface:
    """``RenderingSurface`` backed by an ipyleaflet ``Map`` widget.

    Args:
        container: Optional ipywidgets box; the map becomes its only child.
        height: CSS height of the map widget.
    """

    def __init__(self, container: Any = None, *, height: str = "500px"):
        self._map = Map(scroll_wheel_zoom=True, attribution_control=True)
        self._map.layout = Layout(width="100%", height=height)
        # Drop the default basemap; the controller attaches its own tile layer.
        self._map.layers = ()
        self._padding: tuple[int, int] = (0, 0)
        # Viewport expected after set_view, until the front end syncs real bounds.
        self._pending_bounds: Optional[Corners] = None
        self._map.observe(self._on_bounds_synced, names="bounds")
        if container is not None:
            container.children = (self._map,)

    @property
    def widget(self) -> Map:
        return self._map

    @property
    def padding(self) -> tuple[int, int]:
        """Padding requested by the last ``fit_bounds`` call."""
        return self._padding

    def add_tile_layer(self, url: str, max_zoom: int) -> TileLayer:
        layer = TileLayer(url=url, max_zoom=max_zoom, name="osm_tiles")
        self._map.add(layer)
        return layer

    def add_layer(self, layer: Any) -> None:
        self._map.add(layer)

    def remove_layer(self, layer: Any) -> None:
        if layer in self._map.layers:
            self._map.remove(layer)

    def layers(self) -> tuple:
        return tuple(self._map.layers)

    def get_bounds(self) -> Corners:
        """Return the viewport corners reported by the front end.

        Right after :meth:`set_view` the browser has not reported the new
        viewport yet, so the corners projected from the previous bounds are
        returned until it does.

        Raises:
            CohortMapError: If the map has not been displayed yet, so no bounds
                have been synced back from the browser.
        """
        if self._pending_bounds is not None:
            return self._pending_bounds
        bounds = self._map.bounds
        if not bounds:
            raise CohortMapError("Viewport bounds are not available yet; display the map first.")
        (south, west), (north, east) = bounds
        return (south, west), (north, east)

    def fit_bounds(self, corners: Sequence[Sequence[float]], padding: tuple[int, int]) -> None:
        # ipyleaflet's fit_bounds has no padding option; it is kept for inspection.
        self._padding = tuple(padding)
        self._pending_bounds = None
        self._map.fit_bounds([list(c) for c in corners])

    def get_zoom(self) -> int:
        return int(self._map.zoom)

    def set_view(self, center: tuple[float, float], zoom: int) -> None:
        current = self._pending_bounds or self._map.bounds
        zoom_delta = zoom - self._map.zoom
        self._map.center = tuple(center)
        self._map.zoom = zoom
        if current:
            self._pending_bounds = _zoomed_bounds(current, center, zoom_delta)

    def _on_bounds_synced(self, change: dict) -> None:
        self._pending_bounds = None

    def make_geojson_layer(self, data: dict, style_callback: Callable[[dict], dict]) -> GeoJSON:
        return GeoJSON(data=data, style_callback=style_callback)

    def make_layer_group(self, layers: Sequence[Any]) -> LayerGroup:
        return LayerGroup(layers=tuple(layers))

    def make_point_marker(self, location: tuple[float, float], popup_html: Optional[str] = None) -> Marker:
        marker = Marker(location=tuple(location), draggable=False)
        if popup_html:
            marker.popup = HTML(value=popup_html)
        return marker

    def make_cluster_marker(
        self,
        location: tuple[float, float],
        label_html: str,
        icon_size: tuple[int, int],
        on_click: Callable[[tuple[float, float]], None],
    ) -> Marker:
        icon = DivIcon(html=label_html, icon_size=list(icon_size))
        marker = Marker(location=tuple(location), icon=icon, draggable=False)

        def _on_click(**kwargs):
            # kwargs carries 'type' and 'coordinates' from Leaflet
            coordinates = kwargs.get("coordinates") or location
            on_click((float(coordinates[0]), float(coordinates[1])))

        marker.on_click(_on_click)
        return marker
