"""The rendering surface contract consumed by the cohort map controller.

The controller never touches a map widget directly. It creates layers through
the surface's factory methods and only holds on to the opaque handles they
return, so any tile/vector engine can sit behind it. The shipped implementation
is :class:`~ohdsi.cohortmap._gui.leaflet_surface.LeafletSurface`.
"""

from typing import Any, Callable, Optional, Protocol, Sequence

from ._models import Corners

LayerHandle = Any
ClickHandler = Callable[[tuple[float, float]], None]
StyleCallback = Callable[[dict], dict]


class RenderingSurface(Protocol):
    """Viewport with bounds, zoom and layer primitives."""

    @property
    def widget(self) -> Any:
        """The object a notebook displays."""
        ...

    def add_tile_layer(self, url: str, max_zoom: int) -> LayerHandle: ...

    def add_layer(self, layer: LayerHandle) -> None: ...

    def remove_layer(self, layer: LayerHandle) -> None: ...

    def layers(self) -> Sequence[LayerHandle]: ...

    def get_bounds(self) -> Corners:
        """Return ``((south, west), (north, east))`` of the visible viewport."""
        ...

    def fit_bounds(self, corners: Sequence[Sequence[float]], padding: tuple[int, int]) -> None: ...

    def get_zoom(self) -> int: ...

    def set_view(self, center: tuple[float, float], zoom: int) -> None: ...

    def make_geojson_layer(self, data: dict, style_callback: StyleCallback) -> LayerHandle: ...

    def make_layer_group(self, layers: Sequence[LayerHandle]) -> LayerHandle: ...

    def make_point_marker(self, location: tuple[float, float], popup_html: Optional[str] = None) -> LayerHandle: ...

    def make_cluster_marker(
        self,
        location: tuple[float, float],
        label_html: str,
        icon_size: tuple[int, int],
        on_click: ClickHandler,
    ) -> LayerHandle:
        """Build a labelled marker; ``on_click`` receives the clicked ``(lat, lng)``."""
        ...


# Called with the container the map should be placed in (may be None).
SurfaceFactory = Callable[[Any], RenderingSurface]
