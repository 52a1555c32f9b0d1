import asyncio
import logging
import math
from typing import Any, Callable, Coroutine, Optional, TypeVar, Union

from ._config import CLUSTER_ICON_SIZE, DENSITY_COLOR_POSITIVE, DENSITY_COLOR_STEPS, DENSITY_STYLE, TRANSPARENT
from ._exceptions import CohortMapError, IllegalTransitionError
from ._gui import LeafletSurface
from ._http import AuthenticatedFetch
from ._models import (
    TRANSITIONS,
    BoundingBox,
    CohortSelection,
    EmptyResultNotice,
    FeatureCollection,
    MapState,
    RenderOutcome,
)
from ._surface import LayerHandle, RenderingSurface, SurfaceFactory
from ._utils import _feature_latlng, _schedule, add_query_params, format_compact
from .config import CohortMapConfig

logger = logging.getLogger(__name__)

SelfType = TypeVar("SelfType", bound="CohortMapBase")


class CohortMapBase:
    """Base class holding the map state machine and the geodata orchestration.

    This class implements the mechanics shared by the sync and async clients:
    cohort selection, URL building, viewport bounds, layer bookkeeping, the
    density colour scale and the cluster click-to-zoom interaction. Network
    operations are coroutines prefixed with ``_``; the public clients in
    :mod:`ohdsi.cohortmap.cohortmap` decide how they are run.

    Every request-starting operation takes a generation token. A result that
    resolves after a newer request has started (or after ``set_params``) is
    discarded, so the last request always owns the layers and the state.

    Attributes:
        _selection: Current cohort/source selection, ``None`` until ``set_params``.
        _state: Current :class:`~ohdsi.cohortmap._models.MapState`.
        _surface: Rendering surface, created lazily on the first successful refresh.
        _basemap_layer: Tile layer handle; never removed by ``clear_layers``.
        _current_layers: Feature layers added by the controller.
    """

    def __init__(
        self,
        config: Optional[CohortMapConfig] = None,
        *,
        fetch: Any = None,
        container: Any = None,
        surface_factory: Optional[SurfaceFactory] = None,
        on_loading_change: Optional[Callable[[bool], None]] = None,
        on_no_geodata: Optional[Callable[[bool], None]] = None,
        on_notice: Optional[Callable[[EmptyResultNotice], None]] = None,
        label_formatter: Optional[Callable[[Union[int, float]], str]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        """Bind collaborators. No map is created yet.

        Args:
            config: Service URLs, credential and map settings. Defaults to
                ``CohortMapConfig()``.
            fetch: Object exposing ``query(url)`` and ``check_status(url)``
                coroutines. Defaults to an ``AuthenticatedFetch`` built from ``config``.
            container: Where the map widget is placed once created (e.g. an
                ``ipywidgets.Box``). Passed to ``surface_factory``.
            surface_factory: Callable ``(container) -> RenderingSurface``.
                Defaults to :class:`~ohdsi.cohortmap._gui.LeafletSurface`.
            on_loading_change: Called with the new value whenever the loading
                flag flips.
            on_no_geodata: Called with the new value whenever the no-geodata
                flag flips.
            on_notice: Called with an ``EmptyResultNotice`` when a refresh returns
                no features.
            label_formatter: Formats a cluster size into its marker label.
                Defaults to :func:`~ohdsi.cohortmap._utils.format_compact`.
            on_error: Called with the exception when a refetch started from a
                map click fails. Such failures are always logged.
        """
        self._config = config or CohortMapConfig()
        self._fetch = fetch or AuthenticatedFetch(
            token=self._config.token,
            action_location=self._config.action_location,
            timeout=self._config.request_timeout,
        )
        self._container = container
        self._surface_factory = surface_factory or LeafletSurface
        self._on_loading_change = on_loading_change
        self._on_no_geodata = on_no_geodata
        self._on_notice = on_notice
        self._label_formatter = label_formatter or format_compact
        self._on_error = on_error

        self._selection: Optional[CohortSelection] = None
        self._state = MapState.IDLE
        self._generation = 0
        self._initiated = False
        self._surface: Optional[RenderingSurface] = None
        self._basemap_layer: Optional[LayerHandle] = None
        self._current_layers: list[LayerHandle] = []
        self._background_tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"selection={self._selection!r}, "
            f"state={self._state.value!r}, "
            f"initiated={self._initiated})"
        )

    @property
    def config(self) -> CohortMapConfig:
        return self._config

    @property
    def selection(self) -> Optional[CohortSelection]:
        return self._selection

    @property
    def state(self) -> MapState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def no_geodata(self) -> bool:
        return self._state.no_geodata

    @property
    def initiated(self) -> bool:
        """True once the viewport has been fitted to cohort bounds at least once."""
        return self._initiated

    @property
    def surface(self) -> Optional[RenderingSurface]:
        return self._surface

    @property
    def basemap_layer(self) -> Optional[LayerHandle]:
        return self._basemap_layer

    @property
    def current_layers(self) -> tuple:
        return tuple(self._current_layers)

    def set_params(self: SelfType, cohort_id: Any, source_key: str) -> SelfType:
        """Select the cohort and source whose geodata is shown.

        Does not fetch or render anything. Requests still in flight for the
        previous selection are discarded when they resolve, and the state goes
        back to ``IDLE``. The map itself (and ``initiated``) is kept.

        Args:
            cohort_id: Cohort definition identifier.
            source_key: Key of the data source holding subject locations.

        Returns:
            self for chaining.
        """
        self._selection = CohortSelection(cohort_id=cohort_id, source_key=source_key)
        self._generation += 1
        self._set_state(MapState.IDLE, reset=True)
        return self

    # --- state machine ---------------------------------------------------

    def _set_state(self, new_state: MapState, reset: bool = False) -> None:
        old_state = self._state
        if not reset and new_state not in TRANSITIONS[old_state]:
            raise IllegalTransitionError(
                f"Cannot move from {old_state.value!r} to {new_state.value!r}."
            )
        self._state = new_state
        logger.debug("%s -> %s", old_state.value, new_state.value)

        if old_state.loading != new_state.loading and self._on_loading_change:
            self._on_loading_change(new_state.loading)
        if old_state.no_geodata != new_state.no_geodata and self._on_no_geodata:
            self._on_no_geodata(new_state.no_geodata)

    def _begin(self, new_state: MapState) -> int:
        """Enter ``new_state`` for a new request and return its generation token."""
        self._set_state(new_state)
        self._generation += 1
        return self._generation

    def _is_current(self, token: int) -> bool:
        return token == self._generation

    def _settle(self, token: int, new_state: MapState) -> bool:
        """Move to ``new_state`` if ``token`` still owns the controller."""
        if not self._is_current(token):
            logger.debug("Discarding stale result (generation %s, current %s)", token, self._generation)
            return False
        self._set_state(new_state)
        return True

    def _require_selection(self) -> CohortSelection:
        if self._selection is None:
            raise CohortMapError("No cohort selected. Call set_params(cohort_id, source_key) first.")
        return self._selection

    # --- URLs --------------------------------------------------------------

    def get_source_check_url(self, source_key: str) -> str:
        return f"{self._config.gis_service_url}/source/check/{source_key}"

    def get_bounds_url(self, cohort_id: Any, source_key: str) -> str:
        return f"{self._config.gis_service_url}/cohort/{cohort_id}/bounds/{source_key}"

    def get_density_url(self, cohort_id: Any, source_key: str, bounds: BoundingBox) -> str:
        return add_query_params(
            f"{self._config.gis_service_url}/cohort/{cohort_id}/density/{source_key}",
            bounds.to_params(),
        )

    def get_clusters_url(self, cohort_id: Any, source_key: str, bounds: BoundingBox) -> str:
        return add_query_params(
            f"{self._config.gis_service_url}/cohort/{cohort_id}/clusters/{source_key}",
            bounds.to_params(),
        )

    # --- map -------------------------------------------------------------

    def _initiate_map(self) -> RenderingSurface:
        surface = self._surface_factory(self._container)
        self._basemap_layer = surface.add_tile_layer(self._config.tile_url, self._config.max_zoom)
        self._surface = surface
        self._current_layers = []
        return surface

    def _require_surface(self) -> RenderingSurface:
        if self._surface is None:
            raise CohortMapError("The map has not been created yet. Call refresh() first.")
        return self._surface

    def get_map_bounds(self) -> BoundingBox:
        """Read the visible viewport from the surface's south-west/north-east corners."""
        south_west, north_east = self._require_surface().get_bounds()
        return BoundingBox.from_corners(south_west, north_east)

    def clear_layers(self) -> None:
        """Remove every layer from the map except the basemap.

        Afterwards ``current_layers`` is empty and the basemap is still shown.
        """
        if self._surface is None:
            self._current_layers = []
            return
        for layer in self._surface.layers():
            if layer is not self._basemap_layer:
                self._surface.remove_layer(layer)
        self._current_layers = []

    def _add_layer(self, layer: LayerHandle) -> None:
        self._require_surface().add_layer(layer)
        self._current_layers.append(layer)

    @staticmethod
    def density_color(value: float) -> str:
        """Map a density magnitude to its heat-scale colour.

        The break points are fixed (10000, 1000, 100, 10, 1, 0.1, 1e8) and are
        checked in that order, so any positive value below 0.1 is ``#fff7d4``.
        Zero, negative and NaN values are fully transparent.

        Args:
            value: Density level of a region.

        Returns:
            A CSS colour string.
        """
        for threshold, color in DENSITY_COLOR_STEPS:
            if value >= threshold:
                return color
        return DENSITY_COLOR_POSITIVE if value > 0 else TRANSPARENT

    def density_style(self, feature: dict) -> dict:
        """Leaflet path style for a density feature, filled by ``density_color(level)``."""
        level = (feature.get("properties") or {}).get("level", 0)
        level = math.nan if level is None else float(level)
        return {**DENSITY_STYLE, "fillColor": self.density_color(level)}

    # --- network operations -------------------------------------------------

    async def _check_if_source_has_geodata(self, selection: CohortSelection) -> bool:
        return await self._fetch.check_status(self.get_source_check_url(selection.source_key))

    async def _load_cohort_bounds(self, selection: CohortSelection) -> BoundingBox:
        data = await self._fetch.query(self.get_bounds_url(selection.cohort_id, selection.source_key))
        return BoundingBox.from_json(data)

    async def _refresh(self) -> Optional[BoundingBox]:
        """Check the source for geodata, then fit the viewport to the cohort bounds.

        Creates the map (with its basemap tile layer) on first use. When the
        source has no geodata the state becomes ``NO_GEODATA`` and nothing is
        fetched or fitted.

        Returns:
            The bounds the viewport was fitted to, or ``None`` when the source has
            no geodata or a newer request superseded this one.

        Raises:
            TransportError: Propagated from the fetcher. The state is moved to
                ``FAILED`` (loading cleared) before it propagates.
        """
        selection = self._require_selection()
        token = self._begin(MapState.CHECKING)
        try:
            has_geodata = await self._check_if_source_has_geodata(selection)
            if not has_geodata:
                self._settle(token, MapState.NO_GEODATA)
                return None
            if not self._settle(token, MapState.BOUNDS_LOADING):
                return None

            bounds = await self._load_cohort_bounds(selection)
            if not self._is_current(token):
                logger.debug("Discarding stale cohort bounds for %r", selection)
                return None

            surface = self._surface if self._surface is not None else self._initiate_map()
            surface.fit_bounds(bounds.corners(), padding=self._config.fit_padding)
            self._initiated = True
            self._set_state(MapState.RENDERED)
            return bounds
        except BaseException:
            if self._is_current(token) and self._state.loading:
                self._set_state(MapState.FAILED)
            raise

    async def _load_features(self, kind: str) -> tuple[FeatureCollection, int, CohortSelection]:
        selection = self._require_selection()
        if not self._initiated:
            raise IllegalTransitionError(f"Cannot load {kind} before the map is rendered. Call refresh() first.")
        token = self._begin(MapState.LOADING)
        try:
            bounds = self.get_map_bounds()
            if kind == "density":
                url = self.get_density_url(selection.cohort_id, selection.source_key, bounds)
            else:
                url = self.get_clusters_url(selection.cohort_id, selection.source_key, bounds)
            geo_json = await self._fetch.query(url)
            self._settle(token, MapState.RENDERED)
            return geo_json, token, selection
        except BaseException:
            if self._is_current(token) and self._state.loading:
                self._set_state(MapState.FAILED)
            raise

    async def _load_density_map(self) -> Optional[FeatureCollection]:
        """Fetch density features for the visible viewport.

        Returns:
            The FeatureCollection returned by the service, or ``None`` when a newer
            request or ``set_params`` superseded this one.
        """
        geo_json, token, _ = await self._load_features("density")
        return geo_json if self._is_current(token) else None

    async def _load_clusters(self) -> Optional[FeatureCollection]:
        """Fetch cluster features for the visible viewport.

        Returns:
            The FeatureCollection, or ``None`` when superseded (see ``_load_density_map``).
        """
        geo_json, token, _ = await self._load_features("clusters")
        return geo_json if self._is_current(token) else None

    def _notify_empty(self, kind: str, selection: CohortSelection) -> None:
        notice = EmptyResultNotice(kind=kind, selection=selection)
        logger.warning("%s for %r (%s)", notice.message, selection, kind)
        if self._on_notice:
            self._on_notice(notice)

    async def _update_density_map(self) -> RenderOutcome:
        """Replace the feature layers with the density regions of the viewport.

        Returns:
            ``RENDERED`` when a layer was added, ``EMPTY`` when the service had no
            features (a notice is emitted, nothing is added), ``STALE`` when a
            newer request superseded this one (layers untouched).
        """
        geo_json, token, selection = await self._load_features("density")
        if not self._is_current(token):
            return RenderOutcome.STALE

        self.clear_layers()
        if not geo_json.get("features"):
            self._notify_empty("density", selection)
            return RenderOutcome.EMPTY

        layer = self._require_surface().make_geojson_layer(geo_json, self.density_style)
        self._add_layer(layer)
        return RenderOutcome.RENDERED

    async def _update_cluster_map(self) -> RenderOutcome:
        """Replace the feature layers with the subject clusters of the viewport.

        Single subjects become default markers with a popup linking to their
        profile; larger clusters become labelled markers that zoom in one level
        and refetch when clicked.

        Returns:
            ``RENDERED``, ``EMPTY`` or ``STALE``, as for ``_update_density_map``.
        """
        geo_json, token, selection = await self._load_features("clusters")
        if not self._is_current(token):
            return RenderOutcome.STALE

        self.clear_layers()
        features = geo_json.get("features") or []
        if not features:
            self._notify_empty("clusters", selection)
            return RenderOutcome.EMPTY

        surface = self._require_surface()
        markers = [self._cluster_marker(surface, feature, selection) for feature in features]
        self._add_layer(surface.make_layer_group(markers))
        return RenderOutcome.RENDERED

    def _cluster_marker(self, surface: RenderingSurface, feature: dict, selection: CohortSelection) -> LayerHandle:
        props = feature.get("properties") or {}
        size = float(props.get("size", 0))
        location = _feature_latlng(feature)

        if size <= 1:
            subject_id = props.get("subject_id")
            popup_html = (
                f'Person ID: <a href="#/profiles/{selection.source_key}/{subject_id}">{subject_id}</a>'
            )
            return surface.make_point_marker(location, popup_html)

        label_html = f'<span class="cluster-label">{self._label_formatter(props["size"])}</span>'
        return surface.make_cluster_marker(location, label_html, CLUSTER_ICON_SIZE, self._on_cluster_click)

    def _on_cluster_click(self, location: tuple[float, float]) -> Any:
        """Zoom in one level on a clicked cluster and refetch clusters for the new viewport."""
        surface = self._require_surface()
        surface.set_view(location, surface.get_zoom() + 1)
        return self._dispatch(self._update_cluster_map())

    def _dispatch(self, coro: Coroutine) -> Any:
        """Run a coroutine started from a UI callback. Overridden by the sync client.

        Tasks scheduled on a running loop are held until they finish so their
        failures are reported through ``on_error`` instead of being dropped.
        """
        result = _schedule(coro)
        if isinstance(result, asyncio.Task):
            self._background_tasks.add(result)
            result.add_done_callback(self._on_background_done)
        return result

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Cluster refetch failed for %r: %s", self._selection, exc, exc_info=exc)
        if self._on_error:
            self._on_error(exc)
