"""Provide synchronous and asynchronous cohort map clients.

This module exposes :class:`~ohdsi.cohortmap.cohortmap.CohortMap` (sync) and
:class:`~ohdsi.cohortmap.cohortmap.AsyncCohortMap` (async). Both render a
cohort's subject locations over an OpenStreetMap basemap, either as density
regions or as clusters that split when clicked, and reload the data for the
visible viewport on demand.

Examples:
    Synchronous:

    .. code-block:: python

        from ohdsi.cohortmap import CohortMap, CohortMapConfig

        cm = CohortMap(CohortMapConfig(gis_service_url="https://atlas.example.org/WebAPI/gis", token=token))
        cm.set_params(cohort_id=42, source_key="SYNPUF")
        cm.refresh()
        cm.show()                   # display the map in a notebook cell
        cm.update_cluster_map()     # after the map is on screen

    Asynchronous:

    .. code-block:: python

        from ohdsi.cohortmap import AsyncCohortMap

        async def main():
            cm = AsyncCohortMap(config)
            cm.set_params(42, "SYNPUF")
            await cm.refresh()
            await cm.update_density_map()

        # In a notebook: await main()
"""

from typing import Optional, Union

import geopandas as gpd
import orjson

from ._base import CohortMapBase
from ._models import BoundingBox, FeatureCollection, RenderOutcome
from ._utils import _run_sync, _to_geopandas


def _format_features(
    geo_json: Optional[FeatureCollection], dformat: Optional[str]
) -> Optional[Union[gpd.GeoDataFrame, dict, str]]:
    if geo_json is None:
        return None
    if dformat == "geojson":
        return geo_json
    if dformat == "json":
        return orjson.dumps(geo_json, option=orjson.OPT_INDENT_2).decode("utf-8")
    if dformat not in (None, "geopandas", "gpd"):
        raise ValueError(
            "Invalid 'dformat' specified. Supported values are: None, "
            "'geopandas' (or 'gpd'), 'geojson', and 'json'."
        )
    return _to_geopandas(geo_json)


class CohortMap(CohortMapBase):
    """Notebook-friendly cohort map controller.

    Every network operation blocks until the GIS service has answered. Inside a
    running event loop (Jupyter) ``nest_asyncio`` is applied so the calls still
    work from ordinary cells and widget callbacks.

    Examples:
        .. code-block:: python

            cm = CohortMap(config, on_notice=lambda n: print(n.message))
            cm.set_params(42, "SYNPUF").refresh()
            cm.show()
            gdf = cm.get_density()      # GeoDataFrame of the visible density regions

    See Also:
        :class:`~ohdsi.cohortmap.cohortmap.AsyncCohortMap`: Async counterpart with the same surface area.
    """

    def refresh(self) -> Optional[BoundingBox]:
        """Check the source for geodata and fit the map to the cohort bounds.

        Returns:
            The fitted bounds, or None when the source has no geodata.
        """
        return _run_sync(self._refresh())

    def load_density_map(self) -> Optional[FeatureCollection]:
        """Fetch density features for the visible viewport as GeoJSON.

        Returns:
            The FeatureCollection, or None when a newer request superseded this one.
        """
        return _run_sync(self._load_density_map())

    def load_clusters(self) -> Optional[FeatureCollection]:
        """Fetch cluster features for the visible viewport as GeoJSON, or None when superseded."""
        return _run_sync(self._load_clusters())

    def update_density_map(self) -> RenderOutcome:
        """Redraw the density regions for the visible viewport.

        Returns:
            RENDERED when the regions were drawn, EMPTY when the service had none
            (``on_notice`` is called and only the basemap remains), STALE when a
            newer request superseded this one.
        """
        return _run_sync(self._update_density_map())

    def update_cluster_map(self) -> RenderOutcome:
        """Redraw the subject clusters for the visible viewport.

        Clicking a cluster marker zooms in one level and calls this again.

        Returns:
            RENDERED, EMPTY or STALE, as for :meth:`update_density_map`.
        """
        return _run_sync(self._update_cluster_map())

    def get_density(self, dformat: Optional[str] = "gpd") -> Optional[Union[gpd.GeoDataFrame, dict, str]]:
        """Fetch the viewport's density regions without touching the map layers.

        Args:
            dformat: Output format.
                - "geojson": the raw FeatureCollection dict.
                - "json": a pretty-printed GeoJSON string.
                - "geopandas" (or "gpd") (default): a GeoDataFrame, one row per region.

        Returns:
            Density data in the requested format, or None when superseded.

        Raises:
            ValueError: If an invalid dformat is provided.
        """
        return _format_features(self.load_density_map(), dformat)

    def get_clusters(self, dformat: Optional[str] = "gpd") -> Optional[Union[gpd.GeoDataFrame, dict, str]]:
        """Fetch the viewport's clusters without touching the map layers.

        Args:
            dformat: Same values as :meth:`get_density`.

        Returns:
            Cluster data in the requested format, or None when superseded.
        """
        return _format_features(self.load_clusters(), dformat)

    def show(self):
        """Return the map widget for display; ``None`` before the first refresh."""
        return self._surface.widget if self._surface is not None else None

    def _dispatch(self, coro):
        return _run_sync(coro)


class AsyncCohortMap(CohortMapBase):
    """Cohort map controller with awaitable network operations.

    Suited to notebooks that keep the UI responsive while the GIS service is
    queried. Cluster clicks schedule the refetch as a task on the running loop.

    Notes:
        - Overlapping calls are allowed; the last one started wins and the
          results of earlier ones are discarded.
    """

    async def refresh(self) -> Optional[BoundingBox]:
        """Check the source for geodata and fit the map to the cohort bounds.

        Returns:
            The fitted bounds, or None when the source has no geodata or a newer
            request superseded this one.

        Raises:
            TransportError: If the GIS service cannot be reached or answers with an error.
        """
        return await self._refresh()

    async def load_density_map(self) -> Optional[FeatureCollection]:
        """Fetch density features for the visible viewport, or None when superseded."""
        return await self._load_density_map()

    async def load_clusters(self) -> Optional[FeatureCollection]:
        """Fetch cluster features for the visible viewport, or None when superseded."""
        return await self._load_clusters()

    async def update_density_map(self) -> RenderOutcome:
        """Redraw the density regions for the visible viewport.

        Returns:
            See :meth:`CohortMap.update_density_map`.
        """
        return await self._update_density_map()

    async def update_cluster_map(self) -> RenderOutcome:
        """Redraw the subject clusters for the visible viewport.

        Returns:
            See :meth:`CohortMap.update_cluster_map`.
        """
        return await self._update_cluster_map()

    async def get_density(self, dformat: Optional[str] = "gpd") -> Optional[Union[gpd.GeoDataFrame, dict, str]]:
        """Fetch the viewport's density regions without touching the map layers.

        Args:
            dformat: "geopandas"/"gpd" (default), "geojson" or "json".

        Returns:
            Density data in the requested format, or None when superseded.

        Raises:
            ValueError: If an invalid dformat is provided.
        """
        return _format_features(await self._load_density_map(), dformat)

    async def get_clusters(self, dformat: Optional[str] = "gpd") -> Optional[Union[gpd.GeoDataFrame, dict, str]]:
        """Fetch the viewport's clusters without touching the map layers.

        Args:
            dformat: Same values as :meth:`get_density`.

        Returns:
            Cluster data in the requested format, or None when superseded.
        """
        return _format_features(await self._load_clusters(), dformat)

    def show(self):
        """Return the map widget for display; ``None`` before the first refresh."""
        return self._surface.widget if self._surface is not None else None
