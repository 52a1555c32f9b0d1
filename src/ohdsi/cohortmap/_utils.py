import asyncio
import math
from collections.abc import Coroutine, Mapping
from typing import Any, TypeVar, Union

import geopandas as gpd
from shapely.geometry import shape as shp_shape

_T = TypeVar("_T")

_COMPACT_SUFFIXES = [
    (1e12, "t"),
    (1e9, "b"),
    (1e6, "m"),
    (1e3, "k"),
]


def add_query_params(url: str, params: Mapping[str, Any]) -> str:
    """Append ``key=value`` pairs to ``url``.

    Uses ``?`` as the separator, or ``&`` when ``url`` already carries a query
    string. Values are inserted verbatim (``str(value)``) without URL encoding.

    Args:
        url: Base URL, with or without a query string.
        params: Parameters to append, in iteration order.

    Returns:
        The URL with the parameters appended. ``url`` unchanged if ``params`` is empty.

    Examples:
        >>> add_query_params("x", {"a": 1, "b": 2})
        'x?a=1&b=2'
        >>> add_query_params("x?c=3", {"a": 1})
        'x?c=3&a=1'
    """
    if not params:
        return url
    query_line = "&".join(f"{key}={value}" for key, value in params.items())
    return url + ("&" if "?" in url else "?") + query_line


def format_compact(value: Union[int, float]) -> str:
    """Abbreviate a count for a cluster label (``1234`` -> ``"1k"``).

    Rounds half up to a whole number after scaling by thousands.
    """
    value = float(value)
    scaled, suffix = value, ""
    for threshold, abbr in _COMPACT_SUFFIXES:
        if abs(value) >= threshold:
            scaled, suffix = value / threshold, abbr
            break
    rounded = math.copysign(math.floor(abs(scaled) + 0.5), scaled)
    return f"{int(rounded)}{suffix}"


def _run_sync(coro: Coroutine[Any, Any, _T]) -> _T:
    """Run an async coroutine from synchronous code.

    Detects an existing event loop (e.g., in notebooks) and applies a
    compatibility shim to allow awaiting from sync contexts; otherwise runs the
    coroutine in a new event loop.

    Args:
        coro: Coroutine object to execute.

    Returns:
        The result produced by the coroutine.

    Notes:
        - Imports and applies `nest_asyncio` when an active loop is detected.
        - Intended for internal use only.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop and loop.is_running():
        # Jupyter/IPython or already running event loop
        import nest_asyncio  # type: ignore

        nest_asyncio.apply()
        return loop.run_until_complete(coro)
    return asyncio.run(coro)


def _schedule(coro: Coroutine[Any, Any, _T]) -> Union["asyncio.Task[_T]", _T]:
    """Start ``coro`` from a synchronous callback without blocking the running loop.

    Returns the scheduled task when a loop is running, otherwise runs the
    coroutine to completion and returns its result.

    Notes:
        - Intended for internal use only.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    return loop.create_task(coro)


def _feature_latlng(feature: Mapping[str, Any]) -> tuple[float, float]:
    """Return the ``(lat, lng)`` of a point feature.

    Non-point geometries are reduced to their representative point.

    Notes:
        - Intended for internal use only.
    """
    geom = shp_shape(feature["geometry"])
    if geom.geom_type != "Point":
        geom = geom.representative_point()
    return geom.y, geom.x


def _to_geopandas(geo_json: Mapping[str, Any]) -> gpd.GeoDataFrame:
    """Convert a GeoJSON FeatureCollection to a GeoDataFrame.

    Feature properties become columns; geometries are in EPSG:4326.

    Args:
        geo_json: A FeatureCollection mapping.

    Returns:
        A GeoDataFrame; empty (but CRS-tagged) if there are no features.

    Notes:
        - Intended for internal use only.
    """
    features = geo_json.get("features") or []
    if not features:
        return gpd.GeoDataFrame(geometry=[], crs="EPSG:4326")
    return gpd.GeoDataFrame.from_features(features, crs="EPSG:4326")
