"""Shared fixtures for cohort map tests."""

from __future__ import annotations

from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from ohdsi.cohortmap import AsyncCohortMap, CohortMap, CohortMapConfig

GIS_URL = "https://atlas.example.org/WebAPI/gis"

BOUNDS = {
    "northLatitude": 42.5,
    "southLatitude": 38.25,
    "eastLongitude": -71.0,
    "westLongitude": -80.5,
}

DENSITY = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[-75, 40], [-74, 40], [-74, 41], [-75, 41], [-75, 40]]],
            },
            "properties": {"level": "150.5"},
        },
        {
            "type": "Feature",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[-76, 39], [-75, 39], [-75, 40], [-76, 40], [-76, 39]]],
            },
            "properties": {"level": 0.05},
        },
    ],
}

CLUSTERS = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [-74.0, 40.7]},
            "properties": {"size": 1, "subject_id": "1001"},
        },
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [-77.0, 39.0]},
            "properties": {"size": 2345},
        },
    ],
}

EMPTY = {"type": "FeatureCollection", "features": []}


class FakeLayer:
    def __init__(self, kind: str, **attrs: Any):
        self.kind = kind
        self.__dict__.update(attrs)

    def __repr__(self) -> str:
        return f"FakeLayer({self.kind!r})"


class FakeSurface:
    """In-memory rendering surface recording what the controller asks of it."""

    def __init__(self, container: Any = None):
        self.container = container
        self._layers: list[FakeLayer] = []
        self.bounds = ((39.0, -78.0), (41.0, -72.0))
        self.zoom = 7
        self.center: Optional[tuple[float, float]] = None
        self.fit_calls: list[tuple[list, tuple]] = []

    @property
    def widget(self) -> "FakeSurface":
        return self

    def add_tile_layer(self, url: str, max_zoom: int) -> FakeLayer:
        layer = FakeLayer("tiles", url=url, max_zoom=max_zoom)
        self._layers.append(layer)
        return layer

    def add_layer(self, layer: FakeLayer) -> None:
        self._layers.append(layer)

    def remove_layer(self, layer: FakeLayer) -> None:
        self._layers.remove(layer)

    def layers(self) -> tuple:
        return tuple(self._layers)

    def get_bounds(self):
        return self.bounds

    def fit_bounds(self, corners, padding) -> None:
        self.fit_calls.append((corners, padding))

    def get_zoom(self) -> int:
        return self.zoom

    def set_view(self, center, zoom) -> None:
        self.center = center
        self.zoom = zoom

    def make_geojson_layer(self, data, style_callback) -> FakeLayer:
        return FakeLayer("geojson", data=data, style_callback=style_callback)

    def make_layer_group(self, layers) -> FakeLayer:
        return FakeLayer("group", layers=list(layers))

    def make_point_marker(self, location, popup_html=None) -> FakeLayer:
        return FakeLayer("point", location=location, popup_html=popup_html)

    def make_cluster_marker(self, location, label_html, icon_size, on_click) -> FakeLayer:
        return FakeLayer(
            "cluster", location=location, label_html=label_html, icon_size=icon_size, on_click=on_click
        )


@pytest.fixture()
def config() -> CohortMapConfig:
    return CohortMapConfig(gis_service_url=GIS_URL, tiles_server_url="https://tiles.example.org")


@pytest.fixture()
def responses() -> dict:
    """Payload served for each endpoint kind; tests may replace entries."""
    return {"bounds": BOUNDS, "density": DENSITY, "clusters": CLUSTERS}


@pytest.fixture()
def fetch(responses: dict) -> MagicMock:
    async def _query(url: str):
        for kind, payload in responses.items():
            if f"/{kind}/" in url:
                return payload
        raise AssertionError(f"unexpected url {url}")

    fake = MagicMock()
    fake.check_status = AsyncMock(return_value=True)
    fake.query = AsyncMock(side_effect=_query)
    return fake


@pytest.fixture()
def surfaces() -> list[FakeSurface]:
    return []


@pytest.fixture()
def surface_factory(surfaces: list[FakeSurface]):
    def _factory(container: Any = None) -> FakeSurface:
        surface = FakeSurface(container)
        surfaces.append(surface)
        return surface

    return _factory


@pytest.fixture()
def events() -> dict[str, list]:
    return {"loading": [], "no_geodata": [], "notice": []}


@pytest.fixture()
def cohort_map(config, fetch, surface_factory, events) -> CohortMap:
    return CohortMap(
        config,
        fetch=fetch,
        container="map-container",
        surface_factory=surface_factory,
        on_loading_change=events["loading"].append,
        on_no_geodata=events["no_geodata"].append,
        on_notice=events["notice"].append,
    )


@pytest.fixture()
def async_cohort_map(config, fetch, surface_factory, events) -> AsyncCohortMap:
    return AsyncCohortMap(
        config,
        fetch=fetch,
        surface_factory=surface_factory,
        on_loading_change=events["loading"].append,
        on_no_geodata=events["no_geodata"].append,
        on_notice=events["notice"].append,
    )
