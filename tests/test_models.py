"""Tests for value types, the density colour scale and configuration."""

from __future__ import annotations

import math

import pytest

from ohdsi.cohortmap import BoundingBox, CohortMapConfig, MapState
from ohdsi.cohortmap._base import CohortMapBase
from ohdsi.cohortmap._models import TRANSITIONS

from .conftest import BOUNDS


class TestBoundingBox:
    def test_from_json(self) -> None:
        box = BoundingBox.from_json(BOUNDS)
        assert box.north_latitude == 42.5
        assert box.west_longitude == -80.5

    def test_corners_are_south_west_then_north_east(self) -> None:
        assert BoundingBox.from_json(BOUNDS).corners() == [[38.25, -80.5], [42.5, -71.0]]

    def test_params_order(self) -> None:
        params = BoundingBox.from_json(BOUNDS).to_params()
        assert list(params) == ["northLatitude", "westLongitude", "southLatitude", "eastLongitude"]

    def test_from_corners(self) -> None:
        box = BoundingBox.from_corners((1.0, 2.0), (3.0, 4.0))
        assert box == BoundingBox(north_latitude=3.0, south_latitude=1.0, east_longitude=4.0, west_longitude=2.0)

    def test_north_below_south_rejected(self) -> None:
        with pytest.raises(ValueError):
            BoundingBox(north_latitude=1.0, south_latitude=2.0, east_longitude=0.0, west_longitude=0.0)


class TestMapState:
    @pytest.mark.parametrize("state", [MapState.CHECKING, MapState.BOUNDS_LOADING, MapState.LOADING])
    def test_loading_states(self, state) -> None:
        assert state.loading
        assert not state.no_geodata

    @pytest.mark.parametrize("state", [MapState.IDLE, MapState.RENDERED, MapState.FAILED])
    def test_settled_states(self, state) -> None:
        assert not state.loading

    def test_no_geodata_only_leads_to_checking(self) -> None:
        assert TRANSITIONS[MapState.NO_GEODATA] == frozenset({MapState.CHECKING})

    def test_every_state_has_transitions(self) -> None:
        assert set(TRANSITIONS) == set(MapState)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (-5, "rgba(0,0,0,0)"),
        (0, "rgba(0,0,0,0)"),
        (math.nan, "rgba(0,0,0,0)"),
        (1e-09, "#fff7d4"),
        (1e-08, "#fff7d4"),
        (0.05, "#fff7d4"),
        (0.0999, "#fff7d4"),
        (0.1, "#FEB24C"),
        (0.99, "#FEB24C"),
        (1, "#FD8D3C"),
        (10, "#FC4E2A"),
        (100, "#E31A1C"),
        (1000, "#BD0026"),
        (9999.99, "#BD0026"),
        (10000, "#800026"),
        (15000, "#800026"),
    ],
)
def test_density_color(value, expected) -> None:
    assert CohortMapBase.density_color(value) == expected


def test_density_color_is_monotonic() -> None:
    scale = ["rgba(0,0,0,0)", "#fff7d4", "#FEB24C", "#FD8D3C", "#FC4E2A", "#E31A1C", "#BD0026", "#800026"]
    values = [0, 1e-10, 1e-08, 0.5, 5, 50, 500, 5000, 50000, 5e8]
    ranks = [scale.index(CohortMapBase.density_color(v)) for v in values]
    assert ranks == sorted(ranks)


def test_density_color_published_examples() -> None:
    assert CohortMapBase.density_color(0) == "rgba(0,0,0,0)"
    assert CohortMapBase.density_color(0.05) == "#fff7d4"
    assert CohortMapBase.density_color(1) == "#FD8D3C"
    assert CohortMapBase.density_color(15000) == "#800026"


@pytest.mark.parametrize("properties", [{"level": None}, {}, None])
def test_density_style_without_level_is_transparent(config, properties) -> None:
    style = CohortMapBase(config, fetch=object()).density_style({"properties": properties})
    assert style["fillColor"] == "rgba(0,0,0,0)"


def test_density_style(config) -> None:
    style = CohortMapBase(config, fetch=object()).density_style({"properties": {"level": "12"}})
    assert style == {
        "fill": True,
        "fillColor": "#FC4E2A",
        "weight": 2,
        "opacity": 1,
        "color": "red",
        "dashArray": "3",
        "fillOpacity": 0.5,
        "fillRule": "nonzero",
    }


class TestConfig:
    def test_defaults(self) -> None:
        config = CohortMapConfig()
        assert config.gis_service_url.endswith("gis")
        assert config.tiles_server_url == "https://{s}.tile.openstreetmap.org"
        assert config.tile_url == "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
        assert config.max_zoom == 18
        assert config.fit_padding == (50, 50)

    def test_from_app_config_prefers_explicit_urls(self) -> None:
        config = CohortMapConfig.from_app_config(
            {
                "api": {"url": "https://atlas.example.org/WebAPI/"},
                "gisServiceUrl": "https://gis.example.org",
                "tilesServerUrl": "https://tiles.example.org",
            }
        )
        assert config.gis_service_url == "https://gis.example.org"
        assert config.tiles_server_url == "https://tiles.example.org"

    def test_from_app_config_derives_gis_url(self) -> None:
        config = CohortMapConfig.from_app_config({"api": {"url": "https://atlas.example.org/WebAPI/"}}, token="t")
        assert config.gis_service_url == "https://atlas.example.org/WebAPI/gis"
        assert config.token == "t"

    def test_default_fetch_uses_config_credential(self) -> None:
        cm = CohortMapBase(CohortMapConfig(token="secret", action_location="#/cohortdefinition/42"))
        assert cm._fetch.headers == {
            "Action-Location": "#/cohortdefinition/42",
            "Authorization": "Bearer secret",
        }
