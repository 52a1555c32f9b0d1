"""Runtime configuration for the cohort map controller."""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ._config import (
    API_BASE_URL,
    FIT_PADDING,
    REQUEST_TIMEOUT_SECONDS,
    TILE_MAX_ZOOM,
    TILE_PATH,
    TILES_SERVER_URL,
)


def _default_gis_service_url() -> str:
    return API_BASE_URL + "gis"


@dataclass(frozen=True)
class CohortMapConfig:
    """Settings shared by the controller, its fetcher and its rendering surface.

    Attributes:
        gis_service_url: Base URL of the GIS service. Defaults to the API base
            URL followed by ``gis``.
        tiles_server_url: Tile host; ``/{z}/{x}/{y}.png`` is appended. Defaults to
            the public OpenStreetMap host.
        token: Bearer credential sent with every request. ``None`` sends no
            ``Authorization`` header.
        action_location: Value of the ``Action-Location`` header, identifying the
            view the requests originate from.
        request_timeout: Total timeout for a single request, in seconds.
        max_zoom: Maximum zoom level of the basemap tile layer.
        fit_padding: Padding in pixels applied when fitting the viewport to the
            cohort bounds.
    """

    gis_service_url: str = field(default_factory=_default_gis_service_url)
    tiles_server_url: str = TILES_SERVER_URL
    token: Optional[str] = None
    action_location: str = ""
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    max_zoom: int = TILE_MAX_ZOOM
    fit_padding: tuple[int, int] = FIT_PADDING

    @classmethod
    def from_app_config(cls, app_config: Optional[Mapping[str, Any]] = None, **overrides) -> "CohortMapConfig":
        """Build a config from the web application's merged settings object.

        ``gisServiceUrl`` wins over ``api.url + "gis"``; ``tilesServerUrl`` wins
        over the OpenStreetMap default. Keyword overrides (``token``,
        ``action_location``...) are applied last.

        Args:
            app_config: Mapping shaped like the portal's ``appConfig``.
            **overrides: Field values that take precedence over ``app_config``.

        Returns:
            A new ``CohortMapConfig``.
        """
        app_config = app_config or {}
        api = app_config.get("api") or {}

        values: dict[str, Any] = {}
        if app_config.get("gisServiceUrl"):
            values["gis_service_url"] = app_config["gisServiceUrl"]
        elif api.get("url"):
            values["gis_service_url"] = api["url"] + "gis"
        if app_config.get("tilesServerUrl"):
            values["tiles_server_url"] = app_config["tilesServerUrl"]

        values.update(overrides)
        return cls(**values)

    @property
    def tile_url(self) -> str:
        """Tile URL template handed to the basemap layer."""
        return self.tiles_server_url + TILE_PATH
