"""Value types shared by the controller, its fetcher and the rendering surface."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from ._config import NO_GEODATA_MESSAGE

Corners = tuple[tuple[float, float], tuple[float, float]]
FeatureCollection = dict[str, Any]


@dataclass(frozen=True)
class BoundingBox:
    """Viewport or cohort extent, in degrees.

    ``east_longitude``/``west_longitude`` may wrap at ±180°; no normalisation
    is attempted.
    """

    north_latitude: float
    south_latitude: float
    east_longitude: float
    west_longitude: float

    def __post_init__(self):
        if self.north_latitude < self.south_latitude:
            raise ValueError(
                f"north_latitude ({self.north_latitude}) must not be below "
                f"south_latitude ({self.south_latitude})"
            )

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "BoundingBox":
        """Parse the GIS service's ``{northLatitude, southLatitude, ...}`` payload."""
        return cls(
            north_latitude=float(data["northLatitude"]),
            south_latitude=float(data["southLatitude"]),
            east_longitude=float(data["eastLongitude"]),
            west_longitude=float(data["westLongitude"]),
        )

    @classmethod
    def from_corners(cls, south_west: Sequence[float], north_east: Sequence[float]) -> "BoundingBox":
        """Build a box from ``(lat, lng)`` south-west and north-east corners."""
        return cls(
            north_latitude=float(north_east[0]),
            south_latitude=float(south_west[0]),
            east_longitude=float(north_east[1]),
            west_longitude=float(south_west[1]),
        )

    def corners(self) -> list[list[float]]:
        """Return ``[[south, west], [north, east]]``, the order Leaflet expects."""
        return [
            [self.south_latitude, self.west_longitude],
            [self.north_latitude, self.east_longitude],
        ]

    def to_params(self) -> dict[str, float]:
        """Flatten into the query parameters understood by the density/clusters endpoints."""
        return {
            "northLatitude": self.north_latitude,
            "westLongitude": self.west_longitude,
            "southLatitude": self.south_latitude,
            "eastLongitude": self.east_longitude,
        }


@dataclass(frozen=True)
class CohortSelection:
    cohort_id: Any
    source_key: str


class MapState(Enum):
    """Lifecycle of a controller for the current cohort selection."""

    IDLE = "idle"
    CHECKING = "checking"
    NO_GEODATA = "no_geodata"
    BOUNDS_LOADING = "bounds_loading"
    LOADING = "loading"
    RENDERED = "rendered"
    FAILED = "failed"

    @property
    def loading(self) -> bool:
        return self in (MapState.CHECKING, MapState.BOUNDS_LOADING, MapState.LOADING)

    @property
    def no_geodata(self) -> bool:
        return self is MapState.NO_GEODATA


# Allowed moves. set_params() may reset any state to IDLE and is not listed.
# A request started while another is in flight supersedes it.
TRANSITIONS: dict[MapState, frozenset[MapState]] = {
    MapState.IDLE: frozenset({MapState.CHECKING}),
    MapState.CHECKING: frozenset(
        {MapState.NO_GEODATA, MapState.BOUNDS_LOADING, MapState.FAILED, MapState.CHECKING, MapState.LOADING}
    ),
    MapState.NO_GEODATA: frozenset({MapState.CHECKING}),
    MapState.BOUNDS_LOADING: frozenset(
        {MapState.RENDERED, MapState.FAILED, MapState.CHECKING, MapState.LOADING}
    ),
    MapState.LOADING: frozenset(
        {MapState.RENDERED, MapState.FAILED, MapState.CHECKING, MapState.LOADING}
    ),
    MapState.RENDERED: frozenset({MapState.CHECKING, MapState.LOADING}),
    MapState.FAILED: frozenset({MapState.CHECKING, MapState.LOADING}),
}


class RenderOutcome(Enum):
    """What an ``update_*`` call did to the map layers."""

    RENDERED = "rendered"
    EMPTY = "empty"
    STALE = "stale"


@dataclass(frozen=True)
class EmptyResultNotice:
    """A zero-feature result, handed to the hosting UI instead of a blocking alert.

    Attributes:
        kind: ``"density"`` or ``"clusters"``.
        selection: The cohort selection the request was made for.
        message: Text to show to the user.
    """

    kind: str
    selection: Optional[CohortSelection]
    message: str = NO_GEODATA_MESSAGE
