"""Cohort map: geospatial views of OHDSI cohorts in Jupyter.

This package renders the subject locations of a cohort over a tiled basemap,
either as density regions coloured on a fixed heat scale or as point clusters
that split as you zoom in. Data comes from the WebAPI GIS service, bounded by
the visible viewport and reloaded on demand.

Public API:
    - :class:`~ohdsi.cohortmap.cohortmap.CohortMap` — synchronous controller for notebooks
    - :class:`~ohdsi.cohortmap.cohortmap.AsyncCohortMap` — awaitable counterpart
    - :class:`~ohdsi.cohortmap.config.CohortMapConfig` — service URLs, credential and map settings

Quick Start:

    .. code-block:: python

        from ohdsi.cohortmap import CohortMap, CohortMapConfig

        config = CohortMapConfig.from_app_config(app_config, token=token)
        cm = CohortMap(config)
        cm.set_params(42, "SYNPUF").refresh()
        cm.show()
        cm.update_density_map()

Notes:
    - Modules prefixed with ``_`` are **internal** and may change without notice.
    - The package installs no logging handlers; configure the ``ohdsi.cohortmap``
      logger to see requests and state transitions.
"""

from ._exceptions import CohortMapError, IllegalTransitionError, TransportError
from ._models import BoundingBox, CohortSelection, EmptyResultNotice, MapState, RenderOutcome
from .cohortmap import AsyncCohortMap, CohortMap
from .config import CohortMapConfig

__all__ = [
    "CohortMap",
    "AsyncCohortMap",
    "CohortMapConfig",
    "BoundingBox",
    "CohortSelection",
    "EmptyResultNotice",
    "MapState",
    "RenderOutcome",
    "CohortMapError",
    "TransportError",
    "IllegalTransitionError",
]
