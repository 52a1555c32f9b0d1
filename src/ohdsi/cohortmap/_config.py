# Default configuration

API_BASE_URL = "http://localhost:8080/WebAPI/"

TILES_SERVER_URL = "https://{s}.tile.openstreetmap.org"
TILE_PATH = "/{z}/{x}/{y}.png"
TILE_MAX_ZOOM = 18

REQUEST_TIMEOUT_SECONDS = 60

FIT_PADDING = (50, 50)  # pixels, [x, y]

CLUSTER_ICON_SIZE = (35, 35)

NO_GEODATA_MESSAGE = "No geo-location data available"

TRANSPARENT = "rgba(0,0,0,0)"

# Density heat-scale, checked in order. Legends depend on the exact break
# values, keep in sync with the portal. The 1e8 break follows 0.1, so it is
# never reached and positive values below 0.1 take DENSITY_COLOR_POSITIVE.
DENSITY_COLOR_STEPS = [
    (10000, "#800026"),
    (1000, "#BD0026"),
    (100, "#E31A1C"),
    (10, "#FC4E2A"),
    (1, "#FD8D3C"),
    (0.1, "#FEB24C"),
    (1e8, "#FED976"),
]
DENSITY_COLOR_POSITIVE = "#fff7d4"

DENSITY_STYLE = {
    "fill": True,
    "weight": 2,
    "opacity": 1,
    "color": "red",
    "dashArray": "3",
    "fillOpacity": 0.5,
    "fillRule": "nonzero",
}
