import sys
from datetime import datetime, timezone
from pathlib import Path

# Make src/ importable on RTD/local
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

project = "ohdsi.cohortmap"
author = "OHDSI"

START_YEAR = 2026
YEAR = datetime.now(timezone.utc).year
years = f"{START_YEAR}-{YEAR}" if YEAR > START_YEAR else f"{YEAR}"
copyright = f"{years}, OHDSI"  # noqa: A001
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "myst_parser",
]

html_theme = "furo"

# Autodoc/Autosummary
autosummary_generate = True
autodoc_typehints = "description"
# Google style
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_use_param = True
napoleon_use_rtype = False

napoleon_custom_sections = [
    "Public API",
    "Quick Start",
]

autodoc_default_options = {
    "undoc-members": False,
    "private-members": False,  # don't show _private names
    "imported-members": False,  # don't show imported members
    "member-order": "bysource",
}

# Make __all__ control what is considered public in modules
autosummary_ignore_module_all = False

# Mock heavy/GUI deps so RTD can import modules
autodoc_mock_imports = [
    "ipyleaflet",
    "ipywidgets",
    "shapely",
    "geopandas",
]
