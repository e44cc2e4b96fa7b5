"""
Configuration for the SpendGraph entity-flow engine.

This module is the single source of truth for every tunable constant used by
the graph engine, the layout adapters and the dashboard.  Import directly from
here in all ``spendgraph`` modules and scripts.

Deployment-specific values (database location, default theme, log level) are
read from the environment, with a ``.env`` file picked up by
:func:`dotenv.load_dotenv` when present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ============================================================================
# ENVIRONMENT
# ============================================================================
DATABASE_PATH: Path = Path(os.getenv("SPENDGRAPH_DB_PATH", "data/despesas.duckdb"))

# "dark" or "light"
DEFAULT_THEME: str = os.getenv("SPENDGRAPH_THEME", "dark")

LOG_LEVEL: str = os.getenv("SPENDGRAPH_LOG_LEVEL", "INFO")

# Name of the expenses table queried by the templates in spendgraph.data.loader.
EXPENSES_TABLE: str = os.getenv("SPENDGRAPH_TABLE", "despesas")

# ============================================================================
# HIGHLIGHTING
# ============================================================================
# Opacity of emphasized elements (focused, connected, search-matched).
FULL_OPACITY: float = 1.0

# Opacity of every element outside the current focus/search partition.
DIM_OPACITY: float = 0.3

# Stroke width of the focused node's outline.
SELECTION_STROKE_WIDTH: float = 3.0

# ============================================================================
# DEBOUNCE DELAYS (seconds)
# ============================================================================
SEARCH_DEBOUNCE_SECONDS: float = 0.3
SLIDER_DEBOUNCE_SECONDS: float = 0.5

# ============================================================================
# FLOW (SANKEY) LAYOUT
# ============================================================================
SANKEY_WIDTH: float = 1000.0
SANKEY_HEIGHT: float = 600.0
SANKEY_MARGIN: float = 10.0
SANKEY_NODE_WIDTH: float = 20.0
SANKEY_NODE_PADDING: float = 15.0

# Flow node labels longer than this are cut and suffixed with "...".
SANKEY_LABEL_MAX_LENGTH: int = 30

# Number of suppliers (by total received) included in the flow query.
SANKEY_TOP_SUPPLIERS: int = 25

# ============================================================================
# NETWORK (FORCE) LAYOUT
# ============================================================================
NETWORK_WIDTH: float = 1200.0
NETWORK_HEIGHT: float = 600.0

LINK_DISTANCE: float = 150.0
LINK_STRENGTH: float = 0.1
CHARGE_STRENGTH: float = -300.0

# The force slider value is multiplied by this factor (and negated) to obtain
# the many-body charge strength.
FORCE_STRENGTH_FACTOR: float = 50.0
# Slider position matching CHARGE_STRENGTH (6 * -50 = -300).
DEFAULT_FORCE_STRENGTH: int = 6

# Number of position updates the spring layout runs per simulation.
SIMULATION_TICKS: int = 50

# Zoom range accepted from gesture callbacks.
ZOOM_SCALE_EXTENT: tuple = (0.1, 4.0)

# Nodes above this total value always show their label.
LABEL_VALUE_THRESHOLD: float = 100_000.0

# ============================================================================
# NETWORK FILTERS
# ============================================================================
# Fraction of most-connected nodes kept by the density filter.
DENSITY_TOP_PERCENTILE: float = 0.2

# Number of nodes kept by the top-expenses filter.
TOP_EXPENSES_COUNT: int = 15

# ============================================================================
# DEFAULT CONTROLS
# ============================================================================
DEFAULT_MIN_VALUE: float = 0.0
DEFAULT_MAX_VALUE: float = 100_000.0
