from __future__ import annotations

import logging
import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Data directories
DATA_DIR = Path(os.getenv("CELLATLAS_DATA_DIR", str(PROJECT_ROOT / "data")))
EXPORTS_DIR = Path(os.getenv("CELLATLAS_EXPORTS_DIR", str(DATA_DIR / "exports")))

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Cell Atlas Conversational Chatbot"
APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# AtlasApprox API configuration
#
# All endpoints live under {ATLASAPPROX_API_URL}/{ATLASAPPROX_API_VERSION}/:
#   celltypes, average, fraction_detected, markers, highest_measurement,
#   celltypexorgan, similar_features, sequences
#
# Feature lists are sent comma-joined in the 'features' query parameter.
# ---------------------------------------------------------------------------

ATLASAPPROX_API_URL = os.getenv("ATLASAPPROX_API_URL", "https://api.atlasapprox.org").strip().rstrip("/")
ATLASAPPROX_API_VERSION = os.getenv("ATLASAPPROX_API_VERSION", "v1").strip()
ATLASAPPROX_TIMEOUT_SECONDS = int(os.getenv("ATLASAPPROX_TIMEOUT_SECONDS", "60"))

# ---------------------------------------------------------------------------
# Resolver defaults
# ---------------------------------------------------------------------------

HIGHEST_MEASUREMENT_TOP_N = int(os.getenv("HIGHEST_MEASUREMENT_TOP_N", "10"))
MARKERS_TOP_N = int(os.getenv("MARKERS_TOP_N", "10"))
SIMILAR_FEATURES_TOP_N = int(os.getenv("SIMILAR_FEATURES_TOP_N", "10"))
SIMILAR_FEATURES_METHOD = os.getenv("SIMILAR_FEATURES_METHOD", "correlation").strip()

# Used when the API response does not carry its own 'unit'
DEFAULT_VALUE_UNIT = "counts per ten thousand"

# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

ATLAS_LINK_URL = os.getenv("ATLAS_LINK_URL", "https://atlasapprox.org").strip()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once for the entry point (streamlit app / main.py).
    Library modules only ever call logging.getLogger(__name__).
    """
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
