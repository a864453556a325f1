#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Konfiguration über Umgebungsvariablen (Cloud Run friendly).
"""

import os
from pathlib import Path

APP_TITLE = os.getenv("APP_TITLE", "s2-index-dashboard – NDVI/NDWI/NSMI Zeitreihen")

# Backend that computes composites and point time series
BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:5000").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "60"))

DEFAULT_START_DATE = os.getenv("DEFAULT_START_DATE", "2020-01-01")
DEFAULT_END_DATE = os.getenv("DEFAULT_END_DATE", "2020-12-31")
DEFAULT_MAX_CLOUD = float(os.getenv("DEFAULT_MAX_CLOUD", "30"))
DEFAULT_SCALE_M = int(os.getenv("DEFAULT_SCALE_M", "10"))

# Floating panel geometry (px)
PANEL_WIDTH_PX = int(os.getenv("PANEL_WIDTH_PX", "460"))
PANEL_HEIGHT_PX = int(os.getenv("PANEL_HEIGHT_PX", "540"))
PANEL_MARGIN_PX = int(os.getenv("PANEL_MARGIN_PX", "20"))
PANEL_MIN_TOP_PX = int(os.getenv("PANEL_MIN_TOP_PX", "10"))
PANEL_MIN_BOTTOM_PX = int(os.getenv("PANEL_MIN_BOTTOM_PX", "10"))
DRAG_HANDLE_HEIGHT_PX = int(os.getenv("DRAG_HANDLE_HEIGHT_PX", "48"))

# Temp cache (CSV exports)
TMP_DIR = Path(os.getenv("TMP_DIR", "/tmp")) / "s2_dashboard_cache"
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))
MAX_CACHE_ITEMS = int(os.getenv("MAX_CACHE_ITEMS", "80"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
