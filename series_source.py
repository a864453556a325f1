#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Backend-Client: Zeitreihe für einen Kartenpunkt und Composite-Kacheln für eine AOI.

The backend does the Earth-observation work (compositing, cloud masking, index
computation). This module only validates requests, calls it, and prepares the
returned series for plotting.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import requests
from shapely.geometry import Point as GeoPoint, mapping, shape

from config import BACKEND_URL, DEFAULT_SCALE_M, HTTP_TIMEOUT
from series_model import INDEX_ORDER, TimeSeriesPoint, parse_calendar_date, parse_series

logger = logging.getLogger(__name__)

COMPOSITE_TYPES = ("NDVI", "NDWI", "NSMI", "TRUE_COLOR")


def _http_request_json(method: str, url: str, **kwargs) -> Dict[str, Any]:
    try:
        r = requests.request(method, url, timeout=HTTP_TIMEOUT, **kwargs)
    except Exception as e:
        raise RuntimeError(f"Backend Request fehlgeschlagen: {e}")

    ct = (r.headers.get("Content-Type") or "").lower()
    txt = r.text or ""
    if not r.ok:
        # try json body
        try:
            js = r.json()
        except Exception:
            js = {"raw": txt[:1200]}
        raise RuntimeError(f"Backend Request fehlgeschlagen: Upstream HTTP {r.status_code}: {js}")

    if "json" not in ct:
        raise RuntimeError(f"Backend lieferte kein JSON (Content-Type={ct}). Auszug: {txt[:300]}")

    try:
        return r.json()
    except Exception as e:
        raise RuntimeError(f"Backend JSON Parse Error: {e}. Auszug: {txt[:300]}")


def _checked(js: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(js, dict):
        raise RuntimeError("Backend-Antwort ist kein JSON-Objekt.")
    if not js.get("success"):
        raise RuntimeError(js.get("error") or "Backend meldet einen unbekannten Fehler.")
    return js


# -------------------------------
# Input validation
# -------------------------------

def parse_point(payload: Any) -> GeoPoint:
    """
    {"lat": .., "lng": ..} or GeoJSON Point -> shapely Point (x=lng, y=lat).
    """
    if not isinstance(payload, dict):
        raise ValueError("Punkt muss ein JSON-Objekt sein.")

    if payload.get("type") == "Point":
        try:
            pt = shape(payload)
        except Exception as e:
            raise ValueError(f"Ungültiger GeoJSON-Punkt: {e}")
    elif "lat" in payload and ("lng" in payload or "lon" in payload):
        try:
            lat = float(payload["lat"])
            lng = float(payload["lng"] if "lng" in payload else payload["lon"])
        except (TypeError, ValueError):
            raise ValueError("lat/lng müssen Zahlen sein.")
        pt = GeoPoint(lng, lat)
    else:
        raise ValueError("Punkt braucht lat/lng oder GeoJSON type=Point.")

    if pt.is_empty:
        raise ValueError("Punkt ist leer.")
    if not (-90.0 <= pt.y <= 90.0) or not (-180.0 <= pt.x <= 180.0):
        raise ValueError(f"Koordinaten außerhalb des gültigen Bereichs: lat={pt.y}, lng={pt.x}")
    return pt


def parse_aoi(payload: Any):
    if payload is None:
        raise ValueError("Kein GeoJSON übergeben.")
    if not isinstance(payload, dict):
        raise ValueError("GeoJSON muss ein JSON-Objekt sein.")

    t = payload.get("type")
    if t == "Feature":
        geom = payload.get("geometry")
        if not geom:
            raise ValueError("Feature ohne geometry.")
    elif t == "FeatureCollection":
        feats = payload.get("features") or []
        if len(feats) != 1:
            raise ValueError("FeatureCollection muss genau 1 Feature enthalten.")
        geom = feats[0].get("geometry")
        if not geom:
            raise ValueError("Feature ohne geometry.")
    elif t in ("Polygon", "MultiPolygon"):
        geom = payload
    else:
        raise ValueError(f"Nicht unterstützter GeoJSON-Typ: {t}. Erlaubt: Feature, FeatureCollection(1), Polygon, MultiPolygon.")

    try:
        g = shape(geom)
    except Exception as e:
        raise ValueError(f"Ungültige Geometrie: {e}")
    if g.is_empty:
        raise ValueError("Geometrie ist leer.")
    if g.geom_type not in ("Polygon", "MultiPolygon"):
        raise ValueError(f"Nur Polygon/MultiPolygon erlaubt (bekommen: {g.geom_type}).")
    return g


def _check_dates(start_date: str, end_date: str) -> Tuple[str, str]:
    s = parse_calendar_date(start_date)
    e = parse_calendar_date(end_date)
    if s is None or e is None:
        raise ValueError(f"Ungültiges Datum: start_date={start_date!r}, end_date={end_date!r}")
    if s > e:
        raise ValueError(f"start_date liegt nach end_date: {s.isoformat()} > {e.isoformat()}")
    return s.isoformat(), e.isoformat()


def _check_cloud(max_cloud: Any) -> float:
    try:
        v = float(max_cloud)
    except (TypeError, ValueError):
        raise ValueError(f"max_cloud muss eine Zahl sein: {max_cloud!r}")
    if not (0.0 <= v <= 100.0):
        raise ValueError(f"max_cloud muss zwischen 0 und 100 liegen: {v}")
    return v


# -------------------------------
# Series preparation
# -------------------------------

def _column(series: List[TimeSeriesPoint], name: str) -> np.ndarray:
    return np.array([np.nan if p.get(name) is None else p.get(name) for p in series], dtype=np.float64)


def _as_optional(v: float) -> Optional[float]:
    return float(v) if np.isfinite(v) else None


def fill_derivatives(series: List[TimeSeriesPoint]) -> List[TimeSeriesPoint]:
    """
    First/second differences for indices whose derivative columns the backend left empty.
    Edge samples and neighbours of gaps stay None; supplied values are kept verbatim.
    """
    n = len(series)
    if n == 0:
        return []

    updates: List[Dict[str, Optional[float]]] = [{} for _ in range(n)]
    for idx in INDEX_ORDER:
        raw = _column(series, idx)

        if np.all(np.isnan(_column(series, f"{idx}_d1"))):
            d1 = np.full(n, np.nan)
            if n > 1:
                d1[1:] = np.diff(raw)
            for i in range(n):
                updates[i][f"{idx}_d1"] = _as_optional(d1[i])

        if np.all(np.isnan(_column(series, f"{idx}_d2"))):
            d2 = np.full(n, np.nan)
            if n > 2:
                d2[2:] = np.diff(raw, n=2)
            for i in range(n):
                updates[i][f"{idx}_d2"] = _as_optional(d2[i])

    return [replace(p, **u) if u else p for p, u in zip(series, updates)]


def _stats(arr: np.ndarray) -> Dict[str, Any]:
    v = arr[np.isfinite(arr)]
    if v.size == 0:
        return {"count": 0, "mean": None, "median": None, "std": None, "min": None, "max": None}
    return {
        "count": int(v.size),
        "mean": float(np.mean(v)),
        "median": float(np.median(v)),
        "std": float(np.std(v)),
        "min": float(np.min(v)),
        "max": float(np.max(v)),
    }


def summary_stats(series: List[TimeSeriesPoint]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    per_index: Dict[str, Any] = {}
    for idx in INDEX_ORDER:
        st = _stats(_column(series, idx))
        per_index[idx] = st
        out[f"avg_{idx.lower()}"] = round(st["mean"], 4) if st["mean"] is not None else None
    out["indices"] = per_index
    return out


# -------------------------------
# Backend calls
# -------------------------------

def fetch_timeseries(
    point: GeoPoint,
    start_date: str,
    end_date: str,
    max_cloud: float,
) -> Tuple[List[TimeSeriesPoint], Dict[str, Any]]:
    start_date, end_date = _check_dates(start_date, end_date)
    max_cloud = _check_cloud(max_cloud)

    body = {
        "point": {"lat": point.y, "lng": point.x},
        "start_date": start_date,
        "end_date": end_date,
        "max_cloud": max_cloud,
    }
    logger.info("timeseries request lat=%.5f lng=%.5f %s..%s cloud<%s", point.y, point.x, start_date, end_date, max_cloud)
    js = _checked(_http_request_json("POST", f"{BACKEND_URL}/api/timeseries", json=body))

    series = fill_derivatives(parse_series(js.get("data") or []))

    stats = summary_stats(series)
    upstream = js.get("statistics")
    if isinstance(upstream, dict):
        # backend averages win over the local ones
        for k in ("avg_ndvi", "avg_ndwi", "avg_nsmi"):
            if upstream.get(k) is not None:
                stats[k] = upstream[k]

    logger.info("timeseries received %d points", len(series))
    return series, stats


def fetch_composite(
    aoi,
    start_date: str,
    end_date: str,
    max_cloud: float,
    index_type: str,
    scale: int = DEFAULT_SCALE_M,
) -> Dict[str, Any]:
    index_type = (index_type or "").strip().upper()
    if index_type not in COMPOSITE_TYPES:
        raise ValueError(f"Unbekannter Index: {index_type}. Erlaubt: {', '.join(COMPOSITE_TYPES)}")
    start_date, end_date = _check_dates(start_date, end_date)
    max_cloud = _check_cloud(max_cloud)

    body = {
        "geometry": mapping(aoi),
        "start_date": start_date,
        "end_date": end_date,
        "max_cloud": max_cloud,
        "index_type": index_type,
        "scale": int(scale),
    }
    logger.info("composite request %s %s..%s cloud<%s", index_type, start_date, end_date, max_cloud)
    js = _checked(_http_request_json("POST", f"{BACKEND_URL}/api/composite", json=body))

    tile_url = js.get("tile_url")
    if not tile_url:
        raise RuntimeError("Backend lieferte keine tile_url.")
    return {"tile_url": tile_url, "download_url": js.get("download_url"), "index_type": index_type}
