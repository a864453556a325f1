#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Datenmodell für Index-Zeitreihen (NDVI/NDWI/NSMI) und Plot-Datasets.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

INDEX_ORDER: Tuple[str, ...] = ("NDVI", "NDWI", "NSMI")
TIER_ORDER: Tuple[str, ...] = ("raw", "d1", "d2")

INDEX_COLORS = {
    "NDVI": "#10b981",
    "NDWI": "#3b82f6",
    "NSMI": "#f59e0b",
}

INDEX_LABELS = {
    "NDVI": "Vegetation Index",
    "NDWI": "Water Index",
    "NSMI": "Soil Moisture Index",
}


def field_name(index_name: str, tier: str) -> str:
    # raw -> "NDVI", d1 -> "NDVI_d1", d2 -> "NDVI_d2"
    if tier == "raw":
        return index_name
    return f"{index_name}_{tier}"


ALL_FIELDS: Tuple[str, ...] = tuple(field_name(i, t) for i in INDEX_ORDER for t in TIER_ORDER)


def parse_calendar_date(value: Any) -> Optional[date]:
    """
    ISO calendar date -> date. Accepts "YYYY-MM-DD" and ISO datetimes ("2020-01-05T10:31:00Z").
    Returns None for empty/unparseable input instead of raising.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v):
        return None
    return v


@dataclass(frozen=True)
class TimeSeriesPoint:
    date: str
    NDVI: Optional[float] = None
    NDWI: Optional[float] = None
    NSMI: Optional[float] = None
    NDVI_d1: Optional[float] = None
    NDWI_d1: Optional[float] = None
    NSMI_d1: Optional[float] = None
    NDVI_d2: Optional[float] = None
    NDWI_d2: Optional[float] = None
    NSMI_d2: Optional[float] = None

    def get(self, name: str) -> Optional[float]:
        if name not in ALL_FIELDS:
            return None
        v = getattr(self, name)
        if v is None or not math.isfinite(v):
            return None
        return v

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"date": self.date}
        for f in ALL_FIELDS:
            out[f] = self.get(f)
        return out


def parse_series(rows: Optional[Iterable[Dict[str, Any]]]) -> List[TimeSeriesPoint]:
    """
    Backend rows -> TimeSeriesPoint list, sorted ascending by calendar date.
    """
    if rows is None:
        return []
    if isinstance(rows, (str, bytes, dict)):
        raise ValueError("Zeitreihe muss eine Liste von Objekten sein.")

    points: List[Tuple[date, TimeSeriesPoint]] = []
    for i, r in enumerate(rows):
        if not isinstance(r, dict):
            raise ValueError(f"Zeitreihen-Eintrag {i} ist kein Objekt.")
        raw_date = r.get("date")
        d = parse_calendar_date(raw_date)
        if d is None:
            raise ValueError(f"Zeitreihen-Eintrag {i} ohne gültiges Datum: {raw_date!r}")
        values = {f: _to_float(r.get(f)) for f in ALL_FIELDS}
        points.append((d, TimeSeriesPoint(date=str(raw_date).strip(), **values)))

    # stable sort keeps backend order for equal dates
    points.sort(key=lambda t: t[0])
    return [p for _, p in points]


@dataclass(frozen=True)
class DateRange:
    start: Optional[str] = None
    end: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool((self.start or "").strip()) and bool((self.end or "").strip())

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "DateRange":
        payload = payload or {}
        start = payload.get("start")
        end = payload.get("end")
        return cls(
            start=str(start).strip() if start is not None else None,
            end=str(end).strip() if end is not None else None,
        )


@dataclass(frozen=True)
class OverlayState:
    enabled: bool = False
    range1: DateRange = field(default_factory=DateRange)
    range2: DateRange = field(default_factory=DateRange)

    @property
    def is_active(self) -> bool:
        return bool(self.enabled) and self.range1.is_complete and self.range2.is_complete


@dataclass(frozen=True)
class PlotStyle:
    solid: bool
    tier: str
    color_key: str

    def to_dict(self) -> Dict[str, Any]:
        return {"solid": self.solid, "tier": self.tier, "color_key": self.color_key}


@dataclass(frozen=True)
class PlotDataset:
    label: str
    values: Tuple[Optional[float], ...]
    style: PlotStyle

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "values": list(self.values), "style": self.style.to_dict()}
