#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Zeitreihe + Filter -> render-fertige Plot-Datasets.

compose() is a pure function of (series, index_sel, deriv_sel, overlay). The
dataset order is fixed so legend entries and colors stay stable between calls:

    NDVI, NDWI, NSMI  ->  raw, d1, d2  ->  range1, range2 (overlay only)
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from overlay_aligner import align, filter_by_range, ordinal_labels
from series_model import (
    INDEX_ORDER,
    TIER_ORDER,
    DateRange,
    OverlayState,
    PlotDataset,
    PlotStyle,
    TimeSeriesPoint,
    field_name,
)


@dataclass(frozen=True)
class ComposedChart:
    labels: Tuple[str, ...]
    datasets: Tuple[PlotDataset, ...]
    overlay_active: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "labels": list(self.labels),
            "datasets": [d.to_dict() for d in self.datasets],
            "mode": "overlay" if self.overlay_active else "series",
        }


def _active_pairs(index_sel: Mapping[str, bool], deriv_sel: Mapping[str, bool]) -> List[Tuple[str, str]]:
    return [
        (idx, tier)
        for idx in INDEX_ORDER
        if index_sel.get(idx, False)
        for tier in TIER_ORDER
        if deriv_sel.get(tier, False)
    ]


def _range_label(fname: str, date_range: DateRange) -> str:
    return f"{fname} ({date_range.start} – {date_range.end})"


def compose(
    series: Sequence[TimeSeriesPoint],
    index_sel: Mapping[str, bool],
    deriv_sel: Mapping[str, bool],
    overlay: Optional[OverlayState] = None,
) -> ComposedChart:
    overlay = overlay or OverlayState()
    active = overlay.is_active

    if not series:
        return ComposedChart(labels=(), datasets=(), overlay_active=active)

    pairs = _active_pairs(index_sel, deriv_sel)

    if not active:
        labels = tuple(p.date for p in series)
        datasets = tuple(
            PlotDataset(
                label=field_name(idx, tier),
                values=tuple(p.get(field_name(idx, tier)) for p in series),
                style=PlotStyle(solid=True, tier=tier, color_key=idx),
            )
            for idx, tier in pairs
        )
        return ComposedChart(labels=labels, datasets=datasets, overlay_active=False)

    # filter once per range; alignment per field below
    sub1 = filter_by_range(series, overlay.range1)
    sub2 = filter_by_range(series, overlay.range2)
    n = max(len(sub1), len(sub2))

    out: List[PlotDataset] = []
    for idx, tier in pairs:
        fname = field_name(idx, tier)
        values1, values2 = align(sub1, sub2, fname)
        out.append(PlotDataset(
            label=_range_label(fname, overlay.range1),
            values=tuple(values1),
            style=PlotStyle(solid=True, tier=tier, color_key=idx),
        ))
        out.append(PlotDataset(
            label=_range_label(fname, overlay.range2),
            values=tuple(values2),
            style=PlotStyle(solid=False, tier=tier, color_key=idx),
        ))

    return ComposedChart(labels=tuple(ordinal_labels(n)), datasets=tuple(out), overlay_active=True)
