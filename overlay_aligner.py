#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Overlay-Modus: zwei Datumsbereiche derselben Zeitreihe punktweise vergleichen.

The two sub-ranges are aligned by ordinal position (1st sample vs. 1st sample,
2nd vs. 2nd, ...), not by calendar offset from each range start. Ranges with
different sampling density are therefore compared sample-to-sample.
"""

from typing import List, Optional, Sequence, Tuple

from series_model import DateRange, TimeSeriesPoint, parse_calendar_date


def filter_by_range(series: Sequence[TimeSeriesPoint], date_range: DateRange) -> List[TimeSeriesPoint]:
    """
    Inclusive filter start <= point.date <= end on calendar dates.
    Missing/unparseable bounds or start > end -> [] (no exception).
    """
    start = parse_calendar_date(date_range.start)
    end = parse_calendar_date(date_range.end)
    if start is None or end is None or start > end:
        return []

    out: List[TimeSeriesPoint] = []
    for p in series:
        d = parse_calendar_date(p.date)
        if d is None:
            continue
        if start <= d <= end:
            out.append(p)
    return out


def align(
    filtered1: Sequence[TimeSeriesPoint],
    filtered2: Sequence[TimeSeriesPoint],
    field: str,
) -> Tuple[List[Optional[float]], List[Optional[float]]]:
    n = max(len(filtered1), len(filtered2))
    values1 = [filtered1[i].get(field) if i < len(filtered1) else None for i in range(n)]
    values2 = [filtered2[i].get(field) if i < len(filtered2) else None for i in range(n)]
    return values1, values2


def ordinal_labels(n: int) -> List[str]:
    return [f"Point {i}" for i in range(1, max(0, int(n)) + 1)]
