#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
UI-Zustand des Dashboards (Index-/Ableitungs-Auswahl, Overlay-Bereiche).

State is immutable; apply_action(state, action) returns the next state.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from series_model import INDEX_ORDER, TIER_ORDER, DateRange, OverlayState


def _default_index_sel() -> Dict[str, bool]:
    return {k: True for k in INDEX_ORDER}


def _default_deriv_sel() -> Dict[str, bool]:
    return {t: (t == "raw") for t in TIER_ORDER}


@dataclass(frozen=True)
class DashboardState:
    index_sel: Mapping[str, bool] = field(default_factory=_default_index_sel)
    deriv_sel: Mapping[str, bool] = field(default_factory=_default_deriv_sel)
    range1: DateRange = field(default_factory=DateRange)
    range2: DateRange = field(default_factory=DateRange)
    overlay_enabled: bool = False

    def overlay(self) -> OverlayState:
        return OverlayState(enabled=self.overlay_enabled, range1=self.range1, range2=self.range2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index_sel": {k: bool(self.index_sel.get(k, False)) for k in INDEX_ORDER},
            "deriv_sel": {t: bool(self.deriv_sel.get(t, False)) for t in TIER_ORDER},
            "range1": self.range1.to_dict(),
            "range2": self.range2.to_dict(),
            "overlay_enabled": self.overlay_enabled,
        }

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "DashboardState":
        if not payload:
            return cls()
        if not isinstance(payload, dict):
            raise ValueError("state muss ein JSON-Objekt sein.")
        idx_in = payload.get("index_sel") or {}
        der_in = payload.get("deriv_sel") or {}
        index_sel = _default_index_sel()
        deriv_sel = _default_deriv_sel()
        # unknown keys are ignored, missing keys keep their defaults
        for k in INDEX_ORDER:
            if k in idx_in:
                index_sel[k] = bool(idx_in[k])
        for t in TIER_ORDER:
            if t in der_in:
                deriv_sel[t] = bool(der_in[t])
        range1 = DateRange.from_dict(payload.get("range1"))
        range2 = DateRange.from_dict(payload.get("range2"))
        enabled = bool(payload.get("overlay_enabled", False)) and range1.is_complete and range2.is_complete
        return cls(index_sel=index_sel, deriv_sel=deriv_sel, range1=range1, range2=range2, overlay_enabled=enabled)


def toggle_index(state: DashboardState, name: str) -> DashboardState:
    if name not in INDEX_ORDER:
        raise ValueError(f"Unbekannter Index: {name}. Erlaubt: {', '.join(INDEX_ORDER)}")
    sel = dict(state.index_sel)
    sel[name] = not sel.get(name, False)
    return replace(state, index_sel=sel)


def toggle_derivative(state: DashboardState, tier: str) -> DashboardState:
    if tier not in TIER_ORDER:
        raise ValueError(f"Unbekannte Ableitung: {tier}. Erlaubt: {', '.join(TIER_ORDER)}")
    sel = dict(state.deriv_sel)
    sel[tier] = not sel.get(tier, False)
    return replace(state, deriv_sel=sel)


def set_range(state: DashboardState, which: int, start: Optional[str], end: Optional[str]) -> DashboardState:
    """
    Editing a range does not switch overlay on; that needs apply_overlay().
    If an edit leaves a range incomplete, overlay is switched off.
    """
    rng = DateRange.from_dict({"start": start, "end": end})
    if int(which) == 1:
        new = replace(state, range1=rng)
    elif int(which) == 2:
        new = replace(state, range2=rng)
    else:
        raise ValueError(f"Ungültiger Bereich: {which}. Erlaubt: 1, 2")
    if new.overlay_enabled and not (new.range1.is_complete and new.range2.is_complete):
        new = replace(new, overlay_enabled=False)
    return new


def apply_overlay(state: DashboardState) -> DashboardState:
    enabled = state.range1.is_complete and state.range2.is_complete
    return replace(state, overlay_enabled=enabled)


def clear_overlay(state: DashboardState) -> DashboardState:
    return replace(state, range1=DateRange(), range2=DateRange(), overlay_enabled=False)


def reset(state: DashboardState) -> DashboardState:
    return DashboardState()


def apply_action(state: DashboardState, action: Dict[str, Any]) -> DashboardState:
    if not isinstance(action, dict):
        raise ValueError("action muss ein JSON-Objekt sein.")
    kind = (action.get("type") or "").strip()

    if kind == "toggle_index":
        return toggle_index(state, (action.get("name") or "").strip())
    if kind == "toggle_derivative":
        return toggle_derivative(state, (action.get("tier") or "").strip())
    if kind == "set_range":
        try:
            which = int(action.get("which"))
        except (TypeError, ValueError):
            raise ValueError(f"Ungültiger Bereich: {action.get('which')!r}. Erlaubt: 1, 2")
        return set_range(state, which, action.get("start"), action.get("end"))
    if kind == "apply_overlay":
        return apply_overlay(state)
    if kind == "clear_overlay":
        return clear_overlay(state)
    if kind == "reset":
        return reset(state)

    raise ValueError(f"Unbekannte Aktion: {kind!r}")
