#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Floating panel placement: anchored next to a map click, draggable, always on-screen.

States:
    closed    -> open_popup()  -> anchored
    anchored  -> begin_drag()  -> dragging   (pointer-down on the drag handle)
    dragging  -> update_drag() -> dragging   (custom position follows the pointer, clamped)
    dragging  -> end_drag()    -> custom
    custom    -> begin_drag()  -> dragging
    *         -> close_popup() -> closed     (custom position discarded)

All geometry is clamped; nothing here raises for finite numeric input.
Payload parsing (from_dict) rejects NaN and infinities. If the panel is
larger than the viewport the lower clamp bound wins and the panel sits at 0.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from config import (
    DRAG_HANDLE_HEIGHT_PX,
    PANEL_MARGIN_PX,
    PANEL_MIN_BOTTOM_PX,
    PANEL_MIN_TOP_PX,
)

CLOSED = "closed"
ANCHORED = "anchored"
DRAGGING = "dragging"
CUSTOM = "custom"

PHASES = (CLOSED, ANCHORED, DRAGGING, CUSTOM)


def _num(payload: Dict[str, Any], key: str) -> float:
    try:
        v = float(payload[key])
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"Ungültiger Wert für '{key}': {payload.get(key)!r}")
    # NaN would silently disable min()/max() clamping
    if not math.isfinite(v):
        raise ValueError(f"Ungültiger Wert für '{key}': {payload.get(key)!r}")
    return v


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Point":
        if not isinstance(payload, dict):
            raise ValueError("Punkt muss ein Objekt {x, y} sein.")
        return cls(x=_num(payload, "x"), y=_num(payload, "y"))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Size:
    width: float
    height: float

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Size":
        if not isinstance(payload, dict):
            raise ValueError("Größe muss ein Objekt {width, height} sein.")
        return cls(width=_num(payload, "width"), height=_num(payload, "height"))


@dataclass(frozen=True)
class Placement:
    left: float
    top: float

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Placement":
        if not isinstance(payload, dict):
            raise ValueError("Position muss ein Objekt {left, top} sein.")
        return cls(left=_num(payload, "left"), top=_num(payload, "top"))

    def to_dict(self) -> Dict[str, float]:
        return {"left": self.left, "top": self.top}


@dataclass(frozen=True)
class PopupState:
    phase: str = CLOSED
    anchor: Optional[Point] = None
    custom: Optional[Placement] = None
    offset: Optional[Point] = None  # pointer - panel origin, only while dragging

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "anchor": self.anchor.to_dict() if self.anchor else None,
            "custom": self.custom.to_dict() if self.custom else None,
            "offset": self.offset.to_dict() if self.offset else None,
        }

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "PopupState":
        if not payload:
            return cls()
        phase = payload.get("phase") or CLOSED
        if phase not in PHASES:
            raise ValueError(f"Unbekannter Popup-Zustand: {phase}. Erlaubt: {', '.join(PHASES)}")
        anchor = Point.from_dict(payload["anchor"]) if payload.get("anchor") else None
        custom = Placement.from_dict(payload["custom"]) if payload.get("custom") else None
        offset = Point.from_dict(payload["offset"]) if payload.get("offset") else None
        if phase != CLOSED and anchor is None:
            raise ValueError("Popup-Zustand ohne anchor.")
        if phase == DRAGGING and offset is None:
            raise ValueError("Drag-Zustand ohne offset.")
        return cls(phase=phase, anchor=anchor, custom=custom, offset=offset)


def _clamp(v: float, lo: float, hi: float) -> float:
    # lower bound wins when hi < lo
    return max(lo, min(v, hi))


def clamp_to_viewport(left: float, top: float, panel: Size, viewport: Size) -> Placement:
    return Placement(
        left=_clamp(left, 0.0, viewport.width - panel.width),
        top=_clamp(top, 0.0, viewport.height - panel.height),
    )


def anchored_placement(
    anchor: Point,
    panel: Size,
    viewport: Size,
    margin: float = PANEL_MARGIN_PX,
    min_top: float = PANEL_MIN_TOP_PX,
    min_bottom: float = PANEL_MIN_BOTTOM_PX,
) -> Placement:
    if anchor.x > viewport.width / 2.0:
        left = anchor.x - panel.width - margin
    else:
        left = anchor.x + margin

    top = _clamp(anchor.y - panel.height / 2.0, min_top, viewport.height - panel.height - min_bottom)
    return clamp_to_viewport(left, top, panel, viewport)


def placement(state: PopupState, panel: Size, viewport: Size) -> Optional[Placement]:
    """Current panel position, or None while closed."""
    if state.phase == CLOSED or state.anchor is None:
        return None
    if state.custom is not None:
        # already clamped when set; re-clamp in case the viewport shrank
        return clamp_to_viewport(state.custom.left, state.custom.top, panel, viewport)
    return anchored_placement(state.anchor, panel, viewport)


def open_popup(state: PopupState, anchor: Point) -> PopupState:
    return PopupState(phase=ANCHORED, anchor=anchor)


def close_popup(state: PopupState) -> PopupState:
    return PopupState()


def hits_drag_handle(
    pointer: Point,
    origin: Placement,
    panel: Size,
    handle_height: float = DRAG_HANDLE_HEIGHT_PX,
) -> bool:
    return (
        origin.left <= pointer.x <= origin.left + panel.width
        and origin.top <= pointer.y <= origin.top + min(handle_height, panel.height)
    )


def begin_drag(
    state: PopupState,
    pointer: Point,
    panel: Size,
    viewport: Size,
    handle_height: float = DRAG_HANDLE_HEIGHT_PX,
) -> PopupState:
    if state.phase not in (ANCHORED, CUSTOM):
        return state
    origin = placement(state, panel, viewport)
    if origin is None or not hits_drag_handle(pointer, origin, panel, handle_height):
        return state
    return replace(
        state,
        phase=DRAGGING,
        custom=origin,
        offset=Point(pointer.x - origin.left, pointer.y - origin.top),
    )


def update_drag(state: PopupState, pointer: Point, panel: Size, viewport: Size) -> PopupState:
    if state.phase != DRAGGING or state.offset is None:
        return state
    candidate = clamp_to_viewport(pointer.x - state.offset.x, pointer.y - state.offset.y, panel, viewport)
    return replace(state, custom=candidate)


def end_drag(state: PopupState) -> PopupState:
    if state.phase != DRAGGING:
        return state
    return replace(state, phase=CUSTOM, offset=None)


def apply_action(state: PopupState, action: Dict[str, Any], panel: Size, viewport: Size) -> PopupState:
    if not isinstance(action, dict):
        raise ValueError("action muss ein JSON-Objekt sein.")
    kind = (action.get("type") or "").strip()

    if kind == "open":
        return open_popup(state, Point.from_dict(action.get("anchor")))
    if kind == "close":
        return close_popup(state)
    if kind == "begin_drag":
        return begin_drag(state, Point.from_dict(action.get("pointer")), panel, viewport)
    if kind == "update_drag":
        return update_drag(state, Point.from_dict(action.get("pointer")), panel, viewport)
    if kind == "end_drag":
        return end_drag(state)
    if kind in ("", "place"):
        # viewport/panel change only
        return state

    raise ValueError(f"Unbekannte Popup-Aktion: {kind!r}")


# -------------------------------
# Listener scope for drag sessions
# -------------------------------

PointerHandler = Callable[[Point], None]


class PointerEventHub:
    """
    Global pointer listener scope (the window-level pointermove/pointerup target).
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[PointerHandler]] = {}

    def add_listener(self, event: str, handler: PointerHandler) -> None:
        self._listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: PointerHandler) -> None:
        handlers = self._listeners.get(event) or []
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._listeners.pop(event, None)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event) or [])
        return sum(len(v) for v in self._listeners.values())

    def dispatch(self, event: str, pointer: Point) -> None:
        # copy: a pointerup handler detaches itself during dispatch
        for handler in list(self._listeners.get(event) or []):
            handler(pointer)


class DragController:
    """
    Owns a PopupState and holds move/up listeners on the hub only while a drag
    session is active.
    """

    def __init__(self, hub: PointerEventHub, panel: Size, get_viewport: Callable[[], Size]) -> None:
        self.hub = hub
        self.panel = panel
        self.get_viewport = get_viewport
        self.state = PopupState()
        self._attached = False

    @property
    def placement(self) -> Optional[Placement]:
        return placement(self.state, self.panel, self.get_viewport())

    def open(self, anchor: Point) -> None:
        self._detach()
        self.state = open_popup(self.state, anchor)

    def close(self) -> None:
        self._detach()
        self.state = close_popup(self.state)

    def pointer_down(self, pointer: Point) -> bool:
        self.state = begin_drag(self.state, pointer, self.panel, self.get_viewport())
        if self.state.phase == DRAGGING:
            self._attach()
            return True
        return False

    def teardown(self) -> None:
        self._detach()
        if self.state.phase == DRAGGING:
            self.state = end_drag(self.state)

    def _on_move(self, pointer: Point) -> None:
        self.state = update_drag(self.state, pointer, self.panel, self.get_viewport())

    def _on_up(self, pointer: Point) -> None:
        try:
            self.state = end_drag(self.state)
        finally:
            self._detach()

    def _attach(self) -> None:
        if self._attached:
            return
        self.hub.add_listener("pointermove", self._on_move)
        self.hub.add_listener("pointerup", self._on_up)
        self._attached = True

    def _detach(self) -> None:
        if not self._attached:
            return
        self.hub.remove_listener("pointermove", self._on_move)
        self.hub.remove_listener("pointerup", self._on_up)
        self._attached = False
