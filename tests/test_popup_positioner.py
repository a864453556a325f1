"""Tests for popup_positioner.py: anchored placement, drag state machine, listener scope."""

import random

import pytest

from popup_positioner import (
    ANCHORED,
    CLOSED,
    CUSTOM,
    DRAGGING,
    DragController,
    Placement,
    Point,
    PointerEventHub,
    PopupState,
    Size,
    anchored_placement,
    apply_action,
    begin_drag,
    close_popup,
    end_drag,
    open_popup,
    placement,
    update_drag,
)

VIEWPORT = Size(1920, 1080)
PANEL = Size(460, 540)


def _assert_on_screen(pl, panel, viewport):
    assert 0 <= pl.left <= max(0, viewport.width - panel.width)
    assert 0 <= pl.top <= max(0, viewport.height - panel.height)


class TestAnchoredPlacement:

    def test_right_half_places_panel_left_of_anchor(self):
        pl = anchored_placement(Point(1500, 500), PANEL, VIEWPORT, margin=20, min_top=10, min_bottom=10)
        assert pl == Placement(left=1020, top=230)

    def test_left_half_places_panel_right_of_anchor(self):
        pl = anchored_placement(Point(100, 500), PANEL, VIEWPORT, margin=20, min_top=10, min_bottom=10)
        assert pl.left == 120

    def test_exact_center_goes_right(self):
        pl = anchored_placement(Point(960, 500), PANEL, VIEWPORT, margin=20)
        assert pl.left == 980

    def test_top_clamped_to_min_top(self):
        pl = anchored_placement(Point(100, 50), PANEL, VIEWPORT, margin=20, min_top=10, min_bottom=10)
        assert pl.top == 10

    def test_bottom_clamped_with_margin(self):
        pl = anchored_placement(Point(100, 1070), PANEL, VIEWPORT, margin=20, min_top=10, min_bottom=10)
        assert pl.top == 1080 - 540 - 10

    def test_horizontal_overflow_clamped(self):
        pl = anchored_placement(Point(1900, 500), Size(460, 540), Size(1000, 1080), margin=20)
        assert pl.left == 1000 - 460

    def test_panel_larger_than_viewport(self):
        pl = anchored_placement(Point(150, 100), PANEL, Size(300, 200))
        assert pl == Placement(left=0, top=0)

    def test_always_on_screen(self):
        rnd = random.Random(7)
        for _ in range(500):
            viewport = Size(rnd.randint(200, 2500), rnd.randint(200, 1600))
            panel = Size(rnd.randint(100, 900), rnd.randint(100, 900))
            anchor = Point(rnd.uniform(-50, viewport.width + 50), rnd.uniform(-50, viewport.height + 50))
            pl = anchored_placement(anchor, panel, viewport)
            _assert_on_screen(pl, panel, viewport)


class TestDragStateMachine:

    def test_open_is_anchored(self):
        st = open_popup(PopupState(), Point(100, 50))
        assert st.phase == ANCHORED
        assert placement(st, PANEL, VIEWPORT) == anchored_placement(Point(100, 50), PANEL, VIEWPORT)

    def test_closed_has_no_placement(self):
        assert placement(PopupState(), PANEL, VIEWPORT) is None

    def test_drag_offset_and_clamp(self):
        """Origin (100,100), pointer (120,110) -> offset (20,10); move to (500,500) -> (480,490)."""
        st = PopupState(phase=CUSTOM, anchor=Point(0, 0), custom=Placement(100, 100))
        st = begin_drag(st, Point(120, 110), PANEL, VIEWPORT)
        assert st.phase == DRAGGING
        assert st.offset == Point(20, 10)
        st = update_drag(st, Point(500, 500), PANEL, VIEWPORT)
        assert st.custom == Placement(480, 490)

    def test_drag_clamped_into_small_viewport(self):
        viewport = Size(800, 600)
        st = PopupState(phase=CUSTOM, anchor=Point(0, 0), custom=Placement(100, 50))
        st = begin_drag(st, Point(120, 60), PANEL, viewport)
        st = update_drag(st, Point(5000, 5000), PANEL, viewport)
        assert st.custom == Placement(800 - 460, 600 - 540)
        st = update_drag(st, Point(-5000, -5000), PANEL, viewport)
        assert st.custom == Placement(0, 0)

    def test_end_drag_keeps_custom_position(self):
        st = open_popup(PopupState(), Point(100, 50))
        origin = placement(st, PANEL, VIEWPORT)
        st = begin_drag(st, Point(origin.left + 10, origin.top + 10), PANEL, VIEWPORT)
        st = update_drag(st, Point(710, 410), PANEL, VIEWPORT)
        st = end_drag(st)
        assert st.phase == CUSTOM
        assert st.offset is None
        assert placement(st, PANEL, VIEWPORT) == Placement(700, 400)

    def test_click_without_move_does_not_jump(self):
        st = open_popup(PopupState(), Point(100, 50))
        origin = placement(st, PANEL, VIEWPORT)
        st = begin_drag(st, Point(origin.left + 5, origin.top + 5), PANEL, VIEWPORT)
        st = end_drag(st)
        assert st.phase == CUSTOM
        assert placement(st, PANEL, VIEWPORT) == origin

    def test_pointer_down_outside_handle_is_ignored(self):
        st = open_popup(PopupState(), Point(100, 50))
        origin = placement(st, PANEL, VIEWPORT)
        inside_body = Point(origin.left + 10, origin.top + 300)
        assert begin_drag(st, inside_body, PANEL, VIEWPORT) == st

    def test_begin_drag_when_closed_is_noop(self):
        st = PopupState()
        assert begin_drag(st, Point(10, 10), PANEL, VIEWPORT) == st

    def test_update_and_end_without_drag_are_noops(self):
        st = open_popup(PopupState(), Point(100, 50))
        assert update_drag(st, Point(500, 500), PANEL, VIEWPORT) == st
        assert end_drag(st) == st

    def test_custom_position_survives_until_close(self):
        st = PopupState(phase=CUSTOM, anchor=Point(100, 50), custom=Placement(300, 200))
        assert placement(st, PANEL, VIEWPORT) == Placement(300, 200)
        st = close_popup(st)
        assert st.phase == CLOSED
        assert st.custom is None

    def test_reopen_clears_custom_position(self):
        st = PopupState(phase=CUSTOM, anchor=Point(100, 50), custom=Placement(300, 200))
        st = open_popup(st, Point(1500, 500))
        assert st.custom is None
        assert placement(st, PANEL, VIEWPORT) == anchored_placement(Point(1500, 500), PANEL, VIEWPORT)

    def test_custom_reclamped_when_viewport_shrinks(self):
        st = PopupState(phase=CUSTOM, anchor=Point(100, 50), custom=Placement(1400, 500))
        pl = placement(st, PANEL, Size(1000, 700))
        assert pl == Placement(540, 160)


class TestApplyAction:

    def test_sequence(self):
        st = apply_action(PopupState(), {"type": "open", "anchor": {"x": 100, "y": 50}}, PANEL, VIEWPORT)
        origin = placement(st, PANEL, VIEWPORT)
        st = apply_action(st, {"type": "begin_drag", "pointer": {"x": origin.left + 10, "y": origin.top + 10}}, PANEL, VIEWPORT)
        st = apply_action(st, {"type": "update_drag", "pointer": {"x": 600, "y": 300}}, PANEL, VIEWPORT)
        st = apply_action(st, {"type": "end_drag"}, PANEL, VIEWPORT)
        assert st.phase == CUSTOM
        assert st.custom == Placement(590, 290)
        st = apply_action(st, {"type": "close"}, PANEL, VIEWPORT)
        assert st == PopupState()

    def test_place_keeps_state(self):
        st = open_popup(PopupState(), Point(100, 50))
        assert apply_action(st, {"type": "place"}, PANEL, VIEWPORT) == st

    def test_unknown_action(self):
        with pytest.raises(ValueError, match="Unbekannte Popup-Aktion"):
            apply_action(PopupState(), {"type": "spin"}, PANEL, VIEWPORT)

    def test_bad_pointer(self):
        with pytest.raises(ValueError):
            apply_action(PopupState(), {"type": "open", "anchor": {"x": "left"}}, PANEL, VIEWPORT)

    @pytest.mark.parametrize("value", ["nan", "inf", "-inf", float("nan"), float("inf")])
    def test_non_finite_numbers_rejected(self, value):
        with pytest.raises(ValueError, match="width"):
            Size.from_dict({"width": value, "height": 600})
        with pytest.raises(ValueError, match="x"):
            Point.from_dict({"x": value, "y": 10})

    def test_state_round_trip(self):
        st = PopupState(phase=DRAGGING, anchor=Point(1, 2), custom=Placement(3, 4), offset=Point(5, 6))
        assert PopupState.from_dict(st.to_dict()) == st

    def test_dragging_state_requires_offset(self):
        with pytest.raises(ValueError):
            PopupState.from_dict({"phase": "dragging", "anchor": {"x": 1, "y": 2}})


class TestDragController:

    def _controller(self, viewport=VIEWPORT):
        hub = PointerEventHub()
        return hub, DragController(hub, PANEL, lambda: viewport)

    def test_listeners_only_during_drag(self):
        hub, ctrl = self._controller()
        ctrl.open(Point(100, 50))
        assert hub.listener_count() == 0

        assert ctrl.pointer_down(Point(130, 20)) is True
        assert hub.listener_count("pointermove") == 1
        assert hub.listener_count("pointerup") == 1

        hub.dispatch("pointermove", Point(530, 320))
        assert ctrl.state.custom == Placement(520, 310)

        hub.dispatch("pointerup", Point(530, 320))
        assert ctrl.state.phase == CUSTOM
        assert hub.listener_count() == 0
        assert ctrl.placement == Placement(520, 310)

    def test_moves_after_pointer_up_are_ignored(self):
        hub, ctrl = self._controller()
        ctrl.open(Point(100, 50))
        ctrl.pointer_down(Point(130, 20))
        hub.dispatch("pointerup", Point(130, 20))
        hub.dispatch("pointermove", Point(900, 900))
        assert ctrl.placement == Placement(120, 10)

    def test_pointer_down_off_handle_attaches_nothing(self):
        hub, ctrl = self._controller()
        ctrl.open(Point(100, 50))
        assert ctrl.pointer_down(Point(130, 300)) is False
        assert hub.listener_count() == 0
        assert ctrl.state.phase == ANCHORED

    def test_teardown_mid_drag_detaches(self):
        hub, ctrl = self._controller()
        ctrl.open(Point(100, 50))
        ctrl.pointer_down(Point(130, 20))
        ctrl.teardown()
        assert hub.listener_count() == 0
        assert ctrl.state.phase == CUSTOM

    def test_close_mid_drag_detaches_and_resets(self):
        hub, ctrl = self._controller()
        ctrl.open(Point(100, 50))
        ctrl.pointer_down(Point(130, 20))
        ctrl.close()
        assert hub.listener_count() == 0
        assert ctrl.state == PopupState()
        assert ctrl.placement is None

    def test_hub_keeps_foreign_listeners(self):
        hub, ctrl = self._controller()
        seen = []
        hub.add_listener("pointermove", seen.append)
        ctrl.open(Point(100, 50))
        ctrl.pointer_down(Point(130, 20))
        hub.dispatch("pointermove", Point(200, 200))
        hub.dispatch("pointerup", Point(200, 200))
        assert hub.listener_count("pointermove") == 1
        assert seen == [Point(200, 200)]
