import pytest

from knotboard.controller import Button, Gesture, Intent, Phase, PointerEvent
from knotboard.geometry import Handle
from knotboard.scene import ItemKind


def press(ws, x, y, **kwargs):
    return ws.handle_pointer(PointerEvent(Phase.PRESS, x, y, **kwargs))


def move(ws, x, y, **kwargs):
    return ws.handle_pointer(PointerEvent(Phase.MOVE, x, y, **kwargs))


def release(ws, x, y, **kwargs):
    return ws.handle_pointer(PointerEvent(Phase.RELEASE, x, y, **kwargs))


@pytest.fixture
def note(workspace):
    """A 260x180 note at the world origin."""
    item = workspace.scene.create_item(ItemKind.NOTE, 0, 0)
    workspace.commit()
    return item


@pytest.fixture
def memo(workspace):
    """A 220x140 memo at (400, 0)."""
    item = workspace.scene.create_item(ItemKind.MEMO, 400, 0)
    workspace.commit()
    return item


# ==================== Box selection ====================

def test_box_selects_intersecting_items(workspace, note):
    far = workspace.scene.create_item(ItemKind.NOTE, 1000, 1000)
    press(workspace, -50, -50)
    assert workspace.controller.gesture == Gesture.BOX_SELECTING
    move(workspace, 100, 100)
    assert workspace.controller.selection_box is not None
    release(workspace, 100, 100)

    assert workspace.selection.item_ids == {note.id}
    assert far.id not in workspace.selection.item_ids
    assert workspace.controller.selection_box is None


def test_tiny_box_selects_nothing(workspace, note):
    press(workspace, -50, -50)
    move(workspace, -1, -49)
    release(workspace, -1, -49)
    assert workspace.selection.item_ids == set()


def test_additive_box_keeps_selection(workspace, note, memo):
    workspace.selection.select_item(memo.id)
    press(workspace, -50, -50, additive=True)
    move(workspace, 10, 10, additive=True)
    release(workspace, 10, 10, additive=True)
    assert workspace.selection.item_ids == {note.id, memo.id}


def test_box_ignores_filtered_items(workspace, note):
    workspace.set_filter("red")
    press(workspace, -50, -50)
    move(workspace, 100, 100)
    release(workspace, 100, 100)
    assert workspace.selection.item_ids == set()


def test_background_click_clears_selection(workspace, note):
    workspace.selection.select_item(note.id)
    press(workspace, 900, 500)
    release(workspace, 900, 500)
    assert not workspace.selection


# ==================== Dragging ====================

def test_drag_moves_item_and_commits(workspace, note):
    depth = workspace.history.undo_depth
    press(workspace, 100, 100)
    assert workspace.controller.gesture == Gesture.DRAGGING_ITEMS
    move(workspace, 130, 110)
    move(workspace, 150, 120)
    release(workspace, 150, 120)

    assert (note.x, note.y) == (50, 20)
    assert workspace.history.undo_depth == depth + 1

    workspace.undo()
    restored = workspace.scene.get_item(note.id)
    assert (restored.x, restored.y) == (0, 0)


def test_click_without_move_does_not_commit(workspace, note):
    depth = workspace.history.undo_depth
    press(workspace, 100, 100)
    release(workspace, 100, 100)
    assert workspace.selection.item_ids == {note.id}
    assert workspace.history.undo_depth == depth


def test_drag_moves_whole_selection(workspace, note, memo):
    workspace.selection.add_items([note.id, memo.id])
    press(workspace, 100, 100)
    move(workspace, 110, 130)
    release(workspace, 110, 130)
    assert (note.x, note.y) == (10, 30)
    assert (memo.x, memo.y) == (410, 30)


def test_drag_respects_zoom(workspace, note):
    workspace.viewport.set_transform(2.0, 0, 0)
    press(workspace, 100, 100)
    move(workspace, 200, 100)
    release(workspace, 200, 100)
    assert note.x == 50


def test_locked_items_select_but_do_not_move(workspace, note):
    workspace.scene.mutate_item(note.id, locked=True)
    press(workspace, 100, 100)
    move(workspace, 200, 200)
    release(workspace, 200, 200)
    assert workspace.selection.item_ids == {note.id}
    assert (note.x, note.y) == (0, 0)


def test_cancel_restores_drag_origin(workspace, note):
    depth = workspace.history.undo_depth
    press(workspace, 100, 100)
    move(workspace, 300, 300)
    assert workspace.handle_intent(Intent.CANCEL)
    assert (note.x, note.y) == (0, 0)
    assert workspace.controller.gesture == Gesture.IDLE
    release(workspace, 300, 300)
    assert workspace.history.undo_depth == depth


def test_delete_is_ignored_mid_gesture(workspace, note):
    press(workspace, 100, 100)
    move(workspace, 120, 100)
    assert not workspace.handle_intent(Intent.DELETE_SELECTION)
    assert note.id in workspace.scene.items


def test_text_field_events_are_ignored(workspace, note):
    assert not press(workspace, 100, 100, in_text_field=True)
    assert workspace.controller.gesture == Gesture.IDLE


# ==================== Resizing ====================

def test_resize_clamps_to_minimum(workspace, note):
    press(workspace, 255, 175)
    assert workspace.controller.gesture == Gesture.RESIZING
    move(workspace, 155, 75)
    assert (note.w, note.h) == (160, 80)
    move(workspace, 55, 25)
    assert (note.w, note.h) == (140, 80)
    release(workspace, 55, 25)
    assert note.manually_resized


def test_cancel_restores_size(workspace, note):
    press(workspace, 255, 175)
    move(workspace, 400, 300)
    workspace.handle_intent(Intent.CANCEL)
    assert (note.w, note.h) == (260, 180)
    assert not note.manually_resized


# ==================== Connecting ====================

def test_drag_between_anchors_connects(workspace, note, memo):
    press(workspace, 260, 90)
    assert workspace.controller.gesture == Gesture.CONNECTING
    move(workspace, 330, 80)
    assert workspace.controller.temp_connection() is not None
    move(workspace, 400, 70)
    release(workspace, 400, 70)

    assert workspace.controller.gesture == Gesture.IDLE
    (conn,) = workspace.scene.connections.values()
    assert (conn.from_id, conn.from_handle) == (note.id, Handle.RIGHT)
    assert (conn.to_id, conn.to_handle) == (memo.id, Handle.LEFT)


def test_click_connect_to_item_body_uses_nearest_handle(workspace, note, memo):
    press(workspace, 260, 90)
    release(workspace, 260, 90)
    assert workspace.controller.gesture == Gesture.CONNECTING
    press(workspace, 450, 70)

    (conn,) = workspace.scene.connections.values()
    assert conn.to_id == memo.id
    assert conn.to_handle == Handle.LEFT


def test_connecting_onto_background_creates_memo(workspace, note):
    workspace.scene.mutate_item(note.id, color="green")
    press(workspace, 260, 90)
    release(workspace, 260, 90)
    press(workspace, 600, 400)

    assert len(workspace.scene) == 2
    (conn,) = workspace.scene.connections.values()
    child = workspace.scene.get_item(conn.to_id)
    assert child.kind == ItemKind.MEMO
    assert (child.x, child.y) == (490, 330)
    assert child.color == "green"
    assert conn.to_handle == Handle.LEFT


def test_secondary_press_cancels_connection(workspace, note):
    press(workspace, 260, 90)
    release(workspace, 260, 90)
    press(workspace, 600, 400, button=Button.SECONDARY)
    assert workspace.controller.gesture == Gesture.IDLE
    assert workspace.scene.connections == {}
    assert len(workspace.scene) == 1


def test_release_over_own_anchor_keeps_connecting(workspace, note):
    press(workspace, 260, 90)
    move(workspace, 130, 0)
    release(workspace, 130, 0)
    assert workspace.controller.gesture == Gesture.CONNECTING


def test_hover_moves_pending_click_connection(workspace, note, memo):
    press(workspace, 260, 90)
    release(workspace, 260, 90)
    assert move(workspace, 500, 300, button=Button.NONE)

    start, handle, pointer = workspace.controller.temp_connection()
    assert handle == Handle.RIGHT
    assert start == (260, 90)
    assert pointer == (500, 300)

    press(workspace, 450, 70)
    (conn,) = workspace.scene.connections.values()
    assert conn.to_id == memo.id


# ==================== Panning and wheel ====================

def test_middle_drag_pans(workspace, timer, note):
    press(workspace, 300, 300, button=Button.MIDDLE)
    assert workspace.controller.gesture == Gesture.PANNING
    move(workspace, 350, 320, button=Button.MIDDLE)
    release(workspace, 350, 320, button=Button.MIDDLE)
    assert (workspace.viewport.offset_x, workspace.viewport.offset_y) == (50, 20)
    assert workspace.autosave.pending


def test_pan_modifier_pans_over_items(workspace, note):
    press(workspace, 100, 100, pan_modifier=True)
    assert workspace.controller.gesture == Gesture.PANNING
    move(workspace, 90, 100, pan_modifier=True)
    release(workspace, 90, 100, pan_modifier=True)
    assert workspace.viewport.offset_x == -10
    assert (note.x, note.y) == (0, 0)


def test_secondary_press_on_item_does_not_pan(workspace, note):
    assert not press(workspace, 100, 100, button=Button.SECONDARY)
    assert workspace.controller.gesture == Gesture.IDLE


def test_wheel_zooms_under_cursor(workspace):
    vp = workspace.viewport
    anchor = vp.screen_to_world(400, 300)
    assert workspace.handle_wheel(0, -1, 400, 300)
    assert vp.scale == pytest.approx(1.1)
    assert vp.screen_to_world(400, 300) == pytest.approx(anchor)
    workspace.handle_wheel(0, 1, 400, 300)
    assert vp.scale == pytest.approx(1.0)


def test_wheel_zoom_can_be_inverted(workspace):
    workspace.controller.invert_wheel_zoom = True
    workspace.handle_wheel(0, -1, 0, 0)
    assert workspace.viewport.scale == pytest.approx(1 / 1.1)


def test_wheel_with_pan_modifier_pans(workspace):
    workspace.handle_wheel(0, 1, 0, 0, pan_modifier=True)
    assert workspace.viewport.scale == 1.0
    assert workspace.viewport.offset_y == -40


def test_wheel_ignored_in_text_field(workspace):
    assert not workspace.handle_wheel(0, -1, 0, 0, in_text_field=True)
    assert workspace.viewport.scale == 1.0


# ==================== Deleting ====================

def test_delete_selection_and_undo(workspace, note, memo):
    workspace.commit()
    workspace.scene.create_connection(note.id, Handle.RIGHT, memo.id, Handle.LEFT)
    workspace.commit()

    press(workspace, 100, 100)
    release(workspace, 100, 100)
    assert workspace.delete_selection()
    assert note.id not in workspace.scene.items
    assert workspace.scene.connections == {}

    workspace.undo()
    assert note.id in workspace.scene.items
    assert len(workspace.scene.connections) == 1


def test_delete_selected_connection_only(workspace, note, memo):
    conn = workspace.scene.create_connection(note.id, Handle.RIGHT, memo.id, Handle.LEFT)
    workspace.selection.select_connection(conn.id)
    assert workspace.delete_selection()
    assert workspace.scene.connections == {}
    assert len(workspace.scene) == 2
