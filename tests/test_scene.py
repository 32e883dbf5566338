import pytest

from knotboard.events import Event
from knotboard.geometry import Handle
from knotboard.scene import (
    ColorFilter,
    Direction,
    IdGenerator,
    Item,
    ItemKind,
    Selection,
)


def _record(bus):
    seen = []
    bus.subscribe(seen.append)
    return seen


def test_create_item_uses_kind_defaults(scene):
    note = scene.create_item(ItemKind.NOTE, 10, 20)
    assert (note.w, note.h) == (260.0, 180.0)
    assert note.content == {"title": "", "body": ""}
    assert note.id.startswith("i")

    link = scene.create_item("link", 0, 0, content="https://example.org")
    assert link.kind == ItemKind.LINK
    assert link.content["url"] == "https://example.org"


def test_create_item_stacks_on_top_with_unique_ids(scene):
    first = scene.create_item(ItemKind.MEMO, 0, 0)
    second = scene.create_item(ItemKind.MEMO, 0, 0)
    assert first.id != second.id
    assert second.z > first.z
    assert scene.highest_z == second.z


def test_sizes_are_clamped_to_minimum(scene):
    item = scene.create_item(ItemKind.NOTE, 0, 0, w=10, h=10)
    assert (item.w, item.h) == (140.0, 80.0)
    scene.mutate_item(item.id, w=5, h=500)
    assert (item.w, item.h) == (140.0, 500.0)


def test_mutate_rejects_unknown_fields_without_partial_change(scene):
    item = scene.create_item(ItemKind.NOTE, 0, 0)
    with pytest.raises(ValueError):
        scene.mutate_item(item.id, x=50, wobble=3)
    assert item.x == 0


def test_mutate_drops_unknown_colors(scene):
    item = scene.create_item(ItemKind.NOTE, 0, 0, color="blue")
    scene.mutate_item(item.id, color="chartreuse")
    assert item.color is None


def test_mutate_publishes_only_real_changes(scene, bus):
    item = scene.create_item(ItemKind.NOTE, 0, 0)
    seen = _record(bus)
    scene.mutate_item(item.id, x=0, y=0)
    assert seen == []
    scene.mutate_item(item.id, x=5)
    assert [m.event for m in seen] == [Event.ITEM_CHANGED]


def test_mutate_missing_item_returns_none(scene):
    assert scene.mutate_item("nope", x=1) is None


def test_delete_cascades_connections_and_releases_media(scene, bus):
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    image = scene.create_item(ItemKind.IMAGE, 400, 0, content="m-abc")
    scene.create_connection(a.id, Handle.RIGHT, image.id, Handle.LEFT)
    seen = _record(bus)

    assert scene.delete_item(image.id)

    assert scene.connections == {}
    events = [m.event for m in seen]
    assert events == [Event.CONNECTION_REMOVED, Event.ITEM_REMOVED, Event.MEDIA_RELEASED]
    assert seen[-1].target_id == "m-abc"
    assert not scene.delete_item(image.id)


def test_connection_rejects_self_loops_and_unknown_items(scene):
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    assert scene.create_connection(a.id, Handle.RIGHT, a.id, Handle.LEFT) is None
    assert scene.create_connection(a.id, Handle.RIGHT, "missing", Handle.LEFT) is None
    assert scene.connections == {}


def test_connecting_same_pair_replaces_existing(scene):
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    b = scene.create_item(ItemKind.NOTE, 400, 0)
    first = scene.create_connection(a.id, Handle.RIGHT, b.id, Handle.LEFT)
    second = scene.create_connection(b.id, Handle.TOP, a.id, Handle.BOTTOM, Direction.FORWARD)

    assert list(scene.connections) == [second.id]
    assert first.id != second.id
    assert second.from_id == b.id
    assert second.direction == Direction.FORWARD


def test_connection_label_and_direction(scene):
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    b = scene.create_item(ItemKind.NOTE, 400, 0)
    conn = scene.create_connection(a.id, Handle.RIGHT, b.id, Handle.LEFT)
    scene.set_connection_label(conn.id, "  depends on ")
    scene.set_connection_direction(conn.id, "both")
    assert conn.label == "depends on"
    assert conn.direction == Direction.BOTH
    assert Direction.BOTH.cycled() == Direction.NONE


def test_bring_to_front(scene):
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    b = scene.create_item(ItemKind.NOTE, 0, 0)
    scene.bring_to_front(a.id)
    assert a.z > b.z
    assert [i.id for i in scene.items_in_paint_order()] == [b.id, a.id]


def test_z_values_renumber_past_threshold_and_keep_selection(scene, bus):
    selection = Selection(bus)
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    b = scene.create_item(ItemKind.NOTE, 0, 0)
    c = scene.create_item(ItemKind.NOTE, 0, 0)
    selection.select_item(a.id)
    scene.highest_z = 10000

    scene.bring_to_front(a.id)

    assert [b.z, c.z, a.z] == [10, 20, 30]
    assert scene.highest_z == 30
    assert selection.item_ids == {a.id}


def test_locked_items_paint_first(scene):
    top = scene.create_item(ItemKind.NOTE, 0, 0)
    locked = scene.create_item(ItemKind.NOTE, 0, 0, locked=True)
    assert [i.id for i in scene.items_in_paint_order()] == [locked.id, top.id]


def test_replace_contents_publishes_single_reset(scene, bus):
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    items = [a.clone()]
    seen = _record(bus)
    scene.replace_contents(items, [])
    assert [m.event for m in seen] == [Event.SCENE_RESET]
    assert list(scene.items) == [a.id]


def test_clear_can_reset_counters(scene):
    scene.create_item(ItemKind.NOTE, 0, 0)
    scene.clear()
    assert scene.item_ids.counter == 1
    scene.clear(reset_counters=True)
    assert scene.item_ids.counter == 0
    assert scene.highest_z == 0


def test_id_generator_observes_loaded_ids():
    ids = IdGenerator("i")
    ids.observe("i12-abc123")
    ids.observe("i3-ffffff")
    ids.observe("legacy-id")
    assert ids.counter == 12
    assert ids.next_id().startswith("i13-")


def test_item_from_dict_corrects_fields():
    item = Item.from_dict({
        "id": "i1-a", "kind": "memo", "x": "5", "y": 6, "w": 1, "h": 1,
        "content": None, "color": "mauve", "font_size": "huge",
    })
    assert (item.x, item.w, item.h) == (5.0, 140.0, 80.0)
    assert item.content == ""
    assert item.color is None
    assert item.font_size is None


def test_item_from_dict_rejects_unknown_kind():
    with pytest.raises(ValueError):
        Item.from_dict({"id": "i1-a", "kind": "hologram"})


# ==================== Selection ====================

def test_selection_prunes_removed_items(scene, bus):
    selection = Selection(bus)
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    b = scene.create_item(ItemKind.NOTE, 0, 0)
    selection.add_items([a.id, b.id])
    scene.delete_item(a.id)
    assert selection.item_ids == {b.id}


def test_selecting_connection_clears_items(scene, bus):
    selection = Selection(bus)
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    b = scene.create_item(ItemKind.NOTE, 400, 0)
    conn = scene.create_connection(a.id, Handle.RIGHT, b.id, Handle.LEFT)
    selection.select_item(a.id)
    selection.select_connection(conn.id)
    assert selection.item_ids == set()
    assert selection.connection_id == conn.id

    scene.delete_connection(conn.id)
    assert selection.connection_id is None
    assert not selection


def test_toggle_and_reset(scene, bus):
    selection = Selection(bus)
    a = scene.create_item(ItemKind.NOTE, 0, 0)
    selection.toggle_item(a.id)
    assert selection.is_selected(a.id)
    selection.toggle_item(a.id)
    assert not selection.is_selected(a.id)

    selection.select_item(a.id)
    scene.clear()
    assert not selection


# ==================== Color filter ====================

def test_color_filter(scene, bus):
    color_filter = ColorFilter(bus)
    red = scene.create_item(ItemKind.NOTE, 0, 0, color="red")
    plain = scene.create_item(ItemKind.NOTE, 400, 0)
    conn = scene.create_connection(red.id, Handle.RIGHT, plain.id, Handle.LEFT)

    assert not color_filter.active
    assert color_filter.connection_visible(scene, conn)

    color_filter.set("red")
    assert color_filter.visible_items(scene) == [red]
    assert not color_filter.connection_visible(scene, conn)

    color_filter.set(ColorFilter.NONE)
    assert color_filter.visible_items(scene) == [plain]


def test_unknown_filter_falls_back_to_all(bus):
    color_filter = ColorFilter(bus)
    color_filter.set("red")
    color_filter.set("plaid")
    assert color_filter.value == ColorFilter.ALL
