import math

import pytest

from knotboard.geometry import (
    BACKGROUND_HIT,
    Handle,
    HitKind,
    Rect,
    arrow_head,
    curve_path,
    find_free_position,
    handle_anchor,
    hit_test,
    nearest_handle,
    point_near_curve,
    rect_intersects,
)
from knotboard.scene import ItemKind
from knotboard.viewport import Viewport


def test_partial_overlap_intersects():
    assert rect_intersects(Rect(0, 0, 100, 100), Rect(50, 50, 200, 200))
    assert rect_intersects(Rect(50, 50, 200, 200), Rect(0, 0, 100, 100))


def test_touching_edges_do_not_intersect():
    assert not rect_intersects(Rect(0, 0, 10, 10), Rect(10, 0, 10, 10))
    assert not rect_intersects(Rect(0, 0, 10, 10), Rect(0, 10, 10, 10))


def test_containment_intersects():
    assert Rect(0, 0, 100, 100).intersects(Rect(10, 10, 5, 5))


def test_from_points_normalizes_corners():
    assert Rect.from_points(100, 80, 20, 10) == Rect(20, 10, 80, 70)


def test_bounding():
    assert Rect.bounding([]) is None
    bounds = Rect.bounding([Rect(0, 0, 10, 10), Rect(-5, 20, 10, 10)])
    assert bounds == Rect(-5, 0, 15, 30)


def test_handle_anchors_are_edge_midpoints():
    rect = Rect(10, 20, 100, 50)
    assert handle_anchor(rect, Handle.TOP) == (60, 20)
    assert handle_anchor(rect, Handle.BOTTOM) == (60, 70)
    assert handle_anchor(rect, Handle.LEFT) == (10, 45)
    assert handle_anchor(rect, Handle.RIGHT) == (110, 45)


def test_nearest_handle():
    rect = Rect(400, 0, 220, 140)
    assert nearest_handle(rect, 450, 70) == Handle.LEFT
    assert nearest_handle(rect, 610, 80) == Handle.RIGHT


def test_curve_offset_is_proportional_for_short_spans():
    curve = curve_path((0, 0), (100, 0))
    assert curve.c1 == pytest.approx((30, 0))
    assert curve.c2 == pytest.approx((70, 0))


def test_curve_offset_is_capped():
    curve = curve_path((0, 0), (1000, 0))
    assert curve.c1 == pytest.approx((80, 0))
    assert curve.c2 == pytest.approx((920, 0))


def test_curve_follows_leftward_direction_without_handles():
    curve = curve_path((0, 0), (-100, 0))
    assert curve.c1 == pytest.approx((-30, 0))
    assert curve.c2 == pytest.approx((-70, 0))


def test_curve_follows_handle_normals():
    curve = curve_path((0, 0), (100, 50), Handle.RIGHT, Handle.LEFT)
    offset = math.hypot(100, 50) * 0.3
    assert curve.c1 == pytest.approx((offset, 0))
    assert curve.c2 == pytest.approx((100 - offset, 50))
    assert curve.point_at(0) == pytest.approx((0, 0))
    assert curve.point_at(1) == pytest.approx((100, 50))


def test_point_near_curve():
    curve = curve_path((0, 0), (100, 0))
    assert point_near_curve(curve, 50, 3, 6)
    assert not point_near_curve(curve, 50, 20, 6)


def test_arrow_head_points_along_curve():
    curve = curve_path((0, 0), (100, 0))
    tip, left, right = arrow_head(curve, at_end=True)
    assert tip == (100, 0)
    assert left[0] < 100 and right[0] < 100

    tip, left, right = arrow_head(curve, at_end=False)
    assert tip == (0, 0)
    assert left[0] > 0 and right[0] > 0


def test_find_free_position_nudges_off_occupied_spots():
    assert find_free_position(0, 0, []) == (0, 0)
    assert find_free_position(0, 0, [(0, 0)]) == (12, 12)
    assert find_free_position(0, 0, [(0, 0), (12, 12)]) == (24, 24)


# ==================== Hit testing ====================

@pytest.fixture
def viewport():
    return Viewport()


def _item(scene, x, y, w=200, h=100, **kwargs):
    return scene.create_item(ItemKind.NOTE, x, y, w=w, h=h, **kwargs)


def test_hit_body_anchor_and_grip(scene, viewport):
    item = _item(scene, 0, 0)

    assert hit_test(scene, viewport, 100, 50).kind == HitKind.ITEM

    anchor = hit_test(scene, viewport, 200, 50)
    assert anchor.kind == HitKind.ANCHOR
    assert anchor.item_id == item.id
    assert anchor.handle == Handle.RIGHT

    grip = hit_test(scene, viewport, 195, 95)
    assert grip.kind == HitKind.RESIZE
    assert grip.item_id == item.id

    assert hit_test(scene, viewport, 500, 500) == BACKGROUND_HIT


def test_locked_items_have_no_resize_grip(scene, viewport):
    _item(scene, 0, 0, locked=True)
    assert hit_test(scene, viewport, 195, 95).kind == HitKind.ITEM


def test_topmost_item_wins(scene, viewport):
    _item(scene, 0, 0)
    top = _item(scene, 50, 20)
    assert hit_test(scene, viewport, 100, 50).item_id == top.id


def test_hit_respects_viewport_scale(scene, viewport):
    item = _item(scene, 0, 0)
    viewport.set_transform(2.0, 0, 0)
    hit = hit_test(scene, viewport, 400, 100)
    assert hit.kind == HitKind.ANCHOR
    assert hit.item_id == item.id


def test_hit_connection_after_items(scene, viewport):
    a = _item(scene, 0, 0)
    b = _item(scene, 400, 0)
    conn = scene.create_connection(a.id, Handle.RIGHT, b.id, Handle.LEFT)

    hit = hit_test(scene, viewport, 300, 52)
    assert hit.kind == HitKind.CONNECTION
    assert hit.connection_id == conn.id


def test_hidden_items_are_not_hit(scene, viewport):
    item = _item(scene, 0, 0)
    assert hit_test(scene, viewport, 100, 50, lambda i: i.id != item.id) == BACKGROUND_HIT
