import pytest

from knotboard.geometry import Handle, Rect
from knotboard.minimap import MinimapProjector, minimap_frame, project
from knotboard.scene import ColorFilter, ItemKind
from knotboard.scheduler import FrameScheduler
from knotboard.viewport import Viewport, ViewportAnimator


def test_empty_scene_projects_nothing(scene):
    projection = project([], [], {}, Rect(0, 0, 800, 600))
    assert projection.empty
    assert projection.viewport is None
    assert projection.world_point(10, 10) is None


def test_projection_fits_padded_bounds(scene):
    item = scene.create_item(ItemKind.NOTE, 0, 0, w=200, h=100, color="red")
    projection = project(scene.items.values(), [], scene.items, Rect(0, 0, 800, 600))

    assert projection.scale == pytest.approx(100 / 260)
    (rect,) = projection.items
    assert rect.item_id == item.id
    assert rect.rect.x == pytest.approx(80 * 100 / 260)
    assert rect.rect.w == pytest.approx(200 * 100 / 260)
    assert rect.color.startswith("#")
    assert projection.viewport.w == pytest.approx(800 * 100 / 260)


def test_tiny_items_stay_visible(scene):
    scene.create_item(ItemKind.NOTE, 0, 0)
    scene.create_item(ItemKind.NOTE, 100000, 100000)
    projection = project(scene.items.values(), [], scene.items, Rect(0, 0, 800, 600))
    for rect in projection.items:
        assert rect.rect.w >= 3
        assert rect.rect.h >= 2


def test_world_point_inverts_projection(scene):
    scene.create_item(ItemKind.NOTE, 0, 0, w=200, h=100)
    projection = project(scene.items.values(), [], scene.items, Rect(0, 0, 800, 600))
    mx, my = projection.to_minimap(150, 40)
    assert projection.world_point(mx, my) == pytest.approx((150, 40))


def test_filtered_items_and_connections_are_skipped(scene):
    a = scene.create_item(ItemKind.NOTE, 0, 0, color="red")
    b = scene.create_item(ItemKind.NOTE, 400, 0, color="blue")
    c = scene.create_item(ItemKind.NOTE, 0, 400, color="red")
    scene.create_connection(a.id, Handle.RIGHT, b.id, Handle.LEFT)
    scene.create_connection(a.id, Handle.BOTTOM, c.id, Handle.TOP)

    projection = project(scene.items.values(), scene.connections.values(), scene.items,
                         Rect(0, 0, 800, 600), lambda item: item.color == "red")
    assert {r.item_id for r in projection.items} == {a.id, c.id}
    assert len(projection.lines) == 1


def make_projector(scene, bus):
    viewport = Viewport(bus)
    scheduler = FrameScheduler()
    projector = MinimapProjector(scene, viewport, ColorFilter(bus), scheduler, bus)
    return projector, viewport, scheduler


def test_projector_coalesces_updates(scene, bus):
    projector, viewport, scheduler = make_projector(scene, bus)
    for x in range(5):
        scene.create_item(ItemKind.NOTE, x * 300, 0)
    viewport.pan_by(10, 10)
    assert projector.updates == 0

    scheduler.tick(0.0)
    assert projector.updates == 1
    assert len(projector.projection.items) == 5
    assert not scheduler.active


def test_projector_detach_stops_updates(scene, bus):
    projector, _viewport, scheduler = make_projector(scene, bus)
    projector.detach()
    scene.create_item(ItemKind.NOTE, 0, 0)
    scheduler.tick(0.0)
    assert projector.updates == 0


def test_click_centres_view_on_point(scene, bus):
    projector, viewport, scheduler = make_projector(scene, bus)
    scene.create_item(ItemKind.NOTE, 0, 0, w=200, h=100)
    projector.update_now()
    animator = ViewportAnimator(viewport, scheduler)

    mx, my = projector.projection.to_minimap(100, 50)
    assert projector.click(mx, my, animator)
    now = 0.0
    while scheduler.active and now < 1.0:
        scheduler.tick(now)
        now += 0.05
    assert viewport.screen_to_world(400, 300) == pytest.approx((100, 50))


def test_click_on_empty_minimap_does_nothing(scene, bus):
    projector, viewport, scheduler = make_projector(scene, bus)
    assert not projector.click(10, 10, ViewportAnimator(viewport, scheduler))


def test_frame_anchored_bottom_right():
    assert minimap_frame(800, 600) == Rect(624, 484, 160, 100)
