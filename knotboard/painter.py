"""Cairo drawing of render visuals, overlays and the minimap."""

import math
from typing import List, Optional, Tuple

import cairo

from knotboard.geometry import CubicCurve, Rect, arrow_head, curve_path
from knotboard.minimap import MinimapProjection, minimap_frame
from knotboard.render import ConnectionVisual, ItemVisual, RenderSync, hex_to_rgb
from knotboard.scene import ItemKind


class ScenePainter:
    """Paints a RenderSync table onto a cairo context."""

    # Colors
    COLORS = {
        'bg_primary': (0.071, 0.071, 0.078),      # #121214
        'bg_secondary': (0.098, 0.098, 0.11),     # #19191c
        'surface': (0.141, 0.141, 0.153),         # #242427
        'surface_locked': (0.11, 0.11, 0.118),    # #1c1c1e
        'border_subtle': (0.2, 0.2, 0.216),       # #333337
        'border_active': (0.231, 0.51, 0.965),    # #3b82f6
        'text_primary': (0.898, 0.898, 0.91),     # #e5e5e8
        'text_secondary': (0.6, 0.6, 0.62),       # #99999e
        'grid_dots': (0.16, 0.16, 0.17),
        'selection_fill': (0.231, 0.51, 0.965),
    }

    FONT_FAMILY = "Inter"
    FONT_SIZES = {None: 13, "medium": 16, "large": 20, "xlarge": 26}
    ITEM_PADDING = 12
    CORNER_RADIUS = 8
    GRID_SIZE = 24

    def __init__(self, show_grid: bool = True, show_minimap: bool = True):
        self.show_grid = show_grid
        self.show_minimap = show_minimap

    # ==================== Entry points ====================

    def paint(self, cr, width: float, height: float, render: RenderSync, viewport,
              selection_box: Optional[Rect] = None,
              temp_connection: Optional[tuple] = None,
              minimap: Optional[MinimapProjection] = None):
        """Draw a full frame: background, scene, overlays and minimap."""
        cr.save()
        cr.set_source_rgb(*self.COLORS['bg_primary'])
        cr.paint()

        if self.show_grid:
            self._draw_grid(cr, width, height, viewport)

        cr.translate(viewport.offset_x, viewport.offset_y)
        cr.scale(viewport.scale, viewport.scale)
        self.paint_scene(cr, render)
        if temp_connection is not None:
            self._draw_temp_connection(cr, *temp_connection)
        cr.restore()

        if selection_box is not None:
            self._draw_selection_box(cr, selection_box)

        if self.show_minimap and minimap is not None and not minimap.empty:
            self._draw_minimap(cr, minimap, minimap_frame(width, height))

    def paint_scene(self, cr, render: RenderSync):
        """Draw connections then items, in world coordinates."""
        for visual in render.visible_connections():
            self._draw_connection(cr, visual)
        for visual in render.items_in_paint_order():
            self._draw_item(cr, visual)

    # ==================== Background ====================

    def _draw_grid(self, cr, width: float, height: float, viewport):
        """Draw dot grid pattern."""
        effective_grid = self.GRID_SIZE * viewport.scale
        if effective_grid < 6:
            return
        cr.save()
        cr.set_source_rgb(*self.COLORS['grid_dots'])
        offset_x = viewport.offset_x % effective_grid
        offset_y = viewport.offset_y % effective_grid
        x = offset_x
        while x < width:
            y = offset_y
            while y < height:
                cr.arc(x, y, 1.2, 0, 2 * math.pi)
                cr.fill()
                y += effective_grid
            x += effective_grid
        cr.restore()

    # ==================== Connections ====================

    def _stroke_curve(self, cr, curve: CubicCurve):
        cr.move_to(*curve.start)
        cr.curve_to(*curve.c1, *curve.c2, *curve.end)
        cr.stroke()

    def _draw_arrow(self, cr, curve: CubicCurve, at_end: bool):
        tip, left, right = arrow_head(curve, at_end=at_end)
        cr.move_to(*tip)
        cr.line_to(*left)
        cr.line_to(*right)
        cr.close_path()
        cr.fill()

    def _draw_connection(self, cr, visual: ConnectionVisual):
        cr.save()
        rgb = hex_to_rgb(visual.tint)
        if visual.selected:
            cr.set_source_rgba(*self.COLORS['border_active'], 0.35)
            cr.set_line_width(7)
            self._stroke_curve(cr, visual.curve)

        cr.set_source_rgba(*rgb, 0.9)
        cr.set_line_width(2)
        cr.set_line_cap(cairo.LINE_CAP_ROUND)
        self._stroke_curve(cr, visual.curve)

        if visual.arrow_end:
            self._draw_arrow(cr, visual.curve, at_end=True)
        if visual.arrow_start:
            self._draw_arrow(cr, visual.curve, at_end=False)

        if visual.label:
            self._draw_connection_label(cr, visual.label, visual.curve.midpoint)
        cr.restore()

    def _draw_connection_label(self, cr, label: str, point: Tuple[float, float]):
        cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(11)
        extents = cr.text_extents(label)
        pad = 4
        x = point[0] - extents.width / 2
        y = point[1] - extents.height / 2
        self._rounded_rect(cr, x - pad, y - pad, extents.width + pad * 2, extents.height + pad * 2, 4)
        cr.set_source_rgb(*self.COLORS['bg_secondary'])
        cr.fill()
        cr.set_source_rgb(*self.COLORS['text_secondary'])
        cr.move_to(x - extents.x_bearing, y - extents.y_bearing)
        cr.show_text(label)

    def _draw_temp_connection(self, cr, start, handle, pointer):
        cr.save()
        cr.set_source_rgba(*self.COLORS['border_active'], 0.8)
        cr.set_line_width(2)
        cr.set_dash([6, 4])
        self._stroke_curve(cr, curve_path(start, pointer, handle, None))
        cr.restore()

    # ==================== Items ====================

    def _draw_item(self, cr, visual: ItemVisual):
        rect = visual.rect
        x, y, w, h = rect.x, rect.y, rect.w, rect.h
        cr.save()

        self._rounded_rect(cr, x, y, w, h, self.CORNER_RADIUS)
        bg = self.COLORS['surface_locked'] if visual.locked else self.COLORS['surface']
        cr.set_source_rgb(*bg)
        cr.fill_preserve()

        if visual.selected:
            cr.set_source_rgb(*self.COLORS['border_active'])
            cr.set_line_width(2)
        else:
            cr.set_source_rgb(*self.COLORS['border_subtle'])
            cr.set_line_width(1)
        cr.stroke()

        # Color accent bar
        cr.set_source_rgb(*hex_to_rgb(visual.accent))
        cr.rectangle(x + self.CORNER_RADIUS, y, w - self.CORNER_RADIUS * 2, 3)
        cr.fill()

        if visual.kind in (ItemKind.IMAGE, ItemKind.VIDEO):
            self._draw_media(cr, visual)
        else:
            self._draw_text(cr, visual)

        if visual.locked:
            self._draw_lock_badge(cr, x + w - 18, y + 10)
        else:
            self._draw_resize_grip(cr, x + w, y + h)
        cr.restore()

    def _draw_text(self, cr, visual: ItemVisual):
        rect = visual.rect
        pad = self.ITEM_PADDING
        max_width = rect.w - pad * 2
        cursor_y = rect.y + pad + 6

        cr.save()
        self._rounded_rect(cr, rect.x, rect.y, rect.w, rect.h, self.CORNER_RADIUS)
        cr.clip()

        if visual.title:
            cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_BOLD)
            cr.set_font_size(15)
            cr.set_source_rgb(*self.COLORS['text_primary'])
            for line in self._wrap(cr, visual.title, max_width)[:2]:
                cursor_y += 17
                cr.move_to(rect.x + pad, cursor_y)
                cr.show_text(line)
            cursor_y += 6

        size = self.FONT_SIZES.get(visual.font_size, 13)
        cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(size)
        color = self.COLORS['text_secondary'] if visual.kind == ItemKind.LINK else self.COLORS['text_primary']
        cr.set_source_rgb(*color)
        line_height = size * 1.35
        for paragraph in (visual.body or "").split("\n"):
            for line in self._wrap(cr, paragraph, max_width):
                cursor_y += line_height
                if cursor_y > rect.bottom - pad:
                    cr.restore()
                    return
                cr.move_to(rect.x + pad, cursor_y)
                cr.show_text(line)
        cr.restore()

    def _draw_media(self, cr, visual: ItemVisual):
        rect = visual.rect
        surface = visual.media
        if isinstance(surface, cairo.ImageSurface) and surface.get_width() > 0:
            scale = min(rect.w / surface.get_width(), rect.h / surface.get_height())
            cr.save()
            self._rounded_rect(cr, rect.x, rect.y, rect.w, rect.h, self.CORNER_RADIUS)
            cr.clip()
            cr.translate(rect.x + (rect.w - surface.get_width() * scale) / 2,
                         rect.y + (rect.h - surface.get_height() * scale) / 2)
            cr.scale(scale, scale)
            cr.set_source_surface(surface, 0, 0)
            cr.paint()
            cr.restore()
            return

        # Placeholder for video or missing media
        cx, cy = rect.center
        cr.set_source_rgb(*self.COLORS['text_secondary'])
        if visual.kind == ItemKind.VIDEO:
            cr.move_to(cx - 10, cy - 14)
            cr.line_to(cx + 16, cy)
            cr.line_to(cx - 10, cy + 14)
            cr.close_path()
            cr.fill()
        else:
            cr.set_line_width(1.5)
            cr.rectangle(cx - 18, cy - 14, 36, 28)
            cr.stroke()
            cr.arc(cx - 7, cy - 5, 3, 0, 2 * math.pi)
            cr.fill()

    def _draw_resize_grip(self, cr, right: float, bottom: float):
        cr.set_source_rgb(*self.COLORS['text_secondary'])
        cr.set_line_width(1)
        for offset in (4, 8, 12):
            cr.move_to(right - offset, bottom - 3)
            cr.line_to(right - 3, bottom - offset)
        cr.stroke()

    def _draw_lock_badge(self, cr, x: float, y: float):
        cr.set_source_rgb(*self.COLORS['text_secondary'])
        cr.set_line_width(1.5)
        cr.arc(x + 4, y + 3, 3.5, math.pi, 2 * math.pi)
        cr.stroke()
        cr.rectangle(x, y + 3, 8, 7)
        cr.fill()

    # ==================== Overlays ====================

    def _draw_selection_box(self, cr, box: Rect):
        cr.save()
        cr.rectangle(box.x, box.y, box.w, box.h)
        cr.set_source_rgba(*self.COLORS['selection_fill'], 0.12)
        cr.fill_preserve()
        cr.set_source_rgba(*self.COLORS['selection_fill'], 0.8)
        cr.set_line_width(1)
        cr.stroke()
        cr.restore()

    def _draw_minimap(self, cr, projection: MinimapProjection, frame: Rect):
        """Draw minimap in corner."""
        cr.save()
        self._rounded_rect(cr, frame.x, frame.y, frame.w, frame.h, 4)
        cr.set_source_rgba(*self.COLORS['bg_secondary'], 0.9)
        cr.fill_preserve()
        cr.set_source_rgb(*self.COLORS['border_subtle'])
        cr.set_line_width(1)
        cr.stroke()

        cr.rectangle(frame.x, frame.y, frame.w, frame.h)
        cr.clip()
        cr.translate(frame.x, frame.y)

        cr.set_source_rgba(*self.COLORS['text_secondary'], 0.6)
        cr.set_line_width(1)
        for x1, y1, x2, y2 in projection.lines:
            cr.move_to(x1, y1)
            cr.line_to(x2, y2)
        cr.stroke()

        for entry in projection.items:
            cr.set_source_rgb(*hex_to_rgb(entry.color))
            cr.rectangle(entry.rect.x, entry.rect.y, entry.rect.w, entry.rect.h)
            cr.fill()

        if projection.viewport is not None:
            vp = projection.viewport
            cr.set_source_rgba(*self.COLORS['border_active'], 0.15)
            cr.rectangle(vp.x, vp.y, vp.w, vp.h)
            cr.fill_preserve()
            cr.set_source_rgb(*self.COLORS['border_active'])
            cr.stroke()
        cr.restore()

    # ==================== Helpers ====================

    def _wrap(self, cr, text: str, max_width: float) -> List[str]:
        """Greedy word wrap using the current font."""
        words = text.split(" ")
        lines: List[str] = []
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if current and cr.text_extents(candidate).width > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        if current or not lines:
            lines.append(current)
        return lines

    def _rounded_rect(self, cr, x: float, y: float, w: float, h: float, radius: float):
        """Draw a rounded rectangle path."""
        cr.new_path()
        cr.arc(x + w - radius, y + radius, radius, -math.pi / 2, 0)
        cr.arc(x + w - radius, y + h - radius, radius, 0, math.pi / 2)
        cr.arc(x + radius, y + h - radius, radius, math.pi / 2, math.pi)
        cr.arc(x + radius, y + radius, radius, math.pi, 3 * math.pi / 2)
        cr.close_path()
