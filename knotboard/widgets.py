"""Custom widgets for the Knotboard application."""

from typing import Callable, List, Optional

import gi

gi.require_version("Gtk", "4.0")
gi.require_version("Adw", "1")
from gi.repository import Gtk, Gdk, GLib, Gio, Adw, Pango

from knotboard.config import AppSettings, save_settings
from knotboard.constants import FONT_SIZES
from knotboard.database import CanvasInfo, Database
from knotboard.scene import Connection, Item, ItemKind


class CanvasListRow(Gtk.Box):
    """A row in the canvas list sidebar."""

    def __init__(self, canvas: CanvasInfo):
        super().__init__(orientation=Gtk.Orientation.VERTICAL, spacing=4)
        self.canvas = canvas

        self.set_margin_start(12)
        self.set_margin_end(12)
        self.set_margin_top(8)
        self.set_margin_bottom(8)

        self.name_label = Gtk.Label(label=canvas.name)
        self.name_label.set_halign(Gtk.Align.START)
        self.name_label.set_ellipsize(Pango.EllipsizeMode.END)
        self.name_label.add_css_class("heading")
        self.append(self.name_label)

        self.info_label = Gtk.Label(label=self._info_text(canvas))
        self.info_label.set_halign(Gtk.Align.START)
        self.info_label.add_css_class("dim-label")
        self.info_label.add_css_class("caption")
        self.append(self.info_label)

    @staticmethod
    def _info_text(canvas: CanvasInfo) -> str:
        date_str = canvas.updated_at[:10] if canvas.updated_at else ""
        noun = "item" if canvas.item_count == 1 else "items"
        return f"{canvas.item_count} {noun} · {date_str}"

    def update(self, canvas: CanvasInfo):
        """Update the row with new canvas data."""
        self.canvas = canvas
        self.name_label.set_label(canvas.name)
        self.info_label.set_label(self._info_text(canvas))


class CanvasSidebar(Gtk.Box):
    """Left sidebar listing every canvas."""

    def __init__(self, db: Database):
        super().__init__(orientation=Gtk.Orientation.VERTICAL)
        self.db = db

        self.set_size_request(240, -1)

        # Callbacks
        self.on_canvas_selected: Optional[Callable[[CanvasInfo], None]] = None
        self.on_new_canvas: Optional[Callable[[], None]] = None
        self.on_canvas_delete: Optional[Callable[[CanvasInfo], None]] = None

        # Right-click target
        self._right_click_canvas: Optional[CanvasInfo] = None
        self._context_popover: Optional[Gtk.PopoverMenu] = None
        self._selecting = False

        # Header
        header = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)
        header.set_margin_start(16)
        header.set_margin_end(8)
        header.set_margin_top(12)
        header.set_margin_bottom(12)

        title = Gtk.Label(label="Canvases")
        title.set_hexpand(True)
        title.set_halign(Gtk.Align.START)
        title.add_css_class("heading")
        header.append(title)

        new_btn = Gtk.Button()
        new_btn.set_icon_name("list-add-symbolic")
        new_btn.set_tooltip_text("New Canvas (Ctrl+N)")
        new_btn.add_css_class("flat")
        new_btn.connect("clicked", self._on_new_clicked)
        header.append(new_btn)

        self.append(header)

        search_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)
        search_box.set_margin_start(12)
        search_box.set_margin_end(12)
        search_box.set_margin_bottom(8)

        self.search_entry = Gtk.SearchEntry()
        self.search_entry.set_placeholder_text("Filter canvases...")
        self.search_entry.set_hexpand(True)
        self.search_entry.connect("search-changed", self._on_search_changed)
        search_box.append(self.search_entry)

        self.append(search_box)
        self.append(Gtk.Separator(orientation=Gtk.Orientation.HORIZONTAL))

        scrolled = Gtk.ScrolledWindow()
        scrolled.set_vexpand(True)
        scrolled.set_policy(Gtk.PolicyType.NEVER, Gtk.PolicyType.AUTOMATIC)

        self.listbox = Gtk.ListBox()
        self.listbox.set_selection_mode(Gtk.SelectionMode.SINGLE)
        self.listbox.add_css_class("navigation-sidebar")
        self.listbox.connect("row-selected", self._on_row_selected)
        self.listbox.set_filter_func(self._filter_func)

        right_click = Gtk.GestureClick()
        right_click.set_button(3)
        right_click.connect("pressed", self._on_right_click)
        self.listbox.add_controller(right_click)

        scrolled.set_child(self.listbox)
        self.append(scrolled)

        self.rows: List[Gtk.ListBoxRow] = []
        self.filter_text = ""

        self.refresh()

    def refresh(self):
        """Reload the canvas list from the database."""
        self._selecting = True
        while True:
            row = self.listbox.get_row_at_index(0)
            if row is None:
                break
            self.listbox.remove(row)
        self.rows.clear()

        canvases = self.db.list_canvases()
        for canvas in canvases:
            row = Gtk.ListBoxRow()
            row.set_child(CanvasListRow(canvas))
            row.canvas = canvas
            self.listbox.append(row)
            self.rows.append(row)

        if not canvases:
            self._show_empty_state()
        self._selecting = False

    def update_canvas(self, canvas: CanvasInfo):
        """Refresh one row's labels without rebuilding the list."""
        for row in self.rows:
            if row.canvas.id == canvas.id:
                row.canvas = canvas
                row.get_child().update(canvas)
                break

    def _show_empty_state(self):
        empty_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=8)
        empty_box.set_valign(Gtk.Align.CENTER)
        empty_box.set_margin_top(40)
        empty_box.set_margin_bottom(40)

        label = Gtk.Label(label="No canvases yet")
        label.add_css_class("dim-label")
        empty_box.append(label)

        hint = Gtk.Label(label="Press Ctrl+N to create one")
        hint.add_css_class("dim-label")
        hint.set_opacity(0.6)
        empty_box.append(hint)

        row = Gtk.ListBoxRow()
        row.set_child(empty_box)
        row.set_selectable(False)
        row.set_activatable(False)
        self.listbox.append(row)

    def _filter_func(self, row: Gtk.ListBoxRow) -> bool:
        if not self.filter_text or not hasattr(row, 'canvas'):
            return True
        return self.filter_text.lower() in row.canvas.name.lower()

    def _on_search_changed(self, entry):
        self.filter_text = entry.get_text()
        self.listbox.invalidate_filter()

    def _on_row_selected(self, listbox, row):
        if self._selecting:
            return
        if row and hasattr(row, 'canvas') and self.on_canvas_selected:
            self.on_canvas_selected(row.canvas)

    def _on_new_clicked(self, button):
        if self.on_new_canvas:
            self.on_new_canvas()

    def _on_right_click(self, gesture, n_press, x, y):
        """Offer canvas actions for the row under the pointer."""
        row = self.listbox.get_row_at_y(int(y))
        if not row or not hasattr(row, 'canvas'):
            return

        self._right_click_canvas = row.canvas
        self.listbox.select_row(row)

        menu = Gio.Menu()
        menu.append("Delete", "sidebar.delete-canvas")

        action_group = Gio.SimpleActionGroup()
        delete_action = Gio.SimpleAction.new("delete-canvas", None)
        delete_action.connect("activate", self._on_delete_canvas)
        action_group.add_action(delete_action)
        self.insert_action_group("sidebar", action_group)

        if self._context_popover is not None:
            self._context_popover.unparent()
            self._context_popover = None

        popover = Gtk.PopoverMenu.new_from_model(menu)
        popover.set_parent(self.listbox)
        popover.set_has_arrow(True)
        popover.set_pointing_to(Gdk.Rectangle(int(x), int(y), 1, 1))

        # Defer unparent to idle so the action callback fires first
        def _on_popover_closed(p):
            def _do_unparent():
                if self._context_popover is p:
                    p.unparent()
                    self._context_popover = None
                return False
            GLib.idle_add(_do_unparent)
        popover.connect("closed", _on_popover_closed)

        self._context_popover = popover
        popover.popup()

    def _on_delete_canvas(self, action, param):
        if self._right_click_canvas and self.on_canvas_delete:
            self.on_canvas_delete(self._right_click_canvas)

    def select_canvas(self, canvas_id: int):
        """Highlight a canvas row without emitting a selection callback."""
        self._selecting = True
        for row in self.rows:
            if row.canvas.id == canvas_id:
                self.listbox.select_row(row)
                break
        self._selecting = False


class ItemEditorDialog(Adw.MessageDialog):
    """Edits the text payload of a note, memo or link."""

    def __init__(self, parent: Gtk.Window, item: Item):
        super().__init__(transient_for=parent, heading=f"Edit {item.kind.value.capitalize()}")
        self.item = item

        # Callbacks
        self.on_saved: Optional[Callable[[str, object], None]] = None

        box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=8)
        self._title_entry: Optional[Gtk.Entry] = None
        self._url_entry: Optional[Gtk.Entry] = None
        self._buffer: Optional[Gtk.TextBuffer] = None

        if item.kind == ItemKind.LINK:
            self._url_entry = self._entry(box, "URL", item.content.get("url", ""))
            self._title_entry = self._entry(box, "Title", item.content.get("title", ""))
        elif item.kind == ItemKind.NOTE:
            self._title_entry = self._entry(box, "Title", item.content.get("title", ""))
            self._buffer = self._text_view(box, item.content.get("body", ""))
        else:
            self._buffer = self._text_view(box, item.content)

        self.set_extra_child(box)
        self.add_response("cancel", "Cancel")
        self.add_response("save", "Save")
        self.set_response_appearance("save", Adw.ResponseAppearance.SUGGESTED)
        self.set_default_response("save")
        self.connect("response", self._on_response)

    @staticmethod
    def _entry(box: Gtk.Box, placeholder: str, text: str) -> Gtk.Entry:
        entry = Gtk.Entry()
        entry.set_placeholder_text(placeholder)
        entry.set_text(text)
        box.append(entry)
        return entry

    @staticmethod
    def _text_view(box: Gtk.Box, text: str) -> Gtk.TextBuffer:
        scrolled = Gtk.ScrolledWindow()
        scrolled.set_min_content_height(160)
        scrolled.set_min_content_width(320)
        view = Gtk.TextView()
        view.set_wrap_mode(Gtk.WrapMode.WORD_CHAR)
        view.get_buffer().set_text(text)
        scrolled.set_child(view)
        box.append(scrolled)
        return view.get_buffer()

    def _text(self) -> str:
        start, end = self._buffer.get_bounds()
        return self._buffer.get_text(start, end, False)

    def content(self):
        """The edited payload, shaped like the item's content."""
        if self.item.kind == ItemKind.LINK:
            url = self._url_entry.get_text().strip()
            return {"url": url, "title": self._title_entry.get_text(), "display_text": url}
        if self.item.kind == ItemKind.NOTE:
            return {"title": self._title_entry.get_text(), "body": self._text()}
        return self._text()

    def _on_response(self, dialog, response):
        if response == "save" and self.on_saved:
            self.on_saved(self.item.id, self.content())


class ConnectionLabelDialog(Adw.MessageDialog):
    """Edits a connection's label."""

    def __init__(self, parent: Gtk.Window, connection: Connection):
        super().__init__(transient_for=parent, heading="Connection Label")
        self.connection = connection

        # Callbacks
        self.on_saved: Optional[Callable[[str, str], None]] = None

        self.entry = Gtk.Entry()
        self.entry.set_text(connection.label)
        self.entry.set_activates_default(True)
        self.set_extra_child(self.entry)

        self.add_response("cancel", "Cancel")
        self.add_response("save", "Save")
        self.set_response_appearance("save", Adw.ResponseAppearance.SUGGESTED)
        self.set_default_response("save")
        self.connect("response", self._on_response)

    def _on_response(self, dialog, response):
        if response == "save" and self.on_saved:
            self.on_saved(self.connection.id, self.entry.get_text())


class SettingsDialog(Adw.PreferencesWindow):
    """Settings/preferences dialog."""

    FONT_LABELS = ["Default", "Medium", "Large", "Extra Large"]
    AUTOSAVE_CHOICES = [500, 1500, 5000]

    def __init__(self, parent: Gtk.Window, db: Database, settings: AppSettings):
        super().__init__()
        self.db = db
        self.settings = settings

        # Live-apply callback: (key: str, value: Any) -> None
        self.on_settings_changed: Optional[Callable] = None

        self.set_transient_for(parent)
        self.set_modal(True)
        self.set_default_size(600, 500)
        self.set_title("Preferences")

        # Appearance page
        appearance_page = Adw.PreferencesPage()
        appearance_page.set_title("Appearance")
        appearance_page.set_icon_name("applications-graphics-symbolic")

        canvas_group = Adw.PreferencesGroup()
        canvas_group.set_title("Canvas")

        grid_row = Adw.SwitchRow()
        grid_row.set_title("Show Grid")
        grid_row.set_subtitle("Display dot grid pattern on canvas")
        grid_row.set_active(settings.show_grid)
        grid_row.connect("notify::active", lambda row, _p: self._update("show_grid", row.get_active()))
        canvas_group.add(grid_row)

        minimap_row = Adw.SwitchRow()
        minimap_row.set_title("Show Minimap")
        minimap_row.set_subtitle("Display navigation overview in the corner")
        minimap_row.set_active(settings.show_minimap)
        minimap_row.connect("notify::active", lambda row, _p: self._update("show_minimap", row.get_active()))
        canvas_group.add(minimap_row)

        font_row = Adw.ComboRow()
        font_row.set_title("Memo Font Size")
        font_row.set_subtitle("Used for new memos")
        font_row.set_model(Gtk.StringList.new(self.FONT_LABELS))
        font_row.set_selected(FONT_SIZES.index(settings.default_font_size))
        font_row.connect("notify::selected",
                         lambda row, _p: self._update("default_font_size", FONT_SIZES[row.get_selected()]))
        canvas_group.add(font_row)

        appearance_page.add(canvas_group)
        self.add(appearance_page)

        # Behavior page
        behavior_page = Adw.PreferencesPage()
        behavior_page.set_title("Behavior")
        behavior_page.set_icon_name("preferences-system-symbolic")

        input_group = Adw.PreferencesGroup()
        input_group.set_title("Input")

        invert_row = Adw.SwitchRow()
        invert_row.set_title("Invert Wheel Zoom")
        invert_row.set_subtitle("Scroll down to zoom in")
        invert_row.set_active(settings.invert_wheel_zoom)
        invert_row.connect("notify::active", lambda row, _p: self._update("invert_wheel_zoom", row.get_active()))
        input_group.add(invert_row)
        behavior_page.add(input_group)

        history_group = Adw.PreferencesGroup()
        history_group.set_title("History and Saving")

        history_row = Adw.SpinRow.new_with_range(2, 200, 1)
        history_row.set_title("Undo Steps")
        history_row.set_subtitle("Takes effect for the next canvas opened")
        history_row.set_value(settings.history_capacity)
        history_row.connect("notify::value",
                            lambda row, _p: self._update("history_capacity", int(row.get_value())))
        history_group.add(history_row)

        autosave_row = Adw.ComboRow()
        autosave_row.set_title("Auto-save Delay")
        autosave_row.set_subtitle("Quiet time before changes are written")
        autosave_row.set_model(Gtk.StringList.new(["Half a second", "1.5 seconds", "5 seconds"]))
        delay = settings.autosave_delay_ms
        autosave_row.set_selected(self.AUTOSAVE_CHOICES.index(delay) if delay in self.AUTOSAVE_CHOICES else 1)
        autosave_row.connect("notify::selected",
                             lambda row, _p: self._update("autosave_delay_ms",
                                                          self.AUTOSAVE_CHOICES[row.get_selected()]))
        history_group.add(autosave_row)

        behavior_page.add(history_group)
        self.add(behavior_page)

    def _update(self, key: str, value):
        """Store one setting and notify the listener."""
        setattr(self.settings, key, value)
        save_settings(self.db, self.settings)
        if self.on_settings_changed:
            self.on_settings_changed(key, value)
