"""Main Knotboard application."""

import logging
import sqlite3
import sys
from pathlib import Path
from typing import Optional

import gi
gi.require_version("Gtk", "4.0")
gi.require_version("Adw", "1")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gdk, Gio, GLib, Adw

from knotboard import __version__, __app_id__
from knotboard.canvas import CanvasWidget, GLibTimer, decode_image
from knotboard.config import load_settings, save_settings
from knotboard.constants import COLORS, FONT_SIZES
from knotboard.database import CanvasInfo, Database
from knotboard.export import CanvasExporter, get_export_dir, import_document, read_document
from knotboard.geometry import Handle
from knotboard.scene import ColorFilter, ItemKind
from knotboard.widgets import CanvasSidebar, ConnectionLabelDialog, ItemEditorDialog, SettingsDialog
from knotboard.workspace import Workspace

logger = logging.getLogger(__name__)

FILTER_VALUES = [ColorFilter.ALL, ColorFilter.NONE, *COLORS]
FILTER_LABELS = ["All Colors", "Uncolored", *[c.capitalize() for c in COLORS]]


class KnotboardWindow(Adw.ApplicationWindow):
    """Main application window."""

    def __init__(self, app: Adw.Application, db: Database):
        super().__init__(application=app)
        self.db = db
        self.settings = load_settings(db)
        self.workspace = Workspace(db, self.settings, timer=GLibTimer(), decoder=decode_image)
        self.workspace.on_save_failed = self._on_save_failed
        self.workspace.on_saved = self._on_saved
        self.workspace.on_canvas_changed = self._on_canvas_changed
        self.exporter = CanvasExporter(self.workspace)

        # Window setup
        self.set_title("Knotboard")
        self.set_default_size(1400, 900)
        self.connect("close-request", self._on_close_request)

        self._load_css()
        self._build_ui()
        self._setup_shortcuts()
        self._open_initial_canvas()

    def _load_css(self):
        """Load custom CSS theme."""
        css_path = Path(__file__).parent / "theme.css"
        if css_path.exists():
            css_provider = Gtk.CssProvider()
            css_provider.load_from_path(str(css_path))
            Gtk.StyleContext.add_provider_for_display(
                Gdk.Display.get_default(),
                css_provider,
                Gtk.STYLE_PROVIDER_PRIORITY_APPLICATION
            )

    def _build_ui(self):
        """Build the main UI layout."""
        main_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL)
        main_box.append(self._build_header())
        main_box.append(self._build_search_bar())

        self.main_paned = Gtk.Paned(orientation=Gtk.Orientation.HORIZONTAL)
        self.main_paned.set_vexpand(True)

        # Left sidebar
        self.sidebar = CanvasSidebar(self.db)
        self.sidebar.on_canvas_selected = self._on_canvas_selected
        self.sidebar.on_new_canvas = self._on_new_canvas
        self.sidebar.on_canvas_delete = self._on_canvas_delete

        self.sidebar_revealer = Gtk.Revealer()
        self.sidebar_revealer.set_transition_type(Gtk.RevealerTransitionType.SLIDE_RIGHT)
        self.sidebar_revealer.set_reveal_child(True)
        self.sidebar_revealer.set_child(self.sidebar)

        self.main_paned.set_start_child(self.sidebar_revealer)
        self.main_paned.set_shrink_start_child(False)
        self.main_paned.set_resize_start_child(False)

        # Canvas
        self.canvas = CanvasWidget(self.workspace)
        self.canvas.on_item_activated = self._edit_item
        self.canvas.on_connection_activated = self._edit_connection_label

        canvas_frame = Gtk.Frame()
        canvas_frame.set_child(self.canvas)
        canvas_frame.add_css_class("canvas-container")
        self.main_paned.set_end_child(canvas_frame)

        # Wrap in toast overlay for in-app notifications
        self.toast_overlay = Adw.ToastOverlay()
        self.toast_overlay.set_child(self.main_paned)
        main_box.append(self.toast_overlay)

        self.set_content(main_box)

    def _build_search_bar(self) -> Gtk.SearchBar:
        """Build the find-on-canvas bar."""
        self.search_entry = Gtk.SearchEntry()
        self.search_entry.set_placeholder_text("Find notes, memos and links...")
        self.search_entry.set_hexpand(True)
        self.search_entry.connect("search-changed", self._on_search_changed)
        self.search_entry.connect("activate", lambda e: self._find_step(1))
        self.search_entry.connect("next-match", lambda e: self._find_step(1))
        self.search_entry.connect("previous-match", lambda e: self._find_step(-1))
        self.search_entry.connect("stop-search", lambda e: self._close_search())

        search_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=6)
        search_box.append(self.search_entry)

        nav_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)
        nav_box.add_css_class("linked")
        for icon, step, tooltip in (
            ("go-up-symbolic", -1, "Previous Match (Ctrl+Shift+G)"),
            ("go-down-symbolic", 1, "Next Match (Ctrl+G)"),
        ):
            btn = Gtk.Button()
            btn.set_icon_name(icon)
            btn.set_tooltip_text(tooltip)
            btn.connect("clicked", lambda b, s=step: self._find_step(s))
            nav_box.append(btn)
        search_box.append(nav_box)

        self.search_status = Gtk.Label()
        self.search_status.add_css_class("dim-label")
        search_box.append(self.search_status)

        self.search_bar = Gtk.SearchBar()
        self.search_bar.set_child(search_box)
        self.search_bar.connect_entry(self.search_entry)
        self.search_bar.set_show_close_button(True)
        return self.search_bar

    def _build_header(self) -> Adw.HeaderBar:
        """Build the header bar."""
        header = Adw.HeaderBar()
        header.add_css_class("flat")

        menu_btn = Gtk.MenuButton()
        menu_btn.set_icon_name("open-menu-symbolic")
        menu_btn.set_tooltip_text("Menu")
        popover = Gtk.PopoverMenu()
        popover.set_menu_model(self._build_menu())
        menu_btn.set_popover(popover)
        header.pack_start(menu_btn)

        sidebar_btn = Gtk.ToggleButton()
        sidebar_btn.set_icon_name("sidebar-show-symbolic")
        sidebar_btn.set_tooltip_text("Toggle Sidebar (Ctrl+B)")
        sidebar_btn.set_active(True)
        sidebar_btn.connect("toggled", self._on_sidebar_toggled)
        self.sidebar_btn = sidebar_btn
        header.pack_start(sidebar_btn)

        # Editable canvas name
        self.title_entry = Gtk.Entry()
        self.title_entry.set_max_width_chars(25)
        self.title_entry.set_hexpand(False)
        self.title_entry.add_css_class("flat")
        self.title_entry.add_css_class("title")
        self.title_entry.connect("activate", self._on_title_changed)
        focus_ctrl = Gtk.EventControllerFocus()
        focus_ctrl.connect("leave", lambda c: self._on_title_changed(self.title_entry))
        self.title_entry.add_controller(focus_ctrl)
        header.pack_start(self.title_entry)

        # Item creation
        add_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)
        add_box.add_css_class("linked")
        for label, action, tooltip in (
            ("Note", "win.add-note", "Add Note (Ctrl+Shift+N)"),
            ("Memo", "win.add-memo", "Add Memo (Ctrl+Shift+M)"),
            ("Link", "win.add-link", "Add Link (Ctrl+Shift+L)"),
        ):
            btn = Gtk.Button(label=label)
            btn.set_action_name(action)
            btn.set_tooltip_text(tooltip)
            add_box.append(btn)
        header.set_title_widget(add_box)

        # View controls
        for icon, action, tooltip in (
            ("zoom-fit-best-symbolic", "win.zoom-fit", "Zoom to Fit (Ctrl+0)"),
            ("zoom-in-symbolic", "win.zoom-in", "Zoom In (Ctrl++)"),
            ("zoom-out-symbolic", "win.zoom-out", "Zoom Out (Ctrl+-)"),
        ):
            btn = Gtk.Button()
            btn.set_icon_name(icon)
            btn.set_action_name(action)
            btn.set_tooltip_text(tooltip)
            header.pack_end(btn)

        self.filter_dropdown = Gtk.DropDown(model=Gtk.StringList.new(FILTER_LABELS))
        self.filter_dropdown.set_tooltip_text("Show items by color")
        self.filter_dropdown.connect("notify::selected", self._on_filter_changed)
        header.pack_end(self.filter_dropdown)

        return header

    def _build_menu(self) -> Gio.Menu:
        menu = Gio.Menu()

        file_section = Gio.Menu()
        file_section.append("New Canvas", "win.new-canvas")
        file_section.append("Duplicate Canvas", "win.duplicate-canvas")
        file_section.append("Delete Canvas", "win.delete-canvas")
        file_section.append("Import JSON...", "win.import-json")
        export_menu = Gio.Menu()
        export_menu.append("Export as PNG...", "win.export-png")
        export_menu.append("Export as JSON...", "win.export-json")
        file_section.append_submenu("Export", export_menu)
        menu.append_section(None, file_section)

        insert_section = Gio.Menu()
        insert_section.append("Insert Image...", "win.insert-image")
        insert_section.append("Insert Video...", "win.insert-video")
        child_menu = Gio.Menu()
        for handle in Handle:
            child_menu.append(handle.value.capitalize(), f"win.add-child::{handle.value}")
        insert_section.append_submenu("Add Connected Memo", child_menu)
        menu.append_section(None, insert_section)

        item_section = Gio.Menu()
        item_section.append("Edit", "win.edit-item")
        item_section.append("Duplicate", "win.duplicate")
        item_section.append("Lock / Unlock", "win.toggle-lock")
        item_section.append("Bring to Front", "win.bring-to-front")
        color_menu = Gio.Menu()
        color_menu.append("None", "win.set-color::none")
        for color in COLORS:
            color_menu.append(color.capitalize(), f"win.set-color::{color}")
        item_section.append_submenu("Color", color_menu)
        font_menu = Gio.Menu()
        for size, label in zip(FONT_SIZES, SettingsDialog.FONT_LABELS):
            font_menu.append(label, f"win.set-font-size::{size or 'default'}")
        item_section.append_submenu("Memo Font Size", font_menu)
        conn_menu = Gio.Menu()
        conn_menu.append("No Arrows", "win.set-direction::none")
        conn_menu.append("Forward", "win.set-direction::forward")
        conn_menu.append("Backward", "win.set-direction::backward")
        conn_menu.append("Both Ways", "win.set-direction::both")
        conn_menu.append("Cycle Direction", "win.cycle-direction")
        conn_menu.append("Edit Label...", "win.edit-label")
        item_section.append_submenu("Connection", conn_menu)
        menu.append_section(None, item_section)

        view_section = Gio.Menu()
        view_section.append("Find...", "win.find")
        view_section.append("Toggle Sidebar", "win.toggle-sidebar")
        view_section.append("Toggle Grid", "win.toggle-grid")
        view_section.append("Toggle Minimap", "win.toggle-minimap")
        view_section.append("Zoom to Fit", "win.zoom-fit")
        view_section.append("Zoom to 100%", "win.zoom-100")
        menu.append_section(None, view_section)

        help_section = Gio.Menu()
        help_section.append("Preferences", "win.show-preferences")
        help_section.append("About Knotboard", "win.show-about")
        menu.append_section(None, help_section)
        return menu

    def _setup_shortcuts(self):
        """Setup keyboard shortcuts."""
        ws = self.workspace
        actions = [
            ("new-canvas", self._on_new_canvas, "<Control>n"),
            ("save", self._on_save, "<Control>s"),
            ("duplicate-canvas", self._on_duplicate_canvas, None),
            ("delete-canvas", lambda: self._on_canvas_delete(ws.canvas), None),
            ("add-note", self._add_note, "<Control><Shift>n"),
            ("add-memo", self._add_memo, "<Control><Shift>m"),
            ("add-link", self._add_link, "<Control><Shift>l"),
            ("insert-image", lambda: self._insert_media(ItemKind.IMAGE), "<Control><Shift>i"),
            ("insert-video", lambda: self._insert_media(ItemKind.VIDEO), None),
            ("edit-item", self._edit_selected, "<Control>e"),
            ("duplicate", ws.duplicate_selection, "<Control>d"),
            ("toggle-lock", ws.toggle_lock, "<Control>l"),
            ("bring-to-front", ws.bring_to_front, "<Control><Shift>f"),
            ("cycle-direction", ws.cycle_connection_direction, "<Control>period"),
            ("edit-label", lambda: self._edit_connection_label(ws.selection.connection_id), None),
            ("toggle-sidebar", self._toggle_sidebar, "<Control>b"),
            ("toggle-grid", self._toggle_grid, None),
            ("toggle-minimap", self._toggle_minimap, "<Control>m"),
            ("find", self._show_search, "<Control>f"),
            ("find-next", lambda: self._find_step(1), "<Control>g"),
            ("find-prev", lambda: self._find_step(-1), "<Control><Shift>g"),
            ("zoom-fit", ws.fit, "<Control>0"),
            ("zoom-100", ws.reset_zoom, "<Control>1"),
            ("zoom-in", ws.zoom_in, "<Control>plus"),
            ("zoom-out", ws.zoom_out, "<Control>minus"),
            ("undo", self._undo, "<Control>z"),
            ("redo", self._redo, "<Control><Shift>z"),
            ("export-png", self._export_png, None),
            ("export-json", self._export_json, None),
            ("import-json", self._import_json, "<Control>o"),
            ("show-preferences", self._show_preferences, "<Control>comma"),
            ("show-about", self._show_about, None),
            ("quit", lambda: self.close(), "<Control>q"),
        ]

        for name, callback, accel in actions:
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", lambda a, p, cb=callback: cb())
            self.add_action(action)

            if accel:
                self.get_application().set_accels_for_action(f"win.{name}", [accel])

        # Actions that take a string target from the menu
        string_actions = [
            ("set-color", lambda v: ws.set_color(None if v == "none" else v)),
            ("set-font-size", lambda v: ws.set_font_size(None if v == "default" else v)),
            ("set-direction", ws.set_connection_direction),
            ("add-child", lambda v: self._add_child(Handle(v))),
        ]
        for name, callback in string_actions:
            action = Gio.SimpleAction.new(name, GLib.VariantType.new("s"))
            action.connect("activate", lambda a, p, cb=callback: cb(p.get_string()))
            self.add_action(action)

        # Additional accelerators
        self.get_application().set_accels_for_action("win.zoom-in", ["<Control>plus", "<Control>equal"])
        self.get_application().set_accels_for_action("win.redo", ["<Control><Shift>z", "<Control>y"])
        self.get_application().set_accels_for_action("win.add-child::right", ["<Control>Return"])

    # ==================== Canvas lifecycle ====================

    def _open_initial_canvas(self):
        canvases = self.db.list_canvases()
        last_id = self.settings.last_canvas_id
        if last_id is not None and any(c.id == last_id for c in canvases):
            self._open_canvas(last_id)
        elif canvases:
            self._open_canvas(canvases[0].id)
        else:
            self._on_new_canvas()

    def _open_canvas(self, canvas_id: int):
        try:
            self.workspace.open_canvas(canvas_id)
        except LookupError:
            self._show_toast("That canvas no longer exists")
            self.sidebar.refresh()
            return
        except sqlite3.Error as e:
            logger.error("Opening canvas %d failed: %s", canvas_id, e)
            self._show_toast("Could not open the canvas")
            return
        load = self.workspace.last_load
        if load is not None and (load.skipped_items or load.dropped_connections):
            self._show_toast(f"Skipped {load.skipped_items} damaged items and "
                             f"{load.dropped_connections} broken connections")

    def _on_canvas_changed(self, canvas: CanvasInfo):
        self.title_entry.set_text(canvas.name)
        self.sidebar.select_canvas(canvas.id)
        self.settings.last_canvas_id = canvas.id
        save_settings(self.db, self.settings)
        self.filter_dropdown.set_selected(0)
        self.search_bar.set_search_mode(False)

    def _on_saved(self, canvas: CanvasInfo):
        self.sidebar.update_canvas(canvas)

    def _on_save_failed(self, error: Exception):
        self._show_toast("Saving failed; your changes are kept in memory")

    def _on_close_request(self, window) -> bool:
        self.workspace.close()
        self.canvas.detach()
        return False

    # ==================== Event Handlers ====================

    def _on_canvas_selected(self, canvas: CanvasInfo):
        current = self.workspace.canvas
        if current and current.id == canvas.id:
            return
        self._open_canvas(canvas.id)

    def _on_new_canvas(self, *args):
        """Create a new canvas."""
        canvas = self.db.create_canvas("Untitled Canvas")
        self.sidebar.refresh()
        self._open_canvas(canvas.id)

        # Focus title for editing
        self.title_entry.grab_focus()
        self.title_entry.select_region(0, -1)

    def _on_duplicate_canvas(self):
        current = self.workspace.canvas
        if not current:
            return
        self.workspace.flush()
        copy = self.db.duplicate_canvas(current.id, f"{current.name} (Copy)")
        if copy:
            self.sidebar.refresh()
            self._open_canvas(copy.id)

    def _on_canvas_delete(self, canvas: Optional[CanvasInfo]):
        """Ask before deleting a canvas."""
        if canvas is None:
            return
        dialog = Adw.MessageDialog(
            transient_for=self,
            heading="Delete Canvas?",
            body=f"Are you sure you want to delete \"{canvas.name}\"? This cannot be undone."
        )
        dialog.add_response("cancel", "Cancel")
        dialog.add_response("delete", "Delete")
        dialog.set_response_appearance("delete", Adw.ResponseAppearance.DESTRUCTIVE)
        dialog.set_default_response("cancel")
        dialog.connect("response", lambda d, r: self._confirm_canvas_delete(r, canvas))
        dialog.present()

    def _confirm_canvas_delete(self, response: str, canvas: CanvasInfo):
        if response != "delete":
            return
        current = self.workspace.canvas
        is_current = current is not None and current.id == canvas.id
        if is_current:
            # Nothing pending may be written to the deleted row
            self.workspace.autosave.cancel()
        self.db.delete_canvas(canvas.id)
        self.sidebar.refresh()

        if is_current:
            canvases = self.db.list_canvases()
            if canvases:
                self._open_canvas(canvases[0].id)
            else:
                self._on_new_canvas()
        elif current is not None:
            self.sidebar.select_canvas(current.id)

    def _on_save(self):
        """Manual save."""
        if self.workspace.autosave.pending:
            self.workspace.flush()
        elif self.workspace.save():
            self._show_toast("Saved")

    def _on_title_changed(self, entry):
        current = self.workspace.canvas
        if not current:
            return
        new_name = entry.get_text().strip()
        if new_name and new_name != current.name:
            self.workspace.rename_canvas(new_name)
            self.sidebar.update_canvas(current)

    def _on_filter_changed(self, dropdown, param):
        self.workspace.set_filter(FILTER_VALUES[dropdown.get_selected()])

    def _on_sidebar_toggled(self, button):
        self.sidebar_revealer.set_reveal_child(button.get_active())

    # ==================== Item commands ====================

    def _add_note(self):
        self.workspace.create_note(*self.workspace.view_center(ItemKind.NOTE), title="New note")

    def _add_memo(self):
        self.workspace.create_memo(*self.workspace.view_center(ItemKind.MEMO))

    def _add_link(self):
        dialog = Adw.MessageDialog(transient_for=self, heading="Add Link",
                                   body="Enter the address to link to:")
        entry = Gtk.Entry()
        entry.set_placeholder_text("https://")
        entry.set_activates_default(True)
        dialog.set_extra_child(entry)
        dialog.add_response("cancel", "Cancel")
        dialog.add_response("add", "Add")
        dialog.set_response_appearance("add", Adw.ResponseAppearance.SUGGESTED)
        dialog.set_default_response("add")
        dialog.connect("response", lambda d, r: self._confirm_add_link(r, entry.get_text()))
        dialog.present()
        entry.grab_focus()

    def _confirm_add_link(self, response: str, url: str):
        url = url.strip()
        if response == "add" and url:
            self.workspace.create_link(*self.workspace.view_center(ItemKind.LINK), url=url)

    def _add_child(self, handle: Handle):
        ids = self.workspace.selection.item_ids
        if len(ids) != 1:
            self._show_toast("Select one item to add a connected memo")
            return
        self.workspace.add_child(next(iter(ids)), handle)

    def _edit_selected(self):
        ids = self.workspace.selection.item_ids
        if len(ids) == 1:
            self._edit_item(next(iter(ids)))

    def _edit_item(self, item_id: str):
        item = self.workspace.scene.get_item(item_id)
        if item is None:
            return
        if item.media_id:
            self._show_toast("Images and videos have no text to edit")
            return
        dialog = ItemEditorDialog(self, item)
        dialog.on_saved = self.workspace.edit_content
        dialog.present()

    def _edit_connection_label(self, conn_id: Optional[str]):
        conn = self.workspace.scene.get_connection(conn_id) if conn_id else None
        if conn is None:
            return
        dialog = ConnectionLabelDialog(self, conn)
        dialog.on_saved = lambda cid, label: self.workspace.set_connection_label(label, cid)
        dialog.present()

    def _undo(self):
        # Leave text undo to focused entries
        if isinstance(self.get_focus(), Gtk.Text):
            return
        self.workspace.undo()

    def _redo(self):
        if isinstance(self.get_focus(), Gtk.Text):
            return
        self.workspace.redo()

    # ==================== View ====================

    def _toggle_sidebar(self):
        revealed = self.sidebar_revealer.get_reveal_child()
        self.sidebar_revealer.set_reveal_child(not revealed)
        self.sidebar_btn.set_active(not revealed)

    def _toggle_grid(self):
        self._on_settings_changed("show_grid", not self.settings.show_grid)
        save_settings(self.db, self.settings)

    def _toggle_minimap(self):
        self._on_settings_changed("show_minimap", not self.settings.show_minimap)
        save_settings(self.db, self.settings)

    def _show_search(self):
        self.search_bar.set_search_mode(True)
        self.search_entry.grab_focus()

    def _close_search(self):
        self.search_bar.set_search_mode(False)
        self.workspace.clear_search()
        self.canvas.grab_focus()

    def _on_search_changed(self, entry):
        """Re-run the search and jump to the first match."""
        query = entry.get_text()
        results = self.workspace.search(query)
        if not query.strip():
            self.search_status.set_label("")
        elif not results:
            self.search_status.set_label("No matches")
        else:
            self._find_step(1)

    def _find_step(self, step: int):
        ws = self.workspace
        if not ws.search_results and self.search_entry.get_text().strip():
            ws.search(self.search_entry.get_text())
        item_id = ws.search_next() if step > 0 else ws.search_prev()
        if item_id is None:
            return
        self.search_status.set_label(f"{ws.search_index + 1} of {len(ws.search_results)}")
        self.canvas.queue_draw()

    def _show_preferences(self):
        dialog = SettingsDialog(self, self.db, self.settings)
        dialog.on_settings_changed = self._on_settings_changed
        dialog.present()

    def _on_settings_changed(self, key: str, value):
        """Apply a setting change to the live canvas."""
        setattr(self.settings, key, value)
        if key == "show_grid":
            self.canvas.set_show_grid(bool(value))
        elif key == "show_minimap":
            self.canvas.set_show_minimap(bool(value))
        elif key == "invert_wheel_zoom":
            self.workspace.controller.invert_wheel_zoom = bool(value)
        elif key == "autosave_delay_ms":
            self.workspace.autosave.delay_ms = int(value)
        elif key == "history_capacity":
            self.workspace.history.capacity = max(2, int(value))

    def _show_about(self):
        about = Adw.AboutWindow(
            transient_for=self,
            application_name="Knotboard",
            application_icon="applications-graphics",
            developer_name="Knotboard Project",
            version=__version__,
            license_type=Gtk.License.MIT_X11,
            comments="A freeform board of notes, memos, links and media"
        )
        about.present()

    # ==================== Files ====================

    def _file_dialog(self, title: str, filter_name: str, mime_types=(), patterns=()) -> Gtk.FileDialog:
        dialog = Gtk.FileDialog()
        dialog.set_title(title)
        dialog.set_initial_folder(Gio.File.new_for_path(str(get_export_dir())))

        file_filter = Gtk.FileFilter()
        file_filter.set_name(filter_name)
        for mime_type in mime_types:
            file_filter.add_mime_type(mime_type)
        for pattern in patterns:
            file_filter.add_pattern(pattern)

        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(file_filter)
        dialog.set_filters(filters)
        return dialog

    def _chosen_path(self, dialog, result, saving: bool) -> Optional[str]:
        try:
            file = dialog.save_finish(result) if saving else dialog.open_finish(result)
        except GLib.Error:
            return None  # User cancelled
        if not file:
            return None
        filepath = file.get_path()
        if not filepath:
            self._show_toast("Selected location is not a local file")
        return filepath

    def _export_png(self):
        if not self.workspace.canvas:
            return
        dialog = self._file_dialog("Export as PNG", "PNG Images", mime_types=("image/png",))
        dialog.set_initial_name(f"{self.workspace.canvas.name}.png")
        dialog.save(self, None, self._on_export_png_response)

    def _on_export_png_response(self, dialog, result):
        filepath = self._chosen_path(dialog, result, saving=True)
        if not filepath:
            return
        try:
            exported = self.exporter.export_png(filepath)
        except OSError as e:
            logger.error("PNG export failed: %s", e)
            exported = False
        self._show_toast(f"Exported to {filepath}" if exported else "Nothing to export")

    def _export_json(self):
        if not self.workspace.canvas:
            return
        dialog = self._file_dialog("Export as JSON", "Knotboard Documents", patterns=("*.json",))
        dialog.set_initial_name(f"{self.workspace.canvas.name}.json")
        dialog.save(self, None, self._on_export_json_response)

    def _on_export_json_response(self, dialog, result):
        filepath = self._chosen_path(dialog, result, saving=True)
        if not filepath:
            return
        try:
            self.exporter.export_json(filepath)
        except OSError as e:
            logger.error("JSON export failed: %s", e)
            self._show_toast("Export failed")
            return
        self._show_toast(f"Exported to {filepath}")

    def _import_json(self):
        if not self.workspace.canvas:
            return
        dialog = self._file_dialog("Import JSON", "Knotboard Documents", patterns=("*.json",))
        dialog.open(self, None, self._on_import_json_response)

    def _on_import_json_response(self, dialog, result):
        filepath = self._chosen_path(dialog, result, saving=False)
        if not filepath:
            return
        try:
            loaded = import_document(self.workspace, read_document(filepath))
        except (OSError, ValueError) as e:
            logger.warning("Import of %s failed: %s", filepath, e)
            self._show_toast(f"Import failed: {e}")
            return
        self._show_toast(f"Imported {loaded.items} items")

    def _insert_media(self, kind: ItemKind):
        if not self.workspace.canvas:
            return
        noun = kind.value.capitalize()
        dialog = self._file_dialog(f"Insert {noun}", f"{noun} Files", mime_types=(f"{kind.value}/*",))
        dialog.open(self, None, lambda d, r: self._on_insert_media_response(d, r, kind))

    def _on_insert_media_response(self, dialog, result, kind: ItemKind):
        filepath = self._chosen_path(dialog, result, saving=False)
        if not filepath:
            return
        try:
            data = Path(filepath).read_bytes()
        except OSError as e:
            self._show_toast(f"Could not read file: {e.strerror}")
            return
        content_type, _uncertain = Gio.content_type_guess(filepath, data[:4096])
        mime_type = Gio.content_type_get_mime_type(content_type) or "application/octet-stream"
        try:
            self.workspace.create_media(kind, *self.workspace.view_center(kind), data=data,
                                        mime_type=mime_type)
        except sqlite3.Error as e:
            logger.error("Storing media failed: %s", e)
            self._show_toast("Could not store the file")

    def _show_toast(self, message: str):
        """Show a toast notification."""
        toast = Adw.Toast(title=message)
        toast.set_timeout(3)
        self.toast_overlay.add_toast(toast)


class KnotboardApp(Adw.Application):
    """Main application class."""

    def __init__(self):
        super().__init__(
            application_id=__app_id__,
            flags=Gio.ApplicationFlags.DEFAULT_FLAGS
        )
        self.db: Optional[Database] = None
        self.window: Optional[KnotboardWindow] = None

    def do_startup(self):
        Adw.Application.do_startup(self)
        self.db = Database()

        # Scene colors are tuned for a dark background
        style_manager = Adw.StyleManager.get_default()
        style_manager.set_color_scheme(Adw.ColorScheme.FORCE_DARK)

    def do_activate(self):
        if not self.window:
            self.window = KnotboardWindow(self, self.db)
        self.window.present()

    def do_shutdown(self):
        if self.db:
            self.db.close()
        Adw.Application.do_shutdown(self)


def main() -> int:
    """Application entry point."""
    app = KnotboardApp()
    return app.run(sys.argv)


if __name__ == "__main__":
    sys.exit(main())
