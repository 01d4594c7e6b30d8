# view.py

import json
import logging
import re
import tkinter as tk
from tkinter import ttk, messagebox, simpledialog, filedialog
from typing import Dict, Optional

from PIL import ImageTk

from model import DesignModel, NOTICE_ERROR, NOTICE_WARNING
from controller import DragController
from persistence import ProjectManager
from alignment import align_selection, ALIGN_MODES
from widgets import Widget
from utils.image_loader import image_from_data_url
from constants import (CANVAS_WIDTH, CANVAS_HEIGHT, PANEL_WIDTH, TOOLBAR_HEIGHT, WIDGET_TYPES,
                       CONTAINER_TYPES, GRID_SIZE_MIN, GRID_SIZE_MAX, GRID_SIZE_STEP, HANDLE_SIZE)

logger = logging.getLogger(__name__)

_RGB_PATTERN = re.compile(r'rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*[\d.]+\s*)?\)')

NOTICE_COLORS = {'info': '#444444', 'success': '#1b7f3b', 'warning': '#b36b00', 'error': '#b00020'}


def tk_color(value: Optional[str]) -> str:
    """Tk understands '#rrggbb' and names but not CSS rgb()/rgba(); alpha is dropped."""
    if not value:
        return ''
    match = _RGB_PATTERN.match(value.strip())
    if match:
        r, g, b = (min(int(c), 255) for c in match.groups())
        return f'#{r:02x}{g:02x}{b:02x}'
    return value


# --- View - Handles UI and Drawing ────────────────────────────────────────────


class DesignerView(tk.Frame):
    def __init__(self, master, model: DesignModel, drag: DragController, manager: ProjectManager):
        super().__init__(master)
        self.model = model
        self.drag = drag
        self.manager = manager
        self.pack(fill=tk.BOTH, expand=True)

        # View state for Tk items and PhotoImages (kept alive while drawn)
        self._tk_images: Dict[str, ImageTk.PhotoImage] = {}
        self._explorer_items: Dict[str, tuple] = {}
        self._pan_anchor = None

        self.snap_var = tk.BooleanVar(value=model.snap_to_grid)
        self.grid_size_var = tk.IntVar(value=model.grid_size)
        self.addon_var = tk.StringVar(value=model.addon_name)
        self.status_var = tk.StringVar(value="")

        self._build_ui()
        self._bind_events()

        self.model.add_observer(self.refresh_all)
        self.model.add_notice_listener(self.show_notice)
        self.refresh_all()

    # --- View - Layout ---

    def _build_ui(self):
        # Toolbar
        self.toolbar = tk.Frame(self, height=TOOLBAR_HEIGHT, bd=1, relief=tk.RAISED)
        self.toolbar.pack(side=tk.TOP, fill=tk.X)
        for widget_type in WIDGET_TYPES:
            tk.Button(self.toolbar, text=widget_type,
                      command=lambda t=widget_type: self.add_widget(t)).pack(side=tk.LEFT, padx=1)
        ttk.Separator(self.toolbar, orient=tk.VERTICAL).pack(side=tk.LEFT, fill=tk.Y, padx=4)
        self.undo_button = tk.Button(self.toolbar, text="Undo", command=self.model.undo)
        self.undo_button.pack(side=tk.LEFT)
        self.redo_button = tk.Button(self.toolbar, text="Redo", command=self.model.redo)
        self.redo_button.pack(side=tk.LEFT)
        tk.Button(self.toolbar, text="Delete", command=self.model.delete_selected).pack(side=tk.LEFT, padx=2)
        tk.Button(self.toolbar, text="Save", command=self.manager.save_current_file).pack(side=tk.LEFT, padx=2)

        align_bar = tk.Frame(self, bd=1, relief=tk.RAISED)
        align_bar.pack(side=tk.TOP, fill=tk.X)
        tk.Label(align_bar, text="Align:").pack(side=tk.LEFT)
        for mode in ALIGN_MODES:
            tk.Button(align_bar, text=mode.capitalize(),
                      command=lambda m=mode: align_selection(self.model, m)).pack(side=tk.LEFT, padx=1)
        ttk.Checkbutton(align_bar, text="Snap", variable=self.snap_var,
                        command=lambda: self.model.set_snap_to_grid(self.snap_var.get())).pack(side=tk.LEFT, padx=6)
        tk.Label(align_bar, text="Grid").pack(side=tk.LEFT)
        tk.Spinbox(align_bar, from_=GRID_SIZE_MIN, to=GRID_SIZE_MAX, increment=GRID_SIZE_STEP, width=4,
                   textvariable=self.grid_size_var, command=self._on_grid_size).pack(side=tk.LEFT)
        tk.Label(align_bar, text="Addon").pack(side=tk.LEFT, padx=(6, 0))
        addon_entry = tk.Entry(align_bar, textvariable=self.addon_var, width=14)
        addon_entry.pack(side=tk.LEFT)
        addon_entry.bind("<Return>", lambda e: self.model.set_addon_name(self.addon_var.get()))
        tk.Button(align_bar, text="Export", command=self.export_design).pack(side=tk.LEFT, padx=4)
        tk.Button(align_bar, text="Reset View", command=self.model.viewport.reset).pack(side=tk.LEFT)

        self.status_label = tk.Label(self, textvariable=self.status_var, anchor="w")
        self.status_label.pack(side=tk.BOTTOM, fill=tk.X)

        # Paned Window
        self.pane = tk.PanedWindow(self, sashrelief=tk.RAISED, orient=tk.HORIZONTAL)
        self.pane.pack(fill=tk.BOTH, expand=True)

        # Left Panel (Projects, Elements)
        self.left_panel = tk.Frame(self.pane, width=PANEL_WIDTH)
        self.pane.add(self.left_panel, minsize=150)

        tk.Label(self.left_panel, text="Projects").pack(anchor='w')
        self.explorer = ttk.Treeview(self.left_panel, show="tree", selectmode="browse", height=10)
        self.explorer.pack(fill=tk.BOTH, expand=True, padx=2, pady=2)
        explorer_btns = tk.Frame(self.left_panel)
        explorer_btns.pack(fill=tk.X)
        tk.Button(explorer_btns, text="+ Project", command=self.new_project).pack(side=tk.LEFT)
        tk.Button(explorer_btns, text="+ File", command=self.new_file).pack(side=tk.LEFT)
        tk.Button(explorer_btns, text="Rename", command=self.rename_explorer_item).pack(side=tk.LEFT)
        tk.Button(explorer_btns, text="Delete", command=self.delete_explorer_item).pack(side=tk.LEFT)

        tk.Label(self.left_panel, text="Elements").pack(anchor='w')
        self.elements_tree = ttk.Treeview(self.left_panel, columns=("Type",), show="tree headings",
                                          selectmode="extended", height=12)
        self.elements_tree.heading('#0', text='Name')
        self.elements_tree.heading('Type', text='Type')
        self.elements_tree.column('Type', stretch=tk.NO, width=80, anchor='center')
        self.elements_tree.pack(fill=tk.BOTH, expand=True, padx=2, pady=2)

        # Drawing surface
        self.canvas = tk.Canvas(self.pane, bg='#1f2937', highlightthickness=0,
                                width=CANVAS_WIDTH, height=CANVAS_HEIGHT)
        self.pane.add(self.canvas, stretch="always")

    def _bind_events(self):
        self.canvas.bind("<ButtonPress-1>", self._on_press)
        self.canvas.bind("<Shift-ButtonPress-1>", lambda e: self._on_press(e, additive=True))
        self.canvas.bind("<B1-Motion>", self._on_motion)
        self.canvas.bind("<ButtonRelease-1>", self._on_release)
        self.canvas.bind("<Configure>", lambda e: self.refresh_canvas())
        self.canvas.bind("<Control-MouseWheel>", self._on_zoom)
        self.canvas.bind("<Double-Button-1>", self._on_double_click)
        self.canvas.bind("<ButtonPress-2>", self._on_pan_start)
        self.canvas.bind("<B2-Motion>", self._on_pan)
        self.canvas.bind("<Button-3>", self._on_context_menu)

        self.explorer.bind("<Double-1>", self._on_explorer_open)
        self.elements_tree.bind("<<TreeviewSelect>>", self._on_elements_tree_select)

        # bind_all because key events can happen anywhere
        self.master.bind_all("<Delete>", lambda e: self._unless_typing(e, self.model.delete_selected))
        self.master.bind_all("<Escape>", lambda e: self.drag.cancel())
        self.master.bind_all("<Control-z>", lambda e: self.model.undo())
        self.master.bind_all("<Control-y>", lambda e: self.model.redo())
        self.master.bind_all("<Control-s>", lambda e: self.manager.save_current_file())
        if self.master.tk.call("tk", "windowingsystem") == "aqua":
            # Cmd bindings for Mac users
            self.master.bind_all("<Command-z>", lambda e: self.model.undo())
            self.master.bind_all("<Command-s>", lambda e: self.manager.save_current_file())

    @staticmethod
    def _unless_typing(event, action):
        if not isinstance(event.widget, (tk.Entry, tk.Spinbox, ttk.Entry)):
            action()

    # --- View - Pointer events (screen -> canvas coordinates) ---

    def _canvas_point(self, event):
        return self.model.viewport.screen_to_canvas(self.canvas.canvasx(event.x), self.canvas.canvasy(event.y))

    def _on_press(self, event, additive=False):
        self.canvas.focus_set()
        self.drag.pointer_down(*self._canvas_point(event), additive=additive)
        self.refresh_canvas()
        return "break"

    def _on_motion(self, event):
        self.drag.pointer_move(*self._canvas_point(event))
        if self.drag.marquee_bbox is not None:
            self.refresh_canvas()

    def _on_release(self, event):
        self.drag.pointer_up(*self._canvas_point(event))
        self.refresh_canvas()

    def _on_zoom(self, event):
        # Tk reports +120 per notch upwards; zoom in on scroll up.
        self.model.viewport.zoom_by(-event.delta)

    def _on_pan_start(self, event):
        self._pan_anchor = (event.x - self.model.viewport.offset_x, event.y - self.model.viewport.offset_y)

    def _on_pan(self, event):
        if self._pan_anchor is None: return
        self.model.viewport.set_offset(event.x - self._pan_anchor[0], event.y - self._pan_anchor[1])

    def _on_context_menu(self, event):
        wid = self.drag.hit_test(*self._canvas_point(event))
        if wid is None: return
        if not self.model.is_selected(wid):
            self.model.set_selected_elements([wid])
        menu = tk.Menu(self, tearoff=0)
        menu.add_command(label="Rename...", command=lambda: self._rename_element(wid))
        menu.add_command(label="Set Image...", command=lambda: self._choose_image(wid, fit=False))
        menu.add_command(label="Set Image (fit size)...", command=lambda: self._choose_image(wid, fit=True))
        menu.add_command(label="Remove Image", command=lambda: self.model.remove_element_image(wid))
        menu.add_separator()
        menu.add_command(label="Delete", command=self.model.delete_selected)
        try:
            menu.tk_popup(event.x_root, event.y_root)
        finally:
            menu.grab_release()

    def _choose_image(self, wid: str, fit: bool):
        path = filedialog.askopenfilename(filetypes=[("Images", "*.png *.jpg *.jpeg *.gif *.bmp"), ("All files", "*.*")])
        if path:
            self.model.set_element_image(wid, path, fit_to_image=fit)

    def _rename_element(self, wid: str):
        widget = self.model.get_element(wid)
        if widget is None: return
        new_name = simpledialog.askstring("Rename", "Element name:", initialvalue=widget.name or "", parent=self)
        if new_name is not None:
            self.model.rename_element(wid, new_name)

    def _on_double_click(self, event):
        wid = self.drag.hit_test(*self._canvas_point(event))
        if wid is not None:
            self._rename_element(wid)

    # --- View - Commands ---

    def add_widget(self, widget_type: str):
        """Adds to the selected container (or the selected leaf's container); containers go to the root otherwise."""
        parent_id = None
        for widget in self.model.get_selected_elements():
            parent_id = widget.wid if widget.is_container else widget.parent_id
            break
        if parent_id is None and widget_type not in CONTAINER_TYPES:
            self.show_notice(NOTICE_ERROR, f"Select a container for the {widget_type} first.")
            return
        wid = self.model.add_element(widget_type, parent_id=parent_id)
        if wid is not None:
            self.model.set_selected_elements([wid])

    def _on_grid_size(self):
        try:
            size = self.grid_size_var.get()
        except tk.TclError:
            return
        self.grid_size_var.set(self.model.set_grid_size(size))

    def export_design(self):
        """Hands the finished scene to a JSON file for the code generator."""
        path = filedialog.asksaveasfilename(defaultextension=".json",
                                            filetypes=[("JSON files", "*.json"), ("All files", "*.*")])
        if not path: return
        data = {'addonName': self.model.addon_name, 'elements': list(self.model.export_snapshot())}
        try:
            with open(path, 'w', encoding='utf-8') as f: json.dump(data, f, indent=4, ensure_ascii=False)
        except OSError as e:
            messagebox.showerror("Error", f"An error occurred while exporting:\n{e}")
            return
        self.show_notice('success', f"Exported {len(data['elements'])} element(s).")

    def new_project(self):
        name = simpledialog.askstring("New Project", "Project name:", parent=self)
        if name is not None:
            self.manager.create_project(name)
            self.refresh_explorer()

    def new_file(self):
        project_id = None
        kind, item_id = self._selected_explorer_item() or (None, None)
        if kind == 'project':
            project_id = item_id
        elif kind == 'file':
            project_id = self.manager.files[item_id].project_id
        name = simpledialog.askstring("New File", "File name (blank for Untitled):", parent=self)
        if name is not None:
            self.manager.create_file(name, project_id)
            self.refresh_explorer()

    def rename_explorer_item(self):
        selected = self._selected_explorer_item()
        if selected is None: return
        kind, item_id = selected
        record = self.manager.projects[item_id] if kind == 'project' else self.manager.files[item_id]
        name = simpledialog.askstring("Rename", f"New {kind} name:", initialvalue=record.name, parent=self)
        if name is None: return
        if kind == 'project':
            self.manager.rename_project(item_id, name)
        else:
            self.manager.rename_file(item_id, name)
        self.refresh_explorer()

    def delete_explorer_item(self):
        selected = self._selected_explorer_item()
        if selected is None: return
        kind, item_id = selected
        if not messagebox.askyesno("Delete", f"Delete this {kind}? This cannot be undone.", parent=self):
            return
        if kind == 'project':
            self.manager.delete_project(item_id)
        else:
            self.manager.delete_file(item_id)
        self.refresh_explorer()

    def _selected_explorer_item(self) -> Optional[tuple]:
        selection = self.explorer.selection()
        return self._explorer_items.get(selection[0]) if selection else None

    def _on_explorer_open(self, event):
        selected = self._selected_explorer_item()
        if selected is None: return
        kind, item_id = selected
        if kind == 'project':
            self.manager.load_project(item_id)
        else:
            self.manager.load_file(item_id)
        self.refresh_explorer()

    def _on_elements_tree_select(self, event):
        ids = set(self.elements_tree.selection())
        if ids != set(self.model.selected_element_ids):
            self.model.set_selected_elements(ids)

    def show_notice(self, level: str, message: str):
        message = message.replace("\n", " ")
        self.status_var.set(message)
        self.status_label.config(fg=NOTICE_COLORS.get(level, NOTICE_COLORS["info"]))
        self.master.after(4000, lambda: self._clear_notice(message))
        if level in (NOTICE_ERROR, NOTICE_WARNING):
            self.bell()

    def _clear_notice(self, message: str):
        if self.status_var.get() == message:
            self.status_var.set("")

    # --- View - Methods to update the display (called by the model observer) ---

    def refresh_all(self):
        self.refresh_canvas()
        self.refresh_elements_tree()
        self.refresh_explorer()
        self.undo_button.config(state=tk.NORMAL if self.model.can_undo else tk.DISABLED)
        self.redo_button.config(state=tk.NORMAL if self.model.can_redo else tk.DISABLED)
        self.snap_var.set(self.model.snap_to_grid)
        self.grid_size_var.set(self.model.grid_size)
        title = self.manager.active_file.name if self.manager.active_file else "Untitled"
        self.master.title(f"WidgetForge - {title}{' *' if self.manager.dirty else ''}")

    def refresh_canvas(self):
        self.canvas.delete("all")
        self._draw_grid()
        for widget, bbox in self.model.iter_absolute_bboxes():
            self._draw_widget(widget, bbox)
        self._draw_marquee()

    def _draw_grid(self):
        viewport = self.model.viewport
        step = self.model.grid_size * viewport.scale
        W, H = self.canvas.winfo_width(), self.canvas.winfo_height()
        if step < 4 or W <= 1 or H <= 1:
            return
        x = viewport.offset_x % step
        while x < W:
            self.canvas.create_line(x, 0, x, H, fill='#333333', tags="grid")
            x += step
        y = viewport.offset_y % step
        while y < H:
            self.canvas.create_line(0, y, W, y, fill='#333333', tags="grid")
            y += step

    def _draw_widget(self, widget: Widget, bbox):
        viewport = self.model.viewport
        x0, y0 = viewport.canvas_to_screen(bbox[0], bbox[1])
        x1, y1 = viewport.canvas_to_screen(bbox[2], bbox[3])
        selected = self.model.is_selected(widget.wid)

        self.canvas.create_rectangle(x0, y0, x1, y1, fill=tk_color(widget.color),
                                     outline='#ffcc00' if selected else tk_color(widget.border_color),
                                     width=max(widget.border_width * viewport.scale, 2 if selected else 0),
                                     tags=('widget', f'id{widget.wid}'))

        image = image_from_data_url(widget.image_src) if widget.image_src else None
        if image is not None and x1 - x0 >= 1 and y1 - y0 >= 1:
            tk_image = ImageTk.PhotoImage(image.resize((int(x1 - x0), int(y1 - y0))))
            self._tk_images[widget.wid] = tk_image
            self.canvas.create_image(x0, y0, image=tk_image, anchor='nw', tags=('widget', f'id{widget.wid}'))

        label = widget.text if widget.text else (widget.name or widget.widget_type)
        self.canvas.create_text((x0 + x1) / 2, (y0 + y1) / 2, text=label, fill='white',
                                tags=('widget', f'id{widget.wid}'))
        if selected:
            h = HANDLE_SIZE / 2
            self.canvas.create_rectangle(x1 - h, y1 - h, x1 + h, y1 + h, fill='#ffcc00', outline='black',
                                         tags=('handle', f'id{widget.wid}'))

    def _draw_marquee(self):
        marquee = self.drag.marquee_bbox
        if marquee is None: return
        viewport = self.model.viewport
        x0, y0 = viewport.canvas_to_screen(marquee[0], marquee[1])
        x1, y1 = viewport.canvas_to_screen(marquee[2], marquee[3])
        self.canvas.create_rectangle(x0, y0, x1, y1, outline='#60a5fa', dash=(4, 2), tags="marquee")

    def refresh_elements_tree(self):
        tree = self.elements_tree
        tree.delete(*tree.get_children())
        for widget in self.model.iter_tree():
            tree.insert(widget.parent_id or '', 'end', iid=widget.wid, open=True,
                        text=widget.name or widget.wid[:8], values=(widget.widget_type,))
        selected = [wid for wid in self.model.selected_element_ids if tree.exists(wid)]
        if set(tree.selection()) != set(selected):
            tree.selection_set(selected)

    def refresh_explorer(self):
        tree = self.explorer
        tree.delete(*tree.get_children())
        self._explorer_items = {}
        for project in self.manager.projects.values():
            pitem = tree.insert('', 'end', text=f"📁 {project.name}", open=True)
            self._explorer_items[pitem] = ('project', project.pid)
            for design_file in self.manager.get_project_files(project.pid):
                self._insert_file_item(pitem, design_file)
        for design_file in self.manager.get_standalone_files():
            self._insert_file_item('', design_file)

        recent = self.manager.get_recent_files()
        if recent:
            ritem = tree.insert('', 'end', text="Recent", open=False)
            for design_file in recent:
                self._insert_file_item(ritem, design_file)

    def _insert_file_item(self, parent: str, design_file):
        marker = "● " if design_file.fid == self.manager.active_file_id else ""
        item = self.explorer.insert(parent, "end", text=f"{marker}{design_file.name}")
        self._explorer_items[item] = ("file", design_file.fid)
