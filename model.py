# model.py

import logging
import re
from contextlib import contextmanager
from typing import List, Dict, Optional, Any, Callable, Iterable, Iterator, Set, Tuple

from widgets import Widget, create_widget
from widgets.base_widget import to_number
from history import History, PendingChange
from utils.geometry import clamp, clamp_rect_to_bounds, bbox_from_rect, snap_value
from utils.image_loader import load_image_as_data_url
from constants import (
    WIDGET_TYPES, CONTAINER_TYPES, DEFAULT_POSITION, DEFAULT_CHILD_OFFSET, DEFAULT_SIZE,
    WIDGET_SIZES, WIDGET_TEXT, NAME_PATTERN, DEFAULT_ADDON_NAME,
    GRID_SIZE, GRID_SIZE_MIN, GRID_SIZE_MAX, GRID_SIZE_STEP,
    MIN_ZOOM, MAX_ZOOM, ZOOM_SENSITIVITY,
)

logger = logging.getLogger(__name__)

# Notice levels understood by the toast/notification layer
NOTICE_INFO = 'info'
NOTICE_SUCCESS = 'success'
NOTICE_WARNING = 'warning'
NOTICE_ERROR = 'error'

_LOG_LEVELS = {
    NOTICE_INFO: logging.INFO,
    NOTICE_SUCCESS: logging.INFO,
    NOTICE_WARNING: logging.WARNING,
    NOTICE_ERROR: logging.WARNING,
}


def normalize_name(raw_name: Optional[str]) -> str:
    """Trims a typed name and joins its words with underscores ('my  button' -> 'my_button')."""
    return re.sub(r"\s+", "_", (raw_name or "").strip())


class Viewport:
    """Canvas zoom and pan. Purely visual: changes never mark the design as modified."""

    def __init__(self, on_change: Optional[Callable] = None):
        self.scale = 1.0
        self.offset_x = 0
        self.offset_y = 0
        self._on_change = on_change

    def _changed(self):
        if self._on_change: self._on_change()

    def set_scale(self, scale) -> bool:
        scale = to_number(scale)
        if scale is None: return False
        scale = clamp(scale, MIN_ZOOM, MAX_ZOOM)
        if scale == self.scale: return False
        self.scale = scale
        self._changed()
        return True

    def zoom_by(self, wheel_delta) -> bool:
        """Wheel-driven zoom: positive deltas (scrolling down) zoom out."""
        return self.set_scale(self.scale - wheel_delta * ZOOM_SENSITIVITY)

    def set_offset(self, x, y):
        if (x, y) == (self.offset_x, self.offset_y): return
        self.offset_x, self.offset_y = x, y
        self._changed()

    def reset(self):
        self.scale = 1.0
        self.offset_x = self.offset_y = 0
        self._changed()

    def screen_to_canvas(self, sx, sy) -> Tuple[float, float]:
        return (sx - self.offset_x) / self.scale, (sy - self.offset_y) / self.scale

    def canvas_to_screen(self, cx, cy) -> Tuple[float, float]:
        return cx * self.scale + self.offset_x, cy * self.scale + self.offset_y

    def to_dict(self) -> Dict[str, Any]:
        return {'scale': self.scale, 'offset': {'x': self.offset_x, 'y': self.offset_y}}

    def load_dict(self, data: Optional[Dict[str, Any]]):
        data = data if isinstance(data, dict) else {}
        scale = to_number(data.get('scale', 1.0))
        self.scale = clamp(scale, MIN_ZOOM, MAX_ZOOM) if scale is not None else 1.0
        offset = data.get('offset') if isinstance(data.get('offset'), dict) else {}
        self.offset_x = to_number(offset.get('x', 0)) or 0
        self.offset_y = to_number(offset.get('y', 0)) or 0


class DesignModel:
    """
    The single mutation authority for the working element tree of the active file.

    Elements live in a flat dict keyed by id (insertion order is the z-order of
    roots); the tree is expressed through each widget's parent_id/child_ids.
    Every mutation goes through the methods below so both sides of a link are
    always edited together, inside a transaction that feeds the undo history.
    """

    def __init__(self):
        self.elements: Dict[str, Widget] = {}
        self._selected: Set[str] = set()

        # ── Grid & export settings ────────────────────────────────────────
        self.grid_size = GRID_SIZE
        self.snap_to_grid = True
        self.addon_name = DEFAULT_ADDON_NAME

        # ── Other model state ─────────────────────────────────────────────
        self.viewport = Viewport(on_change=self.notify_observers)
        self.history = History()
        # Bumped on every content change; persistence compares it to decide dirtiness.
        self.revision = 0
        self._pending: Optional[PendingChange] = None
        self._batch_depth = 0

        # Observer callbacks
        self._observers: List[Callable] = []
        self._notice_listeners: List[Callable] = []

    # --- Model - Queries ---

    def get_element(self, wid: Optional[str]) -> Optional[Widget]:
        return self.elements.get(wid) if wid is not None else None

    def get_parent(self, widget: Widget) -> Optional[Widget]:
        return self.elements.get(widget.parent_id) if widget.parent_id else None

    def get_children(self, wid: str) -> List[Widget]:
        widget = self.elements.get(wid)
        if widget is None: return []
        return [self.elements[cid] for cid in widget.child_ids if cid in self.elements]

    def get_root_elements(self) -> List[Widget]:
        return [w for w in self.elements.values() if w.parent_id is None]

    def iter_tree(self) -> Iterator[Widget]:
        """Depth-first, parents before children: the drawing order of the canvas."""
        stack = list(reversed(self.get_root_elements()))
        while stack:
            widget = stack.pop()
            yield widget
            stack.extend(self.elements[cid] for cid in reversed(widget.child_ids) if cid in self.elements)

    def iter_absolute_bboxes(self) -> Iterator[Tuple[Widget, Tuple[float, float, float, float]]]:
        """Yields (widget, canvas bbox) in drawing order, in a single pass over the tree."""
        stack = [(root, 0, 0) for root in reversed(self.get_root_elements())]
        while stack:
            widget, origin_x, origin_y = stack.pop()
            abs_x, abs_y = origin_x + widget.x, origin_y + widget.y
            yield widget, bbox_from_rect(abs_x, abs_y, widget.width, widget.height)
            for cid in reversed(widget.child_ids):
                child = self.elements.get(cid)
                if child is not None:
                    stack.append((child, abs_x, abs_y))

    def get_ancestor_ids(self, wid: str) -> List[str]:
        """Parent first, root last."""
        ancestors = []
        widget = self.elements.get(wid)
        while widget is not None and widget.parent_id:
            ancestors.append(widget.parent_id)
            widget = self.elements.get(widget.parent_id)
        return ancestors

    def is_ancestor(self, ancestor_id: str, wid: str) -> bool:
        return ancestor_id in self.get_ancestor_ids(wid)

    def get_descendant_ids(self, wid: str) -> List[str]:
        """All ids below wid, depth-first over child_ids."""
        descendants = []
        widget = self.elements.get(wid)
        stack = list(reversed(widget.child_ids)) if widget else []
        while stack:
            cid = stack.pop()
            child = self.elements.get(cid)
            if child is None: continue
            descendants.append(cid)
            stack.extend(reversed(child.child_ids))
        return descendants

    def get_absolute_origin(self, wid: str) -> Tuple[float, float]:
        """Canvas position of the element's top-left corner."""
        x = y = 0
        widget = self.elements.get(wid)
        while widget is not None:
            x += widget.x
            y += widget.y
            widget = self.get_parent(widget)
        return x, y

    def get_parent_origin(self, widget: Widget) -> Tuple[float, float]:
        """Canvas origin of the space the widget's x/y are expressed in."""
        return self.get_absolute_origin(widget.parent_id) if widget.parent_id else (0, 0)

    def get_absolute_bbox(self, wid: str) -> Optional[Tuple[float, float, float, float]]:
        widget = self.elements.get(wid)
        if widget is None: return None
        x, y = self.get_absolute_origin(wid)
        return bbox_from_rect(x, y, widget.width, widget.height)

    # --- Model - Observers & notices ---

    def add_observer(self, fn):
        if callable(fn): self._observers.append(fn)

    def remove_observer(self, fn):
        if fn in self._observers: self._observers.remove(fn)

    def notify_observers(self):
        for cb in list(self._observers):
            try: cb()
            except Exception:
                logger.exception("DesignModel.notify_observers: Error calling observer %r", cb)

    def add_notice_listener(self, fn):
        """fn(level, message) is called for every user-facing notice (toasts, status bar...)."""
        if callable(fn): self._notice_listeners.append(fn)

    def notify_user(self, level: str, message: str):
        logger.log(_LOG_LEVELS.get(level, logging.INFO), "Notice (%s): %s", level, message)
        for listener in list(self._notice_listeners):
            try: listener(level, message)
            except Exception:
                logger.exception("DesignModel.notify_user: Error calling notice listener %r", listener)

    # --- Model - Transactions & history ---

    @property
    def in_batch(self) -> bool:
        """True while a transaction (e.g. a drag gesture) is open; the tree may be mid-gesture."""
        return self._batch_depth > 0

    def begin_batch(self, label: str = "Edit"):
        self._batch_depth += 1
        if self._batch_depth == 1:
            self._pending = PendingChange(label)

    def end_batch(self):
        if self._batch_depth == 0:
            logger.warning("DesignModel.end_batch: No open batch.")
            return
        self._batch_depth -= 1
        if self._batch_depth > 0: return

        pending, self._pending = self._pending, None
        entry = pending.finish(self._element_state, list(self.elements))
        if entry is not None:
            self.history.push(entry)

    def cancel_batch(self):
        """Discards the open transaction, putting every element it touched back as it was."""
        if self._batch_depth == 0: return
        pending, self._pending = self._pending, None
        self._batch_depth = 0
        self._restore(pending.before, pending.order_before)
        logger.debug("DesignModel.cancel_batch: Rolled back '%s'", pending.label)
        self._mark_changed()
        self.notify_observers()

    @contextmanager
    def _transaction(self, label: str):
        self.begin_batch(label)
        try:
            yield
        finally:
            self.end_batch()

    def _element_state(self, wid: str) -> Optional[Dict[str, Any]]:
        widget = self.elements.get(wid)
        return widget.to_dict() if widget is not None else None

    def _touch(self, wid: str):
        """Records wid's state before it is modified. Must precede every element mutation."""
        if self._pending is not None:
            self._pending.touch(wid, self._element_state(wid))

    def _touch_order(self):
        if self._pending is not None:
            self._pending.touch_order(list(self.elements))

    def _mark_changed(self):
        self.revision += 1

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo and not self.in_batch

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo and not self.in_batch

    def undo(self) -> bool:
        if self.in_batch:
            logger.debug("DesignModel.undo: Ignored while a gesture is in progress.")
            return False
        entry = self.history.pop_undo()
        if entry is None: return False
        self._restore(entry.before, entry.order_before)
        logger.debug("DesignModel.undo: Reverted '%s'", entry.label)
        self._mark_changed()
        self.notify_observers()
        return True

    def redo(self) -> bool:
        if self.in_batch:
            logger.debug("DesignModel.redo: Ignored while a gesture is in progress.")
            return False
        entry = self.history.pop_redo()
        if entry is None: return False
        self._restore(entry.after, entry.order_after)
        logger.debug("DesignModel.redo: Re-applied '%s'", entry.label)
        self._mark_changed()
        self.notify_observers()
        return True

    def _restore(self, states: Dict[str, Optional[Dict[str, Any]]], order: Optional[List[str]]):
        for wid, state in states.items():
            if state is None:
                self.elements.pop(wid, None)
                continue
            widget = Widget.from_dict(state)
            if widget is not None:
                self.elements[wid] = widget
        if order is not None:
            self.elements = {wid: self.elements[wid] for wid in order if wid in self.elements}
        self._selected &= set(self.elements)

    # --- Model - Containment helpers ---

    def _clamp_into_parent(self, widget: Widget, parent: Widget) -> Tuple[bool, bool]:
        """Pins widget inside parent's (0, 0, w, h) space. Returns (moved, resized)."""
        x, y, width, height = clamp_rect_to_bounds(widget.x, widget.y, widget.width, widget.height,
                                                  parent.width, parent.height)
        moved = (x, y) != (widget.x, widget.y)
        resized = (width, height) != (widget.width, widget.height)
        if moved or resized:
            self._touch(widget.wid)
            widget.x, widget.y, widget.width, widget.height = x, y, width, height
        return moved, resized

    def _reclamp_children(self, container: Widget):
        # A shrunken child container may in turn squeeze its own children.
        stack = [container]
        while stack:
            parent = stack.pop()
            for child in self.get_children(parent.wid):
                _, resized = self._clamp_into_parent(child, parent)
                if resized and child.is_container:
                    stack.append(child)

    # --- Model - Element operations ---

    def add_element(self, widget_type: str, parent_id: Optional[str] = None, **attrs) -> Optional[str]:
        """
        Creates a widget and returns its id, or None if it was rejected.

        x/y are canvas (absolute) coordinates; for a parented widget they are
        converted into the parent's space and the result is clamped inside it.
        Leaves must be created inside a container.
        """
        if widget_type not in WIDGET_TYPES:
            self.notify_user(NOTICE_ERROR, f"Unknown widget type '{widget_type}'.")
            return None

        parent = None
        if parent_id is not None:
            parent = self.elements.get(parent_id)
            if parent is None or not parent.is_container:
                self.notify_user(NOTICE_ERROR, f"{widget_type} must be inside a container.")
                return None
        elif widget_type not in CONTAINER_TYPES:
            self.notify_user(NOTICE_ERROR, f"{widget_type} must be inside a container.")
            return None

        wid = attrs.pop('wid', None)
        if wid is not None and wid in self.elements:
            self.notify_user(NOTICE_ERROR, f"An element with id '{wid}' already exists.")
            return None

        name = normalize_name(attrs.pop('name', None))
        if name and not self.validate_name(name):
            self.notify_user(NOTICE_ERROR, f"Name '{name}' is already taken.")
            return None

        default_w, default_h = WIDGET_SIZES.get(widget_type, DEFAULT_SIZE)
        width = to_number(attrs.pop('width', None))
        height = to_number(attrs.pop('height', None))
        x = to_number(attrs.pop('x', None))
        y = to_number(attrs.pop('y', None))
        if parent is not None:
            if x is None or y is None:
                x, y = DEFAULT_CHILD_OFFSET
            else:
                origin_x, origin_y = self.get_absolute_origin(parent.wid)
                x, y = x - origin_x, y - origin_y
        elif x is None or y is None:
            x, y = DEFAULT_POSITION

        attrs.setdefault('text', WIDGET_TEXT.get(widget_type))
        for key in ('parent_id', 'child_ids'):
            attrs.pop(key, None)

        widget = create_widget(widget_type, wid=wid, x=x, y=y,
                               width=default_w if width is None else width,
                               height=default_h if height is None else height,
                               name=name or None, parent_id=parent_id, **attrs)

        with self._transaction(f"Add {widget_type}"):
            self._touch(widget.wid)
            self._touch_order()
            self.elements[widget.wid] = widget
            if parent is not None:
                self._touch(parent.wid)
                parent.child_ids.append(widget.wid)
                self._clamp_into_parent(widget, parent)

        logger.debug("DesignModel.add_element: %s %s added under %s", widget_type, widget.wid, parent_id)
        self._mark_changed()
        self.notify_observers()
        return widget.wid

    def _check_name_change(self, wid: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Validates a pending name change; returns the cleaned changes or None if rejected."""
        if 'name' not in changes: return changes
        name = changes['name'].strip() if isinstance(changes['name'], str) else ''
        if name and not self.validate_name(name, exclude_id=wid):
            self.notify_user(NOTICE_ERROR, f"Name '{name}' is already taken.")
            return None
        return dict(changes, name=name)

    def _apply_changes(self, widget: Widget, changes: Dict[str, Any]) -> bool:
        before = widget.to_dict()
        self._touch(widget.wid)
        old_size = (widget.width, widget.height)
        widget.update(changes)

        parent = self.get_parent(widget)
        if parent is not None and any(key in Widget.GEOMETRY_FIELDS for key in changes):
            self._clamp_into_parent(widget, parent)
        if widget.is_container and (widget.width, widget.height) != old_size:
            self._reclamp_children(widget)
        return widget.to_dict() != before

    def update_element(self, wid: str, **changes) -> bool:
        """
        Merges attribute changes into an element. Geometry of a parented element is
        re-clamped against the parent; resizing a container re-clamps its subtree.
        Unknown ids are a silent no-op. Returns False if the update was rejected.
        """
        widget = self.elements.get(wid)
        if widget is None:
            logger.debug("DesignModel.update_element: Unknown element %s, ignoring.", wid)
            return False
        changes = self._check_name_change(wid, changes)
        if changes is None: return False

        with self._transaction(f"Edit {widget.widget_type}"):
            changed = self._apply_changes(widget, changes)

        if changed:
            self._mark_changed()
            self.notify_observers()
        return True

    def apply_updates(self, updates: Iterable[Tuple[str, Dict[str, Any]]], label: str = "Edit") -> int:
        """
        Applies several (wid, changes) pairs as one step with a single notification.
        Returns the number of elements that actually changed.
        """
        updates = [(wid, changes) for wid, changes in updates if wid in self.elements]
        checked = []
        claimed = set() # names handed out earlier in this batch
        for wid, changes in updates:
            changes = self._check_name_change(wid, changes)
            if changes is None: return 0
            name = changes.get('name')
            if name:
                if name in claimed:
                    self.notify_user(NOTICE_ERROR, f"Name '{name}' is already taken.")
                    return 0
                claimed.add(name)
            checked.append((wid, changes))

        changed = 0
        with self._transaction(label):
            for wid, changes in checked:
                if self._apply_changes(self.elements[wid], changes):
                    changed += 1

        if changed:
            self._mark_changed()
            self.notify_observers()
        return changed

    def delete_element(self, wid: str) -> List[str]:
        """Deletes an element and its whole subtree. Returns the removed ids."""
        widget = self.elements.get(wid)
        if widget is None:
            logger.debug("DesignModel.delete_element: Unknown element %s, ignoring.", wid)
            return []

        doomed = [wid] + self.get_descendant_ids(wid)
        with self._transaction(f"Delete {widget.widget_type}"):
            self._touch_order()
            self._detach(widget)
            for did in doomed:
                self._touch(did)
                del self.elements[did]

        self._selected.difference_update(doomed)
        logger.debug("DesignModel.delete_element: Removed %d element(s) rooted at %s", len(doomed), wid)
        self._mark_changed()
        self.notify_observers()
        return doomed

    def delete_selected(self) -> List[str]:
        # Children of a selected container go with it, so only delete the topmost ones.
        tops = [w.wid for w in self.get_selected_elements()
                if not any(a in self._selected for a in self.get_ancestor_ids(w.wid))]
        removed = []
        with self._transaction("Delete selection"):
            for wid in tops:
                removed.extend(self.delete_element(wid))
        return removed

    def _detach(self, widget: Widget):
        parent = self.get_parent(widget)
        if parent is not None and widget.wid in parent.child_ids:
            self._touch(parent.wid)
            parent.child_ids.remove(widget.wid)

    def reparent_element(self, wid: str, new_parent_id: Optional[str], x=None, y=None) -> bool:
        """
        Moves an element under another container (or to the root when new_parent_id
        is None). The canvas position is kept unless x/y (canvas coordinates) are
        given, then clamped inside the new parent.
        """
        widget = self.elements.get(wid)
        if widget is None: return False

        new_parent = None
        if new_parent_id is not None:
            new_parent = self.elements.get(new_parent_id)
            if new_parent is None or not new_parent.is_container:
                self.notify_user(NOTICE_ERROR, "Elements can only be placed inside a container.")
                return False
            if new_parent_id == wid or self.is_ancestor(wid, new_parent_id):
                self.notify_user(NOTICE_ERROR, "A container can't be placed inside itself.")
                return False
        elif not widget.is_container:
            self.notify_user(NOTICE_ERROR, f"{widget.widget_type} must be inside a container.")
            return False

        if x is None or y is None:
            x, y = self.get_absolute_origin(wid)

        with self._transaction(f"Move {widget.widget_type}"):
            self._touch(wid)
            if widget.parent_id != new_parent_id:
                self._detach(widget)
                widget.parent_id = new_parent_id
                if new_parent is not None:
                    self._touch(new_parent.wid)
                    new_parent.child_ids.append(wid)
            if new_parent is not None:
                origin_x, origin_y = self.get_absolute_origin(new_parent.wid)
                widget.x, widget.y = x - origin_x, y - origin_y
                _, resized = self._clamp_into_parent(widget, new_parent)
                if resized and widget.is_container:
                    self._reclamp_children(widget)
            else:
                widget.x, widget.y = x, y

        logger.debug("DesignModel.reparent_element: %s now under %s at (%s, %s)", wid, new_parent_id, widget.x, widget.y)
        self._mark_changed()
        self.notify_observers()
        return True

    # --- Model - Names ---

    def validate_name(self, name: Optional[str], exclude_id: Optional[str] = None) -> bool:
        """True if no other element uses name. Names are unique across the whole file."""
        if not name: return True
        return not any(w.name == name and w.wid != exclude_id for w in self.elements.values())

    def rename_element(self, wid: str, raw_name: Optional[str]) -> bool:
        """Renames from user input: normalized, checked against NAME_PATTERN and uniqueness."""
        if wid not in self.elements: return False
        name = normalize_name(raw_name)
        if not name:
            return self.update_element(wid, name=None)
        if not re.match(NAME_PATTERN, name):
            self.notify_user(NOTICE_ERROR, "Invalid name. Must start with a letter and contain only letters, numbers, or underscores.")
            return False
        if not self.validate_name(name, exclude_id=wid):
            self.notify_user(NOTICE_ERROR, "Name already taken in this scope.")
            return False
        return self.update_element(wid, name=name)

    # --- Model - Images ---

    def set_element_image(self, wid: str, path: str, fit_to_image: bool = False) -> bool:
        if wid not in self.elements: return False
        try:
            data_url, (img_w, img_h) = load_image_as_data_url(path)
        except OSError as e: # FileNotFoundError and PIL.UnidentifiedImageError included
            self.notify_user(NOTICE_ERROR, f"Could not load image:\n{e}")
            return False
        changes = {'image_src': data_url}
        if fit_to_image:
            changes.update(width=img_w, height=img_h)
        return self.update_element(wid, **changes)

    def remove_element_image(self, wid: str) -> bool:
        return self.update_element(wid, image_src=None)

    # --- Model - Selection ---

    @property
    def selected_element_ids(self) -> frozenset:
        return frozenset(self._selected)

    def is_selected(self, wid: str) -> bool:
        return wid in self._selected

    def get_selected_elements(self) -> List[Widget]:
        """Selected widgets that exist, in element order. Stale ids are tolerated and skipped."""
        return [w for w in self.elements.values() if w.wid in self._selected]

    def set_selected_elements(self, ids: Iterable[str]):
        new_selection = set(ids or ())
        if new_selection == self._selected: return
        self._selected = new_selection
        self.notify_observers()

    def toggle_element_selection(self, wid: str):
        if wid in self._selected: self._selected.discard(wid)
        else: self._selected.add(wid)
        self.notify_observers()

    def clear_selection(self):
        self.set_selected_elements(())

    # --- Model - Grid & export settings ---

    def set_grid_size(self, size) -> int:
        size = to_number(size)
        if size is None: return self.grid_size
        size = int(clamp(snap_value(size, GRID_SIZE_STEP), GRID_SIZE_MIN, GRID_SIZE_MAX))
        if size != self.grid_size:
            self.grid_size = size
            self._mark_changed()
            self.notify_observers()
        return self.grid_size

    def set_snap_to_grid(self, enabled: bool):
        enabled = bool(enabled)
        if enabled == self.snap_to_grid: return
        self.snap_to_grid = enabled
        self._mark_changed()
        self.notify_observers()

    def toggle_snap_to_grid(self):
        self.set_snap_to_grid(not self.snap_to_grid)

    def set_addon_name(self, name: Optional[str]) -> bool:
        name = (name or "").strip()
        if not name:
            self.notify_user(NOTICE_ERROR, "Addon name cannot be empty.")
            return False
        if name != self.addon_name:
            self.addon_name = name
            self._mark_changed()
            self.notify_observers()
        return True

    # --- Model - Snapshots ---

    def export_elements(self) -> List[Dict[str, Any]]:
        """Serialized working tree, as flushed into the active file's record."""
        return [w.to_dict() for w in self.elements.values()]

    def export_snapshot(self) -> Tuple[Dict[str, Any], ...]:
        """
        Read-only view handed to the code generator: one record per element in
        drawing order, with canvas coordinates added as absoluteX/absoluteY.
        """
        snapshot = []
        for widget, (abs_x, abs_y, _, _) in self.iter_absolute_bboxes():
            record = widget.to_dict()
            record['absoluteX'], record['absoluteY'] = abs_x, abs_y
            snapshot.append(record)
        return tuple(snapshot)

    def reset(self):
        self.elements = {}
        self._selected = set()
        self.history.clear()
        self._mark_changed()
        self.notify_observers()

    def load_elements(self, records: Optional[Iterable[Dict[str, Any]]], selection: Optional[Iterable[str]] = None):
        """
        Replaces the working tree with stored records, repairing anything that
        breaks the tree invariants (dangling or cyclic parents, root leaves,
        stale child lists, duplicate names, out-of-bounds geometry).
        """
        if self.in_batch:
            logger.warning("DesignModel.load_elements: Loading while a batch is open; the batch is discarded.")
            self._batch_depth, self._pending = 0, None

        if not isinstance(records, (list, tuple)):
            if records is not None:
                logger.warning("DesignModel.load_elements: 'elements' data is not a list. Starting empty.")
            records = []

        widgets: Dict[str, Widget] = {}
        for record in records:
            widget = Widget.from_dict(record)
            if widget is None: continue
            if widget.wid in widgets:
                logger.warning("DesignModel.load_elements: Duplicate element id %s, skipping.", widget.wid)
                continue
            widgets[widget.wid] = widget

        for widget in widgets.values():
            parent = widgets.get(widget.parent_id) if widget.parent_id else None
            if widget.parent_id and (parent is None or not parent.is_container or parent is widget):
                logger.warning("DesignModel.load_elements: %s has an invalid parent %s.", widget.wid, widget.parent_id)
                widget.parent_id = None

        for widget in widgets.values():
            seen = {widget.wid}
            pid = widget.parent_id
            while pid:
                if pid in seen:
                    logger.warning("DesignModel.load_elements: Parent cycle through %s, detaching it.", widget.wid)
                    widget.parent_id = None
                    break
                seen.add(pid)
                pid = widgets[pid].parent_id

        for wid in [w.wid for w in widgets.values() if w.parent_id is None and not w.is_container]:
            logger.warning("DesignModel.load_elements: Dropping %s, a leaf outside any container.", wid)
            del widgets[wid]

        stored_children = {w.wid: w.child_ids for w in widgets.values()}
        for widget in widgets.values():
            widget.child_ids = []
        for widget in widgets.values():
            if not widget.is_container: continue
            for cid in stored_children[widget.wid]:
                child = widgets.get(cid)
                if child is not None and child.parent_id == widget.wid and cid not in widget.child_ids:
                    widget.child_ids.append(cid)
        for widget in widgets.values():
            parent = widgets.get(widget.parent_id) if widget.parent_id else None
            if parent is not None and widget.wid not in parent.child_ids:
                parent.child_ids.append(widget.wid)

        names = set()
        for widget in widgets.values():
            if widget.name in names:
                logger.warning("DesignModel.load_elements: Duplicate name '%s' cleared on %s.", widget.name, widget.wid)
                widget.name = None
            elif widget.name:
                names.add(widget.name)

        self.elements = widgets
        for widget in self.iter_tree():
            parent = self.get_parent(widget)
            if parent is not None:
                self._clamp_into_parent(widget, parent)

        self._selected = set(selection or ()) & set(widgets)
        self.history.clear()
        logger.debug("DesignModel.load_elements: Loaded %d element(s).", len(widgets))
        self._mark_changed()
        self.notify_observers()
