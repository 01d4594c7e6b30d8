# controller.py

import logging
from typing import Optional, Tuple, List, Dict

from model import DesignModel
from widgets import Widget
from utils.geometry import (clamp, clamp_rect_to_bounds, snap_value, normalize_bbox,
                            bbox_contains_point, bboxes_intersect, bbox_center)
from constants import HANDLE_SIZE

logger = logging.getLogger(__name__)

# Gesture states
IDLE = 'idle'
DRAGGING = 'dragging'
SELECTING = 'selecting'
RESIZING = 'resizing'


class DragController:
    """
    Turns a stream of pointer events (canvas coordinates, zoom already removed)
    into selection changes, group moves, resizes and drops.

    A move or resize gesture is one model batch, so it becomes a single undo step
    and autosave never flushes a half-dragged tree.
    """

    def __init__(self, model: DesignModel, handle_size: float = HANDLE_SIZE):
        self.model = model
        self.handle_size = handle_size
        self.state = IDLE

        self._grab_id: Optional[str] = None
        self._grab_offset: Tuple[float, float] = (0, 0)  # pointer minus grabbed element's canvas origin
        self._start_positions: Dict[str, Tuple[float, float]] = {}
        self._followers: List[str] = []
        self._moved = False
        self._additive = False

        self._marquee_start: Optional[Tuple[float, float]] = None
        self._marquee_end: Optional[Tuple[float, float]] = None

    # --- Queries ---

    @property
    def is_active(self) -> bool:
        return self.state != IDLE

    @property
    def marquee_bbox(self):
        """The rubber band rectangle while SELECTING, else None."""
        if self.state != SELECTING or self._marquee_start is None:
            return None
        return normalize_bbox(*self._marquee_start, *self._marquee_end)

    def hit_test(self, x, y) -> Optional[str]:
        """Id of the topmost element under (x, y); children are drawn over their parents."""
        found = None
        for widget, bbox in self.model.iter_absolute_bboxes():
            if bbox_contains_point(bbox, x, y):
                found = widget.wid
        return found

    def _handle_hit(self, x, y) -> Optional[str]:
        for widget in reversed(self.model.get_selected_elements()):
            origin_x, origin_y = self.model.get_parent_origin(widget)
            if widget.handle_contains(x - origin_x, y - origin_y, self.handle_size):
                return widget.wid
        return None

    def _compute_followers(self, grab_id: str) -> List[str]:
        """
        Selected elements that move along with the grabbed one. A selected container
        holding another selected element stays put, and selected descendants of the
        grabbed element already travel with it.
        """
        selected = self.model.selected_element_ids
        held = set()
        for wid in selected:
            held.update(a for a in self.model.get_ancestor_ids(wid) if a in selected)
        grabbed_subtree = set(self.model.get_descendant_ids(grab_id))
        return [w.wid for w in self.model.get_selected_elements()
                if w.wid != grab_id and w.wid not in held and w.wid not in grabbed_subtree]

    # --- Pointer events ---

    def pointer_down(self, x, y, additive: bool = False):
        if self.is_active:
            logger.debug("DragController.pointer_down: Gesture '%s' still open, cancelling it.", self.state)
            self.cancel()

        self._moved = False
        self._additive = additive

        resize_id = None if additive else self._handle_hit(x, y)
        if resize_id is not None:
            widget = self.model.get_element(resize_id)
            self._grab_id = resize_id
            self.model.begin_batch(f"Resize {widget.widget_type}")
            self.state = RESIZING
            logger.debug("DragController.pointer_down: Resizing %s", resize_id)
            return

        hit = self.hit_test(x, y)
        if hit is None:
            self._marquee_start = self._marquee_end = (x, y)
            self.state = SELECTING
            return

        if additive:
            self.model.toggle_element_selection(hit)
            if not self.model.is_selected(hit):
                return
        elif not self.model.is_selected(hit):
            self.model.set_selected_elements([hit])

        widget = self.model.get_element(hit)
        abs_x, abs_y = self.model.get_absolute_origin(hit)
        self._grab_id = hit
        self._grab_offset = (x - abs_x, y - abs_y)
        self._followers = self._compute_followers(hit)
        self._start_positions = {wid: (self.model.elements[wid].x, self.model.elements[wid].y)
                                 for wid in [hit] + self._followers}
        self.model.begin_batch(f"Move {widget.widget_type}")
        self.state = DRAGGING
        logger.debug("DragController.pointer_down: Dragging %s with %d follower(s)", hit, len(self._followers))

    def pointer_move(self, x, y):
        if self.state == DRAGGING:
            self._drag_to(x, y)
        elif self.state == RESIZING:
            self._resize_to(x, y)
        elif self.state == SELECTING:
            self._marquee_end = (x, y)

    def pointer_up(self, x, y):
        state = self.state
        if state == DRAGGING:
            self._drag_to(x, y)
            if self.state != DRAGGING: return # element vanished, gesture was cancelled
            if self._moved:
                self._drop(self._grab_id)
            elif not self._additive and len(self.model.selected_element_ids) > 1:
                # A plain click inside a multi-selection narrows it to the clicked element.
                self.model.set_selected_elements([self._grab_id])
            self.model.end_batch()
        elif state == RESIZING:
            self._resize_to(x, y)
            if self.state != RESIZING: return
            self.model.end_batch()
        elif state == SELECTING:
            self._marquee_end = (x, y)
            self._finish_marquee()
        self._reset()

    def cancel(self):
        """Abandons the current gesture. Moves and resizes are rolled back."""
        if self.state in (DRAGGING, RESIZING):
            self.model.cancel_batch()
            logger.debug("DragController.cancel: Reverted %s of %s", self.state, self._grab_id)
        self._reset()

    def _reset(self):
        self.state = IDLE
        self._grab_id = None
        self._start_positions = {}
        self._followers = []
        self._marquee_start = self._marquee_end = None

    # --- Gesture steps ---

    def _snap(self, value):
        return snap_value(value, self.model.grid_size) if self.model.snap_to_grid else value

    def _drag_to(self, x, y):
        widget = self.model.get_element(self._grab_id)
        if widget is None: # deleted under the pointer
            self.cancel()
            return
        parent = self.model.get_parent(widget)
        origin_x, origin_y = self.model.get_parent_origin(widget)

        new_x = x - self._grab_offset[0] - origin_x
        new_y = y - self._grab_offset[1] - origin_y
        if parent is not None:
            new_x, new_y, _, _ = clamp_rect_to_bounds(new_x, new_y, widget.width, widget.height,
                                                      parent.width, parent.height)
        new_x, new_y = self._snap(new_x), self._snap(new_y)
        if parent is not None:
            # Snapping may step past the far edge
            new_x, new_y, _, _ = clamp_rect_to_bounds(new_x, new_y, widget.width, widget.height,
                                                      parent.width, parent.height)

        start_x, start_y = self._start_positions[self._grab_id]
        dx, dy = new_x - start_x, new_y - start_y
        updates = [(self._grab_id, {'x': new_x, 'y': new_y})]
        for wid in self._followers:
            if wid in self._start_positions and wid in self.model.elements:
                fx, fy = self._start_positions[wid]
                updates.append((wid, {'x': fx + dx, 'y': fy + dy})) # the store re-clamps each to its own parent

        if self.model.apply_updates(updates, label="Move"):
            self._moved = True

    def _resize_to(self, x, y):
        widget = self.model.get_element(self._grab_id)
        if widget is None:
            self.cancel()
            return
        parent = self.model.get_parent(widget)
        origin_x, origin_y = self.model.get_parent_origin(widget)

        corner_x, corner_y = self._snap(x - origin_x), self._snap(y - origin_y)
        width, height = corner_x - widget.x, corner_y - widget.y
        if parent is not None:
            # Grow up to the parent's edge instead of letting the store push the origin back.
            width = clamp(width, 0, parent.width - widget.x)
            height = clamp(height, 0, parent.height - widget.y)
        if self.model.apply_updates([(self._grab_id, {'width': width, 'height': height})], label="Resize"):
            self._moved = True

    def _drop_target(self, widget: Widget) -> Optional[str]:
        """Innermost container under the element's center, ignoring the element's own subtree."""
        center = bbox_center(self.model.get_absolute_bbox(widget.wid))
        excluded = {widget.wid, *self.model.get_descendant_ids(widget.wid)}
        best, best_depth = None, -1
        for candidate, bbox in self.model.iter_absolute_bboxes():
            if not candidate.is_container or candidate.wid in excluded:
                continue
            if bbox_contains_point(bbox, *center):
                depth = len(self.model.get_ancestor_ids(candidate.wid))
                if depth >= best_depth: # later siblings are drawn on top
                    best, best_depth = candidate.wid, depth
        return best

    def _drop(self, wid: str):
        widget = self.model.get_element(wid)
        if widget is None: return
        target = self._drop_target(widget)
        if target is None or target == widget.parent_id:
            # Stays where it is; the drag already kept it inside its parent.
            return
        abs_x, abs_y = self.model.get_absolute_origin(wid)
        logger.debug("DragController._drop: Re-parenting %s from %s to %s", wid, widget.parent_id, target)
        self.model.reparent_element(wid, target, abs_x, abs_y)

    def _finish_marquee(self):
        marquee = normalize_bbox(*self._marquee_start, *self._marquee_end)
        hits = {widget.wid for widget, bbox in self.model.iter_absolute_bboxes() if bboxes_intersect(bbox, marquee)}
        if self._additive:
            hits |= self.model.selected_element_ids
        self.model.set_selected_elements(hits)
        logger.debug("DragController._finish_marquee: %d element(s) selected", len(hits))
