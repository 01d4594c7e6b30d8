# alignment.py

import logging
from typing import List, Dict, Tuple, Any, Iterable

from constants import POSITION_TOLERANCE
from model import DesignModel, NOTICE_ERROR
from utils.geometry import clamp

logger = logging.getLogger(__name__)

ALIGN_MODES = ('left', 'top', 'right', 'bottom', 'center', 'vertical', 'horizontal')

# Safety net for distributions whose clamped targets reorder the selection
MAX_ALIGN_PASSES = 5

# (wid, {'x': ..., 'y': ...}) pairs in the element's own parent space
Updates = List[Tuple[str, Dict[str, Any]]]

UNBOUNDED = (float('-inf'), float('-inf'), float('inf'), float('inf'))


def _moved(current, target) -> bool:
    return abs(current - target) > POSITION_TOLERANCE


def _reachable(model: DesignModel, wid: str):
    """Canvas range (min_x, min_y, max_x, max_y) the element's top-left corner can take inside its parent."""
    widget = model.elements[wid]
    parent = model.get_parent(widget)
    if parent is None:
        return UNBOUNDED
    origin_x, origin_y = model.get_absolute_origin(parent.wid)
    return (origin_x, origin_y,
            origin_x + max(parent.width - widget.width, 0),
            origin_y + max(parent.height - widget.height, 0))


def _common_center(spans) -> float:
    """
    spans: (center, low, high) per element, where low/high bound the center
    the element can actually reach.

    Starts from the average center and moves to the closest value c at which
    the elements, each pinned into its own range, average back to c. Pinned
    elements no longer drag the average, so running it again on the result
    lands on the same c.
    """
    count = len(spans)
    c = sum(center for center, _, _ in spans) / count
    while True:
        drift = sum(clamp(c, low, high) for _, low, high in spans) / count - c
        if abs(drift) <= 1e-9:
            return c
        upward = drift > 0

        free, pinned_total = 0, 0.0
        for _, low, high in spans:
            inside = low <= c < high if upward else low < c <= high
            if inside:
                free += 1
            else:
                pinned_total += clamp(c, low, high)
        if free == count:
            return c
        settled = pinned_total / (count - free)

        # The pinned set only changes at a range edge
        if upward:
            edge = min((e for _, low, high in spans for e in (low, high) if e > c), default=float('inf'))
            if settled <= edge: return settled
        else:
            edge = max((e for _, low, high in spans for e in (low, high) if e < c), default=float('-inf'))
            if settled >= edge: return settled
        c = edge


def _distribute(boxes, lo, size):
    """
    Even spacing along one axis. boxes: (wid, bbox) pairs; lo/size pick the axis.
    The first element (by leading edge) stays put, the others are laid out after it.
    """
    ordered = sorted(boxes, key=lambda item: item[1][lo])
    first_start = ordered[0][1][lo]
    last_end = ordered[-1][1][lo + 2]
    total = sum(size(bbox) for _, bbox in ordered)
    spacing = (last_end - first_start - total) / (len(ordered) - 1)

    targets = {}
    previous_start, previous_size = first_start, size(ordered[0][1])
    for wid, bbox in ordered[1:]:
        start = previous_start + previous_size + spacing
        targets[wid] = start
        previous_start, previous_size = start, size(bbox)
    return targets


def compute_alignment(model: DesignModel, ids: Iterable[str], mode: str) -> Updates:
    """
    Works out where each element has to go for the given mode.

    Positions are computed in canvas space, pinned to what each element can
    reach inside its parent and converted back into the parent's space.
    Elements already on their target produce no update, so a second run over
    an aligned selection returns nothing.
    """
    boxes = [(wid, model.get_absolute_bbox(wid)) for wid in ids if wid in model.elements]
    if len(boxes) < 2 or mode not in ALIGN_MODES:
        return []
    reach = {wid: _reachable(model, wid) for wid, _ in boxes}

    targets: Dict[str, Tuple[Any, Any]] = {} # wid -> absolute (x, y), None keeps the axis
    if mode == 'left':
        left = min(bbox[0] for _, bbox in boxes)
        targets = {wid: (left, None) for wid, _ in boxes}
    elif mode == 'top':
        top = min(bbox[1] for _, bbox in boxes)
        targets = {wid: (None, top) for wid, _ in boxes}
    elif mode == 'right':
        right = max(bbox[2] for _, bbox in boxes)
        targets = {wid: (right - (bbox[2] - bbox[0]), None) for wid, bbox in boxes}
    elif mode == 'bottom':
        bottom = max(bbox[3] for _, bbox in boxes)
        targets = {wid: (None, bottom - (bbox[3] - bbox[1])) for wid, bbox in boxes}
    elif mode == 'center':
        half = {wid: ((bbox[2] - bbox[0]) / 2, (bbox[3] - bbox[1]) / 2) for wid, bbox in boxes}
        center_x = _common_center([(bbox[0] + half[wid][0], reach[wid][0] + half[wid][0], reach[wid][2] + half[wid][0])
                                   for wid, bbox in boxes])
        center_y = _common_center([(bbox[1] + half[wid][1], reach[wid][1] + half[wid][1], reach[wid][3] + half[wid][1])
                                   for wid, bbox in boxes])
        targets = {wid: (center_x - half[wid][0], center_y - half[wid][1]) for wid, _ in boxes}
    elif mode == 'vertical':
        targets = {wid: (None, y) for wid, y in _distribute(boxes, 1, lambda b: b[3] - b[1]).items()}
    elif mode == 'horizontal':
        targets = {wid: (x, None) for wid, x in _distribute(boxes, 0, lambda b: b[2] - b[0]).items()}

    updates = []
    for wid, bbox in boxes:
        if wid not in targets: continue
        target_x, target_y = targets[wid]
        min_x, min_y, max_x, max_y = reach[wid]
        origin_x, origin_y = model.get_parent_origin(model.elements[wid])
        changes = {}
        if target_x is not None:
            target_x = clamp(target_x, min_x, max_x)
            if _moved(bbox[0], target_x):
                changes['x'] = target_x - origin_x
        if target_y is not None:
            target_y = clamp(target_y, min_y, max_y)
            if _moved(bbox[1], target_y):
                changes['y'] = target_y - origin_y
        if changes:
            updates.append((wid, changes))
    return updates


def align_selection(model: DesignModel, mode: str) -> bool:
    """Aligns or distributes the current selection as one undoable step."""
    selected = [w.wid for w in model.get_selected_elements()]
    if len(selected) < 2:
        model.notify_user(NOTICE_ERROR, "Select at least two elements to align.")
        return False
    if mode not in ALIGN_MODES:
        model.notify_user(NOTICE_ERROR, f"Unknown alignment '{mode}'.")
        return False

    label = "Distribute" if mode in ('vertical', 'horizontal') else f"Align {mode}"
    moved = 0
    model.begin_batch(label)
    try:
        for _ in range(MAX_ALIGN_PASSES):
            updates = compute_alignment(model, selected, mode)
            logger.debug("align_selection: '%s' moves %d of %d element(s)", mode, len(updates), len(selected))
            changed = model.apply_updates(updates, label=label) if updates else 0
            if not changed:
                break
            moved += changed
        else:
            logger.warning("align_selection: '%s' still moving after %d passes", mode, MAX_ALIGN_PASSES)
    finally:
        model.end_batch()
    if moved:
        model.notify_observers()  # history entry exists only now
    return True
