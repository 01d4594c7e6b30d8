# widgets/base_widget.py

import logging
import uuid
from typing import List, Dict, Optional, Any, Tuple

from utils.geometry import clamp, clamp_size, bbox_contains_point
from constants import DEFAULT_COLOR, DEFAULT_BORDER_COLOR, DEFAULT_BORDER_WIDTH, MAX_BORDER_WIDTH

logger = logging.getLogger(__name__)


def to_number(value: Any) -> Optional[float]:
    """Coerces form/JSON input to a number; bools and junk are rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


class Widget:
    """
    A positioned node of the design tree.

    x/y are relative to the parent's origin when parent_id is set and absolute
    otherwise. The tree links (parent_id, child_ids) are plain fields; only
    DesignModel edits them so both sides stay consistent.
    """
    is_container = False

    # Attribute names accepted by update(); subclasses extend this tuple.
    EDITABLE_FIELDS: Tuple[str, ...] = (
        'x', 'y', 'width', 'height', 'color', 'border_color', 'border_width',
        'opacity', 'image_src', 'text', 'name',
    )
    GEOMETRY_FIELDS = ('x', 'y', 'width', 'height')

    # Python attribute -> durable (camelCase) key
    _SERIALIZED_KEYS = {
        'color': 'color',
        'border_color': 'borderColor',
        'border_width': 'borderWidth',
        'opacity': 'opacity',
        'image_src': 'imageSrc',
        'text': 'text',
        'name': 'name',
    }

    def __init__(self, wid: Optional[str], widget_type: str, x=0, y=0, width=100, height=100, **kwargs):
        self.wid = wid or uuid.uuid4().hex
        self.widget_type = widget_type

        width, height = clamp_size(width, height)
        self.x = x
        self.y = y
        self.width = width
        self.height = height

        self.color: Optional[str] = kwargs.get('color', DEFAULT_COLOR)
        self.border_color: Optional[str] = kwargs.get('border_color', DEFAULT_BORDER_COLOR)
        border_width = to_number(kwargs.get('border_width', DEFAULT_BORDER_WIDTH))
        self.border_width = clamp(DEFAULT_BORDER_WIDTH if border_width is None else border_width, 0, MAX_BORDER_WIDTH)
        opacity = to_number(kwargs.get('opacity', 1.0))
        self.opacity = clamp(1.0 if opacity is None else opacity, 0.0, 1.0)
        self.image_src: Optional[str] = kwargs.get('image_src') or None
        self.text: Optional[str] = kwargs.get('text')
        self.name: Optional[str] = kwargs.get('name') or None

        self.parent_id: Optional[str] = kwargs.get('parent_id')
        self.child_ids: List[str] = list(kwargs.get('child_ids') or []) if self.is_container else []

    def __repr__(self):
        return f"<{self.widget_type} {self.wid[:8]} ({self.x}, {self.y}, {self.width}x{self.height})>"

    # --- Geometry ---

    @property
    def get_bbox(self) -> Tuple[float, float, float, float]:
        """Returns the bounding box (x0, y0, x1, y1) in the parent's coordinate space."""
        return self.x, self.y, self.x + self.width, self.y + self.height

    def contains_point(self, x, y) -> bool:
        return bbox_contains_point(self.get_bbox, x, y)

    def handle_contains(self, x, y, handle_size) -> bool:
        """Tests the bottom-right resize handle, with x/y in the same space as the bbox."""
        _, _, x1, y1 = self.get_bbox
        return x1 - handle_size <= x <= x1 + handle_size and y1 - handle_size <= y <= y1 + handle_size

    # --- Setters (each returns True if the value actually changed) ---

    def set_x(self, new_x) -> bool:
        new_x = to_number(new_x)
        if new_x is None or new_x == self.x: return False
        self.x = new_x
        return True

    def set_y(self, new_y) -> bool:
        new_y = to_number(new_y)
        if new_y is None or new_y == self.y: return False
        self.y = new_y
        return True

    def set_width(self, new_width) -> bool:
        new_width = to_number(new_width)
        if new_width is None: return False
        new_width, _ = clamp_size(new_width, self.height)
        if new_width == self.width: return False
        self.width = new_width
        return True

    def set_height(self, new_height) -> bool:
        new_height = to_number(new_height)
        if new_height is None: return False
        _, new_height = clamp_size(self.width, new_height)
        if new_height == self.height: return False
        self.height = new_height
        return True

    def set_color(self, new_color) -> bool:
        new_color = new_color or None
        if new_color == self.color: return False
        self.color = new_color
        return True

    def set_border_color(self, new_color) -> bool:
        new_color = new_color or None
        if new_color == self.border_color: return False
        self.border_color = new_color
        return True

    def set_border_width(self, new_border_width) -> bool:
        new_border_width = to_number(new_border_width)
        if new_border_width is None: return False
        new_border_width = clamp(new_border_width, 0, MAX_BORDER_WIDTH)
        if new_border_width == self.border_width: return False
        self.border_width = new_border_width
        return True

    def set_opacity(self, new_opacity) -> bool:
        new_opacity = to_number(new_opacity)
        if new_opacity is None: return False
        new_opacity = clamp(new_opacity, 0.0, 1.0)
        if new_opacity == self.opacity: return False
        self.opacity = new_opacity
        return True

    def set_image_src(self, new_src) -> bool:
        new_src = new_src or None
        if new_src == self.image_src: return False
        self.image_src = new_src
        return True

    def set_text(self, new_text) -> bool:
        if new_text == self.text: return False
        self.text = new_text
        return True

    def set_name(self, new_name) -> bool:
        # Uniqueness is the model's job; here an empty name just clears it.
        new_name = new_name.strip() if isinstance(new_name, str) else None
        new_name = new_name or None
        if new_name == self.name: return False
        self.name = new_name
        return True

    def update(self, changes: Dict[str, Any]) -> List[str]:
        """Applies attribute changes through the setters, returning the names that changed."""
        applied = []
        for key, value in changes.items():
            if key not in self.EDITABLE_FIELDS:
                logger.debug("Widget.update: Ignoring non-editable attribute '%s' on %s", key, self.wid)
                continue
            setter = getattr(self, f"set_{key}")
            if setter(value):
                applied.append(key)
        return applied

    # --- Serialization ---

    def to_dict(self) -> Dict[str, Any]:
        """Serializes the widget to the durable record format."""
        data = {
            'id': self.wid,
            'type': self.widget_type,
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'parentId': self.parent_id,
            'childIds': list(self.child_ids),
            'isContainer': self.is_container,
        }
        for attr, key in self._SERIALIZED_KEYS.items():
            data[key] = getattr(self, attr)
        return data

    @classmethod
    def _kwargs_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = {}
        for attr, key in cls._SERIALIZED_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
        return kwargs

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Optional['Widget']:
        """Factory method to create a Widget instance from a durable record."""
        if not isinstance(data, dict):
            logger.warning("Widget.from_dict: Record is not a dictionary: %r", data)
            return None

        wid = data.get('id')
        widget_type = data.get('type')
        if not wid or not isinstance(wid, str) or widget_type is None:
            logger.warning("Widget.from_dict: Missing essential data for widget creation: %s", data)
            return None

        widget_class = WIDGET_CLASSES.get(widget_type)
        if widget_class is None:
            logger.warning("Widget.from_dict: Unknown widget type: %s", widget_type)
            return None

        geometry = {}
        for key in Widget.GEOMETRY_FIELDS:
            value = to_number(data.get(key, 0))
            if value is None:
                logger.warning("Widget.from_dict: Invalid %s for widget %s: %r", key, wid, data.get(key))
                return None
            geometry[key] = value

        parent_id = data.get('parentId')
        child_ids = data.get('childIds') or []
        if not isinstance(child_ids, list):
            child_ids = []

        kwargs = widget_class._kwargs_from_dict(data)
        return widget_class(wid=wid, widget_type=widget_type,
                            parent_id=parent_id if isinstance(parent_id, str) and parent_id else None,
                            child_ids=[c for c in child_ids if isinstance(c, str)],
                            **geometry, **kwargs)


def create_widget(widget_type: str, wid: Optional[str] = None, **kwargs) -> Optional[Widget]:
    """Instantiates the class registered for widget_type, or returns None for unknown kinds."""
    widget_class = WIDGET_CLASSES.get(widget_type)
    if widget_class is None:
        logger.warning("create_widget: Unknown widget type: %s", widget_type)
        return None
    return widget_class(wid=wid, widget_type=widget_type, **kwargs)


# Import specific widget subclasses for the from_dict factory method
# These imports MUST be *after* the Widget class definition
from .container import Frame, Section
from .controls import Button, Text, CheckButton, EditBox, ScrollFrame
from .slider import Slider

WIDGET_CLASSES = {
    'Frame': Frame,
    'Section': Section,
    'Button': Button,
    'Text': Text,
    'CheckButton': CheckButton,
    'EditBox': EditBox,
    'ScrollFrame': ScrollFrame,
    'Slider': Slider,
}
