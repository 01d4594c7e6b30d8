from typing import Any, Dict, Optional

from widgets.base_widget import Widget, to_number
from utils.geometry import clamp
from constants import SLIDER_DEFAULTS


class Slider(Widget):
    EDITABLE_FIELDS = Widget.EDITABLE_FIELDS + ('min_value', 'max_value', 'value')

    def __init__(self, wid: Optional[str], widget_type: str, min_value=None, max_value=None, value=None, **kwargs):
        super().__init__(wid=wid, widget_type=widget_type, **kwargs)
        self.min_value = self._number_or_default(min_value, 'min_value')
        self.max_value = self._number_or_default(max_value, 'max_value')
        self.value = self._number_or_default(value, 'value')
        self._normalize_range()

    @staticmethod
    def _number_or_default(value, key):
        number = to_number(value)
        return SLIDER_DEFAULTS[key] if number is None else number

    def _normalize_range(self):
        # max never drops below min, and value always sits inside the range
        if self.max_value < self.min_value:
            self.max_value = self.min_value
        self.value = clamp(self.value, self.min_value, self.max_value)

    def _set_range_field(self, attr, new_value) -> bool:
        new_value = to_number(new_value)
        if new_value is None: return False
        before = (self.min_value, self.max_value, self.value)
        setattr(self, attr, new_value)
        if attr == 'min_value' and self.max_value < new_value:
            self.max_value = new_value
        elif attr == 'max_value' and new_value < self.min_value:
            self.min_value = new_value
        self._normalize_range()
        return (self.min_value, self.max_value, self.value) != before

    def set_min_value(self, new_value) -> bool:
        return self._set_range_field('min_value', new_value)

    def set_max_value(self, new_value) -> bool:
        return self._set_range_field('max_value', new_value)

    def set_value(self, new_value) -> bool:
        return self._set_range_field('value', new_value)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({'minValue': self.min_value, 'maxValue': self.max_value, 'value': self.value})
        return data

    @classmethod
    def _kwargs_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = super()._kwargs_from_dict(data)
        kwargs.update(min_value=data.get('minValue'), max_value=data.get('maxValue'), value=data.get('value'))
        return kwargs
