from typing import Any, Dict, Optional

from widgets.base_widget import Widget


class Button(Widget):
    pass


class Text(Widget):
    pass


class EditBox(Widget):
    pass


class ScrollFrame(Widget):
    # Scrolls its own content at runtime but is a leaf in the design tree.
    pass


class CheckButton(Widget):
    EDITABLE_FIELDS = Widget.EDITABLE_FIELDS + ('checked',)

    def __init__(self, wid: Optional[str], widget_type: str, checked: bool = False, **kwargs):
        super().__init__(wid=wid, widget_type=widget_type, **kwargs)
        self.checked = bool(checked)

    def set_checked(self, checked) -> bool:
        checked = bool(checked)
        if checked == self.checked: return False
        self.checked = checked
        return True

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['checked'] = self.checked
        return data

    @classmethod
    def _kwargs_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = super()._kwargs_from_dict(data)
        kwargs['checked'] = bool(data.get('checked', False))
        return kwargs
