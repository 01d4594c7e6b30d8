from typing import Optional

from widgets.base_widget import Widget


class Container(Widget):
    """A widget that may hold children and bounds their geometry."""
    is_container = True

    def __init__(self, wid: Optional[str], widget_type: str, **kwargs):
        super().__init__(wid=wid, widget_type=widget_type, **kwargs)

    @property
    def inner_bounds(self):
        """Children live in (0, 0, width, height) of this container's space."""
        return 0, 0, self.width, self.height


class Frame(Container):
    pass


class Section(Container):
    pass
