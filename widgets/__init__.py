# Import the base widget class and factory helpers
from .base_widget import Widget, WIDGET_CLASSES, create_widget

# Import the specific widget subclasses
from .container import Container, Frame, Section
from .controls import Button, Text, CheckButton, EditBox, ScrollFrame
from .slider import Slider
