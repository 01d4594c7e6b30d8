# ─── Constants ──────────────────────────────────────────────────────────────────
CANVAS_WIDTH = 1024 # Keep for initial window size hint
CANVAS_HEIGHT = 768 # Keep for initial window size hint
PANEL_WIDTH = 220
TOOLBAR_HEIGHT = 40

# ─── Widget kinds ───────────────────────────────────────────────────────────────
CONTAINER_TYPES = ['Frame', 'Section']
LEAF_TYPES = ['Button', 'Text', 'CheckButton', 'EditBox', 'ScrollFrame', 'Slider']
WIDGET_TYPES = CONTAINER_TYPES + LEAF_TYPES

# Palette defaults applied when a widget is created without explicit attributes
DEFAULT_POSITION = (50, 50)
DEFAULT_CHILD_OFFSET = (10, 10) # Relative to the parent when no position is given
DEFAULT_SIZE = (200, 150)
WIDGET_SIZES = {
    'Button': (120, 40),
}
WIDGET_TEXT = {
    'Button': 'Click Me',
    'EditBox': 'Enter text...',
}
DEFAULT_COLOR = 'rgba(0, 0, 255, 0.5)'
DEFAULT_BORDER_COLOR = '#ffffff'
DEFAULT_BORDER_WIDTH = 1
SLIDER_DEFAULTS = {'min_value': 0, 'max_value': 100, 'value': 50}

# ─── Geometry limits ────────────────────────────────────────────────────────────
MIN_SIZE = 5
MAX_SIZE = 1500
MAX_BORDER_WIDTH = 10
HANDLE_SIZE = 8 # Half-extent of the resize handle hit area, in canvas pixels
POSITION_TOLERANCE = 0.01 # pixels

# ─── Grid & viewport ────────────────────────────────────────────────────────────
GRID_SIZE = 20
GRID_SIZE_MIN = 10
GRID_SIZE_MAX = 100
GRID_SIZE_STEP = 5
MIN_ZOOM = 0.5
MAX_ZOOM = 2.5
ZOOM_SENSITIVITY = 0.002

# ─── Names ──────────────────────────────────────────────────────────────────────
NAME_PATTERN = r'^[A-Za-z_][A-Za-z0-9_]*$'
DEFAULT_ADDON_NAME = 'MyAddon'
DEFAULT_FILE_NAME = 'Main'

# ─── Persistence ────────────────────────────────────────────────────────────────
STORAGE_KEY = 'widgetforge_state'
FILE_KEY_PREFIX = 'widgetforge_file_'
RECENT_FILES_LIMIT = 5
AUTOSAVE_DELAY_MS = 1500 # Quiet period before a debounced flush
AUTOSAVE_INTERVAL_MS = 30000 # Periodic flush tick
HISTORY_LIMIT = 100
