# utils/__init__.py

# Import key utility functions you want to expose
from .geometry import calculate_snap, clamp_rect_to_bounds, clamp_size
from .image_loader import load_image_as_data_url, image_from_data_url

# __all__ = ['calculate_snap', 'clamp_rect_to_bounds', 'clamp_size', 'load_image_as_data_url', 'image_from_data_url']
