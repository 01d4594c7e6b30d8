# image_loader.py

import base64
import io
import logging
import os
from typing import Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/png;base64,"


def load_image_as_data_url(path: str) -> Tuple[str, Tuple[int, int]]:
    """
    Opens an image file and re-encodes it as a PNG data URL, the form in which
    widgets carry their background image.

    Returns (data_url, (width, height)). Raises FileNotFoundError, OSError or
    PIL.UnidentifiedImageError (an OSError subclass) when the file can't be read.
    """
    full_path = os.path.expanduser(path)
    if not os.path.exists(full_path):
        raise FileNotFoundError(f"Image file not found: {full_path}")

    with Image.open(full_path) as img:
        img = img.convert("RGBA") # Ensure RGBA for transparency
        size = img.size
        buf = io.BytesIO()
        img.save(buf, "PNG")

    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    logger.debug("image_loader.load_image_as_data_url: Loaded %s (%dx%d)", full_path, size[0], size[1])
    return DATA_URL_PREFIX + encoded, size


def image_from_data_url(data_url: str) -> Optional[Image.Image]:
    """Decodes a widget's image data URL back into a PIL image, or None if it isn't one."""
    if not data_url or not data_url.startswith("data:image/") or "," not in data_url:
        return None
    try:
        raw = base64.b64decode(data_url.split(",", 1)[1])
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            return img.convert("RGBA")
    except (ValueError, OSError) as e:
        logger.warning("image_loader.image_from_data_url: Could not decode image data: %s", e)
        return None
