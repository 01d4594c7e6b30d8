# storage.py

import logging
import os
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class Storage:
    """
    Local key/value store for serialized JSON text. Implementations may raise
    OSError from any method; ProjectManager treats that as a failed save/load.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, text: str):
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryStorage(Storage):
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key):
        return self.data.get(key)

    def set(self, key, text):
        self.data[key] = text

    def remove(self, key):
        self.data.pop(key, None)

    def keys(self):
        return list(self.data)


class JsonFileStorage(Storage):
    """One <key>.json file per key inside directory."""

    SUFFIX = '.json'

    def __init__(self, directory: str):
        self.directory = os.path.abspath(os.path.expanduser(directory))
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        if not key or os.sep in key or (os.altsep and os.altsep in key) or key.startswith('.'):
            raise ValueError(f"Invalid storage key: {key!r}")
        return os.path.join(self.directory, key + self.SUFFIX)

    def get(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()

    def set(self, key, text):
        path = self._path(key)
        tmp_path = path + '.tmp'
        # Write then swap so a crash mid-write never leaves a truncated file behind.
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(text)
        os.replace(tmp_path, path)
        logger.debug("JsonFileStorage.set: Wrote %d chars to %s", len(text), path)

    def remove(self, key):
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    def keys(self):
        return sorted(name[:-len(self.SUFFIX)] for name in os.listdir(self.directory)
                      if name.endswith(self.SUFFIX))
