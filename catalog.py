# catalog.py

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Milliseconds since the epoch, the unit lastModified is stored in."""
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


def untitled_name() -> str:
    """'Untitled-2024-05-01T12-30-00-000000+00-00' style name for files created without one."""
    stamp = datetime.now(timezone.utc).isoformat()
    return "Untitled-" + stamp.replace(':', '-').replace('.', '-')


def same_name(a: Optional[str], b: Optional[str]) -> bool:
    """Catalog names compare case-insensitively."""
    return (a or '').strip().casefold() == (b or '').strip().casefold()


class DesignFile:
    def __init__(self, fid: Optional[str], name: str, project_id: Optional[str] = None,
                 last_modified: Optional[int] = None, elements: Optional[List[Dict[str, Any]]] = None):
        self.fid = fid or new_id()
        self.name = name
        self.project_id = project_id
        self.last_modified = last_modified if last_modified is not None else now_ms()
        self.elements: List[Dict[str, Any]] = list(elements or [])

    def __repr__(self):
        return f"<DesignFile {self.name!r} ({self.fid[:8]}, project={self.project_id})>"

    def touch(self):
        self.last_modified = now_ms()

    def to_dict(self, include_elements: bool = True) -> Dict[str, Any]:
        data = {
            'id': self.fid,
            'name': self.name,
            'projectId': self.project_id,
            'lastModified': self.last_modified,
        }
        if include_elements:
            data['elements'] = list(self.elements)
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Optional['DesignFile']:
        if not isinstance(data, dict) or not isinstance(data.get('id'), str) or not isinstance(data.get('name'), str):
            logger.warning("DesignFile.from_dict: Invalid file record: %r", data)
            return None
        elements = data.get('elements')
        last_modified = data.get('lastModified')
        return DesignFile(data['id'], data['name'],
                          project_id=data.get('projectId') if isinstance(data.get('projectId'), str) else None,
                          last_modified=last_modified if isinstance(last_modified, (int, float)) else None,
                          elements=elements if isinstance(elements, list) else [])


class Project:
    def __init__(self, pid: Optional[str], name: str, files: Optional[List[str]] = None,
                 last_modified: Optional[int] = None, last_opened_file_id: Optional[str] = None):
        self.pid = pid or new_id()
        self.name = name
        self.files: List[str] = list(files or [])
        self.last_modified = last_modified if last_modified is not None else now_ms()
        self.last_opened_file_id = last_opened_file_id

    def __repr__(self):
        return f"<Project {self.name!r} ({self.pid[:8]}, {len(self.files)} files)>"

    def touch(self):
        self.last_modified = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.pid,
            'name': self.name,
            'files': list(self.files),
            'lastModified': self.last_modified,
            'lastOpenedFileId': self.last_opened_file_id,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Optional['Project']:
        if not isinstance(data, dict) or not isinstance(data.get('id'), str) or not isinstance(data.get('name'), str):
            logger.warning("Project.from_dict: Invalid project record: %r", data)
            return None
        files = data.get('files')
        last_modified = data.get('lastModified')
        last_opened = data.get('lastOpenedFileId')
        return Project(data['id'], data['name'],
                       files=[f for f in files if isinstance(f, str)] if isinstance(files, list) else [],
                       last_modified=last_modified if isinstance(last_modified, (int, float)) else None,
                       last_opened_file_id=last_opened if isinstance(last_opened, str) else None)
