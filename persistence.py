# persistence.py

import json
import logging
from typing import List, Dict, Optional, Any

from model import DesignModel, NOTICE_ERROR, NOTICE_SUCCESS, NOTICE_WARNING
from catalog import DesignFile, Project, same_name, untitled_name
from storage import Storage
from constants import (
    STORAGE_KEY, FILE_KEY_PREFIX, RECENT_FILES_LIMIT, DEFAULT_FILE_NAME,
    AUTOSAVE_DELAY_MS, AUTOSAVE_INTERVAL_MS,
)

logger = logging.getLogger(__name__)

# Everything that can go wrong turning stored text back into state
_LOAD_ERRORS = (OSError, json.JSONDecodeError, TypeError, ValueError)


class ProjectManager:
    """
    Owns the project/file catalog, the active-file pointers, recent files and
    the sync with durable storage.

    The working tree of the active file lives in the DesignModel; the manager
    only snapshots it (export_elements) at flush points and hands stored
    elements back through load_elements when the active file changes.

    scheduler is anything with tkinter's after(ms, fn) / after_cancel(handle);
    without one there is no autosave.
    """

    def __init__(self, model: DesignModel, storage: Storage, scheduler=None):
        self.model = model
        self.storage = storage
        self.scheduler = scheduler

        self.projects: Dict[str, Project] = {}
        self.files: Dict[str, DesignFile] = {}
        self.active_project_id: Optional[str] = None
        self.active_file_id: Optional[str] = None
        self.recent_files: List[str] = []

        self._saved_revision = model.revision
        self._seen_revision = model.revision
        self._debounce_handle = None
        self._interval_handle = None

        self.model.add_observer(self._on_model_change)

    # --- Queries ---

    @property
    def dirty(self) -> bool:
        return self.model.revision != self._saved_revision

    @property
    def active_file(self) -> Optional[DesignFile]:
        return self.files.get(self.active_file_id) if self.active_file_id else None

    @property
    def active_project(self) -> Optional[Project]:
        return self.projects.get(self.active_project_id) if self.active_project_id else None

    def get_project_files(self, project_id: str) -> List[DesignFile]:
        project = self.projects.get(project_id)
        if project is None: return []
        return [self.files[fid] for fid in project.files if fid in self.files]

    def get_standalone_files(self) -> List[DesignFile]:
        return [f for f in self.files.values() if f.project_id is None]

    def get_recent_files(self) -> List[DesignFile]:
        return [self.files[fid] for fid in self.recent_files if fid in self.files]

    def _mark_clean(self):
        self._saved_revision = self._seen_revision = self.model.revision

    # --- Name rules ---

    def _project_name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        return any(same_name(p.name, name) and p.pid != exclude_id for p in self.projects.values())

    def _file_name_taken(self, name: str, project_id: Optional[str], exclude_id: Optional[str] = None) -> bool:
        """Files are unique within their project; standalone files among each other."""
        return any(same_name(f.name, name) and f.fid != exclude_id and f.project_id == project_id
                   for f in self.files.values())

    def _clean_name(self, name: Optional[str], what: str) -> Optional[str]:
        name = (name or '').strip()
        if not name:
            self.model.notify_user(NOTICE_ERROR, f"{what} name cannot be empty.")
            return None
        return name

    # --- Durable storage ---

    def _state_dict(self) -> Dict[str, Any]:
        viewport = self.model.viewport.to_dict()
        return {
            'elements': self.model.export_elements(),
            'selection': sorted(self.model.selected_element_ids),
            'gridSize': self.model.grid_size,
            'snapToGrid': self.model.snap_to_grid,
            'projects': [p.to_dict() for p in self.projects.values()],
            'files': [f.to_dict(include_elements=False) for f in self.files.values()],
            'activeProjectId': self.active_project_id,
            'activeFileId': self.active_file_id,
            'recentFiles': list(self.recent_files),
            'viewport': viewport,
            'addonName': self.model.addon_name,
        }

    def persist_catalog(self) -> bool:
        """Writes the main state record. Storage failures are logged and reported, never raised."""
        try:
            self.storage.set(STORAGE_KEY, json.dumps(self._state_dict(), indent=4))
        except (OSError, TypeError, ValueError) as e:
            logger.error("ProjectManager.persist_catalog: Could not write state: %s", e)
            self.model.notify_user(NOTICE_ERROR, f"Could not save:\n{e}")
            return False
        return True

    def _write_file(self, design_file: DesignFile) -> bool:
        try:
            self.storage.set(FILE_KEY_PREFIX + design_file.fid, json.dumps(design_file.to_dict(), indent=4))
        except (OSError, TypeError, ValueError) as e:
            logger.error("ProjectManager._write_file: Could not write %r: %s", design_file, e)
            self.model.notify_user(NOTICE_ERROR, f"Could not save '{design_file.name}':\n{e}")
            return False
        return True

    def _remove_file_record(self, fid: str):
        try:
            self.storage.remove(FILE_KEY_PREFIX + fid)
        except OSError as e:
            logger.error("ProjectManager._remove_file_record: Could not remove %s: %s", fid, e)

    def _read_json(self, key: str) -> Optional[Any]:
        try:
            text = self.storage.get(key)
            return json.loads(text) if text is not None else None
        except _LOAD_ERRORS as e:
            logger.warning("ProjectManager._read_json: Unreadable record '%s': %s", key, e)
            return None

    def _read_file_elements(self, design_file: DesignFile):
        data = self._read_json(FILE_KEY_PREFIX + design_file.fid)
        if isinstance(data, dict) and isinstance(data.get('elements'), list):
            design_file.elements = data['elements']

    def load_state(self) -> bool:
        """
        Restores the catalog and the working tree from storage. Missing, unreadable
        or corrupt data falls back to an empty state. Returns True if a state was found.
        """
        data = self._read_json(STORAGE_KEY)
        if data is not None and not isinstance(data, dict):
            logger.warning("ProjectManager.load_state: State is not an object, starting empty.")
            data = None

        self.projects, self.files = {}, {}
        self.active_project_id = self.active_file_id = None
        self.recent_files = []
        if data is None:
            self.model.load_elements([])
            self._mark_clean()
            return False

        try:
            self._restore_state(data)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("ProjectManager.load_state: Corrupt state (%s), starting empty.", e)
            self.projects, self.files = {}, {}
            self.active_project_id = self.active_file_id = None
            self.recent_files = []
            self.model.load_elements([])
            self.model.notify_user(NOTICE_WARNING, "Saved data was corrupt and has been reset.")
        self._mark_clean()
        return True

    def _restore_state(self, data: Dict[str, Any]):
        for record in data.get('files') or []:
            design_file = DesignFile.from_dict(record)
            if design_file is not None:
                self.files[design_file.fid] = design_file
        for record in data.get('projects') or []:
            project = Project.from_dict(record)
            if project is not None:
                self.projects[project.pid] = project

        # Repair dangling cross references between the two tables
        for design_file in self.files.values():
            if design_file.project_id is not None and design_file.project_id not in self.projects:
                design_file.project_id = None
        for project in self.projects.values():
            project.files = [fid for fid in project.files
                             if fid in self.files and self.files[fid].project_id == project.pid]
            for design_file in self.files.values():
                if design_file.project_id == project.pid and design_file.fid not in project.files:
                    project.files.append(design_file.fid)
            if project.last_opened_file_id not in project.files:
                project.last_opened_file_id = None
        for design_file in self.files.values():
            self._read_file_elements(design_file)

        active_file_id = data.get('activeFileId')
        self.active_file_id = active_file_id if active_file_id in self.files else None
        active_project_id = data.get('activeProjectId')
        self.active_project_id = active_project_id if active_project_id in self.projects else None
        recent = data.get('recentFiles')
        self.recent_files = [fid for fid in recent if fid in self.files][:RECENT_FILES_LIMIT] if isinstance(recent, list) else []

        self.model.set_grid_size(data.get('gridSize', self.model.grid_size))
        self.model.set_snap_to_grid(data.get('snapToGrid', True))
        if isinstance(data.get('addonName'), str) and data['addonName'].strip():
            self.model.set_addon_name(data['addonName'])
        self.model.viewport.load_dict(data.get('viewport'))

        selection = data.get('selection')
        self.model.load_elements(data.get('elements'),
                                 selection=selection if isinstance(selection, list) else None)
        logger.info("ProjectManager.load_state: Restored %d project(s), %d file(s), active file %s",
                    len(self.projects), len(self.files), self.active_file_id)

    # --- Flushing ---

    def flush(self) -> bool:
        """
        Snapshots the working tree into the active file and persists the catalog.
        No-op when nothing changed. Deferred while a gesture is in progress.
        """
        if not self.dirty:
            return False
        if self.model.in_batch:
            logger.debug("ProjectManager.flush: Gesture in progress, deferring.")
            self._schedule_debounce()
            return False

        design_file = self.active_file
        if design_file is not None:
            design_file.elements = self.model.export_elements()
            design_file.touch()
            if design_file.project_id in self.projects:
                self.projects[design_file.project_id].touch()
            if not self._write_file(design_file):
                return False
        if not self.persist_catalog():
            return False
        self._mark_clean()
        logger.debug("ProjectManager.flush: Saved %r", design_file)
        return True

    def save_current_file(self) -> bool:
        if not self.dirty:
            return False
        saved = self.flush()
        if saved:
            self.model.notify_user(NOTICE_SUCCESS, "Saved.")
        return saved

    def _touch_recent(self, fid: str):
        self.recent_files = [fid] + [r for r in self.recent_files if r != fid]
        del self.recent_files[RECENT_FILES_LIMIT:]

    def _activate_file(self, design_file: DesignFile):
        """Swaps the working tree to design_file. The caller has already flushed the old one."""
        self.active_file_id = design_file.fid
        self.active_project_id = design_file.project_id
        project = self.projects.get(design_file.project_id) if design_file.project_id else None
        if project is not None:
            project.last_opened_file_id = design_file.fid
        self._touch_recent(design_file.fid)
        self.model.load_elements(design_file.elements)
        self._mark_clean()
        self.persist_catalog()
        logger.info("ProjectManager._activate_file: Now editing %r", design_file)

    def _deactivate(self):
        self.active_file_id = None
        self.active_project_id = None
        self.model.reset()
        self._mark_clean()

    # --- Projects ---

    def create_project(self, name: Optional[str]) -> Optional[str]:
        """Creates a project with one default file and makes both active."""
        name = self._clean_name(name, "Project")
        if name is None: return None
        if self._project_name_taken(name):
            self.model.notify_user(NOTICE_ERROR, f"A project named '{name}' already exists.")
            return None

        self.flush()
        project = Project(None, name)
        design_file = DesignFile(None, DEFAULT_FILE_NAME, project_id=project.pid)
        project.files.append(design_file.fid)
        self.projects[project.pid] = project
        self.files[design_file.fid] = design_file
        self._write_file(design_file)
        self._activate_file(design_file)
        return project.pid

    def rename_project(self, project_id: str, name: Optional[str]) -> bool:
        project = self.projects.get(project_id)
        if project is None: return False
        name = self._clean_name(name, "Project")
        if name is None: return False
        if self._project_name_taken(name, exclude_id=project_id):
            self.model.notify_user(NOTICE_ERROR, f"A project named '{name}' already exists.")
            return False
        project.name = name
        project.touch()
        self.persist_catalog()
        return True

    def delete_project(self, project_id: str) -> bool:
        """Deletes the project and every file in it."""
        project = self.projects.pop(project_id, None)
        if project is None: return False

        doomed = [fid for fid, f in self.files.items() if f.project_id == project_id]
        for fid in doomed:
            del self.files[fid]
            self._remove_file_record(fid)
        self.recent_files = [fid for fid in self.recent_files if fid not in doomed]
        if self.active_project_id == project_id or self.active_file_id in doomed:
            self._deactivate()
        self.persist_catalog()
        logger.info("ProjectManager.delete_project: Deleted %r with %d file(s)", project, len(doomed))
        return True

    def load_project(self, project_id: str) -> bool:
        """Opens the project's last opened file (or its first one)."""
        project = self.projects.get(project_id)
        if project is None: return False
        fid = project.last_opened_file_id
        if fid not in self.files:
            fid = project.files[0] if project.files else None
        if fid is None:
            return self.create_file(DEFAULT_FILE_NAME, project_id) is not None
        return self.load_file(fid)

    # --- Files ---

    def create_file(self, name: Optional[str] = None, project_id: Optional[str] = None) -> Optional[str]:
        """Creates an empty file (standalone when project_id is None) and opens it."""
        if project_id is not None and project_id not in self.projects:
            self.model.notify_user(NOTICE_ERROR, "That project no longer exists.")
            return None
        name = (name or '').strip() or untitled_name()
        if self._file_name_taken(name, project_id):
            self.model.notify_user(NOTICE_ERROR, f"A file named '{name}' already exists here.")
            return None

        self.flush()
        design_file = DesignFile(None, name, project_id=project_id)
        self.files[design_file.fid] = design_file
        if project_id is not None:
            self.projects[project_id].files.append(design_file.fid)
            self.projects[project_id].touch()
        self._write_file(design_file)
        self._activate_file(design_file)
        return design_file.fid

    def rename_file(self, file_id: str, name: Optional[str]) -> bool:
        design_file = self.files.get(file_id)
        if design_file is None: return False
        name = self._clean_name(name, "File")
        if name is None: return False
        if self._file_name_taken(name, design_file.project_id, exclude_id=file_id):
            self.model.notify_user(NOTICE_ERROR, f"A file named '{name}' already exists here.")
            return False
        design_file.name = name
        design_file.touch()
        if file_id != self.active_file_id:
            self._write_file(design_file)
        self.persist_catalog()
        return True

    def delete_file(self, file_id: str) -> bool:
        design_file = self.files.pop(file_id, None)
        if design_file is None: return False

        project = self.projects.get(design_file.project_id) if design_file.project_id else None
        if project is not None:
            project.files = [fid for fid in project.files if fid != file_id]
            if project.last_opened_file_id == file_id:
                project.last_opened_file_id = None
            project.touch()
        self._remove_file_record(file_id)
        self.recent_files = [fid for fid in self.recent_files if fid != file_id]
        if self.active_file_id == file_id:
            self._deactivate()
        self.persist_catalog()
        return True

    def move_file_to_project(self, file_id: str, project_id: Optional[str]) -> bool:
        """Moves a file into another project, or out of any project when project_id is None."""
        design_file = self.files.get(file_id)
        if design_file is None: return False
        if project_id is not None and project_id not in self.projects:
            self.model.notify_user(NOTICE_ERROR, "That project no longer exists.")
            return False
        if design_file.project_id == project_id: return True
        if self._file_name_taken(design_file.name, project_id, exclude_id=file_id):
            self.model.notify_user(NOTICE_ERROR, f"A file named '{design_file.name}' already exists there.")
            return False

        old_project = self.projects.get(design_file.project_id) if design_file.project_id else None
        if old_project is not None:
            old_project.files = [fid for fid in old_project.files if fid != file_id]
            if old_project.last_opened_file_id == file_id:
                old_project.last_opened_file_id = None
            old_project.touch()
        design_file.project_id = project_id
        design_file.touch()
        if project_id is not None:
            self.projects[project_id].files.append(file_id)
            self.projects[project_id].touch()
        if self.active_file_id == file_id:
            self.active_project_id = project_id
        if file_id != self.active_file_id:
            self._write_file(design_file)
        self.persist_catalog()
        return True

    def load_file(self, file_id: str) -> bool:
        """Flushes the current file (if dirty), then opens file_id."""
        design_file = self.files.get(file_id)
        if design_file is None: return False
        self.flush()
        self._activate_file(design_file)
        return True

    # --- Autosave ---

    def _on_model_change(self):
        # Selection and viewport changes notify too; only content changes restart the timer.
        if self.model.revision == self._seen_revision: return
        self._seen_revision = self.model.revision
        if self.dirty:
            self._schedule_debounce()

    def _schedule_debounce(self):
        if self.scheduler is None: return
        if self._debounce_handle is not None:
            self.scheduler.after_cancel(self._debounce_handle)
        self._debounce_handle = self.scheduler.after(AUTOSAVE_DELAY_MS, self._on_debounce)

    def _on_debounce(self):
        self._debounce_handle = None
        self.flush()

    def start_autosave(self):
        """Starts the periodic autosave tick (edits additionally trigger a debounced flush)."""
        if self.scheduler is None or self._interval_handle is not None: return
        self._interval_handle = self.scheduler.after(AUTOSAVE_INTERVAL_MS, self._on_interval)

    def _on_interval(self):
        self._interval_handle = self.scheduler.after(AUTOSAVE_INTERVAL_MS, self._on_interval)
        if self.dirty:
            logger.debug("ProjectManager._on_interval: Periodic autosave.")
            self.flush()

    def stop_autosave(self):
        if self.scheduler is None: return
        for handle in (self._debounce_handle, self._interval_handle):
            if handle is not None:
                self.scheduler.after_cancel(handle)
        self._debounce_handle = self._interval_handle = None
