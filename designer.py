# designer.py

import argparse
import logging
import os
import tkinter as tk

from model import DesignModel
from controller import DragController
from persistence import ProjectManager
from storage import JsonFileStorage
from view import DesignerView

DEFAULT_DATA_DIR = os.path.join("~", ".widgetforge")

logger = logging.getLogger(__name__)


def build_app(root: tk.Tk, data_dir: str = DEFAULT_DATA_DIR):
    """Wires model, persistence, drag controller and view together. Returns (view, manager)."""
    model = DesignModel()
    manager = ProjectManager(model, JsonFileStorage(data_dir), scheduler=root)
    manager.load_state()
    drag = DragController(model)
    view = DesignerView(root, model, drag, manager)
    manager.start_autosave()

    def on_close():
        # Nothing edited since the last flush is lost on exit
        drag.cancel()
        manager.stop_autosave()
        manager.flush()
        root.destroy()

    root.protocol("WM_DELETE_WINDOW", on_close)
    return view, manager


def main(argv=None):
    parser = argparse.ArgumentParser(description='WidgetForge UI designer')
    parser.add_argument('-d', '--data-dir', default=DEFAULT_DATA_DIR, help='Directory the projects are stored in')
    parser.add_argument('-p', '--project', help='Open (or create) the project with this name')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    root = tk.Tk()
    view, manager = build_app(root, args.data_dir)

    if args.project:
        match = [p for p in manager.projects.values() if p.name.casefold() == args.project.casefold()]
        if match:
            manager.load_project(match[0].pid)
        else:
            manager.create_project(args.project)

    logger.info("designer: Starting main loop (data in %s)", os.path.expanduser(args.data_dir))
    root.mainloop()


if __name__ == '__main__':
    main()
