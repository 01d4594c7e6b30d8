"""Pytest configuration and fixtures."""

import pytest

from model import DesignModel
from controller import DragController
from persistence import ProjectManager
from storage import MemoryStorage


class FakeScheduler:
    """Stands in for a Tk root's after()/after_cancel() with a manual clock."""

    def __init__(self):
        self.now = 0
        self._jobs = {}
        self._counter = 0

    def after(self, ms, fn):
        self._counter += 1
        handle = f"after#{self._counter}"
        self._jobs[handle] = (self.now + ms, self._counter, fn)
        return handle

    def after_cancel(self, handle):
        self._jobs.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._jobs)

    def advance(self, ms):
        """Runs every job that falls due within the next ms milliseconds, in order."""
        target = self.now + ms
        while True:
            due = [(when, order, handle) for handle, (when, order, _) in self._jobs.items() if when <= target]
            if not due:
                break
            when, _, handle = min(due)
            _, _, fn = self._jobs.pop(handle)
            self.now = when
            fn()
        self.now = target


def assert_invariants(model: DesignModel):
    """Checks every tree invariant the store promises to keep."""
    elements = model.elements
    names = [w.name for w in elements.values() if w.name]
    assert len(names) == len(set(names)), "names must be unique"

    for widget in elements.values():
        if not widget.is_container:
            assert widget.parent_id is not None, f"{widget} is a leaf at the root"
            assert widget.child_ids == []
        if widget.parent_id is not None:
            parent = elements.get(widget.parent_id)
            assert parent is not None, f"{widget} has a dangling parent"
            assert parent.is_container
            assert widget.wid in parent.child_ids
            assert 0 <= widget.x and 0 <= widget.y
            assert widget.x + widget.width <= parent.width + 1e-9
            assert widget.y + widget.height <= parent.height + 1e-9
        for cid in widget.child_ids:
            assert cid in elements and elements[cid].parent_id == widget.wid
        assert len(widget.child_ids) == len(set(widget.child_ids))

        seen = {widget.wid}
        pid = widget.parent_id
        while pid is not None:
            assert pid not in seen, "parent cycle"
            seen.add(pid)
            pid = elements[pid].parent_id


@pytest.fixture
def model() -> DesignModel:
    return DesignModel()


@pytest.fixture
def notices(model: DesignModel) -> list:
    """Collects (level, message) notices emitted by the model."""
    collected = []
    model.add_notice_listener(lambda level, message: collected.append((level, message)))
    return collected


@pytest.fixture
def frame_id(model: DesignModel) -> str:
    """A 400x300 root frame at the canvas origin."""
    return model.add_element('Frame', x=0, y=0, width=400, height=300)


@pytest.fixture
def drag(model: DesignModel) -> DragController:
    model.set_snap_to_grid(False)
    return DragController(model)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def manager(model: DesignModel, storage: MemoryStorage, scheduler: FakeScheduler) -> ProjectManager:
    return ProjectManager(model, storage, scheduler=scheduler)


@pytest.fixture
def check_invariants():
    return assert_invariants
