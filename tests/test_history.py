"""Tests for undo/redo over store transactions."""

from history import History, HistoryEntry, PendingChange
from model import DesignModel


class TestHistoryStack:
    def test_limit_drops_oldest(self) -> None:
        history = History(limit=3)
        for i in range(5):
            history.push(HistoryEntry(f"step {i}", {}, {}))
        labels = []
        while history.can_undo:
            labels.append(history.pop_undo().label)
        assert labels == ["step 4", "step 3", "step 2"]

    def test_push_clears_redo(self) -> None:
        history = History()
        history.push(HistoryEntry("a", {}, {}))
        history.pop_undo()
        assert history.can_redo and history.redo_label == "a"
        history.push(HistoryEntry("b", {}, {}))
        assert not history.can_redo

    def test_pending_change_without_effect(self) -> None:
        pending = PendingChange("noop")
        pending.touch('x', {'id': 'x', 'width': 10})
        pending.touch('x', {'id': 'x', 'width': 99})  # only the first touch counts
        assert pending.finish(lambda wid: {'id': 'x', 'width': 10}, ['x']) is None


class TestUndoRedo:
    def test_undo_add(self, model: DesignModel) -> None:
        fid = model.add_element('Frame')
        assert model.undo()
        assert model.elements == {}
        assert model.redo()
        assert list(model.elements) == [fid]

    def test_undo_update(self, model: DesignModel, frame_id: str) -> None:
        model.update_element(frame_id, x=80, width=250)
        model.undo()
        frame = model.get_element(frame_id)
        assert (frame.x, frame.width) == (0, 400)
        model.redo()
        frame = model.get_element(frame_id)
        assert (frame.x, frame.width) == (80, 250)

    def test_undo_cascade_delete_restores_subtree(self, model: DesignModel, frame_id: str, check_invariants) -> None:
        a = model.add_element('Button', parent_id=frame_id)
        section = model.add_element('Section', parent_id=frame_id, width=100, height=100)
        b = model.add_element('Text', parent_id=section, width=50, height=20)
        before = [w.to_dict() for w in model.elements.values()]
        model.set_selected_elements([a, b])

        model.delete_element(frame_id)
        assert model.elements == {}
        assert model.selected_element_ids == frozenset()

        model.undo()
        assert [w.to_dict() for w in model.elements.values()] == before
        check_invariants(model)

    def test_undo_container_resize_restores_children(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id, x=250, y=200)
        model.update_element(frame_id, width=100, height=50)
        assert model.get_element(bid).width == 100
        model.undo()
        button = model.get_element(bid)
        assert (button.x, button.y, button.width, button.height) == (250, 200, 120, 40)

    def test_batch_is_one_step(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id)
        model.begin_batch("Move")
        for x in (20, 40, 60, 80):
            model.update_element(bid, x=x)
        assert not model.can_undo  # not while the gesture is open
        assert model.undo() is False
        model.end_batch()
        assert model.history.undo_label == "Move"
        model.undo()
        assert model.get_element(bid).x == 10
        assert model.history.undo_label == "Add Button"

    def test_cancel_batch_rolls_back(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id)
        model.begin_batch("Move")
        model.update_element(bid, x=200, y=200)
        model.cancel_batch()
        button = model.get_element(bid)
        assert (button.x, button.y) == (10, 10)
        assert not model.in_batch
        assert model.history.undo_label == "Add Button"

    def test_new_edit_clears_redo(self, model: DesignModel, frame_id: str) -> None:
        model.update_element(frame_id, x=5)
        model.undo()
        assert model.can_redo
        model.update_element(frame_id, y=5)
        assert not model.can_redo

    def test_undo_reparent(self, model: DesignModel) -> None:
        a = model.add_element('Frame', x=0, y=0, width=300, height=300)
        b = model.add_element('Frame', x=400, y=0, width=300, height=300)
        bid = model.add_element('Button', parent_id=a)
        model.reparent_element(bid, b, 420, 20)
        model.undo()
        assert model.get_element(bid).parent_id == a
        assert model.get_element(a).child_ids == [bid]
        assert model.get_element(b).child_ids == []

    def test_nothing_to_undo(self, model: DesignModel) -> None:
        assert model.undo() is False
        assert model.redo() is False

    def test_load_clears_history(self, model: DesignModel, frame_id: str) -> None:
        model.load_elements([])
        assert not model.can_undo
