"""Tests for the element store: creation, containment, deletion, names, selection."""

import random

import pytest
from PIL import Image

from model import DesignModel, Viewport, normalize_name, NOTICE_ERROR


def _errors(notices):
    return [message for level, message in notices if level == NOTICE_ERROR]


class TestAddElement:
    def test_leaf_at_root_is_rejected(self, model: DesignModel, notices) -> None:
        assert model.add_element('Button') is None
        assert model.elements == {}
        assert any("must be inside a container" in m for m in _errors(notices))

    def test_root_container_uses_defaults(self, model: DesignModel) -> None:
        frame = model.get_element(model.add_element('Frame'))
        assert (frame.x, frame.y, frame.width, frame.height) == (50, 50, 200, 150)
        assert frame.parent_id is None and frame.child_ids == []

    def test_absolute_position_becomes_relative(self, model: DesignModel) -> None:
        fid = model.add_element('Frame', x=100, y=100, width=200, height=100)
        bid = model.add_element('Button', parent_id=fid, x=150, y=120)
        button = model.get_element(bid)
        assert (button.x, button.y) == (50, 20)
        assert (button.width, button.height) == (120, 40)
        assert button.text == "Click Me"
        assert model.get_element(fid).child_ids == [bid]

    def test_new_child_is_clamped(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id, x=390, y=290)
        button = model.get_element(bid)
        assert (button.x, button.y) == (280, 260)

    def test_parent_must_be_container(self, model: DesignModel, frame_id: str, notices) -> None:
        bid = model.add_element('Button', parent_id=frame_id)
        assert model.add_element('Text', parent_id=bid) is None
        assert model.add_element('Text', parent_id='missing') is None
        assert len(_errors(notices)) == 2

    def test_duplicate_name_is_rejected(self, model: DesignModel, frame_id: str, notices) -> None:
        assert model.add_element('Button', parent_id=frame_id, name='ok') is not None
        assert model.add_element('Button', parent_id=frame_id, name='ok') is None
        assert _errors(notices)


class TestUpdateElement:
    def test_containment_clamp(self, model: DesignModel) -> None:
        """Parent 200x100, child asks for (190, 90, 50, 50): it must stay inside."""
        fid = model.add_element('Frame', x=0, y=0, width=200, height=100)
        bid = model.add_element('Button', parent_id=fid)
        model.update_element(bid, x=190, y=90, width=50, height=50)
        child = model.get_element(bid)
        assert child.x + child.width <= 200
        assert child.y + child.height <= 100
        assert (child.x, child.y, child.width, child.height) == (150, 50, 50, 50)

    def test_unknown_id_is_silent(self, model: DesignModel, notices) -> None:
        revision = model.revision
        assert model.update_element('ghost', x=1) is False
        assert model.revision == revision
        assert notices == []

    def test_shrinking_container_reclamps_subtree(self, model: DesignModel, frame_id: str, check_invariants) -> None:
        sid = model.add_element('Section', parent_id=frame_id, x=100, y=100, width=250, height=150)
        bid = model.add_element('Button', parent_id=sid, x=300, y=200)
        model.update_element(frame_id, width=120, height=80)
        section = model.get_element(sid)
        assert (section.width, section.height) == (120, 80)
        check_invariants(model)
        assert model.get_element(bid).width <= section.width

    def test_name_collision_rejected(self, model: DesignModel, frame_id: str) -> None:
        a = model.add_element('Button', parent_id=frame_id, name='first')
        b = model.add_element('Button', parent_id=frame_id)
        assert model.update_element(b, name='first') is False
        assert model.get_element(b).name is None
        assert model.update_element(a, name='first') is True

    def test_batch_cannot_hand_one_name_to_two_elements(self, model: DesignModel, frame_id: str,
                                                        notices, check_invariants) -> None:
        a = model.add_element('Button', parent_id=frame_id)
        b = model.add_element('Button', parent_id=frame_id)
        revision = model.revision
        assert model.apply_updates([(a, {'name': 'ok'}), (b, {'name': ' ok '})]) == 0
        assert model.get_element(a).name is None
        assert model.get_element(b).name is None
        assert model.revision == revision
        assert _errors(notices) == ["Name 'ok' is already taken."]
        check_invariants(model)

        assert model.apply_updates([(a, {'name': 'ok'}), (b, {'name': 'fine'})]) == 2

    def test_revision_counts_content_changes_only(self, model: DesignModel, frame_id: str) -> None:
        revision = model.revision
        model.set_selected_elements([frame_id])
        model.viewport.set_scale(2)
        assert model.revision == revision
        model.update_element(frame_id, color='#ff0000')
        assert model.revision == revision + 1

    def test_observers_notified_once_per_batch_update(self, model: DesignModel, frame_id: str) -> None:
        a = model.add_element('Button', parent_id=frame_id)
        b = model.add_element('Button', parent_id=frame_id, x=0, y=100)
        calls = []
        model.add_observer(lambda: calls.append(1))
        assert model.apply_updates([(a, {'x': 30}), (b, {'x': 30}), ('ghost', {'x': 1})]) == 2
        assert len(calls) == 1


class TestDeleteElement:
    def test_cascade_delete(self, model: DesignModel, frame_id: str, check_invariants) -> None:
        section = model.add_element('Section', parent_id=frame_id, width=200, height=200)
        inner = [model.add_element('Button', parent_id=section) for _ in range(2)]
        leaf = model.add_element('Text', parent_id=frame_id)
        other = model.add_element('Frame', x=600, y=0)
        model.set_selected_elements([leaf, inner[0], other])

        removed = model.delete_element(frame_id)
        assert len(removed) == 5
        assert set(removed) == {frame_id, section, leaf, *inner}
        assert list(model.elements) == [other]
        assert model.selected_element_ids == {other}
        check_invariants(model)

    def test_child_is_detached_from_parent(self, model: DesignModel, frame_id: str) -> None:
        a = model.add_element('Button', parent_id=frame_id)
        b = model.add_element('Button', parent_id=frame_id)
        model.delete_element(a)
        assert model.get_element(frame_id).child_ids == [b]

    def test_delete_selected_handles_nested_selection(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id)
        model.set_selected_elements([frame_id, bid])
        assert set(model.delete_selected()) == {frame_id, bid}
        assert model.elements == {}

    def test_unknown_id(self, model: DesignModel) -> None:
        assert model.delete_element('ghost') == []


class TestReparent:
    def test_keeps_canvas_position(self, model: DesignModel) -> None:
        a = model.add_element('Frame', x=0, y=0, width=300, height=300)
        b = model.add_element('Frame', x=100, y=100, width=300, height=300)
        bid = model.add_element('Button', parent_id=a, x=150, y=150)
        assert model.reparent_element(bid, b)
        button = model.get_element(bid)
        assert button.parent_id == b
        assert (button.x, button.y) == (50, 50)
        assert model.get_absolute_origin(bid) == (150, 150)
        assert bid not in model.get_element(a).child_ids

    def test_refuses_cycles(self, model: DesignModel, frame_id: str, notices) -> None:
        section = model.add_element('Section', parent_id=frame_id)
        assert not model.reparent_element(frame_id, section)
        assert not model.reparent_element(frame_id, frame_id)
        assert model.get_element(frame_id).parent_id is None

    def test_leaf_cannot_go_to_root(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id)
        assert not model.reparent_element(bid, None)
        assert model.get_element(bid).parent_id == frame_id

    def test_container_can_go_to_root(self, model: DesignModel, frame_id: str) -> None:
        model.update_element(frame_id, x=40, y=40)
        section = model.add_element('Section', parent_id=frame_id, x=60, y=70, width=100, height=100)
        assert model.reparent_element(section, None)
        moved = model.get_element(section)
        assert moved.parent_id is None
        assert (moved.x, moved.y) == (60, 70)


class TestNames:
    def test_normalize(self) -> None:
        assert normalize_name("  my   button ") == "my_button"
        assert normalize_name(None) == ""

    def test_validate_name(self, model: DesignModel, frame_id: str) -> None:
        bid = model.add_element('Button', parent_id=frame_id, name='btn')
        assert not model.validate_name('btn')
        assert model.validate_name('btn', exclude_id=bid)
        assert model.validate_name('Btn')  # case-sensitive
        assert model.validate_name('')

    def test_rename(self, model: DesignModel, frame_id: str, notices) -> None:
        a = model.add_element('Button', parent_id=frame_id)
        b = model.add_element('Button', parent_id=frame_id)
        assert model.rename_element(a, ' play  button ')
        assert model.get_element(a).name == 'play_button'
        assert not model.rename_element(b, '1st')
        assert not model.rename_element(b, 'play_button')
        assert model.get_element(b).name is None
        assert len(_errors(notices)) == 2
        assert model.rename_element(a, '')
        assert model.get_element(a).name is None


class TestSelection:
    def test_stale_ids_are_tolerated(self, model: DesignModel, frame_id: str) -> None:
        model.set_selected_elements([frame_id, 'ghost'])
        assert [w.wid for w in model.get_selected_elements()] == [frame_id]

    def test_toggle_and_clear(self, model: DesignModel, frame_id: str) -> None:
        model.toggle_element_selection(frame_id)
        assert model.is_selected(frame_id)
        model.toggle_element_selection(frame_id)
        assert not model.is_selected(frame_id)
        model.set_selected_elements([frame_id])
        model.clear_selection()
        assert model.selected_element_ids == frozenset()


class TestSettings:
    def test_grid_size_steps_and_limits(self, model: DesignModel) -> None:
        assert model.set_grid_size(33) == 35
        assert model.set_grid_size(500) == 100
        assert model.set_grid_size(3) == 10
        assert model.set_grid_size('junk') == 10

    def test_snap_toggle(self, model: DesignModel) -> None:
        assert model.snap_to_grid
        model.toggle_snap_to_grid()
        assert not model.snap_to_grid

    def test_addon_name(self, model: DesignModel, notices) -> None:
        assert model.set_addon_name(' Shop ')
        assert model.addon_name == 'Shop'
        assert not model.set_addon_name('  ')
        assert model.addon_name == 'Shop'

    def test_viewport(self) -> None:
        changes = []
        viewport = Viewport(on_change=lambda: changes.append(1))
        assert viewport.set_scale(5)
        assert viewport.scale == 2.5
        viewport.set_scale(1)
        viewport.zoom_by(100)
        assert viewport.scale == pytest.approx(0.8)
        viewport.set_offset(10, 20)
        assert viewport.screen_to_canvas(90, 100) == pytest.approx((100, 100))
        viewport.reset()
        assert viewport.to_dict() == {'scale': 1.0, 'offset': {'x': 0, 'y': 0}}
        assert changes


class TestImages:
    def test_set_and_remove_image(self, model: DesignModel, frame_id: str, tmp_path) -> None:
        path = tmp_path / "icon.png"
        Image.new('RGB', (30, 20), 'red').save(path)
        bid = model.add_element('Button', parent_id=frame_id)

        assert model.set_element_image(bid, str(path), fit_to_image=True)
        button = model.get_element(bid)
        assert button.image_src.startswith('data:image/png;base64,')
        assert (button.width, button.height) == (30, 20)

        assert model.remove_element_image(bid)
        assert model.get_element(bid).image_src is None

    def test_missing_image_is_a_notice(self, model: DesignModel, frame_id: str, notices, tmp_path) -> None:
        assert not model.set_element_image(frame_id, str(tmp_path / "nope.png"))
        assert _errors(notices)


class TestSnapshots:
    def test_export_snapshot_has_canvas_coordinates(self, model: DesignModel) -> None:
        fid = model.add_element('Frame', x=100, y=50, width=300, height=300)
        bid = model.add_element('Button', parent_id=fid, x=110, y=70)
        snapshot = {record['id']: record for record in model.export_snapshot()}
        assert (snapshot[bid]['x'], snapshot[bid]['y']) == (10, 20)
        assert (snapshot[bid]['absoluteX'], snapshot[bid]['absoluteY']) == (110, 70)

    def test_load_repairs_broken_records(self, model: DesignModel, check_invariants) -> None:
        records = [
            {'id': 'f', 'type': 'Frame', 'x': 0, 'y': 0, 'width': 100, 'height': 100, 'childIds': ['gone', 'b1']},
            {'id': 'b1', 'type': 'Button', 'x': 90, 'y': 90, 'width': 50, 'height': 50, 'parentId': 'f', 'name': 'dup'},
            {'id': 'b2', 'type': 'Button', 'x': 0, 'y': 0, 'parentId': 'f', 'name': 'dup'},
            {'id': 'orphan', 'type': 'Text', 'parentId': 'missing'},
            {'id': 'c1', 'type': 'Section', 'parentId': 'c2', 'width': 50, 'height': 50},
            {'id': 'c2', 'type': 'Section', 'parentId': 'c1', 'width': 50, 'height': 50},
            {'type': 'Frame'},
            'garbage',
        ]
        model.load_elements(records, selection=['b1', 'orphan'])
        check_invariants(model)
        assert 'orphan' not in model.elements
        assert model.get_element('f').child_ids == ['b1', 'b2']
        assert model.get_element('b2').name is None
        assert model.selected_element_ids == {'b1'}
        assert not model.history.can_undo

    def test_load_non_list(self, model: DesignModel) -> None:
        model.load_elements({'oops': 1})
        assert model.elements == {}


def test_random_edits_keep_invariants(model: DesignModel, check_invariants) -> None:
    rng = random.Random(1234)
    model.add_element('Frame', x=0, y=0, width=600, height=600)

    for _ in range(300):
        ids = list(model.elements)
        containers = [w.wid for w in model.elements.values() if w.is_container]
        op = rng.choice(['add', 'add', 'update', 'update', 'delete', 'reparent', 'rename'])
        if op == 'add' or not ids:
            kind = rng.choice(['Frame', 'Section', 'Button', 'Text', 'Slider'])
            parent = rng.choice(containers + [None]) if containers else None
            model.add_element(kind, parent_id=parent, x=rng.randint(-50, 700), y=rng.randint(-50, 700),
                              width=rng.randint(1, 400), height=rng.randint(1, 400))
        elif op == 'update':
            model.update_element(rng.choice(ids), x=rng.randint(-100, 800), y=rng.randint(-100, 800),
                                 width=rng.randint(-10, 900), height=rng.randint(-10, 900))
        elif op == 'delete' and rng.random() < 0.3:
            model.delete_element(rng.choice(ids))
        elif op == 'reparent' and containers:
            model.reparent_element(rng.choice(ids), rng.choice(containers + [None]))
        elif op == 'rename':
            model.rename_element(rng.choice(ids), rng.choice(['a', 'b', 'c', 'd']))
        check_invariants(model)
