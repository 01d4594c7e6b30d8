"""Smoke tests for the Tk front end. Skipped when no display is available."""

import json

import pytest

tk = pytest.importorskip("tkinter")

from designer import build_app
from view import tk_color


@pytest.fixture
def app(tmp_path):
    try:
        root = tk.Tk()
    except tk.TclError:
        pytest.skip("no display")
    root.withdraw()
    view, manager = build_app(root, str(tmp_path))
    yield root, view, manager
    manager.stop_autosave()
    root.destroy()


class TestColors:
    def test_css_colors_become_tk_colors(self) -> None:
        assert tk_color('rgba(0, 0, 255, 0.5)') == '#0000ff'
        assert tk_color('rgb(255,128,0)') == '#ff8000'
        assert tk_color('#ffffff') == '#ffffff'
        assert tk_color(None) == ''


class TestDesignerView:
    def test_add_widgets_through_toolbar(self, app) -> None:
        root, view, manager = app
        view.add_widget('Frame')
        (frame,) = view.model.get_selected_elements()
        view.add_widget('Button')
        (button,) = view.model.get_selected_elements()
        assert button.parent_id == frame.wid
        root.update_idletasks()

        assert view.canvas.find_withtag('widget')
        assert view.canvas.find_withtag(f'id{button.wid}')
        assert view.elements_tree.parent(button.wid) == frame.wid
        assert str(view.undo_button.cget('state')) == tk.NORMAL

    def test_leaf_needs_a_container(self, app) -> None:
        _, view, _ = app
        view.add_widget('Slider')
        assert view.model.elements == {}
        assert view.status_var.get().startswith("Select a container")

    def test_explorer_lists_projects(self, app) -> None:
        _, view, manager = app
        pid = manager.create_project("Demo")
        view.refresh_explorer()
        main = manager.projects[pid].files[0]
        assert set(view._explorer_items.values()) == {('project', pid), ('file', main)}
        assert len(view._explorer_items) == 3  # the open file is listed under Recent too

    def test_export_writes_utf8(self, app, tmp_path, monkeypatch) -> None:
        _, view, _ = app
        target = tmp_path / "export.json"
        monkeypatch.setattr("view.filedialog.asksaveasfilename", lambda **kwargs: str(target))
        fid = view.model.add_element('Frame', x=0, y=0, width=200, height=100)
        view.model.add_element('Text', parent_id=fid, text="Größe · 日本")

        view.export_design()
        raw = target.read_bytes()
        assert "Größe · 日本".encode("utf-8") in raw
        data = json.loads(raw.decode("utf-8"))
        assert [e['text'] for e in data['elements'] if e['type'] == 'Text'] == ["Größe · 日本"]
