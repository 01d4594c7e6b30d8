"""Tests for widget background images."""

import pytest
from PIL import Image

from model import DesignModel, NOTICE_ERROR
from utils.image_loader import DATA_URL_PREFIX, image_from_data_url, load_image_as_data_url


@pytest.fixture
def png_path(tmp_path) -> str:
    path = tmp_path / "logo.png"
    Image.new("RGB", (30, 20), (255, 0, 0)).save(path)
    return str(path)


class TestDataUrls:
    def test_load_reencodes_as_png(self, png_path: str) -> None:
        data_url, size = load_image_as_data_url(png_path)
        assert data_url.startswith(DATA_URL_PREFIX)
        assert size == (30, 20)

        image = image_from_data_url(data_url)
        assert image.mode == "RGBA"
        assert image.size == (30, 20)
        assert image.getpixel((0, 0)) == (255, 0, 0, 255)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_image_as_data_url(str(tmp_path / "nope.png"))

    @pytest.mark.parametrize("value", [None, "", "http://example.com/a.png",
                                       "data:image/png;base64,bm90IGFuIGltYWdl"])
    def test_undecodable_values(self, value) -> None:
        assert image_from_data_url(value) is None


class TestElementImages:
    def test_keeps_size_unless_asked(self, model: DesignModel, frame_id: str, png_path: str) -> None:
        model.set_element_image(frame_id, png_path)
        frame = model.get_element(frame_id)
        assert (frame.width, frame.height) == (400, 300)

    def test_unreadable_file_is_reported(self, model: DesignModel, frame_id: str, notices, tmp_path) -> None:
        bogus = tmp_path / "bogus.png"
        bogus.write_text("not an image")
        assert not model.set_element_image(frame_id, str(bogus))
        assert model.get_element(frame_id).image_src is None
        assert notices[-1][0] == NOTICE_ERROR
