"""
Tests for the Deck Importer
===========================
"""

import cv2
import numpy as np
import pytest
from pptx import Presentation
from pptx.util import Inches

from gesture_presenter.core.types import DeckImportError
from gesture_presenter.modules.presentation.deck_importer import (
    demo_deck, import_deck, import_images, import_pptx, natural_sort_key,
)

BLANK_LAYOUT = 6


@pytest.fixture
def png(tmp_path):
    path = tmp_path / "picture.png"
    image = np.zeros((40, 60, 3), dtype=np.uint8)
    image[:] = (0, 128, 255)
    cv2.imwrite(str(path), image)
    return path


def build_pptx(path, slides):
    """Write a deck: one entry per slide, (texts, picture paths)."""
    presentation = Presentation()
    for texts, pictures in slides:
        slide = presentation.slides.add_slide(presentation.slide_layouts[BLANK_LAYOUT])
        for i, text in enumerate(texts):
            box = slide.shapes.add_textbox(Inches(1), Inches(0.5 + i * 0.6), Inches(6), Inches(0.5))
            box.text_frame.text = text
        for picture in pictures:
            slide.shapes.add_picture(str(picture), Inches(5), Inches(3))
    presentation.save(str(path))
    return path


class TestNaturalSort:
    """Test suite for natural_sort_key."""

    def test_numbers_compare_numerically(self):
        names = ["slide10.png", "slide2.png", "Slide1.png"]
        assert sorted(names, key=natural_sort_key) == ["Slide1.png", "slide2.png", "slide10.png"]


class TestImportPptx:
    """Test suite for .pptx parsing."""

    def test_text_slides_in_deck_order(self, tmp_path):
        path = build_pptx(tmp_path / "talk.pptx", [
            (["Intro", "Hello", "one", "two", "three", "four", "five"], []),
            (["Closing", "Thanks"], []),
        ])

        slides = import_pptx(path, media_dir=tmp_path / "media")

        assert [s.title for s in slides] == ["Intro", "Closing"]
        assert [s.id for s in slides] == [1, 2]
        intro = slides[0]
        assert intro.content == "Hello"
        assert intro.bullet_points == ["one", "two", "three", "four"]
        assert not intro.is_image_only

    def test_image_only_slide(self, tmp_path, png):
        path = build_pptx(tmp_path / "photos.pptx", [([], [png])])
        media = tmp_path / "media"

        slides = import_pptx(path, media_dir=media)

        assert len(slides) == 1
        slide = slides[0]
        assert slide.is_image_only
        assert slide.title == "Slide 1"
        assert slide.image_ref == str(media / "slide1_image1.png")
        assert cv2.imread(slide.image_ref).shape == (40, 60, 3)

    def test_title_with_picture_is_image_only(self, tmp_path, png):
        path = build_pptx(tmp_path / "deck.pptx", [(["Architecture"], [png])])

        slide = import_pptx(path, media_dir=tmp_path / "m")[0]

        assert slide.title == "Architecture"
        assert slide.is_image_only

    def test_text_and_picture(self, tmp_path, png):
        path = build_pptx(tmp_path / "deck.pptx", [(["Results", "Up and to the right"], [png])])

        slide = import_pptx(path, media_dir=tmp_path / "m")[0]

        assert not slide.is_image_only
        assert len(slide.image_refs) == 1

    def test_empty_slides_skipped(self, tmp_path):
        path = build_pptx(tmp_path / "deck.pptx", [
            (["First"], []),
            ([], []),
            (["Third"], []),
        ])

        slides = import_pptx(path, media_dir=tmp_path / "m")

        assert [s.title for s in slides] == ["First", "Third"]
        assert [s.id for s in slides] == [1, 2]

    def test_blank_text_ignored(self, tmp_path):
        path = build_pptx(tmp_path / "deck.pptx", [(["   ", "Real title"], [])])

        slide = import_pptx(path, media_dir=tmp_path / "m")[0]

        assert slide.title == "Real title"
        assert slide.content == ""

    def test_default_media_dir(self, tmp_path, png):
        path = build_pptx(tmp_path / "deck.pptx", [([], [png])])

        slide = import_pptx(path)[0]

        assert "gesture_presenter_" in slide.image_ref

    def test_no_content_raises(self, tmp_path):
        path = build_pptx(tmp_path / "blank.pptx", [([], [])])
        with pytest.raises(DeckImportError):
            import_pptx(path, media_dir=tmp_path / "m")

    def test_not_a_presentation_raises(self, tmp_path):
        path = tmp_path / "broken.pptx"
        path.write_bytes(b"definitely not a zip")
        with pytest.raises(DeckImportError):
            import_pptx(path)


class TestImportImages:
    """Test suite for image decks."""

    def test_natural_order_and_titles(self, tmp_path):
        paths = [tmp_path / name for name in ("img10.png", "img2.jpg", "img1.png")]

        slides = import_images(paths)

        assert [s.title for s in slides] == ["img1", "img2", "img10"]
        assert all(s.is_image_only for s in slides)
        assert slides[2].image_ref == str(tmp_path / "img10.png")

    def test_empty_raises(self):
        with pytest.raises(DeckImportError):
            import_images([])


class TestImportDeck:
    """Dispatch on what the user picked."""

    def test_pptx(self, tmp_path):
        path = build_pptx(tmp_path / "talk.pptx", [(["Hello", "World"], [])])
        assert import_deck([path], media_dir=tmp_path / "m")[0].title == "Hello"

    def test_legacy_ppt_rejected(self, tmp_path):
        with pytest.raises(DeckImportError, match="pptx"):
            import_deck([tmp_path / "old.ppt"])

    def test_directory_of_images(self, tmp_path):
        for name in ("b.png", "a.jpg", "notes.txt"):
            (tmp_path / name).write_bytes(b"x")

        slides = import_deck([tmp_path])

        assert [s.title for s in slides] == ["a", "b"]

    def test_nothing_given(self):
        with pytest.raises(DeckImportError):
            import_deck([])


def test_demo_deck():
    slides = demo_deck()
    assert len(slides) == 3
    assert [s.id for s in slides] == [1, 2, 3]
    assert all(s.title for s in slides)
