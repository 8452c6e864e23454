"""
Tests for the Camera Overlay and Slide View
===========================================
"""

import cv2
import numpy as np
import pytest

from gesture_presenter.core.types import (
    BoundingBox, DetectionState, DetectionStatus, LogicalAction, Slide,
)
from gesture_presenter.modules.control.presentation_player import PresentationPlayer
from gesture_presenter.modules.visualization.overlay import Overlay
from gesture_presenter.modules.visualization.slide_view import SlideView

BBOX_COLOR = (94, 197, 34)


@pytest.fixture
def half_white_frame():
    """Left half white, right half black."""
    frame = np.zeros((240, 320, 3), dtype=np.uint8)
    frame[:, :160] = 255
    return frame


def has_color(region, color):
    return bool((region == np.array(color, dtype=np.uint8)).all(axis=2).any())


def success_state(box):
    return DetectionState.initial().evolve(
        status=DetectionStatus.SUCCESS,
        current_action=LogicalAction.NEXT,
        label="NEXT",
        confidence=0.9,
        bounding_box=box,
    )


class TestOverlay:
    """Test suite for Overlay."""

    def test_mirrors_display_only(self, half_white_frame):
        original = half_white_frame.copy()
        canvas = Overlay({}, mirrored=True).render(half_white_frame, DetectionState.initial())

        assert canvas.shape == half_white_frame.shape
        assert canvas[100, 300].tolist() == [255, 255, 255]
        assert canvas[100, 20].tolist() == [0, 0, 0]
        np.testing.assert_array_equal(half_white_frame, original)

    def test_unmirrored_keeps_orientation(self, half_white_frame):
        canvas = Overlay({}, mirrored=False).render(half_white_frame, DetectionState.initial())

        assert canvas[100, 20].tolist() == [255, 255, 255]
        assert canvas is not half_white_frame

    def test_bbox_follows_mirroring(self):
        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        state = success_state(BoundingBox(0.1, 0.2, 0.3, 0.4))

        mirrored = Overlay({}, mirrored=True).render(frame, state)
        plain = Overlay({}, mirrored=False).render(frame, state)

        # Left edge of the box near x = 0.7 * 320 mirrored, 0.1 * 320 otherwise
        assert has_color(mirrored[60:90, 215:235], BBOX_COLOR)
        assert has_color(plain[60:90, 25:40], BBOX_COLOR)
        assert not has_color(plain[60:90, 215:235], BBOX_COLOR)

    def test_bbox_hidden_unless_success(self):
        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        state = success_state(BoundingBox(0.1, 0.2, 0.3, 0.4)).evolve(
            status=DetectionStatus.UNMAPPED)

        canvas = Overlay({}, mirrored=False).render(frame, state)

        assert not has_color(canvas[60:90, 25:40], BBOX_COLOR)

    def test_confidence_bar(self):
        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        state = DetectionState.initial().evolve(confidence=0.5)

        canvas = Overlay({}, mirrored=False).render(frame, state)

        assert canvas[1, 100].tolist() == [0, 0, 255]
        assert canvas[1, 300].tolist() == [60, 60, 60]

    def test_no_frame_placeholder(self):
        canvas = Overlay({"preview_width": 160, "preview_height": 120}).render(
            None, DetectionState.initial())
        assert canvas.shape == (120, 160, 3)

    def test_camera_error_screen(self):
        canvas = Overlay({}).render_camera_error("Could not open camera 0")
        assert canvas.shape == (240, 320, 3)
        assert canvas.any()

    def test_toggle_mirror(self):
        overlay = Overlay({}, mirrored=True)
        assert overlay.toggle_mirror() is False
        overlay.mirrored = 1
        assert overlay.mirrored is True


class TestSlideView:
    """Test suite for SlideView."""

    @pytest.fixture
    def view(self):
        return SlideView({"window_width": 640, "window_height": 360})

    def test_empty_deck(self, view):
        canvas = view.render(PresentationPlayer({}))
        assert canvas.shape == (360, 640, 3)

    def test_themes_differ(self, view):
        slides = [Slide(id=1, title="Hello", content="World", bullet_points=["a", "b"])]
        dark = view.render(PresentationPlayer({"theme": "dark"}, slides=slides))
        light = view.render(PresentationPlayer({"theme": "light"}, slides=slides))

        assert dark[5, 5].tolist() == [42, 23, 15]
        assert light[5, 5].tolist() == [250, 250, 250]

    def test_image_slide_letterboxed(self, view, tmp_path):
        path = tmp_path / "red.png"
        image = np.zeros((50, 100, 3), dtype=np.uint8)
        image[:] = (0, 0, 255)
        cv2.imwrite(str(path), image)
        player = PresentationPlayer({}, slides=[
            Slide(id=1, title="red", image_refs=[str(path)], is_image_only=True)])

        canvas = view.render(player)

        assert canvas[180, 320].tolist() == [0, 0, 255]
        # 2:1 image in a 16:9 window leaves bars top and bottom
        assert canvas[5, 320].tolist() == [42, 23, 15]

    def test_unreadable_image(self, view, tmp_path):
        player = PresentationPlayer({}, slides=[
            Slide(id=1, title="gone", image_refs=[str(tmp_path / "gone.png")],
                  is_image_only=True)])

        assert view.render(player).shape == (360, 640, 3)

    def test_zoom_and_overlays(self, view):
        player = PresentationPlayer({}, slides=[Slide(id=1, title="Zoomed")])
        player.zoom_in()
        player.change_volume(10)
        player.set_paused(True)

        canvas = view.render(player)

        assert canvas.shape == (360, 640, 3)
