"""
Tests for WebcamCamera against a fake cv2.VideoCapture.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_monitor import camera as camera_module
from rppg_monitor.camera import (
    MAX_NULL_STREAK,
    CameraDisconnectedError,
    CameraUnavailableError,
    WebcamCamera,
)


class FakeCapture:
    instances = []

    def __init__(self, index, opened=True, frames=None):
        self.index = index
        self._opened = opened
        self._frames = list(frames or [])
        self.props = {}
        self.released = False
        FakeCapture.instances.append(self)

    def isOpened(self):
        return self._opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def read(self):
        if not self._frames:
            return False, None
        return True, self._frames.pop(0)

    def release(self):
        self.released = True


def install(monkeypatch, **kwargs):
    FakeCapture.instances = []
    monkeypatch.setattr(
        camera_module.cv2, "VideoCapture", lambda index: FakeCapture(index, **kwargs)
    )


def gradient_frame() -> np.ndarray:
    frame = np.zeros((4, 6, 3), dtype=np.uint8)
    frame[:, :, 0] = np.arange(6, dtype=np.uint8)
    return frame


class TestWebcamCamera:

    def test_unavailable_device_raises_and_releases(self, monkeypatch):
        install(monkeypatch, opened=False)
        cam = WebcamCamera(camera_index=3)
        with pytest.raises(CameraUnavailableError):
            cam.open()
        assert FakeCapture.instances[0].released
        assert not cam.is_open

    def test_requests_resolution_and_fps(self, monkeypatch):
        install(monkeypatch)
        with WebcamCamera(resolution=(320, 240), fps=25) as cam:
            cap = FakeCapture.instances[0]
            assert cam.is_open
            assert cap.props[camera_module.cv2.CAP_PROP_FRAME_WIDTH] == 320
            assert cap.props[camera_module.cv2.CAP_PROP_FRAME_HEIGHT] == 240
            assert cap.props[camera_module.cv2.CAP_PROP_FPS] == 25
        assert cap.released
        assert not cam.is_open

    def test_frames_before_open_raises(self):
        with pytest.raises(RuntimeError):
            next(WebcamCamera().frames())

    def test_flip_horizontal(self, monkeypatch):
        install(monkeypatch, frames=[gradient_frame()])
        with WebcamCamera(flip_horizontal=True) as cam:
            frame = next(cam.frames())
        assert list(frame[0, :, 0]) == [5, 4, 3, 2, 1, 0]

    def test_no_flip(self, monkeypatch):
        install(monkeypatch, frames=[gradient_frame()])
        with WebcamCamera(flip_horizontal=False) as cam:
            frame = next(cam.frames())
        assert list(frame[0, :, 0]) == [0, 1, 2, 3, 4, 5]

    def test_isolated_failures_are_skipped(self, monkeypatch):
        install(monkeypatch, frames=[gradient_frame(), None, None, gradient_frame()])
        with WebcamCamera() as cam:
            stream = cam.frames()
            next(stream)
            next(stream)
            assert cam.dropped_frames == 2

    def test_silent_device_raises_disconnected(self, monkeypatch):
        install(monkeypatch, frames=[gradient_frame()] * 3)
        received = []
        with pytest.raises(CameraDisconnectedError):
            with WebcamCamera() as cam:
                for frame in cam.frames():
                    received.append(frame)
        assert len(received) == 3
        assert cam.dropped_frames == MAX_NULL_STREAK
        assert FakeCapture.instances[0].released

    def test_disconnect_is_a_camera_failure(self):
        assert issubclass(CameraDisconnectedError, CameraUnavailableError)

    def test_released_when_body_raises(self, monkeypatch):
        install(monkeypatch)
        with pytest.raises(ValueError):
            with WebcamCamera():
                raise ValueError("boom")
        assert FakeCapture.instances[0].released
