"""
Tests for run_measurement with a scripted camera.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_monitor.camera import CameraDisconnectedError, CameraUnavailableError
from rppg_monitor.config import MonitorConfig
from rppg_monitor.monitor import MSG_CAMERA_DENIED, MSG_CAMERA_LOST, run_measurement
from rppg_monitor.session import MeasurementSession, MeasurementStatus

FPS = 30


def face_frame(k: int) -> np.ndarray:
    frame = np.full((240, 320, 3), 20, dtype=np.uint8)
    red = int(round(150 + 5 * np.sin(2 * np.pi * 1.2 * k / FPS)))
    frame[20:220, 60:260] = (90, 110, red)
    return frame


class ScriptedCamera:
    """Stands in for WebcamCamera: yields a fixed number of frames."""

    def __init__(
        self, n_frames: int = 1000, denied: bool = False, disconnect: bool = False
    ) -> None:
        self.n_frames = n_frames
        self.denied = denied
        self.disconnect = disconnect
        self.opened = False
        self.closed = False
        self.delivered = 0

    def __enter__(self):
        if self.denied:
            raise CameraUnavailableError("permission denied")
        self.opened = True
        return self

    def __exit__(self, *_):
        self.closed = True

    def frames(self):
        for k in range(self.n_frames):
            self.delivered += 1
            yield face_frame(k)
        if self.disconnect:
            raise CameraDisconnectedError("no frames")


def new_session(**overrides) -> MeasurementSession:
    settings = dict(fps=FPS, prepare_seconds=0.0)
    settings.update(overrides)
    return MeasurementSession(MonitorConfig(**settings))


class TestRunMeasurement:

    def test_happy_path(self):
        camera = ScriptedCamera()
        session = new_session()
        result = run_measurement(camera, session)
        assert result is not None and result.valid
        assert abs(result.bpm - 72) <= 2
        assert session.status is MeasurementStatus.COMPLETE
        assert camera.closed
        # stops pulling frames as soon as the buffer is full
        assert camera.delivered == session.config.measure_frames

    def test_camera_denied(self):
        camera = ScriptedCamera(denied=True)
        session = new_session()
        result = run_measurement(camera, session)
        assert result is None
        assert session.status is MeasurementStatus.ERROR
        assert session.buffer is None
        assert session.feedback == MSG_CAMERA_DENIED
        assert camera.delivered == 0

    def test_stream_ends_early(self):
        camera = ScriptedCamera(n_frames=100)
        session = new_session()
        result = run_measurement(camera, session)
        assert result is None
        assert session.status is MeasurementStatus.IDLE
        assert session.buffer is None
        assert camera.closed

    def test_camera_lost_mid_measurement(self):
        camera = ScriptedCamera(n_frames=100, disconnect=True)
        session = new_session()
        result = run_measurement(camera, session)
        assert result is None
        assert session.status is MeasurementStatus.ERROR
        assert session.feedback == MSG_CAMERA_LOST
        assert session.buffer is None
        assert camera.closed

    def test_max_frames(self):
        camera = ScriptedCamera()
        session = new_session()
        assert run_measurement(camera, session, max_frames=20) is None
        assert camera.delivered == 20
        assert session.status is MeasurementStatus.IDLE

    def test_callback_sees_every_frame(self):
        seen = []
        session = new_session(duration_seconds=1.0)
        run_measurement(ScriptedCamera(), session, on_frame=lambda f, s: seen.append(s))
        assert len(seen) == session.config.measure_frames
        assert [s.index for s in seen] == list(range(len(seen)))
        assert seen[-1].status.is_terminal

    def test_callback_error_releases_camera(self):
        camera = ScriptedCamera()
        session = new_session()

        def boom(frame, status):
            if status.index == 5:
                raise RuntimeError("overlay failed")

        with pytest.raises(RuntimeError):
            run_measurement(camera, session, on_frame=boom)
        assert camera.closed
        assert session.status is MeasurementStatus.IDLE
        assert session.buffer is None
