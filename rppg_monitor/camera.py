"""
Webcam capture.

Wraps ``cv2.VideoCapture`` to provide an iterator of BGR frames for a
measurement.  The camera is an exclusively owned resource: use it as a
context manager so the device is released on every exit path.  A device that
cannot be opened raises ``CameraUnavailableError``; one that goes silent
mid-stream raises ``CameraDisconnectedError``.
"""

from __future__ import annotations

import logging
from typing import Generator, Tuple

import cv2
import numpy as np

from rppg_monitor.config import CAPTURE_RESOLUTION, DEFAULT_FPS

logger = logging.getLogger(__name__)

MAX_NULL_STREAK = 10


class CameraUnavailableError(RuntimeError):
    """The capture device could not be opened (missing or permission denied)."""


class CameraDisconnectedError(CameraUnavailableError):
    """The device opened but stopped delivering frames."""


class WebcamCamera:
    """
    Thin wrapper around an OpenCV capture device.

    Parameters
    ----------
    resolution:
        Ideal (width, height) requested from the device.  The driver may
        deliver a different size.
    fps:
        Requested frame rate.  Actual rate may differ slightly.
    flip_horizontal:
        Mirror the image left-to-right (selfie view).
    camera_index:
        OpenCV device index.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = CAPTURE_RESOLUTION,
        fps: int = DEFAULT_FPS,
        flip_horizontal: bool = True,
        camera_index: int = 0,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.flip_horizontal = flip_horizontal
        self.camera_index = camera_index
        self.dropped_frames = 0

        self._cam: "cv2.VideoCapture | None" = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._cam is not None

    def open(self) -> None:
        """Open the device and request the capture size and rate."""
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailableError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cam = cap
        self.dropped_frames = 0
        logger.info(
            "Camera opened – index=%d resolution=%s fps=%d",
            self.camera_index, self.resolution, self.fps,
        )

    def close(self) -> None:
        """Stop and release the camera."""
        if self._cam is None:
            return
        self._cam.release()
        self._cam = None
        logger.info("Camera closed (%d dropped frames).", self.dropped_frames)

    # Context-manager support
    def __enter__(self) -> "WebcamCamera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield BGR frames (H × W × 3, uint8), mirrored when ``flip_horizontal``
        is set, until the camera is closed.

        Isolated failed reads are skipped and counted in ``dropped_frames``.
        ``CameraDisconnectedError`` is raised once ``MAX_NULL_STREAK`` reads
        in a row fail.

        Usage::

            with WebcamCamera() as cam:
                for frame in cam.frames():
                    process(frame)
        """
        if self._cam is None:
            raise RuntimeError("Camera is not open.  Call open() first.")

        streak = 0
        while self._cam is not None:
            ok, frame = self._cam.read()
            if not ok or frame is None:
                self.dropped_frames += 1
                streak += 1
                if streak >= MAX_NULL_STREAK:
                    raise CameraDisconnectedError(
                        f"No frames from device index={self.camera_index} "
                        f"after {streak} reads"
                    )
                continue
            streak = 0
            yield cv2.flip(frame, 1) if self.flip_horizontal else frame
