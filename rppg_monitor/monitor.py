"""
Capture loop tying a camera to a measurement session.

The camera is opened for the duration of one measurement and released on
every exit path (completion, failure, cancellation, exception).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from rppg_monitor.camera import CameraDisconnectedError, CameraUnavailableError
from rppg_monitor.rate_estimator import HeartRateResult
from rppg_monitor.session import FrameStatus, MeasurementSession

logger = logging.getLogger(__name__)

MSG_CAMERA_DENIED = "Camera access denied. Please allow camera permissions."
MSG_CAMERA_LOST = "Camera stopped responding. Check the connection and try again."

FrameCallback = Callable[[np.ndarray, FrameStatus], None]


def run_measurement(
    camera,
    session: MeasurementSession,
    on_frame: Optional[FrameCallback] = None,
    max_frames: int | None = None,
) -> HeartRateResult | None:
    """
    Take one heart-rate measurement.

    Parameters
    ----------
    camera:
        Context manager exposing ``frames()`` (e.g. ``WebcamCamera``).
    session:
        Session to drive.  It is (re)started once the camera is open.
    on_frame:
        Called with every frame and its ``FrameStatus``, e.g. to draw an
        overlay.  Exceptions propagate and cancel the session.
    max_frames:
        Stop after this many frames even if the buffer is not full.

    Returns
    -------
    HeartRateResult or None
        The session's result once the buffer filled (check ``valid``), or
        *None* when the camera failed or the measurement was cut short.
    """
    try:
        with camera:
            session.start()
            for count, frame in enumerate(camera.frames(), start=1):
                status = session.process_frame(frame)
                if on_frame is not None:
                    on_frame(frame, status)
                if session.status.is_terminal:
                    break
                if max_frames is not None and count >= max_frames:
                    logger.info("Frame limit %d reached before buffer filled.", max_frames)
                    break
    except CameraDisconnectedError as exc:
        logger.error("Camera lost: %s", exc)
        session.fail(MSG_CAMERA_LOST)
        return None
    except CameraUnavailableError as exc:
        logger.error("Camera unavailable: %s", exc)
        session.fail(MSG_CAMERA_DENIED)
        return None
    finally:
        if session.status.is_running:
            session.stop()

    return session.result
