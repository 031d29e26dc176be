#!/usr/bin/env python3
"""
rPPG Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH        Camera resolution (default: 640x480)
    --fps INT               Target frame rate  (default: 30)
    --duration FLOAT        Measurement window in seconds (default: 10)
    --prepare FLOAT         Positioning delay in seconds (default: 1)
    --no-flip               Disable horizontal mirror
    --camera-index INT      OpenCV camera index (default: 0)
    --exclude-dark-frames   Skip poorly lit frames instead of only warning
    --save PATH             Save annotated video to file (optional)
    --headless              No display window; take one measurement and exit

Keyboard shortcuts (when a window is open)
------------------------------------------
    m        – start / retry a measurement
    x        – cancel the running measurement
    q / ESC  – quit
    s        – save a single annotated frame as PNG
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from rppg_monitor.camera import (
    CameraDisconnectedError,
    CameraUnavailableError,
    WebcamCamera,
)
from rppg_monitor.config import (
    DEFAULT_FPS,
    MEASUREMENT_DURATION_SECONDS,
    PREPARE_SECONDS,
    MonitorConfig,
)
from rppg_monitor.monitor import MSG_CAMERA_DENIED, MSG_CAMERA_LOST, run_measurement
from rppg_monitor.session import MeasurementSession, MeasurementStatus
from rppg_monitor.trends import (
    HeartRateReading,
    calculate_trend,
    health_insight,
    summarize,
)
from rppg_monitor.visualizer import Visualizer
from rppg_monitor.zones import heart_rate_zone

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rppg_monitor")

WINDOW_NAME = "rPPG Heart Rate Monitor"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Webcam heart-rate monitor (rPPG, CHROM method)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=DEFAULT_FPS,
                        help="Target capture frame rate")
    parser.add_argument("--duration", type=float, default=MEASUREMENT_DURATION_SECONDS,
                        help="Measurement window in seconds")
    parser.add_argument("--prepare", type=float, default=PREPARE_SECONDS,
                        help="Positioning delay before sampling, in seconds")
    parser.add_argument("--no-flip", action="store_true",
                        help="Disable horizontal image flip")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--exclude-dark-frames", action="store_true",
                        help="Drop frames with poor lighting from the signal buffer")
    parser.add_argument("--save", type=Path, default=None,
                        help="Save annotated video to this file path")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; take one measurement and exit")
    return parser.parse_args(argv)


def parse_resolution(text: str) -> tuple[int, int]:
    res_w, res_h = (int(v) for v in text.lower().split("x"))
    return res_w, res_h


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def report_summary(readings: List[HeartRateReading]) -> None:
    if not readings:
        return
    stats = summarize(readings)
    trend = calculate_trend(list(reversed(readings)))   # newest first
    print(
        f"Readings: {stats.count}  avg={stats.average}  "
        f"range={stats.minimum}-{stats.maximum}  trend={trend.direction}"
    )
    print(health_insight(stats, trend))


# ---------------------------------------------------------------------------
# Main loops
# ---------------------------------------------------------------------------

def run_headless(camera: WebcamCamera, session: MeasurementSession) -> int:
    def log_progress(_frame, status) -> None:
        if status.index % max(1, int(session.config.fps)) == 0:
            ts = time.strftime("%H:%M:%S")
            print(f"[{ts}] {status.status.value:<9} {status.progress:5.1f}%  {status.feedback}")

    result = run_measurement(camera, session, on_frame=log_progress)
    if session.status is MeasurementStatus.ERROR and result is None:
        print(session.feedback)
        return 1
    if result is None or not result.valid:
        print(session.feedback)
        return 2

    zone = heart_rate_zone(result.bpm)
    print(f"Heart rate: {result.bpm} BPM ({zone.name})  signal quality: {result.confidence.value}")
    return 0


def run_interactive(
    camera: WebcamCamera,
    session: MeasurementSession,
    vis: Visualizer,
    writer: "cv2.VideoWriter | None",
) -> int:
    readings: List[HeartRateReading] = []
    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
    cv2.resizeWindow(WINDOW_NAME, *camera.resolution)

    fft_freqs = fft_power = filtered = None
    try:
        with camera:
            for frame in camera.frames():
                previous = session.status
                status = session.process_frame(frame)

                if status.status is not previous and status.status.is_terminal:
                    if status.status is MeasurementStatus.COMPLETE:
                        readings.append(HeartRateReading.from_result(session.result))
                    if session.pulse_signal is not None:
                        filtered = session.estimator.filtered(session.pulse_signal)
                        fft_freqs, fft_power = session.estimator.spectrum(session.pulse_signal)

                annotated = vis.draw(
                    frame,
                    status,
                    result=session.result,
                    pulse_signal=filtered,
                    fft_freqs=fft_freqs,
                    fft_power=fft_power,
                )
                if writer is not None:
                    writer.write(annotated)
                cv2.imshow(WINDOW_NAME, annotated)

                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):          # q or ESC
                    logger.info("Quit requested by user.")
                    break
                elif key == ord("m"):
                    fft_freqs = fft_power = filtered = None
                    session.start()
                elif key == ord("x"):
                    session.stop()
                elif key == ord("s"):
                    fname = f"snapshot_{int(time.time())}.png"
                    cv2.imwrite(fname, annotated)
                    logger.info("Saved snapshot: %s", fname)
    except CameraDisconnectedError as exc:
        logger.error("Camera lost: %s", exc)
        session.fail(MSG_CAMERA_LOST)
        print(session.feedback)
        return 1
    except CameraUnavailableError as exc:
        logger.error("Camera unavailable: %s", exc)
        session.fail(MSG_CAMERA_DENIED)
        print(session.feedback)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if session.status.is_running:
            session.stop()
        cv2.destroyAllWindows()

    report_summary(readings)
    return 0


def run(args: argparse.Namespace) -> int:
    try:
        resolution = parse_resolution(args.resolution)
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    try:
        config = MonitorConfig(
            fps=args.fps,
            duration_seconds=args.duration,
            prepare_seconds=args.prepare,
            exclude_poor_lighting=args.exclude_dark_frames,
        )
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return 1

    camera = WebcamCamera(
        resolution=resolution,
        fps=args.fps,
        flip_horizontal=not args.no_flip,
        camera_index=args.camera_index,
    )
    session = MeasurementSession(config)

    if args.headless:
        return run_headless(camera, session)

    writer: cv2.VideoWriter | None = None
    if args.save:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        writer = cv2.VideoWriter(str(args.save), fourcc, args.fps, resolution)
        logger.info("Saving video to %s", args.save)

    logger.info("Press 'm' to measure, 'x' to cancel, 'q' or ESC to quit.")
    try:
        return run_interactive(camera, session, Visualizer(resolution=resolution), writer)
    finally:
        if writer is not None:
            writer.release()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
