"""
rPPG Monitor — webcam heart-rate measurement.

Look at the camera; the system finds a skin-coloured face region, samples the
forehead colour for a fixed window, combines the colour channels with the
CHROM method and reports the dominant pulse frequency in BPM.
"""

__version__ = "0.1.0"
__author__ = "rppg_monitor"
