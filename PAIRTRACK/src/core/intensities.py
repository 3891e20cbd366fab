"""Background-corrected mean intensities of rectangular ROIs in one image."""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

RATIO_EPS = 1e-6


class IntensityRoi(NamedTuple):
    x: int
    y: int
    width: int
    height: int
    background: bool = False


class RoiIntensities(NamedTuple):
    values: tuple  # one value per signal ROI, in ROI order
    background: Optional[float]  # None when no background ROI is defined


def roi_mean(image: np.ndarray, roi: IntensityRoi) -> float:
    img = np.asarray(image, dtype=np.float64)
    patch = img[roi.y:roi.y + roi.height, roi.x:roi.x + roi.width]
    if patch.size == 0:
        raise ValueError(f"ROI {roi} does not overlap the {img.shape[1]}x{img.shape[0]} image")
    return float(patch.mean())


def measure(image: np.ndarray, rois: Sequence[IntensityRoi]) -> RoiIntensities:
    """Mean of each signal ROI minus the average of the background ROI means."""
    bg_rois = [r for r in rois if r.background]
    bg = float(np.mean([roi_mean(image, r) for r in bg_rois])) if bg_rois else 0.0
    values = tuple(roi_mean(image, r) - bg for r in rois if not r.background)
    return RoiIntensities(values, bg if bg_rois else None)


def ratio(first: RoiIntensities, second: RoiIntensities) -> RoiIntensities:
    """Channel-1 over channel-2 intensities, ROI by ROI."""
    if len(first.values) != len(second.values):
        raise ValueError("Both channels must be measured with the same ROIs")
    values = tuple(a / (b + RATIO_EPS) for a, b in zip(first.values, second.values))
    bg = None
    if first.background is not None and second.background is not None:
        bg = first.background / (second.background + RATIO_EPS)
    return RoiIntensities(values, bg)


def measure_stack(
    images: Sequence[np.ndarray],
    rois: Sequence[IntensityRoi],
    use_ratio: bool = False,
) -> list[RoiIntensities]:
    """Measure a time series; with ``use_ratio`` images alternate channel 1, channel 2."""
    if not use_ratio:
        return [measure(img, rois) for img in images]
    if len(images) % 2:
        logger.warning("Ratio mode with an odd number of images, dropping the last one")
    return [measure_and_ratio(images[i], images[i + 1], rois) for i in range(0, len(images) - 1, 2)]


def measure_and_ratio(first: np.ndarray, second: np.ndarray, rois: Sequence[IntensityRoi]) -> RoiIntensities:
    return ratio(measure(first, rois), measure(second, rois))
