"""Distance and orientation statistics over pairs and tracks."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

import numpy as np

from PAIRTRACK.src.core.spatial import distance, orientation
from PAIRTRACK.src.core.types import DistanceSample, FrameSummary, Pair, TrackSummary


def mean(values: Iterable[float]) -> float:
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def std_dev(values: Iterable[float], avg: Optional[float] = None) -> float:
    """Population standard deviation; 0.0 for fewer than two samples."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size < 2:
        return 0.0
    if avg is None:
        avg = float(np.mean(arr))
    return float(np.sqrt(np.mean((arr - avg) ** 2)))


def sample(pair: Pair) -> DistanceSample:
    return DistanceSample(
        distance(pair.source, pair.matched),
        orientation(pair.source, pair.matched),
        pair.source.x - pair.matched.x,
        pair.source.y - pair.matched.y,
    )


def summarize_track(track: Sequence[Pair]) -> TrackSummary:
    samples = [sample(p) for p in track]
    distances = [s.distance for s in samples]
    orientations = [s.orientation for s in samples]
    dxs = [s.dx for s in samples]
    dys = [s.dy for s in samples]

    d_avg = mean(distances)
    o_avg = mean(orientations)
    dx_avg = mean(dxs)
    dy_avg = mean(dys)
    dx_std = std_dev(dxs, dx_avg)
    dy_std = std_dev(dys, dy_avg)

    return TrackSummary(
        n=len(samples),
        distance_avg=d_avg,
        distance_std=std_dev(distances, d_avg),
        orientation_avg=o_avg,
        orientation_std=std_dev(orientations, o_avg),
        vector_avg=math.sqrt(dx_avg * dx_avg + dy_avg * dy_avg),
        vector_std=math.sqrt(dx_std * dx_std + dy_std * dy_std),
    )


def mean_vector(track: Sequence[Pair]) -> tuple[float, float]:
    """Average (source - matched) offset of a track."""
    samples = [sample(p) for p in track]
    return mean(s.dx for s in samples), mean(s.dy for s in samples)


def summarize_frame(pairs: Sequence[Pair], frame: int, time_point: Optional[float] = None) -> FrameSummary:
    """Per-frame aggregate; x/y errors are matched minus source."""
    distances = [distance(p.source, p.matched) for p in pairs]
    ex = [p.matched.x - p.source.x for p in pairs]
    ey = [p.matched.y - p.source.y for p in pairs]

    d_avg = mean(distances)
    x_avg = mean(ex)
    y_avg = mean(ey)
    return FrameSummary(
        frame=frame,
        n=len(pairs),
        distance_avg=d_avg,
        distance_std=std_dev(distances, d_avg),
        x_avg=x_avg,
        x_std=std_dev(ex, x_avg),
        y_avg=y_avg,
        y_std=std_dev(ey, y_avg),
        time_point=float(frame) if time_point is None else float(time_point),
    )


def distance_std_dev(
    x1: float, x2: float, y1: float, y2: float,
    sx1: float, sx2: float, sy1: float, sy2: float,
) -> float:
    """First-order error propagation for the distance between two localizations."""
    dx = x1 - x2
    dy = y1 - y2
    var_x = sx1 * sx1 + sx2 * sx2
    var_y = sy1 * sy1 + sy2 * sy2
    d2 = dx * dx + dy * dy
    if d2 == 0.0:
        return math.sqrt((var_x + var_y) / 2.0)
    return math.sqrt((dx * dx * var_x + dy * dy * var_y) / d2)
