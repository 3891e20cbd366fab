"""Shared core data structures used across pairing, tracking and statistics."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional, Sequence

EMPTY_ATTRIBUTES: Mapping[str, float] = MappingProxyType({})


class Point2D(NamedTuple):
    x: float
    y: float


class Detection(NamedTuple):
    """Localized spot as produced by the upstream fitting step."""

    frame: int
    channel: int
    slice: int
    position: int
    x_pix: int
    y_pix: int
    x_center: float
    y_center: float
    attributes: Mapping[str, float] = EMPTY_ATTRIBUTES

    @property
    def center(self) -> Point2D:
        return Point2D(self.x_center, self.y_center)

    def has_key(self, key: str) -> bool:
        return key in self.attributes

    def value(self, key: str) -> float:
        return float(self.attributes[key])


class Pair(NamedTuple):
    """Channel-1 detection and the position of its nearest channel-2 match."""

    primary: Detection
    source: Point2D
    matched: Point2D


Track = list  # list[Pair], first pair always from frame 1


class DistanceSample(NamedTuple):
    distance: float
    orientation: float
    dx: float
    dy: float


class TrackSummary(NamedTuple):
    n: int
    distance_avg: float
    distance_std: float
    orientation_avg: float
    orientation_std: float
    vector_avg: float
    vector_std: float


class FrameSummary(NamedTuple):
    frame: int
    n: int
    distance_avg: float
    distance_std: float
    x_avg: float
    x_std: float
    y_avg: float
    y_std: float
    time_point: float


class FitResult(NamedTuple):
    mu: float
    sigma: float
    converged: bool
    n: int
    sigma_fitted: bool


class OverlayArrow(NamedTuple):
    x_start: float
    y_start: float
    x_end: float
    y_end: float


class RowStatus:
    OK = "OK"
    NO_PAIRS = "NO_PAIRS"
    ERROR = "ERROR"


class RowResult(NamedTuple):
    row_id: int
    status: str
    tracks: Sequence = ()
    summaries: Sequence = ()
    fit: Optional[FitResult] = None
    fit_error: Optional[str] = None
    pair_table: Any = None
    summary_table: Any = None
    saved_path: Optional[str] = None

