"""Cross-channel pairing of detections within one frame."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from PAIRTRACK.src.core.spatial import SpatialIndex
from PAIRTRACK.src.core.types import Detection, Pair, Point2D

logger = logging.getLogger(__name__)


class PairFinder:
    """Greedy nearest-neighbour pairing of channel 1 onto channel 2.

    A channel-2 point can be matched by several channel-1 detections; there is
    no one-to-one assignment.
    """

    def __init__(self, max_distance_nm: float):
        self.max_distance_nm = float(max_distance_nm)

    @staticmethod
    def split_channels(detections: Iterable[Detection], frame: int) -> tuple[list[Detection], list[Point2D]]:
        ch1: list[Detection] = []
        ch2: list[Point2D] = []
        for det in detections:
            if det.frame != frame:
                continue
            if det.channel == 1:
                ch1.append(det)
            elif det.channel == 2:
                ch2.append(det.center)
        return ch1, ch2

    def find_pairs(self, detections: Iterable[Detection], frame: int) -> list[Pair]:
        ch1, ch2_points = self.split_channels(detections, frame)
        if not ch2_points:
            logger.error("No points found in second channel in frame %d", frame)
            return []

        index = SpatialIndex(ch2_points, self.max_distance_nm)
        pairs: list[Pair] = []
        for det in ch1:
            source = det.center
            matched = index.nearest(source)
            if matched is not None:
                pairs.append(Pair(det, source, matched))
        return pairs

    def pairs_by_frame(
        self,
        detections: Iterable[Detection],
        frame_count: int,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> list[list[Pair]]:
        """Pairs for frames 1..frame_count; entry ``i`` belongs to frame ``i + 1``."""
        by_frame: dict[int, list[Detection]] = {}
        for det in detections:
            by_frame.setdefault(det.frame, []).append(det)

        result: list[list[Pair]] = []
        for frame in range(1, frame_count + 1):
            if progress is not None:
                progress(frame, frame_count)
            result.append(self.find_pairs(by_frame.get(frame, []), frame))
        return result
