"""Assembly of per-frame pairs into tracks."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from PAIRTRACK.src.core.spatial import SpatialIndex
from PAIRTRACK.src.core.types import Pair, Track

logger = logging.getLogger(__name__)


class TrackAssembler:
    def __init__(self, max_distance_nm: float):
        self.max_distance_nm = float(max_distance_nm)

    def build_indices(self, pairs_by_frame: Sequence[Sequence[Pair]]) -> list[SpatialIndex]:
        return [
            SpatialIndex([p.source for p in pairs], self.max_distance_nm, items=list(pairs))
            for pairs in pairs_by_frame
        ]

    def assemble(
        self,
        pairs_by_frame: Sequence[Sequence[Pair]],
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> list[Track]:
        """Follow every frame-1 pair forward through nearest-neighbour continuation.

        Frames without a continuation are skipped and the search resumes in the
        next frame from the last known position.
        """
        if not pairs_by_frame:
            return []

        indices = self.build_indices(pairs_by_frame)
        n_frames = len(pairs_by_frame)
        seeds = pairs_by_frame[0]

        tracks: list[Track] = []
        for i, seed in enumerate(seeds):
            if progress is not None:
                progress(i, len(seeds))
            # Tracks only start in frame 1 for now.
            if seed.primary.frame != 1:
                continue

            track: Track = [seed]
            last = seed
            for frame in range(2, n_frames + 1):
                nxt = indices[frame - 1].nearest_item(last.source)
                if nxt is not None:
                    last = nxt
                    track.append(last)
            tracks.append(track)

        logger.debug("Assembled %d tracks over %d frames", len(tracks), n_frames)
        return tracks
