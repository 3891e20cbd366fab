"""Access to localization data sets owned by the host application."""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Sequence

from PAIRTRACK.src.core.types import EMPTY_ATTRIBUTES, Detection

logger = logging.getLogger(__name__)

CORE_COLUMNS = ("frame", "channel", "slice", "position", "x_pix", "y_pix", "x_nm", "y_nm")


@dataclass
class RowData:
    row_id: int
    name: str
    title: str
    frame_count: int
    pixel_size_nm: float
    detections: list[Detection] = field(default_factory=list)
    time_points: Optional[dict[int, float]] = None
    uses_seconds: bool = False

    def __post_init__(self) -> None:
        if not self.pixel_size_nm > 0:
            raise ValueError(f"{self.name}: pixel size must be positive, got {self.pixel_size_nm}")
        self._lookup: dict[tuple[int, int, float, float], Detection] = {}
        for det in self.detections:
            self._lookup.setdefault((det.frame, det.channel, det.x_center, det.y_center), det)

    def find(self, frame: int, channel: int, x: float, y: float) -> Optional[Detection]:
        return self._lookup.get((frame, channel, float(x), float(y)))

    def time_point(self, frame: int) -> Optional[float]:
        """Time of a frame in ms (or s when the row uses seconds)."""
        if self.time_points is None or frame not in self.time_points:
            return None
        t = float(self.time_points[frame])
        return t / 1000.0 if self.uses_seconds else t


class DatasetStore(ABC):
    @abstractmethod
    def get_row(self, row_id: int) -> RowData: pass

    @abstractmethod
    def row_ids(self) -> list[int]: pass

    def get_detections(self, row_id: int) -> list[Detection]:
        return self.get_row(row_id).detections


class MemoryDatasetStore(DatasetStore):
    def __init__(self, rows: Sequence[RowData] = ()):
        self._rows: dict[int, RowData] = {}
        for row in rows:
            self.add(row)

    def add(self, row: RowData) -> None:
        self._rows[row.row_id] = row

    def get_row(self, row_id: int) -> RowData:
        try:
            return self._rows[row_id]
        except KeyError:
            raise KeyError(f"No data set with row id {row_id}") from None

    def row_ids(self) -> list[int]:
        return sorted(self._rows)


def load_detections_csv(
    path: Path,
    row_id: int = 0,
    pixel_size_nm: float = 1.0,
    name: Optional[str] = None,
) -> RowData:
    """Read a localization table with one detection per line.

    Required columns are ``CORE_COLUMNS``; any other numeric column is kept as
    a detection attribute (e.g. ``stdDev``, ``stdDevX``, ``stdDevY``).
    """
    path = Path(path)
    detections: list[Detection] = []
    with path.open(newline="") as f:
        reader = csv.DictReader(f)
        missing = [c for c in CORE_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"{path.name}: missing columns {', '.join(missing)}")

        for line_no, rec in enumerate(reader, start=2):
            attrs: dict[str, float] = {}
            for key, raw in rec.items():
                if key in CORE_COLUMNS or key is None or raw in (None, ""):
                    continue
                try:
                    attrs[key] = float(raw)
                except ValueError:
                    logger.warning("%s:%d ignoring non-numeric %s=%r", path.name, line_no, key, raw)
            detections.append(
                Detection(
                    frame=int(rec["frame"]),
                    channel=int(rec["channel"]),
                    slice=int(rec["slice"]),
                    position=int(rec["position"]),
                    x_pix=int(float(rec["x_pix"])),
                    y_pix=int(float(rec["y_pix"])),
                    x_center=float(rec["x_nm"]),
                    y_center=float(rec["y_nm"]),
                    attributes=MappingProxyType(attrs) if attrs else EMPTY_ATTRIBUTES,
                )
            )

    frame_count = max((d.frame for d in detections), default=0)
    logger.info("Loaded %d detections in %d frames from %s", len(detections), frame_count, path)
    stem = name or path.stem
    return RowData(
        row_id=row_id,
        name=stem,
        title=stem,
        frame_count=frame_count,
        pixel_size_nm=float(pixel_size_nm),
        detections=detections,
    )
