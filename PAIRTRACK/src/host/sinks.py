"""Result tables and the sinks that receive them."""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence

from PAIRTRACK.src.core.types import OverlayArrow

logger = logging.getLogger(__name__)


class ResultsTable:
    """Column-ordered table filled one row at a time.

    Columns appear in the order they are first written; rows that never set a
    column leave it blank.
    """

    def __init__(self, precision: int = 2):
        self.precision = int(precision)
        self.columns: list[str] = []
        self.rows: list[dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def counter(self) -> int:
        return len(self.rows)

    def increment_counter(self) -> None:
        self.rows.append({})

    def add_value(self, column: str, value: Any) -> None:
        if not self.rows:
            raise IndexError("increment_counter() must be called before add_value()")
        if column not in self.columns:
            self.columns.append(column)
        self.rows[-1][column] = value

    def order_columns(self, order: Sequence[str]) -> None:
        """Reorder the columns written so far; names missing from ``order`` go last."""
        rank = {name: i for i, name in enumerate(order)}
        self.columns.sort(key=lambda c: rank.get(c, len(rank)))

    def column(self, name: str) -> list[Any]:
        return [row.get(name) for row in self.rows]

    def _format(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, float):
            return f"{value:.{self.precision}f}"
        return str(value)

    def save_as(self, path: Path) -> Path:
        path = Path(path)
        with path.open("w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(self.columns)
            for row in self.rows:
                writer.writerow([self._format(row.get(c)) for c in self.columns])
        return path


class ResultSink(ABC):
    @abstractmethod
    def show_table(self, title: str, table: ResultsTable) -> None: pass
    @abstractmethod
    def show_overlay(self, row_id: int, arrows: Sequence[OverlayArrow]) -> None: pass
    @abstractmethod
    def log(self, msg: str) -> None: pass
    @abstractmethod
    def error(self, msg: str) -> None: pass
    @abstractmethod
    def no_pairs(self, row_id: int) -> None: pass


class LoggingResultSink(ResultSink):
    def show_table(self, title: str, table: ResultsTable) -> None:
        logger.info("%s: %d rows (%s)", title, len(table), ", ".join(table.columns))

    def show_overlay(self, row_id: int, arrows: Sequence[OverlayArrow]) -> None:
        logger.info("Row %d: %d overlay arrows", row_id, len(arrows))

    def log(self, msg: str) -> None:
        logger.info(msg)

    def error(self, msg: str) -> None:
        logger.error(msg)

    def no_pairs(self, row_id: int) -> None:
        logger.warning("Row %d: No Pairs found", row_id)


class RecordingResultSink(ResultSink):
    def __init__(self):
        self.tables: dict[str, ResultsTable] = {}
        self.overlays: dict[int, list[OverlayArrow]] = {}
        self.messages: list[str] = []
        self.errors: list[str] = []
        self.no_pair_rows: list[int] = []

    def show_table(self, title: str, table: ResultsTable) -> None:
        self.tables[title] = table

    def show_overlay(self, row_id: int, arrows: Sequence[OverlayArrow]) -> None:
        self.overlays[row_id] = list(arrows)

    def log(self, msg: str) -> None:
        self.messages.append(msg)

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def no_pairs(self, row_id: int) -> None:
        self.no_pair_rows.append(row_id)

    def table(self, title: str) -> Optional[ResultsTable]:
        return self.tables.get(title)
