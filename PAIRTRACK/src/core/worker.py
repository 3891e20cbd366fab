"""Background worker thread running one pair/track analysis invocation."""

from __future__ import annotations

import logging
from typing import Sequence

from PyQt5 import QtCore

from PAIRTRACK.config import Config
from PAIRTRACK.src.core.algorithms import PairTrackAnalyzer
from PAIRTRACK.src.core.types import RowResult, RowStatus
from PAIRTRACK.src.host.dataset import DatasetStore
from PAIRTRACK.src.host.sinks import ResultSink

logger = logging.getLogger(__name__)


class WorkerMode:
    TRACKS = 0
    FRAME_PAIRS = 1


class WorkerState:
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    DONE = "DONE"
    ERROR = "ERROR"


class PairTrackWorker(QtCore.QThread):
    progress = QtCore.pyqtSignal(int, int)
    status_msg = QtCore.pyqtSignal(str)
    state_changed = QtCore.pyqtSignal(str)
    row_finished = QtCore.pyqtSignal(object)
    no_pairs = QtCore.pyqtSignal(int)

    def __init__(
        self,
        config: Config,
        store: DatasetStore,
        sink: ResultSink,
        rows: Sequence[int],
        mode: int = WorkerMode.TRACKS,
    ):
        super().__init__()
        self.config = config
        self.rows = list(rows)
        self.mode = mode
        self.state = WorkerState.IDLE
        self.stop_requested = False
        self.results: list[RowResult] = []
        self.analyzer = PairTrackAnalyzer(config, store, sink, worker=self)

    def _set_state(self, state: str) -> None:
        if self.state != state:
            self.state = state
            self.state_changed.emit(state)

    def start_if_needed(self) -> bool:
        """Start the thread unless every output is switched off."""
        if not self.config.any_output():
            logger.info("No outputs selected, nothing to do")
            return False
        self.start()
        return True

    def request_stop(self) -> None:
        self.stop_requested = True
        self._set_state(WorkerState.STOPPING)
        self.status_msg.emit("Stopping after current row...")

    def run(self) -> None:
        self._set_state(WorkerState.RUNNING)
        try:
            if self.mode == WorkerMode.FRAME_PAIRS:
                self._run_frame_pairs()
            else:
                self._run_tracks()
        except Exception:
            self._set_state(WorkerState.ERROR)
            self.status_msg.emit("Worker error. Check logs for details.")
            logger.exception("Worker thread crashed")
            return
        self._set_state(WorkerState.DONE)

    def _run_tracks(self) -> None:
        for row_id in self.rows:
            if self.stop_requested:
                break
            res = self.analyzer.run([row_id])[0]
            self.results.append(res)
            if res.status == RowStatus.NO_PAIRS:
                self.no_pairs.emit(row_id)
            self.row_finished.emit(res)

    def _run_frame_pairs(self) -> None:
        for row_id in self.rows:
            if self.stop_requested:
                break
            try:
                pairs_rt, frames_rt = self.analyzer.list_frame_pairs(row_id)
            except Exception as e:
                logger.exception("Frame pair listing failed for row %s", row_id)
                self.analyzer.sink.error(f"Row {row_id}: pair listing failed ({e})")
                res = RowResult(row_id, RowStatus.ERROR)
            else:
                status = RowStatus.OK if pairs_rt.counter else RowStatus.NO_PAIRS
                res = RowResult(row_id, status, pair_table=pairs_rt, summary_table=frames_rt)
            self.results.append(res)
            if res.status == RowStatus.NO_PAIRS:
                self.no_pairs.emit(row_id)
            self.row_finished.emit(res)
