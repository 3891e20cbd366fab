"""Per-row orchestration: pairing, tracking, statistics, P2D fit and outputs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from PAIRTRACK.config import Config
from PAIRTRACK.src.core.fitting import FittingException, P2DFitter, resolve_sigma
from PAIRTRACK.src.core.pairing import PairFinder
from PAIRTRACK.src.core.plots import save_error_plot, save_p2d_plot
from PAIRTRACK.src.core.spatial import distance, orientation
from PAIRTRACK.src.core.statistics import (
    distance_std_dev,
    mean,
    mean_vector,
    summarize_frame,
    summarize_track,
)
from PAIRTRACK.src.core.tracking import TrackAssembler
from PAIRTRACK.src.core.types import (
    FitResult,
    FrameSummary,
    OverlayArrow,
    RowResult,
    RowStatus,
    Track,
    TrackSummary,
)
from PAIRTRACK.src.host.dataset import DatasetStore, RowData
from PAIRTRACK.src.host.sinks import ResultSink, ResultsTable

logger = logging.getLogger(__name__)

PAIR_COLUMNS = (
    "Spot ID", "Frame", "Slice", "Channel", "Position", "XPix", "YPix", "Distance",
    "stdDev1", "stdDev2", "stdDev-distance", "Orientation (sine)",
)


def _fmt(value: float) -> str:
    return f"{value:.2f}"


class PairTrackAnalyzer:
    """Runs the pair/track analysis for data set rows and feeds the sink."""

    def __init__(self, config: Config, store: DatasetStore, sink: ResultSink, worker=None):
        self.config = config
        self.store = store
        self.sink = sink
        self.worker = worker
        self.finder = PairFinder(config.MAX_DISTANCE_NM)
        self.assembler = TrackAssembler(config.MAX_DISTANCE_NM)

    def _status(self, msg: str) -> None:
        if self.worker:
            self.worker.status_msg.emit(msg)

    def _progress(self, current: int, total: int) -> None:
        if self.worker:
            self.worker.progress.emit(int(current), int(total))

    def run(self, row_ids: Sequence[int]) -> list[RowResult]:
        results: list[RowResult] = []
        for row_id in row_ids:
            if self.worker and self.worker.stop_requested:
                self._status("Analysis aborted by user.")
                break
            try:
                results.append(self.analyze_row(row_id))
            except Exception as e:
                logger.exception("Pair track analysis failed for row %s", row_id)
                self.sink.error(f"Row {row_id}: analysis failed ({e})")
                results.append(RowResult(row_id, RowStatus.ERROR))
        self._status("")
        return results

    def analyze_row(self, row_id: int) -> RowResult:
        cfg = self.config
        row = self.store.get_row(row_id)

        self._status("Creating Pairs...")
        pairs_by_frame = self.finder.pairs_by_frame(row.detections, row.frame_count, self._progress)

        self._status("Assembling tracks...")
        tracks = self.assembler.assemble(pairs_by_frame, self._progress)
        if not tracks:
            logger.info("Row %d (%s): no pairs found", row_id, row.name)
            self.sink.no_pairs(row_id)
            return RowResult(row_id, RowStatus.NO_PAIRS)

        pair_table = self.build_pair_table(row, tracks)
        if cfg.SHOW_TRACK:
            self.sink.show_table(f"{row.name} Particle List", pair_table)

        saved_path = None
        if cfg.SAVE_FILE:
            saved_path = self.export_table(pair_table, f"{row.name}_PairTracks.csv")

        summaries = [summarize_track(t) for t in tracks]
        summary_table = self.build_summary_table(row, tracks, summaries)
        if cfg.SHOW_OVERLAY:
            self.sink.show_overlay(row_id, self.overlay_arrows(row, tracks))
        if cfg.SHOW_SUMMARY:
            self.sink.show_table(f"{row.name} Particle Summary", summary_table)

        fit, fit_error = None, None
        if cfg.P2D:
            fit, fit_error = self.fit_p2d(row, summaries)

        return RowResult(
            row_id=row_id,
            status=RowStatus.OK,
            tracks=tracks,
            summaries=summaries,
            fit=fit,
            fit_error=fit_error,
            pair_table=pair_table,
            summary_table=summary_table,
            saved_path=saved_path,
        )

    def build_pair_table(self, row: RowData, tracks: Sequence[Track]) -> ResultsTable:
        rt = ResultsTable(self.config.TABLE_PRECISION)
        for spot_id, track in enumerate(tracks):
            for pair in track:
                det = pair.primary
                rt.increment_counter()
                rt.add_value("Spot ID", spot_id)
                rt.add_value("Frame", det.frame)
                rt.add_value("Slice", det.slice)
                rt.add_value("Channel", det.channel)
                rt.add_value("Position", det.position)
                rt.add_value("XPix", det.x_pix)
                rt.add_value("YPix", det.y_pix)
                rt.add_value("Distance", distance(pair.source, pair.matched))
                if det.has_key("stdDev"):
                    rt.add_value("stdDev1", det.value("stdDev"))
                    spot2 = row.find(det.frame, 2, pair.matched.x, pair.matched.y)
                    if spot2 is not None and spot2.has_key("stdDev"):
                        rt.add_value("stdDev2", spot2.value("stdDev"))
                        if all(d.has_key(k) for d in (det, spot2) for k in ("stdDevX", "stdDevY")):
                            rt.add_value(
                                "stdDev-distance",
                                distance_std_dev(
                                    pair.source.x, pair.matched.x,
                                    pair.source.y, pair.matched.y,
                                    det.value("stdDevX"), spot2.value("stdDevX"),
                                    det.value("stdDevY"), spot2.value("stdDevY"),
                                ),
                            )
                rt.add_value("Orientation (sine)", orientation(pair.source, pair.matched))
        rt.order_columns(PAIR_COLUMNS)
        return rt

    def build_summary_table(
        self, row: RowData, tracks: Sequence[Track], summaries: Sequence[TrackSummary]
    ) -> ResultsTable:
        rt = ResultsTable(self.config.SUMMARY_PRECISION)
        for spot_id, (track, s) in enumerate(zip(tracks, summaries)):
            det = track[0].primary
            rt.increment_counter()
            rt.add_value("Row ID", row.row_id)
            rt.add_value("Spot ID", spot_id)
            rt.add_value("Frame", det.frame)
            rt.add_value("Slice", det.slice)
            rt.add_value("Channel", det.channel)
            rt.add_value("Position", det.position)
            rt.add_value("XPix", det.x_pix)
            rt.add_value("YPix", det.y_pix)
            rt.add_value("n", s.n)
            rt.add_value("Distance-Avg", s.distance_avg)
            rt.add_value("Distance-StdDev", s.distance_std)
            rt.add_value("Orientation-Avg", s.orientation_avg)
            rt.add_value("Orientation-StdDev", s.orientation_std)
            rt.add_value("Dist.Vect.Avg", s.vector_avg)
            rt.add_value("Dist.Vect.StdDev", s.vector_std)
        return rt

    def overlay_arrows(self, row: RowData, tracks: Sequence[Track]) -> list[OverlayArrow]:
        """Arrows from each track start along its magnified mean offset (pixels)."""
        factor = self.config.OVERLAY_MAGNIFICATION / row.pixel_size_nm
        arrows: list[OverlayArrow] = []
        for track in tracks:
            x0 = float(track[0].primary.x_pix)
            y0 = float(track[0].primary.y_pix)
            dx, dy = mean_vector(track)
            arrows.append(OverlayArrow(x0, y0, x0 + factor * dx, y0 + factor * dy))
        return arrows

    def export_table(self, table: ResultsTable, file_name: str) -> Optional[str]:
        path = Path(self.config.FILE_PATH) / file_name
        try:
            table.save_as(path)
        except OSError as e:
            logger.exception("Failed to save file %s", path)
            self.sink.error(f"Failed to save file {path}: {e}")
            return None
        self.sink.log(f"Saved file: {path}")
        return str(path)

    def fit_p2d(self, row: RowData, summaries: Sequence[TrackSummary]) -> tuple[Optional[FitResult], Optional[str]]:
        cfg = self.config
        d = [s.distance_avg for s in summaries]
        n = len(d)
        dist_mean = mean(d)

        try:
            start_sigma, source = resolve_sigma(cfg.FIT_SIGMA, cfg.USE_SIGMA_ESTIMATE, cfg.SIGMA_ESTIMATE_NM, d)
            fitter = P2DFitter(d, cfg.FIT_SIGMA)
            fitter.set_start_params(dist_mean, start_sigma)
            result = fitter.solve()
        except FittingException as e:
            logger.warning("P2D fit failed for row %d: %s", row.row_id, e)
            self.sink.error(f"Error during p2d fit: {e}")
            return FitResult(float("nan"), float("nan"), False, n, cfg.FIT_SIGMA), str(e)

        mu = float(result[0])
        sigma = float(result[1]) if len(result) == 2 else start_sigma
        logger.debug("Row %d P2D sigma from %s", row.row_id, source)

        self.sink.log(f"p2d fit: n = {n}, mu = {_fmt(mu)} nm, sigma = {_fmt(sigma)} nm")
        self.sink.log(f"Gaussian distribution: n = {n}, avg = {_fmt(dist_mean)} nm, std = {_fmt(start_sigma)} nm")

        if cfg.SAVE_P2D_PLOT and cfg.FILE_PATH:
            plot_path = Path(cfg.FILE_PATH) / f"{row.name}_p2d.png"
            try:
                save_p2d_plot(plot_path, f"{row.title} distances", d, cfg.MAX_DISTANCE_NM, mu, sigma)
                self.sink.log(f"Saved plot: {plot_path}")
            except OSError:
                logger.exception("Failed to save P2D plot %s", plot_path)

        return FitResult(mu, sigma, True, n, len(result) == 2), None

    def list_frame_pairs(self, row_id: int) -> tuple[ResultsTable, ResultsTable]:
        """Frame-by-frame pair listing without track assembly.

        Returns the pair table (one line per pair, with both positions) and a
        per-frame summary table. Both are empty when no pairs are found.
        """
        cfg = self.config
        row = self.store.get_row(row_id)
        pairs_rt = ResultsTable(cfg.TABLE_PRECISION)
        frames_rt = ResultsTable(cfg.TABLE_PRECISION)

        self._status("Creating Pairs...")
        frame_summaries: list[FrameSummary] = []
        for frame in range(1, row.frame_count + 1):
            self._progress(frame, row.frame_count)
            _, ch2 = self.finder.split_channels(row.detections, frame)
            if not ch2:
                logger.error("No points found in second channel in frame %d", frame)
                continue
            pairs = self.finder.find_pairs(row.detections, frame)
            for pair in pairs:
                det = pair.primary
                pairs_rt.increment_counter()
                pairs_rt.add_value("Frame", det.frame)
                pairs_rt.add_value("Slice", det.slice)
                pairs_rt.add_value("Channel", det.channel)
                pairs_rt.add_value("Position", det.position)
                pairs_rt.add_value("XPix", det.x_pix)
                pairs_rt.add_value("YPix", det.y_pix)
                pairs_rt.add_value("X1", pair.source.x)
                pairs_rt.add_value("Y1", pair.source.y)
                pairs_rt.add_value("X2", pair.matched.x)
                pairs_rt.add_value("Y2", pair.matched.y)
                pairs_rt.add_value("Distance", distance(pair.source, pair.matched))
                pairs_rt.add_value("Orientation (sine)", orientation(pair.source, pair.matched))
            frame_summaries.append(summarize_frame(pairs, frame, row.time_point(frame)))

        if pairs_rt.counter == 0:
            self.sink.no_pairs(row_id)
            self._status("")
            return pairs_rt, frames_rt

        for fs in frame_summaries:
            frames_rt.increment_counter()
            frames_rt.add_value("Frame Nr.", fs.frame)
            frames_rt.add_value("Avg. distance", fs.distance_avg)
            frames_rt.add_value("StdDev distance", fs.distance_std)
            frames_rt.add_value("X", fs.x_avg)
            frames_rt.add_value("StdDev X", fs.x_std)
            frames_rt.add_value("Y", fs.y_avg)
            frames_rt.add_value("StdDev Y", fs.y_std)
            frames_rt.add_value("Time", fs.time_point)

        if cfg.SHOW_SUMMARY:
            self.sink.show_table(f"Summary of Pairs found in {row.name}", frames_rt)
        if cfg.SHOW_TRACK:
            self.sink.show_table(f"Pairs found in {row.name}", pairs_rt)
        if cfg.SAVE_FILE:
            self.export_table(pairs_rt, f"{row.name}_Pairs.csv")
        if cfg.SAVE_ERROR_PLOT and cfg.FILE_PATH:
            self.save_error_plot(row, frame_summaries)
        self._status("")
        return pairs_rt, frames_rt

    def save_error_plot(self, row: RowData, frame_summaries: Sequence[FrameSummary]) -> Optional[Path]:
        """Per-frame mean X/Y offset against time, written next to the exports."""
        if row.time_points is None:
            x_label = "Time (frameNr)"
        else:
            x_label = "Time (s)" if row.uses_seconds else "Time (ms)"
        times = [fs.frame if fs.time_point is None else fs.time_point for fs in frame_summaries]
        path = Path(self.config.FILE_PATH) / f"{row.name}_error.png"
        try:
            save_error_plot(
                path,
                f"Error in {row.name}",
                times,
                [fs.x_avg for fs in frame_summaries],
                [fs.y_avg for fs in frame_summaries],
                x_label,
            )
        except OSError:
            logger.exception("Failed to save error plot %s", path)
            return None
        self.sink.log(f"Saved plot: {path}")
        return path
