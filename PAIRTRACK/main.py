import sys
import argparse
import logging
from pathlib import Path

from PyQt5 import QtCore

from PAIRTRACK.config import Config
from PAIRTRACK.src.core.types import RowStatus
from PAIRTRACK.src.core.worker import PairTrackWorker, WorkerMode
from PAIRTRACK.src.host.dataset import MemoryDatasetStore, load_detections_csv
from PAIRTRACK.src.host.sinks import LoggingResultSink

logger = logging.getLogger(__name__)


def positive_float(text: str) -> float:
    value = float(text)
    if not value > 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pair two-channel localizations and fit the P2D distance model")
    parser.add_argument("detections", nargs="+", type=Path, help="Localization CSV file(s), one data set each")
    parser.add_argument("--config", type=Path, help="JSON config file (default: ~/.pairtrack_config.json)")
    parser.add_argument("--pixel-size", type=positive_float, default=1.0, help="Pixel size in nm")
    parser.add_argument("--max-distance", type=positive_float, help="Maximum pair distance in nm")
    parser.add_argument("--out", type=str, help="Directory for CSV export")
    parser.add_argument("--p2d", action="store_true", help="Fit the P2D distribution")
    parser.add_argument("--fix-sigma", action="store_true", help="Fit mu only")
    parser.add_argument("--sigma", type=float, help="Fixed sigma estimate in nm (implies --fix-sigma)")
    parser.add_argument("--frame-pairs", action="store_true", help="List pairs frame by frame instead of tracks")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    if args.max_distance is not None:
        config.MAX_DISTANCE_NM = args.max_distance
    if args.out:
        config.FILE_PATH = args.out
        config.SAVE_FILE = True
    if args.p2d:
        config.P2D = True
    if args.fix_sigma or args.sigma is not None:
        config.FIT_SIGMA = False
    if args.sigma is not None:
        config.USE_SIGMA_ESTIMATE = True
        config.SIGMA_ESTIMATE_NM = args.sigma
    config.normalize()
    return config


def main():
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = apply_overrides(Config.load(args.config), args)

    store = MemoryDatasetStore()
    for row_id, path in enumerate(args.detections, start=1):
        try:
            store.add(load_detections_csv(path, row_id=row_id, pixel_size_nm=args.pixel_size))
        except (OSError, ValueError):
            logger.exception("Could not load %s", path)
    rows = config.ROWS or store.row_ids()

    app = QtCore.QCoreApplication(sys.argv)
    mode = WorkerMode.FRAME_PAIRS if args.frame_pairs else WorkerMode.TRACKS
    worker = PairTrackWorker(config, store, LoggingResultSink(), rows, mode=mode)
    worker.finished.connect(app.quit)
    if not worker.start_if_needed():
        sys.exit(0)

    app.exec_()
    failed = [r.row_id for r in worker.results if r.status == RowStatus.ERROR]
    sys.exit(1 if failed else 0)

if __name__ == "__main__":
    main()
