"""Analysis configuration with simple JSON persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class Config:
    # Data selection
    ROWS: list[int] = field(default_factory=list)

    # Pairing / tracking
    MAX_DISTANCE_NM: float = 50.0

    # Outputs
    SHOW_TRACK: bool = True
    SHOW_SUMMARY: bool = True
    SHOW_OVERLAY: bool = False
    SAVE_FILE: bool = False
    SAVE_ERROR_PLOT: bool = False
    FILE_PATH: str = ""
    TABLE_PRECISION: int = 2
    SUMMARY_PRECISION: int = 1
    OVERLAY_MAGNIFICATION: float = 100.0

    # P2D fit
    P2D: bool = False
    FIT_SIGMA: bool = True
    USE_SIGMA_ESTIMATE: bool = False
    SIGMA_ESTIMATE_NM: float = 10.0
    SAVE_P2D_PLOT: bool = False

    @staticmethod
    def default_path() -> Path:
        return Path.home() / ".pairtrack_config.json"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        cfg = cls()
        cfg_path = path or cls.default_path()
        if not cfg_path.exists():
            return cfg

        try:
            data = json.loads(cfg_path.read_text())
        except Exception:
            logger.exception("Failed to read config file: %s", cfg_path)
            return cfg

        for f in fields(cfg):
            if f.name not in data:
                continue
            raw = data[f.name]
            current = getattr(cfg, f.name)
            try:
                if isinstance(current, bool):
                    val = bool(raw)
                elif isinstance(current, int):
                    val = int(raw)
                elif isinstance(current, float):
                    val = float(raw)
                elif isinstance(current, list):
                    val = [int(v) for v in raw]
                else:
                    val = str(raw)
                setattr(cfg, f.name, val)
            except Exception:
                logger.warning("Ignoring invalid config value for %s", f.name)

        cfg.normalize()
        return cfg

    def save(self, path: Optional[Path] = None) -> None:
        cfg_path = path or self.default_path()
        cfg_path.write_text(json.dumps(asdict(self), indent=2, sort_keys=True))

    def normalize(self) -> None:
        if self.MAX_DISTANCE_NM <= 0:
            logger.warning("MAX_DISTANCE_NM must be positive, resetting to default")
            self.MAX_DISTANCE_NM = Config.MAX_DISTANCE_NM
        if self.SAVE_FILE and not self.FILE_PATH:
            logger.warning("SAVE_FILE is set without FILE_PATH, disabling export")
            self.SAVE_FILE = False
        if self.SIGMA_ESTIMATE_NM < 0:
            self.SIGMA_ESTIMATE_NM = abs(self.SIGMA_ESTIMATE_NM)
        self.TABLE_PRECISION = max(0, self.TABLE_PRECISION)
        self.SUMMARY_PRECISION = max(0, self.SUMMARY_PRECISION)

    def any_output(self) -> bool:
        return self.SHOW_TRACK or self.SHOW_SUMMARY or self.SHOW_OVERLAY or self.SAVE_FILE or self.P2D
