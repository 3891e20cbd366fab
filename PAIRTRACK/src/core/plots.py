"""Diagnostic plots written to disk."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib
import matplotlib.pyplot as plt
import numpy as np

from PAIRTRACK.src.core.fitting import p2d_pdf

matplotlib.use("Agg")


def save_p2d_plot(
    path: Path,
    title: str,
    distances: Sequence[float],
    max_distance: float,
    mu: float,
    sigma: float,
) -> Path:
    """Histogram of the track mean distances with the fitted P2D density."""
    d = np.asarray(distances, dtype=np.float64)
    upper = max(float(max_distance), float(d.max()) if d.size else 0.0)
    bins = max(5, int(np.ceil(np.sqrt(d.size))))

    fig, ax = plt.subplots(figsize=(8, 6))
    ax.hist(d, bins=bins, range=(0.0, upper), density=True, color="0.7", edgecolor="0.3", label="Track mean distance")
    r = np.linspace(0.0, upper, 400)
    ax.plot(r, p2d_pdf(r, mu, sigma), "r-", lw=2, label=f"P2D (mu={mu:.1f} nm, sigma={sigma:.1f} nm)")
    ax.set_title(title)
    ax.set_xlabel("Distance (nm)")
    ax.set_ylabel("Probability density")
    ax.grid(True, linestyle="-", alpha=0.4)
    ax.legend()

    plt.tight_layout()
    path = Path(path)
    plt.savefig(path)
    plt.close(fig)
    return path


def save_error_plot(
    path: Path,
    title: str,
    times: Sequence[float],
    x_error: Sequence[float],
    y_error: Sequence[float],
    x_label: str,
) -> Path:
    fig, ax = plt.subplots(figsize=(8, 6))
    ax.plot(times, x_error, "o-", ms=4, label="XError")
    ax.plot(times, y_error, "s-", ms=4, label="YError")
    ax.set_title(title)
    ax.set_xlabel(x_label)
    ax.set_ylabel("Error(nm)")
    ax.grid(True, linestyle="-", alpha=0.4)
    ax.legend()

    plt.tight_layout()
    path = Path(path)
    plt.savefig(path)
    plt.close(fig)
    return path
