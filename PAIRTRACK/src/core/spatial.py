"""Nearest-neighbour lookup and planar geometry helpers."""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

from PAIRTRACK.src.core.types import Point2D


def distance2(p: Point2D, q: Point2D) -> float:
    dx = p[0] - q[0]
    dy = p[1] - q[1]
    return dx * dx + dy * dy


def distance(p: Point2D, q: Point2D) -> float:
    return math.sqrt(distance2(p, q))


def orientation(p: Point2D, q: Point2D) -> float:
    """Sine of the angle between the p->q vector and the x axis."""
    d = distance(p, q)
    if d == 0.0:
        return 0.0
    return (q[1] - p[1]) / d


class SpatialIndex:
    """Static point set answering "closest point within radius" queries.

    Items may be attached to the points (one per point, same order); they are
    returned by ``nearest_item``. Exact ties go to the lowest insertion index.
    """

    TIE_CANDIDATES = 8

    def __init__(self, points: Sequence[Point2D], max_distance: float, items: Optional[Sequence[Any]] = None):
        if items is not None and len(items) != len(points):
            raise ValueError("items and points must have the same length")
        self.max_distance = float(max_distance)
        self._points = [Point2D(float(p[0]), float(p[1])) for p in points]
        self._items = list(items) if items is not None else self._points
        self._coords = np.asarray(self._points, dtype=np.float64).reshape(-1, 2)
        self._tree = cKDTree(self._coords) if len(self._points) else None

    def __len__(self) -> int:
        return len(self._points)

    def _nearest_index(self, query: Point2D) -> Optional[int]:
        if self._tree is None or self.max_distance < 0:
            return None
        q = np.array([query[0], query[1]], dtype=np.float64)
        k = min(self.TIE_CANDIDATES, len(self._points))
        bound = np.nextafter(self.max_distance, np.inf)
        dist, idx = self._tree.query(q, k=k, distance_upper_bound=bound)
        dist = np.atleast_1d(dist)
        idx = np.atleast_1d(idx)
        found = np.isfinite(dist)
        if not found.any():
            return None
        idx = idx[found]

        d2 = np.sum((self._coords[idx] - q) ** 2, axis=1)
        best_d2 = float(d2.min())
        if best_d2 > self.max_distance * self.max_distance:
            return None
        if found.all() and k < len(self._points) and float(np.max(d2)) == best_d2:
            # every candidate is tied, widen to all points at that distance
            idx = np.asarray(self._tree.query_ball_point(q, r=np.sqrt(best_d2) * (1 + 1e-12)), dtype=np.intp)
            d2 = np.sum((self._coords[idx] - q) ** 2, axis=1)
        return int(np.min(idx[d2 == best_d2]))

    def nearest(self, query: Point2D) -> Optional[Point2D]:
        i = self._nearest_index(query)
        return None if i is None else self._points[i]

    def nearest_item(self, query: Point2D) -> Any:
        i = self._nearest_index(query)
        return None if i is None else self._items[i]
