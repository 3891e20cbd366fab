import unittest
from pathlib import Path
import sys
import numpy as np

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from PAIRTRACK.src.core.pairing import PairFinder
from PAIRTRACK.src.core.spatial import SpatialIndex, distance, orientation
from PAIRTRACK.src.core.statistics import (
    distance_std_dev,
    mean,
    sample,
    std_dev,
    summarize_frame,
    summarize_track,
)
from PAIRTRACK.src.core.tracking import TrackAssembler
from PAIRTRACK.src.core.types import Detection, Pair, Point2D


def make_det(frame, channel, x, y, **attrs):
    return Detection(frame, channel, 1, 1, int(x), int(y), float(x), float(y), attrs)


def make_pair(frame, sx, sy, mx, my):
    return Pair(make_det(frame, 1, sx, sy), Point2D(sx, sy), Point2D(mx, my))


class TestSpatialIndex(unittest.TestCase):
    def test_nearest_within_radius(self):
        idx = SpatialIndex([Point2D(0, 0), Point2D(3, 0), Point2D(10, 10)], 5.0)
        self.assertEqual(idx.nearest(Point2D(2, 0)), Point2D(3, 0))

    def test_none_outside_radius(self):
        idx = SpatialIndex([Point2D(0, 0)], 1.0)
        self.assertIsNone(idx.nearest(Point2D(1.5, 0)))

    def test_radius_is_inclusive(self):
        idx = SpatialIndex([Point2D(2, 0)], 2.0)
        self.assertEqual(idx.nearest(Point2D(0, 0)), Point2D(2, 0))

    def test_never_farther_than_radius(self):
        rng = np.random.default_rng(0)
        pts = [Point2D(*p) for p in rng.uniform(0, 100, size=(200, 2))]
        radius = 4.0
        idx = SpatialIndex(pts, radius)
        coords = np.array(pts)
        for q in rng.uniform(0, 100, size=(300, 2)):
            q = Point2D(*q)
            hit = idx.nearest(q)
            best = float(np.min(np.hypot(coords[:, 0] - q.x, coords[:, 1] - q.y)))
            if hit is None:
                self.assertGreater(best, radius)
            else:
                self.assertLessEqual(distance(q, hit), radius)
                self.assertAlmostEqual(distance(q, hit), best, places=9)

    def test_tie_goes_to_first_point(self):
        items = ["left", "right"]
        idx = SpatialIndex([Point2D(-1, 0), Point2D(1, 0)], 5.0, items=items)
        self.assertEqual(idx.nearest_item(Point2D(0, 0)), "left")

    def test_tie_among_many_equal_points(self):
        pts = [Point2D(2, 0)] + [Point2D(1, 0)] * 12 + [Point2D(0, 1)]
        idx = SpatialIndex(pts, 5.0, items=list(range(len(pts))))
        self.assertEqual(idx.nearest_item(Point2D(0, 0)), 1)

    def test_large_radius(self):
        rng = np.random.default_rng(3)
        coords = rng.uniform(0, 1000, size=(500, 2))
        idx = SpatialIndex([Point2D(*p) for p in coords], 1e6, items=list(range(len(coords))))
        q = Point2D(500.0, 500.0)
        expected = int(np.argmin(np.hypot(coords[:, 0] - q.x, coords[:, 1] - q.y)))
        self.assertEqual(idx.nearest_item(q), expected)

    def test_empty_index(self):
        idx = SpatialIndex([], 10.0)
        self.assertEqual(len(idx), 0)
        self.assertIsNone(idx.nearest(Point2D(0, 0)))
        self.assertIsNone(idx.nearest_item(Point2D(0, 0)))

    def test_items_length_mismatch(self):
        with self.assertRaises(ValueError):
            SpatialIndex([Point2D(0, 0)], 1.0, items=[1, 2])

    def test_orientation(self):
        p, q = Point2D(0, 0), Point2D(3, 4)
        self.assertAlmostEqual(orientation(p, q), 0.8)
        self.assertAlmostEqual(orientation(q, p), -0.8)
        self.assertEqual(orientation(p, p), 0.0)


class TestPairFinder(unittest.TestCase):
    def test_empty_second_channel_logs_and_returns_nothing(self):
        dets = [make_det(1, 1, 0, 0), make_det(1, 1, 5, 5)]
        with self.assertLogs("PAIRTRACK.src.core.pairing", level="ERROR") as cm:
            pairs = PairFinder(10.0).find_pairs(dets, 1)
        self.assertEqual(pairs, [])
        self.assertIn("frame 1", cm.output[0])

    def test_pairs_follow_channel1_order(self):
        dets = [
            make_det(1, 2, 100, 0),
            make_det(1, 1, 101, 0),
            make_det(1, 1, 0, 0),
            make_det(1, 2, 1, 0),
            make_det(1, 1, 500, 500),
        ]
        pairs = PairFinder(5.0).find_pairs(dets, 1)
        self.assertEqual([p.source for p in pairs], [Point2D(101, 0), Point2D(0, 0)])
        self.assertEqual([p.matched for p in pairs], [Point2D(100, 0), Point2D(1, 0)])

    def test_second_channel_point_can_be_shared(self):
        dets = [make_det(1, 1, -1, 0), make_det(1, 1, 1, 0), make_det(1, 2, 0, 0)]
        pairs = PairFinder(5.0).find_pairs(dets, 1)
        self.assertEqual(len(pairs), 2)
        self.assertTrue(all(p.matched == Point2D(0, 0) for p in pairs))

    def test_never_more_pairs_than_channel1(self):
        rng = np.random.default_rng(3)
        dets = [make_det(1, 1, *xy) for xy in rng.uniform(0, 50, size=(20, 2))]
        dets += [make_det(1, 2, *xy) for xy in rng.uniform(0, 50, size=(60, 2))]
        pairs = PairFinder(8.0).find_pairs(dets, 1)
        self.assertLessEqual(len(pairs), 20)

    def test_other_frames_ignored(self):
        dets = [make_det(1, 1, 0, 0), make_det(2, 2, 0, 0)]
        with self.assertLogs("PAIRTRACK.src.core.pairing", level="ERROR"):
            self.assertEqual(PairFinder(5.0).find_pairs(dets, 1), [])

    def test_pairs_by_frame_reports_progress(self):
        dets = [make_det(1, 1, 0, 0), make_det(1, 2, 1, 0), make_det(3, 1, 0, 0), make_det(3, 2, 0, 1)]
        seen = []
        with self.assertLogs("PAIRTRACK.src.core.pairing", level="ERROR"):
            by_frame = PairFinder(5.0).pairs_by_frame(dets, 3, progress=lambda f, n: seen.append((f, n)))
        self.assertEqual([len(p) for p in by_frame], [1, 0, 1])
        self.assertEqual(seen, [(1, 3), (2, 3), (3, 3)])


class TestTrackAssembler(unittest.TestCase):
    def test_two_frame_track(self):
        by_frame = [[make_pair(1, 0, 0, 0.1, 0)], [make_pair(2, 1, 0, 1.1, 0)]]
        tracks = TrackAssembler(5.0).assemble(by_frame)
        self.assertEqual(len(tracks), 1)
        self.assertEqual(len(tracks[0]), 2)
        self.assertEqual(tracks[0][1].source, Point2D(1, 0))

    def test_gap_is_skipped_and_search_resumes(self):
        by_frame = [
            [make_pair(1, 0, 0, 1, 0)],
            [make_pair(2, 50, 50, 51, 50)],
            [make_pair(3, 2, 0, 3, 0)],
        ]
        tracks = TrackAssembler(5.0).assemble(by_frame)
        self.assertEqual(len(tracks), 1)
        self.assertEqual([p.primary.frame for p in tracks[0]], [1, 3])

    def test_query_moves_with_last_match(self):
        by_frame = [
            [make_pair(1, 0, 0, 1, 0)],
            [make_pair(2, 4, 0, 5, 0)],
            [make_pair(3, 8, 0, 9, 0)],
        ]
        track = TrackAssembler(5.0).assemble(by_frame)[0]
        self.assertEqual([p.source.x for p in track], [0, 4, 8])

    def test_single_pair_track_emitted(self):
        tracks = TrackAssembler(5.0).assemble([[make_pair(1, 0, 0, 1, 0)], []])
        self.assertEqual(len(tracks), 1)
        self.assertEqual(len(tracks[0]), 1)

    def test_no_seeds_means_no_tracks(self):
        by_frame = [[], [make_pair(2, 0, 0, 1, 0)]]
        self.assertEqual(TrackAssembler(5.0).assemble(by_frame), [])
        self.assertEqual(TrackAssembler(5.0).assemble([]), [])

    def test_track_invariants_on_random_data(self):
        rng = np.random.default_rng(7)
        n_frames = 6
        max_d = 3.0
        starts = rng.uniform(0, 200, size=(15, 2))
        by_frame = []
        for frame in range(1, n_frames + 1):
            pos = starts + rng.normal(0, 1.0, size=starts.shape) * frame
            keep = rng.uniform(size=len(pos)) > 0.2
            by_frame.append([make_pair(frame, x, y, x + 0.5, y) for (x, y), k in zip(pos, keep) if k])

        tracks = TrackAssembler(max_d).assemble(by_frame)
        self.assertEqual(len(tracks), len(by_frame[0]))
        for track in tracks:
            self.assertEqual(track[0].primary.frame, 1)
            self.assertLessEqual(len(track), n_frames)
            frames = [p.primary.frame for p in track]
            self.assertEqual(frames, sorted(set(frames)))
            for prev, nxt in zip(track, track[1:]):
                self.assertLessEqual(distance(prev.source, nxt.source), max_d)


class TestStatistics(unittest.TestCase):
    def test_single_sample_std_is_zero(self):
        self.assertEqual(std_dev([4.2]), 0.0)
        self.assertEqual(std_dev([]), 0.0)
        s = summarize_track([make_pair(1, 0, 0, 3, 4)])
        self.assertEqual(s.n, 1)
        self.assertEqual(s.distance_std, 0.0)
        self.assertEqual(s.orientation_std, 0.0)
        self.assertEqual(s.vector_std, 0.0)
        self.assertAlmostEqual(s.distance_avg, 5.0)

    def test_population_std(self):
        self.assertAlmostEqual(std_dev([1.0, 3.0]), 1.0)
        self.assertAlmostEqual(mean([1.0, 2.0, 6.0]), 3.0)

    def test_swapping_channels(self):
        rng = np.random.default_rng(11)
        pts = rng.uniform(0, 10, size=(8, 4))
        fwd = [make_pair(i + 1, a, b, c, d) for i, (a, b, c, d) in enumerate(pts)]
        rev = [make_pair(i + 1, c, d, a, b) for i, (a, b, c, d) in enumerate(pts)]
        s_fwd = summarize_track(fwd)
        s_rev = summarize_track(rev)
        self.assertAlmostEqual(s_fwd.distance_avg, s_rev.distance_avg)
        self.assertAlmostEqual(s_fwd.distance_std, s_rev.distance_std)
        self.assertAlmostEqual(s_fwd.orientation_avg, -s_rev.orientation_avg)
        self.assertAlmostEqual(s_fwd.orientation_std, s_rev.orientation_std)
        self.assertAlmostEqual(s_fwd.vector_avg, s_rev.vector_avg)

    def test_track_summary_vector(self):
        track = [make_pair(1, 0, 0, -1, 0), make_pair(2, 0, 0, -3, 0)]
        s = summarize_track(track)
        self.assertAlmostEqual(s.distance_avg, 2.0)
        self.assertAlmostEqual(s.distance_std, 1.0)
        self.assertAlmostEqual(s.vector_avg, 2.0)
        self.assertAlmostEqual(s.vector_std, 1.0)
        self.assertAlmostEqual(s.orientation_avg, 0.0)

    def test_sample_offsets_are_source_minus_matched(self):
        smp = sample(make_pair(1, 5, 5, 2, 1))
        self.assertAlmostEqual(smp.dx, 3.0)
        self.assertAlmostEqual(smp.dy, 4.0)
        self.assertAlmostEqual(smp.distance, 5.0)
        self.assertAlmostEqual(smp.orientation, -0.8)

    def test_frame_summary(self):
        pairs = [make_pair(4, 0, 0, 2, 0), make_pair(4, 0, 0, 0, 4)]
        fs = summarize_frame(pairs, 4)
        self.assertEqual(fs.n, 2)
        self.assertAlmostEqual(fs.distance_avg, 3.0)
        self.assertAlmostEqual(fs.x_avg, 1.0)
        self.assertAlmostEqual(fs.y_avg, 2.0)
        self.assertEqual(fs.time_point, 4.0)
        self.assertEqual(summarize_frame(pairs, 4, time_point=0.25).time_point, 0.25)

    def test_distance_std_dev(self):
        # Distance along x only depends on the x errors.
        self.assertAlmostEqual(distance_std_dev(0, 10, 0, 0, 3, 4, 100, 100), 5.0)
        self.assertAlmostEqual(distance_std_dev(0, 0, 0, 10, 100, 100, 3, 4), 5.0)
        self.assertAlmostEqual(distance_std_dev(1, 1, 1, 1, 3, 4, 3, 4), 5.0)


if __name__ == "__main__":
    unittest.main()
