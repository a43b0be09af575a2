import math
import random
import unittest

from core.statistics import DurationSummary, LatencyStats, summarize


class TestSummarize(unittest.TestCase):

    def test_two_samples(self):
        stats = summarize([0.010, 0.020])
        self.assertEqual(stats.count, 2)
        self.assertAlmostEqual(stats.mean, 0.015, places=12)
        self.assertAlmostEqual(stats.stddev, math.sqrt(50) / 1000.0, places=12)
        self.assertEqual(stats.min, 0.010)
        self.assertEqual(stats.max, 0.020)

    def test_constant_samples_have_zero_stddev(self):
        for value in (0.05, 0.1, 1e-7, 123.456):
            stats = summarize([value] * 10)
            self.assertEqual(stats.mean, value)
            self.assertEqual(stats.stddev, 0.0)

    def test_order_independent(self):
        rng = random.Random(7)
        samples = [rng.uniform(0.001, 0.2) for _ in range(50)]
        expected = summarize(samples)
        for _ in range(5):
            shuffled = samples[:]
            rng.shuffle(shuffled)
            stats = summarize(shuffled)
            self.assertEqual(stats.mean, expected.mean)
            self.assertEqual(stats.stddev, expected.stddev)

    def test_single_sample_has_zero_dispersion(self):
        stats = summarize([0.042])
        self.assertEqual(stats.count, 1)
        self.assertEqual(stats.mean, 0.042)
        self.assertEqual(stats.stddev, 0.0)

    def test_empty_rejected(self):
        with self.assertRaises(ValueError):
            summarize([])

    def test_stddev_never_nan_for_near_equal_samples(self):
        stats = summarize([0.1 + 1e-17, 0.1, 0.1 - 1e-17, 0.1])
        self.assertFalse(math.isnan(stats.stddev))
        self.assertGreaterEqual(stats.stddev, 0.0)

    def test_accepts_generator(self):
        stats = summarize(x / 1000.0 for x in (10, 20, 30))
        self.assertEqual(stats.count, 3)
        self.assertAlmostEqual(stats.mean, 0.020)


class TestDurationSummary(unittest.TestCase):

    def setUp(self):
        self.summary = DurationSummary(
            idle_ms=200,
            stats=LatencyStats(count=10, mean=0.05, stddev=0.001, min=0.049, max=0.051),
        )

    def test_millisecond_accessors(self):
        self.assertEqual(self.summary.count, 10)
        self.assertAlmostEqual(self.summary.mean_ms, 50.0)
        self.assertAlmostEqual(self.summary.stddev_ms, 1.0)

    def test_to_dict_without_device(self):
        record = self.summary.to_dict()
        self.assertEqual(record["idle_ms"], 200)
        self.assertEqual(record["count"], 10)
        self.assertAlmostEqual(record["min_ms"], 49.0)
        self.assertAlmostEqual(record["max_ms"], 51.0)
        self.assertNotIn("device", record)

    def test_with_device_returns_new_summary(self):
        annotated = self.summary.with_device({"average_sm_clock_mhz": 1500.0})
        self.assertIsNone(self.summary.device)
        self.assertEqual(annotated.to_dict()["device"], {"average_sm_clock_mhz": 1500.0})
        self.assertEqual(annotated.stats, self.summary.stats)

    def test_immutable(self):
        with self.assertRaises(AttributeError):
            self.summary.idle_ms = 400


if __name__ == "__main__":
    unittest.main()
