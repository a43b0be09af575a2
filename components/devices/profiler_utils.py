"""
Utilities for aggregating profiler samples.
"""
from typing import Dict, List, Any


class MetricAccumulator:
    """
    Accumulates metric values and calculates statistics (min, max, avg).
    """

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all accumulated values."""
        self.count = 0
        self.sum = 0.0
        self.max = float('-inf')
        self.min = float('inf')

    def add(self, value: float):
        """Add a value to the accumulator."""
        if value is None:
            return

        self.count += 1
        self.sum += value
        self.max = max(self.max, value)
        self.min = min(self.min, value)

    @property
    def average(self) -> float:
        """Get the average of all values."""
        return self.sum / self.count if self.count > 0 else 0.0

    def get_stats(self) -> Dict[str, float]:
        """
        Get statistics dictionary.

        Returns:
            Dict with 'count', 'average', 'peak', 'min' keys.
        """
        if self.count > 0:
            return {
                "count": self.count,
                "average": self.average,
                "peak": self.max,
                "min": self.min,
            }
        return {
            "count": 0,
            "average": 0.0,
            "peak": 0.0,
            "min": 0.0,
        }


def window_metrics(samples: List[Dict[str, Any]],
                   metric_keys: Dict[str, str]) -> Dict[str, Any]:
    """
    Calculate aggregate metrics from samples.

    Args:
        samples: List of sample dictionaries
        metric_keys: Dict mapping {sample_key: metric_name}
                     e.g., {'sm_clock_mhz': 'sm_clock_mhz'}

    Returns:
        Dict with average_/min_/peak_ entries for every metric that has at
        least one value, plus 'num_samples'.
    """
    metrics = {"num_samples": len(samples)}

    for sample_key, metric_name in metric_keys.items():
        acc = MetricAccumulator()
        for s in samples:
            acc.add(s.get(sample_key))
        if acc.count:
            stats = acc.get_stats()
            metrics[f'average_{metric_name}'] = stats["average"]
            metrics[f'min_{metric_name}'] = stats["min"]
            metrics[f'peak_{metric_name}'] = stats["peak"]

    return metrics
