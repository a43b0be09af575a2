"""Reduction of raw trial samples into per-bucket latency statistics."""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence


@dataclass(frozen=True)
class LatencyStats:
    """Summary of one bucket's samples. All times in seconds."""
    count: int
    mean: float
    stddev: float
    min: float
    max: float


@dataclass(frozen=True)
class DurationSummary:
    """Statistics for all trials run at one idle duration."""
    idle_ms: int
    stats: LatencyStats
    device: Optional[Mapping[str, Any]] = field(default=None, compare=False)

    @property
    def count(self) -> int:
        return self.stats.count

    @property
    def mean_ms(self) -> float:
        return self.stats.mean * 1000.0

    @property
    def stddev_ms(self) -> float:
        return self.stats.stddev * 1000.0

    def with_device(self, device: Mapping[str, Any]) -> "DurationSummary":
        return DurationSummary(idle_ms=self.idle_ms, stats=self.stats, device=dict(device))

    def to_dict(self) -> Dict[str, Any]:
        record = {
            "idle_ms": self.idle_ms,
            "count": self.stats.count,
            "mean_ms": self.mean_ms,
            "stddev_ms": self.stddev_ms,
            "min_ms": self.stats.min * 1000.0,
            "max_ms": self.stats.max * 1000.0,
        }
        if self.device:
            record["device"] = dict(self.device)
        return record


def summarize(samples: Sequence[float]) -> LatencyStats:
    """
    Reduce samples to count, mean and Bessel-corrected standard deviation.

    Sums are exactly rounded (math.fsum), so the result does not depend on the
    order of the samples. A single sample has zero dispersion by definition
    here; the n - 1 denominator is undefined for it.

    Raises:
        ValueError: If samples is empty.
    """
    values = [float(s) for s in samples]
    count = len(values)
    if count == 0:
        raise ValueError("Cannot summarize an empty sample set")

    mean = math.fsum(values) / count
    # Second pass removes the rounding error of the division
    mean += math.fsum(v - mean for v in values) / count
    if count == 1:
        stddev = 0.0
    else:
        variance = math.fsum((v - mean) ** 2 for v in values) / (count - 1)
        # Rounding can leave a tiny negative value when all samples are equal
        stddev = math.sqrt(max(variance, 0.0))

    return LatencyStats(count=count, mean=mean, stddev=stddev, min=min(values), max=max(values))
