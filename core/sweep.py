"""
Idle/probe sweep over an ascending sequence of idle durations.

For every duration a fixed number of trials is run back to back, each trial
followed by a cache reset, and the bucket is reduced to one DurationSummary
that is yielded before the next bucket starts.
"""
import logging
import time
from typing import Callable, Iterator, Sequence, Tuple

from components.engines.base import BaseEngine, ProbeBatch
from .statistics import DurationSummary, summarize
from .trial import run_trial, reset_session

log = logging.getLogger(__name__)

# Defaults of the reference sweep: 0 ms to 2200 ms in 200 ms steps, 10 trials each
DEFAULT_START_MS = 0
DEFAULT_STOP_MS = 2200
DEFAULT_STEP_MS = 200
DEFAULT_TRIALS = 10


def build_idle_durations(start_ms: int = DEFAULT_START_MS,
                         stop_ms: int = DEFAULT_STOP_MS,
                         step_ms: int = DEFAULT_STEP_MS) -> Tuple[int, ...]:
    """Inclusive ascending range of idle durations in milliseconds."""
    if step_ms <= 0:
        raise ValueError(f"step_ms must be positive, got {step_ms}")
    if start_ms < 0:
        raise ValueError(f"start_ms must be non-negative, got {start_ms}")
    if stop_ms < start_ms:
        raise ValueError(f"stop_ms ({stop_ms}) must not be below start_ms ({start_ms})")
    return tuple(range(start_ms, stop_ms + 1, step_ms))


def validate_idle_durations(idle_durations_ms: Sequence[int]) -> Tuple[int, ...]:
    """Freeze durations into a tuple, checking they are non-empty, non-negative and strictly ascending."""
    durations = tuple(int(d) for d in idle_durations_ms)
    if not durations:
        raise ValueError("At least one idle duration is required")
    if durations[0] < 0:
        raise ValueError(f"Idle durations must be non-negative, got {durations[0]}")
    for prev, cur in zip(durations, durations[1:]):
        if cur <= prev:
            raise ValueError(f"Idle durations must be strictly ascending: {prev} then {cur}")
    return durations


def run_sweep(engine: BaseEngine, session, batch: ProbeBatch,
              idle_durations_ms: Sequence[int], trials_per_duration: int,
              sleep: Callable[[float], None] = time.sleep,
              warmup: bool = True) -> Iterator[DurationSummary]:
    """
    Run the sweep and return a lazy, single-use iterator of summaries.

    Arguments are validated immediately; no engine call happens until the
    first summary is requested. A failing trial propagates out of the
    iterator after the summaries of all completed buckets were yielded.

    Raises:
        ValueError: On an invalid duration sequence or trial count.
    """
    durations = validate_idle_durations(idle_durations_ms)
    if trials_per_duration < 1:
        raise ValueError(f"trials_per_duration must be at least 1, got {trials_per_duration}")
    return _iter_sweep(engine, session, batch, durations, trials_per_duration, sleep, warmup)


def _iter_sweep(engine, session, batch, durations, trials, sleep, warmup):
    log.info("Sweeping %d idle durations (%d-%d ms), %d trials each",
             len(durations), durations[0], durations[-1], trials)

    if warmup:
        # Absorbs first-call costs (allocation, kernel selection)
        elapsed = run_trial(engine, session, 0.0, batch, sleep=sleep)
        reset_session(engine, session)
        log.debug("Warm-up decode: %.3f ms (discarded)", elapsed * 1000.0)

    for idle_ms in durations:
        samples = []
        for i in range(trials):
            elapsed = run_trial(engine, session, idle_ms / 1000.0, batch, sleep=sleep)
            reset_session(engine, session)
            samples.append(elapsed)
            log.debug("Idle %d ms, trial %d/%d: %.3f ms", idle_ms, i + 1, trials, elapsed * 1000.0)

        summary = DurationSummary(idle_ms=idle_ms, stats=summarize(samples))
        log.info("Idle %d ms done: mean %.3f ms", idle_ms, summary.mean_ms)
        yield summary
