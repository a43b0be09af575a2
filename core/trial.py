import logging
import time
from typing import Callable

from components.engines.base import BaseEngine, ProbeBatch, TrialError

log = logging.getLogger(__name__)


def run_trial(engine: BaseEngine, session, idle_s: float, batch: ProbeBatch,
              sleep: Callable[[float], None] = time.sleep) -> float:
    """
    Idle for idle_s, then time one synchronized decode of batch.

    Start and end both come from engine.now(). The session is left as decode
    left it; the caller resets it outside the measured interval.

    Returns:
        Elapsed decode time in seconds.
    """
    if idle_s < 0:
        raise ValueError(f"Idle duration must be non-negative, got {idle_s}")

    # Simulates an idle device
    if idle_s > 0:
        sleep(idle_s)

    start = engine.now()
    engine.decode(session, batch)
    # decode may only enqueue work on the device
    engine.synchronize(session)
    end = engine.now()

    elapsed = end - start
    if elapsed < 0:
        raise TrialError(f"Clock went backwards: start={start}, end={end}")
    return elapsed


def reset_session(engine: BaseEngine, session) -> None:
    """Clear and rebuild the session cache so the next trial starts from the same baseline."""
    engine.reset_cache(session)
    engine.rebuild_cache(session)
    engine.synchronize(session)
