"""
Simulated engine with a virtual clock.

Decode advances the clock by a configured latency instead of doing any work,
which makes sweeps deterministic and fast. With ``realtime`` enabled it uses
the host monotonic clock and really sleeps for the latency, which is handy
for exercising the CLI without a model.
"""
from dataclasses import dataclass
from typing import List, Optional
import logging
import random
import time

from .base import BaseEngine, DecodeError, EngineSetupError, ProbeBatch

log = logging.getLogger(__name__)

PLACEHOLDER_TOKEN = 1


@dataclass
class SimulatedModel:
    name: str


@dataclass
class SimulatedSession:
    n_ctx: int
    n_batch: int
    n_past: int = 0
    cache_ready: bool = True


class SimulatedEngine(BaseEngine):
    """
    Fake engine for dry runs and tests.

    Args:
        latency_ms: Decode latency added to the clock per call.
        jitter_ms: Uniform +/- jitter added to each latency (seeded).
        fail_on_decode: 1-based index of the decode call that fails, or None.
        realtime: Use the host clock and sleep instead of a virtual clock.
        seed: Seed for the jitter generator.
    """

    def __init__(self, latency_ms: float = 50.0, jitter_ms: float = 0.0,
                 fail_on_decode: Optional[int] = None, realtime: bool = False, seed: int = 0):
        if latency_ms < 0 or jitter_ms < 0:
            raise ValueError("Simulated latency and jitter must be non-negative")
        self.latency_ms = latency_ms
        self.jitter_ms = jitter_ms
        self.fail_on_decode = fail_on_decode
        self.realtime = realtime
        self._rng = random.Random(seed)
        self._clock = 0.0
        self.decode_count = 0
        self.calls: List[str] = []

    @classmethod
    def from_config(cls, config):
        return cls(
            latency_ms=float(config.get("latency_ms", 50.0)),
            jitter_ms=float(config.get("jitter_ms", 0.0)),
            fail_on_decode=config.get("fail_on_decode"),
            realtime=bool(config.get("realtime", False)),
            seed=int(config.get("seed", 0)),
        )

    def load_model(self, config):
        self.calls.append("load_model")
        name = config.get("model_path") or "simulated"
        log.info("Model loaded: %s (simulated, %.2f ms/decode)", name, self.latency_ms)
        return SimulatedModel(name=name)

    def create_session(self, handle, config):
        self.calls.append("create_session")
        n_ctx = int(config.get("n_ctx", 512))
        n_batch = int(config.get("n_batch", 512))
        if n_ctx <= 0 or n_batch <= 0:
            raise EngineSetupError(f"Invalid session size: n_ctx={n_ctx}, n_batch={n_batch}")
        return SimulatedSession(n_ctx=n_ctx, n_batch=n_batch)

    def build_probe_batch(self, handle, session):
        self.calls.append("build_probe_batch")
        return ProbeBatch(token_id=PLACEHOLDER_TOKEN)

    def decode(self, session, batch):
        self.calls.append("decode")
        self.decode_count += 1
        if self.fail_on_decode is not None and self.decode_count == self.fail_on_decode:
            raise DecodeError(f"Simulated decode failure on call {self.decode_count}")
        if not session.cache_ready:
            raise DecodeError("Decode on a reset cache that was never rebuilt")
        if session.n_past + batch.n_tokens > session.n_ctx:
            raise DecodeError(f"Context full: n_past={session.n_past}, n_ctx={session.n_ctx}")
        session.n_past += batch.n_tokens

        latency_s = self._next_latency_ms() / 1000.0
        if self.realtime:
            time.sleep(latency_s)
        else:
            self._clock += latency_s

    def _next_latency_ms(self):
        if self.jitter_ms == 0:
            return self.latency_ms
        return max(0.0, self.latency_ms + self._rng.uniform(-self.jitter_ms, self.jitter_ms))

    def synchronize(self, session):
        self.calls.append("synchronize")

    def reset_cache(self, session):
        self.calls.append("reset_cache")
        session.n_past = 0
        session.cache_ready = False

    def rebuild_cache(self, session):
        self.calls.append("rebuild_cache")
        session.cache_ready = True

    def now(self):
        if self.realtime:
            return time.perf_counter()
        return self._clock

    def free_session(self, session):
        self.calls.append("free_session")

    def unload_model(self, handle):
        self.calls.append("unload_model")
