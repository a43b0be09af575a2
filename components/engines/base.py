from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict
import logging

log = logging.getLogger(__name__)

# Sentinel for "offload every layer to the accelerator"
OFFLOAD_ALL = -1


class EngineError(RuntimeError):
    """Base class for all engine adapter failures."""


class EngineSetupError(EngineError):
    """Model, session or probe workload could not be created."""


class DecodeError(EngineError):
    """A decode or synchronize call failed during a trial."""


class TrialError(EngineError):
    """A measurement violated a timing invariant (e.g. negative elapsed time)."""


@dataclass(frozen=True)
class ProbeBatch:
    """Fixed single-token workload decoded by every trial."""
    token_id: int
    payload: Any = field(default=None, compare=False, repr=False)

    @property
    def n_tokens(self) -> int:
        return 1


class BaseEngine(ABC):
    """
    Capability interface of an inference engine.

    The harness only ever talks to an engine through these operations, so a
    simulated engine can stand in for real hardware.
    """

    @abstractmethod
    def load_model(self, config) -> Any:
        """Load model weights. Returns an opaque model handle."""
        raise NotImplementedError

    @abstractmethod
    def create_session(self, handle, config) -> Any:
        """Create the working state (KV cache etc.) for a loaded model."""
        raise NotImplementedError

    @abstractmethod
    def build_probe_batch(self, handle, session) -> ProbeBatch:
        """Build the one-token workload used for every trial."""
        raise NotImplementedError

    @abstractmethod
    def decode(self, session, batch: ProbeBatch) -> None:
        """Run one forward step over the batch. Raises DecodeError on failure."""
        raise NotImplementedError

    @abstractmethod
    def synchronize(self, session) -> None:
        """Block until all work queued on the session has completed."""
        raise NotImplementedError

    @abstractmethod
    def reset_cache(self, session) -> None:
        """Discard all cached per-session state."""
        raise NotImplementedError

    @abstractmethod
    def rebuild_cache(self, session) -> None:
        """Re-create an empty cache after reset_cache."""
        raise NotImplementedError

    @abstractmethod
    def now(self) -> float:
        """Monotonic high-resolution clock reading in seconds."""
        raise NotImplementedError

    def free_session(self, session) -> None:
        """Release session resources."""
        pass

    def unload_model(self, handle) -> None:
        """Release all model-related resources from VRAM and RAM."""
        pass

    def get_perf_metrics(self, session) -> Dict[str, float]:
        """Engine-side performance counters, if the session keeps any."""
        return {}


@contextmanager
def open_engine(engine: BaseEngine, model_config, session_config):
    """
    Load a model and create a session, yielding (handle, session).

    Both are released on exit in reverse order of creation, whatever happens
    inside the block. Teardown failures are logged and never replace the
    exception that ended the block.
    """
    handle = engine.load_model(model_config)
    try:
        session = engine.create_session(handle, session_config)
    except BaseException:
        _safe_teardown(engine.unload_model, handle, "model")
        raise

    try:
        yield handle, session
    finally:
        _safe_teardown(engine.free_session, session, "session")
        _safe_teardown(engine.unload_model, handle, "model")


def _safe_teardown(release, resource, what: str):
    try:
        release(resource)
        log.debug("Released %s", what)
    except Exception as e:
        log.error("Failed to release %s: %s", what, e, exc_info=True)
