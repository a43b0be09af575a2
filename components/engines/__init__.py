# components/engines/__init__.py
"""
Engine adapters: the capability interface the harness measures through.
"""
from .base import (
    BaseEngine,
    ProbeBatch,
    EngineError,
    EngineSetupError,
    DecodeError,
    TrialError,
    open_engine,
)
from .engine_factory import get_engine
from .simulated_engine import SimulatedEngine

__all__ = [
    "BaseEngine",
    "ProbeBatch",
    "EngineError",
    "EngineSetupError",
    "DecodeError",
    "TrialError",
    "open_engine",
    "get_engine",
    "SimulatedEngine",
]
