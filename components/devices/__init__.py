# components/devices/__init__.py
"""
Optional device telemetry sampled alongside the idle sweep.
"""
from .base import BaseDeviceProfiler
from .profiler_manager import ProfilerManager

__all__ = [
    "BaseDeviceProfiler",
    "ProfilerManager",
]
