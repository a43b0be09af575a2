# components/devices/profiler_manager.py
import torch
import logging
from typing import Any, Dict, List
import pynvml
from .base import BaseDeviceProfiler
from .cpu_profiler import LocalCpuProfiler
from .nvidia_gpu_profiler import NvidiaGpuProfiler

log = logging.getLogger(__name__)


def get_profiler_classes(device: str = "auto") -> List:
    """
    Returns the profiler classes to use for the requested telemetry device.
    """
    device = (device or "auto").lower()

    if device == "cpu":
        log.info("Telemetry device: CPU")
        return [LocalCpuProfiler]
    if device == "all":
        log.info("Telemetry device: CPU and CUDA")
        profilers = [LocalCpuProfiler]
        if torch.cuda.is_available():
            profilers.append(NvidiaGpuProfiler)
        return profilers
    if device == "cuda":
        if torch.cuda.is_available():
            log.info("Telemetry device: CUDA")
            return [NvidiaGpuProfiler]
        log.warning("CUDA telemetry requested but not available. Falling back to CPU.")
        return [LocalCpuProfiler]
    if device != "auto":
        log.warning("Unknown telemetry device '%s', falling back to auto-detection", device)

    if torch.cuda.is_available():
        return [NvidiaGpuProfiler]
    return [LocalCpuProfiler]


class ProfilerManager:
    """
    Coordinates device profilers for the duration of a sweep and reduces
    their samples per idle-duration bucket.
    """

    def __init__(self, config: Dict):
        """
        Args:
            config: Telemetry configuration dictionary.
        """
        self.config = config
        self.profilers: Dict[str, BaseDeviceProfiler] = {}
        self._pynvml_initialized = False
        self._initialize_profilers()
        log.info("Initialized %d profiler(s)", len(self.profilers))

    def _initialize_profilers(self):
        profiler_classes = get_profiler_classes(self.config.get("device", "auto"))

        # pynvml is initialized once for all GPU profilers
        if NvidiaGpuProfiler in profiler_classes:
            try:
                pynvml.nvmlInit()
                self._pynvml_initialized = True
                log.debug("pynvml initialized")
            except pynvml.NVMLError as e:
                log.warning("Failed to initialize pynvml: %s. GPU telemetry disabled", e)
                profiler_classes.remove(NvidiaGpuProfiler)

        for profiler_class in profiler_classes:
            try:
                if profiler_class == NvidiaGpuProfiler:
                    index = int(self.config.get("gpu_index", 0))
                    self.profilers[f"gpu{index}"] = profiler_class(self.config, device_index=index)
                else:
                    self.profilers["cpu"] = profiler_class(self.config)
            except Exception as e:
                log.error("Failed to initialize %s profiler: %s", profiler_class.__name__, e, exc_info=True)

        for profiler in self.profilers.values():
            log.info("Telemetry on %s", profiler.get_device_info())

    def start_all(self):
        log.debug("Starting %d profiler(s)", len(self.profilers))
        for profiler in self.profilers.values():
            profiler.start_monitoring()

    def stop_all(self):
        log.debug("Stopping profilers")
        for profiler in self.profilers.values():
            profiler.stop_monitoring()

        if self._pynvml_initialized:
            try:
                pynvml.nvmlShutdown()
            except pynvml.NVMLError as e:
                log.warning("Failed to shut down pynvml: %s", e)
            self._pynvml_initialized = False

    def window_metrics(self, start: float, end: float) -> Dict[str, Any]:
        """
        Merge every profiler's aggregates for samples taken within [start, end].
        Sample counts are reported per profiler as '<name>_num_samples'.
        """
        merged = {}
        for name, profiler in self.profilers.items():
            metrics = profiler.get_window_metrics(start, end)
            merged[f"{name}_num_samples"] = metrics.pop("num_samples", 0)
            merged.update(metrics)
        return merged

    def __enter__(self):
        """Start profilers when entering a 'with' block."""
        self.start_all()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Stop profilers when exiting a 'with' block."""
        self.stop_all()
