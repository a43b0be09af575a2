from abc import ABC, abstractmethod
from typing import Any, Dict, List
import threading
import time
import logging

from .profiler_utils import window_metrics

log = logging.getLogger(__name__)


class BaseDeviceProfiler(ABC):
    """
    Abstract base class for all device profilers.
    Profilers sample hardware state in a background thread while the sweep
    runs; samples are timestamped with time.perf_counter so they can be
    matched to idle-duration buckets afterwards.
    """
    # Sample key -> metric name used in window aggregates
    metric_keys: Dict[str, str] = {}

    def __init__(self, config):
        self.config = config
        self.sampling_interval = float(config.get("sampling_interval", 0.1))
        self.samples: List[Dict[str, Any]] = []
        self._samples_lock = threading.Lock()
        self._monitoring_thread = None
        self._stop_event = threading.Event()
        self.device_name = "[Unknown Device]"

    @abstractmethod
    def get_device_info(self) -> str:
        """
        Return a string describing the hardware being profiled.
        This should be available after __init__.
        """
        raise NotImplementedError

    @abstractmethod
    def read_sample(self) -> Dict[str, Any]:
        """Read one sample of the current hardware state."""
        raise NotImplementedError

    def _monitor_process(self):
        """Sampling loop, runs until the stop event is set."""
        while not self._stop_event.is_set():
            loop_start = time.perf_counter()
            try:
                sample = self.read_sample()
            except Exception as e:
                log.error("%s sampling failed, stopping: %s", self.__class__.__name__, e)
                return
            sample["timestamp"] = loop_start
            with self._samples_lock:
                self.samples.append(sample)

            elapsed = time.perf_counter() - loop_start
            sleep_duration = self.sampling_interval - elapsed
            if sleep_duration > 0:
                self._stop_event.wait(sleep_duration)

    def start_monitoring(self):
        """Starts the monitoring thread."""
        if self._monitoring_thread is None:
            self._stop_event.clear()
            self._monitoring_thread = threading.Thread(target=self._monitor_process, daemon=True)
            self._monitoring_thread.start()
            log.debug("%s monitoring started", self.__class__.__name__)
        else:
            log.warning("%s monitoring already active", self.__class__.__name__)

    def stop_monitoring(self):
        """Stops the monitoring thread."""
        if self._monitoring_thread:
            self._stop_event.set()
            self._monitoring_thread.join(timeout=5.0)
            if self._monitoring_thread.is_alive():
                log.warning("%s monitoring thread did not stop within timeout", self.__class__.__name__)
            self._monitoring_thread = None
            log.debug("%s monitoring stopped", self.__class__.__name__)
        else:
            log.warning("No active monitoring to stop")

    def get_window_metrics(self, start: float, end: float) -> Dict[str, float]:
        """Aggregate samples taken within [start, end]."""
        with self._samples_lock:
            window = [s for s in self.samples if start <= s["timestamp"] <= end]
        return window_metrics(window, self.metric_keys)

    def __enter__(self):
        """Start monitoring when entering a 'with' block."""
        self.start_monitoring()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Stop monitoring when exiting a 'with' block."""
        self.stop_monitoring()
