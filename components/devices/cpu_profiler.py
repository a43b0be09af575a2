import platform
import psutil
from .base import BaseDeviceProfiler
import logging

log = logging.getLogger(__name__)


class LocalCpuProfiler(BaseDeviceProfiler):
    """
    Profiler for the local CPU using psutil.
    Tracks frequency scaling and utilization.
    """
    metric_keys = {
        "cpu_freq_mhz": "cpu_freq_mhz",
        "cpu_utilization_percent": "cpu_utilization_percent",
    }

    def __init__(self, config):
        super().__init__(config)
        self.device_name = platform.processor() or platform.machine()
        self.freq_available = False
        self._check_metric_availability()

        log.info("Initialized CPU Profiler for %s", self.device_name)
        # Prime psutil to avoid initial 0.0 reading
        psutil.cpu_percent(interval=None)

    def get_device_info(self) -> str:
        """Return the device name set during initialization."""
        return self.device_name

    def _check_metric_availability(self):
        try:
            self.freq_available = psutil.cpu_freq() is not None
        except (AttributeError, NotImplementedError, OSError):
            self.freq_available = False
        if not self.freq_available:
            log.warning("psutil.cpu_freq not available. Disabling frequency monitoring.")

    def read_sample(self):
        sample = {"cpu_utilization_percent": psutil.cpu_percent(interval=None, percpu=False)}
        if self.freq_available:
            freq = psutil.cpu_freq()
            if freq is not None:
                sample["cpu_freq_mhz"] = freq.current
        return sample
