from .base import BaseDeviceProfiler
import pynvml
import logging

log = logging.getLogger(__name__)


class NvidiaGpuProfiler(BaseDeviceProfiler):
    """
    Profiler for NVIDIA GPUs using pynvml.
    Tracks the clock and power state that drop while the GPU idles.
    """
    metric_keys = {
        "sm_clock_mhz": "sm_clock_mhz",
        "performance_state": "performance_state",
        "power_watts": "power_watts",
        "utilization_percent": "utilization_percent",
    }

    def __init__(self, config, device_index: int):
        super().__init__(config)

        try:
            self.device_index = device_index
            self.handle = pynvml.nvmlDeviceGetHandleByIndex(self.device_index)
            device_name = pynvml.nvmlDeviceGetName(self.handle)
            if isinstance(device_name, bytes):
                device_name = device_name.decode()
            self.device_name = f"{device_name} (GPU {self.device_index})"
        except pynvml.NVMLError as e:
            log.error("Failed to initialize pynvml for GPU %d: %s", device_index, e)
            raise

        self.clock_available = False
        self.pstate_available = False
        self.power_available = False
        self.util_available = False

        log.info("Initialized Nvidia GPU Profiler for %s", self.device_name)
        self._check_metric_availability()

    def get_device_info(self) -> str:
        """Return the device name set during initialization."""
        return self.device_name

    def _check_metric_availability(self):
        """Performs a test-read for each metric to set availability flags."""
        try:
            pynvml.nvmlDeviceGetClockInfo(self.handle, pynvml.NVML_CLOCK_SM)
            self.clock_available = True
        except pynvml.NVMLError:
            log.warning("Could not read GPU SM clock. Disabling clock monitoring.")

        try:
            pynvml.nvmlDeviceGetPerformanceState(self.handle)
            self.pstate_available = True
        except pynvml.NVMLError:
            log.warning("Could not read GPU performance state. Disabling P-state monitoring.")

        try:
            pynvml.nvmlDeviceGetPowerUsage(self.handle)
            self.power_available = True
        except pynvml.NVMLError:
            log.warning("Could not read GPU power. Disabling power monitoring.")

        try:
            pynvml.nvmlDeviceGetUtilizationRates(self.handle)
            self.util_available = True
        except pynvml.NVMLError:
            log.warning("Could not read GPU utilization. Disabling util monitoring.")

    def read_sample(self):
        sample = {}

        if self.clock_available:
            try:
                sample["sm_clock_mhz"] = pynvml.nvmlDeviceGetClockInfo(self.handle, pynvml.NVML_CLOCK_SM)
            except pynvml.NVMLError as e:
                log.error("Could not read GPU SM clock: %s. Disabling clock monitoring.", e)
                self.clock_available = False

        if self.pstate_available:
            try:
                sample["performance_state"] = pynvml.nvmlDeviceGetPerformanceState(self.handle)
            except pynvml.NVMLError as e:
                log.error("Could not read GPU P-state: %s. Disabling P-state monitoring.", e)
                self.pstate_available = False

        if self.power_available:
            try:
                sample["power_watts"] = pynvml.nvmlDeviceGetPowerUsage(self.handle) / 1000.0
            except pynvml.NVMLError as e:
                log.error("Could not read GPU power: %s. Disabling power monitoring.", e)
                self.power_available = False

        if self.util_available:
            try:
                sample["utilization_percent"] = pynvml.nvmlDeviceGetUtilizationRates(self.handle).gpu
            except pynvml.NVMLError as e:
                log.error("Could not read GPU util: %s. Disabling util monitoring.", e)
                self.util_available = False

        return sample
