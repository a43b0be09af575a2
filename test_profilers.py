#!/usr/bin/env python
"""Tests for device telemetry profilers and per-bucket window aggregation."""
import time
import unittest
from unittest.mock import MagicMock, patch

from components.devices.base import BaseDeviceProfiler
from components.devices.cpu_profiler import LocalCpuProfiler
from components.devices.nvidia_gpu_profiler import NvidiaGpuProfiler
from components.devices.profiler_manager import ProfilerManager, get_profiler_classes
from components.devices.profiler_utils import MetricAccumulator, window_metrics


class FakeProfiler(BaseDeviceProfiler):
    metric_keys = {"clock": "clock_mhz"}

    def __init__(self, config, readings):
        super().__init__(config)
        self.readings = iter(readings)

    def get_device_info(self):
        return "fake"

    def read_sample(self):
        return {"clock": next(self.readings)}


class TestMetricAccumulator(unittest.TestCase):

    def test_stats(self):
        acc = MetricAccumulator()
        for value in (3.0, None, 1.0, 2.0):
            acc.add(value)
        self.assertEqual(acc.get_stats(), {"count": 3, "average": 2.0, "peak": 3.0, "min": 1.0})

    def test_empty(self):
        self.assertEqual(MetricAccumulator().get_stats()["count"], 0)


class TestWindowMetrics(unittest.TestCase):

    def test_aggregates_present_keys_only(self):
        samples = [{"sm": 1000, "power": None}, {"sm": 1500}]
        metrics = window_metrics(samples, {"sm": "sm_clock_mhz", "power": "power_watts"})
        self.assertEqual(metrics["num_samples"], 2)
        self.assertEqual(metrics["average_sm_clock_mhz"], 1250)
        self.assertEqual(metrics["min_sm_clock_mhz"], 1000)
        self.assertEqual(metrics["peak_sm_clock_mhz"], 1500)
        self.assertNotIn("average_power_watts", metrics)

    def test_profiler_window_filters_by_timestamp(self):
        profiler = FakeProfiler({}, [])
        profiler.samples = [
            {"timestamp": 1.0, "clock": 100},
            {"timestamp": 2.0, "clock": 200},
            {"timestamp": 3.0, "clock": 300},
        ]
        metrics = profiler.get_window_metrics(1.5, 3.0)
        self.assertEqual(metrics["num_samples"], 2)
        self.assertEqual(metrics["average_clock_mhz"], 250)


class TestMonitoringThread(unittest.TestCase):

    def test_samples_collected_until_stopped(self):
        profiler = FakeProfiler({"sampling_interval": 0.001}, range(1000000))
        with profiler:
            deadline = time.perf_counter() + 2.0
            while len(profiler.samples) < 3 and time.perf_counter() < deadline:
                time.sleep(0.005)
        count = len(profiler.samples)
        self.assertGreaterEqual(count, 3)
        self.assertTrue(all("timestamp" in s for s in profiler.samples))
        time.sleep(0.01)
        self.assertEqual(len(profiler.samples), count)

    def test_sampling_error_stops_thread(self):
        profiler = FakeProfiler({"sampling_interval": 0.001}, [])
        profiler.start_monitoring()
        profiler._monitoring_thread.join(timeout=2.0)
        self.assertFalse(profiler._monitoring_thread.is_alive())
        profiler.stop_monitoring()
        self.assertEqual(profiler.samples, [])


class TestCpuProfiler(unittest.TestCase):

    @patch("components.devices.cpu_profiler.psutil")
    def test_read_sample(self, mock_psutil):
        mock_psutil.cpu_freq.return_value = MagicMock(current=2400.0)
        mock_psutil.cpu_percent.return_value = 12.5
        profiler = LocalCpuProfiler({"sampling_interval": 0.5})
        self.assertEqual(profiler.sampling_interval, 0.5)
        self.assertEqual(profiler.read_sample(), {"cpu_utilization_percent": 12.5, "cpu_freq_mhz": 2400.0})

    @patch("components.devices.cpu_profiler.psutil")
    def test_frequency_unavailable(self, mock_psutil):
        mock_psutil.cpu_freq.return_value = None
        mock_psutil.cpu_percent.return_value = 1.0
        profiler = LocalCpuProfiler({})
        self.assertNotIn("cpu_freq_mhz", profiler.read_sample())


class TestNvidiaGpuProfiler(unittest.TestCase):

    @patch("components.devices.nvidia_gpu_profiler.pynvml")
    def test_read_sample(self, mock_pynvml):
        mock_pynvml.NVMLError = type("NVMLError", (Exception,), {})
        mock_pynvml.nvmlDeviceGetName.return_value = "Tesla T4"
        mock_pynvml.nvmlDeviceGetClockInfo.return_value = 585
        mock_pynvml.nvmlDeviceGetPerformanceState.return_value = 8
        mock_pynvml.nvmlDeviceGetPowerUsage.return_value = 27000
        mock_pynvml.nvmlDeviceGetUtilizationRates.return_value = MagicMock(gpu=0)

        profiler = NvidiaGpuProfiler({}, device_index=0)
        self.assertEqual(profiler.get_device_info(), "Tesla T4 (GPU 0)")
        self.assertEqual(profiler.read_sample(), {
            "sm_clock_mhz": 585,
            "performance_state": 8,
            "power_watts": 27.0,
            "utilization_percent": 0,
        })

    @patch("components.devices.nvidia_gpu_profiler.pynvml")
    def test_unavailable_metric_skipped(self, mock_pynvml):
        nvml_error = type("NVMLError", (Exception,), {})
        mock_pynvml.NVMLError = nvml_error
        mock_pynvml.nvmlDeviceGetName.return_value = b"GeForce"
        mock_pynvml.nvmlDeviceGetClockInfo.return_value = 1800
        mock_pynvml.nvmlDeviceGetPerformanceState.return_value = 0
        mock_pynvml.nvmlDeviceGetPowerUsage.side_effect = nvml_error("not supported")
        mock_pynvml.nvmlDeviceGetUtilizationRates.return_value = MagicMock(gpu=99)

        profiler = NvidiaGpuProfiler({}, device_index=1)
        self.assertEqual(profiler.device_name, "GeForce (GPU 1)")
        self.assertNotIn("power_watts", profiler.read_sample())


class TestProfilerManager(unittest.TestCase):

    @patch("components.devices.profiler_manager.torch")
    def test_profiler_selection(self, mock_torch):
        mock_torch.cuda.is_available.return_value = False
        self.assertEqual(get_profiler_classes("auto"), [LocalCpuProfiler])
        self.assertEqual(get_profiler_classes("cuda"), [LocalCpuProfiler])

        mock_torch.cuda.is_available.return_value = True
        self.assertEqual(get_profiler_classes("auto"), [NvidiaGpuProfiler])
        self.assertEqual(get_profiler_classes("cpu"), [LocalCpuProfiler])
        self.assertEqual(get_profiler_classes("all"), [LocalCpuProfiler, NvidiaGpuProfiler])

    @patch("components.devices.profiler_manager.get_profiler_classes")
    def test_window_metrics_merged(self, mock_classes):
        mock_classes.return_value = []
        manager = ProfilerManager({"device": "cpu"})
        gpu = FakeProfiler({}, [])
        gpu.samples = [{"timestamp": 1.0, "clock": 600}, {"timestamp": 2.0, "clock": 1800}]
        manager.profilers["gpu0"] = gpu

        metrics = manager.window_metrics(0.0, 5.0)
        self.assertEqual(metrics["gpu0_num_samples"], 2)
        self.assertEqual(metrics["average_clock_mhz"], 1200)
        self.assertEqual(metrics["min_clock_mhz"], 600)

    @patch("components.devices.profiler_manager.NvidiaGpuProfiler")
    @patch("components.devices.profiler_manager.pynvml")
    @patch("components.devices.profiler_manager.get_profiler_classes")
    def test_pynvml_lifecycle(self, mock_classes, mock_pynvml, mock_gpu_cls):
        mock_classes.return_value = [mock_gpu_cls]
        mock_pynvml.NVMLError = type("NVMLError", (Exception,), {})
        mock_gpu_cls.return_value.get_device_info.return_value = "Tesla T4 (GPU 0)"

        with self.assertLogs("components.devices.profiler_manager", level="INFO") as logs:
            manager = ProfilerManager({"device": "cuda", "gpu_index": 0})
        mock_pynvml.nvmlInit.assert_called_once()
        self.assertIn("gpu0", manager.profilers)
        self.assertTrue(any("Telemetry on Tesla T4 (GPU 0)" in line for line in logs.output))

        with manager:
            mock_gpu_cls.return_value.start_monitoring.assert_called_once()
        mock_gpu_cls.return_value.stop_monitoring.assert_called_once()
        mock_pynvml.nvmlShutdown.assert_called_once()

    @patch("components.devices.profiler_manager.NvidiaGpuProfiler")
    @patch("components.devices.profiler_manager.pynvml")
    @patch("components.devices.profiler_manager.get_profiler_classes")
    def test_nvml_init_failure_disables_gpu(self, mock_classes, mock_pynvml, mock_gpu_cls):
        nvml_error = type("NVMLError", (Exception,), {})
        mock_classes.return_value = [mock_gpu_cls]
        mock_pynvml.NVMLError = nvml_error
        mock_pynvml.nvmlInit.side_effect = nvml_error("driver not loaded")

        manager = ProfilerManager({"device": "cuda"})
        self.assertEqual(manager.profilers, {})
        mock_gpu_cls.assert_not_called()


if __name__ == "__main__":
    unittest.main()
