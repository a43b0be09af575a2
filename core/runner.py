import logging
import time
from contextlib import ExitStack
from typing import Optional

from omegaconf import DictConfig, OmegaConf

from components.engines import EngineError, EngineSetupError, get_engine, open_engine
from components.devices import ProfilerManager
from .config import BenchmarkSettings, ConfigError, print_usage, validate_config
from .reporting import SummaryReporter
from .sweep import run_sweep

log = logging.getLogger(__name__)

# Exit statuses
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _setup_telemetry(settings: BenchmarkSettings) -> Optional[ProfilerManager]:
    """
    Create the profiler manager if telemetry is enabled.
    Telemetry problems never abort the benchmark.
    """
    if not settings.telemetry.get("enabled"):
        return None
    try:
        manager = ProfilerManager(settings.telemetry)
    except Exception as e:
        log.warning("Device telemetry disabled: %s", e)
        return None
    if not manager.profilers:
        log.warning("No device profilers available, telemetry disabled")
        return None
    return manager


def _run_execution(engine, session, batch, settings: BenchmarkSettings,
                   reporter: SummaryReporter, profiler_manager: Optional[ProfilerManager]):
    """
    Drive the sweep and report each bucket as soon as it completes.
    """
    sweep = settings.sweep
    summaries = run_sweep(
        engine, session, batch,
        sweep.idle_durations_ms, sweep.trials,
        warmup=sweep.warmup,
    )

    # The sweep is lazy: a bucket runs entirely between two iterations
    window_start = time.perf_counter()
    for summary in summaries:
        if profiler_manager:
            summary = summary.with_device(
                profiler_manager.window_metrics(window_start, time.perf_counter()))
        reporter.report(summary)
        window_start = time.perf_counter()


def run_benchmark(cfg: DictConfig) -> int:
    """
    Main benchmark orchestration function.

    Returns:
        Process exit status.
    """
    log.info("Starting IdleBench")
    log.debug("Configuration:\n%s", OmegaConf.to_yaml(cfg))

    try:
        settings = validate_config(cfg)
    except ConfigError as e:
        log.error("Invalid configuration: %s", e)
        print_usage(str(e))
        return EXIT_FAILURE

    engine = get_engine(settings.engine)
    log.debug("Engine: %s", engine.__class__.__name__)

    try:
        with ExitStack() as stack:
            log.info("Loading model: %s", settings.engine.get("model_path") or settings.engine["type"])
            handle, session = stack.enter_context(
                open_engine(engine, settings.engine, settings.session))
            batch = engine.build_probe_batch(handle, session)

            reporter = stack.enter_context(
                SummaryReporter(settings.output_format, jsonl_path=settings.output_path))
            profiler_manager = _setup_telemetry(settings)
            if profiler_manager:
                stack.enter_context(profiler_manager)

            try:
                _run_execution(engine, session, batch, settings, reporter, profiler_manager)
            finally:
                log.info("Reported %d/%d idle durations", reporter.reported,
                         len(settings.sweep.idle_durations_ms))
                perf = engine.get_perf_metrics(session)
                if perf:
                    log.info("Engine perf: %d decodes, %.2f ms total, %.3f ms avg",
                             perf["n_eval"], perf["t_eval_ms"], perf["avg_eval_ms"])

    except EngineSetupError as e:
        log.critical("Setup failed: %s", e)
        return EXIT_FAILURE
    except EngineError as e:
        log.critical("Sweep aborted: %s: %s", type(e).__name__, e, exc_info=True)
        return EXIT_FAILURE
    except OSError as e:
        log.critical("Cannot write results: %s", e)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log.warning("Interrupted, partial results above")
        return EXIT_INTERRUPTED

    log.info("Benchmark completed")
    return EXIT_OK
