"""
Validation of the Hydra configuration.

Everything is checked before any engine interaction so that bad input ends
the run with usage text instead of a half-started sweep.
"""
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from omegaconf import DictConfig, OmegaConf

from components.engines.engine_factory import ENGINE_TYPES, ENGINES_REQUIRING_MODEL
from components.engines.base import OFFLOAD_ALL
from .reporting import OUTPUT_FORMATS
from .sweep import (
    DEFAULT_START_MS, DEFAULT_STOP_MS, DEFAULT_STEP_MS, DEFAULT_TRIALS,
    build_idle_durations, validate_idle_durations
)

USAGE = """
example usage:

    python run.py engine.model_path=/path/to/model [engine.n_gpu_layers=N]

options:
    engine=huggingface|simulated    engine adapter (default: huggingface)
    engine.model_path=PATH          model directory or hub id (required for huggingface)
    engine.n_gpu_layers=N           layers to offload to the accelerator (default: -1, all)
    sweep.trials=N                  trials per idle duration (default: 10)
    sweep.start_ms/stop_ms/step_ms  idle duration range (default: 0..2200 step 200)
    sweep.idle_ms=[0,500,1000]      explicit idle durations, overrides the range
    output.format=text|jsonl        per-bucket output format (default: text)
    output.path=FILE                also append JSON records to FILE
    telemetry.enabled=true          sample device clocks during the sweep
"""


class ConfigError(ValueError):
    """Invalid or missing configuration value."""


@dataclass(frozen=True)
class SweepSettings:
    idle_durations_ms: Tuple[int, ...]
    trials: int = DEFAULT_TRIALS
    warmup: bool = True


@dataclass(frozen=True)
class BenchmarkSettings:
    engine: Dict[str, Any]
    session: Dict[str, Any]
    sweep: SweepSettings
    output_format: str = "text"
    output_path: Optional[str] = None
    telemetry: Dict[str, Any] = field(default_factory=dict)


def print_usage(error: Optional[str] = None, file=None):
    file = file if file is not None else sys.stderr
    if error:
        print(f"error: {error}", file=file)
    print(USAGE, file=file)


def _as_int(value, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ConfigError(f"{key} must be an integer, got {value!r}")


def _as_float(value, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ConfigError(f"{key} must be a number, got {value!r}")


def _as_bool(value, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"{key} must be true or false, got {value!r}")


def _section(cfg: DictConfig, key: str) -> Dict[str, Any]:
    node = cfg.get(key)
    if node is None:
        return {}
    if not OmegaConf.is_config(node):
        raise ConfigError(f"'{key}' must be a mapping")
    return OmegaConf.to_container(node, resolve=True)


def get_engine_config(cfg: DictConfig) -> Dict[str, Any]:
    engine = _section(cfg, "engine")
    engine_type = engine.setdefault("type", "huggingface")
    if engine_type not in ENGINE_TYPES:
        raise ConfigError(f"engine.type must be one of {list(ENGINE_TYPES)}, got {engine_type!r}")

    if engine_type in ENGINES_REQUIRING_MODEL and not engine.get("model_path"):
        raise ConfigError("engine.model_path is required")

    n_gpu_layers = _as_int(engine.get("n_gpu_layers", OFFLOAD_ALL), "engine.n_gpu_layers")
    if n_gpu_layers < OFFLOAD_ALL:
        raise ConfigError(f"engine.n_gpu_layers must be -1 (all) or >= 0, got {n_gpu_layers}")
    engine["n_gpu_layers"] = n_gpu_layers

    if engine_type == "simulated":
        for key, default in (("latency_ms", 50.0), ("jitter_ms", 0.0)):
            value = _as_float(engine.get(key, default), f"engine.{key}")
            if value < 0:
                raise ConfigError(f"engine.{key} must be non-negative, got {value}")
            engine[key] = value
        engine["seed"] = _as_int(engine.get("seed", 0), "engine.seed")
        engine["realtime"] = _as_bool(engine.get("realtime", False), "engine.realtime")

    if engine.get("fail_on_decode") is not None:
        engine["fail_on_decode"] = _as_int(engine["fail_on_decode"], "engine.fail_on_decode")
    return engine


def get_session_config(cfg: DictConfig) -> Dict[str, Any]:
    session = _section(cfg, "session")
    n_ctx = _as_int(session.get("n_ctx", 512), "session.n_ctx")
    n_batch = _as_int(session.get("n_batch", 512), "session.n_batch")
    if n_ctx <= 0 or n_batch <= 0:
        raise ConfigError(f"session.n_ctx and session.n_batch must be positive, got {n_ctx} and {n_batch}")
    return {
        "n_ctx": n_ctx,
        "n_batch": n_batch,
        "precise_timing": _as_bool(session.get("precise_timing", True), "session.precise_timing"),
    }


def get_sweep_settings(cfg: DictConfig) -> SweepSettings:
    sweep = _section(cfg, "sweep")
    trials = _as_int(sweep.get("trials", DEFAULT_TRIALS), "sweep.trials")
    if trials < 1:
        raise ConfigError(f"sweep.trials must be at least 1, got {trials}")

    try:
        idle_ms = sweep.get("idle_ms")
        if idle_ms is not None:
            if not isinstance(idle_ms, (list, tuple)):
                raise ConfigError(f"sweep.idle_ms must be a list, got {idle_ms!r}")
            durations = validate_idle_durations(
                [_as_int(d, "sweep.idle_ms") for d in idle_ms])
        else:
            durations = build_idle_durations(
                _as_int(sweep.get("start_ms", DEFAULT_START_MS), "sweep.start_ms"),
                _as_int(sweep.get("stop_ms", DEFAULT_STOP_MS), "sweep.stop_ms"),
                _as_int(sweep.get("step_ms", DEFAULT_STEP_MS), "sweep.step_ms"),
            )
    except ConfigError:
        raise
    except ValueError as e:
        raise ConfigError(str(e)) from e

    return SweepSettings(
        idle_durations_ms=durations,
        trials=trials,
        warmup=_as_bool(sweep.get("warmup", True), "sweep.warmup"),
    )


def get_telemetry_config(cfg: DictConfig) -> Dict[str, Any]:
    telemetry = _section(cfg, "telemetry")
    telemetry["enabled"] = _as_bool(telemetry.get("enabled", False), "telemetry.enabled")
    telemetry.setdefault("device", "auto")
    try:
        interval = float(telemetry.get("sampling_interval", 0.1))
    except (TypeError, ValueError):
        raise ConfigError(f"telemetry.sampling_interval must be a number, got {telemetry.get('sampling_interval')!r}")
    if interval <= 0:
        raise ConfigError(f"telemetry.sampling_interval must be positive, got {interval}")
    telemetry["sampling_interval"] = interval
    return telemetry


def validate_config(cfg: DictConfig) -> BenchmarkSettings:
    """
    Convert the Hydra config into validated settings.

    Raises:
        ConfigError: On any missing or malformed value.
    """
    output = _section(cfg, "output")
    output_format = output.get("format", "text")
    if output_format not in OUTPUT_FORMATS:
        raise ConfigError(f"output.format must be one of {list(OUTPUT_FORMATS)}, got {output_format!r}")

    return BenchmarkSettings(
        engine=get_engine_config(cfg),
        session=get_session_config(cfg),
        sweep=get_sweep_settings(cfg),
        output_format=output_format,
        output_path=output.get("path"),
        telemetry=get_telemetry_config(cfg),
    )
