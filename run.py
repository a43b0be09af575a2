#!/usr/bin/env python3
"""
IdleBench - decode latency after device idle

Main entry point. Measures how long one decode step of a model takes after
the device has been idle for increasing amounts of time.
"""

import os
import sys

# Prevent tokenizer fork warnings
os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")


# =============================================================================
# Main Entry Point
# =============================================================================

import hydra
from omegaconf import DictConfig
from core.runner import run_benchmark
from core.logging_setup import setup_logging


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> None:
    """Run the idle sweep with the provided Hydra configuration."""
    setup_logging(cfg)
    status = run_benchmark(cfg)
    if status != 0:
        sys.exit(status)


if __name__ == "__main__":
    main()
