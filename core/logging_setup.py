import logging
import os
import sys
import time
from omegaconf import DictConfig

def setup_logging(cfg: DictConfig):
    """
    Configures the root logger based on the Hydra config.

    Optionally saves all logs to a file in the 'logs/' directory (controlled by save_logs).
    Controls the console log level via the 'log_level' config key.

    Console logs go to stderr so stdout carries only the per-bucket results.
    """
    log_level_str = str(cfg.get("log_level", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    save_logs = cfg.get("save_logs", False)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] [%(name)s]: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s]: %(message)s',
        datefmt='%H:%M:%S'
    )

    root_logger.handlers = []

    log_file_path = None
    if save_logs:
        log_folder = "logs"
        os.makedirs(log_folder, exist_ok=True)
        log_file_path = os.path.join(log_folder, f"idlebench_{time.strftime('%Y-%m-%d_%H-%M-%S')}.log")

        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(logging.DEBUG)  # Log everything to the file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if save_logs:
        logging.info("Logging configured. Console level: %s, File logs at: %s", log_level_str, log_file_path)
    else:
        logging.debug("Logging configured. Console level: %s, File logging: disabled", log_level_str)
