"""Logging configuration for duocaster."""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

# Loggers whose records come from the narration loop thread
NARRATION_LOOP_LOGGERS = ("duocaster.voice", "aiohttp")


class NamespaceFilter(logging.Filter):
    """Pass records from the ``duocaster`` namespace only."""

    def __init__(self, namespace: str = "duocaster"):
        super().__init__()
        self.namespace = namespace

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name == self.namespace or record.name.startswith(self.namespace + ".")


def setup_logger(
    verbose: bool = True,
    save_to_file: bool = False,
    loop_level: Optional[int] = None,
    log_dir: str = "data/runs",
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set level to DEBUG, otherwise INFO
        save_to_file: If True, also log to a timestamped file under ``log_dir``
        loop_level: Level for the narration loop thread's loggers. None leaves
            them at the root level; WARNING keeps per-turn chatter off a busy run.
        log_dir: Directory for run log files

    Returns:
        Configured logger
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.handlers.clear()

    for name in NARRATION_LOOP_LOGGERS:
        logging.getLogger(name).setLevel(loop_level if loop_level is not None else logging.NOTSET)

    # Turns are logged from both the game loop and the narration thread
    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )
    simple_formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)
    console_handler.addFilter(NamespaceFilter())
    logger.addHandler(console_handler)

    if save_to_file:
        try:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = path / f"run_{timestamp}.log"

            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(detailed_formatter)
            logger.addHandler(file_handler)

            logger.info(f"Logging to file: {log_file}")
        except OSError as e:
            logger.error(f"Failed to create file handler: {e}")

    return logger
