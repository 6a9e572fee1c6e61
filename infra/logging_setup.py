# infra/logging_setup.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

# default logs/ directly under project root
DEFAULT_LOG_DIR = Path(__file__).resolve().parents[1] / "logs"

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def init_logging(
    run_name: str = "backtester",
    level_name: str = "INFO",
    log_dir: Path | str = DEFAULT_LOG_DIR,
    to_console: bool = True,
    to_file: bool = True,
) -> Optional[Path]:
    """
    Initialize root logging with:
      - one file handler (logs/<run_name>_<timestamp>.log), if to_file
      - one console handler, if to_console.

    Returns the path to the log file (None when file logging is off).
    """
    # Map "INFO" / "DEBUG" / ... to logging level
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()

    # Remove old handlers if any (avoid duplicates in REPL/tests)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATEFMT)

    logfile: Optional[Path] = None
    if to_file:
        # Allow runtime override (useful for containers)
        log_dir = Path(os.getenv("LOG_DIR", str(log_dir)))
        log_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
        logfile = log_dir / f"{run_name}_{ts}.log"

        fh = logging.FileHandler(logfile, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    if to_console:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

    if logfile is not None:
        root.info("Logging initialized. Log file: %s", logfile)
    else:
        root.info("Logging initialized (console only).")
    return logfile


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger that uses the global handlers configured by init_logging().
    """
    return logging.getLogger(name)
