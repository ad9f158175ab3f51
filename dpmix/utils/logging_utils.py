# dpmix/utils/logging_utils.py
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from rich.console import Console
from rich.logging import RichHandler
from tqdm import tqdm


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the package logger with rich console output and optional file output."""
    logger = logging.getLogger("dpmix")
    logger.setLevel(level)
    logger.propagate = False  # Avoid duplicate handlers

    for h in list(logger.handlers):
        logger.removeHandler(h)

    rh = RichHandler(console=Console(), show_time=True, show_path=False, markup=True)
    rh.setLevel(level)
    logger.addHandler(rh)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fh = logging.FileHandler(log_file)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(fh)

    logger.debug("Logger initialized.")
    return logger


@dataclass
class Timer:
    """Context timer for measuring code block durations."""
    name: str = "task"
    logger: Optional[logging.Logger] = None
    start: float = 0.0
    elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start = time.time()
        if self.logger:
            self.logger.debug(f"[{self.name}] started.")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed = time.time() - self.start
        if self.logger:
            if exc_type is None:
                self.logger.info(f"[{self.name}] finished in {self.elapsed:.3f}s.")
            else:
                self.logger.warning(f"[{self.name}] errored after {self.elapsed:.3f}s.")


def progress(iterable: Iterable, total: Optional[int] = None, desc: Optional[str] = None):
    """Wrap an iterable with a tqdm progress bar."""
    return tqdm(iterable, total=total, desc=desc, disable=not logging.getLogger("dpmix").isEnabledFor(logging.INFO))


def log_config(logger: logging.Logger, cfg: Mapping[str, Any], title: str = "Effective config") -> None:
    """Log nested settings one dotted key per line."""
    def _walk(d: Mapping[str, Any], prefix: str = "") -> None:
        for k in sorted(d):
            v = d[k]
            key = f"{prefix}.{k}" if prefix else str(k)
            if isinstance(v, Mapping):
                _walk(v, key)
            else:
                logger.info("  %s: %r", key, v)
    logger.info("%s:", title)
    _walk(cfg)
