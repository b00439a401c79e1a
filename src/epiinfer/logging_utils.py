"""Logging setup for the fitting scripts.

Library modules only create module loggers under the ``src.epiinfer``
namespace; handlers are attached here. The package logger can run at its
own level, so per-candidate profile and optimizer traces can be switched on
without turning on DEBUG output from numpy, scipy or other libraries.
Python warnings (scipy's OptimizeWarning, numpy RuntimeWarning from
overflowing intensities) are routed into the same handlers so they land in
the run log next to the fit that raised them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union


PACKAGE_LOGGER = __name__.rpartition(".")[0]
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level {level!r}")
    return resolved


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    package_level: Optional[Union[str, int]] = None,
    capture_warnings: bool = True,
) -> logging.Logger:
    """Configure root handlers and the package logger for one run.

    Parameters
    ----------
    level:
        Root level, applied to third-party loggers.
    log_file:
        Optional run log path; parent directories are created.
    console:
        Attach a stderr handler.
    package_level:
        Level for the ``src.epiinfer`` loggers; defaults to level. Handlers
        pass everything, so a package_level below level still reaches them.
    capture_warnings:
        Route ``warnings.warn`` output through the ``py.warnings`` logger.

    Returns
    -------
    logging.Logger
        The package logger.
    """
    root = logging.getLogger()
    root_level = _resolve_level(level)
    pkg_level = root_level if package_level is None else _resolve_level(package_level)

    # Re-running a script in one interpreter must not duplicate output.
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(root_level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(pkg_level)
    logging.captureWarnings(capture_warnings)
    return package_logger
