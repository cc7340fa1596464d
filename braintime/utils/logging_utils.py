"""
Lightweight logging utilities for brain time analyses.

Provides consistent subject-level and group-level loggers that write both
to console and to per-run log files under derivatives.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config_loader import default_config


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _deriv_root(deriv_root: Optional[Path]) -> Path:
    return Path(deriv_root) if deriv_root is not None else default_config().deriv_root


def _attach_handlers(logger: logging.Logger, log_dir: Path, file_name: str, level: int) -> None:
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    # Console
    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    # File
    _ensure_dir(log_dir)
    fh = logging.FileHandler(log_dir / file_name, mode="w")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)
    logger.addHandler(fh)


def get_subject_logger(
    name: str,
    subject: str,
    log_file_name: Optional[str] = None,
    level: int = logging.INFO,
    deriv_root: Optional[Path] = None,
) -> logging.Logger:
    """Return a subject-scoped logger writing to derivatives/sub-<ID>/braintime/logs.

    The logger avoids duplicate handlers across repeated calls.
    """
    logger = logging.getLogger(f"{name}_sub_{subject}")
    logger.setLevel(level)
    if logger.handlers:
        return logger
    log_dir = _deriv_root(deriv_root) / f"sub-{subject}" / "braintime" / "logs"
    _attach_handlers(logger, log_dir, log_file_name or f"{name}.log", level)
    return logger


def get_group_logger(
    name: str,
    log_file_name: Optional[str] = None,
    level: int = logging.INFO,
    deriv_root: Optional[Path] = None,
) -> logging.Logger:
    """Return a group-level logger writing to derivatives/group/braintime/logs."""
    logger = logging.getLogger(f"{name}_group")
    logger.setLevel(level)
    if logger.handlers:
        return logger
    log_dir = _deriv_root(deriv_root) / "group" / "braintime" / "logs"
    _attach_handlers(logger, log_dir, log_file_name or f"{name}.log", level)
    return logger


__all__ = [
    "get_subject_logger",
    "get_group_logger",
]
