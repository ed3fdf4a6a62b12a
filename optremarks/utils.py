"""Small helpers shared by the loader, the renderer and the CLI."""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from termcolor import colored

logger = logging.getLogger(__name__)

R = TypeVar("R")


def time_block(
    label: str,
    fn: Callable[[], R],
    level: int = logging.DEBUG,
    log: logging.Logger = logger,
) -> R:
    """Run *fn* and log *label* together with the elapsed wall time."""
    start = time.perf_counter()
    result = fn()
    log.log(level, "%s (%.2fs)", label, time.perf_counter() - start)
    return result


def default_workers(workers: Optional[int] = None) -> int:
    """Worker count for the thread pools: explicit value, ``$OPTREMARKS_JOBS``, CPUs."""
    if workers is not None and workers > 0:
        return workers
    env = os.environ.get("OPTREMARKS_JOBS", "")
    if env.isdigit() and int(env) > 0:
        return int(env)
    return min(32, (os.cpu_count() or 1) + 4)


def cli_format_path(path: Union[str, Path]) -> str:
    """Formats a path in a unified way for terminal output."""
    return colored(str(path), "yellow")


def ensure_directory(path: Path) -> Path:
    """Make sure that *path* exists as a directory."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def clear_directory(path: Path) -> Path:
    """Remove *path* with all its contents (if present) and recreate it."""
    if path.exists():
        shutil.rmtree(path)
    return ensure_directory(path)


__all__ = ["time_block", "default_workers", "cli_format_path", "ensure_directory", "clear_directory"]
