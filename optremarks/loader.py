"""
optremarks/loader.py
════════════════════

Load every remark file of a directory in parallel.

Each ``*.opt.yaml`` file is an independent unit of work: it is parsed on a
``ThreadPoolExecutor`` worker, and a failure (unreadable file, unexpected
exception) is logged and excluded without affecting the other files.
Results are concatenated in file-name order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterable, List, Optional, Union

from optremarks.callback import LoadCallback, NullCallback
from optremarks.errors import RemarkDirectoryError, RemarkError
from optremarks.model import EXPECTED_EXTENSION, LoadOptions, Remark
from optremarks.parse import load_remarks_from_file
from optremarks.utils import default_workers

logger = logging.getLogger(__name__)


class LoadResult(List[Remark]):
    """The loaded remarks; ``failed_files`` lists files that were skipped."""

    def __init__(self, remarks: Iterable[Remark] = (), failed_files: Iterable[Path] = ()) -> None:
        super().__init__(remarks)
        self.failed_files: List[Path] = list(failed_files)

    @property
    def ok(self) -> bool:
        return not self.failed_files


def find_remark_files(directory: Union[str, Path]) -> List[Path]:
    """Return the remark files directly inside *directory*, sorted by name.

    Raises
    ------
    RemarkDirectoryError
        The directory does not exist or cannot be listed.
    """
    try:
        directory = Path(directory).resolve(strict=True)
        entries = sorted(directory.iterdir())
    except OSError as exc:
        raise RemarkDirectoryError(
            f"Could not read remark directory {directory}",
            path=directory,
            hint="pass the directory that contains the *.opt.yaml files",
        ) from exc

    return [
        entry for entry in entries
        if entry.name.endswith(EXPECTED_EXTENSION) and entry.is_file()
    ]


def load_remarks_from_dir(
    path: Union[str, Path],
    options: LoadOptions,
    callback: Optional[LoadCallback] = None,
    workers: Optional[int] = None,
) -> LoadResult:
    """Parse all remark files in *path* and concatenate their remarks."""
    callback = callback or NullCallback()
    files = find_remark_files(path)
    logger.debug("Parsing %d file(s) from %s", len(files), path)

    results: List[List[Remark]] = [[] for _ in files]
    failed: List[Path] = []

    def work(file: Path) -> List[Remark]:
        try:
            return load_remarks_from_file(file, options)
        finally:
            callback.advance()

    callback.start(len(files))
    if files:
        with ThreadPoolExecutor(max_workers=default_workers(workers)) as executor:
            futures = {executor.submit(work, file): idx for idx, file in enumerate(files)}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except RemarkError as exc:
                    failed.append(files[idx])
                    logger.error("Failed to load remarks from %s: %s", files[idx], exc)
                except Exception as exc:
                    failed.append(files[idx])
                    logger.error(
                        "Failed to load remarks from %s: %s", files[idx], exc, exc_info=True
                    )
    callback.finish()

    if failed:
        logger.warning("%d of %d remark file(s) could not be loaded", len(failed), len(files))

    remarks = LoadResult(
        (remark for chunk in results for remark in chunk), sorted(failed)
    )
    logger.debug(
        "Loaded %d remark(s) from %d file(s)", len(remarks), len(files) - len(failed)
    )
    return remarks


__all__ = ["LoadResult", "find_remark_files", "load_remarks_from_dir"]
