"""
optremarks/errors.py
════════════════════

Error types for the remark pipeline.

Error Hierarchy
───────────────
::

    RemarkError (base)
    ├── RemarkDirectoryError   - input directory cannot be listed   (fatal)
    ├── RemarkFileError        - one remark file cannot be read     (per file)
    ├── DocumentDecodeError    - one YAML document is malformed     (per document)
    ├── RenderError            - output directory / index.html      (fatal)
    ├── SourcePageError        - one source page cannot be rendered (per page)
    └── ToolchainError         - cargo / rustc invocation failed    (fatal)

Error Codes
───────────
Each error carries a code of the form ``REMARK-XXXX``:

  - 1000-1999: loading (directory, file, document)
  - 2000-2999: rendering
  - 3000-3999: toolchain

Fatal errors propagate to the CLI, which maps them to exit code 2.  Per-unit
errors are caught by the loader / renderer, logged and counted.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional, Union


class ErrorCode:
    """Stable identifiers printed alongside error messages."""

    DIRECTORY_UNREADABLE = "REMARK-1001"
    FILE_UNREADABLE = "REMARK-1002"
    DOCUMENT_MALFORMED = "REMARK-1003"

    OUTPUT_DIRECTORY = "REMARK-2001"
    INDEX_WRITE = "REMARK-2002"
    SOURCE_UNREADABLE = "REMARK-2003"
    PAGE_WRITE = "REMARK-2004"

    TOOLCHAIN_MISSING = "REMARK-3001"
    TOOLCHAIN_FAILED = "REMARK-3002"
    TOOLCHAIN_UNSUPPORTED = "REMARK-3003"


class RemarkError(Exception):
    """
    Base exception for all optremarks errors.

    ``cause`` mirrors ``__cause__`` when the error is raised with
    ``raise … from exc``; ``str()`` renders the whole cause chain so the
    operator sees *why* a file could not be processed.
    """

    default_code = "REMARK-0000"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        path: Optional[Union[str, Path]] = None,
        cause: Optional[BaseException] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.path = Path(path) if path is not None else None
        self.cause = cause
        self.hint = hint
        if cause is not None:
            self.__cause__ = cause

    def causes(self) -> Iterator[BaseException]:
        """Walk the ``__cause__`` / ``__context__`` chain."""
        seen = set()
        exc = self.__cause__ or self.__context__
        while exc is not None and id(exc) not in seen:
            seen.add(id(exc))
            yield exc
            exc = exc.__cause__ or exc.__context__

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        for cause in self.causes():
            text += f"\n  caused by: {cause}"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text


# ───────────────────────────────────────────────────────────────────────────────
# LOADING
# ───────────────────────────────────────────────────────────────────────────────

class RemarkDirectoryError(RemarkError):
    """The remark directory does not exist or cannot be listed."""

    default_code = ErrorCode.DIRECTORY_UNREADABLE


class RemarkFileError(RemarkError):
    """A single remark file could not be opened or read."""

    default_code = ErrorCode.FILE_UNREADABLE


class DocumentDecodeError(RemarkError):
    """A YAML document does not match any known remark shape."""

    default_code = ErrorCode.DOCUMENT_MALFORMED


# ───────────────────────────────────────────────────────────────────────────────
# RENDERING
# ───────────────────────────────────────────────────────────────────────────────

class RenderError(RemarkError):
    """The report cannot be produced at all."""

    default_code = ErrorCode.OUTPUT_DIRECTORY


class SourcePageError(RemarkError):
    """One per-source-file page failed; siblings are unaffected."""

    default_code = ErrorCode.SOURCE_UNREADABLE


# ───────────────────────────────────────────────────────────────────────────────
# TOOLCHAIN
# ───────────────────────────────────────────────────────────────────────────────

class ToolchainError(RemarkError):
    """``cargo`` or ``rustc`` is missing, failed, or is too old."""

    default_code = ErrorCode.TOOLCHAIN_FAILED


__all__ = [
    "ErrorCode",
    "RemarkError",
    "RemarkDirectoryError",
    "RemarkFileError",
    "DocumentDecodeError",
    "RenderError",
    "SourcePageError",
    "ToolchainError",
]
