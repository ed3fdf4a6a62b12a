"""
optremarks — Optimization Remark Reports for LLVM-based Compilers
=================================================================

This package turns the YAML optimization remarks emitted by ``rustc``
(``-Cremark=all -Zremark-dir=…``) and other LLVM front-ends into a static,
cross-linked HTML report.

Core modules
------------
model
    Immutable record model: ``Location``, ``Function``, ``PlainText``,
    ``AnnotatedReference``, ``Remark`` and ``LoadOptions``.
demangle
    Symbol demangling plus legacy Rust hash/escape clean-up.
parse
    Remark document decoding, filtering policy and message reconstruction.
loader
    Parallel loading of a whole remark directory.
index
    ``FileIndex`` — source file → remarks mapping driving page generation.
render
    Jinja2 rendering of ``index.html`` and one page per source file.
callback
    Progress callbacks (``start`` / ``advance`` / ``finish``).
toolchain
    ``cargo`` / ``rustc`` invocation boundary.
main
    Command-line entry point (``python -m optremarks``).

Quick start
-----------
>>> from pathlib import Path
>>> from optremarks import LoadOptions, load_remarks_from_dir, render_remarks
>>> options = LoadOptions(source_root=Path("."))
>>> remarks = load_remarks_from_dir("target/remarks/yaml", options)
>>> render_remarks(remarks, Path("."), Path("out"))

Package layout
--------------
::

    optremarks/
    ├── __init__.py            ← this file
    ├── model.py
    ├── demangle.py
    ├── parse.py
    ├── loader.py
    ├── index.py
    ├── render.py
    ├── callback.py
    ├── errors.py
    ├── utils.py
    ├── toolchain.py
    ├── main.py
    └── templates/
"""

from __future__ import annotations

import logging
from typing import List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.3.0"
__author__ = "optremarks contributors"
__license__ = "MIT"

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

from optremarks.model import (  # noqa: E402
    DEFAULT_KIND_FILTER,
    EXPECTED_EXTENSION,
    AnnotatedReference,
    Function,
    LoadOptions,
    Location,
    MessagePart,
    PlainText,
    Remark,
)
from optremarks.errors import (  # noqa: E402
    DocumentDecodeError,
    RemarkDirectoryError,
    RemarkError,
    RemarkFileError,
    RenderError,
    ToolchainError,
)
from optremarks.parse import load_remarks_from_file, parse_remarks  # noqa: E402
from optremarks.loader import load_remarks_from_dir  # noqa: E402
from optremarks.index import FileIndex  # noqa: E402
from optremarks.render import INDEX_FILE_PATH, RenderResult, render_remarks  # noqa: E402

__all__: List[str] = [
    "__version__",
    "DEFAULT_KIND_FILTER",
    "EXPECTED_EXTENSION",
    "AnnotatedReference",
    "Function",
    "LoadOptions",
    "Location",
    "MessagePart",
    "PlainText",
    "Remark",
    "RemarkError",
    "RemarkDirectoryError",
    "RemarkFileError",
    "DocumentDecodeError",
    "RenderError",
    "ToolchainError",
    "parse_remarks",
    "load_remarks_from_file",
    "load_remarks_from_dir",
    "FileIndex",
    "INDEX_FILE_PATH",
    "RenderResult",
    "render_remarks",
]
