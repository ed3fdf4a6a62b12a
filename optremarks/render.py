"""
optremarks/render.py
════════════════════

Static HTML report generation.

Output layout
─────────────
::

    <output_dir>/
    ├── index.html              ← every remark, as embedded JSON + nav list
    ├── assets/                 ← copied verbatim from templates/assets
    └── src/
        ├── src_main.rs.html    ← one page per source file with remarks
        └── …

Page names are derived from the remark file key alone (see
:func:`source_page_name`), so the same input always yields the same file
set.  Remarks are sorted before serialization, which keeps ``index.html``
byte-stable regardless of the order in which remark files were loaded.

Templates are rendered with Jinja2 (autoescaping on); message HTML is built
here with :func:`html.escape` and inserted as ``|safe``.
"""

from __future__ import annotations

import html
import logging
import shutil
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Container, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import jinja2

from optremarks.callback import LoadCallback, NullCallback
from optremarks.errors import ErrorCode, RemarkError, RenderError, SourcePageError
from optremarks.index import FileIndex
from optremarks.model import (
    AnnotatedReference,
    Location,
    MessagePart,
    Remark,
    is_absolute_path,
)
from optremarks.utils import clear_directory, default_workers

logger = logging.getLogger(__name__)

INDEX_FILE_PATH = "index.html"
SOURCE_DIR = "src"
ASSETS_DIR = "assets"
PAGE_EXTENSION = ".html"

_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
_ASSET_SOURCE_DIR = _TEMPLATE_DIR / "assets"


# ═════════════════════════════════════════════════════════════════════════
#  PATHS AND LINKS
# ═════════════════════════════════════════════════════════════════════════

def source_page_name(file: str) -> str:
    """File name of the page for source file *file* (pure, no I/O)."""
    return file.replace("/", "_").replace("\\", "_") + PAGE_EXTENSION


def source_page_url(file: str, prefix: str = "") -> str:
    """URL of the page for *file*, relative to a page living in *prefix*."""
    return prefix + quote(source_page_name(file))


def source_lines(text: str) -> List[str]:
    """Split *text* on line feeds only, the way compilers count lines."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def resolve_source_path(source_root: Path, file: str) -> Path:
    if is_absolute_path(file):
        return Path(file)
    return source_root / file


def render_location(location: Location, label: Optional[str] = None, prefix: str = "") -> str:
    """``<a>`` element pointing at ``#L<line>`` of the location's page."""
    if label is None:
        label = f"{location.file}:{location.line}:{location.column}"
    href = f"{source_page_url(location.file, prefix)}#L{location.line}"
    return f"<a href='{html.escape(href)}'>{html.escape(label)}</a>"


def render_label(location: Location, label: Optional[str] = None) -> str:
    """Unlinked counterpart of :func:`render_location`."""
    if label is None:
        label = str(location)
    return f"<span title='{html.escape(str(location))}'>{html.escape(label)}</span>"


def format_message(
    parts: Sequence[MessagePart],
    prefix: str = "",
    pages: Optional[Container[str]] = None,
) -> str:
    """Render message parts as inline HTML.

    When *pages* is given, references to files outside it (files that get no
    page of their own) are rendered as unlinked labels.
    """
    chunks: List[str] = []
    for part in parts:
        if isinstance(part, AnnotatedReference):
            if pages is not None and part.location.file not in pages:
                chunks.append(render_label(part.location, part.text or None))
            else:
                chunks.append(render_location(part.location, part.text or None, prefix))
        else:
            chunks.append(html.escape(part.text))
    return "".join(chunks)


# ═════════════════════════════════════════════════════════════════════════
#  VIEW MODELS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NavEntry:
    file: str
    url: str
    count: int
    external: bool


@dataclass(frozen=True, order=True)
class SourceRemark:
    """A remark as shown on a source page; equality drives deduplication."""
    line: int
    name: str
    function: str
    message: str


@dataclass
class RenderResult:
    output_dir: Path
    index_path: Path
    pages_written: int = 0
    pages_failed: int = 0
    failed_files: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.pages_failed == 0


def remark_sort_key(remark: Remark) -> Tuple[Any, ...]:
    location = remark.location
    return (
        location.file if location else "",
        location.line if location else 0,
        location.column if location else 0,
        remark.name,
        remark.function.name,
        remark.pass_name,
        remark.plain_message(),
    )


def summary_entry(
    remark: Remark,
    prefix: str = SOURCE_DIR + "/",
    pages: Optional[Container[str]] = None,
) -> Dict[str, Optional[str]]:
    location = remark.location
    return {
        "name": remark.name,
        "location": render_location(location, prefix=prefix) if location else None,
        "function": html.escape(remark.function.name),
        "message": format_message(remark.message, prefix, pages),
    }


def build_navigation(index: FileIndex, prefix: str = "") -> List[NavEntry]:
    """Pages ordered project files first, then by descending remark count."""
    entries = []
    for file, remarks in index.populated():
        external = is_absolute_path(file) or any(
            r.location is not None and r.location.external for r in remarks
        )
        entries.append(NavEntry(file, source_page_url(file, prefix), len(remarks), external))
    # sorted() is stable: ties keep index insertion order.
    return sorted(entries, key=lambda e: (e.external, -e.count))


def source_remarks(
    remarks: Sequence[Remark], pages: Optional[Container[str]] = None
) -> List[SourceRemark]:
    """Deduplicate on ``{name, function, line, message}`` and sort by line."""
    unique = {
        SourceRemark(
            line=r.location.line if r.location else 0,
            name=r.name,
            function=r.function.name,
            message=format_message(r.message, pages=pages),
        )
        for r in remarks
    }
    return sorted(unique)


def kind_counts(remarks: Sequence[Remark]) -> List[Tuple[str, int]]:
    counts = Counter(r.name for r in remarks)
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


# ═════════════════════════════════════════════════════════════════════════
#  RENDERER
# ═════════════════════════════════════════════════════════════════════════

def _environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=True,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=jinja2.StrictUndefined,
    )


def _write(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")


def copy_assets(output_dir: Path) -> None:
    shutil.copytree(_ASSET_SOURCE_DIR, output_dir / ASSETS_DIR)


def render_remarks(
    remarks: Sequence[Remark],
    source_root: Union[str, Path],
    output_dir: Union[str, Path],
    callback: Optional[LoadCallback] = None,
    index: Optional[FileIndex] = None,
    workers: Optional[int] = None,
) -> RenderResult:
    """Write the complete report for *remarks* into *output_dir*.

    Raises
    ------
    RenderError
        The output directory, the assets or ``index.html`` cannot be written.
        Failures of single source pages are logged and counted in the
        returned :class:`RenderResult` instead.
    """
    source_root = Path(source_root)
    output_dir = Path(output_dir)
    callback = callback or NullCallback()
    if index is None:
        index = FileIndex.build(remarks)

    try:
        clear_directory(output_dir)
        (output_dir / SOURCE_DIR).mkdir()
    except OSError as exc:
        raise RenderError(f"Cannot create output directory {output_dir}", path=output_dir) from exc
    try:
        copy_assets(output_dir)
    except (OSError, shutil.Error) as exc:
        raise RenderError("Cannot copy asset files to output directory", path=output_dir) from exc

    env = _environment()
    index_template = env.get_template("index.jinja")
    page_template = env.get_template("source-file.jinja")

    pages = index.populated()
    page_files = frozenset(file for file, _ in pages)

    # ── index page ──────────────────────────────────────────────────
    ordered = sorted(remarks, key=remark_sort_key)
    index_path = output_dir / INDEX_FILE_PATH
    content = index_template.render(
        remarks=[summary_entry(r, pages=page_files) for r in ordered],
        total=len(ordered),
        kinds=kind_counts(ordered),
        nav=build_navigation(index, prefix=SOURCE_DIR + "/"),
        assets=ASSETS_DIR + "/",
    )
    try:
        _write(index_path, content)
    except OSError as exc:
        raise RenderError(
            f"Cannot write {index_path}", code=ErrorCode.INDEX_WRITE, path=index_path
        ) from exc

    # ── source pages ────────────────────────────────────────────────
    pages = index.populated()
    nav = build_navigation(index)
    result = RenderResult(output_dir=output_dir, index_path=index_path)

    def render_page(file: str, file_remarks: List[Remark]) -> Path:
        try:
            source_path = resolve_source_path(source_root, file)
            try:
                text = source_path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise SourcePageError(
                    f"Cannot read source file {source_path}", path=source_path
                ) from exc

            entries = source_remarks(file_remarks, page_files)
            by_line: Dict[int, List[SourceRemark]] = {}
            for entry in entries:
                by_line.setdefault(entry.line, []).append(entry)
            lines = source_lines(text)
            unanchored = [e for e in entries if not 1 <= e.line <= len(lines)]

            page_path = output_dir / SOURCE_DIR / source_page_name(file)
            content = page_template.render(
                path=file,
                lines=lines,
                by_line=by_line,
                unanchored=unanchored,
                count=len(entries),
                nav=nav,
                index_url="../" + INDEX_FILE_PATH,
                assets="../" + ASSETS_DIR + "/",
            )
            try:
                _write(page_path, content)
            except OSError as exc:
                raise SourcePageError(
                    f"Cannot write {page_path}", code=ErrorCode.PAGE_WRITE, path=page_path
                ) from exc
            return page_path
        finally:
            callback.advance()

    callback.start(len(pages))
    if pages:
        with ThreadPoolExecutor(max_workers=default_workers(workers)) as executor:
            futures = {
                executor.submit(render_page, file, file_remarks): file
                for file, file_remarks in pages
            }
            for future in as_completed(futures):
                file = futures[future]
                try:
                    future.result()
                    result.pages_written += 1
                except RemarkError as exc:
                    result.pages_failed += 1
                    result.failed_files.append(file)
                    logger.error("Cannot render page for %s: %s", file, exc)
                except Exception as exc:
                    result.pages_failed += 1
                    result.failed_files.append(file)
                    logger.error("Cannot render page for %s: %s", file, exc, exc_info=True)
    callback.finish()

    result.failed_files.sort()
    if result.pages_failed:
        logger.warning(
            "%d of %d source page(s) failed to render", result.pages_failed, len(pages)
        )
    return result


__all__ = [
    "INDEX_FILE_PATH",
    "SOURCE_DIR",
    "ASSETS_DIR",
    "NavEntry",
    "SourceRemark",
    "RenderResult",
    "source_page_name",
    "source_page_url",
    "source_lines",
    "resolve_source_path",
    "render_location",
    "render_label",
    "format_message",
    "summary_entry",
    "build_navigation",
    "source_remarks",
    "kind_counts",
    "copy_assets",
    "render_remarks",
]
