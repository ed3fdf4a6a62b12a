"""
optremarks/model.py
═══════════════════

Immutable record model shared by the parser, the index and the renderer.

Every value here is a frozen dataclass: remarks are created once during
parsing and are only read afterwards, which lets the loader hand them across
worker threads and lets the renderer use them as set members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple, Union

#: Remark files are expected to carry this suffix.
EXPECTED_EXTENSION = ".opt.yaml"

#: Remark kinds that are very noisy and rarely actionable.
DEFAULT_KIND_FILTER: FrozenSet[str] = frozenset(
    {"FastISelFailure", "NeverInline", "SpillReloadCopies"}
)


# ═════════════════════════════════════════════════════════════════════════
#  LOCATIONS AND FUNCTIONS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Location:
    """A point in a source file.

    ``file`` is kept exactly as the compiler wrote it (project-relative or
    absolute), unless the location was resolved through the external source
    root, in which case it is the resolved absolute path and ``external`` is
    set.
    """
    file: str
    line: int = 0
    column: int = 0
    external: bool = False

    @property
    def is_absolute(self) -> bool:
        return is_absolute_path(self.file)

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Function:
    """A demangled function name with its (optional) definition site."""
    name: str
    location: Optional[Location] = None


# ═════════════════════════════════════════════════════════════════════════
#  MESSAGE PARTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class AnnotatedReference:
    """A message fragment that links to another location (e.g. a call site)."""
    text: str
    location: Location


MessagePart = Union[PlainText, AnnotatedReference]


# ═════════════════════════════════════════════════════════════════════════
#  REMARK
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Remark:
    """One missed-optimization remark.

    ``pass_name`` is the LLVM pass (``inline``, ``gvn``, …) and ``name`` the
    remark kind (``NoDefinition``, ``LoadClobbered``, …).
    """
    pass_name: str
    name: str
    function: Function
    message: Tuple[MessagePart, ...] = ()

    @property
    def location(self) -> Optional[Location]:
        return self.function.location

    def references(self) -> Tuple[AnnotatedReference, ...]:
        """All annotated parts of the message, in order."""
        return tuple(p for p in self.message if isinstance(p, AnnotatedReference))

    def plain_message(self) -> str:
        """The message with annotations flattened to their text."""
        return "".join(p.text for p in self.message)


# ═════════════════════════════════════════════════════════════════════════
#  LOAD OPTIONS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LoadOptions:
    """Filtering policy applied while parsing remark files.

    include_external
        Keep remarks whose location lies outside ``source_root``.
    source_root
        Root directory of the analysed project.
    excluded_kinds
        Remark names that are dropped (exact, case-sensitive match).
    external_source_root
        Directory holding the toolchain sources (e.g. the ``rust-src``
        component).  Locations inside a toolchain source tree are resolved
        against it and kept even when ``include_external`` is off.
    """
    include_external: bool = False
    source_root: Path = field(default_factory=Path)
    excluded_kinds: FrozenSet[str] = DEFAULT_KIND_FILTER
    external_source_root: Optional[Path] = None

    def __post_init__(self) -> None:
        # Accept any iterable / str path from callers but store canonical types.
        object.__setattr__(self, "source_root", Path(self.source_root))
        object.__setattr__(self, "excluded_kinds", frozenset(self.excluded_kinds))
        if self.external_source_root is not None:
            object.__setattr__(
                self, "external_source_root", Path(self.external_source_root)
            )


def is_absolute_path(path: str) -> bool:
    """True for POSIX absolute paths and Windows drive/UNC paths."""
    if path.startswith(("/", "\\")):
        return True
    return len(path) > 2 and path[1] == ":" and path[2] in "/\\"


__all__ = [
    "EXPECTED_EXTENSION",
    "DEFAULT_KIND_FILTER",
    "Location",
    "Function",
    "PlainText",
    "AnnotatedReference",
    "MessagePart",
    "Remark",
    "LoadOptions",
    "is_absolute_path",
]
