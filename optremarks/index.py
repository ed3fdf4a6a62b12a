"""
optremarks/index.py
═══════════════════

``FileIndex`` — groups remarks by the source file they are anchored in.

Keys are the file strings exactly as they appear in the remarks (no path
canonicalization).  A file that is only *referenced* from a message (e.g. the
call site in "foo will not be inlined into bar") still gets a key, mapped to
an empty list; the renderer only emits pages for keys that have remarks.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Tuple

from optremarks.model import AnnotatedReference, Remark


class FileIndex:
    """Read-only mapping ``source file → [Remark, …]`` built in one pass."""

    def __init__(self, files: Dict[str, List[Remark]]) -> None:
        self._files = files

    @classmethod
    def build(cls, remarks: Iterable[Remark]) -> FileIndex:
        files: Dict[str, List[Remark]] = {}
        for remark in remarks:
            location = remark.function.location
            if location is not None:
                files.setdefault(location.file, []).append(remark)
            for part in remark.message:
                if isinstance(part, AnnotatedReference):
                    files.setdefault(part.location.file, [])
        return cls(files)

    # ── queries ──────────────────────────────────────────────────────

    def files(self) -> List[str]:
        """All keys in insertion order."""
        return list(self._files)

    def remarks_for(self, file: str) -> List[Remark]:
        return list(self._files.get(file, ()))

    def populated(self) -> List[Tuple[str, List[Remark]]]:
        """``(file, remarks)`` pairs for keys with at least one remark."""
        return [(file, list(remarks)) for file, remarks in self._files.items() if remarks]

    def items(self) -> Iterator[Tuple[str, List[Remark]]]:
        for file, remarks in self._files.items():
            yield file, list(remarks)

    def __contains__(self, file: object) -> bool:
        return file in self._files

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        populated = sum(1 for remarks in self._files.values() if remarks)
        return f"FileIndex(files={len(self._files)}, populated={populated})"


__all__ = ["FileIndex"]
