"""
optremarks/demangle.py
══════════════════════

Symbol demangling for remark function names.

LLVM remarks carry raw linkage names.  Three shapes show up in practice:

* Rust legacy symbols (``_ZN…17h<16 hex>E``), demangled by ``rust_demangler``;
* Rust v0 symbols (``_R…``), also demangled by ``rust_demangler``;
* C++ Itanium symbols (``_Z…``), demangled by ``cxxfilt``.

Release and ThinLTO builds append ``.llvm.<digits>`` to local symbols; that
suffix is removed first.  Rust results are then cleaned up here:

* the ``$LT$``/``$GT$``/``$u20$``/``..`` escapes used inside path segments;
* the trailing ``::h<16 hex digits>`` disambiguation hash;
* ``[<hex>]`` crate disambiguators printed for v0 paths.

Names no demangler accepts (``__rust_alloc``, C symbols) are returned
unchanged.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional

import cxxfilt
import rust_demangler

logger = logging.getLogger(__name__)

# "::" followed by exactly 17 lowercase alphanumerics at the very end.
_HASH_SUFFIX = re.compile(r"::[a-z0-9]{17}$")
_LLVM_SUFFIX = re.compile(r"\.llvm\.\d+$")
_RUST_LEGACY = re.compile(r"^_ZN.*17h[0-9a-f]{16}E$")
_CRATE_DISAMBIGUATOR = re.compile(r"\[[0-9a-f]{5,16}\]")

_LEGACY_ESCAPES = {
    "$SP$": "@",
    "$BP$": "*",
    "$RF$": "&",
    "$LT$": "<",
    "$GT$": ">",
    "$LP$": "(",
    "$RP$": ")",
    "$C$": ",",
}
_ESCAPE_RE = re.compile(r"\$(?:SP|BP|RF|LT|GT|LP|RP|C|u[0-9a-f]{1,6})\$|\.\.")


def _decode_escape(match: "re.Match[str]") -> str:
    token = match.group(0)
    if token == "..":
        return "::"
    if token in _LEGACY_ESCAPES:
        return _LEGACY_ESCAPES[token]
    return chr(int(token[2:-1], 16))


def decode_legacy_escapes(name: str) -> str:
    """Decode Rust legacy-mangling escapes inside an already split path."""
    return _ESCAPE_RE.sub(_decode_escape, name)


def strip_hash(name: str) -> str:
    """Drop a trailing ``::hXXXXXXXXXXXXXXXX`` segment, if present."""
    if _HASH_SUFFIX.search(name):
        return name[:-19]
    return name


def strip_llvm_suffix(symbol: str) -> str:
    """Drop a trailing ``.llvm.<digits>`` added by LTO symbol promotion."""
    return _LLVM_SUFFIX.sub("", symbol)


def is_rust_symbol(symbol: str) -> bool:
    return symbol.startswith("_R") or bool(_RUST_LEGACY.match(symbol))


def _demangle_rust(symbol: str) -> Optional[str]:
    try:
        demangled = rust_demangler.demangle(symbol)
    except Exception as exc:
        # rust_demangler raises a different error type per mangling scheme.
        logger.debug("rust_demangler rejected %s: %s", symbol, exc)
        return None
    if not demangled or demangled == symbol:
        return None
    if symbol.startswith("_ZN"):
        demangled = decode_legacy_escapes(strip_hash(demangled))
    return _CRATE_DISAMBIGUATOR.sub("", demangled)


def _demangle_cxx(symbol: str) -> Optional[str]:
    try:
        demangled = cxxfilt.demangle(symbol, external_only=False)
    except cxxfilt.InvalidName:
        logger.debug("Cannot demangle %s", symbol)
        return None
    stripped = strip_hash(demangled)
    if stripped != demangled:
        # Only Rust legacy symbols carry the hash; C++ names keep their dots.
        stripped = decode_legacy_escapes(stripped)
    return stripped


@lru_cache(maxsize=65536)
def demangle(symbol: str) -> str:
    """Return the human-readable form of *symbol*.

    >>> demangle("_ZN7remarks4main17hc92ae132ef1efa8eE")
    'remarks::main'
    >>> demangle("__rust_alloc")
    '__rust_alloc'
    """
    name = strip_llvm_suffix(symbol)
    if is_rust_symbol(name):
        demangled = _demangle_rust(name)
        if demangled is not None:
            return demangled
    if name.startswith("_Z"):
        demangled = _demangle_cxx(name)
        if demangled is not None:
            return demangled
    return strip_hash(name)


__all__ = [
    "demangle",
    "strip_hash",
    "strip_llvm_suffix",
    "is_rust_symbol",
    "decode_legacy_escapes",
]
