"""
optremarks/parse.py
═══════════════════

Remark document decoding, filtering policy and message reconstruction.

Input format
────────────
LLVM writes one YAML stream per compiled object.  Each document carries a
tag naming its kind::

    --- !Missed
    Pass:            inline
    Name:            NoDefinition
    DebugLoc:        { File: 'src/main.rs', Line: 7, Column: 5 }
    Function:        _ZN7remarks4main17hc92ae132ef1efa8eE
    Args:
      - Callee:          _ZN3std2io5stdio6_print17hdb04fec352560b87E
      - String:          ' will not be inlined into '
      - Caller:          _ZN7remarks4main17hc92ae132ef1efa8eE
        DebugLoc:        { File: 'src/main.rs', Line: 6, Column: 0 }
      - String:          ' because its definition is unavailable'
    ...

Only ``!Missed`` documents become :class:`~optremarks.model.Remark` values;
``!Passed`` and ``!Analysis`` documents (and any tag this module does not
know) are decoded and dropped.

Decoding pipeline
─────────────────
  1. :func:`split_documents` cuts the stream at ``---`` / ``...`` markers.
  2. :func:`decode_document` turns one chunk into a ``RemarkDocument``.
     A malformed chunk raises :class:`DocumentDecodeError`, which
     :func:`parse_remarks` logs at DEBUG level before moving on.
  3. :func:`parse_remarks` applies the location, origin and kind filters,
     demangles the function and rebuilds the message with
     :func:`construct_message`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union

import yaml

from optremarks.demangle import demangle
from optremarks.errors import DocumentDecodeError, RemarkFileError
from optremarks.model import (
    AnnotatedReference,
    Function,
    LoadOptions,
    Location,
    MessagePart,
    PlainText,
    Remark,
)
from optremarks.utils import time_block

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool]

# Sources of the Rust standard library are remapped to this prefix in debuginfo.
_TOOLCHAIN_PREFIX = re.compile(r"^/rustc/[0-9a-f]{7,64}/(?P<rest>.+)$")

_DOCUMENT_START = re.compile(r"^---(?:[ \t]|$)")
_DOCUMENT_END = re.compile(r"^\.\.\.[ \t]*$")


# ═════════════════════════════════════════════════════════════════════════
#  RAW DOCUMENT SHAPES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StringArg:
    string: str


@dataclass(frozen=True)
class CalleeArg:
    callee: str
    debug_loc: Optional[Location] = None


@dataclass(frozen=True)
class CallerArg:
    caller: str
    debug_loc: Optional[Location] = None


@dataclass(frozen=True)
class ReasonArg:
    reason: str


@dataclass(frozen=True)
class OtherArg:
    """Any other argument: an ordered bag of scalar values.

    ``debug_loc`` holds the bag's ``DebugLoc`` entry when it could be decoded;
    that entry is not repeated in ``values``.
    """
    values: Tuple[Tuple[str, Scalar], ...] = ()
    debug_loc: Optional[Location] = None


RemarkArg = Union[StringArg, CalleeArg, CallerArg, ReasonArg, OtherArg]


@dataclass(frozen=True)
class MissedDocument:
    pass_name: str
    name: str
    function: str
    debug_loc: Optional[Location] = None
    args: Tuple[RemarkArg, ...] = ()


@dataclass(frozen=True)
class PassedDocument:
    pass_name: str = ""
    name: str = ""


@dataclass(frozen=True)
class AnalysisDocument:
    pass_name: str = ""
    name: str = ""


@dataclass(frozen=True)
class UnrecognizedDocument:
    tag: str


RemarkDocument = Union[MissedDocument, PassedDocument, AnalysisDocument, UnrecognizedDocument]


# ═════════════════════════════════════════════════════════════════════════
#  YAML LOADER
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _Tagged:
    tag: str
    value: Any


_BaseLoader = getattr(yaml, "CSafeLoader", yaml.SafeLoader)


class _RemarkLoader(_BaseLoader):  # type: ignore[misc, valid-type]
    """Safe loader that keeps the ``!Missed``/``!Passed``/… document tags."""


def _construct_tagged(loader: Any, tag_suffix: str, node: yaml.Node) -> _Tagged:
    if isinstance(node, yaml.MappingNode):
        value: Any = loader.construct_mapping(node, deep=True)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_scalar(node)
    return _Tagged(tag_suffix, value)


yaml.add_multi_constructor("!", _construct_tagged, Loader=_RemarkLoader)


# ═════════════════════════════════════════════════════════════════════════
#  DOCUMENT SPLITTING AND DECODING
# ═════════════════════════════════════════════════════════════════════════

def split_documents(text: str) -> Iterator[str]:
    """Yield the successive YAML documents of a remark stream.

    Each document is decoded on its own, so a syntax error only costs the
    document it occurs in.
    """
    current: List[str] = []

    def flush() -> Iterator[str]:
        if any(line.strip() and not line.lstrip().startswith("#") for line in current):
            yield "".join(current)
        current.clear()

    for line in text.splitlines(keepends=True):
        if _DOCUMENT_START.match(line):
            yield from flush()
            current.append(line)
        elif _DOCUMENT_END.match(line):
            yield from flush()
        else:
            current.append(line)
    yield from flush()


def decode_document(chunk: str) -> RemarkDocument:
    """Decode one YAML document into a ``RemarkDocument`` variant."""
    try:
        data = yaml.load(chunk, Loader=_RemarkLoader)
    except yaml.YAMLError as exc:
        raise DocumentDecodeError("Malformed YAML document") from exc

    if not isinstance(data, _Tagged):
        raise DocumentDecodeError(f"Document has no remark tag: {type(data).__name__}")

    if data.tag == "Missed":
        return _decode_missed(data.value)
    if data.tag in ("Passed", "Analysis"):
        body = data.value if isinstance(data.value, dict) else {}
        cls = PassedDocument if data.tag == "Passed" else AnalysisDocument
        return cls(
            pass_name=_text(body.get("Pass", "")),
            name=_text(body.get("Name", "")),
        )
    return UnrecognizedDocument(data.tag)


def _decode_missed(body: Any) -> MissedDocument:
    if not isinstance(body, dict):
        raise DocumentDecodeError("Missed remark is not a mapping")
    for key in ("Pass", "Name", "Function"):
        if key not in body or body[key] is None:
            raise DocumentDecodeError(f"Missed remark lacks the '{key}' field")

    debug_loc = None
    if body.get("DebugLoc") is not None:
        debug_loc = decode_location(body["DebugLoc"])

    raw_args = body.get("Args") or []
    if not isinstance(raw_args, list):
        raise DocumentDecodeError("'Args' is not a sequence")

    return MissedDocument(
        pass_name=_text(body["Pass"]),
        name=_text(body["Name"]),
        function=_text(body["Function"]),
        debug_loc=debug_loc,
        args=tuple(decode_arg(arg) for arg in raw_args),
    )


def decode_location(value: Any) -> Location:
    """Decode a ``{ File: …, Line: …, Column: … }`` mapping."""
    if not isinstance(value, dict) or value.get("File") is None:
        raise DocumentDecodeError("DebugLoc is not a { File, Line, Column } mapping")
    try:
        line = int(value.get("Line", 0))
        column = int(value.get("Column", 0))
    except (TypeError, ValueError) as exc:
        raise DocumentDecodeError("DebugLoc has a non-numeric line or column") from exc
    if line < 0 or column < 0:
        raise DocumentDecodeError("DebugLoc has a negative line or column")
    return Location(file=_text(value["File"]), line=line, column=column)


def decode_arg(value: Any) -> RemarkArg:
    """Decode one entry of a remark's ``Args`` list."""
    if not isinstance(value, dict):
        raise DocumentDecodeError(f"Remark argument is not a mapping: {value!r}")

    if "String" in value:
        return StringArg(_text(value["String"]))
    if "Callee" in value:
        return CalleeArg(_text(value["Callee"]), _optional_location(value.get("DebugLoc")))
    if "Caller" in value:
        return CallerArg(_text(value["Caller"]), _optional_location(value.get("DebugLoc")))
    if "Reason" in value:
        return ReasonArg(_text(value["Reason"]))

    debug_loc = None
    values: List[Tuple[str, Scalar]] = []
    for key, item in value.items():
        if key == "DebugLoc":
            debug_loc = _lenient_location(item)
        elif isinstance(item, (str, int, float, bool)):
            values.append((str(key), item))
    return OtherArg(tuple(values), debug_loc)


def _optional_location(value: Any) -> Optional[Location]:
    return decode_location(value) if value is not None else None


def _lenient_location(value: Any) -> Optional[Location]:
    # A bag whose DebugLoc cannot be read is treated as having none.
    try:
        return decode_location(value)
    except DocumentDecodeError:
        return None


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


# ═════════════════════════════════════════════════════════════════════════
#  MESSAGE RECONSTRUCTION
# ═════════════════════════════════════════════════════════════════════════

def construct_message(args: Sequence[RemarkArg]) -> Tuple[MessagePart, ...]:
    """Rebuild a remark message from its argument list.

    Text-like arguments accumulate into a buffer; every argument with a
    location flushes the buffer and contributes one
    :class:`AnnotatedReference`.  The result alternates plain and annotated
    parts in argument order.
    """
    parts: List[MessagePart] = []
    buffer: List[str] = []

    def add_annotated(text: str, location: Location) -> None:
        if buffer:
            parts.append(PlainText("".join(buffer)))
            buffer.clear()
        parts.append(AnnotatedReference(text, location))

    for arg in args:
        if isinstance(arg, StringArg):
            buffer.append(arg.string)
        elif isinstance(arg, (CalleeArg, CallerArg)):
            symbol = arg.callee if isinstance(arg, CalleeArg) else arg.caller
            if arg.debug_loc is not None:
                add_annotated(demangle(symbol), arg.debug_loc)
            else:
                buffer.append(demangle(symbol))
        elif isinstance(arg, ReasonArg):
            buffer.append(arg.reason)
        elif isinstance(arg, OtherArg):
            text = "".join(_text(v) for _, v in arg.values)
            if arg.debug_loc is not None:
                add_annotated(text, arg.debug_loc)
            else:
                buffer.append(text)

    text = "".join(buffer)
    if text:
        parts.append(PlainText(text))
    return tuple(parts)


# ═════════════════════════════════════════════════════════════════════════
#  FILTERING POLICY
# ═════════════════════════════════════════════════════════════════════════

def resolve_external(location: Location, options: LoadOptions) -> Optional[Location]:
    """Map a toolchain source location into ``external_source_root``.

    Returns the resolved location (marked ``external``) when the file exists
    there, ``None`` otherwise.
    """
    root = options.external_source_root
    if root is None or not location.is_absolute:
        return None

    match = _TOOLCHAIN_PREFIX.match(location.file.replace("\\", "/"))
    if match:
        candidate = root / match.group("rest")
    else:
        candidate = Path(location.file)
        try:
            candidate.relative_to(root)
        except ValueError:
            return None

    if not candidate.is_file():
        return None
    return Location(str(candidate), location.line, location.column, external=True)


def filter_location(location: Location, options: LoadOptions) -> Optional[Location]:
    """Apply the origin policy; ``None`` means the remark is dropped."""
    external = resolve_external(location, options)
    if external is not None:
        return external
    if options.include_external:
        return location
    if location.is_absolute:
        return None
    if not (options.source_root / location.file).is_file():
        return None
    return location


def _resolve_references(
    message: Tuple[MessagePart, ...], options: LoadOptions
) -> Tuple[MessagePart, ...]:
    if options.external_source_root is None:
        return message
    resolved: List[MessagePart] = []
    for part in message:
        if isinstance(part, AnnotatedReference):
            location = resolve_external(part.location, options)
            if location is not None:
                part = AnnotatedReference(part.text, location)
        resolved.append(part)
    return tuple(resolved)


def remark_from_document(document: MissedDocument, options: LoadOptions) -> Optional[Remark]:
    """Turn a decoded ``!Missed`` document into a ``Remark`` or drop it."""
    if document.debug_loc is None:
        return None
    location = filter_location(document.debug_loc, options)
    if location is None:
        return None
    if document.name in options.excluded_kinds:
        return None

    message = _resolve_references(construct_message(document.args), options)
    return Remark(
        pass_name=document.pass_name,
        name=document.name,
        function=Function(name=demangle(document.function), location=location),
        message=message,
    )


# ═════════════════════════════════════════════════════════════════════════
#  PUBLIC ENTRY POINTS
# ═════════════════════════════════════════════════════════════════════════

def parse_remarks(stream: Union[str, bytes], options: LoadOptions) -> List[Remark]:
    """Parse every document of *stream* and return the surviving remarks."""
    if isinstance(stream, bytes):
        stream = stream.decode("utf-8", errors="replace")

    remarks: List[Remark] = []
    for index, chunk in enumerate(split_documents(stream)):
        try:
            document = decode_document(chunk)
        except DocumentDecodeError as exc:
            logger.debug("Error while deserializing remark #%d: %s", index, exc)
            continue

        if isinstance(document, UnrecognizedDocument):
            logger.debug("Skipping remark #%d with unknown tag !%s", index, document.tag)
            continue
        if not isinstance(document, MissedDocument):
            continue

        remark = remark_from_document(document, options)
        if remark is not None:
            remarks.append(remark)
    return remarks


def load_remarks_from_file(path: Union[str, Path], options: LoadOptions) -> List[Remark]:
    """Load all remarks from one ``.opt.yaml`` file.

    Raises
    ------
    RemarkFileError
        The file cannot be opened or read.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise RemarkFileError(f"Cannot open remark file {path}", path=path) from exc

    logger.debug("Parsing %s", path)
    if not data:
        logger.debug("File %s is empty", path)
        return []

    return time_block(
        f"Parsed remark file {path.name}",
        lambda: parse_remarks(data, options),
        log=logger,
    )


__all__ = [
    "StringArg",
    "CalleeArg",
    "CallerArg",
    "ReasonArg",
    "OtherArg",
    "RemarkArg",
    "MissedDocument",
    "PassedDocument",
    "AnalysisDocument",
    "UnrecognizedDocument",
    "RemarkDocument",
    "split_documents",
    "decode_document",
    "decode_location",
    "decode_arg",
    "construct_message",
    "resolve_external",
    "filter_location",
    "remark_from_document",
    "parse_remarks",
    "load_remarks_from_file",
]
