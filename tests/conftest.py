# tests/conftest.py
"""
Shared fixtures and sample remark streams for the optremarks test-suite.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from optremarks.model import LoadOptions


# ---------------------------------------------------------------------------
# Sample remark streams
# ---------------------------------------------------------------------------

SINGLE_ABSOLUTE = """\
--- !Missed
Pass:            sdagisel
Name:            FastISelFailure
Function:        __rust_alloc
DebugLoc:        { File: '/std/src/sys_common/backtrace.rs',
                   Line: 131, Column: 0 }
Args:
  - String:          FastISel missed call
  - String:          ': '
  - String:          '  %3 = tail call ptr @__rdl_alloc(i64 %0, i64 %1)'
  - String:          ' (in function: __rust_alloc)'
...
"""

NO_DEFINITION = """\
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
"""

NEVER_INLINE = """\
--- !Missed
Pass:            inline
Name:            NeverInline
DebugLoc:        { File: 'src/main.rs', Line: 6, Column: 1 }
Function:        _ZN7remarks4main17hc92ae132ef1efa8eE
Args:
  - Callee:          _ZN7remarks6helper17h0123456789abcdefE
  - String:          ' not inlined into '
  - Caller:          _ZN7remarks4main17hc92ae132ef1efa8eE
    DebugLoc:        { File: 'src/main.rs', Line: 6, Column: 0 }
  - String:          ' because it should never be inlined (cost=never)'
...
"""

NO_LOCATION = """\
--- !Missed
Pass:            sdagisel
Name:            FastISelFailure
Function:        __rust_alloc
Args:
  - String:          FastISel missed call
...
"""

PASSED_AND_ANALYSIS = """\
--- !Passed
Pass:            inline
Name:            Inlined
DebugLoc:        { File: 'src/main.rs', Line: 3, Column: 18 }
Function:        _ZN7remarks4main17hc92ae132ef1efa8eE
Args:
  - String:          ''''
  - Callee:          _ZN4core3ops8function6FnOnce9call_once17hde3380935eb1addfE
  - String:          ''' inlined into '''
  - Cost:            '-15030'
...
--- !Analysis
Pass:            size-info
Name:            FunctionMISizeChange
Function:        __rust_alloc
Args:
  - Pass:            Fast Register Allocator
  - String:          ': Function: '
  - Function:        __rust_alloc
...
"""

GVN = """\
--- !Missed
Pass:            gvn
Name:            LoadClobbered
DebugLoc:        { File: 'src/record.rs',
                   Line: 4, Column: 15 }
Function:        '_ZN5alloc7raw_vec19RawVec$LT$T$C$A$GT$14grow_amortized17ha53db71e3f649c60E'
Args:
  - String:          'load of type '
  - Type:            i64
  - String:          ' not eliminated'
  - String:          ' because it is clobbered by '
  - ClobberedBy:     call
    DebugLoc:        { File: 'src/main.rs',
                       Line: 2, Column: 19 }
...
"""

UNKNOWN_TAG = """\
--- !Failure
Pass:            mystery
Name:            Whatever
Function:        main
...
"""

MALFORMED = """\
--- !Missed
Pass:            inline
Name:            [unterminated
Function:        main
...
"""

MAIN_RS = """\
use std::io;

fn helper() -> u32 {
    42
}
fn main() {
    println!("{}", helper());
}
"""

RECORD_RS = """\
pub struct Record {
    values: Vec<u64>,
}
pub fn push(r: &mut Record) { r.values.push(1); }
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_project(root: Path, sources: Optional[Dict[str, str]] = None) -> Path:
    """Create a project tree under *root* holding ``src/main.rs`` etc."""
    if sources is None:
        sources = {"src/main.rs": MAIN_RS, "src/record.rs": RECORD_RS}
    for name, text in sources.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def write_remarks(directory: Path, files: Dict[str, str]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name, text in files.items():
        (directory / name).write_text(text, encoding="utf-8")
    return directory


def options_for(root: Path, **kwargs) -> LoadOptions:
    kwargs.setdefault("excluded_kinds", frozenset())
    return LoadOptions(source_root=root, **kwargs)


class RecordingCallback:
    """Callback that counts the events it receives."""

    def __init__(self) -> None:
        self.events: List[str] = []
        self.started_with: Optional[int] = None
        self.advanced = 0
        self._lock = threading.Lock()

    def start(self, count: int) -> None:
        self.started_with = count
        self.events.append("start")

    def advance(self) -> None:
        with self._lock:
            self.advanced += 1

    def finish(self) -> None:
        self.events.append("finish")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def project(tmp_path: Path) -> Path:
    return make_project(tmp_path / "project")


@pytest.fixture
def remark_dir(tmp_path: Path) -> Path:
    return write_remarks(
        tmp_path / "yaml",
        {
            "a.opt.yaml": NO_DEFINITION,
            "b.opt.yaml": GVN + PASSED_AND_ANALYSIS,
            "c.opt.yaml": "",
            "notes.txt": NO_DEFINITION,
        },
    )
