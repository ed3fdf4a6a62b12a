#!/usr/bin/env python3
"""optremarks/main.py — CLI entry-point for the optremarks report generator.

Usage examples
--------------
    # Render a report from an existing remark directory
    python -m optremarks analyze target/remarks/yaml --source-dir . --output-dir out

    # Build the current crate with remarks enabled and render the report
    python -m optremarks build -- --features simd

    # Wrap an arbitrary cargo command
    python -m optremarks wrap -- bench --no-run

    # Show version and exit
    python -m optremarks --version

Arguments after ``--`` are passed to cargo untouched.

Exit codes
----------
    0   Success.
    1   The report was written, but some remark files or source pages failed.
    2   Infrastructure failure (unreadable remark directory, cargo failed, …).
  130   Interrupted.

The module doubles as ``python -m optremarks`` via the companion
``optremarks/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence, Tuple

from optremarks import __version__, toolchain
from optremarks.callback import LoadCallback, NullCallback, ProgressBarCallback
from optremarks.errors import ErrorCode, RemarkError, ToolchainError
from optremarks.loader import load_remarks_from_dir
from optremarks.model import DEFAULT_KIND_FILTER, LoadOptions
from optremarks.render import render_remarks
from optremarks.utils import cli_format_path, time_block

_log = logging.getLogger("optremarks")
_cli_handler: Optional[logging.Handler] = None

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_INTERRUPTED: int = 130


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``optremarks`` logger.

    Parameters
    ----------
    verbosity:
        -1 → WARNING (``-q``), 0 → INFO, 1+ → DEBUG.
    """
    level = logging.INFO
    if verbosity < 0:
        level = logging.WARNING
    elif verbosity >= 1:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    global _cli_handler
    root = logging.getLogger("optremarks")
    root.setLevel(level)
    if _cli_handler is not None:
        root.removeHandler(_cli_handler)
    root.addHandler(handler)
    _cli_handler = handler


def _kind_filter(values: Optional[List[str]]) -> FrozenSet[str]:
    """``--filter`` values; absent → default set, ``--filter ""`` → nothing."""
    if values is None:
        return DEFAULT_KIND_FILTER
    return frozenset(v for v in values if v)


def _callback(args: argparse.Namespace, label: str) -> LoadCallback:
    if args.no_progress or args.verbosity < 0:
        return NullCallback()
    return ProgressBarCallback(label=label)


def _split_passthrough(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Split *argv* at the first ``--``: (our arguments, cargo arguments)."""
    argv = list(argv)
    if "--" in argv:
        idx = argv.index("--")
        return argv[:idx], argv[idx + 1:]
    return argv, []


# ===========================================================================
# Pipeline
# ===========================================================================

def generate_report(
    args: argparse.Namespace,
    remark_dir: Path,
    source_dir: Path,
    output_dir: Path,
    external_source_root: Optional[Path] = None,
) -> int:
    """Load *remark_dir*, render into *output_dir*, return the exit code."""
    options = LoadOptions(
        include_external=args.external,
        source_root=source_dir,
        excluded_kinds=_kind_filter(args.filter),
        external_source_root=external_source_root,
    )
    remarks = time_block(
        "Remark loading",
        lambda: load_remarks_from_dir(
            remark_dir, options, callback=_callback(args, "Loading"), workers=args.jobs
        ),
        level=logging.INFO,
        log=_log,
    )
    _log.info("Loaded %d remark(s)", len(remarks))

    result = time_block(
        "Rendering",
        lambda: render_remarks(
            remarks,
            source_dir,
            output_dir,
            callback=_callback(args, "Rendering"),
            workers=args.jobs,
        ),
        level=logging.INFO,
        log=_log,
    )
    _log.info("Website built into %s", cli_format_path(output_dir))

    toolchain.open_result(output_dir, args.open)

    if not result.ok:
        _log.warning("%d source page(s) failed to render", result.pages_failed)
    if not remarks.ok or not result.ok:
        return EXIT_ERROR
    return EXIT_OK


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    source_dir = Path(args.source_dir).expanduser()
    if not source_dir.is_dir():
        _log.error("Source directory not found: %s", source_dir)
        return EXIT_INFRA
    external_root = (
        Path(args.external_source_root).expanduser() if args.external_source_root else None
    )
    return generate_report(
        args,
        remark_dir=Path(args.remark_dir).expanduser(),
        source_dir=source_dir,
        output_dir=Path(args.output_dir).expanduser(),
        external_source_root=external_root,
    )


def cmd_cargo(args: argparse.Namespace) -> int:
    """``build`` and ``wrap``: run cargo with remarks enabled, then render."""
    if not toolchain.check_remark_dir_support():
        raise ToolchainError(
            "Your version of rustc does not support `-Zremark-dir`",
            code=ErrorCode.TOOLCHAIN_UNSUPPORTED,
            hint="use a nightly toolchain newer than 2023-07-04",
        )
    output = toolchain.run_cargo(args.command, args.cargo_args)

    external_root: Optional[Path] = None
    if args.external_source_root:
        external_root = Path(args.external_source_root).expanduser()
    else:
        try:
            external_root = toolchain.get_rustc_source_root()
        except ToolchainError as exc:
            _log.warning("Cannot find rustc source root: %s", exc)

    return generate_report(
        args,
        remark_dir=output.remark_dir,
        source_dir=output.source_dir,
        output_dir=output.web_dir,
        external_source_root=external_root,
    )


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="optremarks",
        description=(
            "Render LLVM optimization remarks (*.opt.yaml) into a browsable\n"
            "HTML report annotated onto the project's source code."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              optremarks analyze target/remarks/yaml --source-dir .
              optremarks build -- --features simd
              optremarks wrap -- bench --no-run
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose",
        dest="verbosity",
        action="store_const",
        const=1,
        default=0,
        help="Log debug output.",
    )
    verbosity.add_argument(
        "-q", "--quiet",
        dest="verbosity",
        action="store_const",
        const=-1,
        default=0,
        help="Only log warnings and errors; hide progress bars.",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_shared_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--external",
            action="store_true",
            help="Keep remarks from code outside the project (dependencies, std). "
                 "This may produce a large amount of data.",
        )
        p.add_argument(
            "--external-source-root",
            metavar="DIR",
            default=None,
            help="Toolchain source tree used to resolve /rustc/<hash>/ paths.",
        )
        p.add_argument(
            "--filter",
            action="append",
            metavar="KIND",
            default=None,
            help="Remark kind to ignore (repeatable). Default: %s. "
                 "Pass --filter '' to ignore nothing."
                 % ", ".join(sorted(DEFAULT_KIND_FILTER)),
        )
        p.add_argument(
            "--open",
            action="store_true",
            help="Open the generated report in a browser.",
        )
        g = p.add_argument_group("runtime tuning")
        g.add_argument(
            "-j", "--jobs",
            type=int,
            default=None,
            metavar="N",
            help="Worker threads (default: $OPTREMARKS_JOBS or CPU count).",
        )
        g.add_argument(
            "--no-progress",
            action="store_true",
            help="Do not draw progress bars.",
        )

    # ── analyze ────────────────────────────────────────────────────────
    p_analyze = subparsers.add_parser(
        "analyze",
        help="Render a report from an existing remark directory.",
    )
    p_analyze.add_argument(
        "remark_dir",
        metavar="REMARK_DIR",
        help="Directory containing *.opt.yaml files.",
    )
    p_analyze.add_argument(
        "--source-dir",
        required=True,
        metavar="DIR",
        help="Root directory of the analysed project.",
    )
    p_analyze.add_argument(
        "--output-dir",
        default="out",
        metavar="DIR",
        help="Directory the report is written into (default: out). "
             "Its previous contents are removed.",
    )
    _add_shared_args(p_analyze)
    p_analyze.set_defaults(func=cmd_analyze)

    # ── build / wrap ───────────────────────────────────────────────────
    p_build = subparsers.add_parser(
        "build",
        help="Build the crate with optimizations and remarks, then render a report.",
    )
    p_build.add_argument(
        "cargo_args",
        nargs="*",
        metavar="CARGO_ARG",
        help="Extra arguments for `cargo build` (put options after --).",
    )
    _add_shared_args(p_build)
    p_build.set_defaults(func=cmd_cargo)

    p_wrap = subparsers.add_parser(
        "wrap",
        help="Run an arbitrary cargo command with remarks enabled, then render a report.",
    )
    p_wrap.add_argument(
        "cargo_args",
        nargs="*",
        metavar="CARGO_ARG",
        help="The cargo command to run (put options after --).",
    )
    _add_shared_args(p_wrap)
    p_wrap.set_defaults(func=cmd_cargo)

    return parser


# ===========================================================================
# Main
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the optremarks CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    own_args, passthrough = _split_passthrough(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    args = parser.parse_args(own_args)

    if passthrough:
        if not hasattr(args, "cargo_args"):
            parser.error("arguments after -- are only accepted by build and wrap")
        args.cargo_args = list(args.cargo_args) + passthrough

    _configure_logging(args.verbosity)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return EXIT_INTERRUPTED
    except RemarkError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


# ---------------------------------------------------------------------------
# Module execution support
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    raise SystemExit(main())
