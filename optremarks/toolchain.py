"""
optremarks/toolchain.py
═══════════════════════

Boundary to ``rustc`` and ``cargo``.

Everything that spawns a process lives here so that the rest of the package
stays pure and testable; the tests replace :func:`subprocess.run` with a mock.

Build layout
────────────
::

    <target>/remarks/
    ├── yaml/   ← -Zremark-dir, one *.opt.yaml per codegen unit
    └── web/    ← rendered report
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from optremarks.errors import ErrorCode, ToolchainError
from optremarks.render import INDEX_FILE_PATH
from optremarks.utils import cli_format_path, ensure_directory

logger = logging.getLogger(__name__)

BUILD = "build"
WRAP = "wrap"

REMARK_FLAGS = "-Cremark=all -Zremark-dir={} -Cdebuginfo=1"


@dataclass(frozen=True)
class CargoContext:
    target_directory: Path
    root_directory: Path

    def target_subdirectory(self, name: str) -> Path:
        return ensure_directory(self.target_directory / name)


@dataclass(frozen=True)
class BuildOutput:
    remark_dir: Path
    source_dir: Path
    web_dir: Path


def _run(cmd: Sequence[str], what: str) -> subprocess.CompletedProcess:
    logger.debug("Running %s", " ".join(cmd))
    try:
        return subprocess.run(list(cmd), capture_output=True, text=True, check=False)
    except OSError as exc:
        raise ToolchainError(
            f"Cannot execute {what}",
            code=ErrorCode.TOOLCHAIN_MISSING,
            hint=f"make sure `{cmd[0]}` is installed and on PATH",
        ) from exc


# ═════════════════════════════════════════════════════════════════════════
#  RUSTC
# ═════════════════════════════════════════════════════════════════════════

def check_remark_dir_support() -> bool:
    """True if the active ``rustc`` understands ``-Zremark-dir``."""
    proc = _run(["rustc", "-Z", "help"], "rustc -Z help")
    if proc.returncode != 0:
        raise ToolchainError(
            "Failed to execute rustc -Z help", code=ErrorCode.TOOLCHAIN_FAILED
        )
    for line in proc.stdout.splitlines():
        items = line.split()[:2]
        if len(items) == 2 and items[0] == "-Z" and items[1] == "remark-dir=val":
            return True
    return False


def get_rustc_source_root() -> Path:
    """Directory of the ``rust-src`` component of the active toolchain."""
    proc = _run(["rustc", "--print", "sysroot"], "rustc --print sysroot")
    if proc.returncode != 0:
        raise ToolchainError(
            "Cannot get sysroot from rustc", code=ErrorCode.TOOLCHAIN_FAILED
        )
    root = Path(proc.stdout.strip()) / "lib" / "rustlib" / "src" / "rust"
    if not root.is_dir():
        raise ToolchainError(
            f"Rust source root {root} does not exist",
            code=ErrorCode.TOOLCHAIN_MISSING,
            path=root,
            hint="install it with `rustup component add rust-src`",
        )
    return root


# ═════════════════════════════════════════════════════════════════════════
#  CARGO
# ═════════════════════════════════════════════════════════════════════════

def get_cargo_context() -> CargoContext:
    proc = _run(
        ["cargo", "metadata", "--format-version", "1", "--no-deps"], "cargo metadata"
    )
    if proc.returncode != 0:
        raise ToolchainError(
            f"Cannot get cargo metadata: {proc.stderr.strip()}",
            code=ErrorCode.TOOLCHAIN_FAILED,
        )
    try:
        metadata = json.loads(proc.stdout)
        return CargoContext(
            target_directory=Path(metadata["target_directory"]),
            root_directory=Path(metadata["workspace_root"]),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise ToolchainError(
            "Cannot parse cargo metadata", code=ErrorCode.TOOLCHAIN_FAILED
        ) from exc


def filter_build_args(cargo_args: Sequence[str]) -> List[str]:
    """Drop ``--release``, which ``build`` always passes itself."""
    filtered = []
    for arg in cargo_args:
        if arg == "--release":
            logger.warning(
                "Do not pass `--release` manually, it is added automatically"
            )
            continue
        filtered.append(arg)
    return filtered


def cargo_command(subcommand: str, cargo_args: Sequence[str]) -> List[str]:
    if subcommand == BUILD:
        return ["cargo", "build", "--release", *filter_build_args(cargo_args)]
    if subcommand == WRAP:
        if not cargo_args:
            raise ToolchainError(
                "You have to enter a command after `--` that will be executed "
                "when using `wrap`"
            )
        return ["cargo", *cargo_args]
    raise ValueError(f"unknown cargo subcommand: {subcommand!r}")


def remark_environment(remark_dir: Path, environ: Optional[dict] = None) -> dict:
    """Copy of *environ* with the remark flags appended to ``RUSTFLAGS``."""
    env = dict(os.environ if environ is None else environ)
    env["RUSTFLAGS"] = env.get("RUSTFLAGS", "") + " " + REMARK_FLAGS.format(remark_dir)
    return env


def run_cargo(subcommand: str, cargo_args: Sequence[str]) -> BuildOutput:
    """Run cargo so that it emits remark files, and return where they went."""
    cmd = cargo_command(subcommand, cargo_args)
    ctx = get_cargo_context()
    remarks_root = ctx.target_subdirectory("remarks")
    remark_dir = ensure_directory(remarks_root / "yaml")

    logger.info("Optimization remarks will be stored into %s", cli_format_path(remark_dir))
    logger.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd, env=remark_environment(remark_dir), stdin=subprocess.DEVNULL, check=False
        )
    except OSError as exc:
        raise ToolchainError(
            "Cannot start cargo", code=ErrorCode.TOOLCHAIN_MISSING
        ) from exc
    if proc.returncode != 0:
        raise ToolchainError(
            f"Cargo build failed: exit code {proc.returncode}",
            code=ErrorCode.TOOLCHAIN_FAILED,
        )
    logger.info("Optimization remarks successfully generated")

    return BuildOutput(
        remark_dir=remark_dir,
        source_dir=ctx.root_directory,
        web_dir=ensure_directory(remarks_root / "web"),
    )


def open_result(web_dir: Path, open_browser: bool) -> None:
    index_path = web_dir / INDEX_FILE_PATH
    if not open_browser:
        logger.info("Open %s in a browser to see the results.", cli_format_path(index_path))
        return
    if not webbrowser.open(index_path.resolve().as_uri()):
        raise ToolchainError(
            f"Could not open {index_path} in browser", path=index_path
        )


__all__ = [
    "BUILD",
    "WRAP",
    "CargoContext",
    "BuildOutput",
    "check_remark_dir_support",
    "get_rustc_source_root",
    "get_cargo_context",
    "filter_build_args",
    "cargo_command",
    "remark_environment",
    "run_cargo",
    "open_result",
]
