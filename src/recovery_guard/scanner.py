from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from recovery_guard.errors import SourceReadError, SourceRootError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceUnit:
    """One source file: its relative path (the exclusion key) and decoded text."""
    relpath: str
    text: str


def relative_path(path: Path | str) -> str:
    """
    Normalised POSIX path used for exclusion matching and reporting.

    './contracts/A.sol' -> 'contracts/A.sol'. Absolute paths under the
    working directory are made relative to it, so '/repo/contracts/A.sol'
    run from '/repo' also reads 'contracts/A.sol'.
    """
    normalised = os.path.normpath(str(path))
    if os.path.isabs(normalised):
        try:
            rel = os.path.relpath(normalised)
        except ValueError:  # different drive on Windows
            rel = None
        if rel is not None and rel.split(os.sep)[0] != os.pardir:
            normalised = rel
    return Path(normalised).as_posix()


def walk_files(root: Path | str) -> list[Path]:
    """
    Every regular file under *root*, recursively.

    Entries of each directory are visited in name order so repeated runs
    see the same sequence. Directories are traversed but never returned.

    Raises:
        SourceRootError: root missing, not a directory, not listable, or
            a directory symlink loops back onto one of its ancestors.
    """
    root = Path(root)
    if not root.exists():
        raise SourceRootError(str(root), "no such directory")
    if not root.is_dir():
        raise SourceRootError(str(root), "not a directory")

    files: list[Path] = []
    try:
        _walk(root, files, frozenset())
    except RecursionError as e:
        raise SourceRootError(str(root), "directory tree too deep") from e
    logger.debug("Enumerated %d files under %s", len(files), root)
    return files


def _walk(directory: Path, files: list[Path], ancestors: frozenset) -> None:
    real = os.path.realpath(directory)
    if real in ancestors:
        raise SourceRootError(str(directory), "symlink loop")
    ancestors = ancestors | {real}

    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise SourceRootError(str(directory), e.strerror or str(e)) from e

    for entry in entries:
        if entry.is_dir():
            _walk(entry, files, ancestors)
        elif entry.is_file():
            files.append(entry)


def read_text(path: Path) -> str:
    """Read a file, trying utf-8 (with and without BOM) before latin-1."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SourceReadError(str(path), e.strerror or str(e)) from e

    for encoding in ("utf-8-sig", "utf-8"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")  # always succeeds


def load_source_unit(path: Path | str) -> SourceUnit:
    """Read *path* into a SourceUnit keyed by its relative path."""
    path = Path(path)
    return SourceUnit(relpath=relative_path(path), text=read_text(path))
