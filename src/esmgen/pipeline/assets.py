"""Asset selection: decide which non-code files travel with a bundle.

Only files whose extension is on ``Constants.ASSET_EXTENSIONS`` are ever
considered. In entry-scoped mode an asset must sit inside the directory
that holds the entry file; anything else is reported as excluded and left
behind.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from esmgen.constants import Constants
from esmgen.errors import AssetCopyFailed
from esmgen.models import AssetMode

logger = logging.getLogger(__name__)


@dataclass
class AssetReport:
    """Relative paths copied and excluded, in traversal order."""

    copied: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)


def is_asset(filename: str, extensions: Sequence[str] = Constants.ASSET_EXTENSIONS) -> bool:
    return os.path.splitext(filename)[1].lower() in extensions


def walk_files(source_dir: str) -> Iterator[str]:
    """Yield file paths under ``source_dir`` in deterministic depth-first order.

    Uses an explicit stack over sorted directory entries. Symlinked
    directories are not followed.
    """
    stack = [source_dir]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
        except OSError as exc:
            logger.warning("Skipping unreadable directory %s: %s", current, exc)
            continue
        subdirs = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(entry.path)
            elif entry.is_file():
                yield entry.path
        # Reversed so the lexically first directory is popped first.
        stack.extend(reversed(subdirs))


def _within(path: str, boundary: str) -> bool:
    path_abs = os.path.abspath(path)
    boundary_abs = os.path.abspath(boundary)
    return path_abs == boundary_abs or path_abs.startswith(boundary_abs.rstrip(os.sep) + os.sep)


def copy_assets(
    source_dir: str,
    dest_dir: str,
    boundary_dir: Optional[str] = None,
    mode: AssetMode = AssetMode.ENTRY_SCOPED,
    extensions: Sequence[str] = Constants.ASSET_EXTENSIONS,
) -> AssetReport:
    """Copy allow-listed assets from ``source_dir`` into ``dest_dir``.

    Relative paths are preserved under ``dest_dir``.

    Args:
        source_dir: Package root.
        dest_dir: Output directory of the conversion.
        boundary_dir: Directory containing the entry file. Defaults to
            ``source_dir``.
        mode: ENTRY_SCOPED limits copies to ``boundary_dir``; INCLUDE_ALL
            copies every allow-listed file.
        extensions: Allow-list of lowercase extensions.

    Returns:
        AssetReport. ``excluded`` is only filled in entry-scoped mode.

    Raises:
        AssetCopyFailed: An allow-listed file could not be copied.
    """
    boundary = boundary_dir or source_dir
    report = AssetReport()

    for path in walk_files(source_dir):
        if not is_asset(path, extensions):
            continue
        rel = os.path.relpath(path, source_dir).replace(os.sep, "/")
        if mode is AssetMode.ENTRY_SCOPED and not _within(path, boundary):
            report.excluded.append(rel)
            continue
        target = os.path.join(dest_dir, *rel.split("/"))
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            shutil.copy2(path, target)
        except OSError as exc:
            raise AssetCopyFailed(f"could not copy {rel}: {exc}", cause=exc) from exc
        report.copied.append(rel)

    if report.excluded:
        logger.warning(
            "Excluded %d asset(s) outside the entry directory: %s",
            len(report.excluded),
            ", ".join(report.excluded),
        )
    if report.copied:
        logger.info("Copied %d asset(s)", len(report.copied))
    return report
