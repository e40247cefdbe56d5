"""List and purge cached model directories."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from model_sync.models.registry import AiEntry, list_networks, package_root

logger = logging.getLogger(__name__)


def list_cached_model_dirs(
    *,
    root: Path | None = None,
    networks: Iterable[AiEntry] | None = None,
) -> list[Path]:
    """Return the cache directories that exist, in registry order."""
    base = package_root(root)
    found: list[Path] = []
    for ai in networks if networks is not None else list_networks():
        for info in ai.models:
            mdl_dir = base / ai.pkg_dir / info.dir
            if mdl_dir.is_dir():
                found.append(mdl_dir)
    return found


def delete_all_models(
    *,
    root: Path | None = None,
    networks: Iterable[AiEntry] | None = None,
) -> list[Path]:
    """Delete every cached model directory and return the ones removed.

    A directory that cannot be removed is logged and skipped.
    """
    removed: list[Path] = []
    for mdl_dir in list_cached_model_dirs(root=root, networks=networks):
        label = f"{mdl_dir.parent.name}/{mdl_dir.name}"
        size = format_bytes(dir_size(mdl_dir))
        try:
            shutil.rmtree(mdl_dir)
        except OSError as exc:
            logger.warning("Failed to delete cached model '%s': %s", label, exc)
            continue
        logger.info("Deleted cached model '%s' (%s)", label, size)
        removed.append(mdl_dir)
    return removed


def dir_size(path: Path) -> int:
    """Total size in bytes of the regular files below *path*."""
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                total += os.path.getsize(os.path.join(dirpath, name))
            except OSError:
                continue  # Vanished or unreadable
    return total


def format_bytes(n: int) -> str:
    """Human-readable byte count, e.g. ``'1.5 MB'``."""
    if n < 1024:
        return f"{n} B"
    size = float(n)
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        if size < 1024:
            return f"{size:.1f} {unit}"
    return f"{size / 1024:.1f} TB"
