"""CRC32 verification of a cached model directory against its manifest."""

from __future__ import annotations

import logging
import zlib
from pathlib import Path

from model_sync.models.manifest import parse_manifest
from model_sync.models.registry import model_path
from model_sync.types import MANIFEST_NAME, MIN_MANIFEST_BYTES

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 65_536


def file_crc32(path: Path) -> str:
    """Return the CRC32 of *path* as 8 lowercase hex digits."""
    crc = 0
    with open(path, "rb") as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            crc = zlib.crc32(chunk, crc)
    return f"{crc & 0xFFFFFFFF:08x}"


def are_files_valid(ai_dir: str, model: str, *, root: Path | None = None) -> bool:
    """Check every file listed in the cached ``files.json`` by CRC32.

    Returns ``False`` (and logs why) on the first problem: missing
    directory, missing or truncated manifest, empty manifest, missing file
    or checksum mismatch.  Never writes to disk.
    """
    mdl_dir = model_path(ai_dir, model, root=root)

    if not mdl_dir.is_dir():
        logger.info("Files for model %s not valid: %s does not exist.", model, mdl_dir)
        return False

    manifest = mdl_dir / MANIFEST_NAME
    if not manifest.is_file() or manifest.stat().st_size < MIN_MANIFEST_BYTES:
        logger.info(
            "Files for model %s not valid: %s is missing or incomplete.",
            model,
            manifest,
        )
        return False

    files = parse_manifest(manifest.read_bytes())
    if not files:
        logger.info(
            "Files for model %s not valid: %s contains 0 entries.", model, MANIFEST_NAME
        )
        return False

    for mf in files:
        local = mdl_dir / mf.rel_path
        if not local.is_file():
            logger.info("Files for model %s not valid: %s is missing.", model, mf.rel_path)
            return False

        try:
            crc = file_crc32(local)
        except OSError as exc:
            logger.info(
                "Files for model %s not valid: cannot read %s (%s).", model, mf.rel_path, exc
            )
            return False

        expected = mf.crc32.strip().lower()
        if crc != expected:
            logger.info(
                "Files for model %s not valid: CRC32 of %s (%s) does not equal "
                "validation CRC32 (%s).",
                model,
                mf.rel_path,
                crc,
                expected,
            )
            return False

    return True
