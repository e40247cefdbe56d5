"""Parse a model's ``files.json`` into typed entries."""

from __future__ import annotations

import logging

from pydantic import TypeAdapter, ValidationError

from model_sync.types import ModelFile

logger = logging.getLogger(__name__)

_MANIFEST = TypeAdapter(list[ModelFile])


def parse_manifest(document: bytes | str) -> list[ModelFile]:
    """Return the entries of a ``files.json`` document.

    The document must be a JSON array of objects with the string fields
    ``filename``, ``dir``, ``size`` and ``crc32``.  Any problem (bad JSON,
    missing field, non-numeric size) rejects the whole document: the
    result is then an empty list, which callers must read as "file list
    unknown", never as "model has no files".
    """
    try:
        return _MANIFEST.validate_json(document)
    except ValidationError as exc:
        logger.warning(
            "Failed to parse model file list from JSON: %d error(s), first: %s",
            exc.error_count(),
            _first_error(exc),
        )
    except ValueError as exc:
        logger.warning("Failed to parse model file list from JSON: %s", exc)
    return []


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err.get('msg', '')}" if loc else err.get("msg", "")
