"""Bring one model's local cache into a valid state."""

from __future__ import annotations

import logging

from model_sync.cancel import CancellationToken
from model_sync.models.download import Downloader, FetchResult, ProgressCallback
from model_sync.models.manifest import parse_manifest
from model_sync.models.registry import (
    AiEntry,
    UnknownModelError,
    get_model_info,
    get_network,
    model_file_url,
    model_path,
)
from model_sync.models.validate import are_files_valid
from model_sync.types import MANIFEST_NAME, SyncSettings

logger = logging.getLogger(__name__)

EMPTY_MANIFEST_MESSAGE = (
    "Error: Can't download model files because no entries were loaded "
    f"from {MANIFEST_NAME}. Please try again."
)
INVALID_FILES_MESSAGE = "Model files are invalid! Please try again."
UNEXPECTED_ERROR_MESSAGE = "Error downloading model files. See the log for details."


def ensure_model(
    ai: AiEntry | str,
    model: str,
    token: CancellationToken,
    *,
    settings: SyncSettings | None = None,
    downloader: Downloader | None = None,
    on_progress: ProgressCallback | None = None,
) -> bool:
    """Make sure the files of *model* are cached and pass CRC32 validation.

    Does nothing (and touches no network) when the cache is already valid.
    Otherwise downloads ``files.json`` and then every file it lists, one
    after the other, and validates the result.

    Never raises.  Fatal problems cancel *token* with a short message for
    the user; details go to the log.  Returns ``True`` when the cache is
    valid on return.

    Concurrent calls for the same AI and model must be serialized by the
    caller.
    """
    try:
        settings = settings or SyncSettings.from_env()
        root = settings.package_root
        if isinstance(ai, str):
            ai = get_network(ai)
        ai_dir = ai.pkg_dir
        try:
            model = get_model_info(ai, model).dir
        except UnknownModelError:
            pass  # unregistered models are addressed by directory name
        logger.debug("ensure_model(ai=%s, model=%s)", ai.name, model)

        mdl_dir = model_path(ai_dir, model, root=root)
        if are_files_valid(ai_dir, model, root=root):
            return True

        logger.info("Downloading '%s' model files...", model)
        mdl_dir.mkdir(parents=True, exist_ok=True)

        downloader = downloader or Downloader.from_settings(settings, on_progress=on_progress)

        def fetch(rel_path: str) -> bool:
            url = model_file_url(ai_dir, model, rel_path, base_url=settings.base_url)
            result = downloader.fetch(
                url, mdl_dir / rel_path, token, max_retries=settings.max_retries
            )
            return result is FetchResult.COMPLETED

        if not fetch(MANIFEST_NAME):
            return False

        files = parse_manifest((mdl_dir / MANIFEST_NAME).read_bytes())
        if not files:
            logger.error("No entries loaded from %s", mdl_dir / MANIFEST_NAME)
            token.cancel(EMPTY_MANIFEST_MESSAGE)
            return False

        for mf in files:
            if not fetch(mf.rel_path):
                return False

        logger.info("Downloaded '%s' model files.", model)

        if not are_files_valid(ai_dir, model, root=root):
            logger.error("Model %s/%s failed validation after download", ai_dir, model)
            token.cancel(INVALID_FILES_MESSAGE)
            return False

        return True

    except Exception:
        logger.exception(
            "Error downloading model files for %s/%s", getattr(ai, "name", ai), model
        )
        token.cancel(UNEXPECTED_ERROR_MESSAGE)
        return False
