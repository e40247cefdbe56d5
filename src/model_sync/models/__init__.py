"""Model registry, download and cache management for model-sync."""

from model_sync.models.download import Downloader, FetchResult, HttpxTransport
from model_sync.models.inventory import delete_all_models, list_cached_model_dirs
from model_sync.models.manifest import parse_manifest
from model_sync.models.registry import (
    AiEntry,
    ModelInfo,
    UnknownModelError,
    get_model_info,
    get_network,
    list_networks,
    model_path,
)
from model_sync.models.sync import ensure_model
from model_sync.models.validate import are_files_valid, file_crc32

__all__ = [
    "AiEntry",
    "Downloader",
    "FetchResult",
    "HttpxTransport",
    "ModelInfo",
    "UnknownModelError",
    "are_files_valid",
    "delete_all_models",
    "ensure_model",
    "file_crc32",
    "get_model_info",
    "get_network",
    "list_cached_model_dirs",
    "list_networks",
    "model_path",
    "parse_manifest",
]
