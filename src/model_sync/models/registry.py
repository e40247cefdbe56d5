"""Network registry: known interpolation AIs, their models, and cache paths."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from model_sync.types import DEFAULT_BASE_URL, DEFAULT_PACKAGE_ROOT, MANIFEST_NAME

# ---------------------------------------------------------------------------
# Registry entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelInfo:
    """One model variant (a weights set) offered by an AI."""

    name: str
    dir: str  # Directory below the AI's package dir, also the remote path segment
    description: str = ""


@dataclass(frozen=True)
class AiEntry:
    """An interpolation network and the models it can run."""

    name: str
    pkg_dir: str  # Namespaces both local and remote paths
    display: str
    models: list[ModelInfo] = field(default_factory=list)


class UnknownModelError(KeyError):
    """Lookup of an AI or model that is not in the registry."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

# fmt: off
_NETWORKS: dict[str, AiEntry] = {
    "RIFE_CUDA": AiEntry(
        name="RIFE_CUDA",
        pkg_dir="rife-cuda",
        display="RIFE (CUDA/Pytorch)",
        models=[
            ModelInfo("RIFE 2.6", "RIFE26", "Reliable all-round model."),
            ModelInfo("RIFE 3.1", "RIFE31", "Sharper, occasional warping."),
            ModelInfo("RIFE 4.0", "RIFE40", "Arbitrary timestep, fastest."),
        ],
    ),
    "RIFE_NCNN": AiEntry(
        name="RIFE_NCNN",
        pkg_dir="rife-ncnn",
        display="RIFE (NCNN/Vulkan)",
        models=[
            ModelInfo("RIFE 2.4", "rife-v2.4"),
            ModelInfo("RIFE 4.0", "rife-v4"),
        ],
    ),
    "FLAVR_CUDA": AiEntry(
        name="FLAVR_CUDA",
        pkg_dir="flavr-cuda",
        display="FLAVR (CUDA/Pytorch)",
        models=[
            ModelInfo("FLAVR 2x", "FLAVR2X"),
            ModelInfo("FLAVR 4x", "FLAVR4X"),
            ModelInfo("FLAVR 8x", "FLAVR8X"),
        ],
    ),
    "DAIN_NCNN": AiEntry(
        name="DAIN_NCNN",
        pkg_dir="dain-ncnn",
        display="DAIN (NCNN/Vulkan)",
        models=[
            ModelInfo("DAIN", "best", "Slow, depth-aware."),
        ],
    ),
    "XVFI_CUDA": AiEntry(
        name="XVFI_CUDA",
        pkg_dir="xvfi-cuda",
        display="XVFI (CUDA/Pytorch)",
        models=[
            ModelInfo("XVFI X4K1000FPS", "X4K1000FPS"),
            ModelInfo("XVFI Vimeo90K", "Vimeo90K"),
        ],
    ),
}
# fmt: on

# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def list_networks() -> list[AiEntry]:
    """Return all known AIs in registry order."""
    return list(_NETWORKS.values())


def get_network(name: str, networks: Iterable[AiEntry] | None = None) -> AiEntry:
    """Look up an AI by name or package dir (case-insensitive).

    Raises ``UnknownModelError`` if not found.
    """
    candidates = list(networks) if networks is not None else list_networks()
    wanted = name.lower()
    for ai in candidates:
        if wanted in (ai.name.lower(), ai.pkg_dir.lower()):
            return ai
    available = ", ".join(ai.name for ai in candidates)
    msg = f"Unknown AI {name!r}. Available: {available}"
    raise UnknownModelError(msg)


def get_model_info(ai: AiEntry, model: str) -> ModelInfo:
    """Look up one of *ai*'s models by directory or display name."""
    for info in ai.models:
        if model in (info.dir, info.name):
            return info
    available = ", ".join(info.dir for info in ai.models)
    msg = f"Unknown model {model!r} for {ai.name}. Available: {available}"
    raise UnknownModelError(msg)


# ---------------------------------------------------------------------------
# Paths and URLs
# ---------------------------------------------------------------------------


def package_root(root: Path | None = None) -> Path:
    """Return the directory that holds every AI's package dir."""
    return Path(root) if root is not None else DEFAULT_PACKAGE_ROOT


def model_path(ai_dir: str, model: str, *, root: Path | None = None) -> Path:
    """Return the cache directory for a model (may not exist yet)."""
    return package_root(root) / ai_dir / model


def manifest_path(ai_dir: str, model: str, *, root: Path | None = None) -> Path:
    return model_path(ai_dir, model, root=root) / MANIFEST_NAME


def model_url(ai_dir: str, model: str, *, base_url: str = DEFAULT_BASE_URL) -> str:
    """Return the remote directory URL for a model.  The AI segment is lower-cased."""
    return "/".join([base_url.rstrip("/"), ai_dir.lower(), model.strip("/")])


def model_file_url(
    ai_dir: str, model: str, rel_path: str, *, base_url: str = DEFAULT_BASE_URL
) -> str:
    """Return the remote URL of *rel_path* inside a model directory."""
    rel_path = rel_path.replace("\\", "/").lstrip("/")
    return f"{model_url(ai_dir, model, base_url=base_url)}/{rel_path}"
