"""Shared fixtures, fakes and helpers."""

from __future__ import annotations

import json
import threading
import zlib
from pathlib import Path

import pytest

from model_sync.cancel import CancellationToken
from model_sync.models.download import Downloader
from model_sync.models.registry import AiEntry, ModelInfo
from model_sync.types import SyncSettings

BASE_URL = "https://models.example.test/mdl"


# ---------------------------------------------------------------------------
# Manifest helpers
# ---------------------------------------------------------------------------


def crc_hex(data: bytes) -> str:
    return f"{zlib.crc32(data) & 0xFFFFFFFF:08x}"


def manifest_json(files: dict[str, bytes]) -> bytes:
    """Build a ``files.json`` document for *files* (rel path -> content)."""
    entries = []
    for rel, data in files.items():
        directory, _, name = rel.rpartition("/")
        entries.append(
            {
                "filename": name,
                "dir": directory,
                "size": str(len(data)),
                "crc32": crc_hex(data),
            }
        )
    return json.dumps(entries).encode()


def write_cache(model_dir: Path, files: dict[str, bytes]) -> None:
    """Lay out a complete, valid cache directory."""
    model_dir.mkdir(parents=True, exist_ok=True)
    (model_dir / "files.json").write_bytes(manifest_json(files))
    for rel, data in files.items():
        target = model_dir / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


# ---------------------------------------------------------------------------
# Fake transports
# ---------------------------------------------------------------------------


class FakeRemote:
    """Serves a dict of URL -> bytes, in a few progress steps per file."""

    def __init__(self, content: dict[str, bytes] | None = None, steps: int = 3) -> None:
        self.content = dict(content or {})
        self.steps = steps
        self.requests: list[str] = []
        self._lock = threading.Lock()

    def download(self, url, dest, on_progress, abort) -> None:
        with self._lock:
            self.requests.append(url)
        if url not in self.content:
            raise FileNotFoundError(f"404 {url}")
        data = self.content[url]
        total = len(data)
        step = max(1, total // self.steps)
        with open(dest, "wb") as f:
            for start in range(0, total, step):
                if abort.is_set():
                    return
                f.write(data[start : start + step])
                on_progress(min(start + step, total), total)
        if total == 0:
            on_progress(0, 0)


class SilentTransport:
    """Never reports progress; returns only once aborted."""

    def __init__(self) -> None:
        self.attempts = 0

    def download(self, url, dest, on_progress, abort) -> None:
        self.attempts += 1
        abort.wait(5)


class TricklingTransport:
    """Reports a byte every *interval* seconds until aborted."""

    def __init__(self, interval: float = 0.01) -> None:
        self.interval = interval
        self.attempts = 0

    def download(self, url, dest, on_progress, abort) -> None:
        self.attempts += 1
        done = 0
        while not abort.wait(self.interval):
            done += 1
            on_progress(done, 1_000_000)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def networks() -> list[AiEntry]:
    return [
        AiEntry(
            name="TEST_AI",
            pkg_dir="Test-AI",
            display="Test AI",
            models=[ModelInfo("Model 1", "m1"), ModelInfo("Model 2", "m2")],
        ),
        AiEntry(
            name="OTHER_AI",
            pkg_dir="other-ai",
            display="Other AI",
            models=[ModelInfo("Only", "only")],
        ),
    ]


@pytest.fixture()
def ai(networks: list[AiEntry]) -> AiEntry:
    return networks[0]


@pytest.fixture()
def settings(tmp_path: Path) -> SyncSettings:
    return SyncSettings(
        base_url=BASE_URL,
        package_root=tmp_path / "pkgs",
        stall_window=0.3,
        poll_interval=0.02,
        progress_log_interval=0.0,
    )


@pytest.fixture()
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture()
def fast_downloader():
    """Factory: a Downloader with test-sized timings around *transport*."""

    def make(transport, **kwargs) -> Downloader:
        kwargs.setdefault("stall_window", 0.3)
        kwargs.setdefault("poll_interval", 0.02)
        kwargs.setdefault("progress_log_interval", 0.0)
        return Downloader(transport, **kwargs)

    return make
