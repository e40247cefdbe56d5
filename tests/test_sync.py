"""Tests for ensure_model: the full validate / download / validate cycle."""

from __future__ import annotations

import json

import pytest

from conftest import (
    BASE_URL,
    FakeRemote,
    SilentTransport,
    crc_hex,
    manifest_json,
    write_cache,
)
from model_sync.cancel import CancellationToken
from model_sync.models import sync as sync_mod
from model_sync.models.download import DOWNLOAD_FAILED_MESSAGE
from model_sync.models.sync import (
    EMPTY_MANIFEST_MESSAGE,
    INVALID_FILES_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    ensure_model,
)
from model_sync.models.validate import are_files_valid

REMOTE = f"{BASE_URL}/test-ai/m1"

FILES = {
    "flownet.pkl": b"flow" * 256,
    "sub/path/contextnet.pkl": b"ctx" * 300,
    "unet.pkl": b"\x00" * 50,
}


def _remote_for(files: dict[str, bytes], manifest: bytes | None = None) -> FakeRemote:
    if manifest is None:
        manifest = manifest_json(files)
    content = {f"{REMOTE}/files.json": manifest}
    for rel, data in files.items():
        content[f"{REMOTE}/{rel}"] = data
    return FakeRemote(content)


@pytest.fixture()
def model_dir(settings):
    return settings.package_root / "Test-AI" / "m1"


class TestEnsureModel:
    def test_downloads_everything(self, ai, settings, token, fast_downloader, model_dir):
        remote = _remote_for(FILES)
        ok = ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert ok
        assert not token.is_cancelled
        for rel, data in FILES.items():
            assert (model_dir / rel).read_bytes() == data
        assert are_files_valid("Test-AI", "m1", root=settings.package_root)

    def test_manifest_first_then_files_in_order(
        self, ai, settings, token, fast_downloader
    ):
        remote = _remote_for(FILES)
        ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert remote.requests == [
            f"{REMOTE}/files.json",
            f"{REMOTE}/flownet.pkl",
            f"{REMOTE}/sub/path/contextnet.pkl",
            f"{REMOTE}/unet.pkl",
        ]

    def test_second_call_makes_no_requests(self, ai, settings, token, fast_downloader):
        remote = _remote_for(FILES)
        dl = fast_downloader(remote)
        assert ensure_model(ai, "m1", token, settings=settings, downloader=dl)
        first = len(remote.requests)
        assert ensure_model(ai, "m1", token, settings=settings, downloader=dl)
        assert len(remote.requests) == first

    def test_valid_cache_skips_network(self, ai, settings, token, fast_downloader, model_dir):
        write_cache(model_dir, FILES)
        remote = FakeRemote({})
        assert ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert remote.requests == []

    def test_redownloads_corrupted_cache(self, ai, settings, token, fast_downloader, model_dir):
        write_cache(model_dir, FILES)
        (model_dir / "unet.pkl").write_bytes(b"corrupt")
        remote = _remote_for(FILES)
        assert ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert (model_dir / "unet.pkl").read_bytes() == FILES["unet.pkl"]

    def test_accepts_ai_name(self, settings, token, fast_downloader, monkeypatch, networks):
        monkeypatch.setattr(
            sync_mod, "get_network", lambda name: next(a for a in networks if a.name == name)
        )
        remote = _remote_for(FILES)
        assert ensure_model(
            "TEST_AI", "m1", token, settings=settings, downloader=fast_downloader(remote)
        )

    def test_display_name_resolves_to_model_dir(
        self, ai, settings, token, fast_downloader, model_dir
    ):
        remote = _remote_for(FILES)
        ok = ensure_model(
            ai, "Model 1", token, settings=settings, downloader=fast_downloader(remote)
        )
        assert ok
        assert remote.requests[0] == f"{REMOTE}/files.json"
        assert (model_dir / "flownet.pkl").read_bytes() == FILES["flownet.pkl"]
        assert not (settings.package_root / "Test-AI" / "Model 1").exists()

    def test_backslash_dirs_resolve_locally_and_remotely(
        self, ai, settings, token, fast_downloader, model_dir
    ):
        data = b"nested"
        manifest = json.dumps(
            [
                {
                    "filename": "deep.bin",
                    "dir": "\\sub\\path",
                    "size": str(len(data)),
                    "crc32": crc_hex(data),
                }
            ]
        ).encode()
        remote = FakeRemote(
            {f"{REMOTE}/files.json": manifest, f"{REMOTE}/sub/path/deep.bin": data}
        )
        assert ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert (model_dir / "sub" / "path" / "deep.bin").read_bytes() == data
        assert remote.requests[-1] == f"{REMOTE}/sub/path/deep.bin"


class TestFatalConditions:
    def test_empty_manifest(self, ai, settings, token, fast_downloader, model_dir):
        remote = _remote_for({}, manifest=b"[]")
        ok = ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert not ok
        assert token.message == EMPTY_MANIFEST_MESSAGE
        assert remote.requests == [f"{REMOTE}/files.json"]
        assert not are_files_valid("Test-AI", "m1", root=settings.package_root)

    def test_malformed_manifest(self, ai, settings, token, fast_downloader):
        remote = _remote_for({}, manifest=b"<html>404 Not Found</html>")
        ok = ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert not ok
        assert token.message == EMPTY_MANIFEST_MESSAGE

    def test_checksum_mismatch_after_download(self, ai, settings, token, fast_downloader):
        remote = _remote_for(FILES)
        remote.content[f"{REMOTE}/unet.pkl"] = b"served the wrong bytes"
        ok = ensure_model(ai, "m1", token, settings=settings, downloader=fast_downloader(remote))
        assert not ok
        assert token.message == INVALID_FILES_MESSAGE

    def test_failed_file_stops_the_sync(self, ai, settings, token, fast_downloader):
        remote = _remote_for(FILES)
        del remote.content[f"{REMOTE}/flownet.pkl"]
        dl = fast_downloader(remote)
        ok = ensure_model(
            ai,
            "m1",
            token,
            settings=settings.model_copy(update={"max_retries": 1}),
            downloader=dl,
        )
        assert not ok
        assert token.message == DOWNLOAD_FAILED_MESSAGE
        # Two attempts at the broken file, nothing after it.
        assert remote.requests.count(f"{REMOTE}/flownet.pkl") == 2
        assert f"{REMOTE}/unet.pkl" not in remote.requests

    def test_unexpected_error_is_contained(self, ai, settings, token, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(sync_mod, "are_files_valid", boom)
        with caplog.at_level("ERROR", logger="model_sync.models.sync"):
            ok = ensure_model(ai, "m1", token, settings=settings)
        assert not ok
        assert token.message == UNEXPECTED_ERROR_MESSAGE
        assert "disk on fire" not in token.message
        assert "disk on fire" in caplog.text
        assert "Traceback" in caplog.text

    def test_unknown_ai_is_contained(self, settings, token):
        assert not ensure_model("NO_SUCH_AI", "m1", token, settings=settings)
        assert token.message == UNEXPECTED_ERROR_MESSAGE


class TestCancellationDuringSync:
    def test_cancelled_before_start(self, ai, settings, fast_downloader):
        token = CancellationToken()
        token.cancel("user")
        remote = _remote_for(FILES)
        assert not ensure_model(
            ai, "m1", token, settings=settings, downloader=fast_downloader(remote)
        )
        assert remote.requests == []
        assert token.message == "user"

    def test_cancel_mid_file_stops_sync(self, ai, settings, fast_downloader):
        token = CancellationToken()
        remote = _remote_for(FILES)

        class HangsOnSecondFile:
            def download(self, url, dest, on_progress, abort):
                if url.endswith("contextnet.pkl"):
                    token.cancel("user")
                    abort.wait(5)
                    return
                remote.download(url, dest, on_progress, abort)

        ok = ensure_model(
            ai, "m1", token, settings=settings, downloader=fast_downloader(HangsOnSecondFile())
        )
        assert not ok
        assert token.message == "user"
        assert f"{REMOTE}/unet.pkl" not in remote.requests

    def test_stalled_manifest_fails_with_download_message(
        self, ai, settings, token, fast_downloader
    ):
        transport = SilentTransport()
        dl = fast_downloader(transport, stall_window=0.05, poll_interval=0.01)
        settings = settings.model_copy(update={"max_retries": 1})
        ok = ensure_model(ai, "m1", token, settings=settings, downloader=dl)
        assert not ok
        assert transport.attempts == 2
        assert token.message == DOWNLOAD_FAILED_MESSAGE
