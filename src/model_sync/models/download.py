"""Download single model files with stall detection, retry and cancellation."""

from __future__ import annotations

import logging
import os
import queue
import tempfile
import threading
import time
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, NamedTuple, Protocol

import httpx

from model_sync.cancel import CancellationToken, ModelSyncError
from model_sync.types import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROGRESS_LOG_INTERVAL,
    DEFAULT_STALL_WINDOW,
    SyncSettings,
)

logger = logging.getLogger(__name__)

DOWNLOAD_FAILED_MESSAGE = "Model download failed."

# (bytes done, total bytes or 0 when unknown)
TransferProgress = Callable[[int, int], None]
# (file name, percent) after throttling
ProgressCallback = Callable[[str, int], None]


class TransportError(ModelSyncError):
    """A transfer ended early or with an unusable response."""


class FetchResult(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class _Outcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STALLED = "stalled"
    ERROR = "error"


class _Event(NamedTuple):
    kind: str  # "progress", "done" or "error"
    done: int = 0
    total: int = 0
    error: BaseException | None = None


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class Transport(Protocol):
    """Moves the bytes of one URL into one local file.

    Implementations call *on_progress* as data arrives and return early
    once *abort* is set.  Errors are raised; the engine decides whether
    to retry.
    """

    def download(
        self,
        url: str,
        dest: Path,
        on_progress: TransferProgress,
        abort: threading.Event,
    ) -> None: ...


class HttpxTransport:
    """Streaming GET via ``httpx``."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        chunk_size: int = 131_072,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self._client = client
        self._chunk_size = chunk_size
        self._timeout = timeout or httpx.Timeout(30, read=60)

    def download(
        self,
        url: str,
        dest: Path,
        on_progress: TransferProgress,
        abort: threading.Event,
    ) -> None:
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            with client.stream("GET", url, follow_redirects=True) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length", 0))
                downloaded = 0
                on_progress(downloaded, total)
                if abort.is_set():
                    return

                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=self._chunk_size):
                        if abort.is_set():
                            return
                        f.write(chunk)
                        downloaded += len(chunk)
                        on_progress(downloaded, total)

                if total > 0 and downloaded != total:
                    msg = f"Incomplete download: got {downloaded} bytes, expected {total}"
                    raise TransportError(msg)
        finally:
            if self._client is None:
                client.close()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class Downloader:
    """Fetches one URL at a time, watching for stalls and cancellation.

    The transfer itself runs on a worker thread and reports through a
    queue; the calling thread polls that queue every *poll_interval*
    seconds.  An attempt that produces no progress for *stall_window*
    seconds is abandoned and the file is fetched again from scratch.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        stall_window: float = DEFAULT_STALL_WINDOW,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        progress_log_interval: float = DEFAULT_PROGRESS_LOG_INTERVAL,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._transport = transport or HttpxTransport()
        self._stall_window = stall_window
        self._poll_interval = poll_interval
        self._progress_log_interval = progress_log_interval
        self._on_progress = on_progress

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        transport: Transport | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> Downloader:
        return cls(
            transport,
            stall_window=settings.stall_window,
            poll_interval=settings.poll_interval,
            progress_log_interval=settings.progress_log_interval,
            on_progress=on_progress,
        )

    def fetch(
        self,
        url: str,
        dest: Path,
        token: CancellationToken,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> FetchResult:
        """Download *url* to *dest* (a file path, or a directory to put it in).

        Makes at most ``max_retries + 1`` attempts.  When all of them stall
        or fail, *token* is cancelled with a short message and ``FAILED``
        is returned.  If *token* is cancelled from elsewhere, returns
        ``CANCELLED`` as soon as the next poll notices.
        """
        dest = Path(dest)
        if dest.is_dir():
            dest = dest / _url_basename(url)

        retries = max_retries
        attempt = 0
        while True:
            if token.is_cancelled:
                return FetchResult.CANCELLED

            attempt += 1
            dest.unlink(missing_ok=True)
            dest.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Downloading '%s' to '%s' (attempt %d)", url, dest, attempt)

            outcome, detail = self._attempt(url, dest, token)

            if outcome is _Outcome.COMPLETED:
                logger.info("Downloaded '%s' (%d KB)", dest.name, dest.stat().st_size // 1024)
                return FetchResult.COMPLETED
            if outcome is _Outcome.CANCELLED:
                logger.debug("Download of '%s' cancelled", dest.name)
                return FetchResult.CANCELLED

            if retries <= 0:
                logger.error(
                    "Giving up on '%s' after %d attempt(s): %s", url, attempt, detail
                )
                token.cancel(DOWNLOAD_FAILED_MESSAGE)
                return FetchResult.FAILED

            retries -= 1
            logger.warning(
                "Download of '%s' %s (%s), retrying (%d left)",
                dest.name,
                outcome.value,
                detail,
                retries,
            )

    # -- internals -----------------------------------------------------------

    def _attempt(
        self, url: str, dest: Path, token: CancellationToken
    ) -> tuple[_Outcome, str]:
        # Each attempt writes to its own part file; only a finished,
        # un-aborted attempt is moved onto *dest*.
        fd, part_name = tempfile.mkstemp(
            dir=dest.parent, prefix=f".{dest.name}.", suffix=".part"
        )
        os.close(fd)
        part = Path(part_name)

        events: queue.Queue[_Event] = queue.Queue()
        abort = threading.Event()
        worker = threading.Thread(
            target=self._transfer,
            args=(url, part, events, abort),
            name=f"download-{dest.name}",
            daemon=True,
        )
        worker.start()

        outcome, detail = self._wait(dest.name, events, abort, token)
        if outcome is _Outcome.COMPLETED:
            os.replace(part, dest)
        else:
            abort.set()
            part.unlink(missing_ok=True)
        return outcome, detail

    def _wait(
        self,
        name: str,
        events: queue.Queue[_Event],
        abort: threading.Event,
        token: CancellationToken,
    ) -> tuple[_Outcome, str]:
        last_event = time.monotonic()
        last_log = float("-inf")
        last_pct = -1

        while True:
            if token.is_cancelled:
                abort.set()
                return _Outcome.CANCELLED, "cancelled"

            try:
                event = events.get(timeout=self._poll_interval)
            except queue.Empty:
                idle = time.monotonic() - last_event
                if idle >= self._stall_window:
                    abort.set()
                    return _Outcome.STALLED, f"no progress for {idle:.1f}s"
                continue

            if event.kind == "done":
                return _Outcome.COMPLETED, ""
            if event.kind == "error":
                abort.set()
                return _Outcome.ERROR, f"{type(event.error).__name__}: {event.error}"

            now = time.monotonic()
            last_event = now
            if event.total <= 0:
                continue
            pct = min(100, event.done * 100 // event.total)
            if pct != last_pct and now - last_log >= self._progress_log_interval:
                last_pct = pct
                last_log = now
                logger.info("Downloading model file '%s'... %d%%", name, pct)
                if self._on_progress is not None:
                    self._on_progress(name, pct)

    def _transfer(
        self,
        url: str,
        part: Path,
        events: queue.Queue[_Event],
        abort: threading.Event,
    ) -> None:
        def report(done: int, total: int) -> None:
            events.put(_Event("progress", done, total))

        try:
            self._transport.download(url, part, report, abort)
        except Exception as exc:  # handed to the polling thread
            events.put(_Event("error", error=exc))
        else:
            if not abort.is_set():
                events.put(_Event("done"))
        finally:
            # An abandoned attempt may have recreated its part file late.
            if abort.is_set():
                part.unlink(missing_ok=True)


def _url_basename(url: str) -> str:
    name = PurePosixPath(httpx.URL(url).path).name
    if not name:
        msg = f"Cannot derive a file name from {url!r}"
        raise ValueError(msg)
    return name
