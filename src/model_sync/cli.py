"""model-sync command-line interface."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from model_sync import __version__
from model_sync.types import SyncSettings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="model-sync",
        description="Download and verify frame interpolation model files.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"model-sync {__version__}",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Package directory holding the model cache  [env: MODEL_SYNC_PKG_DIR]",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output.",
    )

    sub = parser.add_subparsers(dest="command")

    # -- list ---------------------------------------------------------------
    list_parser = sub.add_parser("list", help="Show known AIs and their models.")
    list_parser.add_argument(
        "--installed",
        action="store_true",
        help="Show only models with a cache directory, with sizes.",
    )

    # -- sync ---------------------------------------------------------------
    sync_parser = sub.add_parser("sync", help="Download a model if its cache is not valid.")
    sync_parser.add_argument("ai", help="AI name or package dir, e.g. RIFE_CUDA")
    sync_parser.add_argument("model", help="Model directory, e.g. RIFE26")
    sync_parser.add_argument(
        "--base-url",
        default=None,
        help="Remote model repository  [env: MODEL_SYNC_BASE_URL]",
    )
    sync_parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Retries per file after a stall or error  [default: 3]",
    )

    # -- verify -------------------------------------------------------------
    verify_parser = sub.add_parser("verify", help="Check a cached model against its CRC32s.")
    verify_parser.add_argument("ai")
    verify_parser.add_argument("model")

    # -- purge --------------------------------------------------------------
    sub.add_parser("purge", help="Delete every cached model.")

    # -- dispatch -----------------------------------------------------------
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "list":
        return _cmd_list(args)
    if args.command == "purge":
        return _cmd_purge(args)
    try:
        if args.command == "sync":
            return _cmd_sync(args)
        if args.command == "verify":
            return _cmd_verify(args)
    except KeyError as exc:  # Unknown AI or model
        print(exc, file=sys.stderr)
        return 2
    parser.print_help()
    return 0


def setup_logging(level: int = logging.INFO) -> None:
    """Send library logs to stderr."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Subcommand implementations
# ---------------------------------------------------------------------------


def _cmd_list(args: argparse.Namespace) -> int:
    """Print known AIs and models."""
    from model_sync.models import list_networks
    from model_sync.models.inventory import dir_size, format_bytes

    settings = SyncSettings.from_env(package_root=args.root)
    base = settings.package_root
    shown = 0

    for ai in list_networks():
        rows = []
        for info in ai.models:
            mdl_dir = base / ai.pkg_dir / info.dir
            cached = mdl_dir.is_dir()
            if args.installed and not cached:
                continue
            marker = "*" if cached else " "
            size = f"{format_bytes(dir_size(mdl_dir)):>10s}" if cached else " " * 10
            rows.append(f"  {marker} {info.dir:<16s} {size}   {info.name}")
        if not rows:
            continue
        print(f"  {ai.display} [{ai.name}]")
        print("\n".join(rows))
        print()
        shown += len(rows)

    if args.installed and not shown:
        print("No models installed. Run 'model-sync sync AI MODEL' to download one.")
        return 0
    print("  * = cached")
    return 0


def _cmd_sync(args: argparse.Namespace) -> int:
    """Download (if needed) and validate one model."""
    from model_sync.cancel import CancellationToken
    from model_sync.models import ensure_model, get_model_info, get_network

    settings = SyncSettings.from_env(
        package_root=args.root,
        base_url=args.base_url,
        max_retries=args.retries,
    )
    ai = get_network(args.ai)
    info = get_model_info(ai, args.model)
    token = CancellationToken()

    previous = signal.signal(
        signal.SIGINT, lambda *_: token.cancel("Cancelled by user.")
    )
    try:
        ok = ensure_model(ai, info.dir, token, settings=settings)
    finally:
        signal.signal(signal.SIGINT, previous)

    if ok:
        print(f"Model ready: {settings.package_root / ai.pkg_dir / info.dir}")
        return 0
    print(token.message or "Model download did not complete.", file=sys.stderr)
    return 1


def _cmd_verify(args: argparse.Namespace) -> int:
    from model_sync.models import are_files_valid, get_model_info, get_network

    settings = SyncSettings.from_env(package_root=args.root)
    ai = get_network(args.ai)
    info = get_model_info(ai, args.model)

    if are_files_valid(ai.pkg_dir, info.dir, root=settings.package_root):
        print(f"{ai.name}/{info.dir}: valid")
        return 0
    print(f"{ai.name}/{info.dir}: invalid or not downloaded")
    return 1


def _cmd_purge(args: argparse.Namespace) -> int:
    from model_sync.models import delete_all_models
    from model_sync.models.inventory import dir_size, format_bytes, list_cached_model_dirs

    settings = SyncSettings.from_env(package_root=args.root)
    root = settings.package_root

    before = sum(dir_size(d) for d in list_cached_model_dirs(root=root))
    removed = delete_all_models(root=root)
    after = sum(dir_size(d) for d in list_cached_model_dirs(root=root))

    print(f"Removed {len(removed)} model(s), freed {format_bytes(before - after)}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
