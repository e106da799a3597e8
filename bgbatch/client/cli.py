"""
Command-line client for the batch service.

    bgbatch upload a.jpg b.png      submit a batch and wait for the results
    bgbatch list                    show cached results
    bgbatch remove NAME             drop a cached result
    bgbatch download NAME           save a cached result to disk
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

import httpx

from bgbatch.client.cache import ResultCache, ResultEntry
from bgbatch.client.config import ClientSettings
from bgbatch.client.poller import BatchFile, BatchPoller, PollerError
from bgbatch.core.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bgbatch",
        description="Upload images for batch background removal and manage cached results"
    )
    parser.add_argument("--server", help="Service base URL (default: BGBATCH_SERVER_URL)")
    parser.add_argument("--cache", help="Result cache file (default: BGBATCH_CACHE_PATH)")
    parser.add_argument("--verbose", action="store_true", help="Show client logs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload images and wait for the results")
    upload.add_argument("files", nargs="+", help="Image files to process")

    subparsers.add_parser("list", help="List cached results")

    remove = subparsers.add_parser("remove", help="Remove a cached result by name")
    remove.add_argument("name", help="Result file name")

    download = subparsers.add_parser("download", help="Download a cached result by name")
    download.add_argument("name", help="Result file name")
    download.add_argument("--dest", default=".", help="Directory to save into (default: current directory)")

    return parser


async def upload_batch(settings: ClientSettings, cache: ResultCache, paths: List[str]) -> int:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        pass

    async with httpx.AsyncClient(
        base_url=settings.SERVER_URL,
        timeout=settings.REQUEST_TIMEOUT_SECONDS
    ) as http:
        poller = BatchPoller(http, cache, settings, on_progress=print)
        poller.add_files(BatchFile.from_path(path) for path in paths)
        print(f"Uploading {len(paths)} file(s) to {settings.SERVER_URL} ...")
        try:
            entries = await poller.run(cancel)
        except PollerError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    if not entries:
        print(f"Stopped polling job {poller.job_id}; it keeps running on the server.")
        return 130

    print(f"Images processed successfully! (job {poller.job_id})")
    for entry in entries:
        print(f"  {entry.name}  {entry.url}")
    return 0


async def download_result(http: httpx.AsyncClient, entry: ResultEntry, dest: Path) -> Path:
    """Fetch one processed file and write it as <dest>/<name>."""
    response = await http.get(entry.url)
    response.raise_for_status()

    dest.mkdir(parents=True, exist_ok=True)
    target = dest / Path(entry.name).name
    target.write_bytes(response.content)
    return target


async def download_by_name(settings: ClientSettings, cache: ResultCache, name: str, dest: str) -> int:
    matches = [entry for entry in cache.load_all() if entry.name == name]
    if not matches:
        print(f"No cached result named {name}", file=sys.stderr)
        return 1

    async with httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_SECONDS) as http:
        try:
            target = await download_result(http, matches[-1], Path(dest))
        except httpx.HTTPError as e:
            print(f"Error downloading {name}: {e}", file=sys.stderr)
            return 1

    print(f"Saved {target}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(log_level="DEBUG" if args.verbose else "WARNING", json_format=False)

    settings = ClientSettings()
    if args.server:
        settings.SERVER_URL = args.server
    if args.cache:
        settings.CACHE_PATH = args.cache

    cache = ResultCache(settings.CACHE_PATH, settings.CACHE_KEY)

    if args.command == "upload":
        return asyncio.run(upload_batch(settings, cache, args.files))

    if args.command == "list":
        entries = cache.load_all()
        if not entries:
            print("No cached results.")
        for entry in entries:
            print(f"{entry.name}\t{entry.url}")
        return 0

    if args.command == "remove":
        removed = cache.remove(args.name)
        print(f"Removed {removed} result(s) named {args.name}")
        return 0 if removed else 1

    if args.command == "download":
        return asyncio.run(download_by_name(settings, cache, args.name, args.dest))

    return 2


if __name__ == "__main__":
    sys.exit(main())
