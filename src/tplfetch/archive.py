"""Stream a GitHub tarball straight into the project directory.

The archive is never buffered whole: response chunks are handed through a
bounded queue to a ``tarfile`` stream reader running in a worker thread, so
download and extraction proceed together and a slow disk throttles the
download.
"""

import asyncio
import logging
import tarfile
from pathlib import Path

import httpx

from .models import RepoInfo, Settings

logger = logging.getLogger(__name__)

# Chunks in flight between the download and the extractor
QUEUE_SIZE = 16

_EOF = object()
_ABORT = object()


class DownloadAborted(Exception):
    """Raised inside the extractor when the download fails mid-stream."""


def strip_count(file_path: str) -> int:
    """Leading path components to drop: ``{repo}-{branch}/`` plus the subpath."""
    return len(file_path.split("/")) + 1 if file_path else 1


def repo_archive_filter(info: RepoInfo) -> str:
    prefix = f"{info.name}-{info.branch}"
    return f"{prefix}/{info.file_path}" if info.file_path else prefix


def example_archive_filter(name: str, settings: Settings = Settings()) -> str:
    return f"{settings.examples_repo_name}-{settings.examples_branch}/{name}"


def repo_archive_url(info: RepoInfo, settings: Settings = Settings()) -> str:
    return f"{settings.codeload_url}/{info.owner}/{info.name}/tar.gz/{info.branch}"


def example_archive_url(settings: Settings = Settings()) -> str:
    return (
        f"{settings.codeload_url}/{settings.examples_repo}/tar.gz/{settings.examples_branch}"
    )


class _ChunkReader:
    """Blocking file-like reader fed from an asyncio.Queue on another thread."""

    def __init__(self, chunks: asyncio.Queue, loop: asyncio.AbstractEventLoop):
        self._chunks = chunks
        self._loop = loop
        self._buffer = bytearray()
        self._eof = False

    def _next(self) -> object:
        return asyncio.run_coroutine_threadsafe(self._chunks.get(), self._loop).result()

    def read(self, size: int = -1) -> bytes:
        while not self._eof and (size < 0 or len(self._buffer) < size):
            item = self._next()
            if item is _EOF:
                self._eof = True
            elif item is _ABORT:
                raise DownloadAborted()
            else:
                self._buffer += item
        if size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


def _matches(name: str, filters: list[str]) -> bool:
    name = name.rstrip("/")
    return any(name == f or name.startswith(f + "/") for f in filters)


def _strip_components(name: str, strip: int) -> str:
    return "/".join(name.rstrip("/").split("/")[strip:])


def extract_stream(fileobj, root: Path, strip: int, filters: list[str]) -> int:
    """Extract members of a gzip tar stream under ``root``; returns the member count.

    Only members at or below one of ``filters`` are extracted, with ``strip``
    leading path components removed. Members whose whole path is stripped
    away (the filtered directory itself) are skipped.
    """
    count = 0
    with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
        for member in tar:
            if not _matches(member.name, filters):
                continue
            name = _strip_components(member.name, strip)
            if not name:
                continue
            changes = {"name": name}
            if member.islnk():
                # Hard link targets are archive paths too
                linkname = _strip_components(member.linkname, strip)
                if not linkname:
                    continue
                changes["linkname"] = linkname
            tar.extract(member.replace(**changes, deep=False), root, filter="tar")
            count += 1
    return count


async def _feed(chunks: asyncio.Queue, item: object, extraction: asyncio.Task) -> bool:
    """Queue ``item`` for the extractor; False once the extractor has stopped."""
    if extraction.done():
        return False
    put = asyncio.ensure_future(chunks.put(item))
    await asyncio.wait((put, extraction), return_when=asyncio.FIRST_COMPLETED)
    if put.done():
        return True
    put.cancel()
    return False


async def download_and_extract(
    client: httpx.AsyncClient, url: str, root: Path, strip: int, filters: list[str]
) -> None:
    root.mkdir(parents=True, exist_ok=True)
    loop = asyncio.get_running_loop()
    chunks: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)

    logger.debug("Downloading %s (strip=%d, filters=%s)", url, strip, filters)
    async with client.stream("GET", url) as response:
        response.raise_for_status()
        extraction = asyncio.ensure_future(
            asyncio.to_thread(
                extract_stream, _ChunkReader(chunks, loop), root, strip, filters
            )
        )
        try:
            async for chunk in response.aiter_bytes():
                if not await _feed(chunks, chunk, extraction):
                    break
        except BaseException:
            await _feed(chunks, _ABORT, extraction)
            await asyncio.gather(extraction, return_exceptions=True)
            raise
        await _feed(chunks, _EOF, extraction)
        count = await extraction
    logger.debug("Extracted %d entries into %s", count, root)


async def download_and_extract_repo(
    client: httpx.AsyncClient,
    root: Path,
    info: RepoInfo,
    settings: Settings = Settings(),
) -> None:
    await download_and_extract(
        client,
        repo_archive_url(info, settings),
        root,
        strip_count(info.file_path),
        [repo_archive_filter(info)],
    )


async def download_and_extract_example(
    client: httpx.AsyncClient, root: Path, name: str, settings: Settings = Settings()
) -> None:
    await download_and_extract(
        client,
        example_archive_url(settings),
        root,
        2,
        [example_archive_filter(name, settings)],
    )
