"""Async byte stream helpers.

Sources are either ``asyncio.StreamReader`` objects (read in chunks) or any
async iterable of ``bytes``/``str`` chunks.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, List, Sequence, Tuple, Union

from ..util.log import Log

log = Log.create({"service": "stream"})

CHUNK_SIZE = 64 * 1024

Chunk = Union[bytes, str]
Source = Union[asyncio.StreamReader, AsyncIterable[Chunk]]


def _to_bytes(chunk: Chunk) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


async def iter_chunks(source: Source) -> AsyncIterator[bytes]:
    """Yield the byte chunks of ``source`` until it ends."""
    if isinstance(source, asyncio.StreamReader):
        while True:
            chunk = await source.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk
    else:
        async for chunk in source:
            yield _to_bytes(chunk)


async def read_stream_as_string(source: Source, encoding: str = "utf-8") -> str:
    """Drain ``source`` and decode it; errors from the source propagate."""
    chunks: List[bytes] = []
    async for chunk in iter_chunks(source):
        chunks.append(chunk)
    return b"".join(chunks).decode(encoding, errors="replace")


async def wait_for_event(event: asyncio.Event) -> None:
    await event.wait()


async def combine_streams(sources: Sequence[Source]) -> AsyncIterator[bytes]:
    """Merge ``sources`` into one chunk stream.

    Chunks are yielded in delivery order. The merged stream ends once every
    source has ended; the first source error is raised to the consumer.
    """
    queue: asyncio.Queue[Tuple[str, object]] = asyncio.Queue()

    async def pump(source: Source) -> None:
        try:
            async for chunk in iter_chunks(source):
                queue.put_nowait(("data", chunk))
        except Exception as e:
            queue.put_nowait(("error", e))
        else:
            queue.put_nowait(("end", None))

    tasks = [asyncio.create_task(pump(source)) for source in sources]
    remaining = len(tasks)
    try:
        while remaining:
            kind, value = await queue.get()
            if kind == "data":
                yield value  # type: ignore[misc]
            elif kind == "end":
                remaining -= 1
            else:
                raise value  # type: ignore[misc]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()


async def iter_lines(chunks: AsyncIterable[bytes], encoding: str = "utf-8") -> AsyncIterator[str]:
    """Split a chunk stream into lines without their terminators.

    ``\\r\\n`` and ``\\n`` both end a line. A trailing line without
    terminator is yielded if it is non-empty.
    """
    buffer = b""
    async for chunk in chunks:
        buffer += chunk
        *lines, buffer = buffer.split(b"\n")
        for line in lines:
            yield _decode_line(line, encoding)
    if buffer:
        yield _decode_line(buffer, encoding)


def _decode_line(line: bytes, encoding: str) -> str:
    if line.endswith(b"\r"):
        line = line[:-1]
    return line.decode(encoding, errors="replace")


async def pipe_stream(source: Source, sink: asyncio.StreamWriter) -> None:
    """Copy ``source`` into ``sink`` and close ``sink`` at the end.

    A consumer that exits before reading everything (``head``) is not an
    error; the rest of ``source`` is read and dropped so the producer can
    finish.
    """
    chunks = iter_chunks(source)
    try:
        async for chunk in chunks:
            sink.write(chunk)
            await sink.drain()
    except (BrokenPipeError, ConnectionResetError) as e:
        log.debug("pipe consumer closed early", {"error": e})
        async for _ in chunks:
            pass
    finally:
        sink.close()
