"""
Model File Decompression
Inflates gzip-compressed model files, trying each available path in order:

1. zlib streaming decompressor (in-process, run off the event loop)
2. system ``gzip`` executable (subprocess round-trip)

Compressed bytes are never returned as if they were decompressed. Data that
only looks compressed by its ``.gz`` name is passed through when no path can
inflate it.
"""

import asyncio
import logging
import shutil
from typing import Awaitable, Callable, List, Optional, Tuple

from .exceptions import DecompressionUnsupportedError

try:
    import zlib
except ImportError:  # interpreter built without zlib
    zlib = None

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
GZIP_SUFFIX = ".gz"
REQUIREMENTS = "a Python interpreter built with zlib, or a gzip executable on PATH"
CHUNK_SIZE = 1024 * 1024

Strategy = Tuple[str, Callable[[bytes], Awaitable[bytes]]]


class DecompressionPathError(RuntimeError):
    """One decompression path is missing or failed"""
    pass


def is_gzip_data(data: bytes) -> bool:
    """Check the gzip magic number"""
    return len(data) >= 2 and data[:2] == GZIP_MAGIC


def is_compressed(data: bytes, url: str = "") -> bool:
    return url.endswith(GZIP_SUFFIX) or is_gzip_data(data)


def inflate_stream(data: bytes, chunk_size: int = CHUNK_SIZE) -> bytes:
    """Decompress every gzip member in ``data`` with zlib"""
    if zlib is None:
        raise DecompressionPathError("zlib is not available")

    out = bytearray()
    remaining = data
    try:
        while remaining:
            decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
            view = memoryview(remaining)
            tail = b""
            for offset in range(0, len(view), chunk_size):
                out += decompressor.decompress(view[offset:offset + chunk_size])
                if decompressor.eof:
                    tail = bytes(view[offset + chunk_size:])
                    break
            out += decompressor.flush()
            if not decompressor.eof:
                raise DecompressionPathError("truncated gzip stream")
            remaining = decompressor.unused_data + tail
            if remaining and not is_gzip_data(remaining):
                break
    except zlib.error as e:
        raise DecompressionPathError(str(e)) from e
    return bytes(out)


async def inflate_native(data: bytes) -> bytes:
    return await asyncio.to_thread(inflate_stream, data)


async def inflate_external(data: bytes) -> bytes:
    """Round-trip the bytes through the system gzip executable"""
    gzip_bin = shutil.which("gzip")
    if not gzip_bin:
        raise DecompressionPathError("gzip executable not found")

    process = await asyncio.create_subprocess_exec(
        gzip_bin, "-dc",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate(data)
    if process.returncode != 0:
        raise DecompressionPathError(
            stderr.decode("utf-8", "replace").strip() or f"gzip exited with {process.returncode}"
        )
    return stdout


DEFAULT_STRATEGIES: List[Strategy] = [
    ("zlib", inflate_native),
    ("gzip", inflate_external),
]


async def maybe_decompress(
    data: bytes,
    url: str = "",
    strategies: Optional[List[Strategy]] = None,
) -> bytes:
    """
    Decompress model bytes if they look gzip-compressed.

    Args:
        data: Downloaded bytes
        url: Remote path, checked for the ``.gz`` suffix
        strategies: Ordered decompression paths (defaults to zlib then gzip)

    Returns:
        Decompressed bytes, or ``data`` unchanged when it is not gzip data

    Raises:
        DecompressionUnsupportedError: If gzip data could not be inflated by any path
    """
    if not is_compressed(data, url):
        return data

    for name, strategy in strategies or DEFAULT_STRATEGIES:
        try:
            result = await strategy(data)
        except (DecompressionPathError, OSError, EOFError) as e:
            logger.warning("%s decompression failed for %s: %s", name, url or "<bytes>", e)
            continue
        if is_gzip_data(result):
            logger.warning("%s decompression left %s still compressed", name, url or "<bytes>")
            continue
        logger.debug(
            "Decompressed %s with %s: %d -> %d bytes", url or "<bytes>", name, len(data), len(result)
        )
        return result

    # named .gz but already inflated upstream (e.g. Content-Encoding: gzip)
    if not is_gzip_data(data):
        logger.warning("%s has no gzip header, using the bytes as they are", url or "<bytes>")
        return data

    raise DecompressionUnsupportedError(url or "<bytes>", REQUIREMENTS)
