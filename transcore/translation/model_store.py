"""
Model Store
Downloads, decompresses and keeps model files on local disk so that the
worker process can load them by path.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx

from transcore.settings import settings
from .decompression import maybe_decompress
from .exceptions import ModelDownloadError
from .manifest import ModelFile, ModelManifest

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class ModelStore:
    """
    Local cache of decompressed model files, one directory per pair.

    Usage:
        store = ModelStore()
        paths = await store.materialize(manifest)
        paths["model"]  # Path to the decompressed weights
    """

    def __init__(
        self,
        models_dir: Optional[Path] = None,
        download_timeout: Optional[float] = None,
        verify_integrity: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.models_dir = Path(models_dir or settings.models_dir)
        self.download_timeout = download_timeout or settings.download_timeout
        self.verify_integrity = (
            settings.verify_integrity if verify_integrity is None else verify_integrity
        )
        self._transport = transport

    def pair_dir(self, manifest: ModelManifest) -> Path:
        return self.models_dir / manifest.key

    def expected_paths(self, manifest: ModelManifest) -> Dict[str, Path]:
        """Local path each role will be materialized to"""
        directory = self.pair_dir(manifest)
        return {role: directory / f.filename for role, f in manifest.files.items()}

    async def fetch(self, url: str) -> bytes:
        """
        Download one file; aborted after ``download_timeout`` seconds.

        Raises:
            ModelDownloadError: On timeout, network failure or non-2xx status
        """
        started = time.monotonic()
        try:
            data = await asyncio.wait_for(self._get(url), timeout=self.download_timeout)
        except asyncio.TimeoutError as e:
            raise ModelDownloadError(
                url, f"Fetch timeout after {self.download_timeout:g} seconds for {url}"
            ) from e
        except httpx.HTTPError as e:
            raise ModelDownloadError(url, f"Could not fetch {url}: {e}") from e

        logger.info(
            "Downloaded %s (%d bytes) in %.0fms", url, len(data), (time.monotonic() - started) * 1000
        )
        return data

    async def _get(self, url: str) -> bytes:
        # No auth, no cookies; timeouts are enforced by the caller
        async with httpx.AsyncClient(
            transport=self._transport, timeout=None, follow_redirects=True
        ) as client:
            response = await client.get(url)
        if not response.is_success:
            raise ModelDownloadError(
                url, f"HTTP {response.status_code}: {response.reason_phrase} for {url}"
            )
        return response.content

    async def fetch_decompressed(self, model_file: ModelFile) -> bytes:
        data = await self.fetch(model_file.url)
        data = await maybe_decompress(data, model_file.url)
        if self.verify_integrity and model_file.expected_hash:
            actual = hashlib.sha256(data).hexdigest()
            if actual.lower() != model_file.expected_hash.lower():
                raise ModelDownloadError(
                    model_file.url,
                    f"Checksum mismatch for {model_file.url}: "
                    f"expected {model_file.expected_hash} got {actual}",
                )
        return data

    async def materialize(
        self,
        manifest: ModelManifest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Path]:
        """
        Make every manifest file available on disk.

        Files already materialized are reused. ``on_progress`` receives the
        completed fraction after each file.
        """
        paths = self.expected_paths(manifest)
        total = len(paths)

        for done, (role, path) in enumerate(paths.items(), start=1):
            if path.exists() and path.stat().st_size > 0:
                logger.debug("Reusing %s for %s (%s)", path, manifest.key, role)
            else:
                data = await self.fetch_decompressed(manifest.files[role])
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = path.with_suffix(path.suffix + ".part")
                tmp_path.write_bytes(data)
                tmp_path.replace(path)
            if on_progress:
                on_progress(done / total)

        return paths
