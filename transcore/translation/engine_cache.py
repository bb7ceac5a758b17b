"""
Engine Cache
Owns one worker per loaded language pair, keyed "source-target".

The cache is bounded: when full, the least recently used idle engine is
evicted and its worker stopped. Engines pinned by a running translation are
stopped only after they are released.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import OrderedDict
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

from transcore.settings import settings
from .exceptions import (
    EngineInitError,
    EngineUnavailableError,
    RemoteCallError,
    TransportClosedError,
    TranslationCoreError,
)
from .language_codes import pair_key
from .manifest import ModelManifest, build_manifest
from .model_store import ModelStore, ProgressCallback
from .registry import RegistryClient
from .transport import WorkerTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[dict, List[str]], Awaitable[WorkerTransport]]


class EngineHandle:
    """
    A worker with one direct model loaded.

    Callers translating through a handle pin it; a handle evicted while
    pinned keeps its worker until the last pin is released.
    """

    def __init__(self, manifest: ModelManifest, transport: WorkerTransport, model_paths: Dict[str, Path]):
        self.manifest = manifest
        self.transport = transport
        self.model_paths = model_paths
        self._pins = 0
        self._retired = False

    @property
    def key(self) -> str:
        return self.manifest.key

    @property
    def closed(self) -> bool:
        return self.transport.closed

    @property
    def pinned(self) -> bool:
        return self._pins > 0

    @property
    def retired(self) -> bool:
        return self._retired

    def pin(self):
        self._pins += 1

    async def release(self):
        self._pins = max(0, self._pins - 1)
        if self._retired and not self._pins:
            await self.close()

    async def retire(self):
        """Close now if idle, otherwise once the last pin is released"""
        self._retired = True
        if not self._pins:
            await self.close()

    async def translate(self, text: str, html: bool = False) -> str:
        return await self.transport.translate(self.key, text, html=html)

    async def close(self):
        await self.transport.close()

    def __repr__(self) -> str:
        return f"EngineHandle({self.key!r})"


class PivotHandle:
    """Two direct engines chained through the pivot language"""

    def __init__(self, first: EngineHandle, second: EngineHandle):
        self.first = first
        self.second = second

    @property
    def key(self) -> str:
        return pair_key(self.first.manifest.source, self.second.manifest.target)

    @property
    def handles(self) -> tuple:
        return (self.first, self.second)

    async def translate(self, text: str, html: bool = False) -> str:
        intermediate = await self.first.translate(text, html=html)
        return await self.second.translate(intermediate, html=html)

    def __repr__(self) -> str:
        return f"PivotHandle({self.first.key!r} -> {self.second.key!r})"


async def spawn_worker(options: dict, expected_paths: List[str]) -> WorkerTransport:
    return await WorkerTransport.spawn(options, expected_paths=expected_paths)


class EngineCache:
    """
    Loads and caches on-device engines.

    Usage:
        cache = EngineCache(RegistryClient())
        handle = await cache.load("ja", "en")
        async with cache.lease("ja", "en") as handle:
            await handle.translate("こんにちは")
    """

    MIN_CAPACITY = 2  # both hops of a pivot path must fit

    def __init__(
        self,
        registry_client: RegistryClient,
        model_store: Optional[ModelStore] = None,
        transport_factory: TransportFactory = spawn_worker,
        capacity: Optional[int] = None,
        worker_options: Optional[dict] = None,
        smoke_test_text: Optional[str] = None,
    ):
        self.registry_client = registry_client
        self.model_store = model_store if model_store is not None else ModelStore()
        self.capacity = max(self.MIN_CAPACITY, capacity or settings.engine_cache_capacity)
        self.worker_options = settings.worker_options() if worker_options is None else worker_options
        self.smoke_test_text = smoke_test_text or settings.smoke_test_text
        self._transport_factory = transport_factory
        self._entries: "OrderedDict[str, EngineHandle]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries)

    def _live_entry(self, key: str) -> Optional[EngineHandle]:
        handle = self._entries.get(key)
        if handle is not None and handle.closed:
            logger.warning("Worker for %s is gone, dropping it from the cache", key)
            del self._entries[key]
            return None
        return handle

    def get(self, source: str, target: str) -> Optional[EngineHandle]:
        return self._live_entry(pair_key(source, target))

    def is_loaded(self, source: str, target: str) -> bool:
        return self._live_entry(pair_key(source, target)) is not None

    async def acquire(
        self,
        source: str,
        target: str,
        on_progress: Optional[ProgressCallback] = None,
        pin: bool = False,
    ) -> EngineHandle:
        """
        Get the engine for a direct pair, creating it if needed.

        Concurrent calls for the same pair share one load. With ``pin=True``
        the handle is pinned before it is returned; the caller must
        ``release()`` it.
        """
        key = pair_key(source, target)
        while True:
            handle = self._live_entry(key)
            if handle is not None:
                self._entries.move_to_end(key)
            else:
                task = self._inflight.get(key)
                if task is None:
                    task = asyncio.ensure_future(self._create(source, target, on_progress))
                    self._inflight[key] = task
                    task.add_done_callback(lambda _task: self._inflight.pop(key, None))
                handle = await asyncio.shield(task)
                # evicted before this caller resumed
                if handle.closed or handle.retired:
                    continue
            if pin:
                handle.pin()
            return handle

    @contextlib.asynccontextmanager
    async def lease(self, source: str, target: str) -> AsyncIterator[EngineHandle]:
        """Hold a pinned engine for the duration of the block"""
        handle = await self.acquire(source, target, pin=True)
        try:
            yield handle
        finally:
            await handle.release()

    async def load(
        self,
        source: str,
        target: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EngineHandle:
        """
        Acquire an engine and confirm it with a smoke-test translation.

        Raises:
            EngineUnavailableError: If the smoke test fails; the engine is evicted
        """
        if self.is_loaded(source, target):
            return await self.acquire(source, target)

        handle = await self.acquire(source, target, on_progress)
        try:
            await handle.translate(self.smoke_test_text)
        except TranslationCoreError as e:
            logger.error("Smoke test failed for %s: %s", handle.key, e)
            await self.evict(source, target)
            raise EngineUnavailableError(source, target, str(e)) from e

        logger.info("Model loaded successfully for %s", handle.key)
        return handle

    async def _create(
        self,
        source: str,
        target: str,
        on_progress: Optional[ProgressCallback],
    ) -> EngineHandle:
        registry = await self.registry_client.fetch_registry()
        manifest = build_manifest(registry, source, target)
        paths = await self.model_store.materialize(manifest, on_progress)
        files = {role: str(path) for role, path in paths.items()}

        transport = await self._transport_factory(self.worker_options, list(files.values()))
        try:
            await transport.load_model(manifest.key, files)
        except (RemoteCallError, TransportClosedError) as e:
            await transport.close()
            raise EngineInitError(str(e), list(files.values())) from e

        handle = EngineHandle(manifest, transport, paths)
        await self._store(handle)
        return handle

    async def _store(self, handle: EngineHandle):
        self._entries[handle.key] = handle
        self._entries.move_to_end(handle.key)
        while len(self._entries) > self.capacity:
            # least recently used idle engine first; if every other one is
            # pinned, the oldest is retired and closes when released
            key = next(
                (k for k, h in self._entries.items() if k != handle.key and not h.pinned),
                next(iter(self._entries)),
            )
            evicted = self._entries.pop(key)
            logger.info("Evicting engine %s (capacity %d)", key, self.capacity)
            await evicted.retire()

    async def evict(self, source: str, target: str) -> bool:
        handle = self._entries.pop(pair_key(source, target), None)
        if handle is None:
            return False
        await handle.retire()
        return True

    async def close(self):
        """Stop every worker, pinned or not"""
        for task in list(self._inflight.values()):
            task.cancel()
        entries, self._entries = self._entries, OrderedDict()
        for handle in entries.values():
            await handle.close()
