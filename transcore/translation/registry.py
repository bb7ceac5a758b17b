"""
Model Registry Client
Fetches the remote model catalog and lists the directly translatable pairs.

Usage:
    client = RegistryClient()
    registry = await client.fetch_registry()
    registry.has_pair("ja", "en")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from transcore.settings import settings
from .exceptions import RegistryUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class Registry:
    """Snapshot of the model catalog"""
    pairs: Dict[str, List[str]] = field(default_factory=dict)
    models: Dict[str, List[dict]] = field(default_factory=dict)
    base_url: str = ""
    fetch_failed: bool = False
    error: Optional[str] = None

    def __len__(self) -> int:
        return sum(len(targets) for targets in self.pairs.values())

    @property
    def is_empty(self) -> bool:
        return not self.pairs

    def targets(self, source: str) -> List[str]:
        return self.pairs.get(source, [])

    def has_pair(self, source: str, target: str) -> bool:
        return target in self.pairs.get(source, ())

    def descriptors(self, source: str, target: str) -> List[dict]:
        return self.models.get(f"{source}-{target}", [])


def parse_registry(data: Any, default_base_url: str = "") -> Registry:
    """
    Parse a registry document.

    Args:
        data: Decoded JSON document with a top-level ``models`` object
        default_base_url: Used when the document carries no ``baseUrl``

    Returns:
        Registry (possibly empty)

    Raises:
        RegistryUnavailableError: If the document has no ``models`` mapping
    """
    if not isinstance(data, dict) or not isinstance(data.get("models"), dict):
        raise RegistryUnavailableError('Invalid registry format: missing "models" property')

    base_url = (data.get("baseUrl") or default_base_url).rstrip("/")
    pairs: Dict[str, List[str]] = {}
    models: Dict[str, List[dict]] = {}

    for pair_key, descriptors in data["models"].items():
        parts = pair_key.split("-")
        if len(parts) != 2 or not all(parts):
            logger.debug("Skipping malformed registry key: %s", pair_key)
            continue
        if not isinstance(descriptors, list) or not descriptors:
            continue
        source, target = parts
        targets = pairs.setdefault(source, [])
        if target not in targets:
            targets.append(target)
        models[pair_key] = descriptors

    return Registry(pairs=pairs, models=models, base_url=base_url)


class RegistryClient:
    """
    Lazily fetches and caches the model registry.

    Only non-empty registries are cached, so failed or empty fetches are
    always retried on the next call. Concurrent callers share one fetch.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url or settings.registry_url
        self.base_url = base_url or settings.registry_base_url
        self.max_attempts = max_attempts or settings.registry_max_attempts
        self.backoff = settings.registry_backoff_seconds if backoff is None else backoff
        self.timeout = timeout or settings.registry_timeout
        self._transport = transport
        self._sleep = sleep

        self._cache: Optional[Registry] = None
        self._pending: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def is_cached(self) -> bool:
        return self._cache is not None

    def clear_cache(self):
        """Drop the cached registry so the next call re-fetches"""
        self._cache = None
        self._pending = None
        self._generation += 1

    async def fetch_registry(self) -> Registry:
        """
        Get the registry, fetching it if not cached.

        Never raises for network or format problems: after all attempts
        fail an empty registry with ``fetch_failed=True`` is returned.
        """
        if self._cache is not None:
            return self._cache

        task = self._pending
        if task is None:
            task = asyncio.ensure_future(self._fetch_with_retry(self._generation))
            self._pending = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._pending is task:
                self._pending = None

    async def _fetch_with_retry(self, generation: int) -> Registry:
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                registry = await self._fetch_once()
            except (httpx.HTTPError, RegistryUnavailableError) as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning(
                    "Registry fetch attempt %d/%d failed: %s",
                    attempt, self.max_attempts, last_error,
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff * attempt)
                continue

            if registry.is_empty:
                logger.warning("Registry parsed but lists no language pairs, not caching")
            elif generation == self._generation:
                self._cache = registry
                logger.info("Registry loaded: %d language pairs", len(registry))
            return registry

        logger.warning(
            "Registry unavailable after %d attempts: %s", self.max_attempts, last_error
        )
        return Registry(base_url=self.base_url, fetch_failed=True, error=last_error)

    async def _fetch_once(self) -> Registry:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout,
            follow_redirects=True,
        ) as client:
            response = await client.get(self.url, headers={"Accept": "application/json"})

        if not response.is_success:
            raise RegistryUnavailableError(
                f"Registry fetch failed: {response.status_code} {response.reason_phrase}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise RegistryUnavailableError(f"Registry response is not valid JSON: {e}") from e
        return parse_registry(data, self.base_url)
