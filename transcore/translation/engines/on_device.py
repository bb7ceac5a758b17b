"""
On-device Translation Engine
Neural models from the public registry, run in a local worker process.
Pairs without a direct model are chained through the pivot language.
"""

import contextlib
import importlib.util
import logging
from typing import Optional, Union

from transcore.settings import settings
from .base import EngineType, TranslationEngine, TranslationResult
from ..engine_cache import EngineCache, EngineHandle, PivotHandle
from ..exceptions import EngineUnavailableError
from ..model_store import ProgressCallback
from ..pair_resolver import AllPairs, PairInfo, all_pairs, resolve_pair
from ..registry import RegistryClient

logger = logging.getLogger(__name__)


def _scaled(on_progress: Optional[ProgressCallback], start: float, span: float):
    if on_progress is None:
        return None
    return lambda fraction: on_progress(start + fraction * span)


class OnDeviceEngine(TranslationEngine):
    """
    Architecture:
    1. Registry lists the directly available models
    2. Pair resolver picks a direct model or a two-hop pivot path
    3. Engine cache spawns one worker per direct model and keeps it
    """

    offline = True

    def __init__(
        self,
        registry_client: RegistryClient,
        engine_cache: EngineCache,
        pivot_lang: Optional[str] = None,
    ):
        self.registry_client = registry_client
        self.engine_cache = engine_cache
        self.pivot_lang = pivot_lang or settings.pivot_lang

    @property
    def name(self) -> str:
        return "Bergamot (on-device)"

    @property
    def engine_id(self) -> str:
        return EngineType.BERGAMOT.value

    def is_available(self) -> bool:
        backend_module = self.engine_cache.worker_options.get("backend", "").partition(":")[0]
        try:
            return bool(backend_module) and importlib.util.find_spec(backend_module) is not None
        except (ImportError, ValueError):
            return False

    async def resolve_pair(self, source_lang: str, target_lang: str) -> PairInfo:
        registry = await self.registry_client.fetch_registry()
        return resolve_pair(registry.pairs, source_lang, target_lang, self.pivot_lang)

    async def all_pairs(self) -> AllPairs:
        registry = await self.registry_client.fetch_registry()
        return all_pairs(registry.pairs, self.pivot_lang)

    async def load(
        self,
        source_lang: str,
        target_lang: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[EngineHandle, PivotHandle]:
        """
        Download, start and smoke-test the engine(s) for a pair.

        Raises:
            EngineUnavailableError: If no path exists or the smoke test fails
        """
        info = await self.resolve_pair(source_lang, target_lang)
        if not info.available:
            raise EngineUnavailableError(
                source_lang, target_lang, "no direct or pivot model in the registry"
            )
        if info.is_direct:
            return await self.engine_cache.load(source_lang, target_lang, on_progress)

        logger.info("Loading pivot path %s", info.pivot_path)
        first = await self.engine_cache.load(
            source_lang, self.pivot_lang, _scaled(on_progress, 0.0, 0.5)
        )
        second = await self.engine_cache.load(
            self.pivot_lang, target_lang, _scaled(on_progress, 0.5, 0.5)
        )
        return PivotHandle(first, second)

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        **kwargs
    ) -> Optional[TranslationResult]:
        info = await self.resolve_pair(source_lang, target_lang)
        if not info.available:
            logger.debug("No on-device path for %s-%s", source_lang, target_lang)
            return None

        async with contextlib.AsyncExitStack() as stack:
            if info.is_direct:
                handle = await stack.enter_async_context(
                    self.engine_cache.lease(source_lang, target_lang)
                )
            else:
                handle = PivotHandle(
                    await stack.enter_async_context(
                        self.engine_cache.lease(source_lang, self.pivot_lang)
                    ),
                    await stack.enter_async_context(
                        self.engine_cache.lease(self.pivot_lang, target_lang)
                    ),
                )
            translated = await handle.translate(text, html=bool(kwargs.get("html", False)))

        if not translated:
            return None
        return TranslationResult(
            translated_text=translated,
            source_lang=source_lang,
            target_lang=target_lang,
            engine=self.engine_id,
            metadata={"model_count": info.model_count, "pivot_path": info.pivot_path},
        )

    def get_info(self) -> dict:
        info = super().get_info()
        info.update({
            "pivot_lang": self.pivot_lang,
            "loaded_models": self.engine_cache.keys(),
        })
        return info
