"""
Translation Engine Manager
Single entry point: resolves pairs, loads on-device engines and dispatches
translations to the engine named by the caller
"""

import logging
from typing import Dict, List, Optional, Union

from transcore.settings import settings
from .engine_cache import EngineCache, EngineHandle, PivotHandle
from .engines.base import EngineType, TranslationEngine
from .engines.cloud_api import CloudAPIEngine
from .engines.native import NativeEngine
from .engines.on_device import OnDeviceEngine
from .exceptions import UnknownEngineError
from .model_store import ProgressCallback
from .pair_resolver import AllPairs, PairInfo
from .registry import RegistryClient

logger = logging.getLogger(__name__)


class EngineManager:
    """
    Dispatches translations across the cloud, native and on-device engines.

    Usage:
        manager = EngineManager()
        info = await manager.resolve_pair("ja", "de")
        text = await manager.translate("こんにちは", "bergamot", source_lang="ja", target_lang="en")
    """

    _instance: Optional['EngineManager'] = None

    def __init__(
        self,
        registry_client: Optional[RegistryClient] = None,
        engine_cache: Optional[EngineCache] = None,
        auto_register: bool = True,
    ):
        """
        Initialize engine manager.

        Args:
            registry_client: Model registry client (shared with the engine cache)
            engine_cache: On-device engine cache
            auto_register: Automatically register default engines
        """
        self.registry_client = registry_client if registry_client is not None else RegistryClient()
        self.engine_cache = (
            engine_cache if engine_cache is not None else EngineCache(self.registry_client)
        )
        self.on_device = OnDeviceEngine(self.registry_client, self.engine_cache)
        self.engines: Dict[str, TranslationEngine] = {}

        if auto_register:
            self._register_default_engines()

    @classmethod
    def get_instance(cls) -> 'EngineManager':
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _register_default_engines(self):
        self.register_engine(CloudAPIEngine())
        self.register_engine(NativeEngine())
        self.register_engine(self.on_device)

    def register_engine(self, engine: TranslationEngine):
        """Register a translation engine"""
        self.engines[engine.engine_id] = engine
        logger.info("Registered engine: %s", engine.name)

    def unregister_engine(self, engine_id: str):
        """Unregister a translation engine"""
        if engine_id in self.engines:
            del self.engines[engine_id]

    def get_engine(self, engine_id: str) -> Optional[TranslationEngine]:
        """Get engine by ID"""
        return self.engines.get(engine_id)

    def get_available_engines(self) -> List[dict]:
        """Get list of engines for UI/API"""
        return [engine.get_info() for engine in self.engines.values()]

    async def resolve_pair(self, source_lang: str, target_lang: str) -> PairInfo:
        """Direct or pivot availability of a pair for the on-device engine"""
        return await self.on_device.resolve_pair(source_lang, target_lang)

    async def all_pairs(self) -> AllPairs:
        return await self.on_device.all_pairs()

    async def translate(
        self,
        text: str,
        engine: Union[str, EngineType],
        credentials: Optional[str] = None,
        source_lang: Optional[str] = None,
        target_lang: Optional[str] = None,
    ) -> Optional[str]:
        """
        Translate text with the named engine.

        Args:
            text: Text to translate
            engine: "openai", "native" or "bergamot"
            credentials: API key for the cloud engine
            source_lang: Source language code (defaults to settings)
            target_lang: Target language code (defaults to settings)

        Returns:
            Translated text, or None when the engine has no result

        Raises:
            UnknownEngineError: For an unrecognised engine tag
            CredentialMissingError: Cloud engine without an API key
        """
        try:
            engine_id = EngineType(engine).value
        except ValueError:
            raise UnknownEngineError(str(engine)) from None

        translator = self.engines.get(engine_id)
        if translator is None:
            raise UnknownEngineError(engine_id)

        source_lang = source_lang or settings.source_lang
        target_lang = target_lang or settings.target_lang

        result = await translator.translate(text, source_lang, target_lang, api_key=credentials)
        return result.translated_text if result else None

    async def load_engine(
        self,
        source_lang: str,
        target_lang: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[EngineHandle, PivotHandle]:
        """Pre-load the on-device engine(s) for a pair"""
        return await self.on_device.load(source_lang, target_lang, on_progress)

    def is_engine_loaded(self, source_lang: str, target_lang: str) -> bool:
        return self.engine_cache.is_loaded(source_lang, target_lang)

    def clear_registry_cache(self):
        """Forget the cached registry so the next lookup re-fetches it"""
        self.registry_client.clear_cache()

    async def close(self):
        """Stop all on-device workers"""
        await self.engine_cache.close()


# Singleton accessor
def get_engine_manager() -> EngineManager:
    """Get the global engine manager instance"""
    return EngineManager.get_instance()
