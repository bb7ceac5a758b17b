"""
Native Translation Engine
Uses the translator already installed on this machine (Argos Translate
language packs). Unsupported pairs yield no result instead of an error.
"""

import asyncio
import importlib.util
import logging
from typing import Any, Optional

from .base import EngineType, TranslationEngine, TranslationResult

logger = logging.getLogger(__name__)


class NativeEngine(TranslationEngine):
    """Offline translation via installed argostranslate packages"""

    offline = True

    @property
    def name(self) -> str:
        return "Platform Translator (Argos)"

    @property
    def engine_id(self) -> str:
        return EngineType.NATIVE.value

    def is_available(self) -> bool:
        return importlib.util.find_spec("argostranslate") is not None

    def _get_installed_translation(self, source: str, target: str) -> Optional[Any]:
        import argostranslate.translate as at

        installed = at.get_installed_languages()
        src = next((lang for lang in installed if lang.code == source), None)
        if src is None:
            return None
        for translation in src.translations:
            if translation.to_lang.code == target:
                return translation
        return None

    async def availability(self, source_lang: str, target_lang: str) -> str:
        """Probe one pair: "available" or "unavailable" """
        if not self.is_available():
            return "unavailable"
        try:
            translation = await asyncio.to_thread(
                self._get_installed_translation, source_lang, target_lang
            )
        except Exception as e:  # noqa: BLE001 - probing never fails the caller
            logger.error("Error checking native translator availability: %s", e)
            return "unavailable"
        return "available" if translation is not None else "unavailable"

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        **kwargs
    ) -> Optional[TranslationResult]:
        if not self.is_available():
            return None

        try:
            translation = await asyncio.to_thread(
                self._get_installed_translation, source_lang, target_lang
            )
            if translation is None:
                logger.debug("No native translator for %s-%s", source_lang, target_lang)
                return None
            translated = await asyncio.to_thread(translation.translate, text)
        except Exception as e:  # noqa: BLE001 - platform errors mean "no result"
            logger.error("Native translation error: %s", e)
            return None

        if not translated:
            return None
        return TranslationResult(
            translated_text=translated,
            source_lang=source_lang,
            target_lang=target_lang,
            engine=self.engine_id,
        )
