"""
Cloud API Translation Engine
Thin pass-through to the OpenAI chat completions API
"""

import logging
from typing import Optional

import httpx

from transcore.settings import settings
from .base import EngineType, TranslationEngine, TranslationResult
from ..exceptions import CloudAPIError, CredentialMissingError
from ..language_codes import get_english_name

logger = logging.getLogger(__name__)


class CloudAPIEngine(TranslationEngine):
    """
    Cloud-based translation using the OpenAI API.

    Requires an API key, passed per call or configured as OPENAI_API_KEY.
    A missing key is rejected before any network request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Cloud API engine.

        Args:
            api_key: Default key (falls back to settings)
            model: Chat model name
            endpoint: Chat completions URL
            transport: httpx transport override (tests)
        """
        self.api_key = api_key
        self.model = model or settings.openai_model
        self.endpoint = endpoint or settings.openai_endpoint
        self._transport = transport

    @property
    def name(self) -> str:
        return "Cloud API (OpenAI)"

    @property
    def engine_id(self) -> str:
        return EngineType.OPENAI.value

    def is_available(self) -> bool:
        """Available when an API key is configured"""
        return bool(self.api_key or settings.openai_api_key)

    @staticmethod
    def build_messages(text: str, source_lang: str, target_lang: str) -> list:
        src_name = get_english_name(source_lang)
        tgt_name = get_english_name(target_lang)
        return [
            {
                "role": "system",
                "content": (
                    f"You are a professional {src_name} to {tgt_name} translator. "
                    f"Translate the following {src_name} text to natural, fluent {tgt_name}. "
                    "Return only the translation without any explanations or additional text."
                ),
            },
            {"role": "user", "content": text},
        ]

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        api_key: Optional[str] = None,
        **kwargs
    ) -> Optional[TranslationResult]:
        try:
            key = settings.get_api_key(api_key or self.api_key)
        except ValueError:
            raise CredentialMissingError("OpenAI") from None

        if not text:
            raise CloudAPIError("Text is required", status_code=400)

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=settings.cloud_timeout
            ) as client:
                resp = await client.post(
                    self.endpoint,
                    headers={"Authorization": f"Bearer {key}"},
                    json={
                        "model": self.model,
                        "messages": self.build_messages(text, source_lang, target_lang),
                        "temperature": settings.openai_temperature,
                        "max_tokens": settings.openai_max_tokens,
                    },
                )
        except httpx.TimeoutException as e:
            raise CloudAPIError(f"Translation timeout ({settings.cloud_timeout:g}s)") from e
        except httpx.HTTPError as e:
            raise CloudAPIError(f"Could not reach translation API: {e}") from e

        if resp.status_code != 200:
            raise self._error_for(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise CloudAPIError("Invalid response from translation API", status_code=502) from e
        choices = data.get("choices") or [{}]
        translated = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not translated:
            raise CloudAPIError("No translation received", status_code=500)

        usage = data.get("usage", {})
        return TranslationResult(
            translated_text=translated,
            source_lang=source_lang,
            target_lang=target_lang,
            engine=self.engine_id,
            tokens_used=usage.get("total_tokens"),
            metadata={"model": self.model},
        )

    @staticmethod
    def _error_for(resp: httpx.Response) -> CloudAPIError:
        try:
            error = resp.json().get("error") or {}
        except ValueError:
            error = {}
        if not isinstance(error, dict):
            error = {"message": str(error)}
        logger.error("OpenAI API error %s: %s", resp.status_code, error)

        if resp.status_code == 401:
            return CloudAPIError("Invalid API key", status_code=401)
        if resp.status_code == 429:
            if error.get("code") == "insufficient_quota":
                return CloudAPIError(
                    "OpenAI quota exceeded. Please check your billing at platform.openai.com",
                    status_code=429,
                )
            return CloudAPIError("Rate limit exceeded. Please try again later.", status_code=429)
        return CloudAPIError(error.get("message") or "Translation failed", status_code=resp.status_code)

    def get_info(self) -> dict:
        """Get engine information"""
        info = super().get_info()
        info.update({
            "provider": "openai",
            "model": self.model,
        })
        return info
