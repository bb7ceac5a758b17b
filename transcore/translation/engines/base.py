"""
Base Translation Engine Abstract Class
All translation engines must inherit from this class
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# Tags older callers send for the platform translator
ENGINE_ALIASES = {
    "google": "native",
}


class EngineType(str, Enum):
    """Engine tags accepted by the dispatcher"""
    OPENAI = "openai"
    NATIVE = "native"
    BERGAMOT = "bergamot"

    @classmethod
    def _missing_(cls, value):
        alias = ENGINE_ALIASES.get(value) if isinstance(value, str) else None
        return cls(alias) if alias else None


class EngineStatus(Enum):
    """Engine availability status"""
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    LOADING = "loading"
    ERROR = "error"


@dataclass
class TranslationResult:
    """Result of a translation operation"""
    translated_text: str
    source_lang: str
    target_lang: str
    engine: str
    tokens_used: Optional[int] = None
    metadata: dict = field(default_factory=dict)


class TranslationEngine(ABC):
    """
    Abstract base class for all translation engines.

    All engines must implement:
    - name property
    - engine_id property
    - translate() method
    - is_available() method
    """

    offline: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable engine name"""
        pass

    @property
    @abstractmethod
    def engine_id(self) -> str:
        """Unique engine identifier (an EngineType value)"""
        pass

    @abstractmethod
    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        **kwargs
    ) -> Optional[TranslationResult]:
        """
        Translate text from source to target language.

        Args:
            text: Text to translate
            source_lang: Source language code (ISO 639-1)
            target_lang: Target language code (ISO 639-1)
            **kwargs: Additional engine-specific options

        Returns:
            TranslationResult, or None when the engine has no result
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if engine is ready to use.

        Returns:
            True if engine can accept translation requests
        """
        pass

    def get_status(self) -> EngineStatus:
        """Get current engine status"""
        if self.is_available():
            return EngineStatus.AVAILABLE
        return EngineStatus.UNAVAILABLE

    def get_info(self) -> dict:
        """Get engine information for API/UI"""
        return {
            "id": self.engine_id,
            "name": self.name,
            "available": self.is_available(),
            "status": self.get_status().value,
            "offline": self.offline,
        }
