"""Translation Engines Package"""

from .base import EngineStatus, EngineType, TranslationEngine, TranslationResult
from .cloud_api import CloudAPIEngine
from .native import NativeEngine
from .on_device import OnDeviceEngine

__all__ = [
    "EngineStatus",
    "EngineType",
    "TranslationEngine",
    "TranslationResult",
    "CloudAPIEngine",
    "NativeEngine",
    "OnDeviceEngine",
]
