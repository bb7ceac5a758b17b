"""
Translation Core
Registry, pair resolution, worker transport and engine dispatch
"""

from .engine_cache import EngineCache, EngineHandle, PivotHandle
from .engine_manager import EngineManager, get_engine_manager
from .engines.base import EngineType, TranslationEngine, TranslationResult
from .engines.cloud_api import CloudAPIEngine
from .engines.native import NativeEngine
from .engines.on_device import OnDeviceEngine
from .exceptions import (
    CloudAPIError,
    CredentialMissingError,
    DecompressionUnsupportedError,
    EngineInitError,
    EngineUnavailableError,
    ManifestError,
    ModelDownloadError,
    RegistryUnavailableError,
    RemoteCallError,
    TranslationCoreError,
    TransportClosedError,
    UnknownEngineError,
)
from .language_codes import PIVOT_LANGUAGE, SUPPORTED_LANGUAGES, get_language_name
from .manifest import ModelFile, ModelManifest, build_manifest
from .pair_resolver import AllPairs, PairInfo, all_pairs, resolve_pair
from .registry import Registry, RegistryClient
from .transport import WorkerTransport

__all__ = [
    # Manager
    "EngineManager",
    "get_engine_manager",
    # Engines
    "EngineType",
    "TranslationEngine",
    "TranslationResult",
    "CloudAPIEngine",
    "NativeEngine",
    "OnDeviceEngine",
    # On-device core
    "Registry",
    "RegistryClient",
    "PairInfo",
    "AllPairs",
    "resolve_pair",
    "all_pairs",
    "ModelFile",
    "ModelManifest",
    "build_manifest",
    "WorkerTransport",
    "EngineCache",
    "EngineHandle",
    "PivotHandle",
    # Errors
    "TranslationCoreError",
    "RegistryUnavailableError",
    "ManifestError",
    "ModelDownloadError",
    "DecompressionUnsupportedError",
    "EngineInitError",
    "EngineUnavailableError",
    "RemoteCallError",
    "TransportClosedError",
    "CredentialMissingError",
    "CloudAPIError",
    "UnknownEngineError",
    # Utils
    "PIVOT_LANGUAGE",
    "SUPPORTED_LANGUAGES",
    "get_language_name",
]
