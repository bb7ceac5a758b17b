"""
Translation Core Exceptions
"""

from typing import Any, Dict, List, Optional


class TranslationCoreError(Exception):
    """Base exception for the translation core"""
    pass


class RegistryUnavailableError(TranslationCoreError):
    """A single registry fetch attempt failed"""
    pass


class ManifestError(TranslationCoreError):
    """Registry entry cannot be turned into a model manifest"""
    pass


class ModelDownloadError(TranslationCoreError):
    """Model file could not be downloaded"""
    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class DecompressionUnsupportedError(TranslationCoreError):
    """No available decompression path could inflate a model file"""
    def __init__(self, url: str, requirements: str):
        self.url = url
        self.requirements = requirements
        super().__init__(
            f"Gzip decompression not supported for {url}. Requires {requirements}."
        )


class EngineInitError(TranslationCoreError):
    """Worker or the engine inside it failed to start"""
    def __init__(self, message: str, expected_paths: Optional[List[str]] = None):
        self.expected_paths = list(expected_paths or [])
        self.reason = message
        detail = f"Failed to initialize translation worker: {message}"
        if self.expected_paths:
            detail += (
                ". Make sure these resources are accessible: "
                + ", ".join(self.expected_paths)
            )
        super().__init__(detail)


class EngineUnavailableError(TranslationCoreError):
    """Engine loaded but cannot serve the requested pair"""
    def __init__(self, source: str, target: str, reason: str):
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(
            f"Translation model for {source}-{target} is not available "
            f"or failed to load: {reason}"
        )


class RemoteCallError(TranslationCoreError):
    """Error returned by the worker for a specific call"""
    def __init__(
        self,
        message: str,
        stack: str = "",
        remote_stack: str = "",
        callsite: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.stack = stack
        self.remote_stack = remote_stack
        self.callsite = callsite
        self.details = dict(details or {})
        super().__init__(message)


class TransportClosedError(TranslationCoreError):
    """Worker transport was torn down before the call completed"""
    pass


class CredentialMissingError(TranslationCoreError):
    """Engine requires credentials that were not supplied"""
    def __init__(self, engine: str):
        self.engine = engine
        super().__init__(f"{engine} API key is required")


class CloudAPIError(TranslationCoreError):
    """Cloud translation API returned an error"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class UnknownEngineError(TranslationCoreError, ValueError):
    """Engine tag is not recognised"""
    def __init__(self, engine: str):
        self.engine = engine
        super().__init__(f"Unknown translation engine: {engine}")
