#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration for the translation core
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

MODEL_STORE_BASE_URL = (
    "https://storage.googleapis.com/moz-fx-translations-data--303e-prod-translations-data"
)


class Settings(BaseSettings):
    """Translation core settings"""

    # ========== API Keys ==========
    openai_api_key: str = ""

    # ========== Cloud API ==========
    openai_model: str = "gpt-4o-mini"
    openai_endpoint: str = "https://api.openai.com/v1/chat/completions"
    openai_temperature: float = 0.3
    openai_max_tokens: int = 1000
    cloud_timeout: float = 60.0

    # ========== Languages ==========
    source_lang: str = "ja"  # Default source language code
    target_lang: str = "en"  # Default target language code
    pivot_lang: str = "en"  # Only intermediate language for two-hop paths

    # ========== Model Registry ==========
    registry_url: str = f"{MODEL_STORE_BASE_URL}/db/models.json"
    registry_base_url: str = MODEL_STORE_BASE_URL  # Used when the document has no baseUrl
    registry_max_attempts: int = 3
    registry_backoff_seconds: float = 1.0  # attempt n waits n * backoff
    registry_timeout: float = 10.0

    # ========== Model Files ==========
    download_timeout: float = 120.0
    verify_integrity: bool = False  # Public store does not support integrity checks
    models_dir: Path = BASE_DIR / "data" / "models"

    # ========== On-device Engine ==========
    engine_cache_capacity: int = 8
    worker_backend: str = "transcore.translation.worker:BergamotBackend"
    worker_init_timeout: float = 30.0
    worker_num_workers: int = 1
    worker_cache_size: int = 0
    smoke_test_text: str = "test"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        extra = "ignore"

    def get_api_key(self, api_key: Optional[str] = None) -> str:
        """Resolve the cloud API key, preferring an explicit value"""
        key = api_key or self.openai_api_key
        if not key:
            raise ValueError("OPENAI_API_KEY not set in .env")
        return key

    def worker_options(self) -> dict:
        """Options sent with the worker's initialize call"""
        return {
            "backend": self.worker_backend,
            "num_workers": self.worker_num_workers,
            "cache_size": self.worker_cache_size,
        }


settings = Settings()
