"""
transcore - multi-engine translation core

Collaborator API, backed by the process-wide EngineManager:

    info = await transcore.resolve_pair("ja", "de")
    text = await transcore.translate("こんにちは", "bergamot", source_lang="ja", target_lang="en")
"""

from typing import Optional

from .translation.engine_manager import EngineManager, get_engine_manager
from .translation.model_store import ProgressCallback
from .translation.pair_resolver import PairInfo

__version__ = "0.1.0"


async def resolve_pair(source_lang: str, target_lang: str) -> PairInfo:
    return await get_engine_manager().resolve_pair(source_lang, target_lang)


async def translate(
    text: str,
    engine: str,
    credentials: Optional[str] = None,
    source_lang: Optional[str] = None,
    target_lang: Optional[str] = None,
) -> Optional[str]:
    return await get_engine_manager().translate(
        text, engine, credentials=credentials, source_lang=source_lang, target_lang=target_lang
    )


async def load_engine(
    source_lang: str,
    target_lang: str,
    on_progress: Optional[ProgressCallback] = None,
):
    return await get_engine_manager().load_engine(source_lang, target_lang, on_progress)


def is_engine_loaded(source_lang: str, target_lang: str) -> bool:
    return get_engine_manager().is_engine_loaded(source_lang, target_lang)


def clear_registry_cache():
    get_engine_manager().clear_registry_cache()


__all__ = [
    "EngineManager",
    "get_engine_manager",
    "resolve_pair",
    "translate",
    "load_engine",
    "is_engine_loaded",
    "clear_registry_cache",
]
