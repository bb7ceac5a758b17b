"""
Model Manifest Builder
Turns one registry catalog entry into concrete model file locations.
"""

import logging
from types import MappingProxyType
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .exceptions import ManifestError
from .registry import Registry

logger = logging.getLogger(__name__)

# Registry file key -> internal role name
VOCAB_ROLES = {"srcVocab": "srcvocab", "trgVocab": "trgvocab"}


class ModelFile(BaseModel):
    """One downloadable model file"""
    url: str
    expected_hash: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_compressed(self) -> bool:
        return self.url.endswith(".gz")

    @property
    def filename(self) -> str:
        name = self.url.rsplit("/", 1)[-1]
        return name[:-3] if name.endswith(".gz") else name


class ModelManifest(BaseModel):
    """Resolved files for one direct (source, target) model"""
    source: str
    target: str
    release_status: Optional[str] = None
    files: Mapping[str, ModelFile]

    model_config = ConfigDict(frozen=True)

    @field_validator("files", mode="after")
    @classmethod
    def read_only_files(cls, files: Mapping[str, ModelFile]) -> Mapping[str, ModelFile]:
        return MappingProxyType(dict(files))

    @property
    def key(self) -> str:
        return f"{self.source}-{self.target}"

    @property
    def roles(self) -> List[str]:
        return list(self.files)

    @property
    def urls(self) -> List[str]:
        return [f.url for f in self.files.values()]


def select_descriptor(descriptors: List[dict]) -> dict:
    """Prefer the first release build ("Release", "Release Desktop"...), else the first"""
    for descriptor in descriptors:
        status = descriptor.get("releaseStatus") or ""
        if "Release" in status:
            return descriptor
    return descriptors[0]


def _model_file(base_url: str, entry: dict) -> ModelFile:
    return ModelFile(
        url=f"{base_url}/{entry['path'].lstrip('/')}",
        expected_hash=entry.get("uncompressedHash"),
    )


def build_manifest(registry: Registry, source: str, target: str) -> ModelManifest:
    """
    Build the manifest for a direct pair.

    Raises:
        ManifestError: If the pair is missing or has no model weights
    """
    descriptors = registry.descriptors(source, target)
    if not descriptors:
        raise ManifestError(f"No registry entry for {source}-{target}")

    descriptor = select_descriptor(descriptors)
    entries = descriptor.get("files") or {}
    if not entries.get("model"):
        raise ManifestError(f"Registry entry for {source}-{target} has no model weights")

    files = {"model": _model_file(registry.base_url, entries["model"])}

    if entries.get("vocab"):
        files["vocab"] = _model_file(registry.base_url, entries["vocab"])
    elif entries.get("srcVocab") and entries.get("trgVocab"):
        for key, role in VOCAB_ROLES.items():
            files[role] = _model_file(registry.base_url, entries[key])
    else:
        logger.warning("Registry entry for %s-%s lists no vocabulary", source, target)

    if entries.get("lexicalShortlist"):
        files["lex"] = _model_file(registry.base_url, entries["lexicalShortlist"])

    return ModelManifest(
        source=source,
        target=target,
        release_status=descriptor.get("releaseStatus"),
        files=files,
    )
