"""
Pair Resolver
Finds a direct or single-pivot path between two languages.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .language_codes import PIVOT_LANGUAGE

PairMap = Mapping[str, Sequence[str]]


@dataclass(frozen=True)
class PairInfo:
    """Resolution result for one (source, target) query"""
    available: bool = False
    is_direct: bool = False
    is_pivot: bool = False
    pivot_path: Optional[str] = None  # e.g. "ja → en → de"
    model_count: int = 0  # 1 for direct, 2 for pivot

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AllPairs:
    """Every direct pair plus the pivot pairs lacking a direct model"""
    direct: Dict[str, List[str]] = field(default_factory=dict)
    pivot: Dict[str, List[str]] = field(default_factory=dict)


UNAVAILABLE = PairInfo()


def _has_edge(pairs: PairMap, source: str, target: str) -> bool:
    return target in pairs.get(source, ())


def resolve_pair(
    pairs: PairMap,
    source: str,
    target: str,
    pivot: str = PIVOT_LANGUAGE,
) -> PairInfo:
    """
    Resolve a language pair against the registry's direct edges.

    Args:
        pairs: Mapping of source code to directly reachable target codes
        source: Source language code
        target: Target language code
        pivot: The only language allowed as an intermediate hop

    Returns:
        PairInfo; a direct model always wins over a pivot path
    """
    if source == target:
        return UNAVAILABLE

    if _has_edge(pairs, source, target):
        return PairInfo(available=True, is_direct=True, model_count=1)

    # A pivot through one of the endpoints would just be the direct pair
    if pivot in (source, target):
        return UNAVAILABLE

    if _has_edge(pairs, source, pivot) and _has_edge(pairs, pivot, target):
        return PairInfo(
            available=True,
            is_pivot=True,
            pivot_path=f"{source} → {pivot} → {target}",
            model_count=2,
        )

    return UNAVAILABLE


def all_pairs(pairs: PairMap, pivot: str = PIVOT_LANGUAGE) -> AllPairs:
    """Enumerate direct pairs and pivot-only pairs for UI listings"""
    direct = {source: list(targets) for source, targets in pairs.items()}

    to_pivot = [
        source for source, targets in pairs.items()
        if source != pivot and pivot in targets
    ]
    from_pivot = [target for target in pairs.get(pivot, ()) if target != pivot]

    pivot_pairs: Dict[str, List[str]] = {}
    for source in to_pivot:
        targets = [
            target for target in from_pivot
            if target != source and not _has_edge(pairs, source, target)
        ]
        if targets:
            pivot_pairs[source] = targets

    return AllPairs(direct=direct, pivot=pivot_pairs)
