"""Fuzzy matching of composition devices to benchmark catalog components."""

from __future__ import annotations

from typing import Sequence

from rapidfuzz import fuzz

from ..models import Component


def _is_subsequence(needle: str, haystack: str) -> bool:
    chars = iter(haystack)
    return all(ch in chars for ch in needle)


def match_score(candidate: str, name: str) -> float:
    """Score ``candidate`` against a component ``name``; 0 means no match.

    The candidate's characters must appear in order inside the name
    (case-insensitive). Within that, contiguity decides: an exact substring
    scores 100 per character of the candidate, and every character the best
    alignment misses lowers it. Longer exact matches outrank shorter ones.
    """
    needle = candidate.strip().lower()
    haystack = name.lower()
    if not needle or not _is_subsequence(needle, haystack):
        return 0.0
    return fuzz.partial_ratio(needle, haystack) * len(needle)


def best_match_index(devices: Sequence[str], catalog: Sequence[Component]) -> int:
    best_index = 0
    best_score = 0.0
    for index, component in enumerate(catalog):
        for device in devices:
            score = match_score(device, component.name)
            if score > best_score:
                best_score = score
                best_index = index
    return best_index


def resolve(devices: Sequence[str], catalog: Sequence[Component]) -> Component:
    """Catalog component best matching any device; ``catalog[0]`` when nothing matches.

    Ties keep the component seen first in catalog order.
    """
    return catalog[best_match_index(devices, catalog)]
