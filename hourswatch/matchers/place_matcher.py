from rapidfuzz import fuzz
from typing import List, Optional
from hourswatch.config import FUZZY_THRESHOLD
from hourswatch.models import RemotePlacePayload


def _score(
    name: str,
    address: str,
    candidate: RemotePlacePayload,
    name_weight: float,
    addr_weight: float,
) -> float:
    name_score = fuzz.token_sort_ratio(name.lower(), (candidate.name or "").lower()) if name else 0
    if not address:
        # Without an address to compare, the name carries the whole score
        return name_score
    addr_score = fuzz.ratio(address.lower(), (candidate.address or "").lower()) if candidate.address else 0
    return (name_weight * name_score) + (addr_weight * addr_score)


def best_place_match(
    name: str,
    address: str,
    candidates: List[RemotePlacePayload],
    name_weight: float = 0.5,
    addr_weight: float = 0.5,
    threshold: float = FUZZY_THRESHOLD,
) -> Optional[RemotePlacePayload]:
    """
    Pick the search result that best matches a business name and address.

    Args:
        name (str): Business name.
        address (str): Business address (may be empty).
        candidates (List[RemotePlacePayload]): Search results from the directory.
        name_weight (float): Weight for the name similarity score (default=0.5).
        addr_weight (float): Weight for the address similarity score (default=0.5).
        threshold (float): Minimum weighted score required to accept a match.

    Returns:
        Optional[RemotePlacePayload]: Highest scoring candidate, or None if none reaches the threshold.
    """
    best = None
    best_score = -1.0
    for cand in candidates:
        total_score = _score(name, address, cand, name_weight, addr_weight)
        if total_score > best_score:
            best, best_score = cand, total_score

    if best is None or best_score < threshold:
        return None
    return best
