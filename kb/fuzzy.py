from typing import Any, Dict, Iterable, Optional, Tuple


def score(search: str, candidate: str) -> float:
    """How well a free-text product name matches a catalog name, in [0, 1].

    Exact (case-insensitive) match scores 1.0, the candidate containing the search
    term 0.9, the search term containing the candidate 0.8. Anything else falls back
    to the share of whitespace-separated words the two have in common.
    """
    search_lower = (search or "").strip().lower()
    actual_lower = (candidate or "").strip().lower()
    if not search_lower or not actual_lower:
        return 0.0

    if search_lower == actual_lower:
        return 1.0
    if search_lower in actual_lower:
        return 0.9
    if actual_lower in search_lower:
        return 0.8

    search_words = search_lower.split()
    actual_words = actual_lower.split()
    common = [w for w in search_words if w in actual_words]
    return len(common) / max(len(search_words), len(actual_words))


def best_match(search: str, products: Iterable[Dict[str, Any]]) -> Optional[Tuple[Dict[str, Any], float]]:
    best = None
    best_score = -1.0
    for product in products:
        s = score(search, product.get("name", ""))
        # ties keep the earlier product
        if s > best_score:
            best, best_score = product, s
    if best is None:
        return None
    return best, best_score
