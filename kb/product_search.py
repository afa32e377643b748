from typing import List

GENERAL_QUERIES = ["products", "all products", "what products", "available", "merchandise", "items", "catalog"]

STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by", "is", "are",
    "was", "were", "be", "been", "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "this", "that", "these", "those", "i", "you", "he", "she", "it", "we",
    "they", "me", "him", "her", "us", "them", "any", "some", "your", "my",
    "what", "sell", "buy", "show", "want", "need", "looking", "find", "get", "got",
}

SEMANTIC_VARIATIONS = {
    "car": ["vehicle", "hypercar", "coyote", "combat"],
    "cars": ["vehicle", "hypercar", "coyote", "combat"],
    "vehicle": ["vehicle", "hypercar", "coyote", "combat"],
    "vehicles": ["vehicle", "hypercar", "coyote", "combat"],
    "luxury": ["premium", "luxury", "high-end", "expensive"],
    "expensive": ["premium", "luxury", "high-end"],
    "cheap": ["budget", "affordable", "inexpensive"],
    "budget": ["budget", "affordable", "inexpensive"],
    "fast": ["speed", "hypercar", "sports", "fast"],
    "fastest": ["speed", "hypercar", "sports", "fast"],
    "neural": ["neural", "cyber", "brain"],
    "cyber": ["cyber", "neural", "digital"],
    "tech": ["technology", "electronic", "digital", "smart"],
    "gadget": ["device", "gadget", "tool", "equipment"],
}


def is_general_query(query: str) -> bool:
    q = (query or "").strip().lower()
    return not q or any(g in q for g in GENERAL_QUERIES)


def extract_search_terms(query: str) -> List[str]:
    """Meaningful, de-duplicated search words of a query, with semantic variations appended."""
    words = [
        w.strip("?!.,;:'\"()")
        for w in (query or "").lower().split()
    ]
    words = [w for w in words if len(w) > 2 and w not in STOP_WORDS]

    terms: List[str] = []
    for word in words:
        for term in [word] + SEMANTIC_VARIATIONS.get(word, []):
            if term not in terms:
                terms.append(term)
    return terms
