from kb.fuzzy import best_match, score
from kb.product_search import extract_search_terms, is_general_query

__all__ = ["best_match", "score", "extract_search_terms", "is_general_query"]
