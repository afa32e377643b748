import re
from typing import Tuple, Dict, Any
from routers import Intent

PRODUCT_TERMS = [
    "product", "item", "sell", "price", "cost", "available", "stock",
    "what do you have", "what do you sell", "merchandise", "catalog",
]

AFFIRMATIVE_RE = re.compile(
    r"^\s*(?:yes|yeah|yep|yup|sure|ok(?:ay)?|correct|right|please(?: do)?|"
    r"do it|go ahead|that(?:'s| is) (?:it|right|the one)|add it|confirm(?:ed)?)\b[\s!.,]*(?:please)?[\s!.]*$",
    re.IGNORECASE,
)


class NaiveRouter:
    @staticmethod
    def route(text: str) -> Tuple[Intent, float, Dict[str, Any]]:
        t = (text or "").lower()
        if AFFIRMATIVE_RE.match(t):
            return "affirmation", 1.0, {"matched": "affirmative-keyword"}
        for k in PRODUCT_TERMS:
            if k in t:
                return "product_query", 1.0, {"matched": k}
        return "chat", 0.5, {"matched": "fallback"}

    @staticmethod
    def is_affirmative(text: str) -> bool:
        return bool(AFFIRMATIVE_RE.match(text or ""))
