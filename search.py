from typing import Optional


def matches_query(haystack: Optional[str], needle: Optional[str]) -> bool:
    needle_norm = (needle or "").strip().lower()
    if not needle_norm:
        return True
    return needle_norm in (haystack or "").lower()
