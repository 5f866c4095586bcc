import hashlib
import json
from typing import Any


def canonical_form(value: Any) -> Any:
    """
    Rewrite a JSON-like value so that every mapping has its keys sorted.

    Sequences keep their element order. Integral floats become ints; other
    scalars and None pass through.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [canonical_form(item) for item in value]
    if isinstance(value, dict):
        return {key: canonical_form(value[key]) for key in sorted(value)}
    # JSON has one number type: 4.0 and 4 must hash alike.
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def canonical_string(value: Any) -> str:
    return json.dumps(
        canonical_form(value), separators=(",", ":"), ensure_ascii=False
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def fingerprint(value: Any) -> str:
    return sha256_hex(canonical_string(value))
