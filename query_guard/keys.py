"""Query key canonicalization."""

import json
from typing import Any

from .errors import KeyCanonicalizationError


def _check_mapping_keys(value: Any) -> None:
    # json.dumps would coerce 1 to "1", merging unrelated keys
    if isinstance(value, dict):
        for name, item in value.items():
            if not isinstance(name, str):
                raise KeyCanonicalizationError(
                    f"Query key mappings need string field names, got {name!r}"
                )
            _check_mapping_keys(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_mapping_keys(item)


def canonicalize(key: Any) -> str:
    """
    Convert a structured query key into a stable lookup string.

    Object keys are sorted before serializing, so two dicts with the same
    fields resolve to the same entry regardless of insertion order. Lists and
    tuples serialize identically. Dict field names must be strings.

    Args:
        key: Query key, e.g. ``["games", {"search": "zelda", "page": 1}]``

    Returns:
        Canonical string identity

    Raises:
        KeyCanonicalizationError: If the key holds values JSON cannot represent
            or a mapping with non-string field names
    """
    _check_mapping_keys(key)
    try:
        return json.dumps(
            key,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise KeyCanonicalizationError(f"Unsupported query key {key!r}: {exc}") from exc
