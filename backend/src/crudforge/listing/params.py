"""Parse flat listing query strings into nested listing options.

    filters[name]=ann&filters[age][min]=18&sorts[name]=asc&page=2&size=10&search=x

becomes::

    {
        "filters": {"name": "ann", "age": {"min": "18"}},
        "sorts": {"name": "asc"},
        "page": 2,
        "size": 10,
        "search": "x",
    }
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

_BRACKET_KEY = re.compile(r"^(filters|sorts)\[([^\[\]]+)\](?:\[([^\[\]]*)\])?$")


def _parse_int(name: str, value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-integer listing parameter %s=%r", name, value)
        return None


def parse_query_params(items: Iterable[tuple[str, str]] | Mapping[str, str]) -> dict[str, Any]:
    """Convert query-string pairs into listing options.

    ``filters[f][]=a&filters[f][]=b`` collects a list; ``filters[f][min]=1``
    builds a dict. Unrecognized keys are dropped.

    Args:
        items: Query pairs (repeated keys allowed) or a plain mapping

    Returns:
        Dict with ``filters``, ``sorts``, ``page``, ``size`` and ``search``
    """
    pairs = items.items() if isinstance(items, Mapping) else items
    options: dict[str, Any] = {
        "filters": {},
        "sorts": {},
        "page": None,
        "size": None,
        "search": None,
    }

    for key, value in pairs:
        if key in ("page", "size"):
            options[key] = _parse_int(key, value)
            continue
        if key == "search":
            options["search"] = value
            continue

        match = _BRACKET_KEY.match(key)
        if match is None:
            logger.debug("Ignoring unrecognized listing parameter '%s'", key)
            continue

        group, name, sub = match.groups()
        target = options[group]
        if sub is None:
            target[name] = value
        elif sub == "":
            existing = target.get(name)
            if not isinstance(existing, list):
                existing = [] if existing is None else [existing]
            existing.append(value)
            target[name] = existing
        else:
            existing = target.get(name)
            if not isinstance(existing, dict):
                existing = {}
            existing[sub] = value
            target[name] = existing

    return options
