"""In-memory cache for API client responses.

Keys look like::

    googlesitekit_<version>_<type>::<identifier>::<datapoint>::<md5 of query>

Trailing parts are left out when empty, so the key of a shorter tuple is a
prefix of every longer one; invalidation deletes a whole group by prefix.
"""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sitekit import __version__

DEFAULT_TTL = 3600
STORAGE_KEY_PREFIX = f"googlesitekit_{__version__}_"


def create_cache_key(
    type_: Optional[str],
    identifier: Optional[str] = None,
    datapoint: Optional[str] = None,
    query_params: Optional[Mapping[str, Any]] = None,
) -> str:
    parts: List[str] = []
    for part in (type_, identifier, datapoint):
        if not part:
            break
        parts.append(part)

    if len(parts) == 3 and query_params:
        ordered = {key: query_params[key] for key in sorted(query_params)}
        encoded = json.dumps(ordered, sort_keys=True, separators=(",", ":"), default=str)
        parts.append(hashlib.md5(encoded.encode("utf-8")).hexdigest())

    return STORAGE_KEY_PREFIX + "::".join(parts)


class LocalCache:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Tuple[bool, Any]:
        """Return ``(hit, value)``; expired items are dropped on read."""
        item = self._items.get(key)
        if item is None:
            return False, None
        value, expires_at = item
        if expires_at <= self._clock():
            del self._items[key]
            return False, None
        return True, value

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        self._items[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._items)

    def clear(self, prefix: str = STORAGE_KEY_PREFIX) -> int:
        stale = [key for key in self._items if key.startswith(prefix)]
        for key in stale:
            del self._items[key]
        return len(stale)
