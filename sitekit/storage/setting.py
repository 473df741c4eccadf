"""Single-option settings records.

A `Setting` owns one option name. Subclasses declare `OPTION` and
`get_default()`; `register()` installs read filters (legacy key migration)
that run every time the value is read.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from sitekit.storage.options import Options

logger = logging.getLogger(__name__)

ReadFilter = Callable[[Any], Any]


class Setting:
    OPTION = ""

    def __init__(self, options: Options):
        if not self.OPTION:
            raise ValueError(f"{type(self).__name__} must define OPTION")
        self.options = options
        self._read_filters: List[ReadFilter] = []

    def register(self) -> None:
        """Install read filters. Subclasses extend this."""

    def add_read_filter(self, fn: ReadFilter) -> None:
        self._read_filters.append(fn)

    def get_default(self) -> Any:
        return False

    def sanitize(self, value: Any) -> Any:
        return value

    def has(self) -> bool:
        return self.options.has(self.OPTION)

    def get(self) -> Any:
        value = self.options.get(self.OPTION)
        if value is None:
            return self.get_default()
        for fn in self._read_filters:
            value = fn(value)
        return value

    def set(self, value: Any) -> bool:
        return self.options.set(self.OPTION, self.sanitize(value))

    def delete(self) -> bool:
        return self.options.delete(self.OPTION)


class LegacyKeysMixin:
    """Rename legacy keys of a dict-valued setting whenever it is read.

    A legacy key never overwrites a current key that is already present, and
    is always dropped from the returned value.
    """

    def register_legacy_keys_migration(self, legacy_key_map: Mapping[str, str]) -> None:
        mapping = dict(legacy_key_map)

        def _migrate(value: Any) -> Any:
            if not isinstance(value, dict):
                return value
            migrated = dict(value)
            for legacy_key, current_key in mapping.items():
                if legacy_key not in migrated:
                    continue
                if current_key not in migrated:
                    migrated[current_key] = migrated[legacy_key]
                del migrated[legacy_key]
            return migrated

        self.add_read_filter(_migrate)  # type: ignore[attr-defined]


class ModuleSettings(Setting):
    """Dict-valued module settings, always returned merged over the defaults."""

    def get_default(self) -> Dict[str, Any]:
        return {}

    def get(self) -> Dict[str, Any]:
        value = super().get()
        defaults = self.get_default()
        if not isinstance(value, dict):
            return defaults
        return {**defaults, **value}

    def merge(self, partial: Optional[Mapping[str, Any]]) -> bool:
        """Write the keys of `partial` that the defaults know about.

        `None` values are skipped so partial updates never blank a stored key.
        """
        current = self.get()
        known = self.get_default().keys()
        updates = {
            key: value
            for key, value in (partial or {}).items()
            if key in known and value is not None
        }
        if not updates:
            return False
        logger.debug("Merging %s into %s", sorted(updates), self.OPTION)
        return self.set({**current, **updates})
