from __future__ import annotations

from threading import RLock
from typing import Dict, Iterable, Optional, Tuple, Union

from headerapp.parser import Rule

SiteRuleSet = Tuple[Rule, ...]


class _Absent:
    """Marker for a site that has no stored configuration at all."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()

CacheEntry = Union[SiteRuleSet, _Absent]


class HeaderRuleCache:
    """
    Process-wide map of site id -> parsed rules (or ``ABSENT``).

    Entries are immutable tuples published whole under the lock, so a reader
    either sees a complete rule set or nothing. Invalidation is a full clear
    that also bumps ``generation``; a populate carrying an older generation
    is not stored, so a fetch that started before a clear cannot restore
    stale rules.
    """

    __slots__ = ("_lock", "_entries", "_generation")

    def __init__(self) -> None:
        self._lock = RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def lookup(self, site: str) -> Optional[CacheEntry]:
        """Return the cached entry, or ``None`` when the site is unresolved."""
        with self._lock:
            return self._entries.get(site)

    def populate(
        self,
        site: str,
        rules: Union[Iterable[Rule], _Absent],
        generation: Optional[int] = None,
    ) -> CacheEntry:
        """
        Store ``rules`` for ``site`` and return the stored form.

        When ``generation`` is given and a clear happened since it was read,
        the entry is returned to the caller but not cached.
        """
        entry: CacheEntry = rules if isinstance(rules, _Absent) else tuple(rules)
        with self._lock:
            if generation is None or generation == self._generation:
                self._entries[site] = entry
        return entry

    def clear_all(self) -> int:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._generation += 1
        return dropped

    def sites(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
