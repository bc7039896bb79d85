"""Digest-keyed LRU cache of assembly outputs.

Each entry is indexed by every (pack identity, version) its resolution
referenced, so a content change to one pack version invalidates exactly
the entries built from it without scanning the whole cache.

A single lock guards the maps; it is only held for dictionary work.
Writers for the same key are serialized by a per-key lock in
`get_or_compute`, so concurrent callers of an identical query compute it
once and the rest read the stored value.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Callable, Iterable

from ctxpack.context.models import AssemblyOutput
from ctxpack.packs.models import canonical_digest

logger = logging.getLogger("ctxpack.context")

PackRef = tuple[str, str]  # (identity, version)


def make_cache_key(
    resolution_digest: str, scope_digest: str, budget: int, scores_digest: str
) -> str:
    """Digest over the four inputs that fully determine an assembly."""
    return canonical_digest([resolution_digest, scope_digest, budget, scores_digest])


class AssemblyCache:
    """Bounded LRU map from cache key to assembly output."""

    def __init__(self, max_entries: int = 128) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, AssemblyOutput] = OrderedDict()
        self._refs: dict[str, frozenset[PackRef]] = {}
        self._reverse: dict[PackRef, set[str]] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "invalidations": 0}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> AssemblyOutput | None:
        """Return the cached output for `key`, or None on a miss."""
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self._stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return value

    def put(self, key: str, value: AssemblyOutput, packs: Iterable[PackRef] = ()) -> None:
        """Store `value`, indexed by the pack versions it was built from."""
        refs = frozenset(packs)
        with self._lock:
            if key in self._entries:
                self._unindex(key)
            self._entries[key] = value
            self._entries.move_to_end(key)
            self._refs[key] = refs
            for ref in refs:
                self._reverse.setdefault(ref, set()).add(key)

            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._unindex(evicted)
                self._stats["evictions"] += 1
                logger.debug("Evicted cache entry %s", evicted[:12])

    def get_or_compute(
        self,
        key: str,
        factory: Callable[[], AssemblyOutput],
        packs: Iterable[PackRef] = (),
    ) -> tuple[AssemblyOutput, bool]:
        """Return (output, hit). On a miss, compute once per key and store."""
        cached = self.get(key)
        if cached is not None:
            return cached, True

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        try:
            with key_lock:
                # Another writer may have finished while we waited.
                with self._lock:
                    cached = self._entries.get(key)
                    if cached is not None:
                        self._entries.move_to_end(key)
                if cached is not None:
                    return cached, True
                value = factory()
                self.put(key, value, packs)
        finally:
            with self._lock:
                if self._key_locks.get(key) is key_lock:
                    del self._key_locks[key]
        return value, False

    def invalidate_pack(self, identity: str, version: str) -> int:
        """Drop every entry that referenced this pack version."""
        ref = (identity, str(version))
        with self._lock:
            keys = self._reverse.pop(ref, set())
            for key in keys:
                self._entries.pop(key, None)
                self._unindex(key)
            self._stats["invalidations"] += len(keys)
        if keys:
            logger.debug("Invalidated %d entr(ies) for %s@%s", len(keys), identity, version)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._refs.clear()
            self._reverse.clear()

    def stats(self) -> dict:
        with self._lock:
            return {**self._stats, "entries": len(self._entries), "max_entries": self.max_entries}

    def _unindex(self, key: str) -> None:
        # Caller holds self._lock.
        for ref in self._refs.pop(key, frozenset()):
            keys = self._reverse.get(ref)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._reverse[ref]
