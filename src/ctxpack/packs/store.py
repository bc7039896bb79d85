"""In-memory pack store exposing immutable snapshots.

Writers build a complete new snapshot and publish it with a single
reference assignment, so a resolution that grabbed a snapshot keeps
seeing that snapshot in full while installs and removals continue.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from ctxpack.exceptions import StoreError
from ctxpack.packs.models import Pack, ScopeLayer, canonical_digest, parse_identity
from ctxpack.packs.version import Version, parse_version

logger = logging.getLogger("ctxpack.store")

SnapshotListener = Callable[["PackSnapshot", "PackSnapshot"], None]


class PackSnapshot:
    """An immutable view of every installed pack record."""

    def __init__(self, packs: Iterable[Pack] = ()) -> None:
        ordered = sorted(packs, key=lambda p: (p.identity, p.version))
        self._packs: tuple[Pack, ...] = tuple(ordered)
        self._by_identity: dict[str, tuple[Pack, ...]] = {}
        grouped: dict[str, list[Pack]] = {}
        for pack in self._packs:
            grouped.setdefault(pack.identity, []).append(pack)
        for identity, versions in grouped.items():
            self._by_identity[identity] = tuple(versions)
        self._digest = canonical_digest([p.fingerprint() for p in self._packs])

    @property
    def packs(self) -> tuple[Pack, ...]:
        return self._packs

    @property
    def digest(self) -> str:
        return self._digest

    @property
    def identities(self) -> list[str]:
        return sorted(self._by_identity)

    def __len__(self) -> int:
        return len(self._packs)

    def __iter__(self):
        return iter(self._packs)

    def __contains__(self, identity: str) -> bool:
        return identity in self._by_identity

    def versions(self, identity: str) -> tuple[Pack, ...]:
        """All installed records of an identity, oldest version first."""
        return self._by_identity.get(identity, ())

    def get(self, identity: str, version: str | Version) -> Pack | None:
        wanted = parse_version(version)
        for pack in self._by_identity.get(identity, ()):
            if pack.version == wanted:
                return pack
        return None

    def roots(self) -> list[str]:
        """Identities installed directly (the default root set)."""
        return sorted({p.identity for p in self._packs if p.direct})

    def install_order(self, identity: str) -> int:
        records = self._by_identity.get(identity, ())
        return min((p.install_order for p in records), default=0)

    def next_install_order(self) -> int:
        return max((p.install_order for p in self._packs), default=0) + 1


class PackStore:
    """Catalog of installed packs with atomic snapshot swaps."""

    def __init__(self, packs: Iterable[Pack] = ()) -> None:
        self._lock = threading.Lock()
        self._snapshot = PackSnapshot(_numbered(packs))
        self._listeners: list[SnapshotListener] = []

    def snapshot(self) -> PackSnapshot:
        """The current snapshot. Callers should take it once per query."""
        return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> None:
        """Call `listener(old, new)` after every snapshot swap."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def install(
        self,
        pack: Pack,
        scope: ScopeLayer | str | None = None,
        direct: bool | None = None,
    ) -> PackSnapshot:
        """Install (or replace) a pack record and publish a new snapshot.

        An identity keeps the install order of its first installation, so
        upgrading a pack does not cost it seniority.
        """
        with self._lock:
            old = self._snapshot
            order = old.install_order(pack.identity) or old.next_install_order()
            update: dict = {"install_order": order}
            if scope is not None:
                update["scope"] = ScopeLayer(scope)
            if direct is not None:
                update["direct"] = direct
            record = pack.model_copy(update=update)

            kept = [
                p for p in old.packs
                if not (p.identity == record.identity and p.version == record.version)
            ]
            new = PackSnapshot([*kept, record])
            self._snapshot = new
            listeners = list(self._listeners)

        logger.debug(
            "Installed %s (scope=%s, order=%d)", record.ref, record.scope.value, order
        )
        self._notify(listeners, old, new)
        return new

    def remove(self, identity: str, version: str | Version | None = None) -> PackSnapshot:
        """Remove one version of a pack, or every version when none is given."""
        identity = parse_identity(identity)
        wanted = parse_version(version) if version is not None else None
        with self._lock:
            old = self._snapshot
            kept = [
                p for p in old.packs
                if not (p.identity == identity and (wanted is None or p.version == wanted))
            ]
            if len(kept) == len(old.packs):
                target = identity if wanted is None else f"{identity}@{wanted}"
                raise StoreError(f"Pack '{target}' is not installed")
            new = PackSnapshot(kept)
            self._snapshot = new
            listeners = list(self._listeners)

        logger.debug("Removed %s (%d record(s))", identity, len(old) - len(new))
        self._notify(listeners, old, new)
        return new

    def replace_all(self, packs: Iterable[Pack]) -> PackSnapshot:
        """Swap in an entirely new set of records (e.g. loaded from a catalog)."""
        with self._lock:
            old = self._snapshot
            new = PackSnapshot(_numbered(packs))
            self._snapshot = new
            listeners = list(self._listeners)
        self._notify(listeners, old, new)
        return new

    @staticmethod
    def _notify(listeners: list[SnapshotListener], old: PackSnapshot, new: PackSnapshot) -> None:
        for listener in listeners:
            listener(old, new)


def _numbered(packs: Iterable[Pack]) -> list[Pack]:
    """Give records without an install order one, in iteration order."""
    records = list(packs)
    orders: dict[str, int] = {
        p.identity: p.install_order for p in records if p.install_order > 0
    }
    next_order = max(orders.values(), default=0) + 1
    numbered = []
    for pack in records:
        if pack.identity not in orders:
            orders[pack.identity] = next_order
            next_order += 1
        if pack.install_order != orders[pack.identity]:
            pack = pack.model_copy(update={"install_order": orders[pack.identity]})
        numbered.append(pack)
    return numbered
