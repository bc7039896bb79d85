"""Installed pack catalog: models, versions, snapshots and persistence."""

from ctxpack.packs.catalog import PackCatalog
from ctxpack.packs.manifest import load_manifest, pack_from_dict
from ctxpack.packs.models import (
    ContentKind,
    ContentUnit,
    DependencyConstraint,
    Directive,
    Pack,
    ScopeLayer,
)
from ctxpack.packs.store import PackSnapshot, PackStore
from ctxpack.packs.version import Version, VersionRange, parse_range, parse_version

__all__ = [
    "ContentKind",
    "ContentUnit",
    "DependencyConstraint",
    "Directive",
    "Pack",
    "PackCatalog",
    "PackSnapshot",
    "PackStore",
    "ScopeLayer",
    "Version",
    "VersionRange",
    "load_manifest",
    "pack_from_dict",
    "parse_range",
    "parse_version",
]
