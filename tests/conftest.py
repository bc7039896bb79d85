"""Shared test fixtures for ctxpack."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ctxpack.packs.models import ContentUnit, DependencyConstraint, Pack
from ctxpack.packs.store import PackStore


@pytest.fixture
def make_pack():
    """Factory for Pack records.

    ``deps`` and ``optional`` map target identities to range text;
    ``units`` is a list of ContentUnit field dicts.
    """

    def _make(
        identity: str,
        version: str = "1.0.0",
        *,
        deps: dict[str, str] | None = None,
        optional: dict[str, str] | None = None,
        units: list[dict] | None = None,
        **kwargs,
    ) -> Pack:
        dependencies = [
            DependencyConstraint(target=target, range=text)
            for target, text in (deps or {}).items()
        ]
        dependencies += [
            DependencyConstraint(target=target, range=text, optional=True)
            for target, text in (optional or {}).items()
        ]
        return Pack.create(
            identity,
            version,
            dependencies=tuple(dependencies),
            units=tuple(ContentUnit(**u) for u in (units or [])),
            **kwargs,
        )

    return _make


@pytest.fixture
def store() -> PackStore:
    return PackStore()


@pytest.fixture
def layered_store(make_pack) -> PackStore:
    """Three packs sharing the 'typing' key across the three scope layers."""
    store = PackStore()
    store.install(
        make_pack(
            "acme/base",
            units=[
                {"key": "typing", "body": "Use type hints.", "directive": "extend"},
                {"key": "style", "body": "Follow PEP 8.", "required": True},
            ],
        ),
        scope="global",
    )
    store.install(
        make_pack(
            "acme/team",
            "2.1.0",
            deps={"acme/base": "^1.0"},
            units=[{"key": "typing", "body": "Team: strict mypy.", "directive": "override"}],
        ),
        scope="project",
    )
    store.install(
        make_pack(
            "me/local",
            units=[{"key": "typing", "body": "Local: skip stubs.", "directive": "extend"}],
        ),
        scope="local",
    )
    return store


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary project directory with two pack manifests."""
    base = tmp_path / "packs" / "base"
    base.mkdir(parents=True)
    (base / "pack.json").write_text(json.dumps({
        "pack": "acme/base",
        "version": "1.0.0",
        "description": "House rules",
        "scope": "global",
        "units": [
            {"key": "typing", "kind": "rule", "body": "Use type hints everywhere."},
            {"key": "style", "kind": "rule", "body": "Follow PEP 8.", "required": True},
        ],
    }))

    team = tmp_path / "packs" / "team"
    (team / "docs").mkdir(parents=True)
    (team / "docs" / "arch.md").write_text("Services talk over HTTP only.\n")
    (team / "pack.json").write_text(json.dumps({
        "pack": "acme/team",
        "version": "1.2.0",
        "dependencies": {"acme/base": "^1.0"},
        "units": [
            {"key": "typing", "directive": "override", "body": "Team typing: strict mypy."},
            {"key": "architecture", "kind": "knowledge", "file": "docs/arch.md"},
        ],
    }))

    (tmp_path / "scores.json").write_text(json.dumps({"acme/team#architecture": 0.8}))
    return tmp_path
