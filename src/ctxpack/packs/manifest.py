"""Build pack records from ``pack.json`` manifests.

A manifest looks like::

    {
      "pack": "acme/python-style",
      "version": "1.4.0",
      "description": "House Python rules",
      "dependencies": {"acme/base": "^1.0", "acme/extras": {"range": "*", "optional": true}},
      "units": [
        {"key": "naming", "kind": "rule", "directive": "extend", "body": "..."},
        {"key": "layout", "kind": "knowledge", "file": "docs/layout.md", "required": true}
      ]
    }

A unit may inline its ``body`` or point at a ``file`` relative to the
manifest. Locating manifests on disk is left to the caller.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ctxpack.exceptions import ManifestError, VersionError
from ctxpack.packs.models import ContentUnit, DependencyConstraint, Pack, parse_identity


def _parse_dependencies(raw: Any, source: str) -> list[DependencyConstraint]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        items = []
        for target, entry in raw.items():
            if isinstance(entry, dict):
                items.append({"target": target, **entry})
            else:
                items.append({"target": target, "range": entry})
        raw = items
    if not isinstance(raw, list):
        raise ManifestError(source, "'dependencies' must be an object or a list")
    return [DependencyConstraint.model_validate(item) for item in raw]


def _parse_units(raw: Any, base_dir: Path | None, source: str) -> list[ContentUnit]:
    units = []
    for item in raw or []:
        if not isinstance(item, dict):
            raise ManifestError(source, "each unit must be an object")
        data = dict(item)
        file_ref = data.pop("file", None)
        if file_ref is not None:
            if base_dir is None:
                raise ManifestError(source, f"unit '{data.get('key')}' references a file")
            path = base_dir / file_ref
            try:
                data["body"] = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ManifestError(source, f"cannot read {path}: {e}") from e
        units.append(ContentUnit.model_validate(data))
    return units


def pack_from_dict(data: dict, base_dir: Path | None = None, source: str = "<dict>") -> Pack:
    """Build a Pack from manifest data."""
    if not isinstance(data, dict):
        raise ManifestError(source, "manifest must be a JSON object")
    try:
        identity = parse_identity(data.get("pack") or data.get("name") or "")
        org, name = identity.split("/", 1)
        extra = {k: data[k] for k in ("scope", "direct") if k in data}
        return Pack(
            org=org,
            name=name,
            version=data.get("version", ""),
            description=data.get("description", ""),
            dependencies=tuple(_parse_dependencies(data.get("dependencies"), source)),
            units=tuple(_parse_units(data.get("units"), base_dir, source)),
            **extra,
        )
    except (ValidationError, VersionError, ValueError) as e:
        raise ManifestError(source, str(e)) from e


def load_manifest(path: str | Path) -> Pack:
    """Load a Pack from a ``pack.json`` file (or a directory holding one)."""
    path = Path(path)
    if path.is_dir():
        path = path / "pack.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ManifestError(str(path), f"cannot read manifest: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(str(path), f"invalid JSON: {e}") from e
    return pack_from_dict(data, base_dir=path.parent, source=str(path))
