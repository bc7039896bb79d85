"""Tests for dependency resolution."""

from __future__ import annotations

import pytest

from ctxpack.exceptions import ResolutionConflict
from ctxpack.packs.models import DependencyConstraint
from ctxpack.packs.store import PackSnapshot
from ctxpack.resolver.resolver import DependencyResolver


@pytest.fixture
def resolver() -> DependencyResolver:
    return DependencyResolver()


def versions(result) -> dict[str, str]:
    return {identity: str(version) for identity, version in result.versions().items()}


class TestVersionSelection:
    def test_newest_satisfying(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": "^1.0"}),
            make_pack("acme/lib", "1.0.0", direct=False),
            make_pack("acme/lib", "1.4.0", direct=False),
            make_pack("acme/lib", "2.0.0", direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result) == {"acme/app": "1.0.0", "acme/lib": "1.4.0"}

    def test_ranges_are_intersected(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": ">=1.2"}),
            make_pack("acme/tool", deps={"acme/lib": "<1.4"}),
            *[make_pack("acme/lib", v, direct=False) for v in ("1.1.0", "1.2.0", "1.3.0", "1.5.0")],
        ])
        assert versions(resolver.resolve(snap))["acme/lib"] == "1.3.0"

    def test_unreferenced_packs_not_selected(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app"),
            make_pack("acme/orphan", direct=False),
        ])
        result = resolver.resolve(snap)
        assert "acme/orphan" not in result
        assert len(result) == 1

    def test_explicit_roots(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app"),
            make_pack("acme/lib", "1.2.0"),
            make_pack("acme/lib", "2.0.0"),
        ])
        result = resolver.resolve(snap, ["acme/lib@^1.0"])
        assert versions(result) == {"acme/lib": "1.2.0"}

        result = resolver.resolve(snap, [DependencyConstraint(target="acme/lib", range="<=2")])
        assert versions(result) == {"acme/lib": "2.0.0"}

    def test_replaced_version_constraints_are_retracted(self, resolver, make_pack):
        # lib@2 pulls core ^2 until tool forces lib below 2; lib@1 wants core ^1.
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": "*", "acme/tool": "*"}),
            make_pack("acme/tool", deps={"acme/lib": "<2"}, direct=False),
            make_pack("acme/lib", "1.0.0", deps={"acme/core": "^1"}, direct=False),
            make_pack("acme/lib", "2.0.0", deps={"acme/core": "^2"}, direct=False),
            make_pack("acme/core", "1.0.0", direct=False),
            make_pack("acme/core", "2.0.0", direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result)["acme/lib"] == "1.0.0"
        assert versions(result)["acme/core"] == "1.0.0"

    def test_conflict_from_replaced_version_is_not_fatal(self, resolver, make_pack):
        # a@2 asks for b ^2 in the first round, but x pins a below 2.
        snap = PackSnapshot([
            make_pack("acme/a", "1.0.0", deps={"acme/b": "^1"}),
            make_pack("acme/a", "2.0.0", deps={"acme/b": "^2"}),
            make_pack("acme/x", deps={"acme/a": "<2", "acme/b": "^1"}),
            make_pack("acme/b", "1.0.0", direct=False),
            make_pack("acme/b", "2.0.0", direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result) == {"acme/a": "1.0.0", "acme/b": "1.0.0", "acme/x": "1.0.0"}
        assert result.dropped == ()


class TestConflicts:
    def test_missing_hard_dependency(self, resolver, make_pack):
        snap = PackSnapshot([make_pack("acme/app", deps={"acme/ghost": "^1"})])
        with pytest.raises(ResolutionConflict) as exc_info:
            resolver.resolve(snap)
        err = exc_info.value
        assert err.kind == "missing"
        assert err.identity == "acme/ghost"
        assert err.constraints[0].chain == ("acme/app@1.0.0",)
        assert err.identities == ["acme/ghost", "acme/app"]

    def test_unsatisfiable(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": "^2"}),
            make_pack("acme/lib", "1.0.0", direct=False),
        ])
        with pytest.raises(ResolutionConflict) as exc_info:
            resolver.resolve(snap)
        err = exc_info.value
        assert err.kind == "unsatisfiable"
        assert err.available == ["1.0.0"]
        assert "acme/app@1.0.0" in str(err)

    def test_conflicting_requirers_all_reported(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": "^1"}),
            make_pack("acme/tool", deps={"acme/lib": "^2"}),
            make_pack("acme/lib", "1.0.0", direct=False),
            make_pack("acme/lib", "2.0.0", direct=False),
        ])
        with pytest.raises(ResolutionConflict) as exc_info:
            resolver.resolve(snap)
        err = exc_info.value
        assert err.kind == "unsatisfiable"
        assert sorted(r.source for r in err.constraints) == ["acme/app@1.0.0", "acme/tool@1.0.0"]
        assert {"acme/lib", "acme/app", "acme/tool"} <= set(err.identities)

    def test_hard_cycle_rejected(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/a", deps={"acme/b": "*"}),
            make_pack("acme/b", deps={"acme/a": "*"}, direct=False),
        ])
        with pytest.raises(ResolutionConflict) as exc_info:
            resolver.resolve(snap)
        err = exc_info.value
        assert err.kind == "cycle"
        assert err.cycle[0] == err.cycle[-1]
        assert set(err.cycle) == {"acme/a", "acme/b"}

    def test_optional_edge_does_not_form_cycle(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/a", deps={"acme/b": "*"}),
            make_pack("acme/b", optional={"acme/a": "*"}, direct=False),
        ])
        result = resolver.resolve(snap)
        assert sorted(result.order) == ["acme/a", "acme/b"]


class TestOptionalDependencies:
    def test_missing_optional_dropped(self, resolver, make_pack):
        snap = PackSnapshot([make_pack("acme/app", optional={"acme/extras": "*"})])
        result = resolver.resolve(snap)
        assert "acme/extras" not in result
        assert len(result.dropped) == 1
        assert result.dropped[0].reason == "missing"
        assert result.dropped[0].record.source == "acme/app@1.0.0"

    def test_unsatisfiable_optional_dropped(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": "^1"}),
            make_pack("acme/tool", optional={"acme/lib": "^2"}),
            make_pack("acme/lib", "1.0.0", direct=False),
            make_pack("acme/lib", "2.0.0", direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result)["acme/lib"] == "1.0.0"
        assert [d.reason for d in result.dropped] == ["unsatisfiable"]
        assert ("acme/tool", "acme/lib", True) not in result.edges

    def test_satisfiable_optional_selected(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", optional={"acme/lib": "^1"}),
            make_pack("acme/lib", "1.0.0", direct=False),
            make_pack("acme/lib", "1.3.0", direct=False),
            make_pack("acme/lib", "2.0.0", direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result)["acme/lib"] == "1.3.0"
        assert ("acme/app", "acme/lib", True) in result.edges
        assert result.dropped == ()

    def test_optional_with_missing_hard_dependency_dropped(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", optional={"acme/extras": "*"}),
            make_pack("acme/extras", deps={"acme/ghost": "*"}, direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result) == {"acme/app": "1.0.0"}
        assert len(result.dropped) == 1
        drop = result.dropped[0]
        assert drop.record.target == "acme/extras"
        assert drop.record.source == "acme/app@1.0.0"
        assert drop.reason == "missing"
        assert result.edges == ()

    def test_optional_with_unsatisfiable_hard_dependency_dropped(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/lib": "^1"}, optional={"acme/extras": "*"}),
            make_pack("acme/extras", deps={"acme/lib": "^2"}, direct=False),
            make_pack("acme/lib", "1.0.0", direct=False),
            make_pack("acme/lib", "2.0.0", direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result) == {"acme/app": "1.0.0", "acme/lib": "1.0.0"}
        assert [(d.record.target, d.reason) for d in result.dropped] == [
            ("acme/extras", "unsatisfiable")
        ]

    def test_hard_path_to_failure_stays_fatal(self, resolver, make_pack):
        # tool reaches ghost through hard edges only; dropping extras cannot help.
        snap = PackSnapshot([
            make_pack("acme/app", deps={"acme/tool": "*"}, optional={"acme/extras": "*"}),
            make_pack("acme/extras", deps={"acme/ghost": "*"}, direct=False),
            make_pack("acme/tool", deps={"acme/ghost": "*"}, direct=False),
        ])
        with pytest.raises(ResolutionConflict) as exc_info:
            resolver.resolve(snap)
        assert exc_info.value.kind == "missing"
        assert exc_info.value.identity == "acme/ghost"

    def test_deep_optional_chain_dropped_at_optional_edge(self, resolver, make_pack):
        snap = PackSnapshot([
            make_pack("acme/app", optional={"acme/extras": "*"}),
            make_pack("acme/extras", deps={"acme/plugin": "*"}, direct=False),
            make_pack("acme/plugin", deps={"acme/ghost": "^1"}, direct=False),
        ])
        result = resolver.resolve(snap)
        assert versions(result) == {"acme/app": "1.0.0"}
        assert len(result.dropped) == 1
        assert result.dropped[0].record.target == "acme/extras"
        assert result.dropped[0].reason == "missing"


class TestDeterminism:
    def _snapshot(self, make_pack, reverse: bool = False) -> PackSnapshot:
        packs = [
            make_pack("acme/app", deps={"acme/lib": "^1", "acme/util": "*"}),
            make_pack("acme/lib", "1.0.0", deps={"acme/core": "*"}, direct=False),
            make_pack("acme/lib", "1.1.0", deps={"acme/core": "*"}, direct=False),
            make_pack("acme/util", deps={"acme/core": "^1"}, direct=False),
            make_pack("acme/core", "1.2.0", direct=False),
        ]
        return PackSnapshot(reversed(packs) if reverse else packs)

    def test_same_snapshot_same_result(self, resolver, make_pack):
        snap = self._snapshot(make_pack)
        first = resolver.resolve(snap)
        second = resolver.resolve(snap)
        assert first.digest == second.digest
        assert first.refs() == second.refs()
        assert first.order == second.order

    def test_insertion_order_irrelevant(self, resolver, make_pack):
        a = resolver.resolve(self._snapshot(make_pack))
        b = resolver.resolve(self._snapshot(make_pack, reverse=True))
        assert a.digest == b.digest

    def test_digest_changes_with_content(self, resolver, make_pack):
        a = resolver.resolve(PackSnapshot([make_pack("acme/app", units=[{"key": "k", "body": "a"}])]))
        b = resolver.resolve(PackSnapshot([make_pack("acme/app", units=[{"key": "k", "body": "b"}])]))
        assert a.digest != b.digest

    def test_digest_changes_with_dependencies(self, resolver, make_pack):
        with_dep = resolver.resolve(PackSnapshot([
            make_pack("acme/a", deps={"acme/b": "*"}),
            make_pack("acme/b"),
        ]))
        without = resolver.resolve(PackSnapshot([make_pack("acme/a"), make_pack("acme/b")]))
        assert with_dep.order == ("acme/b", "acme/a")
        assert without.order == ("acme/a", "acme/b")
        assert with_dep.digest != without.digest

    def test_dependency_order(self, resolver, make_pack):
        result = resolver.resolve(self._snapshot(make_pack))
        assert result.order == ("acme/core", "acme/lib", "acme/util", "acme/app")
        assert [p.identity for p in result.ordered_packs()] == list(result.order)

    def test_summary(self, resolver, make_pack):
        text = resolver.resolve(self._snapshot(make_pack)).summary()
        assert "Resolved 4 pack(s)" in text
        assert "acme/lib@1.1.0" in text
