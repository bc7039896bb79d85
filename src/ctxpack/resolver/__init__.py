"""Dependency resolution over installed packs."""

from ctxpack.resolver.models import ConstraintRecord, DroppedConstraint, ResolutionResult
from ctxpack.resolver.resolver import DependencyResolver

__all__ = [
    "ConstraintRecord",
    "DependencyResolver",
    "DroppedConstraint",
    "ResolutionResult",
]
