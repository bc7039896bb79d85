"""Hierarchical merge of pack content across scope layers."""

from ctxpack.merge.engine import MergeEngine
from ctxpack.merge.models import DiscardedUnit, MergeConflict, MergedUnit, MergeResult

__all__ = ["DiscardedUnit", "MergeConflict", "MergeEngine", "MergedUnit", "MergeResult"]
