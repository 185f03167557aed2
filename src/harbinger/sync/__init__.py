"""Branch/remote divergence evaluation."""

from harbinger.sync.evaluator import SyncEvaluator, SyncState

__all__ = ["SyncEvaluator", "SyncState"]
