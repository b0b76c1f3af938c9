"""Manifest reconciliation and rover synchronization."""

from nasa_gateway.sync.reconciler import apply_plan, merge_manifest, reconcile
from nasa_gateway.sync.rover_sync import RoverSynchronizer

__all__ = ["RoverSynchronizer", "apply_plan", "merge_manifest", "reconcile"]
