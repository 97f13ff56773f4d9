"""Incremental stream reconciliation for numbered translation output."""

from .reconciler import ReconcilerSettings, ReconcilerState, StreamReconciler

__all__ = ["ReconcilerSettings", "ReconcilerState", "StreamReconciler"]
