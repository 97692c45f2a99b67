"""Sync engine for pysyncd - applying remote listings and events locally."""

from .events import EventApplier
from .operations import TEMP_SUFFIX, SyncOperations
from .paths import PathGuard
from .reconciler import ReconcileAction, ReconcileDecision, Reconciler
from .scanner import DirectoryScanner
from .watcher import ChangeWatcher

__all__ = [
    "ChangeWatcher",
    "DirectoryScanner",
    "EventApplier",
    "PathGuard",
    "ReconcileAction",
    "ReconcileDecision",
    "Reconciler",
    "SyncOperations",
    "TEMP_SUFFIX",
]
