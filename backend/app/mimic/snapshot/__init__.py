"""
Snapshot Cache

Fingerprinted store of executed steps, replayed on later runs instead of
asking the model again. The replay executor lives in mimic.snapshot.replay.
"""

from .models import (
    ActionRecord,
    AssertionRecord,
    ClickCandidate,
    ClickRecord,
    FormRecord,
    NavigationRecord,
    Snapshot,
    SnapshotFlags,
    SnapshotStep,
    StepExecutionResult,
    TargetReference,
    fingerprint_text,
)
from .store import SnapshotStore

__all__ = [
    "ActionRecord",
    "AssertionRecord",
    "ClickCandidate",
    "ClickRecord",
    "FormRecord",
    "NavigationRecord",
    "Snapshot",
    "SnapshotFlags",
    "SnapshotStep",
    "StepExecutionResult",
    "TargetReference",
    "fingerprint_text",
    "SnapshotStore",
]
