"""
Mimic - natural-language browser tests with snapshot replay

Components:
- selector: durable element descriptors (strategy chain, scoring, serialization)
- snapshot: fingerprinted cache of executed steps and its replay executor
- core: Playwright driver, recovery policy, action executors, state machine
- brain: language model gateway and typed decisions
"""

from .config import LLMSettings, MimicConfig
from .errors import (
    ElementNotFoundError,
    MimicError,
    ModelError,
    ReplayError,
    SelectorUnavailableError,
    SnapshotError,
    StepExecutionError,
)
from .snapshot import Snapshot, SnapshotStore, fingerprint_text
from .core.state_machine import MimicEngine, MimicRunResult, MimicState
from .brain import LLMGateway, ModelBrain
from .runner import run_mimic, split_tests

__version__ = "0.1.0"

__all__ = [
    "LLMSettings",
    "MimicConfig",
    "ElementNotFoundError",
    "MimicError",
    "ModelError",
    "ReplayError",
    "SelectorUnavailableError",
    "SnapshotError",
    "StepExecutionError",
    "Snapshot",
    "SnapshotStore",
    "fingerprint_text",
    "MimicEngine",
    "MimicRunResult",
    "MimicState",
    "LLMGateway",
    "ModelBrain",
    "run_mimic",
    "split_tests",
]
