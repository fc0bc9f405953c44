"""
Execution Core

Browser driver, action executors, recovery policy and the state machine
that drives a test through them.
"""

from .driver import PlaywrightDriver
from .recovery import FailureCategory, RecoveryPolicy
from .actions import ActionExecutor, ExecutedAction, execute_record

__all__ = [
    "PlaywrightDriver",
    "FailureCategory",
    "RecoveryPolicy",
    "ActionExecutor",
    "ExecutedAction",
    "execute_record",
]
