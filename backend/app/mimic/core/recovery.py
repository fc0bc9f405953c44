"""
Recovery Policy

Classifies action failures and decides whether to retry, how long to back
off, and when to give up.

Categories:
- transient   (timeout, loading, network): exponential backoff
- environment (element or selector missing): retried while fewer than 2 retries
- logic       (invalid or missing parameters): never retried
- permanent   (permission, blocked): never retried
- unknown:    retried once
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import StepExecutionError

# Configure logging
logger = logging.getLogger(__name__)


class FailureCategory(Enum):
    """Categories of action failure"""
    TRANSIENT = "transient"
    ENVIRONMENT = "environment"
    LOGIC = "logic"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


@dataclass
class RecoveryDecision:
    """What to do after a failed attempt"""
    retry: bool
    category: FailureCategory
    delay_ms: int = 0
    reason: str = ""


@dataclass
class AttemptRecord:
    attempt: int
    category: FailureCategory
    error: str
    delay_ms: int
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class RecoveryPolicy:
    """
    Retry policy for driver actions.

    Features:
    - Failure classification from the error text
    - Exponential backoff for transient failures
    - Bounded retries for missing elements and unknown errors
    - Attempt history for diagnostics
    """

    # Error text fragments per category, checked in this order
    PATTERNS = (
        (FailureCategory.PERMANENT, ("permission", "blocked", "forbidden", "unauthorized")),
        (FailureCategory.LOGIC, ("invalid", "parameter", "required", "validation")),
        (FailureCategory.TRANSIENT, ("timeout", "timed out", "wait", "not ready", "loading", "network", "net::")),
        (FailureCategory.ENVIRONMENT, ("not found", "selector", "element missing", "no element", "detached")),
    )

    # Retries allowed for environment failures
    ENVIRONMENT_RETRIES = 2
    # Retries allowed for unknown failures
    UNKNOWN_RETRIES = 1

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 10000,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        """
        Initialize the policy.

        Args:
            max_retries: Hard limit on retries for any category
            base_delay_ms: First backoff delay
            max_delay_ms: Backoff cap
            sleep: Coroutine used to wait (asyncio.sleep by default)
        """
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep or asyncio.sleep

        self.history: List[AttemptRecord] = []

    def classify(self, error: BaseException) -> FailureCategory:
        """
        Classify a failure based on the error message.

        Args:
            error: The exception that occurred

        Returns:
            FailureCategory
        """
        if isinstance(error, asyncio.TimeoutError):
            return FailureCategory.TRANSIENT

        error_str = f"{type(error).__name__}: {error}".lower()
        for category, fragments in self.PATTERNS:
            if any(fragment in error_str for fragment in fragments):
                return category
        return FailureCategory.UNKNOWN

    def backoff_ms(self, retry_number: int) -> int:
        """Delay before the nth retry (1-based): base * 2^(n-1), capped"""
        return min(self.base_delay_ms * (2 ** (retry_number - 1)), self.max_delay_ms)

    def decide(self, error: BaseException, retry_count: int) -> RecoveryDecision:
        """
        Decide whether to retry after a failure.

        Args:
            error: The failure
            retry_count: Retries already made for this action

        Returns:
            RecoveryDecision
        """
        category = self.classify(error)

        if retry_count >= self.max_retries:
            return RecoveryDecision(False, category, reason="max retries reached")

        if category == FailureCategory.TRANSIENT:
            return RecoveryDecision(True, category, self.backoff_ms(retry_count + 1), "transient failure")

        if category == FailureCategory.ENVIRONMENT:
            if retry_count < self.ENVIRONMENT_RETRIES:
                return RecoveryDecision(True, category, self.backoff_ms(retry_count + 1), "element may still appear")
            return RecoveryDecision(False, category, reason="element still missing")

        if category == FailureCategory.UNKNOWN:
            if retry_count < self.UNKNOWN_RETRIES:
                return RecoveryDecision(True, category, self.base_delay_ms, "unknown failure, retrying once")
            return RecoveryDecision(False, category, reason="unknown failure repeated")

        return RecoveryDecision(False, category, reason=f"{category.value} failure is not retried")

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Run an operation under the policy.

        Args:
            operation: Zero-argument coroutine function performing the action
            description: Human-readable action description for diagnostics
            parameters: Action parameters for diagnostics

        Returns:
            Whatever the operation returns

        Raises:
            StepExecutionError: when the policy gives up
        """
        retry_count = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                decision = self.decide(e, retry_count)
                self.history.append(AttemptRecord(
                    attempt=retry_count + 1,
                    category=decision.category,
                    error=str(e),
                    delay_ms=decision.delay_ms
                ))

                if not decision.retry:
                    logger.warning(
                        f"[RECOVERY] Giving up on '{description}' after {retry_count + 1} attempt(s) "
                        f"({decision.category.value}: {decision.reason})"
                    )
                    raise StepExecutionError(
                        f"{description or 'Action'} failed: {e}",
                        action_description=description,
                        parameters=parameters,
                        attempts=retry_count + 1,
                        cause=e
                    ) from e

                retry_count += 1
                logger.info(
                    f"[RECOVERY] {decision.category.value} failure on '{description}', "
                    f"retry {retry_count} in {decision.delay_ms}ms: {e}"
                )
                if decision.delay_ms > 0:
                    await self._sleep(decision.delay_ms / 1000)

    def reset(self):
        self.history.clear()

    def get_stats(self) -> Dict[str, Any]:
        by_category: Dict[str, int] = {}
        for record in self.history:
            by_category[record.category.value] = by_category.get(record.category.value, 0) + 1
        return {"failed_attempts": len(self.history), "by_category": by_category}
