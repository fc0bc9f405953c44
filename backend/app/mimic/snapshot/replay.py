"""
Replay Executor

Re-runs stored action records against freshly resolved elements. No model
calls are made; the cost of a replay is the driver calls alone.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.actions import execute_record, record_code
from ..core.driver import PlaywrightDriver
from ..errors import ElementNotFoundError, ReplayError, SnapshotError
from .models import ASSERTION, NAVIGATION, Snapshot, SnapshotStep

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Result of replaying a snapshot"""
    success: bool
    steps_replayed: int
    driver_actions: int
    execution_time_ms: int


class ReplayExecutor:
    """
    Replays snapshots step by step.

    Fails fast: the first step whose target cannot be re-resolved, or whose
    driver call raises, ends the replay with a ReplayError.
    """

    def __init__(self, wait_timeout_ms: int = PlaywrightDriver.DEFAULT_WAIT_TIMEOUT, base_url: Optional[str] = None):
        self.wait_timeout_ms = wait_timeout_ms
        self.base_url = base_url

    def _driver(self, page) -> PlaywrightDriver:
        if isinstance(page, PlaywrightDriver):
            return page
        return PlaywrightDriver(page, wait_timeout=self.wait_timeout_ms, base_url=self.base_url)

    @staticmethod
    def is_replayable(snapshot: Optional[Snapshot]) -> bool:
        return bool(snapshot and snapshot.test_text.strip() and snapshot.steps_by_fingerprint)

    async def replay_step(self, step: SnapshotStep, page) -> int:
        """
        Replay one stored step.

        Args:
            step: Stored step
            page: Playwright page or PlaywrightDriver

        Returns:
            Number of driver actions performed

        Raises:
            ReplayError: if the target cannot be resolved or the action fails
        """
        driver = self._driver(page)
        before = driver.action_count
        record = step.action_record

        try:
            locator = None
            if step.action_kind != NAVIGATION:
                if step.target_reference is not None:
                    locator = await driver.resolve_target(step.target_reference, self.wait_timeout_ms)
                elif step.action_kind != ASSERTION and not (record.kind == "form update" and record.type == "keypress"):
                    raise ElementNotFoundError(f"Stored {step.action_kind} step has no target")

            await execute_record(driver, record, locator)
        except Exception as e:
            logger.warning(f"[REPLAY] Step {step.step_index + 1} '{step.step_text}' failed: {e}")
            raise ReplayError(step.step_index, step.step_text, e) from e

        logger.info(f"[REPLAY] Step {step.step_index + 1}: {record_code(record, step.target_reference)}")
        return driver.action_count - before

    async def replay(self, snapshot: Snapshot, page) -> ReplayResult:
        """
        Replay every stored step in index order.

        Raises:
            SnapshotError: if the snapshot has no steps or no test text
            ReplayError: on the first failing step
        """
        if not self.is_replayable(snapshot):
            raise SnapshotError(f"Snapshot {snapshot.test_fingerprint if snapshot else None} is not replayable")

        start_time = datetime.now()
        driver = self._driver(page)
        actions = 0
        steps = snapshot.ordered_steps()

        logger.info(f"[REPLAY] Replaying {len(steps)} steps for {snapshot.test_fingerprint}")
        for step in steps:
            actions += await self.replay_step(step, driver)

        return ReplayResult(
            success=True,
            steps_replayed=len(steps),
            driver_actions=actions,
            execution_time_ms=int((datetime.now() - start_time).total_seconds() * 1000)
        )
