"""
Execution State Machine

Drives one test through the cheap path (snapshot replay) or the expensive
path (model-driven regeneration, step by step), then persists what ran.

Flow:
    INITIALIZE -> CHECK_SNAPSHOT -> REPLAY -> DONE
                                 \\-> SCREENSHOT_BASELINE -> PROCESS_STEP
    PROCESS_STEP -> CLASSIFY_ACTION -> NAVIGATE | CLICK | FORM_UPDATE | ASSERT
    NAVIGATE | CLICK | FORM_UPDATE -> INTENT_CHECK -> CLASSIFY_ACTION | PROCESS_STEP
    ASSERT -> PROCESS_STEP
    PROCESS_STEP (all steps done) -> PERSIST -> DONE
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..config import MimicConfig
from ..errors import (
    ElementNotFoundError,
    MimicError,
    ModelError,
    ReplayError,
    SelectorUnavailableError,
    SnapshotError,
    StepExecutionError,
    format_step_error,
)
from ..snapshot.models import (
    ASSERTION,
    CLICK,
    FORM_UPDATE,
    NAVIGATION,
    Snapshot,
    SnapshotStep,
    StepExecutionResult,
    fingerprint_text,
)
from ..snapshot.replay import ReplayExecutor
from ..snapshot.store import SnapshotStore
from .actions import ActionExecutor, ExecutedAction
from .driver import PlaywrightDriver
from .recovery import RecoveryPolicy

# Configure logging
logger = logging.getLogger(__name__)


class MimicState(Enum):
    INITIALIZE = "initialize"
    CHECK_SNAPSHOT = "check_snapshot"
    REPLAY = "replay"
    SCREENSHOT_BASELINE = "screenshot_baseline"
    PROCESS_STEP = "process_step"
    CLASSIFY_ACTION = "classify_action"
    NAVIGATE = "navigate"
    CLICK = "click"
    FORM_UPDATE = "form_update"
    ASSERT = "assert"
    INTENT_CHECK = "intent_check"
    PERSIST = "persist"
    DONE = "done"


class Outcome(Enum):
    OK = "ok"
    USE_SNAPSHOT = "use_snapshot"
    REGENERATE = "regenerate"
    REPLAYED = "replayed"
    REPLAY_FAILED = "replay_failed"
    CACHED = "cached"
    NEEDS_ACTION = "needs_action"
    ALL_DONE = "all_done"
    NAVIGATION = "navigation"
    CLICK = "click"
    FORM_UPDATE = "form_update"
    ASSERTION = "assertion"
    UNCLASSIFIED = "unclassified"
    NO_ACTION = "no_action"
    STEP_DONE = "step_done"
    CONTINUE = "continue"


TRANSITIONS: Dict[Tuple[MimicState, Outcome], MimicState] = {
    (MimicState.INITIALIZE, Outcome.OK): MimicState.CHECK_SNAPSHOT,

    (MimicState.CHECK_SNAPSHOT, Outcome.USE_SNAPSHOT): MimicState.REPLAY,
    (MimicState.CHECK_SNAPSHOT, Outcome.REGENERATE): MimicState.SCREENSHOT_BASELINE,

    (MimicState.REPLAY, Outcome.REPLAYED): MimicState.DONE,
    (MimicState.REPLAY, Outcome.REPLAY_FAILED): MimicState.SCREENSHOT_BASELINE,

    (MimicState.SCREENSHOT_BASELINE, Outcome.OK): MimicState.PROCESS_STEP,

    (MimicState.PROCESS_STEP, Outcome.CACHED): MimicState.PROCESS_STEP,
    (MimicState.PROCESS_STEP, Outcome.NEEDS_ACTION): MimicState.CLASSIFY_ACTION,
    (MimicState.PROCESS_STEP, Outcome.ALL_DONE): MimicState.PERSIST,

    (MimicState.CLASSIFY_ACTION, Outcome.NAVIGATION): MimicState.NAVIGATE,
    (MimicState.CLASSIFY_ACTION, Outcome.CLICK): MimicState.CLICK,
    (MimicState.CLASSIFY_ACTION, Outcome.FORM_UPDATE): MimicState.FORM_UPDATE,
    (MimicState.CLASSIFY_ACTION, Outcome.ASSERTION): MimicState.ASSERT,
    (MimicState.CLASSIFY_ACTION, Outcome.UNCLASSIFIED): MimicState.INTENT_CHECK,

    (MimicState.NAVIGATE, Outcome.OK): MimicState.INTENT_CHECK,
    (MimicState.NAVIGATE, Outcome.NO_ACTION): MimicState.INTENT_CHECK,
    (MimicState.CLICK, Outcome.OK): MimicState.INTENT_CHECK,
    (MimicState.CLICK, Outcome.NO_ACTION): MimicState.INTENT_CHECK,
    (MimicState.FORM_UPDATE, Outcome.OK): MimicState.INTENT_CHECK,
    (MimicState.FORM_UPDATE, Outcome.NO_ACTION): MimicState.INTENT_CHECK,
    (MimicState.ASSERT, Outcome.STEP_DONE): MimicState.PROCESS_STEP,
    (MimicState.ASSERT, Outcome.NO_ACTION): MimicState.INTENT_CHECK,

    (MimicState.INTENT_CHECK, Outcome.STEP_DONE): MimicState.PROCESS_STEP,
    (MimicState.INTENT_CHECK, Outcome.CONTINUE): MimicState.CLASSIFY_ACTION,

    (MimicState.PERSIST, Outcome.OK): MimicState.DONE,
}

_KIND_OUTCOMES = {
    NAVIGATION: Outcome.NAVIGATION,
    CLICK: Outcome.CLICK,
    FORM_UPDATE: Outcome.FORM_UPDATE,
    ASSERTION: Outcome.ASSERTION,
}

# Failures while choosing or locating a target; the step loop tries again
_RECOVERABLE = (ModelError, ElementNotFoundError, SelectorUnavailableError)


def parse_steps(test_text: str) -> List[str]:
    """One step per non-blank line, trimmed"""
    return [line.strip() for line in test_text.splitlines() if line.strip()]


@dataclass
class ExecutionState:
    """Transient state of one run"""
    test_text: str
    steps: List[str]
    test_fingerprint: str
    test_name: Optional[str] = None
    troubleshoot_mode: bool = False
    max_actions_per_step: int = 10

    current_step_index: int = 0
    action_count: int = 0
    last_action_executed: bool = False
    step_actions: List[ExecutedAction] = field(default_factory=list)

    snapshot: Optional[Snapshot] = None
    known_steps: Dict[str, SnapshotStep] = field(default_factory=dict)
    use_snapshot: bool = False
    replay_failed: bool = False

    executed: Dict[int, StepExecutionResult] = field(default_factory=dict)
    baseline_screenshot: Optional[bytes] = None
    snapshot_used: bool = False
    saved: bool = False
    transitions: int = 0

    @property
    def current_step(self) -> str:
        return self.steps[self.current_step_index]

    @property
    def history(self) -> List[str]:
        return self.steps[:self.current_step_index]

    @property
    def all_steps_done(self) -> bool:
        return self.current_step_index >= len(self.steps)

    def record(self, result: StepExecutionResult):
        # A step that took several actions keeps its last one
        self.executed[result.step_index] = result

    def advance(self):
        self.current_step_index += 1
        self.action_count = 0
        self.last_action_executed = False
        self.step_actions = []


@dataclass
class MimicRunResult:
    """Outcome of one test run"""
    test_fingerprint: str
    snapshot_used: bool
    steps_executed: int
    model_calls: int
    driver_actions: int
    token_usage: Dict[str, Any] = field(default_factory=dict)
    saved: bool = False
    execution_time_ms: int = 0


class MimicEngine:
    """
    Runs natural-language tests against a page.

    The page (or a PlaywrightDriver wrapping it) is injected per engine; the
    brain is any object with the ModelBrain decision methods.
    """

    def __init__(
        self,
        page,
        brain,
        store: Optional[SnapshotStore] = None,
        config: Optional[MimicConfig] = None,
        base_url: Optional[str] = None
    ):
        self.config = config or MimicConfig()
        self.brain = brain
        self.store = store

        if isinstance(page, PlaywrightDriver):
            self.driver = page
        else:
            self.driver = PlaywrightDriver(
                page,
                timeout=self.config.action_timeout_ms,
                wait_timeout=self.config.replay_wait_timeout_ms,
                base_url=base_url
            )

        self.recovery = RecoveryPolicy(
            max_retries=self.config.max_retries,
            base_delay_ms=self.config.retry_base_delay_ms,
            max_delay_ms=self.config.retry_max_delay_ms
        )
        self.executor = ActionExecutor(
            self.driver,
            brain,
            recovery=self.recovery,
            selector_timeout=self.config.selector_timeout_ms
        )
        self.replayer = ReplayExecutor(wait_timeout_ms=self.config.replay_wait_timeout_ms, base_url=base_url)

        self.handlers = {
            MimicState.INITIALIZE: self._initialize,
            MimicState.CHECK_SNAPSHOT: self._check_snapshot,
            MimicState.REPLAY: self._replay,
            MimicState.SCREENSHOT_BASELINE: self._screenshot_baseline,
            MimicState.PROCESS_STEP: self._process_step,
            MimicState.CLASSIFY_ACTION: self._classify_action,
            MimicState.NAVIGATE: self._navigate,
            MimicState.CLICK: self._click,
            MimicState.FORM_UPDATE: self._form_update,
            MimicState.ASSERT: self._assert,
            MimicState.INTENT_CHECK: self._intent_check,
            MimicState.PERSIST: self._persist,
        }

    # ==================== Main loop ====================

    async def run(self, test_text: str, test_name: Optional[str] = None) -> MimicRunResult:
        """
        Run one test.

        Args:
            test_text: Natural-language steps, one per line
            test_name: Optional name; lets an edited test reuse its unchanged steps

        Returns:
            MimicRunResult

        Raises:
            StepExecutionError: when a step's action gives up
            MimicError: when the state machine exceeds its transition bound
        """
        start_time = datetime.now()
        calls_before = getattr(self.brain, "model_calls", 0)
        actions_before = self.driver.action_count

        state = ExecutionState(
            test_text=test_text,
            steps=parse_steps(test_text),
            test_fingerprint=fingerprint_text(test_text),
            test_name=test_name,
            troubleshoot_mode=self.config.troubleshoot_mode,
            max_actions_per_step=self.config.max_actions_per_step,
        )

        current = MimicState.INITIALIZE
        try:
            while current != MimicState.DONE:
                state.transitions += 1
                if state.transitions > self.config.max_transitions:
                    raise MimicError(f"Run exceeded {self.config.max_transitions} state transitions")

                outcome = await self.handlers[current](state)
                next_state = TRANSITIONS.get((current, outcome))
                if next_state is None:
                    raise MimicError(f"No transition from {current.value} on {outcome.value}")
                logger.debug(f"[MIMIC] {current.value} --{outcome.value}--> {next_state.value}")
                current = next_state
        except (StepExecutionError, MimicError) as e:
            await self._fail(state, e)
            raise

        return MimicRunResult(
            test_fingerprint=state.test_fingerprint,
            snapshot_used=state.snapshot_used,
            steps_executed=len(state.executed),
            model_calls=getattr(self.brain, "model_calls", 0) - calls_before,
            driver_actions=self.driver.action_count - actions_before,
            token_usage=dict(getattr(self.brain, "token_usage", {}) or {}),
            saved=state.saved,
            execution_time_ms=int((datetime.now() - start_time).total_seconds() * 1000),
        )

    async def _fail(self, state: ExecutionState, error: BaseException):
        step_text = state.current_step if not state.all_steps_done else None
        message = format_step_error(
            error,
            step_text=step_text,
            step_index=state.current_step_index if step_text is not None else None,
            page_url=self.driver.url if self.driver.page is not None else None,
        )
        logger.error(f"[MIMIC] Test {state.test_fingerprint} failed\n{message}")

        if self.store is not None:
            await self.store.record_failure(
                state.test_fingerprint,
                str(error),
                failed_step_index=state.current_step_index if step_text is not None else None,
                failed_step_text=step_text,
                test_text=state.test_text,
            )

    # ==================== Setup & cache ====================

    async def _initialize(self, state: ExecutionState) -> Outcome:
        if not state.steps:
            raise MimicError("Test has no steps")
        self.recovery.reset()
        logger.info(
            f"[MIMIC] Test {state.test_fingerprint}: {len(state.steps)} steps"
            f"{' (troubleshoot mode)' if state.troubleshoot_mode else ''}"
        )
        return Outcome.OK

    async def _check_snapshot(self, state: ExecutionState) -> Outcome:
        if self.store is None:
            return Outcome.REGENERATE

        state.snapshot = await self.store.get_snapshot(state.test_fingerprint)
        if state.snapshot is not None:
            state.known_steps = dict(state.snapshot.steps_by_fingerprint)

        if not state.known_steps and state.test_name:
            # Edited test: its earlier steps may still be cached under the old text.
            # A failure-only snapshot for the new text carries no steps of its own.
            previous = await self.store.find_by_name(state.test_name)
            if previous is not None:
                logger.info(f"[SNAPSHOT] Reusing steps from earlier version of '{state.test_name}'")
                state.known_steps = dict(previous.steps_by_fingerprint)
                if state.snapshot is None:
                    state.snapshot = previous

        state.use_snapshot = await self.store.should_use_snapshot(
            state.test_fingerprint, len(state.steps), state.troubleshoot_mode
        )
        return Outcome.USE_SNAPSHOT if state.use_snapshot else Outcome.REGENERATE

    async def _replay(self, state: ExecutionState) -> Outcome:
        try:
            result = await self.replayer.replay(state.snapshot, self.driver)
        except (ReplayError, SnapshotError) as e:
            logger.warning(f"[MIMIC] Replay failed, regenerating: {e}")
            state.replay_failed = True
            await self.store.record_failure(
                state.test_fingerprint,
                str(e),
                failed_step_index=getattr(e, "step_index", None),
                failed_step_text=getattr(e, "step_text", None),
                test_text=state.test_text,
            )
            return Outcome.REPLAY_FAILED

        state.snapshot_used = True
        for step in state.snapshot.ordered_steps():
            state.record(StepExecutionResult(
                step_index=step.step_index,
                step_text=step.step_text,
                action_kind=step.action_kind,
                action_record=step.action_record,
                target_reference=step.target_reference,
            ))
        logger.info(f"[MIMIC] Replayed {result.steps_replayed} steps in {result.execution_time_ms}ms")
        return Outcome.REPLAYED

    async def _screenshot_baseline(self, state: ExecutionState) -> Outcome:
        if self.config.capture_baseline_screenshot:
            try:
                state.baseline_screenshot = await self.driver.screenshot()
            except Exception as e:
                logger.warning(f"[MIMIC] Baseline screenshot failed: {e}")
        return Outcome.OK

    # ==================== Step loop ====================

    def _cached_step(self, state: ExecutionState) -> Optional[SnapshotStep]:
        if state.replay_failed or state.snapshot is None or state.snapshot.flags.force_regenerate:
            return None
        return state.known_steps.get(fingerprint_text(state.current_step))

    async def _process_step(self, state: ExecutionState) -> Outcome:
        if state.all_steps_done:
            return Outcome.ALL_DONE

        step_text = state.current_step
        cached = self._cached_step(state)
        if cached is not None:
            try:
                await self.replayer.replay_step(cached, self.driver)
            except ReplayError as e:
                logger.warning(f"[MIMIC] Cached step failed, regenerating '{step_text}': {e.cause}")
            else:
                logger.info(f"[MIMIC] Step {state.current_step_index + 1} replayed from cache: {step_text}")
                state.record(StepExecutionResult(
                    step_index=state.current_step_index,
                    step_text=step_text,
                    action_kind=cached.action_kind,
                    action_record=cached.action_record,
                    target_reference=cached.target_reference,
                ))
                state.advance()
                return Outcome.CACHED

        logger.info(f"[MIMIC] Step {state.current_step_index + 1}: {step_text}")
        state.action_count = 0
        state.last_action_executed = False
        state.step_actions = []
        return Outcome.NEEDS_ACTION

    async def _classify_action(self, state: ExecutionState) -> Outcome:
        state.action_count += 1
        state.last_action_executed = False
        try:
            classification = await self.brain.classify_action(
                state.current_step,
                state.history,
                await self.executor.page_state(),
                [a.description for a in state.step_actions],
            )
        except ModelError as e:
            logger.warning(f"[MIMIC] Classification failed: {e}")
            return Outcome.UNCLASSIFIED

        outcome = _KIND_OUTCOMES.get(classification.kind)
        if outcome is None:
            logger.info(f"[MIMIC] Step not actionable as '{classification.kind}': {classification.description}")
            return Outcome.UNCLASSIFIED
        return outcome

    def _record_action(self, state: ExecutionState, action: ExecutedAction):
        state.step_actions.append(action)
        state.last_action_executed = True
        state.record(StepExecutionResult(
            step_index=state.current_step_index,
            step_text=state.current_step,
            action_kind=action.kind,
            action_record=action.record,
            target_reference=action.target,
        ))

    async def _execute(self, state: ExecutionState, execute) -> Outcome:
        try:
            action = await execute(state.current_step, state.history)
        except _RECOVERABLE as e:
            logger.warning(f"[MIMIC] Could not build action for '{state.current_step}': {e}")
            return Outcome.NO_ACTION
        self._record_action(state, action)
        return Outcome.OK

    async def _navigate(self, state: ExecutionState) -> Outcome:
        return await self._execute(state, self.executor.execute_navigation)

    async def _click(self, state: ExecutionState) -> Outcome:
        return await self._execute(state, self.executor.execute_click)

    async def _form_update(self, state: ExecutionState) -> Outcome:
        return await self._execute(state, self.executor.execute_form)

    async def _assert(self, state: ExecutionState) -> Outcome:
        outcome = await self._execute(state, self.executor.execute_assertion)
        if outcome != Outcome.OK:
            return outcome
        state.advance()
        return Outcome.STEP_DONE

    async def _intent_check(self, state: ExecutionState) -> Outcome:
        """
        Decide whether the current step is finished.

        At max_actions_per_step the step is forced through, but only when at
        least one action was executed for it. A step that never produced an
        action raises StepExecutionError instead, so the run fails rather than
        persisting a snapshot that has nothing stored for that step.
        """
        step_text = state.current_step

        if state.action_count >= state.max_actions_per_step:
            if state.current_step_index not in state.executed:
                raise StepExecutionError(
                    f"No action could be executed for '{step_text}' in {state.action_count} attempts",
                    action_description=step_text,
                    attempts=state.action_count
                )
            logger.warning(
                f"[MIMIC] Reached maximum actions ({state.max_actions_per_step}) for step: {step_text}. "
                f"Intent may not be fully accomplished."
            )
            state.advance()
            return Outcome.STEP_DONE

        # Nothing to judge yet after a failed decision or the first action
        if not state.last_action_executed or state.action_count <= 1:
            return Outcome.CONTINUE

        try:
            judgment = await self.brain.check_intent(
                step_text,
                state.history,
                await self.executor.page_state(),
                [a.description for a in state.step_actions],
            )
        except ModelError as e:
            logger.warning(f"[MIMIC] Intent check failed, continuing: {e}")
            return Outcome.CONTINUE

        if judgment.accomplished:
            logger.info(f"[MIMIC] Step intent accomplished after {state.action_count} action(s): {judgment.reasoning}")
            state.advance()
            return Outcome.STEP_DONE

        logger.info(f"[MIMIC] Step intent not yet accomplished: {judgment.reasoning}")
        return Outcome.CONTINUE

    # ==================== Persist ====================

    async def _persist(self, state: ExecutionState) -> Outcome:
        if self.store is None:
            return Outcome.OK

        executed = [state.executed[i] for i in sorted(state.executed)]
        try:
            state.saved = await self.store.save_snapshot(
                state.test_fingerprint,
                state.test_text,
                executed,
                len(state.steps),
                troubleshoot_mode=state.troubleshoot_mode,
                test_name=state.test_name,
            )
        except SnapshotError as e:
            logger.error(f"[SNAPSHOT] {e}")
            state.saved = False
        return Outcome.OK
