"""
Action Executors

Executes action records against the driver (shared by regeneration and
replay), and builds new records from model decisions when a step has to be
regenerated.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ElementNotFoundError, ModelError
from ..selector.codegen import assertion_code, click_code, form_code, navigation_code, selector_to_code
from ..selector.element_info import extract_element_info
from ..selector.strategies import SelectorResolver
from ..selector.types import ElementInfo
from ..snapshot.models import (
    ASSERTION,
    CLICK,
    FORM_UPDATE,
    NAVIGATION,
    AssertionRecord,
    ClickRecord,
    FormRecord,
    NavigationRecord,
    TargetReference,
)
from .driver import PlaywrightDriver
from .recovery import RecoveryPolicy

# Configure logging
logger = logging.getLogger(__name__)


_CLICK_BUTTONS = {"left": "left", "right": "right", "middle": "middle", "double": "left"}


@dataclass
class ExecutedAction:
    """One action performed for a step"""
    kind: str
    record: Any
    target: Optional[TargetReference] = None
    description: str = ""
    code: str = ""


# ==================== Record execution ====================

async def execute_navigation(driver: PlaywrightDriver, record: NavigationRecord):
    if record.type in ("openPage", "navigate"):
        if not record.url:
            raise ValueError("Navigation requires a url parameter")
        await driver.navigate(record.url)
    elif record.type == "goBack":
        await driver.go_back()
    elif record.type == "goForward":
        await driver.go_forward()
    elif record.type == "refresh":
        await driver.reload()
    elif record.type == "closePage":
        await driver.close()
    else:
        raise ValueError(f"Unknown navigation type: {record.type}")


async def execute_click(driver: PlaywrightDriver, record: ClickRecord, locator):
    if record.click_type == "hover":
        await driver.hover(locator, modifiers=record.modifiers)
        return

    position = record.position.model_dump() if record.position else None
    await driver.click(
        locator,
        button=_CLICK_BUTTONS[record.click_type],
        modifiers=record.modifiers,
        position=position,
        click_count=2 if record.click_type == "double" else 1
    )


async def execute_form(driver: PlaywrightDriver, record: FormRecord, locator):
    if record.type == "keypress":
        key = "+".join(list(record.modifiers) + [record.value]) if record.modifiers else record.value
        await driver.press(key, locator)
    elif record.type == "fill":
        await driver.fill(locator, record.value)
    elif record.type == "type":
        await driver.type(locator, record.value)
    elif record.type == "select":
        await driver.select(locator, record.value)
    elif record.type == "check":
        await driver.check(locator)
    elif record.type == "uncheck":
        await driver.uncheck(locator)
    elif record.type == "setInputFiles":
        await driver.set_input_files(locator, record.value)
    elif record.type == "clear":
        await driver.clear(locator)
    else:
        raise ValueError(f"Unknown form action type: {record.type}")


async def execute_assertion(driver: PlaywrightDriver, record: AssertionRecord, locator=None):
    """
    Check an assertion against the live page.

    Raises:
        AssertionError: when the page does not match
    """
    expected = record.expected

    if record.type == "url":
        actual = driver.url
        if expected not in actual:
            raise AssertionError(f"Expected URL to contain '{expected}', got '{actual}'")
        return
    if record.type == "title":
        actual = await driver.title()
        if expected not in actual:
            raise AssertionError(f"Expected title to contain '{expected}', got '{actual}'")
        return

    if locator is None:
        raise ValueError(f"{record.type} assertion requires a target element")

    if record.type == "visible":
        ok, actual = await driver.is_visible(locator), "hidden"
    elif record.type == "notVisible":
        ok, actual = not await driver.is_visible(locator), "visible"
    elif record.type == "text":
        actual = (await driver.text_content(locator)).strip()
        ok = actual == expected.strip()
    elif record.type == "textContains":
        actual = await driver.text_content(locator)
        ok = expected in actual
    elif record.type == "value":
        actual = await driver.input_value(locator)
        ok = actual == expected
    elif record.type == "checked":
        ok, actual = await driver.is_checked(locator), "unchecked"
    elif record.type == "notChecked":
        ok, actual = not await driver.is_checked(locator), "checked"
    elif record.type == "enabled":
        ok, actual = await driver.is_enabled(locator), "disabled"
    elif record.type == "disabled":
        ok, actual = not await driver.is_enabled(locator), "enabled"
    elif record.type == "count":
        actual = await locator.count()
        ok = str(actual) == expected.strip()
    else:
        raise ValueError(f"Unknown assertion type: {record.type}")

    if not ok:
        raise AssertionError(f"Assertion '{record.type}' failed: expected '{expected}', got '{actual}'")


async def execute_record(driver: PlaywrightDriver, record, locator=None):
    """Dispatch a stored or freshly built record to its executor"""
    if record.kind == NAVIGATION:
        await execute_navigation(driver, record)
    elif record.kind == CLICK:
        await execute_click(driver, record, locator)
    elif record.kind == FORM_UPDATE:
        await execute_form(driver, record, locator)
    elif record.kind == ASSERTION:
        await execute_assertion(driver, record, locator)
    else:
        raise ValueError(f"Unknown action kind: {record.kind}")


def record_code(record, target: Optional[TargetReference] = None) -> str:
    """Playwright code for a record, used in annotations"""
    descriptor = target.descriptor if target is not None else None
    selector = selector_to_code(descriptor) if descriptor is not None else None
    if selector is None and target is not None and target.marker_id is not None:
        selector = f"page.locator('[data-mimic-id=\"{target.marker_id}\"]')"

    if record.kind == NAVIGATION:
        return navigation_code(record.type, record.url)
    if record.kind == CLICK:
        return click_code(selector or "locator", record.click_type)
    if record.kind == FORM_UPDATE:
        return form_code(selector or "locator", record.type, record.value)
    try:
        return assertion_code(selector, record.type, record.expected)
    except ValueError:
        return ""


# ==================== Regeneration ====================

class ActionExecutor:
    """
    Regenerates a step's action with the model and executes it.

    Element targets come from the marker pass; every chosen element gets a
    durable descriptor from the selector resolver plus its marker id.
    """

    def __init__(
        self,
        driver: PlaywrightDriver,
        brain,
        resolver: Optional[SelectorResolver] = None,
        recovery: Optional[RecoveryPolicy] = None,
        selector_timeout: Optional[int] = None
    ):
        self.driver = driver
        self.brain = brain
        self.resolver = resolver or SelectorResolver()
        self.recovery = recovery or RecoveryPolicy()
        self.selector_timeout = selector_timeout

    async def page_state(self) -> Dict[str, str]:
        return {"url": self.driver.url, "title": await self.driver.title()}

    async def _target_for(self, marker_id: int) -> Tuple[Any, TargetReference, ElementInfo]:
        """Locator, stored target and element info for a marked element"""
        locator = self.driver.marker_locator(marker_id)
        if await locator.count() != 1:
            raise ElementNotFoundError(f"Marked element {marker_id} not found", marker_id=marker_id)

        info = await extract_element_info(locator)
        descriptor = await self.resolver.resolve(
            self.driver.page, info, fallback_id=marker_id, timeout=self.selector_timeout
        )
        return locator, TargetReference.build(descriptor, marker_id, info), info

    async def _run(self, record, locator, target: Optional[TargetReference], description: str) -> ExecutedAction:
        code = record_code(record, target)
        parameters = record.model_dump(mode="json", exclude={"candidates"})

        async def operation():
            await execute_record(self.driver, record, locator)

        await self.recovery.run(operation, description, parameters)
        logger.info(f"[MIMIC] {description} -> {code}")
        return ExecutedAction(kind=record.kind, record=record, target=target, description=description, code=code)

    async def execute_navigation(self, step_text: str, history: List[str]) -> ExecutedAction:
        decision = await self.brain.decide_navigation(step_text, history, await self.page_state())
        record = NavigationRecord(type=decision.type, url=decision.url, description=decision.description)
        return await self._run(record, None, None, decision.description or f"{decision.type} {decision.url}")

    async def execute_click(self, step_text: str, history: List[str]) -> ExecutedAction:
        elements = await self.driver.mark_elements()
        decision = await self.brain.decide_click(step_text, history, await self.page_state(), elements)

        chosen = next((c for c in decision.candidates if c.marker_id is not None), None)
        if chosen is None:
            raise ModelError(f"No clickable candidate chosen for '{step_text}'")

        locator, target, _ = await self._target_for(chosen.marker_id)
        record = ClickRecord(
            click_type=decision.click_type,
            modifiers=decision.modifiers,
            candidates=decision.candidates,
            reasoning=decision.reasoning,
        )
        description = f"{decision.click_type} click on {chosen.description or chosen.text or chosen.tag}"
        return await self._run(record, locator, target, description)

    async def execute_form(self, step_text: str, history: List[str]) -> ExecutedAction:
        elements = await self.driver.mark_elements()
        decision = await self.brain.decide_form(step_text, history, await self.page_state(), elements)

        locator, target = None, None
        if decision.marker_id is not None:
            locator, target, _ = await self._target_for(decision.marker_id)
        elif decision.type != "keypress":
            raise ModelError(f"No form element chosen for '{step_text}'")

        record = FormRecord(
            type=decision.type,
            value=decision.value,
            modifiers=decision.modifiers,
            element_description=decision.element_description,
        )
        description = f"{decision.type} '{decision.value}' on {decision.element_description or 'focused element'}"
        return await self._run(record, locator, target, description)

    async def execute_assertion(self, step_text: str, history: List[str]) -> ExecutedAction:
        elements = await self.driver.mark_elements()
        decision = await self.brain.decide_assertion(step_text, history, await self.page_state(), elements)

        locator, target = None, None
        if decision.marker_id is not None:
            locator, target, _ = await self._target_for(decision.marker_id)

        record = AssertionRecord(
            type=decision.type,
            expected=decision.expected,
            element_description=decision.element_description,
            target_marker_id=decision.marker_id,
        )
        description = f"assert {decision.type} '{decision.expected}'"
        return await self._run(record, locator, target, description)
