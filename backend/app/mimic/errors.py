"""
Mimic Errors

Exception hierarchy raised by the selector engine, the snapshot cache and
the execution state machine, plus a formatter that renders a readable
diagnostic for a failed step.
"""

import json
from typing import Any, Dict, Optional


class MimicError(Exception):
    """Base class for all mimic errors"""


class SelectorUnavailableError(MimicError):
    """No descriptor could be synthesized for an element"""


class ElementNotFoundError(MimicError):
    """A stored target could not be re-resolved on the live page"""

    def __init__(self, message: str, selector_code: Optional[str] = None, marker_id: Optional[int] = None):
        super().__init__(message)
        self.selector_code = selector_code
        self.marker_id = marker_id


class ReplayError(MimicError):
    """Replay of a cached step failed"""

    def __init__(self, step_index: int, step_text: str, cause: BaseException):
        super().__init__(f"Replay failed at step {step_index + 1} ('{step_text}'): {cause}")
        self.step_index = step_index
        self.step_text = step_text
        self.cause = cause


class StepExecutionError(MimicError):
    """An action exhausted its retries"""

    def __init__(
        self,
        message: str,
        action_description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        attempts: int = 0,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.action_description = action_description
        self.parameters = parameters or {}
        self.attempts = attempts
        self.cause = cause


class ModelError(MimicError):
    """The language model returned nothing usable"""


class SnapshotError(MimicError):
    """Snapshot file could not be written"""


def format_step_error(
    error: BaseException,
    step_text: Optional[str] = None,
    step_index: Optional[int] = None,
    selector_code: Optional[str] = None,
    page_url: Optional[str] = None
) -> str:
    """
    Build a multi-line diagnostic for a failed step.

    Args:
        error: The exception that ended the step
        step_text: Natural-language step
        step_index: 0-based index of the step
        selector_code: Playwright code for the target element, if any
        page_url: URL of the page when the step failed

    Returns:
        Human-readable message
    """
    lines = []
    if step_text is not None:
        position = f" {step_index + 1}" if step_index is not None else ""
        lines.append(f"Step{position} failed: {step_text}")
    lines.append(f"Error: {error}")

    if isinstance(error, StepExecutionError):
        if error.action_description:
            lines.append(f"Last action: {error.action_description}")
        if error.parameters:
            lines.append(f"Parameters: {json.dumps(error.parameters, default=str, sort_keys=True)}")
        if error.attempts:
            lines.append(f"Attempts: {error.attempts}")
        if error.cause is not None:
            lines.append(f"Cause: {type(error.cause).__name__}: {error.cause}")

    if isinstance(error, ElementNotFoundError):
        selector_code = selector_code or error.selector_code
        if error.marker_id is not None:
            lines.append(f"Fallback marker: [data-mimic-id=\"{error.marker_id}\"]")

    if selector_code:
        lines.append(f"Target: {selector_code}")
    if page_url:
        lines.append(f"Page: {page_url}")

    return "\n".join(lines)
