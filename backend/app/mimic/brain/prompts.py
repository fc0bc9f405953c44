"""
Prompt templates for the model decision points.

Every prompt asks for a single JSON object; the shape is described inline so
the same text works for all providers.
"""

from typing import Dict, List, Optional

from ..selector.types import ElementInfo


SYSTEM_PROMPT = (
    "You are a QA automation engineer driving a web browser with Playwright. "
    "You turn one natural-language test step at a time into concrete browser actions. "
    "Respond with a single JSON object only, without markdown fences or commentary."
)

# Keep element listings bounded so large pages do not blow the context
MAX_ELEMENTS = 150
MAX_TEXT = 80


def format_history(history: List[str]) -> str:
    if not history:
        return "(none)"
    return "\n".join(f"{i + 1}. {step}" for i, step in enumerate(history))


def format_page_state(page_state: Dict[str, str]) -> str:
    return f"URL: {page_state.get('url', '')}\nTitle: {page_state.get('title', '')}"


def format_element(element: ElementInfo) -> str:
    """One line per marked element: [id] <tag> attr=value ..."""
    parts = [f"[{element.marker_id}]", f"<{element.tag}>"]
    attributes = (
        ("role", element.role),
        ("type", element.type_attr),
        ("name", element.name_attr),
        ("label", element.label),
        ("aria-label", element.aria_label),
        ("placeholder", element.placeholder),
        ("alt", element.alt),
        ("title", element.title),
        ("href", element.href),
    )
    for key, value in attributes:
        if value:
            parts.append(f'{key}="{value[:MAX_TEXT]}"')
    if element.text:
        parts.append(f'text="{element.text[:MAX_TEXT]}"')
    return " ".join(parts)


def format_elements(elements: List[ElementInfo]) -> str:
    if not elements:
        return "(no marked elements)"
    lines = [format_element(e) for e in elements[:MAX_ELEMENTS]]
    if len(elements) > MAX_ELEMENTS:
        lines.append(f"... {len(elements) - MAX_ELEMENTS} more elements omitted")
    return "\n".join(lines)


def _context(step_text: str, history: List[str], page_state: Dict[str, str]) -> str:
    return (
        f"Current step: {step_text}\n\n"
        f"Previous steps:\n{format_history(history)}\n\n"
        f"Page:\n{format_page_state(page_state)}"
    )


# ==================== Decision prompts ====================

def classify_prompt(
    step_text: str,
    history: List[str],
    page_state: Dict[str, str],
    actions_taken: Optional[List[str]] = None
) -> str:
    taken = ""
    if actions_taken:
        taken = "\n\nActions already taken for the current step:\n" + "\n".join(f"- {a}" for a in actions_taken)
    return f"""{_context(step_text, history, page_state)}{taken}

Classify the next browser action needed for the current step.
- "navigation": open a URL, go back or forward, refresh, close the page
- "click": click or hover an element
- "form update": type, fill, select, check, uncheck, upload or press a key
- "assertion": verify something on the page
- "other": none of the above

Return JSON: {{"kind": "navigation" | "click" | "form update" | "assertion" | "other", "description": "<short description of the action>"}}"""


def navigation_prompt(step_text: str, history: List[str], page_state: Dict[str, str]) -> str:
    return f"""{_context(step_text, history, page_state)}

Decide the navigation action for the current step. Relative URLs are allowed.

Return JSON: {{"type": "openPage" | "navigate" | "closePage" | "goBack" | "goForward" | "refresh", "url": "<url or empty>", "description": "<short description>"}}"""


def click_prompt(
    step_text: str,
    history: List[str],
    page_state: Dict[str, str],
    elements: List[ElementInfo]
) -> str:
    return f"""{_context(step_text, history, page_state)}

Visible elements (the number in brackets is the element id):
{format_elements(elements)}

Pick the element to click for the current step. List up to 5 candidates, best first.

Return JSON: {{"candidates": [{{"markerId": <id>, "tag": "<tag>", "text": "<text>", "description": "<why>", "confidence": <0..1>}}], "clickType": "left" | "right" | "double" | "middle" | "hover", "modifiers": [<"Alt" | "Control" | "Meta" | "Shift">], "reasoning": "<short reasoning>"}}"""


def form_prompt(
    step_text: str,
    history: List[str],
    page_state: Dict[str, str],
    elements: List[ElementInfo]
) -> str:
    return f"""{_context(step_text, history, page_state)}

Visible elements (the number in brackets is the element id):
{format_elements(elements)}

Decide the form update for the current step. Use markerId null only for a keypress on the focused element.

Return JSON: {{"type": "keypress" | "type" | "fill" | "select" | "uncheck" | "check" | "setInputFiles" | "clear", "value": "<value or key>", "modifiers": [], "markerId": <id or null>, "elementDescription": "<short description>"}}"""


def assertion_prompt(
    step_text: str,
    history: List[str],
    page_state: Dict[str, str],
    elements: List[ElementInfo]
) -> str:
    return f"""{_context(step_text, history, page_state)}

Visible elements (the number in brackets is the element id):
{format_elements(elements)}

Decide the assertion for the current step. url and title assertions need no element.

Return JSON: {{"type": "visible" | "notVisible" | "text" | "textContains" | "value" | "checked" | "notChecked" | "enabled" | "disabled" | "count" | "url" | "title", "expected": "<expected value>", "markerId": <id or null>, "elementDescription": "<short description>"}}"""


def intent_prompt(
    step_text: str,
    history: List[str],
    page_state: Dict[str, str],
    actions_taken: List[str]
) -> str:
    taken = "\n".join(f"- {a}" for a in actions_taken) or "(none)"
    return f"""{_context(step_text, history, page_state)}

Actions already taken for the current step:
{taken}

Has the current step been fully accomplished?

Return JSON: {{"accomplished": true | false, "reasoning": "<short reasoning>", "remainingActions": ["<action still needed>"]}}"""
