"""
Playwright Code Generation

Renders descriptors and action records as Playwright-for-Python source,
for log annotations and error messages.
"""

import re
from typing import Optional

from .types import (
    AltTextSelector,
    CssSelector,
    LabelSelector,
    PlaceholderSelector,
    RoleSelector,
    SelectorDescriptor,
    TestIdSelector,
    TextSelector,
    TitleSelector,
    TextValue,
    is_pattern,
)


_FLAG_NAMES = (
    (re.IGNORECASE, "re.IGNORECASE"),
    (re.MULTILINE, "re.MULTILINE"),
    (re.DOTALL, "re.DOTALL"),
    (re.VERBOSE, "re.VERBOSE"),
)

_METHODS = {
    LabelSelector: "get_by_label",
    PlaceholderSelector: "get_by_placeholder",
    AltTextSelector: "get_by_alt_text",
    TitleSelector: "get_by_title",
    TextSelector: "get_by_text",
}


def _literal(value: TextValue) -> str:
    if is_pattern(value):
        flags = " | ".join(name for flag, name in _FLAG_NAMES if value.flags & flag)
        if flags:
            return f"re.compile({value.pattern!r}, {flags})"
        return f"re.compile({value.pattern!r})"
    return repr(value)


def _exact_arg(value: TextValue, exact: Optional[bool]) -> str:
    if exact and not is_pattern(value):
        return ", exact=True"
    return ""


def selector_to_code(descriptor: SelectorDescriptor, base: str = "page") -> str:
    """
    Render a descriptor as a locator expression.

    >>> selector_to_code(RoleSelector(role="button", name="Submit"))
    "page.get_by_role('button', name='Submit')"
    """
    if isinstance(descriptor, TestIdSelector):
        code = f"{base}.get_by_test_id({_literal(descriptor.value)})"
    elif isinstance(descriptor, RoleSelector):
        if descriptor.name is not None:
            code = (
                f"{base}.get_by_role({descriptor.role!r}, name={_literal(descriptor.name)}"
                f"{_exact_arg(descriptor.name, descriptor.exact)})"
            )
        else:
            code = f"{base}.get_by_role({descriptor.role!r})"
    elif isinstance(descriptor, CssSelector):
        code = f"{base}.locator({descriptor.selector!r})"
    elif type(descriptor) in _METHODS:
        method = _METHODS[type(descriptor)]
        code = f"{base}.{method}({_literal(descriptor.value)}{_exact_arg(descriptor.value, descriptor.exact)})"
    else:
        raise TypeError(f"Unknown selector descriptor: {descriptor!r}")

    if descriptor.nth is not None:
        code += f".nth({descriptor.nth})"
    if descriptor.child is not None:
        code = selector_to_code(descriptor.child, code)
    return code


def click_code(selector_code: str, click_type: str = "left") -> str:
    if click_type == "left":
        return f"await {selector_code}.click()"
    if click_type == "right":
        return f"await {selector_code}.click(button='right')"
    if click_type == "middle":
        return f"await {selector_code}.click(button='middle')"
    if click_type == "double":
        return f"await {selector_code}.dblclick()"
    if click_type == "hover":
        return f"await {selector_code}.hover()"
    raise ValueError(f"Unknown click type: {click_type}")


def form_code(selector_code: str, action_type: str, value: Optional[str] = None) -> str:
    value = value or ""
    if action_type == "fill":
        return f"await {selector_code}.fill({value!r})"
    if action_type == "type":
        return f"await {selector_code}.press_sequentially({value!r})"
    if action_type == "keypress":
        return f"await page.keyboard.press({value!r})"
    if action_type == "select":
        return f"await {selector_code}.select_option({value!r})"
    if action_type == "check":
        return f"await {selector_code}.check()"
    if action_type == "uncheck":
        return f"await {selector_code}.uncheck()"
    if action_type == "clear":
        return f"await {selector_code}.clear()"
    if action_type == "setInputFiles":
        return f"await {selector_code}.set_input_files({value!r})"
    raise ValueError(f"Unknown form action type: {action_type}")


def navigation_code(action_type: str, url: Optional[str] = None) -> str:
    if action_type in ("openPage", "navigate"):
        return f"await page.goto({url!r})" if url else "await page.goto(url)"
    if action_type == "closePage":
        return "await page.close()"
    if action_type == "goBack":
        return "await page.go_back()"
    if action_type == "goForward":
        return "await page.go_forward()"
    if action_type == "refresh":
        return "await page.reload()"
    raise ValueError(f"Unknown navigation action type: {action_type}")


def assertion_code(selector_code: Optional[str], assertion_type: str, expected: str = "") -> str:
    """Render an assertion using playwright.async_api.expect"""
    if assertion_type == "url":
        return f"await expect(page).to_have_url({expected!r})"
    if assertion_type == "title":
        return f"await expect(page).to_have_title({expected!r})"

    if not selector_code:
        raise ValueError(f"{assertion_type} assertion requires a selector")

    if assertion_type == "count":
        try:
            count = int(expected)
        except ValueError:
            raise ValueError(f"Invalid count value: {expected}")
        return f"await expect({selector_code}).to_have_count({count})"

    matchers = {
        "visible": "to_be_visible()",
        "notVisible": "not_to_be_visible()",
        "text": f"to_have_text({expected!r})",
        "textContains": f"to_contain_text({expected!r})",
        "value": f"to_have_value({expected!r})",
        "checked": "to_be_checked()",
        "notChecked": "not_to_be_checked()",
        "enabled": "to_be_enabled()",
        "disabled": "to_be_disabled()",
    }
    if assertion_type not in matchers:
        raise ValueError(f"Unknown assertion type: {assertion_type}")
    return f"await expect({selector_code}).{matchers[assertion_type]}"
