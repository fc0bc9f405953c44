"""
Selector Serialization

Lossless conversion between runtime descriptors (which may embed compiled
regular expressions) and a JSON-safe dict form used in snapshot files.

Regex values are stored as {"isPattern": true, "pattern": ..., "flags": ...}.
The older {"__regex": true, ...} form is still accepted on read.

A second pair of converters maps descriptors to Playwright's JSONL locator
chain ({kind, body, options, next}) for tooling that speaks that format.
"""

import re
from typing import Any, Dict, Optional, Union

from .types import (
    DESCRIPTOR_TYPES,
    BaseSelector,
    CssSelector,
    RoleSelector,
    SelectorDescriptor,
    TestIdSelector,
    TextMatchSelector,
    TextValue,
    is_pattern,
)


# Python flag <-> portable flag letter
_FLAG_LETTERS = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
    (re.ASCII, "a"),
)

# Playwright kinds for each descriptor type
_LOCATOR_KINDS = {
    "testid": "test-id",
    "role": "role",
    "label": "label",
    "placeholder": "placeholder",
    "alt": "alt",
    "title": "title",
    "text": "text",
    "css": "default",
}
_KINDS_TO_TYPE = {kind: type_name for type_name, kind in _LOCATOR_KINDS.items()}


# ==================== Text Values ====================

def flags_to_letters(flags: int) -> str:
    return "".join(letter for flag, letter in _FLAG_LETTERS if flags & flag)


def letters_to_flags(letters: Optional[str]) -> int:
    flags = 0
    for flag, letter in _FLAG_LETTERS:
        if letters and letter in letters:
            flags |= flag
    return flags


def text_value_to_json(value: TextValue) -> Union[str, Dict[str, Any]]:
    """Encode a string or compiled pattern"""
    if is_pattern(value):
        return {
            "isPattern": True,
            "pattern": value.pattern,
            "flags": flags_to_letters(value.flags),
        }
    return value


def text_value_from_json(value: Any) -> TextValue:
    """Decode a string or pattern object (new or legacy form)"""
    if isinstance(value, dict):
        if value.get("isPattern") or value.get("__regex"):
            return re.compile(value.get("pattern", ""), letters_to_flags(value.get("flags")))
        raise ValueError(f"Unrecognized text value: {value!r}")
    if not isinstance(value, str):
        raise ValueError(f"Expected string or pattern, got {type(value).__name__}")
    return value


# ==================== Descriptor <-> dict ====================

def descriptor_to_json(descriptor: SelectorDescriptor) -> Dict[str, Any]:
    """
    Convert a descriptor to its JSON-safe form.

    Optional fields that are unset are omitted so stored files stay small.
    """
    data: Dict[str, Any] = {"type": descriptor.kind}

    if isinstance(descriptor, TestIdSelector):
        data["value"] = text_value_to_json(descriptor.value)
    elif isinstance(descriptor, RoleSelector):
        data["role"] = descriptor.role
        if descriptor.name is not None:
            data["name"] = text_value_to_json(descriptor.name)
        if descriptor.exact is not None:
            data["exact"] = descriptor.exact
    elif isinstance(descriptor, TextMatchSelector):
        data["value"] = text_value_to_json(descriptor.value)
        if descriptor.exact is not None:
            data["exact"] = descriptor.exact
    elif isinstance(descriptor, CssSelector):
        data["selector"] = descriptor.selector
    else:
        raise TypeError(f"Unknown selector descriptor: {descriptor!r}")

    if descriptor.nth is not None:
        data["nth"] = descriptor.nth
    if descriptor.child is not None:
        data["child"] = descriptor_to_json(descriptor.child)
    return data


def descriptor_from_json(data: Dict[str, Any]) -> SelectorDescriptor:
    """
    Rebuild a descriptor from its JSON-safe form.

    Raises:
        ValueError: if the type is unknown or a required field is missing
    """
    if not isinstance(data, dict):
        raise ValueError(f"Selector must be an object, got {type(data).__name__}")

    type_name = data.get("type")
    cls = DESCRIPTOR_TYPES.get(type_name)
    if cls is None:
        raise ValueError(f"Unknown selector type: {type_name!r}")

    nth = data.get("nth")
    nth = int(nth) if nth is not None else None
    child = descriptor_from_json(data["child"]) if data.get("child") else None

    try:
        if cls is RoleSelector:
            name = data.get("name")
            return RoleSelector(
                role=data["role"],
                name=text_value_from_json(name) if name is not None else None,
                exact=data.get("exact"),
                nth=nth,
                child=child,
            )
        if cls is CssSelector:
            return CssSelector(selector=data["selector"], nth=nth, child=child)
        if cls is TestIdSelector:
            return TestIdSelector(value=text_value_from_json(data["value"]), nth=nth, child=child)
        return cls(
            value=text_value_from_json(data["value"]),
            exact=data.get("exact"),
            nth=nth,
            child=child,
        )
    except KeyError as e:
        raise ValueError(f"Selector of type {type_name!r} is missing field {e}") from e


# ==================== Playwright locator JSON ====================

def descriptor_to_locator_json(descriptor: SelectorDescriptor) -> Dict[str, Any]:
    """
    Convert a descriptor to Playwright's JSONL locator chain.

    nth becomes a {"kind": "nth"} link and child descriptors are chained
    through "next".
    """
    result: Dict[str, Any] = {"kind": _LOCATOR_KINDS[descriptor.kind]}
    options: Dict[str, Any] = {}

    if isinstance(descriptor, RoleSelector):
        result["body"] = descriptor.role
        if descriptor.name is not None:
            options["name"] = text_value_to_json(descriptor.name)
        if descriptor.exact is not None:
            options["exact"] = descriptor.exact
    elif isinstance(descriptor, CssSelector):
        result["body"] = descriptor.selector
    elif isinstance(descriptor, TextMatchSelector):
        result["body"] = text_value_to_json(descriptor.value)
        if descriptor.exact is not None:
            options["exact"] = descriptor.exact
    else:
        result["body"] = text_value_to_json(descriptor.value)

    if options:
        result["options"] = options

    tail = result
    if descriptor.nth is not None:
        tail["next"] = {"kind": "nth", "body": str(descriptor.nth)}
        tail = tail["next"]
    if descriptor.child is not None:
        tail["next"] = descriptor_to_locator_json(descriptor.child)
    return result


def descriptor_from_locator_json(data: Dict[str, Any]) -> SelectorDescriptor:
    """Inverse of descriptor_to_locator_json()"""
    kind = data.get("kind")
    type_name = _KINDS_TO_TYPE.get(kind)
    if type_name is None:
        raise ValueError(f"Unsupported locator kind: {kind!r}")

    options = data.get("options") or {}
    body = data.get("body")

    nth = None
    next_link = data.get("next")
    if next_link and next_link.get("kind") == "nth":
        nth = int(next_link["body"])
        next_link = next_link.get("next")
    child = descriptor_from_locator_json(next_link) if next_link else None

    if type_name == "role":
        name = options.get("name")
        return RoleSelector(
            role=str(body),
            name=text_value_from_json(name) if name is not None else None,
            exact=options.get("exact"),
            nth=nth,
            child=child,
        )
    if type_name == "css":
        return CssSelector(selector=str(body), nth=nth, child=child)
    if type_name == "testid":
        return TestIdSelector(value=text_value_from_json(body), nth=nth, child=child)
    return DESCRIPTOR_TYPES[type_name](
        value=text_value_from_json(body),
        exact=options.get("exact"),
        nth=nth,
        child=child,
    )


def is_descriptor(value: Any) -> bool:
    return isinstance(value, BaseSelector)
