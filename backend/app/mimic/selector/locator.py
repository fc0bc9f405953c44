"""
Locator Building

Turns descriptors into Playwright locators and checks how many live elements
they match.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

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
    is_pattern,
)

# Configure logging
logger = logging.getLogger(__name__)


MARKER_ATTRIBUTE = "data-mimic-id"


@dataclass
class UniquenessCheck:
    """Outcome of verify_uniqueness()"""
    unique: bool
    count: int
    locator: Any = None
    # 0-based position of the target among several matches, when known
    index: Optional[int] = None


def _text_options(value, exact: Optional[bool]) -> Dict[str, Any]:
    # Playwright ignores exact for patterns
    if is_pattern(value):
        return {}
    return {"exact": bool(exact)}


def build_locator(root, descriptor: SelectorDescriptor):
    """
    Build a Playwright locator for a descriptor.

    Args:
        root: Page, or parent Locator when resolving a child descriptor
        descriptor: Descriptor to build

    Returns:
        Playwright Locator (nth and child applied)
    """
    if isinstance(descriptor, TestIdSelector):
        locator = root.get_by_test_id(descriptor.value)
    elif isinstance(descriptor, RoleSelector):
        if descriptor.name is not None:
            locator = root.get_by_role(
                descriptor.role,
                name=descriptor.name,
                **_text_options(descriptor.name, descriptor.exact)
            )
        else:
            locator = root.get_by_role(descriptor.role)
    elif isinstance(descriptor, LabelSelector):
        locator = root.get_by_label(descriptor.value, **_text_options(descriptor.value, descriptor.exact))
    elif isinstance(descriptor, PlaceholderSelector):
        locator = root.get_by_placeholder(descriptor.value, **_text_options(descriptor.value, descriptor.exact))
    elif isinstance(descriptor, AltTextSelector):
        locator = root.get_by_alt_text(descriptor.value, **_text_options(descriptor.value, descriptor.exact))
    elif isinstance(descriptor, TitleSelector):
        locator = root.get_by_title(descriptor.value, **_text_options(descriptor.value, descriptor.exact))
    elif isinstance(descriptor, TextSelector):
        locator = root.get_by_text(descriptor.value, **_text_options(descriptor.value, descriptor.exact))
    elif isinstance(descriptor, CssSelector):
        locator = root.locator(descriptor.selector)
    else:
        raise TypeError(f"Unknown selector descriptor: {descriptor!r}")

    if descriptor.nth is not None:
        locator = locator.nth(descriptor.nth)

    if descriptor.child is not None:
        return build_locator(locator, descriptor.child)
    return locator


def marker_locator(page, marker_id: int):
    """Locator for the element tagged by the marker pass"""
    return page.locator(f'[{MARKER_ATTRIBUTE}="{marker_id}"]')


async def get_marker_id(locator) -> Optional[int]:
    """Read data-mimic-id from the element a locator points at"""
    try:
        value = await locator.get_attribute(MARKER_ATTRIBUTE, timeout=1000)
    except Exception:
        return None
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def verify_uniqueness(
    page,
    descriptor: SelectorDescriptor,
    target_marker_id: Optional[int] = None,
    timeout: Optional[int] = None
) -> UniquenessCheck:
    """
    Check whether a descriptor matches exactly one live element.

    When a target marker id is given, a single match only counts as unique if
    it is the target, and for several matches the target's index is looked up.
    Errors are reported as zero matches.

    Args:
        page: Playwright page
        descriptor: Candidate descriptor
        target_marker_id: data-mimic-id of the element being described
        timeout: Unused by count(), kept for strategy signatures

    Returns:
        UniquenessCheck
    """
    try:
        locator = build_locator(page, descriptor)
        count = await locator.count()
    except Exception as e:
        logger.debug(f"[SELECTOR] Count failed for {descriptor!r}: {e}")
        return UniquenessCheck(unique=False, count=0)

    if count == 1:
        if target_marker_id is not None:
            matched = await get_marker_id(locator)
            if matched != target_marker_id:
                return UniquenessCheck(unique=False, count=1, locator=locator)
        return UniquenessCheck(unique=True, count=1, locator=locator)

    index = None
    if count > 1 and target_marker_id is not None:
        for i in range(count):
            if await get_marker_id(locator.nth(i)) == target_marker_id:
                index = i
                break

    return UniquenessCheck(unique=False, count=count, locator=locator, index=index)
