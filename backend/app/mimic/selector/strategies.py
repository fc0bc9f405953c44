"""
Selector Strategy Chain

Synthesizes a durable descriptor for a live element. Strategies run in a
fixed priority order and the first one that yields a descriptor matching
exactly one element wins.

Strategy Order:
1. testid      - data-testid attribute
2. role        - ARIA role with accessible name
3. placeholder - only for elements without a label
4. alt         - only for elements without a label
5. title       - only for elements without a label
6. label       - associated <label> / aria-label
7. text        - visible text
8. css         - [name], #id, then tag:nth-of-type(n)
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import SelectorUnavailableError
from .element_info import extract_element_info
from .locator import verify_uniqueness
from .types import (
    AltTextSelector,
    CssSelector,
    ElementInfo,
    LabelSelector,
    PlaceholderSelector,
    RoleSelector,
    SelectorDescriptor,
    TestIdSelector,
    TextSelector,
    TitleSelector,
)

# Configure logging
logger = logging.getLogger(__name__)


# Exact text matching is only attempted for short strings
EXACT_TEXT_MAX_LENGTH = 50


@dataclass
class StrategyResult:
    """Result of running one strategy"""
    descriptor: Optional[SelectorDescriptor]
    unique: bool = False
    count: int = 0
    # Set when the target's position among several matches is known
    index: Optional[int] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class SelectorStrategy:
    """
    Base strategy.

    Subclasses list their candidate descriptors in preference order (exact
    variants first). generate() returns the first unique candidate, or the
    first candidate whose target index is known, pinned with nth.
    """

    name = ""
    priority = 0

    def can_generate(self, info: ElementInfo) -> bool:
        raise NotImplementedError

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        raise NotImplementedError

    async def generate(
        self,
        page,
        info: ElementInfo,
        target_marker_id: Optional[int] = None,
        timeout: Optional[int] = None
    ) -> StrategyResult:
        if not self.can_generate(info):
            return StrategyResult(descriptor=None)

        pinned: Optional[StrategyResult] = None
        for descriptor in self.candidates(info):
            check = await verify_uniqueness(page, descriptor, target_marker_id, timeout)
            if check.unique:
                return StrategyResult(descriptor=descriptor, unique=True, count=check.count)
            if pinned is None and check.count > 1 and check.index is not None:
                pinned = StrategyResult(
                    descriptor=descriptor.with_nth(check.index),
                    unique=False,
                    count=check.count,
                    index=check.index
                )

        return pinned or StrategyResult(descriptor=None)


class TestIdStrategy(SelectorStrategy):
    __test__ = False
    name = "testid"
    priority = 1

    def can_generate(self, info: ElementInfo) -> bool:
        return bool(_clean(info.test_id))

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        return [TestIdSelector(value=_clean(info.test_id))]


class RoleStrategy(SelectorStrategy):
    name = "role"
    priority = 2

    def can_generate(self, info: ElementInfo) -> bool:
        return bool(info.role)

    @staticmethod
    def accessible_name(info: ElementInfo) -> Optional[str]:
        """
        Pick the name a role query should match.

        Form roles take their name from the label first, other roles from
        aria-label first. Without either, fall back to placeholder (forms)
        or alt/title (everything else), then text.
        """
        label = _clean(info.label)
        aria_label = _clean(info.aria_label)
        text = _clean(info.text)

        if label or aria_label:
            if info.is_form_element:
                return label or aria_label or text
            return aria_label or label or text

        if info.is_form_element:
            return _clean(info.placeholder) or text
        return _clean(info.alt) or _clean(info.title) or text

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        result: List[SelectorDescriptor] = []
        name = self.accessible_name(info)
        if name:
            result.append(RoleSelector(role=info.role, name=name, exact=True))
            result.append(RoleSelector(role=info.role, name=name, exact=False))
        if not info.is_form_element:
            result.append(RoleSelector(role=info.role))
        return result


class _UnlabelledAttributeStrategy(SelectorStrategy):
    """Placeholder / alt / title: only used when the element has no label"""
    attribute = ""
    descriptor_type = None

    def _value(self, info: ElementInfo) -> Optional[str]:
        return _clean(getattr(info, self.attribute))

    def can_generate(self, info: ElementInfo) -> bool:
        return bool(self._value(info)) and not info.label and not info.aria_label

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        return [self.descriptor_type(value=self._value(info), exact=False)]


class PlaceholderStrategy(_UnlabelledAttributeStrategy):
    name = "placeholder"
    priority = 3
    attribute = "placeholder"
    descriptor_type = PlaceholderSelector


class AltStrategy(_UnlabelledAttributeStrategy):
    name = "alt"
    priority = 4
    attribute = "alt"
    descriptor_type = AltTextSelector


class TitleStrategy(_UnlabelledAttributeStrategy):
    name = "title"
    priority = 5
    attribute = "title"
    descriptor_type = TitleSelector


class LabelStrategy(SelectorStrategy):
    name = "label"
    priority = 6

    def can_generate(self, info: ElementInfo) -> bool:
        return bool(_clean(info.label))

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        label = _clean(info.label)
        return [
            LabelSelector(value=label, exact=True),
            LabelSelector(value=label, exact=False),
        ]


class TextStrategy(SelectorStrategy):
    name = "text"
    priority = 7

    def can_generate(self, info: ElementInfo) -> bool:
        return bool(_clean(info.text))

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        text = _clean(info.text)
        result: List[SelectorDescriptor] = []
        if len(text) < EXACT_TEXT_MAX_LENGTH:
            result.append(TextSelector(value=text, exact=True))
        result.append(TextSelector(value=text, exact=False))
        return result


def css_attribute(attribute: str, value: str) -> str:
    """[attribute="value"] with backslashes and quotes escaped"""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'[{attribute}="{escaped}"]'


class CssStrategy(SelectorStrategy):
    """Unique [name] or [id]; the nth-of-type form is the last resort"""
    name = "css"
    priority = 8

    def can_generate(self, info: ElementInfo) -> bool:
        return bool(info.tag)

    def candidates(self, info: ElementInfo) -> List[SelectorDescriptor]:
        result: List[SelectorDescriptor] = []
        name_attr = _clean(info.name_attr)
        if name_attr:
            result.append(CssSelector(selector=css_attribute("name", name_attr)))
        element_id = _clean(info.id)
        if element_id:
            # Attribute form: ids like "user.name" or "1abc" are not valid #id selectors
            result.append(CssSelector(selector=css_attribute("id", element_id)))
        return result

    async def generate(
        self,
        page,
        info: ElementInfo,
        target_marker_id: Optional[int] = None,
        timeout: Optional[int] = None
    ) -> StrategyResult:
        if not self.can_generate(info):
            return StrategyResult(descriptor=None)
        # No nth pinning here: a repeated name or id falls through to nth-of-type
        for descriptor in self.candidates(info):
            check = await verify_uniqueness(page, descriptor, target_marker_id, timeout)
            if check.unique:
                return StrategyResult(descriptor=descriptor, unique=True, count=1)
        return StrategyResult(descriptor=None)

    @staticmethod
    def last_resort(info: ElementInfo) -> CssSelector:
        return CssSelector(selector=f"{info.tag}:nth-of-type({info.nth_of_type})")


def default_strategies() -> List[SelectorStrategy]:
    return [
        TestIdStrategy(),
        RoleStrategy(),
        PlaceholderStrategy(),
        AltStrategy(),
        TitleStrategy(),
        LabelStrategy(),
        TextStrategy(),
        CssStrategy(),
    ]


class SelectorResolver:
    """
    Runs the strategy chain for an element.

    Only read-only DOM queries are made. A strategy whose count() raises is
    treated as having no match.
    """

    def __init__(self, strategies: Optional[List[SelectorStrategy]] = None):
        self.strategies = sorted(strategies or default_strategies(), key=lambda s: s.priority)

        # Stats tracking
        self._strategy_hits: Dict[str, int] = {}
        self._total_resolutions = 0

    async def resolve(
        self,
        page,
        element_info: ElementInfo,
        fallback_id: Optional[int] = None,
        timeout: Optional[int] = None
    ) -> Optional[SelectorDescriptor]:
        """
        Build the best descriptor for an element.

        Args:
            page: Playwright page
            element_info: Attributes of the target element
            fallback_id: data-mimic-id of the target (enables nth pinning)
            timeout: Per-check timeout in milliseconds

        Returns:
            Descriptor, or None when the element has no tag name
        """
        if not element_info.tag:
            return None

        self._total_resolutions += 1
        target_marker_id = fallback_id if fallback_id is not None else element_info.marker_id
        pinned: Optional[SelectorDescriptor] = None

        for strategy in self.strategies:
            if not strategy.can_generate(element_info):
                continue

            result = await strategy.generate(page, element_info, target_marker_id, timeout)

            if result.descriptor is not None and result.unique:
                self._record_hit(strategy.name)
                logger.debug(f"[SELECTOR] {strategy.name} matched <{element_info.tag}> uniquely")
                return result.descriptor

            if pinned is None and result.descriptor is not None and result.index is not None:
                logger.debug(f"[SELECTOR] {strategy.name} matched {result.count} elements, target at {result.index}")
                pinned = result.descriptor

        if pinned is not None:
            self._record_hit("nth")
            return pinned

        self._record_hit("nth-of-type")
        logger.debug(f"[SELECTOR] Falling back to nth-of-type for <{element_info.tag}>")
        return CssStrategy.last_resort(element_info)

    def _record_hit(self, name: str):
        self._strategy_hits[name] = self._strategy_hits.get(name, 0) + 1

    def get_stats(self) -> Dict[str, object]:
        return {
            "total_resolutions": self._total_resolutions,
            "strategy_hits": dict(self._strategy_hits),
        }


async def generate_best_selector(page, locator, timeout: Optional[int] = None) -> SelectorDescriptor:
    """
    Extract element info from a locator and resolve it.

    Raises:
        SelectorUnavailableError: if no descriptor can be built
    """
    info = await extract_element_info(locator)
    descriptor = await SelectorResolver().resolve(page, info, fallback_id=info.marker_id, timeout=timeout)
    if descriptor is None:
        raise SelectorUnavailableError("Element has no tag name; cannot build a selector")
    return descriptor
