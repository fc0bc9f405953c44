"""
Selector Engine

Descriptor types, the strategy chain that builds them, and their persisted
and code forms.
"""

from .types import (
    TextValue,
    SelectorDescriptor,
    TestIdSelector,
    RoleSelector,
    LabelSelector,
    PlaceholderSelector,
    AltTextSelector,
    TitleSelector,
    TextSelector,
    CssSelector,
    ElementInfo,
)
from .serialization import (
    descriptor_to_json,
    descriptor_from_json,
    descriptor_to_locator_json,
    descriptor_from_locator_json,
)
from .locator import build_locator, marker_locator, verify_uniqueness, MARKER_ATTRIBUTE
from .strategies import SelectorResolver, generate_best_selector
from .scoring import score_element_match, find_best_matching_element
from .codegen import selector_to_code

__all__ = [
    "TextValue",
    "SelectorDescriptor",
    "TestIdSelector",
    "RoleSelector",
    "LabelSelector",
    "PlaceholderSelector",
    "AltTextSelector",
    "TitleSelector",
    "TextSelector",
    "CssSelector",
    "ElementInfo",
    "descriptor_to_json",
    "descriptor_from_json",
    "descriptor_to_locator_json",
    "descriptor_from_locator_json",
    "build_locator",
    "marker_locator",
    "verify_uniqueness",
    "MARKER_ATTRIBUTE",
    "SelectorResolver",
    "generate_best_selector",
    "score_element_match",
    "find_best_matching_element",
    "selector_to_code",
]
