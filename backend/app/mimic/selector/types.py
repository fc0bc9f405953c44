"""
Selector Types

Descriptor variants that describe how to (re)locate an element, and the
element attributes the strategies build them from.

Every descriptor can carry:
- nth: 0-based index used when the strategy matches several elements and the
  right occurrence is known
- child: a nested descriptor evaluated inside the parent's subtree
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, Optional, Pattern, Union


# Literal string or compiled regular expression
TextValue = Union[str, Pattern]

# Roles whose accessible name usually comes from a <label>
FORM_ROLES = ("textbox", "combobox", "checkbox", "radio")


@dataclass(frozen=True)
class BaseSelector:
    """Shared behaviour for all descriptor variants"""
    kind: ClassVar[str] = ""
    supports_exact: ClassVar[bool] = False

    def with_nth(self, nth: Optional[int]) -> "SelectorDescriptor":
        return replace(self, nth=nth)

    def with_child(self, child: Optional["SelectorDescriptor"]) -> "SelectorDescriptor":
        return replace(self, child=child)

    def depth(self) -> int:
        """Number of descriptors in the parent -> child chain"""
        child = getattr(self, "child", None)
        return 1 + (child.depth() if child is not None else 0)


@dataclass(frozen=True)
class TestIdSelector(BaseSelector):
    """data-testid attribute"""
    __test__ = False
    kind: ClassVar[str] = "testid"

    value: TextValue
    nth: Optional[int] = None
    child: Optional["SelectorDescriptor"] = None


@dataclass(frozen=True)
class RoleSelector(BaseSelector):
    """ARIA role with optional accessible name"""
    kind: ClassVar[str] = "role"
    supports_exact: ClassVar[bool] = True

    role: str
    name: Optional[TextValue] = None
    exact: Optional[bool] = None
    nth: Optional[int] = None
    child: Optional["SelectorDescriptor"] = None


@dataclass(frozen=True)
class TextMatchSelector(BaseSelector):
    """Base for the selectors that match on a single text value"""
    supports_exact: ClassVar[bool] = True

    value: TextValue
    exact: Optional[bool] = None
    nth: Optional[int] = None
    child: Optional["SelectorDescriptor"] = None


@dataclass(frozen=True)
class LabelSelector(TextMatchSelector):
    kind: ClassVar[str] = "label"


@dataclass(frozen=True)
class PlaceholderSelector(TextMatchSelector):
    kind: ClassVar[str] = "placeholder"


@dataclass(frozen=True)
class AltTextSelector(TextMatchSelector):
    kind: ClassVar[str] = "alt"


@dataclass(frozen=True)
class TitleSelector(TextMatchSelector):
    kind: ClassVar[str] = "title"


@dataclass(frozen=True)
class TextSelector(TextMatchSelector):
    kind: ClassVar[str] = "text"


@dataclass(frozen=True)
class CssSelector(BaseSelector):
    """Raw CSS fallback (name, id, tag + nth-of-type)"""
    kind: ClassVar[str] = "css"

    selector: str
    nth: Optional[int] = None
    child: Optional["SelectorDescriptor"] = None


SelectorDescriptor = Union[
    TestIdSelector,
    RoleSelector,
    LabelSelector,
    PlaceholderSelector,
    AltTextSelector,
    TitleSelector,
    TextSelector,
    CssSelector,
]

DESCRIPTOR_TYPES = {
    cls.kind: cls
    for cls in (
        TestIdSelector,
        RoleSelector,
        LabelSelector,
        PlaceholderSelector,
        AltTextSelector,
        TitleSelector,
        TextSelector,
        CssSelector,
    )
}


def is_pattern(value: Any) -> bool:
    return isinstance(value, re.Pattern)


@dataclass
class ElementInfo:
    """Attributes of a live element, as read by the marking pass or extract_element_info()"""
    tag: str
    text: str = ""
    id: Optional[str] = None
    role: Optional[str] = None
    label: Optional[str] = None
    aria_label: Optional[str] = None
    placeholder: Optional[str] = None
    alt: Optional[str] = None
    title: Optional[str] = None
    type_attr: Optional[str] = None
    name_attr: Optional[str] = None
    href: Optional[str] = None
    dataset: Dict[str, str] = field(default_factory=dict)
    nth_of_type: int = 1
    marker_id: Optional[int] = None

    @property
    def test_id(self) -> Optional[str]:
        return self.dataset.get("testid") or self.dataset.get("testId")

    @property
    def is_form_element(self) -> bool:
        return (self.role or "") in FORM_ROLES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementInfo":
        """Build from the camelCase dict returned by the in-page scripts"""
        marker = data.get("mimicId", data.get("markerId"))
        return cls(
            tag=(data.get("tag") or "").lower(),
            text=data.get("text") or "",
            id=data.get("id") or None,
            role=data.get("role") or None,
            label=data.get("label") or None,
            aria_label=data.get("ariaLabel") or None,
            placeholder=data.get("placeholder") or None,
            alt=data.get("alt") or None,
            title=data.get("title") or None,
            type_attr=data.get("typeAttr") or None,
            name_attr=data.get("nameAttr") or None,
            href=data.get("href") or None,
            dataset=dict(data.get("dataset") or {}),
            nth_of_type=int(data.get("nthOfType") or 1),
            marker_id=int(marker) if marker is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """camelCase form accepted by from_dict(); empty fields are left out"""
        data = {
            "tag": self.tag,
            "text": self.text,
            "id": self.id,
            "role": self.role,
            "label": self.label,
            "ariaLabel": self.aria_label,
            "placeholder": self.placeholder,
            "alt": self.alt,
            "title": self.title,
            "typeAttr": self.type_attr,
            "nameAttr": self.name_attr,
            "href": self.href,
            "dataset": dict(self.dataset),
            "nthOfType": self.nth_of_type,
            "mimicId": self.marker_id,
        }
        return {key: value for key, value in data.items() if value not in (None, "", {})}
