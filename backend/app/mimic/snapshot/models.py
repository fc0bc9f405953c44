"""
Snapshot Models

Pydantic models for everything persisted in a .mimic.json file. Field names
are snake_case in Python and camelCase on disk. Files written by older
versions (testHash / stepsByHash / stepHash / actionDetails / targetElement)
are still accepted.
"""

import hashlib
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..selector.serialization import descriptor_from_json, descriptor_to_json
from ..selector.types import ElementInfo, SelectorDescriptor


SNAPSHOT_FILE_VERSION = 2

NAVIGATION = "navigation"
CLICK = "click"
FORM_UPDATE = "form update"
ASSERTION = "assertion"

ActionKind = Literal["navigation", "click", "form update", "assertion"]

NavigationType = Literal["openPage", "navigate", "closePage", "goBack", "goForward", "refresh"]
ClickType = Literal["left", "right", "double", "middle", "hover"]
FormActionType = Literal["keypress", "type", "fill", "select", "uncheck", "check", "setInputFiles", "clear"]
AssertionType = Literal[
    "visible", "notVisible", "text", "textContains", "value", "checked",
    "notChecked", "enabled", "disabled", "count", "url", "title",
]
ModifierKey = Literal["Alt", "Control", "Meta", "Shift"]


def fingerprint_text(text: str) -> str:
    """First 16 hex chars of sha256 over the trimmed text"""
    return hashlib.sha256(text.strip().encode("utf-8")).hexdigest()[:16]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ==================== Action Records ====================

class _ActionRecordBase(CamelModel):
    """Older files nest the action arguments under a params object"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_params(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("params"), dict):
            data = {**data["params"], **{k: v for k, v in data.items() if k != "params"}}
        if isinstance(data, dict) and isinstance(data.get("modifiers"), list):
            data = {**data, "modifiers": [m for m in data["modifiers"] if m != "none"]}
        return data


class Point(CamelModel):
    x: float
    y: float


class NavigationRecord(_ActionRecordBase):
    kind: Literal["navigation"] = NAVIGATION
    type: NavigationType
    url: str = ""
    description: str = ""


class ClickCandidate(CamelModel):
    marker_id: Optional[int] = None
    tag: str = ""
    text: str = ""
    role: Optional[str] = None
    label: Optional[str] = None
    aria_label: Optional[str] = None
    description: str = ""
    confidence: Optional[float] = None


class ClickRecord(_ActionRecordBase):
    kind: Literal["click"] = CLICK
    click_type: ClickType = "left"
    modifiers: List[ModifierKey] = Field(default_factory=list)
    position: Optional[Point] = None
    candidates: List[ClickCandidate] = Field(default_factory=list)
    reasoning: str = ""


class FormRecord(_ActionRecordBase):
    kind: Literal["form update"] = FORM_UPDATE
    type: FormActionType
    value: str = ""
    modifiers: List[ModifierKey] = Field(default_factory=list)
    element_description: str = ""


class AssertionRecord(_ActionRecordBase):
    kind: Literal["assertion"] = ASSERTION
    type: AssertionType
    expected: str = ""
    element_description: str = ""
    target_marker_id: Optional[int] = None


ActionRecord = Annotated[
    Union[NavigationRecord, ClickRecord, FormRecord, AssertionRecord],
    Field(discriminator="kind"),
]


# ==================== Targets & Steps ====================

class TargetReference(CamelModel):
    """Primary descriptor (JSON form) plus the data-mimic-id fallback"""
    selector: Optional[Dict[str, Any]] = None
    marker_id: Optional[int] = None
    # Attributes of the element when it was chosen; used to score ambiguous matches
    element: Optional[Dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and "mimicId" in data and "markerId" not in data:
            data = {**data, "markerId": data["mimicId"]}
        return data

    @property
    def descriptor(self) -> Optional[SelectorDescriptor]:
        return descriptor_from_json(self.selector) if self.selector else None

    @property
    def element_info(self) -> Optional[ElementInfo]:
        return ElementInfo.from_dict(self.element) if self.element else None

    @classmethod
    def build(
        cls,
        descriptor: Optional[SelectorDescriptor],
        marker_id: Optional[int],
        element_info: Optional[ElementInfo] = None
    ) -> "TargetReference":
        return cls(
            selector=descriptor_to_json(descriptor) if descriptor is not None else None,
            marker_id=marker_id,
            element=element_info.to_dict() if element_info is not None else None,
        )


def _legacy_step_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    renames = (
        ("stepHash", "stepFingerprint"),
        ("actionDetails", "actionRecord"),
        ("targetElement", "targetReference"),
    )
    for old, new in renames:
        if old in data and new not in data:
            data[new] = data.pop(old)

    # Records from older files carry no kind of their own
    record = data.get("actionRecord", data.get("action_record"))
    kind = data.get("actionKind", data.get("action_kind"))
    if isinstance(record, dict) and "kind" not in record and kind:
        record = {**record, "kind": kind}
        data["actionRecord"] = record
        data.pop("action_record", None)
    return data


class StepExecutionResult(CamelModel):
    """One executed step, as handed to save_snapshot()"""
    step_index: int
    step_text: str
    action_kind: ActionKind
    action_record: ActionRecord
    target_reference: Optional[TargetReference] = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        return _legacy_step_keys(data) if isinstance(data, dict) else data

    @property
    def step_fingerprint(self) -> str:
        return fingerprint_text(self.step_text)

    def to_snapshot_step(self, executed_at: Optional[str] = None) -> "SnapshotStep":
        return SnapshotStep(
            step_fingerprint=self.step_fingerprint,
            step_index=self.step_index,
            step_text=self.step_text,
            action_kind=self.action_kind,
            action_record=self.action_record,
            target_reference=self.target_reference,
            executed_at=executed_at or utc_now(),
        )


class SnapshotStep(CamelModel):
    step_fingerprint: str
    step_index: int
    step_text: str
    action_kind: ActionKind
    action_record: ActionRecord
    target_reference: Optional[TargetReference] = None
    executed_at: str = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        return _legacy_step_keys(data) if isinstance(data, dict) else data


# ==================== Snapshot ====================

class FailureDetails(CamelModel):
    failed_step_index: Optional[int] = None
    failed_step_text: Optional[str] = None
    error: Optional[str] = None


class SnapshotFlags(CamelModel):
    needs_retry: bool = False
    has_errors: bool = False
    troubleshooting_enabled: bool = False
    skip_snapshot: bool = False
    force_regenerate: bool = False
    debug_mode: bool = False
    created_at: Optional[str] = None
    last_passed_at: Optional[str] = None
    last_failed_at: Optional[str] = None
    failure_details: Optional[FailureDetails] = None


class Snapshot(CamelModel):
    """
    Stored executions for one test.

    steps_by_fingerprint is authoritative. steps is the ordered view kept
    for older readers; it is rebuilt on every save.
    """
    test_fingerprint: str
    test_text: str = ""
    # Name of the test block; lets an edited test find its previous steps
    test_name: Optional[str] = None
    steps_by_fingerprint: Dict[str, SnapshotStep] = Field(default_factory=dict)
    steps: List[SnapshotStep] = Field(default_factory=list)
    flags: SnapshotFlags = Field(default_factory=SnapshotFlags)

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "testHash" in data and "testFingerprint" not in data:
            data["testFingerprint"] = data.pop("testHash")
        if "stepsByHash" in data and "stepsByFingerprint" not in data:
            data["stepsByFingerprint"] = data.pop("stepsByHash")
        if data.get("flags") is None:
            data.pop("flags", None)
        return data

    @model_validator(mode="after")
    def _synthesize_map(self) -> "Snapshot":
        if not self.steps_by_fingerprint and self.steps:
            self.steps_by_fingerprint = {step.step_fingerprint: step for step in self.steps}
        return self

    def ordered_steps(self) -> List[SnapshotStep]:
        return sorted(self.steps_by_fingerprint.values(), key=lambda step: step.step_index)

    def unique_step_count(self) -> int:
        return len({step.step_index for step in self.steps_by_fingerprint.values()})

    def get_step(self, step_text: str) -> Optional[SnapshotStep]:
        return self.steps_by_fingerprint.get(fingerprint_text(step_text))

    def to_json(self) -> Dict[str, Any]:
        data = self.model_copy(update={"steps": self.ordered_steps()})
        return data.model_dump(by_alias=True, mode="json")
