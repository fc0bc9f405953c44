"""
Model Brain

Typed decision points over the LLM gateway. Each decision sends one prompt,
parses a single JSON object from the reply and validates it against a
pydantic model. The engine only ever consumes these typed fields.
"""

import json
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import Field, ValidationError, field_validator

from ..errors import ModelError
from ..selector.types import ElementInfo
from ..snapshot.models import (
    AssertionType,
    CamelModel,
    ClickCandidate,
    ClickType,
    FormActionType,
    ModifierKey,
    NavigationType,
)
from . import prompts
from .gateway import LLMGateway, LLMRequest

# Configure logging
logger = logging.getLogger(__name__)


MAX_CLICK_CANDIDATES = 5


def _drop_none_modifiers(value: Any) -> Any:
    if isinstance(value, list):
        return [m for m in value if m and m != "none"]
    return [] if value is None else value


# ==================== Decision models ====================

class ActionClassification(CamelModel):
    kind: Literal["navigation", "click", "form update", "assertion", "other"]
    description: str = ""


class NavigationDecision(CamelModel):
    type: NavigationType
    url: str = ""
    description: str = ""

    @field_validator("url", mode="before")
    @classmethod
    def _none_url(cls, value: Any) -> Any:
        return "" if value is None else value


class ClickDecision(CamelModel):
    candidates: List[ClickCandidate] = Field(default_factory=list)
    click_type: ClickType = "left"
    modifiers: List[ModifierKey] = Field(default_factory=list)
    reasoning: str = ""

    @field_validator("candidates", mode="before")
    @classmethod
    def _limit_candidates(cls, value: Any) -> Any:
        return value[:MAX_CLICK_CANDIDATES] if isinstance(value, list) else value

    @field_validator("modifiers", mode="before")
    @classmethod
    def _modifiers(cls, value: Any) -> Any:
        return _drop_none_modifiers(value)


class FormDecision(CamelModel):
    type: FormActionType
    value: str = ""
    modifiers: List[ModifierKey] = Field(default_factory=list)
    marker_id: Optional[int] = None
    element_description: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("modifiers", mode="before")
    @classmethod
    def _modifiers(cls, value: Any) -> Any:
        return _drop_none_modifiers(value)


class AssertionDecision(CamelModel):
    type: AssertionType
    expected: str = ""
    marker_id: Optional[int] = None
    element_description: str = ""

    @field_validator("expected", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class IntentJudgment(CamelModel):
    accomplished: bool
    reasoning: str = ""
    remaining_actions: List[str] = Field(default_factory=list)

    @field_validator("remaining_actions", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value


DecisionT = TypeVar("DecisionT", bound=CamelModel)


def parse_json_object(content: str) -> Dict[str, Any]:
    """
    Extract the JSON object from a model reply.

    Markdown fences are stripped; if the reply still is not valid JSON the
    outermost {...} block is tried.

    Raises:
        ModelError: when no JSON object can be read
    """
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r'^```\w*\n?', '', cleaned)
        cleaned = re.sub(r'\n?```$', '', cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ModelError(f"No JSON object in model reply: {content[:200]}")
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise ModelError(f"Unparseable model reply: {e}") from e

    if not isinstance(data, dict):
        raise ModelError(f"Expected a JSON object, got {type(data).__name__}")
    return data


# ==================== Brain ====================

class ModelBrain:
    """
    Language model collaborator for the execution engine.

    Decision points:
    - classify_action: which kind of action the step needs next
    - decide_navigation / decide_click / decide_form / decide_assertion
    - check_intent: whether the step's goal has been reached
    """

    def __init__(self, gateway: Optional[LLMGateway] = None):
        self.gateway = gateway or LLMGateway()
        self.model_calls = 0

    @property
    def token_usage(self) -> Dict[str, Any]:
        return self.gateway.usage.to_dict()

    async def _decide(self, request_type: str, prompt: str, output_model: Type[DecisionT]) -> DecisionT:
        self.model_calls += 1
        response = await self.gateway.request(LLMRequest(
            request_type=request_type,
            prompt=prompt,
            system=prompts.SYSTEM_PROMPT
        ))
        if not response.success:
            raise ModelError(f"{request_type} request failed: {response.error}")

        data = parse_json_object(response.content)
        try:
            decision = output_model.model_validate(data)
        except ValidationError as e:
            raise ModelError(f"Invalid {request_type} decision: {e}") from e

        logger.debug(f"[BRAIN] {request_type}: {decision.model_dump(by_alias=True)}")
        return decision

    async def classify_action(
        self,
        step_text: str,
        history: List[str],
        page_state: Dict[str, str],
        actions_taken: Optional[List[str]] = None
    ) -> ActionClassification:
        return await self._decide(
            "classify",
            prompts.classify_prompt(step_text, history, page_state, actions_taken),
            ActionClassification
        )

    async def decide_navigation(
        self,
        step_text: str,
        history: List[str],
        page_state: Dict[str, str]
    ) -> NavigationDecision:
        return await self._decide(
            "navigation", prompts.navigation_prompt(step_text, history, page_state), NavigationDecision
        )

    async def decide_click(
        self,
        step_text: str,
        history: List[str],
        page_state: Dict[str, str],
        elements: List[ElementInfo]
    ) -> ClickDecision:
        return await self._decide(
            "click", prompts.click_prompt(step_text, history, page_state, elements), ClickDecision
        )

    async def decide_form(
        self,
        step_text: str,
        history: List[str],
        page_state: Dict[str, str],
        elements: List[ElementInfo]
    ) -> FormDecision:
        return await self._decide(
            "form", prompts.form_prompt(step_text, history, page_state, elements), FormDecision
        )

    async def decide_assertion(
        self,
        step_text: str,
        history: List[str],
        page_state: Dict[str, str],
        elements: List[ElementInfo]
    ) -> AssertionDecision:
        return await self._decide(
            "assertion", prompts.assertion_prompt(step_text, history, page_state, elements), AssertionDecision
        )

    async def check_intent(
        self,
        step_text: str,
        history: List[str],
        page_state: Dict[str, str],
        actions_taken: List[str]
    ) -> IntentJudgment:
        """Ask whether the step is accomplished after the actions taken so far"""
        return await self._decide(
            "intent", prompts.intent_prompt(step_text, history, page_state, actions_taken), IntentJudgment
        )
