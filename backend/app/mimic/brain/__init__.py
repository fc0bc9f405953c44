"""
Model Brain - language model collaborator

Components:
- LLMGateway: HTTP calls to Anthropic, OpenAI or Ollama with token tallies
- ModelBrain: typed decision points (classification, actions, intent)
"""

from .decisions import (
    ActionClassification,
    AssertionDecision,
    ClickDecision,
    FormDecision,
    IntentJudgment,
    ModelBrain,
    NavigationDecision,
    parse_json_object,
)
from .gateway import LLMGateway, LLMProvider, LLMRequest, LLMResponse, TokenUsage

__all__ = [
    "ActionClassification",
    "AssertionDecision",
    "ClickDecision",
    "FormDecision",
    "IntentJudgment",
    "LLMGateway",
    "LLMProvider",
    "LLMRequest",
    "LLMResponse",
    "ModelBrain",
    "NavigationDecision",
    "TokenUsage",
    "parse_json_object",
]
