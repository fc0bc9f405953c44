"""
Mimic Configuration

Runtime settings for the execution engine. Values come from keyword
arguments, or from the environment (and a .env file) via from_env().
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


TRUTHY = ("true", "1", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class LLMSettings:
    """Language model provider settings"""
    provider: str = "anthropic"  # anthropic, openai, ollama
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_s: float = 60.0
    max_tokens: int = 1024
    temperature: float = 0.0


@dataclass
class MimicConfig:
    """Configuration for a mimic run"""
    max_actions_per_step: int = 10
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    action_timeout_ms: int = 30000
    replay_wait_timeout_ms: int = 5000
    selector_timeout_ms: int = 30000
    troubleshoot_mode: bool = False
    capture_baseline_screenshot: bool = True
    snapshot_dir_name: str = "__mimic__"
    # Hard stop for the state machine loop, on top of the per-step bound
    max_transitions: int = 10000
    llm: LLMSettings = field(default_factory=LLMSettings)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "MimicConfig":
        """
        Build a config from environment variables.

        Args:
            env_file: Optional path to a .env file (defaults to ./.env)
            **overrides: Explicit values that win over the environment

        Returns:
            MimicConfig
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        provider = os.getenv("LLM_PROVIDER", "anthropic").lower()
        api_key = os.getenv("LLM_API_KEY")
        if not api_key:
            if provider == "anthropic":
                api_key = os.getenv("ANTHROPIC_API_KEY")
            elif provider == "openai":
                api_key = os.getenv("OPENAI_API_KEY")

        base_url = os.getenv("LLM_API_URL")
        if not base_url and provider == "ollama":
            base_url = os.getenv("OLLAMA_URL", "http://localhost:11434")

        llm = LLMSettings(
            provider=provider,
            model=os.getenv("LLM_MODEL") or None,
            api_key=api_key,
            base_url=base_url,
        )

        config = cls(
            max_actions_per_step=_env_int("MIMIC_MAX_ACTIONS_PER_STEP", 10),
            max_retries=_env_int("MIMIC_MAX_RETRIES", 3),
            action_timeout_ms=_env_int("MIMIC_ACTION_TIMEOUT_MS", 30000),
            troubleshoot_mode=_env_flag("MIMIC_TROUBLESHOOT"),
            llm=llm,
        )
        for key, value in overrides.items():
            if not hasattr(config, key):
                raise AttributeError(f"Unknown config option: {key}")
            setattr(config, key, value)
        return config
