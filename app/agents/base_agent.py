"""Base class for Pydantic AI agents."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar, cast

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.exceptions import UnexpectedModelBehavior
from pydantic_ai.settings import ModelSettings

from app.config import settings
from app.core.exceptions import FailureStage, StageFailure

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)

# Finish reasons meaning the model stopped before producing a usable answer.
TRUNCATED_FINISH_REASONS = frozenset({"length", "max_tokens", "MAX_TOKENS"})
FILTERED_FINISH_REASONS = frozenset({"content_filter", "safety", "SAFETY"})


def _last_finish_reason(result: Any) -> str | None:
    """Best-effort read of the final model response's finish reason."""
    try:
        messages = result.all_messages()
    except Exception:
        return None
    for message in reversed(messages or []):
        reason = getattr(message, "finish_reason", None)
        if reason:
            return str(reason)
        details = getattr(message, "provider_details", None) or {}
        if isinstance(details, dict) and details.get("finish_reason"):
            return str(details["finish_reason"])
    return None


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Abstract base class for Pydantic AI agents.

    Each agent should:
    1. Define the system_prompt property
    2. Define the output_type property
    3. Implement _build_prompt to construct the user prompt

    Agents declare the pipeline stage they serve through ``failure_stage``;
    truncated, filtered or unparseable model output surfaces as a
    ``StageFailure`` tagged with it.
    """

    # Model tier for environment-aware resolution (reasoning / standard / fast)
    model_tier: str = "standard"
    # Explicit model override at the class level (bypasses tier resolution)
    model: str | None = None
    temperature: float = 0.7
    max_retries: int = settings.llm_max_retries
    failure_stage: FailureStage = "UNKNOWN"

    def __init__(self, model_override: str | None = None) -> None:
        """Initialize the agent.

        Model resolution priority:
        1. model_override parameter (explicit runtime override)
        2. model class attribute (if set by subclass)
        3. settings.get_model(self.model_tier) (environment-aware tier fallback)
        """
        if model_override:
            self._model = model_override
        elif self.model:
            self._model = self.model
        else:
            self._model = settings.get_model(self.model_tier)
        self._agent: Agent[None, OutputT] | None = None

        logger.info(
            "Agent initialized",
            extra={
                "agent": self.__class__.__name__,
                "model": self._model,
                "model_tier": self.model_tier,
                "temperature": self.temperature,
            },
        )

    @property
    def agent(self) -> Agent[None, OutputT]:
        """Lazily initialize and return the Pydantic AI agent."""
        if self._agent is None:
            self._agent = cast(
                Agent[None, OutputT],
                Agent(
                    model=self._model,
                    output_type=self.output_type,
                    system_prompt=self.system_prompt,
                    retries=self.max_retries,
                    model_settings=ModelSettings(
                        temperature=self.temperature,
                        timeout=settings.get_llm_timeout(self.model_tier),
                    ),
                ),
            )
        agent = self._agent
        assert agent is not None
        return agent

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt for the agent."""
        pass

    @property
    @abstractmethod
    def output_type(self) -> type[OutputT]:
        """Pydantic model type for structured output."""
        pass

    @abstractmethod
    def _build_prompt(self, input_data: InputT) -> str:
        """Build the user prompt from input data."""
        pass

    async def run(self, input_data: InputT) -> OutputT:
        """Run the agent with input data and return its structured output."""
        agent_name = self.__class__.__name__
        prompt = self._build_prompt(input_data)
        logger.info(
            "Agent run started",
            extra={
                "agent": agent_name,
                "input_type": type(input_data).__name__,
                "prompt_length": len(prompt),
                "model": self._model,
            },
        )

        t0 = time.perf_counter()
        try:
            result = await self.agent.run(prompt)
        except UnexpectedModelBehavior as exc:
            raise StageFailure(
                self.failure_stage,
                f"{agent_name} returned an unusable response: {exc}",
                cause=exc,
            ) from exc
        elapsed = time.perf_counter() - t0

        finish_reason = _last_finish_reason(result)
        if finish_reason in TRUNCATED_FINISH_REASONS:
            raise StageFailure(
                self.failure_stage,
                f"{agent_name} response was truncated (finish reason {finish_reason})",
            )
        if finish_reason in FILTERED_FINISH_REASONS:
            raise StageFailure(
                self.failure_stage,
                f"{agent_name} response was blocked by safety filters",
            )

        usage = result.usage()
        logger.info(
            "Agent run completed",
            extra={
                "agent": agent_name,
                "duration_s": round(elapsed, 2),
                "input_tokens": getattr(usage, "input_tokens", None),
                "output_tokens": getattr(usage, "output_tokens", None),
                "finish_reason": finish_reason,
                "output_type": type(result.output).__name__,
            },
        )

        return result.output
