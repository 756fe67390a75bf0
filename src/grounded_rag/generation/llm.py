"""LLM initialisation and the grounded answer generator.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` (vLLM, LiteLLM,
   a local gateway …); ``ChatOpenAI`` works unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from langchain_openai import ChatOpenAI

from grounded_rag.config import settings
from grounded_rag.errors import GenerationServiceError
from grounded_rag.generation.prompts import build_answer_prompt
from grounded_rag.models import Citation

logger = logging.getLogger(__name__)


def get_llm(temperature: float = settings.llm_temperature) -> ChatOpenAI:
    """Return the configured chat model.

    When ``settings.llm_base_url`` is set the client is pointed at that
    endpoint instead of the OpenAI cloud API, with a dummy key
    (``"EMPTY"``) if none is configured.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": temperature,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # LangChain requires a non-empty value.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)


class AnswerGenerator(Protocol):
    async def generate(self, question: str, citations: Sequence[Citation]) -> str: ...


class LLMAnswerGenerator:
    """Produces an answer from ranked citations with a LangChain chat model.

    Parameters
    ----------
    llm:
        Any LangChain chat model. Built lazily with :func:`get_llm` on first
        use when *None*, so the service starts without credentials.
    """

    def __init__(self, llm: Any = None) -> None:
        self._llm = llm

    async def generate(self, question: str, citations: Sequence[Citation]) -> str:
        """Return the model's answer to *question* grounded on *citations*.

        Raises
        ------
        GenerationServiceError
            The model could not be built or the call failed.
        """
        messages = build_answer_prompt(question, citations)
        try:
            if self._llm is None:
                self._llm = get_llm()
            response = await self._llm.ainvoke(messages)
        except Exception as exc:
            raise GenerationServiceError(f"Answer generation failed: {exc}") from exc

        content = getattr(response, "content", response)
        if not isinstance(content, str) or not content.strip():
            raise GenerationServiceError("Model returned an empty answer")
        return content
