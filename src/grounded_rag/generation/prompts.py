"""Prompt templates for grounded answer generation.

The model only ever sees the ranked excerpts retrieved for the owner;
the system instruction forbids outside knowledge and asks for
``[file name]`` citations after each statement.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from grounded_rag.models import Citation

SYSTEM_INSTRUCTION = """\
You are an expert document analysis assistant. Answer the user's question
accurately and comprehensively, strictly using *only* the provided context.

Rules:
1. Synthesis — do not just list snippets. Combine information from different
   excerpts into a coherent answer that addresses the user's intent.
2. Strict grounding — use ONLY the "Context" section below. Do not use
   outside knowledge or make assumptions.
3. Missing information — if the context is not enough, say:
   "I couldn't find specific information regarding [topic] in the provided documents."
4. Citations — after every fact, reference the source file name in brackets,
   e.g. "The standard plan includes dental coverage [Benefits.pdf]."
5. Tone — professional, helpful, and direct.
"""

NO_CONTEXT = "No relevant documents found matching the query."


def format_context(citations: Sequence[Citation]) -> str:
    """Render citations as ``[[Source: name]]`` blocks in rank order."""
    if not citations:
        return NO_CONTEXT
    return "\n\n".join(f"[[Source: {c.document_name}]]\n{c.snippet}" for c in citations)


def build_answer_prompt(question: str, citations: Sequence[Citation]) -> list[BaseMessage]:
    """Assemble the messages for one grounded answer.

    Parameters
    ----------
    question:
        The user question.
    citations:
        Ranked excerpts from the retrieval engine, best first.

    Returns
    -------
    list[BaseMessage]
        A list of LangChain message objects ready for ``.ainvoke()``.
    """
    user_msg = (
        "### Context Data (Trusted Knowledge Base):\n"
        f"{format_context(citations)}\n\n"
        f"### User Question:\n{question}\n\n"
        "### Answer:"
    )
    return [
        SystemMessage(content=SYSTEM_INSTRUCTION),
        HumanMessage(content=user_msg),
    ]
