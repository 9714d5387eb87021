# autopm/agents/chatbot_agent.py
from __future__ import annotations

import asyncio
from typing import List, Optional

from pydantic import BaseModel

from autopm.agents.base import build_messages, load_prompt
from autopm.config import settings
from autopm.llms.base import GenerativeModel
from autopm.models.chat import Answer, Confidence
from autopm.workflow.context import AggregatedContext
from autopm.workflow.errors import ExternalTimeoutError, GenerationSchemaError
from autopm.workflow.retrieval import chunk_texts, reorder_by_source, select_top_k, split_into_chunks
from autopm.workflow.telemetry import Telemetry

FALLBACK_TEXT = "I couldn't produce a reliable answer from this workflow's data. Try rephrasing the question."


class AnswerDraft(BaseModel):
    answer: str
    relevant_context: List[str] = []
    confidence: Confidence = "low"


def narrow_context(context: AggregatedContext, question: str, *, max_chars: int, top_k: int) -> str:
    """Full rendering when it fits; otherwise the best-scoring pieces, re-emitted in stage order."""
    rendered = context.render()
    if len(rendered) <= max_chars:
        return rendered
    pieces: List[str] = []
    for block in context.chunks():
        pieces.extend(split_into_chunks(block, settings.CHUNK_SIZE, settings.CHUNK_OVERLAP))
    picked = reorder_by_source(select_top_k(pieces, question, top_k))
    return "\n\n".join(["\n".join(context.header), *chunk_texts(picked)])


class ChatbotAgent:
    id = "chat.answer.v1"

    def __init__(self, model: GenerativeModel, telemetry: Telemetry, *, timeout: Optional[float] = None):
        self.model = model
        self.telemetry = telemetry
        self.timeout = timeout

    async def answer(self, context: AggregatedContext, question: str) -> Answer:
        text = narrow_context(
            context, question, max_chars=settings.ANSWER_CONTEXT_MAX_CHARS, top_k=settings.ANSWER_TOP_K
        )
        messages = build_messages(load_prompt("chatbot"), {"question": question, "context": text})
        try:
            call = self.model.generate(messages, AnswerDraft)
            if self.timeout is None:
                draft = await call
            else:
                try:
                    draft = await asyncio.wait_for(call, self.timeout)
                except asyncio.TimeoutError as e:
                    raise ExternalTimeoutError("answer generation", self.timeout) from e
        except (GenerationSchemaError, ExternalTimeoutError) as e:
            self.telemetry.event("answer.fallback", agent=self.id, error=str(e))
            return Answer(text=FALLBACK_TEXT, supporting_context_snippets=[], confidence="low")

        self.telemetry.event("answer.generated", agent=self.id, confidence=draft.confidence, chars=len(text))
        return Answer(
            text=draft.answer,
            supporting_context_snippets=draft.relevant_context,
            confidence=draft.confidence,
        )
