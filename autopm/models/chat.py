from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

Confidence = Literal["high", "medium", "low"]


class QuestionRequest(BaseModel):
    question: str = Field(min_length=1)


class Answer(BaseModel):
    text: str
    supporting_context_snippets: List[str] = []
    confidence: Confidence = "low"
