# autopm/agents/okr_agent.py
from __future__ import annotations

import base64
import binascii
import logging
from typing import List, Optional

import fitz  # PyMuPDF
from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages
from autopm.agents.spi import GenerationInput, StageContext
from autopm.config import settings
from autopm.models.inputs import OkrArgs
from autopm.models.stages import Objective, OkrResult, Stage
from autopm.workflow.errors import InvalidArgumentsError
from autopm.workflow.retrieval import chunk_texts, reorder_by_source, select_top_k, split_into_chunks, use_full_context

log = logging.getLogger(__name__)


class OkrDraft(BaseModel):
    summary: str
    objectives: List[Objective]
    answer: Optional[str] = None


def pdf_text(data: bytes) -> str:
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            return "\n".join(page.get_text("text") or "" for page in doc)
    except Exception as e:
        raise InvalidArgumentsError(f"could not read PDF: {e}") from e


def document_text(args: OkrArgs) -> str:
    if args.document_text:
        return args.document_text
    try:
        data = base64.b64decode(args.pdf_base64 or "", validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidArgumentsError(f"pdf_base64 is not valid base64: {e}") from e
    return pdf_text(data)


class OkrAgent(BaseStageAgent):
    id = "stage.okr.v1"
    stage = Stage.OKR
    schema = OkrDraft
    args_model = OkrArgs
    result_cls = OkrResult
    prompt_name = "okr"

    def select_context(self, text: str, query: str) -> tuple[str, str]:
        chunks = split_into_chunks(text, settings.CHUNK_SIZE, settings.CHUNK_OVERLAP)
        if not chunks:
            return "", "none"
        if use_full_context(chunks, settings.SMALL_CORPUS_THRESHOLD):
            return text.strip(), "full"
        picked = reorder_by_source(select_top_k(chunks, query, settings.OKR_TOP_K))
        return "\n\n---\n\n".join(chunk_texts(picked)), "top_k"

    def assemble(self, ctx: StageContext) -> GenerationInput:
        args: OkrArgs = ctx.args
        idea = ctx.state.idea
        solution = idea.selected_solution if idea else None
        query = args.question or solution or ctx.state.problem_statement

        excerpt, mode = self.select_context(document_text(args), query)
        log.info("okr.context", extra={"context_mode": mode, "chars": len(excerpt)})
        payload = {
            "solution": solution or ctx.state.problem_statement,
            "question": args.question,
            "document": excerpt,
        }
        return GenerationInput(
            messages=build_messages(self.system_prompt(), payload),
            meta={"context_mode": mode},
        )

    def finalize(self, ctx: StageContext, draft: OkrDraft, gen: GenerationInput, dispatched) -> OkrResult:
        args: OkrArgs = ctx.args
        return OkrResult(
            summary=draft.summary,
            objectives=draft.objectives,
            analysis=draft.answer,
            question=args.question,
            file_name=args.file_name,
            context_mode=gen.meta.get("context_mode", "none"),
        )
