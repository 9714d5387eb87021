# autopm/llms/openai_provider.py
from typing import List, Dict, Type
from .base import ChatMessage, M, parse_structured, schema_instruction
from openai import AsyncOpenAI, APIError, BadRequestError
import os, json, logging

log = logging.getLogger(__name__)


def _stringify_messages(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for m in messages:
        role = m.get("role")
        content = m.get("content")
        if not isinstance(content, str):
            content = json.dumps(content, separators=(",", ":"))
        out.append({"role": role, "content": content})
    return out


class OpenAIProvider:
    def __init__(self, model_id: str, api_key: str | None = None, temperature: float = 0.3, max_tokens: int | None = None):
        self.model_id = model_id
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = AsyncOpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"))

    async def chat_json(self, messages: List[ChatMessage], **kwargs) -> str:
        """Force JSON object output when supported."""
        try:
            resp = await self._client.chat.completions.create(
                model=self.model_id,
                messages=_stringify_messages(messages),
                temperature=kwargs.get("temperature", self.temperature),
                response_format={"type": "json_object"},
                max_tokens=kwargs.get("max_tokens", self.max_tokens),
            )
            return resp.choices[0].message.content or "{}"
        except BadRequestError as e:
            # Surfacing the server's error body is critical to fix 400s fast
            log.error("OpenAI chat_json 400: %s", getattr(e, "response", None) and e.response.text)
            raise
        except APIError:
            log.exception("OpenAI chat_json APIError")
            raise

    async def generate(self, messages: List[ChatMessage], schema: Type[M], **kwargs) -> M:
        msgs = [{"role": "system", "content": schema_instruction(schema)}, *messages]
        content = await self.chat_json(msgs, **kwargs)
        return parse_structured(content, schema)
