import json
from typing import Dict, List, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from autopm.workflow.errors import GenerationSchemaError

M = TypeVar("M", bound=BaseModel)


class ChatMessage(Dict[str, str]): ...
# e.g. {"role": "user", "content": "..."}


class GenerativeModel(Protocol):
    model_id: str

    async def generate(self, messages: List[ChatMessage], schema: Type[M], **kwargs) -> M:
        """One structured generation call; raises GenerationSchemaError when the reply does not validate."""
        ...


def parse_structured(content: str, schema: Type[M]) -> M:
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        raise GenerationSchemaError(f"response is not valid JSON: {e}", raw_response=content) from e
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise GenerationSchemaError(
            f"response does not match {schema.__name__}: {e.error_count()} validation error(s)",
            raw_response=content,
        ) from e


def schema_instruction(schema: Type[BaseModel]) -> str:
    return (
        "Reply with a single JSON object that conforms to this JSON Schema. No prose.\n"
        + json.dumps(schema.model_json_schema(), separators=(",", ":"))
    )
