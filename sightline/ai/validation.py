"""
Extraction of structured JSON payloads from free-text model output.
"""

import json
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from sightline.errors import LLMError

ModelT = TypeVar("ModelT", bound=BaseModel)

_decoder = json.JSONDecoder()


def find_json_objects(text: str) -> list[dict]:
    """Return every top-level JSON object embedded in text, in order."""
    objects: list[dict] = []
    index = text.find("{")
    while index != -1:
        try:
            value, end = _decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            index = text.find("{", index + 1)
            continue
        if isinstance(value, dict):
            objects.append(value)
        index = text.find("{", end)
    return objects


def extract_json_payload(text: str, schema: type[ModelT]) -> ModelT:
    """
    Extract and validate the single JSON object in a model response.

    Raises:
        LLMError: if no object is found, more than one is found, or the
            object does not match the schema
    """
    objects = find_json_objects(text)

    if not objects:
        raise LLMError("invalid-response", "LLM didn't return JSON.")

    if len(objects) > 1:
        raise LLMError(
            "invalid-response",
            "Ambiguous JSON: multiple JSON objects found.",
        )

    try:
        return schema.model_validate(objects[0])
    except ValidationError as e:
        raise LLMError("invalid-response", f"Invalid LLM response. {e}") from e
