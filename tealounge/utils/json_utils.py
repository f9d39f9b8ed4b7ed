"""
JSON utilities for cleaning and decoding LLM responses.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Type

from pydantic import BaseModel, ValidationError

_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')


@dataclass
class DecodeResult:
    """Tagged outcome of decoding a model response: either a value or an error."""
    ok: bool
    value: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> 'DecodeResult':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> 'DecodeResult':
        return cls(ok=False, error=error)


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def extract_json_object(response: str) -> Optional[str]:
    """Return the outermost {...} span of a response, or None if there is none."""
    match = _JSON_OBJECT.search(clean_json_response(response))
    return match.group(0) if match else None


def decode_payload(response: str, schema: Type[BaseModel]) -> DecodeResult:
    """Decode the first JSON object in a model response against a pydantic schema.

    Args:
        response: Raw LLM response text
        schema: Pydantic model describing the expected payload

    Returns:
        DecodeResult holding the validated model instance, or the reason decoding failed
    """
    if not response or not response.strip():
        return DecodeResult.failure('empty response')

    raw_json = extract_json_object(response)
    if raw_json is None:
        return DecodeResult.failure('no JSON object found in response')

    try:
        data = json.loads(raw_json)
    except json.JSONDecodeError as e:
        return DecodeResult.failure(f'invalid JSON: {e}')

    if not isinstance(data, dict):
        return DecodeResult.failure(f'expected object, got {type(data).__name__}')

    try:
        return DecodeResult.success(schema.model_validate(data))
    except ValidationError as e:
        return DecodeResult.failure(f'schema validation failed: {e.error_count()} errors')
