"""Parse structured data out of LLM responses.

Models do not always return the exact wrapper asked for: a list of
prospects may arrive as a bare array or wrapped under one of a few keys.
Rather than guessing at shapes, a fixed, ordered set of tagged strategies
is tried. Each either returns a typed result or says why it did not match,
and if none match the collected reasons are raised together.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from outreach.executor.errors import CollaboratorError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ResponseParseError(CollaboratorError):
    """An LLM response could not be turned into the expected shape."""


@dataclass
class ParseResult:
    strategy: str
    items: Optional[list] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.items is not None


class BareArray:
    """The response is the array itself."""

    name = "bare_array"

    def parse(self, data: Any) -> ParseResult:
        if isinstance(data, list):
            return ParseResult(self.name, items=data)
        return ParseResult(self.name, reason=f"top-level value is {type(data).__name__}, not an array")


class WrappedArray:
    """The array sits under a single known key of a top-level object."""

    def __init__(self, key: str):
        self.key = key
        self.name = f"wrapped_array:{key}"

    def parse(self, data: Any) -> ParseResult:
        if not isinstance(data, dict):
            return ParseResult(self.name, reason="top-level value is not an object")
        if self.key not in data:
            return ParseResult(self.name, reason=f"no '{self.key}' key")
        value = data[self.key]
        if not isinstance(value, list):
            return ParseResult(self.name, reason=f"'{self.key}' is {type(value).__name__}, not an array")
        return ParseResult(self.name, items=value)


PROSPECT_ARRAY_STRATEGIES = (
    BareArray(),
    WrappedArray("prospects"),
    WrappedArray("professors"),
    WrappedArray("researchers"),
    WrappedArray("results"),
)


def strip_code_fences(raw_text: str) -> str:
    """Remove a leading ```json (or ```) fence and a trailing ``` fence."""
    content = raw_text.strip()

    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    return content.strip()


def parse_json(raw_text: str) -> Any:
    content = strip_code_fences(raw_text or "")
    if not content:
        raise ResponseParseError("Empty response from model")
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Response is not valid JSON: {e}") from e


def parse_array(raw_text: str, strategies: Sequence = PROSPECT_ARRAY_STRATEGIES) -> ParseResult:
    """Try each strategy in order and return the first match."""
    data = parse_json(raw_text)
    reasons = []
    for strategy in strategies:
        result = strategy.parse(data)
        if result.ok:
            logger.debug(f"Parsed {len(result.items)} items via {result.strategy}")
            return result
        reasons.append(f"{result.strategy}: {result.reason}")
    raise ResponseParseError("No parse strategy matched: " + "; ".join(reasons))


def parse_object(raw_text: str, model: Type[ModelT]) -> ModelT:
    """Parse a single JSON object and validate it against ``model``."""
    data = parse_json(raw_text)
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ResponseParseError(f"Response does not match {model.__name__}: {e}") from e


def validate_items(items: list, model: Type[ModelT]) -> list[ModelT]:
    """Validate every element of a parsed array against ``model``."""
    validated = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ResponseParseError(f"Item {i} is {type(item).__name__}, not an object")
        try:
            validated.append(model.model_validate(item))
        except PydanticValidationError as e:
            raise ResponseParseError(f"Item {i} does not match {model.__name__}: {e}") from e
    return validated
