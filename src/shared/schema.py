"""JSON Schema helpers for router tool inputs.

Tool inputs are flat objects. Typed parameters are checked by the router;
untyped ones (``data``, ``params``, ``stageData``) accept any JSON value and
are left for the domain server to judge.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from jsonschema import Draft7Validator


@dataclass(frozen=True)
class Param:
    """One tool parameter."""
    name: str
    type: Optional[str] = None
    description: str = ""
    required: bool = True
    enum: Optional[Sequence[str]] = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"description": self.description}
        if self.type:
            schema["type"] = self.type
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


def object_schema(*params: Param) -> dict[str, Any]:
    """Input schema for a tool taking ``params``."""
    return {
        "type": "object",
        "properties": {p.name: p.to_schema() for p in params},
        "required": [p.name for p in params if p.required],
    }


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, messages ordered by the offending field)
    """
    if not schema:
        return True, []

    messages = []
    for error in sorted(Draft7Validator(schema).iter_errors(data), key=lambda e: list(e.path)):
        location = ".".join(str(p) for p in error.path)
        messages.append(f"{location}: {error.message}" if location else error.message)

    return not messages, messages
