"""JSON Schema for action scripts and validation of untyped payloads."""
from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft7Validator, ValidationError

from .errors import SchemaValidationError
from .models import CURRENT_VERSION, SUPPORTED_ACTIONS, ActionScript


def _variant(action_type: str, field_name: str, field_schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "if": {"properties": {"type": {"const": action_type}}, "required": ["type"]},
        "then": {
            "properties": {
                "type": {"const": action_type},
                field_name: field_schema,
            },
            "required": ["type", field_name],
            "additionalProperties": False,
        },
    }


ACTION_SCRIPT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "ActionScript",
    "type": "object",
    "properties": {
        "version": {"const": CURRENT_VERSION},
        "actions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"enum": sorted(SUPPORTED_ACTIONS[CURRENT_VERSION])},
                },
                "required": ["type"],
                "allOf": [
                    _variant("goto", "url", {"type": "string"}),
                    _variant("click", "selector", {"type": "string"}),
                    _variant("sleep", "milliseconds", {"type": "number", "minimum": 0}),
                ],
            },
        },
    },
    "required": ["version", "actions"],
    "additionalProperties": False,
}

_VALIDATOR = Draft7Validator(ACTION_SCRIPT_SCHEMA)


def format_validation_error(error: ValidationError) -> str:
    path = "->".join(str(part) for part in error.absolute_path)
    location = f"at `{path}`: " if path else ""
    return f"{location}{error.message}"


def collect_errors(payload: Any) -> List[str]:
    """返回 ``payload`` 的 Schema 校验错误列表（合法时为空）。"""
    errors = sorted(_VALIDATOR.iter_errors(payload), key=lambda e: [str(part) for part in e.absolute_path])
    return [format_validation_error(error) for error in errors]


def validate_script(payload: Any) -> ActionScript:
    """Validate an untyped payload and return the typed script.

    Raises:
        SchemaValidationError: unknown action type, missing or mistyped field,
            or a version other than the supported one.
    """
    messages = collect_errors(payload)
    if messages:
        raise SchemaValidationError("; ".join(messages), messages)
    return ActionScript.from_dict(payload)
