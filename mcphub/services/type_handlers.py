"""Validation and conversion of raw tool parameter values by JSON schema type."""
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class TypeHandler:
    name: str
    validate: Callable[[str, Dict[str, Any]], bool]
    convert: Callable[[str, Dict[str, Any]], Any]
    format: Callable[[Dict[str, Any]], str]


def as_text(value: Any) -> str:
    """Raw parameter values are strings; anything else is read as its JSON text."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _parse_number(text: str) -> Optional[float]:
    try:
        number = float(text.strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _validate_number(text: str, schema: Dict[str, Any]) -> bool:
    return _parse_number(text) is not None


def _convert_number(text: str, schema: Dict[str, Any]) -> Any:
    stripped = text.strip()
    try:
        return int(stripped)
    except ValueError:
        return float(stripped)


def _validate_integer(text: str, schema: Dict[str, Any]) -> bool:
    number = _parse_number(text)
    return number is not None and number.is_integer()


def _convert_integer(text: str, schema: Dict[str, Any]) -> int:
    return int(float(text.strip()))


def _validate_boolean(text: str, schema: Dict[str, Any]) -> bool:
    return text.strip().lower() in ("true", "false")


def _convert_boolean(text: str, schema: Dict[str, Any]) -> bool:
    return text.strip().lower() == "true"


def _enum_values(schema: Dict[str, Any]) -> list:
    values = schema.get("enum")
    return list(values) if isinstance(values, list) else []


def _validate_enum(text: str, schema: Dict[str, Any]) -> bool:
    return any(as_text(option) == text for option in _enum_values(schema))


def _convert_enum(text: str, schema: Dict[str, Any]) -> Any:
    for option in _enum_values(schema):
        if as_text(option) == text:
            return option
    return text


def _json_validator(expected: type) -> Callable[[str, Dict[str, Any]], bool]:
    def validate(text: str, schema: Dict[str, Any]) -> bool:
        try:
            return isinstance(json.loads(text), expected)
        except ValueError:
            return False
    return validate


def _convert_json(text: str, schema: Dict[str, Any]) -> Any:
    return json.loads(text)


def _format_enum(schema: Dict[str, Any]) -> str:
    return "enum: " + " | ".join(as_text(option) for option in _enum_values(schema))


TYPE_HANDLERS: Dict[str, TypeHandler] = {
    "string": TypeHandler("string", lambda text, schema: True, lambda text, schema: text, lambda schema: "string"),
    "number": TypeHandler("number", _validate_number, _convert_number, lambda schema: "number"),
    "integer": TypeHandler("integer", _validate_integer, _convert_integer, lambda schema: "integer"),
    "boolean": TypeHandler("boolean", _validate_boolean, _convert_boolean, lambda schema: "boolean (true/false)"),
    "enum": TypeHandler("enum", _validate_enum, _convert_enum, _format_enum),
    "array": TypeHandler("array", _json_validator(list), _convert_json, lambda schema: "array (JSON)"),
    "object": TypeHandler("object", _json_validator(dict), _convert_json, lambda schema: "object (JSON)"),
}


def schema_type(schema: Dict[str, Any]) -> Optional[str]:
    """Declared type of a property; ``enum`` wins, union types use their first non-null member."""
    if not isinstance(schema, dict):
        return None
    if _enum_values(schema):
        return "enum"
    declared = schema.get("type")
    if isinstance(declared, list):
        declared = next((item for item in declared if item != "null"), None)
    return declared if isinstance(declared, str) else None


def handler_for(schema: Dict[str, Any]) -> Optional[TypeHandler]:
    declared = schema_type(schema)
    return TYPE_HANDLERS.get(declared) if declared else None
