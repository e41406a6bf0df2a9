"""
Operator Descriptor Schema

JSON schema for operator descriptors, so operator catalogs can be kept as
JSON and checked before registration. Range and enumeration checks are
repeated by OperatorRegistry.register for descriptors built in code.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

import jsonschema

from xandria.errors import ValidationError
from xandria.operators.contract import Category, Triad

DESCRIPTOR_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "OperatorDescriptor",
    "type": "object",
    "required": ["id", "symbol", "triad", "category", "scope"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "symbol": {"type": "string", "minLength": 1},
        "triad": {"enum": [t.value for t in Triad]},
        "category": {"enum": [c.value for c in Category]},
        "scope": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "parameters": {"type": "array", "items": {"type": "string"}},
        "return_type": {"type": "string"},
        "complexity": {"type": "integer", "minimum": 1, "maximum": 10},
        "stability": {"type": "number", "minimum": 0, "maximum": 1},
        "dependencies": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
            "uniqueItems": True,
        },
    },
    "additionalProperties": False,
}

_validator = jsonschema.Draft7Validator(DESCRIPTOR_SCHEMA)


def descriptor_errors(data: Dict[str, Any]) -> List[str]:
    """All schema violations of a descriptor dictionary, path-prefixed."""
    return [
        f"{format_error_path(e)}: {e.message}"
        for e in sorted(_validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    ]


def check_descriptor_dict(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate a descriptor dictionary.

    Returns:
        Tuple of (is_valid, errors)
    """
    errors = descriptor_errors(data)
    return not errors, errors


def validate_descriptor_dict(data: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: listing every schema violation
    """
    errors = descriptor_errors(data)
    if errors:
        descriptor_id = data.get("id", "<unknown>") if isinstance(data, dict) else "<unknown>"
        raise ValidationError(f"Operator {descriptor_id} descriptor invalid: " + "; ".join(errors))


def format_error_path(error: jsonschema.ValidationError) -> str:
    """Dotted location of a schema error, '$' for the document root."""
    path = "$"
    for part in error.absolute_path:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path
