"""
Xandria Operators

- contract: descriptor, context and result shapes
- schema: JSON schema for descriptor dictionaries
- registry: OperatorRegistry (registration, graph validation, execution)
"""

from xandria.operators.contract import (
    Category,
    Environment,
    ExecutionContext,
    OperatorDescriptor,
    OperatorEntry,
    OperatorResult,
    ResultMetadata,
    Triad,
)
from xandria.operators.registry import OperatorRegistry
from xandria.operators.schema import DESCRIPTOR_SCHEMA, check_descriptor_dict

__all__ = [
    "Category",
    "Environment",
    "ExecutionContext",
    "OperatorDescriptor",
    "OperatorEntry",
    "OperatorResult",
    "ResultMetadata",
    "Triad",
    "OperatorRegistry",
    "DESCRIPTOR_SCHEMA",
    "check_descriptor_dict",
]
