"""
Operator Contract

Shared data shapes for operators:
- Triad / Category: fixed classification enumerations
- OperatorDescriptor: declared metadata of an operator
- OperatorEntry: descriptor plus executable, immutable once registered
- Environment / ExecutionContext: what an operator sees when it runs
- ResultMetadata / OperatorResult: what comes back from the registry

An operator is any callable (plain or coroutine function) taking an
ExecutionContext. It returns either the envelope

    {"result": <payload>, "confidence": 0.9, "metadata": {...}}

or the payload itself. Operators should report domain failure through low
confidence; exceptions are caught by the registry regardless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import time


class Triad(Enum):
    PROCEDURAL = "Procedural"
    HEURISTIC = "Heuristic"
    REFACTORIAL = "Refactorial"


class Category(Enum):
    FOUNDATIONAL = "Foundational"
    DYNAMIC = "Dynamic"
    RELATIONAL = "Relational"
    GOVERNANCE = "Governance"


def coerce_enum(enum_cls, value):
    """
    Resolve an enum member from a member, its value, or its name (any case).

    Raises:
        ValueError: if nothing matches
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if value == member.value or value.upper() == member.name:
                return member
    raise ValueError(f"{value!r} is not a valid {enum_cls.__name__}")


@dataclass(frozen=True)
class OperatorDescriptor:
    """Declared metadata of an operator."""
    id: str
    symbol: str
    triad: Triad
    category: Category
    scope: str
    description: str = ""
    parameters: Tuple[str, ...] = ()
    return_type: str = "any"
    complexity: int = 1
    stability: float = 1.0
    dependencies: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "triad": self.triad.value if isinstance(self.triad, Triad) else self.triad,
            "category": self.category.value if isinstance(self.category, Category) else self.category,
            "scope": self.scope,
            "description": self.description,
            "parameters": list(self.parameters),
            "return_type": self.return_type,
            "complexity": self.complexity,
            "stability": self.stability,
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OperatorDescriptor":
        """
        Build a descriptor from a dictionary after JSON schema validation.

        Raises:
            ValidationError: if the dictionary does not match the descriptor schema
        """
        from xandria.operators.schema import validate_descriptor_dict

        validate_descriptor_dict(data)
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            triad=coerce_enum(Triad, data["triad"]),
            category=coerce_enum(Category, data["category"]),
            scope=data["scope"],
            description=data.get("description", ""),
            parameters=tuple(data.get("parameters", ())),
            return_type=data.get("return_type", "any"),
            complexity=int(data.get("complexity", 1)),
            stability=data.get("stability", 1.0),
            dependencies=tuple(data.get("dependencies", ())),
        )


@dataclass(frozen=True)
class OperatorEntry:
    """A registered operator."""
    descriptor: OperatorDescriptor
    executable: Callable[..., Any]

    @property
    def id(self) -> str:
        return self.descriptor.id


@dataclass
class Environment:
    """Per-run environment passed to every operator."""
    timestamp: float = field(default_factory=time.time)
    session_id: str = "default-session"
    user_id: Optional[str] = None
    context_scope: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "context_scope": list(self.context_scope),
        }


@dataclass(frozen=True)
class ResultMetadata:
    execution_time_ms: float
    memory_delta: int
    operator_id: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_time_ms": self.execution_time_ms,
            "memory_delta": self.memory_delta,
            "operator_id": self.operator_id,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class OperatorResult:
    """Outcome of one operator execution. Immutable after creation."""
    success: bool
    result: Any
    metadata: ResultMetadata
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    operator_metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # read-only copy; the caller keeps its own dict
        object.__setattr__(self, "operator_metadata", MappingProxyType(dict(self.operator_metadata)))

    @property
    def operator_id(self) -> str:
        return self.metadata.operator_id

    @property
    def confidence(self) -> float:
        return self.metadata.confidence

    @classmethod
    def failure(cls, operator_id: str, message: str,
                execution_time_ms: float = 0.0, memory_delta: int = 0) -> "OperatorResult":
        return cls(
            success=False,
            result=None,
            metadata=ResultMetadata(
                execution_time_ms=execution_time_ms,
                memory_delta=memory_delta,
                operator_id=operator_id,
                confidence=0.0,
            ),
            errors=(message,),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "metadata": self.metadata.to_dict(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "operator_metadata": dict(self.operator_metadata),
        }


@dataclass
class ExecutionContext:
    """
    Context handed to an operator.

    previous_results is a snapshot of everything the run produced before this
    stage; state is shared and mutable across the run.
    """
    input: Any = None
    config: Dict[str, Any] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)
    previous_results: Tuple[OperatorResult, ...] = ()
    environment: Environment = field(default_factory=Environment)

    def succeeded(self, operator_id: str) -> bool:
        """True if an earlier stage of this run succeeded with operator_id."""
        return any(r.success and r.operator_id == operator_id for r in self.previous_results)
