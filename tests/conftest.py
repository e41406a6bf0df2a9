"""Test fixtures for the Xandria operator engine test suite."""
import asyncio
import pytest
import sys
from pathlib import Path
from typing import Dict, Any, Callable

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from xandria.operators.contract import Category, ExecutionContext, OperatorDescriptor, Triad
from xandria.operators.registry import OperatorRegistry


def make_descriptor(op_id: str, **overrides) -> OperatorDescriptor:
    """Descriptor with valid defaults; keyword arguments override fields."""
    fields: Dict[str, Any] = {
        "id": op_id,
        "symbol": f"sym_{op_id}",
        "triad": Triad.PROCEDURAL,
        "category": Category.FOUNDATIONAL,
        "scope": "analysis",
        "description": f"Test operator {op_id}",
        "complexity": 3,
        "stability": 1.0,
        "dependencies": (),
    }
    fields.update(overrides)
    return OperatorDescriptor(**fields)


def run(coro):
    """Drive a coroutine to completion."""
    return asyncio.run(coro)


def identity(ctx: ExecutionContext):
    return ctx.input


def double_value(ctx: ExecutionContext):
    return {"value": ctx.input["value"] * 2}


def reject_negative(ctx: ExecutionContext):
    if ctx.input["value"] < 0:
        raise ValueError("negative input")
    return ctx.input


@pytest.fixture
def descriptor_factory() -> Callable[..., OperatorDescriptor]:
    """Factory for valid descriptors."""
    return make_descriptor


@pytest.fixture
def registry() -> OperatorRegistry:
    """Empty registry with a short deadline."""
    return OperatorRegistry(timeout=1.0)


@pytest.fixture
def chain_registry() -> OperatorRegistry:
    """L1 identity -> L2 doubles value -> L3 rejects negatives."""
    reg = OperatorRegistry(timeout=1.0)
    reg.register(make_descriptor("L1"), identity)
    reg.register(
        make_descriptor("L2", triad=Triad.HEURISTIC, category=Category.DYNAMIC,
                        scope="synthesis", dependencies=("L1",)),
        double_value,
    )
    reg.register(
        make_descriptor("L3", triad=Triad.REFACTORIAL, category=Category.GOVERNANCE,
                        scope="governance", stability=0.9, dependencies=("L2",)),
        reject_negative,
    )
    reg.seal()
    return reg


@pytest.fixture
def descriptor_dict() -> Dict[str, Any]:
    """Descriptor in its JSON form."""
    return {
        "id": "L7",
        "symbol": "Ω",
        "triad": "Heuristic",
        "category": "Relational",
        "scope": "synthesis",
        "description": "Relational mapping",
        "parameters": ["source", "target"],
        "return_type": "mapping",
        "complexity": 4,
        "stability": 0.85,
        "dependencies": [],
    }
