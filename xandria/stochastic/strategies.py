"""Evolution strategies and the default strategy catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class ConvergenceCriteria:
    """A state has converged when complexity and debt are at or below their
    thresholds and quality is at or above its threshold."""
    complexity_threshold: float
    quality_threshold: float
    debt_threshold: float
    max_iterations: int

    def satisfied_by(self, state) -> bool:
        return (
            state.complexity <= self.complexity_threshold
            and state.quality >= self.quality_threshold
            and state.technical_debt <= self.debt_threshold
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "complexity_threshold": self.complexity_threshold,
            "quality_threshold": self.quality_threshold,
            "debt_threshold": self.debt_threshold,
            "max_iterations": self.max_iterations,
        }


@dataclass(frozen=True)
class EvolutionStrategy:
    key: str
    name: str
    description: str
    target_state: Dict[str, float]
    criteria: ConvergenceCriteria
    operator_pipeline: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "target_state": dict(self.target_state),
            "criteria": self.criteria.to_dict(),
            "operator_pipeline": list(self.operator_pipeline),
        }


DEBT_ELIMINATION = EvolutionStrategy(
    key="debt-elimination",
    name="Technical Debt Elimination",
    description="Aggressively reduce technical debt through refactoring",
    target_state={"technical_debt": 0.1, "quality": 0.9, "maintainability": 0.85},
    criteria=ConvergenceCriteria(
        complexity_threshold=0.2, quality_threshold=0.8, debt_threshold=0.15, max_iterations=50
    ),
    operator_pipeline=("L21", "L22", "L27", "L63", "L67"),
)

PERFORMANCE_OPTIMIZATION = EvolutionStrategy(
    key="performance-optimization",
    name="Performance Optimization",
    description="Optimize code for maximum performance efficiency",
    target_state={"performance": 0.95, "complexity": 0.3, "quality": 0.9},
    criteria=ConvergenceCriteria(
        complexity_threshold=0.25, quality_threshold=0.85, debt_threshold=0.2, max_iterations=40
    ),
    operator_pipeline=("L5", "L17", "L23", "L31", "L55"),
)

QUALITY_ENHANCEMENT = EvolutionStrategy(
    key="quality-enhancement",
    name="Code Quality Enhancement",
    description="Improve overall code quality and standards compliance",
    target_state={"quality": 0.95, "maintainability": 0.9, "technical_debt": 0.05},
    criteria=ConvergenceCriteria(
        complexity_threshold=0.15, quality_threshold=0.9, debt_threshold=0.1, max_iterations=60
    ),
    operator_pipeline=("L4", "L67", "L66", "L69", "L72"),
)

COMPLEXITY_REDUCTION = EvolutionStrategy(
    key="complexity-reduction",
    name="Complexity Reduction",
    description="Simplify code structure and reduce cognitive load",
    target_state={"complexity": 0.2, "maintainability": 0.9, "quality": 0.85},
    criteria=ConvergenceCriteria(
        complexity_threshold=0.25, quality_threshold=0.8, debt_threshold=0.15, max_iterations=45
    ),
    operator_pipeline=("L6", "L55", "L63", "L3", "L8"),
)

DEFAULT_STRATEGIES: Tuple[EvolutionStrategy, ...] = (
    DEBT_ELIMINATION,
    PERFORMANCE_OPTIMIZATION,
    QUALITY_ENHANCEMENT,
    COMPLEXITY_REDUCTION,
)
