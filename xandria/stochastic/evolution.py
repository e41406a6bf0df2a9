"""
Evolution Controller

Drives a StateVector toward a strategy's targets by repeatedly running the
strategy's operator pipeline through the registry, folding the operators'
outputs into the state, and periodically retuning a mean-reverting diffusion.

Each iteration:
1. run the strategy pipeline on the state projection (failed stages skipped)
2. fold successful mapping outputs with the damping factor
3. add a small symmetric perturbation to quality (half of it, negated, to debt)
4. clamp all fields to [0, 1] and check the convergence criteria
5. every retune_interval iterations, simulate retune_horizon steps and
   retune kappa/sigma

Running out of iterations is a normal outcome, reported through
EvolutionResult.convergence_achieved.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
import logging
import math
import time

import numpy as np

from xandria.config import ControllerConfig, DiffusionBounds
from xandria.errors import StrategyNotFoundError
from xandria.operators.contract import Environment, ExecutionContext, OperatorResult
from xandria.operators.registry import OperatorRegistry
from xandria.stochastic.diffusion import DiffusionParameters, EvolutionTrajectory, MeanRevertingDiffusion
from xandria.stochastic.strategies import DEFAULT_STRATEGIES, EvolutionStrategy

logger = logging.getLogger(__name__)

STATE_FIELDS = ("complexity", "quality", "technical_debt", "maintainability", "performance")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class StateVector:
    """Code-health state; every field lies in [0, 1]."""
    complexity: float = 0.5
    quality: float = 0.5
    technical_debt: float = 0.5
    maintainability: float = 0.5
    performance: float = 0.5
    timestamp: float = field(default_factory=time.time)

    def clamped(self) -> "StateVector":
        return replace(self, **{name: _clamp(getattr(self, name)) for name in STATE_FIELDS})

    def to_operator_input(self) -> Dict[str, Any]:
        """Projection handed to operators as ExecutionContext.input."""
        return {
            "complexity": self.complexity,
            "quality": self.quality,
            "technical_debt": self.technical_debt,
            "maintainability": self.maintainability,
            "performance": self.performance,
            "metrics": {
                "overall_score": (self.quality + self.maintainability + self.performance) / 3,
                "debt_ratio": self.technical_debt / (self.quality + 0.1),
                "complexity_efficiency": self.performance / (self.complexity + 0.1),
            },
        }

    def to_dict(self) -> Dict[str, float]:
        data = {name: getattr(self, name) for name in STATE_FIELDS}
        data["timestamp"] = self.timestamp
        return data


@dataclass(frozen=True)
class ImprovementMetrics:
    complexity_reduction: float = 0.0
    quality_improvement: float = 0.0
    debt_reduction: float = 0.0
    maintainability_gain: float = 0.0

    @classmethod
    def between(cls, initial: StateVector, final: StateVector) -> "ImprovementMetrics":
        return cls(
            complexity_reduction=initial.complexity - final.complexity,
            quality_improvement=final.quality - initial.quality,
            debt_reduction=initial.technical_debt - final.technical_debt,
            maintainability_gain=final.maintainability - initial.maintainability,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "complexity_reduction": self.complexity_reduction,
            "quality_improvement": self.quality_improvement,
            "debt_reduction": self.debt_reduction,
            "maintainability_gain": self.maintainability_gain,
        }


@dataclass
class EvolutionResult:
    initial_state: StateVector
    final_state: StateVector
    trajectory: EvolutionTrajectory
    applied_strategies: List[EvolutionStrategy]
    total_iterations: int
    convergence_achieved: bool
    improvement_metrics: ImprovementMetrics
    execution_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_state": self.initial_state.to_dict(),
            "final_state": self.final_state.to_dict(),
            "trajectory": self.trajectory.to_dict(),
            "applied_strategies": [s.key for s in self.applied_strategies],
            "total_iterations": self.total_iterations,
            "convergence_achieved": self.convergence_achieved,
            "improvement_metrics": self.improvement_metrics.to_dict(),
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass(frozen=True)
class OutcomePrediction:
    predicted_state: StateVector
    confidence: float
    estimated_iterations: int
    expected_improvements: ImprovementMetrics


class EvolutionController:
    """
    Strategy-driven evolution over a shared OperatorRegistry.

    Args:
        registry: registry the strategy pipelines execute through
        config: controller configuration
        bounds: diffusion retuning bounds
        rng: numpy Generator shared by the simulator and the perturbation
        seed: seed for a fresh Generator when rng is not given
        strategies: catalog to start from (defaults to the four built-ins)
    """

    def __init__(self, registry: OperatorRegistry, config: ControllerConfig = None,
                 bounds: DiffusionBounds = None, rng: np.random.Generator = None,
                 seed: Optional[int] = None, strategies: Iterable[EvolutionStrategy] = None):
        self.registry = registry
        self.config = config or ControllerConfig()
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.diffusion = MeanRevertingDiffusion(
            DiffusionParameters(
                kappa=self.config.kappa,
                theta=self.config.theta,
                sigma=self.config.sigma,
                dt=self.config.dt,
                initial_state=self.config.initial_state,
            ),
            rng=self.rng,
            bounds=bounds,
        )
        self.strategies: Dict[str, EvolutionStrategy] = {}
        for strategy in (DEFAULT_STRATEGIES if strategies is None else strategies):
            self.register_strategy(strategy)
        self.history: deque = deque(maxlen=self.config.history_limit)

    # ------------------------------------------------------------------
    # Strategy catalog
    # ------------------------------------------------------------------

    def register_strategy(self, strategy: EvolutionStrategy) -> None:
        self.strategies[strategy.key] = strategy

    def list_strategies(self) -> List[str]:
        return list(self.strategies)

    def get_strategy(self, key: str) -> EvolutionStrategy:
        """
        Raises:
            StrategyNotFoundError: if key is not in the catalog
        """
        try:
            return self.strategies[key]
        except KeyError:
            raise StrategyNotFoundError(f"Evolution strategy '{key}' not found") from None

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run_strategy(self, initial: StateVector, key: str,
                           max_iterations: int = None) -> EvolutionResult:
        """
        Evolve `initial` under one strategy until convergence or the cap.

        Raises:
            StrategyNotFoundError: if key is not in the catalog
        """
        start = time.time()
        strategy = self.get_strategy(key)
        if max_iterations is None:
            max_iterations = self.config.default_max_iterations
        logger.info(f"Starting evolution with strategy: {strategy.name}")

        self.diffusion.update_parameters(self.derive_parameters(initial, strategy))

        state = initial
        iterations = 0
        converged = False
        while iterations < max_iterations and not converged:
            iterations += 1

            results = await self.apply_pipeline(state, strategy.operator_pipeline)
            state = self.fold_results(state, results)
            converged = strategy.criteria.satisfied_by(state)

            if iterations % self.config.retune_interval == 0:
                self.retune()

            logger.debug(
                f"Iteration {iterations}: quality={state.quality:.3f}, "
                f"debt={state.technical_debt:.3f}"
            )

        result = EvolutionResult(
            initial_state=initial,
            final_state=state,
            trajectory=self.diffusion.evolve(iterations),
            applied_strategies=[strategy],
            total_iterations=iterations,
            convergence_achieved=converged,
            improvement_metrics=ImprovementMetrics.between(initial, state),
            execution_time_ms=(time.time() - start) * 1000,
        )
        self.history.append(result)

        outcome = "Converged" if converged else "Max iterations reached"
        logger.info(f"Evolution completed: {outcome} in {iterations} iterations")
        return result

    async def run_strategy_sequence(self, initial: StateVector, keys: Sequence[str],
                                    total_cap: int = None) -> EvolutionResult:
        """
        Run strategies back to back, each from the previous final state.

        Each strategy gets at most sequence_strategy_cap iterations of what
        remains of total_cap. Convergence is judged with the last applied
        strategy's criteria. Every sub-run is recorded in the history, and so
        is the combined result.
        """
        start = time.time()
        if total_cap is None:
            total_cap = self.config.sequence_total_cap
        logger.info(f"Starting multi-strategy evolution: {' -> '.join(keys)}")

        state = initial
        applied: List[EvolutionStrategy] = []
        total_iterations = 0
        for key in keys:
            if total_iterations >= total_cap:
                break
            budget = min(self.config.sequence_strategy_cap, total_cap - total_iterations)
            sub = await self.run_strategy(state, key, budget)
            state = sub.final_state
            applied.extend(sub.applied_strategies)
            total_iterations += sub.total_iterations
            if not sub.convergence_achieved:
                logger.info(f"Strategy {key} did not fully converge, continuing with next strategy")

        result = EvolutionResult(
            initial_state=initial,
            final_state=state,
            trajectory=self.diffusion.evolve(total_iterations),
            applied_strategies=applied,
            total_iterations=total_iterations,
            convergence_achieved=bool(applied) and applied[-1].criteria.satisfied_by(state),
            improvement_metrics=ImprovementMetrics.between(initial, state),
            execution_time_ms=(time.time() - start) * 1000,
        )
        self.history.append(result)
        return result

    async def apply_pipeline(self, state: StateVector,
                             operator_ids: Sequence[str]) -> List[OperatorResult]:
        """Run operator_ids on the state projection; each stage sees earlier results."""
        results: List[OperatorResult] = []
        for operator_id in operator_ids:
            context = ExecutionContext(
                input=state.to_operator_input(),
                config={"evolution_context": "stochastic"},
                state={"current_evolution_state": state},
                previous_results=tuple(results),
                environment=Environment(
                    session_id="evolution-session",
                    context_scope=["code", "evolution", "stochastic"],
                ),
            )
            result = await self.registry.execute(operator_id, context)
            if not result.success:
                logger.warning(f"Operator {operator_id} skipped: {'; '.join(result.errors)}")
            results.append(result)
        return results

    def fold_results(self, state: StateVector, results: Sequence[OperatorResult]) -> StateVector:
        """Apply damped operator improvements and the perturbation, then clamp."""
        damping = self.config.damping_factor
        values = {name: getattr(state, name) for name in STATE_FIELDS}

        for result in results:
            if not result.success or not isinstance(result.result, Mapping):
                continue
            improvements = result.result
            for name in ("quality", "maintainability", "performance"):
                delta = _numeric(improvements.get(name))
                if delta is not None:
                    values[name] = min(1.0, values[name] + delta * damping)
            delta = _numeric(improvements.get("complexity"))
            if delta is not None:
                values["complexity"] = max(0.0, values["complexity"] - abs(delta) * damping)
            delta = _numeric(improvements.get("technical_debt"))
            if delta is not None:
                values["technical_debt"] = max(0.0, values["technical_debt"] - delta * damping)

        perturbation = (self.rng.random() - 0.5) * self.config.perturbation_scale
        values["quality"] += perturbation
        values["technical_debt"] -= perturbation * 0.5

        return StateVector(timestamp=time.time(), **values).clamped()

    def derive_parameters(self, state: StateVector, strategy: EvolutionStrategy) -> DiffusionParameters:
        """
        Diffusion parameters for a run from `state`.

        kappa grows with the quality deficit and debt excess, sigma shrinks as
        quality rises, theta is the strategy's target quality.
        """
        c = self.config
        base = self.diffusion.parameters
        quality_deficit = max(0.0, c.quality_reference - state.quality)
        debt_excess = max(0.0, state.technical_debt - c.debt_reference)
        kappa = base.kappa * (1 + quality_deficit + debt_excess)
        sigma = base.sigma * (1 - state.quality * 0.3)
        return base.replace(
            kappa=min(kappa, c.kappa_cap),
            sigma=max(sigma, c.sigma_floor),
            theta=strategy.target_state.get("quality") or c.default_target_quality,
            initial_state=state.quality,
        )

    def retune(self) -> DiffusionParameters:
        trajectory = self.diffusion.evolve(self.config.retune_horizon)
        optimized = self.diffusion.optimize_parameters(trajectory, self.config.target_convergence_time)
        return self.diffusion.update_parameters(optimized)

    # ------------------------------------------------------------------
    # Prediction and analytics
    # ------------------------------------------------------------------

    def predict_outcome(self, initial: StateVector, key: str, horizon: int = 50) -> OutcomePrediction:
        """
        Closed-form estimate of a run's outcome after `horizon` steps.

        Does not iterate and does not touch the history.

        Raises:
            StrategyNotFoundError: if key is not in the catalog
        """
        self.get_strategy(key)
        dt = self.diffusion.parameters.dt
        prediction = self.diffusion.predict_future_state(initial.quality, horizon * dt)
        q = prediction.predicted_state

        predicted = StateVector(
            complexity=max(0.0, initial.complexity * (1 - q * 0.3)),
            quality=q,
            technical_debt=max(0.0, initial.technical_debt * (1 - q * 0.5)),
            maintainability=min(1.0, initial.maintainability + q * 0.2),
            performance=min(1.0, initial.performance + q * 0.15),
            timestamp=initial.timestamp + horizon,
        )
        return OutcomePrediction(
            predicted_state=predicted,
            confidence=prediction.confidence,
            estimated_iterations=math.ceil(prediction.time_to_convergence / dt),
            expected_improvements=ImprovementMetrics.between(initial, predicted),
        )

    def get_analytics(self) -> Dict[str, Any]:
        total = len(self.history)
        if total == 0:
            return {
                "total_runs": 0,
                "convergence_rate": 0.0,
                "average_improvements": ImprovementMetrics().to_dict(),
                "strategy_effectiveness": {},
            }

        converged = sum(1 for r in self.history if r.convergence_achieved)
        sums = {k: 0.0 for k in ImprovementMetrics().to_dict()}
        effectiveness: Dict[str, float] = {}
        for run in self.history:
            for k, v in run.improvement_metrics.to_dict().items():
                sums[k] += v
            for strategy in run.applied_strategies:
                score = 1.0 if run.convergence_achieved else 0.5
                effectiveness[strategy.name] = effectiveness.get(strategy.name, 0.0) + score

        return {
            "total_runs": total,
            "convergence_rate": converged / total,
            "average_improvements": {k: v / total for k, v in sums.items()},
            "strategy_effectiveness": effectiveness,
        }

    def get_history(self, limit: int = 10) -> List[EvolutionResult]:
        return list(self.history)[-limit:]

    def reset(self) -> None:
        self.diffusion.reset()
        self.history.clear()
        logger.info("Evolution controller reset")


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
