"""
Mean-Reverting Diffusion

Ornstein-Uhlenbeck simulator used by the evolution controller:

    dX(t) = kappa * (theta - X(t)) dt + sigma dW(t)

Key classes:
- DiffusionParameters: kappa > 0, sigma >= 0, 0 < dt <= 1
- MeanRevertingDiffusion: Euler-Maruyama trajectories, closed-form prediction,
  fixed-threshold parameter retuning

States are clamped to [0, 1]. Noise comes from a numpy Generator, so runs
are reproducible when a seed or generator is injected.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence
import logging
import math

import numpy as np

from xandria.config import DiffusionBounds
from xandria.errors import ParameterError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffusionParameters:
    kappa: float = 0.15         # mean reversion rate
    theta: float = 0.85         # equilibrium
    sigma: float = 0.08         # volatility
    dt: float = 0.01            # time step
    initial_state: float = 0.5

    def __post_init__(self):
        if self.kappa <= 0:
            raise ParameterError(f"kappa must be positive, got {self.kappa}")
        if self.sigma < 0:
            raise ParameterError(f"sigma cannot be negative, got {self.sigma}")
        if self.dt <= 0 or self.dt > 1:
            raise ParameterError(f"dt must be in (0, 1], got {self.dt}")

    def replace(self, **changes) -> "DiffusionParameters":
        """Copy with changes applied; raises ParameterError if the result is invalid."""
        unknown = set(changes) - set(self.to_dict())
        if unknown:
            raise ParameterError(f"Unknown diffusion parameters: {sorted(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return {
            "kappa": self.kappa,
            "theta": self.theta,
            "sigma": self.sigma,
            "dt": self.dt,
            "initial_state": self.initial_state,
        }


@dataclass(frozen=True)
class DiffusionState:
    value: float
    time: float
    drift: float = 0.0
    diffusion: float = 0.0
    equilibrium_distance: float = 0.0
    convergence_rate: float = 0.0


@dataclass
class EvolutionTrajectory:
    states: List[DiffusionState]
    parameters: DiffusionParameters
    total_time: float
    final_state: float
    convergence_achieved: bool
    net_change: float           # initial - final

    @property
    def values(self) -> np.ndarray:
        return np.array([s.value for s in self.states])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "states": [s.value for s in self.states],
            "parameters": self.parameters.to_dict(),
            "total_time": self.total_time,
            "final_state": self.final_state,
            "convergence_achieved": self.convergence_achieved,
            "net_change": self.net_change,
        }


@dataclass(frozen=True)
class Prediction:
    predicted_state: float
    variance: float
    confidence: float
    time_to_convergence: float


class MeanRevertingDiffusion:
    """
    Ornstein-Uhlenbeck simulator.

    Args:
        params: starting parameters
        rng: numpy Generator for the Wiener increments
        seed: seed for a fresh Generator when rng is not given
        bounds: clamps and bands for optimize_parameters
    """

    def __init__(self, params: DiffusionParameters = None, rng: np.random.Generator = None,
                 seed: Optional[int] = None, bounds: DiffusionBounds = None):
        self._params = params or DiffusionParameters()
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.bounds = bounds or DiffusionBounds()

    @property
    def parameters(self) -> DiffusionParameters:
        return self._params

    def update_parameters(self, params: DiffusionParameters = None, **changes) -> DiffusionParameters:
        """
        Replace the parameters, either wholesale or field by field.

        Raises:
            ParameterError: if the resulting parameters are invalid
        """
        updated = params if params is not None else self._params
        if changes:
            updated = updated.replace(**changes)
        self._params = updated
        return updated

    def reset(self) -> None:
        self._params = replace(self._params, initial_state=0.5)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def wiener_increment(self) -> float:
        """Box-Muller standard normal scaled by sqrt(dt)."""
        u1 = 1.0 - self.rng.random()    # (0, 1], keeps log finite
        u2 = self.rng.random()
        z0 = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return z0 * math.sqrt(self._params.dt)

    def step(self, value: float, time: float) -> DiffusionState:
        p = self._params
        drift = p.kappa * (p.theta - value) * p.dt
        diffusion = p.sigma * self.wiener_increment() if p.sigma > 0 else 0.0
        new_value = min(1.0, max(0.0, value + drift + diffusion))
        distance = abs(p.theta - new_value)
        return DiffusionState(
            value=new_value,
            time=time + p.dt,
            drift=drift,
            diffusion=diffusion,
            equilibrium_distance=distance,
            convergence_rate=p.kappa * distance,
        )

    def evolve(self, n: int) -> EvolutionTrajectory:
        """Simulate n steps from initial_state; the trajectory holds n + 1 states."""
        if n < 0:
            raise ParameterError(f"Trajectory length must be non-negative, got {n}")

        p = self._params
        distance = abs(p.theta - p.initial_state)
        state = DiffusionState(
            value=p.initial_state,
            time=0.0,
            equilibrium_distance=distance,
            convergence_rate=p.kappa * distance,
        )
        states = [state]
        for _ in range(n):
            state = self.step(state.value, state.time)
            states.append(state)

        final = state.value
        return EvolutionTrajectory(
            states=states,
            parameters=p,
            total_time=state.time,
            final_state=final,
            convergence_achieved=abs(p.theta - final) < self.bounds.convergence_tolerance,
            net_change=p.initial_state - final,
        )

    def evolve_many(self, initial_states: Sequence[float], n: int) -> List[EvolutionTrajectory]:
        """One trajectory per initial value, sharing the generator and other parameters."""
        trajectories = []
        for initial in initial_states:
            engine = MeanRevertingDiffusion(
                self._params.replace(initial_state=initial), rng=self.rng, bounds=self.bounds
            )
            trajectories.append(engine.evolve(n))
        return trajectories

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def predict_future_state(self, current: float, horizon: float) -> Prediction:
        """
        Closed-form OU mean and variance after `horizon` time units.

        Confidence is max(0.1, 1 - sd / 0.1). Time to convergence is the time
        for the expected deviation to decay below the tolerance, 0 when it is
        already within it.
        """
        p = self._params
        tol = self.bounds.convergence_tolerance
        decay = math.exp(-p.kappa * horizon)
        expected = p.theta + (current - p.theta) * decay
        variance = (p.sigma ** 2 / (2.0 * p.kappa)) * (1.0 - math.exp(-2.0 * p.kappa * horizon))
        sd = math.sqrt(variance)

        deviation = abs(p.theta - current)
        if deviation <= tol:
            time_to_convergence = 0.0
        else:
            time_to_convergence = abs(math.log(tol / deviation)) / p.kappa

        return Prediction(
            predicted_state=expected,
            variance=variance,
            confidence=max(0.1, 1.0 - sd / 0.1),
            time_to_convergence=time_to_convergence,
        )

    def convergence_time(self, trajectory: EvolutionTrajectory) -> float:
        """Time of the first state within tolerance of theta, else the total time."""
        theta = trajectory.parameters.theta
        for state in trajectory.states:
            if abs(state.value - theta) <= self.bounds.convergence_tolerance:
                return state.time
        return trajectory.total_time

    @staticmethod
    def trajectory_stability(trajectory: EvolutionTrajectory) -> float:
        """1 - min(10 * variance, 1) over the trajectory values."""
        variance = float(np.var(trajectory.values))
        return max(0.0, 1.0 - min(variance * 10.0, 1.0))

    def optimize_parameters(self, trajectory: EvolutionTrajectory,
                            target_convergence_time: float) -> DiffusionParameters:
        """
        Retune kappa and sigma from a trajectory's behaviour.

        Returns the new parameters; the simulator itself is not updated.

        Raises:
            ParameterError: if target_convergence_time is not positive
        """
        if not target_convergence_time > 0:
            raise ParameterError(
                f"target_convergence_time must be positive, got {target_convergence_time}"
            )
        b = self.bounds
        p = self._params
        kappa, sigma = p.kappa, p.sigma

        ratio = self.convergence_time(trajectory) / target_convergence_time
        if ratio > b.slow_ratio:
            kappa = min(kappa * b.kappa_up, b.kappa_max)
        elif ratio < b.fast_ratio:
            kappa = max(kappa * b.kappa_down, b.kappa_min)

        stability = self.trajectory_stability(trajectory)
        if stability < b.low_stability:
            sigma = max(sigma * b.sigma_down, b.sigma_min)
        elif stability > b.high_stability:
            sigma = min(sigma * b.sigma_up, b.sigma_max)

        logger.debug(
            f"Retuned diffusion: ratio={ratio:.2f} stability={stability:.3f} "
            f"kappa {p.kappa:.4f}->{kappa:.4f} sigma {p.sigma:.4f}->{sigma:.4f}"
        )
        return p.replace(kappa=kappa, sigma=sigma)
