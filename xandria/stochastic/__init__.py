"""
Xandria Stochastic

- diffusion: MeanRevertingDiffusion (Ornstein-Uhlenbeck simulator)
- strategies: EvolutionStrategy and the default catalog
- evolution: EvolutionController
"""

from xandria.stochastic.diffusion import (
    DiffusionParameters,
    DiffusionState,
    EvolutionTrajectory,
    MeanRevertingDiffusion,
    Prediction,
)
from xandria.stochastic.evolution import (
    EvolutionController,
    EvolutionResult,
    ImprovementMetrics,
    OutcomePrediction,
    StateVector,
)
from xandria.stochastic.strategies import DEFAULT_STRATEGIES, ConvergenceCriteria, EvolutionStrategy

__all__ = [
    "DiffusionParameters",
    "DiffusionState",
    "EvolutionTrajectory",
    "MeanRevertingDiffusion",
    "Prediction",
    "EvolutionController",
    "EvolutionResult",
    "ImprovementMetrics",
    "OutcomePrediction",
    "StateVector",
    "DEFAULT_STRATEGIES",
    "ConvergenceCriteria",
    "EvolutionStrategy",
]
