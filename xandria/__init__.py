"""
Xandria Operator Engine

Registry of typed operators, sequential pipeline orchestration, and a
stochastic evolution controller built on a mean-reverting diffusion.

Subpackages:
- operators: operator contract, descriptor schema, registry
- runtime: synthesis requests and the pipeline orchestrator
- governance: coherence and health monitoring
- stochastic: diffusion simulator, strategies, evolution controller
"""

__version__ = "3.0.0"

from xandria.config import ControllerConfig, DiffusionBounds, EngineConfig, XandriaConfig, load_config
from xandria.errors import (
    CyclicDependencyError,
    DependencyUnsatisfiedError,
    ExecutionTimeout,
    NotFoundError,
    ParameterError,
    StrategyNotFoundError,
    UnresolvedDependencyError,
    ValidationError,
    XandriaError,
)
from xandria.operators import ExecutionContext, OperatorDescriptor, OperatorRegistry, OperatorResult
from xandria.runtime import PipelineOrchestrator, SynthesisRequest, SynthesisResponse
from xandria.stochastic import EvolutionController, MeanRevertingDiffusion, StateVector

__all__ = [
    "__version__",
    "ControllerConfig",
    "DiffusionBounds",
    "EngineConfig",
    "XandriaConfig",
    "load_config",
    "CyclicDependencyError",
    "DependencyUnsatisfiedError",
    "ExecutionTimeout",
    "NotFoundError",
    "ParameterError",
    "StrategyNotFoundError",
    "UnresolvedDependencyError",
    "ValidationError",
    "XandriaError",
    "ExecutionContext",
    "OperatorDescriptor",
    "OperatorRegistry",
    "OperatorResult",
    "PipelineOrchestrator",
    "SynthesisRequest",
    "SynthesisResponse",
    "EvolutionController",
    "MeanRevertingDiffusion",
    "StateVector",
]
