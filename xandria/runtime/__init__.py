"""
Xandria Runtime

- synthesis: request and response shapes
- orchestrator: PipelineOrchestrator
"""

from xandria.runtime.orchestrator import (
    DOMAIN_PHASES,
    PipelineOrchestrator,
    aggregate_results,
    pipeline_coherence,
    pipeline_confidence,
)
from xandria.runtime.synthesis import (
    RequestMetadata,
    SynthesisContext,
    SynthesisMetadata,
    SynthesisRequest,
    SynthesisResponse,
)

__all__ = [
    "DOMAIN_PHASES",
    "PipelineOrchestrator",
    "aggregate_results",
    "pipeline_coherence",
    "pipeline_confidence",
    "RequestMetadata",
    "SynthesisContext",
    "SynthesisMetadata",
    "SynthesisRequest",
    "SynthesisResponse",
]
