"""Synthesis request and response shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import time

from pydantic import BaseModel, Field

from xandria.operators.contract import OperatorResult

DOMAINS = ("gaming", "software", "ai", "system")
SCOPES = ("project", "module", "function", "component")


class SynthesisContext(BaseModel):
    """Domain and scope of a synthesis request."""
    domain: Optional[str] = None
    scope: str = "project"
    constraints: Dict[str, Any] = Field(default_factory=dict)
    preferences: Dict[str, Any] = Field(default_factory=dict)


class RequestMetadata(BaseModel):
    session_id: str = "default-session"
    user_id: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)
    version: str = "3.0"


class SynthesisRequest(BaseModel):
    """Request body for PipelineOrchestrator.synthesize."""
    intent: Any = None
    context: SynthesisContext = Field(default_factory=SynthesisContext)
    pipeline: List[str] = Field(default_factory=list)
    metadata: RequestMetadata = Field(default_factory=RequestMetadata)


@dataclass
class SynthesisMetadata:
    execution_time_ms: float = 0.0
    operators_executed: int = 0
    coherence_score: float = 0.0
    confidence: float = 0.0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_time_ms": self.execution_time_ms,
            "operators_executed": self.operators_executed,
            "coherence_score": self.coherence_score,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass
class SynthesisResponse:
    """Result of a synthesis run: aggregate payload plus one result per stage."""
    success: bool
    result: Any = None
    pipeline: List[OperatorResult] = field(default_factory=list)
    metadata: SynthesisMetadata = field(default_factory=SynthesisMetadata)
    session_id: str = "default-session"

    @property
    def failed_stages(self) -> List[OperatorResult]:
        return [r for r in self.pipeline if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "pipeline": [r.to_dict() for r in self.pipeline],
            "metadata": self.metadata.to_dict(),
            "session_id": self.session_id,
        }
