"""
Pipeline Orchestrator

Sequences operator execution through an injected OperatorRegistry and
aggregates the per-stage results of a synthesis request.

Key classes:
- PipelineOrchestrator: synthesize / execute_pipeline / generate_pipeline /
  optimize_pipeline / monitor_coherence plus history and health reporting

Pipelines never short-circuit: every requested stage is attempted and the
returned list has exactly one OperatorResult per requested id.
"""

from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Sequence
import logging
import time

from xandria.config import EngineConfig
from xandria.errors import ValidationError
from xandria.governance.coherence_monitor import CoherenceMonitor, CoherenceReport, HealthReport
from xandria.operators.contract import Environment, ExecutionContext, OperatorResult
from xandria.operators.registry import OperatorRegistry
from xandria.runtime.synthesis import SynthesisMetadata, SynthesisRequest, SynthesisResponse

logger = logging.getLogger(__name__)

ANALYSIS_PHASE = ["L1", "L3", "L4", "L5", "L6"]
GOVERNANCE_PHASE = ["L63", "L67", "L69", "L72"]

# domain -> synthesis block followed by integration block
DOMAIN_PHASES: Dict[str, List[str]] = {
    "gaming": ["L21", "L23", "L25", "L31", "L37", "L39", "L41", "L48"],
    "software": ["L19", "L22", "L27", "L29", "L43", "L50", "L52", "L54"],
    "ai": ["L13", "L14", "L17", "L18", "L57", "L64", "L65", "L72"],
    "system": ["L37", "L40", "L42", "L53", "L60", "L63", "L67", "L69"],
}

ADAPTATION_LEVELS: Dict[str, float] = {
    "gaming": 0.8,
    "software": 0.6,
    "ai": 0.9,
    "system": 0.7,
}
DEFAULT_ADAPTATION_LEVEL = 0.7
DEFAULT_SESSION_COHERENCE = 0.8


def pipeline_coherence(results: Sequence[OperatorResult]) -> float:
    """
    Weighted mean of stage confidences with weight 1/(index+1).

    The weights decrease along the pipeline, so earlier stages dominate. A
    failed stage contributes confidence 0.
    """
    if not results:
        return 0.0
    total_weight = 0.0
    weighted = 0.0
    for index, result in enumerate(results):
        weight = 1.0 / (index + 1)
        coherence = result.confidence if result.success else 0.0
        total_weight += weight
        weighted += coherence * weight
    return weighted / total_weight if total_weight > 0 else 0.0


def pipeline_confidence(results: Sequence[OperatorResult]) -> float:
    """Unweighted mean of stage confidences."""
    if not results:
        return 0.0
    return sum(r.confidence for r in results) / len(results)


def aggregate_results(results: Sequence[OperatorResult]) -> Any:
    """Payload of the last successful stage, else the first stage's payload."""
    for result in reversed(results):
        if result.success and result.result is not None:
            return result.result
    return results[0].result if results else None


def success_rates(history: Iterable[SynthesisResponse]) -> Dict[str, float]:
    """Per-operator successes / (successes + failures); 1.0 without failures."""
    successes: Dict[str, int] = {}
    failures: Dict[str, int] = {}
    for response in history:
        for result in response.pipeline:
            bucket = successes if result.success else failures
            bucket[result.operator_id] = bucket.get(result.operator_id, 0) + 1

    rates: Dict[str, float] = {}
    for op_id in set(successes) | set(failures):
        s = successes.get(op_id, 0)
        f = failures.get(op_id, 0)
        rates[op_id] = s / (s + f) if f > 0 else 1.0
    return rates


class PipelineOrchestrator:
    """
    Synthesis engine over a shared OperatorRegistry.

    The registry is referenced, not owned; several orchestrators (and
    evolution controllers) may run against one sealed registry concurrently.
    Each stage runs under config.operator_timeout, passed per call; the
    registry's own deadline is left untouched.
    """

    def __init__(self, registry: OperatorRegistry, config: EngineConfig = None,
                 monitor: CoherenceMonitor = None):
        self.registry = registry
        self.config = config or EngineConfig()
        self.monitor = monitor or CoherenceMonitor()
        self.execution_history: deque = deque(maxlen=self.config.history_limit)
        self.coherence_memory: "OrderedDict[str, float]" = OrderedDict()

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    def validate_request(self, request: SynthesisRequest) -> None:
        """
        Raises:
            ValidationError: empty intent, missing domain, empty or unknown pipeline
        """
        if request.intent is None or request.intent == "" or request.intent == {}:
            raise ValidationError("Synthesis request must include intent")
        if not request.context.domain:
            raise ValidationError("Synthesis request must specify context domain")
        if not request.pipeline:
            raise ValidationError("Synthesis request must include operator pipeline")
        for operator_id in request.pipeline:
            if operator_id not in self.registry:
                raise ValidationError(f"Unknown operator in pipeline: {operator_id}")

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResponse:
        """
        Validate the request, run its pipeline and aggregate the outcome.

        Raises:
            ValidationError: if the request is invalid
        """
        start = time.time()
        self.validate_request(request)
        logger.info(
            f"Starting synthesis for session {request.metadata.session_id} "
            f"with {len(request.pipeline)} operators"
        )

        context = ExecutionContext(
            input=request.intent,
            config=dict(request.context.constraints),
            state={
                "domain": request.context.domain,
                "scope": request.context.scope,
                "coherence": self.session_coherence(),
                "adaptation_level": ADAPTATION_LEVELS.get(
                    request.context.domain, DEFAULT_ADAPTATION_LEVEL
                ),
            },
            environment=Environment(
                timestamp=request.metadata.timestamp,
                session_id=request.metadata.session_id,
                user_id=request.metadata.user_id,
                context_scope=[request.context.domain, request.context.scope],
            ),
        )

        results = await self.execute_pipeline(request.pipeline, context)

        coherence = pipeline_coherence(results)
        confidence = pipeline_confidence(results)
        warnings = self._collect_warnings(results) + self.unsatisfiable_dependencies(request.pipeline)

        response = SynthesisResponse(
            success=all(r.success for r in results),
            result=aggregate_results(results),
            pipeline=results,
            metadata=SynthesisMetadata(
                execution_time_ms=(time.time() - start) * 1000,
                operators_executed=len(results),
                coherence_score=coherence,
                confidence=confidence,
                warnings=_dedupe(warnings),
                errors=_dedupe(e for r in results for e in r.errors),
            ),
            session_id=request.metadata.session_id,
        )

        self._remember_session(request.metadata.session_id, coherence)
        self.execution_history.append(response)

        logger.info(
            f"Synthesis completed in {response.metadata.execution_time_ms:.1f}ms "
            f"with coherence {coherence:.3f}"
        )
        return response

    async def execute_pipeline(self, operator_ids: Sequence[str],
                               context: ExecutionContext) -> List[OperatorResult]:
        """
        Run operator_ids in order.

        Each stage sees every earlier result. A successful stage's payload is
        the next stage's input; after a failed stage the next input is None.
        """
        results: List[OperatorResult] = []
        current_input = context.input
        logger.debug(f"Executing pipeline with {len(operator_ids)} operators")

        for operator_id in operator_ids:
            stage_context = replace(
                context,
                input=current_input,
                previous_results=tuple(results),
            )
            try:
                result = await self.registry.execute(
                    operator_id, stage_context, timeout=self.config.operator_timeout
                )
            except Exception as e:
                # One result per requested stage, even if the registry itself breaks
                logger.exception(f"Operator {operator_id} failed outside the registry")
                result = OperatorResult.failure(operator_id, f"{type(e).__name__}: {e}")

            results.append(result)

            if result.success:
                current_input = result.result
            else:
                current_input = None

            if result.confidence < self.config.coherence_threshold:
                logger.warning(
                    f"Low confidence ({result.confidence:.3f}) for operator {operator_id}"
                )

        return results

    def _collect_warnings(self, results: Sequence[OperatorResult]) -> List[str]:
        warnings: List[str] = []
        for result in results:
            warnings.extend(result.warnings)
            if result.confidence < self.config.low_confidence_warning:
                warnings.append(
                    f"Low confidence ({result.confidence:.2f}) for operator {result.operator_id}"
                )
        return warnings

    # ------------------------------------------------------------------
    # Pipeline construction
    # ------------------------------------------------------------------

    def generate_pipeline(self, request: SynthesisRequest) -> List[str]:
        """Analysis phase, the domain's block, then the governance phase."""
        domain = request.context.domain
        pipeline = list(ANALYSIS_PHASE) + list(DOMAIN_PHASES.get(domain, [])) + list(GOVERNANCE_PHASE)

        for warning in self.unsatisfiable_dependencies(pipeline):
            logger.warning(warning)
        logger.debug(f"Generated pipeline with {len(pipeline)} operators for {domain} domain")
        return pipeline

    def unsatisfiable_dependencies(self, operator_ids: Sequence[str]) -> List[str]:
        """
        Declared dependencies that no earlier stage of this pipeline provides.

        Such stages always fail their per-call dependency check. Unknown ids
        are skipped; validate_request reports those.
        """
        warnings: List[str] = []
        seen: set = set()
        for operator_id in operator_ids:
            descriptor = self.registry.get_descriptor(operator_id)
            if descriptor is not None:
                for dep in descriptor.dependencies:
                    if dep not in seen:
                        warnings.append(
                            f"Operator {operator_id} depends on {dep}, "
                            f"which does not run earlier in the pipeline"
                        )
            seen.add(operator_id)
        return warnings

    def optimize_pipeline(self, operator_ids: Sequence[str],
                          history: Iterable[SynthesisResponse] = None) -> List[str]:
        """Stable sort by descending historical success ratio."""
        history = list(self.execution_history if history is None else history)
        rates = success_rates(history)
        optimized = sorted(operator_ids, key=lambda op_id: -rates.get(op_id, 1.0))
        logger.debug(f"Pipeline optimized based on {len(history)} historical executions")
        return optimized

    def monitor_coherence(self, response: SynthesisResponse) -> CoherenceReport:
        return self.monitor.monitor_response(response)

    # ------------------------------------------------------------------
    # History, sessions, statistics
    # ------------------------------------------------------------------

    def session_coherence(self) -> float:
        """Mean coherence of recorded runs, clamped to [0.5, 1.0]; 0.8 when none."""
        timed = [h for h in self.execution_history if h.metadata.execution_time_ms > 0]
        if not timed:
            return DEFAULT_SESSION_COHERENCE
        avg = sum(h.metadata.coherence_score for h in timed) / len(timed)
        return max(0.5, min(1.0, avg))

    def _remember_session(self, session_id: str, coherence: float) -> None:
        self.coherence_memory[session_id] = coherence
        self.coherence_memory.move_to_end(session_id)
        while len(self.coherence_memory) > self.config.session_memory_limit:
            self.coherence_memory.popitem(last=False)

    def get_execution_history(self, limit: int = 10) -> List[SynthesisResponse]:
        return list(self.execution_history)[-limit:]

    def clear_history(self) -> None:
        self.execution_history.clear()
        self.coherence_memory.clear()
        logger.info("Execution history cleared")

    def update_config(self, **changes) -> EngineConfig:
        """Replace configuration fields; history keeps its contents up to the new limit."""
        self.config = replace(self.config, **changes)
        if self.execution_history.maxlen != self.config.history_limit:
            self.execution_history = deque(self.execution_history, maxlen=self.config.history_limit)
        return self.config

    def get_statistics(self) -> Dict[str, Any]:
        registry_stats = self.registry.get_statistics()
        successful = [h for h in self.execution_history if h.success]
        n = len(successful)
        return {
            "total_operators": registry_stats["total_operators"],
            "operators_by_category": registry_stats["categories"],
            "operators_by_triad": registry_stats["triads"],
            "execution_history_size": len(self.execution_history),
            "average_coherence": sum(h.metadata.coherence_score for h in successful) / n if n else 0.0,
            "average_confidence": sum(h.metadata.confidence for h in successful) / n if n else 0.0,
        }

    def health_check(self) -> HealthReport:
        stats = self.get_statistics()
        recent = list(self.execution_history)[-10:]
        return self.monitor.health(
            average_coherence=stats["average_coherence"],
            average_confidence=stats["average_confidence"],
            operators_available=stats["total_operators"],
            recent_execution_times_ms=[h.metadata.execution_time_ms for h in recent],
        )


def _dedupe(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))
