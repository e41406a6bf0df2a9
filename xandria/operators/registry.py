"""
Operator Registry

Owns the operator table and its category/triad/scope indices.

Lifecycle:
1. register() every operator (descriptor validation happens here)
2. validate_dependency_graph() / seal(): three-colour DFS over declared
   dependencies; the registry is read-only afterwards
3. execute() any number of times, from any number of concurrent runs

execute() never raises for operator-level problems (unknown id, unsatisfied
dependency, timeout, exception inside the operator); it returns a failed
OperatorResult instead.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple
import asyncio
import inspect
import logging
import math
import time
import tracemalloc

from xandria.errors import (
    CyclicDependencyError,
    DependencyUnsatisfiedError,
    ExecutionTimeout,
    NotFoundError,
    OperatorFailure,
    UnresolvedDependencyError,
    ValidationError,
)
from xandria.operators.contract import (
    Category,
    ExecutionContext,
    OperatorDescriptor,
    OperatorEntry,
    OperatorResult,
    ResultMetadata,
    Triad,
    coerce_enum,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# DFS marks
_UNVISITED, _VISITING, _VISITED = 0, 1, 2


class OperatorRegistry:
    """
    Registry of operators keyed by id.

    Args:
        timeout: per-call deadline in seconds
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        if timeout <= 0:
            raise ValidationError(f"timeout must be positive, got {timeout}")
        self.timeout = timeout
        self._operators: Dict[str, OperatorEntry] = {}
        self._categories: Dict[Category, Set[str]] = {c: set() for c in Category}
        self._triads: Dict[Triad, Set[str]] = {t: set() for t in Triad}
        self._scopes: Dict[str, Set[str]] = {}
        self._dependents: Dict[str, Set[str]] = {}
        self._sealed = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, descriptor: OperatorDescriptor,
                 executable: Callable[..., Any],
                 operator_id: Optional[str] = None) -> OperatorEntry:
        """
        Register an operator under operator_id (defaults to descriptor.id).

        Raises:
            ValidationError: invalid descriptor, duplicate id, sealed registry
        """
        key = descriptor.id if operator_id is None else operator_id
        if self._sealed:
            raise ValidationError(f"Registry is sealed; cannot register operator {key}")
        if key in self._operators:
            raise ValidationError(f"Operator {key} is already registered")
        if not callable(executable):
            raise ValidationError(f"Operator {key} executable is not callable")

        descriptor = self._validate_descriptor(key, descriptor)
        entry = OperatorEntry(descriptor=descriptor, executable=executable)

        self._operators[key] = entry
        self._categories[descriptor.category].add(key)
        self._triads[descriptor.triad].add(key)
        self._scopes.setdefault(descriptor.scope, set()).add(key)
        for dep in descriptor.dependencies:
            self._dependents.setdefault(dep, set()).add(key)

        logger.debug(f"Registered operator {key} ({descriptor.symbol})")
        return entry

    def register_from_dict(self, data: Dict[str, Any],
                           executable: Callable[..., Any]) -> OperatorEntry:
        """Register an operator described by a JSON-style dictionary."""
        return self.register(OperatorDescriptor.from_dict(data), executable)

    def register_many(self, entries: Iterable[Tuple[OperatorDescriptor, Callable[..., Any]]]) -> int:
        count = 0
        for descriptor, executable in entries:
            self.register(descriptor, executable)
            count += 1
        return count

    def _validate_descriptor(self, key: str, descriptor: OperatorDescriptor) -> OperatorDescriptor:
        if not descriptor.id or descriptor.id != key:
            raise ValidationError(f"Operator {key} has invalid ID in metadata: {descriptor.id!r}")
        if not descriptor.symbol:
            raise ValidationError(f"Operator {key} missing symbol")
        try:
            triad = coerce_enum(Triad, descriptor.triad)
        except ValueError:
            raise ValidationError(f"Operator {key} has invalid triad: {descriptor.triad}") from None
        try:
            category = coerce_enum(Category, descriptor.category)
        except ValueError:
            raise ValidationError(f"Operator {key} has invalid category: {descriptor.category}") from None
        complexity = descriptor.complexity
        if isinstance(complexity, bool) or not isinstance(complexity, int) or not 1 <= complexity <= 10:
            raise ValidationError(f"Operator {key} has invalid complexity: {complexity}")
        stability = descriptor.stability
        if not isinstance(stability, (int, float)) or math.isnan(stability) or not 0.0 <= stability <= 1.0:
            raise ValidationError(f"Operator {key} has invalid stability: {stability}")
        if not isinstance(descriptor.scope, str) or not descriptor.scope:
            raise ValidationError(f"Operator {key} missing scope")

        # Normalise string enums and list-valued fields into the frozen shape
        return OperatorDescriptor(
            id=descriptor.id,
            symbol=descriptor.symbol,
            triad=triad,
            category=category,
            scope=descriptor.scope,
            description=descriptor.description,
            parameters=tuple(descriptor.parameters),
            return_type=descriptor.return_type,
            complexity=complexity,
            stability=float(stability),
            dependencies=tuple(descriptor.dependencies),
        )

    # ------------------------------------------------------------------
    # Dependency graph
    # ------------------------------------------------------------------

    def validate_dependency_graph(self) -> None:
        """
        Check the whole dependency graph and seal the registry.

        Raises:
            UnresolvedDependencyError: a dependency id is not registered
            CyclicDependencyError: the graph contains a cycle
        """
        marks: Dict[str, int] = {op_id: _UNVISITED for op_id in self._operators}
        for op_id in self._operators:
            if marks[op_id] == _UNVISITED:
                self._visit(op_id, marks, [])
        self._sealed = True
        logger.info(f"Dependency graph validated for {len(self._operators)} operators")

    seal = validate_dependency_graph

    def _visit(self, op_id: str, marks: Dict[str, int], path: List[str]) -> None:
        marks[op_id] = _VISITING
        path.append(op_id)
        for dep in self._operators[op_id].descriptor.dependencies:
            if dep not in self._operators:
                raise UnresolvedDependencyError(
                    f"Operator {op_id} depends on missing operator: {dep}"
                )
            if marks[dep] == _VISITING:
                cycle = path[path.index(dep):] + [dep]
                raise CyclicDependencyError(
                    f"Circular dependency detected: {' -> '.join(cycle)}", cycle=cycle
                )
            if marks[dep] == _UNVISITED:
                self._visit(dep, marks, path)
        path.pop()
        marks[op_id] = _VISITED

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, operator_id: str, context: ExecutionContext,
                      timeout: Optional[float] = None) -> OperatorResult:
        """
        Execute one operator under a deadline.

        timeout overrides the registry deadline for this call only. The graph
        is validated on first use if seal() was not called.
        """
        if not self._sealed:
            self.validate_dependency_graph()
        deadline = self.timeout if timeout is None else timeout

        start = time.time()
        start_memory = _traced_memory()

        try:
            entry = self.require(operator_id)
            self._check_dependencies(entry, context)
            output = await self._run_with_timeout(entry, context, deadline)
            payload, inner_confidence, op_metadata, warnings = _unpack_output(operator_id, output)
        except (NotFoundError, DependencyUnsatisfiedError, ExecutionTimeout) as e:
            logger.warning(f"Operator {operator_id} failed: {e}")
            return OperatorResult.failure(
                operator_id, str(e),
                execution_time_ms=(time.time() - start) * 1000,
                memory_delta=_traced_memory() - start_memory,
            )
        except OperatorFailure as e:
            logger.exception(f"Operator {operator_id} raised")
            return OperatorResult.failure(
                operator_id, str(e),
                execution_time_ms=(time.time() - start) * 1000,
                memory_delta=_traced_memory() - start_memory,
            )

        confidence = self.calculate_confidence(entry.descriptor, inner_confidence, context)

        return OperatorResult(
            success=True,
            result=payload,
            metadata=ResultMetadata(
                execution_time_ms=(time.time() - start) * 1000,
                memory_delta=_traced_memory() - start_memory,
                operator_id=operator_id,
                confidence=confidence,
            ),
            warnings=warnings,
            operator_metadata=op_metadata,
        )

    def _check_dependencies(self, entry: OperatorEntry, context: ExecutionContext) -> None:
        for dep in entry.descriptor.dependencies:
            if not context.succeeded(dep):
                raise DependencyUnsatisfiedError(
                    f"Dependency not satisfied: {dep} for operator {entry.id}"
                )

    async def _run_with_timeout(self, entry: OperatorEntry, context: ExecutionContext,
                                deadline: float) -> Any:
        fn = entry.executable
        try:
            if inspect.iscoroutinefunction(fn):
                call = fn(context)
            else:
                # Blocking callables run on a worker thread; on timeout the
                # thread is abandoned, not stopped.
                call = _call_and_await(fn, context)
            return await asyncio.wait_for(call, timeout=deadline)
        except asyncio.TimeoutError:
            raise ExecutionTimeout(
                f"Operator {entry.id} execution timeout after {deadline * 1000:.0f}ms"
            ) from None
        except Exception as e:
            raise OperatorFailure(entry.id, f"{type(e).__name__}: {e}") from e

    @staticmethod
    def calculate_confidence(descriptor: OperatorDescriptor,
                             inner_confidence: Optional[float],
                             context: ExecutionContext) -> float:
        """stability x inner confidence x state consistency, clamped to [0, 1]."""
        confidence = descriptor.stability
        if inner_confidence is not None:
            confidence *= inner_confidence
        consistency = context.state.get("consistency") if context.state else None
        if isinstance(consistency, (int, float)) and not isinstance(consistency, bool):
            confidence *= consistency
        if math.isnan(confidence):
            return 0.0
        return max(0.0, min(1.0, confidence))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, operator_id: str) -> Optional[OperatorEntry]:
        return self._operators.get(operator_id)

    def require(self, operator_id: str) -> OperatorEntry:
        if operator_id not in self._operators:
            raise NotFoundError(f"Operator not found: {operator_id}")
        return self._operators[operator_id]

    def get_descriptor(self, operator_id: str) -> Optional[OperatorDescriptor]:
        entry = self._operators.get(operator_id)
        return entry.descriptor if entry else None

    def get_by_category(self, category) -> Dict[str, OperatorDescriptor]:
        try:
            key = coerce_enum(Category, category)
        except ValueError:
            return {}
        return self._descriptors(self._categories[key])

    def get_by_triad(self, triad) -> Dict[str, OperatorDescriptor]:
        try:
            key = coerce_enum(Triad, triad)
        except ValueError:
            return {}
        return self._descriptors(self._triads[key])

    def get_by_scope(self, scope: str) -> Dict[str, OperatorDescriptor]:
        return self._descriptors(self._scopes.get(scope, set()))

    def all_descriptors(self) -> Dict[str, OperatorDescriptor]:
        return {op_id: e.descriptor for op_id, e in self._operators.items()}

    def dependents(self, operator_id: str) -> Set[str]:
        """Operators that declare operator_id as a dependency."""
        return set(self._dependents.get(operator_id, set()))

    def _descriptors(self, ids: Iterable[str]) -> Dict[str, OperatorDescriptor]:
        # Registration order, not set order
        wanted = set(ids)
        return {op_id: e.descriptor for op_id, e in self._operators.items() if op_id in wanted}

    def __contains__(self, operator_id: object) -> bool:
        return operator_id in self._operators

    def __len__(self) -> int:
        return len(self._operators)

    def get_statistics(self) -> Dict[str, Any]:
        categories: Dict[str, int] = {}
        triads: Dict[str, int] = {}
        scopes: Dict[str, int] = {}
        total_complexity = 0
        total_stability = 0.0

        for entry in self._operators.values():
            meta = entry.descriptor
            categories[meta.category.value] = categories.get(meta.category.value, 0) + 1
            triads[meta.triad.value] = triads.get(meta.triad.value, 0) + 1
            scopes[meta.scope] = scopes.get(meta.scope, 0) + 1
            total_complexity += meta.complexity
            total_stability += meta.stability

        n = len(self._operators)
        return {
            "total_operators": n,
            "categories": categories,
            "triads": triads,
            "scopes": scopes,
            "average_complexity": total_complexity / n if n else 0.0,
            "average_stability": total_stability / n if n else 0.0,
        }


async def _call_and_await(fn: Callable[..., Any], context: ExecutionContext) -> Any:
    result = await asyncio.to_thread(fn, context)
    if inspect.isawaitable(result):
        result = await result
    return result


def _unpack_output(operator_id: str,
                   output: Any) -> Tuple[Any, Optional[float], Dict[str, Any], Tuple[str, ...]]:
    """
    Split an operator return value into (payload, confidence, metadata, warnings).

    A mapping with a "result" key is the contract envelope; anything else is
    the payload, and a mapping payload may carry its own "confidence".

    Raises:
        OperatorFailure: if the envelope's metadata or warnings are malformed
    """
    if isinstance(output, Mapping) and "result" in output:
        payload = output["result"]
        confidence = _as_confidence(output.get("confidence"))
        raw_metadata = output.get("metadata") or {}
        raw_warnings = output.get("warnings") or ()
        if not isinstance(raw_metadata, Mapping):
            raise OperatorFailure(
                operator_id,
                f"Malformed result envelope: metadata must be a mapping, "
                f"got {type(raw_metadata).__name__}",
            )
        if isinstance(raw_warnings, str):
            raw_warnings = (raw_warnings,)
        try:
            warnings = tuple(str(w) for w in raw_warnings)
        except TypeError:
            raise OperatorFailure(
                operator_id,
                f"Malformed result envelope: warnings must be a sequence, "
                f"got {type(raw_warnings).__name__}",
            ) from None
        return payload, confidence, dict(raw_metadata), warnings
    if isinstance(output, Mapping):
        return output, _as_confidence(output.get("confidence")), {}, ()
    return output, None, {}, ()


def _as_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _traced_memory() -> int:
    if not tracemalloc.is_tracing():
        return 0
    current, _peak = tracemalloc.get_traced_memory()
    return current
