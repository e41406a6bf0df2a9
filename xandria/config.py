"""
Xandria Engine Configuration

Dataclass configuration for the orchestrator, the diffusion simulator and the
evolution controller. Sections can be loaded from a JSON file:

    {
        "engine": {"operator_timeout": 10.0},
        "diffusion": {"kappa_max": 1.5},
        "controller": {"retune_interval": 5}
    }

Every section is validated against a JSON schema derived from the dataclass
fields; unknown keys are rejected.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Union
import json

import jsonschema

from xandria.errors import ValidationError
from xandria.operators.schema import format_error_path

_JSON_TYPES = {"float": "number", "int": "integer", "bool": "boolean"}


@dataclass
class EngineConfig:
    """Pipeline orchestrator configuration."""
    operator_timeout: float = 30.0        # seconds per operator call
    coherence_threshold: float = 0.8      # per-stage confidence below this is logged
    low_confidence_warning: float = 0.7   # per-stage confidence below this becomes a response warning
    history_limit: int = 100
    session_memory_limit: int = 100

    def __post_init__(self):
        if self.operator_timeout <= 0:
            raise ValidationError(f"operator_timeout must be positive, got {self.operator_timeout}")
        if self.history_limit < 1 or self.session_memory_limit < 1:
            raise ValidationError("history and session memory limits must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        _validate_section(cls, "engine", data)
        return cls(**data)


@dataclass
class DiffusionBounds:
    """
    Clamps and bands used by MeanRevertingDiffusion.optimize_parameters.

    The bands are the fixed thresholds of the retuning heuristic:
    - convergence ratio above slow_ratio raises kappa, below fast_ratio lowers it
    - stability above high_stability raises sigma, below low_stability lowers it
    """
    kappa_min: float = 0.1
    kappa_max: float = 2.0
    kappa_up: float = 1.1
    kappa_down: float = 0.9
    sigma_min: float = 0.01
    sigma_max: float = 0.5
    sigma_up: float = 1.05
    sigma_down: float = 0.9
    slow_ratio: float = 1.2
    fast_ratio: float = 0.8
    high_stability: float = 0.9
    low_stability: float = 0.7
    convergence_tolerance: float = 0.01

    def __post_init__(self):
        if self.kappa_min <= 0 or self.kappa_min > self.kappa_max:
            raise ValidationError("kappa bounds must satisfy 0 < kappa_min <= kappa_max")
        if self.sigma_min < 0 or self.sigma_min > self.sigma_max:
            raise ValidationError("sigma bounds must satisfy 0 <= sigma_min <= sigma_max")
        if self.convergence_tolerance <= 0:
            raise ValidationError("convergence_tolerance must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiffusionBounds":
        _validate_section(cls, "diffusion", data)
        return cls(**data)


@dataclass
class ControllerConfig:
    """Evolution controller configuration."""
    # Starting diffusion parameters
    kappa: float = 0.15
    theta: float = 0.85
    sigma: float = 0.08
    dt: float = 0.01
    initial_state: float = 0.5

    # Parameter derivation from the current state
    kappa_cap: float = 0.5
    sigma_floor: float = 0.02
    quality_reference: float = 0.9
    debt_reference: float = 0.1
    default_target_quality: float = 0.85

    # Iteration loop
    damping_factor: float = 0.1
    perturbation_scale: float = 0.02
    retune_interval: int = 10
    retune_horizon: int = 10
    target_convergence_time: float = 5.0
    default_max_iterations: int = 100

    # Sequences and history
    sequence_total_cap: int = 200
    sequence_strategy_cap: int = 50
    history_limit: int = 100

    def __post_init__(self):
        if self.retune_interval < 1 or self.retune_horizon < 1:
            raise ValidationError("retune_interval and retune_horizon must be at least 1")
        if self.history_limit < 1:
            raise ValidationError("history_limit must be at least 1")
        if not 0.0 <= self.damping_factor <= 1.0:
            raise ValidationError(f"damping_factor must be in [0, 1], got {self.damping_factor}")
        if not self.target_convergence_time > 0:
            raise ValidationError(
                f"target_convergence_time must be positive, got {self.target_convergence_time}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControllerConfig":
        _validate_section(cls, "controller", data)
        return cls(**data)


@dataclass
class XandriaConfig:
    """All configuration sections together."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    diffusion: DiffusionBounds = field(default_factory=DiffusionBounds)
    controller: ControllerConfig = field(default_factory=ControllerConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine.to_dict(),
            "diffusion": self.diffusion.to_dict(),
            "controller": self.controller.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "XandriaConfig":
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ValidationError(f"Invalid configuration at {format_error_path(e)}: {e.message}") from e
        return cls(
            engine=EngineConfig(**data.get("engine", {})),
            diffusion=DiffusionBounds(**data.get("diffusion", {})),
            controller=ControllerConfig(**data.get("controller", {})),
        )


def section_schema(cls) -> Dict[str, Any]:
    """JSON schema for one dataclass config section."""
    return {
        "type": "object",
        "properties": {f.name: {"type": _JSON_TYPES[f.type]} for f in fields(cls)},
        "additionalProperties": False,
    }


CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "engine": section_schema(EngineConfig),
        "diffusion": section_schema(DiffusionBounds),
        "controller": section_schema(ControllerConfig),
    },
    "additionalProperties": False,
}


def _validate_section(cls, name: str, data: Dict[str, Any]) -> None:
    try:
        jsonschema.validate(instance=data, schema=section_schema(cls))
    except jsonschema.ValidationError as e:
        raise ValidationError(f"Invalid {name} configuration at {format_error_path(e)}: {e.message}") from e


def load_config(path: Union[str, Path]) -> XandriaConfig:
    """Load configuration from a JSON file."""
    with open(Path(path), "r") as f:
        data = json.load(f)
    return XandriaConfig.from_dict(data)
