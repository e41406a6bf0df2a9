"""Test engine configuration sections and JSON loading."""
import json
import pytest
from pathlib import Path

from xandria.config import (
    CONFIG_SCHEMA,
    ControllerConfig,
    DiffusionBounds,
    EngineConfig,
    XandriaConfig,
    load_config,
)
from xandria.errors import ValidationError


class TestConfigSections:
    """Tests for individual configuration dataclasses."""

    def test_engine_defaults(self):
        config = EngineConfig()
        assert config.operator_timeout == 30.0
        assert config.coherence_threshold == 0.8
        assert config.history_limit == 100

    def test_diffusion_defaults(self):
        bounds = DiffusionBounds()
        assert (bounds.kappa_min, bounds.kappa_max) == (0.1, 2.0)
        assert (bounds.sigma_min, bounds.sigma_max) == (0.01, 0.5)
        assert bounds.convergence_tolerance == 0.01

    def test_controller_round_trip(self):
        config = ControllerConfig(retune_interval=5, damping_factor=0.2)
        assert ControllerConfig.from_dict(config.to_dict()) == config

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            EngineConfig(operator_timeout=0)

    def test_invalid_kappa_bounds(self):
        with pytest.raises(ValidationError):
            DiffusionBounds(kappa_min=3.0)

    def test_invalid_damping(self):
        with pytest.raises(ValidationError):
            ControllerConfig(damping_factor=1.5)

    @pytest.mark.parametrize("target", [0.0, -1.0, float("nan")])
    def test_invalid_target_convergence_time(self, target):
        with pytest.raises(ValidationError, match="target_convergence_time"):
            ControllerConfig(target_convergence_time=target)

    def test_target_convergence_time_checked_on_load(self):
        with pytest.raises(ValidationError):
            ControllerConfig.from_dict({"target_convergence_time": 0.0})

    def test_section_rejects_unknown_key(self):
        with pytest.raises(ValidationError, match="engine"):
            EngineConfig.from_dict({"operator_timeout": 5.0, "retries": 3})

    def test_section_rejects_wrong_type(self):
        with pytest.raises(ValidationError):
            ControllerConfig.from_dict({"retune_interval": "often"})


class TestXandriaConfig:
    """Tests for the combined configuration."""

    def test_round_trip(self):
        config = XandriaConfig(engine=EngineConfig(operator_timeout=5.0))
        restored = XandriaConfig.from_dict(config.to_dict())
        assert restored == config

    def test_partial_sections(self):
        config = XandriaConfig.from_dict({"controller": {"retune_interval": 4}})
        assert config.controller.retune_interval == 4
        assert config.engine == EngineConfig()

    def test_unknown_section_rejected(self):
        with pytest.raises(ValidationError):
            XandriaConfig.from_dict({"network": {}})

    def test_schema_covers_every_field(self):
        engine_props = CONFIG_SCHEMA["properties"]["engine"]["properties"]
        assert set(engine_props) == set(EngineConfig().to_dict())
        assert engine_props["history_limit"] == {"type": "integer"}

    def test_load_config(self, tmp_path: Path):
        path = tmp_path / "xandria.json"
        path.write_text(json.dumps({
            "engine": {"operator_timeout": 10.0},
            "diffusion": {"kappa_max": 1.5},
        }))

        config = load_config(path)

        assert config.engine.operator_timeout == 10.0
        assert config.diffusion.kappa_max == 1.5
        assert config.controller == ControllerConfig()
