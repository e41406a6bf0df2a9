"""Test mean-reverting diffusion simulator."""
import math
import numpy as np
import pytest

from xandria.config import DiffusionBounds
from xandria.errors import ParameterError
from xandria.stochastic.diffusion import (
    DiffusionParameters,
    DiffusionState,
    EvolutionTrajectory,
    MeanRevertingDiffusion,
)


@pytest.fixture
def deterministic() -> MeanRevertingDiffusion:
    """sigma = 0: pure exponential decay toward theta."""
    return MeanRevertingDiffusion(
        DiffusionParameters(kappa=0.5, theta=0.8, sigma=0.0, dt=0.01, initial_state=0.2)
    )


def _trajectory(values, theta=0.8, dt=0.01, kappa=0.5, sigma=0.1) -> EvolutionTrajectory:
    params = DiffusionParameters(kappa=kappa, theta=theta, sigma=sigma, dt=dt, initial_state=values[0])
    states = [DiffusionState(value=v, time=i * dt) for i, v in enumerate(values)]
    return EvolutionTrajectory(
        states=states,
        parameters=params,
        total_time=(len(values) - 1) * dt,
        final_state=values[-1],
        convergence_achieved=False,
        net_change=values[0] - values[-1],
    )


class TestDiffusionParameters:
    """Tests for parameter validation."""

    @pytest.mark.parametrize("changes", [
        {"kappa": 0.0},
        {"kappa": -1.0},
        {"sigma": -0.01},
        {"dt": 0.0},
        {"dt": 1.5},
    ])
    def test_rejected(self, changes):
        with pytest.raises(ParameterError):
            DiffusionParameters(**changes)

    def test_dt_of_one_accepted(self):
        assert DiffusionParameters(dt=1.0).dt == 1.0

    def test_update_rejects_invalid(self, deterministic):
        with pytest.raises(ParameterError):
            deterministic.update_parameters(kappa=-0.5)
        assert deterministic.parameters.kappa == 0.5

    def test_update_rejects_unknown_field(self, deterministic):
        with pytest.raises(ParameterError, match="Unknown"):
            deterministic.update_parameters(mu=0.3)

    def test_update_and_reset(self, deterministic):
        deterministic.update_parameters(theta=0.6, initial_state=0.9)
        assert deterministic.parameters.theta == 0.6
        deterministic.reset()
        assert deterministic.parameters.initial_state == 0.5
        assert deterministic.parameters.theta == 0.6


class TestEvolve:
    """Tests for trajectory simulation."""

    def test_length_includes_initial_state(self, deterministic):
        trajectory = deterministic.evolve(25)
        assert len(trajectory.states) == 26
        assert trajectory.states[0].value == 0.2
        assert trajectory.states[0].time == 0.0
        assert trajectory.total_time == pytest.approx(0.25)

    def test_zero_steps(self, deterministic):
        trajectory = deterministic.evolve(0)
        assert len(trajectory.states) == 1
        assert trajectory.final_state == 0.2
        assert trajectory.net_change == 0.0

    def test_negative_steps_rejected(self, deterministic):
        with pytest.raises(ParameterError):
            deterministic.evolve(-1)

    def test_noiseless_convergence_is_monotonic(self, deterministic):
        """Test sigma = 0 approaches theta monotonically and converges."""
        trajectory = deterministic.evolve(1000)
        values = trajectory.values

        assert np.all(np.diff(values) > 0)
        assert np.all(values <= 0.8)
        assert abs(trajectory.final_state - 0.8) < 0.01
        assert trajectory.convergence_achieved is True
        assert trajectory.net_change == pytest.approx(0.2 - trajectory.final_state)

    def test_prediction_matches_simulation(self, deterministic):
        """Test the closed-form mean tracks the noiseless simulation."""
        trajectory = deterministic.evolve(500)
        prediction = deterministic.predict_future_state(0.2, trajectory.total_time)

        assert prediction.predicted_state == pytest.approx(trajectory.final_state, abs=1e-3)
        assert prediction.variance == 0.0
        assert prediction.confidence == 1.0

    def test_states_clamped(self):
        engine = MeanRevertingDiffusion(
            DiffusionParameters(kappa=0.1, theta=0.99, sigma=2.0, dt=1.0, initial_state=0.99),
            seed=3,
        )
        values = engine.evolve(200).values
        assert values.min() >= 0.0
        assert values.max() <= 1.0

    def test_seed_reproducible(self):
        params = DiffusionParameters(sigma=0.2)
        a = MeanRevertingDiffusion(params, seed=42).evolve(50).values
        b = MeanRevertingDiffusion(params, seed=42).evolve(50).values
        c = MeanRevertingDiffusion(params, seed=7).evolve(50).values

        np.testing.assert_array_equal(a, b)
        assert not np.array_equal(a, c)

    def test_injected_generator(self):
        rng = np.random.default_rng(1)
        engine = MeanRevertingDiffusion(DiffusionParameters(sigma=0.2), rng=rng)
        assert engine.rng is rng

    def test_step_records_components(self, deterministic):
        state = deterministic.step(0.2, 0.0)
        assert state.drift == pytest.approx(0.5 * 0.6 * 0.01)
        assert state.diffusion == 0.0
        assert state.equilibrium_distance == pytest.approx(0.8 - state.value)
        assert state.convergence_rate == pytest.approx(0.5 * state.equilibrium_distance)

    def test_evolve_many(self, deterministic):
        trajectories = deterministic.evolve_many([0.1, 0.5, 0.9], 100)

        assert [t.states[0].value for t in trajectories] == [0.1, 0.5, 0.9]
        assert all(t.parameters.kappa == 0.5 for t in trajectories)
        assert trajectories[2].final_state < 0.9
        assert deterministic.parameters.initial_state == 0.2


class TestPrediction:
    """Tests for predict_future_state."""

    def test_at_equilibrium_is_finite(self, deterministic):
        """Test current == theta gives zero time to convergence, not NaN/inf."""
        prediction = deterministic.predict_future_state(0.8, 1.0)
        assert prediction.time_to_convergence == 0.0
        assert prediction.predicted_state == pytest.approx(0.8)

    def test_within_tolerance(self, deterministic):
        assert deterministic.predict_future_state(0.805, 1.0).time_to_convergence == 0.0

    def test_time_to_convergence(self, deterministic):
        prediction = deterministic.predict_future_state(0.2, 1.0)
        assert prediction.time_to_convergence == pytest.approx(abs(math.log(0.01 / 0.6)) / 0.5)

    def test_variance_and_confidence(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.5, theta=0.5, sigma=0.2))
        prediction = engine.predict_future_state(0.5, 2.0)

        expected_variance = (0.04 / 1.0) * (1 - math.exp(-2.0))
        assert prediction.variance == pytest.approx(expected_variance)
        assert prediction.confidence == 0.1


class TestOptimizeParameters:
    """Tests for the retuning heuristic."""

    def test_slow_convergence_raises_kappa(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.5, theta=0.8, sigma=0.1))
        # never reaches theta; total time 10 vs target 5
        trajectory = _trajectory([0.5] * 1001)

        optimized = engine.optimize_parameters(trajectory, 5.0)

        assert optimized.kappa == pytest.approx(0.55)
        # constant trajectory: stability 1.0 -> sigma raised
        assert optimized.sigma == pytest.approx(0.105)
        assert engine.parameters.kappa == 0.5

    def test_kappa_capped(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=1.95, theta=0.8, sigma=0.1))
        optimized = engine.optimize_parameters(_trajectory([0.5] * 1001), 5.0)
        assert optimized.kappa == 2.0

    @pytest.mark.parametrize("target", [0.0, -5.0])
    def test_non_positive_target_rejected(self, target):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.5, theta=0.8, sigma=0.1))
        with pytest.raises(ParameterError, match="target_convergence_time"):
            engine.optimize_parameters(_trajectory([0.5, 0.6]), target)

    def test_fast_convergence_lowers_kappa(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.5, theta=0.8, sigma=0.1))
        optimized = engine.optimize_parameters(_trajectory([0.8, 0.8, 0.8]), 5.0)
        assert optimized.kappa == pytest.approx(0.45)

    def test_kappa_floored(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.105, theta=0.8, sigma=0.1))
        optimized = engine.optimize_parameters(_trajectory([0.8, 0.8]), 5.0)
        assert optimized.kappa == 0.1

    def test_on_target_keeps_kappa(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.5, theta=0.8, sigma=0.1))
        values = [0.5] * 500 + [0.8]
        assert engine.optimize_parameters(_trajectory(values), 5.0).kappa == 0.5

    def test_unstable_trajectory_lowers_sigma(self):
        engine = MeanRevertingDiffusion(DiffusionParameters(kappa=0.5, theta=0.8, sigma=0.2))
        # variance 0.25 -> stability 0
        values = [0.0, 1.0] * 10
        assert MeanRevertingDiffusion.trajectory_stability(_trajectory(values)) == 0.0
        assert engine.optimize_parameters(_trajectory(values), 5.0).sigma == pytest.approx(0.18)

    def test_sigma_floor_and_cap(self):
        bounds = DiffusionBounds()
        low = MeanRevertingDiffusion(DiffusionParameters(sigma=0.0105), bounds=bounds)
        assert low.optimize_parameters(_trajectory([0.0, 1.0] * 10), 5.0).sigma == 0.01

        high = MeanRevertingDiffusion(DiffusionParameters(sigma=0.49), bounds=bounds)
        assert high.optimize_parameters(_trajectory([0.5] * 10), 5.0).sigma == 0.5

    def test_convergence_time(self, deterministic):
        trajectory = _trajectory([0.5, 0.7, 0.795, 0.8])
        assert deterministic.convergence_time(trajectory) == pytest.approx(0.02)
