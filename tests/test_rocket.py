"""
Test the 6-DoF rocket model
"""
import numpy as np
import pytest

from scvx.config import SCvxConfig
from scvx.dynamics.rocket import Rocket6DoF
from scvx.problem import ConvexSubproblem

rng = np.random.default_rng(1234)


def randomState():
    x = np.empty(14)
    x[0] = rng.uniform(2.2, 3.0)
    x[1:7] = rng.uniform(-2.0, 2.0, 6)
    q = rng.normal(size=4)
    x[7:11] = q / np.linalg.norm(q)
    x[11:14] = rng.uniform(-0.5, 0.5, 3)
    return x


@pytest.fixture(scope="module")
def rocket():
    return Rocket6DoF()


class TestConstructor:
    def test_defaults(self, rocket):
        assert rocket.nStates == 14
        assert rocket.nInputs == 3
        assert rocket.mWet == 3.0
        assert rocket.mDry == 2.2
        assert rocket.thrustMin == 0.3
        assert rocket.thrustMax == 5.0
        assert rocket.gimbalMax == pytest.approx(np.deg2rad(20.0))
        np.testing.assert_array_equal(rocket.gravity, [-1.0, 0.0, 0.0])

    def test_boundaryStates(self, rocket):
        np.testing.assert_array_equal(
            rocket.xInit, [3, 4, 2, 0, -1, -1, 0, 1, 0, 0, 0, 0, 0, 0]
        )
        np.testing.assert_array_equal(
            rocket.xFinal, [2.2, 0, 0, 0, -0.1, 0, 0, 1, 0, 0, 0, 0, 0, 0]
        )

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mWet": 2.0, "mDry": 2.2},
            {"mDry": 0.0},
            {"thrustMin": 6.0},
            {"thrustMin": -1.0},
            {"rInit": [1.0, 2.0]},
            {"qFinal": [1.0, 0.0, 0.0]},
            {"inertia": np.eye(2)},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            Rocket6DoF(**kwargs)

    def test_coords(self, rocket):
        assert len(rocket.stateCoords()) == 14
        assert rocket.controlCoords() == ["Tx", "Ty", "Tz"]
        assert len(rocket.stateUnits()) == 14
        assert len(rocket.controlUnits()) == 3


class TestDynamics:
    def test_hover(self, rocket):
        # Upright, at rest, with thrust balancing gravity
        x = rocket.xInit.copy()
        x[4:7] = 0.0
        u = np.array([3.0, 0.0, 0.0])
        xdot = rocket.ode(x, u)

        assert xdot[0] == pytest.approx(-0.03)
        np.testing.assert_allclose(xdot[1:4], 0.0)
        np.testing.assert_allclose(xdot[4:14], 0.0, atol=1e-15)

    def test_gimbalTorque(self, rocket):
        x = rocket.xInit.copy()
        u = np.array([1.0, 0.5, 0.0])
        xdot = rocket.ode(x, u)
        # r_T x u = (-0.01, 0, 0) x (1, 0.5, 0) = (0, 0, -0.005); J = 0.01 I
        np.testing.assert_allclose(xdot[11:14], [0.0, 0.0, -0.5])

    def test_rotation(self, rocket):
        x = rocket.xInit.copy()
        x[7:11] = [np.sqrt(0.5), 0.0, 0.0, np.sqrt(0.5)]
        np.testing.assert_allclose(
            rocket.inertialThrust(x, [1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-15
        )

    @pytest.mark.parametrize("seed", range(4))
    def test_partials(self, rocket, seed):
        x = randomState()
        u = rng.uniform(-2.0, 2.0, 3)
        u[0] = abs(u[0]) + 0.5
        assert rocket.checkPartials(x, u, rtol=1e-5, atol=1e-7, printTable=False)

    def test_partials_initialGuess(self, rocket):
        guess = rocket.initialGuess(5)
        for k in range(guess.K):
            assert rocket.checkPartials(
                guess.states[:, k], guess.controls[:, k], printTable=False
            )


class TestGuess:
    def test_initialGuess(self, rocket):
        guess = rocket.initialGuess(10)
        assert guess.sigma == 10.0
        np.testing.assert_array_equal(guess.states[:, 0], rocket.xInit)
        np.testing.assert_allclose(guess.states[:, -1], rocket.xFinal)
        np.testing.assert_array_equal(guess.states[7, :], 1.0)
        np.testing.assert_array_equal(guess.states[8:11, :], 0.0)
        np.testing.assert_allclose(guess.controls[0], guess.states[0])
        np.testing.assert_array_equal(guess.controls[1:], 0.0)

    def test_thrustDirection(self, rocket):
        guess = rocket.initialGuess(4)
        guess.controls[:, 1] = [3.0, 4.0, 0.0]
        guess.controls[:, 2] = 0.0
        direction = rocket.thrustDirection(guess)

        assert direction.shape == (3, 4)
        np.testing.assert_allclose(np.linalg.norm(direction, axis=0), 1.0)
        np.testing.assert_allclose(direction[:, 1], [0.6, 0.8, 0.0])
        np.testing.assert_array_equal(direction[:, 2], [1.0, 0.0, 0.0])

    def test_toBaseUnits(self, rocket):
        times, states, controls = rocket.initialGuess(3).toBaseUnits()
        assert times[-1].to("s").magnitude == pytest.approx(10.0)
        assert states[0][0].to("kg").magnitude == pytest.approx(3000.0)
        assert states[1][0].to("m").magnitude == pytest.approx(4 * 3.711)
        assert controls[0][0].check("[force]")


class TestConstraints:
    @pytest.fixture(scope="class")
    def subproblem(self, rocket):
        problem = ConvexSubproblem(rocket, SCvxConfig(K=5))
        problem.compile()
        return problem

    def test_dpp(self, subproblem):
        assert subproblem.problem.is_dcp(dpp=True)

    def test_parameters(self, subproblem):
        direction = subproblem.param("thrustDirection")
        assert direction.shape == (3, 5)

    def test_refresh(self, rocket, subproblem):
        from scvx.discretize import Discretizer

        guess = rocket.initialGuess(5)
        models = Discretizer(rocket, subproblem.config).discretize(guess)
        subproblem.refresh(guess, models)
        np.testing.assert_allclose(
            subproblem.param("thrustDirection").value, rocket.thrustDirection(guess)
        )
