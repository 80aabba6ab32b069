"""
Test the successive convexification loop
"""
import logging

import numpy as np
import pytest
from conftest import NanJacobianModel, scalarModel, stiffModel

from scvx.config import SCvxConfig
from scvx.convexification import (
    FixedIterations,
    IterationRecord,
    Phase,
    SuccessiveConvexification,
    VirtualControlConvergence,
)
from scvx.dynamics import Trajectory
from scvx.dynamics.rocket import Rocket6DoF
from scvx.dynamics.simple import LinearModel, Pendulum
from scvx.exceptions import LinearizationFailure


def record(norm2_nu=0.0, Delta_sigma=0.0, trustRegion=0.0):
    return IterationRecord(
        iteration=1,
        cost=1.0,
        norm2_nu=norm2_nu,
        sigma=1.0,
        Delta_sigma=Delta_sigma,
        trustRegion=trustRegion,
        status="optimal",
        linearizeTime=0.0,
        solveTime=0.0,
    )


class TestConvergenceChecks:
    def test_fixed(self):
        assert not FixedIterations().isConverged(record())
        assert repr(FixedIterations())

    @pytest.mark.parametrize(
        "kwargs, converged",
        [
            ({}, True),
            ({"norm2_nu": 1e-3}, False),
            ({"Delta_sigma": 1e-2}, False),
            ({"trustRegion": 1.0}, False),
            ({"norm2_nu": 1e-7, "Delta_sigma": 1e-5, "trustRegion": 1e-4}, True),
        ],
    )
    def test_virtualControl(self, kwargs, converged):
        check = VirtualControlConvergence(nuTol=1e-6, sigmaTol=1e-4, trustTol=1e-3)
        assert check.isConverged(record(**kwargs)) == converged
        assert repr(check)


class TestSuccessiveConvexification:
    def test_constructor(self):
        model = Pendulum()
        scvx = SuccessiveConvexification(model)
        assert scvx.model is model
        assert scvx.config == SCvxConfig()
        assert isinstance(scvx.convergenceCheck, FixedIterations)
        assert scvx.discretizer.model is model
        assert scvx.phase == Phase.INITIALIZING
        assert scvx.log == {}
        assert repr(scvx)

    def test_invalidModel(self):
        with pytest.raises(TypeError):
            SuccessiveConvexification("model")

    def test_invalidConvergenceCheck(self):
        scvx = SuccessiveConvexification(Pendulum(), SCvxConfig(K=3))
        scvx.convergenceCheck = None
        with pytest.raises(TypeError):
            scvx.solve()

        scvx.convergenceCheck = "abc"
        with pytest.raises(AttributeError):
            scvx.solve()

    def test_invalidGuess(self):
        model = Pendulum()
        scvx = SuccessiveConvexification(model, SCvxConfig(K=5))
        with pytest.raises(ValueError):
            scvx.solve(model.initialGuess(6))
        with pytest.raises(ValueError):
            scvx.solve(Pendulum().initialGuess(5))

    def test_subproblemCached(self):
        scvx = SuccessiveConvexification(Pendulum(), SCvxConfig(K=4))
        problem = scvx.subproblem
        assert problem.compiled
        assert scvx.subproblem is problem

    def test_scalar(self):
        # One iteration of the scalar problem: min sigma + (sigma - 1)^2
        model = scalarModel()
        scvx = SuccessiveConvexification(
            model, SCvxConfig(K=3, maxIterations=1, trustRegion=False)
        )
        traj, log = scvx.solve()

        assert isinstance(traj, Trajectory)
        assert traj.model is model
        assert traj.sigma == pytest.approx(0.5, abs=1e-4)
        assert log["status"] == "max-iterations"
        assert len(log["iterations"]) == 1
        assert log["iterations"][0].norm2_nu < 1e-6
        assert scvx.phase == Phase.TERMINATED

    def test_converged(self):
        # Without a time cost, the second iteration reproduces the first
        model = scalarModel()
        scvx = SuccessiveConvexification(
            model, SCvxConfig(K=5, maxIterations=10, wSigma=0.0)
        )
        scvx.convergenceCheck = VirtualControlConvergence(
            nuTol=1e-5, sigmaTol=1e-5, trustTol=1e-4
        )
        traj, log = scvx.solve()

        assert log["status"] == "converged"
        assert len(log["iterations"]) == 2
        assert traj.sigma == pytest.approx(1.0, abs=1e-4)
        assert traj.states[0, 0] == pytest.approx(0.0, abs=1e-7)
        assert traj.states[0, -1] == pytest.approx(1.0, abs=1e-7)

        first, second = log["iterations"]
        assert first.trustRegion > 1e-4
        assert second.trustRegion <= 1e-4

    def test_guessNotModified(self):
        model = Pendulum()
        guess = model.initialGuess(6)
        states = guess.states.copy()
        scvx = SuccessiveConvexification(model, SCvxConfig(K=6, maxIterations=2))
        traj, _ = scvx.solve(guess)

        np.testing.assert_array_equal(guess.states, states)
        assert traj is not guess

    def test_pendulum(self, caplog):
        model = Pendulum(thetaInit=0.0, thetaFinal=2.0, tfGuess=4.0, uMax=1.0)
        scvx = SuccessiveConvexification(model, SCvxConfig(K=20, maxIterations=8))
        with caplog.at_level(logging.INFO, logger="scvx"):
            traj, log = scvx.solve()

        records = log["iterations"]
        assert log["status"] == "max-iterations"
        assert [rec.iteration for rec in records] == list(range(1, 9))
        assert all(rec.status in ("optimal", "optimal_inaccurate") for rec in records)
        assert all(rec.linearizeTime >= 0 and rec.solveTime >= 0 for rec in records)
        assert "Iteration 001" in caplog.text

        # The final trajectory obeys the boundary conditions and torque limit
        np.testing.assert_allclose(traj.states[:, 0], model.xInit, atol=1e-6)
        np.testing.assert_allclose(traj.states[:, -1], model.xFinal, atol=1e-6)
        assert np.all(np.abs(traj.controls) <= 1.0 + 1e-6)

        # The log is also stored on the object
        assert scvx.log["status"] == log["status"]
        scvx.printLog()
        scvx.printTrajectory(traj)

    def test_failure(self, caplog):
        model = stiffModel()
        scvx = SuccessiveConvexification(model, SCvxConfig(K=3, maxCond=10.0))
        with pytest.raises(LinearizationFailure) as err:
            scvx.solve()

        assert err.value.iteration == 1
        assert err.value.interval == 0
        assert scvx.log["status"] == "failed"
        assert scvx.log["phase"] == "LINEARIZING"
        assert scvx.log["iterations"] == []
        assert scvx.phase == Phase.TERMINATED
        assert "failed" in caplog.text

    def test_failure_nonFinite(self):
        model = NanJacobianModel([[0.0]], [[1.0]], [0.0], [1.0])
        scvx = SuccessiveConvexification(model, SCvxConfig(K=3))
        with pytest.raises(LinearizationFailure) as err:
            scvx.solve()

        assert err.value.iteration == 1
        assert err.value.interval == 0
        assert scvx.log["status"] == "failed"
        assert scvx.log["phase"] == "LINEARIZING"
        assert scvx.phase == Phase.TERMINATED

    def test_virtualControlDecreases(self):
        # With the unit time guess, the saturated control covers only half of the
        # distance; the first iteration leans on the virtual control until the
        # total time is free to grow
        model = LinearModel([[0.0]], [[1.0]], [0.0], [1.0], tfGuess=1.0, uMax=0.5)
        scvx = SuccessiveConvexification(model, SCvxConfig(K=5, maxIterations=6))
        traj, log = scvx.solve()

        nu = np.array([rec.norm2_nu for rec in log["iterations"]])
        assert len(nu) == 6
        assert nu[0] > 1e-4
        for prev, curr in zip(nu[:-1], nu[1:]):
            assert curr <= prev + 1e-6
        assert nu[-1] < 1e-4

        assert traj.sigma == pytest.approx(2.0, abs=1e-3)
        np.testing.assert_allclose(traj.states[:, 0], model.xInit, atol=1e-6)
        np.testing.assert_allclose(traj.states[:, -1], model.xFinal, atol=1e-6)
        assert np.all(np.abs(traj.controls) <= 0.5 + 1e-6)

    def test_rocket(self):
        model = Rocket6DoF()
        scvx = SuccessiveConvexification(model, SCvxConfig(K=10, maxIterations=2))
        traj, log = scvx.solve()

        assert traj.states.shape == (14, 10)
        assert traj.controls.shape == (3, 10)
        assert len(log["iterations"]) == 2
        for rec in log["iterations"]:
            assert np.isfinite(rec.cost)
            assert np.isfinite(rec.sigma)

        # Mission constraints hold at every node
        assert np.all(traj.states[0] >= model.mDry - 1e-6)
        thrust = np.linalg.norm(traj.controls, axis=0)
        assert np.all(thrust <= model.thrustMax + 1e-6)
        np.testing.assert_allclose(traj.states[1:14, -1], model.xFinal[1:], atol=1e-6)
