"""
Test Discretization
"""
from dataclasses import replace

import numpy as np
import pytest
import scipy.integrate
import scipy.linalg
from conftest import NanJacobianModel, NanOdeModel, stiffModel

from scvx import numerics
from scvx.config import SCvxConfig
from scvx.discretize import AffineModel, Discretizer
from scvx.dynamics.simple import LinearModel, Pendulum
from scvx.exceptions import LinearizationFailure

TIGHT = SCvxConfig(atol=1e-11, rtol=1e-11)


def propagate(model, x, uStart, uEnd, sigma, dt):
    """
    Integrate the nonlinear dynamics over one interval with a first-order hold
    control

    Returns:
        numpy.ndarray: the state at the end of the interval
    """

    def eoms(t, y):
        u = uStart + (t / dt) * (uEnd - uStart)
        return sigma * model.ode(y, u)

    sol = scipy.integrate.solve_ivp(
        eoms, (0.0, dt), np.asarray(x, dtype=float), atol=1e-12, rtol=1e-12
    )
    return sol.y[:, -1]


def ltiCoefficients(A, B, sigma, dt):
    """
    Exact discretization of LTI dynamics with a first-order hold control via the
    matrix exponential of an augmented system

    Returns:
        tuple: the state transition matrix and the coefficients of the start and
        end controls
    """
    n, m = B.shape
    M = np.zeros((n + 2 * m, n + 2 * m))
    M[:n, :n] = sigma * A
    M[:n, n : n + m] = sigma * B
    M[n : n + m, n + m :] = np.eye(m)
    E = scipy.linalg.expm(M * dt)

    Phi = E[:n, :n]
    G1, G2 = E[:n, n : n + m], E[:n, n + m :]
    return Phi, G1 - G2 / dt, G2 / dt


@pytest.fixture
def lti():
    return LinearModel(
        A=[[0.0, 1.0], [-2.0, -0.5]],
        B=[[0.0], [1.0]],
        xInit=[0.0, 0.0],
        xFinal=[1.0, 0.0],
    )


class TestAffineModel:
    def test_propagate(self):
        aff = AffineModel(
            A=np.eye(2),
            B=np.array([[1.0], [0.0]]),
            C=np.array([[0.0], [2.0]]),
            Sigma=np.array([1.0, -1.0]),
            z=np.array([0.5, 0.5]),
        )
        out = aff.propagate([1.0, 2.0], [3.0], [4.0], 2.0)
        np.testing.assert_allclose(out, [1 + 3 + 2 + 0.5, 2 + 8 - 2 + 0.5])


class TestDiscretizer:
    def test_constructor(self, lti):
        disc = Discretizer(lti)
        assert disc.model is lti
        assert isinstance(disc.config, SCvxConfig)
        assert disc.nCols == 1 + 2 + 2 * 1 + 2

    def test_constructor_invalid(self):
        with pytest.raises(ValueError):
            Discretizer("model")

    def test_repr(self, lti):
        assert repr(Discretizer(lti))

    @pytest.mark.parametrize(
        "x, u0, u1, dt",
        [
            ([0.0], [0.0], [0.0], 0.1),
            ([0.0, 0.0], [0.0, 0.0], [0.0], 0.1),
            ([0.0, 0.0], [0.0], [0.0], 0.0),
        ],
    )
    def test_interval_invalid(self, lti, x, u0, u1, dt):
        with pytest.raises(ValueError):
            Discretizer(lti).interval(x, u0, u1, 1.0, dt)

    def test_staticDynamics(self):
        model = LinearModel(np.zeros((3, 3)), np.zeros((3, 2)), np.zeros(3), np.ones(3))
        aff = Discretizer(model).interval(np.ones(3), [1.0, 2.0], [3.0, 4.0], 2.0, 0.2)

        np.testing.assert_allclose(aff.A, np.eye(3))
        for coeff in (aff.B, aff.C, aff.Sigma, aff.z):
            np.testing.assert_allclose(coeff, 0.0, atol=1e-14)

    @pytest.mark.parametrize("stepFrac", [0.01, 0.1, 1.0])
    @pytest.mark.parametrize("sigma, dt", [(1.7, 0.25), (4.0, 1 / 49)])
    def test_lti(self, lti, sigma, dt, stepFrac):
        config = replace(TIGHT, initialStepFraction=stepFrac)
        x, u0, u1 = np.array([0.3, -0.1]), np.array([0.5]), np.array([-0.2])
        aff = Discretizer(lti, config).interval(x, u0, u1, sigma, dt)

        Phi, B, C = ltiCoefficients(lti.A, lti.B, sigma, dt)
        np.testing.assert_allclose(aff.A, Phi, rtol=1e-8, atol=1e-10)
        np.testing.assert_allclose(aff.B, B, rtol=1e-7, atol=1e-10)
        np.testing.assert_allclose(aff.C, C, rtol=1e-7, atol=1e-10)

        # Sensitivity to the total time
        h = 1e-5
        xPlus = ltiCoefficients(lti.A, lti.B, sigma + h, dt)
        xMinus = ltiCoefficients(lti.A, lti.B, sigma - h, dt)
        sigmaFD = (
            (xPlus[0] @ x + xPlus[1] @ u0 + xPlus[2] @ u1)
            - (xMinus[0] @ x + xMinus[1] @ u0 + xMinus[2] @ u1)
        ) / (2 * h)
        np.testing.assert_allclose(aff.Sigma, sigmaFD, atol=1e-8)

        # At the reference, the affine model reproduces the propagation
        np.testing.assert_allclose(
            aff.propagate(x, u0, u1, sigma), Phi @ x + B @ u0 + C @ u1, atol=1e-9
        )

    @pytest.mark.parametrize(
        "x, u0, u1, sigma",
        [
            ([0.1, 0.0], [0.0], [0.5], 3.0),
            ([1.0, -0.5], [1.5], [-1.0], 2.0),
            ([2.5, 1.0], [0.2], [0.2], 5.0),
        ],
    )
    def test_nonlinear(self, x, u0, u1, sigma):
        model = Pendulum()
        dt = 0.2
        x, u0, u1 = np.array(x), np.array(u0), np.array(u1)
        aff = Discretizer(model, TIGHT).interval(x, u0, u1, sigma, dt)

        # Affine model is exact at the reference
        np.testing.assert_allclose(
            aff.propagate(x, u0, u1, sigma),
            propagate(model, x, u0, u1, sigma, dt),
            atol=1e-9,
        )

        # Coefficients are the partials of the end state
        A = numerics.jacobian(lambda xx: propagate(model, xx, u0, u1, sigma, dt), x)
        B = numerics.jacobian(lambda uu: propagate(model, x, uu, u1, sigma, dt), u0)
        C = numerics.jacobian(lambda uu: propagate(model, x, u0, uu, sigma, dt), u1)
        S = numerics.jacobian(
            lambda ss: propagate(model, x, u0, u1, ss[0], dt), [sigma]
        )
        np.testing.assert_allclose(aff.A, A, atol=1e-7)
        np.testing.assert_allclose(aff.B, B, atol=1e-7)
        np.testing.assert_allclose(aff.C, C, atol=1e-7)
        np.testing.assert_allclose(aff.Sigma, S[:, 0], atol=1e-7)

    def test_kwargs(self, lti):
        disc = Discretizer(lti)
        aff = disc.interval([0.3, -0.1], [0.5], [-0.2], 1.0, 0.5, atol=1e-12, rtol=1e-12)
        Phi, _, _ = ltiCoefficients(lti.A, lti.B, 1.0, 0.5)
        np.testing.assert_allclose(aff.A, Phi, atol=1e-10)

    @pytest.mark.parametrize("K", [2, 5, 20])
    def test_discretize(self, K):
        model = Pendulum()
        guess = model.initialGuess(K)
        models = Discretizer(model).discretize(guess)

        assert len(models) == K - 1
        for aff in models:
            assert isinstance(aff, AffineModel)
            assert aff.A.shape == (2, 2)
            assert aff.B.shape == aff.C.shape == (2, 1)
            assert aff.Sigma.shape == aff.z.shape == (2,)

    def test_discretize_independent(self):
        # Each interval starts from its own reference node
        model = Pendulum()
        guess = model.initialGuess(4)
        disc = Discretizer(model, TIGHT)
        models = disc.discretize(guess)
        X, U = guess.states, guess.controls
        dt = 1.0 / 3

        aff = disc.interval(X[:, 2], U[:, 2], U[:, 3], guess.sigma, dt)
        np.testing.assert_allclose(models[2].A, aff.A)
        np.testing.assert_allclose(models[2].z, aff.z)

    def test_illConditioned(self):
        model = stiffModel()
        config = SCvxConfig(K=3, maxCond=10.0)
        with pytest.raises(LinearizationFailure) as err:
            Discretizer(model, config).discretize(model.initialGuess(3))

        assert err.value.interval == 0
        assert "interval 0" in str(err.value)

    @pytest.mark.parametrize("cls", [NanJacobianModel, NanOdeModel])
    def test_nonFinite(self, cls):
        model = cls([[0.0]], [[1.0]], [0.0], [1.0])
        with pytest.raises(LinearizationFailure) as err:
            Discretizer(model).interval([0.0], [1.0], [1.0], 1.0, 0.5, index=4)
        assert err.value.interval == 4
