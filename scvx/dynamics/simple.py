"""
Simple Models
=============

Small dynamics models with known behavior. They are useful for verifying the
discretization and the successive convexification loop and as templates for new
models.

.. autosummary::
   LinearModel
   Pendulum

Both models fix the initial and final states and, optionally, bound the control
magnitude. All values are dimensionless.

Reference
============

.. autoclass:: LinearModel
   :members:
   :show-inheritance:

.. autoclass:: Pendulum
   :members:
   :show-inheritance:
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Union

import cvxpy as cp
import numpy as np
from numpy.typing import NDArray

from scvx import util
from scvx.dynamics import AbstractDynamicsModel
from scvx.typing import FloatArray, override

if TYPE_CHECKING:
    from scvx.problem import ConvexSubproblem


class LinearModel(AbstractDynamicsModel):
    """
    Linear time-invariant dynamics, :math:`\\dot{\\vec{x}} = \\mathbf{A}\\vec{x} + \\mathbf{B}\\vec{u}`

    Args:
        A: the N-by-N state matrix
        B: the N-by-M control matrix
        xInit: the initial state
        xFinal: the final state
        tfGuess: initial guess for the total time
        uMax: maximum control magnitude (2-norm); None for unbounded control

    Raises:
        ValueError: if the matrix and vector sizes are inconsistent
    """

    def __init__(
        self,
        A: FloatArray,
        B: FloatArray,
        xInit: FloatArray,
        xFinal: FloatArray,
        tfGuess: float = 1.0,
        uMax: Union[float, None] = None,
    ) -> None:
        super().__init__()

        self.A = np.array(A, dtype=float, ndmin=2)  #: state matrix
        self.B = np.array(B, dtype=float, ndmin=2)  #: control matrix
        self.xInit = np.array(xInit, dtype=float, ndmin=1)  #: initial state
        self.xFinal = np.array(xFinal, dtype=float, ndmin=1)  #: final state
        self.tfGuess = float(tfGuess)  #: float: guess for the total time
        self.uMax = uMax  #: maximum control magnitude

        n = self.A.shape[0]
        if not self.A.shape == (n, n):
            raise ValueError(f"A must be square; it is {self.A.shape}")
        if not self.B.shape[0] == n:
            raise ValueError(f"B must have {n} rows; it has {self.B.shape[0]}")
        if not self.xInit.size == n or not self.xFinal.size == n:
            raise ValueError(f"xInit and xFinal must have {n} elements")

    def __repr__(self) -> str:
        return util.repr(self, "A", "B", "xInit", "xFinal", "tfGuess", "uMax")

    @property
    @override
    def nStates(self) -> int:
        return self.A.shape[0]

    @property
    @override
    def nInputs(self) -> int:
        return self.B.shape[1]

    @override
    def ode(self, x: NDArray[np.double], u: NDArray[np.double]) -> NDArray[np.double]:
        return self.A @ x + self.B @ u

    @override
    def stateJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        return self.A.copy()

    @override
    def controlJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        return self.B.copy()

    @override
    def initialize(self, X: NDArray[np.double], U: NDArray[np.double]) -> None:
        X[:] = util.interpolate(self.xInit, self.xFinal, X.shape[1])
        U[:] = 0.0

    @override
    def totalTimeGuess(self) -> float:
        return self.tfGuess

    @override
    def addApplicationConstraints(self, problem: ConvexSubproblem, K: int) -> None:
        X, U = problem.var("X"), problem.var("U")
        problem.addConstraints([X[:, 0] == self.xInit, X[:, K - 1] == self.xFinal])
        if self.uMax is not None:
            problem.addConstraints([cp.norm(U, axis=0) <= self.uMax])


class Pendulum(AbstractDynamicsModel):
    """
    A torque-driven pendulum with unit length, mass, and gravity

    The state is the angle from the downward vertical and the angular rate,
    :math:`\\vec{x} = [\\theta, \\dot{\\theta}]`, and the control is the applied
    torque, :math:`u`,

    .. math::
       \\ddot{\\theta} = -\\sin\\theta + u

    Args:
        thetaInit: initial angle, radians
        thetaFinal: final angle, radians
        tfGuess: initial guess for the total time
        uMax: maximum torque magnitude
    """

    def __init__(
        self,
        thetaInit: float = 0.0,
        thetaFinal: float = 1.0,
        tfGuess: float = 3.0,
        uMax: float = 2.0,
    ) -> None:
        super().__init__()

        self.xInit = np.array([thetaInit, 0.0])  #: initial state
        self.xFinal = np.array([thetaFinal, 0.0])  #: final state
        self.tfGuess = float(tfGuess)  #: float: guess for the total time
        self.uMax = float(uMax)  #: float: maximum torque magnitude

    def __repr__(self) -> str:
        return util.repr(self, "xInit", "xFinal", "tfGuess", "uMax")

    @property
    @override
    def nStates(self) -> int:
        return 2

    @property
    @override
    def nInputs(self) -> int:
        return 1

    @override
    def stateCoords(self) -> list[str]:
        return ["theta", "omega"]

    @override
    def controlCoords(self) -> list[str]:
        return ["torque"]

    @override
    def ode(self, x: NDArray[np.double], u: NDArray[np.double]) -> NDArray[np.double]:
        return np.array([x[1], -np.sin(x[0]) + u[0]])

    @override
    def stateJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        return np.array([[0.0, 1.0], [-np.cos(x[0]), 0.0]])

    @override
    def controlJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        return np.array([[0.0], [1.0]])

    @override
    def initialize(self, X: NDArray[np.double], U: NDArray[np.double]) -> None:
        X[:] = util.interpolate(self.xInit, self.xFinal, X.shape[1])

        # Torque that holds the pendulum at each interpolated angle
        U[0, :] = np.sin(X[0, :])

    @override
    def totalTimeGuess(self) -> float:
        return self.tfGuess

    @override
    def addApplicationConstraints(self, problem: ConvexSubproblem, K: int) -> None:
        X, U = problem.var("X"), problem.var("U")
        problem.addConstraints(
            [
                X[:, 0] == self.xInit,
                X[:, K - 1] == self.xFinal,
                cp.abs(U) <= self.uMax,
            ]
        )
