"""
6-DoF Rocket
============

A rigid-body rocket with a single gimbaled engine, landing on a flat surface in
a uniform gravity field. This is the benchmark problem for successive
convexification with free final time.

**State vector**

The state is 14 elements,

.. math::
   \\vec{x} = \\begin{Bmatrix}
     m & \\vec{r}_I^T & \\vec{v}_I^T & \\vec{q}_{B/I}^T & \\vec{\\omega}_B^T
   \\end{Bmatrix}^T

where :math:`m` is the mass, :math:`\\vec{r}_I` and :math:`\\vec{v}_I` are the
position and velocity in the inertial (landing-site) frame, whose first axis points
"up", :math:`\\vec{q}_{B/I}` is the scalar-first attitude quaternion of the body
frame relative to the inertial frame, and :math:`\\vec{\\omega}_B` is the angular
velocity of the body, expressed in body coordinates.

**Control vector**

The control is the thrust vector expressed in body coordinates,
:math:`\\vec{T}_B`. The nominal thrust axis is the first body axis.

**Equations of motion**

.. math::
   \\dot{m} &= -\\alpha_{\\dot{m}} \\| \\vec{T}_B \\| \\\\
   \\dot{\\vec{r}}_I &= \\vec{v}_I \\\\
   \\dot{\\vec{v}}_I &= \\frac{1}{m} \\mathbf{C}_{I/B}(\\vec{q}) \\vec{T}_B + \\vec{g}_I \\\\
   \\dot{\\vec{q}} &= \\frac{1}{2} \\mathbf{\\Omega}(\\vec{\\omega}_B) \\vec{q} \\\\
   \\dot{\\vec{\\omega}}_B &= \\mathbf{J}_B^{-1} \\left(
     \\vec{r}_{T,B} \\times \\vec{T}_B - \\vec{\\omega}_B \\times \\mathbf{J}_B \\vec{\\omega}_B
   \\right)

where :math:`\\vec{r}_{T,B}` is the location of the engine gimbal relative to the
center of mass and :math:`\\mathbf{J}_B` is the inertia tensor.

**Mission constraints**

- Initial mass, position, velocity, and angular velocity are fixed; the initial
  attitude is free
- Final position, velocity, attitude, and angular velocity are fixed; the final
  mass is free. The final thrust is aligned with the thrust axis.
- Mass stays above the dry mass
- Glide slope: the vehicle stays within a cone above the landing site
- Maximum tilt angle and maximum angular rate
- Maximum gimbal angle
- Maximum thrust magnitude
- Minimum thrust magnitude, linearized about the reference thrust direction

All values are normalized; by default one :data:`~scvx.units.LU` is chosen so
that the magnitude of gravity is one LU/TU^2 on Mars.

Reference
============

.. autoclass:: Rocket6DoF
   :members:
   :show-inheritance:
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import cvxpy as cp
import numpy as np
import pint
from numba import njit
from numpy.typing import NDArray

from scvx import util
from scvx.dynamics import AbstractDynamicsModel, Trajectory
from scvx.typing import FloatArray, override
from scvx.units import LU, MU, TU, UU, kg, m, rad, sec

if TYPE_CHECKING:
    from scvx.problem import ConvexSubproblem

logger = logging.getLogger(__name__)


@njit
def _skew(v: NDArray[np.double]) -> NDArray[np.double]:
    out = np.zeros((3, 3))
    out[0, 1] = -v[2]
    out[0, 2] = v[1]
    out[1, 0] = v[2]
    out[1, 2] = -v[0]
    out[2, 0] = -v[1]
    out[2, 1] = v[0]
    return out


@njit
def _dcm(q: NDArray[np.double]) -> NDArray[np.double]:
    # Rotation from body to inertial coordinates, C_I/B
    q0, q1, q2, q3 = q[0], q[1], q[2], q[3]
    C = np.empty((3, 3))
    C[0, 0] = 1 - 2 * (q2 * q2 + q3 * q3)
    C[0, 1] = 2 * (q1 * q2 - q0 * q3)
    C[0, 2] = 2 * (q1 * q3 + q0 * q2)
    C[1, 0] = 2 * (q1 * q2 + q0 * q3)
    C[1, 1] = 1 - 2 * (q1 * q1 + q3 * q3)
    C[1, 2] = 2 * (q2 * q3 - q0 * q1)
    C[2, 0] = 2 * (q1 * q3 - q0 * q2)
    C[2, 1] = 2 * (q2 * q3 + q0 * q1)
    C[2, 2] = 1 - 2 * (q1 * q1 + q2 * q2)
    return C


@njit
def _omega(w: NDArray[np.double]) -> NDArray[np.double]:
    # Quaternion kinematics matrix; qdot = 0.5 * Omega(w) @ q
    O = np.zeros((4, 4))
    O[0, 1], O[0, 2], O[0, 3] = -w[0], -w[1], -w[2]
    O[1, 0], O[1, 2], O[1, 3] = w[0], w[2], -w[1]
    O[2, 0], O[2, 1], O[2, 3] = w[1], -w[2], w[0]
    O[3, 0], O[3, 1], O[3, 2] = w[2], w[1], -w[0]
    return O


class Rocket6DoF(AbstractDynamicsModel):
    """
    Six degree-of-freedom rocket landing model

    All arguments other than the characteristic quantities are normalized by
    ``LU``, ``TU``, and ``MU``. The defaults define the classic landing benchmark.

    Args:
        mWet: initial (wet) mass
        mDry: dry mass
        rInit: initial position, inertial frame
        vInit: initial velocity, inertial frame
        wInit: initial angular velocity, body frame
        rFinal: final position, inertial frame
        vFinal: final velocity, inertial frame
        qFinal: final attitude quaternion, scalar first
        wFinal: final angular velocity, body frame
        tfGuess: initial guess for the total time
        thrustMin: minimum thrust magnitude
        thrustMax: maximum thrust magnitude
        gimbalMax: maximum gimbal angle, radians
        tiltMax: maximum angle between the thrust axis and vertical, radians
        glideSlope: glide slope cone angle, measured from the surface, radians
        rateMax: maximum angular rate magnitude
        alphaM: fuel consumption rate per unit thrust
        inertia: the 3x3 inertia tensor, body frame
        rThrust: location of the engine gimbal relative to the center of mass,
            body frame
        gravity: gravity vector, inertial frame
        charL: length of one :data:`~scvx.units.LU`
        charT: duration of one :data:`~scvx.units.TU`
        charM: mass of one :data:`~scvx.units.MU`
    """

    def __init__(
        self,
        mWet: float = 3.0,
        mDry: float = 2.2,
        rInit: FloatArray = (4.0, 2.0, 0.0),
        vInit: FloatArray = (-1.0, -1.0, 0.0),
        wInit: FloatArray = (0.0, 0.0, 0.0),
        rFinal: FloatArray = (0.0, 0.0, 0.0),
        vFinal: FloatArray = (-0.1, 0.0, 0.0),
        qFinal: FloatArray = (1.0, 0.0, 0.0, 0.0),
        wFinal: FloatArray = (0.0, 0.0, 0.0),
        tfGuess: float = 10.0,
        thrustMin: float = 0.3,
        thrustMax: float = 5.0,
        gimbalMax: float = np.deg2rad(20.0),
        tiltMax: float = np.deg2rad(90.0),
        glideSlope: float = np.deg2rad(20.0),
        rateMax: float = np.deg2rad(60.0),
        alphaM: float = 0.01,
        inertia: FloatArray = 1e-2 * np.eye(3),
        rThrust: FloatArray = (-1e-2, 0.0, 0.0),
        gravity: FloatArray = (-1.0, 0.0, 0.0),
        charL: pint.Quantity = 3.711 * m,
        charT: pint.Quantity = 1.0 * sec,
        charM: pint.Quantity = 1000.0 * kg,
    ) -> None:
        super().__init__(charL, charT, charM)

        if not mWet > mDry > 0:
            raise ValueError("Masses must satisfy mWet > mDry > 0")
        if not thrustMax > thrustMin >= 0:
            raise ValueError("Thrust limits must satisfy thrustMax > thrustMin >= 0")

        def vec(val: FloatArray, size: int, name: str) -> NDArray[np.double]:
            out = np.array(val, dtype=float).flatten()
            if not out.size == size:
                raise ValueError(f"{name} must have {size} elements")
            return out

        self.mWet = float(mWet)  #: float: initial mass
        self.mDry = float(mDry)  #: float: dry mass
        self.rInit = vec(rInit, 3, "rInit")  #: initial position
        self.vInit = vec(vInit, 3, "vInit")  #: initial velocity
        self.wInit = vec(wInit, 3, "wInit")  #: initial angular velocity
        self.rFinal = vec(rFinal, 3, "rFinal")  #: final position
        self.vFinal = vec(vFinal, 3, "vFinal")  #: final velocity
        self.qFinal = vec(qFinal, 4, "qFinal")  #: final attitude
        self.wFinal = vec(wFinal, 3, "wFinal")  #: final angular velocity
        self.tfGuess = float(tfGuess)  #: float: guess for the total time

        self.thrustMin = float(thrustMin)  #: float: minimum thrust
        self.thrustMax = float(thrustMax)  #: float: maximum thrust
        self.gimbalMax = float(gimbalMax)  #: float: maximum gimbal angle, rad
        self.tiltMax = float(tiltMax)  #: float: maximum tilt angle, rad
        self.glideSlope = float(glideSlope)  #: float: glide slope angle, rad
        self.rateMax = float(rateMax)  #: float: maximum angular rate

        self.alphaM = float(alphaM)  #: float: fuel consumption rate
        self.inertia = np.array(inertia, dtype=float)  #: inertia tensor
        if not self.inertia.shape == (3, 3):
            raise ValueError("inertia must be a 3x3 matrix")
        self._inertiaInv = np.linalg.inv(self.inertia)
        self.rThrust = vec(rThrust, 3, "rThrust")  #: gimbal location
        self.gravity = vec(gravity, 3, "gravity")  #: gravity vector

    def __repr__(self) -> str:
        return util.repr(
            self, "mWet", "mDry", "rInit", "vInit", "thrustMin", "thrustMax", "charL"
        )

    @property
    @override
    def nStates(self) -> int:
        return 14

    @property
    @override
    def nInputs(self) -> int:
        return 3

    @property
    def xInit(self) -> NDArray[np.double]:
        """The initial state; the attitude is free and is set to identity"""
        return np.concatenate(
            ([self.mWet], self.rInit, self.vInit, [1.0, 0.0, 0.0, 0.0], self.wInit)
        )

    @property
    def xFinal(self) -> NDArray[np.double]:
        """The final state; the mass is free and is set to the dry mass"""
        return np.concatenate(
            ([self.mDry], self.rFinal, self.vFinal, self.qFinal, self.wFinal)
        )

    @override
    def stateCoords(self) -> list[str]:
        return ["m", "rx", "ry", "rz", "vx", "vy", "vz"] + [
            "q0",
            "q1",
            "q2",
            "q3",
            "wx",
            "wy",
            "wz",
        ]

    @override
    def controlCoords(self) -> list[str]:
        return ["Tx", "Ty", "Tz"]

    @override
    def stateUnits(self) -> list[pint.Unit]:
        return [MU] + [LU] * 3 + [LU / TU] * 3 + [UU] * 4 + [rad / TU] * 3

    @override
    def controlUnits(self) -> list[pint.Unit]:
        return [MU * LU / TU**2] * 3

    @override
    def ode(self, x: NDArray[np.double], u: NDArray[np.double]) -> NDArray[np.double]:
        return Rocket6DoF._eoms(
            np.ascontiguousarray(x, dtype=float),
            np.ascontiguousarray(u, dtype=float),
            self.alphaM,
            self.gravity,
            self.inertia,
            self._inertiaInv,
            self.rThrust,
        )

    @override
    def stateJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        return Rocket6DoF._stateJac(
            np.ascontiguousarray(x, dtype=float),
            np.ascontiguousarray(u, dtype=float),
            self.inertia,
            self._inertiaInv,
        )

    @override
    def controlJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        return Rocket6DoF._controlJac(
            np.ascontiguousarray(x, dtype=float),
            np.ascontiguousarray(u, dtype=float),
            self.alphaM,
            self._inertiaInv,
            self.rThrust,
        )

    # To work with numba.njit, primitive types are enforced for all arguments
    @staticmethod
    @njit
    def _eoms(
        x: NDArray[np.double],
        u: NDArray[np.double],
        alphaM: float,
        g: NDArray[np.double],
        J: NDArray[np.double],
        Jinv: NDArray[np.double],
        rT: NDArray[np.double],
    ) -> NDArray[np.double]:
        xdot = np.zeros(14)
        mass = x[0]
        q = x[7:11].copy()
        w = x[11:14].copy()

        xdot[0] = -alphaM * np.sqrt(u[0] * u[0] + u[1] * u[1] + u[2] * u[2])
        xdot[1:4] = x[4:7]
        xdot[4:7] = np.dot(_dcm(q), u) / mass + g
        xdot[7:11] = 0.5 * np.dot(_omega(w), q)

        torque = np.dot(_skew(rT), u) - np.dot(_skew(w), np.dot(J, w))
        xdot[11:14] = np.dot(Jinv, torque)
        return xdot

    @staticmethod
    @njit
    def _stateJac(
        x: NDArray[np.double],
        u: NDArray[np.double],
        J: NDArray[np.double],
        Jinv: NDArray[np.double],
    ) -> NDArray[np.double]:
        A = np.zeros((14, 14))
        mass = x[0]
        q0, q1, q2, q3 = x[7], x[8], x[9], x[10]
        q = x[7:11].copy()
        w = x[11:14].copy()
        ux, uy, uz = u[0], u[1], u[2]

        # position derivative = velocity
        A[1, 4] = 1.0
        A[2, 5] = 1.0
        A[3, 6] = 1.0

        # velocity derivative w.r.t. mass
        A[4:7, 0] = -np.dot(_dcm(q), u) / (mass * mass)

        # velocity derivative w.r.t. attitude; d(C_I/B(q) u)/dq
        A[4, 7] = 2 * (q2 * uz - q3 * uy)
        A[4, 8] = 2 * (q2 * uy + q3 * uz)
        A[4, 9] = 2 * (q0 * uz + q1 * uy - 2 * q2 * ux)
        A[4, 10] = 2 * (-q0 * uy + q1 * uz - 2 * q3 * ux)

        A[5, 7] = 2 * (-q1 * uz + q3 * ux)
        A[5, 8] = 2 * (-q0 * uz - 2 * q1 * uy + q2 * ux)
        A[5, 9] = 2 * (q1 * ux + q3 * uz)
        A[5, 10] = 2 * (q0 * ux + q2 * uz - 2 * q3 * uy)

        A[6, 7] = 2 * (q1 * uy - q2 * ux)
        A[6, 8] = 2 * (q0 * uy - 2 * q1 * uz + q3 * ux)
        A[6, 9] = 2 * (-q0 * ux - 2 * q2 * uz + q3 * uy)
        A[6, 10] = 2 * (q1 * ux + q2 * uy)
        A[4:7, 7:11] /= mass

        # quaternion kinematics
        A[7:11, 7:11] = 0.5 * _omega(w)
        A[7, 11], A[7, 12], A[7, 13] = -0.5 * q1, -0.5 * q2, -0.5 * q3
        A[8, 11], A[8, 12], A[8, 13] = 0.5 * q0, -0.5 * q3, 0.5 * q2
        A[9, 11], A[9, 12], A[9, 13] = 0.5 * q3, 0.5 * q0, -0.5 * q1
        A[10, 11], A[10, 12], A[10, 13] = -0.5 * q2, 0.5 * q1, 0.5 * q0

        # rotational dynamics; d(-w x Jw)/dw = skew(Jw) - skew(w) J
        A[11:14, 11:14] = np.dot(Jinv, _skew(np.dot(J, w)) - np.dot(_skew(w), J))
        return A

    @staticmethod
    @njit
    def _controlJac(
        x: NDArray[np.double],
        u: NDArray[np.double],
        alphaM: float,
        Jinv: NDArray[np.double],
        rT: NDArray[np.double],
    ) -> NDArray[np.double]:
        B = np.zeros((14, 3))
        q = x[7:11].copy()

        # The mass flow rate is not differentiable at zero thrust
        uNorm = np.sqrt(u[0] * u[0] + u[1] * u[1] + u[2] * u[2])
        if uNorm > 1e-12:
            B[0, :] = -alphaM * u / uNorm

        B[4:7, :] = _dcm(q) / x[0]
        B[11:14, :] = np.dot(Jinv, _skew(rT))
        return B

    def inertialThrust(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        """
        Args:
            x: state vector
            u: control vector, i.e., the thrust in body coordinates

        Returns:
            the thrust vector in inertial coordinates
        """
        q = np.ascontiguousarray(x[7:11], dtype=float)
        return _dcm(q) @ np.asarray(u, dtype=float)

    @override
    def initialize(self, X: NDArray[np.double], U: NDArray[np.double]) -> None:
        K = X.shape[1]
        X[:] = util.interpolate(self.xInit, self.xFinal, K)
        X[7:11, :] = np.array([1.0, 0.0, 0.0, 0.0])[:, None]

        # Thrust balances gravity at each node
        U[:] = -np.outer(self.gravity, X[0, :])

    @override
    def totalTimeGuess(self) -> float:
        return self.tfGuess

    def thrustDirection(self, reference: Trajectory) -> NDArray[np.double]:
        """
        Compute the unit thrust directions of a reference trajectory

        The minimum-thrust constraint is non-convex; it is linearized by
        projecting each thrust onto the reference thrust direction. Nodes with
        (near) zero reference thrust use the nominal thrust axis.

        Args:
            reference: the reference trajectory

        Returns:
            an ``nInputs`` by ``K`` array of unit vectors
        """
        U = reference.controls
        norms = np.linalg.norm(U, axis=0)
        out = np.zeros(U.shape)
        out[0, :] = 1.0
        mask = norms > 1e-6
        out[:, mask] = U[:, mask] / norms[mask]
        if not np.all(mask):
            logger.debug(
                f"{np.sum(~mask)} nodes have zero reference thrust; using thrust axis"
            )
        return out

    @override
    def addApplicationConstraints(self, problem: ConvexSubproblem, K: int) -> None:
        X, U = problem.var("X"), problem.var("U")
        xInit, xFinal = self.xInit, self.xFinal

        direction = problem.addParameter(
            "thrustDirection", (self.nInputs, K), callback=self.thrustDirection
        )

        problem.addConstraints(
            [
                # Boundary conditions; initial attitude and final mass are free
                X[0, 0] == xInit[0],
                X[1:7, 0] == xInit[1:7],
                X[11:14, 0] == xInit[11:14],
                X[1:14, K - 1] == xFinal[1:14],
                U[1:3, K - 1] == 0,
                # State constraints
                X[0, :] >= self.mDry,
                cp.norm(X[2:4, :], axis=0) <= X[1, :] / np.tan(self.glideSlope),
                cp.norm(X[9:11, :], axis=0)
                <= np.sqrt((1 - np.cos(self.tiltMax)) / 2),
                cp.norm(X[11:14, :], axis=0) <= self.rateMax,
                # Control constraints
                cp.norm(U[1:3, :], axis=0) <= np.tan(self.gimbalMax) * U[0, :],
                cp.norm(U, axis=0) <= self.thrustMax,
                cp.sum(cp.multiply(direction, U), axis=0) >= self.thrustMin,
            ]
        )
