"""
Discretization
==============

The convex subproblem is posed over ``K`` nodes, but the vehicle obeys a
continuous-time, nonlinear ODE. The :class:`Discretizer` bridges the two by
computing, for each of the ``K - 1`` intervals between nodes, an exact
discrete-time affine model of the dynamics linearized about a reference
trajectory,

.. math::
   \\vec{x}_{k+1} = \\mathbf{A}_k \\vec{x}_k + \\mathbf{B}_k \\vec{u}_k
     + \\mathbf{C}_k \\vec{u}_{k+1} + \\vec{\\Sigma}_k \\sigma + \\vec{z}_k.

The control is a first-order hold; within interval :math:`k`, with normalized
time :math:`t \\in [0, \\Delta\\tau]` measured from the start of the interval,

.. math::
   \\vec{u}(t) = \\beta \\vec{u}_k + \\alpha \\vec{u}_{k+1}, \\qquad
   \\alpha = t/\\Delta\\tau, \\quad \\beta = 1 - \\alpha.

Augmented ODE
-------------

The coefficients are obtained by integrating an augmented matrix ODE,
:math:`\\mathbf{V}`, with ``1 + n + 2m + 2`` columns: the state, the state
transition matrix :math:`\\mathbf{\\Phi}`, and the STM-normalized sensitivities to
the two bracketing controls, to :math:`\\sigma`, and to a bias term,

.. math::
   \\dot{\\vec{x}} &= \\sigma \\vec{f} \\\\
   \\dot{\\mathbf{\\Phi}} &= \\bar{\\mathbf{A}} \\mathbf{\\Phi} \\\\
   \\dot{\\mathbf{B}}_s &= \\mathbf{\\Phi}^{-1} \\bar{\\mathbf{B}} \\beta \\\\
   \\dot{\\mathbf{C}}_s &= \\mathbf{\\Phi}^{-1} \\bar{\\mathbf{B}} \\alpha \\\\
   \\dot{\\vec{\\Sigma}}_s &= \\mathbf{\\Phi}^{-1} \\vec{f} \\\\
   \\dot{\\vec{z}}_s &= \\mathbf{\\Phi}^{-1} \\left(
      -\\bar{\\mathbf{A}}\\vec{x} - \\bar{\\mathbf{B}}\\vec{u} \\right)

with :math:`\\bar{\\mathbf{A}} = \\sigma \\partial \\vec{f} / \\partial \\vec{x}` and
:math:`\\bar{\\mathbf{B}} = \\sigma \\partial \\vec{f} / \\partial \\vec{u}`. At the
end of the interval, :math:`\\mathbf{A}_k = \\mathbf{\\Phi}`, and the remaining
coefficients are the sensitivities premultiplied by :math:`\\mathbf{A}_k`.

:math:`\\mathbf{\\Phi}^{-1}` is never formed; it is applied via
:func:`scvx.numerics.guardedSolve`, which raises a
:class:`~scvx.exceptions.LinearizationFailure` if the STM is singular or badly
conditioned.

.. code-block:: python

   model = Rocket6DoF()
   disc = Discretizer(model, SCvxConfig(K=50))
   models = disc.discretize(model.initialGuess(50))   # 49 AffineModel objects

Reference
==========

.. autoclass:: AffineModel
   :members:

.. autoclass:: Discretizer
   :members:
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Union

import numpy as np
from numpy.typing import NDArray
from scipy.integrate import solve_ivp

from scvx import numerics
from scvx.config import SCvxConfig
from scvx.dynamics import AbstractDynamicsModel, ModelBlockCopyMixin, Trajectory
from scvx.exceptions import LinearizationFailure
from scvx.typing import FloatArray

logger = logging.getLogger(__name__)


@dataclass
class AffineModel:
    """
    Discrete-time affine model of the dynamics over one interval
    """

    A: NDArray[np.double]  #: state coefficient, n x n
    B: NDArray[np.double]  #: start-of-interval control coefficient, n x m
    C: NDArray[np.double]  #: end-of-interval control coefficient, n x m
    Sigma: NDArray[np.double]  #: total time coefficient, n
    z: NDArray[np.double]  #: bias, n

    def propagate(
        self,
        x: FloatArray,
        uStart: FloatArray,
        uEnd: FloatArray,
        sigma: float,
    ) -> NDArray[np.double]:
        """
        Evaluate the affine map

        Args:
            x: state at the start of the interval
            uStart: control at the start of the interval
            uEnd: control at the end of the interval
            sigma: total time

        Returns:
            the state at the end of the interval
        """
        return (
            self.A @ np.asarray(x)
            + self.B @ np.asarray(uStart)
            + self.C @ np.asarray(uEnd)
            + self.Sigma * sigma
            + self.z
        )


class Discretizer(ModelBlockCopyMixin):
    """
    Compute per-interval affine models of a dynamics model

    This class primarily wraps the :func:`scipy.integrate.solve_ivp` method. Each
    interval is integrated from a freshly initialized augmented state, so
    intervals are independent of one another.

    Args:
        model: defines the dynamics
        config: run settings; the integration method, tolerances, initial step
            fraction, and condition number limit are read from it
    """

    def __init__(
        self,
        model: AbstractDynamicsModel,
        config: Union[SCvxConfig, None] = None,
    ) -> None:
        if not isinstance(model, AbstractDynamicsModel):
            raise ValueError("model must be derived from AbstractDynamicsModel")

        config = SCvxConfig() if config is None else config

        self.model: AbstractDynamicsModel = model  #: dynamics model
        self.config: SCvxConfig = config  #: run settings

        n, m = model.nStates, model.nInputs

        # Column layout of the augmented matrix
        self._ixPhi = slice(1, 1 + n)
        self._ixB = slice(1 + n, 1 + n + m)
        self._ixC = slice(1 + n + m, 1 + n + 2 * m)
        self._ixSigma = 1 + n + 2 * m
        self._ixZ = 2 + n + 2 * m
        self._nCols = 3 + n + 2 * m

    def __repr__(self) -> str:
        out = f"<{self.__class__.__name__}:"
        for attr in ("model", "config"):
            out += "\n  {!s} = {!r},".format(attr, getattr(self, attr))
        out += "\n>"
        return out

    @property
    def nCols(self) -> int:
        """Number of columns in the augmented matrix, ``1 + n + 2m + 2``"""
        return self._nCols

    def diffEqs(
        self,
        t: float,
        v: NDArray[np.double],
        uStart: NDArray[np.double],
        uEnd: NDArray[np.double],
        sigma: float,
        dt: float,
    ) -> NDArray[np.double]:
        """
        Evaluate the augmented differential equations

        Args:
            t: normalized time since the start of the interval
            v: the augmented matrix, flattened in row-major order
            uStart: control at the start of the interval
            uEnd: control at the end of the interval
            sigma: total time
            dt: width of the interval in normalized time

        Returns:
            the derivative of ``v`` with respect to ``t``, flattened in row-major
            order

        Raises:
            LinearizationFailure: if the state transition matrix cannot be
                inverted
        """
        model = self.model
        V = v.reshape((model.nStates, self._nCols))
        x = V[:, 0]
        Phi = V[:, self._ixPhi]

        alpha = t / dt
        beta = 1.0 - alpha
        u = uStart + alpha * (uEnd - uStart)

        f = model.ode(x, u)
        A_bar = sigma * model.stateJacobian(x, u)
        B_bar = sigma * model.controlJacobian(x, u)

        rhs = np.column_stack((B_bar * beta, B_bar * alpha, f, -A_bar @ x - B_bar @ u))
        sens = numerics.guardedSolve(Phi, rhs, self.config.maxCond)

        dV = np.empty(V.shape)
        dV[:, 0] = sigma * f
        dV[:, self._ixPhi] = A_bar @ Phi
        dV[:, self._ixB.start :] = sens
        return dV.ravel()

    def interval(
        self,
        x: FloatArray,
        uStart: FloatArray,
        uEnd: FloatArray,
        sigma: float,
        dt: float,
        index: Union[int, None] = None,
        **kwargs,
    ) -> AffineModel:
        """
        Compute the affine model of a single interval

        Args:
            x: reference state at the start of the interval
            uStart: reference control at the start of the interval
            uEnd: reference control at the end of the interval
            sigma: reference total time
            dt: width of the interval in normalized time
            index: index of the interval; only used to identify the interval in
                logs and errors
            kwargs: additional arguments passed to
                :func:`scipy.integrate.solve_ivp`. The ``method``, ``atol``,
                ``rtol``, and ``first_step`` values from the :attr:`config` act
                as defaults but can be overridden here.

        Returns:
            the affine model

        Raises:
            LinearizationFailure: if the integration fails, produces non-finite
                values, or encounters a state transition matrix that cannot be
                inverted
        """
        model = self.model
        n = model.nStates
        x_ = np.array(x, dtype=float, ndmin=1)
        uStart_ = np.array(uStart, dtype=float, ndmin=1)
        uEnd_ = np.array(uEnd, dtype=float, ndmin=1)

        if not x_.size == n:
            raise ValueError(f"x has {x_.size} elements; expected {n}")
        if not uStart_.size == model.nInputs or not uEnd_.size == model.nInputs:
            raise ValueError(f"Controls must have {model.nInputs} elements")
        if not dt > 0:
            raise ValueError("dt must be positive")

        # defaults from the configuration
        kwargs_in = {
            "method": self.config.method,
            "atol": self.config.atol,
            "rtol": self.config.rtol,
            "first_step": dt * self.config.initialStepFraction,
        }
        kwargs_in.update(**kwargs)

        if "args" in kwargs_in:
            logger.warning("Overwriting 'args' passed to interval()")
        kwargs_in["args"] = (uStart_, uEnd_, float(sigma), dt)

        V0 = np.zeros((n, self._nCols))
        V0[:, 0] = x_
        V0[:, self._ixPhi] = np.eye(n)

        try:
            sol = solve_ivp(self.diffEqs, (0.0, dt), V0.ravel(), **kwargs_in)
        except LinearizationFailure as err:
            err.interval = index
            raise

        if sol.status < 0:
            raise LinearizationFailure(
                f"Integration failed: {sol.message}", interval=index
            )

        V = sol.y[:, -1].reshape((n, self._nCols))
        if not np.all(np.isfinite(V)):
            raise LinearizationFailure(
                "Integration produced non-finite values", interval=index
            )

        A = V[:, self._ixPhi].copy()
        return AffineModel(
            A=A,
            B=A @ V[:, self._ixB],
            C=A @ V[:, self._ixC],
            Sigma=A @ V[:, self._ixSigma],
            z=A @ V[:, self._ixZ],
        )

    def discretize(self, reference: Trajectory) -> list[AffineModel]:
        """
        Compute the affine models of every interval of a reference trajectory

        Args:
            reference: the trajectory to linearize about

        Returns:
            ``K - 1`` affine models; entry ``k`` describes the interval between
            nodes ``k`` and ``k + 1``

        Raises:
            LinearizationFailure: if any interval fails
        """
        if reference.model is not self.model:
            logger.warning("Reference trajectory uses a different model object")

        K = reference.K
        dt = 1.0 / (K - 1)
        X, U = reference.states, reference.controls

        start = time.perf_counter()
        models = [
            self.interval(X[:, k], U[:, k], U[:, k + 1], reference.sigma, dt, index=k)
            for k in range(K - 1)
        ]
        logger.debug(
            f"Discretized {K - 1} intervals in {time.perf_counter() - start:.3f} s"
        )
        return models
