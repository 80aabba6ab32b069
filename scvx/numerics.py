"""
Numerics
========

Numerical helpers used to linearize the dynamics and verify analytic partial
derivatives.

Reference
-----------

.. autosummary::
   derivative
   jacobian
   guardedSolve

.. autofunction:: derivative
.. autofunction:: jacobian
.. autofunction:: guardedSolve

Sources
---------

.. [Ridders]
   Ridders, C.J.F., "Accurate computation of F'(x)  and F'(x)F''(x)",
   Advances in Engineering Software, vol 4, no. 2, April 1982,
   pp. 75--76. doi: 10.1016/S0141-1195(82)80057-0

.. [NumRecipes]
   Press, W.H., Teukolsky, S.A., Vetterling, W.T., and Flannery, B.P.,
   "Numerical Recipes in C - 2nd Edition", Cambridge University Press, 1996
"""
import logging
from typing import Callable, Union

import numpy as np
import scipy.linalg
from numpy.typing import NDArray

from scvx.exceptions import LinearizationFailure
from scvx.typing import FloatArray

logger = logging.getLogger(__name__)


def derivative(
    func: Callable,
    x: FloatArray,
    step: FloatArray,
    nIter: int = 10,
    maxRelChange: float = 2.0,
) -> NDArray[np.double]:
    """
    Compute the directional derivative of a function at ``x``.

    Central differences with successively smaller steps are extrapolated to a
    zero step size via Ridders' method [Ridders]_, following section 5.7 of
    [NumRecipes]_.

    Args:
        func: a function that accepts a single array argument and returns an
            array (or a scalar)
        x: the point at which to evaluate the derivative
        step: the initial perturbation of ``x``; it should be large enough that
            ``func`` changes substantially over the step. The derivative is
            taken along this direction.
        nIter: maximum size of the extrapolation tableau
        maxRelChange: stop when the error grows by this factor relative to the
            best error so far

    Returns:
        the derivative of ``func`` along ``step``, per unit length of ``step``

    Raises:
        ValueError: if ``x`` and ``step`` have different shapes or if ``step``
            is zero
    """
    shrink = 1.4
    shrink2 = shrink * shrink

    x = np.array(x, dtype=float, copy=True)
    step = np.array(step, dtype=float, copy=True)
    if not x.shape == step.shape:
        raise ValueError(f"x {x.shape} and step {step.shape} must have the same shapes")
    if np.all(step == 0.0):
        raise ValueError("Step must be nonzero")

    size = float(np.linalg.norm(step))

    def central(h: NDArray[np.double], hSize: float) -> NDArray[np.double]:
        return (np.asarray(func(x + h)) - np.asarray(func(x - h))) / (2 * hSize)

    tableau: list[list] = [[central(step, size)]]
    best = tableau[0][0]
    err = np.inf
    for col in range(1, nIter):
        step = step / shrink
        size /= shrink
        column = [central(step, size)]
        fac = shrink2
        for row in range(1, col + 1):
            column.append(
                (column[row - 1] * fac - tableau[col - 1][row - 1]) / (fac - 1.0)
            )
            fac *= shrink2
            errt = max(
                float(np.linalg.norm(column[row] - column[row - 1])),
                float(np.linalg.norm(column[row] - tableau[col - 1][row - 1])),
            )
            if errt <= err:
                err = errt
                best = column[row]

        tableau.append(column)

        # Higher order is significantly worse; the answer will not improve
        if (
            np.linalg.norm(column[col] - tableau[col - 1][col - 1])
            >= maxRelChange * err
        ):
            break

    return np.asarray(best)


def jacobian(
    func: Callable,
    x: FloatArray,
    step: Union[float, FloatArray] = 1e-3,
    nIter: int = 10,
) -> NDArray[np.double]:
    """
    Numerically compute the Jacobian of a vector function.

    Each element of ``x`` is perturbed in turn and the column of partial
    derivatives is computed via :func:`derivative`.

    Args:
        func: a function that accepts a vector and returns a vector
        x: the point at which to evaluate the Jacobian
        step: the initial step size; either a scalar applied to every element
            of ``x`` or a vector with one step per element
        nIter: maximum size of the extrapolation tableau

    Returns:
        the M-by-N Jacobian, where N is the size of ``x`` and M is the size of
        the output of ``func``

    Raises:
        ValueError: if ``step`` is a vector with a shape different from ``x``
    """
    x = np.array(x, dtype=float, ndmin=1, copy=True)
    if np.isscalar(step):
        steps = np.full(x.shape, float(step))  # type: ignore[arg-type]
    else:
        steps = np.array(step, dtype=float)
        if not steps.shape == x.shape:
            raise ValueError(
                f"'step' is a vector with shape {steps.shape}, but that shape"
                f" doesn't match the input vector {x.shape}"
            )

    out = np.zeros((np.asarray(func(x)).size, x.size))
    for ix in range(x.size):
        pert = np.zeros(x.shape)
        pert[ix] = steps[ix]
        out[:, ix] = np.ravel(derivative(func, x, pert, nIter=nIter))

    return out


def guardedSolve(
    M: NDArray[np.double],
    rhs: NDArray[np.double],
    maxCond: float = 1e12,
) -> NDArray[np.double]:
    """
    Solve ``M @ X = rhs`` for ``X``, refusing badly conditioned matrices.

    This is the only way the inverse of a state transition matrix is applied;
    the inverse is never formed explicitly.

    Args:
        M: a square matrix
        rhs: the right-hand side; a vector or a matrix with as many rows as ``M``
        maxCond: the largest acceptable condition number of ``M``

    Returns:
        the solution, ``X``, with the same shape as ``rhs``

    Raises:
        LinearizationFailure: if ``M`` or ``rhs`` contains non-finite values, if
            ``M`` is singular, or if its condition number is larger than
            ``maxCond``
    """
    if not np.all(np.isfinite(M)):
        raise LinearizationFailure("State transition matrix contains non-finite values")
    if not np.all(np.isfinite(rhs)):
        raise LinearizationFailure(
            "Dynamics or Jacobians evaluated to non-finite values"
        )

    cond = np.linalg.cond(M)
    if not np.isfinite(cond) or cond > maxCond:
        raise LinearizationFailure(
            f"State transition matrix is ill-conditioned (cond = {cond:.4e})"
        )

    try:
        return scipy.linalg.solve(M, rhs)
    except (scipy.linalg.LinAlgError, ValueError) as err:
        raise LinearizationFailure(
            f"Could not apply the inverse state transition matrix: {err}"
        ) from err
