"""
Convex Subproblem
=================

Each iteration of successive convexification solves a second-order cone program
(SOCP) built from the affine models of the dynamics. The structure of that
program (its variables, constraints, and objective) never changes between
iterations; only the coefficients do. The :class:`ConvexSubproblem` therefore
declares the structure once, using :mod:`cvxpy` parameters for every coefficient
that depends on the reference trajectory, and refreshes the parameter values
before each solve. Because the problem follows the disciplined parametrized
programming (DPP) rules, cvxpy canonicalizes it once and reuses the result.

Variables
---------

=============== =============== ================================================
Name            Shape           Description
=============== =============== ================================================
``X``           (n, K)          state trajectory
``U``           (m, K)          control trajectory
``nu``          (n, K-1)        virtual control
``norm2_nu``    scalar          upper bound on the 2-norm of all virtual controls
``sigma``       scalar          total time
``Delta_sigma`` scalar          trust region on the total time
``Delta``       (K,)            per-node state/control trust region (optional)
=============== =============== ================================================

Constraints and objective
-------------------------

**Dynamics.** For each interval,

.. math::
   \\vec{x}_{k+1} = \\mathbf{A}_k \\vec{x}_k + \\mathbf{B}_k \\vec{u}_k
     + \\mathbf{C}_k \\vec{u}_{k+1} + \\vec{\\Sigma}_k \\sigma + \\vec{z}_k
     + \\vec{\\nu}_k

**Virtual control.** The virtual control keeps the subproblem feasible even
when the linearization is poor; it is bounded by ``norm2_nu``, which is heavily
penalized.

**Time trust region.** The change in total time relative to the reference,
:math:`\\sigma_0`, is bounded by :math:`(\\sigma - \\sigma_0)^2 \\le \\Delta_\\sigma`,
written as the second-order cone

.. math::
   \\left\\| \\begin{bmatrix}
      -\\sigma_0 \\sigma - \\tfrac{1}{2}\\Delta_\\sigma + \\tfrac{1}{2}(1 + \\sigma_0^2) \\\\
      \\sigma
   \\end{bmatrix} \\right\\|_2
   \\le \\sigma_0 \\sigma + \\tfrac{1}{2}\\Delta_\\sigma + \\tfrac{1}{2}(1 - \\sigma_0^2).

**State/control trust region.** When enabled, each node satisfies
:math:`\\|\\vec{x}_k - \\bar{\\vec{x}}_k\\|^2 + \\|\\vec{u}_k - \\bar{\\vec{u}}_k\\|^2 \\le \\Delta_k`.

The objective is the weighted sum of ``sigma``, ``norm2_nu``, ``Delta_sigma``,
the sum of ``Delta``, and any terms added by the dynamics model.

Callback parameters
-------------------

Coefficients that depend on the reference trajectory are declared as *callback
parameters*: a :class:`cvxpy.Parameter` paired with a function that accepts the
reference :class:`~scvx.dynamics.Trajectory` and returns the value. Callbacks
run only in :func:`ConvexSubproblem.refresh`, never during the solve.

.. code-block:: python

   def addApplicationConstraints(self, problem, K):
       X, U = problem.var("X"), problem.var("U")
       uRef = problem.addParameter("uRef", (self.nInputs, K),
                                   callback=lambda ref: ref.controls)
       problem.addConstraints([cp.sum(cp.multiply(uRef, U), axis=0) >= 0.1])

Reference
==========

.. autoclass:: ConvexSubproblem
   :members:

.. autoclass:: SubproblemSolution
   :members:
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable, Union

import cvxpy as cp
from cvxpy.constraints.constraint import Constraint
import numpy as np
from numpy.typing import NDArray

from scvx.config import SCvxConfig
from scvx.discretize import AffineModel
from scvx.dynamics import AbstractDynamicsModel, Trajectory
from scvx.exceptions import SolverNumericalError, SubproblemInfeasible

logger = logging.getLogger(__name__)

#: A function that computes a parameter value from the reference trajectory
Callback = Callable[[Trajectory], Union[float, NDArray[np.double]]]


@dataclass
class SubproblemSolution:
    """
    The solution of one convex subproblem
    """

    X: NDArray[np.double]  #: state trajectory, n x K
    U: NDArray[np.double]  #: control trajectory, m x K
    nu: NDArray[np.double]  #: virtual control, n x (K-1)
    norm2_nu: float  #: upper bound on the virtual control norm
    sigma: float  #: total time
    Delta_sigma: float  #: time trust region bound
    Delta: Union[NDArray[np.double], None]  #: state/control trust region bounds
    cost: float  #: optimal objective value
    status: str  #: solver status

    @property
    def trustRegion(self) -> float:
        """Sum of the state/control trust region bounds; zero if not used"""
        return 0.0 if self.Delta is None else float(np.sum(self.Delta))

    def toTrajectory(self, model: AbstractDynamicsModel) -> Trajectory:
        """
        Args:
            model: the dynamics model

        Returns:
            a trajectory built from the state, control, and total time
        """
        return Trajectory(model, self.X, self.U, self.sigma)


class ConvexSubproblem:
    """
    The convex subproblem solved at each successive convexification iteration

    The constructor declares the standard variables, dynamics constraints,
    virtual control, and trust regions, then invokes
    :func:`~scvx.dynamics.AbstractDynamicsModel.addApplicationConstraints` so the
    model can add its own. Call :func:`compile` once all declarations are made,
    then :func:`refresh` and :func:`solve` at each iteration.

    Args:
        model: the dynamics model
        config: run settings

    Raises:
        TypeError: if ``model`` is not derived from
            :class:`~scvx.dynamics.AbstractDynamicsModel`
    """

    def __init__(
        self,
        model: AbstractDynamicsModel,
        config: Union[SCvxConfig, None] = None,
    ) -> None:
        if not isinstance(model, AbstractDynamicsModel):
            raise TypeError("model must be derived from AbstractDynamicsModel")

        self.model = model  #: AbstractDynamicsModel: the dynamics model
        self.config = SCvxConfig() if config is None else config  #: run settings

        self._variables: dict[str, cp.Variable] = {}
        self._parameters: dict[str, cp.Parameter] = {}
        self._callbacks: dict[str, Callback] = {}
        self._constraints: list[Constraint] = []
        self._objective: list[cp.Expression] = []
        self._intervals: list[dict[str, cp.Parameter]] = []
        self._problem: Union[cp.Problem, None] = None

        self._declare()
        model.addApplicationConstraints(self, self.config.K)

    def __repr__(self) -> str:
        out = f"<{self.__class__.__name__}:"
        out += "\n  variables = {!r},".format(list(self._variables))
        out += "\n  parameters = {!r},".format(list(self._parameters))
        out += "\n  constraints = {:d},".format(len(self._constraints))
        out += "\n  compiled = {!r},".format(self.compiled)
        out += "\n>"
        return out

    # --------------------------------------------------------------------------
    # Declarations
    # --------------------------------------------------------------------------

    def _checkMutable(self) -> None:
        if self.compiled:
            raise RuntimeError("The problem structure is compiled and cannot change")

    def addVariable(self, name: str, shape: tuple[int, ...] = ()) -> cp.Variable:
        """
        Declare a named optimization variable

        Args:
            name: the variable name; must be unique
            shape: the variable shape; an empty tuple declares a scalar

        Returns:
            the variable

        Raises:
            RuntimeError: if the problem has been compiled
            ValueError: if the name is already in use
        """
        self._checkMutable()
        if name in self._variables or name in self._parameters:
            raise ValueError(f"The name '{name}' is already in use")

        var = cp.Variable(shape, name=name)
        self._variables[name] = var
        return var

    def var(self, name: str) -> cp.Variable:
        """
        Args:
            name: the variable name

        Returns:
            the variable

        Raises:
            KeyError: if no variable has that name
        """
        if name not in self._variables:
            raise KeyError(f"No variable named '{name}'")
        return self._variables[name]

    def addParameter(
        self,
        name: str,
        shape: tuple[int, ...] = (),
        callback: Union[Callback, None] = None,
        value: Union[float, NDArray[np.double], None] = None,
    ) -> cp.Parameter:
        """
        Declare a named parameter

        Args:
            name: the parameter name; must be unique
            shape: the parameter shape; an empty tuple declares a scalar
            callback: a function that accepts the reference
                :class:`~scvx.dynamics.Trajectory` and returns the parameter value.
                It is evaluated in :func:`refresh`. If None, the value is set by
                the caller.
            value: the initial value; defaults to zeros

        Returns:
            the parameter

        Raises:
            RuntimeError: if the problem has been compiled
            ValueError: if the name is already in use
            TypeError: if the callback is not callable
        """
        self._checkMutable()
        if name in self._variables or name in self._parameters:
            raise ValueError(f"The name '{name}' is already in use")
        if callback is not None and not callable(callback):
            raise TypeError("callback must be callable")

        param = cp.Parameter(shape, name=name)
        param.value = np.zeros(shape) if value is None else value
        self._parameters[name] = param
        if callback is not None:
            self._callbacks[name] = callback
        return param

    def param(self, name: str) -> cp.Parameter:
        """
        Args:
            name: the parameter name

        Returns:
            the parameter

        Raises:
            KeyError: if no parameter has that name
        """
        if name not in self._parameters:
            raise KeyError(f"No parameter named '{name}'")
        return self._parameters[name]

    def addConstraints(self, constraints: Sequence[Constraint]) -> None:
        """
        Add constraints to the problem

        Args:
            constraints: one or more cvxpy constraints

        Raises:
            RuntimeError: if the problem has been compiled
        """
        self._checkMutable()
        if isinstance(constraints, Constraint):
            constraints = [constraints]
        self._constraints.extend(constraints)

    def addMinimizationTerm(self, expr: cp.Expression, weight: float = 1.0) -> None:
        """
        Add a weighted term to the objective

        Args:
            expr: a convex, scalar expression
            weight: the non-negative weight

        Raises:
            RuntimeError: if the problem has been compiled
            ValueError: if the weight is negative
        """
        self._checkMutable()
        if weight < 0:
            raise ValueError("weight must be non-negative")
        self._objective.append(weight * expr)

    def _declare(self) -> None:
        config = self.config
        K, n, m = config.K, self.model.nStates, self.model.nInputs

        X = self.addVariable("X", (n, K))
        U = self.addVariable("U", (m, K))
        nu = self.addVariable("nu", (n, K - 1))
        norm2_nu = self.addVariable("norm2_nu")
        sigma = self.addVariable("sigma")
        Delta_sigma = self.addVariable("Delta_sigma")

        # Main objective: minimize total time
        self.addMinimizationTerm(sigma, config.wSigma)

        # Linearized dynamics
        for k in range(K - 1):
            coeffs = {
                "A": self.addParameter(f"A_{k}", (n, n)),
                "B": self.addParameter(f"B_{k}", (n, m)),
                "C": self.addParameter(f"C_{k}", (n, m)),
                "Sigma": self.addParameter(f"Sigma_{k}", (n,)),
                "z": self.addParameter(f"z_{k}", (n,)),
            }
            self._intervals.append(coeffs)
            self.addConstraints(
                [
                    X[:, k + 1]
                    == coeffs["A"] @ X[:, k]
                    + coeffs["B"] @ U[:, k]
                    + coeffs["C"] @ U[:, k + 1]
                    + coeffs["Sigma"] * sigma
                    + coeffs["z"]
                    + nu[:, k]
                ]
            )

        # Virtual control; the Frobenius norm is the 2-norm of all stacked entries
        self.addConstraints([cp.norm(nu, "fro") <= norm2_nu])
        self.addMinimizationTerm(norm2_nu, config.wVirtualControl)

        # Time trust region, (sigma - sigma0)^2 <= Delta_sigma
        s1 = self.addParameter("sigma_neg", callback=lambda ref: -ref.sigma)
        s2 = self.addParameter(
            "sigma_plus", callback=lambda ref: 0.5 + 0.5 * ref.sigma**2
        )
        s3 = self.addParameter("sigma_ref", callback=lambda ref: ref.sigma)
        s4 = self.addParameter(
            "sigma_minus", callback=lambda ref: 0.5 - 0.5 * ref.sigma**2
        )
        self.addConstraints(
            [
                cp.norm(cp.hstack([s1 * sigma - 0.5 * Delta_sigma + s2, sigma]))
                <= s3 * sigma + 0.5 * Delta_sigma + s4
            ]
        )
        self.addMinimizationTerm(Delta_sigma, config.wTrustSigma)

        # State and control trust region
        if config.trustRegion:
            Delta = self.addVariable("Delta", (K,))
            Xref = self.addParameter("X_ref", (n, K), callback=lambda ref: ref.states)
            Uref = self.addParameter(
                "U_ref", (m, K), callback=lambda ref: ref.controls
            )
            self.addConstraints(
                [
                    cp.sum(cp.square(X - Xref), axis=0)
                    + cp.sum(cp.square(U - Uref), axis=0)
                    <= Delta
                ]
            )
            self.addMinimizationTerm(cp.sum(Delta), config.wTrustRegion)

    # --------------------------------------------------------------------------
    # Compile, refresh, solve
    # --------------------------------------------------------------------------

    @property
    def compiled(self) -> bool:
        """Whether or not the problem structure has been compiled"""
        return self._problem is not None

    @property
    def problem(self) -> cp.Problem:
        """The compiled cvxpy problem"""
        if self._problem is None:
            raise RuntimeError("The problem has not been compiled")
        return self._problem

    def compile(self) -> None:
        """
        Fix the problem structure

        No variables, parameters, constraints, or objective terms can be added
        after this call.

        Raises:
            ValueError: if the problem is not convex (does not follow the DCP rules)
        """
        if self.compiled:
            logger.debug("Problem is already compiled")
            return

        problem = cp.Problem(cp.Minimize(sum(self._objective)), self._constraints)
        if not problem.is_dcp():
            raise ValueError("The subproblem does not follow the DCP rules")
        if not problem.is_dcp(dpp=True):
            logger.warning(
                "The subproblem is not DPP; it will be canonicalized at every solve"
            )

        self._problem = problem
        logger.debug(
            f"Compiled subproblem with {len(problem.variables())} variables, "
            f"{len(problem.parameters())} parameters, and "
            f"{len(problem.constraints)} constraints"
        )

    def refresh(
        self, reference: Trajectory, affineModels: Sequence[AffineModel]
    ) -> None:
        """
        Update all parameter values for a new iteration

        Args:
            reference: the reference trajectory
            affineModels: the ``K - 1`` affine models computed about the reference

        Raises:
            ValueError: if the number of affine models or the reference size
                doesn't match the problem
        """
        K = self.config.K
        if not reference.K == K:
            raise ValueError(f"Reference has {reference.K} nodes; expected {K}")
        if not len(affineModels) == K - 1:
            raise ValueError(
                f"Expected {K - 1} affine models; received {len(affineModels)}"
            )

        for coeffs, aff in zip(self._intervals, affineModels):
            coeffs["A"].value = aff.A
            coeffs["B"].value = aff.B
            coeffs["C"].value = aff.C
            coeffs["Sigma"].value = aff.Sigma
            coeffs["z"].value = aff.z

        for name, callback in self._callbacks.items():
            param = self._parameters[name]
            value = np.asarray(callback(reference), dtype=float)
            param.value = np.reshape(value, param.shape)

    def solve(self) -> SubproblemSolution:
        """
        Solve the subproblem with the current parameter values

        Returns:
            the solution

        Raises:
            RuntimeError: if the problem has not been compiled
            SubproblemInfeasible: if the solver reports infeasibility
            SolverNumericalError: if the solver fails or reports any other
                non-optimal status
        """
        problem = self.problem
        config = self.config

        try:
            problem.solve(
                solver=config.solver, verbose=config.verbose, **config.solverOptions
            )
        except cp.SolverError as err:
            raise SolverNumericalError(
                f"Solver failed: {err}", status="solver_error"
            ) from err

        status = problem.status
        if status in (cp.INFEASIBLE, cp.INFEASIBLE_INACCURATE):
            raise SubproblemInfeasible(
                f"Subproblem is infeasible (status = {status})", status=status
            )
        elif status == cp.OPTIMAL_INACCURATE:
            logger.warning("Solver returned an inaccurate solution")
        elif not status == cp.OPTIMAL:
            raise SolverNumericalError(
                f"Solver returned status '{status}'", status=status
            )

        Delta = self._variables.get("Delta")
        return SubproblemSolution(
            X=np.array(self.value("X")),
            U=np.array(self.value("U")),
            nu=np.array(self.value("nu")),
            norm2_nu=float(self.value("norm2_nu")),
            sigma=float(self.value("sigma")),
            Delta_sigma=float(self.value("Delta_sigma")),
            Delta=None if Delta is None else np.array(Delta.value),
            cost=float(problem.value),
            status=status,
        )

    def value(self, name: str, indices: Union[int, tuple, None] = None):
        """
        Get the solution value of a variable

        Args:
            name: the variable name
            indices: an index or tuple of indices into the variable; None returns
                the whole value

        Returns:
            the value (a float for scalar variables or elements, an array
            otherwise)

        Raises:
            KeyError: if no variable has that name
            RuntimeError: if the variable has no value, e.g., before a solve
        """
        val = self.var(name).value
        if val is None:
            raise RuntimeError(f"Variable '{name}' has no value; solve the problem")

        val = np.asarray(val)
        if indices is not None:
            val = val[indices]
        return float(val) if np.ndim(val) == 0 else val
