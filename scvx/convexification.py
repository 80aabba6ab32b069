"""
Successive Convexification
==========================

The :class:`SuccessiveConvexification` class solves a nonconvex trajectory
optimization problem by repeatedly

1. linearizing and discretizing the dynamics about a reference trajectory via
   :class:`~scvx.discretize.Discretizer`,
2. solving the resulting convex subproblem, :class:`~scvx.problem.ConvexSubproblem`,
   and
3. adopting the subproblem solution as the new reference.

.. code-block:: python

   model = Rocket6DoF()
   scvx = SuccessiveConvexification(model, SCvxConfig(K=50, maxIterations=10))
   solution, log = scvx.solve()

The loop moves through the phases defined by :class:`Phase`: it starts in
``INITIALIZING``, where the model supplies the initial guess, then cycles through
``LINEARIZING``, ``SOLVING``, and ``UPDATING`` until it is ``TERMINATED``. Each
candidate solution is adopted unconditionally; there is no line search or
acceptance test. The virtual control and trust regions in the subproblem keep
every iteration feasible and bounded.

Termination
-----------

By default, the loop runs for ``maxIterations`` iterations
(:class:`FixedIterations`). An explicit convergence criterion can be assigned to
:attr:`SuccessiveConvexification.convergenceCheck`; for example,
:class:`VirtualControlConvergence` stops once the virtual control and the trust
regions are negligible. Any object with an ``isConverged`` method that accepts
an :class:`IterationRecord` and returns a :class:`bool` may be used.

Failures
--------

A :class:`~scvx.exceptions.LinearizationFailure`,
:class:`~scvx.exceptions.SubproblemInfeasible`, or
:class:`~scvx.exceptions.SolverNumericalError` ends the run. The loop records
the failure in its log, tags the error with the iteration number, and re-raises
it; no trajectory is returned.

Reference
==========

.. autoclass:: SuccessiveConvexification
   :members:

.. autoclass:: Phase
   :members:

.. autoclass:: IterationRecord
   :members:

.. autoclass:: FixedIterations
   :members:

.. autoclass:: VirtualControlConvergence
   :members:
"""
from __future__ import annotations

import logging
import time
from copy import copy, deepcopy
from dataclasses import dataclass
from enum import Enum
from typing import Union

from scvx.config import SCvxConfig
from scvx.discretize import Discretizer
from scvx.dynamics import AbstractDynamicsModel, Trajectory
from scvx.exceptions import SCvxError
from scvx.problem import ConvexSubproblem

logger = logging.getLogger(__name__)


class Phase(Enum):
    """
    The phases of the successive convexification loop
    """

    INITIALIZING = 0  #: building the initial guess and the subproblem
    LINEARIZING = 1  #: computing the affine models of every interval
    SOLVING = 2  #: refreshing parameters and solving the subproblem
    UPDATING = 3  #: adopting the subproblem solution as the new reference
    TERMINATED = 4  #: finished, either normally or with an error


@dataclass
class IterationRecord:
    """
    Diagnostics from one outer iteration
    """

    iteration: int  #: iteration number, starting at 1
    cost: float  #: optimal subproblem objective value
    norm2_nu: float  #: virtual control norm bound
    sigma: float  #: total time
    Delta_sigma: float  #: time trust region bound
    trustRegion: float  #: sum of the state/control trust region bounds
    status: str  #: solver status
    linearizeTime: float  #: wall time spent discretizing, seconds
    solveTime: float  #: wall time spent in the subproblem, seconds


class FixedIterations:
    """
    Never signals convergence; the loop runs for ``maxIterations`` iterations
    """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"

    def isConverged(self, record: IterationRecord) -> bool:
        return False


class VirtualControlConvergence:
    """
    Define convergence via the virtual control and the trust regions

    The solution is converged when the linearized dynamics are satisfied without
    virtual control and the solution no longer moves away from the reference.

    Args:
        nuTol: the maximum virtual control norm
        sigmaTol: the maximum time trust region bound, ``Delta_sigma``
        trustTol: the maximum sum of the state/control trust region bounds
    """

    def __init__(
        self, nuTol: float = 1e-6, sigmaTol: float = 1e-4, trustTol: float = 1e-3
    ) -> None:
        self.nuTol = nuTol  #: float: maximum virtual control norm
        self.sigmaTol = sigmaTol  #: float: maximum time trust region bound
        self.trustTol = trustTol  #: float: maximum state/control trust region sum

    def __repr__(self) -> str:
        out = f"<{self.__class__.__name__}:"
        for attr in ("nuTol", "sigmaTol", "trustTol"):
            out += "\n  {!s} = {!r},".format(attr, getattr(self, attr))
        out += "\n>"
        return out

    def isConverged(self, record: IterationRecord) -> bool:
        """
        Args:
            record: diagnostics from the most recent iteration

        Returns:
            True if all three quantities are less than or equal to their
            tolerances
        """
        return (
            record.norm2_nu <= self.nuTol
            and record.Delta_sigma <= self.sigmaTol
            and record.trustRegion <= self.trustTol
        )


class SuccessiveConvexification:
    """
    Solve a trajectory optimization problem by successive convexification

    Args:
        model: the dynamics model, which also supplies the initial guess and the
            mission constraints
        config: run settings
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

        #: An object containing an ``isConverged`` method that accepts an
        #: :class:`IterationRecord` as an input and returns a :class:`bool`
        self.convergenceCheck = FixedIterations()

        #: Discretizer: computes the affine models
        self.discretizer = Discretizer(model, self.config)

        #: Phase: the current phase of the loop
        self.phase = Phase.INITIALIZING

        #: A persistent log; reset and populated every time :func:`solve` is run.
        self.log: dict[str, object] = {}

        self._subproblem: Union[ConvexSubproblem, None] = None

    def __repr__(self) -> str:
        out = f"<{self.__class__.__name__}:"
        for attr in ("model", "config", "convergenceCheck"):
            out += "\n  {!s} = {!r},".format(attr, getattr(self, attr))
        out += "\n>"
        return out

    @property
    def subproblem(self) -> ConvexSubproblem:
        """The compiled convex subproblem; built on first access"""
        if self._subproblem is None:
            self._subproblem = ConvexSubproblem(self.model, self.config)
            self._subproblem.compile()
        return self._subproblem

    def _validateArgs(self) -> None:
        """
        Check the types and values of class attributes so that useful errors
        can be thrown before those attributes are evaluated or used.

        Raises:
            TypeError: if any attribute type is incorrect
            AttributeError: if the convergence check has no ``isConverged`` method
        """
        if self.convergenceCheck is None:
            raise TypeError(
                "convergenceCheck is None; please assign a convergence check"
            )
        if not hasattr(self.convergenceCheck, "isConverged"):
            raise AttributeError("convergenceCheck needs a method named 'isConverged'")
        if not callable(self.convergenceCheck.isConverged):
            raise TypeError("convergenceCheck.isConverged must be callable")

    def solve(
        self, guess: Union[Trajectory, None] = None
    ) -> tuple[Trajectory, dict]:
        """
        Run the successive convexification loop

        Args:
            guess: the initial reference trajectory. If None, the model's
                :func:`~scvx.dynamics.AbstractDynamicsModel.initialGuess` is used.

        Returns:
            A tuple with two elements. The first is the :class:`Trajectory`
            after the final iteration. The second is a logging :class:`dict` with
            the following keywords:

            - ``status`` (:class:`str`): "converged" if the convergence check was
              satisfied, or "max-iterations" if the maximum number of iterations
              were completed first.
            - ``iterations`` (:class:`list`): one :class:`IterationRecord` per
              iteration.

            The log from the most recent call to ``solve`` is stored in :attr:`log`
            so that it is available even when the loop raises an error; the
            status is then "failed" and ``phase`` names the phase that failed.

        Raises:
            ValueError: if ``guess`` does not match the model or node count
            LinearizationFailure: if an interval cannot be discretized
            SubproblemInfeasible: if a subproblem is infeasible
            SolverNumericalError: if the solver fails
        """
        self._validateArgs()
        self.phase = Phase.INITIALIZING
        self.log = {"status": "", "iterations": []}

        config, model = self.config, self.model
        if guess is None:
            reference = model.initialGuess(config.K)
        else:
            if guess.model is not model:
                raise ValueError("guess must use the same model object")
            if not guess.K == config.K:
                raise ValueError(f"guess has {guess.K} nodes; expected {config.K}")
            reference = deepcopy(guess)

        problem = self.subproblem

        itCount = 0
        logger.info("Beginning successive convexification")
        try:
            while True:
                itCount += 1

                self.phase = Phase.LINEARIZING
                start = time.perf_counter()
                affineModels = self.discretizer.discretize(reference)
                linTime = time.perf_counter() - start

                self.phase = Phase.SOLVING
                start = time.perf_counter()
                problem.refresh(reference, affineModels)
                solution = problem.solve()
                solveTime = time.perf_counter() - start

                self.phase = Phase.UPDATING
                reference = solution.toTrajectory(model)

                record = IterationRecord(
                    iteration=itCount,
                    cost=solution.cost,
                    norm2_nu=solution.norm2_nu,
                    sigma=solution.sigma,
                    Delta_sigma=solution.Delta_sigma,
                    trustRegion=solution.trustRegion,
                    status=solution.status,
                    linearizeTime=linTime,
                    solveTime=solveTime,
                )
                self.log["iterations"].append(record)  # type: ignore

                logger.info(
                    f"Iteration {itCount:03d}: cost = {record.cost:.4e}, "
                    f"||nu|| = {record.norm2_nu:.4e}, sigma = {record.sigma:.4e}, "
                    f"Delta_sigma = {record.Delta_sigma:.4e}"
                )
                logger.debug(
                    f"Iteration {itCount:03d}: linearized in {linTime:.3f} s, "
                    f"solved in {solveTime:.3f} s"
                )

                if self.convergenceCheck.isConverged(record):
                    self.log["status"] = "converged"
                    break
                elif itCount >= config.maxIterations:
                    self.log["status"] = "max-iterations"
                    break

        except SCvxError as err:
            if err.iteration is None:
                err.iteration = itCount
            self.log["status"] = "failed"
            self.log["phase"] = self.phase.name
            logger.error(
                f"Successive convexification failed while {self.phase.name}: {err}"
            )
            self.phase = Phase.TERMINATED
            raise

        self.phase = Phase.TERMINATED
        return reference, copy(self.log)

    def printLog(self) -> None:
        """
        Print the iteration history from the most recent :func:`solve` as a table
        """
        from rich.table import Table

        from scvx import console

        table = Table(
            "It",
            "Cost",
            "||nu||",
            "sigma",
            "Delta_sigma",
            "Trust",
            "Status",
            "Lin. [s]",
            "Solve [s]",
            title=f"Successive Convexification ({self.log.get('status', '')})",
        )
        for rec in self.log.get("iterations", []):  # type: ignore
            table.add_row(
                f"{rec.iteration:03d}",
                f"{rec.cost:.4e}",
                f"{rec.norm2_nu:.4e}",
                f"{rec.sigma:.4e}",
                f"{rec.Delta_sigma:.4e}",
                f"{rec.trustRegion:.4e}",
                rec.status,
                f"{rec.linearizeTime:.3f}",
                f"{rec.solveTime:.3f}",
                style=None if rec.status == "optimal" else "yellow",
            )
        console.print(table)

    def printTrajectory(self, trajectory: Trajectory) -> None:
        """
        Print the state and control at every node as a table

        Args:
            trajectory: the trajectory to print
        """
        from rich.table import Table

        from scvx import console

        names = self.model.stateCoords() + self.model.controlCoords()
        table = Table(
            "k", "t", *names, title=f"Trajectory (sigma = {trajectory.sigma:.4e})"
        )
        for k, t in enumerate(trajectory.times):
            vals = list(trajectory.states[:, k]) + list(trajectory.controls[:, k])
            table.add_row(f"{k}", f"{t:.4f}", *[f"{v:.4e}" for v in vals])
        console.print(table)
