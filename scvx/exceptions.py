"""
Exceptions
==========

Errors raised while solving a trajectory optimization problem. Each derives from
:class:`SCvxError`, which is a :class:`RuntimeError`, so callers can catch the
whole family or a specific failure.

.. autosummary::
   SCvxError
   LinearizationFailure
   SubproblemInfeasible
   SolverNumericalError

None of these errors is retried; the
:class:`~scvx.convexification.SuccessiveConvexification` loop records the
failure in its log and re-raises it so that no partially-converged trajectory is
mistaken for a solution.

Reference
---------

.. autoclass:: SCvxError
   :members:

.. autoclass:: LinearizationFailure
   :members:

.. autoclass:: SubproblemInfeasible
   :members:

.. autoclass:: SolverNumericalError
   :members:
"""
from __future__ import annotations

from typing import Union


class SCvxError(RuntimeError):
    """
    Base class for failures of the successive convexification process

    Args:
        msg: a description of the failure
        iteration: the outer iteration in which the failure occurred, if known
    """

    def __init__(self, msg: str, iteration: Union[int, None] = None) -> None:
        super().__init__(msg)

        #: int: outer iteration at which the failure occurred; None if unknown
        self.iteration = iteration

    def __str__(self) -> str:
        msg = super().__str__()
        if self.iteration is not None:
            msg = f"[iteration {self.iteration}] {msg}"
        return msg


class LinearizationFailure(SCvxError):
    """
    The discretization of an interval failed, e.g., because the state transition
    matrix became singular or the integration diverged

    Args:
        msg: a description of the failure
        interval: index of the interval that failed, if known
        iteration: the outer iteration in which the failure occurred, if known
    """

    def __init__(
        self,
        msg: str,
        interval: Union[int, None] = None,
        iteration: Union[int, None] = None,
    ) -> None:
        super().__init__(msg, iteration)

        #: int: index of the interval being discretized; None if unknown
        self.interval = interval

    def __str__(self) -> str:
        msg = super().__str__()
        if self.interval is not None:
            msg = f"{msg} (interval {self.interval})"
        return msg


class SubproblemInfeasible(SCvxError):
    """
    The conic solver reported the convex subproblem to be infeasible

    Args:
        msg: a description of the failure
        status: the solver status string
        iteration: the outer iteration in which the failure occurred, if known
    """

    def __init__(
        self, msg: str, status: str = "", iteration: Union[int, None] = None
    ) -> None:
        super().__init__(msg, iteration)
        self.status = status  #: str: solver status


class SolverNumericalError(SCvxError):
    """
    The conic solver failed, reported an unbounded problem, or returned any
    other non-optimal status

    Args:
        msg: a description of the failure
        status: the solver status string
        iteration: the outer iteration in which the failure occurred, if known
    """

    def __init__(
        self, msg: str, status: str = "", iteration: Union[int, None] = None
    ) -> None:
        super().__init__(msg, iteration)
        self.status = status  #: str: solver status
