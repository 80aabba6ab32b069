"""
Configuration
=============

The constants that govern a successive convexification run are collected in a
single immutable :class:`SCvxConfig`. The loop holds the configuration and
passes it by reference to the discretizer and the subproblem builder, so every
component sees the same node count, weights, and tolerances.

.. code-block:: python

   from dataclasses import replace
   from scvx.config import SCvxConfig

   config = SCvxConfig(K=30, maxIterations=15)
   tighter = replace(config, atol=1e-8, rtol=1e-8)

Reference
---------

.. autoclass:: SCvxConfig
   :members:
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SCvxConfig:
    """
    Settings for a successive convexification run

    The default weights reproduce the classic 6-DoF landing benchmark.
    """

    #: int: number of discretization nodes; there are ``K - 1`` intervals
    K: int = 50

    #: int: number of outer iterations; the loop stops here unless the
    #: convergence check is satisfied first
    maxIterations: int = 10

    #: float: objective weight on the total time, ``sigma``
    wSigma: float = 1.0

    #: float: objective weight on the norm of the virtual control
    wVirtualControl: float = 1e2

    #: float: objective weight on the time trust-region bound, ``Delta_sigma``
    wTrustSigma: float = 1.0

    #: float: objective weight on the per-node state/input trust-region bounds
    wTrustRegion: float = 1e-3

    #: bool: whether to include the per-node state/input trust region
    trustRegion: bool = True

    #: str: name of the cvxpy solver used for the subproblems
    solver: str = "CLARABEL"

    #: dict: extra keyword arguments passed to :meth:`cvxpy.Problem.solve`
    solverOptions: dict = field(default_factory=dict)

    #: float: absolute tolerance of the discretization integrator
    atol: float = 1e-4

    #: float: relative tolerance of the discretization integrator
    rtol: float = 1e-4

    #: float: the first integration step is this fraction of the interval width
    initialStepFraction: float = 0.1

    #: str: integration method passed to :func:`scipy.integrate.solve_ivp`
    method: str = "RK45"

    #: float: the largest acceptable condition number of a state transition matrix
    maxCond: float = 1e12

    #: bool: whether the conic solver prints its own progress
    verbose: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.K, int) or isinstance(self.K, bool):
            raise TypeError("K must be an integer")
        if self.K < 2:
            raise ValueError("K must be at least 2")
        if not isinstance(self.maxIterations, int):
            raise TypeError("maxIterations must be an integer")
        if not self.maxIterations > 0:
            raise ValueError("maxIterations must be positive")

        for name in ("wSigma", "wVirtualControl", "wTrustSigma", "wTrustRegion"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

        for name in ("atol", "rtol", "initialStepFraction", "maxCond"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive")

        if not 0 < self.initialStepFraction <= 1:
            raise ValueError("initialStepFraction must be in (0, 1]")
