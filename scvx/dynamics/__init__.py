"""
Dynamics Models
===============

Within the ``scvx`` library, a dynamics model defines the continuous-time
equations of motion of the vehicle,

.. math::
   \\dot{\\vec{x}} = \\vec{f}(\\vec{x}, \\vec{u}),

where :math:`\\vec{x}` is the state vector (``nStates`` elements) and
:math:`\\vec{u}` is the control vector (``nInputs`` elements). The dot denotes
the derivative with respect to physical time, :math:`t`.

Trajectories are optimized with a free final time, :math:`\\sigma`. The
successive convexification process works in normalized time,
:math:`\\tau = t / \\sigma \\in [0, 1]`, so that the equations of motion become

.. math::
   \\frac{\\mathrm{d}\\vec{x}}{\\mathrm{d}\\tau} = \\sigma \\vec{f}(\\vec{x}, \\vec{u}).

The model supplies :math:`\\vec{f}` and its two Jacobians,

.. math::
   \\mathbf{A}_c = \\frac{\\partial \\vec{f}}{\\partial \\vec{x}}, \\qquad
   \\mathbf{B}_c = \\frac{\\partial \\vec{f}}{\\partial \\vec{u}},

which the :mod:`~scvx.discretize` module uses to build exact discrete-time
affine models of the dynamics. Every model also supplies an initial guess for the
trajectory and total time, and injects its mission-specific constraints (boundary
conditions, state and control limits) into the convex subproblem via
:func:`AbstractDynamicsModel.addApplicationConstraints`.

.. note::
   The :class:`AbstractDynamicsModel` class is **abstract** and cannot be
   instantiated on its own. See :mod:`scvx.dynamics.rocket` and
   :mod:`scvx.dynamics.simple` for concrete implementations.

Trajectories
------------

The :class:`Trajectory` object captures the numerical data of a discretized
trajectory: the ``K`` state and control nodes, stored column-wise, and the total
time, ``sigma``, shared by all nodes.

.. code-block:: python

   model = Rocket6DoF()
   guess = model.initialGuess(K=50)
   guess.states    # (14, 50) array
   guess.controls  # (3, 50) array
   guess.sigma     # total time, TU

Units
-----

All values are stored in normalized units, :data:`~scvx.units.LU`,
:data:`~scvx.units.TU`, and :data:`~scvx.units.MU`. Each model records its
characteristic quantities in a :class:`~pint.Context`,
:attr:`AbstractDynamicsModel.unitContext`, so that
:func:`Trajectory.toBaseUnits` can express the results in physical units.

Partial Derivatives
-------------------

Analytic Jacobians are easy to get wrong. :func:`AbstractDynamicsModel.checkPartials`
compares them to numerical approximations computed via
:func:`scvx.numerics.jacobian` and prints a table of the results.

Reference
============

.. autoclass:: AbstractDynamicsModel
   :members:

.. autoclass:: Trajectory
   :members:

.. autoclass:: ModelBlockCopyMixin
   :members:
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import TYPE_CHECKING, Union

import numpy as np
import pint
from numpy.typing import NDArray

from scvx import ureg, util
from scvx.typing import FloatArray
from scvx.units import UU, kg, m, sec

if TYPE_CHECKING:
    from scvx.problem import ConvexSubproblem

logger = logging.getLogger(__name__)

__all__ = [
    # base module
    "AbstractDynamicsModel",
    "Trajectory",
    "ModelBlockCopyMixin",
    # sub modules
    "rocket",
    "simple",
]


class AbstractDynamicsModel(ABC):
    """
    Contains the mathematics that define a dynamics model

    Args:
        charL: length of one :data:`scvx.units.LU` in this model
        charT: duration of one :data:`scvx.units.TU` in this model
        charM: mass of one :data:`scvx.units.MU` in this model
    """

    _registry: dict[int, str] = {}

    def __init__(
        self,
        charL: pint.Quantity = 1.0 * m,
        charT: pint.Quantity = 1.0 * sec,
        charM: pint.Quantity = 1.0 * kg,
    ) -> None:
        if not charL.check("[length]"):
            raise pint.DimensionalityError(
                charL.units, "m", str(charL.dimensionality), "[length]"
            )
        if not charT.check("[time]"):
            raise pint.DimensionalityError(
                charT.units, "sec", str(charT.dimensionality), "[time]"
            )
        if not charM.check("[mass]"):
            raise pint.DimensionalityError(
                charM.units, "kg", str(charM.dimensionality), "[mass]"
            )

        # Register the model so that we can have a unique name for the unit context
        reg = AbstractDynamicsModel._registry
        ix = len(reg)
        clsName = self.__module__ + "." + self.__class__.__name__
        reg[ix] = clsName

        self._charL = charL
        self._charT = charT
        self._charM = charM

        #: pint.Context: the unit context defining conversions betwen
        #: :data:`~scvx.units.LU`, :data:`~scvx.units.TU`,
        #: :data:`~scvx.units.MU`, and standard units
        self.unitContext = pint.Context(f"{clsName}.{ix}")
        ureg.add_context(self.unitContext)
        self.unitContext.redefine(f"LU = {self._charL}")
        self.unitContext.redefine(f"TU = {self._charT}")
        self.unitContext.redefine(f"MU = {self._charM}")

    def __repr__(self) -> str:
        out = f"<{self.__class__.__module__}.{self.__class__.__name__}: "
        for attr in ("nStates", "nInputs", "charL", "charT", "charM"):
            out += "\n  {!s}={!r}".format(attr, getattr(self, attr))
        out += "\n  unitContext={!r}".format(self.unitContext.name)
        out += "\n>"
        return out

    @property
    def charL(self) -> pint.Quantity:
        """Defines the length of one :data:`scvx.units.LU` in this model"""
        return self._charL

    @property
    def charT(self) -> pint.Quantity:
        """Defines the duration of one :data:`scvx.units.TU` in this model"""
        return self._charT

    @property
    def charM(self) -> pint.Quantity:
        """Defines the mass of one :data:`scvx.units.MU` in this model"""
        return self._charM

    @property
    @abstractmethod
    def nStates(self) -> int:
        """The number of elements in the state vector"""
        pass

    @property
    @abstractmethod
    def nInputs(self) -> int:
        """The number of elements in the control vector"""
        pass

    # The ode and Jacobian methods are called many times per interval during
    # discretization; implementations should accept and return plain arrays.
    @abstractmethod
    def ode(self, x: NDArray[np.double], u: NDArray[np.double]) -> NDArray[np.double]:
        """
        Evaluate the equations of motion

        Args:
            x: state vector
            u: control vector

        Returns:
            the derivative of the state with respect to physical time
        """
        pass

    @abstractmethod
    def stateJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        """
        Evaluate the partial derivatives of :func:`ode` with respect to the state

        Args:
            x: state vector
            u: control vector

        Returns:
            the ``nStates`` by ``nStates`` matrix :math:`\\partial f/\\partial x`
        """
        pass

    @abstractmethod
    def controlJacobian(
        self, x: NDArray[np.double], u: NDArray[np.double]
    ) -> NDArray[np.double]:
        """
        Evaluate the partial derivatives of :func:`ode` with respect to the control

        Args:
            x: state vector
            u: control vector

        Returns:
            the ``nStates`` by ``nInputs`` matrix :math:`\\partial f/\\partial u`
        """
        pass

    @abstractmethod
    def initialize(self, X: NDArray[np.double], U: NDArray[np.double]) -> None:
        """
        Fill in an initial guess for the state and control trajectories

        Args:
            X: an ``nStates`` by ``K`` array, modified in place
            U: an ``nInputs`` by ``K`` array, modified in place
        """
        pass

    @abstractmethod
    def totalTimeGuess(self) -> float:
        """
        Returns:
            an initial guess for the total time of the trajectory, in
            :data:`~scvx.units.TU`
        """
        pass

    @abstractmethod
    def addApplicationConstraints(self, problem: ConvexSubproblem, K: int) -> None:
        """
        Add the mission-specific variables, parameters, constraints, and
        objective terms to a convex subproblem.

        This method is called once, before the subproblem is compiled. The
        problem variables ``X`` (``nStates`` by ``K``) and ``U`` (``nInputs`` by
        ``K``) are available via :func:`~scvx.problem.ConvexSubproblem.var`.
        Coefficients that depend on the reference trajectory must be declared as
        callback parameters via :func:`~scvx.problem.ConvexSubproblem.addParameter`.

        Args:
            problem: the subproblem under construction
            K: the number of discretization nodes
        """
        pass

    def stateCoords(self) -> list[str]:
        """
        Returns:
            names of the state vector elements
        """
        return [f"x{ix}" for ix in range(self.nStates)]

    def controlCoords(self) -> list[str]:
        """
        Returns:
            names of the control vector elements
        """
        return [f"u{ix}" for ix in range(self.nInputs)]

    def stateUnits(self) -> list[pint.Unit]:
        """
        Returns:
            the normalized units of the state vector elements
        """
        return [UU] * self.nStates

    def controlUnits(self) -> list[pint.Unit]:
        """
        Returns:
            the normalized units of the control vector elements
        """
        return [UU] * self.nInputs

    def initialGuess(self, K: int) -> Trajectory:
        """
        Construct an initial guess via :func:`initialize` and :func:`totalTimeGuess`

        Args:
            K: the number of discretization nodes

        Returns:
            the initial guess
        """
        if K < 2:
            raise ValueError("K must be at least 2")

        X = np.zeros((self.nStates, K))
        U = np.zeros((self.nInputs, K))
        self.initialize(X, U)
        return Trajectory(self, X, U, self.totalTimeGuess())

    def checkPartials(
        self,
        x: FloatArray,
        u: FloatArray,
        initStep: float = 1e-4,
        rtol: float = 1e-6,
        atol: float = 1e-8,
        printTable: bool = True,
    ) -> bool:
        """
        Check the analytic Jacobians against numerical approximations

        Args:
            x: the state vector at which to evaluate the partials
            u: the control vector at which to evaluate the partials
            initStep: the initial step size for the numerical derivative
                function, :func:`scvx.numerics.jacobian`
            rtol: the numeric and analytical values are
                equal when the absolute value of (numeric - analytic)/numeric
                is less than ``rtol``
            atol: the numeric and analytic values are equal
                when the absolute value of (numeric - analytic) is less than ``atol``
            printTable: whether or not to print a table of the
                partial derivatives, their expected (numeric) and actual (analytic)
                values, and the relative and absolute errors between the expected
                and actual values.

        Returns:
            True if each partial derivative satisfies the relative *or*
            absolute tolerance; False is returned if any of the partials fail
            both tolerances.
        """
        from rich.table import Table

        from scvx import console, numerics

        x = np.array(x, dtype=float, ndmin=1)
        u = np.array(u, dtype=float, ndmin=1)

        num_A = numerics.jacobian(lambda xx: self.ode(xx, u), x, initStep)
        num_B = numerics.jacobian(lambda uu: self.ode(x, uu), u, initStep)
        num_vec = np.concatenate((num_A.flatten(), num_B.flatten()))
        sol_vec = np.concatenate(
            (
                np.asarray(self.stateJacobian(x, u)).flatten(),
                np.asarray(self.controlJacobian(x, u)).flatten(),
            )
        )

        xNames, uNames = self.stateCoords(), self.controlCoords()
        varNames = [f"d{f}/d{v}" for f in xNames for v in xNames]
        varNames += [f"d{f}/d{v}" for f in xNames for v in uNames]

        absDiff = abs(num_vec - sol_vec)
        relDiff = absDiff.copy()
        equal = True
        table = Table(
            "Status",
            "Name",
            "Numeric",
            "Analytic",
            "Rel Err",
            "Abs Err",
            title="Partial Derivative Check",
        )

        for ix in range(sol_vec.size):
            # Compute relative difference for non-zero numeric values
            if abs(num_vec[ix]) > 1e-12:
                relDiff[ix] = absDiff[ix] / abs(num_vec[ix])

            relOk = abs(relDiff[ix]) <= rtol
            rStyle = "i" if relOk else "u"
            absOk = abs(absDiff[ix]) <= atol
            aStyle = "i" if absOk else "u"

            table.add_row(
                "OK" if relOk or absOk else "ERR",
                varNames[ix],
                f"{num_vec[ix]:.4e}",
                f"{sol_vec[ix]:.4e}",
                f"[{rStyle}]{relDiff[ix]:.4e}[/{rStyle}]",
                f"[{aStyle}]{absDiff[ix]:.4e}[/{aStyle}]",
                style="blue" if relOk or absOk else "red",
            )

            if not (relOk or absOk):
                equal = False

        if printTable:
            console.print(table)

        return equal


class ModelBlockCopyMixin:
    """
    A mixin class that prevents the parent class from copying stored
    :class:`AbstractDynamicsModel` objects
    """

    def __deepcopy__(self, memo):
        cls = self.__class__
        result = cls.__new__(cls)
        memo[id(self)] = result
        for k, v in self.__dict__.items():
            if isinstance(v, AbstractDynamicsModel):
                # Models should NOT be copied
                setattr(result, k, v)
            else:
                setattr(result, k, deepcopy(v, memo))
        return result


class Trajectory(ModelBlockCopyMixin):
    """
    A discretized trajectory: ``K`` state and control nodes and a total time

    Nodes are evenly spaced in normalized time, :math:`\\tau \\in [0, 1]`; node
    ``k`` occurs at the physical time ``sigma * k / (K - 1)``.

    Args:
        model: the dynamics model that governs the trajectory
        states: an ``nStates`` by ``K`` array of state nodes
        controls: an ``nInputs`` by ``K`` array of control nodes
        sigma: the total time, in :data:`~scvx.units.TU`

    Raises:
        TypeError: if ``model`` is not derived from :class:`AbstractDynamicsModel`
        ValueError: if the array shapes are inconsistent with the model or with
            each other
    """

    def __init__(
        self,
        model: AbstractDynamicsModel,
        states: FloatArray,
        controls: FloatArray,
        sigma: float,
    ) -> None:
        if not isinstance(model, AbstractDynamicsModel):
            raise TypeError("model must be derived from AbstractDynamicsModel")

        states = np.array(states, dtype=float, ndmin=2, copy=True)
        controls = np.array(controls, dtype=float, ndmin=2, copy=True)
        if not states.shape[0] == model.nStates:
            raise ValueError(
                f"states has {states.shape[0]} rows; expected {model.nStates}"
            )
        if not controls.shape[0] == model.nInputs:
            raise ValueError(
                f"controls has {controls.shape[0]} rows; expected {model.nInputs}"
            )
        if not states.shape[1] == controls.shape[1]:
            raise ValueError(
                f"states ({states.shape[1]}) and controls ({controls.shape[1]}) "
                "must have the same number of nodes"
            )
        if states.shape[1] < 2:
            raise ValueError("A trajectory needs at least two nodes")

        self.model = model  #: AbstractDynamicsModel: the dynamics model
        self.states: NDArray[np.double] = states  #: state nodes, one per column
        self.controls: NDArray[np.double] = controls  #: control nodes, one per column
        self.sigma = float(sigma)  #: float: total time

    def __repr__(self) -> str:
        return util.repr(self, "K", "sigma", "states", "controls")

    @property
    def K(self) -> int:
        """The number of nodes"""
        return self.states.shape[1]

    @property
    def tau(self) -> NDArray[np.double]:
        """Normalized time of each node, from 0 to 1"""
        return np.linspace(0.0, 1.0, self.K)

    @property
    def times(self) -> NDArray[np.double]:
        """Time of each node in :data:`~scvx.units.TU`"""
        return self.sigma * self.tau

    def toBaseUnits(
        self,
    ) -> tuple[pint.Quantity, list[pint.Quantity], list[pint.Quantity]]:
        """
        Express the trajectory in physical units

        Returns:
            the node times, a list with the values of each state coordinate, and
            a list with the values of each control coordinate, all converted to
            base units via the model's :attr:`~AbstractDynamicsModel.unitContext`
        """
        model = self.model
        with ureg.context(model.unitContext.name):  # type: ignore[arg-type]
            times = self.times * ureg.Quantity(1.0, "TU").to_base_units()
            states = [
                vals * ureg.Quantity(1.0, unit).to_base_units()
                for vals, unit in zip(self.states, model.stateUnits())
            ]
            controls = [
                vals * ureg.Quantity(1.0, unit).to_base_units()
                for vals, unit in zip(self.controls, model.controlUnits())
            ]

        return times, states, controls
