"""
Plotting
========

Plotting tools are defined here. All functions accept an optional matplotlib
:class:`~matplotlib.axes.Axes` and return the axes they drew on, so plots can be
composed into larger figures.

.. autosummary::
   ToCoordVals
   plotCoords
   plotLanding
   plotConvergence

Reference
---------

.. autoclass:: ToCoordVals
   :members:

.. autofunction:: plotCoords
.. autofunction:: plotLanding
.. autofunction:: plotConvergence
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Union

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from numpy.typing import NDArray

from scvx import util
from scvx.dynamics import Trajectory


class ToCoordVals:
    """
    Extract node values from a trajectory via coordinate name

    Args:
        coords: the coordinate names to extract. Can be "t" for the node times,
            "tau" for the normalized node times, or one of the state or control
            names (see :func:`~scvx.dynamics.AbstractDynamicsModel.stateCoords`
            and :func:`~scvx.dynamics.AbstractDynamicsModel.controlCoords`).
    """

    def __init__(self, coords: Union[str, Sequence[str]]) -> None:
        self.coords = util.toList(coords)

    def data(self, trajectory: Trajectory) -> NDArray[np.double]:
        """
        Args:
            trajectory: the trajectory

        Returns:
            an L-by-K array of values where L is the number of coordinates

        Raises:
            KeyError: if a coordinate name is not recognized
        """
        model = trajectory.model
        rows = {"t": trajectory.times, "tau": trajectory.tau}
        for ix, name in enumerate(model.stateCoords()):
            rows[name] = trajectory.states[ix]
        for ix, name in enumerate(model.controlCoords()):
            rows[name] = trajectory.controls[ix]

        missing = [c for c in self.coords if c not in rows]
        if missing:
            raise KeyError(f"Unrecognized coordinates: {missing}")

        return np.array([rows[c] for c in self.coords])


def plotCoords(
    trajectory: Trajectory,
    xCoord: str,
    yCoords: Union[str, Sequence[str]],
    ax: Union[Axes, None] = None,
    **kwargs,
) -> Axes:
    """
    Plot one or more coordinates against another

    Args:
        trajectory: the trajectory
        xCoord: the coordinate on the horizontal axis, e.g., "t"
        yCoords: one or more coordinates on the vertical axis
        ax: the axes to draw on; a new figure is created if None
        kwargs: passed to :func:`matplotlib.axes.Axes.plot`

    Returns:
        the axes
    """
    if ax is None:
        _, ax = plt.subplots()

    yCoords = util.toList(yCoords)
    xVals = ToCoordVals(xCoord).data(trajectory)[0]
    yVals = ToCoordVals(yCoords).data(trajectory)
    for name, vals in zip(yCoords, yVals):
        ax.plot(xVals, vals, ".-", label=name, **kwargs)

    ax.set_xlabel(xCoord)
    ax.legend()
    ax.grid(True)
    return ax


def plotLanding(
    trajectory: Trajectory,
    thrustScale: float = 0.3,
    ax: Union[Axes, None] = None,
) -> Axes:
    """
    Plot a rocket landing trajectory: altitude versus downrange with the thrust
    vector drawn at each node

    The trajectory must come from a :class:`~scvx.dynamics.rocket.Rocket6DoF`
    model.

    Args:
        trajectory: the trajectory
        thrustScale: length of the drawn thrust vectors per unit thrust
        ax: the axes to draw on; a new figure is created if None

    Returns:
        the axes

    Raises:
        TypeError: if the trajectory model is not a rocket
    """
    from scvx.dynamics.rocket import Rocket6DoF

    model = trajectory.model
    if not isinstance(model, Rocket6DoF):
        raise TypeError("plotLanding requires a Rocket6DoF trajectory")

    if ax is None:
        _, ax = plt.subplots()

    up, east = ToCoordVals(["rx", "ry"]).data(trajectory)
    ax.plot(east, up, "k.-", label="position")

    for k in range(trajectory.K):
        thrust = model.inertialThrust(
            trajectory.states[:, k], trajectory.controls[:, k]
        )
        # Exhaust plume points opposite the thrust
        ax.plot(
            [east[k], east[k] - thrustScale * thrust[1]],
            [up[k], up[k] - thrustScale * thrust[0]],
            "r-",
            linewidth=1,
        )

    ax.set_xlabel("ry")
    ax.set_ylabel("rx")
    ax.set_aspect("equal")
    ax.grid(True)
    return ax


def plotConvergence(log: dict, ax: Union[Axes, None] = None) -> Axes:
    """
    Plot the virtual control norm and trust region bounds versus iteration

    Args:
        log: the log returned by
            :func:`~scvx.convexification.SuccessiveConvexification.solve`
        ax: the axes to draw on; a new figure is created if None

    Returns:
        the axes
    """
    if ax is None:
        _, ax = plt.subplots()

    records = log["iterations"]
    its = [rec.iteration for rec in records]
    for attr in ("norm2_nu", "Delta_sigma", "trustRegion"):
        vals = np.array([getattr(rec, attr) for rec in records])
        # Log scale cannot show zeros
        ax.semilogy(its, np.maximum(vals, 1e-16), "o-", label=attr)

    ax.set_xlabel("Iteration")
    ax.legend()
    ax.grid(True)
    return ax
