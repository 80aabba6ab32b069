"""
Units
======

Physical quantities are managed with the :mod:`pint` library. A **unit registry**
is defined in the root scvx package.

.. autosummary:: scvx.ureg

Any unit in the registry can be used to build a quantity,

.. code-block:: python

   from scvx import ureg

   altitude = 500 * ureg.m
   burnTime = 12 * ureg.sec

This module defines aliases, listed below, to the units used most often when
describing a landing problem. Others can be accessed via :data:`~scvx.ureg`.

**Length**

.. autosummary::
   m
   km

**Mass**

.. autosummary::
   kg

**Time**

.. autosummary::
   sec

**Force**

.. autosummary::
   N

**Angle**

.. autosummary::
   deg
   rad

Normalized Units
-----------------

The convex subproblems are solved by interior-point methods whose accuracy
degrades when variables differ by many orders of magnitude; a wet mass of
several tonnes, an altitude of a few hundred meters, and a body rate of a
fraction of a radian per second do not sit well in the same problem. All
calculations within ``scvx`` therefore operate on data that have been
**normalized** by three "characteristic quantities,"

.. autosummary::
   LU
   TU
   MU

Each dynamics model defines its own values for ``LU``, ``TU``, and ``MU`` within
a :class:`pint.Context` so that normalized values can be converted back to
physical units; see
:func:`~scvx.dynamics.Trajectory.toBaseUnits`.

Reference
---------

.. autodata:: scvx.ureg
.. autodata:: m
.. autodata:: km
.. autodata:: kg
.. autodata:: sec
.. autodata:: N
.. autodata:: deg
.. autodata:: rad
.. autodata:: LU
.. autodata:: TU
.. autodata:: MU
.. autodata:: UU
"""

# ------------------------------------------------------------------------------
# Meta
from . import ureg

Quant = ureg.Quantity

# ------------------------------------------------------------------------------
# Length
m = ureg.meter  #: one meter
km = ureg.km  #: one kilometer

# ------------------------------------------------------------------------------
# mass
kg = ureg.kg  #: one kilogram

# ------------------------------------------------------------------------------
# time
sec = ureg.sec  #: one second

# ------------------------------------------------------------------------------
# force
N = ureg.newton  #: one newton

# ------------------------------------------------------------------------------
# angles
deg = ureg.deg  #: one degree
rad = ureg.rad  #: one radian

# ------------------------------------------------------------------------------
# nondimensional coordinates
LU = ureg.LU  #: length unit for dynamics models

TU = ureg.TU  #: time unit for dynamics models

MU = ureg.MU  #: mass unit for dynamics models

UU = ureg.Unit("dimensionless")  #: shorthand for a dimensionless quantity
