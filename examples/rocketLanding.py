#!/usr/bin/env python3
"""
Solve the 6-DoF rocket landing benchmark and plot the result
"""
import logging

import matplotlib.pyplot as plt
from rich.logging import RichHandler

logger = logging.getLogger("scvx")
logger.addHandler(RichHandler(show_time=False, show_path=False, enable_link_path=False))
logger.setLevel(logging.INFO)

import scvx.plots as plots
from scvx.config import SCvxConfig
from scvx.convexification import SuccessiveConvexification, VirtualControlConvergence
from scvx.dynamics.rocket import Rocket6DoF

model = Rocket6DoF()
assert model.checkPartials(model.xInit, [2.5, 0.1, -0.1], printTable=False)

scvx = SuccessiveConvexification(model, SCvxConfig(K=50, maxIterations=15))
scvx.convergenceCheck = VirtualControlConvergence(nuTol=1e-6, sigmaTol=1e-4)
solution, log = scvx.solve()

scvx.printLog()
times, states, controls = solution.toBaseUnits()
logger.info(f"Flight time: {times[-1]:.2f~P}")
logger.info(f"Propellant used: {(states[0][0] - states[0][-1]):.1f~P}")

fig, axes = plt.subplots(2, 2, figsize=(10, 8))
plots.plotLanding(solution, ax=axes[0, 0])
plots.plotCoords(solution, "t", ["Tx", "Ty", "Tz"], ax=axes[0, 1])
plots.plotCoords(solution, "t", ["wx", "wy", "wz"], ax=axes[1, 0])
plots.plotConvergence(log, ax=axes[1, 1])
fig.tight_layout()
plt.show()
