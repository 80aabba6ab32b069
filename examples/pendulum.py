#!/usr/bin/env python3
"""
Swing a torque-limited pendulum to a new angle in minimum time
"""
import logging

import matplotlib.pyplot as plt
from rich.logging import RichHandler

logger = logging.getLogger("scvx")
logger.addHandler(RichHandler(show_time=False, show_path=False, enable_link_path=False))
logger.setLevel(logging.INFO)

import scvx.plots as plots
from scvx.config import SCvxConfig
from scvx.convexification import SuccessiveConvexification
from scvx.dynamics.simple import Pendulum

model = Pendulum(thetaInit=0.0, thetaFinal=2.0, tfGuess=4.0, uMax=1.0)
scvx = SuccessiveConvexification(model, SCvxConfig(K=30, maxIterations=12))
solution, log = scvx.solve()

scvx.printLog()
scvx.printTrajectory(solution)

fig, axes = plt.subplots(1, 2, figsize=(10, 4))
plots.plotCoords(solution, "t", ["theta", "omega", "torque"], ax=axes[0])
plots.plotConvergence(log, ax=axes[1])
fig.tight_layout()
plt.show()
