"""
Pytest Configuration
"""
import logging

import matplotlib

# Plots are drawn without a display during tests
matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402
from rich.logging import RichHandler  # noqa: E402

from scvx.dynamics.simple import LinearModel  # noqa: E402


def scalarModel():
    """
    Single integrator, x' = u, from 0 to 1 with a unit time guess

    Returns:
        LinearModel: the model
    """
    return LinearModel(A=[[0.0]], B=[[1.0]], xInit=[0.0], xFinal=[1.0], tfGuess=1.0)


def stiffModel():
    """
    Two decoupled states, one of which decays quickly; the STM becomes badly
    conditioned over a long interval

    Returns:
        LinearModel: the model
    """
    return LinearModel(
        A=[[0.0, 0.0], [0.0, -5.0]],
        B=[[1.0], [0.0]],
        xInit=[0.0, 1.0],
        xFinal=[1.0, 0.0],
        tfGuess=2.0,
    )


class NanJacobianModel(LinearModel):
    """A linear model whose state Jacobian is corrupted"""

    def stateJacobian(self, x, u):
        return np.full((self.nStates, self.nStates), np.nan)


class NanOdeModel(LinearModel):
    """A linear model whose derivative blows up while its Jacobians stay finite"""

    def ode(self, x, u):
        return np.full(self.nStates, np.inf)


# @pytest.fixture(scope="session", autouse=True)
# def logger():
#    """
#    Configure the logger for unit test output
#    """
#    logger = logging.getLogger("scvx")
#    logger.handlers.clear()
#    logger.addHandler(RichHandler(show_time=False, enable_link_path=False))
#    logger.setLevel(logging.DEBUG)
#    logger.propagate = False
#    return logger.name
