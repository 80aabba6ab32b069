"""
Define custom types
"""
from collections.abc import Sequence
from typing import Union

import numpy as np
import numpy.typing as npT

#: An array-like object of floats, e.g., a state vector or a boundary condition
FloatArray = Union[Sequence[float], Sequence[np.double], npT.NDArray[np.double]]

#: A dense matrix of floats, e.g., a Jacobian or a trajectory stored column-wise
Matrix = npT.NDArray[np.double]

try:
    # Works for python 3.12+
    from typing import override  # type: ignore
except ImportError:
    from overrides import override  # type: ignore
