"""Shared typing aliases used across specfit."""

from collections.abc import Mapping
from typing import Any

import numpy as np
import numpy.typing as npt

FloatArray = npt.NDArray[np.float64]
IntArray = npt.NDArray[np.int_]

# Named parameter values; entries may be floats, NumPy scalars or JAX tracers.
ParamMapping = Mapping[str, Any]
