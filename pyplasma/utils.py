from typing import TypeAlias
from numpy.typing import NDArray
import numpy as np

# Two points closer than this are the same vertex.
EPS = 1e-9
# Quantization step used by Edge equality and hashing. One tolerance, no other.
EDGE_EPS = 1e-9
# A triangulation scales both tolerances to its rectangle: eps = RELATIVE_EPS * max(width, height)
RELATIVE_EPS = 1e-12
# Rectangle sides outside this range overflow or underflow the circumcircle computation
MIN_SIZE = 1e-100
MAX_SIZE = 1e100
MAX_SAMPLE_ATTEMPTS = 64

Vec2d: TypeAlias = tuple[float, float] | NDArray[np.floating]
