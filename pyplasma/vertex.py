import math

import numpy as np

from pyplasma.errors import InvalidInputError
from pyplasma.utils import Vec2d


class Vertex:
    """
    A 2D point carrying a scalar payload.

    Coordinates are fixed at construction. ``value`` is an opaque payload that
    geometry never reads. Vertices compare by identity: two vertices at the same
    position are still two vertices. The ordering operators implement a strict
    lexicographic order on ``(x, y)`` and are only used for tie-breaking.

    ``idx`` is the vertex id inside its triangulation (-1 while unregistered) and
    ``triangles`` holds the ids of the active triangles incident to it. Both are
    maintained by the triangulation, not by callers.
    """

    __slots__ = ("_x", "_y", "value", "idx", "triangles")

    def __init__(self, x: float, y: float, value: float = 0.0) -> None:
        self._x = float(x)
        self._y = float(y)
        self.value = value
        self.idx = -1
        self.triangles: set[int] = set()

    @property
    def x(self) -> float:
        return self._x

    @property
    def y(self) -> float:
        return self._y

    @property
    def key(self) -> tuple[float, float]:
        return self._x, self._y

    def __repr__(self) -> str:
        return f"Vertex({self._x!r}, {self._y!r}, value={self.value!r})"

    def __add__(self, other: "Vertex") -> "Vertex":
        return Vertex(self._x + other.x, self._y + other.y)

    def __sub__(self, other: "Vertex") -> "Vertex":
        return Vertex(self._x - other.x, self._y - other.y)

    def __mul__(self, k: float) -> "Vertex":
        return Vertex(k * self._x, k * self._y)

    __rmul__ = __mul__

    def __truediv__(self, k: float) -> "Vertex":
        return Vertex(self._x / k, self._y / k)

    def __lt__(self, other: "Vertex") -> bool:
        return self.key < other.key

    def __gt__(self, other: "Vertex") -> bool:
        return self.key > other.key

    def __le__(self, other: "Vertex") -> bool:
        return self.key <= other.key

    def __ge__(self, other: "Vertex") -> bool:
        return self.key >= other.key

    def distance_squared(self, other: "Vertex") -> float:
        dx = self._x - other.x
        dy = self._y - other.y
        return dx * dx + dy * dy

    def distance(self, other: "Vertex") -> float:
        return math.sqrt(self.distance_squared(other))


def as_vertex(point: "Vertex | Vec2d") -> Vertex:
    """
    Coerce a point into a ``Vertex``.

    :param point: a Vertex (returned as is), an ``(x, y)`` tuple or an array of shape (2,)
    :return: the corresponding Vertex
    """
    if isinstance(point, Vertex):
        return point
    coords = np.asarray(point, dtype=float)
    if coords.shape != (2,):
        raise InvalidInputError(f"Expected a 2D point, got shape {coords.shape}")
    return Vertex(coords[0], coords[1])
