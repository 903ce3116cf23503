import math
from collections import Counter
from collections.abc import Iterable

from loguru import logger

from pyplasma.errors import InvariantViolationError, SharedEdgeError
from pyplasma.triangle import Triangle
from pyplasma.utils import EDGE_EPS
from pyplasma.vertex import Vertex


def quantize(vertex: Vertex, eps: float = EDGE_EPS) -> tuple[int, int]:
    """Snap a vertex to the eps grid used for edge identity."""
    return math.floor(vertex.x / eps + 0.5), math.floor(vertex.y / eps + 0.5)


class Edge:
    """
    Undirected edge between two vertices.

    ``Edge(a, b) == Edge(b, a)``: endpoints are stored in lexicographic order of
    their quantized coordinates. Equality and hashing both use the coordinates
    snapped to a grid of step ``eps``, so an endpoint recomputed through another
    code path with a few ulps of jitter still names the same edge.
    """

    __slots__ = ("point_1", "point_2", "key")

    def __init__(self, a: Vertex, b: Vertex, eps: float = EDGE_EPS) -> None:
        key_a = (quantize(a, eps), a.key)
        key_b = (quantize(b, eps), b.key)
        if key_a <= key_b:
            self.point_1, self.point_2 = a, b
            self.key = (key_a[0], key_b[0])
        else:
            self.point_1, self.point_2 = b, a
            self.key = (key_b[0], key_a[0])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Edge):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Edge({self.point_1.key}, {self.point_2.key})"


def triangle_edges(
    triangle: Triangle, eps: float = EDGE_EPS
) -> tuple[Edge, Edge, Edge]:
    a, b, c = triangle.vertices
    return Edge(a, b, eps), Edge(b, c, eps), Edge(c, a, eps)


def find_cavity_boundary(
    cavity: Iterable[Triangle], eps: float = EDGE_EPS
) -> list[Edge]:
    """
    Extract the edges touched by exactly one cavity triangle.

    Every edge of every cavity triangle is toggled in a working set: an edge shared
    by two cavity triangles is added and then removed again, leaving only the
    boundary of the cavity.

    :param cavity: the triangles to be removed
    :param eps: edge quantization step
    :return: boundary edges, in the order they were first met
    :raises InvariantViolationError: if the boundary is not a single closed cycle
    """
    boundary: dict[Edge, None] = {}
    for triangle in cavity:
        for edge in triangle_edges(triangle, eps):
            if edge in boundary:
                del boundary[edge]
            else:
                boundary[edge] = None

    edges = list(boundary)
    validate_boundary(edges)
    logger.trace(f"Cavity boundary has {len(edges)} edges")
    return edges


def validate_boundary(edges: list[Edge]) -> None:
    """
    Check that the edges form closed cycles: at least 3 edges and every endpoint
    used by exactly two of them.
    """
    if len(edges) < 3:
        raise InvariantViolationError(
            f"Cavity boundary must have at least 3 edges, found {len(edges)}"
        )

    degree = Counter()
    for edge in edges:
        degree[edge.key[0]] += 1
        degree[edge.key[1]] += 1

    open_ends = {key: count for key, count in degree.items() if count != 2}
    if open_ends:
        raise InvariantViolationError(
            f"Cavity boundary is not a closed cycle; vertex degrees {open_ends}"
        )


def find_shared_edge(
    tri1: Triangle, tri2: Triangle
) -> tuple[Vertex, Vertex, Vertex, Vertex]:
    """
    Find the shared edge between two triangles.
    Returns (v1, v2, opposite1, opposite2) where:
    - v1, v2 are the shared vertices
    - opposite1 is the vertex in tri1 not on the shared edge
    - opposite2 is the vertex in tri2 not on the shared edge
    """
    shared = [v for v in tri1.vertices if tri2.has_vertex(v)]
    if len(shared) != 2:
        raise SharedEdgeError(
            f"Triangles must share exactly one edge. Shared vertices: {[v.key for v in shared]}"
        )

    v1, v2 = shared
    opposite1 = next(v for v in tri1.vertices if v is not v1 and v is not v2)
    opposite2 = next(v for v in tri2.vertices if v is not v1 and v is not v2)

    return v1, v2, opposite1, opposite2
