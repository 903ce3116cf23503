import math
from collections.abc import Mapping

import numpy as np
from loguru import logger

from pyplasma.errors import DegenerateGeometryError, InvariantViolationError
from pyplasma.geometry import (
    PointInTriangle,
    circumcircle,
    ensure_ccw,
    orient2d,
    point_inside_triangle,
    signed_area,
)
from pyplasma.utils import EPS, MAX_SAMPLE_ATTEMPTS
from pyplasma.vertex import Vertex


class Triangle:
    """
    A mesh triangle with cached area and circumcircle.

    Corners are stored in counterclockwise order. ``idx`` is the creation sequence
    number handed out by the triangulation; it is the triangle's id and the
    deterministic tie-breaker of the area index.

    Construction only computes geometry. ``attach``/``detach`` register and
    deregister the triangle in its corners' adjacency sets; the triangulation
    calls them when it commits an operation.

    :raises DegenerateGeometryError: if the three corners are collinear
    """

    __slots__ = ("idx", "vertices", "area", "circumcenter", "radius_squared")

    def __init__(self, a: Vertex, b: Vertex, c: Vertex, idx: int = 0) -> None:
        if a is b or b is c or a is c:
            raise DegenerateGeometryError(
                "Triangle corners must be three distinct vertices", points=(a, b, c)
            )
        if orient2d(a, b, c) == 0:
            raise DegenerateGeometryError(
                f"Collinear corners {a.key}, {b.key}, {c.key}", points=(a, b, c)
            )

        self.idx = idx
        self.vertices: tuple[Vertex, Vertex, Vertex] = ensure_ccw(a, b, c)
        center_x, center_y, self.radius_squared = circumcircle(*self.vertices)
        self.circumcenter = (center_x, center_y)
        self.area = signed_area(*self.vertices)
        if self.area <= 0:
            raise DegenerateGeometryError(
                f"Triangle {a.key}, {b.key}, {c.key} has no positive area",
                points=(a, b, c),
            )

    def __repr__(self) -> str:
        corners = ", ".join(str(v.key) for v in self.vertices)
        return f"Triangle(#{self.idx}: {corners}, area={self.area:.6g})"

    def attach(self) -> None:
        for vertex in self.vertices:
            vertex.triangles.add(self.idx)

    def detach(self) -> None:
        for vertex in self.vertices:
            if self.idx not in vertex.triangles:
                raise InvariantViolationError(
                    f"Triangle {self.idx} is not registered at vertex {vertex.idx}"
                )
            vertex.triangles.remove(self.idx)

    def contains_circumcircle(self, point: Vertex) -> bool:
        """True if point lies strictly inside the circumcircle; points on it are outside."""
        dx = point.x - self.circumcenter[0]
        dy = point.y - self.circumcenter[1]
        return dx * dx + dy * dy < self.radius_squared

    def contains_point(self, point: Vertex, eps: float = EPS) -> bool:
        """True if point lies strictly inside the triangle."""
        return point_inside_triangle(*self.vertices, point, eps) is PointInTriangle.inside

    def has_vertex(self, vertex: Vertex) -> bool:
        return any(v is vertex for v in self.vertices)

    def shares_edge_with(self, other: "Triangle") -> bool:
        shared = sum(1 for v in self.vertices if other.has_vertex(v))
        return shared == 2

    def neighbors_sharing_edge(
        self, triangles: Mapping[int, "Triangle"]
    ) -> list["Triangle"]:
        """
        Triangles sharing an edge with this one, found through the corners' adjacency sets.

        :param triangles: mapping from triangle id to the active triangles
        :return: distinct neighbors ordered by id (at most 3)
        """
        candidates = set()
        for vertex in self.vertices:
            candidates.update(vertex.triangles)
        candidates.discard(self.idx)

        neighbors = []
        for t_idx in sorted(candidates):
            other = triangles[t_idx]
            if self.shares_edge_with(other):
                neighbors.append(other)
        return neighbors

    def sample_interior_point(
        self,
        rng: np.random.Generator,
        max_attempts: int = MAX_SAMPLE_ATTEMPTS,
        eps: float = EPS,
    ) -> Vertex:
        """
        Draw a point uniformly distributed over the triangle's interior.

        Uses the square-root parametrization from Osada et al., "Shape
        Distributions" (https://www.cs.princeton.edu/~funk/tog02.pdf, section 4.2).
        Samples landing on an edge or corner are redrawn.

        :param rng: numpy random generator
        :param max_attempts: number of draws before giving up
        :param eps: samples closer than this to a corner are redrawn
        :return: a new, unregistered vertex strictly inside the triangle
        """
        a, b, c = self.vertices
        for attempt in range(max_attempts):
            r1, r2 = (float(r) for r in rng.random(2))
            root_r1 = math.sqrt(r1)
            point = (
                (1.0 - root_r1) * a + root_r1 * (1.0 - r2) * b + root_r1 * r2 * c
            )
            if point_inside_triangle(a, b, c, point, eps) is PointInTriangle.inside:
                return point
            logger.trace(f"Sample {point.key} not interior to {self}, attempt {attempt}")

        raise DegenerateGeometryError(
            f"Could not sample an interior point of {self} in {max_attempts} attempts",
            points=self.vertices,
        )
