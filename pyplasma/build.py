import math
from collections.abc import Iterable

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pyplasma.debug_utils import check_invariants
from pyplasma.delaunay import Triangulation
from pyplasma.errors import InvalidInputError, InvariantViolationError
from pyplasma.geometry import on_common_border, orient2d
from pyplasma.topology import find_cavity_boundary
from pyplasma.triangle import Triangle
from pyplasma.utils import Vec2d
from pyplasma.vertex import Vertex, as_vertex

# Relative tolerance when comparing the area of a cavity with the area of its star
AREA_RTOL = 1e-6


def initialize_triangulation(
    width: float, height: float, edge_eps: float | None = None
) -> Triangulation:
    """
    Initialize the triangulation with the two triangles spanning the rectangle.

    The rectangle [0, width] x [0, height] is split along its (0, 0)-(width, height)
    diagonal.

    :param width: rectangle width
    :param height: rectangle height
    :param edge_eps: quantization step for edge identity (default scales with the rectangle)
    :return: the seeded triangulation
    """
    triangulation = Triangulation(width, height, edge_eps=edge_eps)

    corners = [
        Vertex(0.0, 0.0),
        Vertex(0.0, height),
        Vertex(width, height),
        Vertex(width, 0.0),
    ]
    for corner in corners:
        triangulation.add_vertex(corner)

    seeds = [
        triangulation.new_triangle(corners[0], corners[1], corners[2]),
        triangulation.new_triangle(corners[0], corners[2], corners[3]),
    ]
    for seed in seeds:
        triangulation.add_triangle(seed)

    logger.debug(f"Initialized {width} x {height} triangulation with {len(seeds)} seed triangles")
    return triangulation


def find_cavity(
    triangulation: Triangulation,
    point: Vertex,
    start: Triangle | None = None,
) -> list[Triangle]:
    """
    Find the triangles whose circumcircle strictly contains point.

    Without a starting triangle every active triangle is tested. With one, the
    search floods outwards from ``start`` across shared edges and only continues
    through triangles that fail the circumcircle test; the violating triangles of a
    Delaunay mesh are connected, so both strategies return the same set whenever
    ``start`` is part of the cavity.

    :param triangulation: the mesh
    :param point: the point about to be inserted
    :param start: a triangle known to contain point, if any
    :return: cavity triangles ordered by id (empty if none is violated)
    """
    if start is None:
        cavity = [t for t in triangulation if t.contains_circumcircle(point)]
        return sorted(cavity, key=lambda t: t.idx)

    if start not in triangulation:
        raise InvalidInputError(f"Triangle {start.idx} is not part of the triangulation")

    found: dict[int, Triangle] = {}
    visited = {start.idx}
    stack = [start]
    while stack:
        triangle = stack.pop()
        if not triangle.contains_circumcircle(point):
            continue
        found[triangle.idx] = triangle
        for neighbor in triangle.neighbors_sharing_edge(triangulation.triangles):
            if neighbor.idx not in visited:
                visited.add(neighbor.idx)
                stack.append(neighbor)

    return [found[idx] for idx in sorted(found)]


def retriangulate_cavity(
    triangulation: Triangulation, point: Vertex, cavity: list[Triangle]
) -> list[Triangle]:
    """
    Replace the cavity by the star of triangles joining point to its boundary.

    The star is fully built and checked before anything is removed, so a failure
    leaves the triangulation untouched. A boundary edge on the rectangle border that
    point itself lies on is left out of the star (point splits that border edge).

    :param triangulation: the mesh (modified in-place)
    :param point: the unregistered vertex being inserted
    :param cavity: triangles whose circumcircle contains point
    :return: the new triangles
    """
    boundary = find_cavity_boundary(cavity, triangulation.edge_eps)

    star = []
    for edge in boundary:
        a, b = edge.point_1, edge.point_2
        if orient2d(point, a, b) == 0 and on_common_border(
            (point, a, b), triangulation.width, triangulation.height
        ):
            logger.debug(f"Point {point.key} splits border edge {edge}")
            continue
        star.append(triangulation.new_triangle(point, a, b))

    cavity_area = math.fsum(t.area for t in cavity)
    star_area = math.fsum(t.area for t in star)
    if not math.isclose(
        cavity_area, star_area, rel_tol=AREA_RTOL, abs_tol=1e-12 * triangulation.area
    ):
        raise InvariantViolationError(
            f"Star of {point.key} covers {star_area}, cavity covered {cavity_area}"
        )

    for triangle in cavity:
        triangulation.remove_triangle(triangle)
    triangulation.add_vertex(point)
    for triangle in star:
        triangulation.add_triangle(triangle)

    logger.trace(
        f"Replaced {[t.idx for t in cavity]} by {[t.idx for t in star]} around vertex {point.idx}"
    )
    return star


def _validate_point(triangulation: Triangulation, point: Vertex) -> None:
    if not (math.isfinite(point.x) and math.isfinite(point.y)):
        raise InvalidInputError(f"Point {point.key} has non-finite coordinates")
    if not triangulation.contains_point(point):
        raise InvalidInputError(
            f"Point {point.key} lies outside [0, {triangulation.width}] x [0, {triangulation.height}]"
        )
    if point.idx != -1:
        raise InvalidInputError(f"Point {point.key} is already a registered vertex")


def insert_point(
    triangulation: Triangulation,
    point: Vertex | Vec2d,
    debug: bool = False,
) -> Vertex:
    """
    Insert a point into the triangulation (Bowyer-Watson).

    The cavity is found by testing every triangle, its boundary extracted, and the
    cavity replaced by a star around the point. A point coinciding with an existing
    vertex is ignored.

    :param triangulation: the mesh (modified in-place)
    :param point: a Vertex, (x, y) tuple or array of shape (2,)
    :param debug: check all mesh invariants after the insertion
    :return: the inserted vertex, or the existing vertex point coincides with
    """
    vertex = as_vertex(point)
    _validate_point(triangulation, vertex)

    existing = triangulation.find_vertex(vertex)
    if existing is not None:
        logger.debug(
            f"Point {vertex.key} coincides with vertex {existing.idx}! Not adding it again"
        )
        return existing

    cavity = find_cavity(triangulation, vertex)
    if not cavity:
        raise InvariantViolationError(f"No circumcircle contains point {vertex.key}")

    star = retriangulate_cavity(triangulation, vertex, cavity)
    logger.debug(
        f"Inserted vertex {vertex.idx} at {vertex.key}: cavity {len(cavity)}, star {len(star)}"
    )

    if debug:
        check_invariants(triangulation)
    return vertex


def insert_points(
    triangulation: Triangulation,
    points: Iterable[Vertex | Vec2d] | NDArray[np.floating],
    debug: bool = False,
) -> Triangulation:
    """
    Insert points one after the other, in the given order.

    :param triangulation: the mesh (modified in-place)
    :param points: Vertices, (x, y) tuples or an array of shape (n, 2)
    :param debug: check all mesh invariants after every insertion
    :return: the triangulation
    """
    if isinstance(points, np.ndarray) and points.size and (
        points.ndim != 2 or points.shape[1] != 2
    ):
        raise InvalidInputError(f"Expected points of shape (n, 2), got {points.shape}")

    count = 0
    for point in points:
        insert_point(triangulation, point, debug=debug)
        count += 1

    logger.debug(f"Inserted {count} points, triangulation has {len(triangulation)} triangles")
    return triangulation


def subdivide_triangle(
    triangulation: Triangulation,
    triangle: Triangle,
    rng: np.random.Generator | None = None,
    debug: bool = False,
) -> Vertex:
    """
    Insert a random point of triangle's interior into the triangulation.

    The point lies strictly inside ``triangle``, so ``triangle`` is in the cavity and
    the cavity is found by flooding from it instead of scanning the whole mesh.

    :param triangulation: the mesh (modified in-place)
    :param triangle: an active triangle
    :param rng: random generator for the sample
    :param debug: check all mesh invariants after the insertion
    :return: the new vertex (its value is left for the caller to assign)
    """
    if triangle not in triangulation:
        raise InvalidInputError(f"Triangle {triangle.idx} is not part of the triangulation")
    if rng is None:
        rng = np.random.default_rng()

    point = triangle.sample_interior_point(rng, eps=triangulation.eps)
    cavity = find_cavity(triangulation, point, start=triangle)
    if not any(t is triangle for t in cavity):
        raise InvariantViolationError(
            f"Triangle {triangle.idx} missing from the cavity of its own interior point {point.key}"
        )

    retriangulate_cavity(triangulation, point, cavity)
    logger.trace(f"Subdivided triangle {triangle.idx} with vertex {point.idx}")

    if debug:
        check_invariants(triangulation)
    return point


def triangulate(
    points: Iterable[Vertex | Vec2d] | NDArray[np.floating],
    width: float,
    height: float,
    debug: bool = False,
) -> Triangulation:
    """
    Delaunay triangulation of the rectangle [0, width] x [0, height] and points.

    :param points: points inside the rectangle, inserted in order
    :param width: rectangle width
    :param height: rectangle height
    :param debug: check all mesh invariants after every insertion
    :return: the triangulation
    """
    triangulation = initialize_triangulation(width, height)
    return insert_points(triangulation, points, debug=debug)
