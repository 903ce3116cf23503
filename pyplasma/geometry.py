from collections.abc import Iterable
from enum import Enum, auto

from pyplasma.errors import DegenerateGeometryError
from pyplasma.utils import EPS
from pyplasma.vertex import Vertex


class PointInTriangle(Enum):
    vertex = auto()
    edge = auto()
    inside = auto()
    outside = auto()


def orient2d(pa: Vertex, pb: Vertex, pc: Vertex) -> float:
    """
    2D orientation predicate.
    Returns > 0 if points are in counterclockwise order
    Returns < 0 if points are in clockwise order
    Returns = 0 if points are collinear

    Plain floating point; the mesh relies on a generic-position input.
    """
    detleft = (pa.x - pc.x) * (pb.y - pc.y)
    detright = (pa.y - pc.y) * (pb.x - pc.x)
    return detleft - detright


def signed_area(a: Vertex, b: Vertex, c: Vertex) -> float:
    """Signed area of triangle abc (positive for CCW)."""
    return 0.5 * ((b.x - a.x) * (c.y - a.y) - (c.x - a.x) * (b.y - a.y))


def ensure_ccw(a: Vertex, b: Vertex, c: Vertex) -> tuple[Vertex, Vertex, Vertex]:
    """Return the corners in counterclockwise order, swapping the last two if needed"""
    if orient2d(a, b, c) < 0:
        return a, c, b
    return a, b, c


def circumcircle(a: Vertex, b: Vertex, c: Vertex) -> tuple[float, float, float]:
    """
    Circumcenter and squared circumradius of triangle abc.

    Uses the determinant form of the circumcenter
    (https://en.wikipedia.org/wiki/Circumscribed_circle#Cartesian_coordinates_2).

    :return: (center_x, center_y, radius_squared)
    :raises DegenerateGeometryError: if the points are collinear
    """
    d_a = a.x * a.x + a.y * a.y
    d_b = b.x * b.x + b.y * b.y
    d_c = c.x * c.x + c.y * c.y

    aux_x = d_a * (c.y - b.y) + d_b * (a.y - c.y) + d_c * (b.y - a.y)
    aux_y = -(d_a * (c.x - b.x) + d_b * (a.x - c.x) + d_c * (b.x - a.x))
    div = 2 * (a.x * (c.y - b.y) + b.x * (a.y - c.y) + c.x * (b.y - a.y))

    if div == 0:
        raise DegenerateGeometryError(
            f"Collinear points {a.key}, {b.key}, {c.key} have no circumcircle",
            points=(a, b, c),
        )

    center_x = aux_x / div
    center_y = aux_y / div
    radius_squared = (center_x - a.x) ** 2 + (center_y - a.y) ** 2
    return center_x, center_y, radius_squared


def is_point_in_box(
    a: Vertex,
    b: Vertex,
    p: Vertex,
    eps: float = EPS,
) -> bool:
    # check if p is within the bounding box of [a, b]
    return (
        min(a.x, b.x) - eps <= p.x <= max(a.x, b.x) + eps
        and min(a.y, b.y) - eps <= p.y <= max(a.y, b.y) + eps
    )


def point_inside_triangle(
    a: Vertex,
    b: Vertex,
    c: Vertex,
    point: Vertex,
    eps: float = EPS,
) -> PointInTriangle:
    """
    Classify a point relative to the CCW triangle abc.

    Parameters
    ----------
    a, b, c : Vertex
        Triangle corners in counterclockwise order.
    point : Vertex
        The query point.
    eps : float, optional
        Tolerance for vertex coincidence and segment bounds (not used in orientation).

    Returns
    -------
    PointInTriangle
        ``inside`` only when the point is strictly inside all three edges.
    """
    for corner in (a, b, c):
        if point.distance_squared(corner) <= eps * eps:
            return PointInTriangle.vertex

    o1 = orient2d(a, b, point)
    o2 = orient2d(b, c, point)
    o3 = orient2d(c, a, point)

    if o1 > 0 and o2 > 0 and o3 > 0:
        return PointInTriangle.inside

    # A zero orientation only means "on the edge" if the point lies within the segment
    if o1 == 0 and is_point_in_box(a, b, point, eps):
        return PointInTriangle.edge
    if o2 == 0 and is_point_in_box(b, c, point, eps):
        return PointInTriangle.edge
    if o3 == 0 and is_point_in_box(c, a, point, eps):
        return PointInTriangle.edge

    return PointInTriangle.outside


def on_common_border(points: Iterable[Vertex], width: float, height: float) -> bool:
    """True if all points lie on the same side of the [0, width] x [0, height] rectangle."""
    points = list(points)
    for axis, side in ((0, 0.0), (0, width), (1, 0.0), (1, height)):
        if all(p.key[axis] == side for p in points):
            return True
    return False
