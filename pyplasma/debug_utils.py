import math

import numpy as np
from loguru import logger

from pyplasma.delaunay import Triangulation
from pyplasma.errors import InvariantViolationError
from pyplasma.geometry import on_common_border
from pyplasma.topology import find_cavity_boundary, find_shared_edge, triangle_edges
from pyplasma.triangle import Triangle
from pyplasma.vertex import Vertex


def check_delaunay(triangulation: Triangulation, tol: float = 1e-9) -> None:
    """
    No active vertex lies strictly inside the circumcircle of an active triangle.

    :param tol: relative slack on the squared radius, absorbing round-off for
        (nearly) cocircular vertices
    """
    vertices = triangulation.vertices()
    if not vertices:
        return
    points = np.array([v.key for v in vertices])
    ids = np.array([id(v) for v in vertices])

    for triangle in triangulation:
        cx, cy = triangle.circumcenter
        d2 = (points[:, 0] - cx) ** 2 + (points[:, 1] - cy) ** 2
        inside = d2 < triangle.radius_squared * (1.0 - tol)
        inside &= ~np.isin(ids, [id(v) for v in triangle.vertices])
        if np.any(inside):
            offenders = [vertices[i].key for i in np.flatnonzero(inside)]
            raise InvariantViolationError(
                f"Triangle {triangle.idx} circumcircle contains vertices {offenders}"
            )


def check_adjacency(triangulation: Triangulation) -> None:
    """Each vertex's adjacency set is exactly the set of active triangles using it."""
    expected: dict[int, set[int]] = {id(v): set() for v in triangulation.all_vertices}
    for triangle in triangulation:
        for vertex in triangle.vertices:
            if id(vertex) not in expected:
                raise InvariantViolationError(
                    f"Triangle {triangle.idx} uses unregistered vertex {vertex.key}"
                )
            expected[id(vertex)].add(triangle.idx)

    for vertex in triangulation.all_vertices:
        if vertex.triangles != expected[id(vertex)]:
            raise InvariantViolationError(
                f"Vertex {vertex.idx} lists {sorted(vertex.triangles)}, "
                f"expected {sorted(expected[id(vertex)])}"
            )


def check_area(triangulation: Triangulation, rel_tol: float = 1e-9) -> None:
    """The triangles tile the rectangle: their areas sum to the rectangle area."""
    total = triangulation.total_area()
    if not math.isclose(total, triangulation.area, rel_tol=rel_tol):
        raise InvariantViolationError(
            f"Triangles cover {total}, rectangle area is {triangulation.area}"
        )


def check_area_index(triangulation: Triangulation) -> None:
    """The area index holds exactly the active triangles and peeks the largest."""
    index = triangulation.area_index
    if set(index) != set(triangulation.triangles):
        raise InvariantViolationError("Area index and active triangles differ")
    if len(triangulation):
        largest = triangulation.largest()
        biggest_area = max(t.area for t in triangulation)
        if largest.area != biggest_area:
            raise InvariantViolationError(
                f"Largest triangle {largest.idx} has area {largest.area}, max is {biggest_area}"
            )


def check_conformity(triangulation: Triangulation) -> None:
    """Every edge is shared by two triangles, except edges on the rectangle border."""
    for triangle in triangulation:
        neighbors = triangle.neighbors_sharing_edge(triangulation.triangles)
        for neighbor in neighbors:
            find_shared_edge(triangle, neighbor)

        border_edges = sum(
            1
            for edge in triangle_edges(triangle, triangulation.edge_eps)
            if on_common_border(
                (edge.point_1, edge.point_2),
                triangulation.width,
                triangulation.height,
            )
        )
        if len(neighbors) + border_edges != 3:
            raise InvariantViolationError(
                f"Triangle {triangle.idx} has {len(neighbors)} neighbors and {border_edges} border edges"
            )


def check_invariants(triangulation: Triangulation) -> None:
    """Run every mesh check, raising InvariantViolationError on the first failure."""
    check_adjacency(triangulation)
    check_area_index(triangulation)
    check_area(triangulation)
    check_conformity(triangulation)
    check_delaunay(triangulation)
    logger.trace(f"All invariants hold for {len(triangulation)} triangles")


def plot_cavity(
    triangulation: Triangulation,
    cavity: list[Triangle],
    point: Vertex,
    title: str = "",
    show: bool = False,
) -> None:
    """Plot the cavity triangles of point, their boundary and circumcircles."""
    import matplotlib.pyplot as plt
    from matplotlib.patches import Circle

    fig, ax = plt.subplots()
    for triangle in triangulation:
        tri = np.array([v.key for v in triangle.vertices])
        poly = np.vstack([tri, tri[0]])
        ax.plot(poly[:, 0], poly[:, 1], "k-", linewidth=0.5, alpha=0.4)

    for triangle in cavity:
        tri = np.array([v.key for v in triangle.vertices])
        ax.fill(tri[:, 0], tri[:, 1], alpha=0.2)
        circ = Circle(
            triangle.circumcenter,
            math.sqrt(triangle.radius_squared),
            fill=False,
            color="blue",
            linestyle="--",
            linewidth=0.5,
        )
        ax.add_patch(circ)
        centroid = tri.mean(axis=0)
        ax.text(*centroid, f"{triangle.idx}", fontsize=6, color="green")  # type: ignore[reportCallIssue]

    if cavity:
        for edge in find_cavity_boundary(cavity, triangulation.edge_eps):
            ax.plot(
                [edge.point_1.x, edge.point_2.x],
                [edge.point_1.y, edge.point_2.y],
                "r-",
                linewidth=1.5,
            )

    ax.plot(point.x, point.y, "ro", markersize=4, zorder=11)
    ax.set_title(title or f"Cavity of {point.key}")
    ax.axis("equal")

    if show:
        plt.show()
    plt.close(fig)
