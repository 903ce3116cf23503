import itertools
import math
from collections.abc import Iterator
from pathlib import Path

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pyplasma.area_index import AreaIndex
from pyplasma.errors import InvalidInputError, InvariantViolationError
from pyplasma.triangle import Triangle
from pyplasma.utils import MAX_SIZE, MIN_SIZE, RELATIVE_EPS
from pyplasma.vertex import Vertex

# Animation writer per output suffix
ANIMATION_WRITERS = {".gif": "pillow", ".mp4": "ffmpeg"}


class Triangulation:
    """
    Delaunay mesh of the rectangle [0, width] x [0, height].

    The triangulation owns its vertices (an arena indexed by ``Vertex.idx``) and its
    active triangles (keyed by ``Triangle.idx``), plus an area index holding exactly
    the active triangle ids. Operations that change the mesh live in
    ``pyplasma.build``; this class only provides the bookkeeping primitives they
    commit through.

    Tolerances follow the size of the rectangle: ``eps`` (vertex coincidence) and,
    unless given, ``edge_eps`` (edge quantization) are ``RELATIVE_EPS`` times its
    longer side.
    """

    def __init__(self, width: float, height: float, edge_eps: float | None = None):
        if not (math.isfinite(width) and math.isfinite(height)):
            raise InvalidInputError(f"Non-finite rectangle {width} x {height}")
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Rectangle must have positive size, got {width} x {height}")
        if not (MIN_SIZE <= width <= MAX_SIZE and MIN_SIZE <= height <= MAX_SIZE):
            raise InvalidInputError(
                f"Rectangle {width} x {height} is outside the supported range "
                f"[{MIN_SIZE}, {MAX_SIZE}] per side"
            )
        if edge_eps is not None and not (
            edge_eps > 0 and math.isfinite(max(width, height) / edge_eps)
        ):
            raise InvalidInputError(
                f"Edge tolerance {edge_eps} cannot quantize a {width} x {height} rectangle"
            )

        self.width = float(width)
        self.height = float(height)
        self.eps = RELATIVE_EPS * max(self.width, self.height)
        self.edge_eps = self.eps if edge_eps is None else edge_eps
        self._vertices: list[Vertex] = []
        self._triangles: dict[int, Triangle] = {}
        self._area_index = AreaIndex()
        self._sequence = itertools.count()
        self.debug_plots: list[NDArray[np.floating]] = []

    def __len__(self) -> int:
        return len(self._triangles)

    def __iter__(self) -> Iterator[Triangle]:
        return iter(self._triangles.values())

    def __contains__(self, triangle: Triangle) -> bool:
        return self._triangles.get(triangle.idx) is triangle

    @property
    def triangles(self) -> dict[int, Triangle]:
        """Active triangles keyed by id. Read only; mutate through ``pyplasma.build``."""
        return self._triangles

    @property
    def area_index(self) -> AreaIndex:
        return self._area_index

    @property
    def area(self) -> float:
        return self.width * self.height

    def new_triangle(self, a: Vertex, b: Vertex, c: Vertex) -> Triangle:
        """Build a triangle with the next sequence number without registering it."""
        return Triangle(a, b, c, idx=next(self._sequence))

    def add_vertex(self, vertex: Vertex) -> Vertex:
        if vertex.idx != -1:
            raise InvariantViolationError(f"Vertex {vertex.key} is already registered")
        vertex.idx = len(self._vertices)
        self._vertices.append(vertex)
        return vertex

    def add_triangle(self, triangle: Triangle) -> None:
        for vertex in triangle.vertices:
            if vertex.idx < 0 or self._vertices[vertex.idx] is not vertex:
                raise InvariantViolationError(
                    f"Triangle {triangle.idx} uses unregistered vertex {vertex.key}"
                )
        triangle.attach()
        self._triangles[triangle.idx] = triangle
        self._area_index.push(triangle)

    def remove_triangle(self, triangle: Triangle) -> None:
        if self._triangles.get(triangle.idx) is not triangle:
            raise InvariantViolationError(f"Triangle {triangle.idx} is not active")
        triangle.detach()
        del self._triangles[triangle.idx]
        self._area_index.discard(triangle.idx)

    def largest(self) -> Triangle:
        """The active triangle with the largest area (oldest first among equals)."""
        return self._triangles[self._area_index.peek()]

    def vertices(self) -> list[Vertex]:
        """Distinct vertices of the active triangles, in order of first appearance."""
        seen: dict[int, Vertex] = {}
        for triangle in self._triangles.values():
            for vertex in triangle.vertices:
                seen.setdefault(id(vertex), vertex)
        return list(seen.values())

    @property
    def all_vertices(self) -> list[Vertex]:
        """Every registered vertex, indexed by ``Vertex.idx``."""
        return self._vertices

    def total_area(self) -> float:
        return math.fsum(t.area for t in self._triangles.values())

    def contains_point(self, point: Vertex) -> bool:
        """True if point lies in the closed bounding rectangle."""
        return 0.0 <= point.x <= self.width and 0.0 <= point.y <= self.height

    def find_vertex(self, point: Vertex, eps: float | None = None) -> Vertex | None:
        """Registered vertex within eps (default ``self.eps``) of point, if any."""
        if eps is None:
            eps = self.eps
        for vertex in self._vertices:
            if vertex.distance_squared(point) <= eps * eps:
                return vertex
        return None

    @property
    def all_points(self) -> NDArray[np.floating]:
        """Coordinates of every registered vertex, shape (n, 2)."""
        return np.array([v.key for v in self._vertices], dtype=float).reshape(-1, 2)

    @property
    def vertex_values(self) -> NDArray[np.floating]:
        return np.array([v.value for v in self._vertices], dtype=float)

    @property
    def triangle_vertices(self) -> NDArray[np.integer]:
        """Vertex ids of the active triangles (CCW rows), shape (m, 3)."""
        return np.array(
            [[v.idx for v in t.vertices] for t in self._triangles.values()],
            dtype=int,
        ).reshape(-1, 3)

    def plot(
        self,
        show: bool = False,
        title: str = "Triangulation",
        shade: bool = False,
        point_labels: bool = False,
        fontsize: int = 7,
        highlight: list[Triangle] | None = None,
    ) -> None:
        """
        Plot the triangulation using matplotlib.

        :param show: Whether to call plt.show() after plotting
        :param title: Title of the plot
        :param shade: Whether to fill triangles with a gradient of the vertex values
        :param point_labels: Whether to label points with their indices
        :param fontsize: Font size for labels
        :param highlight: Triangles to fill in orange (e.g. a cavity)
        """
        import matplotlib.pyplot as plt

        fig, ax = plt.subplots()

        all_points = self.all_points
        triangle_vertices = self.triangle_vertices

        if shade and len(triangle_vertices):
            ax.tripcolor(
                all_points[:, 0],
                all_points[:, 1],
                triangle_vertices,
                self.vertex_values,
                shading="gouraud",
                cmap="gray",
            )

        for tri in triangle_vertices:
            pts = all_points[tri]
            tri_closed = np.vstack([pts, pts[0]])  # Close the triangle
            ax.plot(tri_closed[:, 0], tri_closed[:, 1], "b-", linewidth=0.5, alpha=0.6)

        for triangle in highlight or []:
            pts = np.array([v.key for v in triangle.vertices])
            ax.fill(pts[:, 0], pts[:, 1], facecolor="orange", alpha=0.5)

        ax.plot(all_points[:, 0], all_points[:, 1], "ko", markersize=2, zorder=11)

        if point_labels:
            offset = 0.005 * max(self.width, self.height)
            for idx, (x, y) in enumerate(all_points):
                ax.text(
                    x + offset,
                    y + offset,
                    str(idx),
                    fontsize=fontsize,
                    ha="left",
                    va="bottom",
                    color="darkgreen",
                )

        ax.set_xlim(0, self.width)
        ax.set_ylim(0, self.height)
        ax.set_aspect("equal")
        ax.set_title(title)

        if show:
            plt.show()

        # Convert figure to RGB image in memory
        fig.canvas.draw()
        buf = fig.canvas.buffer_rgba()  # type: ignore[reportAttributeAccessIssue]
        img = np.asarray(buf)[:, :, :3]  # Convert to RGB by discarding alpha
        plt.close(fig)
        self.debug_plots.append(img)
    def export_animation(self, filepath: str | Path, fps: int = 2) -> Path:
        """
        Write the frames captured by ``plot`` as an animation, one frame per plot.

        Refinement snapshots (``RefinementConfig.snapshot_every``) land here, so a
        run can be replayed subdivision by subdivision.

        :param filepath: output path; ``.gif`` is written with pillow, ``.mp4`` with ffmpeg
        :param fps: frames per second
        :return: the written path
        """
        filepath = Path(filepath)
        writer = ANIMATION_WRITERS.get(filepath.suffix.lower())
        if writer is None:
            raise ValueError(
                f"Unsupported animation format {filepath.suffix!r}, use one of {sorted(ANIMATION_WRITERS)}"
            )
        if not self.debug_plots:
            raise ValueError("No frames captured; call plot() or set snapshot_every")

        import matplotlib.pyplot as plt
        from matplotlib.animation import ArtistAnimation

        # Frames are shown at their captured pixel size
        rows, cols = self.debug_plots[0].shape[:2]
        fig = plt.figure(figsize=(cols / 100, rows / 100), dpi=100)
        ax = fig.add_axes((0.0, 0.0, 1.0, 1.0))
        ax.axis("off")
        frames = [[ax.imshow(frame, animated=True)] for frame in self.debug_plots]

        try:
            ArtistAnimation(fig, frames, interval=1000 / fps, blit=True).save(
                filepath, writer=writer, fps=fps
            )
        finally:
            plt.close(fig)

        logger.info(f"Wrote {len(frames)} frames of {len(self)} triangles to {filepath}")
        return filepath
