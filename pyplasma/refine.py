"""
Adaptive refinement driver.

Seeds a triangulation with a batch of points, then keeps subdividing the largest
triangle until every triangle is at most ``config.cutoff`` in area. The value of
each new vertex is left to a caller-supplied function.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pyplasma.build import initialize_triangulation, insert_points, subdivide_triangle
from pyplasma.config import RefinementConfig
from pyplasma.delaunay import Triangulation
from pyplasma.errors import DegenerateGeometryError, RefinementLimitError
from pyplasma.triangle import Triangle
from pyplasma.utils import Vec2d
from pyplasma.vertex import Vertex

AssignValue = Callable[[Vertex, Triangle], float]
InitialValue = Callable[[Vertex], float]


class RefinementState(Enum):
    seeding = auto()
    refining = auto()
    done = auto()


@dataclass
class RefinementResult:
    triangulation: Triangulation
    iterations: int
    state: RefinementState


class Refiner:
    """
    State machine driving a refinement run: seeding -> refining -> done.

    :param config: run settings
    :param assign_value: called as ``assign_value(vertex, parent)`` after every
        subdivision; ``parent`` is the subdivided triangle, already removed from the
        mesh but still holding its corners and area. The return value becomes
        ``vertex.value``.
    :param initial_value: if given, called on every vertex once seeding is over
    :param debug: check all mesh invariants after every operation (slow)
    """

    def __init__(
        self,
        config: RefinementConfig,
        assign_value: AssignValue,
        initial_value: InitialValue | None = None,
        debug: bool = False,
    ) -> None:
        self.config = config
        self.assign_value = assign_value
        self.initial_value = initial_value
        self.debug = debug
        self.rng = np.random.default_rng(config.seed)
        self.triangulation = initialize_triangulation(
            config.width, config.height, edge_eps=config.edge_eps
        )
        self.state = RefinementState.seeding
        self.iterations = 0
        self._reported_count = len(self.triangulation)

    def seed(
        self, points: Iterable[Vertex | Vec2d] | NDArray[np.floating] = ()
    ) -> Triangulation:
        """Insert the initial points and move on to refining."""
        if self.state is not RefinementState.seeding:
            raise RuntimeError(f"Cannot seed a refinement in state {self.state.name}")

        insert_points(self.triangulation, points, debug=self.debug)
        if self.initial_value is not None:
            for vertex in self.triangulation.vertices():
                vertex.value = self.initial_value(vertex)

        self.state = RefinementState.refining
        self._reported_count = len(self.triangulation)
        logger.info(f"Generating plasma from {len(self.triangulation)} seed triangles.")
        return self.triangulation

    def step(self) -> Vertex | None:
        """
        Subdivide the largest triangle once.

        :return: the new vertex, or None once every triangle is below the cutoff
        """
        if self.state is RefinementState.seeding:
            raise RuntimeError("Refinement has not been seeded")
        if self.state is RefinementState.done:
            return None

        largest = self.triangulation.largest()
        if largest.area <= self.config.cutoff:
            self.state = RefinementState.done
            logger.info(
                f"Refinement done after {self.iterations} subdivisions: "
                f"{len(self.triangulation)} triangles, largest area {largest.area:.6g}"
            )
            return None

        if self.iterations >= self.config.iteration_cap:
            raise RefinementLimitError(
                f"Reached {self.iterations} subdivisions with a triangle of area "
                f"{largest.area:.6g} still above the cutoff {self.config.cutoff:.6g}"
            )

        vertex = self._subdivide(largest)
        vertex.value = self.assign_value(vertex, largest)
        self.iterations += 1

        self._report_progress()
        snapshot_every = self.config.snapshot_every
        if snapshot_every and self.iterations % snapshot_every == 0:
            self.triangulation.plot(shade=True, title=f"Subdivision {self.iterations}")
        return vertex

    def run(self) -> RefinementResult:
        """Step until done."""
        while self.step() is not None:
            pass
        return self.result()

    def result(self) -> RefinementResult:
        return RefinementResult(
            triangulation=self.triangulation,
            iterations=self.iterations,
            state=self.state,
        )

    def export_snapshots(self, filepath: str | Path, fps: int = 2) -> Path:
        """
        Write the snapshots taken every ``config.snapshot_every`` subdivisions as an
        animation, closing with a shaded frame of the current mesh.
        """
        if not self.config.snapshot_every:
            raise ValueError("Snapshots are disabled; set snapshot_every in the config")
        self.triangulation.plot(
            shade=True, title=f"{self.state.name}: {self.iterations} subdivisions"
        )
        return self.triangulation.export_animation(filepath, fps=fps)

    def _subdivide(self, triangle: Triangle) -> Vertex:
        retries = self.config.degenerate_retries
        attempt = 0
        while True:
            try:
                return subdivide_triangle(
                    self.triangulation, triangle, self.rng, debug=self.debug
                )
            except DegenerateGeometryError as exc:
                attempt += 1
                if attempt > retries:
                    raise
                logger.warning(
                    f"Subdivision of triangle {triangle.idx} was degenerate ({exc}); "
                    f"resampling, attempt {attempt}/{retries}"
                )

    def _report_progress(self) -> None:
        count = len(self.triangulation)
        if count - self._reported_count < self.config.log_every:
            return
        self._reported_count = count
        cutoff = self.config.cutoff
        remaining = sum(1 for t in self.triangulation if t.area > cutoff)
        logger.info(f"   {remaining} triangles remaining ...")


def refine_mesh(
    config: RefinementConfig,
    points: Iterable[Vertex | Vec2d] | NDArray[np.floating],
    assign_value: AssignValue,
    initial_value: InitialValue | None = None,
    debug: bool = False,
) -> RefinementResult:
    """
    Seed a triangulation with points and refine it until no triangle exceeds the cutoff.

    :param config: run settings
    :param points: initial points inside the rectangle, inserted in order
    :param assign_value: value of each subdivision vertex, see ``Refiner``
    :param initial_value: value of each seed vertex
    :param debug: check all mesh invariants after every operation
    :return: the refined triangulation with iteration count and final state
    """
    refiner = Refiner(config, assign_value, initial_value=initial_value, debug=debug)
    refiner.seed(points)
    return refiner.run()
