"""Tests for the mesh checks and debug plots (pyplasma/debug_utils.py)."""

import numpy as np
import pytest

from pyplasma.build import find_cavity, initialize_triangulation, insert_point, triangulate
from pyplasma.config import RefinementConfig
from pyplasma.debug_utils import (
    check_adjacency,
    check_area,
    check_area_index,
    check_conformity,
    check_delaunay,
    check_invariants,
    plot_cavity,
)
from pyplasma.delaunay import Triangulation
from pyplasma.errors import InvariantViolationError
from pyplasma.refine import Refiner, refine_mesh
from pyplasma.vertex import Vertex


@pytest.fixture
def mesh():
    rng = np.random.default_rng(21)
    return triangulate(rng.uniform(1, 9, size=(15, 2)), 10.0, 10.0)


def fan_mesh() -> Triangulation:
    """A valid tiling of the 10 x 10 square that is not Delaunay."""
    tri = Triangulation(10.0, 10.0)
    c0, c1, c2, c3, p = (
        tri.add_vertex(Vertex(x, y))
        for x, y in [(0, 0), (0, 10), (10, 10), (10, 0), (5, 9)]
    )
    for corners in [(c0, c3, c2), (c0, c2, p), (c0, p, c1), (p, c2, c1)]:
        tri.add_triangle(tri.new_triangle(*corners))
    return tri


class TestChecks:
    def test_valid_mesh_passes(self, mesh):
        check_invariants(mesh)

    def test_stale_adjacency_is_detected(self, mesh):
        vertex = mesh.all_vertices[5]
        vertex.triangles.discard(next(iter(vertex.triangles)))
        with pytest.raises(InvariantViolationError):
            check_adjacency(mesh)

    def test_stale_area_index_is_detected(self, mesh):
        mesh.area_index.discard(mesh.largest().idx)
        with pytest.raises(InvariantViolationError):
            check_area_index(mesh)

    def test_missing_triangle_is_detected(self):
        tri = initialize_triangulation(10.0, 10.0)
        tri.remove_triangle(tri.triangles[0])
        check_adjacency(tri)
        with pytest.raises(InvariantViolationError):
            check_area(tri)
        with pytest.raises(InvariantViolationError):
            check_conformity(tri)

    def test_non_delaunay_tiling_is_detected(self):
        """(5, 9) lies inside the circumcircle of (0, 0), (10, 0), (10, 10)."""
        tri = fan_mesh()
        check_area(tri)
        check_adjacency(tri)
        check_conformity(tri)
        with pytest.raises(InvariantViolationError, match="circumcircle"):
            check_delaunay(tri)


class TestPlots:
    @pytest.fixture(autouse=True)
    def agg_backend(self):
        matplotlib = pytest.importorskip("matplotlib")
        matplotlib.use("Agg")

    def test_plot_captures_frame(self, mesh):
        mesh.plot(shade=True, point_labels=True, highlight=[mesh.largest()])
        assert len(mesh.debug_plots) == 1
        frame = mesh.debug_plots[0]
        assert frame.ndim == 3
        assert frame.shape[2] == 3

    def test_export_gif(self, mesh, tmp_path):
        mesh.plot()
        insert_point(mesh, (5.0, 5.0))
        mesh.plot()
        out = mesh.export_animation(tmp_path / "mesh.gif", fps=4)
        assert out == tmp_path / "mesh.gif"
        assert out.stat().st_size > 0

    def test_export_rejects_unknown_format(self, mesh, tmp_path):
        """The suffix is checked before any frame is looked at."""
        with pytest.raises(ValueError, match="format"):
            mesh.export_animation(tmp_path / "mesh.avi")
        assert not (tmp_path / "mesh.avi").exists()

    def test_export_without_frames(self, mesh, tmp_path):
        with pytest.raises(ValueError, match="No frames"):
            mesh.export_animation(tmp_path / "mesh.gif")

    def test_refinement_snapshots(self, tmp_path):
        """Snapshots every 4 subdivisions plus a closing frame end up in the animation."""
        config = RefinementConfig(
            width=10.0, height=10.0, min_area_fraction=0.05, seed=3, snapshot_every=4
        )
        refiner = Refiner(config, lambda vertex, parent: 0.5)
        refiner.seed()
        result = refiner.run()
        assert len(result.triangulation.debug_plots) == result.iterations // 4

        out = refiner.export_snapshots(tmp_path / "refine.gif")
        assert out.stat().st_size > 0
        assert len(result.triangulation.debug_plots) == result.iterations // 4 + 1

    def test_snapshots_disabled(self, tmp_path):
        config = RefinementConfig(width=10.0, height=10.0, min_area_fraction=0.2, seed=3)
        result = refine_mesh(config, [], lambda vertex, parent: 0.5)
        assert result.triangulation.debug_plots == []
        refiner = Refiner(config, lambda vertex, parent: 0.5)
        with pytest.raises(ValueError):
            refiner.export_snapshots(tmp_path / "refine.gif")

    def test_plot_cavity(self, mesh):
        point = Vertex(4.0, 6.0)
        plot_cavity(mesh, find_cavity(mesh, point), point)
