"""Tests for incremental point insertion (pyplasma/build.py)."""

from collections import Counter

import numpy as np
import pytest

from pyplasma.build import (
    find_cavity,
    initialize_triangulation,
    insert_point,
    insert_points,
    retriangulate_cavity,
    triangulate,
)
from pyplasma.debug_utils import (
    check_adjacency,
    check_area,
    check_area_index,
    check_delaunay,
    check_invariants,
)
from pyplasma.errors import (
    DegenerateGeometryError,
    InvalidInputError,
    InvariantViolationError,
)
from pyplasma.topology import find_cavity_boundary
from pyplasma.vertex import Vertex


def mesh_snapshot(tri):
    """Everything an aborted operation must leave unchanged."""
    return (
        sorted(tri.triangles),
        sorted(tri.area_index),
        [sorted(v.triangles) for v in tri.all_vertices],
        len(tri.all_vertices),
    )


class TestSeeding:
    def test_two_seed_triangles(self):
        """A fresh triangulation holds 2 triangles of half the rectangle each."""
        tri = initialize_triangulation(10.0, 10.0)
        assert len(tri) == 2
        assert [t.area for t in tri] == [50.0, 50.0]
        assert len(tri.vertices()) == 4
        check_invariants(tri)

    def test_non_square_rectangle(self):
        tri = initialize_triangulation(8.0, 3.0)
        assert tri.total_area() == pytest.approx(24.0)
        assert tri.largest().idx == 0

    def test_invalid_rectangle(self):
        with pytest.raises(InvalidInputError):
            initialize_triangulation(0.0, 10.0)
        with pytest.raises(InvalidInputError):
            initialize_triangulation(10.0, float("inf"))
        with pytest.raises(InvalidInputError):
            initialize_triangulation(1e200, 1.0)
        with pytest.raises(InvalidInputError):
            initialize_triangulation(1e-120, 1.0)
        with pytest.raises(InvalidInputError):
            initialize_triangulation(1e100, 1e100, edge_eps=1e-300)

    def test_tolerances_follow_rectangle_size(self):
        """eps and edge_eps scale with the longer side unless edge_eps is given."""
        small = initialize_triangulation(2e-8, 1e-8)
        assert small.eps == pytest.approx(2e-20)
        assert small.edge_eps == small.eps
        large = initialize_triangulation(1e7, 3e7)
        assert large.eps == pytest.approx(3e-5)
        assert initialize_triangulation(1.0, 1.0, edge_eps=1e-6).edge_eps == 1e-6

    def test_close_points_in_tiny_rectangle(self):
        """Points far closer than 1e-9 are still distinct vertices in a 1e-8 square."""
        tri = initialize_triangulation(1e-8, 1e-8)
        first = insert_point(tri, (3e-9, 4e-9))
        second = insert_point(tri, (3e-9 + 1e-15, 4e-9))
        assert first is not second
        assert len(tri) == 6
        check_invariants(tri)


class TestScenarios:
    def test_corners_only(self):
        """Inserting only the 4 corners yields 2 triangles of area 50."""
        tri = triangulate([(0, 0), (10, 0), (10, 10), (0, 10)], 10.0, 10.0)
        assert len(tri) == 2
        assert all(t.area == pytest.approx(50.0) for t in tri)
        assert len(tri.all_vertices) == 4

    def test_corner_insertion_returns_existing_vertex(self):
        tri = initialize_triangulation(10.0, 10.0)
        corner = insert_point(tri, (10.0, 0.0))
        assert corner is tri.all_vertices[3]

    def test_center_point(self):
        """Inserting (5, 5) yields 4 triangles of area 25 around it."""
        tri = initialize_triangulation(10.0, 10.0)
        center = insert_point(tri, (5.0, 5.0))
        assert len(tri) == 4
        assert all(t.area == pytest.approx(25.0) for t in tri)
        assert all(t.has_vertex(center) for t in tri)
        assert len(center.triangles) == 4
        check_invariants(tri)


class TestInsertion:
    def test_random_points_keep_invariants(self):
        """Delaunay, tiling, adjacency and index invariants hold after every insertion."""
        rng = np.random.default_rng(1234)
        tri = initialize_triangulation(10.0, 10.0)
        for point in rng.uniform(0.1, 9.9, size=(60, 2)):
            insert_point(tri, point)
            check_delaunay(tri)
            check_area(tri)
            check_adjacency(tri)
            check_area_index(tri)

    def test_triangle_count(self):
        """n interior points in a rectangle give 2n + 2 triangles."""
        rng = np.random.default_rng(5)
        points = rng.uniform(0.5, 19.5, size=(100, 2))
        tri = triangulate(points, 20.0, 20.0)
        assert len(tri) == 2 * len(points) + 2
        assert len(tri.vertices()) == len(points) + 4
        assert tri.triangle_vertices.shape == (len(tri), 3)
        assert tri.all_points.shape == (len(points) + 4, 2)

    def test_debug_flag_checks_invariants(self):
        rng = np.random.default_rng(8)
        tri = initialize_triangulation(1.0, 1.0)
        insert_points(tri, rng.uniform(0.05, 0.95, size=(20, 2)), debug=True)
        assert len(tri) == 42

    def test_points_are_processed_in_order(self):
        """A later point sees the mesh left by an earlier one."""
        tri = initialize_triangulation(10.0, 10.0)
        insert_points(tri, [(5.0, 5.0), (2.0, 2.0)])
        first, second = tri.all_vertices[4:]
        assert first.key == (5.0, 5.0)
        assert second.key == (2.0, 2.0)
        # (2, 2) lies on the edge (0, 0)-(5, 5) created by the first insertion
        assert any(t.has_vertex(first) for t in map(tri.triangles.get, second.triangles))
        check_invariants(tri)

    def test_vertex_objects_are_inserted_as_is(self):
        tri = initialize_triangulation(10.0, 10.0)
        v = Vertex(3.0, 4.0, value=0.25)
        assert insert_point(tri, v) is v
        assert v.idx == 4
        assert v.value == 0.25

    def test_vertices_are_distinct(self):
        rng = np.random.default_rng(2)
        tri = triangulate(rng.uniform(1, 9, size=(30, 2)), 10.0, 10.0)
        vertices = tri.vertices()
        assert len(vertices) == len({id(v) for v in vertices})

    def test_point_on_border_splits_border_edge(self):
        """A point on the rectangle side becomes a border vertex."""
        tri = initialize_triangulation(10.0, 10.0)
        v = insert_point(tri, (4.0, 0.0))
        assert len(tri) == 3
        assert len(v.triangles) == 3
        assert tri.total_area() == pytest.approx(100.0)
        check_invariants(tri)
        insert_points(tri, [(10.0, 7.0), (0.0, 3.0), (6.0, 10.0), (5.0, 5.0)])
        check_invariants(tri)


class TestInvalidInput:
    def test_point_outside_rectangle(self):
        tri = initialize_triangulation(10.0, 10.0)
        before = mesh_snapshot(tri)
        with pytest.raises(InvalidInputError):
            insert_point(tri, (11.0, 5.0))
        with pytest.raises(InvalidInputError):
            insert_point(tri, (5.0, -0.1))
        assert mesh_snapshot(tri) == before

    def test_non_finite_point(self):
        tri = initialize_triangulation(10.0, 10.0)
        with pytest.raises(InvalidInputError):
            insert_point(tri, (float("nan"), 5.0))

    def test_invalid_input_is_a_value_error(self):
        tri = initialize_triangulation(10.0, 10.0)
        with pytest.raises(ValueError):
            insert_point(tri, (20.0, 20.0))

    def test_bad_point_array(self):
        tri = initialize_triangulation(10.0, 10.0)
        with pytest.raises(InvalidInputError):
            insert_points(tri, np.ones((4, 3)))

    def test_registered_vertex_is_rejected(self):
        tri = initialize_triangulation(10.0, 10.0)
        other = initialize_triangulation(10.0, 10.0)
        v = insert_point(other, (3.0, 3.0))
        with pytest.raises(InvalidInputError):
            insert_point(tri, v)


class TestCavity:
    def test_scan_and_flood_fill_agree(self):
        """Both cavity strategies find the same triangles for interior points."""
        rng = np.random.default_rng(99)
        tri = triangulate(rng.uniform(0.5, 9.5, size=(80, 2)), 10.0, 10.0)
        for triangle in list(tri)[:40]:
            p = triangle.sample_interior_point(rng)
            scanned = find_cavity(tri, p)
            flooded = find_cavity(tri, p, start=triangle)
            assert [t.idx for t in scanned] == [t.idx for t in flooded]
            assert triangle in flooded

    def test_boundary_edges_touch_one_cavity_triangle(self):
        """Boundary edges are exactly the cavity edges used by one cavity triangle."""
        rng = np.random.default_rng(17)
        tri = triangulate(rng.uniform(0.5, 9.5, size=(50, 2)), 10.0, 10.0)
        for p in rng.uniform(0.5, 9.5, size=(25, 2)):
            point = Vertex(*p)
            cavity = find_cavity(tri, point)
            counts = Counter(
                frozenset((id(a), id(b)))
                for t in cavity
                for a, b in zip(t.vertices, t.vertices[1:] + t.vertices[:1])
            )
            expected = {edge for edge, count in counts.items() if count == 1}
            boundary = find_cavity_boundary(cavity, tri.edge_eps)
            found = {frozenset((id(e.point_1), id(e.point_2))) for e in boundary}
            assert found == expected
            assert len(boundary) == len(expected)

    def test_flood_fill_from_inactive_triangle_raises(self):
        tri = initialize_triangulation(10.0, 10.0)
        stale = tri.largest()
        insert_point(tri, (5.0, 5.0))
        with pytest.raises(InvalidInputError):
            find_cavity(tri, Vertex(1.0, 1.0), start=stale)


class TestAtomicity:
    def test_degenerate_star_leaves_mesh_untouched(self):
        """A point on an interior cavity edge cannot form a star; nothing changes."""
        tri = initialize_triangulation(10.0, 10.0)
        before = mesh_snapshot(tri)
        upper = tri.triangles[0]  # (0, 0), (0, 10), (10, 10)
        with pytest.raises(DegenerateGeometryError):
            # (5, 5) lies on the diagonal, which is a boundary edge of this one-triangle cavity
            retriangulate_cavity(tri, Vertex(5.0, 5.0), [upper])
        assert mesh_snapshot(tri) == before
        check_invariants(tri)

    def test_point_outside_cavity_is_an_invariant_violation(self):
        """A star that does not cover the cavity exactly is refused."""
        tri = initialize_triangulation(10.0, 10.0)
        before = mesh_snapshot(tri)
        upper = tri.triangles[0]
        with pytest.raises(InvariantViolationError):
            retriangulate_cavity(tri, Vertex(8.0, 2.0), [upper])
        assert mesh_snapshot(tri) == before

    def test_failed_insert_can_be_retried_with_another_point(self):
        tri = initialize_triangulation(10.0, 10.0)
        with pytest.raises(DegenerateGeometryError):
            retriangulate_cavity(tri, Vertex(5.0, 5.0), [tri.triangles[0]])
        insert_point(tri, (5.0, 5.0 + 1e-3))
        check_invariants(tri)
        assert len(tri) == 4
