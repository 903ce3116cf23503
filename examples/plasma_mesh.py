import numpy as np

from pyplasma.config import RefinementConfig
from pyplasma.refine import refine_mesh


def jittered_grid(width, height, spacing, rng):
    """Roughly evenly spread seed points strictly inside the rectangle."""
    xs = np.arange(spacing / 2, width, spacing)
    ys = np.arange(spacing / 2, height, spacing)
    grid = np.array([(x, y) for x in xs for y in ys])
    return grid + rng.uniform(-spacing / 4, spacing / 4, size=grid.shape)


if __name__ == "__main__":
    rng = np.random.default_rng(7)
    config = RefinementConfig(width=256.0, height=256.0, min_area_fraction=0.0005, seed=7)
    points = jittered_grid(config.width, config.height, 64.0, rng)
    base_area = config.area / (2 * len(points) + 2)

    def initial_value(vertex):
        return rng.normal(0.5, 1.0)

    def assign_value(vertex, parent):
        # Inverse-distance blend of the parent corners, jittered by the parent size
        weights = np.array([vertex.distance(v) for v in parent.vertices])
        weights /= weights.sum()
        mean = sum(w * v.value for w, v in zip(weights, parent.vertices))
        return rng.normal(mean, parent.area / base_area)

    result = refine_mesh(config, points, assign_value, initial_value=initial_value)
    tri = result.triangulation

    values = tri.vertex_values
    for vertex in tri.all_vertices:
        vertex.value = (vertex.value - values.min()) / (values.max() - values.min())

    tri.plot(show=True, shade=True, title=f"{len(tri)} triangles")
