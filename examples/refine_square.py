from pyplasma.build import find_cavity, triangulate
from pyplasma.config import RefinementConfig
from pyplasma.debug_utils import plot_cavity
from pyplasma.refine import Refiner
from pyplasma.vertex import Vertex


if __name__ == "__main__":
    tri = triangulate([(2, 3), (7, 6), (4, 8), (8, 2)], 10.0, 10.0, debug=True)
    point = Vertex(5.0, 5.0)
    plot_cavity(tri, find_cavity(tri, point), point, show=True)

    config = RefinementConfig(
        width=10.0, height=10.0, min_area_fraction=0.02, seed=0, snapshot_every=5
    )
    refiner = Refiner(config, lambda vertex, parent: parent.area, debug=True)
    refiner.seed([(2, 3), (7, 6)])
    refiner.run()
    refiner.export_snapshots("refine_square.gif", fps=2)
