import math
from dataclasses import dataclass

from pyplasma.errors import InvalidInputError


@dataclass(frozen=True)
class RefinementConfig:
    """
    Settings of a refinement run.

    Attributes
    ----------
    width, height : float
        Size of the rectangle [0, width] x [0, height].
    min_area_fraction : float
        Refinement stops once no triangle is larger than this fraction of the
        rectangle area.
    max_iterations : int | None
        Cap on subdivisions. ``None`` derives one from the cutoff.
    log_every : int
        Report progress every time this many triangles have been created.
    edge_eps : float | None
        Quantization step for edge identity. ``None`` scales it with the rectangle.
    seed : int | None
        Seed of the random generator used to sample subdivision points.
    degenerate_retries : int
        How many times a subdivision is re-sampled after a degenerate triangle.
        0 aborts the run on the first one.
    snapshot_every : int | None
        Capture a debug plot every this many subdivisions (needs matplotlib).
    """

    width: float = 512.0
    height: float = 512.0
    min_area_fraction: float = 0.0005
    max_iterations: int | None = None
    log_every: int = 10000
    edge_eps: float | None = None
    seed: int | None = None
    degenerate_retries: int = 0
    snapshot_every: int | None = None

    def __post_init__(self) -> None:
        if not (math.isfinite(self.width) and math.isfinite(self.height)):
            raise InvalidInputError("width and height must be finite")
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(
                f"width and height must be positive, got {self.width} x {self.height}"
            )
        if not 0 < self.min_area_fraction <= 1:
            raise InvalidInputError(
                f"min_area_fraction must be in (0, 1], got {self.min_area_fraction}"
            )
        if self.max_iterations is not None and self.max_iterations < 0:
            raise InvalidInputError("max_iterations must be non-negative")
        if self.log_every <= 0:
            raise InvalidInputError("log_every must be positive")
        if self.edge_eps is not None and self.edge_eps <= 0:
            raise InvalidInputError("edge_eps must be positive")
        if self.degenerate_retries < 0:
            raise InvalidInputError("degenerate_retries must be non-negative")
        if self.snapshot_every is not None and self.snapshot_every <= 0:
            raise InvalidInputError("snapshot_every must be positive")

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def cutoff(self) -> float:
        """Largest triangle area accepted in the final mesh."""
        return self.min_area_fraction * self.area

    @property
    def iteration_cap(self) -> int:
        if self.max_iterations is not None:
            return self.max_iterations
        return int(64 * self.area / self.cutoff) + 1000
