"""Max-priority index of triangles ordered by area."""

import heapq
from collections.abc import Iterator

from pyplasma.errors import InvariantViolationError
from pyplasma.triangle import Triangle


class AreaIndex:
    """
    Triangle ids ordered by area, largest first.

    Equal areas are ordered by creation sequence number, oldest first, so the
    order never depends on object identity. Removal is lazy: discarded ids stay in
    the heap until they surface at the top, and the heap is rebuilt once stale
    entries outnumber live ones.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, int]] = []
        self._live: dict[int, float] = {}

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, idx: int) -> bool:
        return idx in self._live

    def __iter__(self) -> Iterator[int]:
        return iter(self._live)

    def push(self, triangle: Triangle) -> None:
        if triangle.idx in self._live:
            raise InvariantViolationError(f"Triangle {triangle.idx} is already indexed")
        self._live[triangle.idx] = triangle.area
        heapq.heappush(self._heap, (-triangle.area, triangle.idx))

    def discard(self, idx: int) -> None:
        if self._live.pop(idx, None) is None:
            return
        if len(self._heap) > 2 * len(self._live) + 16:
            self._compact()

    def peek(self) -> int:
        """Id of the largest triangle."""
        heap = self._heap
        while heap and heap[0][1] not in self._live:
            heapq.heappop(heap)
        if not heap:
            raise IndexError("peek from an empty area index")
        return heap[0][1]

    def _compact(self) -> None:
        self._heap = [(-area, idx) for idx, area in self._live.items()]
        heapq.heapify(self._heap)
