"""Exceptions raised by the triangulation engine and the refinement driver."""


class TriangulationError(Exception): ...


class DegenerateGeometryError(TriangulationError):
    """
    Three points that cannot form a triangle (collinear or coincident).

    The mesh is left untouched when this is raised, so a caller may perturb
    the offending point and try again.
    """

    def __init__(self, message: str, points: tuple = ()) -> None:
        super().__init__(message)
        self.points = tuple(points)


class InvalidInputError(TriangulationError, ValueError): ...


class InvariantViolationError(TriangulationError, RuntimeError): ...


class RefinementLimitError(TriangulationError): ...


class SharedEdgeError(TriangulationError): ...
