"""Travel time between factories, computed once per map."""

from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from .state import Factory


class DistanceTable:
    """Integer round counts between every pair of factories.

    Backed by an n x n matrix indexed by factory id. The diagonal is 0.
    """

    def __init__(self, matrix: NDArray[np.int64]):
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Distance matrix must be square, got {matrix.shape}")
        if (matrix < 0).any():
            raise ValueError("Distance matrix contains negative travel times")
        self._matrix = matrix
        self._matrix.flags.writeable = False

    @classmethod
    def from_factories(
        cls, factories: Sequence["Factory"], distance_unit: int = 800
    ) -> "DistanceTable":
        """Compute the table from factory centers and radii.

        distance = round_half_up((|a - b| - radius_a - radius_b) / distance_unit)
        """
        xy = np.array(
            [(f.position.x, f.position.y) for f in factories], dtype=np.float64
        ).reshape(-1, 2)
        radii = np.array([f.radius for f in factories], dtype=np.float64)

        delta = xy[:, None, :] - xy[None, :, :]
        euclid = np.sqrt((delta**2).sum(axis=-1))
        gap = euclid - radii[:, None] - radii[None, :]
        matrix = np.floor(gap / distance_unit + 0.5).astype(np.int64)
        np.fill_diagonal(matrix, 0)
        return cls(matrix)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]]) -> "DistanceTable":
        """Build a table from explicit rows (hand-made maps and tests)."""
        return cls(np.array(rows, dtype=np.int64))

    @property
    def size(self) -> int:
        """Number of factories covered."""
        return int(self._matrix.shape[0])

    def distance(self, source: int, destination: int) -> int:
        """Rounds needed to travel from source to destination."""
        return int(self._matrix[source, destination])

    def row(self, source: int) -> list[int]:
        """Distances from one factory to every factory (itself included as 0)."""
        return [int(d) for d in self._matrix[source]]

    def links(self) -> Iterator[tuple[int, int, int]]:
        """Yield (a, b, distance) for every pair with a < b, in id order."""
        n = self.size
        for a in range(n):
            for b in range(a + 1, n):
                yield a, b, int(self._matrix[a, b])

    def is_symmetric(self) -> bool:
        """True when travel time does not depend on direction."""
        return bool((self._matrix == self._matrix.T).all())

    def __len__(self) -> int:
        return self.size
