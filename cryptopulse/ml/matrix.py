"""Small dense matrix backed by a numpy array.

Only the operations the Gaussian-Process smoother needs: scalar and matrix
products, addition, transpose and a Gauss-Jordan inverse whose pivoting is
kept deliberately simple (a row swap only when the diagonal vanishes) so
the GP weights are reproducible across platforms.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from cryptopulse.errors import SingularMatrixError


PIVOT_EPSILON = 1e-10


class Matrix:
    """A fixed-size ``rows × cols`` matrix of floats."""

    def __init__(self, rows: int, cols: int, fill: float = 0.0) -> None:
        if rows <= 0 or cols <= 0:
            raise ValueError(f"Matrix dimensions must be positive, got {rows}x{cols}")
        self._data = np.full((rows, cols), fill, dtype=np.float64)

    # ── Construction ─────────────────────────────────────────────────────

    @classmethod
    def from_array(cls, values: Union[Sequence[Sequence[float]], np.ndarray]) -> Matrix:
        arr = np.array(values, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(f"Expected a 2-D array, got {arr.ndim} dimension(s)")
        m = cls(arr.shape[0], arr.shape[1])
        m._data = arr
        return m

    @classmethod
    def identity(cls, n: int) -> Matrix:
        return cls.from_array(np.eye(n))

    # ── Accessors ────────────────────────────────────────────────────────

    @property
    def rows(self) -> int:
        return self._data.shape[0]

    @property
    def cols(self) -> int:
        return self._data.shape[1]

    def get(self, row: int, col: int) -> float:
        return float(self._data[row, col])

    def set(self, row: int, col: int, value: float) -> None:
        self._data[row, col] = value

    def row(self, index: int) -> list[float]:
        return self._data[index].tolist()

    def to_numpy(self) -> np.ndarray:
        return self._data.copy()

    # ── Arithmetic ───────────────────────────────────────────────────────

    def multiply(self, other: Union[Matrix, float]) -> Matrix:
        """Scalar product, or matrix product when *other* is a ``Matrix``."""
        if isinstance(other, Matrix):
            if self.cols != other.rows:
                raise ValueError(
                    f"Matrix dimension mismatch: {self.cols} != {other.rows}"
                )
            return Matrix.from_array(self._data @ other._data)
        return Matrix.from_array(self._data * other)

    def add(self, other: Union[Matrix, float]) -> Matrix:
        if isinstance(other, Matrix):
            if self.rows != other.rows or self.cols != other.cols:
                raise ValueError(
                    f"Matrix dimension mismatch for add: {self.rows}x{self.cols} "
                    f"vs {other.rows}x{other.cols}"
                )
            return Matrix.from_array(self._data + other._data)
        return Matrix.from_array(self._data + other)

    def transpose(self) -> Matrix:
        return Matrix.from_array(self._data.T.copy())

    def inverse(self) -> Matrix:
        """Invert by Gauss-Jordan elimination.

        Row *i* is swapped with the first row below it only when
        ``|a[i][i]| < 1e-10``; the replacement row must have
        ``|a[k][i]| > 1e-10``.

        Raises:
            ValueError: The matrix is not square.
            SingularMatrixError: No usable pivot exists for some column.
        """
        if self.rows != self.cols:
            raise ValueError(f"Matrix must be square, got {self.rows}x{self.cols}")
        n = self.rows
        mat = self._data.copy()
        inv = np.eye(n)

        for i in range(n):
            diag = mat[i, i]
            if abs(diag) < PIVOT_EPSILON:
                for k in range(i + 1, n):
                    if abs(mat[k, i]) > PIVOT_EPSILON:
                        mat[[i, k]] = mat[[k, i]]
                        inv[[i, k]] = inv[[k, i]]
                        diag = mat[i, i]
                        break
                else:
                    raise SingularMatrixError(f"Matrix is singular (no pivot in column {i})")

            mat[i] /= diag
            inv[i] /= diag

            for k in range(n):
                if k != i:
                    factor = mat[k, i]
                    mat[k] -= factor * mat[i]
                    inv[k] -= factor * inv[i]

        return Matrix.from_array(inv)

    def __repr__(self) -> str:
        return f"Matrix({self.rows}x{self.cols})"
