"""
grid_calculus.py
================

Discrete exterior calculus on the pixel grid of a 2D image.

The pixels of a W×H image are taken as the primal 0‑cells of a cell complex
living in doubled (Khalimsky) coordinates ``(0..2(W-1)) × (0..2(H-1))``:

  - even/even coordinates are primal 0‑cells (pixels);
  - odd/even coordinates are horizontal primal 1‑cells (x‑adjacencies);
  - even/odd coordinates are vertical primal 1‑cells (y‑adjacencies);
  - odd/odd coordinates are primal 2‑cells (the square between 4 pixels).

Dual k‑cells are in one‑to‑one correspondence with primal (2−k)‑cells, so a
dual k‑form has the length of a primal (2−k)‑form.

Indexing is fixed for the lifetime of a :class:`GridCalculus`:

  - 0‑cells in row‑major pixel order, ``y * W + x``;
  - 1‑cells horizontal edges first (``y * (W-1) + x``), then vertical edges
    (``n_horizontal + y * W + x``);
  - 2‑cells in row‑major order, ``y * (W-1) + x``.

A strip one pixel wide or tall has no 2‑cells and a single family of edges;
a lone pixel has no edges at all.  Empty operators keep their shapes.

Edges are oriented along +x / +y.  Every operator is assembled once with
Kronecker products of 1D difference matrices, in the same way the Neumann
Laplacian of a rectangular grid is usually built, and cached.
"""

from typing import Dict, Tuple

import numpy as np
import scipy.sparse as sps

DIMENSION = 2


def difference_matrix_1d(N: int) -> sps.csr_matrix:
    """
    Forward difference matrix of shape (N-1, N).

    Row ``i`` holds −1 at column ``i`` and +1 at column ``i+1``, i.e. the
    incidence matrix of a path with ``N`` vertices and edges oriented
    towards increasing index.  A single node gives an empty (0, 1) matrix.
    """
    if N < 1:
        raise ValueError(f"A difference matrix needs at least 1 node (got {N})")
    if N == 1:
        return sps.csr_matrix((0, 1))
    ones = np.ones(N - 1)
    return sps.diags([-ones, ones], offsets=[0, 1], shape=(N - 1, N), format="csr")


def _eye(n: int) -> sps.csr_matrix:
    return sps.eye(n, format="csr")


def _kron(A: sps.spmatrix, B: sps.spmatrix) -> sps.csr_matrix:
    """Kronecker product, also for blocks with a zero dimension."""
    shape = (A.shape[0] * B.shape[0], A.shape[1] * B.shape[1])
    if 0 in shape:
        return sps.csr_matrix(shape)
    return sps.kron(A, B, format="csr")


def _vstack(blocks) -> sps.csr_matrix:
    n_cols = blocks[0].shape[1]
    blocks = [b for b in blocks if b.shape[0] > 0]
    if not blocks or n_cols == 0:
        return sps.csr_matrix((sum(b.shape[0] for b in blocks), n_cols))
    return sps.vstack(blocks, format="csr")


def _hstack(blocks) -> sps.csr_matrix:
    n_rows = blocks[0].shape[0]
    blocks = [b for b in blocks if b.shape[1] > 0]
    if not blocks or n_rows == 0:
        return sps.csr_matrix((n_rows, sum(b.shape[1] for b in blocks)))
    return sps.hstack(blocks, format="csr")


class GridCalculus:
    """
    Primal/dual cell complex over a ``width`` × ``height`` pixel grid.

    The exposed operators follow the usual DEC conventions on a unit lattice:

    - ``derivative(k)`` maps primal k‑forms to primal (k+1)‑forms;
      ``derivative(k, dual=True)`` maps dual k‑forms to dual (k+1)‑forms and
      is the signed transpose of the matching primal derivative
      (``dual_D0 = D1ᵀ``, ``dual_D1 = −D0ᵀ``).
    - ``hodge(k)`` maps primal k‑forms to dual (2−k)‑forms,
      ``hodge(k, dual=True)`` maps dual k‑forms to primal (2−k)‑forms, with
      ``primal_hk · dual_h(2−k) = (−1)^{k(2−k)} Id``.  Cells have unit size,
      so the stars only carry signs; the grid step enters the functionals
      explicitly.
    - ``identity(k)`` is the identity (mass) operator on k‑forms.
    """

    def __init__(self, width: int, height: int):
        if width < 1 or height < 1:
            raise ValueError(f"Image must be at least 1x1 pixel (got {width}x{height})")
        self.width = int(width)
        self.height = int(height)
        self.n_horizontal = (self.width - 1) * self.height
        self.n_vertical = self.width * (self.height - 1)
        self._cache: Dict[Tuple[str, int, bool], sps.csr_matrix] = {}

    @classmethod
    def from_shape(cls, shape: Tuple[int, int]) -> "GridCalculus":
        """Build the calculus for an image array of shape (height, width)."""
        if len(shape) != 2:
            raise ValueError(f"Expected a 2D image shape, got {shape}")
        return cls(width=shape[1], height=shape[0])

    def __repr__(self) -> str:
        return (f"GridCalculus(width={self.width}, height={self.height}, "
                f"cells=[{self.n_cells(0)}, {self.n_cells(1)}, {self.n_cells(2)}])")

    # --- Cells -------------------------------------------------------------
    @property
    def kspace_shape(self) -> Tuple[int, int]:
        """Shape (rows, cols) of the doubled Khalimsky domain."""
        return 2 * self.height - 1, 2 * self.width - 1

    def n_cells(self, k: int, dual: bool = False) -> int:
        """Number of k‑cells (primal) or dual k‑cells."""
        self._check_degree(k)
        if dual:
            k = DIMENSION - k
        if k == 0:
            return self.width * self.height
        if k == 1:
            return self.n_horizontal + self.n_vertical
        return (self.width - 1) * (self.height - 1)

    def cell_coords(self, k: int) -> np.ndarray:
        """
        Khalimsky coordinates of the primal k‑cells.

        Returns an integer array of shape (n_cells(k), 2) whose rows are
        ``(x, y)`` in doubled coordinates, in index order.
        """
        self._check_degree(k)
        W, H = self.width, self.height
        if k == 0:
            ys, xs = np.mgrid[0:H, 0:W]
            return np.column_stack([2 * xs.ravel(), 2 * ys.ravel()])
        if k == 1:
            ys, xs = np.mgrid[0:H, 0:W - 1]
            horizontal = np.column_stack([2 * xs.ravel() + 1, 2 * ys.ravel()])
            ys, xs = np.mgrid[0:H - 1, 0:W]
            vertical = np.column_stack([2 * xs.ravel(), 2 * ys.ravel() + 1])
            return np.vstack([horizontal, vertical])
        ys, xs = np.mgrid[0:H - 1, 0:W - 1]
        return np.column_stack([2 * xs.ravel() + 1, 2 * ys.ravel() + 1])

    def form(self, k: int, fill: float = 0.0, dual: bool = False) -> np.ndarray:
        """A new k‑form filled with a constant value."""
        return np.full(self.n_cells(k, dual=dual), float(fill))

    def check_form(self, form: np.ndarray, k: int, dual: bool = False) -> np.ndarray:
        """Validate the length of a k‑form and return it as a float vector."""
        arr = np.asarray(form, dtype=float)
        expected = self.n_cells(k, dual=dual)
        if arr.ndim != 1 or arr.shape[0] != expected:
            kind = "dual" if dual else "primal"
            raise ValueError(f"Expected a {kind} {k}-form of length {expected}, got shape {arr.shape}")
        return arr

    # --- Operators ---------------------------------------------------------
    def derivative(self, k: int, dual: bool = False) -> sps.csr_matrix:
        """Exterior derivative on k‑forms (k = 0 or 1)."""
        if k not in (0, 1):
            raise ValueError(f"No derivative on {k}-forms in dimension {DIMENSION}")
        return self._cached("d", k, dual, self._build_derivative)

    def hodge(self, k: int, dual: bool = False) -> sps.csr_matrix:
        """Hodge star on k‑forms (k = 0, 1, 2)."""
        self._check_degree(k)
        return self._cached("h", k, dual, self._build_hodge)

    def identity(self, k: int, dual: bool = False) -> sps.csr_matrix:
        """Identity operator on k‑forms."""
        self._check_degree(k)
        return self._cached("id", k, dual, lambda kk, dd: _eye(self.n_cells(kk, dual=dd)))

    def _cached(self, name, k, dual, builder) -> sps.csr_matrix:
        key = (name, k, dual)
        if key not in self._cache:
            self._cache[key] = builder(k, dual).tocsr()
        return self._cache[key]

    def _build_derivative(self, k: int, dual: bool) -> sps.csr_matrix:
        W, H = self.width, self.height
        if dual:
            # dual d_k is the transpose of primal d_(n-k-1), with sign (-1)^(n-k)
            primal_k = DIMENSION - k - 1
            sign = -1.0 if primal_k == 0 else 1.0
            return sign * self.derivative(primal_k).T
        dW, dH = difference_matrix_1d(W), difference_matrix_1d(H)
        if k == 0:
            D_x = _kron(_eye(H), dW)          # horizontal edges × pixels
            D_y = _kron(dH, _eye(W))          # vertical edges × pixels
            return _vstack([D_x, D_y])
        # Positively oriented face boundary: bottom − top + right − left
        C_x = -_kron(dH, _eye(W - 1))         # faces × horizontal edges
        C_y = _kron(_eye(H - 1), dW)          # faces × vertical edges
        return _hstack([C_x, C_y])

    def _build_hodge(self, k: int, dual: bool) -> sps.csr_matrix:
        # Unit lattice: primal and dual cells all have size 1.
        n = self.n_cells(k, dual=dual)
        sign = 1.0
        if dual:
            primal_k = DIMENSION - k
            sign = (-1.0) ** (primal_k * (DIMENSION - primal_k))
        return sign * _eye(n)

    @staticmethod
    def _check_degree(k: int) -> None:
        if k not in (0, 1, 2):
            raise ValueError(f"Form degree must be 0, 1 or 2 (got {k})")
