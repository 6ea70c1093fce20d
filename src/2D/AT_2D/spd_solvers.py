"""
spd_solvers.py
==============

Sparse symmetric positive definite (SPD) linear solves behind a single
capability: ``factorize_and_solve(A, b) -> SolveResult``.

The alternating minimization only needs to solve ``A x = b`` for sparse SPD
``A``; which factorization does the work is a backend detail.  Two backends
are provided:

  - :class:`SparseLUSolver`: direct solve with ``scipy.sparse.linalg.splu``
    (factorize, then back‑substitute);
  - :class:`ConjugateGradientSolver`: iterative solve with
    ``scipy.sparse.linalg.cg``.

A solve never raises on numerical trouble.  It returns either
:class:`Solved` (with the solution) or :class:`Failed` (with a reason), and
the caller decides what to do.  ``unwrap()`` converts a failure into a
:class:`LinearSolveFailed` exception for callers that want one.
"""

from dataclasses import dataclass
from typing import Dict, Type, Union

import numpy as np
import scipy.sparse as sps
from scipy.sparse.linalg import cg, splu
from scipy.sparse.linalg import norm as sparse_norm


class LinearSolveFailed(RuntimeError):
    """A sparse SPD solve did not produce a usable solution."""


@dataclass(frozen=True)
class Solved:
    """Successful solve: ``value`` solves the system up to the backend tolerance."""
    value: np.ndarray
    status: str = "Success"

    ok = True

    def unwrap(self) -> np.ndarray:
        return self.value


@dataclass(frozen=True)
class Failed:
    """Failed solve; ``value`` holds whatever the backend returned, if anything."""
    reason: str
    status: str = "NumericalIssue"
    value: Union[np.ndarray, None] = None

    ok = False

    def unwrap(self) -> np.ndarray:
        raise LinearSolveFailed(f"{self.status}: {self.reason}")


SolveResult = Union[Solved, Failed]


def relative_residual(A: sps.spmatrix, x: np.ndarray, b: np.ndarray) -> float:
    """‖A x − b‖ / (‖A‖·‖x‖ + ‖b‖), safe for zero right‑hand sides."""
    r = A @ x - b
    denom = sparse_norm(A) * np.linalg.norm(x) + np.linalg.norm(b) + 1e-300
    return float(np.linalg.norm(r) / denom)


class SPDSolver:
    """
    Base class of the SPD solve capability.

    Subclasses implement :meth:`_solve`; :meth:`factorize_and_solve` performs
    the shape and symmetry checks and the final validity test shared by all
    backends.
    """

    name = "base"

    def __init__(self, residual_tol: float = 1e-8, symmetry_tol: float = 1e-10):
        self.residual_tol = residual_tol
        self.symmetry_tol = symmetry_tol

    def __repr__(self) -> str:
        return f"{type(self).__name__}(residual_tol={self.residual_tol:g})"

    def factorize_and_solve(self, A: sps.spmatrix, b: np.ndarray) -> SolveResult:
        A = sps.csr_matrix(A)
        b = np.asarray(b, dtype=float)
        if A.shape[0] != A.shape[1]:
            raise ValueError(f"Matrix must be square, got shape {A.shape}")
        if b.ndim != 1 or b.shape[0] != A.shape[0]:
            raise ValueError(f"Right-hand side of shape {b.shape} does not match matrix {A.shape}")
        if b.shape[0] == 0:
            return Solved(np.zeros(0))

        asym = abs(A - A.T).max() if A.nnz else 0.0
        scale = abs(A).max() if A.nnz else 1.0
        if asym > self.symmetry_tol * max(scale, 1.0):
            return Failed(f"matrix is not symmetric (max |A - A^T| = {asym:.3e})", status="InvalidInput")

        result = self._solve(A, b)
        if not result.ok:
            return result
        x = result.value
        if not np.all(np.isfinite(x)):
            return Failed("solution contains NaN or Inf", value=x)
        res = relative_residual(A, x, b)
        if res > self.residual_tol:
            return Failed(f"relative residual {res:.3e} exceeds {self.residual_tol:.1e}", value=x)
        return result

    def _solve(self, A: sps.csr_matrix, b: np.ndarray) -> SolveResult:
        raise NotImplementedError


class SparseLUSolver(SPDSolver):
    """Direct solve through a sparse LU factorization (SuperLU)."""

    name = "lu"

    def _solve(self, A: sps.csr_matrix, b: np.ndarray) -> SolveResult:
        try:
            factor = splu(A.tocsc())
        except RuntimeError as e:
            # SuperLU reports exactly singular factors this way
            return Failed(f"factorization failed: {e}")
        return Solved(factor.solve(b))


class ConjugateGradientSolver(SPDSolver):
    """Iterative solve with unpreconditioned conjugate gradients."""

    name = "cg"

    def __init__(self, rtol: float = 1e-12, maxiter: Union[int, None] = None, **kwargs):
        super().__init__(**kwargs)
        self.rtol = rtol
        self.maxiter = maxiter

    def _solve(self, A: sps.csr_matrix, b: np.ndarray) -> SolveResult:
        maxiter = self.maxiter if self.maxiter is not None else 10 * A.shape[0]
        x, info = cg(A, b, rtol=self.rtol, atol=0.0, maxiter=maxiter)
        if info > 0:
            return Failed(f"no convergence after {info} iterations", status="NoConvergence", value=x)
        if info < 0:
            return Failed("illegal input or breakdown", status="InvalidInput", value=x)
        return Solved(x)


SOLVERS: Dict[str, Type[SPDSolver]] = {
    SparseLUSolver.name: SparseLUSolver,
    ConjugateGradientSolver.name: ConjugateGradientSolver,
}


def make_solver(name: str = "lu", **kwargs) -> SPDSolver:
    """Instantiate an SPD solver backend by name (``"lu"`` or ``"cg"``)."""
    try:
        cls = SOLVERS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown SPD solver '{name}'. Choose one of {sorted(SOLVERS)}") from None
    return cls(**kwargs)
