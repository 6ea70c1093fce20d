"""
at_operators.py
===============

Assembly of the sparse operators of the discrete Ambrosio–Tortorelli
functional.

The base DEC operators (derivatives and Hodge stars) do not depend on the
state ``(u, v)`` nor on ``(λ, ε)``.  They are built once per run into an
immutable :class:`OperatorBundle` which is then passed explicitly to every
assembly routine.  Two SPD systems are assembled from it:

  - the u‑system  ``Av2A u = h² α g`` with
    ``Av2A = −h · dual_h2 · dual_D1 · primal_h1 · diag(v²) · primal_D0 + α h² Id0``;
  - the v‑system  ``(h BB + h diag(w²)) v = (h/ε)(λ/4) 𝟙`` with
    ``BB = ε lBB + (λ/4ε) Id1``, ``lBB = λ tBB``, ``w = primal_D0 u`` and
    ``tBB = −(primal_D0 · dual_h2 · dual_D1 · primal_h1
             + dual_h1 · dual_D0 · primal_h2 · primal_D1)``,
    the (positive) Hodge Laplacian on 1‑forms.

``lBB`` is rebuilt once per λ value, ``BB`` once per (λ, ε), and the
``diag(v²)`` / ``diag(w²)`` terms at every alternation.
"""

from dataclasses import dataclass

import numpy as np
import scipy.sparse as sps

from grid_calculus import GridCalculus


@dataclass(frozen=True)
class OperatorBundle:
    """Base operators of one run, built once from a :class:`GridCalculus`."""
    calculus: GridCalculus
    primal_D0: sps.csr_matrix
    primal_D1: sps.csr_matrix
    dual_D0: sps.csr_matrix
    dual_D1: sps.csr_matrix
    primal_h1: sps.csr_matrix
    primal_h2: sps.csr_matrix
    dual_h1: sps.csr_matrix
    dual_h2: sps.csr_matrix
    id0: sps.csr_matrix
    id1: sps.csr_matrix
    div1: sps.csr_matrix   # dual_h2 · dual_D1 · primal_h1, primal 1-forms -> primal 0-forms
    tBB: sps.csr_matrix

    @classmethod
    def build(cls, calculus: GridCalculus, verbose: bool = False) -> "OperatorBundle":
        """Assemble every base operator of the calculus."""
        ops = {}
        for name, k, dual in (("primal_D0", 0, False), ("primal_D1", 1, False),
                              ("dual_D0", 0, True), ("dual_D1", 1, True)):
            if verbose:
                print(f"  {name}")
            ops[name] = calculus.derivative(k, dual=dual)
        for name, k, dual in (("primal_h1", 1, False), ("primal_h2", 2, False),
                              ("dual_h1", 1, True), ("dual_h2", 2, True)):
            if verbose:
                print(f"  {name}")
            ops[name] = calculus.hodge(k, dual=dual)

        div1 = (ops["dual_h2"] @ ops["dual_D1"] @ ops["primal_h1"]).tocsr()
        tBB = -1.0 * (ops["primal_D0"] @ div1
                      + ops["dual_h1"] @ ops["dual_D0"] @ ops["primal_h2"] @ ops["primal_D1"])
        return cls(
            calculus=calculus,
            id0=calculus.identity(0),
            id1=calculus.identity(1),
            div1=div1,
            tBB=tBB.tocsr(),
            **ops,
        )

    @property
    def n_vertices(self) -> int:
        return self.primal_D0.shape[1]

    @property
    def n_edges(self) -> int:
        return self.primal_D0.shape[0]


def diagonal(values: np.ndarray) -> sps.csr_matrix:
    """Square diagonal matrix, also for an empty vector."""
    values = np.asarray(values, dtype=float)
    n = values.shape[0]
    idx = np.arange(n)
    return sps.csr_matrix((values, (idx, idx)), shape=(n, n))


def diffusion_operator(ops: OperatorBundle, v: np.ndarray) -> sps.csr_matrix:
    """
    Edge‑weighted graph Laplacian ``M = −dual_h2 · dual_D1 · primal_h1 · diag(v²) · primal_D0``.

    ``uᵀ M u`` is the discrete ∫ v²|∇u|²; M is symmetric positive
    semidefinite for every real ``v``.
    """
    Mv2 = diagonal(np.asarray(v, dtype=float) ** 2)
    return (-1.0 * (ops.div1 @ Mv2 @ ops.primal_D0)).tocsr()


def assemble_u_operator(ops: OperatorBundle, v: np.ndarray, alpha: float, h: float) -> sps.csr_matrix:
    """u‑system matrix ``Av2A = h M(v) + α h² Id0``."""
    return (h * diffusion_operator(ops, v) + (alpha * h * h) * ops.id0).tocsr()


def u_rhs(g: np.ndarray, alpha: float, h: float) -> np.ndarray:
    """u‑system right‑hand side ``h² α g``."""
    return (h * h * alpha) * np.asarray(g, dtype=float)


def lambda_operator(ops: OperatorBundle, lam: float) -> sps.csr_matrix:
    """``lBB = λ tBB``, assembled once per λ value."""
    return (lam * ops.tBB).tocsr()


def epsilon_operator(ops: OperatorBundle, lBB: sps.csr_matrix, lam: float, eps: float) -> sps.csr_matrix:
    """``BB = ε lBB + (λ/4ε) Id1``, assembled once per (λ, ε)."""
    return (eps * lBB + (lam / (4.0 * eps)) * ops.id1).tocsr()


def gradient(ops: OperatorBundle, u: np.ndarray) -> np.ndarray:
    """Discrete gradient ``w = primal_D0 u`` (a primal 1‑form)."""
    return ops.primal_D0 @ np.asarray(u, dtype=float)


def assemble_v_operator(BB: sps.csr_matrix, w: np.ndarray, h: float) -> sps.csr_matrix:
    """v‑system matrix ``h BB + h diag(w²)``."""
    Mw2 = diagonal(np.asarray(w, dtype=float) ** 2)
    return (h * BB + h * Mw2).tocsr()


def v_rhs(n_edges: int, lam: float, eps: float, h: float) -> np.ndarray:
    """v‑system right‑hand side ``(h/ε) · (λ/4) 𝟙``."""
    return (h / eps) * np.full(n_edges, lam / 4.0)
