"""
at_energies.py
==============

Diagnostic energies of the discrete Ambrosio–Tortorelli functional and the
tab‑separated report written once per λ value.

For the final ``(u, v, ε)`` of a λ value the five terms are

  1. **fidelity**        ``Σ α (u − g)²``;
  2. **diffusion**       ``uᵀ M u`` with ``M = −dual_h2 · dual_D1 · primal_h1 · diag(v²) · primal_D0``;
  3. **edge smoothness** ``λ ε vᵀ tBB v``;
  4. **edge penalty**    ``Σ (λ/4ε) (1 − v)²``;
  5. **perimeter proxy** ``h (edge smoothness + edge penalty)``,

plus the total ``h² fidelity + h diffusion + h edge smoothness + h edge penalty``.
Quadratic forms are evaluated with one sparse matrix–vector product and a
dot product.  None of these values feed back into the solver.
"""
import math
from typing import List, NamedTuple, Optional, TextIO

import numpy as np

from at_operators import OperatorBundle, diffusion_operator

REPORT_HEADER = ["l", "a", "e", "a(u-g)^2", "v^2|grad u|^2", "le|grad v|^2",
                 "l(1-v)^2/4e", "l.per", "AT tot"]
# Exact header text, padding included.
REPORT_HEADER_LINE = ("#  l \t" " a \t" " e \t" "a(u-g)^2 \t" "v^2|grad u|^2 \t"
                      "  le|grad v|^2 \t" "  l(1-v)^2/4e \t" " l.per \t" "AT tot")


class ATEnergies(NamedTuple):
    fidelity: float
    diffusion: float
    edge_smoothness: float
    edge_penalty: float
    perimeter: float
    total: float


def compute_energies(ops: OperatorBundle, u: np.ndarray, v: np.ndarray, g: np.ndarray,
                     alpha: float, lam: float, eps: float, h: float) -> ATEnergies:
    """
    Evaluate the AT energy terms for the state ``(u, v)``.

    Parameters
    ----------
    ops : OperatorBundle
        Base operators of the run.
    u, g : ndarray
        Reconstructed and input intensities (primal 0‑forms).
    v : ndarray
        Edge indicator (primal 1‑form).
    alpha, lam, eps, h : float
        Fidelity weight, λ, ε and grid step used for this λ value.

    Returns
    -------
    ATEnergies
        The five terms and the total, as floats.
    """
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    g = np.asarray(g, dtype=float)

    fidelity = float(alpha * np.sum((u - g) ** 2))
    diffusion = float(u @ (diffusion_operator(ops, v) @ u))
    edge_smoothness = float(lam * eps * (v @ (ops.tBB @ v)))
    edge_penalty = float((lam / (4.0 * eps)) * np.sum((1.0 - v) ** 2))
    perimeter = h * edge_smoothness + h * edge_penalty
    total = h * h * fidelity + h * diffusion + h * edge_smoothness + h * edge_penalty
    return ATEnergies(fidelity, diffusion, edge_smoothness, edge_penalty, perimeter, total)


def truncate(value: float, digits: int) -> float:
    """Truncate ``value`` toward zero to ``digits`` decimals (no rounding)."""
    scale = 10.0 ** digits
    return math.trunc(value * scale) / scale


def format_report_row(lam: float, alpha: float, eps: float, energies: ATEnergies) -> str:
    """One tab‑separated report line (without newline)."""
    fields = [truncate(lam, 8), alpha, truncate(eps, 4)]
    fields += [truncate(e, 5) for e in energies]
    return "\t".join(f"{x:g}" for x in fields)


class EnergyReport:
    """
    Tab‑separated energy report, one header line then one row per λ value.

    Rows are flushed as they are appended so that a long run can be
    monitored while it is in progress.  Use as a context manager, or call
    :meth:`close` explicitly.
    """

    def __init__(self, filepath: str):
        self.filepath = filepath
        self.rows: List[tuple] = []
        self._file: Optional[TextIO] = open(filepath, "w")
        self._file.write(REPORT_HEADER_LINE + "\n")
        self._file.flush()

    def append(self, lam: float, alpha: float, eps: float, energies: ATEnergies) -> str:
        if self._file is None:
            raise ValueError(f"Energy report '{self.filepath}' is closed")
        line = format_report_row(lam, alpha, eps, energies)
        self._file.write(line + "\n")
        self._file.flush()
        self.rows.append((lam, alpha, eps, energies))
        return line

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "EnergyReport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
