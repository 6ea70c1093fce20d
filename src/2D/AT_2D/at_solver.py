"""
at_solver.py
============

Alternating minimization of the discrete Ambrosio–Tortorelli functional

    ∫ α(u−g)² + v²|∇u|² + λε|∇v|² + (λ/4ε)(1−v)²

over a 2D image.  The computation runs three nested loops:

  1. **λ schedule**: λ = λ₁, λ₁/r, λ₁/r², … while λ ≥ λ₂.  After each
     value the energies are evaluated and the caller is handed the current
     ``(u, v)`` for export.
  2. **ε annealing** (per λ): starting from 2ε₀, ε is halved at most
     ``max_annealing_steps`` times and the halving stops as soon as the
     next value ε/2 would fall below h².  The coarse‑to‑fine edge width keeps
     the alternation from being trapped by an early over‑sharp edge set.
  3. **coordinate descent** (per λ, ε), at most ``nbiter`` alternations of
       a. solve ``Av2A u = h² α g`` with v fixed;
       b. solve ``(h BB + h diag(w²)) v = (h/ε)(λ/4) 𝟙`` with ``w = D0 u``;
       c. stop early once ``‖v_new − v_old‖∞ < tolerance``.

``u`` starts at ``α g`` and ``v`` at 1; both persist across all loops.  A
failed SPD solve does not silently feed an invalid field into the next
step: the last valid ``(u, v)`` is kept, a warning is printed, and the
remaining alternations of that (λ, ε) configuration are skipped.  The
failure is recorded in the :class:`CoordinateDescentOutcome`.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from at_config import ATConfig
from at_energies import ATEnergies, compute_energies
from at_operators import (
    OperatorBundle, assemble_u_operator, assemble_v_operator, epsilon_operator,
    gradient, lambda_operator, u_rhs, v_rhs,
)
from grid_calculus import GridCalculus
from image_fields import image_to_form0
from spd_solvers import SPDSolver, make_solver
from at_tracing import trace_block


def lambda_schedule(lambda_1: float, lambda_2: float, ratio: float) -> List[float]:
    """λ₁, λ₁/r, λ₁/r², … down to the last value ≥ λ₂."""
    if not ratio > 1.0:
        raise ValueError(f"lambda ratio must be > 1 (got {ratio})")
    if not lambda_2 > 0.0:
        raise ValueError(f"lambda_2 must be > 0 (got {lambda_2})")
    values = []
    lam = lambda_1
    while lam >= lambda_2:
        values.append(lam)
        lam /= ratio
    return values


def epsilon_schedule(epsilon: float, h: float, max_steps: int = 5) -> List[float]:
    """
    ε values visited by the annealing for one λ.

    Starts from 2ε₀ and halves at most ``max_steps`` times; a halving is only
    performed while the halved value stays ≥ h².  The list is empty when
    ε₀ < h².
    """
    values = []
    eps = 2.0 * epsilon
    for _ in range(max_steps):
        if eps / 2.0 < h * h:
            break
        eps /= 2.0
        values.append(eps)
    return values


@dataclass
class CoordinateDescentOutcome:
    """Summary of the alternations run for one (λ, ε) configuration."""
    lam: float
    eps: float
    annealing_step: int
    iterations: int = 0
    converged: bool = False
    last_variation: float = float("inf")
    failure: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.failure is not None


@dataclass
class LambdaResult:
    """Final state and diagnostics of one λ value."""
    lam: float
    eps: float
    u: np.ndarray
    v: np.ndarray
    energies: ATEnergies
    outcomes: List[CoordinateDescentOutcome] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(o.failed for o in self.outcomes)


class AlternatingSolver:
    """
    Owner of the fields ``u`` and ``v`` during an Ambrosio–Tortorelli run.

    Parameters
    ----------
    calculus : GridCalculus
        Cell complex of the image grid.
    g : ndarray
        Normalized input intensities (primal 0‑form), never modified.
    config : ATConfig
        Numerical parameters.
    spd_solver : SPDSolver, optional
        SPD solve backend; defaults to ``make_solver(config.solver)``.
    ops : OperatorBundle, optional
        Prebuilt base operators; built from ``calculus`` when omitted.
    verbose : bool
        Print the progress trace.
    """

    def __init__(self, calculus: GridCalculus, g: np.ndarray, config: ATConfig,
                 spd_solver: Optional[SPDSolver] = None,
                 ops: Optional[OperatorBundle] = None, verbose: bool = True):
        self.calculus = calculus
        self.config = config
        self.verbose = verbose
        self.g = calculus.check_form(g, 0).copy()
        self.g.setflags(write=False)
        self.spd_solver = spd_solver if spd_solver is not None else make_solver(config.solver)
        if ops is None:
            with trace_block("building AT functionals", verbose):
                ops = OperatorBundle.build(calculus, verbose=verbose)
        self.ops = ops
        self.reset()

    def reset(self) -> None:
        """Initial state ``u = α g``, ``v = 1``."""
        self.u = self.config.alpha * self.g
        self.v = self.calculus.form(1, fill=1.0)

    # --- Outer loops -------------------------------------------------------
    def solve(self, on_lambda: Optional[Callable[[LambdaResult], None]] = None) -> List[LambdaResult]:
        """
        Run the whole λ schedule.

        ``on_lambda`` is called with each :class:`LambdaResult` as soon as the
        λ value is done (energy report, image export, …).
        """
        cfg = self.config
        results = []
        for lam in lambda_schedule(cfg.lambda_1, cfg.lambda_2, cfg.lambda_ratio):
            result = self.run_lambda(lam)
            results.append(result)
            if on_lambda is not None:
                on_lambda(result)
        return results

    def run_lambda(self, lam: float) -> LambdaResult:
        """ε annealing and coordinate descent for one λ value, then energies."""
        cfg = self.config
        h = cfg.gridstep
        if self.verbose:
            print(f"************ lambda = {lam:g} **************")
        lBB = lambda_operator(self.ops, lam)

        outcomes = []
        eps = 2.0 * cfg.epsilon
        for k, eps in enumerate(epsilon_schedule(cfg.epsilon, h, cfg.max_annealing_steps)):
            BB = epsilon_operator(self.ops, lBB, lam, eps)
            outcomes.append(self.coordinate_descent(lam, eps, BB, annealing_step=k))

        energies = compute_energies(self.ops, self.u, self.v, self.g, cfg.alpha, lam, eps, h)
        if self.verbose:
            print(f"  energies: fidelity={energies.fidelity:.6g} diffusion={energies.diffusion:.6g} "
                  f"edge_smoothness={energies.edge_smoothness:.6g} edge_penalty={energies.edge_penalty:.6g} "
                  f"AT={energies.total:.6g}")
        return LambdaResult(lam=lam, eps=eps, u=self.u.copy(), v=self.v.copy(),
                            energies=energies, outcomes=outcomes)

    # --- Inner loop --------------------------------------------------------
    def coordinate_descent(self, lam: float, eps: float, BB, annealing_step: int = 0) -> CoordinateDescentOutcome:
        """Alternate the u and v solves for a fixed (λ, ε)."""
        cfg = self.config
        n = cfg.nbiter
        outcome = CoordinateDescentOutcome(lam=lam, eps=eps, annealing_step=annealing_step)
        for i in range(n):
            if self.verbose:
                print(f"------ Iteration {annealing_step}:{i}/{n} ------")
            outcome.iterations = i + 1

            u_new, failure = self._solve_u()
            if failure is not None:
                outcome.failure = f"u solve: {failure}"
                break
            self.u = u_new

            v_new, failure = self._solve_v(lam, eps, BB)
            if failure is not None:
                outcome.failure = f"v solve: {failure}"
                break
            variation = float(np.max(np.abs(v_new - self.v))) if v_new.size else 0.0
            self.v = v_new
            outcome.last_variation = variation
            if self.verbose:
                print(f"  Variation |v^k+1 - v^k|_oo = {variation:g}")
            if variation < cfg.tolerance:
                outcome.converged = True
                break

        if outcome.failed:
            print(f"[Warning] lambda={lam:g} eps={eps:g}: {outcome.failure}. "
                  f"Keeping the last valid (u, v) and skipping this configuration.")
        return outcome

    def _solve_u(self):
        cfg = self.config
        with trace_block("Solving for u", self.verbose):
            A = assemble_u_operator(self.ops, self.v, cfg.alpha, cfg.gridstep)
            result = self.spd_solver.factorize_and_solve(A, u_rhs(self.g, cfg.alpha, cfg.gridstep))
            self._report_status(result)
        if not result.ok:
            return None, result.reason
        return result.value, None

    def _solve_v(self, lam: float, eps: float, BB):
        cfg = self.config
        h = cfg.gridstep
        with trace_block("Solving for v", self.verbose):
            w = gradient(self.ops, self.u)
            A = assemble_v_operator(BB, w, h)
            result = self.spd_solver.factorize_and_solve(A, v_rhs(self.ops.n_edges, lam, eps, h))
            self._report_status(result)
        if not result.ok:
            return None, result.reason
        v = result.value
        if cfg.clamp_v:
            v = np.clip(v, 0.0, 1.0)
        return v, None

    def _report_status(self, result) -> None:
        if self.verbose:
            print(f"  {'OK' if result.ok else 'ERROR'} {result.status}")


def segment_image(image: np.ndarray, config: ATConfig, verbose: bool = False,
                  on_lambda: Optional[Callable[[LambdaResult], None]] = None) -> List[LambdaResult]:
    """
    Convenience entry point: AT reconstruction of an 8‑bit (H, W) image array.

    Returns one :class:`LambdaResult` per λ value; ``u`` and ``v`` in the
    results are flat forms of the image's :class:`GridCalculus`.
    """
    image = np.asarray(image)
    calculus = GridCalculus.from_shape(image.shape)
    g = image_to_form0(calculus, image)
    solver = AlternatingSolver(calculus, g, config, verbose=verbose)
    return solver.solve(on_lambda=on_lambda)
