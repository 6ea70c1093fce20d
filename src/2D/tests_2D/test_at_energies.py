# -*- coding: utf-8 -*-
"""
Tests for the AT energy terms and the tab‑separated energy report.
"""
import numpy as np
import pytest
from numpy.testing import assert_allclose

from at_energies import (
    REPORT_HEADER, REPORT_HEADER_LINE, ATEnergies, EnergyReport, compute_energies,
    format_report_row, truncate,
)
from at_operators import OperatorBundle
from grid_calculus import GridCalculus


@pytest.fixture(scope="module")
def ops():
    return OperatorBundle.build(GridCalculus(4, 3))


@pytest.fixture
def fields(ops):
    rng = np.random.default_rng(2)
    u = rng.uniform(0, 1, ops.n_vertices)
    g = rng.uniform(0, 1, ops.n_vertices)
    v = rng.uniform(-0.2, 1.2, ops.n_edges)
    return u, v, g


def test_terms_match_explicit_formulas(ops, fields):
    u, v, g = fields
    alpha, lam, eps, h = 0.8, 0.1, 0.5, 2.0
    e = compute_energies(ops, u, v, g, alpha, lam, eps, h)

    D0, D1 = ops.primal_D0, ops.primal_D1
    grad_u = D0 @ u
    assert e.fidelity == pytest.approx(alpha * np.sum((u - g) ** 2))
    assert e.diffusion == pytest.approx(np.sum(v ** 2 * grad_u ** 2))
    # vᵀ tBB v = |D0ᵀ v|² + |D1 v|²
    smooth = np.sum((D0.T @ v) ** 2) + np.sum((D1 @ v) ** 2)
    assert e.edge_smoothness == pytest.approx(lam * eps * smooth)
    assert e.edge_penalty == pytest.approx(lam / (4 * eps) * np.sum((1 - v) ** 2))
    assert e.perimeter == pytest.approx(h * (e.edge_smoothness + e.edge_penalty))
    assert e.total == pytest.approx(h * h * e.fidelity + h * e.diffusion + e.perimeter)


def test_terms_are_non_negative(ops, fields):
    u, v, g = fields
    e = compute_energies(ops, u, v, g, 1.0, 0.3, 1.0, 1.0)
    assert all(term >= 0.0 for term in e)


def test_zero_cases(ops):
    g = np.linspace(0, 1, ops.n_vertices)
    v = np.ones(ops.n_edges)
    e = compute_energies(ops, g, v, g, 1.0, 0.1, 1.0, 1.0)
    assert e.fidelity == 0.0
    assert e.edge_penalty == 0.0

    const = np.full(ops.n_vertices, 0.3)
    e = compute_energies(ops, const, np.linspace(0, 1, ops.n_edges), g, 1.0, 0.1, 1.0, 1.0)
    assert e.diffusion == pytest.approx(0.0, abs=1e-14)


def test_truncate():
    assert truncate(2.71828, 3) == pytest.approx(2.718)
    assert truncate(-1.23456, 2) == pytest.approx(-1.23)
    assert truncate(0.99999, 0) == 0.0


def test_report_row_format():
    energies = ATEnergies(0.123456789, 1.5, 0.0, 2.0, 3.999999, 10.0)
    line = format_report_row(0.00005, 1.0, 1.0, energies)
    fields = line.split("\t")
    assert len(fields) == len(REPORT_HEADER) == 9
    assert fields[:3] == ["5e-05", "1", "1"]
    assert fields[3] == "0.12345"
    assert fields[7] == "3.99999"


def test_energy_report_file(tmp_path):
    path = tmp_path / "AT.txt"
    energies = ATEnergies(1.0, 2.0, 3.0, 4.0, 7.0, 10.0)
    with EnergyReport(str(path)) as report:
        line = report.append(0.25, 1.0, 0.5, energies)
        report.append(0.125, 1.0, 0.5, energies)
        assert len(report.rows) == 2
    lines = path.read_text().splitlines()
    assert lines[0] == REPORT_HEADER_LINE
    assert lines[1] == line
    assert len(lines) == 3
    with pytest.raises(ValueError):
        report.append(0.1, 1.0, 0.5, energies)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s", "--tb=short"])
