"""
at_plots.py
===========

Headless plot of the energy report: how each Ambrosio–Tortorelli term
evolves along the λ schedule.  The figure is saved to disk, which suits
batch runs.
"""
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np


def plot_energy_history(rows, filename="AT-energies.png"):
    """
    Two‑panel plot of the energies collected by an ``EnergyReport``.

    ``rows`` is a sequence of ``(lam, alpha, eps, energies)`` tuples, one per
    λ value, as stored in ``EnergyReport.rows``.
    """
    if not rows:
        print("[Warning] No energy rows to plot.")
        return None
    lams = np.array([r[0] for r in rows])
    energies = np.array([tuple(r[3]) for r in rows])

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(10, 9), sharex=True)

    # --- Subplot 1: individual terms ---
    labels = ["a(u-g)^2", "v^2|grad u|^2", "le|grad v|^2", "l(1-v)^2/4e"]
    for j, label in enumerate(labels):
        ax1.plot(lams, np.maximum(energies[:, j], 1e-16), 'o-', label=label, markersize=3)
    ax1.set_yscale('log')
    ax1.set_ylabel('Energy term', fontsize=12)
    ax1.set_title('Ambrosio-Tortorelli energies along the lambda schedule', fontsize=14, fontweight='bold')
    ax1.legend()
    ax1.grid(True, which='both', linestyle='--', alpha=0.6)

    # --- Subplot 2: perimeter and total ---
    ax2.plot(lams, energies[:, 4], 'o--', color='dodgerblue', label='l.per', markersize=3)
    ax2.plot(lams, energies[:, 5], 'o-', color='black', label='AT tot', markersize=3)
    ax2.set_xscale('log')
    ax2.set_xlabel('lambda', fontsize=12)
    ax2.set_ylabel('Energy', fontsize=12)
    ax2.legend()
    ax2.grid(True, which='both', linestyle='--', alpha=0.6)

    plt.tight_layout()
    fig.savefig(filename, dpi=150)
    plt.close(fig)
    print(f"Generated energy plot: '{filename}'")
    return filename
