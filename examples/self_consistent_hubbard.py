"""
Example: Mean-Field Hubbard Chain

Hartree mean-field treatment of the Hubbard model on a periodic chain:

    H = -t Σ_{⟨i,j⟩,σ} c_{iσ}^† c_{jσ} + U Σ_{i,σ} ⟨n_{i,-σ}⟩ n_{iσ}

The onsite terms are callback amplitudes that read the current mean-field
occupations. After every diagonalization the self-consistency callback
fills the lowest states, mixes the new occupations into the old ones and
reports convergence once they stop changing.

Run with:
    python examples/self_consistent_hubbard.py
    python examples/self_consistent_hubbard.py --U 4.0 --sites 16 --plot
"""

import sys
from pathlib import Path
import argparse

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from amplitudes import Model
from solvers import DiagonalizationConfig, DiagonalizationSolver


class HartreeField:
    """Mean-field occupations <n_{x,s}> with linear mixing."""

    def __init__(self, num_sites: int, U: float, mixing: float = 0.5, tolerance: float = 1e-8):
        self.num_sites = num_sites
        self.U = U
        self.mixing = mixing
        self.tolerance = tolerance
        self.history = []

        # Antiferromagnetic seed
        staggered = 0.1 * (-1) ** np.arange(num_sites)
        self.occupation = np.stack([0.5 + staggered, 0.5 - staggered], axis=1)

    def onsite(self, to_index, from_index) -> float:
        x, s = to_index
        return self.U * self.occupation[x, 1 - s]

    def update(self, solver: DiagonalizationSolver) -> bool:
        """Self-consistency callback: True once the occupations converge."""
        num_filled = self.num_sites  # half filling
        new = np.zeros_like(self.occupation)
        for n in range(num_filled):
            for x in range(self.num_sites):
                for s in range(2):
                    new[x, s] += abs(solver.get_amplitude(n, [x, s])) ** 2

        change = np.max(np.abs(new - self.occupation))
        self.occupation = (1 - self.mixing) * self.occupation + self.mixing * new
        self.history.append(change)
        return change < self.tolerance

    def staggered_magnetization(self) -> float:
        m = 0.5 * (self.occupation[:, 0] - self.occupation[:, 1])
        return float(np.mean(m * (-1) ** np.arange(self.num_sites)))


def create_hubbard_chain(field: HartreeField, t: float = 1.0) -> Model:
    model = Model(verbose=True)
    for x in range(field.num_sites):
        for s in range(2):
            model.add(field.onsite, [x, s], [x, s])
            model.add(-t, [(x + 1) % field.num_sites, s], [x, s], hermitian_conjugate=True)
    model.construct()
    return model


def main():
    """Run mean-field Hubbard example."""
    parser = argparse.ArgumentParser(description="Self-consistent Hubbard chain")
    parser.add_argument("--sites", type=int, default=12, help="Number of sites (even)")
    parser.add_argument("--t", type=float, default=1.0, help="Hopping amplitude")
    parser.add_argument("--U", type=float, default=3.0, help="Onsite interaction")
    parser.add_argument("--max-iterations", type=int, default=500)
    parser.add_argument("--plot", action="store_true", help="Plot the convergence")
    args = parser.parse_args()

    print("=" * 70)
    print("Tight-Binding Diagonalization")
    print("Example: Self-Consistent Mean-Field Hubbard Chain")
    print("=" * 70)

    print(f"\nSystem: {args.sites} sites, t={args.t}, U={args.U}")
    field = HartreeField(args.sites, args.U)
    model = create_hubbard_chain(field, t=args.t)

    config = DiagonalizationConfig(
        max_iterations=args.max_iterations,
        verbose=True,
        progress=True,
    )
    solver = DiagonalizationSolver(config)
    solver.set_model(model)
    solver.set_sc_callback(field.update)
    solver.run()

    print("\n" + "=" * 70)
    print("FINAL RESULTS")
    print("=" * 70)
    print(f"\nConverged: {solver.converged} ({solver.num_iterations} iterations)")
    print(f"Staggered magnetization: {field.staggered_magnetization():.6f}")

    E = solver.get_eigen_values()
    gap = E[args.sites] - E[args.sites - 1]
    print(f"Mean-field gap at half filling: {gap:.6f}")

    print("\nOccupations:")
    for x in range(args.sites):
        print(f"  site {x:2d}: up={field.occupation[x, 0]:.4f}  down={field.occupation[x, 1]:.4f}")

    if args.plot:
        import matplotlib.pyplot as plt

        print("\nGenerating convergence plot...")
        fig, axes = plt.subplots(1, 2, figsize=(10, 4))
        axes[0].semilogy(field.history)
        axes[0].set_xlabel("Iteration")
        axes[0].set_ylabel("max |Δn|")
        axes[0].set_title("Self-consistency")

        axes[1].plot(E, "o", markersize=3)
        axes[1].axhline((E[args.sites - 1] + E[args.sites]) / 2, color="gray", linestyle="--")
        axes[1].set_xlabel("State")
        axes[1].set_ylabel("Energy")
        axes[1].set_title("Mean-field spectrum")

        plt.tight_layout()
        plt.savefig("hubbard_convergence.png", dpi=150)
        print("Saved to hubbard_convergence.png")

    return field


if __name__ == "__main__":
    main()
