"""
Example: Spectrum of a Square Lattice with Spin

Nearest-neighbour tight-binding model on an open SX x SY square lattice
with a Zeeman term:

    H = -t Σ_{⟨i,j⟩,σ} c_{iσ}^† c_{jσ} - h Σ_{i,σ} σ c_{iσ}^† c_{iσ}

Physical indices are [x, y, spin].

Run with:
    python examples/square_lattice.py
    python examples/square_lattice.py --size 20 --plot
"""

import sys
from pathlib import Path
import argparse

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from amplitudes import IDX_ALL, Model
from solvers import DiagonalizationConfig, DiagonalizationSolver


def create_square_lattice(size_x: int, size_y: int, t: float = 1.0, h: float = 0.0) -> Model:
    """Build and construct the square-lattice model."""
    model = Model(verbose=True)
    for x in range(size_x):
        for y in range(size_y):
            for s in range(2):
                zeeman = -h * (1 if s == 0 else -1)
                model.add(zeeman, [x, y, s], [x, y, s])

                if x + 1 < size_x:
                    model.add(-t, [x + 1, y, s], [x, y, s], hermitian_conjugate=True)
                if y + 1 < size_y:
                    model.add(-t, [x, y + 1, s], [x, y, s], hermitian_conjugate=True)
    model.construct()
    return model


def main():
    """Run square lattice example."""
    parser = argparse.ArgumentParser(description="Square lattice spectrum")
    parser.add_argument("--size", type=int, default=10, help="Linear lattice size")
    parser.add_argument("--t", type=float, default=1.0, help="Hopping amplitude")
    parser.add_argument("--h", type=float, default=0.5, help="Zeeman field")
    parser.add_argument("--eigensolver", default="scipy", choices=["scipy", "numpy", "torch"])
    parser.add_argument("--plot", action="store_true", help="Plot the spectrum")
    args = parser.parse_args()

    print("=" * 70)
    print("Tight-Binding Diagonalization")
    print("Example: Square Lattice with Spin")
    print("=" * 70)

    print(f"\nSystem: {args.size}x{args.size} sites, t={args.t}, h={args.h}")
    model = create_square_lattice(args.size, args.size, t=args.t, h=args.h)

    solver = DiagonalizationSolver(
        DiagonalizationConfig(eigensolver=args.eigensolver, verbose=True)
    )
    solver.set_model(model)
    solver.run()

    E = solver.get_eigen_values()
    bandwidth = E[-1] - E[0]
    print(f"\nLowest energy:  {E[0]:.6f}")
    print(f"Highest energy: {E[-1]:.6f}")
    print(f"Bandwidth:      {bandwidth:.6f}  (infinite lattice: {8 * args.t + 2 * args.h:.6f})")

    # Spin polarization of the ground state
    up = model.get_index_list([IDX_ALL, IDX_ALL, 0])
    down = model.get_index_list([IDX_ALL, IDX_ALL, 1])
    weight_up = sum(abs(solver.get_amplitude(0, index)) ** 2 for index in up)
    weight_down = sum(abs(solver.get_amplitude(0, index)) ** 2 for index in down)
    print(f"\nGround state weight: up={weight_up:.4f}, down={weight_down:.4f}")

    # Density of the ground state along the diagonal
    print("\nGround state density along x = y (spin up):")
    for x in range(args.size):
        density = abs(solver.get_amplitude(0, [x, x, 0])) ** 2
        print(f"  [{x}, {x}, 0]: {density:.5f}")

    if args.plot:
        import matplotlib.pyplot as plt

        print("\nGenerating spectrum plot...")
        fig, axes = plt.subplots(1, 2, figsize=(10, 4))
        axes[0].plot(E, ".", markersize=2)
        axes[0].set_xlabel("State")
        axes[0].set_ylabel("Energy")
        axes[0].set_title("Spectrum")

        axes[1].hist(E, bins=60, density=True)
        axes[1].set_xlabel("Energy")
        axes[1].set_ylabel("DOS")
        axes[1].set_title("Density of states")

        plt.tight_layout()
        plt.savefig("square_lattice_spectrum.png", dpi=150)
        print("Saved to square_lattice_spectrum.png")

    return E


if __name__ == "__main__":
    main()
