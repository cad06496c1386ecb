"""
Diagonalization solver.

Builds the dense Hamiltonian of a constructed Model, diagonalizes it and
exposes the eigen-system through physical indices. Scales as O(N^3) with
the basis size N.

Self-consistent calculations are supported through a callback that is
called after every diagonalization:

    H(λ_0) → diagonalize → callback → H(λ_1) → diagonalize → ...

Amplitudes defined through callbacks are re-evaluated before each new
diagonalization, so they can read results of the previous one. The loop
stops when the callback returns True or after ``max_iterations``
diagonalizations.
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union
from tqdm import tqdm

try:
    from ..amplitudes.amplitude_set import HoppingAmplitudeSet
    from ..amplitudes.errors import NonHermitianError, PreconditionError
    from ..amplitudes.index import IndexLike
    from ..amplitudes.model import Model
    from .eigensolver import dense_eigh, get_eigensolver, is_hermitian
except ImportError:
    from amplitudes.amplitude_set import HoppingAmplitudeSet
    from amplitudes.errors import NonHermitianError, PreconditionError
    from amplitudes.index import IndexLike
    from amplitudes.model import Model
    from solvers.eigensolver import dense_eigh, get_eigensolver, is_hermitian


@dataclass
class DiagonalizationConfig:
    """Configuration for the diagonalization solver."""

    # Self-consistency loop
    max_iterations: int = 50  # Upper bound on diagonalizations per run()

    # Eigensolver
    eigensolver: str = "scipy"  # "scipy", "numpy" or "torch"

    # Hermiticity check on the assembled Hamiltonian
    check_hermitian: bool = True
    hermitian_tolerance: float = 1e-10

    # Output
    verbose: bool = False
    progress: bool = False  # tqdm bar over self-consistency iterations

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be at least 1, got {self.max_iterations}"
            )


class SolverState(Enum):
    UNCONFIGURED = "unconfigured"
    READY = "ready"
    BUILT = "built"
    SOLVED = "solved"


SelfConsistencyCallback = Callable[["DiagonalizationSolver"], bool]


class DiagonalizationSolver:
    """
    Solves a Model by full diagonalization of its Hamiltonian.

    Eigenvectors are stored state-major in a flat buffer: eigenvector n
    occupies ``eigen_vectors[N*n:N*(n+1)]``, so that

        Ψ_n(x) = eigen_vectors[N*n + basis_index(x)]

    Example usage:
    ```python
    solver = DiagonalizationSolver(DiagonalizationConfig(max_iterations=20))
    solver.set_model(model)
    solver.set_sc_callback(update_order_parameter)
    solver.run()

    E = solver.get_eigen_values()
    psi_0 = solver.get_amplitude(0, [0, 0, 1])
    ```

    Args:
        config: Solver configuration
    """

    def __init__(self, config: Optional[DiagonalizationConfig] = None):
        self.config = config or DiagonalizationConfig()
        get_eigensolver(self.config.eigensolver)

        self._model: Optional[Union[Model, HoppingAmplitudeSet]] = None
        self._sc_callback: Optional[SelfConsistencyCallback] = None

        self._basis_size = 0
        self._basis_revision: Optional[int] = None
        self._hamiltonian: Optional[np.ndarray] = None
        self._eigen_values: Optional[np.ndarray] = None
        self._eigen_vectors: Optional[np.ndarray] = None

        self.state = SolverState.UNCONFIGURED
        self.num_iterations = 0
        self.converged = False

    def set_model(self, model: Union[Model, HoppingAmplitudeSet]):
        """
        Set the model to work on.

        Buffers and results from a previous model are dropped when the
        basis size differs.
        """
        self._model = model

        basis_size = self._current_basis_size()
        if basis_size is None or basis_size != self._basis_size:
            self._release_buffers()
        self.state = SolverState.READY

    def get_model(self) -> Optional[Union[Model, HoppingAmplitudeSet]]:
        return self._model

    def set_sc_callback(self, sc_callback: Optional[SelfConsistencyCallback]):
        """
        Set the self-consistency callback.

        The callback receives the solver after each diagonalization and
        returns True when self-consistency has been reached. With None the
        self-consistency loop is not run.
        """
        self._sc_callback = sc_callback

    def set_max_iterations(self, max_iterations: int):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.config.max_iterations = max_iterations

    def _amplitude_set(self) -> HoppingAmplitudeSet:
        if isinstance(self._model, Model):
            return self._model.get_hopping_amplitude_set()
        return self._model

    def _current_basis_size(self) -> Optional[int]:
        amplitude_set = self._amplitude_set()
        if amplitude_set is None or not amplitude_set.is_sealed:
            return None
        return amplitude_set.get_basis_size()

    def _release_buffers(self):
        self._basis_size = 0
        self._basis_revision = None
        self._hamiltonian = None
        self._eigen_values = None
        self._eigen_vectors = None

    def run(self):
        """
        Diagonalize once, or repeatedly until the self-consistency
        callback reports convergence or max_iterations is reached.

        Raises:
            PreconditionError: if no model is set or it is not constructed
            NonHermitianError: if the Hamiltonian fails the Hermiticity check
            EigensolverError: if the diagonalization fails
        """
        if self._model is None:
            raise PreconditionError("No model set, call set_model() before run()")

        amplitude_set = self._amplitude_set()
        if not amplitude_set.is_sealed:
            raise PreconditionError(
                "The model must be constructed before it can be diagonalized"
            )

        self._init()

        max_iterations = self.config.max_iterations if self._sc_callback is not None else 1
        if self.config.verbose:
            print(f"Running diagonalization (basis size {self._basis_size})")

        iterations = range(max_iterations)
        if self.config.progress and self._sc_callback is not None:
            iterations = tqdm(iterations, desc="Self-consistency")

        for iteration in iterations:
            H = self._assemble()
            self._solve(H)
            # Counters are committed together with the eigen-system
            self.num_iterations = iteration + 1
            self.converged = False

            if self._sc_callback is None:
                break

            if self._sc_callback(self):
                self.converged = True
                break

        if self.config.verbose:
            if self._sc_callback is None:
                print("\tDiagonalization done")
            elif self.converged:
                print(f"\tSelf-consistency reached after {self.num_iterations} iterations")
            else:
                print(
                    f"\tSelf-consistency not reached in {self.num_iterations} iterations"
                )

    def _init(self):
        """Allocate the buffers for the current basis size (once per size)."""
        basis_size = self._amplitude_set().get_basis_size()
        if self._hamiltonian is not None and basis_size == self._basis_size:
            return

        if self.state in (SolverState.BUILT, SolverState.SOLVED):
            self.state = SolverState.READY

        self._basis_size = basis_size
        self._hamiltonian = np.zeros((basis_size, basis_size), dtype=np.complex128)
        self._eigen_values = np.zeros(basis_size, dtype=np.float64)
        self._eigen_vectors = np.zeros(basis_size * basis_size, dtype=np.complex128)

    def _assemble(self) -> np.ndarray:
        """Evaluate all amplitudes into a new dense matrix."""
        rows, cols, values = self._amplitude_set().get_matrix_elements()

        H = np.zeros((self._basis_size, self._basis_size), dtype=np.complex128)
        # Unbuffered add so that duplicate (row, col) pairs accumulate
        np.add.at(H, (rows, cols), values)

        if self.config.check_hermitian and not is_hermitian(
            H, self.config.hermitian_tolerance
        ):
            deviation = np.max(np.abs(H - H.conj().T))
            raise NonHermitianError(
                f"Hamiltonian is not Hermitian (max |H - H^†| = {deviation:.3e}). "
                f"Add the missing conjugate amplitudes or use hermitian_conjugate=True"
            )
        return H

    def _solve(self, H: np.ndarray):
        """
        Diagonalize H and commit it together with its eigen-system.

        The buffers are overwritten only after the eigensolver succeeds, so a
        failure leaves the previous Hamiltonian and eigen-system intact.
        """
        eigenvalues, eigenvectors = dense_eigh(H, backend=self.config.eigensolver)

        self._hamiltonian[...] = H
        self._eigen_values[...] = eigenvalues
        # Columns of eigenvectors are states; store state-major
        self._eigen_vectors[...] = eigenvectors.T.reshape(-1)
        self._basis_revision = self._amplitude_set().revision
        self.state = SolverState.SOLVED

    def build(self) -> np.ndarray:
        """
        Assemble the Hamiltonian without diagonalizing it.

        Results of an earlier run() are invalidated.

        Returns:
            Copy of the dense Hamiltonian
        """
        if self._model is None:
            raise PreconditionError("No model set, call set_model() before build()")
        if not self._amplitude_set().is_sealed:
            raise PreconditionError(
                "The model must be constructed before the Hamiltonian is built"
            )

        self._init()
        H = self._assemble()
        self._hamiltonian[...] = H
        self._basis_revision = self._amplitude_set().revision
        self.state = SolverState.BUILT
        return H.copy()

    def _check_basis_current(self):
        """
        Invalidate results computed on a basis the model no longer has.

        A reset() of the model, or resealing it to another size, makes
        stored positions and eigenvectors meaningless.
        """
        if self.state not in (SolverState.BUILT, SolverState.SOLVED):
            return
        amplitude_set = self._amplitude_set()
        if (
            amplitude_set.is_sealed
            and amplitude_set.revision == self._basis_revision
            and amplitude_set.get_basis_size() == self._basis_size
        ):
            return
        self._release_buffers()
        self.state = SolverState.READY
        raise PreconditionError(
            "The model basis changed since the last solve, call run() again"
        )

    def _require_solved(self, operation: str):
        self._check_basis_current()
        if self.state is not SolverState.SOLVED:
            raise PreconditionError(
                f"{operation} requires a solved system, call run() first "
                f"(state: {self.state.value})"
            )

    def get_hamiltonian(self) -> np.ndarray:
        """Copy of the last built Hamiltonian."""
        self._check_basis_current()
        if self.state not in (SolverState.BUILT, SolverState.SOLVED):
            raise PreconditionError(
                "No Hamiltonian has been built, call build() or run() first"
            )
        return self._hamiltonian.copy()

    def get_eigen_values(self) -> np.ndarray:
        """Copy of the eigenvalues, in non-decreasing order."""
        self._require_solved("get_eigen_values()")
        return self._eigen_values.copy()

    def get_eigen_value(self, state: int) -> float:
        self._require_solved("get_eigen_value()")
        self._check_state_index(state)
        return float(self._eigen_values[state])

    def get_eigen_vectors(self) -> np.ndarray:
        """
        Copy of the flat eigenvector buffer, of length N*N.

        Element ``N*n + i`` is the amplitude of eigenstate n on basis
        position i.
        """
        self._require_solved("get_eigen_vectors()")
        return self._eigen_vectors.copy()

    def get_eigen_vector(self, state: int) -> np.ndarray:
        """Copy of eigenvector ``state`` indexed by basis position."""
        self._require_solved("get_eigen_vector()")
        self._check_state_index(state)
        n = self._basis_size
        return self._eigen_vectors[n * state:n * (state + 1)].copy()

    def get_amplitude(self, state: int, index: IndexLike) -> complex:
        """
        Amplitude Ψ_state(index) of an eigenstate on a physical index.

        Raises:
            PreconditionError: before run() or for an invalid state number
            IndexNotFoundError: if index is not part of the basis
        """
        self._require_solved("get_amplitude()")
        self._check_state_index(state)
        basis_index = self._amplitude_set().get_basis_index(index)
        return complex(self._eigen_vectors[self._basis_size * state + basis_index])

    def _check_state_index(self, state: int):
        if not 0 <= state < self._basis_size:
            raise PreconditionError(
                f"State {state} out of range [0, {self._basis_size})"
            )

    def __repr__(self) -> str:
        return (
            f"DiagonalizationSolver(state={self.state.value}, "
            f"basis_size={self._basis_size}, eigensolver={self.config.eigensolver!r})"
        )
