"""Tests for the eigensolvers and the DiagonalizationSolver."""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from amplitudes.amplitude_set import HoppingAmplitudeSet
from amplitudes.hopping_amplitude import HoppingAmplitude
from amplitudes.model import Model
from amplitudes.errors import (
    EigensolverError,
    IndexNotFoundError,
    NonHermitianError,
    PreconditionError,
)
from solvers.eigensolver import dense_eigh, get_eigensolver, is_hermitian
from solvers.diagonalization import (
    DiagonalizationConfig,
    DiagonalizationSolver,
    SolverState,
)


def two_level_model(t):
    """H = [[0, t], [conj(t), 0]]."""
    model = Model()
    model.add(t, [0], [1], hermitian_conjugate=True)
    model.construct()
    return model


def ring_model(num_sites, t=1.0):
    model = Model()
    for x in range(num_sites):
        model.add(-t, [x, 0], [(x + 1) % num_sites, 0], hermitian_conjugate=True)
    model.construct()
    return model


def random_hermitian(n, seed=0):
    rng = np.random.default_rng(seed)
    A = rng.normal(size=(n, n)) + 1j * rng.normal(size=(n, n))
    return A + A.conj().T


class TestEigensolver:
    """Test the dense eigensolver providers."""

    @pytest.mark.parametrize("backend", ["scipy", "numpy", "torch"])
    def test_backends_agree(self, backend):
        H = random_hermitian(8)
        eigenvalues, eigenvectors = dense_eigh(H, backend=backend)

        assert np.all(np.diff(eigenvalues) >= 0)
        assert eigenvalues.dtype == np.float64
        assert eigenvectors.dtype == np.complex128
        np.testing.assert_allclose(eigenvalues, np.linalg.eigvalsh(H), atol=1e-10)
        np.testing.assert_allclose(
            H @ eigenvectors, eigenvectors * eigenvalues, atol=1e-9
        )

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            dense_eigh(np.eye(2), backend="lapack77")
        with pytest.raises(ValueError):
            get_eigensolver("magma")

    def test_non_square(self):
        with pytest.raises(ValueError):
            dense_eigh(np.zeros((2, 3)))

    def test_empty_matrix(self):
        eigenvalues, eigenvectors = dense_eigh(np.zeros((0, 0)))
        assert eigenvalues.shape == (0,)
        assert eigenvectors.shape == (0, 0)

    @pytest.mark.parametrize("backend", ["scipy", "numpy", "torch"])
    def test_non_finite_fails(self, backend):
        H = np.array([[np.nan, 0.0], [0.0, 1.0]], dtype=np.complex128)
        with pytest.raises(EigensolverError):
            dense_eigh(H, backend=backend)

    def test_is_hermitian(self):
        assert is_hermitian(random_hermitian(4))
        assert not is_hermitian(np.array([[0.0, 1.0], [0.0, 0.0]]))
        assert is_hermitian(np.zeros((0, 0)))


class TestDiagonalizationSolver:
    """Test the diagonalization driver."""

    def test_initial_state(self):
        solver = DiagonalizationSolver()
        assert solver.state is SolverState.UNCONFIGURED
        with pytest.raises(PreconditionError):
            solver.run()

    def test_two_level_system(self):
        """Eigen-system of [[0, t], [conj(t), 0]] up to a global phase."""
        t = 0.6 + 0.8j
        model = two_level_model(t)

        solver = DiagonalizationSolver()
        solver.set_model(model)
        assert solver.state is SolverState.READY
        solver.run()
        assert solver.state is SolverState.SOLVED

        np.testing.assert_allclose(solver.get_eigen_values(), [-abs(t), abs(t)])

        phase = np.conj(t) / abs(t)
        expected = [
            np.array([1.0, -phase]) / np.sqrt(2),
            np.array([1.0, phase]) / np.sqrt(2),
        ]
        for n in range(2):
            psi = solver.get_eigen_vector(n)
            assert abs(np.vdot(expected[n], psi)) == pytest.approx(1.0)

    def test_ring_spectrum(self):
        num_sites = 7
        model = ring_model(num_sites, t=1.0)
        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.run()

        k = 2 * np.pi * np.arange(num_sites) / num_sites
        np.testing.assert_allclose(
            solver.get_eigen_values(), np.sort(-2.0 * np.cos(k)), atol=1e-12
        )

    def test_amplitude_lookup(self):
        model = ring_model(5)
        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.run()

        N = model.get_basis_size()
        eigen_vectors = solver.get_eigen_vectors()
        assert eigen_vectors.shape == (N * N,)
        for n in range(N):
            for x in range(5):
                index = [x, 0]
                expected = eigen_vectors[N * n + model.get_basis_index(index)]
                assert solver.get_amplitude(n, index) == expected

        with pytest.raises(IndexNotFoundError):
            solver.get_amplitude(0, [7, 0])
        with pytest.raises(PreconditionError):
            solver.get_amplitude(N, [0, 0])

    def test_eigenvectors_diagonalize_hamiltonian(self):
        model = ring_model(6, t=0.7)
        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.run()

        H = solver.get_hamiltonian()
        for n in range(6):
            psi = solver.get_eigen_vector(n)
            np.testing.assert_allclose(
                H @ psi, solver.get_eigen_value(n) * psi, atol=1e-12
            )

    def test_accepts_amplitude_set(self):
        amplitudes = HoppingAmplitudeSet()
        amplitudes.add(HoppingAmplitude(2.0, [0], [0]))
        amplitudes.add(HoppingAmplitude(-1.0, [1], [1]))
        amplitudes.seal()

        solver = DiagonalizationSolver()
        solver.set_model(amplitudes)
        solver.run()
        np.testing.assert_allclose(solver.get_eigen_values(), [-1.0, 2.0])

    def test_accessors_before_solve(self):
        solver = DiagonalizationSolver()
        solver.set_model(ring_model(3))
        with pytest.raises(PreconditionError):
            solver.get_eigen_values()
        with pytest.raises(PreconditionError):
            solver.get_eigen_vectors()
        with pytest.raises(PreconditionError):
            solver.get_amplitude(0, [0, 0])
        with pytest.raises(PreconditionError):
            solver.get_hamiltonian()

    def test_unconstructed_model(self):
        model = Model()
        model.add(1.0, [0], [0])
        solver = DiagonalizationSolver()
        solver.set_model(model)
        with pytest.raises(PreconditionError):
            solver.run()

    def test_build_only(self):
        solver = DiagonalizationSolver()
        solver.set_model(two_level_model(1.0j))
        H = solver.build()
        assert solver.state is SolverState.BUILT
        np.testing.assert_array_equal(H, [[0, 1.0j], [-1.0j, 0]])
        np.testing.assert_array_equal(solver.get_hamiltonian(), H)
        with pytest.raises(PreconditionError):
            solver.get_eigen_values()

    def test_duplicates_sum_in_dense_matrix(self):
        model = Model()
        model.add(1.0, [0], [0]).add(1.0, [0], [0]).add(0.5, [1], [1])
        model.construct()

        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.run()
        np.testing.assert_allclose(solver.get_eigen_values(), [0.5, 2.0])

    def test_non_hermitian_model(self):
        model = Model()
        model.add(1.0, [0], [1]).add(1.0, [1], [1])
        model.construct()

        solver = DiagonalizationSolver()
        solver.set_model(model)
        with pytest.raises(NonHermitianError):
            solver.run()
        assert solver.state is SolverState.READY

    @pytest.mark.parametrize("backend", ["numpy", "torch"])
    def test_configured_backend(self, backend):
        model = ring_model(5, t=1.3)
        reference = DiagonalizationSolver()
        reference.set_model(model)
        reference.run()

        solver = DiagonalizationSolver(DiagonalizationConfig(eigensolver=backend))
        solver.set_model(model)
        solver.run()
        np.testing.assert_allclose(
            solver.get_eigen_values(), reference.get_eigen_values(), atol=1e-12
        )

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            DiagonalizationSolver(DiagonalizationConfig(eigensolver="nope"))
        with pytest.raises(ValueError):
            DiagonalizationConfig(max_iterations=0)
        with pytest.raises(ValueError):
            DiagonalizationSolver().set_max_iterations(0)

    def test_failed_run_keeps_previous_results(self):
        params = {"eps": 0.5}
        model = Model()
        model.add(lambda to, frm: params["eps"], [0], [0])
        model.add(-1.0, [1], [1])
        model.construct()

        solver = DiagonalizationSolver(DiagonalizationConfig(check_hermitian=False))
        solver.set_model(model)
        solver.run()
        before = solver.get_eigen_values()

        params["eps"] = np.nan
        with pytest.raises(EigensolverError):
            solver.run()

        assert solver.state is SolverState.SOLVED
        np.testing.assert_array_equal(solver.get_eigen_values(), before)
        assert solver.get_hamiltonian()[0, 0] == 0.5

    def test_failed_run_keeps_iteration_counters(self):
        params = {"eps": 0.5}
        model = Model()
        model.add(lambda to, frm: params["eps"], [0], [0])
        model.add(-1.0, [1], [1])
        model.construct()

        calls = []
        solver = DiagonalizationSolver(
            DiagonalizationConfig(check_hermitian=False, max_iterations=10)
        )
        solver.set_model(model)
        solver.set_sc_callback(lambda s: calls.append(1) or len(calls) == 3)
        solver.run()
        assert (solver.num_iterations, solver.converged) == (3, True)

        params["eps"] = np.nan
        with pytest.raises(EigensolverError):
            solver.run()

        assert solver.num_iterations == 3
        assert solver.converged
        assert solver.state is SolverState.SOLVED

    def test_results_invalidated_when_model_basis_grows(self):
        model = two_level_model(1.0)
        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.run()

        model.reset()
        model.add(0.5, [2], [2]).add(0.5, [3], [3])
        model.construct()
        assert model.get_basis_size() == 4

        with pytest.raises(PreconditionError):
            solver.get_eigen_values()
        assert solver.state is SolverState.READY
        with pytest.raises(PreconditionError):
            solver.get_amplitude(1, [2])

        solver.run()
        np.testing.assert_allclose(solver.get_eigen_values(), [-1.0, 0.5, 0.5, 1.0])
        assert abs(solver.get_amplitude(1, [2])) ** 2 + abs(
            solver.get_amplitude(2, [2])
        ) ** 2 == pytest.approx(1.0)

    def test_results_invalidated_by_model_reset(self):
        model = ring_model(3)
        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.build()

        model.reset()
        with pytest.raises(PreconditionError):
            solver.get_hamiltonian()

        # Same basis size after reconstructing, but a new basis
        solver.set_model(model)
        model.construct()
        solver.run()
        model.reset()
        model.construct()
        with pytest.raises(PreconditionError):
            solver.get_amplitude(0, [0, 0])
        assert solver.state is SolverState.READY

    def test_set_model_with_new_basis_size(self):
        solver = DiagonalizationSolver()
        solver.set_model(ring_model(3))
        solver.run()
        assert len(solver.get_eigen_values()) == 3

        solver.set_model(ring_model(5))
        assert solver.state is SolverState.READY
        with pytest.raises(PreconditionError):
            solver.get_eigen_values()
        solver.run()
        assert len(solver.get_eigen_values()) == 5

    def test_verbose(self, capsys):
        solver = DiagonalizationSolver(DiagonalizationConfig(verbose=True))
        solver.set_model(ring_model(3))
        solver.run()
        assert "basis size 3" in capsys.readouterr().out


class TestSelfConsistency:
    """Test the self-consistency loop."""

    def test_single_solve_without_callback(self):
        evaluations = []
        model = Model()
        model.add(lambda to, frm: evaluations.append(1) or 1.0, [0], [0])
        model.construct()

        solver = DiagonalizationSolver(DiagonalizationConfig(max_iterations=10))
        solver.set_model(model)
        solver.run()
        assert solver.num_iterations == 1
        assert len(evaluations) == 1

    def test_never_converging_callback_hits_ceiling(self):
        solves = []
        model = Model()
        model.add(lambda to, frm: solves.append(1) or 1.0, [0], [0])
        model.construct()

        calls = []
        solver = DiagonalizationSolver()
        solver.set_model(model)
        solver.set_max_iterations(7)
        solver.set_sc_callback(lambda s: calls.append(1) or False)
        solver.run()

        assert len(solves) == 7
        assert len(calls) == 7
        assert solver.num_iterations == 7
        assert not solver.converged

    def test_callback_stops_loop(self):
        calls = []

        def callback(solver):
            calls.append(solver.get_eigen_values()[0])
            return len(calls) == 3

        solver = DiagonalizationSolver(DiagonalizationConfig(max_iterations=10))
        solver.set_model(ring_model(4))
        solver.set_sc_callback(callback)
        solver.run()

        assert solver.num_iterations == 3
        assert solver.converged

    def test_amplitudes_track_previous_solution(self):
        """Callback amplitudes are re-evaluated after each callback."""
        params = {"eps": 0.0}

        def update(solver):
            params["eps"] += 1.0
            return False

        model = Model()
        model.add(lambda to, frm: params["eps"], [0], [0])
        model.add(-0.5, [0], [1], hermitian_conjugate=True)
        model.construct()

        solver = DiagonalizationSolver(DiagonalizationConfig(max_iterations=3))
        solver.set_model(model)
        solver.set_sc_callback(update)
        solver.run()

        # Solves with eps = 0, 1, 2; the callback has moved eps to 3
        assert solver.get_hamiltonian()[0, 0] == 2.0
        assert params["eps"] == 3.0

    def test_mean_field_converges(self):
        """Two-site Hubbard dimer at half filling in the Hartree approximation."""
        U = 1.0
        t = 1.0
        occupation = {(x, s): 0.5 + (0.1 if (x + s) % 2 == 0 else -0.1)
                      for x in range(2) for s in range(2)}

        def hartree(to_index, from_index):
            x, s = to_index
            return U * occupation[(x, 1 - s)]

        model = Model()
        for x in range(2):
            for s in range(2):
                model.add(hartree, [x, s], [x, s])
            model.add(-t, [x, 0], [(x + 1) % 2, 0])
            model.add(-t, [x, 1], [(x + 1) % 2, 1])
        model.construct()

        def update(solver):
            filled = 2
            new = {}
            for (x, s) in occupation:
                new[(x, s)] = sum(
                    abs(solver.get_amplitude(n, [x, s])) ** 2 for n in range(filled)
                )
            change = max(abs(new[k] - occupation[k]) for k in occupation)
            occupation.update(new)
            return change < 1e-10

        solver = DiagonalizationSolver(DiagonalizationConfig(max_iterations=200))
        solver.set_model(model)
        solver.set_sc_callback(update)
        solver.run()

        assert solver.converged
        assert sum(occupation.values()) == pytest.approx(2.0)

    def test_progress_bar(self):
        solver = DiagonalizationSolver(
            DiagonalizationConfig(max_iterations=2, progress=True)
        )
        solver.set_model(ring_model(3))
        solver.set_sc_callback(lambda s: False)
        solver.run()
        assert solver.num_iterations == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
