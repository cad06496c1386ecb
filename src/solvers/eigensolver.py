"""
Dense Hermitian eigensolvers.

All providers take a dense complex Hermitian matrix and return the full
spectrum:

    eigenvalues: (n,) real array in non-decreasing order
    eigenvectors: (n, n) complex array, column i belongs to eigenvalue i

Backends:
- scipy: scipy.linalg.eigh (LAPACK zheevr)
- numpy: numpy.linalg.eigh (LAPACK zheevd)
- torch: torch.linalg.eigh on CPU in double precision
"""

import numpy as np
import scipy.linalg
import torch
from typing import Callable, Dict, Tuple

try:
    from ..amplitudes.errors import EigensolverError
except ImportError:
    from amplitudes.errors import EigensolverError


Eigensolver = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray]]


def scipy_eigh(H: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Full diagonalization with scipy.linalg.eigh."""
    try:
        return scipy.linalg.eigh(H, check_finite=True)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise EigensolverError(f"scipy eigh failed: {e}") from e


def numpy_eigh(H: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Full diagonalization with numpy.linalg.eigh."""
    if not np.all(np.isfinite(H)):
        raise EigensolverError("numpy eigh failed: matrix contains non-finite values")
    try:
        return np.linalg.eigh(H)
    except np.linalg.LinAlgError as e:
        raise EigensolverError(f"numpy eigh failed: {e}") from e


def torch_eigh(H: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Full diagonalization with torch.linalg.eigh.

    The matrix is promoted to complex128 and symmetrized as
    0.5 * (H + H^†) before the decomposition.
    """
    H_t = torch.from_numpy(np.ascontiguousarray(H, dtype=np.complex128))
    if not torch.isfinite(torch.view_as_real(H_t)).all():
        raise EigensolverError("torch eigh failed: matrix contains non-finite values")

    H_t = 0.5 * (H_t + H_t.conj().T)

    try:
        eigenvalues, eigenvectors = torch.linalg.eigh(H_t)
    except RuntimeError as e:
        # torch raises torch.linalg.LinAlgError, a RuntimeError subclass
        raise EigensolverError(f"torch eigh failed: {e}") from e

    return eigenvalues.numpy(), eigenvectors.numpy()


EIGENSOLVERS: Dict[str, Eigensolver] = {
    "scipy": scipy_eigh,
    "numpy": numpy_eigh,
    "torch": torch_eigh,
}


def get_eigensolver(name: str) -> Eigensolver:
    try:
        return EIGENSOLVERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown eigensolver '{name}', expected one of {sorted(EIGENSOLVERS)}"
        ) from None


def sort_eigensystem(
    eigenvalues: np.ndarray,
    eigenvectors: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Order eigenpairs by ascending eigenvalue (stable)."""
    if eigenvalues.size > 1 and np.any(np.diff(eigenvalues) < 0):
        order = np.argsort(eigenvalues, kind="stable")
        eigenvalues = eigenvalues[order]
        eigenvectors = eigenvectors[:, order]
    return eigenvalues, eigenvectors


def dense_eigh(
    H: np.ndarray,
    backend: str = "scipy",
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Diagonalize a dense Hermitian matrix.

    Args:
        H: Hermitian matrix (n, n)
        backend: "scipy", "numpy" or "torch"

    Returns:
        eigenvalues: (n,) float64 array in ascending order
        eigenvectors: (n, n) complex128 array, column i is the eigenvector
            for eigenvalue i

    Raises:
        ValueError: for an unknown backend or a non-square matrix
        EigensolverError: if the decomposition fails
    """
    H = np.asarray(H)
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {H.shape}")

    solver = get_eigensolver(backend)

    if H.shape[0] == 0:
        return np.zeros(0), np.zeros((0, 0), dtype=np.complex128)

    eigenvalues, eigenvectors = solver(H)
    eigenvalues = np.asarray(eigenvalues, dtype=np.float64)
    eigenvectors = np.asarray(eigenvectors, dtype=np.complex128)

    return sort_eigensystem(eigenvalues, eigenvectors)


def is_hermitian(H: np.ndarray, tol: float = 1e-10) -> bool:
    """Check ``max |H - H^†| <= tol``."""
    H = np.asarray(H)
    if H.size == 0:
        return True
    return bool(np.max(np.abs(H - H.conj().T)) <= tol)
