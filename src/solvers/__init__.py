"""Eigensolvers and the diagonalization driver."""

from .eigensolver import dense_eigh, get_eigensolver, is_hermitian, EIGENSOLVERS
from .diagonalization import (
    DiagonalizationSolver,
    DiagonalizationConfig,
    SolverState,
)

__all__ = [
    "DiagonalizationSolver",
    "DiagonalizationConfig",
    "SolverState",
    "dense_eigh",
    "get_eigensolver",
    "is_hermitian",
    "EIGENSOLVERS",
]
