"""
tbdiag: Tight-Binding Diagonalization

Builds single-particle tight-binding Hamiltonians from hopping amplitudes
addressed by physical indices (site, orbital, spin, ...), compiles them into
a reproducible basis and solves them by full diagonalization, optionally
inside a self-consistency loop.

Modules:
    - amplitudes: Index, HoppingAmplitude, AmplitudeTree, HoppingAmplitudeSet, Model
    - solvers: Dense eigensolvers and the DiagonalizationSolver
"""

__version__ = "0.1.0"

from .amplitudes import (
    IDX_ALL,
    Index,
    HoppingAmplitude,
    HoppingAmplitudeSet,
    Model,
)
from .solvers import DiagonalizationSolver, DiagonalizationConfig

__all__ = [
    "IDX_ALL",
    "Index",
    "HoppingAmplitude",
    "HoppingAmplitudeSet",
    "Model",
    "DiagonalizationSolver",
    "DiagonalizationConfig",
    "__version__",
]
