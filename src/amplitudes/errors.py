"""Exceptions raised by the amplitude containers and the solvers."""


class TBDiagError(Exception):
    """Base class for all tbdiag errors."""


class PreconditionError(TBDiagError, RuntimeError):
    """
    An operation was called in a state where it is not valid.

    Examples are basis queries before sealing, eigen-system queries before
    a solve, and concrete-index operations called with a wildcard pattern.
    These indicate programming errors and are never turned into defaults.
    """


class SealedError(PreconditionError):
    """Mutation of a HoppingAmplitudeSet after it has been sealed."""


class NotSealedError(PreconditionError):
    """Basis query on a HoppingAmplitudeSet that has not been sealed."""


class IndexNotFoundError(TBDiagError, KeyError):
    """A concrete Index is not part of the tree or the basis."""

    def __init__(self, index, message: str = "Index not found"):
        self.index = index
        super().__init__(f"{message}: {index}")

    def __str__(self) -> str:
        # KeyError quotes its argument
        return self.args[0]


class EigensolverError(TBDiagError, RuntimeError):
    """The eigensolver failed to diagonalize the Hamiltonian."""


class NonHermitianError(TBDiagError, ValueError):
    """The assembled Hamiltonian is not Hermitian within tolerance."""
