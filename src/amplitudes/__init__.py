"""Physical indices, hopping amplitudes and the sealed basis."""

from .errors import (
    TBDiagError,
    PreconditionError,
    SealedError,
    NotSealedError,
    IndexNotFoundError,
    EigensolverError,
    NonHermitianError,
)
from .index import IDX_ALL, Index, as_index
from .hopping_amplitude import HoppingAmplitude
from .amplitude_tree import AmplitudeTree
from .amplitude_set import HoppingAmplitudeSet
from .model import Model

__all__ = [
    "IDX_ALL",
    "Index",
    "as_index",
    "HoppingAmplitude",
    "AmplitudeTree",
    "HoppingAmplitudeSet",
    "Model",
    "TBDiagError",
    "PreconditionError",
    "SealedError",
    "NotSealedError",
    "IndexNotFoundError",
    "EigensolverError",
    "NonHermitianError",
]
