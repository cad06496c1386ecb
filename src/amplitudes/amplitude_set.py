"""
HoppingAmplitudeSet: amplitude storage plus the sealed basis.

Amplitudes are accumulated in an AmplitudeTree while the set is unsealed.
Sealing numbers every distinct ``to_index`` in traversal order, which gives
a contiguous basis 0..N-1 that is identical on every run for the same
amplitudes. After sealing, the set answers index <-> position queries and
builds sparse matrices; it rejects new amplitudes until ``reset()``.
"""

import json
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from scipy.sparse import coo_matrix

try:
    from .amplitude_tree import AmplitudeTree
    from .errors import IndexNotFoundError, NotSealedError, PreconditionError, SealedError
    from .hopping_amplitude import AmplitudeCallback, HoppingAmplitude
    from .index import Index, IndexLike
except ImportError:
    from amplitudes.amplitude_tree import AmplitudeTree
    from amplitudes.errors import IndexNotFoundError, NotSealedError, PreconditionError, SealedError
    from amplitudes.hopping_amplitude import AmplitudeCallback, HoppingAmplitude
    from amplitudes.index import Index, IndexLike


class HoppingAmplitudeSet:
    """
    Container for the hopping amplitudes of a model.

    Amplitudes flagged with ``hermitian_conjugate=True`` are stored together
    with their Hermitian conjugate, so iteration and matrix construction see
    both directions without the caller adding them twice.

    Example:
    ```python
    amplitudes = HoppingAmplitudeSet()
    amplitudes.add(HoppingAmplitude(-1.0, [0], [1], hermitian_conjugate=True))
    amplitudes.seal()
    amplitudes.get_basis_size()          # 2
    amplitudes.get_basis_index([1])      # 1
    ```
    """

    def __init__(self):
        self._tree = AmplitudeTree()
        # Amplitudes as added, before Hermitian conjugate expansion
        self._declared: List[HoppingAmplitude] = []
        self._sealed = False
        self._basis: List[Index] = []
        self._revision = 0

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    @property
    def tree(self) -> AmplitudeTree:
        return self._tree

    @property
    def revision(self) -> int:
        """Counter bumped by every reset(); a basis is valid for one revision."""
        return self._revision

    def add(self, amplitude: HoppingAmplitude):
        """
        Add an amplitude (and its Hermitian conjugate if flagged).

        Raises:
            SealedError: if the set has been sealed
        """
        if self._sealed:
            raise SealedError(
                f"Cannot add {amplitude!r}: the amplitude set is sealed, "
                f"call reset() first"
            )
        if not isinstance(amplitude, HoppingAmplitude):
            raise TypeError(f"Expected HoppingAmplitude, got {type(amplitude).__name__}")

        for entry in amplitude.expand():
            self._tree.add(entry)
        self._declared.append(amplitude)

    def add_amplitudes(self, amplitudes):
        for amplitude in amplitudes:
            self.add(amplitude)

    def seal(self):
        """
        Compile the basis.

        Every distinct to_index gets a basis position in traversal order
        and every from_index is checked to belong to the basis. Nothing is
        committed if the check fails. Sealing an already sealed set again
        reproduces the same ordering.

        Raises:
            IndexNotFoundError: if some from_index is not a to_index of any
                amplitude
        """
        ordering = [index for index, _ in self._tree.iterate_nodes()]
        in_basis = set(ordering)
        for amplitude in self._tree.iterate_amplitudes():
            if amplitude.from_index not in in_basis:
                raise IndexNotFoundError(
                    amplitude.from_index,
                    f"from_index of {amplitude!r} is not part of the basis",
                )

        self._basis = self._tree.assign_basis_indices()
        self._sealed = True

    construct = seal

    def reset(self):
        """
        Unseal the set so that amplitudes can be added again.

        Basis positions obtained before the reset are invalid afterwards.
        """
        self._tree.clear_basis_indices()
        self._basis = []
        self._sealed = False
        self._revision += 1

    def _require_sealed(self, operation: str):
        if not self._sealed:
            raise NotSealedError(
                f"{operation} requires a sealed amplitude set, call seal() first"
            )

    def get_basis_size(self) -> int:
        self._require_sealed("get_basis_size()")
        return len(self._basis)

    def get_basis_index(self, index: IndexLike) -> int:
        """
        Basis position of a physical index.

        Raises:
            NotSealedError: if the set is not sealed
            PreconditionError: if the index is empty or not concrete
            IndexNotFoundError: if the index was never used as a to_index
        """
        self._require_sealed("get_basis_index()")
        return self._tree.get_basis_index(index)

    def get_physical_index(self, basis_index: int) -> Index:
        """Inverse of get_basis_index."""
        self._require_sealed("get_physical_index()")
        if not 0 <= basis_index < len(self._basis):
            raise PreconditionError(
                f"Basis index {basis_index} out of range [0, {len(self._basis)})"
            )
        return self._basis[basis_index]

    def get_basis(self) -> List[Index]:
        """All indices, element n being the Index at basis position n."""
        self._require_sealed("get_basis()")
        return list(self._basis)

    def get_index_list(self, pattern: IndexLike) -> List[Index]:
        return self._tree.get_index_list(pattern)

    def get_amplitudes(self, to_index: IndexLike) -> List[HoppingAmplitude]:
        return self._tree.get_amplitudes(to_index)

    def iterate_amplitudes(self) -> Iterator[HoppingAmplitude]:
        return self._tree.iterate_amplitudes()

    def __iter__(self) -> Iterator[HoppingAmplitude]:
        return self._tree.iterate_amplitudes()

    def get_num_amplitudes(self) -> int:
        return self._tree.get_num_amplitudes()

    def is_callback_dependent(self) -> bool:
        """True if any stored amplitude is evaluated through a callback."""
        return any(a.is_callback_dependent for a in self._tree.iterate_amplitudes())

    def get_matrix_elements(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Evaluate every amplitude once.

        Returns:
            (rows, cols, values): basis positions of to_index and
            from_index, and the evaluated amplitudes
        """
        self._require_sealed("get_matrix_elements()")

        rows, cols, values = [], [], []
        for index, amplitudes in self._tree.iterate_nodes():
            row = self._tree.get_basis_index(index)
            for amplitude in amplitudes:
                rows.append(row)
                cols.append(self._tree.get_basis_index(amplitude.from_index))
                values.append(amplitude.get_amplitude())

        return (
            np.array(rows, dtype=np.int64),
            np.array(cols, dtype=np.int64),
            np.array(values, dtype=np.complex128),
        )

    def construct_sparse_matrix(self, format: str = "coo"):
        """
        Build the Hamiltonian as a scipy sparse matrix.

        Callback amplitudes are evaluated on every call. In COO format
        duplicate entries are kept as separate triples; any conversion
        (``tocsr()``, ``toarray()``) sums them.

        Args:
            format: Any scipy sparse format name ("coo", "csr", "csc", ...)

        Returns:
            Sparse matrix of shape (N, N) and dtype complex128
        """
        rows, cols, values = self.get_matrix_elements()
        n = len(self._basis)
        matrix = coo_matrix((values, (rows, cols)), shape=(n, n), dtype=np.complex128)
        if format == "coo":
            return matrix
        return matrix.asformat(format)

    def serialize(self, mode: str = "json") -> str:
        """
        Serialize the amplitudes as they were added, in insertion order.

        Flagged amplitudes keep their ``hermitian_conjugate`` flag instead
        of being written out twice, so deserializing rebuilds the conjugate
        entries (including conjugated callbacks) exactly as ``add`` does.
        """
        if mode != "json":
            raise ValueError(f"Unknown serialization mode: {mode}")
        return json.dumps(
            {
                "id": "HoppingAmplitudeSet",
                "amplitudes": [
                    json.loads(a.serialize("json"))
                    for a in self._declared
                ],
            }
        )

    @classmethod
    def deserialize(
        cls,
        serialization: str,
        mode: str = "json",
        callbacks: Optional[Dict[Tuple[Index, Index], AmplitudeCallback]] = None,
        callback: Optional[AmplitudeCallback] = None,
    ) -> "HoppingAmplitudeSet":
        """
        Rebuild an unsealed set from ``serialize`` output.

        Args:
            serialization: Serialized string
            mode: Only "json" is supported
            callbacks: Callbacks keyed by the (to_index, from_index) the
                amplitude was added with, used for entries carrying the
                callback marker
            callback: Fallback callback for marker entries not in callbacks
        """
        if mode != "json":
            raise ValueError(f"Unknown serialization mode: {mode}")
        try:
            data = json.loads(serialization)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid HoppingAmplitudeSet serialization: {e}") from e
        if not isinstance(data, dict) or data.get("id") != "HoppingAmplitudeSet":
            raise ValueError("Serialization is not a HoppingAmplitudeSet")

        callbacks = callbacks or {}
        amplitude_set = cls()
        for entry in data.get("amplitudes", []):
            key = (Index(entry["to_index"]), Index(entry["from_index"]))
            amplitude_set.add(
                HoppingAmplitude.deserialize(
                    json.dumps(entry),
                    "json",
                    callback=callbacks.get(key, callback),
                )
            )
        return amplitude_set

    def __repr__(self) -> str:
        state = f"sealed, basis_size={len(self._basis)}" if self._sealed else "unsealed"
        return (
            f"HoppingAmplitudeSet({state}, "
            f"amplitudes={self._tree.get_num_amplitudes()})"
        )
