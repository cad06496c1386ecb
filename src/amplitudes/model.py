"""Model container for tight-binding calculations."""

from typing import List, Union

try:
    from .amplitude_set import HoppingAmplitudeSet
    from .hopping_amplitude import AmplitudeCallback, HoppingAmplitude
    from .index import Index, IndexLike
except ImportError:
    from amplitudes.amplitude_set import HoppingAmplitudeSet
    from amplitudes.hopping_amplitude import AmplitudeCallback, HoppingAmplitude
    from amplitudes.index import Index, IndexLike


class Model:
    """
    Single-particle model defined by its hopping amplitudes.

    The model is built in two phases. While building, amplitudes are added
    with ``add`` or ``add_hopping_amplitude``. ``construct()`` then seals
    the underlying HoppingAmplitudeSet, after which the basis is fixed and
    the model can be handed to a solver.

    Example usage:
    ```python
    model = Model()
    for x in range(10):
        model.add(-1.0, [x], [(x + 1) % 10], hermitian_conjugate=True)
    model.construct()

    solver = DiagonalizationSolver()
    solver.set_model(model)
    solver.run()
    ```

    Args:
        verbose: Print the basis size when constructing
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._amplitude_set = HoppingAmplitudeSet()

    def add_hopping_amplitude(self, amplitude: HoppingAmplitude) -> "Model":
        self._amplitude_set.add(amplitude)
        return self

    def add(
        self,
        amplitude: Union[complex, AmplitudeCallback],
        to_index: IndexLike,
        from_index: IndexLike,
        hermitian_conjugate: bool = False,
    ) -> "Model":
        """
        Add the amplitude a c_to^† c_from.

        Args:
            amplitude: Value or callback ``(to, from) -> complex``
            to_index: Index of the created state
            from_index: Index of the annihilated state
            hermitian_conjugate: Also add the Hermitian conjugate

        Returns:
            The model, so that calls can be chained
        """
        return self.add_hopping_amplitude(
            HoppingAmplitude(amplitude, to_index, from_index, hermitian_conjugate)
        )

    def construct(self):
        """Seal the amplitude set and fix the basis."""
        if self.verbose:
            print("Constructing system")

        self._amplitude_set.construct()

        if self.verbose:
            print(f"\tBasis size: {self._amplitude_set.get_basis_size()}")

    def reset(self):
        """Return to the building phase; the basis must be constructed again."""
        self._amplitude_set.reset()

    @property
    def is_constructed(self) -> bool:
        return self._amplitude_set.is_sealed

    def get_hopping_amplitude_set(self) -> HoppingAmplitudeSet:
        return self._amplitude_set

    def get_basis_size(self) -> int:
        return self._amplitude_set.get_basis_size()

    def get_basis_index(self, index: IndexLike) -> int:
        return self._amplitude_set.get_basis_index(index)

    def get_physical_index(self, basis_index: int) -> Index:
        return self._amplitude_set.get_physical_index(basis_index)

    def get_index_list(self, pattern: IndexLike) -> List[Index]:
        return self._amplitude_set.get_index_list(pattern)

    def construct_sparse_matrix(self, format: str = "csr"):
        return self._amplitude_set.construct_sparse_matrix(format)

    def __repr__(self) -> str:
        return f"Model({self._amplitude_set!r})"
