"""
Hopping amplitudes.

A HoppingAmplitude represents one matrix element a_ij of a single-particle
Hamiltonian

    H = Σ_ij a_ij c_i^† c_j

where i is the ``to_index`` (created) and j is the ``from_index``
(annihilated). The value is either a fixed complex number or a callback
``f(to_index, from_index) -> complex`` that is evaluated every time the
Hamiltonian is assembled, which is what makes self-consistent calculations
possible.
"""

import json
import re
from typing import Callable, List, Optional, Union

try:
    from .index import Index, IndexLike, require_concrete
except ImportError:
    from amplitudes.index import Index, IndexLike, require_concrete


AmplitudeCallback = Callable[[Index, Index], complex]

CALLBACK_MARKER = "callback"

_DEBUG_PATTERN = re.compile(
    r"^\s*HoppingAmplitude\(\s*(\([^)]*\)|callback)\s*,\s*"
    r"(\[[^\]]*\])\s*,\s*(\[[^\]]*\])\s*\)(\s*\+\s*HC)?\s*$"
)


class HoppingAmplitude:
    """
    Single matrix element of a tight-binding Hamiltonian.

    Args:
        amplitude: Complex value, or callable ``(to, from) -> complex``
        to_index: Index of the created state (row of the matrix)
        from_index: Index of the annihilated state (column of the matrix)
        hermitian_conjugate: If True, containers also store the Hermitian
            conjugate (from_index, to_index, conj(amplitude)) so that it
            does not have to be added by hand
    """

    __slots__ = (
        "_amplitude",
        "_callback",
        "_to_index",
        "_from_index",
        "_hermitian_conjugate",
    )

    def __init__(
        self,
        amplitude: Union[complex, AmplitudeCallback],
        to_index: IndexLike,
        from_index: IndexLike,
        hermitian_conjugate: bool = False,
    ):
        if callable(amplitude):
            self._amplitude = 0j
            self._callback = amplitude
        else:
            self._amplitude = complex(amplitude)
            self._callback = None

        self._to_index = require_concrete(to_index, "to_index")
        self._from_index = require_concrete(from_index, "from_index")
        self._hermitian_conjugate = bool(hermitian_conjugate)

    @property
    def to_index(self) -> Index:
        return self._to_index

    @property
    def from_index(self) -> Index:
        return self._from_index

    @property
    def hermitian_conjugate(self) -> bool:
        """Whether the Hermitian conjugate is implied by this amplitude."""
        return self._hermitian_conjugate

    @property
    def is_callback_dependent(self) -> bool:
        return self._callback is not None

    @property
    def amplitude_callback(self) -> Optional[AmplitudeCallback]:
        return self._callback

    def get_amplitude(self) -> complex:
        """
        Evaluate the amplitude.

        Fixed amplitudes return their value, callback amplitudes call the
        callback with (to_index, from_index) on every invocation.
        """
        if self._callback is not None:
            return complex(self._callback(self._to_index, self._from_index))
        return self._amplitude

    def get_hermitian_conjugate(self) -> "HoppingAmplitude":
        """
        Return the amplitude (from_index, to_index, conj(a)).

        For callback amplitudes the returned amplitude wraps the original
        callback, so it keeps tracking updates made between solves.
        """
        if self._callback is not None:
            callback = self._callback

            def conjugate_callback(to_index: Index, from_index: Index) -> complex:
                return complex(callback(from_index, to_index)).conjugate()

            amplitude = conjugate_callback
        else:
            amplitude = self._amplitude.conjugate()

        return HoppingAmplitude(amplitude, self._from_index, self._to_index)

    def expand(self) -> List["HoppingAmplitude"]:
        """
        The amplitudes to store for this entry.

        Returns [self] or, when the Hermitian conjugate flag is set, the
        amplitude without the flag followed by its Hermitian conjugate.
        """
        if not self._hermitian_conjugate:
            return [self]
        plain = HoppingAmplitude(
            self._callback if self._callback is not None else self._amplitude,
            self._to_index,
            self._from_index,
        )
        return [plain, plain.get_hermitian_conjugate()]

    def is_diagonal(self) -> bool:
        return self._to_index == self._from_index

    def serialize(self, mode: str = "json") -> str:
        """
        Serialize to a string.

        Modes:
            json: ``{"id": "HoppingAmplitude", "amplitude": [re, im],
                  "to_index": [...], "from_index": [...],
                  "hermitian_conjugate": false}``
            debug: ``HoppingAmplitude((re, im), [...], [...])``, followed
                by `` + HC`` when the Hermitian conjugate flag is set

        Callback amplitudes write the marker ``"callback"`` in place of
        the value; the callback has to be supplied again on deserialize.
        """
        if mode == "json":
            data = {
                "id": "HoppingAmplitude",
                "amplitude": (
                    CALLBACK_MARKER
                    if self._callback is not None
                    else [self._amplitude.real, self._amplitude.imag]
                ),
                "to_index": list(self._to_index),
                "from_index": list(self._from_index),
                "hermitian_conjugate": self._hermitian_conjugate,
            }
            return json.dumps(data)
        elif mode == "debug":
            return repr(self)
        else:
            raise ValueError(f"Unknown serialization mode: {mode}")

    @classmethod
    def deserialize(
        cls,
        serialization: str,
        mode: str = "json",
        callback: Optional[AmplitudeCallback] = None,
    ) -> "HoppingAmplitude":
        """
        Reconstruct a HoppingAmplitude from ``serialize`` output.

        Args:
            serialization: Serialized string
            mode: "json" or "debug"
            callback: Callback to attach when the serialization carries
                the callback marker

        Raises:
            ValueError: if the string is malformed, or a callback entry is
                deserialized without a callback
        """
        if mode == "json":
            try:
                data = json.loads(serialization)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid HoppingAmplitude serialization: {e}") from e
            if not isinstance(data, dict) or data.get("id") != "HoppingAmplitude":
                raise ValueError(
                    f"Serialization is not a HoppingAmplitude: {serialization}"
                )
            try:
                raw_amplitude = data["amplitude"]
                to_index = Index(data["to_index"])
                from_index = Index(data["from_index"])
                hermitian_conjugate = data.get("hermitian_conjugate", False)
            except (KeyError, TypeError) as e:
                raise ValueError(f"Incomplete HoppingAmplitude serialization: {e}") from e

            if raw_amplitude == CALLBACK_MARKER:
                amplitude = cls._require_callback(callback, serialization)
            else:
                real, imag = raw_amplitude
                amplitude = complex(real, imag)
        elif mode == "debug":
            match = _DEBUG_PATTERN.match(serialization)
            if match is None:
                raise ValueError(
                    f"Invalid HoppingAmplitude serialization: {serialization}"
                )
            value, to_string, from_string, hc_suffix = match.groups()
            hermitian_conjugate = hc_suffix is not None
            to_index = Index.from_string(to_string)
            from_index = Index.from_string(from_string)
            if value == CALLBACK_MARKER:
                amplitude = cls._require_callback(callback, serialization)
            else:
                real, imag = (float(x) for x in value.strip("()").split(","))
                amplitude = complex(real, imag)
        else:
            raise ValueError(f"Unknown serialization mode: {mode}")

        if not isinstance(hermitian_conjugate, bool):
            raise ValueError(
                f"Invalid hermitian_conjugate flag: {hermitian_conjugate!r}"
            )
        return cls(amplitude, to_index, from_index, hermitian_conjugate)

    @staticmethod
    def _require_callback(callback, serialization: str) -> AmplitudeCallback:
        if callback is None:
            raise ValueError(
                "Serialized amplitude is callback dependent, but no callback "
                f"was supplied: {serialization}"
            )
        return callback

    def to_string(self) -> str:
        if self._callback is not None:
            value = CALLBACK_MARKER
        else:
            value = f"({self._amplitude.real!r}, {self._amplitude.imag!r})"
        return (
            f"HoppingAmplitude({value}, "
            f"{self._to_index.to_string()}, {self._from_index.to_string()})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, HoppingAmplitude):
            return NotImplemented
        return (
            self._to_index == other._to_index
            and self._from_index == other._from_index
            and self._callback is other._callback
            and self._amplitude == other._amplitude
            and self._hermitian_conjugate == other._hermitian_conjugate
        )

    def __hash__(self) -> int:
        return hash((self._to_index, self._from_index, self._amplitude))

    def __repr__(self) -> str:
        suffix = " + HC" if self._hermitian_conjugate else ""
        return self.to_string() + suffix
