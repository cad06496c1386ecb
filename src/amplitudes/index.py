"""
Physical indices.

An Index is an ordered sequence of integers such as ``[x, y, spin]`` that
identifies a single-particle basis state. Concrete components are
non-negative; negative values are reserved specifiers that may only appear
in query patterns.

Indices compare lexicographically, and a prefix orders before every index
that extends it::

    Index(0) < Index(0, 0) < Index(0, 1) < Index(1)

This is the order in which the AmplitudeTree is traversed and therefore the
order of the sealed basis.
"""

import operator
import re
from typing import Iterable, Union

try:
    from .errors import PreconditionError
except ImportError:
    from amplitudes.errors import PreconditionError


# Wildcard specifier: matches any value at its position in a pattern
IDX_ALL = -1

_WILDCARD_TOKENS = {"*": IDX_ALL}
_INDEX_PATTERN = re.compile(r"^\s*[\[\{]\s*(.*?)\s*[\]\}]\s*$")


class Index(tuple):
    """
    Immutable, hashable physical index.

    Accepts either the components as separate arguments or a single
    iterable of components::

        Index(1, 0, 1)
        Index([1, 0, 1])

    Components must be integers (numpy integers are accepted).
    """

    def __new__(cls, *components):
        if len(components) == 1 and not _is_integer(components[0]):
            components = tuple(components[0])
        try:
            values = tuple(operator.index(c) for c in components)
        except TypeError:
            raise TypeError(
                f"Index components must be integers, got {components!r}"
            ) from None
        return super().__new__(cls, values)

    def is_concrete(self) -> bool:
        """True if no component is a reserved (negative) specifier."""
        return all(c >= 0 for c in self)

    def has_wildcard(self) -> bool:
        return any(c == IDX_ALL for c in self)

    def matches(self, pattern: Iterable[int]) -> bool:
        """
        Check whether this index is matched by a pattern.

        The pattern must have the same length. Each component must either
        equal the corresponding component or be IDX_ALL.
        """
        pattern = as_index(pattern)
        if len(pattern) != len(self):
            return False
        return all(p == IDX_ALL or p == c for p, c in zip(pattern, self))

    def concatenate(self, *components) -> "Index":
        """Return a new Index with the components appended."""
        return Index(tuple(self) + tuple(Index(*components)))

    def to_string(self) -> str:
        parts = ["*" if c == IDX_ALL else str(c) for c in self]
        return "[" + ", ".join(parts) + "]"

    @classmethod
    def from_string(cls, string: str) -> "Index":
        """
        Parse an index written as ``[0, 1, 2]``.

        Curly braces are accepted as well and ``*`` is read as IDX_ALL.
        """
        match = _INDEX_PATTERN.match(string)
        if match is None:
            raise ValueError(f"Unable to parse index from '{string}'")

        body = match.group(1)
        if not body:
            return cls()

        components = []
        for token in body.split(","):
            token = token.strip()
            if token in _WILDCARD_TOKENS:
                components.append(_WILDCARD_TOKENS[token])
            else:
                try:
                    components.append(int(token))
                except ValueError:
                    raise ValueError(
                        f"Invalid index component '{token}' in '{string}'"
                    ) from None
        return cls(components)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"Index({list(self)})"


IndexLike = Union[Index, Iterable[int], int]


def _is_integer(value) -> bool:
    try:
        operator.index(value)
    except TypeError:
        return False
    return True


def as_index(value: IndexLike) -> Index:
    """Coerce lists, tuples and single integers to an Index."""
    if isinstance(value, Index):
        return value
    return Index(value)


def require_concrete(value: IndexLike, name: str = "index") -> Index:
    """
    Coerce to an Index and check that it can address a basis state.

    Raises:
        PreconditionError: if the index is empty or holds a specifier
    """
    index = as_index(value)
    if len(index) == 0:
        raise PreconditionError(f"Empty {name} is not a valid physical index")
    if not index.is_concrete():
        raise PreconditionError(
            f"{name} {index} contains wildcards or negative components, "
            f"but a concrete index is required"
        )
    return index
