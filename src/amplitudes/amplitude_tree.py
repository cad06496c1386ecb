"""
Tree storage for hopping amplitudes.

The tree is a trie over the components of the amplitudes' ``to_index``.
Each node owns its children (keyed by the next index component) and the
list of amplitudes whose ``to_index`` ends at that node. Indices of
different lengths may be mixed, in which case a node can hold amplitudes
and children at the same time.

Traversal is always depth-first with children visited in ascending key
order and a node's own amplitudes before its children, which reproduces
the lexicographic order of Index.
"""

from typing import Dict, Iterator, List, Optional, Tuple

try:
    from .errors import IndexNotFoundError, PreconditionError
    from .hopping_amplitude import HoppingAmplitude
    from .index import IDX_ALL, Index, IndexLike, as_index, require_concrete
except ImportError:
    from amplitudes.errors import IndexNotFoundError, PreconditionError
    from amplitudes.hopping_amplitude import HoppingAmplitude
    from amplitudes.index import IDX_ALL, Index, IndexLike, as_index, require_concrete


class AmplitudeTree:
    """
    Node of the amplitude trie. The root node represents the whole tree.

    Attributes:
        children: Child nodes keyed by index component
        amplitudes: Amplitudes whose to_index terminates at this node
        basis_index: Basis position assigned when the owning set is sealed,
            -1 otherwise
    """

    def __init__(self):
        self.children: Dict[int, "AmplitudeTree"] = {}
        self.amplitudes: List[HoppingAmplitude] = []
        self.basis_index: int = -1

    def add(self, amplitude: HoppingAmplitude):
        """
        Store an amplitude at the node addressed by its to_index.

        Missing nodes along the path are created. No deduplication is
        done; identical amplitudes are all kept and add up when the
        Hamiltonian is assembled.
        """
        index = amplitude.to_index
        if len(index) == 0:
            raise PreconditionError("Cannot add an amplitude with an empty to_index")

        node = self
        for component in index:
            child = node.children.get(component)
            if child is None:
                child = AmplitudeTree()
                node.children[component] = child
            node = child
        node.amplitudes.append(amplitude)

    def _get_node(self, index: Index) -> Optional["AmplitudeTree"]:
        node = self
        for component in index:
            node = node.children.get(component)
            if node is None:
                return None
        return node

    def get_amplitudes(self, index: IndexLike) -> List[HoppingAmplitude]:
        """Amplitudes stored at exactly this index; empty if absent."""
        node = self._get_node(as_index(index))
        if node is None:
            return []
        return list(node.amplitudes)

    def get_index_list(self, pattern: IndexLike) -> List[Index]:
        """
        Concrete indices matching a pattern.

        IDX_ALL components are substituted by every child present at that
        level, in ascending order. Only nodes at the depth of the pattern
        that hold amplitudes are returned.

        Args:
            pattern: Index that may contain IDX_ALL

        Returns:
            Matching indices in ascending order
        """
        pattern = as_index(pattern)
        for component in pattern:
            if component < 0 and component != IDX_ALL:
                raise ValueError(
                    f"Unsupported index specifier {component} in pattern {pattern}"
                )

        result: List[Index] = []
        self._collect(pattern, 0, (), result)
        return result

    def _collect(self, pattern: Index, depth: int, prefix: Tuple[int, ...], result: List[Index]):
        if depth == len(pattern):
            if self.amplitudes:
                result.append(Index(prefix))
            return

        component = pattern[depth]
        if component == IDX_ALL:
            for key in sorted(self.children):
                self.children[key]._collect(pattern, depth + 1, prefix + (key,), result)
        else:
            child = self.children.get(component)
            if child is not None:
                child._collect(pattern, depth + 1, prefix + (component,), result)

    def _walk(self, prefix: Tuple[int, ...]) -> Iterator[Tuple[Index, "AmplitudeTree"]]:
        if self.amplitudes:
            yield Index(prefix), self
        for key in sorted(self.children):
            yield from self.children[key]._walk(prefix + (key,))

    def iterate_nodes(self) -> Iterator[Tuple[Index, Tuple[HoppingAmplitude, ...]]]:
        """
        Lazily enumerate (to_index, amplitudes) pairs in index order.

        Every call returns a fresh generator, so iteration can be restarted.
        """
        for index, node in self._walk(()):
            yield index, tuple(node.amplitudes)

    __iter__ = iterate_nodes

    def iterate_amplitudes(self) -> Iterator[HoppingAmplitude]:
        """All stored amplitudes, grouped by to_index in index order."""
        for _, node in self._walk(()):
            yield from node.amplitudes

    def get_num_amplitudes(self) -> int:
        return sum(len(node.amplitudes) for _, node in self._walk(()))

    def get_num_indices(self) -> int:
        """Number of distinct to_index values stored in the tree."""
        return sum(1 for _ in self._walk(()))

    def assign_basis_indices(self) -> List[Index]:
        """
        Number every node that holds amplitudes in traversal order.

        Returns:
            The indices in basis order, i.e. element n is the Index with
            basis position n
        """
        self.clear_basis_indices()
        indices = []
        for position, (index, node) in enumerate(self._walk(())):
            node.basis_index = position
            indices.append(index)
        return indices

    def clear_basis_indices(self):
        self.basis_index = -1
        for child in self.children.values():
            child.clear_basis_indices()

    def get_basis_index(self, index: IndexLike) -> int:
        """
        Basis position of a concrete index, found by walking the tree.

        Raises:
            IndexNotFoundError: if the index is not a numbered node
        """
        index = require_concrete(index)
        node = self._get_node(index)
        if node is None or node.basis_index < 0:
            raise IndexNotFoundError(index)
        return node.basis_index

    def __len__(self) -> int:
        return self.get_num_amplitudes()

    def __repr__(self) -> str:
        return (
            f"AmplitudeTree(indices={self.get_num_indices()}, "
            f"amplitudes={self.get_num_amplitudes()})"
        )
