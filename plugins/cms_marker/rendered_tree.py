"""
The rendered document as a flat arena of nodes with parent back-references.

Lowest-common-ancestor computation works on ancestor chains of arena indices
and never touches parser objects; `from_soup` is the only place BeautifulSoup
nodes are read, and `set_attribute` the only place they are written.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

ROOT = 0


@dataclass
class RenderedNode:
    index: int
    tag: str
    parent: Optional[int]
    attrs: Dict[str, str] = field(default_factory=dict)
    children: List[int] = field(default_factory=list)


def lowest_common_ancestor(chains: Sequence[Sequence[int]]) -> Optional[int]:
    """Last node of the longest common prefix of root-to-node chains."""
    if not chains or any(not chain for chain in chains):
        return None
    lca = None
    for depth in range(min(len(chain) for chain in chains)):
        node = chains[0][depth]
        if any(chain[depth] != node for chain in chains):
            break
        lca = node
    return lca


class RenderedTree:
    def __init__(self):
        self.nodes: List[RenderedNode] = []
        self._elements: List[Tag] = []

    @classmethod
    def from_soup(cls, soup: BeautifulSoup) -> "RenderedTree":
        """Arena in document order."""
        tree = cls()
        stack: List[Tuple[Tag, Optional[int]]] = [(soup, None)]
        while stack:
            element, parent = stack.pop()
            index = tree._add(element, parent)
            children = [child for child in element.children if isinstance(child, Tag)]
            stack.extend((child, index) for child in reversed(children))
        return tree

    def _add(self, element: Tag, parent: Optional[int]) -> int:
        index = len(self.nodes)
        attrs = {
            k: " ".join(v) if isinstance(v, list) else str(v) for k, v in element.attrs.items()
        }
        self.nodes.append(RenderedNode(index, element.name, parent, attrs))
        self._elements.append(element)
        if parent is not None:
            self.nodes[parent].children.append(index)
        return index

    def parent(self, index: int) -> Optional[int]:
        return self.nodes[index].parent

    def ancestor_chain(self, index: int) -> List[int]:
        """Indices from the document root down to `index`, inclusive."""
        chain = []
        current: Optional[int] = index
        while current is not None:
            chain.append(current)
            current = self.nodes[current].parent
        chain.reverse()
        return chain

    def set_attribute(self, index: int, name: str, value: str) -> None:
        self.nodes[index].attrs[name] = value
        self._elements[index][name] = value

    def component_root(self, indices: Sequence[int]) -> Optional[int]:
        """
        The node wrapping all of `indices`.

        A lone element is never its own wrapper: when the common ancestor is
        the element itself the parent is used instead.
        """
        if not indices:
            return None
        lca = lowest_common_ancestor([self.ancestor_chain(i) for i in indices])
        if lca is not None and len(indices) == 1 and lca == indices[0]:
            lca = self.parent(lca)
        return lca
