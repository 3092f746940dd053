from __future__ import annotations

from typing import Any, Dict, List, Optional

try:
    from typing import Self
except ImportError:
    from typing_extensions import Self


class Node:
    """
    Mutable tree node produced by the Newick parser.

    Nodes are pointer-based (children plus a parent back-reference). Analysis
    code does not work on Nodes directly; they are frozen into a PhyloTree
    with integer node ids first.
    """

    __slots__ = ("children", "parent", "name", "length", "values")

    children: List[Self]
    parent: Optional[Self]
    name: str
    length: Optional[float]
    values: Dict[str, Any]

    def __init__(
        self,
        children: Optional[List[Self]] = None,
        name: str = "",
        length: Optional[float] = None,
        values: Optional[Dict[str, Any]] = None,
    ):
        # Avoid mutable default arguments; create fresh containers
        self.children = list(children) if children is not None else []
        for child in self.children:
            child.parent = self
        self.parent = None
        self.name = name
        self.length = length
        self.values = dict(values) if values is not None else {}

    def __repr__(self) -> str:
        return f"Node('{self.name}')"

    def append_child(self, node: Self) -> None:
        node.parent = self
        self.children.append(node)

    def traverse(self) -> List[Self]:
        """
        Return a list of all nodes in the subtree rooted at this node (Pre-order).
        Uses an iterative stack so deep caterpillar trees do not hit the recursion limit.
        """
        nodes: List[Self] = []
        stack: List[Self] = [self]

        while stack:
            current = stack.pop()
            nodes.append(current)
            # Add children in reverse to maintain left-to-right visit order (pre-order)
            for child in reversed(current.children):
                stack.append(child)

        return nodes

    def get_leaves(self) -> List[Self]:
        """Return all leaf nodes in the subtree, left to right."""
        return [node for node in self.traverse() if not node.children]

    def to_newick(self, lengths: bool = True) -> str:
        return self._to_newick(lengths=lengths) + ";"

    def _to_newick(self, lengths: bool = True) -> str:
        meta = ""
        if self.values:
            meta = "[" + ",".join(f"{k}={v}" for k, v in self.values.items()) + "]"

        label = self.name or ""
        if self.children:
            label = (
                "(" + ",".join(ch._to_newick(lengths) for ch in self.children) + ")"
            ) + label
        if lengths and self.length is not None:
            return f"{label}{meta}:{float(self.length)!r}"
        return f"{label}{meta}"
