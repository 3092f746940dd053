from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from rateshift.exceptions import InvalidArgumentError, TreeStructureError
from rateshift.node import Node
from rateshift.parser.newick_parser import parse_newick

logger = logging.getLogger(__name__)


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class PhyloTree:
    """
    Immutable rooted tree with integer node ids and absolute branch times.

    Node ids follow the usual phylo convention: tips are numbered 1..N in
    left-to-right order, the root is N+1 and the remaining internal nodes
    follow in pre-order. Arrays indexed by node id have length ``n_nodes + 1``
    (slot 0 is unused) so that a node id indexes them directly.

    Attributes:
        tip_labels: Tip names, position i holds the name of tip i+1.
        edge: (E, 2) array of (parent, child) node ids. Trees built from Newick
            list edges in pre-order of the child; ``from_edges`` keeps the
            order it is given.
        edge_length: (E,) branch lengths.
        begin: (E,) absolute time at the rootward end of each edge (root = 0).
        end: (E,) absolute time at the tipward end of each edge.
        node_times: Absolute time of every node, indexed by node id.
        downseq: Node ids in pre-order.
        lastvisit: For each node id, the position in ``downseq`` of the last
            node of its subtree.
        node_labels: Internal node names, position i holds node N+1+i.
    """

    tip_labels: Tuple[str, ...]
    edge: np.ndarray
    edge_length: np.ndarray
    begin: np.ndarray
    end: np.ndarray
    node_times: np.ndarray
    downseq: np.ndarray
    lastvisit: np.ndarray
    node_labels: Tuple[str, ...]
    _position: np.ndarray = field(repr=False)
    _edge_of_child: np.ndarray = field(repr=False)
    _parent: np.ndarray = field(repr=False)

    # ------------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------------
    @classmethod
    def from_edges(
        cls,
        tip_labels: Sequence[str],
        edge: np.ndarray,
        edge_length: Sequence[float],
        node_labels: Optional[Sequence[str]] = None,
        finite: bool = True,
    ) -> "PhyloTree":
        """
        Build a tree from an edge list and derive times and traversal order.

        ``finite=False`` admits infinite edge lengths, which evidence trees
        carry where a Bayes factor is unbounded.

        Raises:
            TreeStructureError: If the edge list does not describe a rooted
                tree numbered with tips 1..N and root N+1.
        """
        tip_labels = tuple(str(label) for label in tip_labels)
        n_tips = len(tip_labels)
        if n_tips < 2:
            raise TreeStructureError("A tree needs at least two tips")
        if len(set(tip_labels)) != n_tips:
            raise TreeStructureError("Tip labels must be unique")
        if any(not label for label in tip_labels):
            raise TreeStructureError("Every tip must be labelled")

        edge = np.asarray(edge, dtype=np.int64).reshape(-1, 2).copy()
        lengths = np.asarray(edge_length, dtype=float).copy()
        n_edges = edge.shape[0]
        if lengths.shape != (n_edges,):
            raise TreeStructureError(
                f"Expected {n_edges} edge lengths, got {lengths.shape[0]}"
            )
        if n_edges < 2:
            raise TreeStructureError("A tree needs at least two edges")
        if np.any(np.isnan(lengths)) or np.any(lengths < 0):
            raise TreeStructureError("Edge lengths must be non-negative numbers")
        if finite and not np.all(np.isfinite(lengths)):
            raise TreeStructureError("Edge lengths must be finite")

        n_nodes = n_edges + 1
        root = n_tips + 1
        if edge.min() < 1 or edge.max() > n_nodes:
            raise TreeStructureError(f"Node ids must lie in 1..{n_nodes}")

        parent = np.zeros(n_nodes + 1, dtype=np.int64)
        edge_of_child = np.full(n_nodes + 1, -1, dtype=np.int64)
        children: List[List[int]] = [[] for _ in range(n_nodes + 1)]
        for index, (p, c) in enumerate(edge):
            if edge_of_child[c] != -1:
                raise TreeStructureError(f"Node {c} has more than one parent")
            edge_of_child[c] = index
            parent[c] = p
            children[p].append(int(c))

        if edge_of_child[root] != -1:
            raise TreeStructureError(f"Root node {root} must not have a parent")
        for node in range(1, n_nodes + 1):
            is_tip = node <= n_tips
            if is_tip and children[node]:
                raise TreeStructureError(f"Tip {node} cannot have children")
            if not is_tip and not children[node]:
                raise TreeStructureError(f"Internal node {node} has no children")

        downseq = np.empty(n_nodes, dtype=np.int64)
        position = np.full(n_nodes + 1, -1, dtype=np.int64)
        node_times = np.zeros(n_nodes + 1, dtype=float)
        stack = [root]
        visited = 0
        while stack:
            node = stack.pop()
            downseq[visited] = node
            position[node] = visited
            visited += 1
            for child in reversed(children[node]):
                node_times[child] = node_times[node] + lengths[edge_of_child[child]]
                stack.append(child)
        if visited != n_nodes:
            raise TreeStructureError("Edge list is not connected to the root")

        subtree_size = np.ones(n_nodes + 1, dtype=np.int64)
        for node in downseq[::-1]:
            if node != root:
                subtree_size[parent[node]] += subtree_size[node]
        lastvisit = np.zeros(n_nodes + 1, dtype=np.int64)
        lastvisit[downseq] = position[downseq] + subtree_size[downseq] - 1

        n_internal = n_nodes - n_tips
        if node_labels is None:
            node_labels = ("",) * n_internal
        node_labels = tuple(str(label) for label in node_labels)
        if len(node_labels) != n_internal:
            raise TreeStructureError(
                f"Expected {n_internal} internal node labels, got {len(node_labels)}"
            )

        begin = node_times[edge[:, 0]]
        end = begin + lengths
        logger.debug("Built tree with %d tips and %d edges", n_tips, n_edges)
        return cls(
            tip_labels=tip_labels,
            edge=_frozen(edge),
            edge_length=_frozen(lengths),
            begin=_frozen(begin),
            end=_frozen(end),
            node_times=_frozen(node_times),
            downseq=_frozen(downseq),
            lastvisit=_frozen(lastvisit),
            node_labels=node_labels,
            _position=_frozen(position),
            _edge_of_child=_frozen(edge_of_child),
            _parent=_frozen(parent),
        )

    @classmethod
    def from_node(cls, root: Node) -> "PhyloTree":
        """
        Number a parsed Node tree and freeze it.

        The root's own branch length, if any, is ignored.

        Raises:
            TreeStructureError: If a non-root branch has no length.
        """
        leaves = root.get_leaves()
        ids: Dict[int, int] = {id(leaf): i + 1 for i, leaf in enumerate(leaves)}
        next_internal = len(leaves) + 1
        node_labels: List[str] = []
        edges: List[Tuple[int, int]] = []
        lengths: List[float] = []

        for node in root.traverse():
            if node.children:
                ids[id(node)] = next_internal
                next_internal += 1
                node_labels.append(node.name or "")
            if node is root:
                continue
            if node.length is None:
                raise TreeStructureError(
                    f"Branch leading to '{node.name or ids[id(node)]}' has no length"
                )
            edges.append((ids[id(node.parent)], ids[id(node)]))
            lengths.append(float(node.length))

        return cls.from_edges(
            tip_labels=[leaf.name for leaf in leaves],
            edge=np.array(edges, dtype=np.int64),
            edge_length=lengths,
            node_labels=node_labels,
        )

    @classmethod
    def from_newick(cls, newick: str) -> "PhyloTree":
        parsed = parse_newick(newick)
        if isinstance(parsed, list):
            raise TreeStructureError(
                f"Expected a single tree, found {len(parsed)} in Newick string"
            )
        return cls.from_node(parsed)

    def with_edge_lengths(self, values: Sequence[float]) -> "PhyloTree":
        """Same topology and labels, with every edge length replaced."""
        return PhyloTree.from_edges(
            self.tip_labels,
            self.edge,
            values,
            node_labels=self.node_labels,
            finite=False,
        )

    # ------------------------------------------------------------------------
    # Sizes and lookups
    # ------------------------------------------------------------------------
    @property
    def n_tips(self) -> int:
        return len(self.tip_labels)

    @property
    def n_nodes(self) -> int:
        return self.edge.shape[0] + 1

    @property
    def n_internal(self) -> int:
        return self.n_nodes - self.n_tips

    @property
    def n_edges(self) -> int:
        return self.edge.shape[0]

    @property
    def root(self) -> int:
        return self.n_tips + 1

    @property
    def max_time(self) -> float:
        """Time of the tipmost tip (the present for an ultrametric tree)."""
        return float(self.node_times[1 : self.n_tips + 1].max())

    @property
    def tree_length(self) -> float:
        return float(self.edge_length.sum())

    @property
    def tip_times(self) -> np.ndarray:
        return self.node_times[1 : self.n_tips + 1]

    def check_node(self, node: int) -> int:
        if isinstance(node, bool) or int(node) != node or not 1 <= node <= self.n_nodes:
            raise InvalidArgumentError(
                f"Node {node!r} is not a node id of this tree (1..{self.n_nodes})"
            )
        return int(node)

    def is_tip(self, node: int) -> bool:
        return self.check_node(node) <= self.n_tips

    def edge_index(self, node: int) -> int:
        """Index of the edge subtending ``node``."""
        node = self.check_node(node)
        if node == self.root:
            raise InvalidArgumentError("The root has no subtending edge")
        return int(self._edge_of_child[node])

    def edge_indices(self, nodes: np.ndarray) -> np.ndarray:
        """Vectorised edge_index; -1 for the root."""
        return self._edge_of_child[nodes]

    def parent(self, node: int) -> int:
        node = self.check_node(node)
        if node == self.root:
            raise InvalidArgumentError("The root has no parent")
        return int(self._parent[node])

    def position(self, node: int) -> int:
        """Position of ``node`` in ``downseq``."""
        return int(self._position[self.check_node(node)])

    def descendants(self, node: int) -> np.ndarray:
        """``node`` and all nodes below it, in pre-order."""
        start = self.position(node)
        return self.downseq[start : self.lastvisit[node] + 1]

    def tip_label(self, node: int) -> str:
        if not self.is_tip(node):
            raise InvalidArgumentError(f"Node {node} is not a tip")
        return self.tip_labels[node - 1]

    # ------------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------------
    def to_node(self) -> Node:
        nodes: Dict[int, Node] = {}
        for node_id in self.downseq:
            node_id = int(node_id)
            if node_id <= self.n_tips:
                name = self.tip_labels[node_id - 1]
            else:
                name = self.node_labels[node_id - self.n_tips - 1]
            node = Node(name=name)
            nodes[node_id] = node
            if node_id != self.root:
                node.length = float(self.edge_length[self._edge_of_child[node_id]])
                nodes[int(self._parent[node_id])].append_child(node)
        return nodes[self.root]

    def to_newick(self) -> str:
        return self.to_node().to_newick()
