"""
Conflict Graph.

Undirected graph over accepted hypotheses. Nodes live in an arena (a list)
and are addressed by their integer id; adjacency is a set of ids per node.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..models import Hypothesis


class NodeState(Enum):
    UNDEF = "undef"
    ON = "on"
    OFF = "off"


@dataclass
class GraphNode:
    """
    Conflict graph node.

    Attributes:
        id: Position of the node in the arena
        hypothesis: Wrapped hypothesis
        fitness: Selection score (higher = preferred)
        neighbors: Ids of adjacent nodes
        state: ON/OFF partition state
    """
    id: int
    hypothesis: Optional[Hypothesis] = None
    fitness: int = 0
    neighbors: set[int] = field(default_factory=set)
    state: NodeState = NodeState.UNDEF


class ConflictGraph:
    """Undirected graph without self-loops."""

    def __init__(self):
        self.nodes: list[GraphNode] = []

    def add_node(self, hypothesis: Optional[Hypothesis] = None) -> GraphNode:
        node = GraphNode(id=len(self.nodes), hypothesis=hypothesis)
        self.nodes.append(node)
        return node

    def __len__(self) -> int:
        return len(self.nodes)

    def insert_edge(self, id1: int, id2: int):
        if id1 == id2:
            return
        self.nodes[id1].neighbors.add(id2)
        self.nodes[id2].neighbors.add(id1)

    def delete_edge(self, id1: int, id2: int):
        self.nodes[id1].neighbors.discard(id2)
        self.nodes[id2].neighbors.discard(id1)

    def has_edge(self, id1: int, id2: int) -> bool:
        return id2 in self.nodes[id1].neighbors

    def edges(self) -> list[tuple[int, int]]:
        """All edges as (smaller id, larger id), sorted."""
        return sorted((node.id, other) for node in self.nodes for other in node.neighbors if node.id < other)

    def compute_maximal_on_off_partition(self) -> tuple[list[GraphNode], list[GraphNode]]:
        """
        Greedy maximal independent set favoring high fitness.

        Returns:
            (on_nodes, off_nodes): no two ON nodes are adjacent and every OFF
            node has an ON neighbor

        Algorithm:
            1. Reset every node to UNDEF
            2. Visit nodes by fitness descending (ties: smaller id first)
            3. An UNDEF node is switched ON and all its neighbors OFF
        """
        for node in self.nodes:
            node.state = NodeState.UNDEF

        on_nodes, off_nodes = [], []
        for node in sorted(self.nodes, key=lambda n: (-n.fitness, n.id)):
            if node.state is not NodeState.UNDEF:
                continue
            node.state = NodeState.ON
            on_nodes.append(node)
            for neighbor_id in sorted(node.neighbors):
                neighbor = self.nodes[neighbor_id]
                if neighbor.state is NodeState.UNDEF:
                    neighbor.state = NodeState.OFF
                    off_nodes.append(neighbor)
        return on_nodes, off_nodes
