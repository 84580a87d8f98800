"""
Conflict Module.

Resolves overlapping accepted hypotheses:
- ConflictGraph: undirected graph with a greedy ON/OFF partition
- build_conflict_graph: edges between hypotheses explaining the same pixels
- select_hypotheses: fitness scoring + partition
"""

from .graph import ConflictGraph, GraphNode, NodeState
from .selection import build_conflict_graph, select_hypotheses

__all__ = [
    "ConflictGraph",
    "GraphNode",
    "NodeState",
    "build_conflict_graph",
    "select_hypotheses",
]
