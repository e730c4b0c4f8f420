"""
Knowledge Graph Services Module

This module provides services for the publication knowledge graph:
- Semantic connection analysis with the language model
- Heuristic connection scoring from publication metadata
- Graph payload construction for the force-directed view
"""

from .connection_analyzer import ConnectionAnalyzer, derive_connections, score_connection
from .graph_builder import GraphBuilder, build_graph

__all__ = [
    "ConnectionAnalyzer",
    "derive_connections",
    "score_connection",
    "GraphBuilder",
    "build_graph",
]
