"""
Graph Builder Service Module

Turns publications and their stored connections into the node/link
payload rendered by the force-directed graph.
"""

import logging

from app.models.publication_models import (
    GraphData,
    GraphLink,
    GraphNode,
    Publication,
    PublicationConnection,
)
from app.services.publications_service import PublicationsService

logger = logging.getLogger(__name__)

NODE_SIZE = 5


def build_graph(
    publications: list[Publication], connections: list[PublicationConnection]
) -> GraphData:
    """
    Build graph data, dropping links whose endpoints are not both present.
    """
    nodes = [
        GraphNode(
            id=pub.id,
            title=pub.title,
            year=pub.year,
            research_area=pub.research_area,
            val=NODE_SIZE,
        )
        for pub in publications
    ]
    node_ids = {node.id for node in nodes}

    links = [
        GraphLink(
            source=conn.source,
            target=conn.target,
            type=conn.type,
            strength=conn.strength or 1.0,
        )
        for conn in connections
        if conn.source in node_ids and conn.target in node_ids
    ]

    dropped = len(connections) - len(links)
    if dropped:
        logger.debug(f"[GraphBuilder] Dropped {dropped} links to unknown publications")

    return GraphData(nodes=nodes, links=links)


def find_node(graph: GraphData, publication_id: int) -> GraphNode | None:
    """Locate the node to center on when a publication is selected."""
    for node in graph.nodes:
        if node.id == publication_id:
            return node
    return None


class GraphBuilder:
    """Load publications and connections from the database as graph data."""

    def __init__(self, publications_service: PublicationsService):
        self.publications_service = publications_service

    def load_graph(self, limit: int = 100) -> GraphData:
        publications = self.publications_service.list_for_graph(limit=limit)
        connections = self.publications_service.get_connections_among(
            [pub.id for pub in publications]
        )
        graph = build_graph(publications, connections)
        logger.info(
            f"[GraphBuilder] Loaded {len(graph.nodes)} publications with {len(graph.links)} connections"
        )
        return graph
