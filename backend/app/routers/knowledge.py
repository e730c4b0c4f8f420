"""
Knowledge Graph API Router

Endpoints for graph queries and connection analysis between publications.
"""

import logging

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from app.models.publication_models import GraphData, PublicationConnection
from app.services.ai_gateway_service import AIGatewayError, ai_gateway_service
from app.services.knowledge.connection_analyzer import (
    ConnectionAnalyzer,
    derive_connections,
)
from app.services.knowledge.graph_builder import GraphBuilder
from app.services.publications_service import publications_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/knowledge", tags=["knowledge"])

# Initialize services
graph_builder = GraphBuilder(publications_service)
connection_analyzer = ConnectionAnalyzer(ai_gateway_service)


class AnalyzeConnectionsRequest(BaseModel):
    publication_ids: list[int] = Field(default_factory=list)
    limit: int = Field(20, ge=2, le=100)
    save: bool = True


class DeriveConnectionsRequest(BaseModel):
    limit: int = Field(100, ge=2, le=500)
    min_strength: int = Field(2, ge=1, le=5)
    save: bool = True


def _load_publications(publication_ids: list[int], limit: int):
    if not publication_ids:
        return publications_service.list_for_graph(limit=limit)

    publications = []
    for publication_id in publication_ids:
        publication = publications_service.get_by_id(publication_id)
        if not publication:
            raise HTTPException(
                status_code=404, detail=f"Publication {publication_id} not found"
            )
        publications.append(publication)
    return publications


@router.get("/graph")
async def get_graph(limit: int = Query(100, ge=1, le=500)) -> GraphData:
    """
    Get publications and their stored connections as graph data.
    """
    try:
        return graph_builder.load_graph(limit=limit)
    except Exception as e:
        logger.error(f"Failed to load graph data: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load knowledge graph: {str(e)}")


@router.post("/connections/analyze")
async def analyze_connections(request: AnalyzeConnectionsRequest) -> dict[str, object]:
    """
    Ask the language model for semantic connections between publications.
    """
    try:
        publications = _load_publications(request.publication_ids, request.limit)
        connections: list[PublicationConnection] = await connection_analyzer.analyze(
            publications
        )
        saved = (
            publications_service.replace_connections(connections, "semantic")
            if request.save
            else 0
        )
        return {"connections": connections, "saved": saved}
    except HTTPException:
        raise
    except AIGatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error in analyze-connections: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/connections/derive")
async def derive_publication_connections(
    request: DeriveConnectionsRequest,
) -> dict[str, object]:
    """
    Score publication pairs by shared metadata and keep the strong ones.
    """
    try:
        publications = publications_service.list_for_graph(limit=request.limit)
        connections = derive_connections(publications, min_strength=request.min_strength)
        saved = (
            publications_service.replace_connections(connections, "related")
            if request.save
            else 0
        )
        return {"connections": connections, "saved": saved}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error deriving connections: {e}")
        raise HTTPException(status_code=500, detail=str(e))
