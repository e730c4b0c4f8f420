"""
Publication and Knowledge Graph Type Models

Pydantic models for publications, their connections, graph payloads and
import results.
"""

from typing import Literal

from pydantic import BaseModel, Field

# ========================================
# PUBLICATION MODELS
# ========================================


class PublicationCreate(BaseModel):
    """A parsed CSV row ready for insertion"""

    title: str = Field(..., min_length=1)
    link: str = Field(..., min_length=1)


class Publication(BaseModel):
    """Full publication model with all fields"""

    id: int
    title: str
    link: str | None = None
    abstract: str | None = None
    year: int | None = None
    authors: str | None = None
    research_area: str | None = None
    organism: str | None = None
    experiment_type: str | None = None
    publication_url: str | None = None
    created_at: str | None = None


class PublicationFilters(BaseModel):
    """Explorer filters, all optional"""

    year_min: int | None = None
    year_max: int | None = None
    organisms: list[str] = Field(default_factory=list)
    research_areas: list[str] = Field(default_factory=list)
    experiment_types: list[str] = Field(default_factory=list)

    def is_active(self) -> bool:
        return (
            self.year_min is not None
            or self.year_max is not None
            or bool(self.organisms)
            or bool(self.research_areas)
            or bool(self.experiment_types)
        )


class PublicationStats(BaseModel):
    """Dashboard counters"""

    publications: int = 0
    connections: int = 0
    research_areas: int = 0
    organisms: int = 0
    authors: int = 0


# ========================================
# CONNECTION MODELS
# ========================================


CONNECTION_TYPES = Literal["semantic", "related"]


class PublicationConnection(BaseModel):
    """An edge between two publications"""

    source: int
    target: int
    strength: float = Field(default=1.0, ge=1.0, le=5.0)
    topics: list[str] = Field(default_factory=list)
    type: CONNECTION_TYPES = "semantic"


class ExtractedConnection(BaseModel):
    """Index-based connection as returned by the model's tool call"""

    source: int
    target: int
    strength: float = 1.0
    topics: list[str] = Field(default_factory=list)


# ========================================
# GRAPH MODELS
# ========================================


class GraphNode(BaseModel):
    """A publication rendered as a force-graph node"""

    id: int
    title: str
    year: int | None = None
    research_area: str | None = None
    val: int = 5


class GraphLink(BaseModel):
    """A connection rendered as a force-graph link"""

    source: int
    target: int
    type: str | None = None
    strength: float = 1.0


class GraphData(BaseModel):
    """Complete graph payload for the frontend"""

    nodes: list[GraphNode] = Field(default_factory=list)
    links: list[GraphLink] = Field(default_factory=list)


# ========================================
# IMPORT MODELS
# ========================================


class ImportResult(BaseModel):
    """Outcome of a full or paged CSV import"""

    success: bool = True
    message: str
    inserted: int = 0
    parsed: int = 0
    total: int = 0
    next_offset: int | None = None
    done: bool = True
