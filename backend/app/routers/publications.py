"""
Publications API Router

Endpoints for browsing, searching and importing publications.
"""

import logging

import httpx
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from app.models.publication_models import (
    ImportResult,
    Publication,
    PublicationFilters,
    PublicationStats,
)
from app.services.publication_importer import PublicationImporter
from app.services.publications_service import publications_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/publications", tags=["publications"])

# Initialize services
publication_importer = PublicationImporter(publications_service)


class ImportPageRequest(BaseModel):
    offset: int = Field(0, ge=0)
    limit: int = Field(5, gt=0, le=500)
    reset: bool = False


@router.get("")
async def search_publications(
    q: str = Query("", description="Matches title, abstract or authors"),
    year_min: int | None = Query(None),
    year_max: int | None = Query(None),
    organism: list[str] = Query([]),
    research_area: list[str] = Query([]),
    experiment_type: list[str] = Query([]),
    limit: int = Query(100, ge=1, le=500),
) -> dict[str, object]:
    """
    Search publications. A text query and filters may be combined.
    """
    if year_min is not None and year_max is not None and year_min > year_max:
        raise HTTPException(status_code=400, detail="year_min must not exceed year_max")

    filters = PublicationFilters(
        year_min=year_min,
        year_max=year_max,
        organisms=organism,
        research_areas=research_area,
        experiment_types=experiment_type,
    )
    publications: list[Publication] = publications_service.search(
        query=q, filters=filters, limit=limit
    )
    return {"publications": publications, "count": len(publications), "query": q}


@router.get("/count")
async def count_publications() -> dict[str, int]:
    return {"count": publications_service.count()}


@router.get("/stats")
async def publication_stats() -> PublicationStats:
    return publications_service.get_stats()


@router.get("/{publication_id}")
async def get_publication(publication_id: int) -> Publication:
    publication = publications_service.get_by_id(publication_id)
    if not publication:
        raise HTTPException(status_code=404, detail="Publication not found")
    return publication


@router.post("/import")
async def import_publications() -> ImportResult:
    """
    Replace the publications table with the full CSV contents.
    """
    try:
        return await publication_importer.import_all()
    except httpx.HTTPError as e:
        logger.error(f"Error fetching publications CSV: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch CSV: {str(e)}")
    except Exception as e:
        logger.error(f"Error importing publications: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/import/page")
async def import_publications_page(request: ImportPageRequest) -> ImportResult:
    """
    Import one page of the CSV. Call repeatedly with next_offset until done.
    """
    try:
        return await publication_importer.import_page(
            offset=request.offset, limit=request.limit, reset=request.reset
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.HTTPError as e:
        logger.error(f"Error fetching publications CSV: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch CSV: {str(e)}")
    except Exception as e:
        logger.error(f"Error importing publications page: {e}")
        raise HTTPException(status_code=500, detail=str(e))
