"""
Publication Importer

Downloads the NASA space biology publication list (a two-column CSV of
title and link) and loads it into the publications table.
"""

import logging
import os

import httpx

from app.models.publication_models import ImportResult, PublicationCreate
from app.services.publications_service import PublicationsService

logger = logging.getLogger(__name__)

DEFAULT_CSV_URL = (
    "https://raw.githubusercontent.com/jgalazka/SB_publications/main/SB_publication_PMC.csv"
)
BATCH_SIZE = 100


def parse_publications_csv(csv_text: str) -> list[PublicationCreate]:
    """
    Parse title/link rows from the publications CSV.

    The header row is skipped. Titles containing commas are quoted; a
    quoted title ends at the first '",' sequence. Rows without a title or
    link are dropped.

    Args:
        csv_text: Raw CSV document

    Returns:
        Parsed publications in file order
    """
    publications: list[PublicationCreate] = []

    for raw_line in csv_text.split("\n")[1:]:
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith('"'):
            end_quote = line.find('",')
            if end_quote == -1:
                continue
            title = line[1:end_quote]
            link = line[end_quote + 2 :].strip()
        else:
            comma = line.find(",")
            if comma == -1:
                continue
            title = line[:comma].strip()
            link = line[comma + 1 :].strip()

        if title and link:
            publications.append(PublicationCreate(title=title, link=link))

    return publications


class PublicationImporter:
    """Fetch the publication CSV and write it to the database in batches."""

    def __init__(
        self,
        publications_service: PublicationsService,
        csv_url: str | None = None,
        timeout: float = 60.0,
    ):
        self.publications_service = publications_service
        self.csv_url = csv_url or os.getenv("PUBLICATIONS_CSV_URL", DEFAULT_CSV_URL)
        self.timeout = timeout

    async def fetch_csv(self) -> str:
        """
        Download the CSV document.

        Raises:
            httpx.HTTPError: If the download fails
        """
        logger.info(f"[Importer] Fetching publications CSV from {self.csv_url}")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self.csv_url)
            response.raise_for_status()
            return response.text

    def _insert_in_batches(self, publications: list[PublicationCreate]) -> int:
        inserted = 0
        for start in range(0, len(publications), BATCH_SIZE):
            batch = publications[start : start + BATCH_SIZE]
            written = self.publications_service.insert_publications(batch)
            if written:
                inserted += written
            else:
                logger.error(f"[Importer] Error inserting batch {start // BATCH_SIZE}")
        return inserted

    async def import_all(self) -> ImportResult:
        """
        Replace the publications table with the full CSV contents.

        Returns:
            ImportResult with inserted and parsed counts
        """
        publications = parse_publications_csv(await self.fetch_csv())
        logger.info(f"[Importer] Parsed {len(publications)} publications")

        if not self.publications_service.clear_publications():
            logger.info("[Importer] Publications table was already empty")

        inserted = self._insert_in_batches(publications)
        return ImportResult(
            success=True,
            message=f"Imported {inserted} publications out of {len(publications)} parsed",
            inserted=inserted,
            parsed=len(publications),
            total=len(publications),
            done=True,
        )

    async def import_page(self, offset: int, limit: int, reset: bool = False) -> ImportResult:
        """
        Import one page of the CSV so long imports can be driven incrementally.

        Args:
            offset: Index of the first parsed row to import
            limit: Number of rows to import
            reset: Clear the table before inserting

        Returns:
            ImportResult with total, next_offset and done

        Raises:
            ValueError: If offset is negative or limit is not positive
        """
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit <= 0:
            raise ValueError("limit must be positive")

        publications = parse_publications_csv(await self.fetch_csv())
        total = len(publications)

        if reset:
            self.publications_service.clear_publications()

        page = publications[offset : offset + limit]
        inserted = self._insert_in_batches(page)
        next_offset = min(offset + limit, total)
        done = next_offset >= total

        logger.info(
            f"[Importer] Imported page offset={offset} limit={limit}: "
            f"{inserted} inserted, {next_offset}/{total}"
        )
        return ImportResult(
            success=True,
            message=f"Imported {inserted} publications out of {len(page)} parsed",
            inserted=inserted,
            parsed=len(page),
            total=total,
            next_offset=next_offset,
            done=done,
        )
