"""
Publications Service Module

This module manages the publications and publication_connections tables:
- Full-text-ish search and filtering for the explorer
- Keyword lookup used to ground chat answers in real publications
- Batch inserts for CSV imports
- Connection storage for the knowledge graph
"""

import json
import logging
import sqlite3

from app.models.publication_models import (
    Publication,
    PublicationConnection,
    PublicationCreate,
    PublicationFilters,
    PublicationStats,
)
from app.services.base_database_service import DEFAULT_DB_PATH, BaseDatabaseService

logger = logging.getLogger(__name__)

# Number of leading words of a chat message used for the title lookup
CONTEXT_QUERY_WORDS = 5


class PublicationsService(BaseDatabaseService):
    """
    Database service for publications and their connections.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        super().__init__(db_path)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the database with required tables and indexes."""
        with self.get_connection() as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS publications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    link TEXT,
                    abstract TEXT,
                    year INTEGER,
                    authors TEXT,
                    research_area TEXT,
                    organism TEXT,
                    experiment_type TEXT,
                    publication_url TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS publication_connections (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_publication_id INTEGER NOT NULL REFERENCES publications(id) ON DELETE CASCADE,
                    target_publication_id INTEGER NOT NULL REFERENCES publications(id) ON DELETE CASCADE,
                    connection_type TEXT NOT NULL,
                    strength REAL DEFAULT 1.0,
                    topics TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(source_publication_id, target_publication_id, connection_type)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_publications_title
                ON publications(title)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_connections_source
                ON publication_connections(source_publication_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_connections_target
                ON publication_connections(target_publication_id)
            """)
            conn.commit()

    def _row_to_publication(self, row: sqlite3.Row) -> Publication:
        return Publication(
            id=row["id"],
            title=row["title"],
            link=row["link"],
            abstract=row["abstract"],
            year=row["year"],
            authors=row["authors"],
            research_area=row["research_area"],
            organism=row["organism"],
            experiment_type=row["experiment_type"],
            publication_url=row["publication_url"],
            created_at=self.format_timestamp_iso(row["created_at"]),
        )

    # ========================================
    # PUBLICATION QUERIES
    # ========================================

    def search(
        self,
        query: str = "",
        filters: PublicationFilters | None = None,
        limit: int = 100,
    ) -> list[Publication]:
        """
        Search publications by title, abstract or authors and apply filters.

        Args:
            query: Case-insensitive substring matched against title, abstract, authors
            filters: Optional year range and category filters
            limit: Maximum number of results

        Returns:
            Matching publications, newest first
        """
        clauses: list[str] = []
        params: list = []

        query = query.strip()
        if query:
            pattern = f"%{query}%"
            clauses.append("(title LIKE ? OR abstract LIKE ? OR authors LIKE ?)")
            params.extend([pattern, pattern, pattern])

        if filters and filters.is_active():
            if filters.year_min is not None:
                clauses.append("year >= ?")
                params.append(filters.year_min)
            if filters.year_max is not None:
                clauses.append("year <= ?")
                params.append(filters.year_max)
            for column, values in (
                ("organism", filters.organisms),
                ("research_area", filters.research_areas),
                ("experiment_type", filters.experiment_types),
            ):
                if values:
                    placeholders = ", ".join("?" for _ in values)
                    clauses.append(f"{column} IN ({placeholders})")
                    params.extend(values)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.fetch_all(
            f"""
            SELECT * FROM publications
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, limit),
        )
        return [self._row_to_publication(row) for row in rows or []]

    def count(self) -> int:
        """Get the total number of publications."""
        row = self.fetch_one("SELECT COUNT(*) AS count FROM publications")
        return row["count"] if row else 0

    def get_by_id(self, publication_id: int) -> Publication | None:
        """Get a single publication by ID."""
        row = self.fetch_one(
            "SELECT * FROM publications WHERE id = ?",
            (publication_id,),
        )
        return self._row_to_publication(row) if row else None

    def list_for_graph(self, limit: int = 100) -> list[Publication]:
        """Get the first publications in insertion order for graph rendering."""
        rows = self.fetch_all(
            "SELECT * FROM publications ORDER BY id ASC LIMIT ?",
            (limit,),
        )
        return [self._row_to_publication(row) for row in rows or []]

    def search_titles(self, text: str, limit: int = 5) -> list[Publication]:
        """
        Find publications whose titles mention any of the leading words of ``text``.

        Used to ground chat answers. Words shorter than three characters
        are ignored.

        Args:
            text: The user's chat message
            limit: Maximum number of publications

        Returns:
            Matching publications
        """
        words = [
            word.strip(".,;:!?\"'()").lower()
            for word in text.split()[:CONTEXT_QUERY_WORDS]
        ]
        words = [word for word in words if len(word) >= 3]
        if not words:
            return []

        clauses = " OR ".join("LOWER(title) LIKE ?" for _ in words)
        rows = self.fetch_all(
            f"SELECT * FROM publications WHERE {clauses} ORDER BY id ASC LIMIT ?",
            (*[f"%{word}%" for word in words], limit),
        )
        if rows is None:
            logger.error("[Publications] Title search failed, continuing without context")
            return []
        return [self._row_to_publication(row) for row in rows]

    def get_stats(self) -> PublicationStats:
        """Get dashboard counters."""
        row = self.fetch_one(
            """
            SELECT
                (SELECT COUNT(*) FROM publications) AS publications,
                (SELECT COUNT(*) FROM publication_connections) AS connections,
                (SELECT COUNT(DISTINCT research_area) FROM publications) AS research_areas,
                (SELECT COUNT(DISTINCT organism) FROM publications) AS organisms,
                (SELECT COUNT(DISTINCT authors) FROM publications) AS authors
            """,
        )
        if not row:
            return PublicationStats()
        return PublicationStats(**dict(row))

    # ========================================
    # IMPORT OPERATIONS
    # ========================================

    def clear_publications(self) -> bool:
        """Delete every publication and connection."""
        self.execute_write("DELETE FROM publication_connections")
        cleared = self.execute_write("DELETE FROM publications")
        logger.info(f"[Publications] Cleared publications table (rows removed: {cleared})")
        return bool(cleared)

    def insert_publications(self, batch: list[PublicationCreate]) -> int:
        """
        Insert a batch of parsed publications.

        Returns:
            Number of rows inserted, 0 if the batch failed
        """
        if not batch:
            return 0
        written = self.execute_many(
            "INSERT INTO publications (title, link) VALUES (?, ?)",
            [(pub.title, pub.link) for pub in batch],
        )
        if written is None:
            logger.error(f"[Publications] Failed to insert batch of {len(batch)}")
            return 0
        return written

    # ========================================
    # CONNECTION OPERATIONS
    # ========================================

    def replace_connections(
        self, connections: list[PublicationConnection], connection_type: str
    ) -> int:
        """
        Replace all stored connections of one type.

        Returns:
            Number of connections stored
        """
        self.execute_write(
            "DELETE FROM publication_connections WHERE connection_type = ?",
            (connection_type,),
        )
        rows = [
            (conn.source, conn.target, conn.type, conn.strength, json.dumps(conn.topics))
            for conn in connections
        ]
        if not rows:
            return 0
        written = self.execute_many(
            """
            INSERT OR REPLACE INTO publication_connections
            (source_publication_id, target_publication_id, connection_type, strength, topics)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
        logger.info(f"[Publications] Stored {written or 0} {connection_type} connections")
        return written or 0

    def get_connections_among(self, publication_ids: list[int]) -> list[PublicationConnection]:
        """Get connections whose source and target are both in ``publication_ids``."""
        if not publication_ids:
            return []
        placeholders = ", ".join("?" for _ in publication_ids)
        rows = self.fetch_all(
            f"""
            SELECT * FROM publication_connections
            WHERE source_publication_id IN ({placeholders})
              AND target_publication_id IN ({placeholders})
            """,
            (*publication_ids, *publication_ids),
        )
        if rows is None:
            logger.error("[Publications] Error fetching connections")
            return []
        return [
            PublicationConnection(
                source=row["source_publication_id"],
                target=row["target_publication_id"],
                strength=row["strength"] or 1.0,
                topics=json.loads(row["topics"]) if row["topics"] else [],
                type=row["connection_type"],
            )
            for row in rows
        ]


# Global instance shared by routers and the chat service
publications_service = PublicationsService()
