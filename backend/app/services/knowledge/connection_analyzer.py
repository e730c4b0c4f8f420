"""
Connection Analyzer Service Module

Derives edges between publications for the knowledge graph, either by
asking the language model for thematic connections or with a local
metadata-overlap heuristic.
"""

import logging
import re

from pydantic import ValidationError

from app.models.publication_models import (
    ExtractedConnection,
    Publication,
    PublicationConnection,
)
from app.services.ai_gateway_service import AIGatewayService

logger = logging.getLogger(__name__)

MIN_STRENGTH = 1
MAX_STRENGTH = 5

# Words ignored when comparing titles
STOPWORDS = {
    "a", "an", "and", "are", "as", "at", "by", "for", "from", "in", "into",
    "is", "of", "on", "or", "the", "to", "via", "with", "during", "after",
    "under", "its", "their", "using", "study", "effects", "effect",
}

CONNECTIONS_TOOL = {
    "type": "function",
    "function": {
        "name": "create_connections",
        "description": "Create connections between publications based on shared topics",
        "parameters": {
            "type": "object",
            "properties": {
                "connections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "source": {"type": "number", "description": "Source publication index"},
                            "target": {"type": "number", "description": "Target publication index"},
                            "strength": {"type": "number", "minimum": 1, "maximum": 5},
                            "topics": {"type": "array", "items": {"type": "string"}},
                        },
                        "required": ["source", "target", "strength", "topics"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["connections"],
            "additionalProperties": False,
        },
    },
}

ANALYST_PROMPT = (
    "You are a scientific research analyst. Analyze publications and identify "
    "thematic connections based on shared topics, methodologies, or research domains."
)


def title_keywords(title: str) -> set[str]:
    """Lowercased title words of four or more letters, minus stopwords."""
    words = re.findall(r"[a-z0-9]+", title.lower())
    return {word for word in words if len(word) >= 4 and word not in STOPWORDS}


def score_connection(a: Publication, b: Publication) -> int:
    """
    Score how related two publications are from their metadata.

    Shared research area counts 2, shared organism 1, shared experiment
    type 1, and each shared title keyword 1 (at most 2). The result is
    capped at 5; 0 means unrelated.
    """
    score = 0
    if a.research_area and a.research_area == b.research_area:
        score += 2
    if a.organism and a.organism == b.organism:
        score += 1
    if a.experiment_type and a.experiment_type == b.experiment_type:
        score += 1
    score += min(len(title_keywords(a.title) & title_keywords(b.title)), 2)
    return min(score, MAX_STRENGTH)


def shared_topics(a: Publication, b: Publication) -> list[str]:
    topics = []
    for field in ("research_area", "organism", "experiment_type"):
        value = getattr(a, field)
        if value and value == getattr(b, field):
            topics.append(value)
    topics.extend(sorted(title_keywords(a.title) & title_keywords(b.title)))
    return topics


def derive_connections(
    publications: list[Publication], min_strength: int = 2
) -> list[PublicationConnection]:
    """
    Build "related" connections for every pair scoring at least ``min_strength``.

    Raises:
        ValueError: If min_strength is outside 1..5
    """
    if not MIN_STRENGTH <= min_strength <= MAX_STRENGTH:
        raise ValueError(f"min_strength must be between {MIN_STRENGTH} and {MAX_STRENGTH}")

    connections: list[PublicationConnection] = []
    for i, a in enumerate(publications):
        for b in publications[i + 1 :]:
            score = score_connection(a, b)
            if score >= min_strength:
                connections.append(
                    PublicationConnection(
                        source=a.id,
                        target=b.id,
                        strength=score,
                        topics=shared_topics(a, b),
                        type="related",
                    )
                )

    logger.info(
        f"[Connections] Derived {len(connections)} connections from {len(publications)} publications"
    )
    return connections


class ConnectionAnalyzer:
    """Ask the language model for thematic connections between publications."""

    def __init__(self, gateway: AIGatewayService):
        self.gateway = gateway

    def build_prompt(self, publications: list[Publication]) -> str:
        summaries = "\n\n".join(
            f"[{idx}] Title: {pub.title}\n"
            f"Abstract: {pub.abstract or 'N/A'}\n"
            f"Research Area: {pub.research_area or 'N/A'}"
            for idx, pub in enumerate(publications)
        )
        return (
            f"Analyze these {len(publications)} publications and identify connections "
            "between them based on shared topics, keywords, or research themes. "
            'Return ONLY valid JSON with this structure: {"connections": [{"source": <index>, '
            '"target": <index>, "strength": <1-5>, "topics": ["topic1", "topic2"]}]}. '
            "Strength 5 means highly related, 1 means loosely related.\n\n"
            f"{summaries}"
        )

    def map_connections(
        self, raw_connections: list, publications: list[Publication]
    ) -> list[PublicationConnection]:
        """
        Map index-based connections back to publication IDs.

        Entries that fail validation, point outside the list, or connect a
        publication to itself are skipped. Strength is clamped to 1..5.
        """
        mapped: list[PublicationConnection] = []
        for raw in raw_connections:
            try:
                extracted = ExtractedConnection.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"[Connections] Skipping invalid connection {raw!r}: {e}")
                continue

            source, target = extracted.source, extracted.target
            if not (0 <= source < len(publications) and 0 <= target < len(publications)):
                logger.warning(f"[Connections] Skipping out-of-range connection {source}->{target}")
                continue
            if source == target:
                continue

            mapped.append(
                PublicationConnection(
                    source=publications[source].id,
                    target=publications[target].id,
                    strength=max(MIN_STRENGTH, min(MAX_STRENGTH, extracted.strength)),
                    topics=extracted.topics,
                    type="semantic",
                )
            )
        return mapped

    async def analyze(self, publications: list[Publication]) -> list[PublicationConnection]:
        """
        Identify semantic connections between publications.

        Returns:
            Connections keyed by publication ID, empty for fewer than two
            publications or when the model makes no tool call

        Raises:
            AIGatewayError: If the gateway rejects the request
        """
        if len(publications) < 2:
            return []

        arguments = await self.gateway.create_tool_call(
            messages=[
                {"role": "system", "content": ANALYST_PROMPT},
                {"role": "user", "content": self.build_prompt(publications)},
            ],
            tool=CONNECTIONS_TOOL,
        )
        if not arguments:
            return []

        connections = self.map_connections(arguments.get("connections", []), publications)
        logger.info(f"[Connections] Model proposed {len(connections)} connections")
        return connections
