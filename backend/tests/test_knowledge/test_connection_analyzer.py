"""
Tests for connection analysis between publications.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.publication_models import Publication
from app.services.ai_gateway_service import AIGatewayError
from app.services.knowledge.connection_analyzer import (
    CONNECTIONS_TOOL,
    ConnectionAnalyzer,
    derive_connections,
    score_connection,
    shared_topics,
    title_keywords,
)


def make_publication(pub_id, title, **kwargs) -> Publication:
    return Publication(id=pub_id, title=title, **kwargs)


@pytest.fixture
def publications():
    return [
        make_publication(
            10, "Bone loss in mice during spaceflight",
            research_area="Bone", organism="Mus musculus", experiment_type="Spaceflight",
        ),
        make_publication(
            20, "Spaceflight induced bone loss in rodents",
            research_area="Bone", organism="Mus musculus", experiment_type="Spaceflight",
        ),
        make_publication(
            30, "Arabidopsis root gravitropism",
            research_area="Plant Biology", organism="Arabidopsis thaliana",
        ),
    ]


class TestScoring:
    def test_title_keywords_drop_short_words_and_stopwords(self):
        assert title_keywords("Effects of Microgravity on the Bone of Mice") == {
            "microgravity", "bone", "mice",
        }

    def test_score_caps_at_five(self, publications):
        # area 2 + organism 1 + experiment 1 + keywords (bone, loss, spaceflight) capped at 2
        assert score_connection(publications[0], publications[1]) == 5

    def test_unrelated_publications_score_zero(self, publications):
        assert score_connection(publications[0], publications[2]) == 0

    def test_missing_metadata_does_not_match(self):
        a = make_publication(1, "Alpha")
        b = make_publication(2, "Beta")
        assert score_connection(a, b) == 0

    def test_shared_topics(self, publications):
        topics = shared_topics(publications[0], publications[1])
        assert topics[:3] == ["Bone", "Mus musculus", "Spaceflight"]
        assert set(topics[3:]) == {"bone", "loss", "spaceflight"}


class TestDeriveConnections:
    def test_derives_related_pairs(self, publications):
        connections = derive_connections(publications, min_strength=2)

        assert len(connections) == 1
        assert connections[0].source == 10
        assert connections[0].target == 20
        assert connections[0].strength == 5
        assert connections[0].type == "related"

    def test_threshold_filters_weak_pairs(self):
        a = make_publication(1, "Cell cultures", organism="Human")
        b = make_publication(2, "Immune cells", organism="Human")
        assert derive_connections([a, b], min_strength=2) == []
        assert len(derive_connections([a, b], min_strength=1)) == 1

    def test_rejects_bad_threshold(self, publications):
        with pytest.raises(ValueError):
            derive_connections(publications, min_strength=0)
        with pytest.raises(ValueError):
            derive_connections(publications, min_strength=6)


class TestConnectionAnalyzer:
    @pytest.fixture
    def mock_gateway(self):
        gateway = MagicMock()
        gateway.create_tool_call = AsyncMock()
        return gateway

    @pytest.mark.asyncio
    async def test_fewer_than_two_publications_skips_model(self, mock_gateway, publications):
        analyzer = ConnectionAnalyzer(mock_gateway)

        assert await analyzer.analyze(publications[:1]) == []
        mock_gateway.create_tool_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_maps_indices_to_publication_ids(self, mock_gateway, publications):
        mock_gateway.create_tool_call.return_value = {
            "connections": [
                {"source": 0, "target": 1, "strength": 5, "topics": ["bone loss"]},
                {"source": 1, "target": 2, "strength": 9, "topics": []},
                {"source": 2, "target": 0, "strength": 0, "topics": ["gravity"]},
            ]
        }
        analyzer = ConnectionAnalyzer(mock_gateway)

        connections = await analyzer.analyze(publications)

        assert [(c.source, c.target, c.strength) for c in connections] == [
            (10, 20, 5),
            (20, 30, 5),
            (30, 10, 1),
        ]
        assert all(c.type == "semantic" for c in connections)
        assert connections[0].topics == ["bone loss"]

        kwargs = mock_gateway.create_tool_call.call_args.kwargs
        assert kwargs["tool"] is CONNECTIONS_TOOL
        assert kwargs["messages"][0]["role"] == "system"
        assert "[2] Title: Arabidopsis root gravitropism" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_skips_invalid_entries(self, mock_gateway, publications):
        mock_gateway.create_tool_call.return_value = {
            "connections": [
                {"source": 0, "target": 0, "strength": 3, "topics": []},
                {"source": 0, "target": 7, "strength": 3, "topics": []},
                {"source": -1, "target": 1, "strength": 3, "topics": []},
                {"source": "first", "target": 1, "strength": 3, "topics": []},
                {"source": 1, "target": 2, "strength": 2, "topics": ["microgravity"]},
            ]
        }
        analyzer = ConnectionAnalyzer(mock_gateway)

        connections = await analyzer.analyze(publications)

        assert len(connections) == 1
        assert (connections[0].source, connections[0].target) == (20, 30)

    @pytest.mark.asyncio
    async def test_no_tool_call_returns_empty(self, mock_gateway, publications):
        mock_gateway.create_tool_call.return_value = None
        analyzer = ConnectionAnalyzer(mock_gateway)

        assert await analyzer.analyze(publications) == []

    @pytest.mark.asyncio
    async def test_gateway_errors_propagate(self, mock_gateway, publications):
        mock_gateway.create_tool_call.side_effect = AIGatewayError(429, "Rate limits exceeded")
        analyzer = ConnectionAnalyzer(mock_gateway)

        with pytest.raises(AIGatewayError) as exc_info:
            await analyzer.analyze(publications)
        assert exc_info.value.status_code == 429
