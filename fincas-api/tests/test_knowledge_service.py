from unittest.mock import MagicMock, Mock, patch

import pytest

from app.services.knowledge_service import (
    QDRANT_COLLECTION,
    format_knowledge_context,
    get_embedding,
    search_knowledge,
)


def _client_returning(mock_client_class, response):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_client.post.return_value = response
    return mock_client


class TestQdrantCollection:
    def test_collection_name_is_set(self):
        assert QDRANT_COLLECTION == "fincas_knowledge"


class TestFormatKnowledgeContext:
    def test_returns_empty_string_for_empty_results(self):
        assert format_knowledge_context([]) == ""

    def test_prefixes_source(self):
        results = [{"text": "Check-in desde las 3 pm", "source": "Políticas"}]

        assert format_knowledge_context(results) == "[Políticas] Check-in desde las 3 pm"

    def test_joins_chunks_and_skips_empty_text(self):
        results = [
            {"text": "Primera", "source": None},
            {"text": "", "source": "Vacía"},
            {"text": None},
            {"text": "Segunda", "source": "FAQ"},
        ]

        assert format_knowledge_context(results) == "Primera\n\n[FAQ] Segunda"


class TestGetEmbedding:
    @patch("app.services.knowledge_service.httpx.Client")
    def test_returns_embedding_from_response(self, mock_client_class):
        response = Mock(status_code=200)
        response.json.return_value = [[0.1, 0.2, 0.3]]
        _client_returning(mock_client_class, response)

        assert get_embedding("test text") == [0.1, 0.2, 0.3]

    @patch("app.services.knowledge_service.httpx.Client")
    def test_raises_on_error_status(self, mock_client_class):
        _client_returning(mock_client_class, Mock(status_code=500, text="Server error"))

        with pytest.raises(Exception) as exc_info:
            get_embedding("test text")

        assert "BGE-M3 error" in str(exc_info.value)


class TestSearchKnowledge:
    @patch("app.services.knowledge_service.get_embedding")
    def test_blank_query_skips_search(self, mock_embedding):
        assert search_knowledge("   ") == []
        mock_embedding.assert_not_called()

    @patch("app.services.knowledge_service.alert_warning")
    @patch("app.services.knowledge_service.get_embedding")
    @patch("app.services.knowledge_service.httpx.Client")
    def test_returns_empty_list_on_qdrant_error(self, mock_client_class, mock_embedding, mock_alert):
        mock_embedding.return_value = [0.1, 0.2, 0.3]
        _client_returning(mock_client_class, Mock(status_code=500, text="Qdrant error"))

        assert search_knowledge("mascotas") == []
        mock_alert.assert_called_once()

    @patch("app.services.knowledge_service.get_embedding")
    @patch("app.services.knowledge_service.httpx.Client")
    def test_filters_by_namespace(self, mock_client_class, mock_embedding):
        mock_embedding.return_value = [0.1]
        response = Mock(status_code=200)
        response.json.return_value = {"result": []}
        mock_client = _client_returning(mock_client_class, response)

        search_knowledge("mascotas", limit=3)

        url = mock_client.post.call_args[0][0]
        body = mock_client.post.call_args[1]["json"]
        assert url.endswith("/collections/fincas_knowledge/points/search")
        assert body["limit"] == 3
        assert body["filter"] == {"must": [{"key": "metadata.namespace", "match": {"value": "fincas"}}]}

    @patch("app.services.knowledge_service.get_embedding")
    @patch("app.services.knowledge_service.httpx.Client")
    def test_returns_formatted_results(self, mock_client_class, mock_embedding):
        mock_embedding.return_value = [0.1, 0.2, 0.3]
        response = Mock(status_code=200)
        response.json.return_value = {
            "result": [
                {
                    "score": 0.85,
                    "payload": {
                        "content": "Se admiten mascotas pequeñas",
                        "metadata": {"title": "Políticas", "namespace": "fincas"},
                    },
                }
            ]
        }
        _client_returning(mock_client_class, response)

        result = search_knowledge("mascotas")

        assert len(result) == 1
        assert result[0]["score"] == 0.85
        assert result[0]["text"] == "Se admiten mascotas pequeñas"
        assert result[0]["source"] == "Políticas"
