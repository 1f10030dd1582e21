"""Unit tests for the label service client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from topicmap.labels import HubLabelService, LabelRequest, LabelServiceClient, RefineRequest


@pytest.fixture
def client() -> LabelServiceClient:
    return LabelServiceClient(
        base_url="http://localhost:11434/v1/",
        model="qwen3:8b",
        api_key="test",
        max_concurrent=2,
    )


def _response(payload: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestSyncChat:
    """Tests for the blocking request path."""

    def test_strips_thinking(self, client) -> None:
        session = MagicMock()
        session.post.return_value = _response(
            {"choices": [{"message": {"content": "<think>ok</think>{\"0\": \"x\"}"}}]}
        )
        client._session = session

        content = client._sync_chat([{"role": "user", "content": "hi"}], 0.3, 100)

        assert content == '{"0": "x"}'
        url = session.post.call_args.args[0]
        assert url == "http://localhost:11434/v1/chat/completions"
        assert session.post.call_args.kwargs["json"]["model"] == "qwen3:8b"

    def test_empty_choices(self, client) -> None:
        session = MagicMock()
        session.post.return_value = _response({"choices": []})
        client._session = session

        with pytest.raises(ValueError):
            client._sync_chat([], 0.3, 100)

    @pytest.mark.asyncio
    async def test_close(self, client) -> None:
        session = MagicMock()
        client._session = session
        await client.close()
        session.close.assert_called_once()
        assert client._session is None


class TestGenerateLabels:
    """Tests for label generation."""

    @pytest.mark.asyncio
    async def test_generate_labels(self, client) -> None:
        with patch.object(
            client, "chat", AsyncMock(return_value='{"0": "Machine Learning", "7": "stray"}')
        ) as chat:
            labels = await client.generate_labels(
                [LabelRequest(cluster_id=0, keywords=["neural network", "deep learning"])]
            )

        assert labels == {0: "machine learning"}
        assert "0: neural network, deep learning" in chat.call_args.args[0]

    @pytest.mark.asyncio
    async def test_generate_nothing(self, client) -> None:
        with patch.object(client, "chat", AsyncMock()) as chat:
            assert await client.generate_labels([]) == {}
        chat.assert_not_called()

    @pytest.mark.asyncio
    async def test_unparseable_reply_raises(self, client) -> None:
        with patch.object(client, "chat", AsyncMock(return_value="I cannot help")):
            with pytest.raises(ValueError):
                await client.generate_labels([LabelRequest(cluster_id=0, keywords=["a"])])


class TestRefineLabels:
    """Tests for label refinement."""

    @pytest.mark.asyncio
    async def test_keep_maps_to_old_label(self, client) -> None:
        requests = [
            RefineRequest(cluster_id=0, old_label="web dev", new_keywords=["html"]),
            RefineRequest(cluster_id=1, old_label="baking", new_keywords=["yeast"]),
        ]
        with patch.object(client, "chat", AsyncMock(return_value='{"0": "keep", "1": "Fermentation"}')):
            labels = await client.refine_labels(requests)

        assert labels == {0: "web dev", 1: "fermentation"}


class TestHubLabelService:
    """Tests for the offline fallback service."""

    @pytest.mark.asyncio
    async def test_first_keyword(self) -> None:
        service = HubLabelService()
        labels = await service.generate_labels(
            [LabelRequest(cluster_id=2, keywords=["python", "rust"]), LabelRequest(3, [])]
        )
        assert labels == {2: "python", 3: "cluster 3"}

    @pytest.mark.asyncio
    async def test_refine_keeps_label(self) -> None:
        labels = await HubLabelService().refine_labels([RefineRequest(cluster_id=1, old_label="x")])
        assert labels == {1: "x"}
