import httpx
import pytest
from unittest.mock import AsyncMock, patch

from content_embeddings.llm.client import LLMClient

URL = "https://api.openai.com/v1/chat/completions"


def _response(status_code, payload):
    return httpx.Response(status_code, json=payload, request=httpx.Request("POST", URL))


@pytest.mark.asyncio
async def test_generate_sends_context_as_system_prompt(settings):
    post = AsyncMock(
        return_value=_response(200, {"choices": [{"message": {"content": "Paris."}}]})
    )
    client = LLMClient(settings=settings)

    with patch.object(httpx.AsyncClient, "post", post):
        answer = await client.generate("Title: France\nCapital is Paris", "Capital?")

    assert answer == "Paris."
    payload = post.await_args.kwargs["json"]
    assert payload["model"] == settings.chat_model
    system, user = payload["messages"]
    assert system["role"] == "system"
    assert system["content"].endswith("Context:\nTitle: France\nCapital is Paris")
    assert user == {"role": "user", "content": "Capital?"}
    assert post.await_args.kwargs["headers"] == {"Authorization": "Bearer test-key"}


@pytest.mark.asyncio
async def test_generate_raises_on_http_error(settings):
    post = AsyncMock(return_value=_response(500, {}))
    client = LLMClient(settings=settings)

    with patch.object(httpx.AsyncClient, "post", post):
        with pytest.raises(httpx.HTTPStatusError):
            await client.generate("ctx", "q")
