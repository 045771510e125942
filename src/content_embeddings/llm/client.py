from typing import Optional

import httpx

from ..config import Settings, get_settings

RAG_SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on the provided context.
If you cannot find the answer in the context, say so. Be concise and accurate.

Context:
{context}"""


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.chat_model

    async def generate(
        self,
        context: str,
        question: str,
        temperature: float = 0.7,
    ) -> str:
        """
        Answer ``question`` using only ``context``; returns the answer text.
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": RAG_SYSTEM_PROMPT.format(context=context)},
                {"role": "user", "content": question},
            ],
            "temperature": temperature,
        }

        async with httpx.AsyncClient(timeout=60) as client:
            resp = await client.post(
                "https://api.openai.com/v1/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        resp.raise_for_status()
        data = resp.json()
        return data["choices"][0]["message"]["content"] or ""
