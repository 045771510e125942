"""
Embedding Client

This module implements the embedding client that calls the OpenAI
embeddings API (or any compatible provider). It is responsible for:

- Efficient batching of text inputs
- Bounded retry with backoff on rate limiting (HTTP 429) only
- Strict response validation, including the configured dimensionality

The class holds no per-request state and is safe to share across requests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..config import Settings, get_settings
from ..core.errors import EmbeddingError, RateLimitError

logger = logging.getLogger("embeddings.embedder")


class Embedder:
    """
    Asynchronous embedding generator for batches of text.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        base_url: str = "https://api.openai.com/v1/embeddings",
        timeout: float = 60.0,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key, model, dimensions : Optional
            Overrides for the configured key, model name and vector width.

        base_url : str
            URL of the embeddings API endpoint.

        timeout : float
            HTTP timeout for each request.

        max_retries, retry_delay : Optional
            Overrides for the rate-limit retry policy. The n-th retry waits
            ``retry_delay * n`` seconds.
        """
        settings = settings or get_settings()

        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries or settings.embedding_max_retries
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.embedding_retry_delay
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        batch_size : int
            Maximum batch size per request.

        Returns
        -------
        List[List[float]]
            One embedding per input text, in input order.

        Raises
        ------
        RateLimitError
            If the provider is still rate limiting after all attempts.
        EmbeddingError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                    "dimensions": self.dimensions,
                }

                data = await self._post_with_retry(client, payload, headers)
                embeddings = self._extract_embeddings(data, self.dimensions)

                if len(embeddings) != len(batch):
                    raise EmbeddingError(
                        f"Expected {len(batch)} embeddings, got {len(embeddings)}."
                    )
                all_embeddings.extend(embeddings)

        return all_embeddings

    async def embed_one(self, text: str) -> List[float]:
        """
        Embed a single string.
        """
        embeddings = await self.embed([text])
        return embeddings[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    # Sleep used between rate-limit retries
    _sleep = staticmethod(asyncio.sleep)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Rate limited, waiting %.1fs before retry %d/%d",
            retry_state.next_action.sleep,
            retry_state.attempt_number + 1,
            self.max_retries,
        )

    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        payload: dict,
        headers: dict,
    ) -> dict:
        """
        POST one batch, retrying only rate-limited (429) responses.

        The n-th retry waits ``retry_delay * n`` seconds.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._post(client, payload, headers)
        except RateLimitError as exc:
            logger.error(
                "Embedding request still rate limited after %d attempts",
                self.max_retries,
            )
            raise RateLimitError(
                f"Failed to create embedding after {self.max_retries} attempts: rate limited"
            ) from exc

        raise EmbeddingError("Embedding request was never attempted")

    async def _post(
        self,
        client: httpx.AsyncClient,
        payload: dict,
        headers: dict,
    ) -> dict:
        try:
            response = await client.post(
                self.base_url,
                json=payload,
                headers=headers,
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError("Embedding provider returned HTTP 429") from exc

            logger.error(
                "Embedding request failed: status=%d batch size=%d",
                exc.response.status_code,
                len(payload["input"]),
            )
            raise EmbeddingError(
                f"Embedding generation failed: HTTP {exc.response.status_code}"
            ) from exc

        except httpx.HTTPError as exc:
            logger.error(
                "Embedding request failed (%s): batch size=%d, error=%s",
                type(exc).__name__,
                len(payload["input"]),
                str(exc),
            )
            raise EmbeddingError(
                f"Embedding generation failed: {type(exc).__name__}"
            ) from exc

        return response.json()

    @staticmethod
    def _extract_embeddings(data: dict, dimensions: int) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"embedding": [...]}, ... ] }

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure or vector width.
        """
        if "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            if len(emb) != dimensions:
                raise EmbeddingError(
                    f"Embedding at index {index} has {len(emb)} dimensions, "
                    f"expected {dimensions}."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
