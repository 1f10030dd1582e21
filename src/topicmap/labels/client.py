"""Label service client for OpenAI-compatible endpoints (Ollama, vLLM, etc.).

Turns a cluster's keywords into a short human label. Requests are blocking
``requests`` calls run in a worker thread, bounded by a semaphore, so the
event loop driving the map never waits on the network.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from topicmap.config import settings
from topicmap.labels.prompts import (
    KEEP_LABEL,
    LABEL_SYSTEM_PROMPT,
    format_generate_prompt,
    format_refine_prompt,
    parse_label_map,
    strip_thinking,
)

logger = logging.getLogger(__name__)


@dataclass
class LabelRequest:
    """Ask for a fresh label for a cluster."""

    cluster_id: int
    keywords: list[str]


@dataclass
class RefineRequest:
    """Ask whether a cached label still fits a cluster whose members drifted."""

    cluster_id: int
    old_label: str
    old_keywords: list[str] = field(default_factory=list)
    new_keywords: list[str] = field(default_factory=list)


class LabelService(Protocol):
    """Async label collaborator. Both calls are best-effort."""

    async def generate_labels(self, requests: Sequence[LabelRequest]) -> dict[int, str]: ...

    async def refine_labels(self, requests: Sequence[RefineRequest]) -> dict[int, str]: ...


class HubLabelService:
    """Offline label service: first keyword as label, refinements keep the old label."""

    async def generate_labels(self, requests: Sequence[LabelRequest]) -> dict[int, str]:
        return {
            r.cluster_id: r.keywords[0] if r.keywords else f"cluster {r.cluster_id}"
            for r in requests
        }

    async def refine_labels(self, requests: Sequence[RefineRequest]) -> dict[int, str]:
        return {r.cluster_id: r.old_label for r in requests}


class LabelServiceClient:
    """Async-wrapped label client for OpenAI-compatible chat APIs using requests."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_concurrent: int | None = None,
        max_keywords: int | None = None,
        refine_max_keywords: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.label_base_url).rstrip("/")
        self.model = model or settings.label_model
        self.api_key = api_key or settings.label_api_key
        self.timeout = timeout or settings.label_timeout
        self.max_concurrent = max_concurrent or settings.label_max_concurrent
        self.max_keywords = max_keywords or settings.label_max_keywords
        self.refine_max_keywords = refine_max_keywords or settings.label_refine_max_keywords

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._session: requests.Session | None = None

    def _get_session(self) -> requests.Session:
        """Get or create requests session with connection pooling."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            })
            adapter = HTTPAdapter(
                pool_connections=self.max_concurrent,
                pool_maxsize=self.max_concurrent * 2,
                max_retries=Retry(total=2, backoff_factor=0.5),
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def _sync_chat(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        **kwargs: Any,
    ) -> str:
        """Synchronous chat request (runs in thread)."""
        session = self._get_session()

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs,
        }

        response = session.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        choices = data.get("choices", [])
        if not choices:
            logger.error(f"Label service returned empty choices: {data}")
            raise ValueError("Label service returned empty choices")

        message = choices[0].get("message", {})
        content = message.get("content")
        if content is None:
            content = choices[0].get("text")
        if content is None:
            content = message.get("reasoning_content") or message.get("reasoning")
        if content is None:
            raise ValueError(f"Label service returned no content: {data}")

        return strip_thinking(content)

    async def chat(
        self,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1000,
        **kwargs: Any,
    ) -> str:
        """Send a single-turn prompt and return the cleaned reply."""
        messages = [
            {"role": "system", "content": LABEL_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        async with self._semaphore:
            try:
                return await asyncio.to_thread(
                    self._sync_chat,
                    messages,
                    temperature,
                    max_tokens,
                    **kwargs,
                )
            except requests.HTTPError as e:
                logger.error(f"Label service error: {e.response.status_code} - {e.response.text}")
                raise
            except Exception as e:
                logger.error(f"Label request failed: {e}")
                raise

    async def generate_labels(self, requests: Sequence[LabelRequest]) -> dict[int, str]:
        """
        Generate labels for clusters.

        Args:
            requests: Clusters with their keywords

        Returns:
            Mapping of cluster id -> label (clusters the model skipped are absent)
        """
        if not requests:
            return {}

        prompt = format_generate_prompt(
            [(r.cluster_id, r.keywords) for r in requests],
            max_keywords=self.max_keywords,
        )
        response = await self.chat(prompt)
        labels = parse_label_map(response)

        requested = {r.cluster_id for r in requests}
        return {cid: label.lower() for cid, label in labels.items() if cid in requested}

    async def refine_labels(self, requests: Sequence[RefineRequest]) -> dict[int, str]:
        """
        Re-check cached labels for clusters whose membership changed slightly.

        A "keep" answer maps back to the old label.

        Returns:
            Mapping of cluster id -> label (possibly unchanged)
        """
        if not requests:
            return {}

        prompt = format_refine_prompt(
            [(r.cluster_id, r.old_label, r.old_keywords, r.new_keywords) for r in requests],
            max_keywords=self.refine_max_keywords,
        )
        response = await self.chat(prompt, max_tokens=500)
        answers = parse_label_map(response)

        by_id = {r.cluster_id: r for r in requests}
        result: dict[int, str] = {}
        for cid, answer in answers.items():
            original = by_id.get(cid)
            if original is None:
                continue
            result[cid] = original.old_label if answer.lower() == KEEP_LABEL else answer.lower()

        changed = sum(1 for cid, label in result.items() if label != by_id[cid].old_label)
        logger.info(f"Refined {len(result)} labels ({changed} changed)")
        return result
