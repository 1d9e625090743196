"""Client for the companion HTTP API (see cbt_prep.server)."""
import logging

import httpx

from cbt_prep.errors import ConfigMissingError
from cbt_prep.httpclient import JSON_HEADERS, request_json
from cbt_prep.retry import with_retry

logger = logging.getLogger(__name__)


class BackendClient:
    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.AsyncClient = None, retry_delay: float = 0.5):
        if not base_url and client is None:
            raise ConfigMissingError("backend URL is not configured")
        self.retry_delay = retry_delay
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=JSON_HEADERS, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def health(self) -> dict:
        return await request_json(self._client, "GET", "/api/health")

    async def fetch_questions(self, subject: str, count: int = 40, topic: str = None) -> list[dict]:
        params = {"subject": subject, "count": count}
        if topic:
            params["topic"] = topic
        payload = await with_retry(
            lambda: request_json(self._client, "GET", "/api/questions", params=params),
            retries=2,
            delay=self.retry_delay,
        )
        return payload.get("data") or []

    async def generate(self, subject: str, topic: str = None, count: int = 10) -> list[dict]:
        payload = await request_json(
            self._client, "POST", "/api/questions/generate",
            json={"subject": subject, "topic": topic, "count": count},
        )
        return payload.get("data") or []

    async def sync(self, subject: str = None, count: int = 100) -> dict:
        return await request_json(
            self._client, "POST", "/api/questions/sync", json={"subject": subject, "count": count},
        )

    async def stats(self) -> dict:
        return await request_json(self._client, "GET", "/api/stats")
