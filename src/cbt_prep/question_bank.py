"""Third-party question bank adapter (ALOC API v2)."""
import logging

import httpx

from cbt_prep.config import DEFAULT_ALOC_API_URL
from cbt_prep.httpclient import JSON_HEADERS, request_json
from cbt_prep.models import OPTION_LABELS, Question
from cbt_prep.retry import with_retry

logger = logging.getLogger(__name__)


def unwrap_list(payload) -> list:
    """The bank answers with {"data": [...]}, {"data": {...}} or a bare object."""
    data = payload.get("data", payload) if isinstance(payload, dict) else payload
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def normalize_question(raw: dict, index: int, subject: str) -> Question:
    """Map a bank, backend or AI question payload onto Question.

    Wrongly typed fields are passed through as-is so that Question.validate
    rejects the item instead of this function raising.
    """
    options = raw.get("options")
    if not options:
        source = raw.get("option")
        if not isinstance(source, dict):
            source = {}
        options = {label: source.get(label) or "" for label in "abcd"}
        if source.get("e"):
            options["e"] = source["e"]
    if isinstance(options, dict):
        options = {k: v for k, v in options.items() if k in OPTION_LABELS and v is not None}
    answer = raw.get("answer") or ""
    return Question(
        id=raw.get("id") or index,
        subject=subject,
        question=raw.get("question") or "",
        options=options,
        answer=answer.lower() if isinstance(answer, str) else answer,
        topic=raw.get("topic") or raw.get("section") or "",
        explanation=raw.get("solution") or raw.get("explanation") or "",
        exam_type=raw.get("examtype") or raw.get("exam_type") or "utme",
        exam_year=str(raw.get("examyear") or raw.get("exam_year") or ""),
        image=raw.get("image") or raw.get("image_url") or None,
        is_ai_generated=bool(raw.get("isAiGenerated") or raw.get("is_ai_generated")),
        external_id=str(raw["id"]) if raw.get("id") is not None else None,
    )


class QuestionBankClient:
    def __init__(
        self,
        base_url: str = DEFAULT_ALOC_API_URL,
        token: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient = None,
        retry_delay: float = 1.0,
    ):
        headers = dict(JSON_HEADERS)
        if token:
            headers["AccessToken"] = token
        self.retry_delay = retry_delay
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)
        if client is not None:
            self._client.headers.update(headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict, retries: int = 3):
        return await with_retry(
            lambda: request_json(self._client, "GET", path, params=params),
            retries=retries,
            delay=self.retry_delay,
        )

    @staticmethod
    def _params(subject: str, year=None) -> dict:
        params = {"subject": subject, "type": "utme"}
        if year:
            params["year"] = year
        return params

    async def fetch_one(self, subject: str, year=None) -> dict:
        """Single random question, raw bank shape."""
        payload = await self._get("/q", self._params(subject, year), retries=2)
        items = unwrap_list(payload)
        return items[0] if items else {}

    async def fetch_many(self, subject: str, count: int = 40, year=None) -> list[dict]:
        payload = await self._get(f"/q/{count}", self._params(subject, year))
        return unwrap_list(payload)

    async def fetch_bulk(self, subject: str) -> list[dict]:
        payload = await self._get("/m", self._params(subject))
        return unwrap_list(payload)

    async def subject_metrics(self) -> dict:
        return await request_json(self._client, "GET", "/metrics/subjects")
