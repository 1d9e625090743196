"""Shared httpx plumbing: JSON requests with errors mapped to tagged kinds."""
import logging

import httpx

from cbt_prep.errors import NetworkError, NetworkTimeoutError, NotFoundError, RateLimitedError

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


async def request_json(client: httpx.AsyncClient, method: str, url: str, **kwargs):
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise NetworkTimeoutError(f"{method} {url} timed out") from e
    except httpx.HTTPError as e:
        raise NetworkError(f"{method} {url} failed: {e}") from e

    if response.status_code == 429:
        raise RateLimitedError(f"{method} {url} was rate limited")
    if response.status_code == 404:
        raise NotFoundError(f"{method} {url} not found")
    if response.is_error:
        raise NetworkError(f"{method} {url} returned HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as e:
        raise NetworkError(f"{method} {url} returned invalid JSON") from e
