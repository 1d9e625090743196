"""Word lookup against the free dictionary API."""
import logging
from urllib.parse import quote

import httpx

from cbt_prep.errors import CBTError, NetworkError, NotFoundError
from cbt_prep.httpclient import request_json

logger = logging.getLogger(__name__)

DICTIONARY_URL = "https://api.dictionaryapi.dev/api/v2/entries/en/{word}"
LOOKUP_TIMEOUT = 10.0


async def lookup_word(word: str, client: httpx.AsyncClient = None) -> list[dict]:
    """Dictionary entries for `word`, as returned by the API."""
    url = DICTIONARY_URL.format(word=quote(word.strip()))
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=LOOKUP_TIMEOUT)
    try:
        return await request_json(client, "GET", url)
    except NotFoundError as e:
        raise NotFoundError("Word not found in dictionary") from e
    except CBTError as e:
        logger.warning("dictionary lookup for %r failed: %s", word, e)
        raise NetworkError("Failed to search dictionary. Please try again.") from e
    finally:
        if owns_client:
            await client.aclose()


def summarize_entries(entries: list[dict], limit: int = 3) -> list[dict]:
    """Flatten entries into {part_of_speech, definition, example} rows."""
    rows = []
    for entry in entries:
        for meaning in entry.get("meanings", []):
            for d in meaning.get("definitions", []):
                rows.append({
                    "part_of_speech": meaning.get("partOfSpeech", ""),
                    "definition": d.get("definition", ""),
                    "example": d.get("example"),
                })
                if len(rows) >= limit:
                    return rows
    return rows
