import base64
import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Tuple

import httpx
from pydantic import ValidationError

from py_load_metaslim.errors import ExtractionServiceError
from py_load_metaslim.models.study import CandidateRecord
from py_load_metaslim.proxy import GeminiProxy

USER_AGENT = "py-load-metaslim/0.1.0"

logger = logging.getLogger(__name__)


def parse_studies(data: Any) -> List[CandidateRecord]:
    """Validates a proxy reply of the form ``{"studies": [...]}``.

    Entries that are not JSON objects are dropped; the remaining ones are
    coerced into CandidateRecords (drug names canonicalized, missing numbers 0).
    """
    if not isinstance(data, dict) or not isinstance(data.get("studies"), list):
        raise ExtractionServiceError(
            "The API response did not contain a valid 'studies' array."
        )
    candidates = []
    for item in data["studies"]:
        if not isinstance(item, dict):
            logger.debug("Dropping non-object study entry: %r", item)
            continue
        try:
            candidates.append(CandidateRecord.model_validate(item))
        except ValidationError as e:
            logger.debug("Dropping study entry that failed validation: %s", e)
    return candidates


class GeminiExtractionClient:
    """Client for the AI extraction proxy.

    The proxy accepts either plain text or a base64 encoded file and answers
    with the cohorts it found.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        proxy_url: str,
        proxy: GeminiProxy | None = None,
    ):
        """Initializes the client.

        Args:
            client: An httpx.AsyncClient for making requests.
            proxy_url: Full URL of the extraction proxy endpoint.
            proxy: When given, requests are handed to this in-process proxy
                   instead of being posted to `proxy_url`.
        """
        self.client = client
        self.client.headers["User-Agent"] = USER_AGENT
        self.proxy_url = proxy_url
        self.proxy = proxy

    async def _send(self, payload: Dict[str, Any]) -> Tuple[int, Any]:
        if self.proxy is not None:
            reply = await self.proxy.handle("POST", json.dumps(payload))
            return reply.status_code, reply.body

        try:
            response = await self.client.post(self.proxy_url, json=payload)
        except httpx.HTTPError as e:
            raise ExtractionServiceError(f"Gemini API call failed: {e}") from e
        try:
            body = response.json()
        except ValueError:
            body = {}
        return response.status_code, body

    async def _call_proxy(self, payload: Dict[str, Any]) -> Any:
        """Sends `payload` to the proxy and returns the decoded JSON reply.

        No retry is attempted; the caller decides whether to resubmit.
        """
        status_code, body = await self._send(payload)
        if status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise ExtractionServiceError(
                "Gemini API call failed: "
                + (message or f"Proxy request failed with status {status_code}")
            )
        return body

    async def analyze_text(self, text: str) -> List[CandidateRecord]:
        """Extracts study cohorts from document text."""
        data = await self._call_proxy({"text": text})
        return parse_studies(data)

    async def analyze_file_data(self, data: bytes, mime_type: str) -> List[CandidateRecord]:
        """Extracts study cohorts from raw image bytes."""
        payload = {
            "fileData": {
                "data": base64.b64encode(data).decode("ascii"),
                "mimeType": mime_type,
            }
        }
        return parse_studies(await self._call_proxy(payload))

    async def analyze_image(self, path: str | Path) -> List[CandidateRecord]:
        """Reads an image from disk and extracts study cohorts from it."""
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return await self.analyze_file_data(path.read_bytes(), mime_type)
