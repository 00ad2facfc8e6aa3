"""Server side of the AI extraction service.

Validates extraction requests, forwards them to the Gemini ``generateContent``
REST endpoint with a structured-output schema, and returns the parsed
``{"studies": [...]}`` document.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)

DOSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "dose": {"type": "STRING", "description": "Dose, e.g. '5mg'"},
        "weightLossPercent": {"type": "NUMBER", "description": "Body-weight reduction in percent"},
        "nauseaPercent": {"type": "NUMBER", "description": "Incidence of nausea in percent"},
        "vomitingPercent": {"type": "NUMBER", "description": "Incidence of vomiting in percent"},
        "diarrheaPercent": {"type": "NUMBER", "description": "Incidence of diarrhea in percent"},
        "constipationPercent": {"type": "NUMBER", "description": "Incidence of constipation in percent"},
    },
    "required": [
        "dose",
        "weightLossPercent",
        "nauseaPercent",
        "vomitingPercent",
        "diarrheaPercent",
        "constipationPercent",
    ],
}

SINGLE_STUDY_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "drugName": {"type": "STRING", "description": "Generic drug name"},
        "drugClass": {"type": "STRING", "description": "Drug class, e.g. GLP-1 RA, GIP/GLP-1"},
        "company": {"type": "STRING", "description": "Developing company"},
        "trialName": {"type": "STRING", "description": "Trial name, e.g. SURMOUNT-1"},
        "phase": {
            "type": "STRING",
            "description": (
                "Trial phase. Must be one of 'Phase 1', 'Phase 2', 'Phase 3'. "
                "If the document does not clearly state one of these, return ''."
            ),
        },
        "hasT2D": {"type": "BOOLEAN", "description": "Whether this cohort consists of type 2 diabetes patients"},
        "isChineseCohort": {"type": "BOOLEAN", "description": "Whether this cohort is mainly Chinese (e.g. STEP-China)"},
        "durationWeeks": {"type": "INTEGER", "description": "Trial duration in weeks"},
        "summary": {"type": "STRING", "description": "One-sentence summary of the cohort's key finding"},
        "doses": {"type": "ARRAY", "items": DOSE_SCHEMA},
    },
    "required": [
        "drugName",
        "drugClass",
        "company",
        "trialName",
        "phase",
        "hasT2D",
        "isChineseCohort",
        "durationWeeks",
        "doses",
    ],
}

STUDIES_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "studies": {
            "type": "ARRAY",
            "description": (
                "All study cohorts extracted from the document. One document may "
                "contain several independently analysed cohorts."
            ),
            "items": SINGLE_STUDY_SCHEMA,
        },
    },
    "required": ["studies"],
}

EXTRACTION_PROMPT = """You are an expert assistant for analysing medical literature.
Your task is to extract key information about weight-loss drugs from the clinical trial text, screenshot or image provided.
Answer according to the supplied JSON schema.

**Rules**:
- **Analysis strategy**: if the document reports several estimands (e.g. Intention-To-Treat / treatment-policy versus per-protocol / efficacy estimand), always extract the **Intention-To-Treat** results.
- **Exclude placebo**: **never extract data for placebo groups.** Only report treatment arms with active drug.
- **Stratified analyses**: a document may analyse several populations separately, for example type 2 diabetes patients and patients without diabetes. Extract each independently analysed cohort as its own "study" object and return an array with all of them.

Key items for each cohort:
1. **Drug**: generic name, class (e.g. GLP-1 RA, GIP/GLP-1), developing company.
2. **Design**: trial name or number (e.g. SURMOUNT-1), phase, whether the cohort has type 2 diabetes (hasT2D), whether it is mainly Chinese (isChineseCohort), duration in weeks.
3. **Efficacy**: body-weight reduction in percent for every dose group.
4. **Safety**: incidence in percent of nausea, vomiting, diarrhea and constipation for every dose group.

If a value is not reported, use 0 for numbers and "" for strings. All numeric fields must be numbers, not strings."""


@dataclass
class ProxyResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.body)


class GeminiProxy:
    """Request handler that stands between clients and the Gemini API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str | None,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        max_text_chars: int = 30000,
        temperature: float = 0.1,
    ):
        self.client = client
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_text_chars = max_text_chars
        self.temperature = temperature

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_contents(self, payload: Dict[str, Any]) -> list | None:
        """Builds the Gemini ``contents`` list, or None when the request is invalid.

        Exactly one of ``text`` or ``fileData`` (with both ``data`` and
        ``mimeType``) must be present.
        """
        text = payload.get("text")
        file_data = payload.get("fileData")
        has_file = (
            isinstance(file_data, dict)
            and bool(file_data.get("data"))
            and bool(file_data.get("mimeType"))
        )
        if text and not file_data and isinstance(text, str):
            prompt = f"{EXTRACTION_PROMPT}\n\nDocument content:\n{text[: self.max_text_chars]}"
            return [{"parts": [{"text": prompt}]}]
        if has_file and not text:
            return [
                {
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": file_data["mimeType"],
                                "data": file_data["data"],
                            }
                        },
                        {"text": EXTRACTION_PROMPT},
                    ]
                }
            ]
        return None

    async def _generate(self, contents: list) -> Dict[str, Any]:
        request_body = {
            "contents": contents,
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": STUDIES_SCHEMA,
                "temperature": self.temperature,
            },
        }
        response = await self.client.post(
            self.endpoint,
            json=request_body,
            headers={"x-goog-api-key": self.api_key or ""},
        )
        response.raise_for_status()
        reply = response.json()
        if not isinstance(reply, dict):
            raise ValueError("API returned a malformed reply.")
        candidates = reply.get("candidates") or []
        if not isinstance(candidates, list):
            raise ValueError("API returned a malformed reply.")
        parts: list = []
        if candidates:
            first = candidates[0]
            content = first.get("content", {}) if isinstance(first, dict) else None
            parts = content.get("parts", []) if isinstance(content, dict) else None
            if not isinstance(parts, list):
                raise ValueError("API returned a malformed reply.")
        texts = []
        for part in parts:
            text = part.get("text", "") if isinstance(part, dict) else None
            if not isinstance(text, str):
                raise ValueError("API returned a malformed reply.")
            texts.append(text)
        json_text = "".join(texts)
        if not json_text:
            raise ValueError("API returned an empty response text.")
        return json.loads(json_text)

    async def handle(self, method: str, body: str | bytes | None) -> ProxyResponse:
        """Handles one HTTP request and returns the status code and JSON body."""
        if method.upper() != "POST":
            return ProxyResponse(405, {"error": "Method Not Allowed"})

        if not self.api_key:
            return ProxyResponse(
                500, {"error": "Gemini API Key is not configured on the server."}
            )

        try:
            payload = json.loads(body or "{}")
        except ValueError as e:
            return ProxyResponse(400, {"error": f"Request body is not valid JSON: {e}"})
        if not isinstance(payload, dict):
            payload = {}

        contents = self.build_contents(payload)
        if contents is None:
            return ProxyResponse(
                400, {"error": "Missing 'text' or 'fileData' in request body."}
            )

        try:
            parsed = await self._generate(contents)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Gemini proxy error: %s", e)
            return ProxyResponse(500, {"error": str(e) or "An unknown error occurred on the server."})
        return ProxyResponse(200, parsed)
