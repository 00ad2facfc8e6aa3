import json
import re

import pytest
from httpx import AsyncClient
from pytest_httpx import HTTPXMock

from py_load_metaslim.proxy import EXTRACTION_PROMPT, STUDIES_SCHEMA, GeminiProxy

pytestmark = pytest.mark.unit

GENERATE_URL = re.compile(r".*/models/gemini-2\.5-flash:generateContent")


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.mark.asyncio
async def test_rejects_non_post():
    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="key")
        response = await proxy.handle("GET", None)
    assert response.status_code == 405


@pytest.mark.asyncio
async def test_missing_api_key_is_a_server_error():
    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key=None)
        response = await proxy.handle("POST", json.dumps({"text": "abc"}))
    assert response.status_code == 500
    assert "API Key is not configured" in response.body["error"]


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"text": ""},
        {"fileData": {"data": "abc"}},
        {"fileData": {"mimeType": "image/png"}},
        {"text": "abc", "fileData": {"data": "abc", "mimeType": "image/png"}},
    ],
)
@pytest.mark.asyncio
async def test_request_needs_exactly_one_input(payload):
    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="key")
        response = await proxy.handle("POST", json.dumps(payload))
    assert response.status_code == 400
    assert response.body == {"error": "Missing 'text' or 'fileData' in request body."}


@pytest.mark.asyncio
async def test_invalid_json_body_is_a_client_error():
    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="key")
        response = await proxy.handle("POST", "{not json")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_text_request_is_truncated_and_forwarded(httpx_mock: HTTPXMock, make_form):
    """Tests that long text is cut and the structured-output config is sent."""
    studies = {"studies": [make_form()]}
    httpx_mock.add_response(url=GENERATE_URL, json=gemini_reply(json.dumps(studies)))

    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="secret", max_text_chars=10)
        response = await proxy.handle("POST", json.dumps({"text": "0123456789ABCDEF"}))

    assert response.status_code == 200
    assert response.body == studies

    request = httpx_mock.get_request()
    assert request.headers["x-goog-api-key"] == "secret"
    sent = json.loads(request.content)
    prompt = sent["contents"][0]["parts"][0]["text"]
    assert prompt.startswith(EXTRACTION_PROMPT)
    assert prompt.endswith("0123456789")
    assert "ABCDEF" not in prompt
    config = sent["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == STUDIES_SCHEMA
    assert config["temperature"] == 0.1


@pytest.mark.asyncio
async def test_file_request_sends_inline_data(httpx_mock: HTTPXMock):
    httpx_mock.add_response(url=GENERATE_URL, json=gemini_reply('{"studies": []}'))

    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="secret")
        response = await proxy.handle(
            "POST", json.dumps({"fileData": {"data": "aGVsbG8=", "mimeType": "image/png"}})
        )

    assert response.status_code == 200
    parts = json.loads(httpx_mock.get_request().content)["contents"][0]["parts"]
    assert parts[0] == {"inlineData": {"mimeType": "image/png", "data": "aGVsbG8="}}
    assert parts[1] == {"text": EXTRACTION_PROMPT}


@pytest.mark.asyncio
async def test_empty_upstream_text_is_a_server_error(httpx_mock: HTTPXMock):
    httpx_mock.add_response(url=GENERATE_URL, json={"candidates": []})

    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="secret")
        response = await proxy.handle("POST", json.dumps({"text": "abc"}))

    assert response.status_code == 500
    assert response.body["error"] == "API returned an empty response text."


@pytest.mark.asyncio
async def test_malformed_upstream_json_is_a_server_error(httpx_mock: HTTPXMock):
    httpx_mock.add_response(url=GENERATE_URL, json=gemini_reply("{oops"))

    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="secret")
        response = await proxy.handle("POST", json.dumps({"text": "abc"}))

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_upstream_http_error_is_a_server_error(httpx_mock: HTTPXMock):
    httpx_mock.add_response(url=GENERATE_URL, status_code=429)

    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="secret")
        response = await proxy.handle("POST", json.dumps({"text": "abc"}))

    assert response.status_code == 500
    assert "429" in response.body["error"]


@pytest.mark.parametrize(
    "reply",
    [
        {"candidates": ["oops"]},
        {"candidates": [{"content": "oops"}]},
        {"candidates": [{"content": {"parts": ["oops"]}}]},
        {"candidates": [{"content": {"parts": [{"text": 5}]}}]},
        {"candidates": "oops"},
    ],
)
@pytest.mark.asyncio
async def test_unexpected_reply_shape_is_a_server_error(httpx_mock: HTTPXMock, reply):
    """Tests that an oddly shaped upstream reply still yields a 500 response."""
    httpx_mock.add_response(url=GENERATE_URL, json=reply)

    async with AsyncClient() as client:
        proxy = GeminiProxy(client=client, api_key="secret")
        response = await proxy.handle("POST", json.dumps({"text": "abc"}))

    assert response.status_code == 500
    assert response.body["error"] == "API returned a malformed reply."
