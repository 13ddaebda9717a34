import json

import pytest
import respx
from httpx import Response

from projectica.agents import COMPETITOR_SYSTEM
from projectica.errors import ServiceError
from projectica.perplexity import PerplexityClient


URL = "http://pplx.test/chat/completions"


@pytest.mark.asyncio
async def test_search_payload_and_message_references():
    client = PerplexityClient("pplx-key", "http://pplx.test", model="sonar-pro")
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                captured["headers"] = request.headers
                return Response(
                    200,
                    json={
                        "choices": [
                            {
                                "message": {
                                    "content": "EVs grow [1].",
                                    "references": [{"title": "IEA", "url": "https://iea.org", "snippet": "x"}],
                                }
                            }
                        ]
                    },
                )

            respx_mock.post(URL).mock(side_effect=handler)
            result = await client.search("EV market", system_prompt=COMPETITOR_SYSTEM)
            assert result.content == "EVs grow [1]."
            assert result.references[0].title == "IEA"
            assert result.references[0].snippet == "x"
            assert captured["json"]["model"] == "sonar-pro"
            assert captured["json"]["messages"][0] == {"role": "system", "content": COMPETITOR_SYSTEM}
            assert captured["json"]["messages"][1] == {"role": "user", "content": "EV market"}
            assert captured["headers"]["Authorization"] == "Bearer pplx-key"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_search_falls_back_to_citation_urls():
    client = PerplexityClient("pplx-key", "http://pplx.test")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(URL).mock(
                return_value=Response(
                    200,
                    json={
                        "choices": [{"message": {"content": "Answer [1][2]."}}],
                        "citations": ["https://a.test", "https://b.test"],
                    },
                )
            )
            result = await client.search("q")
            assert [r.url for r in result.references] == ["https://a.test", "https://b.test"]
    finally:
        await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,message",
    [
        (401, "Invalid API key or unauthorized access"),
        (429, "Rate limit exceeded. Please try again later"),
        (400, "Invalid request format"),
    ],
)
async def test_known_statuses_map_to_friendly_messages(status, message):
    client = PerplexityClient("pplx-key", "http://pplx.test")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(URL).mock(return_value=Response(status, text="nope"))
            with pytest.raises(ServiceError) as excinfo:
                await client.search("q")
            assert str(excinfo.value) == message
            assert excinfo.value.upstream_status == status
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_other_status_includes_body():
    client = PerplexityClient("pplx-key", "http://pplx.test")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(URL).mock(return_value=Response(503, text="overloaded"))
            with pytest.raises(ServiceError) as excinfo:
                await client.search("q")
            assert str(excinfo.value) == "API request failed: 503 - overloaded"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_missing_content_is_invalid_format():
    client = PerplexityClient("pplx-key", "http://pplx.test")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(URL).mock(return_value=Response(200, json={"choices": []}))
            with pytest.raises(ServiceError) as excinfo:
                await client.search("q")
            assert str(excinfo.value) == "Invalid response format from Perplexity API"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_missing_key():
    client = PerplexityClient(None)
    try:
        with pytest.raises(ServiceError) as excinfo:
            await client.search("q")
        assert str(excinfo.value) == "API key is not configured"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_malformed_reference_keeps_its_slot():
    client = PerplexityClient("pplx-key", "http://pplx.test")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(URL).mock(
                return_value=Response(
                    200,
                    json={
                        "choices": [
                            {
                                "message": {
                                    "content": "A [1] B [2] C [3]",
                                    "references": [
                                        {"title": "One", "url": "https://1.test"},
                                        {"title": None, "url": "https://2.test"},
                                        {"title": "Three", "url": "https://3.test"},
                                    ],
                                }
                            }
                        ]
                    },
                )
            )
            result = await client.search("q")
            assert [r.url for r in result.references] == ["https://1.test", "https://2.test", "https://3.test"]
            assert result.references[1].title == "https://2.test"
    finally:
        await client.close()
