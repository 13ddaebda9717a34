import pytest
import respx
from httpx import Response

from projectica.errors import ServiceError
from projectica.trends import TrendsClient


URL = "http://trends.test/search.json"


@pytest.mark.asyncio
async def test_fetch_trends_runs_three_lookups():
    client = TrendsClient("serp-key", URL)
    seen = []
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            def handler(request):
                params = request.url.params
                seen.append((params["data_type"], params["date"], params["q"], params["engine"]))
                key = {
                    "TIMESERIES": "interest_over_time",
                    "RELATED_TOPICS": "related_topics",
                    "RELATED_QUERIES": "related_queries",
                }[params["data_type"]]
                return Response(200, json={key: {"kind": params["data_type"]}})

            respx_mock.get(URL).mock(side_effect=handler)
            data = await client.fetch_trends("solar", "historical")
            assert data == {
                "interestOverTime": {"kind": "TIMESERIES"},
                "relatedTopics": {"kind": "RELATED_TOPICS"},
                "relatedQueries": {"kind": "RELATED_QUERIES"},
            }
            assert sorted(seen) == [
                ("RELATED_QUERIES", "today 12-m", "solar", "google_trends"),
                ("RELATED_TOPICS", "today 12-m", "solar", "google_trends"),
                ("TIMESERIES", "today 12-m", "solar", "google_trends"),
            ]
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_error_payload_raises():
    client = TrendsClient("serp-key", URL)
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(URL).mock(return_value=Response(200, json={"error": "Invalid API key."}))
            with pytest.raises(ServiceError) as excinfo:
                await client.fetch_trends("solar")
            assert "Invalid API key." in str(excinfo.value)
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_http_error_raises():
    client = TrendsClient("serp-key", URL)
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(URL).mock(return_value=Response(500, text="boom"))
            with pytest.raises(ServiceError) as excinfo:
                await client.fetch_trends("solar")
            assert excinfo.value.upstream_status == 500
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_missing_key():
    client = TrendsClient(None, URL)
    try:
        with pytest.raises(ServiceError):
            await client.fetch_trends("solar")
    finally:
        await client.close()
