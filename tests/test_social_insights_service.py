import httpx
import pytest

from conftest import json_response
from travelguide.services.social_insights_service import (
    SOCIAL_DISABLED_INSIGHTS,
    SOCIAL_FALLBACK_INSIGHTS,
    SocialInsightsService,
)

SEARCH_BODY = {"data": {"data": {"items": [
    {"note": {"id": "n1"}},
    {"model_type": "ads"},
    {"note": {"id": "n2"}},
    {"note": {"id": "n3"}},
]}}}


def tikhub_handler(requests, broken_notes=()):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/search_notes"):
            return json_response(SEARCH_BODY)
        note_id = request.url.params["note_id"]
        if note_id in broken_notes:
            return httpx.Response(200, content=b"<html>not json</html>")
        return json_response({"data": {"data": [{"title": f"笔记{note_id}", "desc": "西湖边的小吃很好吃"}]}})

    return handler


def make_service(handler, api_key="tikhub-key", notes_limit=2):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SocialInsightsService(api_url="https://api.tikhub.io", api_key=api_key,
                                 notes_limit=notes_limit, http_client=client)


@pytest.mark.asyncio
async def test_search_notes_reads_first_notes_up_to_limit():
    requests = []
    service = make_service(tikhub_handler(requests))

    notes = await service.search_notes("杭州美食")

    assert notes == ["笔记n1\n西湖边的小吃很好吃", "笔记n2\n西湖边的小吃很好吃"]
    assert requests[0].url.params["keyword"] == "杭州美食"
    assert requests[0].headers["Authorization"] == "Bearer tikhub-key"
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_search_notes_skips_unreadable_notes():
    service = make_service(tikhub_handler([], broken_notes={"n1"}))

    notes = await service.search_notes("杭州美食")

    assert notes == ["笔记n2\n西湖边的小吃很好吃"]


@pytest.mark.asyncio
async def test_insights_are_summarized():
    service = make_service(tikhub_handler([]))
    seen = []

    async def summarize(notes):
        seen.extend(notes)
        return "  推荐西湖醋鱼  "

    assert await service.get_insights("杭州美食", summarize) == "推荐西湖醋鱼"
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_insights_without_api_key():
    requests = []
    service = make_service(tikhub_handler(requests), api_key=None)

    async def summarize(notes):
        raise AssertionError("should not summarize")

    assert not service.enabled
    assert await service.get_insights("杭州美食", summarize) == SOCIAL_DISABLED_INSIGHTS
    assert requests == []


@pytest.mark.asyncio
async def test_summary_failure_falls_back():
    service = make_service(tikhub_handler([]))

    async def summarize(notes):
        raise RuntimeError("model unavailable")

    assert await service.get_insights("杭州美食", summarize) == SOCIAL_FALLBACK_INSIGHTS
