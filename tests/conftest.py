import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from travelguide.services.amap_geocoding_service import AmapGeocodingService
from travelguide.services.rate_limiter import SlidingWindowRateLimiter
from travelguide.services.stream_transport import SSE_DATA_PREFIX
from travelguide.services.vertex_ai_service import CompletionServiceError


class FakeClock:
    """Millisecond clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds * 1000.0
        await asyncio.sleep(0)


def amap_geocode_body(
    location: str = "116.397428,39.90923",
    city="北京市",
    district="东城区",
    formatted_address: str = "北京市东城区",
    adcode: str = "110101",
    province: str = "北京市",
) -> Dict:
    return {
        "status": "1",
        "info": "OK",
        "infocode": "10000",
        "count": "1",
        "geocodes": [{
            "formatted_address": formatted_address,
            "country": "中国",
            "province": province,
            "city": city,
            "district": district,
            "adcode": adcode,
            "location": location,
            "level": "兴趣点",
        }],
    }


AMAP_NOT_FOUND = {"status": "1", "info": "OK", "infocode": "10000", "count": "0", "geocodes": []}


def amap_forecast_body(casts: Optional[List[Dict]] = None) -> Dict:
    if casts is None:
        casts = [
            {"date": "2026-10-17", "dayweather": "晴", "nightweather": "多云", "daytemp": "22", "nighttemp": "10", "daywind": "北", "daypower": "1-3"},
            {"date": "2026-10-18", "dayweather": "小雨", "nightweather": "阴", "daytemp": "18", "nighttemp": "9", "daywind": "东北", "daypower": "1-3"},
            {"date": "2026-10-19", "dayweather": "多云", "nightweather": "晴", "daytemp": "20", "nighttemp": "8", "daywind": "北", "daypower": "1-3"},
        ]
    return {
        "status": "1",
        "info": "OK",
        "forecasts": [{"city": "北京市", "adcode": "110101", "province": "北京", "reporttime": "2026-10-17 08:00:00", "casts": casts}],
    }


AMAP_LIVE_BODY = {
    "status": "1",
    "info": "OK",
    "lives": [{"province": "北京", "city": "东城区", "adcode": "110101", "weather": "晴", "temperature": "18", "humidity": "40"}],
}


def json_response(body: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body, ensure_ascii=False).encode("utf-8"),
                          headers={"content-type": "application/json"})


class FakeCompletion:
    """Scripted stand-in for VertexAIService, routed on distinctive prompt phrases."""

    ROUTES = {
        "提取出行信息": "facts",
        "识别用户偏好的交通方式": "transport",
        "最核心的搜索关键词": "keyword",
        "提取预算相关信息": "budget",
        "分析以下小红书旅行笔记": "notes",
        "生成专业指南": "skeleton",
        "旅行行程JSON": "itinerary",
        "推荐重要地点": "locations",
        "预算明细JSON": "budget_breakdown",
    }

    def __init__(self, responses: Dict[str, object]):
        self.responses = dict(responses)
        self.calls: List[str] = []

    def _route(self, prompt: str) -> str:
        for phrase, name in self.ROUTES.items():
            if phrase in prompt:
                return name
        raise AssertionError(f"unexpected prompt: {prompt[:40]}")

    async def _respond(self, prompt: str) -> str:
        name = self._route(prompt)
        self.calls.append(name)
        value = self.responses.get(name, "{}")
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return value

    async def generate_text(self, prompt: str, temperature: Optional[float] = None) -> str:
        return await self._respond(prompt)

    async def generate_json(self, prompt: str, temperature: Optional[float] = None) -> str:
        return await self._respond(prompt)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_geocoder(fake_clock) -> Callable[..., AmapGeocodingService]:
    """Build a geocoder whose HTTP calls go to ``handler`` and whose limiter never really sleeps."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], api_key: str = "test-key", max_requests: int = 3):
        limiter = SlidingWindowRateLimiter(max_requests=max_requests, clock=fake_clock, sleep=fake_clock.sleep)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return AmapGeocodingService(api_key, limiter, base_url="https://restapi.amap.com/v3", http_client=client)

    return _make


def unreachable() -> CompletionServiceError:
    return CompletionServiceError("Vertex AI generation failed: 503 Service Unavailable")


def frame_to_dict(frame: str) -> dict:
    """Decode an encoded SSE frame back into plain JSON data."""
    return json.loads(frame[len(SSE_DATA_PREFIX):].strip())
