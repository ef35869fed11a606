"""
Manual live check against the real Amap API and a running server.

This script checks:
1. Geocoding resolution with fallback strategies
2. Rate limiter behaviour under a concurrent burst (at most N requests per second)
3. Optionally, the SSE progress stream of a running server (pass its URL)

Usage:
    python check_live_services.py [http://localhost:8000]
"""

import asyncio
import sys
import time

from travelguide.services.amap_geocoding_service import AmapGeocodingService
from travelguide.services.rate_limiter import SlidingWindowRateLimiter
from travelguide.services.stream_transport import GuideStreamClient
from travelguide.utils.config import get_settings

SAMPLE_PLACES = [
    ("故宫博物院", "北京"),
    ("老字号烤鸭(推荐)", "北京"),
    ("南锣鼓巷附近", "北京"),
    ("外滩", "上海"),
    ("宽窄巷子", "成都"),
    ("锦里古街", "成都"),
]

async def check_geocoding():
    print("=" * 80)
    print("AMAP GEOCODING LIVE CHECK")
    print("=" * 80)

    settings = get_settings()
    if not settings.AMAP_API_KEY or settings.AMAP_API_KEY == "your-amap-key":
        print("\n❌ ERROR: AMAP_API_KEY not set in .env")
        return

    limiter = SlidingWindowRateLimiter(max_requests=settings.AMAP_MAX_REQUESTS_PER_SECOND)
    geocoder = AmapGeocodingService(settings.AMAP_API_KEY, limiter, base_url=settings.AMAP_BASE_URL)

    print(f"\n1️⃣  Resolving {len(SAMPLE_PLACES)} places concurrently...")
    start_time = time.time()
    results = await geocoder.batch_resolve(SAMPLE_PLACES)
    duration = time.time() - start_time

    for (text, city), location in zip(SAMPLE_PLACES, results):
        if location:
            print(f"   ✅ {text} ({city}) → {location.coordinates} {location.formatted_address}")
        else:
            print(f"   ⚠️  {text} ({city}) → not found")

    print(f"\n2️⃣  Burst completed in {duration:.2f}s")
    print(f"   📊 Limiter status: {geocoder.rate_limit_status()}")

    print("\n3️⃣  City centers...")
    for city in ["北京", "成都市", "杭州"]:
        print(f"   📍 {city}: {await geocoder.city_center(city)}")

    await geocoder.close()

async def check_stream(base_url: str):
    print("\n" + "=" * 80)
    print(f"SSE STREAM LIVE CHECK ({base_url})")
    print("=" * 80)

    client = GuideStreamClient(base_url)
    try:
        async for event in client.stream_guide("我想去成都玩3天，喜欢美食，预算5000元"):
            if event.type == "progress":
                state = event.data
                print(f"   ⏳ {state.overall_progress_percent:3d}% current={state.current_stage_id}")
            elif event.type == "complete":
                print(f"   ✅ Complete: {event.data.result.get('title') if event.data.result else None}")
            else:
                print(f"   ❌ Error: {event.data.error}")
    finally:
        await client.close()

async def main():
    await check_geocoding()
    if len(sys.argv) > 1:
        await check_stream(sys.argv[1])

if __name__ == "__main__":
    asyncio.run(main())
